# Copyright 2024 inuex35
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""GNSS measurement error parameters"""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Union

import yaml

from .constants import SYSTEMS


def _default_system_error_ratio() -> dict:
    return {sys: 1.0 for sys in SYSTEMS}


@dataclass
class GnssErrorParameter:
    """
    Error model of GNSS observables.

    The Doppler factor only reads ``doppler_error_factor`` and
    ``system_error_ratio``; the remaining terms belong to the pseudorange and
    carrier phase factors that share the same configuration block.

    Attributes:
        doppler_error_factor (float): Doppler standard deviation (m/s)
        pseudorange_error_factor (float): Pseudorange standard deviation (m)
        code_to_phase_ratio (float): Pseudorange to carrier phase error ratio
        system_error_ratio (dict): Per-system multiplier on every standard
            deviation, keyed by system character ('G', 'R', 'E', 'C', ...)

    Examples:
        >>> params = GnssErrorParameter.from_dict({
        ...     'doppler_error_factor': 0.3,
        ...     'system_error_ratio': {'R': 2.0},
        ... })
        >>> params.system_error_ratio['R']
        2.0
    """
    doppler_error_factor: float = 0.5
    pseudorange_error_factor: float = 0.3
    code_to_phase_ratio: float = 100.0
    system_error_ratio: dict = field(default_factory=_default_system_error_ratio)

    def __post_init__(self):
        self.doppler_error_factor = float(self.doppler_error_factor)
        self.pseudorange_error_factor = float(self.pseudorange_error_factor)
        self.code_to_phase_ratio = float(self.code_to_phase_ratio)
        if self.doppler_error_factor <= 0.0:
            raise ValueError("doppler_error_factor must be positive")
        if self.pseudorange_error_factor <= 0.0:
            raise ValueError("pseudorange_error_factor must be positive")

        ratios = {}
        for system, ratio in dict(self.system_error_ratio).items():
            if system not in SYSTEMS:
                raise ValueError(f"Unknown system in system_error_ratio: {system!r}")
            ratio = float(ratio)
            if ratio <= 0.0:
                raise ValueError(f"system_error_ratio[{system!r}] must be positive")
            ratios[system] = ratio
        self.system_error_ratio = ratios

    def to_dict(self) -> dict:
        """
        Convert parameters to a plain dictionary for serialization.

        Returns:
        --------
        dict
            Dictionary with one entry per field
        """
        return {
            'doppler_error_factor': self.doppler_error_factor,
            'pseudorange_error_factor': self.pseudorange_error_factor,
            'code_to_phase_ratio': self.code_to_phase_ratio,
            'system_error_ratio': dict(self.system_error_ratio),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'GnssErrorParameter':
        """
        Create parameters from a dictionary.

        Systems missing from ``system_error_ratio`` keep their default ratio.

        Raises:
            ValueError: If the dictionary contains unknown keys
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown GNSS error parameters: {sorted(unknown)}")

        kwargs = dict(data)
        if 'system_error_ratio' in kwargs:
            ratios = _default_system_error_ratio()
            ratios.update(kwargs['system_error_ratio'] or {})
            kwargs['system_error_ratio'] = ratios
        return cls(**kwargs)

    def save_to_file(self, filepath: Union[str, Path], format: str = 'yaml') -> None:
        """
        Save parameters to file.

        Parameters:
        -----------
        filepath : str or Path
            Output file path
        format : str
            File format: 'yaml' or 'json'
        """
        filepath = Path(filepath)
        data = self.to_dict()

        if format == 'yaml':
            with open(filepath, 'w') as f:
                yaml.dump(data, f, default_flow_style=False)
        elif format == 'json':
            with open(filepath, 'w') as f:
                json.dump(data, f, indent=2)
        else:
            raise ValueError(f"Unsupported format: {format}")

    @classmethod
    def load_from_file(cls, filepath: Union[str, Path]) -> 'GnssErrorParameter':
        """
        Load parameters from a YAML or JSON file.

        The parameters may sit at the top level or under a ``gnss_error_parameter``
        key, which is how they appear inside a full estimator configuration.

        Raises:
            ValueError: If the file format is not supported
        """
        filepath = Path(filepath)

        if filepath.suffix in ['.yaml', '.yml']:
            with open(filepath) as f:
                data = yaml.safe_load(f)
        elif filepath.suffix == '.json':
            with open(filepath) as f:
                data = json.load(f)
        else:
            raise ValueError(f"Unsupported file format: {filepath.suffix}")

        data = data or {}
        if 'gnss_error_parameter' in data:
            data = data['gnss_error_parameter'] or {}
        return cls.from_dict(data)
