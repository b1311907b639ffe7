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

"""Measurement data structures consumed by the Doppler factor"""

from dataclasses import dataclass, field
from typing import NamedTuple, Optional

import numpy as np

from .constants import prn2sys


@dataclass(frozen=True)
class GnssSatellite:
    """State of one satellite at the signal transmission time.

    Attributes
    ----------
    prn : str
        Satellite identifier, system character followed by the number ("G05")
    sat_position : np.ndarray
        ECEF position (m)
    sat_velocity : np.ndarray
        ECEF velocity (m/s)
    sat_clock : float
        Satellite clock bias expressed as a range (m)
    sat_frequency : float
        Satellite clock drift expressed as a range rate (m/s)
    """
    prn: str
    sat_position: np.ndarray
    sat_velocity: np.ndarray
    sat_clock: float = 0.0
    sat_frequency: float = 0.0

    def __post_init__(self):
        prn2sys(self.prn)
        for name in ('sat_position', 'sat_velocity'):
            arr = np.array(getattr(self, name), dtype=np.float64).reshape(-1)
            if arr.shape != (3,):
                raise ValueError(f"{name} must be a 3-vector")
            arr.flags.writeable = False
            object.__setattr__(self, name, arr)

    @property
    def system(self) -> str:
        """System character ('G', 'R', 'E', 'C', ...)"""
        return self.prn[0]


@dataclass(frozen=True)
class GnssObservation:
    """Observables of one satellite signal.

    Doppler is stored as a range rate (m/s), positive when the satellite
    recedes from the receiver.
    """
    prn: str
    code: str
    doppler: float
    pseudorange: float = 0.0
    phaserange: float = 0.0
    snr: float = 0.0


class GnssMeasurementIndex(NamedTuple):
    """Opaque lookup key of one observation inside a measurement epoch"""
    prn: str
    code: str


@dataclass
class GnssMeasurement:
    """All satellites and observations of a single epoch.

    Attributes
    ----------
    timestamp : float
        Receiver time of the epoch (s)
    satellites : dict[str, GnssSatellite]
        Satellite states keyed by PRN
    observations : dict[str, dict[str, GnssObservation]]
        Observations keyed by PRN, then by signal code
    """
    timestamp: float
    satellites: dict = field(default_factory=dict)
    observations: dict = field(default_factory=dict)

    def add_satellite(self, satellite: GnssSatellite) -> None:
        self.satellites[satellite.prn] = satellite

    def add_observation(self, observation: GnssObservation) -> GnssMeasurementIndex:
        """Store an observation and return the index that retrieves it"""
        self.observations.setdefault(observation.prn, {})[observation.code] = observation
        return GnssMeasurementIndex(observation.prn, observation.code)

    def get_sat(self, index: GnssMeasurementIndex) -> GnssSatellite:
        """Satellite referenced by ``index``; raises KeyError if absent"""
        try:
            return self.satellites[index.prn]
        except KeyError:
            raise KeyError(f"No satellite {index.prn} at t={self.timestamp}") from None

    def get_obs(self, index: GnssMeasurementIndex) -> GnssObservation:
        """Observation referenced by ``index``; raises KeyError if absent"""
        try:
            return self.observations[index.prn][index.code]
        except KeyError:
            raise KeyError(
                f"No observation {index.prn}/{index.code} at t={self.timestamp}") from None

    def indices(self, satellite: Optional[str] = None) -> list:
        """Indices of every observation that has a matching satellite state"""
        result = []
        for prn, by_code in self.observations.items():
            if prn not in self.satellites:
                continue
            if satellite is not None and prn != satellite:
                continue
            result.extend(GnssMeasurementIndex(prn, code) for code in by_code)
        return result
