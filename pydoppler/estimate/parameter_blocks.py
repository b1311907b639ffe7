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

"""Parameter block layouts accepted by the GNSS Doppler factor"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from ..core.errors import ConfigurationError, log_fatal
from .pose_local_parameterization import POSE_GLOBAL_SIZE, POSE_LOCAL_SIZE

logger = logging.getLogger(__name__)


class ParameterBlockGroup(Enum):
    """State parameterizations of a GNSS factor.

    Attributes
    ----------
    DIRECT : int
        Receiver ECEF position, ECEF velocity and clock frequency
    BODY_REFERENCED : int
        Body pose and speed in a local ENU frame, body-to-antenna lever arm
        and clock frequency
    """
    DIRECT = 1
    BODY_REFERENCED = 2


@dataclass(frozen=True)
class ParameterBlockLayout:
    """Sizes and names of the parameter blocks of one group"""
    group: ParameterBlockGroup
    names: tuple[str, ...]
    sizes: tuple[int, ...]
    minimal_sizes: tuple[int, ...]

    @property
    def num_blocks(self) -> int:
        return len(self.sizes)

    @property
    def is_estimate_body(self) -> bool:
        return self.group == ParameterBlockGroup.BODY_REFERENCED


PARAMETER_BLOCK_LAYOUTS = {
    ParameterBlockGroup.DIRECT: ParameterBlockLayout(
        group=ParameterBlockGroup.DIRECT,
        names=('position_ecef', 'velocity_ecef', 'clock_frequency'),
        sizes=(3, 3, 1),
        minimal_sizes=(3, 3, 1),
    ),
    ParameterBlockGroup.BODY_REFERENCED: ParameterBlockLayout(
        group=ParameterBlockGroup.BODY_REFERENCED,
        names=('pose', 'speed_and_bias', 'lever_arm', 'clock_frequency'),
        sizes=(POSE_GLOBAL_SIZE, 9, 3, 1),
        minimal_sizes=(POSE_LOCAL_SIZE, 9, 3, 1),
    ),
}


def select_parameter_block_group(sizes: Sequence[int]) -> ParameterBlockLayout:
    """
    Find the layout matching the declared parameter block sizes.

    Parameters
    ----------
    sizes : sequence of int
        Size of every parameter block, in order

    Returns
    -------
    ParameterBlockLayout
        Layout of the matching group

    Raises
    ------
    ConfigurationError
        If the sizes match no supported group
    """
    sizes = tuple(int(s) for s in sizes)
    for layout in PARAMETER_BLOCK_LAYOUTS.values():
        if sizes == layout.sizes:
            return layout
    log_fatal(logger, ConfigurationError,
              f"DopplerError parameter blocks setup invalid! Got sizes {sizes}, "
              f"expected one of {[layout.sizes for layout in PARAMETER_BLOCK_LAYOUTS.values()]}")
