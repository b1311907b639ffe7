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

"""
pydoppler - GNSS Doppler residual blocks for factor graph estimation

Computes the weighted Doppler residual of one satellite observation and its
analytic Jacobians, for receiver states given either directly in ECEF or as a
body pose in a local ENU frame with an antenna lever arm.
"""

__version__ = "1.0.0"
__title__ = "pydoppler"
__description__ = "GNSS Doppler residual blocks for factor graph estimation"

from .logger import get_logger, setup_logger, setup_logger_from_config
from .core import *
from .coordinate import GeoCoordinate, GeoType
from .estimate import ParameterBlockGroup, PoseLocalParameterization, select_parameter_block_group
from .factors import DopplerError, DopplerPrediction, ErrorInterface, predict_doppler
