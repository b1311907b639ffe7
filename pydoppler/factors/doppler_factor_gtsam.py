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

"""GTSAM wrapper of the direct-layout Doppler residual block"""

from __future__ import annotations

from typing import List, Optional

import gtsam
import numpy as np

from ..core.data_structures import GnssMeasurement, GnssMeasurementIndex
from ..core.params import GnssErrorParameter
from .doppler_error import DopplerError

DIRECT_BLOCK_SIZES = (3, 3, 1)


def _vector3_at(values: gtsam.Values, key: int) -> np.ndarray:
    """Read a 3-vector stored either as a Point3 or as a Vector"""
    try:
        return np.asarray(values.atPoint3(key), dtype=np.float64)
    except RuntimeError:
        return np.asarray(values.atVector(key), dtype=np.float64)


class DopplerFactorGtsam:
    """
    Doppler factor on ECEF position (Point3), ECEF velocity (Vector3) and
    clock frequency (double) variables of a GTSAM graph.

    The wrapped ``DopplerError`` already whitens residual and Jacobians with
    the measurement weighting, so the GTSAM factor uses a unit noise model.
    """

    def __init__(self,
                 position_key: int,
                 velocity_key: int,
                 clock_key: int,
                 measurement: GnssMeasurement,
                 index: GnssMeasurementIndex,
                 error_parameter: GnssErrorParameter) -> None:
        self.position_key = position_key
        self.velocity_key = velocity_key
        self.clock_key = clock_key
        self.doppler_error = DopplerError(measurement, index, error_parameter,
                                          DIRECT_BLOCK_SIZES)

    def error_func(self, this: gtsam.CustomFactor,
                   values: gtsam.Values,
                   jacobians: Optional[List[np.ndarray]]) -> np.ndarray:
        """
        Compute whitened error and Jacobians for the Doppler measurement.

        Parameters:
        -----------
        this : gtsam.CustomFactor
            Reference to this factor
        values : gtsam.Values
            Current values
        jacobians : List[np.ndarray], optional
            Output Jacobians, one per key

        Returns:
        --------
        error : np.ndarray
            Error vector (1,)
        """
        position = _vector3_at(values, self.position_key)
        velocity = _vector3_at(values, self.velocity_key)
        clock = np.array([values.atDouble(self.clock_key)])

        if jacobians is None:
            return self.doppler_error.evaluate([position, velocity, clock])

        buffers = [np.zeros((1, size)) for size in DIRECT_BLOCK_SIZES]
        error = self.doppler_error.evaluate([position, velocity, clock], buffers)
        for i, J in enumerate(buffers):
            jacobians[i] = J
        return error

    def create_factor(self) -> gtsam.CustomFactor:
        """Create the GTSAM custom factor instance."""
        return gtsam.CustomFactor(
            gtsam.noiseModel.Unit.Create(1),
            [self.position_key, self.velocity_key, self.clock_key],
            self.error_func,
        )


__all__ = ['DopplerFactorGtsam']
