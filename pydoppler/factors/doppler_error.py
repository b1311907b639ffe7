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

"""Doppler residual block for factor graph optimization

The Doppler observation constrains the receiver velocity along the line of
sight to a satellite:

    doppler = (v_sat - v_rcv) · e + OMGE / c * (v_sat_y x_rcv + y_sat v_rcv_x
              - v_sat_x y_rcv - x_sat v_rcv_y) + df_rcv - df_sat

where e is the unit vector from receiver to satellite, the OMGE term corrects
for the earth rotating during signal travel, df_rcv is the receiver clock
frequency and df_sat the satellite clock drift, all expressed in m/s.

Two state layouts are supported, selected from the parameter block sizes:

- direct ``(3, 3, 1)``: receiver ECEF position, ECEF velocity, clock frequency
- body referenced ``(7, 9, 3, 1)``: body pose and speed/bias in a local ENU
  frame, lever arm from body to antenna, clock frequency

Jacobians hold the line of sight fixed: the receiver position only enters the
prediction through ``e``, so the position partials are zero by construction.
"""

from typing import NamedTuple, Optional, Sequence

import numpy as np
import scipy.linalg

from ..attitude.quaternion import quat2dcm, quat_normalize
from ..attitude.skew import skew
from ..coordinate.geo_coordinate import GeoCoordinate, GeoType
from ..core.buffers import map_jacobian, map_parameter_block
from ..core.constants import CLIGHT, DOPPLER_RESIDUAL_DIM, OMGE
from ..core.data_structures import GnssMeasurement, GnssMeasurementIndex, GnssSatellite
from ..core.errors import ConfigurationError, PreconditionError, log_fatal
from ..core.params import GnssErrorParameter
from ..estimate.parameter_blocks import ParameterBlockGroup, select_parameter_block_group
from ..estimate.pose_local_parameterization import PoseLocalParameterization
from ..geometry.satellite_geometry import line_of_sight, satellite_azel
from ..logger import get_logger
from .error_interface import ErrorInterface

logger = get_logger(__name__)


class ReceiverState(NamedTuple):
    """Receiver state decoded from the parameter blocks"""
    t_WR_ECEF: np.ndarray          # antenna position, ECEF (m)
    v_WR_ECEF: np.ndarray          # antenna velocity, ECEF (m/s)
    clock_frequency: float         # receiver clock frequency (m/s)
    R_WS: Optional[np.ndarray] = None   # body to ENU rotation
    t_SR_S: Optional[np.ndarray] = None  # lever arm, body frame (m)


class DopplerPrediction(NamedTuple):
    """Predicted Doppler and the geometry it was computed from"""
    rho: float                     # satellite to receiver distance (m)
    e: np.ndarray                  # unit line of sight, receiver to satellite
    range_rate: float              # earth-rotation corrected range rate (m/s)
    doppler_estimate: float        # predicted Doppler (m/s)
    azimuth: Optional[float] = None    # rad
    elevation: Optional[float] = None  # rad


def predict_doppler(satellite: GnssSatellite,
                    t_WR_ECEF: np.ndarray,
                    v_WR_ECEF: np.ndarray,
                    clock_frequency: float,
                    compute_azel: bool = False) -> DopplerPrediction:
    """
    Predict the Doppler observation of a satellite for a receiver state.

    Parameters
    ----------
    satellite : GnssSatellite
        Satellite position, velocity and clock drift
    t_WR_ECEF : np.ndarray
        Receiver ECEF position (m)
    v_WR_ECEF : np.ndarray
        Receiver ECEF velocity (m/s)
    clock_frequency : float
        Receiver clock frequency (m/s)
    compute_azel : bool
        Also compute satellite azimuth and elevation at the receiver

    Returns
    -------
    DopplerPrediction

    Raises
    ------
    ValueError
        If receiver and satellite coincide
    """
    p_sat = satellite.sat_position
    v_sat = satellite.sat_velocity

    e, rho = line_of_sight(p_sat, t_WR_ECEF)
    vs = v_sat - v_WR_ECEF
    range_rate = float(vs @ e) + OMGE / CLIGHT * (
        v_sat[1] * t_WR_ECEF[0] + p_sat[1] * v_WR_ECEF[0] -
        v_sat[0] * t_WR_ECEF[1] - p_sat[0] * v_WR_ECEF[1])
    doppler_estimate = range_rate + clock_frequency - satellite.sat_frequency

    azimuth = elevation = None
    if compute_azel:
        azimuth, elevation = satellite_azel(p_sat, t_WR_ECEF)

    return DopplerPrediction(rho, e, float(range_rate), float(doppler_estimate),
                             azimuth, elevation)


class DopplerError(ErrorInterface):
    """
    Doppler residual block.

    The parameter block layout is fixed at construction from
    ``parameter_block_sizes``; so is the measurement weighting. For the body
    referenced layout the body angular velocity must be supplied, either to
    the constructor or once through ``set_angular_velocity`` before the first
    evaluation, together with a ``GeoCoordinate`` that has an origin.

    Examples
    --------
    >>> factor = DopplerError(measurement, index, GnssErrorParameter(), (3, 3, 1))
    >>> jac = [np.zeros((1, 3)), np.zeros((1, 3)), np.zeros((1, 1))]
    >>> residual = factor.evaluate([position, velocity, [clock]], jac)
    """

    def __init__(self,
                 measurement: GnssMeasurement,
                 index: GnssMeasurementIndex,
                 error_parameter: GnssErrorParameter,
                 parameter_block_sizes: Sequence[int],
                 angular_velocity: Optional[np.ndarray] = None,
                 coordinate: Optional[GeoCoordinate] = None,
                 local_parameterization=PoseLocalParameterization):
        """
        Initialize the Doppler residual block

        Parameters
        ----------
        measurement : GnssMeasurement
            Epoch holding the satellite state and observation
        index : GnssMeasurementIndex
            Which satellite/signal of the epoch this factor uses
        error_parameter : GnssErrorParameter
            Doppler error factor and per-system error ratios
        parameter_block_sizes : sequence of int
            Sizes of the parameter blocks, ``(3, 3, 1)`` or ``(7, 9, 3, 1)``
        angular_velocity : np.ndarray, optional
            Body angular velocity (rad/s), body referenced layout only
        coordinate : GeoCoordinate, optional
            ENU/ECEF converter, body referenced layout only
        local_parameterization : optional
            Provides ``lift_jacobian`` for the pose block

        Raises
        ------
        ConfigurationError
            If the block sizes match no supported layout, or the error
            parameters have no ratio for the satellite system
        """
        self._layout = select_parameter_block_group(parameter_block_sizes)
        self._timestamp = measurement.timestamp
        self._satellite = measurement.get_sat(index)
        self._observation = measurement.get_obs(index)
        self._coordinate = coordinate
        self._local_parameterization = local_parameterization
        self._angular_velocity: Optional[np.ndarray] = None
        if angular_velocity is not None:
            self.set_angular_velocity(angular_velocity)

        self._set_information(error_parameter)

        logger.debug("%s for %s/%s at t=%.3f: group %s, sigma %.4f m/s",
                     self.type_info(), self._satellite.prn, self._observation.code,
                     self._timestamp, self._layout.group.name,
                     float(np.sqrt(self._covariance[0, 0])))

    def _set_information(self, error_parameter: GnssErrorParameter) -> None:
        """Build covariance, information and square-root information once"""
        self._error_parameter = error_parameter
        system = self._satellite.system
        if system not in error_parameter.system_error_ratio:
            log_fatal(logger, ConfigurationError,
                      f"No system error ratio for system {system!r}")

        factor = error_parameter.doppler_error_factor
        ratio = error_parameter.system_error_ratio[system]
        covariance = np.full((DOPPLER_RESIDUAL_DIM, DOPPLER_RESIDUAL_DIM), factor**2)
        covariance *= ratio**2

        information = scipy.linalg.inv(covariance)
        # Cholesky factor L of the information; weighting uses L^T
        square_root_information = scipy.linalg.cholesky(information, lower=False)
        square_root_information_inverse = scipy.linalg.solve_triangular(
            square_root_information, np.eye(DOPPLER_RESIDUAL_DIM), lower=False)

        for arr in (covariance, information, square_root_information,
                    square_root_information_inverse):
            arr.flags.writeable = False
        self._covariance = covariance
        self._information = information
        self._square_root_information = square_root_information
        self._square_root_information_inverse = square_root_information_inverse

    def set_angular_velocity(self, angular_velocity: np.ndarray) -> None:
        """
        Set the body angular velocity used for the lever arm velocity.

        May be called once, before the factor is handed to the solver.

        Raises
        ------
        PreconditionError
            If the angular velocity was already set
        """
        if self._angular_velocity is not None:
            log_fatal(logger, PreconditionError,
                      "Angular velocity of DopplerError can only be set once!")
        omega = np.array(angular_velocity, dtype=np.float64).reshape(-1)
        if omega.shape != (3,):
            raise ValueError("angular_velocity must be a 3-vector")
        if not self._layout.is_estimate_body:
            logger.debug("Angular velocity is not used by the direct layout")
        omega.flags.writeable = False
        self._angular_velocity = omega

    @property
    def residual_dim(self) -> int:
        return DOPPLER_RESIDUAL_DIM

    @property
    def parameter_block_sizes(self) -> tuple[int, ...]:
        return self._layout.sizes

    @property
    def parameter_block_minimal_sizes(self) -> tuple[int, ...]:
        return self._layout.minimal_sizes

    @property
    def group(self) -> ParameterBlockGroup:
        return self._layout.group

    @property
    def satellite(self) -> GnssSatellite:
        return self._satellite

    @property
    def observation(self):
        return self._observation

    @property
    def timestamp(self) -> float:
        return self._timestamp

    @property
    def angular_velocity(self) -> Optional[np.ndarray]:
        return self._angular_velocity

    @property
    def covariance(self) -> np.ndarray:
        return self._covariance

    @property
    def information(self) -> np.ndarray:
        return self._information

    @property
    def square_root_information(self) -> np.ndarray:
        return self._square_root_information

    @property
    def square_root_information_inverse(self) -> np.ndarray:
        return self._square_root_information_inverse

    def decode_state(self, parameters: Sequence) -> ReceiverState:
        """
        Decode the parameter blocks into the antenna state in ECEF.

        Raises
        ------
        ValueError
            If the number or size of the blocks is wrong
        PreconditionError
            If the body referenced layout lacks its coordinate origin or
            angular velocity
        """
        sizes = self._layout.sizes
        if len(parameters) != len(sizes):
            raise ValueError(
                f"Expected {len(sizes)} parameter blocks, got {len(parameters)}")
        blocks = [map_parameter_block(p, size) for p, size in zip(parameters, sizes)]

        if not self._layout.is_estimate_body:
            return ReceiverState(np.array(blocks[0]), np.array(blocks[1]), float(blocks[2][0]))

        # Pose and velocity in ENU
        t_WS_W = np.array(blocks[0][0:3])
        q_WS = quat_normalize(blocks[0][3:7])
        v_WS = np.array(blocks[1][0:3])
        t_SR_S = np.array(blocks[2])
        clock_frequency = float(blocks[3][0])

        coordinate = self._coordinate
        if coordinate is None:
            log_fatal(logger, PreconditionError, "Coordinate not set!")
        if not coordinate.has_origin():
            log_fatal(logger, PreconditionError, "Coordinate zero not set!")
        if self._angular_velocity is None:
            log_fatal(logger, PreconditionError, "Angular velocity not set!")

        R_WS = quat2dcm(q_WS)
        lever_arm_W = R_WS @ t_SR_S
        t_WR_W = t_WS_W + lever_arm_W
        v_WR_W = v_WS + skew(self._angular_velocity) @ lever_arm_W

        t_WR_ECEF = coordinate.convert(t_WR_W, GeoType.ENU, GeoType.ECEF)
        v_WR_ECEF = coordinate.rotate(v_WR_W, GeoType.ENU, GeoType.ECEF)
        return ReceiverState(t_WR_ECEF, v_WR_ECEF, clock_frequency, R_WS, t_SR_S)

    def predict(self, parameters: Sequence) -> DopplerPrediction:
        """Predicted Doppler with satellite azimuth and elevation"""
        state = self.decode_state(parameters)
        return predict_doppler(self._satellite, state.t_WR_ECEF, state.v_WR_ECEF,
                               state.clock_frequency, compute_azel=True)

    def evaluate_with_minimal_jacobians(
            self,
            parameters: Sequence,
            jacobians: Optional[Sequence[Optional[np.ndarray]]] = None,
            jacobians_minimal: Optional[Sequence[Optional[np.ndarray]]] = None) -> np.ndarray:
        """
        Evaluate the weighted Doppler residual and its Jacobians.

        Parameters
        ----------
        parameters : sequence
            One buffer per parameter block
        jacobians : sequence, optional
            Output slots for the Jacobians over the raw blocks
        jacobians_minimal : sequence, optional
            Output slots for the Jacobians over the minimal blocks; a slot is
            only filled when the matching raw slot is requested too

        Returns
        -------
        np.ndarray, shape (1,)
            Weighted residual
        """
        state = self.decode_state(parameters)
        t_WR_ECEF = state.t_WR_ECEF
        prediction = predict_doppler(self._satellite, t_WR_ECEF, state.v_WR_ECEF,
                                     state.clock_frequency)

        error = np.array([self._observation.doppler - prediction.doppler_estimate])
        weighted_error = self._square_root_information @ error

        logger.trace("%s %s: predicted %.4f m/s, observed %.4f m/s, residual %.4f",
                     self.type_info(), self._satellite.prn, prediction.doppler_estimate,
                     self._observation.doppler, weighted_error[0])

        if jacobians is not None:
            self._compute_jacobians(parameters, state, prediction, jacobians,
                                    jacobians_minimal)

        return weighted_error

    def _compute_jacobians(self, parameters, state: ReceiverState,
                           prediction: DopplerPrediction,
                           jacobians, jacobians_minimal) -> None:
        num_blocks = self._layout.num_blocks
        if len(jacobians) != num_blocks:
            raise ValueError(f"Expected {num_blocks} Jacobian slots, got {len(jacobians)}")
        if jacobians_minimal is not None and len(jacobians_minimal) != num_blocks:
            raise ValueError(
                f"Expected {num_blocks} minimal Jacobian slots, got {len(jacobians_minimal)}")

        W = self._square_root_information

        # Receiver position in ECEF: line of sight held fixed
        J_t_ECEF = np.zeros((1, 3))

        # Receiver velocity in ECEF
        J_v_ECEF = -((state.t_WR_ECEF - self._satellite.sat_position) / prediction.rho).reshape(1, 3)

        # Clock frequency
        J_freq = -np.eye(1)

        if self._layout.group == ParameterBlockGroup.DIRECT:
            blocks = [W @ J_t_ECEF, W @ J_v_ECEF, W @ J_freq]
            for i, J in enumerate(blocks):
                self._write_jacobian(i, J, J, jacobians, jacobians_minimal)
            return

        # Body velocity in ENU
        R_ECEF_ENU = self._coordinate.rotation_matrix(GeoType.ENU, GeoType.ECEF)
        J_v_W = J_v_ECEF @ R_ECEF_ENU

        omega_skew = skew(self._angular_velocity)

        # Body rotation in ENU
        J_q_WS = J_v_W @ omega_skew @ -skew(state.R_WS @ state.t_SR_S)

        # Body pose in ENU: [position | rotation]
        J_T_WS = np.zeros((1, 6))
        J_T_WS[:, 3:6] = J_q_WS

        # Speed and bias
        J_speed_and_bias = np.zeros((1, 9))
        J_speed_and_bias[:, 0:3] = J_v_W

        # Lever arm
        J_t_SR_S = J_v_W @ omega_skew @ state.R_WS

        if jacobians[0] is not None:
            J0_minimal = W @ J_T_WS
            J_lift = self._local_parameterization.lift_jacobian(parameters[0])
            self._write_jacobian(0, J0_minimal @ J_lift, J0_minimal,
                                 jacobians, jacobians_minimal)
        for i, J in ((1, W @ J_speed_and_bias), (2, W @ J_t_SR_S), (3, W @ J_freq)):
            self._write_jacobian(i, J, J, jacobians, jacobians_minimal)

    def _write_jacobian(self, i: int, J_raw: np.ndarray, J_minimal: np.ndarray,
                        jacobians, jacobians_minimal) -> None:
        if jacobians[i] is None:
            return
        out = map_jacobian(jacobians[i], DOPPLER_RESIDUAL_DIM, self._layout.sizes[i])
        out[:] = J_raw
        if jacobians_minimal is not None and jacobians_minimal[i] is not None:
            out_minimal = map_jacobian(jacobians_minimal[i], DOPPLER_RESIDUAL_DIM,
                                       self._layout.minimal_sizes[i])
            out_minimal[:] = J_minimal
