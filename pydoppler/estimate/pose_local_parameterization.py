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
Local parameterization of 7-parameter poses.

A pose block ``[t_x, t_y, t_z, q_x, q_y, q_z, q_w]`` has six degrees of
freedom. Perturbations live in the tangent space ``[dt(3), dalpha(3)]``; the
rotation perturbation is applied on the left:

    t' = t + dt
    q' = delta_quat(dalpha) * q

``plus_jacobian`` maps tangent perturbations to the raw buffer at
``delta = 0`` (7x6) and ``lift_jacobian`` is its pseudo inverse (6x7), used to
turn a minimal Jacobian into one over the raw buffer.
"""

import numpy as np

from ..attitude.quaternion import delta_quat, quat_inverse, quat_log, quat_mul, quat_normalize, quat_oplus
from ..core.buffers import map_parameter_block

POSE_GLOBAL_SIZE = 7
POSE_LOCAL_SIZE = 6


class PoseLocalParameterization:
    """Pose parameterization with left-multiplied rotation perturbations"""

    global_size = POSE_GLOBAL_SIZE
    local_size = POSE_LOCAL_SIZE

    @staticmethod
    def plus(x, delta) -> np.ndarray:
        """
        Apply a tangent perturbation to a pose.

        Parameters
        ----------
        x : array_like, shape (7,)
            Pose [t, q]
        delta : array_like, shape (6,)
            Perturbation [dt, dalpha]

        Returns
        -------
        np.ndarray, shape (7,)
            Perturbed pose, quaternion renormalised
        """
        x = map_parameter_block(x, POSE_GLOBAL_SIZE)
        delta = map_parameter_block(delta, POSE_LOCAL_SIZE)

        q = quat_normalize(x[3:7])
        dq = delta_quat(np.array(delta[3:6]))
        x_plus = np.empty(POSE_GLOBAL_SIZE)
        x_plus[0:3] = x[0:3] + delta[0:3]
        x_plus[3:7] = quat_normalize(quat_mul(dq, q))
        return x_plus

    @staticmethod
    def minus(x, y) -> np.ndarray:
        """Tangent vector ``delta`` such that ``plus(x, delta) == y``"""
        x = map_parameter_block(x, POSE_GLOBAL_SIZE)
        y = map_parameter_block(y, POSE_GLOBAL_SIZE)

        delta = np.empty(POSE_LOCAL_SIZE)
        delta[0:3] = y[0:3] - x[0:3]
        dq = quat_mul(quat_normalize(y[3:7]), quat_inverse(quat_normalize(x[3:7])))
        delta[3:6] = quat_log(dq)
        return delta

    @staticmethod
    def plus_jacobian(x) -> np.ndarray:
        """
        Derivative of ``plus(x, delta)`` with respect to ``delta`` at zero.

        Returns
        -------
        np.ndarray, shape (7, 6)
        """
        x = map_parameter_block(x, POSE_GLOBAL_SIZE)
        q = np.array(x[3:7])

        S = np.zeros((4, 3))
        S[0:3, 0:3] = 0.5 * np.eye(3)

        J = np.zeros((POSE_GLOBAL_SIZE, POSE_LOCAL_SIZE))
        J[0:3, 0:3] = np.eye(3)
        J[3:7, 3:6] = quat_oplus(q) @ S
        return J

    @staticmethod
    def lift_jacobian(x) -> np.ndarray:
        """
        Pseudo inverse of ``plus_jacobian``.

        Right-multiplying a minimal Jacobian (over ``[dt, dalpha]``) by this
        matrix gives the Jacobian over the raw 7-parameter buffer. It depends
        on the current rotation, so it has to be recomputed for every pose.

        Returns
        -------
        np.ndarray, shape (6, 7)
        """
        x = map_parameter_block(x, POSE_GLOBAL_SIZE)
        q_inv = quat_inverse(np.array(x[3:7]))

        Jq_pinv = np.zeros((3, 4))
        Jq_pinv[0:3, 0:3] = 2.0 * np.eye(3)

        J_lift = np.zeros((POSE_LOCAL_SIZE, POSE_GLOBAL_SIZE))
        J_lift[0:3, 0:3] = np.eye(3)
        J_lift[3:6, 3:7] = Jq_pinv @ quat_oplus(q_inv)
        return J_lift
