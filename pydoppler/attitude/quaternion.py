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
Quaternion algebra for pose states.

Quaternions are stored scalar last, ``[x, y, z, w]``, which is the order of the
rotation part of a 7-parameter pose block ``[t_x, t_y, t_z, q_x, q_y, q_z, q_w]``.
Products follow the Hamilton convention, so ``quat2dcm(quat_mul(p, q))`` equals
``quat2dcm(p) @ quat2dcm(q)``.
"""

import numpy as np
from numba import njit


def quat_normalize(q) -> np.ndarray:
    """Return ``q`` scaled to unit norm; raises ValueError for a zero quaternion"""
    q = np.asarray(q, dtype=np.float64)
    norm = np.linalg.norm(q)
    if norm < 1e-12:
        raise ValueError("Quaternion has zero norm")
    return q / norm


@njit(cache=True, fastmath=True)
def quat2dcm(q):
    """
    Convert quaternion to the rotation matrix it represents.

    Parameters
    ----------
    q : array_like, shape (4,)
        Unit quaternion [x, y, z, w]

    Returns
    -------
    C : ndarray, shape (3, 3)
        Rotation matrix
    """
    x = q[0]
    y = q[1]
    z = q[2]
    w = q[3]
    C = np.array([[w*w + x*x - y*y - z*z,         2*(x*y - w*z),          2*(w*y + x*z)],
                  [        2*(w*z + x*y), w*w - x*x + y*y - z*z,          2*(y*z - w*x)],
                  [        2*(x*z - w*y),         2*(y*z + w*x),  w*w - x*x - y*y + z*z]],
                 dtype=np.double)
    return C


@njit(cache=True, fastmath=True)
def quat_qplus(q):
    """
    Left multiplication matrix: ``quat_qplus(q) @ p`` is the product q * p.

    Parameters
    ----------
    q : array_like, shape (4,)
        Quaternion [x, y, z, w]

    Returns
    -------
    Q : ndarray, shape (4, 4)
    """
    x = q[0]
    y = q[1]
    z = q[2]
    w = q[3]
    Q = np.array([[  w,  -z,   y,   x],
                  [  z,   w,  -x,   y],
                  [ -y,   x,   w,   z],
                  [ -x,  -y,  -z,   w]],
                 dtype=np.double)
    return Q


@njit(cache=True, fastmath=True)
def quat_oplus(q):
    """
    Right multiplication matrix: ``quat_oplus(q) @ p`` is the product p * q.

    Parameters
    ----------
    q : array_like, shape (4,)
        Quaternion [x, y, z, w]

    Returns
    -------
    Q : ndarray, shape (4, 4)
    """
    x = q[0]
    y = q[1]
    z = q[2]
    w = q[3]
    Q = np.array([[  w,   z,  -y,   x],
                  [ -z,   w,   x,   y],
                  [  y,  -x,   w,   z],
                  [ -x,  -y,  -z,   w]],
                 dtype=np.double)
    return Q


@njit(cache=True, fastmath=True)
def quat_mul(p, q):
    """Hamilton product p * q of two [x, y, z, w] quaternions"""
    px, py, pz, pw = p[0], p[1], p[2], p[3]
    qx, qy, qz, qw = q[0], q[1], q[2], q[3]
    r = np.array([pw*qx + px*qw + py*qz - pz*qy,
                  pw*qy + py*qw + pz*qx - px*qz,
                  pw*qz + pz*qw + px*qy - py*qx,
                  pw*qw - px*qx - py*qy - pz*qz],
                 dtype=np.double)
    return r


@njit(cache=True, fastmath=True)
def quat_inverse(q):
    """Inverse of a unit quaternion (its conjugate)"""
    return np.array([-q[0], -q[1], -q[2], q[3]], dtype=np.double)


@njit(cache=True)
def delta_quat(dalpha):
    """
    Quaternion of a small rotation given as a rotation vector.

    Parameters
    ----------
    dalpha : array_like, shape (3,)
        Rotation vector (rad)

    Returns
    -------
    dq : ndarray, shape (4,)
        Unit quaternion [x, y, z, w]
    """
    half_norm = 0.5 * np.sqrt(dalpha[0]**2 + dalpha[1]**2 + dalpha[2]**2)
    if half_norm < 1e-8:
        sinc = 1.0 - half_norm * half_norm / 6.0
    else:
        sinc = np.sin(half_norm) / half_norm
    dq = np.array([0.5 * sinc * dalpha[0],
                   0.5 * sinc * dalpha[1],
                   0.5 * sinc * dalpha[2],
                   np.cos(half_norm)],
                  dtype=np.double)
    return dq


def quat_log(q) -> np.ndarray:
    """
    Rotation vector of a unit quaternion, inverse of ``delta_quat``.

    The result is taken on the shortest path (angle within [0, pi]).
    """
    q = quat_normalize(q)
    if q[3] < 0.0:
        q = -q
    vec = q[:3]
    vec_norm = np.linalg.norm(vec)
    if vec_norm < 1e-12:
        return 2.0 * vec
    angle = 2.0 * np.arctan2(vec_norm, q[3])
    return angle * vec / vec_norm
