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
Satellite-to-receiver geometry.

Distance, line of sight, elevation and azimuth of a satellite as seen from a
receiver, all from ECEF positions. Elevation and azimuth are expressed in the
local East-North-Up frame at the receiver.
"""

import numpy as np

from ..coordinate.transforms import ecef2enu_dcm, ecef2llh
from ..core.constants import MIN_RANGE, RE_WGS84


def satellite_to_receiver_distance(sat_pos: np.ndarray, rcv_pos: np.ndarray) -> float:
    """Euclidean distance between satellite and receiver (m)"""
    return float(np.linalg.norm(np.asarray(sat_pos) - np.asarray(rcv_pos)))


def line_of_sight(sat_pos: np.ndarray, rcv_pos: np.ndarray) -> tuple[np.ndarray, float]:
    """
    Unit vector from receiver to satellite and the distance between them.

    Parameters
    ----------
    sat_pos : np.ndarray
        Satellite ECEF position (m)
    rcv_pos : np.ndarray
        Receiver ECEF position (m)

    Returns
    -------
    e : np.ndarray
        Unit line-of-sight vector, pointing at the satellite
    rho : float
        Geometric distance (m)

    Raises
    ------
    ValueError
        If satellite and receiver coincide
    """
    diff = np.asarray(sat_pos, dtype=np.float64) - np.asarray(rcv_pos, dtype=np.float64)
    rho = float(np.linalg.norm(diff))
    if rho < MIN_RANGE:
        raise ValueError("Satellite-receiver geometry is degenerate (near zero range).")
    return diff / rho, rho


def satellite_azel(sat_pos: np.ndarray, rcv_pos: np.ndarray) -> tuple[float, float]:
    """
    Azimuth and elevation of a satellite at the receiver.

    Parameters
    ----------
    sat_pos : np.ndarray
        Satellite ECEF position (m)
    rcv_pos : np.ndarray
        Receiver ECEF position (m)

    Returns
    -------
    azimuth : float
        Azimuth in radians, clockwise from north, range [0, 2π)
    elevation : float
        Elevation in radians, range [-π/2, π/2]

    Notes
    -----
    A receiver deep below the ellipsoid (for example at the ECEF origin before
    the first fix) has no meaningful local horizon; the satellite is then
    reported at zenith, which is the usual convention for an unknown position.
    """
    e, _ = line_of_sight(sat_pos, rcv_pos)
    llh = ecef2llh(np.asarray(rcv_pos, dtype=np.float64))
    if llh[2] <= -RE_WGS84:
        return 0.0, np.pi / 2.0

    e_enu = ecef2enu_dcm(llh) @ e
    elevation = float(np.arcsin(np.clip(e_enu[2], -1.0, 1.0)))
    azimuth = float(np.arctan2(e_enu[0], e_enu[1]))
    if azimuth < 0.0:
        azimuth += 2.0 * np.pi
    return azimuth, elevation


def satellite_elevation(sat_pos: np.ndarray, rcv_pos: np.ndarray) -> float:
    """Elevation of the satellite at the receiver (rad)"""
    return satellite_azel(sat_pos, rcv_pos)[1]


def satellite_azimuth(sat_pos: np.ndarray, rcv_pos: np.ndarray) -> float:
    """Azimuth of the satellite at the receiver (rad)"""
    return satellite_azel(sat_pos, rcv_pos)[0]
