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

"""WGS84 coordinate transformations"""

import numpy as np

from ..core.constants import E2_WGS84, RE_WGS84


def ecef2llh(xyz: np.ndarray) -> np.ndarray:
    """Convert ECEF coordinates to geodetic coordinates

    Parameters
    ----------
    xyz : np.ndarray
        ECEF coordinates [x, y, z] in meters

    Returns
    -------
    np.ndarray
        Geodetic coordinates [lat, lon, height] where:
        - lat: latitude in radians (-π/2 to π/2)
        - lon: longitude in radians (-π to π)
        - height: height above WGS84 ellipsoid in meters

    Notes
    -----
    Iterates on latitude with the WGS84 ellipsoid; converges to sub-millimetre
    height within a handful of iterations. Points on the polar axis are handled
    without dividing by ``cos(lat)``.
    """
    x, y, z = xyz[0], xyz[1], xyz[2]
    r2 = x**2 + y**2

    v = RE_WGS84
    zk = 0.0
    zz = z
    while abs(zz - zk) >= 1e-4:
        zk = zz
        denom = np.sqrt(r2 + zz**2)
        sinp = zz / denom if denom > 0.0 else 0.0
        v = RE_WGS84 / np.sqrt(1.0 - E2_WGS84 * sinp**2)
        zz = z + v * E2_WGS84 * sinp

    if r2 > 1e-12:
        lat = np.arctan(zz / np.sqrt(r2))
        lon = np.arctan2(y, x)
    else:
        lat = np.pi / 2.0 if z > 0.0 else -np.pi / 2.0
        lon = 0.0
    h = np.sqrt(r2 + zz**2) - v

    return np.array([lat, lon, h])


def llh2ecef(llh: np.ndarray) -> np.ndarray:
    """Convert geodetic coordinates to ECEF coordinates

    Parameters
    ----------
    llh : np.ndarray
        Geodetic coordinates [lat, lon, height] (rad, rad, m)

    Returns
    -------
    np.ndarray
        ECEF coordinates [x, y, z] in meters
    """
    lat, lon, h = llh[0], llh[1], llh[2]

    sin_lat = np.sin(lat)
    cos_lat = np.cos(lat)
    sin_lon = np.sin(lon)
    cos_lon = np.cos(lon)

    N = RE_WGS84 / np.sqrt(1.0 - E2_WGS84 * sin_lat**2)

    x = (N + h) * cos_lat * cos_lon
    y = (N + h) * cos_lat * sin_lon
    z = (N * (1.0 - E2_WGS84) + h) * sin_lat

    return np.array([x, y, z])


def ecef2enu_dcm(llh: np.ndarray) -> np.ndarray:
    """
    Earth-Centered-Earth-Fixed to East-North-Up direction cosine matrix

    Parameters:
    -----------
    llh : np.ndarray
        Geodetic coordinates of the local origin [lat, lon, height] (rad, rad, m)

    Returns:
    --------
    C_e_n : np.ndarray
        ECEF->ENU direction cosine matrix (3x3)
    """
    sin_lat = np.sin(llh[0])
    cos_lat = np.cos(llh[0])
    sin_lon = np.sin(llh[1])
    cos_lon = np.cos(llh[1])

    C_e_n = np.array([
        [-sin_lon, cos_lon, 0.0],
        [-sin_lat * cos_lon, -sin_lat * sin_lon, cos_lat],
        [cos_lat * cos_lon, cos_lat * sin_lon, sin_lat]
    ], dtype=np.float64)

    return C_e_n


def enu2ecef_dcm(llh: np.ndarray) -> np.ndarray:
    """East-North-Up to Earth-Centered-Earth-Fixed direction cosine matrix"""
    return ecef2enu_dcm(llh).T


def ecef2enu(xyz: np.ndarray, org_llh: np.ndarray) -> np.ndarray:
    """Convert ECEF position to local ENU coordinates around ``org_llh``

    Parameters
    ----------
    xyz : np.ndarray
        ECEF coordinates [x, y, z] in meters
    org_llh : np.ndarray
        Origin geodetic coordinates [lat, lon, height] (rad, rad, m)

    Returns
    -------
    np.ndarray
        Local ENU coordinates [e, n, u] in meters
    """
    return ecef2enu_dcm(org_llh) @ (np.asarray(xyz, dtype=np.float64) - llh2ecef(org_llh))


def enu2ecef(enu: np.ndarray, org_llh: np.ndarray) -> np.ndarray:
    """Convert local ENU coordinates around ``org_llh`` to ECEF position

    This is the inverse transformation of ecef2enu().
    """
    return llh2ecef(org_llh) + enu2ecef_dcm(org_llh) @ np.asarray(enu, dtype=np.float64)
