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

"""Frame conversion between ECEF, geodetic and a local ENU frame"""

import logging
import threading
from enum import Enum
from typing import NamedTuple, Optional

import numpy as np

from ..core.errors import PreconditionError, log_fatal
from .transforms import ecef2enu_dcm, ecef2llh, llh2ecef

logger = logging.getLogger(__name__)


class GeoType(Enum):
    """Coordinate types handled by GeoCoordinate"""
    ECEF = 'ecef'  # Earth-Centered-Earth-Fixed Cartesian (m)
    LLA = 'lla'    # Geodetic latitude, longitude (rad) and height (m)
    ENU = 'enu'    # Local East-North-Up around the origin (m)


class _Origin(NamedTuple):
    ecef: np.ndarray
    llh: np.ndarray
    R_enu_ecef: np.ndarray  # ECEF -> ENU
    R_ecef_enu: np.ndarray  # ENU -> ECEF


class GeoCoordinate:
    """Converts positions and directions between ECEF, LLA and local ENU

    The local ENU frame is anchored at an origin that is set once, usually at
    the first GNSS fix. The origin is published as a single immutable snapshot,
    so ``has_origin``, ``convert``, ``rotate`` and ``rotation_matrix`` may be
    called from any number of threads without locking.

    Examples:
        >>> coordinate = GeoCoordinate()
        >>> coordinate.set_origin(np.array([-2148744.0, 4426641.0, 4044655.0]))
        >>> enu = coordinate.convert(ecef, GeoType.ECEF, GeoType.ENU)
    """

    def __init__(self, origin: Optional[np.ndarray] = None,
                 origin_type: GeoType = GeoType.ECEF):
        """
        Initialize frame converter

        Parameters:
        -----------
        origin : np.ndarray, optional
            Origin of the local frame; the frame has no origin when omitted
        origin_type : GeoType
            Type of ``origin``, ECEF or LLA
        """
        self._lock = threading.Lock()
        self._origin: Optional[_Origin] = None
        if origin is not None:
            self.set_origin(origin, origin_type)

    def set_origin(self, origin: np.ndarray, origin_type: GeoType = GeoType.ECEF) -> None:
        """Set the origin of the local ENU frame

        Parameters:
        -----------
        origin : np.ndarray
            Origin position, ECEF (m) or LLA (rad, rad, m)
        origin_type : GeoType
            Type of ``origin``
        """
        origin = np.asarray(origin, dtype=np.float64).reshape(-1)
        if origin.shape != (3,):
            raise ValueError("Origin must be a 3-vector")

        if origin_type == GeoType.ECEF:
            ecef = origin.copy()
            llh = ecef2llh(ecef)
        elif origin_type == GeoType.LLA:
            llh = origin.copy()
            ecef = llh2ecef(llh)
        else:
            raise ValueError(f"Origin cannot be given as {origin_type.name}")

        R_enu_ecef = ecef2enu_dcm(llh)
        snapshot = _Origin(ecef, llh, R_enu_ecef, R_enu_ecef.T.copy())
        for arr in snapshot:
            arr.flags.writeable = False

        with self._lock:
            if self._origin is not None:
                logger.warning("Resetting local frame origin to %s", ecef)
            self._origin = snapshot
        logger.debug("Local frame origin set to lat=%.8f lon=%.8f h=%.3f",
                     np.degrees(llh[0]), np.degrees(llh[1]), llh[2])

    def has_origin(self) -> bool:
        """Whether the local frame origin has been set"""
        return self._origin is not None

    @property
    def origin_ecef(self) -> Optional[np.ndarray]:
        origin = self._origin
        return origin.ecef.copy() if origin is not None else None

    @property
    def origin_llh(self) -> Optional[np.ndarray]:
        origin = self._origin
        return origin.llh.copy() if origin is not None else None

    def _require_origin(self) -> _Origin:
        origin = self._origin
        if origin is None:
            log_fatal(logger, PreconditionError, "Coordinate zero not set!")
        return origin

    def convert(self, vector: np.ndarray, from_type: GeoType, to_type: GeoType) -> np.ndarray:
        """Convert a position between coordinate types

        Parameters:
        -----------
        vector : np.ndarray
            Position in ``from_type`` coordinates
        from_type, to_type : GeoType
            Source and target coordinate types

        Returns:
        --------
        np.ndarray
            Position in ``to_type`` coordinates

        Raises:
        -------
        PreconditionError
            If ENU is involved and the origin is not set
        """
        vector = np.asarray(vector, dtype=np.float64)
        if from_type == to_type:
            return vector.copy()

        # Go through ECEF
        if from_type == GeoType.ECEF:
            ecef = vector
        elif from_type == GeoType.LLA:
            ecef = llh2ecef(vector)
        else:
            origin = self._require_origin()
            ecef = origin.ecef + origin.R_ecef_enu @ vector

        if to_type == GeoType.ECEF:
            return np.array(ecef, dtype=np.float64)
        if to_type == GeoType.LLA:
            return ecef2llh(ecef)
        origin = self._require_origin()
        return origin.R_enu_ecef @ (ecef - origin.ecef)

    def rotation_matrix(self, from_type: GeoType, to_type: GeoType) -> np.ndarray:
        """Rotation matrix taking directions from ``from_type`` to ``to_type``

        Only ECEF and ENU carry directions; LLA is rejected.
        """
        if GeoType.LLA in (from_type, to_type):
            raise ValueError("LLA coordinates have no rotation matrix")
        if from_type == to_type:
            return np.eye(3)
        origin = self._require_origin()
        if from_type == GeoType.ENU:
            return origin.R_ecef_enu.copy()
        return origin.R_enu_ecef.copy()

    def rotate(self, vector: np.ndarray, from_type: GeoType, to_type: GeoType) -> np.ndarray:
        """Rotate a direction (velocity, lever arm) without translating it"""
        return self.rotation_matrix(from_type, to_type) @ np.asarray(vector, dtype=np.float64)
