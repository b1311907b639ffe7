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

"""GNSS constants used by the Doppler factor"""

import numpy as np

# Physical Constants
CLIGHT = 299792458.0  # speed of light (m/s)

# Earth Parameters (WGS84)
RE_WGS84 = 6378137.0           # earth semimajor axis (m)
FE_WGS84 = 1.0 / 298.257223563 # earth flattening
OMGE = 7.2921151467E-5         # earth angular velocity (rad/s)
E2_WGS84 = FE_WGS84 * (2.0 - FE_WGS84)  # eccentricity squared

# Unit conversions
R2D = 180.0 / np.pi            # radians to degrees
D2R = np.pi / 180.0            # degrees to radians

# GNSS system identifiers, as the first character of a PRN string
SYS_GPS = 'G'
SYS_GLO = 'R'
SYS_GAL = 'E'
SYS_BDS = 'C'
SYS_QZS = 'J'
SYS_SBS = 'S'
SYS_IRN = 'I'

SYSTEMS = (SYS_GPS, SYS_GLO, SYS_GAL, SYS_BDS, SYS_QZS, SYS_SBS, SYS_IRN)

SYSTEM_NAMES = {
    SYS_GPS: 'GPS',
    SYS_GLO: 'GLONASS',
    SYS_GAL: 'Galileo',
    SYS_BDS: 'BeiDou',
    SYS_QZS: 'QZSS',
    SYS_SBS: 'SBAS',
    SYS_IRN: 'IRNSS',
}

# Geometry
MIN_RANGE = 1e-6  # smallest satellite-to-receiver distance accepted (m)

# Residual dimension of a single Doppler observation
DOPPLER_RESIDUAL_DIM = 1


def prn2sys(prn: str) -> str:
    """Return the system character of a PRN string such as ``"G05"``"""
    if not prn or prn[0] not in SYSTEMS:
        raise ValueError(f"Unknown satellite system in PRN: {prn!r}")
    return prn[0]
