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

"""Low precision sun position and earth shadow test

References:
    O. Montenbruck, E. Gill, Satellite Orbits, Springer, 2000, sec. 3.3.2
"""

import numpy as np

from ..core.constants import RE_WGS84
from ..core.time import julian_centuries

_OBLIQUITY = np.deg2rad(23.43929111)
_ARCSEC = np.deg2rad(1.0 / 3600.0)


def sun_position_ecef(gps_seconds: float) -> np.ndarray:
    """Sun position in ECEF (m), accurate to about 0.1 deg"""
    T = julian_centuries(gps_seconds)
    M = np.deg2rad(357.5256 + 35999.049 * T)
    lon = np.deg2rad(282.9400) + M + 6892.0 * _ARCSEC * np.sin(M) + 72.0 * _ARCSEC * np.sin(2 * M)
    r = (149.619 - 2.499 * np.cos(M) - 0.021 * np.cos(2 * M)) * 1e9

    eci = r * np.array([np.cos(lon),
                        np.sin(lon) * np.cos(_OBLIQUITY),
                        np.sin(lon) * np.sin(_OBLIQUITY)])

    days = T * 36525.0
    gmst = np.deg2rad(np.mod(280.46061837 + 360.98564736629 * days, 360.0))
    c, s = np.cos(gmst), np.sin(gmst)
    return np.array([c * eci[0] + s * eci[1], -s * eci[0] + c * eci[1], eci[2]])


def in_earth_shadow(sat_pos, sun_pos) -> bool:
    """Cylindrical earth shadow test"""
    sat_pos = np.asarray(sat_pos, dtype=float)
    sun_unit = np.asarray(sun_pos, dtype=float) / np.linalg.norm(sun_pos)
    along = sat_pos @ sun_unit
    if along >= 0.0:
        return False
    return np.linalg.norm(sat_pos - along * sun_unit) < RE_WGS84
