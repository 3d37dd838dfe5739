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

"""Coordinate transformation utilities"""

import numpy as np

from ..core.constants import FE_WGS84, RE_WGS84

_E2 = FE_WGS84 * (2.0 - FE_WGS84)


def ecef2llh(xyz: np.ndarray) -> np.ndarray:
    """Convert ECEF coordinates to geodetic coordinates

    Parameters
    ----------
    xyz : np.ndarray
        ECEF coordinates [x, y, z] in meters

    Returns
    -------
    np.ndarray
        Geodetic coordinates [lat, lon, height], angles in radians,
        height above the WGS84 ellipsoid in meters
    """
    x, y, z = float(xyz[0]), float(xyz[1]), float(xyz[2])
    p = np.hypot(x, y)
    if p < 1e-9:
        # Pole: latitude follows the sign of z
        lat = np.copysign(np.pi / 2.0, z)
        return np.array([lat, 0.0, abs(z) - RE_WGS84 * np.sqrt(1.0 - _E2)])

    lon = np.arctan2(y, x)
    lat = np.arctan2(z, p * (1.0 - _E2))
    h = 0.0
    for _ in range(10):
        n = RE_WGS84 / np.sqrt(1.0 - _E2 * np.sin(lat) ** 2)
        h_new = p / np.cos(lat) - n
        lat_new = np.arctan2(z, p * (1.0 - _E2 * n / (n + h_new)))
        converged = abs(lat_new - lat) < 1e-12 and abs(h_new - h) < 1e-6
        lat, h = lat_new, h_new
        if converged:
            break

    return np.array([lat, lon, h])


def llh2ecef(llh: np.ndarray) -> np.ndarray:
    """Convert geodetic coordinates [lat, lon, height] (radians, meters) to ECEF"""
    lat, lon, h = llh[0], llh[1], llh[2]
    n = RE_WGS84 / np.sqrt(1.0 - _E2 * np.sin(lat) ** 2)
    return np.array([
        (n + h) * np.cos(lat) * np.cos(lon),
        (n + h) * np.cos(lat) * np.sin(lon),
        (n * (1.0 - _E2) + h) * np.sin(lat),
    ])


def compute_rotation_matrix_enu(llh: np.ndarray) -> np.ndarray:
    """Rotation matrix from ECEF vectors to local East-North-Up

    Parameters
    ----------
    llh : np.ndarray
        Geodetic position of the local origin [lat, lon, height]

    Returns
    -------
    np.ndarray
        3x3 matrix R with enu = R @ ecef_vector
    """
    sin_lat, cos_lat = np.sin(llh[0]), np.cos(llh[0])
    sin_lon, cos_lon = np.sin(llh[1]), np.cos(llh[1])
    return np.array([
        [-sin_lon, cos_lon, 0.0],
        [-sin_lat * cos_lon, -sin_lat * sin_lon, cos_lat],
        [cos_lat * cos_lon, cos_lat * sin_lon, sin_lat],
    ])


def ecef2enu(xyz: np.ndarray, org_llh: np.ndarray) -> np.ndarray:
    """ECEF position to ENU offset relative to a geodetic origin"""
    org_xyz = llh2ecef(org_llh)
    return compute_rotation_matrix_enu(org_llh) @ (np.asarray(xyz) - org_xyz)


def covecef2enu(llh: np.ndarray, P_ecef: np.ndarray) -> np.ndarray:
    """Rotate a 3x3 ECEF position covariance into the local ENU frame"""
    R = compute_rotation_matrix_enu(llh)
    return R @ P_ecef @ R.T
