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

"""Receiver-satellite geometry"""

from typing import Tuple

import numpy as np
from numpy.linalg import norm

from ..core.constants import CLIGHT, OMGE


def sagnac_correction(sat_pos, rec_pos):
    """Sagnac effect correction (m)"""
    return (OMGE / CLIGHT) * (sat_pos[0] * rec_pos[1] - sat_pos[1] * rec_pos[0])


def geodist(sat_pos, rec_pos) -> Tuple[float, np.ndarray]:
    """Geometric range including the Sagnac term and receiver-to-satellite unit vector"""
    diff = np.asarray(sat_pos, dtype=float) - np.asarray(rec_pos, dtype=float)
    r = norm(diff)
    if r <= 0.0:
        return 0.0, np.zeros(3)
    return r + sagnac_correction(sat_pos, rec_pos), diff / r


def satazel(llh, e) -> Tuple[float, float]:
    """Satellite azimuth/elevation (rad) from receiver geodetic position and line-of-sight vector"""
    lat, lon = llh[0], llh[1]
    R = np.array([
        [-np.sin(lon), np.cos(lon), 0.0],
        [-np.sin(lat) * np.cos(lon), -np.sin(lat) * np.sin(lon), np.cos(lat)],
        [np.cos(lat) * np.cos(lon), np.cos(lat) * np.sin(lon), np.sin(lat)]
    ])
    enu = R @ e
    az = np.arctan2(enu[0], enu[1])
    if az < 0:
        az += 2 * np.pi
    el = np.arcsin(np.clip(enu[2], -1.0, 1.0))
    return az, el


def rotate_earth(sat_pos, flight_time: float) -> np.ndarray:
    """Rotate a satellite ECEF position by the earth rotation during signal flight"""
    theta = OMGE * flight_time
    c, s = np.cos(theta), np.sin(theta)
    x, y, z = sat_pos[0], sat_pos[1], sat_pos[2]
    return np.array([c * x + s * y, -s * x + c * y, z])


def dops(los: np.ndarray, R_enu: np.ndarray = None):
    """
    Dilution of precision from receiver-to-satellite unit vectors

    Parameters:
    -----------
    los : np.ndarray
        n x 3 matrix of unit vectors
    R_enu : np.ndarray, optional
        ECEF to ENU rotation for horizontal/vertical DOP

    Returns:
    --------
    tuple : (gdop, pdop, hdop, vdop, tdop), all inf if geometry is singular
    """
    los = np.atleast_2d(los)
    if los.shape[0] < 4:
        return (np.inf,) * 5
    G = np.hstack([-los, np.ones((los.shape[0], 1))])
    try:
        Q = np.linalg.inv(G.T @ G)
    except np.linalg.LinAlgError:
        return (np.inf,) * 5
    diag = np.diag(Q)
    gdop = np.sqrt(np.trace(Q))
    pdop = np.sqrt(diag[:3].sum())
    tdop = np.sqrt(diag[3])
    if R_enu is None:
        hdop = vdop = np.nan
    else:
        Q_enu = R_enu @ Q[:3, :3] @ R_enu.T
        hdop = np.sqrt(Q_enu[0, 0] + Q_enu[1, 1])
        vdop = np.sqrt(Q_enu[2, 2])
    return gdop, pdop, hdop, vdop, tdop
