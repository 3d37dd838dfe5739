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

"""Carrier phase wind-up

References:
    J. T. Wu et al., Effects of antenna orientation on GPS carrier phase,
    Manuscripta Geodaetica, 18, 1993
"""

from typing import Tuple

import numpy as np

from ..coordinate.transforms import compute_rotation_matrix_enu, ecef2llh


def satellite_axes(sat_pos, sun_pos) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Body axes (x, y, z) of a satellite in nominal yaw-steering attitude

    z points to the earth center and y is normal to the plane containing
    the satellite, the sun and the earth center.
    """
    sat_pos = np.asarray(sat_pos, dtype=float)
    ez = -sat_pos / np.linalg.norm(sat_pos)
    es = np.asarray(sun_pos, dtype=float) - sat_pos
    ey = np.cross(ez, es)
    ey = ey / np.linalg.norm(ey)
    ex = np.cross(ey, ez)
    return ex, ey, ez


def phase_windup(sat_pos, rec_pos, sun_pos, previous: float = 0.0) -> float:
    """
    Phase wind-up of a satellite-receiver pair

    Parameters:
    -----------
    sat_pos : array_like
        Satellite position (ECEF, m)
    rec_pos : array_like
        Receiver position (ECEF, m), antenna pointing up and north
    sun_pos : array_like
        Sun position (ECEF, m)
    previous : float
        Wind-up of the previous epoch (cycles) used to resolve the integer part

    Returns:
    --------
    float
        Wind-up (cycles), continuous with ``previous``
    """
    sat_pos = np.asarray(sat_pos, dtype=float)
    rec_pos = np.asarray(rec_pos, dtype=float)
    ex_s, ey_s, _ = satellite_axes(sat_pos, sun_pos)

    R = compute_rotation_matrix_enu(ecef2llh(rec_pos))
    ex_r, ey_r = R[1], -R[0]

    ek = rec_pos - sat_pos
    ek = ek / np.linalg.norm(ek)

    ds = ex_s - ek * (ek @ ex_s) - np.cross(ek, ey_s)
    dr = ex_r - ek * (ek @ ex_r) + np.cross(ek, ey_r)
    cosp = np.clip(ds @ dr / (np.linalg.norm(ds) * np.linalg.norm(dr)), -1.0, 1.0)
    phase = np.arccos(cosp) / (2.0 * np.pi)
    if ek @ np.cross(ds, dr) < 0.0:
        phase = -phase
    return float(phase + np.floor(previous - phase + 0.5))
