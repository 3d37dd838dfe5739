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

"""Closed-form receiver position from pseudoranges (Bancroft)

References:
    S. Bancroft, An Algebraic Solution of the GPS Equations, IEEE Trans.
    Aerospace and Electronic Systems, AES-21, 56-59, 1985
"""

import logging
from typing import Tuple

import numpy as np

from ..core.constants import CLIGHT, RE_WGS84
from ..core.exceptions import SVNumException
from ..core.types import TypeID
from ..gnss.geometry import rotate_earth

logger = logging.getLogger(__name__)

_LORENTZ = np.diag([1.0, 1.0, 1.0, -1.0])


def _lorentz(a: np.ndarray, b: np.ndarray) -> float:
    return float(a[:3] @ b[:3] - a[3] * b[3])


def bancroft(sat_positions: np.ndarray, ranges: np.ndarray) -> Tuple[np.ndarray, float]:
    """
    Solve |s_i - r| + b = R_i for receiver position r and clock b (m)

    Parameters
    ----------
    sat_positions : np.ndarray
        n x 3 satellite ECEF positions
    ranges : np.ndarray
        n clock-corrected pseudoranges (P + c*dts)

    Returns
    -------
    position : np.ndarray
        Receiver ECEF position
    clock : float
        Receiver clock bias (m)

    Raises
    ------
    SVNumException
        Fewer than four satellites
    """
    sat_positions = np.asarray(sat_positions, dtype=float)
    ranges = np.asarray(ranges, dtype=float)
    n = len(ranges)
    if n < 4:
        raise SVNumException(n, 4, "Bancroft solution needs four satellites")

    B = np.column_stack([sat_positions, ranges])
    alpha = 0.5 * np.array([_lorentz(row, row) for row in B])
    B_pinv = np.linalg.pinv(B)
    u = B_pinv @ np.ones(n)
    v = B_pinv @ alpha

    a = _lorentz(u, u)
    b = 2.0 * (_lorentz(u, v) - 1.0)
    c = _lorentz(v, v)
    if abs(a) < 1e-18:
        roots = [-c / b]
    else:
        disc = max(b * b - 4.0 * a * c, 0.0)
        roots = [(-b + np.sqrt(disc)) / (2.0 * a), (-b - np.sqrt(disc)) / (2.0 * a)]

    best = None
    for lam in roots:
        y = _LORENTZ @ (v + lam * u)
        pos, clock = y[:3], y[3]
        residual = np.linalg.norm(np.linalg.norm(sat_positions - pos, axis=1) + clock - ranges)
        key = (abs(np.linalg.norm(pos) - RE_WGS84), residual)
        if best is None or key < best[0]:
            best = (key, pos, clock)
    return best[1], float(best[2])


def bootstrap_position(epoch) -> Tuple[np.ndarray, float]:
    """Approximate position and clock of an epoch from its P1 ranges

    Satellite positions are taken at transmission time from the epoch's
    snapshot and rotated by the earth rotation during signal flight.
    """
    positions, ranges = [], []
    for sat, values in sorted(epoch.body.items()):
        p = values.get(TypeID.P1)
        if p is None:
            continue
        try:
            t_tx = epoch.time - p / CLIGHT
            t_tx -= epoch.snapshot.position_and_clock(sat, t_tx).clock
            state = epoch.snapshot.position_and_clock(sat, t_tx)
        except KeyError:
            continue
        positions.append(rotate_earth(state.position, p / CLIGHT))
        ranges.append(p + CLIGHT * state.clock)

    position, clock = bancroft(np.array(positions).reshape(-1, 3), np.array(ranges))
    logger.info(f"{epoch.station}: bootstrap position {np.round(position, 1)} from {len(ranges)} satellites")
    return position, clock
