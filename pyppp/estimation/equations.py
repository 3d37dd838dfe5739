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

"""Linearized undifferenced uncombined observation equations

    P1 = rho + cdt - dts + T_dry + m_w*ZWD +   I
    P2 = rho + cdt - dts + T_dry + m_w*ZWD + g*I
    L1 = rho + cdt - dts + T_dry + m_w*ZWD -   I + lam1*N1
    L2 = rho + cdt - dts + T_dry + m_w*ZWD - g*I + lam2*N2

with g = f1^2/f2^2, phase in meters and ambiguities in cycles.
"""

from typing import List, NamedTuple, Tuple

import numpy as np

from ..core.constants import GAMMA, WAVELENGTH_L1, WAVELENGTH_L2
from ..core.types import DOP, OBSERVABLE_TYPES, SatID, TypeID
from ..coordinate.transforms import compute_rotation_matrix_enu, ecef2llh
from ..gnss.geometry import dops, geodist

# Ionospheric coefficient and ambiguity (type, wavelength) of each observable
OBSERVATION_MODEL = {
    TypeID.P1: (1.0, None),
    TypeID.P2: (GAMMA, None),
    TypeID.L1: (-1.0, (TypeID.BL1, WAVELENGTH_L1)),
    TypeID.L2: (-GAMMA, (TypeID.BL2, WAVELENGTH_L2)),
}

WAVELENGTHS = {TypeID.L1: WAVELENGTH_L1, TypeID.L2: WAVELENGTH_L2}


class LinearSystem(NamedTuple):
    prefit: np.ndarray
    design: np.ndarray
    weight: np.ndarray
    rows: List[Tuple[SatID, TypeID]]


class EquationBuilder:
    """Prefit residuals, design matrix and weights at the predicted state"""

    def __init__(self, code_sigma: float = 0.3, phase_sigma: float = 0.003):
        self.code_sigma = code_sigma
        self.phase_sigma = phase_sigma

    def build(self, ppp_filter, epoch) -> LinearSystem:
        """
        Build the observation equations of an epoch

        Parameters:
        -----------
        ppp_filter : PPPFilter
            Filter after the time update
        epoch : EpochData
            Modeled epoch data

        Returns:
        --------
        LinearSystem
            Rows ordered by satellite, then P1, P2, L1, L2
        """
        registry = ppp_filter.registry
        x = ppp_filter.x
        n = x.size
        pos = ppp_filter.position
        i_pos = [registry.index_of(t) for t in (TypeID.X, TypeID.Y, TypeID.Z)]
        i_clk = registry.index_of(TypeID.CDT)
        i_zwd = registry.index_of(TypeID.ZWD)
        active = set(registry.satellites)

        prefit, design, weight, rows = [], [], [], []
        for sat in epoch.satellites:
            if sat not in active or sat not in epoch.sat_pos:
                continue
            values = epoch.body[sat]
            if any(t not in values for t in OBSERVABLE_TYPES):
                continue

            rho, e = geodist(epoch.sat_pos[sat].position, pos)
            wet_map = values.get(TypeID.WET_MAP, 0.0)
            common = (rho + x[i_clk] - values.get(TypeID.DTS, 0.0)
                      + values.get(TypeID.DRY_TROPO, 0.0) + wet_map * x[i_zwd])
            i_ion = registry.index_of(TypeID.IONO, sat)
            elev_weight = values.get(TypeID.WEIGHT, 1.0)

            for obs in OBSERVABLE_TYPES:
                iono_coef, ambiguity = OBSERVATION_MODEL[obs]
                row = np.zeros(n)
                row[i_pos] = -e
                row[i_clk] = 1.0
                row[i_zwd] = wet_map
                row[i_ion] = iono_coef
                computed = common + iono_coef * x[i_ion]
                if ambiguity is None:
                    observed = values[obs]
                    sigma = self.code_sigma
                else:
                    amb_type, wavelength = ambiguity
                    i_amb = registry.index_of(amb_type, sat)
                    row[i_amb] = wavelength
                    computed += wavelength * x[i_amb]
                    observed = values[obs] * wavelength
                    sigma = self.phase_sigma
                prefit.append(observed - computed)
                design.append(row)
                weight.append(elev_weight / sigma ** 2)
                rows.append((sat, obs))

        if not rows:
            return LinearSystem(np.zeros(0), np.zeros((0, n)), np.zeros(0), [])
        return LinearSystem(np.array(prefit), np.vstack(design), np.array(weight), rows)


def compute_dop(los: np.ndarray, position: np.ndarray) -> DOP:
    """DOP of the receiver clock and position geometry"""
    R = compute_rotation_matrix_enu(ecef2llh(position))
    return DOP(*(float(v) for v in dops(los, R)))
