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

"""Tropospheric delay models"""

from typing import Tuple

import numpy as np

# Standard atmosphere at sea level
P0 = 1013.25  # hPa
T0 = 288.15   # K
E0 = 11.75    # hPa (water vapor pressure)

MIN_ELEVATION = np.deg2rad(3.0)


def standard_atmosphere(height: float) -> Tuple[float, float, float]:
    """Pressure (hPa), temperature (K) and water vapour pressure (hPa) at height (m)"""
    h = min(max(height, 0.0), 44330.0)
    base = 1 - 2.26e-5 * h
    pressure = P0 * base ** 5.225 if base > 0 else 0.0
    temperature = T0 - 6.5e-3 * h
    humidity = E0 * (temperature / T0) ** 4.0
    return pressure, temperature, humidity


def saastamoinen_zenith(llh) -> Tuple[float, float]:
    """
    Saastamoinen zenith hydrostatic and wet delays

    Parameters
    ----------
    llh : array_like
        Receiver geodetic position [lat (rad), lon (rad), height (m)]

    Returns
    -------
    tuple : (zhd, zwd) in meters

    References
    ----------
    Saastamoinen, J. (1972), "Atmospheric correction for the troposphere
    and stratosphere in radio ranging of satellites"
    """
    h = max(llh[2], 0.0)
    pressure, temperature, humidity = standard_atmosphere(h)
    zhd = 0.0022768 * pressure / (1 - 0.00266 * np.cos(2 * llh[0]) - 0.00028e-3 * h)
    zwd = 0.0022768 * (1255 / temperature + 0.05) * humidity
    return zhd, zwd


def simple_mapping(elevation: float) -> float:
    """Cosecant mapping function, clamped at MIN_ELEVATION"""
    return 1.0 / np.sin(max(elevation, MIN_ELEVATION))


class SaastamoinenTropModel:
    """Standard-atmosphere Saastamoinen zenith delays with cosecant mapping

    ``zenith_delays`` returns the a priori dry and wet zenith delays; the
    wet part is estimated by the filter, so only the dry slant delay and the
    wet mapping factor enter the observation model.
    """

    def zenith_delays(self, llh) -> Tuple[float, float]:
        return saastamoinen_zenith(llh)

    def mapping(self, llh, elevation: float) -> Tuple[float, float]:
        m = simple_mapping(elevation)
        return m, m
