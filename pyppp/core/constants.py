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

"""Physical constants and dual-frequency signal parameters"""

# Physical Constants
CLIGHT = 299792458.0  # speed of light (m/s)

# Carrier frequencies used by the uncombined model (GPS L1/L2)
FREQ_L1 = 1.57542E9   # L1 frequency (Hz)
FREQ_L2 = 1.22760E9   # L2 frequency (Hz)

WAVELENGTH_L1 = CLIGHT / FREQ_L1                # ~0.1903 m
WAVELENGTH_L2 = CLIGHT / FREQ_L2                # ~0.2442 m
WAVELENGTH_WL = CLIGHT / (FREQ_L1 - FREQ_L2)    # ~0.8619 m

# Ionospheric scale of L2 relative to L1
GAMMA = (FREQ_L1 / FREQ_L2) ** 2

# Earth parameters (WGS84)
RE_WGS84 = 6378137.0           # earth semimajor axis (m)
FE_WGS84 = 1.0 / 298.257223563  # earth flattening
OMGE = 7.2921151467E-5         # earth angular velocity (rad/s)
MU_GPS = 3.9860050E14          # gravitational constant (m^3/s^2)

# Astronomical Unit
AU = 149597870691.0            # 1 AU (m)

# Time
GPST0 = [1980, 1, 6, 0, 0, 0]  # GPS time reference epoch
SECONDS_PER_DAY = 86400.0
SECONDS_PER_WEEK = 604800.0

# Canonical order of the GNSS systems (RINEX system letters)
SYSTEM_ORDER = "GRECJ"
