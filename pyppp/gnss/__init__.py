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

"""GNSS geometry and atmosphere models"""

from .geometry import dops, geodist, rotate_earth, sagnac_correction, satazel
from .sun import in_earth_shadow, sun_position_ecef
from .troposphere import SaastamoinenTropModel, saastamoinen_zenith, simple_mapping
from .windup import phase_windup, satellite_axes
