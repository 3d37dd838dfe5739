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

"""
PyPPP - Real-time GNSS Precise Point Positioning

A Python library for multi-station real-time PPP: uncombined dual-frequency
Kalman filtering over a changing satellite set, widelane/L1 integer
ambiguity resolution and correction-gated epoch orchestration.
"""

__version__ = "0.1.0"
__author__ = "PyPPP Development Team"
__title__ = "pyppp"
__description__ = "Real-time GNSS precise point positioning engine"

from . import logger
from .core import *
from .config import PPPConfig, load_config
from .coordinate import *
from .estimation import *
from .ambiguity import *
from .processing import *
from .realtime import *
# from .plot import *  # matplotlib is imported on demand
