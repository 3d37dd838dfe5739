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

"""Exception taxonomy of the PPP engine"""


class PPPError(Exception):
    """Base class of every error raised by pyppp"""


class ConfigurationError(PPPError):
    """Missing or invalid configuration, fatal at startup"""


class ProcessingException(PPPError):
    """Per-epoch recoverable processing failure"""


class InvalidSolver(ProcessingException):
    """Innovation covariance singular or not positive definite"""


class SVNumException(ProcessingException):
    """Too few satellites for the requested computation"""

    def __init__(self, available: int, required: int, message: str = ""):
        self.available = available
        self.required = required
        text = message or f"{available} satellites available, {required} required"
        super().__init__(text)
