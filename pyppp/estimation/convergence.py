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

"""Convergence tracking"""

from collections import deque

import numpy as np


class ConvergenceBuffer:
    """Fixed capacity FIFO of per-epoch stability flags

    Converged once full and every flag is True.
    """

    def __init__(self, capacity: int = 10, threshold: float = 0.05):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.threshold = threshold
        self._flags = deque(maxlen=capacity)
        self._last = None

    @property
    def capacity(self) -> int:
        return self._flags.maxlen

    def push(self, stable: bool):
        self._flags.append(bool(stable))

    def push_position(self, position) -> bool:
        """Push the stability flag of a new position (bounded change from the previous one)"""
        position = np.asarray(position, dtype=float)
        stable = self._last is not None and np.linalg.norm(position - self._last) < self.threshold
        self._last = position.copy()
        self.push(stable)
        return stable

    @property
    def converged(self) -> bool:
        return len(self._flags) == self.capacity and all(self._flags)

    def clear(self):
        self._flags.clear()
        self._last = None

    def __len__(self):
        return len(self._flags)
