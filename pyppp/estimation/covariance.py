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

"""Persisted state and covariance keyed by variable"""

from typing import Callable, Dict, FrozenSet, Sequence, Tuple

import numpy as np

from ..core.types import Variable


class CovarianceMap:
    """Sparse store of the last committed state and covariance

    Entries are keyed by unordered variable pairs. store() replaces the
    whole content, so every stored entry has both endpoints in the variable
    set that was active at that time.
    """

    def __init__(self):
        self._state: Dict[Variable, float] = {}
        self._cov: Dict[FrozenSet[Variable], float] = {}

    @staticmethod
    def _key(a: Variable, b: Variable) -> FrozenSet[Variable]:
        return frozenset((a, b))

    def store(self, variables: Sequence[Variable], x: np.ndarray, P: np.ndarray):
        self._state = {}
        self._cov = {}
        for i, vi in enumerate(variables):
            self._state[vi] = float(x[i])
            for j in range(i + 1):
                self._cov[self._key(vi, variables[j])] = float(P[i, j])

    def project(self, variables: Sequence[Variable],
                is_new: Callable[[Variable], bool],
                prior: Callable[[Variable], Tuple[float, float]]) -> Tuple[np.ndarray, np.ndarray]:
        """
        Rebuild dense state and covariance in the given variable order

        Parameters:
        -----------
        variables : Sequence[Variable]
            Current ordering
        is_new : Callable
            True for variables that must ignore stored values
        prior : Callable
            Returns (initial value, prior variance) for a new variable

        Returns:
        --------
        x, P : np.ndarray
            Persisting entries copied unchanged, new variables uncorrelated
        """
        n = len(variables)
        x = np.zeros(n)
        P = np.zeros((n, n))
        old = []
        for i, var in enumerate(variables):
            if is_new(var) or var not in self._state:
                x[i], P[i, i] = prior(var)
                continue
            x[i] = self._state[var]
            for j in old:
                P[i, j] = P[j, i] = self._cov[self._key(var, variables[j])]
            P[i, i] = self._cov[self._key(var, var)]
            old.append(i)
        return x, P

    def value(self, var: Variable) -> float:
        return self._state[var]

    def covariance(self, a: Variable, b: Variable) -> float:
        return self._cov[self._key(a, b)]

    def clear(self):
        self._state = {}
        self._cov = {}

    @property
    def variables(self):
        return list(self._state)

    def __contains__(self, var: Variable) -> bool:
        return var in self._state

    def __len__(self) -> int:
        return len(self._state)
