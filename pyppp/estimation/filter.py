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

"""Sequential Kalman filter over a changing set of unknowns

One filter instance per station. An epoch runs

    begin_epoch -> predict -> correct -> [condition / release] -> persist

and only persist() makes the epoch's state the starting point of the next
one. An epoch abandoned before persist() leaves the committed state intact.
"""

import logging
from typing import Dict, Mapping, Optional, Sequence

import numpy as np
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from ..core.exceptions import InvalidSolver
from ..core.types import SatID, TypeID, Variable
from .convergence import ConvergenceBuffer
from .covariance import CovarianceMap
from .stochastic import StochasticModel
from .variables import VariableRegistry

logger = logging.getLogger(__name__)

# Relative asymmetry tolerated in the innovation covariance
SYMMETRY_TOLERANCE = 1e-9
# Constraint directions with less variance than this are already determined
MIN_CONSTRAINT_VARIANCE = 1e-14


class PPPFilter:
    """Kalman filter of one station's PPP unknowns"""

    def __init__(self, station: str, models: Mapping[TypeID, StochasticModel],
                 reinit_interval: float = 0.0,
                 convergence: Optional[ConvergenceBuffer] = None,
                 registry: Optional[VariableRegistry] = None):
        """
        Initialize filter

        Parameters:
        -----------
        station : str
            Station identifier
        models : Mapping[TypeID, StochasticModel]
            Stochastic model of each unknown type
        reinit_interval : float
            Seconds after the first epoch at which the filter restarts from
            priors (0 disables)
        convergence : Optional[ConvergenceBuffer]
            Buffer of stability flags
        registry : Optional[VariableRegistry]
            Variable registry, created for the station when omitted
        """
        self.station = station
        self.models = dict(models)
        self.reinit_interval = reinit_interval
        self.convergence = convergence if convergence is not None else ConvergenceBuffer()
        self.registry = registry if registry is not None else VariableRegistry(station)
        self.covariance_map = CovarianceMap()

        self.x = np.zeros(0)
        self.P = np.zeros((0, 0))
        self.first_time: Optional[float] = None
        self.last_time: Optional[float] = None
        self.time: Optional[float] = None

        self._listeners = []
        self._reinit_requested = False

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(self, listener):
        """Register an object notified of satellite removals, arc resets and reinitialization

        The listener may implement ``satellites_removed(sats)``,
        ``arcs_reset(arcs)`` with a {SatID: new arc} mapping and
        ``filter_reset(time)``. Removals and arc resets are reported by
        persist(), so an abandoned epoch never reaches the listeners.
        """
        self._listeners.append(listener)

    def _notify(self, event: str, *args):
        for listener in self._listeners:
            handler = getattr(listener, event, None)
            if handler is not None:
                handler(*args)

    # ------------------------------------------------------------------
    # Epoch processing
    # ------------------------------------------------------------------
    def request_reinitialization(self):
        self._reinit_requested = True

    def begin_epoch(self, time: float, satellites: Sequence[SatID],
                    satellite_types=None):
        """Activate the variables of a new epoch, reinitializing first when due"""
        if self.first_time is None:
            self.first_time = time
        elif self._reinit_requested or (
                self.reinit_interval > 0 and time - self.first_time >= self.reinit_interval):
            self.reinitialize(time)

        variables = self.registry.activate(satellites, satellite_types)
        self.time = time
        return variables

    def _prior(self, var: Variable):
        model = self.models[var.type]
        return model.initial_value, model.prior_variance()

    def predict(self, dt: float, seeds: Optional[Mapping[Variable, float]] = None):
        """
        Time update

        Parameters:
        -----------
        dt : float
            Seconds since the last persisted epoch
        seeds : Optional[Mapping[Variable, float]]
            Values for new variables and for white noise variables
        """
        seeds = seeds or {}
        variables = self.registry.variables
        n = len(variables)

        x, P = self.covariance_map.project(variables, self.registry.is_new, self._prior)

        phi = np.ones(n)
        q = np.zeros(n)
        for i, var in enumerate(variables):
            model = self.models[var.type]
            if self.registry.is_new(var):
                if var in seeds:
                    x[i] = seeds[var]
                continue
            phi[i] = model.transition_coefficient(dt)
            q[i] = model.process_noise_variance(dt)
            if model.resets_each_epoch:
                x[i] = seeds.get(var, model.initial_value)

        resets = np.array([self.models[v.type].resets_each_epoch and not self.registry.is_new(v)
                           for v in variables], dtype=bool)
        x = np.where(resets, x, phi * x)
        self.x = x
        self.P = phi[:, None] * P * phi[None, :] + np.diag(q)
        logger.trace(f"{self.station}: predicted {n} states over {dt:.1f} s")

    def correct(self, prefit, design, weight=None, noise=None) -> np.ndarray:
        """
        Measurement update

        Parameters:
        -----------
        prefit : array_like
            Observed minus computed at the predicted state (m)
        design : array_like
            Design matrix in registry order
        weight : array_like, optional
            Weights (vector of diagonal weights or full matrix), R = W^-1
        noise : array_like, optional
            Measurement noise covariance, used instead of weights

        Returns:
        --------
        np.ndarray
            Postfit residuals

        Raises:
        -------
        InvalidSolver
            Innovation covariance asymmetric, singular or not positive
            definite, or non-finite result. The filter state is unchanged.
        """
        z = np.asarray(prefit, dtype=float).ravel()
        H = np.atleast_2d(np.asarray(design, dtype=float))
        m = z.size
        if H.shape != (m, self.x.size):
            raise ValueError(f"Design matrix shape {H.shape} does not match ({m}, {self.x.size})")

        R = self._noise_matrix(m, weight, noise)

        PHt = self.P @ H.T
        S = H @ PHt + R
        scale = max(np.max(np.abs(S)), 1.0) if S.size else 1.0
        if not np.all(np.isfinite(S)) or np.max(np.abs(S - S.T), initial=0.0) > SYMMETRY_TOLERANCE * scale:
            raise InvalidSolver(f"{self.station}: innovation covariance is not symmetric")
        try:
            factor = cho_factor(S, lower=True)
        except LinAlgError as exc:
            raise InvalidSolver(f"{self.station}: innovation covariance not positive definite") from exc

        K = cho_solve(factor, PHt.T).T
        dx = K @ z
        IKH = np.eye(self.x.size) - K @ H
        P = IKH @ self.P @ IKH.T + K @ R @ K.T
        P = (P + P.T) / 2.0
        x = self.x + dx

        if not (np.all(np.isfinite(x)) and np.all(np.isfinite(P))):
            raise InvalidSolver(f"{self.station}: non-finite measurement update")

        self.x = x
        self.P = P
        return z - H @ dx

    @staticmethod
    def _noise_matrix(m: int, weight, noise) -> np.ndarray:
        if noise is not None:
            R = np.asarray(noise, dtype=float)
            return np.diag(R) if R.ndim == 1 else R
        if weight is None:
            return np.eye(m)
        W = np.asarray(weight, dtype=float)
        if W.ndim == 1:
            if np.any(W <= 0):
                raise InvalidSolver("non-positive observation weight")
            return np.diag(1.0 / W)
        try:
            return np.linalg.inv(W)
        except np.linalg.LinAlgError as exc:
            raise InvalidSolver("singular weight matrix") from exc

    def condition(self, coefficients: Mapping[Variable, float], value: float,
                  variance: float = 0.0) -> bool:
        """
        Condition the state on a linear constraint h'x = value

        The covariance loses rank along h and every correlated variable
        moves with the constraint. Returns False when the constraint
        direction has no variance left to condition.
        """
        h = np.zeros(self.x.size)
        for var, coef in coefficients.items():
            h[self.registry.index(var)] = coef

        Ph = self.P @ h
        s = h @ Ph + variance
        if s <= MIN_CONSTRAINT_VARIANCE:
            return False
        K = Ph / s
        self.x = self.x + K * (value - h @ self.x)
        P = self.P - np.outer(K, Ph)
        self.P = (P + P.T) / 2.0
        return True

    def release(self, var: Variable, variance: float):
        """Add variance back to a variable, returning it to float status"""
        i = self.registry.index(var)
        self.P[i, i] += variance

    def persist(self):
        """Commit the epoch: store state/covariance, advance the registry and
        report the satellites that left or started a new arc"""
        registry = self.registry
        self.covariance_map.store(registry.variables, self.x, self.P)
        registry.commit()
        self.last_time = self.time
        self.convergence.push_position(self.position)

        if registry.removed_satellites:
            logger.debug(f"{self.station}: satellites left {[str(s) for s in registry.removed_satellites]}")
            self._notify("satellites_removed", list(registry.removed_satellites))
        if registry.reset_satellites:
            logger.debug(f"{self.station}: arcs reset {[str(s) for s in registry.reset_satellites]}")
            self._notify("arcs_reset", {sat: registry.arc(sat) for sat in registry.reset_satellites})

    def reinitialize(self, time: Optional[float] = None):
        """Discard the state and restart from priors"""
        logger.info(f"{self.station}: filter reinitialized")
        self.covariance_map.clear()
        self.registry.reset()
        self.convergence.clear()
        self.x = np.zeros(0)
        self.P = np.zeros((0, 0))
        self.first_time = time
        self.last_time = None
        self._reinit_requested = False
        self._notify("filter_reset", time)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def solution(self, type_id: TypeID, sat: Optional[SatID] = None) -> float:
        return float(self.x[self.registry.index_of(type_id, sat)])

    def variance(self, type_id: TypeID, sat: Optional[SatID] = None) -> float:
        i = self.registry.index_of(type_id, sat)
        return float(self.P[i, i])

    def covariance_of(self, variables: Sequence[Variable]) -> np.ndarray:
        idx = [self.registry.index(v) for v in variables]
        return self.P[np.ix_(idx, idx)]

    def values_of(self, variables: Sequence[Variable]) -> np.ndarray:
        return self.x[[self.registry.index(v) for v in variables]]

    @property
    def position(self) -> np.ndarray:
        return np.array([self.solution(TypeID.X), self.solution(TypeID.Y), self.solution(TypeID.Z)])

    @property
    def position_covariance(self) -> np.ndarray:
        return self.covariance_of([self.registry.variable(t) for t in (TypeID.X, TypeID.Y, TypeID.Z)])

    @property
    def clock(self) -> float:
        return self.solution(TypeID.CDT)

    @property
    def converged(self) -> bool:
        return self.convergence.converged

    @property
    def num_satellites(self) -> int:
        return len(self.registry.satellites)

    def state_dict(self) -> Dict[Variable, float]:
        return {var: float(self.x[i]) for i, var in enumerate(self.registry.variables)}
