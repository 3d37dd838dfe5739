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

"""Stochastic models of the filter unknowns

Models are plain records tagged with a ModelKind. Transition coefficient
and process noise are dispatched through a table keyed by the kind, and
one model is shared by every variable of the same TypeID.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict

import numpy as np

from ..core.types import TypeID


class ModelKind(Enum):
    CONSTANT = "constant"
    WHITE_NOISE = "white_noise"
    RANDOM_WALK = "random_walk"
    GAUSS_MARKOV = "gauss_markov"
    PHASE_AMBIGUITY = "phase_ambiguity"


@dataclass(frozen=True)
class StochasticModel:
    """
    Stochastic model parameters

    Parameters:
    -----------
    kind : ModelKind
        Model family
    prior_sigma : float
        Standard deviation assigned to a newly created variable
    noise_sigma : float
        Random walk: sigma per sqrt(second). Gauss-Markov: steady state sigma.
    tau : float
        Gauss-Markov correlation time (s)
    initial_value : float
        Value of a new variable when no seed is supplied
    """
    kind: ModelKind
    prior_sigma: float = 1.0
    noise_sigma: float = 0.0
    tau: float = 3600.0
    initial_value: float = 0.0

    def transition_coefficient(self, dt: float) -> float:
        return _TRANSITION[self.kind](self, dt)

    def process_noise_variance(self, dt: float) -> float:
        return _PROCESS_NOISE[self.kind](self, dt)

    def prior_variance(self) -> float:
        return self.prior_sigma ** 2

    @property
    def resets_each_epoch(self) -> bool:
        """White noise variables take a fresh value every epoch"""
        return self.kind is ModelKind.WHITE_NOISE


def _gauss_markov_phi(model: StochasticModel, dt: float) -> float:
    return float(np.exp(-abs(dt) / model.tau))


def _gauss_markov_q(model: StochasticModel, dt: float) -> float:
    return model.noise_sigma ** 2 * (1.0 - np.exp(-2.0 * abs(dt) / model.tau))


_TRANSITION = {
    ModelKind.CONSTANT: lambda m, dt: 1.0,
    ModelKind.WHITE_NOISE: lambda m, dt: 0.0,
    ModelKind.RANDOM_WALK: lambda m, dt: 1.0,
    ModelKind.GAUSS_MARKOV: _gauss_markov_phi,
    ModelKind.PHASE_AMBIGUITY: lambda m, dt: 1.0,
}

_PROCESS_NOISE = {
    ModelKind.CONSTANT: lambda m, dt: 0.0,
    ModelKind.WHITE_NOISE: lambda m, dt: m.prior_variance(),
    ModelKind.RANDOM_WALK: lambda m, dt: m.noise_sigma ** 2 * abs(dt),
    ModelKind.GAUSS_MARKOV: _gauss_markov_q,
    ModelKind.PHASE_AMBIGUITY: lambda m, dt: 0.0,
}


def build_model_table(config) -> Dict[TypeID, StochasticModel]:
    """Stochastic model of each unknown type for a PPPConfig"""
    if config.kinematic:
        position = StochasticModel(ModelKind.RANDOM_WALK, config.position_sigma,
                                   config.kinematic_sigma)
    else:
        position = StochasticModel(ModelKind.CONSTANT, config.position_sigma)

    ambiguity = StochasticModel(ModelKind.PHASE_AMBIGUITY, config.ambiguity_sigma)
    return {
        TypeID.X: position,
        TypeID.Y: position,
        TypeID.Z: position,
        TypeID.CDT: StochasticModel(ModelKind.WHITE_NOISE, config.clock_sigma),
        TypeID.ZWD: StochasticModel(ModelKind.RANDOM_WALK, config.zwd_sigma,
                                    config.zwd_noise, initial_value=config.zwd_initial),
        TypeID.IONO: StochasticModel(ModelKind.RANDOM_WALK, config.iono_sigma,
                                     config.iono_noise),
        TypeID.BL1: ambiguity,
        TypeID.BL2: ambiguity,
    }
