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

"""Sequential estimation: stochastic models, variable registry and filter"""

from .convergence import ConvergenceBuffer
from .covariance import CovarianceMap
from .equations import EquationBuilder, LinearSystem, compute_dop
from .filter import PPPFilter
from .stochastic import ModelKind, StochasticModel, build_model_table
from .variables import VariableRegistry
