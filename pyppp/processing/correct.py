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

"""Correction steps: weights, observable corrections, troposphere,
measurement update, DOP and ambiguity fixing"""

import logging

import numpy as np

from ..core.exceptions import InvalidSolver
from ..core.types import CODE_TYPES, PHASE_TYPES, TypeID
from ..coordinate.transforms import ecef2llh
from ..estimation.equations import WAVELENGTHS, EquationBuilder, compute_dop
from .collaborators import NullTideModel
from .pipeline import CONTINUE, ProcessingStep, StepOutcome

logger = logging.getLogger(__name__)


class ComputeElevWeights(ProcessingStep):
    """Elevation dependent weight factor sin(el)^exponent"""

    def __init__(self, exponent: float = 2.0):
        self.exponent = exponent

    def process(self, epoch) -> StepOutcome:
        for values in epoch.body.values():
            el = np.radians(values[TypeID.ELEVATION])
            values[TypeID.WEIGHT] = float(np.sin(el) ** self.exponent)
        return CONTINUE


class CorrectObservables(ProcessingStep):
    """Remove station displacement and satellite biases from the observables"""

    def __init__(self, tide_model=None, bias_provider=None):
        self.tide_model = tide_model or NullTideModel()
        self.bias_provider = bias_provider

    def process(self, epoch) -> StepOutcome:
        displacement = np.asarray(self.tide_model.displacement(epoch.time, epoch.position), dtype=float)
        for sat, values in epoch.body.items():
            e = epoch.los.get(sat)
            # A displaced antenna shortens the range by e.d
            shift = float(e @ displacement) if e is not None else 0.0
            values[TypeID.TIDE] = shift
            biases = self.bias_provider.biases(sat) if self.bias_provider is not None else {}
            for t in CODE_TYPES:
                values[t] += shift - biases.get(t, 0.0)
            for t in PHASE_TYPES:
                values[t] += (shift - biases.get(t, 0.0)) / WAVELENGTHS[t]
        return CONTINUE


class ComputeTropModel(ProcessingStep):
    """Dry slant delay and wet mapping factor of each satellite"""

    def __init__(self, trop_model):
        self.trop_model = trop_model

    def process(self, epoch) -> StepOutcome:
        llh = ecef2llh(epoch.position)
        dry_zenith, _ = self.trop_model.zenith_delays(llh)
        epoch.dry_zenith = dry_zenith
        for values in epoch.body.values():
            m_dry, m_wet = self.trop_model.mapping(llh, np.radians(values[TypeID.ELEVATION]))
            values[TypeID.DRY_TROPO] = dry_zenith * m_dry
            values[TypeID.WET_MAP] = m_wet
        return CONTINUE


class FilterCorrect(ProcessingStep):
    """Measurement update of the station filter"""

    def __init__(self, ppp_filter, builder: EquationBuilder):
        self.filter = ppp_filter
        self.builder = builder

    def process(self, epoch) -> StepOutcome:
        system = self.builder.build(self.filter, epoch)
        if not system.rows:
            return StepOutcome.insufficient("no observation equations")
        try:
            postfit = self.filter.correct(system.prefit, system.design, weight=system.weight)
        except InvalidSolver as exc:
            return StepOutcome.invalid(str(exc))
        epoch.postfit = {row: float(v) for row, v in zip(system.rows, postfit)}
        epoch.position = self.filter.position
        logger.trace(f"{epoch.station}: {len(system.rows)} equations, "
                     f"postfit rms {np.sqrt(np.mean(postfit ** 2)):.3f} m")
        return CONTINUE


class ComputeDOP(ProcessingStep):
    """Geometry DOP of the satellites used in the epoch"""

    def process(self, epoch) -> StepOutcome:
        los = [epoch.los[sat] for sat in epoch.satellites if sat in epoch.los]
        epoch.dop = compute_dop(np.array(los).reshape(-1, 3), epoch.position)
        return CONTINUE


class AmbiguityFixing(ProcessingStep):
    """Widelane and L1 ambiguity resolution; never stops the pipeline"""

    def __init__(self, resolver, ppp_filter):
        self.resolver = resolver
        self.filter = ppp_filter

    def process(self, epoch) -> StepOutcome:
        epoch.float_position = self.filter.position
        epoch.float_covariance = self.filter.position_covariance
        epoch.fix = self.resolver.resolve(self.filter, epoch.time, epoch.phase_residuals())
        epoch.position = self.filter.position
        return CONTINUE
