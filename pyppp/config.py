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

"""Engine configuration

Configuration files are INI files. Keys are looked up in the requested
section and fall back to ``[DEFAULT]``, so one file can hold settings shared
by all stations plus per-station overrides::

    [DEFAULT]
    realTime = true
    corrMount = SSRA00BKG0
    maxCorrWait = 5.0
    cutOffElevation = 10.0

    [ALGO]
    KinematicMode = false
"""

import configparser
import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional, Tuple

from .core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PPPConfig:
    """Processing options of the real-time PPP engine"""

    # Orchestration
    real_time: bool = True
    correction_mount: str = ""
    max_correction_wait: float = 5.0      # s, stale when age exceeds it
    min_correction_age: float = 0.0       # s, not arrived when age is at or below it
    stations: Tuple[str, ...] = ()
    observation_file: str = ""

    # Screening
    cutoff_elevation: float = 10.0        # deg
    filter_code: bool = True
    filter_pc: bool = True
    eclipse_filter: bool = True
    windup: bool = True
    phase_alignment: bool = True
    decimation_interval: float = 0.0      # s, 0 disables decimation
    decimation_tolerance: float = 0.5     # s
    min_satellites: int = 4

    # Cycle slip detection
    li_threshold: float = 0.05            # m
    mw_threshold: float = 4.0             # widelane cycles
    max_arc_gap: float = 61.0             # s

    # Measurement noise
    code_sigma: float = 0.3               # m at zenith
    phase_sigma: float = 0.003            # m at zenith

    # Stochastic models
    kinematic: bool = False
    kinematic_sigma: float = 1.0          # m/sqrt(s)
    position_sigma: float = 100.0         # m, prior
    clock_sigma: float = 100.0            # m, white noise
    zwd_sigma: float = 0.5                # m, prior
    zwd_noise: float = 1e-4               # m/sqrt(s)
    zwd_initial: float = 0.1              # m
    iono_sigma: float = 10.0              # m, prior
    iono_noise: float = 0.01              # m/sqrt(s)
    ambiguity_sigma: float = 30.0         # cycles, prior
    reinit_interval: float = 0.0          # s, 0 disables periodic reinitialization

    # Convergence
    convergence_buffer_size: int = 10
    convergence_threshold: float = 0.05   # m, position change between epochs

    # Ambiguity resolution
    fix_widelane: bool = True
    fix_l1: bool = True
    wl_sigma_threshold: float = 0.15      # cycles
    wl_decision_threshold: float = 0.25   # cycles
    ratio_threshold: float = 3.0
    success_rate_threshold: float = 0.999
    min_fix_satellites: int = 4
    fix_variance: float = 1e-6            # cycles^2
    rollback_tolerance: float = 0.05      # m, phase postfit residual
    rollback_epochs: int = 3

    # Output
    precision: int = 4
    use_neu: bool = True
    print_model: bool = False
    output_file: str = ""
    model_file: str = ""

    # Logging
    log_level: str = "INFO"
    log_file: str = ""

    def validate(self) -> "PPPConfig":
        """Check value ranges, raising ConfigurationError on the first violation"""
        checks = [
            (self.max_correction_wait > 0.0, "max_correction_wait must be positive"),
            (self.min_correction_age < self.max_correction_wait,
             "min_correction_age must be below max_correction_wait"),
            (0.0 <= self.cutoff_elevation < 90.0, "cutoff_elevation must be in [0, 90)"),
            (self.min_satellites >= 4, "min_satellites must be at least 4"),
            (self.code_sigma > 0.0 and self.phase_sigma > 0.0, "observation sigmas must be positive"),
            (self.convergence_buffer_size >= 1, "convergence_buffer_size must be at least 1"),
            (self.reinit_interval >= 0.0, "reinit_interval must not be negative"),
            (self.decimation_interval >= 0.0, "decimation_interval must not be negative"),
            (self.ratio_threshold >= 1.0, "ratio_threshold must be at least 1"),
            (0.0 <= self.success_rate_threshold <= 1.0, "success_rate_threshold must be in [0, 1]"),
            (0.0 < self.wl_decision_threshold <= 0.5, "wl_decision_threshold must be in (0, 0.5]"),
            (self.rollback_epochs >= 1, "rollback_epochs must be at least 1"),
            (self.precision >= 0, "precision must not be negative"),
        ]
        for ok, message in checks:
            if not ok:
                raise ConfigurationError(message)
        return self

    @property
    def gating_enabled(self) -> bool:
        """Correction gating applies to real-time runs with a correction mount"""
        return self.real_time and bool(self.correction_mount)

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "PPPConfig":
        """Build a configuration from field names or INI key names"""
        known = {f.name: f for f in fields(cls)}
        kwargs = {}
        for key, value in values.items():
            name = INI_KEYS.get(key.lower(), key)
            if name not in known:
                raise ConfigurationError(f"Unknown configuration key: {key}")
            kwargs[name] = _convert(name, type(known[name].default), value)
        return cls(**kwargs).validate()

    def with_overrides(self, **changes) -> "PPPConfig":
        return replace(self, **changes).validate()


# INI key (case-insensitive) -> field name
INI_KEYS = {
    "realtime": "real_time",
    "corrmount": "correction_mount",
    "maxcorrwait": "max_correction_wait",
    "mincorrage": "min_correction_age",
    "stations": "stations",
    "obsfile": "observation_file",
    "cutoffelevation": "cutoff_elevation",
    "filtercode": "filter_code",
    "filterpc": "filter_pc",
    "eclipsefilter": "eclipse_filter",
    "windup": "windup",
    "phasealignment": "phase_alignment",
    "decimationinterval": "decimation_interval",
    "decimationtolerance": "decimation_tolerance",
    "minsatellites": "min_satellites",
    "kinematicmode": "kinematic",
    "accelerationsigma": "kinematic_sigma",
    "reinitinterval": "reinit_interval",
    "precision": "precision",
    "useneu": "use_neu",
    "printmodel": "print_model",
    "outputfile": "output_file",
    "modelfile": "model_file",
    "loglevel": "log_level",
    "logfile": "log_file",
}

_TRUE = {"1", "true", "yes", "on", "y"}
_FALSE = {"0", "false", "no", "off", "n", ""}


def _convert(name: str, kind: type, value):
    try:
        if kind is bool:
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(value)
        if kind is int:
            return int(value)
        if kind is float:
            return float(value)
        if kind is tuple:
            if isinstance(value, str):
                return tuple(v for v in value.replace(",", " ").split() if v)
            return tuple(value)
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from exc


def load_config(path: str, section: Optional[str] = None) -> PPPConfig:
    """
    Load a configuration file

    Parameters:
    -----------
    path : str
        INI file path
    section : Optional[str]
        Section to read; keys missing there fall back to [DEFAULT]

    Returns:
    --------
    PPPConfig
        Validated configuration

    Raises:
    -------
    ConfigurationError
        The file is missing, unreadable, or holds an invalid value
    """
    if not os.path.isfile(path):
        raise ConfigurationError(f"Configuration file not found: {path}")

    parser = configparser.ConfigParser(interpolation=None)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            parser.read_file(fh)
    except (OSError, configparser.Error) as exc:
        raise ConfigurationError(f"Cannot read configuration file {path}: {exc}") from exc

    if section and section != parser.default_section:
        if not parser.has_section(section):
            raise ConfigurationError(f"Section [{section}] not found in {path}")
        values = dict(parser.items(section))
    else:
        values = dict(parser.defaults())

    config = PPPConfig.from_dict(values)
    logger.info(f"Loaded configuration from {path}")
    return config
