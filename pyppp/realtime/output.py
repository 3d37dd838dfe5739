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

"""Solution and model output streams

A solution record per committed station epoch:

    station year doy sod lat lon h | X Y Z  ztd nsat conv gdop pdop

Latitude/longitude in degrees and height in meters when geodetic output is
selected, ECEF meters otherwise. The model stream holds one line per
station, epoch and satellite with the modeled values and postfit residuals.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import IO, List, Union

import numpy as np

from ..coordinate.transforms import ecef2llh
from ..core.time import gpst2ydsod
from ..core.types import TypeID

_GEODETIC_COLUMNS = ("lat(deg)", "lon(deg)", "h(m)")
_ECEF_COLUMNS = ("X(m)", "Y(m)", "Z(m)")


@dataclass(frozen=True)
class SolutionRecord:
    """One parsed solution line"""
    station: str
    year: int
    doy: int
    sod: float
    coordinates: np.ndarray
    ztd: float
    num_sats: int
    converged: bool
    gdop: float
    pdop: float


class _Stream:
    def __init__(self, target: Union[str, Path, IO, None]):
        self._owned = isinstance(target, (str, Path))
        self._fh = open(target, "w", encoding="utf-8") if self._owned else target

    @property
    def enabled(self) -> bool:
        return self._fh is not None

    def _emit(self, line: str):
        if self._fh is not None:
            self._fh.write(line + "\n")
            self._fh.flush()

    def close(self):
        if self._owned and self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class SolutionWriter(_Stream):
    """Header plus one record per committed station epoch"""

    def __init__(self, target=None, precision: int = 4, geodetic: bool = True):
        super().__init__(target)
        self.precision = precision
        self.geodetic = geodetic
        self._header_written = False

    @classmethod
    def from_config(cls, config, target=None) -> "SolutionWriter":
        return cls(target if target is not None else (config.output_file or None),
                   precision=config.precision, geodetic=config.use_neu)

    def header(self) -> str:
        columns = _GEODETIC_COLUMNS if self.geodetic else _ECEF_COLUMNS
        return "% " + " ".join(("station", "year", "doy", "sod") + columns
                               + ("ztd(m)", "nsat", "conv", "gdop", "pdop"))

    def format(self, solution) -> str:
        year, doy, sod = gpst2ydsod(solution.time)
        p = self.precision
        if self.geodetic:
            llh = ecef2llh(solution.position)
            coords = (f"{np.degrees(llh[0]):.{p + 5}f}", f"{np.degrees(llh[1]):.{p + 5}f}",
                      f"{llh[2]:.{p}f}")
        else:
            coords = tuple(f"{v:.{p}f}" for v in solution.position)
        gdop, pdop = (solution.dop.gdop, solution.dop.pdop) if solution.dop is not None else (0.0, 0.0)
        fields = ((solution.station, f"{year:4d}", f"{doy:3d}", f"{sod:9.3f}") + coords
                  + (f"{solution.ztd:.{p}f}", f"{solution.num_satellites:2d}",
                     "1" if solution.converged else "0", f"{gdop:.2f}", f"{pdop:.2f}"))
        return " ".join(fields)

    def write(self, solution) -> str:
        if not self._header_written:
            self._emit(self.header())
            self._header_written = True
        line = self.format(solution)
        self._emit(line)
        return line


class ModelWriter(_Stream):
    """Per-satellite modeled values and postfit residuals of each epoch"""

    VALUES = (TypeID.ELEVATION, TypeID.AZIMUTH, TypeID.RHO, TypeID.DRY_TROPO,
              TypeID.WET_MAP, TypeID.WINDUP, TypeID.WEIGHT, TypeID.SAT_ARC)

    def __init__(self, target=None, precision: int = 4):
        super().__init__(target)
        self.precision = precision

    def format(self, epoch) -> List[str]:
        year, doy, sod = gpst2ydsod(epoch.time)
        p = self.precision
        lines = []
        for sat in epoch.satellites:
            values = epoch.body[sat]
            modeled = [f"{values.get(t, 0.0):.{p}f}" for t in self.VALUES]
            residuals = [f"{epoch.postfit.get((sat, t), 0.0):.{p}f}"
                         for t in (TypeID.P1, TypeID.P2, TypeID.L1, TypeID.L2)]
            lines.append(" ".join([epoch.station, f"{year:4d}", f"{doy:3d}", f"{sod:9.3f}", str(sat)]
                                  + modeled + residuals))
        return lines

    def write(self, epoch) -> List[str]:
        lines = self.format(epoch)
        for line in lines:
            self._emit(line)
        return lines


def read_solution_file(path: Union[str, Path]) -> List[SolutionRecord]:
    """Parse a solution file written by SolutionWriter"""
    sol_path = Path(path)
    if not sol_path.exists():
        raise FileNotFoundError(sol_path)

    records = []
    with sol_path.open("r", encoding="utf-8") as fh:
        for line in fh:
            if not line.strip() or line.startswith("%"):
                continue
            parts = line.split()
            if len(parts) < 12:
                continue
            records.append(SolutionRecord(
                station=parts[0], year=int(parts[1]), doy=int(parts[2]), sod=float(parts[3]),
                coordinates=np.array([float(v) for v in parts[4:7]]),
                ztd=float(parts[7]), num_sats=int(parts[8]), converged=parts[9] == "1",
                gdop=float(parts[10]), pdop=float(parts[11])))
    return records
