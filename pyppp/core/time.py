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

"""GPS time helpers

Epochs are carried through the engine as float GPS seconds since
1980-01-06 00:00:00 (GPS time).
"""

import math
from datetime import datetime, timedelta
from typing import Tuple

from .constants import GPST0, SECONDS_PER_DAY, SECONDS_PER_WEEK

_GPS_EPOCH = datetime(*GPST0)


def gpst2ydsod(gps_seconds: float) -> Tuple[int, int, float]:
    """
    Convert GPS seconds to year, day of year and second of day

    Parameters:
    -----------
    gps_seconds : float
        GPS seconds since the GPS epoch

    Returns:
    --------
    tuple : (year, doy, sod)
    """
    days = math.floor(gps_seconds / SECONDS_PER_DAY)
    sod = gps_seconds - days * SECONDS_PER_DAY
    date = _GPS_EPOCH + timedelta(days=days)
    return date.year, date.timetuple().tm_yday, sod


def datetime2gpst(dt: datetime) -> float:
    """Convert a naive datetime in GPS time to GPS seconds"""
    return (dt - _GPS_EPOCH).total_seconds()


def epoch2gpst(year: int, month: int, day: int,
               hour: int = 0, minute: int = 0, second: float = 0.0) -> float:
    """Convert calendar epoch (GPS time scale) to GPS seconds"""
    whole = int(second)
    base = datetime(year, month, day, hour, minute, whole)
    return datetime2gpst(base) + (second - whole)


def gpst2week_tow(gps_seconds: float) -> Tuple[int, float]:
    """GPS week number and time of week"""
    if gps_seconds < 0:
        raise ValueError(f"GPS seconds cannot be negative: {gps_seconds}")
    week = int(gps_seconds // SECONDS_PER_WEEK)
    return week, gps_seconds - week * SECONDS_PER_WEEK


def julian_centuries(gps_seconds: float) -> float:
    """Julian centuries since J2000.0 (GPS time used in place of TT)"""
    # J2000.0 is 2000-01-01 12:00:00 TT, 630763200 GPS seconds minus TT-GPS (51.184 s)
    return (gps_seconds - 630763148.816) / (36525.0 * SECONDS_PER_DAY)
