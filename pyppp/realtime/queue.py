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

"""Per-station observation queue shared by producers and the consumer loop"""

import logging
import threading
import time as _time
from collections import deque
from typing import Callable, Dict, List, Optional

from ..core.types import StationObservationBatch

logger = logging.getLogger(__name__)

# Batches of different stations closer than this belong to the same epoch (s)
EPOCH_TOLERANCE = 1e-3


class ObservationQueue:
    """FIFO of observation batches per station guarded by one condition variable

    Producers call put() from their own threads. The single consumer blocks
    only in wait(); every other method returns immediately.
    """

    def __init__(self, clock: Callable[[], float] = _time.monotonic):
        self._clock = clock
        self._queues: Dict[str, deque] = {}
        self._last_time: Dict[str, float] = {}
        self._cond = threading.Condition()
        self._sequence = 0

    def put(self, batch: StationObservationBatch) -> bool:
        """Queue a batch; batches not later than the station's last one are dropped"""
        with self._cond:
            last = self._last_time.get(batch.station)
            if last is not None and batch.time <= last + EPOCH_TOLERANCE:
                logger.warning(f"{batch.station}: out-of-order epoch {batch.time:.3f} "
                               f"(last {last:.3f}) dropped")
                return False
            self._last_time[batch.station] = batch.time
            self._queues.setdefault(batch.station, deque()).append((self._clock(), batch))
            self._sequence += 1
            self._cond.notify_all()
            return True

    def notify(self):
        """Wake the consumer without new data, e.g. on a correction update"""
        with self._cond:
            self._sequence += 1
            self._cond.notify_all()

    def wait(self, timeout: Optional[float] = None, new_only: bool = False) -> bool:
        """
        Block until a batch is pending or the timeout expires

        Parameters:
        -----------
        timeout : float, optional
            Maximum wait in seconds, None waits indefinitely
        new_only : bool
            Ignore batches already pending and wait for the next put() or
            notify(), used after the pending epoch was deferred

        Returns:
        --------
        bool
            True when at least one batch is pending
        """
        with self._cond:
            if new_only:
                sequence = self._sequence
                self._cond.wait_for(lambda: self._sequence != sequence, timeout)
            else:
                self._cond.wait_for(self._has_pending, timeout)
            return self._has_pending()

    def _has_pending(self) -> bool:
        return any(self._queues.values())

    def next_epoch(self) -> Optional[float]:
        """Earliest epoch time at the head of any station queue"""
        with self._cond:
            heads = [q[0][1].time for q in self._queues.values() if q]
        return min(heads) if heads else None

    def pop_epoch(self, epoch_time: float) -> List[StationObservationBatch]:
        """Remove and return the head batches of every station at epoch_time"""
        batches = []
        with self._cond:
            for q in self._queues.values():
                if q and abs(q[0][1].time - epoch_time) <= EPOCH_TOLERANCE:
                    batches.append(q.popleft()[1])
        return batches

    def drop_expired(self, max_wait: float, now: Optional[float] = None) -> List[StationObservationBatch]:
        """Remove batches that have waited longer than max_wait seconds"""
        now = self._clock() if now is None else now
        dropped = []
        with self._cond:
            for q in self._queues.values():
                while q and now - q[0][0] > max_wait:
                    dropped.append(q.popleft()[1])
        return dropped

    def pending(self, station: Optional[str] = None) -> int:
        with self._cond:
            if station is not None:
                return len(self._queues.get(station, ()))
            return sum(len(q) for q in self._queues.values())

    def __len__(self) -> int:
        return self.pending()
