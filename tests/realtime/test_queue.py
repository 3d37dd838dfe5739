"""Tests for the observation queue"""

import threading
import unittest

from pyppp.core.types import SatID, StationObservationBatch, TypeID
from pyppp.realtime.queue import ObservationQueue


class FakeClock:

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def batch(station, time):
    return StationObservationBatch(station, time, {SatID("G", 1): {TypeID.P1: 2.1e7}})


class TestObservationQueue(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.queue = ObservationQueue(clock=self.clock)

    def test_fifo_per_station(self):
        """Batches of a station come out in order"""
        for t in (0.0, 30.0, 60.0):
            self.assertTrue(self.queue.put(batch("A", t)))
        self.assertEqual(self.queue.next_epoch(), 0.0)
        self.assertEqual([b.time for b in self.queue.pop_epoch(0.0)], [0.0])
        self.assertEqual(self.queue.next_epoch(), 30.0)
        self.assertEqual(len(self.queue), 2)

    def test_out_of_order_dropped(self):
        """Late batches are dropped"""
        self.queue.put(batch("A", 30.0))
        self.assertFalse(self.queue.put(batch("A", 0.0)))
        self.assertFalse(self.queue.put(batch("A", 30.0)))
        self.assertTrue(self.queue.put(batch("B", 0.0)))
        self.assertEqual(self.queue.pending("A"), 1)
        self.assertEqual(self.queue.pending("B"), 1)

    def test_pop_epoch_collects_stations(self):
        """Oldest epoch is popped across stations"""
        self.queue.put(batch("A", 0.0))
        self.queue.put(batch("B", 0.0005))
        self.queue.put(batch("C", 30.0))
        popped = self.queue.pop_epoch(self.queue.next_epoch())
        self.assertEqual(sorted(b.station for b in popped), ["A", "B"])
        self.assertEqual(self.queue.pending(), 1)
        self.assertEqual(self.queue.pop_epoch(0.0), [])

    def test_wait_timeout(self):
        """Wait returns after the timeout"""
        self.assertFalse(self.queue.wait(0.01))
        self.queue.put(batch("A", 0.0))
        self.assertTrue(self.queue.wait(0.01))
        # Pending data does not end a new_only wait, the timeout does
        self.assertTrue(self.queue.wait(0.01, new_only=True))

    def test_wait_woken_by_producer(self):
        """Producer wakes a waiting consumer"""
        def produce():
            self.queue.put(batch("A", 0.0))

        producer = threading.Timer(0.05, produce)
        producer.start()
        try:
            self.assertTrue(self.queue.wait(5.0))
        finally:
            producer.join()
        self.assertEqual(self.queue.pending(), 1)

    def test_notify_wakes_new_only_wait(self):
        """Notification wakes a wait for new data only"""
        self.queue.put(batch("A", 0.0))
        notifier = threading.Timer(0.05, self.queue.notify)
        notifier.start()
        try:
            self.assertTrue(self.queue.wait(5.0, new_only=True))
        finally:
            notifier.join()

    def test_drop_expired(self):
        """Batches waiting longer than the limit are dropped"""
        self.queue.put(batch("A", 0.0))
        self.clock.now = 4.0
        self.queue.put(batch("A", 30.0))
        self.assertEqual(self.queue.drop_expired(5.0), [])

        self.clock.now = 6.0
        dropped = self.queue.drop_expired(5.0)
        self.assertEqual([b.time for b in dropped], [0.0])
        self.assertEqual(self.queue.next_epoch(), 30.0)
        self.assertEqual(len(self.queue.drop_expired(5.0, now=10.0)), 1)
        self.assertIsNone(self.queue.next_epoch())


if __name__ == '__main__':
    unittest.main()
