"""
Tests for the event channel: ordering, backpressure, drop-oldest, close.
"""

import queue
import threading
import time

import pytest

from openalgo.streaming.channel import EventChannel, OverflowPolicy


class TestEventChannel:
    """Bounded FIFO behaviour."""

    def test_fifo_order(self):
        channel = EventChannel(maxsize=10)
        for i in range(5):
            channel.put(i)

        assert [channel.get(timeout=0.1) for _ in range(5)] == [0, 1, 2, 3, 4]

    def test_get_timeout_raises_empty(self):
        channel = EventChannel()
        with pytest.raises(queue.Empty):
            channel.get(timeout=0.05)

    def test_block_policy_waits_for_consumer(self):
        """A full BLOCK channel holds the producer until space frees up."""
        channel = EventChannel(maxsize=1, poll_interval=0.01)
        channel.put("a")
        done = threading.Event()

        def producer():
            channel.put("b")
            done.set()

        threading.Thread(target=producer, daemon=True).start()
        time.sleep(0.05)
        assert not done.is_set()

        assert channel.get(timeout=1) == "a"
        assert done.wait(timeout=1)
        assert channel.get(timeout=1) == "b"
        assert channel.dropped == 0

    def test_blocked_put_is_cancellable(self):
        channel = EventChannel(maxsize=1, poll_interval=0.01)
        channel.put("a")
        cancel = threading.Event()
        result = []

        thread = threading.Thread(target=lambda: result.append(channel.put("b", cancel=cancel)))
        thread.start()
        cancel.set()
        channel.wake()
        thread.join(timeout=1)

        assert result == [False]
        assert channel.qsize() == 1

    def test_drop_oldest_policy(self):
        """A full DROP_OLDEST channel discards the oldest event and counts it."""
        channel = EventChannel(maxsize=2, overflow=OverflowPolicy.DROP_OLDEST)
        for i in range(5):
            assert channel.put(i) is True

        assert [channel.get(timeout=0), channel.get(timeout=0)] == [3, 4]
        assert channel.qsize() == 0
        assert channel.dropped == 3

    def test_close_drains_then_ends(self):
        """After close, buffered events are still read, then None."""
        channel = EventChannel()
        channel.put("a")
        channel.close()

        assert channel.put("b") is False
        assert channel.get(timeout=0.1) == "a"
        assert channel.get(timeout=0.1) is None
        assert channel.closed

    def test_close_wakes_blocked_consumer(self):
        channel = EventChannel()
        result = []
        thread = threading.Thread(target=lambda: result.append(channel.get()))
        thread.start()

        time.sleep(0.02)
        channel.close()
        thread.join(timeout=1)

        assert result == [None]

    def test_iteration_stops_on_close(self):
        channel = EventChannel()
        for i in range(3):
            channel.put(i)
        channel.close()

        assert list(channel) == [0, 1, 2]

    def test_policy_accepts_string(self):
        assert EventChannel(overflow="drop_oldest").overflow is OverflowPolicy.DROP_OLDEST

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            EventChannel(maxsize=0)
