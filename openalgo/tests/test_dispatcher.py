"""
Tests for the command dispatcher.

The worker side is exercised through a mocked connection manager that
runs submitted commands inline.
"""

from concurrent.futures import Future
from unittest.mock import Mock

import pytest

from openalgo.exceptions import EncodeError
from openalgo.streaming.codec import MessageCodec
from openalgo.streaming.dispatcher import CommandDispatcher
from openalgo.streaming.registry import SubscriptionRegistry
from openalgo.streaming.types import InstrumentKey, Subscription, SubscriptionMode

RELIANCE = InstrumentKey("NSE", "RELIANCE")
TCS = InstrumentKey("NSE", "TCS")


def run_inline(fn, name="command"):
    future = Future()
    future.set_result(fn())
    return future


@pytest.fixture
def manager():
    manager = Mock()
    manager.registry = SubscriptionRegistry()
    manager.codec = MessageCodec()
    manager.is_streaming = True
    manager.submit.side_effect = run_inline
    manager.send_batched.return_value = True
    return manager


@pytest.fixture
def dispatcher(manager):
    return CommandDispatcher(manager)


class TestValidation:
    """Input is rejected before anything is queued."""

    @pytest.mark.parametrize("instruments", [[], [("NSE", "")], [{"symbol": "TCS"}]])
    def test_bad_instruments(self, dispatcher, manager, instruments):
        with pytest.raises(EncodeError):
            dispatcher.subscribe("LTP", instruments)

        manager.submit.assert_not_called()
        assert len(manager.registry) == 0

    def test_bad_mode(self, dispatcher, manager):
        with pytest.raises(EncodeError, match="mode"):
            dispatcher.unsubscribe("FULL", [RELIANCE])

        manager.submit.assert_not_called()


class TestApply:
    """Worker-side registry updates and sends."""

    def test_subscribe_updates_registry_and_sends(self, dispatcher, manager):
        receipt = dispatcher.subscribe(1, [RELIANCE, TCS]).result()

        assert receipt.action == "subscribe"
        assert receipt.mode is SubscriptionMode.LTP
        assert receipt.applied == (RELIANCE, TCS)
        assert receipt.sent is True
        assert Subscription(RELIANCE, SubscriptionMode.LTP) in manager.registry
        manager.publish_active.assert_called()
        manager.send_batched.assert_called_once()

    def test_subscribe_existing_sends_nothing(self, dispatcher, manager):
        dispatcher.subscribe("QUOTE", [RELIANCE]).result()
        manager.send_batched.reset_mock()

        receipt = dispatcher.subscribe("QUOTE", [RELIANCE]).result()

        assert receipt.applied == ()
        assert receipt.sent is False
        manager.send_batched.assert_not_called()

    def test_not_streaming_only_updates_registry(self, dispatcher, manager):
        manager.is_streaming = False

        receipt = dispatcher.subscribe("DEPTH", [TCS]).result()

        assert receipt.applied == (TCS,)
        assert receipt.sent is False
        manager.send_batched.assert_not_called()

    def test_send_failure_keeps_registry(self, dispatcher, manager):
        """A failed write is reported in the receipt; the registry keeps the change."""
        manager.send_batched.return_value = False

        receipt = dispatcher.subscribe("LTP", [TCS]).result()

        assert receipt.sent is False
        assert Subscription(TCS, SubscriptionMode.LTP) in manager.registry

    def test_unsubscribe_removes_only_present(self, dispatcher, manager):
        dispatcher.subscribe("LTP", [RELIANCE]).result()

        receipt = dispatcher.unsubscribe("LTP", [RELIANCE, TCS]).result()

        assert receipt.applied == (RELIANCE,)
        assert len(manager.registry) == 0

    def test_unsubscribe_frame_content(self, dispatcher, manager):
        dispatcher.subscribe("LTP", [RELIANCE]).result()
        dispatcher.unsubscribe("LTP", [RELIANCE]).result()

        encode, instruments = manager.send_batched.call_args[0]
        assert instruments == (RELIANCE,)
        assert '"action":"unsubscribe"' in encode(list(instruments))

    def test_disconnect_delegates(self, dispatcher, manager):
        dispatcher.disconnect()
        manager.disconnect.assert_called_once()
