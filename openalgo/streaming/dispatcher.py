"""
Subscription command dispatcher.

Validates subscribe/unsubscribe requests on the caller's thread, then
hands them to the connection manager's command worker, which applies
them to the registry and writes the wire frame when streaming.
"""

from concurrent.futures import Future
from typing import Any, Iterable, Optional, Tuple
import logging

from ..exceptions import EncodeError
from .codec import InstrumentLike, MessageCodec, normalize_instruments
from .connection import ConnectionManager
from .types import CommandReceipt, InstrumentKey, Subscription, SubscriptionMode

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """
    Serializes subscription commands through the connection manager.

    Commands are idempotent against the registry: subscribing an existing
    pair or unsubscribing an absent one changes nothing and sends nothing.
    """

    def __init__(self, manager: ConnectionManager, codec: Optional[MessageCodec] = None):
        self.manager = manager
        self.codec = codec or manager.codec

    def subscribe(self, mode: Any, instruments: Iterable[InstrumentLike]) -> Future:
        """
        Add instruments under a mode.

        Args:
            mode: SubscriptionMode, name ("LTP") or code (1)
            instruments: Instrument keys, (exchange, symbol) pairs or mappings

        Returns:
            Future resolving to a CommandReceipt

        Raises:
            EncodeError: Empty or malformed input (nothing is queued)
            StreamStateError: The stream was closed
        """
        mode, keys = self._validate(mode, instruments)
        return self.manager.submit(
            lambda: self._apply_subscribe(mode, keys),
            name=f"subscribe {mode.value}"
        )

    def unsubscribe(self, mode: Any, instruments: Iterable[InstrumentLike]) -> Future:
        """
        Remove instruments from a mode. Same contract as subscribe().
        """
        mode, keys = self._validate(mode, instruments)
        return self.manager.submit(
            lambda: self._apply_unsubscribe(mode, keys),
            name=f"unsubscribe {mode.value}"
        )

    def disconnect(self) -> None:
        """Stop the stream, keeping the registry."""
        self.manager.disconnect()

    @staticmethod
    def _validate(mode: Any, instruments: Iterable[InstrumentLike]
                  ) -> Tuple[SubscriptionMode, Tuple[InstrumentKey, ...]]:
        try:
            mode = SubscriptionMode.parse(mode)
        except ValueError as e:
            raise EncodeError(str(e)) from e
        return mode, normalize_instruments(instruments)

    # ========== Worker side ==========

    def _apply_subscribe(self, mode: SubscriptionMode,
                         keys: Tuple[InstrumentKey, ...]) -> CommandReceipt:
        registry = self.manager.registry
        added = tuple(key for key in keys if registry.add(Subscription(key, mode)))

        sent = False
        if added:
            # Publish before sending so the first ticks pass the reader's filter
            self.manager.publish_active()
            if self.manager.is_streaming:
                sent = self.manager.send_batched(
                    lambda batch: self.codec.encode_subscribe(mode, batch), added
                )
            logger.info(f"Subscribed {len(added)} instrument(s) to {mode.value}")
        else:
            logger.debug(f"Subscribe {mode.value}: already subscribed")

        return CommandReceipt(action="subscribe", mode=mode, applied=added, sent=sent)

    def _apply_unsubscribe(self, mode: SubscriptionMode,
                           keys: Tuple[InstrumentKey, ...]) -> CommandReceipt:
        registry = self.manager.registry
        removed = tuple(key for key in keys if registry.remove(Subscription(key, mode)))

        sent = False
        if removed:
            self.manager.publish_active()
            if self.manager.is_streaming:
                sent = self.manager.send_batched(
                    lambda batch: self.codec.encode_unsubscribe(mode, batch), removed
                )
            logger.info(f"Unsubscribed {len(removed)} instrument(s) from {mode.value}")
        else:
            logger.debug(f"Unsubscribe {mode.value}: nothing to remove")

        return CommandReceipt(action="unsubscribe", mode=mode, applied=removed, sent=sent)
