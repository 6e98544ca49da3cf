"""
Subscription registry.

Authoritative set of desired subscriptions. Pure in-memory state: it is
mutated only from the connection manager's command worker, and is the
source used to resubscribe after a reconnect.
"""

from typing import Dict, FrozenSet, Iterable, List, Set, Tuple

from .types import InstrumentKey, MODE_ORDER, Subscription, SubscriptionMode


class SubscriptionRegistry:
    """
    Set of Subscription keyed on (instrument, mode).

    Not thread-safe by itself; callers outside the owning worker must use
    snapshot() or frozen() copies.
    """

    def __init__(self):
        self._entries: Set[Subscription] = set()

    def add(self, subscription: Subscription) -> bool:
        """Insert; True only the first time a pair is added."""
        if subscription in self._entries:
            return False
        self._entries.add(subscription)
        return True

    def remove(self, subscription: Subscription) -> bool:
        """Remove; True if the pair was present."""
        if subscription not in self._entries:
            return False
        self._entries.discard(subscription)
        return True

    def clear(self) -> None:
        self._entries.clear()

    def snapshot(self) -> List[Subscription]:
        """
        Ordered copy of all subscriptions.

        Grouped by mode (LTP, QUOTE, DEPTH), then by exchange and symbol.
        """
        return ordered(self._entries)

    def grouped(self) -> List[Tuple[SubscriptionMode, List[InstrumentKey]]]:
        """Snapshot grouped per mode, skipping empty modes."""
        groups: Dict[SubscriptionMode, List[InstrumentKey]] = {}
        for sub in self.snapshot():
            groups.setdefault(sub.mode, []).append(sub.instrument)
        return [(mode, groups[mode]) for mode in MODE_ORDER if mode in groups]

    def frozen(self) -> FrozenSet[Subscription]:
        """Immutable copy for lock-free reads from other threads."""
        return frozenset(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, subscription: Subscription) -> bool:
        return subscription in self._entries


def _sort_key(subscription: Subscription):
    return (
        MODE_ORDER.index(subscription.mode),
        subscription.instrument.exchange,
        subscription.instrument.symbol,
    )


def ordered(subscriptions: Iterable[Subscription]) -> List[Subscription]:
    """Sort subscriptions by mode order, exchange, then symbol."""
    return sorted(subscriptions, key=_sort_key)
