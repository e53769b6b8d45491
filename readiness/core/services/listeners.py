"""
Listener registry — keyed subscriptions shared by the state holders.

Both the StatusStore and the catalog state machine fan changes out to
listeners registered either for one key or for every key (``"*"``).

    unsubscribe = registry.add(on_change, key="node")
    ...
    unsubscribe()   # idempotent

Listeners are called outside the registry lock.  A listener that raises
is logged and skipped; it never breaks delivery to the others.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

ALL_KEYS = "*"

T = TypeVar("T")


@dataclass(frozen=True)
class StateChange(Generic[T]):
    """One state replacement, as delivered to listeners."""

    seq: int
    key: str
    old: T | None
    new: T
    ts: float = field(default_factory=time.time)


Listener = Callable[[StateChange], None]
Unsubscribe = Callable[[], None]


class ListenerRegistry:
    """Thread-safe set of keyed listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._listeners: dict[int, tuple[str, Listener]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def add(self, listener: Listener, key: str = ALL_KEYS) -> Unsubscribe:
        """Register ``listener`` for ``key`` and return its unsubscribe handle."""
        with self._lock:
            token = next(self._ids)
            self._listeners[token] = (key, listener)

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return unsubscribe

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def dispatch(self, change: StateChange) -> int:
        """Deliver ``change`` to matching listeners.  Returns the delivery count."""
        with self._lock:
            targets = [
                listener
                for key, listener in self._listeners.values()
                if key == ALL_KEYS or key == change.key
            ]

        delivered = 0
        for listener in targets:
            try:
                listener(change)
                delivered += 1
            except Exception:
                logger.exception("Listener %r failed for key=%s", listener, change.key)
        return delivered
