"""
StatusStore — the single authoritative map of resource readiness.

Every presentation surface reads from and subscribes to this store, so
they all see the same state.  Only the ProvisionController writes to it.

Thread safety model
───────────────────
- ``_lock`` protects ``_states``, ``_seq`` and ``_history``.
- ``_dispatch_lock`` is held across a whole ``set`` (write + fan-out)
  so listeners observe changes in sequence order even when writers
  run on different threads.  It is re-entrant: a listener may call
  ``set`` from inside its callback.
- ``get`` never takes ``_dispatch_lock``, so readers are not blocked
  by a slow listener.

Each change carries a monotonically increasing ``seq`` and the previous
state, and is kept in a bounded history for inspection.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any

from readiness.core.models.resource import ResourceKind, ResourceState
from readiness.core.services.listeners import (
    ALL_KEYS,
    Listener,
    ListenerRegistry,
    StateChange,
    Unsubscribe,
)

logger = logging.getLogger(__name__)


class StatusStore:
    """Thread-safe resource state map with change subscriptions.

    Parameters
    ----------
    history_size : int
        Maximum number of transitions kept for ``history()``.
        Older transitions are silently discarded.
    """

    def __init__(self, *, history_size: int = 500) -> None:
        self._lock = threading.Lock()
        self._dispatch_lock = threading.RLock()
        self._states: dict[str, ResourceState] = {}
        self._kinds: dict[str, ResourceKind] = {}
        self._seq = 0
        self._history: deque[StateChange[ResourceState]] = deque(maxlen=history_size)
        self._listeners = ListenerRegistry()

    # ── Properties ──────────────────────────────────────────────

    @property
    def seq(self) -> int:
        """Sequence number of the latest change."""
        with self._lock:
            return self._seq

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    # ── Reads ───────────────────────────────────────────────────

    def register(self, resource_id: str, kind: ResourceKind) -> None:
        """Declare a resource's kind so ``get`` reports it before any check."""
        with self._lock:
            self._kinds[resource_id] = kind

    def get(self, resource_id: str) -> ResourceState:
        """Current state of ``resource_id``; ``unknown`` if never observed."""
        with self._lock:
            state = self._states.get(resource_id)
            if state is not None:
                return state
            kind = self._kinds.get(resource_id, ResourceKind.RUNTIME_DEPENDENCY)
        return ResourceState.unknown(resource_id, kind)

    def snapshot(self) -> dict[str, ResourceState]:
        """Current state of every registered or observed resource."""
        with self._lock:
            ids = list(dict.fromkeys([*self._kinds, *self._states]))
        return {rid: self.get(rid) for rid in ids}

    def history(self, resource_id: str | None = None) -> list[StateChange[ResourceState]]:
        """Recorded transitions, oldest first, optionally for one resource."""
        with self._lock:
            changes = list(self._history)
        if resource_id is None:
            return changes
        return [c for c in changes if c.key == resource_id]

    # ── Writes ──────────────────────────────────────────────────

    def set(self, resource_id: str, state: ResourceState) -> StateChange[ResourceState]:
        """Replace the state of ``resource_id`` and notify subscribers."""
        if state.id != resource_id:
            raise ValueError(f"State id {state.id!r} does not match key {resource_id!r}")

        with self._dispatch_lock:
            with self._lock:
                old = self._states.get(resource_id)
                self._states[resource_id] = state
                self._seq += 1
                change = StateChange(seq=self._seq, key=resource_id, old=old, new=state)
                self._history.append(change)

            logger.debug(
                "state %s: %s → %s (seq=%d)",
                resource_id,
                old.status.value if old else "unknown",
                state.status.value,
                change.seq,
            )
            self._listeners.dispatch(change)
        return change

    # ── Subscribing ─────────────────────────────────────────────

    def subscribe(self, listener: Listener, key: str = ALL_KEYS) -> Unsubscribe:
        """Call ``listener`` on every subsequent ``set`` for ``key`` (or all).

        Returns an idempotent unsubscribe function.
        """
        return self._listeners.add(listener, key)

    def clear_subscribers(self) -> None:
        self._listeners.clear()

    def to_dict(self) -> dict[str, Any]:
        return {rid: state.to_dict() for rid, state in self.snapshot().items()}
