"""
CatalogInstallStateMachine — install/uninstall toggle for catalog items.

Catalog items have their own, smaller state set, independent of the
resource state machine:

    not_installed → installing → installed      (install)
    installing    → not_installed               (install failed)
    installed     → not_installed               (toggle / uninstall)

``installing`` is entered synchronously before the backend is awaited,
so a second install for the same item is rejected by the state itself.

Uninstall and the backend
─────────────────────────
Flipping an installed item back to ``not_installed`` has no visible
intermediate state.  Whether the backend's ``uninstall_catalog_item`` is
called before the flip is a configuration decision
(``uninstall_via_backend``).  When enabled, a failed backend uninstall
leaves the item ``installed`` with ``last_error`` set, and a second
toggle while the backend call is outstanding is rejected.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine, Iterable
from typing import Any

from pydantic import ValidationError

from readiness.adapters.base import ResourceBackend
from readiness.core.errors import (
    InvalidTransition,
    OperationRejectedInFlight,
    UnknownResourceError,
)
from readiness.core.models.catalog import CatalogItem, InstallStatus
from readiness.core.services.listeners import (
    ALL_KEYS,
    Listener,
    ListenerRegistry,
    StateChange,
    Unsubscribe,
)
from readiness.core.services.provision import as_backend_error

logger = logging.getLogger(__name__)


class CatalogInstallStateMachine:
    """Per-item install state for the catalog view.

    Args:
        backend: Host backend performing installs (and, optionally, uninstalls).
        uninstall_via_backend: Call ``backend.uninstall_catalog_item``
            before flipping an installed item to ``not_installed``.
    """

    def __init__(
        self,
        backend: ResourceBackend,
        *,
        uninstall_via_backend: bool = False,
    ) -> None:
        self._backend = backend
        self._uninstall_via_backend = uninstall_via_backend
        self._lock = threading.Lock()
        self._items: dict[str, CatalogItem] = {}
        self._uninstalling: set[str] = set()
        self._tasks: set[asyncio.Task[CatalogItem]] = set()
        self._seq = 0
        self._listeners = ListenerRegistry()

    # ── Reads ───────────────────────────────────────────────────

    @property
    def uninstall_via_backend(self) -> bool:
        return self._uninstall_via_backend

    def get(self, item_id: str) -> CatalogItem:
        with self._lock:
            item = self._items.get(item_id)
        if item is None:
            raise UnknownResourceError(item_id)
        return item

    def items(self) -> list[CatalogItem]:
        """All items in catalog order."""
        with self._lock:
            return list(self._items.values())

    def installed(self) -> list[CatalogItem]:
        return [item for item in self.items() if item.installed]

    # ── Catalog lifecycle ───────────────────────────────────────

    def load(self, raw_items: Iterable[dict[str, Any] | CatalogItem]) -> list[CatalogItem]:
        """Replace the catalog with freshly fetched items.

        Entries that fail validation are logged and skipped.
        """
        loaded: dict[str, CatalogItem] = {}
        for raw in raw_items:
            try:
                item = raw if isinstance(raw, CatalogItem) else CatalogItem.model_validate(raw)
            except ValidationError as e:
                ident = raw.get("id", "?") if isinstance(raw, dict) else "?"
                logger.warning("Skipping invalid catalog item %s: %s", ident, e)
                continue
            if item.id in loaded:
                logger.warning("Skipping duplicate catalog item %s", item.id)
                continue
            # A half-finished install from a previous fetch never survives a reload.
            if item.install_status == InstallStatus.INSTALLING:
                item = item.with_status(InstallStatus.NOT_INSTALLED)
            loaded[item.id] = item

        with self._lock:
            self._items = loaded
            self._uninstalling.clear()
        logger.info("Loaded %d catalog item(s)", len(loaded))
        return list(loaded.values())

    async def refresh(self) -> list[CatalogItem]:
        """Fetch the catalog from the backend and load it."""
        raw_items = await self._backend.fetch_catalog()
        return self.load(raw_items)

    def teardown(self) -> None:
        """Drop every item and listener (catalog view closed)."""
        for task in list(self._tasks):
            task.cancel()
        with self._lock:
            self._items.clear()
            self._uninstalling.clear()
        self._listeners.clear()

    # ── Transitions ─────────────────────────────────────────────

    def submit_install(
        self, item_id: str, values: dict[str, str] | None = None
    ) -> asyncio.Task[CatalogItem]:
        """Move the item to ``installing`` now and finish the install in a task.

        Raises the same guard errors as ``install`` synchronously.
        """
        item, config = self._begin_install(item_id, values)
        return self._spawn(item_id, self._complete_install(item, config), "install")

    async def install(self, item_id: str, values: dict[str, str] | None = None) -> CatalogItem:
        """Install an item from ``not_installed``.

        Raises:
            InvalidTransition: The item is not ``not_installed``.
            MissingConfigValue: A required env field has no value.

        Backend failures revert the item to ``not_installed`` with
        ``last_error`` set and are not raised.
        """
        item, config = self._begin_install(item_id, values)
        return await self._complete_install(item, config)

    def submit_toggle(self, item_id: str) -> asyncio.Task[CatalogItem]:
        """Start an uninstall; guard errors are raised synchronously."""
        item, pending = self._begin_toggle(item_id)
        return self._spawn(item_id, self._complete_toggle(item, pending), "uninstall")

    async def toggle(self, item_id: str) -> CatalogItem:
        """Flip an ``installed`` item back to ``not_installed``.

        Raises:
            InvalidTransition: The item is not ``installed``.
            OperationRejectedInFlight: A backend uninstall is outstanding.
        """
        item, pending = self._begin_toggle(item_id)
        return await self._complete_toggle(item, pending)

    async def shutdown(self) -> None:
        """Cancel outstanding catalog operations and wait for them."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def is_busy(self, item_id: str) -> bool:
        """Whether an install or backend uninstall is outstanding."""
        with self._lock:
            busy = item_id in self._uninstalling
        return busy or self.get(item_id).install_status == InstallStatus.INSTALLING

    # ── Subscribing ─────────────────────────────────────────────

    def subscribe(self, listener: Listener, key: str = ALL_KEYS) -> Unsubscribe:
        """Call ``listener`` on every subsequent item change for ``key`` (or all)."""
        return self._listeners.add(listener, key)

    # ── Operation halves ────────────────────────────────────────

    def _begin_install(
        self, item_id: str, values: dict[str, str] | None
    ) -> tuple[CatalogItem, list[tuple[str, str]]]:
        item = self.get(item_id)
        if item.install_status != InstallStatus.NOT_INSTALLED:
            if item.install_status == InstallStatus.INSTALLING:
                logger.info("catalog install %s rejected: already installing", item_id)
            raise InvalidTransition(item_id, item.install_status.value, "install")
        config = item.collect_config(values)
        installing = self._replace(
            item.with_status(InstallStatus.INSTALLING), expected=InstallStatus.NOT_INSTALLED
        )
        return installing, config

    async def _complete_install(
        self, item: CatalogItem, config: list[tuple[str, str]]
    ) -> CatalogItem:
        try:
            await self._backend.install_catalog_item(item.id, config)
        except asyncio.CancelledError:
            self._revert_install(item.id, "Install cancelled")
            raise
        except Exception as e:
            err = as_backend_error(e)
            logger.warning("catalog install %s failed: %s", item.id, err.detail)
            return self._replace(
                self._latest(item).with_status(InstallStatus.NOT_INSTALLED, err.detail)
            )

        logger.info("Installed catalog item %s", item.id)
        return self._replace(self._latest(item).with_status(InstallStatus.INSTALLED))

    def _begin_toggle(self, item_id: str) -> tuple[CatalogItem, bool]:
        """Validate a toggle.  Returns ``(item, pending)``.

        Without backend uninstall the flip happens here and ``pending``
        is False.
        """
        item = self.get(item_id)
        if item.install_status != InstallStatus.INSTALLED:
            raise InvalidTransition(item_id, item.install_status.value, "uninstall")

        if not self._uninstall_via_backend:
            logger.info("Uninstalled catalog item %s (local only)", item_id)
            return self._replace(item.with_status(InstallStatus.NOT_INSTALLED)), False

        with self._lock:
            if item_id in self._uninstalling:
                logger.info("catalog uninstall %s rejected: already in progress", item_id)
                raise OperationRejectedInFlight(item_id)
            self._uninstalling.add(item_id)
        return item, True

    async def _complete_toggle(self, item: CatalogItem, pending: bool) -> CatalogItem:
        if not pending:
            return item
        try:
            await self._backend.uninstall_catalog_item(item.id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            err = as_backend_error(e)
            logger.warning("catalog uninstall %s failed: %s", item.id, err.detail)
            return self._replace(self._latest(item).with_status(InstallStatus.INSTALLED, err.detail))
        finally:
            with self._lock:
                self._uninstalling.discard(item.id)

        logger.info("Uninstalled catalog item %s", item.id)
        return self._replace(self._latest(item).with_status(InstallStatus.NOT_INSTALLED))

    # ── Internal ────────────────────────────────────────────────

    def _spawn(
        self,
        item_id: str,
        coro: Coroutine[Any, Any, CatalogItem],
        operation: str,
    ) -> asyncio.Task[CatalogItem]:
        task = asyncio.get_running_loop().create_task(coro, name=f"catalog-{operation}:{item_id}")
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(item_id, t))
        return task

    def _on_done(self, item_id: str, task: asyncio.Task[CatalogItem]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            # Cancelled before its first step: undo what the begin half did.
            with self._lock:
                self._uninstalling.discard(item_id)
            self._revert_install(item_id, "Install cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s failed unexpectedly: %s", task.get_name(), exc, exc_info=exc)

    def _revert_install(self, item_id: str, error: str) -> None:
        with self._lock:
            current = self._items.get(item_id)
        if current is not None and current.install_status == InstallStatus.INSTALLING:
            self._replace(current.with_status(InstallStatus.NOT_INSTALLED, error))

    def _latest(self, item: CatalogItem) -> CatalogItem:
        with self._lock:
            return self._items.get(item.id, item)

    def _replace(
        self,
        item: CatalogItem,
        *,
        expected: InstallStatus | None = None,
    ) -> CatalogItem:
        with self._lock:
            old = self._items.get(item.id)
            if old is None:
                # Torn down while the backend was working; nothing to update.
                logger.debug("catalog item %s gone, dropping late update", item.id)
                return item
            if expected is not None and old.install_status != expected:
                raise InvalidTransition(item.id, old.install_status.value, "install")
            self._items[item.id] = item
            self._seq += 1
            change = StateChange(seq=self._seq, key=item.id, old=old, new=item)

        logger.debug(
            "catalog %s: %s → %s",
            item.id,
            old.install_status.value,
            item.install_status.value,
        )
        self._listeners.dispatch(change)
        return item
