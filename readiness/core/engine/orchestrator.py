"""
Readiness engine — the facade the presentation layer talks to.

Wires the pieces together from a HubConfig and a backend:

    StatusStore  ←  ProvisionController  ←  PollScheduler
    CatalogInstallStateMachine

Every ``request_*`` method returns immediately: either an
``asyncio.Task`` whose result is the settled state, or a synchronous
guard error.  Results also flow to subscribers, so callers that only
render state never need to await anything.

Subscriptions made through the engine are tracked and released by
``close()``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from typing import Any

from readiness.adapters.base import ResourceBackend
from readiness.core.errors import OperationRejectedInFlight
from readiness.core.models.catalog import CatalogItem, InstallStatus
from readiness.core.models.resource import ResourceState
from readiness.core.models.settings import HubConfig
from readiness.core.services.catalog_machine import CatalogInstallStateMachine
from readiness.core.services.listeners import Listener, Unsubscribe
from readiness.core.services.provision import ProvisionController
from readiness.core.services.scheduler import AsyncSleep, Clock, PollScheduler
from readiness.core.services.status_store import StatusStore

logger = logging.getLogger(__name__)


class ReadinessEngine:
    """Composes store, controller, scheduler and catalog for one backend."""

    def __init__(
        self,
        config: HubConfig,
        backend: ResourceBackend,
        *,
        store: StatusStore | None = None,
        async_sleep: AsyncSleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        self.config = config
        self.backend = backend
        self.store = store if store is not None else StatusStore()
        self.controller = ProvisionController(
            self.store,
            backend,
            config.resources,
            install_timeout=config.install_timeout,
        )
        self.scheduler = PollScheduler(self.controller, async_sleep=async_sleep, clock=clock)
        self.catalog = CatalogInstallStateMachine(
            backend,
            uninstall_via_backend=config.catalog.uninstall_via_backend,
        )
        self._subscriptions: dict[int, Unsubscribe] = {}
        self._next_sub = 0
        self._background: set[asyncio.Task[Any]] = set()
        self._closed = False

    @classmethod
    def local(cls, config: HubConfig, **kwargs: Any) -> ReadinessEngine:
        """Engine acting on this machine."""
        from readiness.adapters.local import LocalBackend

        return cls(config, LocalBackend(config), **kwargs)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscription_count(self) -> int:
        """Subscriptions made through the engine and not yet released."""
        return len(self._subscriptions)

    # ── Subscriptions ───────────────────────────────────────────

    def subscribe(self, key: str, listener: Listener) -> Unsubscribe:
        """Receive every resource state change for ``key`` (or ``"*"``)."""
        return self._track(self.store.subscribe(listener, key))

    def subscribe_catalog(self, key: str, listener: Listener) -> Unsubscribe:
        """Receive every catalog item change for ``key`` (or ``"*"``)."""
        return self._track(self.catalog.subscribe(listener, key))

    # ── Resource requests ───────────────────────────────────────

    def request_check(self, resource_id: str) -> asyncio.Task[ResourceState]:
        """Check ``resource_id`` (joins an operation already in flight)."""
        return self.controller.submit_check(resource_id)

    def request_install(self, resource_id: str) -> asyncio.Task[ResourceState]:
        """Install ``resource_id``.

        Raises:
            OperationRejectedInFlight: Something is already running for it.
            InvalidTransition: It is already ready.
        """
        return self.controller.submit_install(resource_id)

    async def check_all(self, resource_ids: Iterable[str] | None = None) -> dict[str, ResourceState]:
        """Run one check round and wait for every result."""
        ids = list(resource_ids) if resource_ids is not None else self.controller.resource_ids()
        states = await asyncio.gather(*(self.controller.check(rid) for rid in ids))
        return dict(zip(ids, states, strict=True))

    def snapshot(self) -> dict[str, ResourceState]:
        return self.store.snapshot()

    # ── Polling ─────────────────────────────────────────────────

    def start_polling(
        self,
        resource_ids: Iterable[str] | None = None,
        interval: float | None = None,
    ) -> None:
        """Poll the given ids (default: every configured resource)."""
        ids = list(resource_ids) if resource_ids is not None else self.controller.resource_ids()
        for rid in ids:
            self.controller.spec(rid)
        self.scheduler.start(
            ids,
            interval if interval is not None else self.config.poll_interval,
        )

    def stop_polling(self) -> None:
        self.scheduler.stop()

    # ── Catalog ─────────────────────────────────────────────────

    async def load_catalog(self) -> list[CatalogItem]:
        return await self.catalog.refresh()

    def request_catalog_toggle(
        self,
        item_id: str,
        values: dict[str, str] | None = None,
    ) -> asyncio.Task[CatalogItem]:
        """Install a ``not_installed`` item or uninstall an ``installed`` one.

        ``values`` fills the item's env fields on install.

        Raises:
            OperationRejectedInFlight: The item is installing.
            MissingConfigValue: A required env field has no value.
        """
        item = self.catalog.get(item_id)
        if item.install_status == InstallStatus.INSTALLING:
            logger.info("catalog toggle %s rejected: install in progress", item_id)
            raise OperationRejectedInFlight(item_id)
        if item.install_status == InstallStatus.NOT_INSTALLED:
            return self.catalog.submit_install(item_id, values)
        return self.catalog.submit_toggle(item_id)

    def open_external_link(self, url: str) -> None:
        """Open ``url`` in the host browser without waiting for it."""
        task = asyncio.get_running_loop().create_task(
            self.backend.open_external_link(url), name="open-link"
        )
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        """Stop polling, cancel outstanding work and release subscriptions.

        Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True

        self.scheduler.stop()
        await self.scheduler.wait_closed()
        await self.controller.shutdown()
        await self.catalog.shutdown()

        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        released = len(self._subscriptions)
        for unsubscribe in list(self._subscriptions.values()):
            unsubscribe()
        self._subscriptions.clear()
        self.catalog.teardown()
        logger.debug("Engine closed, released %d subscription(s)", released)

    async def __aenter__(self) -> ReadinessEngine:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ── Internal ────────────────────────────────────────────────

    def _track(self, unsubscribe: Unsubscribe) -> Unsubscribe:
        token = self._next_sub
        self._next_sub += 1
        self._subscriptions[token] = unsubscribe

        def release() -> None:
            self._subscriptions.pop(token, None)
            unsubscribe()

        return release

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("%s failed: %s", task.get_name(), exc)

