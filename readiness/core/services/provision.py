"""
ProvisionController — guarded check and install of tracked resources.

The controller is the only writer of the StatusStore.  It enforces a
single-flight guard: at most one backend operation (check or install)
is outstanding per resource id at any time.

Guard policy
────────────
- ``check`` while an operation is in flight **joins** it: the caller
  awaits the outstanding operation and receives its final state.  No
  second backend call is made.
- ``install`` while an operation is in flight is **rejected** with
  ``OperationRejectedInFlight`` before anything is written.

The in-flight entry is released in a ``finally`` block inside the
operation and again by a done-callback on its task, so it is cleared on
success, failure, exception and cancellation alike.  A resource can
never be left ``installing`` or ``checking`` once its operation ends.

Backend errors are recorded on the resource (``failed`` + ``last_error``)
and returned as state.  They are never raised to callers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterable
from datetime import UTC, datetime
from typing import Any

from readiness.adapters.base import ResourceBackend
from readiness.core.errors import (
    BackendError,
    BackendReportedFailure,
    BackendUnavailable,
    InvalidTransition,
    OperationRejectedInFlight,
    UnknownResourceError,
)
from readiness.core.models.resource import (
    INSTALLABLE,
    ResourceKind,
    ResourceState,
    ResourceStatus,
    is_allowed,
)
from readiness.core.models.settings import ResourceSpec
from readiness.core.services.status_store import StatusStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def as_backend_error(exc: BaseException) -> BackendError:
    """Map any backend exception onto the engine's error taxonomy."""
    if isinstance(exc, BackendError):
        return exc
    if isinstance(exc, TimeoutError):
        return BackendUnavailable("Operation timed out")
    return BackendUnavailable(str(exc) or type(exc).__name__)


class ProvisionController:
    """Single-flight check/install coordinator.

    Args:
        store: The StatusStore this controller owns writes to.
        backend: Host backend performing the actual work.
        resources: Specs of every resource that may be checked or installed.
        install_timeout: Seconds before a backend install is abandoned
            and recorded as ``backend_unavailable``.  ``None`` waits forever.
        clock: Source of ``last_checked_at`` timestamps.
    """

    def __init__(
        self,
        store: StatusStore,
        backend: ResourceBackend,
        resources: Iterable[ResourceSpec],
        *,
        install_timeout: float | None = None,
        clock: Clock = _utc_now,
    ) -> None:
        self._store = store
        self._backend = backend
        self._specs: dict[str, ResourceSpec] = {}
        self._install_timeout = install_timeout
        self._clock = clock
        self._in_flight: dict[str, asyncio.Task[ResourceState]] = {}
        self._operations: dict[str, str] = {}

        for spec in resources:
            self._specs[spec.id] = spec
            store.register(spec.id, spec.kind)

    # ── Introspection ───────────────────────────────────────────

    @property
    def store(self) -> StatusStore:
        return self._store

    @property
    def in_flight(self) -> frozenset[str]:
        """Ids with an outstanding guarded operation."""
        return frozenset(self._in_flight)

    def operation_for(self, resource_id: str) -> str | None:
        """``"check"`` / ``"install"`` when in flight, else ``None``."""
        return self._operations.get(resource_id)

    def resource_ids(self) -> list[str]:
        return list(self._specs)

    def spec(self, resource_id: str) -> ResourceSpec:
        spec = self._specs.get(resource_id)
        if spec is None:
            raise UnknownResourceError(resource_id)
        return spec

    # ── Public operations ───────────────────────────────────────

    def submit_check(self, resource_id: str) -> asyncio.Task[ResourceState]:
        """Start a check, or return the operation already in flight."""
        spec = self.spec(resource_id)
        task = self._in_flight.get(resource_id)
        if task is not None:
            logger.debug(
                "check %s joins in-flight %s", resource_id, self._operations.get(resource_id)
            )
            return task
        return self._start(spec, "check", self._run_check)

    async def check(self, resource_id: str) -> ResourceState:
        """Check presence and return the settled state.

        Never raises for backend errors; those end in a ``failed`` state.
        """
        return await asyncio.shield(self.submit_check(resource_id))

    def submit_install(self, resource_id: str) -> asyncio.Task[ResourceState]:
        """Start an install.

        Raises:
            OperationRejectedInFlight: A check or install is outstanding.
            InvalidTransition: The resource is already ready.
        """
        spec = self.spec(resource_id)
        if resource_id in self._in_flight:
            logger.info(
                "install %s rejected: %s in flight",
                resource_id,
                self._operations.get(resource_id),
            )
            raise OperationRejectedInFlight(resource_id)

        current = self._store.get(resource_id)
        if current.status not in INSTALLABLE and current.status != ResourceStatus.UNKNOWN:
            logger.info("install %s rejected: status is %s", resource_id, current.status.value)
            raise InvalidTransition(resource_id, current.status.value, "install")

        return self._start(spec, "install", self._run_install)

    async def install(self, resource_id: str) -> ResourceState:
        """Install a resource and return the settled state.

        Raises only for guard rejections; backend failures end in a
        ``failed`` state with ``last_error`` set.
        """
        return await asyncio.shield(self.submit_install(resource_id))

    async def wait_idle(self) -> None:
        """Wait until no operation is in flight (without cancelling any)."""
        while self._in_flight:
            await asyncio.wait(list(self._in_flight.values()))

    async def shutdown(self) -> None:
        """Cancel outstanding operations and wait for them to settle."""
        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d in-flight operation(s)", len(tasks))

    # ── Guard ───────────────────────────────────────────────────

    def _start(
        self,
        spec: ResourceSpec,
        operation: str,
        body: Callable[[ResourceSpec], Coroutine[Any, Any, ResourceState]],
    ) -> asyncio.Task[ResourceState]:
        loop = asyncio.get_running_loop()
        task = loop.create_task(body(spec), name=f"{operation}:{spec.id}")
        self._in_flight[spec.id] = task
        self._operations[spec.id] = operation
        task.add_done_callback(lambda t: self._on_done(spec.id, t))
        logger.debug("%s %s started", operation, spec.id)
        return task

    def _release(self, resource_id: str) -> None:
        if self._in_flight.get(resource_id) is asyncio.current_task():
            del self._in_flight[resource_id]
            self._operations.pop(resource_id, None)

    def _on_done(self, resource_id: str, task: asyncio.Task[ResourceState]) -> None:
        if self._in_flight.get(resource_id) is task:
            del self._in_flight[resource_id]
            self._operations.pop(resource_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s failed unexpectedly: %s", task.get_name(), exc, exc_info=exc)

    # ── Operation bodies ────────────────────────────────────────

    async def _run_check(self, spec: ResourceSpec) -> ResourceState:
        try:
            return await self._check(spec)
        finally:
            self._release(spec.id)

    async def _run_install(self, spec: ResourceSpec) -> ResourceState:
        try:
            current = self._store.get(spec.id)
            if current.status == ResourceStatus.UNKNOWN:
                current = await self._check(spec)
                if current.status not in INSTALLABLE:
                    logger.info(
                        "install %s skipped: check reported %s", spec.id, current.status.value
                    )
                    return current
            return await self._install(spec, current)
        finally:
            self._release(spec.id)

    async def _check(self, spec: ResourceSpec) -> ResourceState:
        self._apply(spec.id, ResourceStatus.CHECKING)
        try:
            present = await self._probe(spec)
        except asyncio.CancelledError:
            self._apply(
                spec.id,
                ResourceStatus.FAILED,
                error="Check cancelled",
                error_kind=BackendUnavailable.kind,
            )
            raise
        except Exception as e:
            err = as_backend_error(e)
            logger.warning("check %s failed: %s", spec.id, err.detail)
            return self._apply(
                spec.id,
                ResourceStatus.FAILED,
                checked_at=self._clock(),
                error=err.detail,
                error_kind=err.kind,
            )

        status = ResourceStatus.READY if present else ResourceStatus.ABSENT
        return self._apply(spec.id, status, checked_at=self._clock())

    async def _install(self, spec: ResourceSpec, current: ResourceState) -> ResourceState:
        previous = current.status
        self._apply(spec.id, ResourceStatus.INSTALLING, previous_status=previous)
        logger.info("Installing %s", spec.id)

        try:
            if self._install_timeout is not None:
                await asyncio.wait_for(self._install_backend(spec), self._install_timeout)
            else:
                await self._install_backend(spec)
        except asyncio.CancelledError:
            self._apply(
                spec.id,
                ResourceStatus.FAILED,
                error="Install cancelled",
                error_kind=BackendUnavailable.kind,
                previous_status=previous,
            )
            raise
        except Exception as e:
            err = as_backend_error(e)
            if isinstance(e, TimeoutError) and self._install_timeout is not None:
                err = BackendUnavailable(f"Install timed out after {self._install_timeout:g}s")
            logger.warning("install %s failed: %s", spec.id, err.detail)
            return self._apply(
                spec.id,
                ResourceStatus.FAILED,
                error=err.detail,
                error_kind=err.kind,
                previous_status=previous,
            )

        return await self._settle(spec, previous)

    async def _settle(self, spec: ResourceSpec, previous: ResourceStatus) -> ResourceState:
        """Re-check after a successful install and settle the final status."""
        try:
            present = await self._probe(spec)
        except asyncio.CancelledError:
            self._apply(
                spec.id,
                ResourceStatus.FAILED,
                error="Install verification cancelled",
                error_kind=BackendUnavailable.kind,
                previous_status=previous,
            )
            raise
        except Exception as e:
            err = as_backend_error(e)
            logger.warning("verify %s after install failed: %s", spec.id, err.detail)
            return self._apply(
                spec.id,
                ResourceStatus.FAILED,
                checked_at=self._clock(),
                error=f"Install verification failed: {err.detail}",
                error_kind=err.kind,
                previous_status=previous,
            )

        if present:
            logger.info("Installed %s", spec.id)
            return self._apply(spec.id, ResourceStatus.READY, checked_at=self._clock())

        detail = f"Installation finished but '{spec.id}' was not detected"
        logger.warning("install %s: %s", spec.id, detail)
        return self._apply(
            spec.id,
            ResourceStatus.FAILED,
            checked_at=self._clock(),
            error=detail,
            error_kind=BackendReportedFailure.kind,
            previous_status=previous,
        )

    # ── Backend dispatch ────────────────────────────────────────

    async def _probe(self, spec: ResourceSpec) -> bool:
        if spec.kind == ResourceKind.RESOURCE_BUNDLE:
            return bool(await self._backend.check_resource_bundle(spec.id))
        return bool(await self._backend.check_dependency(spec.id))

    async def _install_backend(self, spec: ResourceSpec) -> None:
        if spec.kind == ResourceKind.RESOURCE_BUNDLE:
            await self._backend.install_resource_bundle(spec.id)
        else:
            await self._backend.install_dependency(spec.id)

    # ── Store writes ────────────────────────────────────────────

    def _apply(
        self,
        resource_id: str,
        status: ResourceStatus,
        **changes: Any,
    ) -> ResourceState:
        old = self._store.get(resource_id)
        if not is_allowed(old.status, status):
            raise InvalidTransition(resource_id, old.status.value, f"move to {status.value}")
        new = old.transition(status, **changes)
        self._store.set(resource_id, new)
        return new
