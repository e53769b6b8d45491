"""
Mock backend — scripted test double for every backend operation.

Used by the test suite and by ``hubctl --mock`` to drive the engine
without touching the machine.  Presence, failures and completion timing
are configurable per resource id; every call is logged, and the number
of concurrently outstanding operations per id is tracked so tests can
assert the single-flight invariant.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from readiness.adapters.base import ResourceBackend
from readiness.core.errors import BackendReportedFailure


@dataclass
class BackendCall:
    """One recorded backend invocation."""

    operation: str
    key: str
    args: dict[str, Any] = field(default_factory=dict)


class MockBackend(ResourceBackend):
    """Universal mock backend.

    By default nothing is present, installs succeed and make the
    resource present, and every call completes immediately.

    Args:
        present: Initially present dependencies / loaded bundles.
        catalog: Raw catalog items returned by ``fetch_catalog``.
        install_makes_present: Whether a successful install flips presence.
    """

    def __init__(
        self,
        present: set[str] | None = None,
        catalog: list[dict[str, Any]] | None = None,
        *,
        install_makes_present: bool = True,
        backend_name: str = "mock",
    ) -> None:
        self._name = backend_name
        self.present: set[str] = set(present or ())
        self.catalog: list[dict[str, Any]] = list(catalog or [])
        self.install_makes_present = install_makes_present
        self.installed_items: dict[str, list[tuple[str, str]]] = {}
        self.opened_links: list[str] = []

        self._failures: dict[tuple[str, str], BaseException] = {}
        self._gates: dict[tuple[str, str], asyncio.Event] = {}
        self._call_log: list[BackendCall] = []
        self._outstanding: dict[str, int] = defaultdict(int)
        self._max_outstanding: dict[str, int] = defaultdict(int)

    @property
    def name(self) -> str:
        return self._name

    # ── Scripting ───────────────────────────────────────────────

    def set_failure(self, operation: str, key: str, error: BaseException | str = "Mock failure") -> None:
        """Make ``operation`` on ``key`` fail.

        A string becomes ``BackendReportedFailure(error)``.
        """
        if isinstance(error, str):
            error = BackendReportedFailure(error)
        self._failures[(operation, key)] = error

    def clear_failure(self, operation: str, key: str) -> None:
        self._failures.pop((operation, key), None)

    def hold(self, operation: str, key: str) -> asyncio.Event:
        """Block ``operation`` on ``key`` until the returned event is set."""
        gate = asyncio.Event()
        self._gates[(operation, key)] = gate
        return gate

    def release(self, operation: str, key: str) -> None:
        gate = self._gates.pop((operation, key), None)
        if gate is not None:
            gate.set()

    # ── Inspection ──────────────────────────────────────────────

    @property
    def call_log(self) -> list[BackendCall]:
        return self._call_log

    def calls(self, operation: str | None = None, key: str | None = None) -> list[BackendCall]:
        return [
            c
            for c in self._call_log
            if (operation is None or c.operation == operation) and (key is None or c.key == key)
        ]

    def call_count(self, operation: str | None = None, key: str | None = None) -> int:
        return len(self.calls(operation, key))

    def outstanding(self, key: str) -> int:
        """Operations currently running for ``key``."""
        return self._outstanding[key]

    def max_outstanding(self, key: str) -> int:
        """Highest number of simultaneously running operations seen for ``key``."""
        return self._max_outstanding[key]

    def reset(self) -> None:
        """Clear call log, failures and gates."""
        self._call_log.clear()
        self._failures.clear()
        for gate in self._gates.values():
            gate.set()
        self._gates.clear()
        self._outstanding.clear()
        self._max_outstanding.clear()

    # ── Backend operations ──────────────────────────────────────

    async def check_dependency(self, name: str) -> bool:
        await self._run("check", name)
        return name in self.present

    async def install_dependency(self, name: str) -> None:
        await self._run("install", name)
        if self.install_makes_present:
            self.present.add(name)

    async def check_resource_bundle(self, name: str) -> bool:
        await self._run("check", name)
        return name in self.present

    async def install_resource_bundle(self, name: str) -> None:
        await self._run("install", name)
        if self.install_makes_present:
            self.present.add(name)

    async def fetch_catalog(self) -> list[dict[str, Any]]:
        await self._run("fetch_catalog", "*")
        return [dict(item) for item in self.catalog]

    async def install_catalog_item(self, item_id: str, config: list[tuple[str, str]]) -> None:
        await self._run("install_item", item_id, config=list(config))
        self.installed_items[item_id] = list(config)

    async def uninstall_catalog_item(self, item_id: str) -> None:
        await self._run("uninstall_item", item_id)
        self.installed_items.pop(item_id, None)

    async def open_external_link(self, url: str) -> None:
        self._call_log.append(BackendCall("open_link", url))
        self.opened_links.append(url)

    # ── Internal ────────────────────────────────────────────────

    async def _run(self, operation: str, key: str, **args: Any) -> None:
        self._call_log.append(BackendCall(operation, key, args))
        self._outstanding[key] += 1
        self._max_outstanding[key] = max(self._max_outstanding[key], self._outstanding[key])
        try:
            gate = self._gates.get((operation, key))
            if gate is not None:
                await gate.wait()
            else:
                # Still a suspension point, like any real backend call.
                await asyncio.sleep(0)
            error = self._failures.get((operation, key))
            if error is not None:
                raise error
        finally:
            self._outstanding[key] -= 1
