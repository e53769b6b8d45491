"""
Backend base — the contract between the engine and the host.

The engine never touches the system directly.  Every presence probe,
installer run, catalog fetch and client-config edit goes through a
``ResourceBackend``.  All operations are coroutines: each one is a
suspension point, and nothing else in the engine suspends.

Failure contract:
    - A logical failure (installer exited non-zero, item rejected)
      raises ``BackendReportedFailure(detail)``.
    - A transport / call failure raises ``BackendUnavailable(detail)``.
    - Any other exception is treated by the engine as
      ``BackendUnavailable``.

To create a new backend:
    1. Subclass ResourceBackend
    2. Implement the abstract coroutines
    3. Hand it to ``ReadinessEngine``
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from readiness.core.errors import BackendReportedFailure


class ResourceBackend(ABC):
    """Abstract host backend consumed by the readiness engine."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier (e.g. 'local', 'mock')."""

    # ── Runtime dependencies ────────────────────────────────────

    @abstractmethod
    async def check_dependency(self, name: str) -> bool:
        """Whether the runtime dependency ``name`` is present."""

    @abstractmethod
    async def install_dependency(self, name: str) -> None:
        """Install the runtime dependency ``name``.

        Returns when installation has completed.  Raises on failure.
        """

    # ── Resource bundle ─────────────────────────────────────────

    @abstractmethod
    async def check_resource_bundle(self, name: str) -> bool:
        """Whether the resource bundle ``name`` is loaded."""

    async def install_resource_bundle(self, name: str) -> None:
        """Load the resource bundle ``name``.

        Bundles are provided by the host; by default there is nothing
        the engine can do to install one.
        """
        raise BackendReportedFailure(f"Resource bundle '{name}' cannot be installed by this backend")

    # ── Catalog ─────────────────────────────────────────────────

    @abstractmethod
    async def fetch_catalog(self) -> list[dict[str, Any]]:
        """Raw catalog items, in display order, with dates as strings."""

    @abstractmethod
    async def install_catalog_item(self, item_id: str, config: list[tuple[str, str]]) -> None:
        """Install a catalog item with its ordered configuration pairs."""

    async def uninstall_catalog_item(self, item_id: str) -> None:
        """Remove an installed catalog item.

        Only called when ``catalog.uninstall_via_backend`` is enabled.
        """
        raise BackendReportedFailure(f"Backend '{self.name}' cannot uninstall catalog items")

    # ── Misc ────────────────────────────────────────────────────

    async def open_external_link(self, url: str) -> None:
        """Open ``url`` outside the app.  Fire and forget."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
