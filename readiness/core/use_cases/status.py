"""
Status use case — run one check round and report every resource.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

from readiness.adapters.base import ResourceBackend
from readiness.core.config.loader import ConfigError, load_config
from readiness.core.engine.orchestrator import ReadinessEngine
from readiness.core.errors import ReadinessError
from readiness.core.models.resource import ResourceState, ResourceStatus
from readiness.core.models.settings import HubConfig


@dataclass
class StatusResult:
    """Settled state of every tracked resource."""

    resources: list[ResourceState] = field(default_factory=list)
    backend: str = ""
    error: str | None = None

    @property
    def ready_count(self) -> int:
        return sum(1 for r in self.resources if r.status == ResourceStatus.READY)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.resources if r.status == ResourceStatus.FAILED)

    @property
    def all_ready(self) -> bool:
        return bool(self.resources) and self.ready_count == len(self.resources)

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        if self.error:
            return {"error": self.error}
        return {
            "backend": self.backend,
            "ready": self.ready_count,
            "total": len(self.resources),
            "resources": [r.to_dict() for r in self.resources],
        }


@dataclass
class OperationResult:
    """Outcome of a single check or install."""

    resource_id: str
    operation: str
    state: ResourceState | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.state is not None and self.state.ready

    def to_dict(self) -> dict:
        result: dict = {"resource": self.resource_id, "operation": self.operation}
        if self.state is not None:
            result["state"] = self.state.to_dict()
        if self.error:
            result["error"] = self.error
        return result


def _resolve(config: HubConfig | None, config_path: Path | None) -> HubConfig:
    return config if config is not None else load_config(config_path)


def get_status(
    config_path: Path | None = None,
    *,
    config: HubConfig | None = None,
    backend: ResourceBackend | None = None,
) -> StatusResult:
    """Check every configured resource once.

    Args:
        config_path: Optional explicit path to readiness.yml.
        config: Already-loaded config (skips loading).
        backend: Backend to use (default: the local machine).
    """
    result = StatusResult()
    try:
        hub = _resolve(config, config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    async def run() -> None:
        engine = _engine(hub, backend)
        async with engine:
            result.backend = engine.backend.name
            states = await engine.check_all()
            result.resources = list(states.values())

    asyncio.run(run())
    return result


def run_operation(
    resource_id: str,
    operation: str,
    config_path: Path | None = None,
    *,
    config: HubConfig | None = None,
    backend: ResourceBackend | None = None,
) -> OperationResult:
    """Run ``check`` or ``install`` for one resource and wait for it to settle.

    Guard rejections and unknown ids are reported in ``error``.
    """
    result = OperationResult(resource_id=resource_id, operation=operation)
    try:
        hub = _resolve(config, config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    async def run() -> None:
        async with _engine(hub, backend) as engine:
            if operation == "install":
                result.state = await engine.request_install(resource_id)
            else:
                result.state = await engine.request_check(resource_id)

    try:
        asyncio.run(run())
    except ReadinessError as e:
        result.error = str(e)
    return result


def _engine(config: HubConfig, backend: ResourceBackend | None) -> ReadinessEngine:
    if backend is None:
        return ReadinessEngine.local(config)
    return ReadinessEngine(config, backend)
