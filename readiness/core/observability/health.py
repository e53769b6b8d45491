"""
Health checker — aggregate engine health from components.

Reports whether tracked resources are ready, whether the poll scheduler
is running, and the overall system status.  Used by ``hubctl health``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from readiness.core.models.resource import ResourceStatus
from readiness.core.services.provision import ProvisionController
from readiness.core.services.scheduler import PollScheduler
from readiness.core.services.status_store import StatusStore

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
DEGRADED = "degraded"
UNHEALTHY = "unhealthy"
UNKNOWN = "unknown"


@dataclass
class ComponentHealth:
    """Health of a single component."""

    name: str
    status: str = UNKNOWN  # healthy, degraded, unhealthy, unknown
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class SystemHealth:
    """Aggregate health of the entire engine."""

    status: str = HEALTHY
    timestamp: str = ""
    components: list[ComponentHealth] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    def add(self, component: ComponentHealth) -> None:
        self.components.append(component)
        self._recalculate()

    def _recalculate(self) -> None:
        statuses = [c.status for c in self.components]
        if any(s == UNHEALTHY for s in statuses):
            self.status = UNHEALTHY
        elif any(s == DEGRADED for s in statuses):
            self.status = DEGRADED
        elif all(s == HEALTHY for s in statuses):
            self.status = HEALTHY
        else:
            self.status = UNKNOWN

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "components": [c.to_dict() for c in self.components],
        }


def check_resources(store: StatusStore) -> ComponentHealth:
    """Summarise resource states.

    Any ``failed`` resource makes the component unhealthy; anything not
    yet ``ready`` (absent, unknown, or an operation in flight) degrades it.
    """
    states = store.snapshot()
    if not states:
        return ComponentHealth(
            name="resources",
            status=HEALTHY,
            message="No resources tracked",
        )

    counts: dict[str, int] = {}
    for state in states.values():
        counts[state.status.value] = counts.get(state.status.value, 0) + 1

    total = len(states)
    failed = counts.get(ResourceStatus.FAILED.value, 0)
    ready = counts.get(ResourceStatus.READY.value, 0)

    if failed:
        status = UNHEALTHY
        message = f"{failed}/{total} resources failed"
    elif ready < total:
        status = DEGRADED
        message = f"{ready}/{total} resources ready"
    else:
        status = HEALTHY
        message = f"All {total} resources ready"

    return ComponentHealth(
        name="resources",
        status=status,
        message=message,
        details={
            "counts": counts,
            "resources": {rid: s.to_dict() for rid, s in states.items()},
        },
    )


def check_controller(controller: ProvisionController) -> ComponentHealth:
    """Report operations currently in flight."""
    in_flight = sorted(controller.in_flight)
    details = {rid: controller.operation_for(rid) for rid in in_flight}
    message = f"{len(in_flight)} operation(s) in flight" if in_flight else "Idle"
    return ComponentHealth(
        name="provision",
        status=HEALTHY,
        message=message,
        details={"in_flight": details},
    )


def check_scheduler(scheduler: PollScheduler) -> ComponentHealth:
    """Check whether the poll scheduler is running."""
    details = {
        "running": scheduler.running,
        "interval": scheduler.interval,
        "rounds": scheduler.rounds,
        "resources": list(scheduler.resource_ids),
    }
    if scheduler.running:
        return ComponentHealth(
            name="scheduler",
            status=HEALTHY,
            message=f"Polling every {scheduler.interval:g}s",
            details=details,
        )
    return ComponentHealth(
        name="scheduler",
        status=DEGRADED,
        message="Not polling",
        details=details,
    )


def check_system_health(
    store: StatusStore | None = None,
    controller: ProvisionController | None = None,
    scheduler: PollScheduler | None = None,
) -> SystemHealth:
    """Run all health checks and return aggregate status."""
    health = SystemHealth()

    if store is not None:
        health.add(check_resources(store))

    if controller is not None:
        health.add(check_controller(controller))

    if scheduler is not None:
        health.add(check_scheduler(scheduler))

    logger.debug("System health: %s", health.status)
    return health
