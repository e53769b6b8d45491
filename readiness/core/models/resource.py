"""
Resource state — the tracked readiness of one runtime prerequisite.

A resource is either a runtime dependency (``node``, ``uv``) or a
resource bundle.  Its ``ResourceState`` is owned by the StatusStore and
replaced wholesale on every transition; states are never mutated in
place.

State machine (initial ``unknown``, no terminal state):

    unknown / absent / ready / failed  → checking     (check requested)
    checking                           → ready        (present)
    checking                           → absent       (absent)
    checking                           → failed       (backend error)
    absent / failed                    → installing   (install requested)
    installing                         → ready        (re-check present)
    installing                         → failed       (install or re-check failed)
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class ResourceKind(StrEnum):
    """What sort of thing a resource is."""

    RUNTIME_DEPENDENCY = "runtime_dependency"
    RESOURCE_BUNDLE = "resource_bundle"


class ResourceStatus(StrEnum):
    """Readiness status of a resource."""

    UNKNOWN = "unknown"
    CHECKING = "checking"
    ABSENT = "absent"
    INSTALLING = "installing"
    READY = "ready"
    FAILED = "failed"


_S = ResourceStatus

ALLOWED_TRANSITIONS: dict[ResourceStatus, frozenset[ResourceStatus]] = {
    _S.UNKNOWN: frozenset({_S.CHECKING}),
    _S.ABSENT: frozenset({_S.CHECKING, _S.INSTALLING}),
    _S.READY: frozenset({_S.CHECKING}),
    _S.FAILED: frozenset({_S.CHECKING, _S.INSTALLING}),
    _S.CHECKING: frozenset({_S.READY, _S.ABSENT, _S.FAILED}),
    _S.INSTALLING: frozenset({_S.READY, _S.FAILED}),
}

# States a check may start from.
CHECKABLE = frozenset({_S.UNKNOWN, _S.ABSENT, _S.READY, _S.FAILED})

# States an install may start from (unknown is resolved by a check first).
INSTALLABLE = frozenset({_S.ABSENT, _S.FAILED})


def is_allowed(old: ResourceStatus, new: ResourceStatus) -> bool:
    """Whether ``old → new`` is an edge of the resource state machine."""
    return new in ALLOWED_TRANSITIONS.get(old, frozenset())


class ResourceState(BaseModel):
    """Immutable snapshot of a resource's readiness."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: ResourceKind = ResourceKind.RUNTIME_DEPENDENCY
    status: ResourceStatus = ResourceStatus.UNKNOWN
    last_checked_at: datetime | None = None
    last_error: str | None = None
    error_kind: str | None = None
    previous_status: ResourceStatus | None = None

    @classmethod
    def unknown(
        cls,
        resource_id: str,
        kind: ResourceKind = ResourceKind.RUNTIME_DEPENDENCY,
    ) -> ResourceState:
        """The state of a resource that was never observed."""
        return cls(id=resource_id, kind=kind)

    @property
    def is_busy(self) -> bool:
        """Whether the state shows an operation in progress."""
        return self.status in (ResourceStatus.CHECKING, ResourceStatus.INSTALLING)

    @property
    def ready(self) -> bool:
        return self.status == ResourceStatus.READY

    def transition(
        self,
        status: ResourceStatus,
        *,
        checked_at: datetime | None = None,
        error: str | None = None,
        error_kind: str | None = None,
        previous_status: ResourceStatus | None = None,
    ) -> ResourceState:
        """Return a new state with ``status`` applied.

        ``last_error`` is only carried by ``failed`` states.
        ``last_checked_at`` only moves forward.
        """
        last_checked = self.last_checked_at
        if checked_at is not None:
            last_checked = checked_at if last_checked is None else max(last_checked, checked_at)

        failed = status == ResourceStatus.FAILED
        return self.model_copy(
            update={
                "status": status,
                "last_checked_at": last_checked,
                "last_error": (error or "unknown error") if failed else None,
                "error_kind": error_kind if failed else None,
                "previous_status": previous_status,
            }
        )

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
