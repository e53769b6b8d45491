"""
Error taxonomy for the readiness engine.

Backend errors (``BackendUnavailable``, ``BackendReportedFailure``) are
raised by backends and caught at the controller boundary, where they are
recorded on the resource state.  They never travel further up.

Guard errors (``OperationRejectedInFlight``, ``InvalidTransition``) are
raised to the caller of ``install`` / ``check`` / ``toggle`` and never
alter stored state.
"""

from __future__ import annotations


class ReadinessError(Exception):
    """Base class for every error raised by the engine."""

    kind: str = "readiness_error"


# ── Backend errors ──────────────────────────────────────────────


class BackendError(ReadinessError):
    """A backend operation failed."""

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail


class BackendUnavailable(BackendError):
    """The backend could not be reached or the call itself failed."""

    kind = "backend_unavailable"


class BackendReportedFailure(BackendError):
    """The backend ran the operation and reported a logical failure."""

    kind = "backend_reported_failure"


# ── Guard errors ────────────────────────────────────────────────


class OperationRejectedInFlight(ReadinessError):
    """An operation is already outstanding for this identifier."""

    kind = "operation_rejected_in_flight"

    def __init__(self, key: str) -> None:
        super().__init__(f"An operation is already in progress for '{key}'")
        self.key = key


class InvalidTransition(ReadinessError):
    """The requested operation is not valid from the current state."""

    kind = "invalid_transition"

    def __init__(self, key: str, current: str, operation: str) -> None:
        super().__init__(f"Cannot {operation} '{key}' while it is {current}")
        self.key = key
        self.current = current
        self.operation = operation


class UnknownResourceError(ReadinessError):
    """The identifier does not name a configured resource or catalog item."""

    kind = "unknown_resource"

    def __init__(self, key: str) -> None:
        super().__init__(f"Unknown resource: '{key}'")
        self.key = key


class MissingConfigValue(ReadinessError):
    """A catalog item's env field has neither a value nor a default."""

    kind = "missing_config_value"

    def __init__(self, item_id: str, fields: list[str]) -> None:
        super().__init__(
            f"Missing configuration for '{item_id}': {', '.join(fields)}"
        )
        self.item_id = item_id
        self.fields = fields
