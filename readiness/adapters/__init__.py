"""Backends — host bindings for the readiness engine.

Public re-exports for convenient access.
"""

from readiness.adapters.base import ResourceBackend
from readiness.adapters.local import LocalBackend
from readiness.adapters.mock import BackendCall, MockBackend

__all__ = [
    "BackendCall",
    "LocalBackend",
    "MockBackend",
    "ResourceBackend",
]
