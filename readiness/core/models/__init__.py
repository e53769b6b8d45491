"""
Domain models — Pydantic types for the readiness engine.

All models are re-exported here for convenient access:

    from readiness.core.models import ResourceState, ResourceStatus, CatalogItem, HubConfig
"""

from readiness.core.models.catalog import CatalogItem, EnvField, InstallStatus
from readiness.core.models.resource import (
    ALLOWED_TRANSITIONS,
    ResourceKind,
    ResourceState,
    ResourceStatus,
    is_allowed,
)
from readiness.core.models.settings import CatalogSettings, HubConfig, ResourceSpec

__all__ = [
    # resource.py
    "ALLOWED_TRANSITIONS",
    # catalog.py
    "CatalogItem",
    # settings.py
    "CatalogSettings",
    "EnvField",
    "HubConfig",
    "InstallStatus",
    "ResourceKind",
    "ResourceSpec",
    "ResourceState",
    "ResourceStatus",
    "is_allowed",
]
