"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from readiness.adapters.mock import MockBackend
from readiness.core.models.resource import ResourceKind
from readiness.core.models.settings import HubConfig, ResourceSpec
from readiness.core.services.provision import ProvisionController
from readiness.core.services.status_store import StatusStore


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def resource_specs() -> list[ResourceSpec]:
    """node + uv runtimes and the resource bundle."""
    return [
        ResourceSpec(id="node", install_command=["true"]),
        ResourceSpec(id="uv", install_command=["true"]),
        ResourceSpec(id="resource-bundle", kind=ResourceKind.RESOURCE_BUNDLE),
    ]


@pytest.fixture
def hub_config(resource_specs: list[ResourceSpec]) -> HubConfig:
    return HubConfig(resources=resource_specs)


@pytest.fixture
def backend() -> MockBackend:
    """Mock backend where nothing is present yet."""
    return MockBackend()


@pytest.fixture
def store() -> StatusStore:
    return StatusStore()


@pytest.fixture
def controller(
    store: StatusStore,
    backend: MockBackend,
    resource_specs: list[ResourceSpec],
) -> ProvisionController:
    return ProvisionController(store, backend, resource_specs)


@pytest.fixture
def catalog_items() -> list[dict]:
    """Raw catalog feed, camelCase keys and string dates as fetched."""
    return [
        {
            "id": "filesystem",
            "title": "Filesystem",
            "description": "Read and write local files",
            "creator": "hub",
            "logoUrl": "https://example.com/fs.png",
            "rating": 4,
            "tags": ["files", "local"],
            "publishDate": "2024-11-25",
            "isInstalled": False,
            "env": {"ROOT_DIR": "~/", "READ_ONLY": "false"},
            "guide": "Point ROOT_DIR at the folder to expose.",
        },
        {
            "id": "github",
            "title": "GitHub",
            "creator": "hub",
            "rating": 7,
            "publishDate": "2024-12-01T10:00:00Z",
            "isInstalled": True,
            "env": [{"name": "GITHUB_TOKEN", "default": "tok"}],
        },
        {
            "id": "weather",
            "title": "Weather",
            "rating": "3.6",
            "env": [{"name": "API_KEY"}],
        },
    ]
