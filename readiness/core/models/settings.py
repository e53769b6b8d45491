"""
Hub configuration model — loaded from readiness.yml.

Declares which resources the engine tracks, how each is probed and
installed, how often they are polled, and where the catalog lives.
Every field has a default so an absent file yields a working setup.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from readiness.core.models.resource import ResourceKind

DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_INSTALL_TIMEOUT = 600.0


class ResourceSpec(BaseModel):
    """A resource the engine tracks.

    For runtime dependencies, ``binary`` is probed on PATH (defaults to
    the resource id) and ``install_command`` is run to install it.  With
    ``verify_version`` the binary must also exit 0 on ``version_args``.
    For bundles, ``bundle_path`` is checked for existence.
    """

    id: str
    kind: ResourceKind = ResourceKind.RUNTIME_DEPENDENCY
    description: str = ""
    binary: str | None = None
    version_args: list[str] = Field(default_factory=lambda: ["--version"])
    verify_version: bool = False
    install_command: list[str] = Field(default_factory=list)
    bundle_path: str | None = None

    @property
    def probe(self) -> str:
        """The executable name probed for presence."""
        return self.binary or self.id


class CatalogSettings(BaseModel):
    """Where catalog items come from and where installs are written."""

    path: str | None = None
    client_config_path: str | None = None
    uninstall_via_backend: bool = False
    tool_paths: dict[str, str] = Field(default_factory=dict)


def default_resources() -> list[ResourceSpec]:
    """The prerequisites the hub needs out of the box."""
    return [
        ResourceSpec(
            id="node",
            description="Node.js runtime (provides npx)",
            binary="node",
        ),
        ResourceSpec(
            id="uv",
            description="uv Python package manager (provides uvx)",
            binary="uv",
        ),
        ResourceSpec(
            id="resource-bundle",
            kind=ResourceKind.RESOURCE_BUNDLE,
            description="Catalog resource bundle",
        ),
    ]


class HubConfig(BaseModel):
    """Root configuration for the readiness engine."""

    version: int = 1
    poll_interval: float = DEFAULT_POLL_INTERVAL
    install_timeout: float = DEFAULT_INSTALL_TIMEOUT
    resources: list[ResourceSpec] = Field(default_factory=default_resources)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)

    @field_validator("poll_interval", "install_timeout")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @model_validator(mode="after")
    def _unique_ids(self) -> HubConfig:
        ids = [r.id for r in self.resources]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            raise ValueError(f"duplicate resource ids: {', '.join(dupes)}")
        return self

    def get_resource(self, resource_id: str) -> ResourceSpec | None:
        """Look up a resource spec by id."""
        for spec in self.resources:
            if spec.id == resource_id:
                return spec
        return None

    def resource_ids(self) -> list[str]:
        return [r.id for r in self.resources]
