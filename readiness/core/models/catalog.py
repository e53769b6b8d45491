"""
Catalog models — installable items shown on the discover page.

Raw catalog entries arrive with camelCase keys and string dates::

    {
        "id": "filesystem",
        "title": "Filesystem",
        "creator": "hub",
        "logoUrl": "https://...",
        "rating": 4,
        "tags": ["files"],
        "publishDate": "2024-11-25",
        "isInstalled": false,
        "env": {"ROOT_DIR": "~/"},
        "guide": "..."
    }

``env`` is turned into an ordered list of ``EnvField`` descriptors so
the configuration form is always collected in the catalog's order.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from readiness.core.errors import MissingConfigValue

logger = logging.getLogger(__name__)

MIN_RATING = 0
MAX_RATING = 5


class InstallStatus(StrEnum):
    """Install status of a catalog item."""

    NOT_INSTALLED = "not_installed"
    INSTALLING = "installing"
    INSTALLED = "installed"


class EnvField(BaseModel):
    """One configuration field a catalog item needs before install."""

    model_config = ConfigDict(frozen=True)

    name: str
    default: str = ""
    description: str = ""
    required: bool = True


def _parse_env(value: Any) -> list[dict[str, Any]] | Any:
    """Accept ``{name: default}`` mappings or lists of descriptors."""
    if value is None:
        return []
    if isinstance(value, dict):
        return [
            {"name": str(name), "default": "" if default is None else str(default)}
            for name, default in value.items()
        ]
    if isinstance(value, list):
        fields = []
        for entry in value:
            if isinstance(entry, str):
                fields.append({"name": entry})
            else:
                fields.append(entry)
        return fields
    return value


def _parse_date(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable publish date %r, leaving it empty", value)
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


class CatalogItem(BaseModel):
    """A discoverable, installable server package."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    title: str = ""
    description: str = ""
    creator: str = ""
    logo_url: str = Field(default="", alias="logoUrl")
    rating: int = 0
    tags: list[str] = Field(default_factory=list)
    publish_date: datetime | None = Field(default=None, alias="publishDate")
    env: list[EnvField] = Field(default_factory=list)
    guide: str = ""
    install_status: InstallStatus = Field(
        default=InstallStatus.NOT_INSTALLED, alias="installStatus"
    )
    last_error: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_raw(cls, data: Any) -> Any:
        if isinstance(data, dict) and "isInstalled" in data and "installStatus" not in data:
            data = dict(data)
            installed = bool(data.pop("isInstalled"))
            data["installStatus"] = (
                InstallStatus.INSTALLED if installed else InstallStatus.NOT_INSTALLED
            )
        return data

    @field_validator("rating", mode="before")
    @classmethod
    def _clamp_rating(cls, value: Any) -> int:
        try:
            rating = int(round(float(value)))
        except (TypeError, ValueError):
            return MIN_RATING
        return max(MIN_RATING, min(MAX_RATING, rating))

    @field_validator("publish_date", mode="before")
    @classmethod
    def _publish_date(cls, value: Any) -> datetime | None:
        return _parse_date(value)

    @field_validator("env", mode="before")
    @classmethod
    def _env(cls, value: Any) -> Any:
        return _parse_env(value)

    @field_validator("env")
    @classmethod
    def _unique_env(cls, value: list[EnvField]) -> list[EnvField]:
        seen: set[str] = set()
        for env_field in value:
            if env_field.name in seen:
                raise ValueError(f"duplicate env field: {env_field.name}")
            seen.add(env_field.name)
        return value

    @property
    def installed(self) -> bool:
        return self.install_status == InstallStatus.INSTALLED

    def env_names(self) -> list[str]:
        """Env field names in display (and collection) order."""
        return [f.name for f in self.env]

    def collect_config(self, values: dict[str, str] | None = None) -> list[tuple[str, str]]:
        """Build the ordered config pairs to hand to the backend.

        Values supplied by the user win; otherwise the field default is
        used.  Required fields that end up empty raise
        ``MissingConfigValue``.  Keys not in the schema are ignored.
        """
        values = values or {}
        pairs: list[tuple[str, str]] = []
        missing: list[str] = []
        for env_field in self.env:
            value = values.get(env_field.name, env_field.default)
            if env_field.required and not value:
                missing.append(env_field.name)
            pairs.append((env_field.name, value))
        if missing:
            raise MissingConfigValue(self.id, missing)
        return pairs

    def with_status(self, status: InstallStatus, error: str | None = None) -> CatalogItem:
        """Return a copy with a new install status."""
        return self.model_copy(update={"install_status": status, "last_error": error})

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
