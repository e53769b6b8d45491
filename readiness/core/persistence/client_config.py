"""
Host client config — the JSON file the host reads its servers from.

Installed catalog items live under the ``mcpServers`` key::

    {
        "mcpServers": {
            "filesystem": {"command": "npx", "args": [...], "env": {...}}
        },
        "otherSetting": true
    }

Other top-level fields belong to the host and are preserved untouched.
Writes are atomic (write to temp file, then rename) so the host never
reads a half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

SERVERS_KEY = "mcpServers"
CLIENT_CONFIG_FILE = "claude_desktop_config.json"


class ServerEntry(BaseModel):
    """One launcher entry under ``mcpServers``."""

    command: str = ""
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class ClientConfig(BaseModel):
    """The host client config, with unknown fields kept as-is."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    servers: dict[str, ServerEntry] = Field(default_factory=dict, alias=SERVERS_KEY)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def default_client_config_path() -> Path:
    """Platform location of the host's client config."""
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "Claude" / CLIENT_CONFIG_FILE
    if sys.platform.startswith("win"):
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else home / "AppData" / "Roaming"
        return base / "Claude" / CLIENT_CONFIG_FILE
    return home / ".config" / "Claude" / CLIENT_CONFIG_FILE


def load_client_config(path: Path) -> ClientConfig:
    """Load the client config.

    A missing file yields an empty config.  A corrupt file raises
    ``ValueError``: it belongs to the host and is never overwritten blindly.
    """
    if not path.is_file():
        logger.debug("No client config at %s — starting empty", path)
        return ClientConfig()

    raw = path.read_text(encoding="utf-8")
    if not raw.strip():
        return ClientConfig()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Corrupt client config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {path}, got {type(data).__name__}")
    return ClientConfig.model_validate(data)


def save_client_config(config: ClientConfig, path: Path) -> None:
    """Save the client config (atomic write)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(config.to_json(), indent=2, ensure_ascii=False) + "\n"

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".client_", suffix=".tmp")
    os.close(fd)
    tmp = Path(tmp_path)
    try:
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(path)
        logger.debug("Client config saved to %s", path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
