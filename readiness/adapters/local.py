"""
Local backend — probe and provision on this machine.

- Runtime dependencies are probed on PATH (``shutil.which``) and
  installed by running the configured ``install_command``.
- Resource bundles are present when their file exists.
- The catalog is read from a JSON or YAML file; installs are written to
  the host client config under ``mcpServers``.

Installer subprocesses run with proxy variables normalised (upper- and
lower-case variants both set) so downloads behave behind a proxy.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import shlex
import shutil
import sys
import webbrowser
from pathlib import Path
from typing import Any

import yaml

from readiness.adapters.base import ResourceBackend
from readiness.core.errors import BackendReportedFailure, BackendUnavailable
from readiness.core.models.settings import HubConfig, ResourceSpec
from readiness.core.persistence.client_config import (
    ClientConfig,
    ServerEntry,
    default_client_config_path,
    load_client_config,
    save_client_config,
)

logger = logging.getLogger(__name__)

PROXY_VARS = ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY")

# Launchers that need the managed runtime on PATH, keyed by resource id.
LAUNCHER_RUNTIMES = {"npx": "node", "uvx": "uv"}

_STDERR_LIMIT = 2000


def proxied_env(base: dict[str, str] | None = None) -> dict[str, str]:
    """Environment for installer subprocesses with proxies normalised."""
    env = dict(os.environ if base is None else base)
    for name in PROXY_VARS:
        value = env.get(name) or env.get(name.lower())
        if value:
            env[name] = value
            env[name.lower()] = value
    return env


class LocalBackend(ResourceBackend):
    """Backend acting on the local machine, driven by ``HubConfig``."""

    def __init__(
        self,
        config: HubConfig,
        *,
        client_config_path: Path | None = None,
        version_timeout: float = 10.0,
    ) -> None:
        self._config = config
        self._specs: dict[str, ResourceSpec] = {r.id: r for r in config.resources}
        catalog = config.catalog
        self._catalog_path = Path(catalog.path).expanduser() if catalog.path else None
        if client_config_path is None and catalog.client_config_path:
            client_config_path = Path(catalog.client_config_path).expanduser()
        self._client_config_path = client_config_path or default_client_config_path()
        self._version_timeout = version_timeout

    @property
    def name(self) -> str:
        return "local"

    @property
    def client_config_path(self) -> Path:
        return self._client_config_path

    # ── Runtime dependencies ────────────────────────────────────

    async def check_dependency(self, name: str) -> bool:
        """Present when found on PATH, and runnable when ``verify_version`` is set."""
        spec = self._spec(name)
        found = shutil.which(spec.probe, path=self._search_path(name))
        logger.debug("which %s → %s", spec.probe, found)
        if found is None:
            return False
        if spec.verify_version:
            version = await self._run_version(found, spec)
            logger.debug("%s version: %s", spec.id, version)
            return version is not None
        return True

    async def install_dependency(self, name: str) -> None:
        spec = self._spec(name)
        if not spec.install_command:
            raise BackendReportedFailure(f"No install command configured for '{name}'")

        logger.info("Running installer for %s: %s", name, shlex.join(spec.install_command))
        code, stdout, stderr = await self._exec(spec.install_command, self._config.install_timeout)
        if code != 0:
            detail = stderr.strip() or stdout.strip() or f"Installer exited with code {code}"
            raise BackendReportedFailure(detail[-_STDERR_LIMIT:])

    # ── Resource bundle ─────────────────────────────────────────

    async def check_resource_bundle(self, name: str) -> bool:
        path = self._bundle_path(name)
        if path is None:
            logger.debug("No bundle path configured for %s", name)
            return False
        return path.exists()

    # ── Catalog ─────────────────────────────────────────────────

    async def fetch_catalog(self) -> list[dict[str, Any]]:
        raw_items = await asyncio.to_thread(self._read_catalog)
        client = await asyncio.to_thread(self._load_client)
        items = []
        for raw in raw_items:
            item = {k: v for k, v in raw.items() if k != "commandInfo"}
            entry = client.servers.get(str(raw.get("id", "")))
            if entry is not None:
                item["isInstalled"] = True
                if entry.env:
                    item["env"] = _merge_env(raw.get("env"), entry.env)
            items.append(item)
        return items

    async def install_catalog_item(self, item_id: str, config: list[tuple[str, str]]) -> None:
        raw = next(
            (r for r in await asyncio.to_thread(self._read_catalog) if r.get("id") == item_id),
            None,
        )
        if raw is None:
            raise BackendReportedFailure(f"Catalog item '{item_id}' not found")

        info = raw.get("commandInfo") or {}
        command = str(info.get("command", ""))
        if not command:
            raise BackendReportedFailure(f"Catalog item '{item_id}' has no command")
        args = [str(a) for a in info.get("args", [])]
        command, args = self._wrap_launcher(command, args)

        env = {str(k): str(v) for k, v in (info.get("env") or {}).items()}
        env.update(config)
        entry = ServerEntry(command=command, args=args, env=env)

        def write() -> None:
            client = self._load_client()
            client.servers[item_id] = entry
            save_client_config(client, self._client_config_path)

        await asyncio.to_thread(write)
        logger.info("Wrote %s to %s", item_id, self._client_config_path)

    async def uninstall_catalog_item(self, item_id: str) -> None:
        def write() -> None:
            client = self._load_client()
            if client.servers.pop(item_id, None) is not None:
                save_client_config(client, self._client_config_path)

        await asyncio.to_thread(write)
        logger.info("Removed %s from %s", item_id, self._client_config_path)

    async def open_external_link(self, url: str) -> None:
        opened = await asyncio.to_thread(webbrowser.open, url)
        if not opened:
            logger.warning("Could not open %s", url)

    # ── Internal ────────────────────────────────────────────────

    def _spec(self, name: str) -> ResourceSpec:
        spec = self._specs.get(name)
        if spec is None:
            raise BackendReportedFailure(f"Resource '{name}' is not configured")
        return spec

    def _search_path(self, name: str) -> str | None:
        tool_path = self._config.catalog.tool_paths.get(name)
        if not tool_path:
            return None
        return os.pathsep.join([str(Path(tool_path).expanduser()), os.environ.get("PATH", "")])

    def _bundle_path(self, name: str) -> Path | None:
        spec = self._specs.get(name)
        if spec is not None and spec.bundle_path:
            return Path(spec.bundle_path).expanduser()
        return self._catalog_path

    def _wrap_launcher(self, command: str, args: list[str]) -> tuple[str, list[str]]:
        """Put the managed runtime on PATH for ``npx`` / ``uvx`` launchers."""
        runtime = LAUNCHER_RUNTIMES.get(command)
        tool_path = self._config.catalog.tool_paths.get(runtime or "")
        if not runtime or not tool_path:
            return command, args
        if sys.platform.startswith("win"):
            joined = " ".join(args)
            return "cmd", ["/c", f"set PATH=%PATH%;{tool_path} && {command} {joined}"]
        joined = shlex.join(args)
        prefix = shlex.quote(f"{tool_path}:")
        return "sh", ["-c", f'PATH={prefix}"$PATH" {shlex.quote(command)} {joined}']

    async def _run_version(self, binary: str, spec: ResourceSpec) -> str | None:
        """First line of ``<binary> <version_args>``, or ``None`` if it fails."""
        try:
            code, stdout, _ = await self._exec([binary, *spec.version_args], self._version_timeout)
        except BackendUnavailable as e:
            logger.debug("version probe for %s failed: %s", spec.id, e)
            return None
        if code != 0:
            logger.debug("version probe for %s exited with %d", spec.id, code)
            return None
        first = stdout.strip().splitlines()
        return first[0] if first else ""

    def _read_catalog(self) -> list[dict[str, Any]]:
        if self._catalog_path is None:
            raise BackendUnavailable("No catalog path configured")
        try:
            text = self._catalog_path.read_text(encoding="utf-8")
        except OSError as e:
            raise BackendUnavailable(f"Cannot read catalog {self._catalog_path}: {e}") from e

        try:
            if self._catalog_path.suffix.lower() == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise BackendReportedFailure(f"Invalid catalog {self._catalog_path}: {e}") from e

        if isinstance(data, dict):
            data = data.get("servers", [])
        if not isinstance(data, list):
            raise BackendReportedFailure(f"Catalog {self._catalog_path} is not a list")
        return [d for d in data if isinstance(d, dict)]

    def _load_client(self) -> ClientConfig:
        try:
            return load_client_config(self._client_config_path)
        except (OSError, ValueError) as e:
            raise BackendReportedFailure(str(e)) from e

    async def _exec(self, argv: list[str], timeout: float) -> tuple[int, str, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=proxied_env(),
            )
        except OSError as e:
            raise BackendUnavailable(f"Cannot run {argv[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise BackendUnavailable(f"{argv[0]} timed out after {timeout:g}s")
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await asyncio.shield(proc.wait())
            raise

        return (
            proc.returncode or 0,
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
        )


def _merge_env(schema: Any, stored: dict[str, str]) -> Any:
    """Overlay stored values onto the catalog env schema, keeping schema order."""
    if isinstance(schema, dict):
        merged = dict(schema)
        for key, value in stored.items():
            merged[key] = value
        return merged
    if isinstance(schema, list):
        merged_list = []
        for entry in schema:
            if isinstance(entry, dict) and entry.get("name") in stored:
                entry = {**entry, "default": stored[entry["name"]]}
            elif isinstance(entry, str) and entry in stored:
                entry = {"name": entry, "default": stored[entry]}
            merged_list.append(entry)
        return merged_list
    return dict(stored)
