"""
Shared helpers for CLI commands — config and backend resolution.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from readiness.adapters.base import ResourceBackend
from readiness.core.models.settings import HubConfig


def load_hub_config(ctx: click.Context) -> HubConfig:
    """Load readiness.yml for this invocation, exiting on errors."""
    from readiness.core.config.loader import ConfigError, load_config

    config_path: Path | None = ctx.obj.get("config_path")
    try:
        return load_config(config_path)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


def make_backend(ctx: click.Context, config: HubConfig) -> ResourceBackend:
    """Local backend, or a mock where every configured resource is present."""
    if ctx.obj.get("mock"):
        from readiness.adapters.mock import MockBackend

        return MockBackend(present=set(config.resource_ids()))

    from readiness.adapters.local import LocalBackend

    return LocalBackend(config)


STATUS_STYLES = {
    "ready": ("✅", "green"),
    "absent": ("⬜", "yellow"),
    "failed": ("❌", "red"),
    "checking": ("🔄", "cyan"),
    "installing": ("📦", "cyan"),
    "unknown": ("❔", "white"),
}
