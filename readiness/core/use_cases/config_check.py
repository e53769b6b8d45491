"""
Config check use case — validate readiness.yml and report issues.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from readiness.core.config.loader import ConfigError, find_config_file, load_config
from readiness.core.models.resource import ResourceKind
from readiness.core.models.settings import HubConfig


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: HubConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "resources": self.config.resource_ids() if self.config else [],
            "poll_interval": self.config.poll_interval if self.config else None,
            "uninstall_via_backend": (
                self.config.catalog.uninstall_via_backend if self.config else None
            ),
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate hub configuration and report issues.

    A missing file is not an error: defaults apply and a warning says so.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            result.warnings.append("No readiness.yml found; using built-in defaults.")

    result.config_path = config_path

    try:
        config = load_config(config_path, search=False)
        result.config = config
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    # Semantic checks
    if not config.resources:
        result.warnings.append("No resources defined. Nothing will be checked.")

    for spec in config.resources:
        if spec.kind == ResourceKind.RUNTIME_DEPENDENCY:
            if not spec.install_command:
                result.warnings.append(
                    f"Resource '{spec.id}' has no install_command; install will fail."
                )
            elif shutil.which(spec.install_command[0]) is None:
                result.warnings.append(
                    f"Installer for '{spec.id}' not found on PATH: {spec.install_command[0]}"
                )
        elif not spec.bundle_path and not config.catalog.path:
            result.warnings.append(
                f"Bundle '{spec.id}' has no bundle_path and no catalog path is set."
            )

    catalog_path = config.catalog.path
    if catalog_path and not Path(catalog_path).expanduser().exists():
        result.warnings.append(f"Catalog file does not exist: {catalog_path}")

    result.valid = len(result.errors) == 0
    return result
