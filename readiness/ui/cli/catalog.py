"""
CLI commands for the server catalog.

Thin wrappers over ``CatalogInstallStateMachine`` via the engine facade.
"""

from __future__ import annotations

import asyncio
import json
import sys

import click

from readiness.ui.cli.context import load_hub_config, make_backend

_INSTALL_ICONS = {
    "installed": ("✅", "green"),
    "installing": ("📦", "cyan"),
    "not_installed": ("⬜", "white"),
}


def _parse_values(pairs: tuple[str, ...]) -> dict[str, str]:
    values: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{pair}'", param_hint="--set")
        values[key] = value
    return values


@click.group("catalog")
def catalog() -> None:
    """Catalog — browse, install and uninstall servers."""


@catalog.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--installed", "only_installed", is_flag=True, help="Only installed items.")
@click.pass_context
def list_items(ctx: click.Context, as_json: bool, only_installed: bool) -> None:
    """List catalog items and their install status."""
    from readiness.core.engine.orchestrator import ReadinessEngine
    from readiness.core.errors import ReadinessError

    config = load_hub_config(ctx)

    async def run():
        async with ReadinessEngine(config, make_backend(ctx, config)) as engine:
            return await engine.load_catalog()

    try:
        items = asyncio.run(run())
    except ReadinessError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if only_installed:
        items = [item for item in items if item.installed]

    if as_json:
        click.echo(json.dumps([item.to_dict() for item in items], indent=2))
        return

    if not items:
        click.echo("📭 No catalog items")
        return

    click.secho(f"\n📚 Catalog ({len(items)}):", fg="cyan", bold=True)
    for item in items:
        icon, color = _INSTALL_ICONS.get(item.install_status.value, ("❔", "white"))
        stars = "★" * item.rating + "☆" * (5 - item.rating)
        click.secho(f"   {icon} {item.id}", fg=color, bold=True, nl=False)
        click.echo(f"  {item.title}  {stars}")
        if ctx.obj.get("verbose"):
            if item.description:
                click.echo(f"      {item.description}")
            if item.env:
                click.echo(f"      env: {', '.join(item.env_names())}")
    click.echo()


@catalog.command("install")
@click.argument("item_id")
@click.option("--set", "pairs", multiple=True, metavar="KEY=VALUE", help="Env value (repeatable).")
@click.pass_context
def install_item(ctx: click.Context, item_id: str, pairs: tuple[str, ...]) -> None:
    """Install ITEM_ID into the host client config."""
    _toggle(ctx, item_id, _parse_values(pairs), want="installed")


@catalog.command("uninstall")
@click.argument("item_id")
@click.pass_context
def uninstall_item(ctx: click.Context, item_id: str) -> None:
    """Uninstall ITEM_ID."""
    _toggle(ctx, item_id, None, want="not_installed")


def _toggle(ctx: click.Context, item_id: str, values: dict[str, str] | None, want: str) -> None:
    from readiness.core.engine.orchestrator import ReadinessEngine
    from readiness.core.errors import ReadinessError

    config = load_hub_config(ctx)

    async def run():
        async with ReadinessEngine(config, make_backend(ctx, config)) as engine:
            await engine.load_catalog()
            current = engine.catalog.get(item_id)
            if current.install_status.value == want:
                return current, False
            return await engine.request_catalog_toggle(item_id, values), True

    try:
        item, changed = asyncio.run(run())
    except ReadinessError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if item.last_error:
        click.secho(f"❌ {item.id}: {item.last_error}", fg="red")
        sys.exit(1)
    if not changed:
        click.echo(f"ℹ️  {item.id} is already {want.replace('_', ' ')}")
        return

    icon, color = _INSTALL_ICONS.get(item.install_status.value, ("❔", "white"))
    click.secho(f"{icon} {item.id}: {item.install_status.value.replace('_', ' ')}", fg=color)
