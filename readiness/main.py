"""
Readiness hub — CLI entrypoint.

Usage:
    hubctl --help
    hubctl status
    hubctl install node
    hubctl watch --interval 5
    hubctl catalog list
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click

from readiness import __version__
from readiness.core.observability.logging_config import resolve_level, setup_logging
from readiness.ui.cli.context import STATUS_STYLES, load_hub_config, make_backend


@click.group()
@click.version_option(version=__version__, prog_name="hubctl")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to readiness.yml (default: auto-detect).",
)
@click.option("--mock", is_flag=True, help="Use the mock backend (nothing is touched).")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    mock: bool,
) -> None:
    """Readiness hub — check and provision local prerequisites."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["mock"] = mock
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        quiet_third_party=not debug,
    )


def _print_state(state_dict: dict) -> None:
    icon, color = STATUS_STYLES.get(state_dict["status"], ("❔", "white"))
    click.secho(f"   {icon} {state_dict['id']}", fg=color, bold=True, nl=False)
    click.echo(f"  {state_dict['status']}")
    if state_dict.get("last_error"):
        click.echo(f"      {state_dict['last_error']}")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Check every configured resource once and show the result."""
    from readiness.core.use_cases.status import get_status

    config = load_hub_config(ctx)
    result = get_status(config=config, backend=make_backend(ctx, config))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error or result.failed_count else 0)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if not ctx.obj.get("quiet"):
        click.secho(
            f"\n🔎 Resources ({result.ready_count}/{len(result.resources)} ready)",
            fg="cyan",
            bold=True,
        )
    for state in result.resources:
        _print_state(state.to_dict())
    click.echo()

    if result.failed_count:
        sys.exit(1)


def _run_single(ctx: click.Context, resource_id: str, operation: str, as_json: bool) -> None:
    from readiness.core.use_cases.status import run_operation

    config = load_hub_config(ctx)
    result = run_operation(
        resource_id, operation, config=config, backend=make_backend(ctx, config)
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    assert result.state is not None  # set whenever there is no error
    _print_state(result.state.to_dict())
    if not result.ok:
        sys.exit(1)


@cli.command()
@click.argument("resource_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(ctx: click.Context, resource_id: str, as_json: bool) -> None:
    """Check whether RESOURCE_ID is present."""
    _run_single(ctx, resource_id, "check", as_json)


@cli.command()
@click.argument("resource_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(ctx: click.Context, resource_id: str, as_json: bool) -> None:
    """Install RESOURCE_ID (checks first if its state is unknown)."""
    _run_single(ctx, resource_id, "install", as_json)


@cli.command()
@click.option("--interval", "-i", type=float, default=None, help="Seconds between rounds.")
@click.option("--rounds", "-n", type=int, default=None, help="Stop after N rounds.")
@click.argument("resource_ids", nargs=-1)
@click.pass_context
def watch(
    ctx: click.Context,
    interval: float | None,
    rounds: int | None,
    resource_ids: tuple[str, ...],
) -> None:
    """Poll resources and print every state change (Ctrl-C to stop)."""
    from readiness.core.engine.orchestrator import ReadinessEngine
    from readiness.core.errors import ReadinessError

    config = load_hub_config(ctx)
    if interval is not None and interval <= 0:
        click.secho("❌ --interval must be greater than zero", fg="red")
        sys.exit(1)

    def on_change(change) -> None:
        new = change.new.to_dict()
        old = change.old.status.value if change.old is not None else "—"
        icon, color = STATUS_STYLES.get(new["status"], ("❔", "white"))
        click.secho(f"{icon} {new['id']}: {old} → {new['status']}", fg=color)
        if new.get("last_error"):
            click.echo(f"   {new['last_error']}")

    async def run() -> None:
        async with ReadinessEngine(config, make_backend(ctx, config)) as engine:
            engine.subscribe("*", on_change)
            engine.start_polling(resource_ids or None, interval)
            tick = engine.scheduler.interval / 4
            while rounds is None or engine.scheduler.rounds < rounds:
                await asyncio.sleep(tick)
            engine.stop_polling()
            await engine.controller.wait_idle()

    try:
        asyncio.run(run())
    except ReadinessError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def health(ctx: click.Context, as_json: bool) -> None:
    """Show engine health — resources and in-flight operations."""
    from readiness.core.engine.orchestrator import ReadinessEngine
    from readiness.core.observability.health import SystemHealth, check_system_health

    config = load_hub_config(ctx)

    async def run() -> SystemHealth:
        async with ReadinessEngine(config, make_backend(ctx, config)) as engine:
            await engine.check_all()
            return check_system_health(store=engine.store, controller=engine.controller)

    system_health = asyncio.run(run())

    if as_json:
        click.echo(json.dumps(system_health.to_dict(), indent=2))
        return

    status_icons = {
        "healthy": ("💚", "green"),
        "degraded": ("🟡", "yellow"),
        "unhealthy": ("🔴", "red"),
        "unknown": ("❔", "white"),
    }
    icon, color = status_icons.get(system_health.status, ("❔", "white"))

    click.echo()
    click.secho(f"{icon} System Health: {system_health.status.upper()}", fg=color, bold=True)
    click.echo(f"   {system_health.timestamp}")
    click.echo()

    for component in system_health.components:
        c_icon, c_color = status_icons.get(component.status, ("❔", "white"))
        click.secho(f"   {c_icon} {component.name}", fg=c_color, bold=True)
        click.echo(f"      {component.message}")

        if ctx.obj.get("verbose") and component.details:
            for key, val in component.details.items():
                if key == "resources":
                    continue
                click.echo(f"      {key}: {val}")

    click.echo()


@cli.group()
def config() -> None:
    """Hub configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate readiness.yml configuration."""
    from readiness.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)
        return

    if result.valid:
        assert result.config is not None  # guaranteed when valid
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        if result.config_path:
            click.echo(f"   File: {result.config_path}")
        click.echo(f"   Resources: {', '.join(result.config.resource_ids())}")
        click.echo(f"   Poll interval: {result.config.poll_interval:g}s")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


# ── Sub-groups ──────────────────────────────────────────────────

from readiness.ui.cli.catalog import catalog  # noqa: E402

cli.add_command(catalog)


if __name__ == "__main__":
    cli()
