"""
Flatpak autoupdater — CLI entrypoint.

Usage:
    autoupdater --help
    autoupdater poll
    autoupdater apply --force-update
    autoupdater run
    autoupdater status --json
    autoupdater autoinstall list
    autoupdater autoinstall check /etc/flatpak-autoinstall.d/*
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from autoupdater import __version__
from autoupdater.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="autoupdater")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to autoupdater.yml (default: $AUTOUPDATER_CONFIG or /etc/autoupdater).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Flatpak autoupdater — poll for and apply updates, resolve autoinstall files."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging(level=resolve_level(debug=debug, verbose=verbose, quiet=quiet))


def _load_config(ctx: click.Context, **overrides):
    """Load config and apply CLI overrides; exit 1 on ConfigError."""
    from autoupdater.core.config.loader import ConfigError, load_config

    try:
        config = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    updates = {k: v for k, v in overrides.items() if v is not None}
    if updates:
        config = config.model_copy(update=updates)
    return config


def _transport(ctx: click.Context, config):
    """The transport to use: injected via ctx.obj (tests) or the CLI tools.

    Exits 1 when the transport's tools are not installed.
    """
    transport = ctx.obj.get("transport")
    if transport is None:
        from autoupdater.adapters.command import CommandTransport

        transport = CommandTransport(default_timeout=config.transport_timeout_seconds)

    if not transport.is_available():
        click.secho(
            f"❌ Transport '{transport.name}' is not available "
            "(are ostree and flatpak installed?)",
            fg="red",
        )
        sys.exit(1)
    return transport


_STATE_ICONS = {
    "idle": "💤",
    "update_available": "📦",
    "applied": "✅",
}


def _cycle_options(fn):
    """Options shared by the poll/apply/run commands."""
    options = [
        click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON."),
        click.option("--state-dir", type=click.Path(file_okay=False), default=None,
                     help="Directory holding the persisted poll results."),
        click.option("--refspec", default=None, help="REMOTE:REF to track."),
        click.option("--interval-days", type=click.IntRange(min=0), default=None,
                     help="Minimum days between two polls."),
        click.option("--user-visible-delay-days", type=click.IntRange(min=0), default=None,
                     help="Days an update must be known before it is applied."),
        click.option("--force-update", is_flag=True, default=None,
                     help="Apply regardless of the delay and poll regardless of the interval."),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _run_cycle(ctx: click.Context, steps, as_json: bool, **overrides) -> None:
    from autoupdater.core.use_cases.cycle import run_steps

    state_dir = overrides.pop("state_dir", None)
    config = _load_config(
        ctx,
        state_dir=Path(state_dir) if state_dir else None,
        refspec=overrides.get("refspec"),
        interval_days=overrides.get("interval_days"),
        user_visible_update_delay_days=overrides.get("user_visible_delay_days"),
        force_update=overrides.get("force_update") or None,
    )

    result = run_steps(config, _transport(ctx, config), steps)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    quiet = ctx.obj.get("quiet", False)
    for step_result in result.results:
        icon = _STATE_ICONS.get(step_result.state.value, "•")
        if step_result.error:
            click.secho(f"❌ {step_result.step.value}: {step_result.error}", fg="red")
            continue
        if quiet:
            continue
        line = f"{icon} {step_result.step.value}: {step_result.state.value}"
        if step_result.poll_result.update_id:
            line += f" ({step_result.poll_result.update_id})"
        if step_result.skipped_reason:
            line += f" — {step_result.skipped_reason}"
        click.echo(line)

    if result.error and result.retryable:
        click.echo("   Will retry on the next invocation.")

    sys.exit(result.exit_code)


@cli.command()
@_cycle_options
@click.pass_context
def poll(ctx: click.Context, as_json: bool, **overrides) -> None:
    """Check for a new update and persist the result."""
    from autoupdater.core.models.cycle import UpdateStep

    _run_cycle(ctx, [UpdateStep.POLL], as_json, **overrides)


@cli.command()
@_cycle_options
@click.pass_context
def apply(ctx: click.Context, as_json: bool, **overrides) -> None:
    """Apply the previously discovered update once its delay has elapsed."""
    from autoupdater.core.models.cycle import UpdateStep

    _run_cycle(ctx, [UpdateStep.APPLY], as_json, **overrides)


@cli.command()
@_cycle_options
@click.pass_context
def run(ctx: click.Context, as_json: bool, **overrides) -> None:
    """Run the automatic steps up to the configured last_automatic_step."""
    from autoupdater.core.use_cases.cycle import steps_for

    config = _load_config(ctx)
    _run_cycle(ctx, steps_for(config.last_automatic_step), as_json, **overrides)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--state-dir", type=click.Path(file_okay=False), default=None)
@click.option("--history", type=click.IntRange(min=0), default=5, help="Ledger entries to show.")
@click.pass_context
def status(ctx: click.Context, as_json: bool, state_dir: str | None, history: int) -> None:
    """Show the persisted poll result and recent invocations."""
    from datetime import UTC, datetime

    from autoupdater.core.persistence.audit import CycleAuditWriter
    from autoupdater.core.use_cases.cycle import load_poll_result

    config = _load_config(ctx, state_dir=Path(state_dir) if state_dir else None)
    current = load_poll_result(config)
    recent = CycleAuditWriter(config.state_dir).read_recent(history) if history else []

    if as_json:
        click.echo(json.dumps({
            "poll_result": current.model_dump(mode="json"),
            "history": [e.model_dump(mode="json") for e in recent],
        }, indent=2))
        return

    click.secho("\n🔄 Autoupdater status", fg="cyan", bold=True)
    click.echo(f"   State dir: {config.state_dir}")
    if current.empty:
        click.echo("   No update available")
    else:
        click.echo(f"   Update:    {current.update_id}")
        click.echo(f"   Refspec:   {current.update_refspec}")
    if current.last_changed:
        changed = datetime.fromtimestamp(current.last_changed / 1_000_000, UTC)
        click.echo(f"   Changed:   {changed.isoformat()}")

    if recent:
        click.echo()
        click.secho("   Recent invocations:", fg="white", bold=True)
        for entry in recent:
            color = "red" if entry.error else "white"
            click.secho(f"     {entry.timestamp}  {entry.step:<6} → {entry.state}", fg=color)

    click.echo()


# ── Autoinstall ────────────────────────────────────────────────


@cli.group()
def autoinstall() -> None:
    """Inspect and validate Flatpak autoinstall files."""


@autoinstall.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def autoinstall_list(ctx: click.Context, as_json: bool) -> None:
    """Show the flattened action list for this machine."""
    from autoupdater.core.errors import AutoupdaterError
    from autoupdater.core.use_cases.autoinstall import resolve_autoinstall_actions

    config = _load_config(ctx)
    try:
        result = resolve_autoinstall_actions(config)
    except AutoupdaterError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho(
        f"\n📋 Autoinstall actions (arch={result.facts.architecture or '-'}, "
        f"locales={','.join(result.facts.locales) or '-'})",
        fg="cyan",
        bold=True,
    )
    if not result.actions:
        click.echo("   (none)")
    for action in result.actions:
        remote = action.ref.remote or "-"
        click.echo(
            f"   {action.type.value:<9} {action.identity.kind.value:<7} "
            f"{action.identity.name}  [{remote}]  serial={action.serial}  ← {action.source}"
        )
    click.echo()


@autoinstall.command("check")
@click.argument("files", nargs=-1, required=True, type=click.Path(dir_okay=False))
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def autoinstall_check(ctx: click.Context, files: tuple[str, ...], as_json: bool) -> None:
    """Validate autoinstall FILES; exit 1 if any is malformed."""
    from autoupdater.core.use_cases.autoinstall import check_autoinstall_files, facts_for_config

    config = _load_config(ctx)
    checks = check_autoinstall_files([Path(f) for f in files], facts_for_config(config))
    all_ok = all(c.ok for c in checks)

    if as_json:
        click.echo(json.dumps([
            {"path": str(c.path), "ok": c.ok, "actions": c.actions, "error": c.error}
            for c in checks
        ], indent=2))
        sys.exit(0 if all_ok else 1)

    for c in checks:
        if c.ok:
            click.secho(f"✅ {c.path} ({c.actions} actions)", fg="green")
        else:
            click.secho(f"❌ {c.error}", fg="red")

    sys.exit(0 if all_ok else 1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
