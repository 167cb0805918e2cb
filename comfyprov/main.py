"""
comfyprov — CLI entrypoint.

Usage:
    python -m comfyprov.main --help
    comfyprov provision
    comfyprov provision --dry-run --plugins custom_nodes.txt
    comfyprov verify
    comfyprov config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from comfyprov import __version__
from comfyprov.core.observability.logging_config import add_file_handler, setup_logging

_STATUS_MARKS = {
    "ok": ("✓", "green"),
    "skipped": ("⊘", "yellow"),
    "failed": ("✗", "red"),
}


@click.group()
@click.version_option(version=__version__, prog_name="comfyprov")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to provision.yml (default: auto-detect, else built-in defaults).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """comfyprov — provision a GPU machine for ComfyUI and its plugins."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("COMFYPROV_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("COMFYPROV_LOG_FILE"),
        log_file_level=os.environ.get("COMFYPROV_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


def _load_config(ctx: click.Context, **overrides):
    """Load the config for a command, exiting with a message if invalid."""
    from comfyprov.core.config.loader import ConfigError, apply_overrides, load_config

    try:
        config = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)
    return apply_overrides(config, **overrides)


def _print_steps(ctx: click.Context, steps: list) -> None:
    for step in steps:
        mark, color = _STATUS_MARKS.get(step.status, ("?", "white"))
        click.secho(f"   {mark} {step.step_name}", fg=color, nl=False)
        timing = f" ({step.duration_ms}ms)" if step.duration_ms else ""
        click.echo(timing)
        if step.failed and step.message:
            for line in step.message.split("\n")[:5]:
                click.echo(f"     │ {line}")
        elif ctx.obj.get("verbose") and step.message:
            for line in step.message.split("\n")[-5:]:
                click.echo(f"     │ {line}")


def _print_pipeline(ctx: click.Context, pipeline, title: str) -> None:
    click.secho(f"\n⚡ {title}", fg="cyan", bold=True)
    click.echo()
    _print_steps(ctx, list(pipeline.log.entries))
    click.echo()
    if pipeline.aborted:
        click.secho(f"❌ ERROR: {pipeline.failed_step} failed", fg="red", bold=True)
    else:
        color = "green" if pipeline.failed == 0 else "yellow"
        click.secho(
            f"   Result: {pipeline.succeeded}/{pipeline.total} succeeded",
            fg=color,
            bold=True,
        )


# ── provision ───────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--repo", envvar="COMFYUI_REPO", default=None, help="Application repository URL.")
@click.option("--branch", envvar="COMFYUI_BRANCH", default=None, help="Application branch.")
@click.option(
    "--plugins",
    "plugins_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Plugin repository list (one URL per line).",
)
@click.option("--workspace", default=None, help="Workspace root (default: /workspace).")
@click.option("--dry-run", is_flag=True, help="Validate every step but execute none.")
@click.option("--mock", is_flag=True, help="Use mock adapter (no real execution).")
@click.pass_context
def provision(
    ctx: click.Context,
    as_json: bool,
    repo: str | None,
    branch: str | None,
    plugins_file: str | None,
    workspace: str | None,
    dry_run: bool,
    mock: bool,
) -> None:
    """Provision this machine: system, app, plugins, pins, verification.

    Examples:

        comfyprov provision

        COMFYUI_BRANCH=dev comfyprov provision --plugins nodes.txt

        comfyprov provision --dry-run
    """
    from comfyprov.core.use_cases.provision import run_provisioning

    config = _load_config(
        ctx,
        repo=repo,
        branch=branch,
        plugins=Path(plugins_file) if plugins_file else None,
        workspace=workspace,
    )

    if not dry_run and not mock:
        add_file_handler(config.log_path, "INFO")

    result = run_provisioning(config, dry_run=dry_run, mock_mode=mock)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    assert result.pipeline is not None
    mode_label = "[dry-run] " if dry_run else "[mock] " if mock else ""
    _print_pipeline(ctx, result.pipeline, f"{mode_label}provision — {config.name}")

    if result.repositories and result.repositories.warnings:
        click.echo()
        click.secho("⚠️  Plugin list warnings:", fg="yellow")
        for warn in result.repositories.warnings:
            click.echo(f"   • {warn}")

    if result.pipeline.aborted:
        click.echo()
        sys.exit(1)

    if not ctx.obj.get("quiet") and not dry_run:
        click.echo()
        click.secho("✅ Provisioning Complete!", fg="green", bold=True)
        click.echo(f"   App: {config.app.path}")
        click.echo(f"   Logs: {config.log_path}")
        if config.wrappers.enabled:
            click.echo(f"   Start: {config.wrappers.start_script}")
    click.echo()


# ── plugins ─────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--plugins",
    "plugins_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Plugin repository list (default: from config or the app checkout).",
)
@click.pass_context
def plugins(ctx: click.Context, as_json: bool, plugins_file: str | None) -> None:
    """Show the plugin repositories and their target directories."""
    from comfyprov.core.use_cases.plugins import list_plugins

    config = _load_config(ctx, plugins=Path(plugins_file) if plugins_file else None)
    result = list_plugins(config)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    repositories = result.repositories
    assert repositories is not None
    click.secho(f"\n🔌 Plugins: {len(repositories)}", fg="cyan", bold=True)
    click.echo(f"   List: {result.list_path or '(none)'}")
    click.echo(f"   Into: {result.plugins_dir}")
    click.echo()
    for entry in repositories.entries:
        special = " (special case)" if entry.special_case else ""
        click.echo(f"   • {entry.destination_name}{special}  ← {entry.source_url}")

    if repositories.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in repositories.warnings:
            click.echo(f"   • {warn}")
    click.echo()


# ── relock / wrappers ───────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--dry-run", is_flag=True, help="Show what would run.")
@click.pass_context
def relock(ctx: click.Context, as_json: bool, dry_run: bool) -> None:
    """Re-install the pinned package versions."""
    from comfyprov.core.use_cases.maintenance import run_relock

    config = _load_config(ctx)
    result = run_relock(config, dry_run=dry_run)
    _finish_maintenance(ctx, result, as_json, "relock")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--workspace", default=None, help="Workspace root (default: /workspace).")
@click.option("--dry-run", is_flag=True, help="Show what would be written.")
@click.pass_context
def wrappers(ctx: click.Context, as_json: bool, workspace: str | None, dry_run: bool) -> None:
    """Regenerate the start script and container entrypoint."""
    from comfyprov.core.use_cases.maintenance import write_wrappers

    config = _load_config(ctx, workspace=workspace)
    result = write_wrappers(config, dry_run=dry_run)
    _finish_maintenance(ctx, result, as_json, "wrappers")


def _finish_maintenance(ctx: click.Context, result, as_json: bool, title: str) -> None:
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    label = "[dry-run] " if result.dry_run else ""
    _print_pipeline(ctx, result.pipeline, f"{label}{title}")
    click.echo()
    if result.pipeline.aborted:
        sys.exit(1)


# ── verify ──────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def verify(ctx: click.Context, as_json: bool) -> None:
    """Check the provisioned runtime: torch, GPU, pins, imports, compute."""
    from comfyprov.core.use_cases.verify import run_verification

    config = _load_config(ctx)
    result = run_verification(config)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.passed:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    verification = result.verification
    assert verification is not None
    click.secho(f"\n🧪 Verification ({result.python})", fg="cyan", bold=True)
    click.echo()

    icons = {
        "passed": ("✅", "green"),
        "warning": ("⚠️ ", "yellow"),
        "skipped": ("⊘", "white"),
        "failed": ("❌", "red"),
    }
    for outcome in verification.details:
        icon, color = icons.get(outcome.status, ("❔", "white"))
        click.secho(f"   {icon} {outcome.name}: ", fg=color, nl=False)
        click.echo(outcome.message)

    click.echo()
    if verification.passed:
        click.secho("   PASSED", fg="green", bold=True)
        click.echo()
        return
    click.secho("   FAILED", fg="red", bold=True)
    click.echo()
    sys.exit(1)


# ── log ─────────────────────────────────────────────────────────


@cli.command("log")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("-n", "count", default=20, show_default=True, help="Number of entries.")
@click.option("--failed", "failures_only", is_flag=True, help="Only failed steps.")
@click.option(
    "--file",
    "log_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Step log file (default: from config).",
)
@click.pass_context
def log_cmd(
    ctx: click.Context,
    as_json: bool,
    count: int,
    failures_only: bool,
    log_file: str | None,
) -> None:
    """Show recent entries of the step log."""
    from comfyprov.core.use_cases.history import step_history

    config = _load_config(ctx)
    result = step_history(
        config,
        n=count,
        failures_only=failures_only,
        path=Path(log_file) if log_file else None,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if not result.entries:
        click.secho(f"No step log entries in {result.path}", fg="yellow")
        return

    click.secho(f"\n📜 {result.path}", fg="cyan", bold=True)
    click.echo()
    for entry in result.entries:
        mark, color = _STATUS_MARKS.get(entry.status, ("?", "white"))
        click.echo(f"   {entry.timestamp[:19]} ", nl=False)
        click.secho(f"{mark} {entry.step_name}", fg=color, nl=False)
        click.echo(f" [{entry.policy.value}]")
        if entry.failed and entry.message:
            click.echo(f"     │ {entry.message.splitlines()[0]}")
    click.echo()


# ── config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Provisioning configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate provision.yml configuration."""
    from comfyprov.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.config is not None  # guaranteed when valid
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Name: {result.config.name}")
        click.echo(f"   Source: {result.config_path or 'built-in defaults'}")
        click.echo(f"   Pins: {len(result.config.pins)}")
        click.echo(f"   App: {result.config.app.repo} ({result.config.app.branch})")
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


if __name__ == "__main__":
    cli()
