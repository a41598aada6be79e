"""
Workstation Provisioner — CLI entrypoint.

Usage:
    provisioner --help
    provisioner plan
    provisioner run
    provisioner config check
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from provisioner import __version__
from provisioner.core.config.loader import load_config
from provisioner.core.engine.step import Step
from provisioner.core.errors import ConfigError
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.report import RunReport, StepResult
from provisioner.core.observability.logging_config import configure_logging

_OUTCOME_STYLE = {
    "ran": ("✓", "green"),
    "skipped": ("⊘", "bright_black"),
    "failed": ("✗", "red"),
}


@click.group()
@click.version_option(version=__version__, prog_name="provisioner")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to provision.yml (default: auto-detect).",
)
@click.option("--log-file", default=None, help="Also write a full log to this file.")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    log_file: str | None,
) -> None:
    """Workstation Provisioner — idempotent setup of a fresh Ubuntu desktop."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # Options are loaded once; commands report a ConfigError themselves
    config: ProvisionConfig | None = None
    try:
        config = load_config(ctx.obj["config_path"])
    except ConfigError as e:
        ctx.obj["config_error"] = str(e)
    ctx.obj["config"] = config

    configure_logging(
        debug=debug,
        verbose=verbose or (config is not None and config.verbose),
        quiet=quiet,
        log_file=log_file,
        config_log_file=config.log_file if config else None,
    )


def _require_config(ctx: click.Context) -> ProvisionConfig:
    config = ctx.obj.get("config")
    if config is None:
        click.secho(f"❌ {ctx.obj.get('config_error', 'No configuration')}", fg="red")
        sys.exit(1)
    return config


def _print_step(step: Step, result: StepResult) -> None:
    marker, color = _OUTCOME_STYLE[result.outcome.value]
    click.secho(f"   {marker} {step.name} ", fg=color, nl=False)
    if result.failed:
        kind = result.error_kind.value if result.error_kind else "error"
        click.echo(f"[{kind}] {result.error}")
    elif result.skipped:
        click.secho(f"({result.reason})", fg="bright_black")
    else:
        click.echo(f"({result.duration_ms / 1000:.1f}s)")


def _print_summary(report: RunReport) -> None:
    click.echo()
    color = "red" if report.aborted else "yellow" if report.failed else "green"
    click.secho(f"   {report.summary()}", fg=color, bold=True)

    notices = [r for r in report.results if r.ran and r.notice]
    if notices:
        click.echo()
        click.secho("   ℹ️  Notes:", fg="cyan")
        for r in notices:
            click.echo(f"     • {r.step}: {r.notice}")

    if report.failures:
        click.echo()
        click.secho("   Failed steps:", fg="red", bold=True)
        for r in report.failures:
            kind = r.error_kind.value if r.error_kind else "error"
            critical = " (critical)" if r.critical else ""
            click.echo(f"     • {r.step} [{kind}]{critical}: {r.error}")
    click.echo()


# ── run ─────────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--only", "only", multiple=True, help="Run only the named step(s).")
@click.option(
    "--steps",
    "steps_path",
    type=click.Path(exists=False),
    default=None,
    help="Step file to run instead of the configured one.",
)
@click.option("--dry-run", is_flag=True, help="Check probes but don't execute actions.")
@click.option("--mock", is_flag=True, help="Use mock actions (no real execution).")
@click.pass_context
def run(
    ctx: click.Context,
    as_json: bool,
    only: tuple[str, ...],
    steps_path: str | None,
    dry_run: bool,
    mock: bool,
) -> None:
    """Provision this machine, skipping whatever is already in place.

    Examples:

        provisioner run

        provisioner run --only docker --only docker-group

        provisioner run --dry-run
    """
    from provisioner.core.use_cases.provision import run_provisioning

    config = _require_config(ctx)
    quiet = ctx.obj.get("quiet", False)

    if not as_json and not quiet:
        mode_label = "[dry-run] " if dry_run else "[mock] " if mock else ""
        click.secho(f"\n⚡ {mode_label}Provisioning", fg="cyan", bold=True)
        click.echo()

    result = run_provisioning(
        config=config,
        steps_path=Path(steps_path) if steps_path else None,
        only=list(only) or None,
        dry_run=dry_run,
        mock_mode=mock,
        on_step=None if (as_json or quiet) else _print_step,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error or result.report is None:
        click.secho(f"❌ {result.error or 'No report produced'}", fg="red")
        sys.exit(1)

    _print_summary(result.report)
    sys.exit(result.exit_code)


# ── plan ────────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--steps",
    "steps_path",
    type=click.Path(exists=False),
    default=None,
    help="Step file to inspect instead of the configured one.",
)
@click.pass_context
def plan(ctx: click.Context, as_json: bool, steps_path: str | None) -> None:
    """Show which steps are already satisfied and which would run."""
    from provisioner.core.use_cases.provision import plan_provisioning

    _require_config(ctx)
    result = plan_provisioning(
        config_path=ctx.obj.get("config_path"),
        steps_path=Path(steps_path) if steps_path else None,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"\n📋 {len(result.steps)} steps, {result.pending} pending", fg="cyan", bold=True)
    for s in result.steps:
        critical = " (critical)" if s.critical else ""
        if s.disabled_by:
            click.secho(f"   ⊘ {s.name}{critical}  disabled by {s.disabled_by}", fg="bright_black")
        elif s.present:
            click.secho(f"   ✓ {s.name}{critical}  present", fg="green")
        else:
            click.secho(f"   • {s.name}{critical}  ", fg="yellow", nl=False)
            click.echo(f"→ {s.action}")
    click.echo()


# ── config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Options file commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate provision.yml and the step file."""
    from provisioner.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Options: {result.config_path or '(defaults)'}")
        click.echo(f"   Steps:   {result.steps_path} ({result.step_count})")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    click.echo()
    if not result.valid:
        sys.exit(1)


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the effective options as YAML."""
    import yaml

    cfg = _require_config(ctx)
    data = cfg.model_dump()
    data["downloads_dir"] = str(cfg.downloads_path)
    data["cache_dir"] = str(cfg.cache_path)
    data["user"] = cfg.effective_user
    click.echo(yaml.safe_dump(data, sort_keys=False), nl=False)


# ── cache ───────────────────────────────────────────────────────


@cli.group()
def cache() -> None:
    """Download cache commands."""


@cache.command("list")
@click.pass_context
def cache_list(ctx: click.Context) -> None:
    """List cached downloads."""
    from provisioner.core.execution.cache import DownloadCache

    store = DownloadCache(_require_config(ctx).downloads_path)
    entries = store.entries()
    click.secho(f"\n📦 {store.directory} ({len(entries)} files)", fg="cyan", bold=True)
    for path in entries:
        size_mb = path.stat().st_size / (1024 * 1024)
        click.echo(f"   • {path.name}  {size_mb:.1f} MB")
    click.echo()


@cache.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
def cache_clear(ctx: click.Context, yes: bool) -> None:
    """Delete every cached download."""
    from provisioner.core.execution.cache import DownloadCache

    store = DownloadCache(_require_config(ctx).downloads_path)
    if not yes:
        click.confirm(f"Delete all files in {store.directory}?", abort=True)
    removed = store.clear()
    click.secho(f"🗑️  Removed {removed} files", fg="green")


# ── history ─────────────────────────────────────────────────────


@cli.command()
@click.option(
    "-n",
    "count",
    type=click.IntRange(min=1),
    default=10,
    show_default=True,
    help="Number of runs to show.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show recent provisioning runs."""
    from provisioner.core.persistence.history import HistoryWriter

    reports = HistoryWriter(_require_config(ctx).history_path).read_recent(count)

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in reports], indent=2))
        return

    if not reports:
        click.echo("No runs recorded yet.")
        return

    for report in reports:
        color = "red" if report.aborted else "yellow" if report.failed else "green"
        click.secho(f"   {report.started_at}  ", nl=False)
        click.secho(report.summary(), fg=color)
        for r in report.failures:
            kind = r.error_kind.value if r.error_kind else "error"
            click.echo(f"       ✗ {r.step} [{kind}]")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
