"""queuescaler CLI.

Commands:
- scale:     run one autoscaling cycle
- auto-heal: stop every configured unit
- restart:   stop then start the designated restart unit
- evaluate:  print the decisions for given queue depths (no cloud calls)

Exit codes:
    0  cycle completed, every actuation succeeded
    1  at least one actuation failed, or the invocation aborted
    2  cycle skipped because required configuration is missing
"""

import dataclasses
import logging
import os
import sys

import click

from queuescaler import __version__
from queuescaler.config import ScalerConfig
from queuescaler.models import CycleReport, QueueSignal
from queuescaler.modules.scaling_policy import ScalingPolicy
from queuescaler.triggers import run_auto_heal_sweep, run_restart_sweep, run_scaler_cycle

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _load_config(ctx: click.Context) -> ScalerConfig:
    """Load configuration from the environment, applying CLI overrides."""
    try:
        config = ScalerConfig.from_environment()
    except ValueError as e:
        click.echo(f"Error: Invalid configuration: {e}", err=True)
        sys.exit(1)

    if ctx.obj.get("dry_run"):
        config = dataclasses.replace(config, dry_run=True)
    return config


def _report_and_exit(report: CycleReport | None) -> None:
    """Echo a cycle report and exit with the matching code."""
    if report is None:
        click.echo("Error: invocation aborted, see log for details", err=True)
        sys.exit(1)

    if report.skipped:
        click.echo(f"Skipped: {report.skipped_reason}", err=True)
        sys.exit(2)

    for result in report.results:
        click.echo(repr(result))

    click.echo(
        f"{report.cycle}: {report.succeeded} succeeded, {report.failed} failed"
        + (" (dry run)" if report.dry_run else "")
    )
    if not report.all_succeeded:
        sys.exit(1)


@click.group()
@click.option("--dry-run", is_flag=True, help="Log decisions without issuing Start/Stop")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level (default: LOG_LEVEL or INFO)",
)
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, dry_run: bool, log_level: str | None) -> None:
    """Queue-driven start/stop autoscaler for container groups and VM instances.

    Configuration is read from environment variables (SCALER_*, AZURE_*, GCP_*).

    \b
    Examples:
        queuescaler scale
        queuescaler --dry-run auto-heal
        queuescaler evaluate --primary 40 --secondary 0
    """
    ctx.ensure_object(dict)
    ctx.obj["dry_run"] = dry_run

    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)

    # Keep SDK wire logging out of cycle logs
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@main.command()
@click.pass_context
def scale(ctx: click.Context) -> None:
    """Run one autoscaling cycle."""
    _report_and_exit(run_scaler_cycle(_load_config(ctx)))


@main.command(name="auto-heal")
@click.pass_context
def auto_heal(ctx: click.Context) -> None:
    """Stop every configured unit, regardless of queue depth."""
    _report_and_exit(run_auto_heal_sweep(_load_config(ctx)))


@main.command()
@click.pass_context
def restart(ctx: click.Context) -> None:
    """Stop, then start, the unit named by SCALER_RESTART_UNIT."""
    _report_and_exit(run_restart_sweep(_load_config(ctx)))


@main.command()
@click.option("--primary", type=int, default=None, help="Primary queue depth")
@click.option("--secondary", type=int, default=None, help="Secondary queue depth")
@click.pass_context
def evaluate(ctx: click.Context, primary: int | None, secondary: int | None) -> None:
    """Print the decisions the policy makes for the given depths.

    Uses the unit names from the environment but makes no cloud calls.
    A depth that is not given produces no decisions for its tiers.

    \b
    Examples:
        queuescaler evaluate --primary 40
        queuescaler evaluate --primary 0 --secondary 3
    """
    config = _load_config(ctx)
    bindings = config.queue_bindings()

    if not bindings:
        click.echo(
            "Error: No queue bindings configured. "
            "Set SCALER_PRIMARY_QUEUE, SCALER_SMALL_UNIT and SCALER_MEDIUM_UNIT.",
            err=True,
        )
        sys.exit(2)

    signals = []
    if primary is not None and config.primary_queue:
        signals.append(QueueSignal(config.primary_queue, primary))
    if secondary is not None and config.secondary_queue:
        signals.append(QueueSignal(config.secondary_queue, secondary))

    decisions = ScalingPolicy(bindings).evaluate(signals, config.topology())

    if not decisions:
        click.echo("No decisions")
        return

    for decision in decisions:
        click.echo(f"{decision.action.value:<5} {decision.unit}  ({decision.reason})")


if __name__ == "__main__":
    main()
