"""
Entry point of the gcping command line.

Exit codes: 0 on success, 1 when some regions failed or are still pending,
2 when desired state or configuration could not be read.
"""

import signal
import threading
import time
from importlib.metadata import PackageNotFoundError, version as package_version
from typing import List, Optional

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from gcping.cli.console import ConsoleReporter
from gcping.core.app import App
from gcping.core.exceptions import GcpingError, PartialFailure, RegionSourceError, UnavailableError
from gcping.core.periodic_task import PeriodicTask
from gcping.core.settings import Settings
from gcping.core.utils import set_log_level, setup_logger
from gcping.db.db import DatabaseInitializationError

logger = setup_logger(name="cli.main")

app = typer.Typer(
    name="gcping",
    help="Keep gcping ping servers deployed in every region and publish where to reach them.",
    add_completion=False,
)

reporter = ConsoleReporter()

SourceOption = Annotated[
    Optional[str],
    typer.Option("--source", help="Region list source: 'static' file or 'live' provider query."),
]
ReplaceOption = Annotated[
    Optional[List[str]],
    typer.Option("--replace", help="Recreate the instance of this region (repeatable)."),
]


def _load_settings(**overrides) -> Settings:
    """Read settings once, with command line flags taking precedence."""
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        settings = Settings(**values)
    except ValidationError as e:
        typer.secho(f"Invalid configuration:\n{e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)
    set_log_level(settings.get_log_level())
    return settings


def _build_app(settings: Settings) -> App:
    try:
        return App(settings)
    except (ValueError, DatabaseInitializationError) as e:
        typer.secho(f"Failed to start: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)


def _fatal(e: Exception) -> typer.Exit:
    typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
    return typer.Exit(code=2)


@app.command()
def version():
    """
    Show the version of gcping.
    """
    try:
        current = package_version("gcping")
    except PackageNotFoundError:
        current = "unknown"
    typer.echo(f"gcping version: {current}")


@app.command()
def regions(
    source: SourceOption = None,
    write: Annotated[
        Optional[str],
        typer.Option("--write", help="Write the region ids to this file (regions.txt format)."),
    ] = None,
):
    """
    List the desired regions.
    """
    gcping = _build_app(_load_settings(REGION_SOURCE=source))
    try:
        region_set = gcping.load_regions()
    except (RegionSourceError, UnavailableError) as e:
        raise _fatal(e)
    reporter.regions(region_set)
    if write:
        gcping.store.save(region_set, write)


@app.command()
def plan(
    source: SourceOption = None,
    replace: ReplaceOption = None,
):
    """
    Show the operations a reconciliation would apply, without applying them.
    """
    gcping = _build_app(_load_settings(REGION_SOURCE=source))
    try:
        deployment_plan = gcping.plan(replace or ())
    except (RegionSourceError, UnavailableError) as e:
        raise _fatal(e)
    reporter.plan(deployment_plan)


@app.command()
def reconcile(
    source: SourceOption = None,
    concurrency: Annotated[
        Optional[int], typer.Option("--concurrency", help="Regions provisioned at the same time.")
    ] = None,
    deadline: Annotated[
        Optional[float],
        typer.Option("--deadline", help="Seconds to wait before reporting unfinished regions as pending."),
    ] = None,
    replace: ReplaceOption = None,
    watch: Annotated[
        Optional[float],
        typer.Option("--watch", help="Reconcile again every this many seconds until interrupted."),
    ] = None,
):
    """
    Converge addresses and instances to the desired regions, then rewrite the config.
    """
    settings = _load_settings(REGION_SOURCE=source, CONCURRENCY=concurrency, SOFT_DEADLINE=deadline)
    gcping = _build_app(settings)

    if watch:
        _watch(gcping, watch, replace or ())
        return

    cancel_event = threading.Event()
    previous_handler = signal.getsignal(signal.SIGINT)

    def cancel(signum, frame):
        typer.secho("Cancelling: waiting for in-flight operations", fg=typer.colors.YELLOW, err=True)
        cancel_event.set()

    signal.signal(signal.SIGINT, cancel)
    try:
        report = gcping.reconcile(replace or (), cancel_event)
    except (RegionSourceError, UnavailableError) as e:
        raise _fatal(e)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    reporter.report(report)
    try:
        report.raise_for_failures()
    except PartialFailure as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    if report.pending:
        raise typer.Exit(code=1)


def _watch(gcping: App, interval: float, replace) -> None:
    task = None

    def run_once():
        report = gcping.reconcile(replace, task.stop_event)
        reporter.report(report)

    task = PeriodicTask(interval, run_once)
    task.start()
    logger.info(f"Reconciling every {interval:.0f}s, press Ctrl+C to stop")
    try:
        while task.running:
            time.sleep(1)
    except KeyboardInterrupt:
        typer.echo("Stopping after the current run")
    finally:
        task.stop()


@app.command()
def emit():
    """
    Write the client config documents for the running regions.
    """
    gcping = _build_app(_load_settings())
    artifact = gcping.emit_config()
    typer.echo(f"Wrote {', '.join(sorted(artifact.documents))} to {gcping.settings.CONFIG_DIR}")


@app.command()
def publish(
    force: Annotated[bool, typer.Option("--force", help="Upload even if the config did not change.")] = False,
):
    """
    Upload the config and static assets to the website bucket.
    """
    gcping = _build_app(_load_settings())
    try:
        uploaded = gcping.publish(force=force)
    except (GcpingError, ValueError) as e:
        raise _fatal(e)
    if uploaded:
        typer.echo(f"Published to gs://{gcping.settings.BUCKET}")
    else:
        typer.echo("Config unchanged, nothing published")


@app.command()
def probe(
    timeout: Annotated[float, typer.Option("--timeout", help="Seconds to wait for each region.")] = 60.0,
):
    """
    Check that every running region answers pong.
    """
    gcping = _build_app(_load_settings())
    results = gcping.probe(timeout=timeout)
    reporter.probes(results)
    if not all(results.values()):
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
