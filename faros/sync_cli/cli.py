"""CLI entry point for syncing data to Faros."""

import asyncio
import json
import logging
import os
import signal
from collections.abc import Sequence
from pathlib import Path

import typer
from pydantic import BaseModel, ConfigDict

from faros.sync_cli.client import create_client
from faros.sync_cli.config_loader import load_config, load_env_files
from faros.sync_cli.config_resolver import (
    SOURCE_CREDENTIAL_ENV,
    resolve_config,
    resolve_target_graph,
)
from faros.sync_cli.connectors.linear import LinearAirbyteRunner, LinearSyncOptions
from faros.sync_cli.errors import SyncError
from faros.sync_cli.logger import LOG_FILE_NAME, create_logger, register_secret
from faros.sync_cli.models.config import Configuration
from faros.sync_cli.models.event import Event
from faros.sync_cli.models.test_suite import TestSuite
from faros.sync_cli.models.upload import UploadError, UploadResult, UploadTask
from faros.sync_cli.normalizer import (
    CICDOptions,
    TestExecutionOptions,
    build_cicd_event,
    build_test_execution_event,
)
from faros.sync_cli.suite_loader import load_test_results
from faros.sync_cli.uploader import UploadCoordinator
from faros.sync_cli.version import __version__

MAX_LISTED_ERRORS = 5

app = typer.Typer(help="CLI for Faros AI - sync data and manage sources")
sync_app = typer.Typer(help="Sync data from various sources to Faros")
cicd_app = typer.Typer(help="Sync CI/CD events (builds and deployments) to Faros")
sources_app = typer.Typer(help="Inspect configured data sources")

app.add_typer(sync_app, name="sync")
app.add_typer(sources_app, name="sources")
sync_app.add_typer(cicd_app, name="ci-cd")


class CliState(BaseModel):
    """Global options shared by every command."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    api_key: str | None = None
    url: str | None = None
    graph: str | None = None
    config_file: Path | None = None
    debug: bool = False
    logger: logging.Logger


@app.callback()
def main(
    ctx: typer.Context,
    api_key: str | None = typer.Option(
        None, "--api-key", "-k", help="Faros API key (or set FAROS_API_KEY)"
    ),
    url: str | None = typer.Option(None, "--url", "-u", help="Faros API URL"),
    graph: str | None = typer.Option(None, "--graph", "-g", help="Faros graph name"),
    config_file: Path | None = typer.Option(  # noqa: B008
        None, "--config", help="Path to faros.config.yaml"
    ),
    log_file: Path = typer.Option(  # noqa: B008
        Path(LOG_FILE_NAME), envvar="FAROS_LOG_FILE", help="File to append logs to"
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """Sync test results and CI/CD events to Faros."""
    load_env_files(Path.cwd())

    logger = create_logger(
        "debug" if debug else "info",
        log_file,
        stderr=debug,
        secrets=[api_key]
        + [os.environ.get("FAROS_API_KEY")]
        + [os.environ.get(var) for var, _ in SOURCE_CREDENTIAL_ENV.values()],
    )
    logger.info(f"faros-cli {__version__} started")

    ctx.obj = CliState(
        api_key=api_key,
        url=url,
        graph=graph,
        config_file=config_file,
        debug=debug,
        logger=logger,
    )


def _fail(state: CliState, error: Exception) -> typer.Exit:
    """Log an error, print it and return the exit to raise."""
    if state.debug:
        state.logger.exception(str(error))
    else:
        state.logger.error(f"{type(error).__name__}: {error}")
    typer.echo(f"Error: {error}", err=True)
    return typer.Exit(code=1)


def _resolve(state: CliState, concurrency: int | None = None) -> Configuration:
    loaded = load_config(config_file=state.config_file, logger=state.logger)
    config = resolve_config(
        loaded,
        {
            "api_key": state.api_key,
            "url": state.url,
            "graph": state.graph,
            "concurrency": concurrency,
            "debug": state.debug,
        },
        os.environ,
        logger=state.logger,
    )
    register_secret(state.logger, config.api_key)
    return config


def _split_paths(paths: Sequence[str]) -> list[Path]:
    return [
        Path(part.strip())
        for value in paths
        for part in value.split(",")
        if part.strip()
    ]


async def _upload_batch(
    config: Configuration,
    logger: logging.Logger,
    tasks: list[UploadTask],
    graph: str,
) -> UploadResult:
    async with create_client(config, logger) as client:
        coordinator = UploadCoordinator(client, logger, config.defaults.concurrency)

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, coordinator.stop)
            installed = True
        except (NotImplementedError, RuntimeError):
            logger.debug("SIGINT handler not available; Ctrl-C aborts immediately")
            installed = False

        try:
            return await coordinator.upload_batch(
                tasks,
                graph,
                on_progress=lambda settled, total: logger.debug(
                    f"Progress: {settled}/{total}"
                ),
            )
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)


async def _send_one(
    config: Configuration, logger: logging.Logger, graph: str, event: Event
) -> None:
    async with create_client(config, logger) as client:
        await client.send_event(graph, event)


def _build_tasks(
    suites: Sequence[TestSuite],
    options: TestExecutionOptions,
    config: Configuration,
    logger: logging.Logger,
) -> tuple[list[UploadTask], list[UploadError]]:
    """Build one upload task per suite.

    A suite whose event cannot be built is recorded as a failure for that
    suite only; the remaining suites are still uploaded.
    """
    tasks: list[UploadTask] = []
    errors: list[UploadError] = []
    for suite in suites:
        try:
            event = build_test_execution_event(suite, options, config)
        except SyncError as e:
            logger.error(f"Could not build event for suite {suite.name}: {e}")
            errors.append(UploadError(identity=suite.name, error_message=str(e)))
            continue
        tasks.append(UploadTask(suite_identity=suite.name, event=event))
    return tasks, errors


def _report_upload(result: UploadResult, graph: str, url: str) -> None:
    if result.errors:
        typer.echo(f"Failed to upload {len(result.errors)} test suite(s)", err=True)
        for error in result.errors[:MAX_LISTED_ERRORS]:
            typer.echo(f"  {error.identity}: {error.error_message}", err=True)
        if len(result.errors) > MAX_LISTED_ERRORS:
            remaining = len(result.errors) - MAX_LISTED_ERRORS
            typer.echo(f"  ... and {remaining} more", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Synced {result.uploaded_count} test suite(s)")
    typer.echo(f"  Graph: {graph}")
    typer.echo(f"  View in Faros: {url.replace('/api', '')}/{graph}/qa")


@sync_app.command("tests")
def sync_tests(  # noqa: C901
    ctx: typer.Context,
    paths: list[str] = typer.Argument(..., help="Path(s) to test result files"),  # noqa: B008
    results_format: str = typer.Option(
        "junit",
        "--format",
        help="Test results format: cucumber, junit, mocha, testng, xunit",
    ),
    test_type: str | None = typer.Option(None, "--type", help="Test type, e.g. Unit"),
    source: str | None = typer.Option(
        None, help="Test source system (e.g. Jenkins, GitHub-Actions)"
    ),
    commit: str | None = typer.Option(
        None, help="Commit URI: <source>://<org>/<repo>/<sha>"
    ),
    test_start: str = typer.Option(
        "now", help='Test start time (ISO-8601, epoch millis, or "Now")'
    ),
    test_end: str = typer.Option(
        "now", help='Test end time (ISO-8601, epoch millis, or "Now")'
    ),
    concurrency: int | None = typer.Option(
        None, help="Number of concurrent uploads"
    ),
    validate: bool = typer.Option(
        False, "--validate", help="Validate only, don't send to Faros"
    ),
    preview: bool = typer.Option(
        False, "--preview", help="Show a sample record without sending"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Sync to the staging graph"
    ),
) -> None:
    """Sync JUnit/TestNG/xUnit/Cucumber/Mocha test results to Faros."""
    state: CliState = ctx.obj
    logger = state.logger

    try:
        config = _resolve(state, concurrency)
        results = load_test_results(_split_paths(paths), results_format, logger)
    except (SyncError, ValueError, FileNotFoundError) as e:
        raise _fail(state, e)

    typer.echo(
        f"Parsed {len(results.suites)} test suite(s) with {results.total} total test(s)"
    )

    if validate:
        typer.echo("All data is valid")
        typer.echo("Would create:")
        typer.echo(f"  {len(results.suites)} qa_TestExecution records")
        typer.echo(f"  {results.total} qa_TestCase records")
        typer.echo(f"  {results.total} qa_TestCaseResult records")
        return

    options = TestExecutionOptions(
        source=source,
        type=test_type,
        commit=commit,
        test_start=test_start,
        test_end=test_end,
    )
    tasks, build_errors = _build_tasks(results.suites, options, config, logger)

    if preview:
        if tasks:
            typer.echo(json.dumps(tasks[0].event.to_payload(), indent=2))
        elif build_errors:
            raise _fail(state, SyncError(build_errors[0].error_message))
        return

    graph = resolve_target_graph(config, dry_run)
    if dry_run:
        typer.echo(f"Dry-run mode: syncing to staging graph '{graph}'")

    try:
        result = asyncio.run(_upload_batch(config, logger, tasks, graph))
    except SyncError as e:
        raise _fail(state, e)

    result.errors[:0] = build_errors
    _report_upload(result, graph, config.url)


def _sync_cicd(state: CliState, kind: str, options: CICDOptions, dry_run: bool) -> None:
    logger = state.logger
    try:
        config = _resolve(state)
        event = build_cicd_event(kind, options, origin=config.origin)
        graph = resolve_target_graph(config, dry_run)
        if dry_run:
            typer.echo(f"Dry-run mode: syncing to staging graph '{graph}'")
        asyncio.run(_send_one(config, logger, graph, event))
    except SyncError as e:
        raise _fail(state, e)

    label = "Build status" if event.type == "CI" else "Deployment"
    typer.echo(f"{label} reported")
    if dry_run:
        typer.echo(f"  Graph: {graph}")
        typer.echo("  Run without --dry-run to sync to production")


@cicd_app.command("build")
def sync_build(
    ctx: typer.Context,
    status: str | None = typer.Option(None, help="Build status"),
    commit: str | None = typer.Option(None, help="Commit URI"),
    run: str | None = typer.Option(None, help="Run URI"),
    run_status: str | None = typer.Option(None, help="Run status"),
    run_start_time: str | None = typer.Option(None, help="Run start time"),
    run_end_time: str | None = typer.Option(None, help="Run end time"),
    artifact: str | None = typer.Option(None, help="Artifact URI"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Sync to staging graph"),
) -> None:
    """Report build status."""
    options = CICDOptions(
        commit=commit,
        run=run,
        run_status=status or run_status,
        run_start_time=run_start_time,
        run_end_time=run_end_time,
        artifact=artifact,
    )
    _sync_cicd(ctx.obj, "build", options, dry_run)


@cicd_app.command("deploy")
def sync_deploy(
    ctx: typer.Context,
    status: str | None = typer.Option(None, help="Deploy status"),
    commit: str | None = typer.Option(None, help="Commit URI"),
    deploy: str | None = typer.Option(None, help="Deploy URI (required)"),
    deploy_status: str | None = typer.Option(None, help="Deploy status"),
    deploy_start_time: str | None = typer.Option(None, help="Deploy start time"),
    deploy_end_time: str | None = typer.Option(None, help="Deploy end time"),
    artifact: str | None = typer.Option(None, help="Artifact URI"),
    run: str | None = typer.Option(None, help="Run URI"),
    run_status: str | None = typer.Option(None, help="Run status"),
    run_start_time: str | None = typer.Option(None, help="Run start time"),
    run_end_time: str | None = typer.Option(None, help="Run end time"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Sync to staging graph"),
) -> None:
    """Report deployment status."""
    options = CICDOptions(
        commit=commit,
        artifact=artifact,
        deploy=deploy,
        deploy_status=status or deploy_status,
        deploy_start_time=deploy_start_time,
        deploy_end_time=deploy_end_time,
        run=run,
        run_status=run_status,
        run_start_time=run_start_time,
        run_end_time=run_end_time,
    )
    _sync_cicd(ctx.obj, "deploy", options, dry_run)


@sync_app.command("linear")
def sync_linear(
    ctx: typer.Context,
    linear_api_key: str | None = typer.Option(
        None, help="Linear API key (or set LINEAR_API_KEY)"
    ),
    cutoff_days: int | None = typer.Option(
        None, help="Only fetch data updated in the last N days"
    ),
    start_date: str | None = typer.Option(None, help="Start date (YYYY-MM-DD)"),
    end_date: str | None = typer.Option(None, help="End date (YYYY-MM-DD)"),
    streams: str | None = typer.Option(
        None, help="Comma-separated streams (teams,users,projects,issues,comments)"
    ),
    full_refresh: bool = typer.Option(
        False, "--full-refresh", help="Ignore saved state and overwrite"
    ),
    connection_name: str | None = typer.Option(
        None, help="Connection name for state tracking"
    ),
    state_file: str | None = typer.Option(
        None, help="Path to state file for incremental sync"
    ),
    check_connection: bool = typer.Option(
        False, "--check-connection", help="Validate source connection first"
    ),
    src_image: str | None = typer.Option(None, help="Override source Docker image"),
    dst_image: str | None = typer.Option(
        None, help="Override destination Docker image"
    ),
    keep_containers: bool = typer.Option(
        False, "--keep-containers", help="Keep Docker containers after exit"
    ),
    log_level: str | None = typer.Option(None, help="Log level for connectors"),
    raw_messages: bool = typer.Option(
        False, "--raw-messages", help="Output raw Airbyte messages"
    ),
    no_src_pull: bool = typer.Option(
        False, "--no-src-pull", help="Skip pulling the source image"
    ),
    no_dst_pull: bool = typer.Option(
        False, "--no-dst-pull", help="Skip pulling the destination image"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Sync to staging graph"),
) -> None:
    """Sync Linear data to Faros via airbyte-local."""
    state: CliState = ctx.obj
    options = LinearSyncOptions(
        linear_api_key=linear_api_key,
        cutoff_days=cutoff_days,
        start_date=start_date,
        end_date=end_date,
        streams=[s.strip() for s in streams.split(",")] if streams else None,
        full_refresh=full_refresh,
        connection_name=connection_name,
        check_connection=check_connection,
        state_file=state_file,
        src_image=src_image,
        dst_image=dst_image,
        keep_containers=keep_containers,
        log_level=log_level,
        raw_messages=raw_messages,
        no_src_pull=no_src_pull,
        no_dst_pull=no_dst_pull,
        dry_run=dry_run,
        debug=state.debug,
    )
    register_secret(state.logger, linear_api_key)
    runner = LinearAirbyteRunner(options, state.logger)

    try:
        config = _resolve(state)
        exit_code = asyncio.run(runner.run_external_sync(config))
    except SyncError as e:
        raise _fail(state, e)

    if exit_code != 0:
        typer.echo(f"Error: airbyte-local exited with code {exit_code}", err=True)
        raise typer.Exit(code=1)

    suffix = " (dry-run to staging graph)" if dry_run else ""
    typer.echo(f"Linear sync completed{suffix}")


@sources_app.command("list")
def list_sources(ctx: typer.Context) -> None:
    """List configured sources and whether their credentials are set."""
    state: CliState = ctx.obj
    try:
        loaded = load_config(config_file=state.config_file, logger=state.logger)
        config = resolve_config(loaded, {}, os.environ, require_file=False)
    except SyncError as e:
        raise _fail(state, e)

    if not config.sources:
        typer.echo("No sources configured")
        return

    for name, source in sorted(config.sources.items()):
        credential = SOURCE_CREDENTIAL_ENV.get(name)
        has_credential = credential is not None and bool(os.environ.get(credential[0]))
        status = "Configured" if has_credential else "Missing credentials"
        typer.echo(f"{name}\t{source.type or 'Unknown'}\t{status}")


if __name__ == "__main__":  # pragma: no cover
    app()
