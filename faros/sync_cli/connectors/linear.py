"""Linear sync through the airbyte-local connector runner."""

import asyncio
import json
import logging
import os
import shutil
import tempfile
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from faros.sync_cli.config_resolver import resolve_target_graph
from faros.sync_cli.connectors.base import ExternalSyncRunner
from faros.sync_cli.errors import ConfigurationError, ValidationError
from faros.sync_cli.models.config import Configuration

DEFAULT_LINEAR_SRC_IMAGE = "farosai/airbyte-linear-source"
DEFAULT_FAROS_DST_IMAGE = "farosai/airbyte-faros-destination"
DEFAULT_CONNECTION_NAME = "mylinearsrc"
ALL_LINEAR_STREAMS = ("teams", "users", "projects", "issues", "comments")
LINEAR_API_KEY_ENV = "LINEAR_API_KEY"
AIRBYTE_LOCAL_BIN = "airbyte-local"


class LinearSyncOptions(BaseModel):
    """CLI options for a Linear sync."""

    linear_api_key: str | None = None
    cutoff_days: int | None = None
    start_date: str | None = None
    end_date: str | None = None
    streams: list[str] | None = None
    full_refresh: bool = False
    connection_name: str | None = None
    check_connection: bool = False
    state_file: str | None = Field(
        default=None, description="Passed through to airbyte-local unchanged"
    )
    src_image: str | None = None
    dst_image: str | None = None
    keep_containers: bool = False
    log_level: str | None = None
    raw_messages: bool = False
    no_src_pull: bool = False
    no_dst_pull: bool = False
    dry_run: bool = False
    debug: bool = False


def build_linear_source_config(
    config: Configuration,
    options: LinearSyncOptions,
    env: Mapping[str, str],
) -> dict[str, Any]:
    """Build the Linear source connector config.

    Raises:
        ConfigurationError: If no Linear API key is available

    """
    source = config.sources.get("linear")
    api_key = options.linear_api_key or env.get(LINEAR_API_KEY_ENV)
    if not api_key:
        raise ConfigurationError(
            "Linear API key is required. Provide via --linear-api-key flag or "
            "LINEAR_API_KEY env var (in .env file or environment)"
        )

    src_config: dict[str, Any] = {"api_key": api_key}

    cutoff_days = (
        options.cutoff_days
        if options.cutoff_days is not None
        else (source.cutoff_days if source else None)
    )
    if cutoff_days is not None:
        src_config["cutoff_days"] = cutoff_days

    start_date = options.start_date or (source.start_date if source else None)
    if start_date:
        src_config["start_date"] = start_date

    end_date = options.end_date or (source.end_date if source else None)
    if end_date:
        src_config["end_date"] = end_date

    return src_config


def build_faros_destination_config(
    config: Configuration, target_graph: str
) -> dict[str, Any]:
    """Build the Faros destination connector config.

    Raises:
        ConfigurationError: If no Faros API key is available

    """
    if not config.api_key:
        raise ConfigurationError(
            "Faros API key is required. Set via --api-key flag or FAROS_API_KEY "
            "env var (in .env file or environment)"
        )

    return {
        "edition_configs": {
            "edition": "cloud",
            "api_key": config.api_key,
            "api_url": config.url,
            "graph": target_graph,
        },
        "origin": config.origin,
    }


def resolve_streams(config: Configuration, options: LinearSyncOptions) -> list[str]:
    """Return requested streams, validated against the known Linear streams."""
    source = config.sources.get("linear")
    if options.streams:
        streams = options.streams
    elif source and source.streams:
        streams = source.streams
    else:
        streams = list(ALL_LINEAR_STREAMS)

    invalid = [s for s in streams if s not in ALL_LINEAR_STREAMS]
    if invalid:
        raise ValidationError(
            f"Invalid stream(s): {', '.join(invalid)}. "
            f"Valid streams: {', '.join(ALL_LINEAR_STREAMS)}"
        )
    return list(streams)


class LinearAirbyteRunner(ExternalSyncRunner):
    """Runs the Linear source and Faros destination via airbyte-local."""

    def __init__(
        self,
        options: LinearSyncOptions,
        logger: logging.Logger,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize runner with CLI options."""
        self.options = options
        self.logger = logger
        self.env = os.environ if env is None else env

    def build_airbyte_config(self, config: Configuration) -> dict[str, Any]:
        """Build the airbyte-local config file contents."""
        if "linear" not in config.sources and not (
            self.options.linear_api_key or self.env.get(LINEAR_API_KEY_ENV)
        ):
            raise ConfigurationError(
                'No Linear source configuration found. Add a "linear" entry under '
                '"sources" in faros.config.yaml, or provide --linear-api-key'
            )

        source = config.sources.get("linear")
        target_graph = resolve_target_graph(config, self.options.dry_run)
        return {
            "src": {
                "image": self.options.src_image
                or (source.src_image if source else None)
                or DEFAULT_LINEAR_SRC_IMAGE,
                "config": build_linear_source_config(config, self.options, self.env),
            },
            "dst": {
                "image": self.options.dst_image
                or (source.dst_image if source else None)
                or DEFAULT_FAROS_DST_IMAGE,
                "config": build_faros_destination_config(config, target_graph),
            },
        }

    def build_cli_args(self, config: Configuration, config_file: Path) -> list[str]:
        """Build the airbyte-local command line arguments."""
        opts = self.options
        source = config.sources.get("linear")
        connection_name = (
            opts.connection_name
            or (source.connection_name if source else None)
            or DEFAULT_CONNECTION_NAME
        )

        args = ["--config-file", str(config_file)]
        if opts.full_refresh:
            args.append("--full-refresh")
        if opts.check_connection:
            args.append("--src-check-connection")
        args += ["--connection-name", connection_name]
        if opts.state_file:
            args += ["--state-file", opts.state_file]
        if opts.keep_containers:
            args.append("--keep-containers")
        args += [
            "--log-level",
            opts.log_level or ("debug" if opts.debug else config.log_level),
        ]
        if opts.raw_messages:
            args.append("--raw-messages")
        if opts.no_src_pull:
            args.append("--no-src-pull")
        if opts.no_dst_pull:
            args.append("--no-dst-pull")
        if opts.debug:
            args.append("--debug")
        return args

    async def run_external_sync(self, config: Configuration) -> int:
        """Write the connector config to a temp file and run airbyte-local."""
        airbyte_config = self.build_airbyte_config(config)
        streams = resolve_streams(config, self.options)

        self.logger.info(
            f"Sync plan: src={airbyte_config['src']['image']} "
            f"dst={airbyte_config['dst']['image']} "
            f"graph={resolve_target_graph(config, self.options.dry_run)} "
            f"origin={config.origin} streams={streams} "
            f"mode={'full_refresh' if self.options.full_refresh else 'incremental'}"
        )

        tmp_dir = Path(tempfile.mkdtemp(prefix="faros-linear-"))
        try:
            config_file = tmp_dir / "airbyte_config.json"
            config_file.write_text(json.dumps(airbyte_config, indent=2))
            args = self.build_cli_args(config, config_file)
            self.logger.info(f"Running: {AIRBYTE_LOCAL_BIN} {' '.join(args)}")

            start = time.monotonic()
            try:
                process = await asyncio.create_subprocess_exec(
                    AIRBYTE_LOCAL_BIN, *args, env=dict(self.env)
                )
            except FileNotFoundError as e:
                raise ConfigurationError(
                    f"Could not find '{AIRBYTE_LOCAL_BIN}' command. Please install "
                    "it:\n  npm install -g airbyte-local-cli\n"
                    "Or ensure it is on your PATH."
                ) from e

            exit_code = await process.wait()
            duration = time.monotonic() - start

            if exit_code != 0:
                self.logger.error(
                    f"Linear sync failed with exit code {exit_code} "
                    f"after {duration:.1f}s"
                )
            else:
                self.logger.info(f"Linear sync completed in {duration:.1f}s")
            return exit_code
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)
            self.logger.debug("Cleaned up temp dir")
