"""Tests for the Linear connector runner."""

import json
import logging
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from faros.sync_cli.connectors.base import ExternalSyncRunner
from faros.sync_cli.connectors.linear import (
    ALL_LINEAR_STREAMS,
    DEFAULT_FAROS_DST_IMAGE,
    DEFAULT_LINEAR_SRC_IMAGE,
    LinearAirbyteRunner,
    LinearSyncOptions,
    build_faros_destination_config,
    build_linear_source_config,
    resolve_streams,
)
from faros.sync_cli.errors import ConfigurationError, ValidationError
from faros.sync_cli.models.config import Configuration, SourceConfig


@pytest.fixture
def logger() -> logging.Logger:
    """Create test logger."""
    return logging.getLogger("test.linear")


@pytest.fixture
def config() -> Configuration:
    """Create configuration with a Linear source entry."""
    return Configuration(
        url="https://api.test.faros.ai",
        graph="prod",
        origin="my-origin",
        api_key="faros-key",
        sources={
            "linear": SourceConfig(
                type="Linear",
                cutoff_days=90,
                start_date="2024-01-01",
                streams=["issues", "projects"],
                src_image="custom/linear-source",
            )
        },
    )


def test_runner_is_external_sync_runner(logger: logging.Logger) -> None:
    """The Linear runner implements the runner contract."""
    assert isinstance(
        LinearAirbyteRunner(LinearSyncOptions(), logger, env={}), ExternalSyncRunner
    )


def test_build_linear_source_config(config: Configuration) -> None:
    """Source config merges options over the config entry."""
    options = LinearSyncOptions(cutoff_days=7, end_date="2024-06-01")

    src = build_linear_source_config(config, options, {"LINEAR_API_KEY": "lin_env"})

    assert src == {
        "api_key": "lin_env",
        "cutoff_days": 7,
        "start_date": "2024-01-01",
        "end_date": "2024-06-01",
    }


def test_build_linear_source_config_cli_key_wins(config: Configuration) -> None:
    """The --linear-api-key option wins over the environment."""
    src = build_linear_source_config(
        config,
        LinearSyncOptions(linear_api_key="lin_cli"),
        {"LINEAR_API_KEY": "lin_env"},
    )

    assert src["api_key"] == "lin_cli"


def test_build_linear_source_config_requires_key(config: Configuration) -> None:
    """A Linear API key is required."""
    with pytest.raises(ConfigurationError, match="Linear API key is required"):
        build_linear_source_config(config, LinearSyncOptions(), {})


def test_build_faros_destination_config(config: Configuration) -> None:
    """Destination config targets the given graph."""
    dst = build_faros_destination_config(config, "prod-staging")

    assert dst == {
        "edition_configs": {
            "edition": "cloud",
            "api_key": "faros-key",
            "api_url": "https://api.test.faros.ai",
            "graph": "prod-staging",
        },
        "origin": "my-origin",
    }


def test_build_faros_destination_config_requires_key() -> None:
    """A Faros API key is required."""
    with pytest.raises(ConfigurationError, match="Faros API key is required"):
        build_faros_destination_config(Configuration(), "g")


def test_resolve_streams(config: Configuration) -> None:
    """Streams come from options, then config, then all streams."""
    assert resolve_streams(config, LinearSyncOptions(streams=["users"])) == ["users"]
    assert resolve_streams(config, LinearSyncOptions()) == ["issues", "projects"]
    assert resolve_streams(Configuration(), LinearSyncOptions()) == list(
        ALL_LINEAR_STREAMS
    )


def test_resolve_streams_invalid(config: Configuration) -> None:
    """Unknown streams are rejected."""
    with pytest.raises(ValidationError, match="Invalid stream"):
        resolve_streams(config, LinearSyncOptions(streams=["issues", "cycles"]))


def test_build_airbyte_config_images(
    config: Configuration, logger: logging.Logger
) -> None:
    """Images resolve from options, then config, then defaults."""
    runner = LinearAirbyteRunner(
        LinearSyncOptions(dry_run=True), logger, env={"LINEAR_API_KEY": "lin"}
    )

    airbyte = runner.build_airbyte_config(config)

    assert airbyte["src"]["image"] == "custom/linear-source"
    assert airbyte["dst"]["image"] == DEFAULT_FAROS_DST_IMAGE
    assert airbyte["dst"]["config"]["edition_configs"]["graph"] == "prod-staging"

    bare = Configuration(api_key="k", sources={"linear": SourceConfig(type="Linear")})
    assert runner.build_airbyte_config(bare)["src"]["image"] == DEFAULT_LINEAR_SRC_IMAGE


def test_build_airbyte_config_requires_source(logger: logging.Logger) -> None:
    """Without a Linear entry or key the runner refuses to start."""
    runner = LinearAirbyteRunner(LinearSyncOptions(), logger, env={})

    with pytest.raises(ConfigurationError, match="No Linear source configuration"):
        runner.build_airbyte_config(Configuration(api_key="k"))


def test_build_cli_args(config: Configuration, logger: logging.Logger) -> None:
    """CLI flags are forwarded to airbyte-local."""
    options = LinearSyncOptions(
        full_refresh=True,
        check_connection=True,
        state_file="/tmp/state.json",
        keep_containers=True,
        raw_messages=True,
        no_src_pull=True,
        no_dst_pull=True,
    )
    runner = LinearAirbyteRunner(options, logger, env={})

    args = runner.build_cli_args(config, Path("/tmp/config.json"))

    assert args == [
        "--config-file",
        "/tmp/config.json",
        "--full-refresh",
        "--src-check-connection",
        "--connection-name",
        "mylinearsrc",
        "--state-file",
        "/tmp/state.json",
        "--keep-containers",
        "--log-level",
        "info",
        "--raw-messages",
        "--no-src-pull",
        "--no-dst-pull",
    ]


def test_build_cli_args_debug_log_level(
    config: Configuration, logger: logging.Logger
) -> None:
    """Debug mode raises the connector log level."""
    runner = LinearAirbyteRunner(
        LinearSyncOptions(debug=True, connection_name="conn"), logger, env={}
    )

    args = runner.build_cli_args(config, Path("c.json"))

    assert args[args.index("--connection-name") + 1] == "conn"
    assert args[args.index("--log-level") + 1] == "debug"
    assert args[-1] == "--debug"


async def test_run_external_sync(config: Configuration, logger: logging.Logger) -> None:
    """run_external_sync writes the config and returns the exit code."""
    captured: dict[str, Any] = {}

    async def fake_exec(program: str, *args: str, **kwargs: Any) -> AsyncMock:
        config_path = Path(args[args.index("--config-file") + 1])
        captured["program"] = program
        captured["config"] = json.loads(config_path.read_text())
        captured["config_path"] = config_path
        process = AsyncMock()
        process.wait.return_value = 0
        return process

    runner = LinearAirbyteRunner(
        LinearSyncOptions(), logger, env={"LINEAR_API_KEY": "lin"}
    )
    with patch("asyncio.create_subprocess_exec", side_effect=fake_exec):
        exit_code = await runner.run_external_sync(config)

    assert exit_code == 0
    assert captured["program"] == "airbyte-local"
    assert captured["config"]["src"]["config"]["api_key"] == "lin"
    assert captured["config"]["dst"]["config"]["edition_configs"]["graph"] == "prod"
    assert not captured["config_path"].exists()


async def test_run_external_sync_failure_exit_code(
    config: Configuration, logger: logging.Logger
) -> None:
    """A non-zero exit code is returned to the caller."""
    process = AsyncMock()
    process.wait.return_value = 2
    runner = LinearAirbyteRunner(
        LinearSyncOptions(), logger, env={"LINEAR_API_KEY": "lin"}
    )

    with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
        assert await runner.run_external_sync(config) == 2


async def test_run_external_sync_missing_binary(
    config: Configuration, logger: logging.Logger
) -> None:
    """A missing airbyte-local binary is a configuration error."""
    runner = LinearAirbyteRunner(
        LinearSyncOptions(), logger, env={"LINEAR_API_KEY": "lin"}
    )

    with (
        patch(
            "asyncio.create_subprocess_exec",
            AsyncMock(side_effect=FileNotFoundError("airbyte-local")),
        ),
        pytest.raises(ConfigurationError, match="Could not find 'airbyte-local'"),
    ):
        await runner.run_external_sync(config)


async def test_run_external_sync_invalid_streams(
    config: Configuration, logger: logging.Logger
) -> None:
    """Stream validation happens before anything is spawned."""
    runner = LinearAirbyteRunner(
        LinearSyncOptions(streams=["bogus"]), logger, env={"LINEAR_API_KEY": "lin"}
    )

    with (
        patch("asyncio.create_subprocess_exec") as mock_exec,
        pytest.raises(ValidationError),
    ):
        await runner.run_external_sync(config)

    mock_exec.assert_not_called()
