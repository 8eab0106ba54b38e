"""Resolve the effective configuration from file, environment and CLI input.

Non-secret fields follow the precedence CLI > environment > file > default.
Secrets (the Faros API key and per-source credentials) are only ever taken
from the environment or the CLI; any secret found in the file is dropped
before merging.
"""

import logging
import os
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from faros.sync_cli.config_loader import SEARCH_PLACES, LoadedConfig
from faros.sync_cli.errors import ConfigurationError
from faros.sync_cli.models.config import (
    DEFAULT_GRAPH,
    DEFAULT_ORIGIN,
    DEFAULT_URL,
    Configuration,
    Defaults,
    FileConfig,
    FileSourceConfig,
    SourceConfig,
)

ENV_API_KEY = "FAROS_API_KEY"
ENV_URL = "FAROS_URL"
ENV_GRAPH = "FAROS_GRAPH"
ENV_ORIGIN = "FAROS_ORIGIN"

# Source name -> (credential environment variable, source type)
SOURCE_CREDENTIAL_ENV: dict[str, tuple[str, str]] = {
    "linear": ("LINEAR_API_KEY", "Linear"),
    "github": ("GITHUB_TOKEN", "GitHub"),
}

SOURCE_SECRET_FIELDS = frozenset({"api_key", "token"})

MISSING_CONFIG_MESSAGE = (
    "Configuration file not found. Please create a faros.config.yaml file "
    f"(searched: {', '.join(SEARCH_PLACES)}). "
    "See https://github.com/faros-fde/faros-cli for a configuration template."
)


def _first(*values: Any) -> Any:
    """Return the first value that is neither None nor an empty string."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _coerce_file_config(
    file_config: LoadedConfig | FileConfig | Mapping[str, Any] | None,
) -> FileConfig | None:
    if file_config is None or isinstance(file_config, FileConfig):
        return file_config
    if isinstance(file_config, LoadedConfig):
        return file_config.config
    try:
        return FileConfig.model_validate(dict(file_config))
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _strip_source_credentials(
    sources: Mapping[str, FileSourceConfig] | None,
) -> dict[str, SourceConfig]:
    stripped: dict[str, SourceConfig] = {}
    for name, source in (sources or {}).items():
        fields = source.model_dump(exclude=set(SOURCE_SECRET_FIELDS))
        stripped[name] = SourceConfig(**fields)
    return stripped


def _synthesize_sources(
    sources: dict[str, SourceConfig],
    env: Mapping[str, str],
    logger: logging.Logger | None,
) -> None:
    """Add stub entries for sources whose credential variable is set."""
    for name, (env_var, source_type) in SOURCE_CREDENTIAL_ENV.items():
        if not env.get(env_var) or name in sources:
            continue
        sources[name] = SourceConfig(type=source_type)
        if logger:
            logger.debug(f"Added source '{name}' from {env_var}")


def _resolve_defaults(
    file_defaults: Defaults | None, cli: Mapping[str, Any]
) -> Defaults:
    base = file_defaults or Defaults()
    try:
        return Defaults(
            test_source=base.test_source,
            test_type=base.test_type,
            concurrency=_first(cli.get("concurrency"), base.concurrency),
        )
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid concurrency: {cli.get('concurrency')}. Must be at least 1"
        ) from e


def resolve_config(
    file_config: LoadedConfig | FileConfig | Mapping[str, Any] | None,
    cli_options: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
    *,
    require_file: bool = True,
    logger: logging.Logger | None = None,
) -> Configuration:
    """Merge defaults, file config, environment and CLI options.

    Args:
        file_config: Loaded config file, or None if none was found
        cli_options: CLI overrides (api_key, url, graph, origin, concurrency,
            log_level, debug)
        env: Environment variables, os.environ when omitted
        require_file: Fail when file_config is None instead of falling back
            to defaults
        logger: Logger for diagnostic messages

    Returns:
        Immutable resolved configuration

    Raises:
        ConfigurationError: If a required config file is missing or a value
            is invalid

    """
    file_cfg = _coerce_file_config(file_config)
    if file_cfg is None:
        if require_file:
            raise ConfigurationError(MISSING_CONFIG_MESSAGE)
        if logger:
            logger.info("No configuration file; using built-in defaults")
        file_cfg = FileConfig()

    cli = cli_options or {}
    environ = os.environ if env is None else env

    if file_cfg.api_key and logger:
        logger.warning(
            "Ignoring apiKey in configuration file; set FAROS_API_KEY or pass --api-key"
        )

    sources = _strip_source_credentials(file_cfg.sources)
    _synthesize_sources(sources, environ, logger)

    log_level = _first(
        cli.get("log_level"),
        "debug" if cli.get("debug") else None,
        file_cfg.logs.level if file_cfg.logs else None,
        "info",
    )

    try:
        config = Configuration(
            url=_first(cli.get("url"), environ.get(ENV_URL), file_cfg.url, DEFAULT_URL),
            graph=_first(
                cli.get("graph"), environ.get(ENV_GRAPH), file_cfg.graph, DEFAULT_GRAPH
            ),
            staging_graph=file_cfg.staging_graph,
            origin=_first(
                cli.get("origin"),
                environ.get(ENV_ORIGIN),
                file_cfg.origin,
                DEFAULT_ORIGIN,
            ),
            api_key=_first(cli.get("api_key"), environ.get(ENV_API_KEY)),
            sources=sources,
            defaults=_resolve_defaults(file_cfg.defaults, cli),
            log_level=log_level,
        )
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    if logger:
        logger.debug(
            f"Resolved configuration: url={config.url} graph={config.graph} "
            f"origin={config.origin} sources={sorted(config.sources)}"
        )
    return config


def resolve_staging_graph(config: Configuration) -> str:
    """Return the graph that dry-run writes go to."""
    return config.staging_graph or f"{config.graph}-staging"


def resolve_target_graph(config: Configuration, dry_run: bool = False) -> str:
    """Return the graph a sync should write to."""
    return resolve_staging_graph(config) if dry_run else config.graph
