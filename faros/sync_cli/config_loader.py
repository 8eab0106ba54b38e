"""Locate and parse the config file and .env files."""

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from faros.sync_cli.errors import ConfigurationError
from faros.sync_cli.models.config import FileConfig

SEARCH_PLACES = (
    "faros.config.yaml",
    "faros.config.yml",
    "faros.config.json",
    ".farosrc.yaml",
    ".farosrc.yml",
    ".farosrc.json",
)

ENV_FILES = (".env", ".env.local")


class LoadedConfig(BaseModel):
    """A validated config file and where it came from."""

    config: FileConfig = Field(..., description="Validated file contents")
    path: Path = Field(..., description="File the config was read from")


def load_env_files(directory: Path, logger: logging.Logger | None = None) -> Path | None:
    """Load the first .env file found in directory into os.environ.

    Existing environment variables are never overridden.

    Returns:
        Path of the loaded file, or None if there was none

    """
    for name in ENV_FILES:
        env_path = directory / name
        if env_path.is_file():
            load_dotenv(env_path, override=False)
            if logger:
                logger.debug(f"Loaded environment from {env_path}")
            return env_path
    return None


def find_config_file(directory: Path) -> Path | None:
    """Return the first config file present in directory."""
    for name in SEARCH_PLACES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def _parse_file(config_file: Path) -> Any:
    text = config_file.read_text(encoding="utf-8")
    if config_file.suffix == ".json":
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in configuration file {config_file}: {e}"
            ) from e

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in configuration file {config_file}: {e}"
        ) from e


def load_config_file(config_file: Path) -> LoadedConfig | None:
    """Load and validate a single config file.

    Args:
        config_file: Path to a YAML or JSON config file

    Returns:
        Validated config, or None if the file is empty

    Raises:
        ConfigurationError: If the file is missing, unparseable or fails
            schema validation

    """
    if not config_file.is_file():
        raise ConfigurationError(f"Configuration file not found: {config_file}")

    data = _parse_file(config_file)
    if data is None:
        return None

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Invalid configuration file {config_file}: expected a mapping"
        )

    try:
        config = FileConfig.model_validate(data)
    except PydanticValidationError as e:
        problems = "\n".join(
            f"  {'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(
            f"Invalid configuration file {config_file}:\n{problems}"
        ) from e

    return LoadedConfig(config=config, path=config_file)


def load_config(
    directory: Path | None = None,
    config_file: Path | None = None,
    logger: logging.Logger | None = None,
) -> LoadedConfig | None:
    """Find and load the config file.

    An explicit config_file wins over searching directory.

    Returns:
        Validated config, or None if no non-empty config file was found

    """
    if config_file is None:
        config_file = find_config_file(directory or Path.cwd())
        if config_file is None:
            if logger:
                logger.debug("No configuration file found")
            return None

    loaded = load_config_file(config_file)
    if logger:
        if loaded is None:
            logger.debug(f"Configuration file {config_file} is empty")
        else:
            logger.info(f"Loaded configuration from {config_file}")
    return loaded
