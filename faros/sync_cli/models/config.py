"""Configuration models for the config file and the resolved configuration."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_URL = "https://prod.api.faros.ai"
DEFAULT_GRAPH = "default"
DEFAULT_ORIGIN = "faros-cli"
DEFAULT_CONCURRENCY = 8

LogLevel = Literal["debug", "info", "warn", "error"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SourceConfig(_CamelModel):
    """Non-secret settings for a single data source."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    type: str | None = Field(default=None, description="Source type, e.g. Linear")
    bucket: str | None = Field(default=None, description="S3 bucket name")
    region: str | None = Field(default=None, description="S3 region")
    prefix: str | None = Field(default=None, description="S3 key prefix")
    pattern: str | None = Field(default=None, description="S3 key pattern")
    sync_interval: str | None = Field(default=None, description="Sync interval")
    streams: list[str] | None = Field(default=None, description="Streams to sync")
    cutoff_days: int | None = Field(
        default=None, description="Only fetch data updated in the last N days"
    )
    page_size: int | None = Field(default=None, description="API page size")
    start_date: str | None = Field(default=None, description="Start date")
    end_date: str | None = Field(default=None, description="End date")
    src_image: str | None = Field(
        default=None, description="Source connector Docker image override"
    )
    dst_image: str | None = Field(
        default=None, description="Destination connector Docker image override"
    )
    connection_name: str | None = Field(
        default=None, description="Connection name used for state tracking"
    )


class FileSourceConfig(SourceConfig):
    """Source entry as it may appear in a config file.

    Credential fields are accepted here only so that they can be stripped
    before the configuration is resolved.
    """

    api_key: str | None = None
    token: str | None = None


class Defaults(_CamelModel):
    """Default values applied to sync commands."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    test_source: str | None = Field(default=None, description="Default test source")
    test_type: str | None = Field(default=None, description="Default test type")
    concurrency: int = Field(
        default=DEFAULT_CONCURRENCY, ge=1, description="Concurrent uploads"
    )


class LogsConfig(_CamelModel):
    """Logging settings from the config file."""

    level: LogLevel = Field(default="info", description="Log level")


class FileConfig(_CamelModel):
    """Schema of faros.config.yaml and its siblings."""

    url: str | None = Field(default=None, description="Faros API URL")
    graph: str | None = Field(default=None, description="Target graph")
    staging_graph: str | None = Field(
        default=None, description="Graph used for dry-run syncs"
    )
    origin: str | None = Field(default=None, description="Event origin")
    api_key: str | None = Field(
        default=None, description="Ignored: credentials must come from env or CLI"
    )
    sources: dict[str, FileSourceConfig] | None = Field(default=None)
    defaults: Defaults | None = Field(default=None)
    logs: LogsConfig | None = Field(default=None)


class Configuration(BaseModel):
    """Fully resolved, immutable configuration for one invocation."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(default=DEFAULT_URL, description="Faros API URL")
    graph: str = Field(default=DEFAULT_GRAPH, description="Target graph")
    staging_graph: str | None = Field(
        default=None, description="Graph used for dry-run syncs"
    )
    origin: str = Field(default=DEFAULT_ORIGIN, description="Event origin")
    api_key: str | None = Field(
        default=None, description="Faros API key, from env or CLI only"
    )
    sources: dict[str, SourceConfig] = Field(default_factory=dict)
    defaults: Defaults = Field(default_factory=Defaults)
    log_level: LogLevel = Field(default="info", description="Log level")
