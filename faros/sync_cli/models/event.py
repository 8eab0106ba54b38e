"""Models for the event envelope sent to the Faros events API."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EVENT_VERSION = "0.0.1"

EventType = Literal["CI", "CD", "TestExecution"]


class _EventModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class UriRef(_EventModel):
    """Reference to an entity by URI, e.g. GitHub://org/repo/sha."""

    uri: str = Field(..., description="<source>://<org>/<repo>/<id>")


class StatusCategory(_EventModel):
    """Status of a run or deployment."""

    category: str = Field(..., description="Status category")


class RunRecord(_EventModel):
    """A CI run with optional status and timing."""

    uri: str = Field(..., description="Run URI")
    status: StatusCategory | None = None
    started_at: str | None = None
    ended_at: str | None = None


class DeployRecord(_EventModel):
    """A deployment with optional status and timing."""

    uri: str = Field(..., description="Deploy URI")
    status: StatusCategory | None = None
    started_at: str | None = None
    ended_at: str | None = None


class CICDData(_EventModel):
    """Payload of CI and CD events."""

    commit: UriRef | None = None
    run: RunRecord | None = None
    artifact: UriRef | None = None
    deploy: DeployRecord | None = None


class TestStats(_EventModel):
    """Aggregate counts for a test suite."""

    __test__ = False

    success: int = 0
    failure: int = 0
    skipped: int = 0
    unknown: int = 0
    custom: int = 0
    total: int = 0


class TestStepRecord(_EventModel):
    """A single step within a test case."""

    __test__ = False

    id: str
    name: str
    status: str
    status_details: str | None = None


class TestCaseRecord(_EventModel):
    """A single test case within a suite."""

    __test__ = False

    id: str
    name: str
    type: str
    status: str
    status_details: str | None = None
    step: list[TestStepRecord] | None = None


class TestRecord(_EventModel):
    """Suite-level test execution record."""

    __test__ = False

    id: str
    suite: str
    source: str
    type: str
    status: str
    status_details: str | None = None
    stats: TestStats
    start_time: str
    end_time: str
    case: list[TestCaseRecord] | None = None


class TestExecutionData(_EventModel):
    """Payload of TestExecution events."""

    __test__ = False

    commit: UriRef | None = None
    test: TestRecord


class Event(_EventModel):
    """Envelope for a single event."""

    type: EventType
    version: str = EVENT_VERSION
    origin: str
    data: CICDData | TestExecutionData

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON body expected by the events API."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
