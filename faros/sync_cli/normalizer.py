"""Turn raw statuses, times and parsed records into Faros events."""

import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Literal

from pydantic import BaseModel, Field

from faros.sync_cli.errors import ValidationError
from faros.sync_cli.models.config import Configuration
from faros.sync_cli.models.event import (
    CICDData,
    DeployRecord,
    Event,
    RunRecord,
    StatusCategory,
    TestCaseRecord,
    TestExecutionData,
    TestRecord,
    TestStats,
    TestStepRecord,
    UriRef,
)
from faros.sync_cli.models.test_suite import TestCase, TestStep, TestSuite

Status = Literal["Success", "Skipped", "Failure", "Custom"]

_STATUS_SYNONYMS: dict[str, Status] = {
    "success": "Success",
    "succeed": "Success",
    "succeeded": "Success",
    "pass": "Success",
    "passed": "Success",
    "skip": "Skipped",
    "skipped": "Skipped",
    "disable": "Skipped",
    "disabled": "Skipped",
    "fail": "Failure",
    "failed": "Failure",
    "failure": "Failure",
}

_DIGITS = re.compile(r"^\d+$")

DEFAULT_TEST_SOURCE = "Unknown"
DEFAULT_TEST_TYPE = "Unit"


def normalize_status(raw: str) -> Status:
    """Map a raw status string to Success, Skipped, Failure or Custom."""
    return _STATUS_SYNONYMS.get(raw.lower(), "Custom")


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as UTC ISO-8601 with milliseconds and a Z suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_time(raw: str) -> str:
    """Convert "now" or epoch milliseconds to ISO-8601.

    Any other value is returned unchanged; callers are expected to pass
    ISO-8601 already.

    Raises:
        ValidationError: If epoch milliseconds fall outside the datetime range

    """
    if raw.lower() == "now":
        return format_timestamp(datetime.now(timezone.utc))
    if _DIGITS.match(raw):
        epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
        try:
            return format_timestamp(epoch + timedelta(milliseconds=int(raw)))
        except (OverflowError, ValueError) as e:
            raise ValidationError(f"Invalid time: {raw}") from e
    return raw


def _parse_timestamp(raw: str) -> datetime:
    try:
        moment = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(f"Invalid suite timestamp: {raw}") from e
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _status_details(failure: str | None, stack_trace: str | None) -> str | None:
    if failure and stack_trace:
        return f"{failure} : {stack_trace}"
    return failure if failure is not None else stack_trace


def _new_id() -> str:
    return str(uuid.uuid4())


class TestExecutionOptions(BaseModel):
    """Caller-supplied settings for test execution events."""

    __test__ = False

    source: str | None = Field(default=None, description="Test source system")
    type: str | None = Field(default=None, description="Test type, e.g. Unit")
    commit: str | None = Field(default=None, description="Commit URI")
    test_start: str = Field(default="now", description="Start time fallback")
    test_end: str = Field(default="now", description="End time fallback")


class CICDOptions(BaseModel):
    """Caller-supplied fields for build and deploy events."""

    commit: str | None = None
    artifact: str | None = None
    run: str | None = None
    run_status: str | None = None
    run_start_time: str | None = None
    run_end_time: str | None = None
    deploy: str | None = None
    deploy_status: str | None = None
    deploy_start_time: str | None = None
    deploy_end_time: str | None = None


def _build_step(step: TestStep) -> TestStepRecord:
    return TestStepRecord(
        id=_new_id(),
        name=step.name,
        status=normalize_status(step.status),
        status_details=_status_details(step.failure, step.stack_trace),
    )


def _build_case(case: TestCase, test_type: str) -> TestCaseRecord:
    steps = [_build_step(step) for step in case.steps]
    return TestCaseRecord(
        id=_new_id(),
        name=case.name,
        type=test_type,
        status=normalize_status(case.status),
        status_details=_status_details(case.failure, case.stack_trace),
        step=steps or None,
    )


def _suite_times(suite: TestSuite, options: TestExecutionOptions) -> tuple[str, str]:
    if suite.timestamp:
        start = _parse_timestamp(suite.timestamp)
        try:
            end = start + timedelta(milliseconds=suite.duration)
        except OverflowError as e:
            raise ValidationError(f"Invalid suite timestamp: {suite.timestamp}") from e
        return suite.timestamp, format_timestamp(end)
    return normalize_time(options.test_start), normalize_time(options.test_end)


def build_test_execution_event(
    suite: TestSuite, options: TestExecutionOptions, config: Configuration
) -> Event:
    """Build a TestExecution event for one parsed suite.

    Every test record, case and step gets a fresh identifier. Empty case and
    step lists are left out of the payload.
    """
    test_type = options.type or config.defaults.test_type or DEFAULT_TEST_TYPE
    cases = [_build_case(case, test_type) for case in suite.cases]
    start_time, end_time = _suite_times(suite, options)

    test = TestRecord(
        id=_new_id(),
        suite=suite.name,
        source=options.source or config.defaults.test_source or DEFAULT_TEST_SOURCE,
        type=test_type,
        status=normalize_status(suite.status),
        status_details=suite.status,
        stats=TestStats(
            success=suite.passed,
            failure=suite.failed,
            skipped=suite.skipped,
            total=suite.total,
        ),
        start_time=start_time,
        end_time=end_time,
        case=cases or None,
    )

    return Event(
        type="TestExecution",
        origin=config.origin,
        data=TestExecutionData(
            commit=UriRef(uri=options.commit) if options.commit else None,
            test=test,
        ),
    )


def _build_run(options: CICDOptions) -> RunRecord | None:
    if not options.run:
        return None
    return RunRecord(
        uri=options.run,
        status=StatusCategory(category=options.run_status)
        if options.run_status
        else None,
        started_at=normalize_time(options.run_start_time)
        if options.run_start_time
        else None,
        ended_at=normalize_time(options.run_end_time) if options.run_end_time else None,
    )


class CIEventBuilder:
    """Build CI (build status) events.

    Requires a commit or a run.
    """

    event_type = "CI"

    def __init__(self, options: CICDOptions, origin: str) -> None:
        """Initialize builder with caller options."""
        self.options = options
        self.origin = origin

    def validate(self) -> None:
        """Raise ValidationError if required fields are missing."""
        if not self.options.commit and not self.options.run:
            raise ValidationError("Either --commit or --run is required")

    def data(self) -> CICDData:
        """Assemble the event payload."""
        opts = self.options
        return CICDData(
            commit=UriRef(uri=opts.commit) if opts.commit else None,
            artifact=UriRef(uri=opts.artifact) if opts.artifact else None,
            run=_build_run(opts),
        )

    def build(self) -> Event:
        """Validate and emit the event."""
        self.validate()
        return Event(type=self.event_type, origin=self.origin, data=self.data())


class CDEventBuilder(CIEventBuilder):
    """Build CD (deployment) events.

    Requires a deploy plus a commit or an artifact. When both are given the
    commit is used.
    """

    event_type = "CD"

    def validate(self) -> None:
        """Raise ValidationError if required fields are missing."""
        if not self.options.deploy:
            raise ValidationError("--deploy is required for deployment events")
        if not self.options.commit and not self.options.artifact:
            raise ValidationError("Either --commit or --artifact is required")

    def data(self) -> CICDData:
        """Assemble the event payload."""
        opts = self.options
        deploy = DeployRecord(
            uri=opts.deploy or "",
            status=StatusCategory(category=opts.deploy_status)
            if opts.deploy_status
            else None,
            started_at=normalize_time(opts.deploy_start_time)
            if opts.deploy_start_time
            else None,
            ended_at=normalize_time(opts.deploy_end_time)
            if opts.deploy_end_time
            else None,
        )
        return CICDData(
            deploy=deploy,
            commit=UriRef(uri=opts.commit) if opts.commit else None,
            artifact=UriRef(uri=opts.artifact)
            if opts.artifact and not opts.commit
            else None,
            run=_build_run(opts),
        )


_BUILDERS: dict[str, type[CIEventBuilder]] = {
    "build": CIEventBuilder,
    "ci": CIEventBuilder,
    "deploy": CDEventBuilder,
    "cd": CDEventBuilder,
}


def build_cicd_event(
    kind: str, options: CICDOptions, *, origin: str = "faros-cli"
) -> Event:
    """Build a CI or CD event.

    Args:
        kind: "build"/"ci" for CI events, "deploy"/"cd" for CD events
        options: Caller-supplied URIs, statuses and times
        origin: Event origin

    Raises:
        ValidationError: If the kind is unknown or required fields are missing

    """
    builder_cls = _BUILDERS.get(kind.lower())
    if builder_cls is None:
        raise ValidationError(
            f"Unknown CI/CD event kind: {kind}. Must be one of: build, deploy"
        )
    return builder_cls(options, origin).build()
