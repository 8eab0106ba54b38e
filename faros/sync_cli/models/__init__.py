"""Data models for configuration, events, test results and uploads."""

from faros.sync_cli.models.config import (
    Configuration,
    Defaults,
    FileConfig,
    FileSourceConfig,
    LogsConfig,
    SourceConfig,
)
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
from faros.sync_cli.models.test_suite import TestCase, TestResults, TestStep, TestSuite
from faros.sync_cli.models.upload import (
    TaskState,
    UploadError,
    UploadResult,
    UploadTask,
)

__all__ = [
    "CICDData",
    "Configuration",
    "Defaults",
    "DeployRecord",
    "Event",
    "FileConfig",
    "FileSourceConfig",
    "LogsConfig",
    "RunRecord",
    "SourceConfig",
    "StatusCategory",
    "TaskState",
    "TestCase",
    "TestCaseRecord",
    "TestExecutionData",
    "TestRecord",
    "TestResults",
    "TestStats",
    "TestStep",
    "TestStepRecord",
    "TestSuite",
    "UploadError",
    "UploadResult",
    "UploadTask",
    "UriRef",
]
