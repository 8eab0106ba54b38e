"""Models for upload tasks and their aggregated results."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from faros.sync_cli.models.event import Event


class TaskState(str, Enum):
    """Lifecycle of a single upload task."""

    PENDING = "pending"
    SENDING = "sending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class UploadTask(BaseModel):
    """One independent unit of upload work."""

    model_config = ConfigDict(frozen=True)

    suite_identity: str = Field(..., description="Name identifying the record")
    event: Event = Field(..., description="Event to send")


class UploadError(BaseModel):
    """Failure of a single upload task."""

    identity: str = Field(..., description="Identity of the failed task")
    error_message: str = Field(..., description="Why the upload failed")


class UploadResult(BaseModel):
    """Aggregate outcome of an upload batch."""

    uploaded_count: int = Field(default=0, description="Tasks sent successfully")
    errors: list[UploadError] = Field(
        default_factory=list, description="Failures in completion order"
    )

    @property
    def total(self) -> int:
        """Number of tasks in the batch."""
        return self.uploaded_count + len(self.errors)

    @property
    def ok(self) -> bool:
        """Whether every task in the batch succeeded."""
        return not self.errors
