"""Error taxonomy for configuration, validation and transport failures."""


class SyncError(Exception):
    """Base class for all errors raised by the sync engine."""


class ConfigurationError(SyncError):
    """Configuration is missing, unreadable or lacks a required secret."""


class ValidationError(SyncError):
    """A caller-supplied event does not satisfy its minimum required fields."""


class TransientNetworkError(SyncError):
    """A network-level failure that persisted after all retry attempts."""


class HTTPError(SyncError):
    """The API answered with a non-success status."""

    def __init__(self, status: int, body: str) -> None:
        """Initialize with the response status and body."""
        super().__init__(f"API request failed: {status} {body}")
        self.status = status
        self.body = body
