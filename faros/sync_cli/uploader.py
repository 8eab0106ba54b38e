"""Upload many events concurrently and aggregate their outcomes."""

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Protocol

from faros.sync_cli.models.config import DEFAULT_CONCURRENCY
from faros.sync_cli.models.event import Event
from faros.sync_cli.models.upload import (
    TaskState,
    UploadError,
    UploadResult,
    UploadTask,
)

ProgressCallback = Callable[[int, int], None]

NOT_DISPATCHED_MESSAGE = "Upload stopped before this task was dispatched"


class EventSender(Protocol):
    """Anything that can deliver an event to a graph."""

    async def send_event(
        self,
        graph: str,
        event: Event,
        *,
        validate_only: bool = False,
        full: bool = True,
    ) -> None:
        """Send one event."""


class UploadCoordinator:
    """Fans out event uploads under a concurrency ceiling.

    A failed upload never affects its siblings: failures are collected into
    the returned UploadResult and upload_batch does not raise for them.
    """

    def __init__(
        self,
        client: EventSender,
        logger: logging.Logger,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        """Initialize coordinator with a client and concurrency ceiling."""
        if concurrency < 1:
            raise ValueError(f"Concurrency must be at least 1, got {concurrency}")
        self.client = client
        self.logger = logger
        self.concurrency = concurrency
        self._stopping = False

    def stop(self) -> None:
        """Stop dispatching new uploads; uploads in flight run to completion."""
        if not self._stopping:
            self.logger.warning("Stop requested; no further uploads will be dispatched")
        self._stopping = True

    async def upload_batch(
        self,
        tasks: Sequence[UploadTask],
        graph: str,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        """Upload every task and return the aggregate outcome.

        A stop requested before or during the batch applies to it; the flag is
        cleared once the batch has settled.

        Args:
            tasks: Independent upload units
            graph: Target graph
            on_progress: Called with (settled, total) after each task settles

        Returns:
            Count of successful uploads and the failures in completion order

        """
        total = len(tasks)
        limiter = asyncio.Semaphore(self.concurrency)
        states = [TaskState.PENDING] * total
        result = UploadResult()

        self.logger.info(
            f"Uploading {total} events to graph {graph} "
            f"(concurrency {self.concurrency})"
        )

        def settle(index: int, error: str | None) -> None:
            task = tasks[index]
            if error is None:
                states[index] = TaskState.SUCCEEDED
                result.uploaded_count += 1
            else:
                states[index] = TaskState.FAILED
                result.errors.append(
                    UploadError(identity=task.suite_identity, error_message=error)
                )
            self._report_progress(on_progress, result.total, total)

        async def run(index: int) -> None:
            task = tasks[index]
            async with limiter:
                if self._stopping:
                    settle(index, NOT_DISPATCHED_MESSAGE)
                    return

                states[index] = TaskState.SENDING
                self.logger.debug(f"Sending {task.suite_identity}")
                try:
                    await self.client.send_event(graph, task.event)
                except Exception as e:
                    self.logger.error(
                        f"Upload failed: {task.suite_identity}: "
                        f"{type(e).__name__}: {e}"
                    )
                    settle(index, str(e) or type(e).__name__)
                    return

            self.logger.debug(f"Uploaded {task.suite_identity}")
            settle(index, None)

        try:
            await asyncio.gather(*(run(index) for index in range(total)))
        finally:
            self._stopping = False

        self.logger.info(
            f"Upload finished: {result.uploaded_count} succeeded, "
            f"{len(result.errors)} failed"
        )
        return result

    def _report_progress(
        self, on_progress: ProgressCallback | None, settled: int, total: int
    ) -> None:
        if on_progress is None:
            return
        try:
            on_progress(settled, total)
        except Exception:
            self.logger.exception("Progress callback failed")
