"""Tests for the upload coordinator."""

import asyncio
import logging
from typing import Any

import pytest
from aioresponses import CallbackResult, aioresponses

from faros.sync_cli.client import EventClient
from faros.sync_cli.errors import HTTPError, TransientNetworkError
from faros.sync_cli.models.config import Configuration
from faros.sync_cli.models.event import CICDData, Event, UriRef
from faros.sync_cli.models.test_suite import TestCase, TestSuite
from faros.sync_cli.models.upload import UploadTask
from faros.sync_cli.normalizer import TestExecutionOptions, build_test_execution_event
from faros.sync_cli.uploader import NOT_DISPATCHED_MESSAGE, UploadCoordinator


def _task(name: str) -> UploadTask:
    event = Event(type="CI", origin="test", data=CICDData(commit=UriRef(uri=name)))
    return UploadTask(suite_identity=name, event=event)


class FakeClient:
    """Event sender with latency that records concurrent sends."""

    def __init__(
        self,
        latency: float = 0.01,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        """Initialize fake client."""
        self.latency = latency
        self.failures = failures or {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.sent: list[str] = []

    async def send_event(
        self,
        graph: str,
        event: Event,
        *,
        validate_only: bool = False,
        full: bool = True,
    ) -> None:
        """Simulate a send."""
        name = event.data.commit.uri  # type: ignore[union-attr]
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.latency)
            if name in self.failures:
                raise self.failures[name]
            self.sent.append(name)
        finally:
            self.in_flight -= 1


@pytest.fixture
def logger() -> logging.Logger:
    """Create test logger."""
    return logging.getLogger("test.uploader")


async def test_upload_batch_all_succeed(logger: logging.Logger) -> None:
    """Every task is sent and counted."""
    client = FakeClient()
    coordinator = UploadCoordinator(client, logger, concurrency=4)

    result = await coordinator.upload_batch(
        [_task(n) for n in ["a", "b", "c"]], "default"
    )

    assert result.uploaded_count == 3
    assert result.errors == []
    assert result.ok
    assert sorted(client.sent) == ["a", "b", "c"]


async def test_upload_batch_empty(logger: logging.Logger) -> None:
    """An empty batch returns an empty result."""
    result = await UploadCoordinator(FakeClient(), logger).upload_batch([], "g")

    assert result.uploaded_count == 0
    assert result.errors == []


@pytest.mark.parametrize(("limit", "tasks"), [(1, 5), (2, 7), (3, 20)])
async def test_upload_batch_respects_concurrency(
    logger: logging.Logger, limit: int, tasks: int
) -> None:
    """No more than the limit are ever sending at once."""
    client = FakeClient(latency=0.02)
    coordinator = UploadCoordinator(client, logger, concurrency=limit)

    result = await coordinator.upload_batch(
        [_task(f"t{i}") for i in range(tasks)], "default"
    )

    assert result.uploaded_count == tasks
    assert client.max_in_flight == limit


async def test_upload_batch_partial_failure(logger: logging.Logger) -> None:
    """One failing task doesn't affect the other two."""
    client = FakeClient(failures={"b": HTTPError(400, "bad event")})
    coordinator = UploadCoordinator(client, logger, concurrency=8)

    result = await coordinator.upload_batch(
        [_task(n) for n in ["a", "b", "c"]], "default"
    )

    assert result.uploaded_count == 2
    assert len(result.errors) == 1
    assert result.errors[0].identity == "b"
    assert "400" in result.errors[0].error_message
    assert not result.ok
    assert sorted(client.sent) == ["a", "c"]


async def test_upload_batch_errors_in_completion_order(
    logger: logging.Logger,
) -> None:
    """Errors are listed in the order tasks fail, not submission order."""

    class SlowFirstClient(FakeClient):
        async def send_event(self, graph: str, event: Event, **kwargs: Any) -> None:
            name = event.data.commit.uri  # type: ignore[union-attr]
            await asyncio.sleep(0.05 if name == "first" else 0.01)
            raise TransientNetworkError(f"{name} unreachable")

    coordinator = UploadCoordinator(SlowFirstClient(), logger, concurrency=2)

    result = await coordinator.upload_batch(
        [_task("first"), _task("second")], "default"
    )

    assert [e.identity for e in result.errors] == ["second", "first"]
    assert result.uploaded_count + len(result.errors) == 2


async def test_upload_batch_unexpected_exception(logger: logging.Logger) -> None:
    """Any exception from the sender is aggregated, not raised."""
    client = FakeClient(failures={"x": RuntimeError()})

    result = await UploadCoordinator(client, logger).upload_batch(
        [_task("x"), _task("y")], "default"
    )

    assert result.uploaded_count == 1
    assert result.errors[0].error_message == "RuntimeError"


async def test_upload_batch_progress(logger: logging.Logger) -> None:
    """Progress is reported after every settled task and never decreases."""
    progress: list[tuple[int, int]] = []
    client = FakeClient(failures={"b": HTTPError(500, "boom")})

    await UploadCoordinator(client, logger, concurrency=2).upload_batch(
        [_task(n) for n in ["a", "b", "c", "d"]],
        "default",
        on_progress=lambda settled, total: progress.append((settled, total)),
    )

    assert progress == [(1, 4), (2, 4), (3, 4), (4, 4)]


async def test_upload_batch_progress_callback_errors_ignored(
    logger: logging.Logger,
) -> None:
    """A failing progress callback doesn't affect the batch."""

    def broken(settled: int, total: int) -> None:
        raise RuntimeError("display gone")

    result = await UploadCoordinator(FakeClient(), logger).upload_batch(
        [_task("a"), _task("b")], "default", on_progress=broken
    )

    assert result.uploaded_count == 2


async def test_upload_batch_stop(logger: logging.Logger) -> None:
    """stop() lets in-flight sends finish and skips the rest."""
    client = FakeClient()
    coordinator = UploadCoordinator(client, logger, concurrency=1)

    def stop_after_first(settled: int, total: int) -> None:
        if settled == 1:
            coordinator.stop()

    result = await coordinator.upload_batch(
        [_task(n) for n in ["a", "b", "c"]], "default", on_progress=stop_after_first
    )

    assert result.uploaded_count == 1
    assert client.sent == ["a"]
    assert [e.identity for e in result.errors] == ["b", "c"]
    assert all(e.error_message == NOT_DISPATCHED_MESSAGE for e in result.errors)


def test_coordinator_rejects_invalid_concurrency(logger: logging.Logger) -> None:
    """Concurrency must be positive."""
    with pytest.raises(ValueError, match="at least 1"):
        UploadCoordinator(FakeClient(), logger, concurrency=0)


async def test_upload_suites_end_to_end(logger: logging.Logger) -> None:
    """Three suites with concurrency 2 where suite B always fails."""
    config = Configuration(url="https://api.test.faros.ai", api_key="key")
    url = "https://api.test.faros.ai/graphs/default/events?full=true&validateOnly=false"
    tasks = [
        UploadTask(
            suite_identity=name,
            event=build_test_execution_event(
                TestSuite(
                    name=name,
                    status="PASS",
                    total=1,
                    passed=1,
                    cases=[TestCase(name=f"{name}-case", status="PASS")],
                ),
                TestExecutionOptions(source="Jenkins"),
                config,
            ),
        )
        for name in ["A", "B", "C"]
    ]

    def respond(request_url: Any, **kwargs: Any) -> CallbackResult:
        if kwargs["json"]["data"]["test"]["suite"] == "B":
            return CallbackResult(status=400, body="suite B rejected")
        return CallbackResult(status=200)

    async with EventClient(config, logger, backoff_base=0.0) as client:
        with aioresponses() as m:
            m.post(url, callback=respond, repeat=True)

            result = await UploadCoordinator(
                client, logger, concurrency=2
            ).upload_batch(tasks, "default")

    assert result.uploaded_count == 2
    assert len(result.errors) == 1
    assert result.errors[0].identity == "B"
    assert "suite B rejected" in result.errors[0].error_message


async def test_upload_batch_stop_before_start(logger: logging.Logger) -> None:
    """A stop requested before the batch starts is honoured, then cleared."""
    client = FakeClient()
    coordinator = UploadCoordinator(client, logger, concurrency=2)

    coordinator.stop()
    stopped = await coordinator.upload_batch([_task("a"), _task("b")], "default")

    assert stopped.uploaded_count == 0
    assert [e.error_message for e in stopped.errors] == [NOT_DISPATCHED_MESSAGE] * 2
    assert client.sent == []

    resumed = await coordinator.upload_batch([_task("c")], "default")

    assert resumed.uploaded_count == 1
    assert client.sent == ["c"]
