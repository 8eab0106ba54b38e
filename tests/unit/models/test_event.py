"""Tests for event envelope models."""

from faros.sync_cli.models.event import (
    EVENT_VERSION,
    CICDData,
    DeployRecord,
    Event,
    StatusCategory,
    TestExecutionData,
    TestRecord,
    TestStats,
    UriRef,
)


def test_event_payload_uses_camel_case_and_drops_none() -> None:
    """to_payload emits wire field names and omits unset fields."""
    event = Event(
        type="CD",
        origin="faros-cli",
        data=CICDData(
            deploy=DeployRecord(
                uri="Argo://o/app/prod/1",
                status=StatusCategory(category="Success"),
                started_at="2024-01-01T00:00:00.000Z",
            ),
            artifact=UriRef(uri="Docker://o/app/v1"),
        ),
    )

    assert event.to_payload() == {
        "type": "CD",
        "version": EVENT_VERSION,
        "origin": "faros-cli",
        "data": {
            "deploy": {
                "uri": "Argo://o/app/prod/1",
                "status": {"category": "Success"},
                "startedAt": "2024-01-01T00:00:00.000Z",
            },
            "artifact": {"uri": "Docker://o/app/v1"},
        },
    }


def test_test_execution_payload() -> None:
    """Test execution records serialize with camelCase keys."""
    event = Event(
        type="TestExecution",
        origin="faros-cli",
        data=TestExecutionData(
            test=TestRecord(
                id="1",
                suite="checkout",
                source="Jenkins",
                type="Unit",
                status="Success",
                status_details="all good",
                stats=TestStats(success=2, total=2),
                start_time="2024-01-01T00:00:00.000Z",
                end_time="2024-01-01T00:00:01.000Z",
            )
        ),
    )

    test = event.to_payload()["data"]["test"]

    assert test["statusDetails"] == "all good"
    assert test["startTime"] == "2024-01-01T00:00:00.000Z"
    assert test["endTime"] == "2024-01-01T00:00:01.000Z"
    assert test["stats"] == {
        "success": 2,
        "failure": 0,
        "skipped": 0,
        "unknown": 0,
        "custom": 0,
        "total": 2,
    }
    assert "case" not in test
    assert "commit" not in event.to_payload()["data"]
