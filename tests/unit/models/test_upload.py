"""Tests for upload result models."""

from faros.sync_cli.models.upload import UploadError, UploadResult


def test_upload_result_ok() -> None:
    """A result without errors is ok."""
    result = UploadResult(uploaded_count=3)

    assert result.ok
    assert result.total == 3


def test_upload_result_with_errors() -> None:
    """Errors count towards the total and clear ok."""
    result = UploadResult(
        uploaded_count=1,
        errors=[
            UploadError(identity="b", error_message="API request failed: 400 bad"),
            UploadError(identity="c", error_message="timeout"),
        ],
    )

    assert not result.ok
    assert result.total == 3
    assert [e.identity for e in result.errors] == ["b", "c"]
