"""Tests for the zonal operation poller."""

from unittest.mock import patch

import pytest
from gce_mock import MockComputeState
from google.api_core.exceptions import InternalServerError
from google.cloud import compute_v1

from gceprovisioner.cloud import BackendCallError, GCECloud
from gceprovisioner.operations import OperationFailedError, _status_name, wait_for_zone_operation


def _op(status: str, errors: list[tuple[str, str]] | None = None, **kwargs) -> compute_v1.Operation:
    op = compute_v1.Operation(name="operation-1", status=status, **kwargs)
    if errors:
        op.error = compute_v1.Error(
            errors=[compute_v1.Errors(code=code, message=message) for code, message in errors]
        )
    return op


@pytest.fixture
def operation(compute_state: MockComputeState) -> compute_v1.Operation:
    return compute_state.new_operation("us-central1-a")


class TestWaitForZoneOperation:
    """Tests for wait_for_zone_operation."""

    def test_done_on_first_poll(
        self, cloud: GCECloud, compute_state: MockComputeState, operation: compute_v1.Operation
    ) -> None:
        """Test that a finished operation returns without sleeping."""
        with patch("gceprovisioner.operations.time.sleep") as sleep:
            wait_for_zone_operation(cloud, "my-project", operation)

        sleep.assert_not_called()
        call = compute_state.last_call("zone_operations.get")
        assert call.kwargs == {
            "project": "my-project",
            "zone": "us-central1-a",
            "operation": operation.name,
        }

    def test_polls_until_done(
        self, cloud: GCECloud, compute_state: MockComputeState, operation: compute_v1.Operation
    ) -> None:
        """Test that pending and running statuses are polled at the fixed interval."""
        compute_state.script_operation(_op("PENDING"), _op("RUNNING"), _op("DONE"))

        with patch("gceprovisioner.operations.time.sleep") as sleep:
            wait_for_zone_operation(cloud, "my-project", operation, poll_interval_seconds=3)

        assert compute_state.calls_to("zone_operations.get") == 3
        assert sleep.call_count == 2
        sleep.assert_called_with(3)

    def test_error_raises_first_message(
        self, cloud: GCECloud, compute_state: MockComputeState, operation: compute_v1.Operation
    ) -> None:
        """Test that the first reported error becomes the exception message."""
        compute_state.script_operation(
            _op("DONE", errors=[("QUOTA", "quota exceeded"), ("OTHER", "second error")])
        )

        with patch("gceprovisioner.operations.time.sleep"):
            with pytest.raises(OperationFailedError) as exc_info:
                wait_for_zone_operation(cloud, "my-project", operation)

        assert str(exc_info.value) == "operation failed: quota exceeded"
        assert len(exc_info.value.errors) == 2

    def test_warnings_only_succeed(
        self,
        cloud: GCECloud,
        compute_state: MockComputeState,
        operation: compute_v1.Operation,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that warnings are logged and do not fail the operation."""
        compute_state.script_operation(
            _op("DONE", warnings=[compute_v1.Warnings(code="DEPRECATED", message="old image")])
        )

        with patch("gceprovisioner.operations.time.sleep"):
            wait_for_zone_operation(cloud, "my-project", operation)

        assert "operation completed with warnings" in caplog.text

    def test_status_query_failure(
        self, cloud: GCECloud, compute_state: MockComputeState, operation: compute_v1.Operation
    ) -> None:
        """Test that a failed status query raises BackendCallError."""
        compute_state.failures["zone_operations.get"] = InternalServerError("boom")

        with pytest.raises(BackendCallError) as exc_info:
            wait_for_zone_operation(cloud, "my-project", operation)

        assert isinstance(exc_info.value.__cause__, InternalServerError)


class TestStatusName:
    """Tests for reading operation statuses."""

    @pytest.mark.parametrize("status", [compute_v1.Operation.Status.DONE, "DONE"])
    def test_enum_and_string_statuses(self, status) -> None:
        """Test that enum members and plain strings yield the same status name."""
        assert _status_name(status) == "DONE"

    def test_status_read_from_operation(self) -> None:
        """Test that a status read back from an operation message is named."""
        assert _status_name(_op("RUNNING").status) == "RUNNING"
