"""Blocking wait for zonal compute operations.

Mutating compute calls return an Operation that completes asynchronously.
wait_for_zone_operation polls its status at a fixed interval until it is
DONE, then surfaces the first reported error.

There is no backoff and no timeout: the call blocks for as long as the
backend reports the operation as pending or running.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from google.api_core.exceptions import GoogleAPICallError

from .cloud import BackendCallError, GCECloud
from .urls import last_component

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 1.0

STATUS_DONE = "DONE"
STATUS_PENDING = "PENDING"
STATUS_RUNNING = "RUNNING"


class OperationFailedError(Exception):
    """Raised when a completed operation reports one or more errors."""

    def __init__(self, message: str, errors: list[Any] | None = None) -> None:
        super().__init__(f"operation failed: {message}")
        self.errors = errors or []


def _status_name(status: Any) -> str:
    # compute_v1 returns Operation.Status enum members; plain strings are accepted too
    return getattr(status, "name", None) or str(status)


def wait_for_zone_operation(
    cloud: GCECloud,
    project: str,
    operation: Any,
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
) -> None:
    """Block until a zonal operation reaches a terminal status.

    Args:
        cloud: Backend handle providing the zone operations client.
        project: Project the operation belongs to.
        operation: Operation (or ExtendedOperation) returned by the mutating call.
        poll_interval_seconds: Fixed delay between status queries.

    Raises:
        BackendCallError: If a status query fails.
        OperationFailedError: If the finished operation carries errors.
    """
    zone = last_component(operation.zone)
    name = operation.name

    while True:
        try:
            status = cloud.zone_operations.get(project=project, zone=zone, operation=name)
        except GoogleAPICallError as e:
            raise BackendCallError(f"error fetching operation status: {e}") from e

        state = _status_name(status.status)
        if state == STATUS_DONE:
            break
        if state in (STATUS_PENDING, STATUS_RUNNING):
            logger.debug("operation status=%s", state, extra={"operation": name})

        time.sleep(poll_interval_seconds)

    errors = list(status.error.errors)
    if errors:
        for err in errors:
            logger.warning(
                "operation failed with error",
                extra={"operation": name, "code": err.code, "error": err.message},
            )
        raise OperationFailedError(errors[0].message, errors)

    if status.warnings:
        logger.warning(
            "operation completed with warnings",
            extra={
                "operation": name,
                "warnings": [f"{w.code}: {w.message}" for w in status.warnings],
            },
        )
