"""Reconciliation driver for resource tasks.

One pass per task identity:

    Start -> Find -> (absent -> Create | present -> Diff) -> CheckChanges
          -> Dispatch(target) -> Done

- Find errors abort the pass; an absent resource is not an error.
- Diff produces a sparse changeset; an empty diff ends the pass early.
- CheckChanges lets a task kind reject a diff before anything is applied.
- Dispatch hands (actual, desired, changes) to the active render target.

Passes run synchronously. Ordering and parallelism across identities
belong to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .task import ReconcileContext, Task

logger = logging.getLogger(__name__)


class InvalidTaskError(ValueError):
    """Raised when a desired task lacks the fields that identify it."""

    pass


class PassOutcome(str, Enum):
    """What a reconciliation pass did."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class ReconcileResult:
    """Result of a single reconciliation pass."""

    task_kind: str
    task_id: str | None
    outcome: PassOutcome = PassOutcome.UNCHANGED
    changed_fields: list[str] = field(default_factory=list)
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if the pass succeeded."""
        return self.error is None


class Reconciler:
    """Drives tasks toward their desired state on one render target."""

    def __init__(self, context: ReconcileContext) -> None:
        self._context = context

    def reconcile(self, desired: Task) -> ReconcileResult:
        """Run one pass for a desired task.

        Raises:
            InvalidTaskError: If the task cannot be identified.
            Exception: Any error from Find, CheckChanges or the target
                propagates unchanged.
        """
        result = ReconcileResult(
            task_kind=type(desired).__name__, task_id=desired.compare_with_id()
        )

        errors = desired.identity_errors()
        if errors:
            raise InvalidTaskError("; ".join(errors))

        target = self._context.target

        actual: Task | None = None
        if target.reads_live_state:
            actual = desired.find(self._context)

        if actual is None:
            changes = desired.as_changes()
            result.outcome = PassOutcome.CREATED
        else:
            changes = desired.build_changes(actual)
            if changes.is_zero():
                logger.info(
                    "No changes",
                    extra={"kind": result.task_kind, "task_id": result.task_id},
                )
                result.end_time = datetime.now(UTC)
                return result
            result.outcome = PassOutcome.UPDATED

        result.changed_fields = changes.changed_fields()

        type(desired).check_changes(actual, desired, changes)

        logger.info(
            "Applying changes",
            extra={
                "kind": result.task_kind,
                "task_id": result.task_id,
                "target": target.kind,
                "outcome": result.outcome.value,
                "fields": result.changed_fields,
            },
        )
        target.render(actual, desired, changes)

        result.end_time = datetime.now(UTC)
        return result

    def reconcile_all(self, tasks: Iterable[Task]) -> list[ReconcileResult]:
        """Run one pass per task, sequentially.

        A failed pass is recorded in its result and logged; remaining tasks
        still run. The target is flushed once every pass has finished.
        """
        results = []
        for task in tasks:
            try:
                result = self.reconcile(task)
            except Exception as e:
                logger.exception(
                    "Reconciliation pass failed",
                    extra={"kind": type(task).__name__, "task_id": task.compare_with_id()},
                )
                result = ReconcileResult(
                    task_kind=type(task).__name__,
                    task_id=task.compare_with_id(),
                    outcome=PassOutcome.FAILED,
                    error=e,
                )
                result.end_time = datetime.now(UTC)
            self._log_result(result)
            results.append(result)

        self._context.target.finish()
        return results

    def _log_result(self, result: ReconcileResult) -> None:
        """Log pass result with structured data."""
        extra: dict[str, Any] = {
            "kind": result.task_kind,
            "task_id": result.task_id,
            "outcome": result.outcome.value,
            "duration_seconds": result.duration_seconds,
            "fields": result.changed_fields,
        }
        if result.error is not None:
            extra["error"] = str(result.error)
            logger.error("Reconciliation failed", extra=extra)
        else:
            logger.info("Reconciliation result", extra=extra)
