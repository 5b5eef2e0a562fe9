"""Base types shared by reconcilable resource tasks.

A task is a pydantic model describing one cloud resource. The same class
holds desired state (loaded from config) and actual state (returned by
find()). Fields left as None are not managed: they never produce a change.

Every task kind provides:
- compare_with_id(): identity used to pair desired and actual tasks
- find(context): read actual state, or None when the resource is absent
- build_changes(actual): sparse TaskChanges for the fields that differ
- check_changes(actual, desired, changes): validation before dispatch
- render_<target>(target, actual, desired, changes): one per render target
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from .registry import ResourceRegistry

if TYPE_CHECKING:
    from .cloud import GCECloud
    from .targets import Target


@dataclass
class ReconcileContext:
    """Everything a task needs during one reconciliation pass.

    Attributes:
        project: Project resources live in.
        target: Active render target.
        registry: Sibling resources referenced by name.
        cloud: Live backend handle; None when only rendering templates.
    """

    project: str
    target: Target
    registry: ResourceRegistry
    cloud: GCECloud | None = None

    def require_cloud(self) -> GCECloud:
        if self.cloud is None:
            raise RuntimeError("live backend handle is not configured for this context")
        return self.cloud


class TaskChanges(BaseModel):
    """Sparse diff: populated fields hold the desired value of a divergence."""

    model_config = {"extra": "forbid"}

    def changed_fields(self) -> list[str]:
        return [name for name in type(self).model_fields if getattr(self, name) is not None]

    def is_zero(self) -> bool:
        """True iff no field differs from a freshly constructed changeset."""
        return not self.changed_fields()

    def describe(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.changed_fields()}


class Task(BaseModel):
    """Base for resource tasks."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    def compare_with_id(self) -> str | None:
        raise NotImplementedError("Subclasses must implement compare_with_id")

    def identity_errors(self) -> list[str]:
        """Return problems that prevent this task from being reconciled."""
        return []

    def find(self, context: ReconcileContext) -> Task | None:
        raise NotImplementedError("Subclasses must implement find")

    def build_changes(self, actual: Task) -> TaskChanges:
        raise NotImplementedError("Subclasses must implement build_changes")

    def as_changes(self) -> TaskChanges:
        """Changeset used when the resource does not exist yet."""
        raise NotImplementedError("Subclasses must implement as_changes")

    @staticmethod
    def check_changes(actual: Task | None, desired: Task, changes: TaskChanges) -> None:
        """Reject unsupported changes before dispatch. Accepts everything by default."""
        return None
