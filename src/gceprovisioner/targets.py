"""Render targets: where mapped desired state is applied.

A target dispatches to the task's ``render_<kind>`` method, so each task
kind decides how it is applied to each target. Two targets exist:

- GCEAPITarget ("gce"): calls the compute API directly
- TerraformTarget ("terraform", see terraform.py): emits Terraform JSON

Both share the task's payload mapping and differ only in the address
resolver they hand it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

from .operations import DEFAULT_POLL_INTERVAL_SECONDS
from .registry import ResourceRegistry

if TYPE_CHECKING:
    from .cloud import GCECloud
    from .task import Task, TaskChanges

logger = logging.getLogger(__name__)


class UnsupportedChangeError(Exception):
    """Raised when a diff contains fields that cannot be applied in place.

    Existing resources only support the update paths their render method
    implements. Anything left over is reported instead of being dropped.
    """

    def __init__(self, kind: str, name: str | None, changes: dict[str, Any]) -> None:
        self.kind = kind
        self.resource_name = name
        self.changes = changes
        fields = ", ".join(sorted(changes))
        super().__init__(f"Cannot apply changes to {kind} {name!r}: unsupported fields [{fields}]")


class AddressResolver(Protocol):
    """Turns an IP address reference into the value placed in a payload."""

    def resolve(self, address_name: str) -> str | None:
        """Return the address value, or None if it is not known yet."""
        ...


class LiteralAddressResolver:
    """Resolves address references to the literal IP held by the registry."""

    def __init__(self, registry: ResourceRegistry) -> None:
        self._registry = registry

    def resolve(self, address_name: str) -> str | None:
        return self._registry.address(address_name).address


class Target:
    """Base render target.

    Attributes:
        kind: Suffix of the task method handling this target.
        reads_live_state: Whether the driver should Find actual state
            before rendering. Targets that do not read live state render
            every task as a create.
    """

    kind: ClassVar[str] = ""
    reads_live_state: ClassVar[bool] = True

    def __init__(self, registry: ResourceRegistry) -> None:
        self.registry = registry

    def render(self, actual: Task | None, desired: Task, changes: TaskChanges) -> None:
        method = getattr(type(desired), f"render_{self.kind}", None)
        if method is None:
            raise NotImplementedError(
                f"{type(desired).__name__} does not support the {self.kind!r} target"
            )
        method(self, actual, desired, changes)

    def finish(self) -> None:
        """Flush any buffered output. No-op by default."""
        return None


class GCEAPITarget(Target):
    """Applies changes by calling the compute API."""

    kind: ClassVar[str] = "gce"
    reads_live_state: ClassVar[bool] = True

    def __init__(
        self,
        cloud: GCECloud,
        registry: ResourceRegistry,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        super().__init__(registry)
        self.cloud = cloud
        self.poll_interval_seconds = poll_interval_seconds
