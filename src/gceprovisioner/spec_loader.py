"""Desired-state loading with validation.

SECURITY: All file operations enforce size limits to prevent DoS attacks
via large files. Input validation is performed at the boundary.

Expected document (flat, or wrapped Kubernetes-style under ``spec``):

```yaml
networks:
  - name: default
subnets:
  - name: nodes
    region: us-central1
addresses:
  - name: master-ip
    address: 203.0.113.10
disks:
  - name: etcd-main
    zone: us-central1-a
instances:
  - name: master-1
    zone: us-central1-a
    machineType: n1-standard-2
    image: debian-cloud/debian-12
    network: default
    ipAddress: master-ip
    disks:
      etcd: etcd-main
    metadata:
      startup-script:
        file: scripts/bootstrap.sh
```
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .instance import Instance
from .registry import IPAddress, Network, PersistentDisk, ResourceRegistry, Subnet

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when spec loading or validation fails."""

    pass


class DesiredStateDocument(BaseModel):
    """Top-level shape of a desired-state file."""

    model_config = {"extra": "forbid"}

    networks: list[Network] = Field(default_factory=list)
    subnets: list[Subnet] = Field(default_factory=list)
    addresses: list[IPAddress] = Field(default_factory=list)
    disks: list[PersistentDisk] = Field(default_factory=list)
    instances: list[Instance] = Field(default_factory=list)


@dataclass
class DesiredState:
    """Instances to reconcile plus the siblings they reference."""

    instances: list[Instance] = field(default_factory=list)
    registry: ResourceRegistry = field(default_factory=ResourceRegistry)


def _resolve_relative_files(instance: Instance, base_dir: Path) -> None:
    """Make file-backed metadata paths relative to the spec file."""
    if not instance.metadata:
        return
    for key, source in instance.metadata.items():
        path = getattr(source, "path", None)
        if path is not None and not path.is_absolute():
            instance.metadata[key] = source.model_copy(update={"path": base_dir / path})


def load_desired_state(spec_path: Path, default_zone: str | None = None) -> DesiredState:
    """Load and validate desired state from YAML.

    Args:
        spec_path: YAML file to read.
        default_zone: Zone applied to instances that do not name one.

    Returns:
        Validated instances and a registry of their sibling resources.

    Raises:
        SpecLoadError: If the file cannot be loaded or fails validation.
    """
    if not spec_path.exists():
        raise SpecLoadError(f"Spec file not found: {spec_path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = spec_path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat spec file {spec_path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Spec file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {spec_path}"
        )

    try:
        content = spec_path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read spec file {spec_path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {spec_path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Spec file must contain a YAML mapping: {spec_path}")

    # Support both flat format and Kubernetes-style wrapper
    if "apiVersion" in raw_data and "spec" in raw_data:
        spec_data = raw_data.get("spec") or {}
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {spec_path}")
    else:
        spec_data = raw_data

    try:
        document = DesiredStateDocument.model_validate(spec_data)
    except ValidationError as e:
        # Format Pydantic validation errors for readability
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")

        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {spec_path}:\n{error_list}") from e

    state = DesiredState()
    for resource in (*document.networks, *document.subnets, *document.addresses, *document.disks):
        state.registry.add(resource)

    seen: set[tuple[str | None, str | None]] = set()
    for instance in document.instances:
        if instance.zone is None and default_zone is not None:
            instance.zone = default_zone
        key = (instance.name, instance.zone)
        if key in seen:
            raise SpecLoadError(
                f"Duplicate instance {instance.name!r} in zone {instance.zone!r}: {spec_path}"
            )
        seen.add(key)
        _resolve_relative_files(instance, spec_path.parent)
        state.instances.append(instance)

    logger.info(
        "Loaded desired state",
        extra={"path": str(spec_path), "instance_count": len(state.instances)},
    )
    return state
