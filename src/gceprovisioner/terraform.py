"""Terraform JSON render target.

Instead of calling the compute API, tasks render themselves into Terraform
resource blocks. finish() writes all collected blocks to one
``main.tf.json`` file for terraform to plan and apply later:

    {
      "resource": {
        "google_compute_instance": {
          "<name>": { ... }
        }
      }
    }

Cross-resource values (addresses, networks) are emitted as interpolations
such as ``${google_compute_address.<name>.address}`` since the referenced
resources are declared in the same configuration.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, ClassVar

from google.cloud import compute_v1
from pydantic import BaseModel, Field

from .registry import ResourceRegistry
from .targets import Target

logger = logging.getLogger(__name__)

TERRAFORM_OUTPUT_FILENAME = "main.tf.json"


class TerraformRenderError(Exception):
    """Raised when Terraform output cannot be produced."""

    pass


class TerraformAddressResolver:
    """Resolves address references to a Terraform interpolation."""

    def __init__(self, registry: ResourceRegistry) -> None:
        self._registry = registry

    def resolve(self, address_name: str) -> str | None:
        return self._registry.address(address_name).terraform_address()


# =============================================================================
# google_compute_instance blocks
# =============================================================================


class TerraformBlock(BaseModel):
    """Base for Terraform JSON blocks; unset values are omitted on output."""

    model_config = {"extra": "forbid"}

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class TerraformAttachedDisk(TerraformBlock):
    auto_delete: bool | None = None
    scratch: bool | None = None
    device_name: str | None = None

    # Either an existing disk...
    disk: str | None = None

    # ...or parameters for a new one
    image: str | None = None
    type: str | None = None
    size: int | None = None


class TerraformAccessConfig(TerraformBlock):
    nat_ip: str | None = None


class TerraformNetworkInterface(TerraformBlock):
    network: str | None = None
    subnetwork: str | None = None
    access_config: list[TerraformAccessConfig] = Field(default_factory=list)


class TerraformServiceAccount(TerraformBlock):
    scopes: list[str] = Field(default_factory=list)


class TerraformScheduling(TerraformBlock):
    automatic_restart: bool
    on_host_maintenance: str
    preemptible: bool


class TerraformInstanceTemplate(TerraformBlock):
    """Body of a google_compute_instance resource."""

    name: str
    can_ip_forward: bool = False
    machine_type: str
    zone: str | None = None
    tags: list[str] | None = None

    disk: list[TerraformAttachedDisk] = Field(default_factory=list)
    network_interface: list[TerraformNetworkInterface] = Field(default_factory=list)
    service_account: list[TerraformServiceAccount] = Field(default_factory=list)

    metadata: dict[str, str] = Field(default_factory=dict)
    metadata_startup_script: str | None = None

    scheduling: TerraformScheduling | None = None

    def add_service_accounts(self, service_accounts: Any) -> None:
        for sa in service_accounts:
            self.service_account.append(TerraformServiceAccount(scopes=list(sa.scopes)))

    def add_metadata(self, metadata: compute_v1.Metadata | None) -> None:
        if metadata is None:
            return
        for item in metadata.items:
            self.metadata[item.key] = item.value

    def to_json(self) -> dict[str, Any]:
        body = super().to_json()
        # Empty collections are noise in the generated file
        for key in ("disk", "network_interface", "service_account", "metadata"):
            if not body.get(key):
                body.pop(key, None)
        return body


# =============================================================================
# Target
# =============================================================================


class TerraformTarget(Target):
    """Collects Terraform resource blocks and writes them on finish()."""

    kind: ClassVar[str] = "terraform"
    reads_live_state: ClassVar[bool] = False

    def __init__(self, project: str, registry: ResourceRegistry, output_dir: Path) -> None:
        super().__init__(registry)
        self.project = project
        self.output_dir = output_dir
        self._resources: dict[str, dict[str, dict[str, Any]]] = {}

    @property
    def resources(self) -> dict[str, dict[str, dict[str, Any]]]:
        """Rendered resources keyed by Terraform type, then resource name."""
        return self._resources

    def render_resource(self, resource_type: str, name: str, block: TerraformBlock) -> None:
        """Record one resource block.

        Raises:
            TerraformRenderError: If a resource with the same type and name
                was already rendered.
        """
        by_name = self._resources.setdefault(resource_type, {})
        if name in by_name:
            raise TerraformRenderError(f"duplicate Terraform resource {resource_type}.{name}")
        by_name[name] = block.to_json()
        logger.debug(
            "Rendered Terraform resource",
            extra={"resource_type": resource_type, "resource_name": name},
        )

    def to_json(self) -> dict[str, Any]:
        return {"resource": self._resources}

    def finish(self) -> None:
        """Write the collected resources to ``<output_dir>/main.tf.json``.

        Raises:
            TerraformRenderError: If the file cannot be written.
        """
        path = self.output_dir / TERRAFORM_OUTPUT_FILENAME
        content = json.dumps(self.to_json(), indent=2, sort_keys=True) + "\n"
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise TerraformRenderError(f"Failed to write {path}: {e}") from e

        logger.info(
            "Wrote Terraform configuration",
            extra={
                "path": str(path),
                "resource_count": sum(len(v) for v in self._resources.values()),
            },
        )
