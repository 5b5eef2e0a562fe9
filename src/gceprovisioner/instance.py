"""Compute Engine instance task.

Desired and actual state of one VM instance, identified by name and zone.

Lifecycle of one reconciliation pass:
1. find() reads the live instance (None when it does not exist)
2. build_changes() diffs desired against actual, field by field
3. check_changes() validates the diff (accepts everything for instances)
4. render_gce() / render_terraform() applies it to the active target

Only metadata can be updated in place. Metadata writes carry the
fingerprint captured by find(); any other change to an existing instance
is rejected by the live target.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from google.api_core.exceptions import GoogleAPICallError
from google.cloud import compute_v1
from pydantic import Field, PrivateAttr, field_validator

from .cloud import BackendCallError, is_not_found
from .operations import wait_for_zone_operation
from .registry import ResourceRegistry
from .resources import ContentSource, ResourceRenderError, StringResource, resource_as_string
from .scopes import expand_scope_alias, shorten_scope
from .targets import AddressResolver, GCEAPITarget, LiteralAddressResolver, UnsupportedChangeError
from .task import ReconcileContext, Task, TaskChanges
from .terraform import (
    TerraformAccessConfig,
    TerraformAddressResolver,
    TerraformAttachedDisk,
    TerraformInstanceTemplate,
    TerraformNetworkInterface,
    TerraformScheduling,
    TerraformServiceAccount,
    TerraformTarget,
)
from .urls import (
    MalformedURLError,
    build_image_url,
    build_machine_type_url,
    last_component,
    parse_google_cloud_url,
    shorten_image_url,
)

logger = logging.getLogger(__name__)

BOOT_DISK_DEVICE_NAME = "persistent-disks-0"
STARTUP_SCRIPT_METADATA_KEY = "startup-script"
DEFAULT_SERVICE_ACCOUNT_EMAIL = "default"


class InstanceMappingError(Exception):
    """Raised when desired state cannot be mapped to an API payload."""

    pass


class Instance(Task):
    """A Compute Engine instance.

    Identity is (name, zone). References to networks, subnets, addresses
    and disks are names resolved through the ResourceRegistry when the
    payload is built. ``disks`` maps device name to disk name and never
    contains the boot disk, which is derived from ``image``.
    """

    name: str | None = None
    zone: str | None = None

    machine_type: str | None = Field(None, alias="machineType")
    image: str | None = None
    preemptible: bool | None = None
    can_ip_forward: bool | None = Field(None, alias="canIpForward")

    tags: list[str] | None = None
    scopes: list[str] | None = None
    metadata: dict[str, ContentSource] | None = None

    network: str | None = None
    subnet: str | None = None
    ip_address: str | None = Field(None, alias="ipAddress")
    disks: dict[str, str] | None = None

    # Set by find(); only valid for the read that produced it
    _metadata_fingerprint: str | None = PrivateAttr(default=None)

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        return list(dict.fromkeys(v))

    @field_validator("disks")
    @classmethod
    def validate_device_names(cls, v: dict[str, str] | None) -> dict[str, str] | None:
        if v and BOOT_DISK_DEVICE_NAME in v:
            raise ValueError(f"device name {BOOT_DISK_DEVICE_NAME!r} is reserved for the boot disk")
        return v

    @property
    def metadata_fingerprint(self) -> str | None:
        return self._metadata_fingerprint

    def compare_with_id(self) -> str | None:
        return self.name

    def identity_errors(self) -> list[str]:
        errors = []
        if not self.name:
            errors.append("instance name is required")
        if not self.zone:
            errors.append(f"zone is required for instance {self.name!r}")
        return errors

    # ------------------------------------------------------------------
    # Actual state
    # ------------------------------------------------------------------

    def find(self, context: ReconcileContext) -> Instance | None:
        """Read the live instance with this name and zone.

        Returns:
            The actual state, or None if the instance does not exist.

        Raises:
            BackendCallError: If a compute API call fails.
            MalformedURLError: If the API returns an unparseable resource URL.
        """
        cloud = context.require_cloud()
        project = context.project

        try:
            r = cloud.instances.get(project=project, zone=self.zone, instance=self.name)
        except GoogleAPICallError as e:
            if is_not_found(e):
                return None
            raise BackendCallError(f"error getting Instance {self.name!r}: {e}") from e

        actual = Instance(
            name=r.name,
            tags=list(r.tags.items),
            zone=last_component(r.zone),
            machine_type=last_component(r.machine_type),
            can_ip_forward=r.can_ip_forward,
        )

        if "scheduling" in r:
            actual.preemptible = r.scheduling.preemptible

        if r.network_interfaces:
            ni = r.network_interfaces[0]
            actual.network = last_component(ni.network)
            if ni.subnetwork:
                actual.subnet = last_component(ni.subnetwork)
            if ni.access_configs:
                nat_ip = ni.access_configs[0].nat_i_p
                if nat_ip:
                    addresses = cloud.find_address_by_ip(nat_ip)
                    if not addresses:
                        raise BackendCallError(f"address not found {nat_ip!r}")
                    actual.ip_address = addresses[0].name

        actual.scopes = [
            shorten_scope(scope)
            for service_account in r.service_accounts
            for scope in service_account.scopes
        ]

        actual.disks = {}
        for i, disk in enumerate(r.disks):
            if i == 0:
                actual.image = self._find_boot_image(context, disk.source)
            else:
                try:
                    url = parse_google_cloud_url(disk.source)
                except MalformedURLError as e:
                    raise MalformedURLError(
                        f"unable to parse disk source URL {disk.source!r}: {e}"
                    ) from e
                actual.disks[disk.device_name] = url.name

        if "metadata" in r:
            actual.metadata = {}
            for item in r.metadata.items:
                if "value" not in item:
                    logger.warning(
                        "ignoring GCE instance metadata entry with nil-value",
                        extra={"instance": r.name, "key": item.key},
                    )
                    continue
                actual.metadata[item.key] = StringResource(value=item.value)
            actual._metadata_fingerprint = r.metadata.fingerprint

        return actual

    def _find_boot_image(self, context: ReconcileContext, source: str) -> str:
        cloud = context.require_cloud()
        # TODO: parse the source URL instead of assuming the instance's project and zone
        disk_name = last_component(source)
        try:
            d = cloud.disks.get(project=context.project, zone=self.zone, disk=disk_name)
        except GoogleAPICallError as e:
            if is_not_found(e):
                raise BackendCallError(f"disk not found {source!r}: {e}") from e
            raise BackendCallError(f"error querying for disk {source!r}: {e}") from e

        try:
            return shorten_image_url(context.project, d.source_image)
        except MalformedURLError as e:
            raise MalformedURLError(f"error parsing source image URL: {e}") from e

    # ------------------------------------------------------------------
    # Diff
    # ------------------------------------------------------------------

    def build_changes(self, actual: Task) -> InstanceChanges:
        if not isinstance(actual, Instance):
            raise TypeError(f"cannot diff Instance against {type(actual).__name__}")
        return build_changes(actual, self)

    def as_changes(self) -> InstanceChanges:
        return InstanceChanges(**{f: getattr(self, f) for f in InstanceChanges.model_fields})

    # ------------------------------------------------------------------
    # Payload mapping
    # ------------------------------------------------------------------

    def map_to_gce(
        self,
        project: str,
        address_resolver: AddressResolver,
        registry: ResourceRegistry,
    ) -> compute_v1.Instance:
        """Map desired state to a compute API Instance payload.

        The address resolver decides how the IP address reference is
        expressed: the live target returns the literal address, the
        Terraform target returns an interpolation.

        Raises:
            InstanceMappingError: If required fields are missing or the
                IP address cannot be resolved.
            ResourceRenderError: If a metadata source cannot be rendered.
            UnresolvedReferenceError: If a referenced resource is unknown.
            InvalidImageSpecError: If the image spec is malformed.
        """
        if not self.name or not self.zone:
            raise InstanceMappingError("instance name and zone are required")
        if not self.image:
            raise InstanceMappingError(f"image is required for instance {self.name!r}")
        if not self.machine_type:
            raise InstanceMappingError(f"machineType is required for instance {self.name!r}")

        zone = self.zone

        if self.preemptible:
            scheduling = compute_v1.Scheduling(
                automatic_restart=False,
                on_host_maintenance="TERMINATE",
                preemptible=True,
            )
        else:
            scheduling = compute_v1.Scheduling(
                automatic_restart=True,
                on_host_maintenance="MIGRATE",
                preemptible=False,
            )

        disks = [
            compute_v1.AttachedDisk(
                initialize_params=compute_v1.AttachedDiskInitializeParams(
                    source_image=build_image_url(project, self.image),
                ),
                boot=True,
                device_name=BOOT_DISK_DEVICE_NAME,
                index=0,
                auto_delete=True,
                mode="READ_WRITE",
                type_="PERSISTENT",
            )
        ]
        for device_name, disk_name in (self.disks or {}).items():
            disks.append(
                compute_v1.AttachedDisk(
                    source=registry.disk(disk_name).url(project, default_zone=zone),
                    auto_delete=False,
                    mode="READ_WRITE",
                    device_name=device_name,
                )
            )

        payload: dict[str, Any] = {
            "name": self.name,
            "can_ip_forward": bool(self.can_ip_forward),
            "machine_type": build_machine_type_url(project, zone, self.machine_type),
            "disks": disks,
            "scheduling": scheduling,
            "metadata": compute_v1.Metadata(items=self._render_metadata_items()),
        }

        if self.tags is not None:
            payload["tags"] = compute_v1.Tags(items=list(self.tags))

        if self.network is not None or self.ip_address is not None:
            payload["network_interfaces"] = [
                self._build_network_interface(project, address_resolver, registry)
            ]

        if self.scopes is not None:
            payload["service_accounts"] = [
                compute_v1.ServiceAccount(
                    email=DEFAULT_SERVICE_ACCOUNT_EMAIL,
                    scopes=[expand_scope_alias(s) for s in self.scopes],
                )
            ]

        return compute_v1.Instance(**payload)

    def _build_network_interface(
        self,
        project: str,
        address_resolver: AddressResolver,
        registry: ResourceRegistry,
    ) -> compute_v1.NetworkInterface:
        interface = compute_v1.NetworkInterface()
        if self.network is not None:
            interface.network = registry.network(self.network).url(project)
        if self.subnet is not None:
            interface.subnetwork = registry.subnet(self.subnet).name

        if self.ip_address is not None:
            try:
                addr = address_resolver.resolve(self.ip_address)
            except LookupError as e:
                raise InstanceMappingError(f"unable to resolve IP for instance: {e}") from e
            if addr is None:
                raise InstanceMappingError("instance IP address has not yet been created")
            interface.access_configs = [
                compute_v1.AccessConfig(nat_i_p=addr, type_="ONE_TO_ONE_NAT")
            ]

        return interface

    def _render_metadata_items(self) -> list[compute_v1.Items]:
        items = []
        for key, source in (self.metadata or {}).items():
            try:
                value = resource_as_string(source)
            except ResourceRenderError as e:
                raise ResourceRenderError(f"error rendering Instance metadata {key!r}: {e}") from e
            items.append(compute_v1.Items(key=key, value=value))
        return items

    # ------------------------------------------------------------------
    # Render targets
    # ------------------------------------------------------------------

    @staticmethod
    def render_gce(
        target: GCEAPITarget,
        actual: Instance | None,
        desired: Instance,
        changes: InstanceChanges,
    ) -> None:
        """Apply changes through the compute API.

        Creates the instance when it does not exist. For an existing
        instance only metadata is updated in place; any other changed field
        raises UnsupportedChangeError before a call is made.
        """
        cloud = target.cloud
        project = cloud.project
        zone = desired.zone

        i = desired.map_to_gce(project, LiteralAddressResolver(target.registry), target.registry)

        if actual is None:
            logger.info("Creating instance", extra={"instance": i.name, "zone": zone})
            try:
                cloud.instances.insert(project=project, zone=zone, instance_resource=i)
            except GoogleAPICallError as e:
                raise BackendCallError(f"error creating Instance: {e}") from e
            return

        unsupported = [f for f in changes.changed_fields() if f != "metadata"]
        if unsupported:
            raise UnsupportedChangeError("Instance", i.name, changes.describe())

        if changes.metadata is not None:
            logger.info("Updating instance metadata", extra={"instance": i.name, "zone": zone})

            if actual.metadata_fingerprint is not None:
                i.metadata.fingerprint = actual.metadata_fingerprint
            try:
                op = cloud.instances.set_metadata(
                    project=project,
                    zone=zone,
                    instance=i.name,
                    metadata_resource=i.metadata,
                )
            except GoogleAPICallError as e:
                raise BackendCallError(f"error setting metadata on instance: {e}") from e

            wait_for_zone_operation(cloud, project, op, target.poll_interval_seconds)

            changes.metadata = None

        if not changes.is_zero():
            logger.error(
                "Cannot apply changes to Instance",
                extra={"instance": i.name, "changes": changes.changed_fields()},
            )
            raise UnsupportedChangeError("Instance", i.name, changes.describe())

    @staticmethod
    def render_terraform(
        target: TerraformTarget,
        actual: Instance | None,
        desired: Instance,
        changes: InstanceChanges,
    ) -> None:
        """Emit a google_compute_instance block for the desired state."""
        i = desired.map_to_gce(
            target.project, TerraformAddressResolver(target.registry), target.registry
        )

        tf = TerraformInstanceTemplate(
            name=i.name,
            can_ip_forward=i.can_ip_forward,
            machine_type=last_component(i.machine_type),
            # Terraform requires a zone; the payload does not carry one
            zone=i.zone or desired.zone,
            tags=list(i.tags.items) if "tags" in i else None,
        )

        tf.add_service_accounts(i.service_accounts)

        for d in i.disks:
            tfd = TerraformAttachedDisk(
                auto_delete=d.auto_delete,
                scratch=d.type_ == "SCRATCH",
                device_name=d.device_name,
                disk=last_component(d.source) if d.source else None,
            )
            if "initialize_params" in d:
                params = d.initialize_params
                tfd.disk = params.disk_name or None
                tfd.image = params.source_image or None
                tfd.type = params.disk_type or None
                tfd.size = params.disk_size_gb or None
            tf.disk.append(tfd)

        network = target.registry.network(desired.network) if desired.network else None
        subnet = target.registry.subnet(desired.subnet) if desired.subnet else None
        for ni in i.network_interfaces:
            tf.network_interface.append(
                TerraformNetworkInterface(
                    network=network.terraform_name() if network else None,
                    subnetwork=subnet.terraform_name() if subnet else None,
                    access_config=[
                        TerraformAccessConfig(nat_ip=ac.nat_i_p) for ac in ni.access_configs
                    ],
                )
            )

        tf.add_metadata(i.metadata)
        tf.metadata_startup_script = tf.metadata.pop(STARTUP_SCRIPT_METADATA_KEY, None)

        if "scheduling" in i:
            tf.scheduling = TerraformScheduling(
                automatic_restart=i.scheduling.automatic_restart,
                on_host_maintenance=i.scheduling.on_host_maintenance,
                preemptible=i.scheduling.preemptible,
            )

        target.render_resource("google_compute_instance", i.name, tf)


class InstanceChanges(TaskChanges):
    """Fields of Instance that differ between desired and actual."""

    name: str | None = None
    zone: str | None = None
    machine_type: str | None = None
    image: str | None = None
    preemptible: bool | None = None
    can_ip_forward: bool | None = None
    tags: list[str] | None = None
    scopes: list[str] | None = None
    metadata: dict[str, ContentSource] | None = None
    network: str | None = None
    subnet: str | None = None
    ip_address: str | None = None
    disks: dict[str, str] | None = None


def _equal(actual: Any, desired: Any) -> bool:
    return actual == desired


def _same_set(actual: list[str], desired: list[str]) -> bool:
    return set(actual) == set(desired)


def _same_scopes(actual: list[str], desired: list[str]) -> bool:
    return [shorten_scope(s) for s in actual] == [shorten_scope(s) for s in desired]


def _same_metadata(actual: dict[str, Any], desired: dict[str, Any]) -> bool:
    if actual.keys() != desired.keys():
        return False
    return all(resource_as_string(actual[k]) == resource_as_string(desired[k]) for k in desired)


_FIELD_COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    "name": _equal,
    "zone": _equal,
    "machine_type": _equal,
    "image": _equal,
    "preemptible": _equal,
    "can_ip_forward": _equal,
    "tags": _same_set,
    "scopes": _same_scopes,
    "metadata": _same_metadata,
    "network": _equal,
    "subnet": _equal,
    "ip_address": _equal,
    "disks": _equal,
}

# Every managed field needs a comparator and a slot in InstanceChanges
if not (set(Instance.model_fields) == set(InstanceChanges.model_fields) == set(_FIELD_COMPARATORS)):
    raise TypeError(
        "Instance, InstanceChanges and _FIELD_COMPARATORS disagree on fields: "
        f"{sorted(set(Instance.model_fields) ^ set(_FIELD_COMPARATORS))}, "
        f"{sorted(set(InstanceChanges.model_fields) ^ set(_FIELD_COMPARATORS))}"
    )


def build_changes(actual: Instance, desired: Instance) -> InstanceChanges:
    """Compute the sparse diff between actual and desired state.

    Fields unset in ``desired`` are not managed and never appear. A field
    set in ``desired`` but absent from ``actual`` is a change.

    Raises:
        ResourceRenderError: If a metadata source cannot be rendered.
    """
    changes = InstanceChanges()
    for field_name, same in _FIELD_COMPARATORS.items():
        desired_value = getattr(desired, field_name)
        if desired_value is None:
            continue
        actual_value = getattr(actual, field_name)
        if actual_value is not None and same(actual_value, desired_value):
            continue
        setattr(changes, field_name, desired_value)
    return changes
