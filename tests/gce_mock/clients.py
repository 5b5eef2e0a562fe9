"""Mock compute_v1 clients.

Each client mirrors the keyword-argument signature of the real client
method it replaces and records every call on the shared state.
"""

from __future__ import annotations

from google.api_core.exceptions import NotFound
from google.cloud import compute_v1

from gceprovisioner.cloud import GCECloud

from .state import MOCK_PROJECT, MOCK_REGION, MockComputeState


class MockInstancesClient:
    def __init__(self, state: MockComputeState) -> None:
        self._state = state

    def get(self, *, project: str, zone: str, instance: str) -> compute_v1.Instance:
        self._state.record("get", project=project, zone=zone, instance=instance)
        try:
            return self._state.instances[(zone, instance)]
        except KeyError:
            raise NotFound(f"The resource 'instances/{instance}' was not found") from None

    def insert(
        self, *, project: str, zone: str, instance_resource: compute_v1.Instance
    ) -> compute_v1.Operation:
        self._state.record("insert", project=project, zone=zone, instance_resource=instance_resource)
        self._state.instances[(zone, instance_resource.name)] = instance_resource
        return self._state.new_operation(zone)

    def set_metadata(
        self,
        *,
        project: str,
        zone: str,
        instance: str,
        metadata_resource: compute_v1.Metadata,
    ) -> compute_v1.Operation:
        self._state.record(
            "set_metadata",
            project=project,
            zone=zone,
            instance=instance,
            metadata_resource=metadata_resource,
        )
        return self._state.new_operation(zone)


class MockDisksClient:
    def __init__(self, state: MockComputeState) -> None:
        self._state = state

    def get(self, *, project: str, zone: str, disk: str) -> compute_v1.Disk:
        self._state.record("disks.get", project=project, zone=zone, disk=disk)
        try:
            return self._state.disks[(zone, disk)]
        except KeyError:
            raise NotFound(f"The resource 'disks/{disk}' was not found") from None


class MockAddressesClient:
    """Supports the single filter form ``address eq <ip>``."""

    def __init__(self, state: MockComputeState) -> None:
        self._state = state

    def list(self, *, request: compute_v1.ListAddressesRequest) -> list[compute_v1.Address]:
        self._state.record("addresses.list", request=request)
        _, _, ip = request.filter.partition(" eq ")
        return [a for a in self._state.addresses if a.address == ip]


class MockZoneOperationsClient:
    def __init__(self, state: MockComputeState) -> None:
        self._state = state

    def get(self, *, project: str, zone: str, operation: str) -> compute_v1.Operation:
        self._state.record("zone_operations.get", project=project, zone=zone, operation=operation)
        return self._state.next_operation_status(operation)


def create_mock_cloud(
    state: MockComputeState,
    project: str = MOCK_PROJECT,
    region: str = MOCK_REGION,
) -> GCECloud:
    """Build a GCECloud whose clients are backed by ``state``."""
    return GCECloud(
        project=project,
        region=region,
        instances=MockInstancesClient(state),
        disks=MockDisksClient(state),
        addresses=MockAddressesClient(state),
        zone_operations=MockZoneOperationsClient(state),
    )
