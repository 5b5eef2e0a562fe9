"""Sibling resources referenced by instances.

Instances refer to networks, subnets, addresses and disks by name only.
The referenced objects live in a ResourceRegistry and are looked up when a
payload is built, so a task never owns its siblings and reference cycles
are harmless.

Only the reference contract of these resources is modelled here: a name,
a URL accessor and the Terraform interpolation naming them. Their own
reconciliation is done elsewhere.
"""

from __future__ import annotations

import logging
from typing import ClassVar, TypeVar

from pydantic import BaseModel, Field

from .urls import GoogleCloudURL

logger = logging.getLogger(__name__)


class UnresolvedReferenceError(LookupError):
    """Raised when a referenced resource is not in the registry."""

    pass


def terraform_literal(resource_type: str, name: str, prop: str) -> str:
    """Build a Terraform interpolation pointing at another resource's attribute."""
    return "${" + f"{resource_type}.{name}.{prop}" + "}"


class SiblingResource(BaseModel):
    """Base for referenced resources."""

    model_config = {"extra": "ignore", "frozen": True, "populate_by_name": True}

    terraform_type: ClassVar[str] = ""

    name: str = Field(min_length=1)

    def terraform_name(self) -> str:
        return terraform_literal(self.terraform_type, self.name, "name")


class Network(SiblingResource):
    terraform_type: ClassVar[str] = "google_compute_network"

    def url(self, project: str) -> str:
        url = GoogleCloudURL(project=project, type="networks", name=self.name, is_global=True)
        return url.build_url()


class Subnet(SiblingResource):
    terraform_type: ClassVar[str] = "google_compute_subnetwork"

    region: str | None = None

    def url(self, project: str, default_region: str | None = None) -> str:
        region = self.region or default_region
        url = GoogleCloudURL(project=project, type="subnetworks", name=self.name, region=region)
        return url.build_url()


class IPAddress(SiblingResource):
    """A reserved external address.

    ``address`` is the literal IP once the address resource exists; it is
    None while the address is still to be created.
    """

    terraform_type: ClassVar[str] = "google_compute_address"

    region: str | None = None
    address: str | None = None

    def url(self, project: str, default_region: str | None = None) -> str:
        region = self.region or default_region
        url = GoogleCloudURL(project=project, type="addresses", name=self.name, region=region)
        return url.build_url()

    def terraform_address(self) -> str:
        return terraform_literal(self.terraform_type, self.name, "address")


class PersistentDisk(SiblingResource):
    terraform_type: ClassVar[str] = "google_compute_disk"

    zone: str | None = None

    def url(self, project: str, default_zone: str | None = None) -> str:
        zone = self.zone or default_zone
        url = GoogleCloudURL(project=project, type="disks", name=self.name, zone=zone)
        return url.build_url()


_R = TypeVar("_R", bound=SiblingResource)


class ResourceRegistry:
    """Name-keyed store of sibling resources, one namespace per kind."""

    def __init__(self) -> None:
        self._networks: dict[str, Network] = {}
        self._subnets: dict[str, Subnet] = {}
        self._addresses: dict[str, IPAddress] = {}
        self._disks: dict[str, PersistentDisk] = {}

    def _table(self, resource: SiblingResource) -> dict[str, SiblingResource]:
        match resource:
            case Network():
                return self._networks  # type: ignore[return-value]
            case Subnet():
                return self._subnets  # type: ignore[return-value]
            case IPAddress():
                return self._addresses  # type: ignore[return-value]
            case PersistentDisk():
                return self._disks  # type: ignore[return-value]
            case _:
                raise TypeError(f"Unsupported resource type: {type(resource).__name__}")

    def add(self, resource: SiblingResource) -> None:
        """Register a resource, replacing any previous one with the same name."""
        table = self._table(resource)
        if resource.name in table:
            logger.debug(
                "Replacing registered resource",
                extra={"kind": type(resource).__name__, "resource_name": resource.name},
            )
        table[resource.name] = resource

    def network(self, name: str) -> Network:
        return self._lookup(self._networks, "network", name)

    def subnet(self, name: str) -> Subnet:
        return self._lookup(self._subnets, "subnet", name)

    def address(self, name: str) -> IPAddress:
        return self._lookup(self._addresses, "address", name)

    def disk(self, name: str) -> PersistentDisk:
        return self._lookup(self._disks, "disk", name)

    @staticmethod
    def _lookup(table: dict[str, _R], kind: str, name: str) -> _R:
        try:
            return table[name]
        except KeyError:
            raise UnresolvedReferenceError(f"Unknown {kind} reference: {name!r}") from None
