"""Authenticated Compute Engine handle.

Bundles the compute clients a task needs with the project and region they
operate in. Clients authenticate with Application Default Credentials;
credential setup itself is the caller's concern.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.cloud import compute_v1

logger = logging.getLogger(__name__)


class BackendCallError(Exception):
    """Raised when a compute API call fails.

    The message carries the call context; the original API error is
    chained as ``__cause__``.
    """

    pass


def is_not_found(err: BaseException) -> bool:
    """Check whether an API error means the resource does not exist."""
    return isinstance(err, NotFound)


@dataclass
class GCECloud:
    """Compute clients scoped to one project and region.

    Attributes:
        project: Project every call is issued against.
        region: Region for regional resources (addresses).
        instances: Instances client (get, insert, set_metadata).
        disks: Disks client (get).
        addresses: Addresses client (list with filter).
        zone_operations: Zone operations client (get).
    """

    project: str
    region: str
    instances: Any
    disks: Any
    addresses: Any
    zone_operations: Any

    @classmethod
    def from_default_credentials(cls, project: str, region: str) -> GCECloud:
        """Build clients using Application Default Credentials."""
        logger.info(
            "Creating compute clients",
            extra={"project": project, "region": region},
        )
        return cls(
            project=project,
            region=region,
            instances=compute_v1.InstancesClient(),
            disks=compute_v1.DisksClient(),
            addresses=compute_v1.AddressesClient(),
            zone_operations=compute_v1.ZoneOperationsClient(),
        )

    def find_address_by_ip(self, ip: str) -> list[compute_v1.Address]:
        """List regional addresses whose literal address equals ``ip``.

        Raises:
            BackendCallError: If the list call fails.
        """
        request = compute_v1.ListAddressesRequest(
            project=self.project,
            region=self.region,
            filter=f"address eq {ip}",
        )
        try:
            return list(self.addresses.list(request=request))
        except GoogleAPICallError as e:
            raise BackendCallError(f"error querying for address {ip!r}: {e}") from e
