"""Compute Engine API mock for testing.

In-memory stand-ins for the compute_v1 clients held by GCECloud. State is
stored as real compute_v1 messages, so code under test reads responses the
same way it reads live API responses.

Usage:
    from gce_mock import MockComputeState, create_mock_cloud

    state = MockComputeState()
    state.add_instance(compute_v1.Instance(name="master-1", ...), zone="us-central1-a")
    cloud = create_mock_cloud(state)

    ...

    assert state.calls_to("insert") == 1
"""

from .clients import (
    MockAddressesClient,
    MockDisksClient,
    MockInstancesClient,
    MockZoneOperationsClient,
    create_mock_cloud,
)
from .state import MockCall, MockComputeState

__all__ = [
    "MockAddressesClient",
    "MockCall",
    "MockComputeState",
    "MockDisksClient",
    "MockInstancesClient",
    "MockZoneOperationsClient",
    "create_mock_cloud",
]
