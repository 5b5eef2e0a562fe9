"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for gce_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from gce_mock import MockComputeState, create_mock_cloud  # noqa: E402
from gce_mock.state import MOCK_PROJECT, MOCK_REGION  # noqa: E402

from gceprovisioner.cloud import GCECloud  # noqa: E402
from gceprovisioner.registry import (  # noqa: E402
    IPAddress,
    Network,
    PersistentDisk,
    ResourceRegistry,
    Subnet,
)


@pytest.fixture
def compute_state() -> MockComputeState:
    return MockComputeState()


@pytest.fixture
def cloud(compute_state: MockComputeState) -> GCECloud:
    return create_mock_cloud(compute_state)


@pytest.fixture
def registry() -> ResourceRegistry:
    """Registry with one of each sibling resource kind."""
    reg = ResourceRegistry()
    reg.add(Network(name="default"))
    reg.add(Subnet(name="nodes", region=MOCK_REGION))
    reg.add(IPAddress(name="master-ip", address="203.0.113.10"))
    reg.add(PersistentDisk(name="etcd-main"))
    return reg


@pytest.fixture
def project() -> str:
    return MOCK_PROJECT
