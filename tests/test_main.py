"""Tests for the environment-driven entry point."""

import json
import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from gce_mock import MockComputeState

from gceprovisioner.cloud import GCECloud
from gceprovisioner.config import Config, RenderTargetKind
from gceprovisioner.main import JsonFormatter, build_context, main, run
from gceprovisioner.reconciler import PassOutcome
from gceprovisioner.registry import ResourceRegistry
from gceprovisioner.targets import GCEAPITarget
from gceprovisioner.terraform import TerraformTarget

SPEC = """
instances:
  - name: worker-1
    zone: us-central1-a
    machineType: e2-small
    image: debian-cloud/debian-12
"""


@pytest.fixture
def spec_file(tmp_path: Path) -> Path:
    path = tmp_path / "instances.yaml"
    path.write_text(SPEC)
    return path


class TestBuildContext:
    """Tests for build_context."""

    def test_terraform_context_has_no_cloud(self, tmp_path: Path) -> None:
        """Test that the Terraform target does not create API clients."""
        config = Config(
            project="my-project",
            region="us-central1",
            target=RenderTargetKind.TERRAFORM,
            output_dir=tmp_path,
        )

        context = build_context(config, ResourceRegistry())

        assert isinstance(context.target, TerraformTarget)
        assert context.cloud is None

    def test_gce_context_uses_given_cloud(self, cloud: GCECloud) -> None:
        """Test that a provided backend handle is used for the live target."""
        config = Config(project="my-project", region="us-central1", operation_poll_interval_seconds=7)

        context = build_context(config, ResourceRegistry(), cloud)

        assert isinstance(context.target, GCEAPITarget)
        assert context.target.cloud is cloud
        assert context.target.poll_interval_seconds == 7


class TestRun:
    """Tests for run."""

    def test_run_live(
        self, spec_file: Path, cloud: GCECloud, compute_state: MockComputeState
    ) -> None:
        """Test a full pass against the mocked compute API."""
        config = Config(project="my-project", region="us-central1", spec_file=spec_file)

        results = run(config, cloud)

        assert [r.outcome for r in results] == [PassOutcome.CREATED]
        assert compute_state.calls_to("insert") == 1


class TestMain:
    """Tests for main."""

    def test_configuration_error_exit_code(self) -> None:
        """Test that invalid configuration exits non-zero."""
        with patch.dict(os.environ, {}, clear=True), patch("gceprovisioner.main.setup_logging"):
            assert main() == 1

    def test_terraform_run(self, spec_file: Path, tmp_path: Path) -> None:
        """Test a successful Terraform run from environment variables."""
        env = {
            "GCP_PROJECT": "my-project",
            "GCP_REGION": "us-central1",
            "RENDER_TARGET": "terraform",
            "SPEC_FILE": str(spec_file),
            "OUTPUT_DIR": str(tmp_path / "tf"),
        }
        with patch.dict(os.environ, env, clear=True), patch("gceprovisioner.main.setup_logging"):
            assert main() == 0

        assert (tmp_path / "tf" / "main.tf.json").exists()

    def test_missing_spec_exit_code(self, tmp_path: Path) -> None:
        """Test that an unreadable spec exits non-zero."""
        env = {
            "GCP_PROJECT": "my-project",
            "GCP_REGION": "us-central1",
            "RENDER_TARGET": "terraform",
            "SPEC_FILE": str(tmp_path / "missing.yaml"),
        }
        with patch.dict(os.environ, env, clear=True), patch("gceprovisioner.main.setup_logging"):
            assert main() == 1


class TestJsonFormatter:
    """Tests for structured log output."""

    def test_extra_fields_included(self) -> None:
        """Test that extra fields are emitted alongside the message."""
        record = logging.LogRecord("gceprovisioner.x", logging.INFO, "f.py", 1, "hello", None, None)
        record.instance = "master-1"

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["logger"] == "gceprovisioner.x"
        assert data["instance"] == "master-1"
        assert data["timestamp"].endswith("Z")
