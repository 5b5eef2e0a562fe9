"""Configuration management with validation.

Configuration is read from the environment once at startup and validated
as a whole, so a misconfigured run fails before any API call is made.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class RenderTargetKind(str, Enum):
    """Supported render targets."""

    GCE = "gce"
    TERRAFORM = "terraform"


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Operation polling uses a fixed interval with no backoff
DEFAULT_OPERATION_POLL_INTERVAL_SECONDS = 1
MIN_OPERATION_POLL_INTERVAL_SECONDS = 1
MAX_OPERATION_POLL_INTERVAL_SECONDS = 60

DEFAULT_OUTPUT_DIR = "out/terraform"
DEFAULT_SPEC_FILE = "instances.yaml"

# Enforced limits
MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file

# Input validation patterns
VALID_PROJECT_PATTERN = r"^[a-z][a-z0-9-]{4,28}[a-z0-9]$"
VALID_REGION_PATTERN = r"^[a-z]+-[a-z]+[0-9]+$"
VALID_ZONE_PATTERN = r"^[a-z]+-[a-z]+[0-9]+-[a-z]$"


@dataclass(frozen=True)
class Config:
    """Provisioner configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Required fields
    project: str
    region: str

    # Default zone for tasks that do not name one
    zone: str | None = None

    target: RenderTargetKind = RenderTargetKind.GCE
    spec_file: Path = field(default_factory=lambda: Path(DEFAULT_SPEC_FILE))
    output_dir: Path = field(default_factory=lambda: Path(DEFAULT_OUTPUT_DIR))

    operation_poll_interval_seconds: int = DEFAULT_OPERATION_POLL_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.project:
            errors.append("GCP_PROJECT is required")
        elif not re.match(VALID_PROJECT_PATTERN, self.project):
            errors.append(f"GCP_PROJECT must match pattern {VALID_PROJECT_PATTERN}: {self.project}")

        if not self.region:
            errors.append("GCP_REGION is required")
        elif not re.match(VALID_REGION_PATTERN, self.region):
            errors.append(f"GCP_REGION must be a valid region: {self.region}")

        if self.zone is not None:
            if not re.match(VALID_ZONE_PATTERN, self.zone):
                errors.append(f"GCP_ZONE must be a valid zone: {self.zone}")
            elif self.region and not self.zone.startswith(f"{self.region}-"):
                errors.append(f"GCP_ZONE {self.zone} is not in region {self.region}")

        if not (
            MIN_OPERATION_POLL_INTERVAL_SECONDS
            <= self.operation_poll_interval_seconds
            <= MAX_OPERATION_POLL_INTERVAL_SECONDS
        ):
            errors.append(
                f"OPERATION_POLL_INTERVAL must be between {MIN_OPERATION_POLL_INTERVAL_SECONDS} "
                f"and {MAX_OPERATION_POLL_INTERVAL_SECONDS} seconds"
            )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            GCP_PROJECT: Project resources are reconciled in
            GCP_REGION: Region for regional resources (addresses)
            GCP_ZONE: Default zone for instances without one (optional)
            RENDER_TARGET: "gce" to apply live, "terraform" to emit JSON (default: gce)
            SPEC_FILE: YAML file with desired state (default: instances.yaml)
            OUTPUT_DIR: Terraform output directory (default: out/terraform)
            OPERATION_POLL_INTERVAL: Seconds between operation polls (default: 1)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_target(value: str | None) -> RenderTargetKind:
            if not value:
                return RenderTargetKind.GCE
            try:
                return RenderTargetKind(value.lower())
            except ValueError as e:
                valid = [t.value for t in RenderTargetKind]
                raise ConfigurationError(f"RENDER_TARGET must be one of {valid}: {value}") from e

        return cls(
            project=os.environ.get("GCP_PROJECT", ""),
            region=os.environ.get("GCP_REGION", ""),
            zone=os.environ.get("GCP_ZONE") or None,
            target=get_target(os.environ.get("RENDER_TARGET")),
            spec_file=Path(os.environ.get("SPEC_FILE", DEFAULT_SPEC_FILE)),
            output_dir=Path(os.environ.get("OUTPUT_DIR", DEFAULT_OUTPUT_DIR)),
            operation_poll_interval_seconds=get_int(
                "OPERATION_POLL_INTERVAL", DEFAULT_OPERATION_POLL_INTERVAL_SECONDS
            ),
        )
