"""Main entry point for the GCE instance provisioner.

Reads configuration from the environment, loads desired state and runs
one reconciliation pass per instance against the configured target:

- gce: converge live instances through the compute API
- terraform: write a Terraform JSON configuration instead
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

from .cloud import GCECloud
from .config import Config, ConfigurationError, RenderTargetKind
from .reconciler import Reconciler, ReconcileResult
from .registry import ResourceRegistry
from .spec_loader import SpecLoadError, load_desired_state
from .targets import GCEAPITarget, Target
from .task import ReconcileContext
from .terraform import TerraformRenderError, TerraformTarget

# LogRecord attributes that are not user-supplied extra fields
_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add extra fields from the record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: int = logging.INFO) -> None:
    """Configure structured logging with JSON output."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Reduce noise from Google client libraries
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_context(
    config: Config,
    registry: ResourceRegistry,
    cloud: GCECloud | None = None,
) -> ReconcileContext:
    """Assemble the reconcile context for the configured target.

    A live backend handle is created for the gce target unless one is
    passed in.
    """
    target: Target
    if config.target == RenderTargetKind.TERRAFORM:
        target = TerraformTarget(
            project=config.project,
            registry=registry,
            output_dir=config.output_dir,
        )
    else:
        if cloud is None:
            cloud = GCECloud.from_default_credentials(config.project, config.region)
        target = GCEAPITarget(
            cloud=cloud,
            registry=registry,
            poll_interval_seconds=config.operation_poll_interval_seconds,
        )

    return ReconcileContext(
        project=config.project,
        target=target,
        registry=registry,
        cloud=cloud,
    )


def run(config: Config, cloud: GCECloud | None = None) -> list[ReconcileResult]:
    """Load desired state and reconcile every instance once.

    Raises:
        SpecLoadError: If the desired state cannot be loaded.
    """
    state = load_desired_state(config.spec_file, default_zone=config.zone)
    context = build_context(config, state.registry, cloud)
    return Reconciler(context).reconcile_all(state.instances)


def main() -> int:
    """Run the provisioner.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        config = Config.from_env()
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1

    logger.info(
        "Starting GCE provisioner",
        extra={
            "project": config.project,
            "region": config.region,
            "target": config.target.value,
            "spec_file": str(config.spec_file),
        },
    )

    try:
        results = run(config)
    except SpecLoadError as e:
        logger.error("Failed to load spec", extra={"error": str(e)})
        return 1
    except TerraformRenderError as e:
        logger.error("Failed to write Terraform output", extra={"error": str(e)})
        return 1

    failed = [r for r in results if not r.success]
    logger.info(
        "Provisioning finished",
        extra={"passes": len(results), "failed": len(failed)},
    )
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
