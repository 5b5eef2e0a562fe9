"""GCE provisioner CLI (gceprov).

Usage:
    gceprov apply instances.yaml --project my-proj --region us-central1
    gceprov render instances.yaml --project my-proj --region us-central1 -o out/tf

Every option can also be given through the environment variable used by
``python -m gceprovisioner.main`` (GCP_PROJECT, GCP_REGION, ...).
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from .config import (
    DEFAULT_OPERATION_POLL_INTERVAL_SECONDS,
    DEFAULT_OUTPUT_DIR,
    Config,
    ConfigurationError,
    RenderTargetKind,
)
from .main import run, setup_logging
from .reconciler import ReconcileResult
from .spec_loader import SpecLoadError
from .terraform import TerraformRenderError


def _build_config(
    target: RenderTargetKind,
    spec_file: Path,
    project: str,
    region: str,
    zone: str | None,
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR),
    poll_interval: int = DEFAULT_OPERATION_POLL_INTERVAL_SECONDS,
) -> Config:
    try:
        return Config(
            project=project,
            region=region,
            zone=zone,
            target=target,
            spec_file=spec_file,
            output_dir=output_dir,
            operation_poll_interval_seconds=poll_interval,
        )
    except ConfigurationError as e:
        raise click.UsageError(str(e)) from e


def _run_and_report(config: Config) -> None:
    try:
        results = run(config)
    except (SpecLoadError, TerraformRenderError) as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        sys.exit(1)

    _print_results(results)
    if any(not r.success for r in results):
        sys.exit(1)


def _print_results(results: list[ReconcileResult]) -> None:
    for result in results:
        label = f"{result.task_kind} {result.task_id}"
        if result.success:
            fields = ", ".join(result.changed_fields) or "-"
            click.secho(f"✓ {label}: {result.outcome.value} ({fields})", fg="green")
        else:
            click.secho(f"✗ {label}: {result.error}", fg="red", err=True)


spec_file_argument = click.argument(
    "spec_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
project_option = click.option("--project", envvar="GCP_PROJECT", required=True, help="GCP project")
region_option = click.option("--region", envvar="GCP_REGION", required=True, help="GCP region")
zone_option = click.option("--zone", envvar="GCP_ZONE", default=None, help="Default zone")


@click.group()
@click.version_option(version="0.1.0", prog_name="gceprov")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Converge Compute Engine instances toward a desired state."""
    setup_logging(logging.DEBUG if verbose else logging.INFO)


@cli.command()
@spec_file_argument
@project_option
@region_option
@zone_option
@click.option(
    "--poll-interval",
    envvar="OPERATION_POLL_INTERVAL",
    type=int,
    default=DEFAULT_OPERATION_POLL_INTERVAL_SECONDS,
    show_default=True,
    help="Seconds between operation status polls.",
)
def apply(spec_file: Path, project: str, region: str, zone: str | None, poll_interval: int) -> None:
    """Apply desired state to live instances."""
    config = _build_config(
        RenderTargetKind.GCE, spec_file, project, region, zone, poll_interval=poll_interval
    )
    _run_and_report(config)


@cli.command()
@spec_file_argument
@project_option
@region_option
@zone_option
@click.option(
    "-o",
    "--output-dir",
    envvar="OUTPUT_DIR",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_OUTPUT_DIR,
    show_default=True,
    help="Directory for main.tf.json.",
)
def render(spec_file: Path, project: str, region: str, zone: str | None, output_dir: Path) -> None:
    """Write desired state as Terraform JSON."""
    config = _build_config(
        RenderTargetKind.TERRAFORM, spec_file, project, region, zone, output_dir=output_dir
    )
    _run_and_report(config)


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
