"""Canonical Compute Engine resource URLs.

Builds and parses the self-link form used by the compute API:

    https://www.googleapis.com/compute/v1/projects/{project}/zones/{zone}/{type}/{name}
    https://www.googleapis.com/compute/v1/projects/{project}/regions/{region}/{type}/{name}
    https://www.googleapis.com/compute/v1/projects/{project}/global/{type}/{name}
"""

from __future__ import annotations

from dataclasses import dataclass

COMPUTE_API_PREFIX = "https://www.googleapis.com/compute/v1/"


class MalformedURLError(ValueError):
    """Raised when a backend-returned resource URL cannot be parsed."""

    pass


class InvalidImageSpecError(ValueError):
    """Raised when an image spec is neither "name" nor "project/name"."""

    pass


@dataclass(frozen=True)
class GoogleCloudURL:
    """Parsed components of a compute resource URL.

    Attributes:
        project: Owning project.
        type: Collection name (e.g. "disks", "images").
        name: Resource name (last path component).
        zone: Zone for zonal resources.
        region: Region for regional resources.
        is_global: True for global resources.
    """

    project: str
    type: str
    name: str
    zone: str | None = None
    region: str | None = None
    is_global: bool = False

    def build_url(self) -> str:
        """Rebuild the canonical URL."""
        if self.zone:
            scope = f"zones/{self.zone}"
        elif self.region:
            scope = f"regions/{self.region}"
        else:
            scope = "global"
        return f"{COMPUTE_API_PREFIX}projects/{self.project}/{scope}/{self.type}/{self.name}"


def last_component(url: str) -> str:
    """Return the last path component of a URL (or the string itself)."""
    return url.rsplit("/", 1)[-1]


def parse_google_cloud_url(url: str) -> GoogleCloudURL:
    """Parse a canonical compute resource URL.

    Both the absolute form and the project-relative form
    ("projects/p/zones/z/disks/d") are accepted.

    Raises:
        MalformedURLError: If the URL does not have the expected shape.
    """
    if not url:
        raise MalformedURLError("empty resource URL")

    path = url[len(COMPUTE_API_PREFIX):] if url.startswith(COMPUTE_API_PREFIX) else url
    tokens = path.strip("/").split("/")

    if len(tokens) < 4 or tokens[0] != "projects":
        raise MalformedURLError(f"unable to parse resource URL: {url!r}")

    project = tokens[1]
    match tokens[2:]:
        case ["global", resource_type, name]:
            return GoogleCloudURL(project=project, type=resource_type, name=name, is_global=True)
        case ["zones", zone, resource_type, name]:
            return GoogleCloudURL(project=project, type=resource_type, name=name, zone=zone)
        case ["regions", region, resource_type, name]:
            return GoogleCloudURL(project=project, type=resource_type, name=name, region=region)
        case _:
            raise MalformedURLError(f"unable to parse resource URL: {url!r}")


def build_machine_type_url(project: str, zone: str, name: str) -> str:
    return f"{COMPUTE_API_PREFIX}projects/{project}/zones/{zone}/machineTypes/{name}"


def build_image_url(default_project: str, name_spec: str) -> str:
    """Build an image URL from "name" or "project/name".

    A bare name is resolved against ``default_project``.

    Raises:
        InvalidImageSpecError: For any other shape.
    """
    tokens = name_spec.split("/")
    if len(tokens) == 2 and all(tokens):
        project, name = tokens
    elif len(tokens) == 1 and tokens[0]:
        project, name = default_project, tokens[0]
    else:
        raise InvalidImageSpecError(f"Cannot parse image spec: {name_spec!r}")

    return f"{COMPUTE_API_PREFIX}projects/{project}/global/images/{name}"


def shorten_image_url(default_project: str, image_url: str) -> str:
    """Reduce an image URL to the spec accepted by build_image_url.

    Returns the bare name when the image lives in ``default_project``,
    otherwise "project/name".

    Raises:
        MalformedURLError: If the URL cannot be parsed.
    """
    u = parse_google_cloud_url(image_url)
    if u.project == default_project:
        return u.name
    return f"{u.project}/{u.name}"
