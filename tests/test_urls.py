"""Tests for compute resource URL helpers."""

import pytest

from gceprovisioner.urls import (
    COMPUTE_API_PREFIX,
    GoogleCloudURL,
    InvalidImageSpecError,
    MalformedURLError,
    build_image_url,
    build_machine_type_url,
    last_component,
    parse_google_cloud_url,
    shorten_image_url,
)


class TestParseGoogleCloudURL:
    """Tests for parse_google_cloud_url."""

    def test_parse_zonal_url(self) -> None:
        """Test parsing a zonal disk self-link."""
        u = parse_google_cloud_url(f"{COMPUTE_API_PREFIX}projects/p1/zones/us-central1-a/disks/d1")

        assert u == GoogleCloudURL(project="p1", type="disks", name="d1", zone="us-central1-a")

    def test_parse_regional_url(self) -> None:
        """Test parsing a regional subnetwork self-link."""
        u = parse_google_cloud_url(
            f"{COMPUTE_API_PREFIX}projects/p1/regions/us-central1/subnetworks/nodes"
        )

        assert u.region == "us-central1"
        assert u.zone is None
        assert u.type == "subnetworks"

    def test_parse_global_url(self) -> None:
        """Test parsing a global image self-link."""
        u = parse_google_cloud_url(f"{COMPUTE_API_PREFIX}projects/debian-cloud/global/images/d12")

        assert u.is_global is True
        assert u.project == "debian-cloud"
        assert u.name == "d12"

    def test_parse_relative_url(self) -> None:
        """Test that the project-relative form is accepted."""
        u = parse_google_cloud_url("projects/p1/zones/z1/disks/d1")

        assert u.name == "d1"
        assert u.zone == "z1"

    def test_build_url_round_trips(self) -> None:
        """Test that build_url reproduces the parsed URL."""
        url = f"{COMPUTE_API_PREFIX}projects/p1/zones/us-central1-a/disks/d1"

        assert parse_google_cloud_url(url).build_url() == url

    @pytest.mark.parametrize(
        "url",
        [
            "",
            "not-a-url",
            f"{COMPUTE_API_PREFIX}projects/p1",
            f"{COMPUTE_API_PREFIX}projects/p1/zones/z1/disks",
            f"{COMPUTE_API_PREFIX}folders/p1/zones/z1/disks/d1",
        ],
    )
    def test_malformed_urls_raise(self, url: str) -> None:
        """Test that malformed URLs raise MalformedURLError."""
        with pytest.raises(MalformedURLError):
            parse_google_cloud_url(url)


class TestImageURLs:
    """Tests for image URL building and shortening."""

    def test_bare_name_uses_default_project(self) -> None:
        """Test that a bare image name resolves against the default project."""
        assert build_image_url("p1", "my-image") == (
            f"{COMPUTE_API_PREFIX}projects/p1/global/images/my-image"
        )

    def test_project_qualified_name(self) -> None:
        """Test that project/name uses the named project."""
        assert build_image_url("p1", "debian-cloud/debian-12") == (
            f"{COMPUTE_API_PREFIX}projects/debian-cloud/global/images/debian-12"
        )

    @pytest.mark.parametrize("spec", ["", "a/b/c", "/name", "project/"])
    def test_invalid_image_spec(self, spec: str) -> None:
        """Test that other shapes raise InvalidImageSpecError."""
        with pytest.raises(InvalidImageSpecError):
            build_image_url("p1", spec)

    def test_shorten_same_project(self) -> None:
        """Test that an image in the default project shortens to its name."""
        url = f"{COMPUTE_API_PREFIX}projects/p1/global/images/my-image"

        assert shorten_image_url("p1", url) == "my-image"

    def test_shorten_other_project(self) -> None:
        """Test that a foreign image keeps its project prefix."""
        url = f"{COMPUTE_API_PREFIX}projects/debian-cloud/global/images/debian-12"

        assert shorten_image_url("p1", url) == "debian-cloud/debian-12"

    def test_shorten_is_inverse_of_build(self) -> None:
        """Test that shortening a built URL returns the original spec."""
        for spec in ("my-image", "debian-cloud/debian-12"):
            assert shorten_image_url("p1", build_image_url("p1", spec)) == spec


class TestMisc:
    """Tests for small URL helpers."""

    def test_machine_type_url(self) -> None:
        """Test machine type URL shape."""
        assert build_machine_type_url("p1", "us-central1-a", "n1-standard-2") == (
            f"{COMPUTE_API_PREFIX}projects/p1/zones/us-central1-a/machineTypes/n1-standard-2"
        )

    def test_last_component(self) -> None:
        """Test that last_component strips everything up to the last slash."""
        assert last_component("https://x/zones/us-central1-a") == "us-central1-a"
        assert last_component("plain") == "plain"
