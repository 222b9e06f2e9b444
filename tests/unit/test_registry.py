"""Unit tests for registry image listing."""
import json
import subprocess
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from davit.errors import RegistryError
from davit.registry import ImageMetadata, base_image, fetch_images, parse_images

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
DIGEST = "sha256:4f2c9a1b7e0d3c5a6b8e9f0a1b2c3d4e5f6a7b8c9d0e1f2a3b4c5d6e7f8a9b0c"

GCLOUD_OUTPUT = json.dumps([
    {
        "package": "europe-docker.pkg.dev/proj/repo/api",
        "name": f"europe-docker.pkg.dev/proj/repo/api@{DIGEST}",
        "tags": ["v2", "latest"],
        "updateTime": "2024-06-01T09:00:00Z",
    },
    {
        "package": "europe-docker.pkg.dev/proj/repo/api",
        "name": "europe-docker.pkg.dev/proj/repo/api@sha256:1111111aaaa",
        "tags": "v1",
        "updateTime": "2024-05-20T09:00:00Z",
    },
])


def image(**kwargs) -> ImageMetadata:
    data = {"name": f"gcr.io/p/app@{DIGEST}", "tags": ["v1"], "updateTime": NOW.isoformat()}
    data.update(kwargs)
    return ImageMetadata.model_validate(data)


@pytest.mark.unit
class TestImageMetadata:
    """Test ImageMetadata helpers."""

    def test_display_tag(self):
        assert image(tags=["v2", "latest"]).display_tag() == "v2, latest"

    def test_comma_separated_tags(self):
        assert image(tags="v2,latest").tags == ["v2", "latest"]

    def test_no_tags(self):
        assert image(tags=None).tags == []

    def test_short_hash(self):
        assert image().short_hash() == "4f2c9a1"

    def test_short_hash_unknown(self):
        assert image(name="gcr.io/p/app:v1").short_hash() == "unknown"

    @pytest.mark.parametrize(
        "age,expected",
        [
            (timedelta(days=3, hours=4), "3d ago"),
            (timedelta(hours=5, minutes=10), "5h ago"),
            (timedelta(minutes=12), "12m ago"),
            (timedelta(seconds=30), "just now"),
        ],
    )
    def test_age_string(self, age, expected):
        assert image(updateTime=(NOW - age).isoformat()).age_string(NOW) == expected


@pytest.mark.unit
class TestFetchImages:
    """Test fetch_images and its helpers."""

    def test_base_image(self):
        assert base_image("gcr.io/repo/image:latest") == "gcr.io/repo/image"
        assert base_image("localhost:5000/image") == "localhost:5000/image"
        assert base_image("image@sha256:abc") == "image"

    def test_parse_images(self):
        images = parse_images(GCLOUD_OUTPUT)
        assert [i.tags for i in images] == [["v2", "latest"], ["v1"]]
        assert images[0].update_time == datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)

    def test_parse_garbage(self):
        with pytest.raises(RegistryError):
            parse_images("not json")
        with pytest.raises(RegistryError):
            parse_images('[{"tags": []}]')

    def test_runs_gcloud(self):
        done = subprocess.CompletedProcess(args=[], returncode=0, stdout=GCLOUD_OUTPUT, stderr="")
        with patch("davit.registry.subprocess.run", return_value=done) as run:
            images = fetch_images("europe-docker.pkg.dev/proj/repo/api:v1")
        args = run.call_args.args[0]
        assert args[:6] == ["gcloud", "artifacts", "docker", "images", "list", "europe-docker.pkg.dev/proj/repo/api"]
        assert "--format=json" in args
        assert "--sort-by=~updateTime" in args
        assert len(images) == 2

    def test_gcloud_failure(self):
        failed = subprocess.CompletedProcess(args=[], returncode=1, stdout="", stderr="PERMISSION_DENIED")
        with patch("davit.registry.subprocess.run", return_value=failed):
            with pytest.raises(RegistryError, match="PERMISSION_DENIED"):
                fetch_images("gcr.io/p/app")

    def test_gcloud_missing(self):
        with patch("davit.registry.subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(RegistryError, match="Is gcloud installed"):
                fetch_images("gcr.io/p/app")
