"""Container image listing through gcloud Artifact Registry."""

import json
import logging
import subprocess
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from davit.errors import RegistryError

logger = logging.getLogger(__name__)


class ImageMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    tags: List[str] = []
    update_time: datetime = Field(alias="updateTime")

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v):
        # gcloud renders tags either as a list or a comma separated string.
        if v is None:
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v

    def display_tag(self) -> str:
        return ", ".join(self.tags)

    def short_hash(self) -> str:
        digest = self.name.rsplit("@", 1)[-1]
        if not digest.startswith("sha256:"):
            return "unknown"
        value = digest[len("sha256:"):][:7]
        return value if len(value) == 7 else "unknown"

    def age_string(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        updated = self.update_time
        if updated.tzinfo is None:
            updated = updated.replace(tzinfo=timezone.utc)
        seconds = int((now - updated).total_seconds())
        if seconds >= 86400:
            return f"{seconds // 86400}d ago"
        if seconds >= 3600:
            return f"{seconds // 3600}h ago"
        if seconds >= 60:
            return f"{seconds // 60}m ago"
        return "just now"


def base_image(image_path: str) -> str:
    """Strip the tag: gcr.io/repo/image:latest -> gcr.io/repo/image."""
    head, _, last = image_path.rpartition("/")
    name = last.split(":", 1)[0].split("@", 1)[0]
    return f"{head}/{name}" if head else name


def parse_images(payload: str) -> List[ImageMetadata]:
    try:
        raw = json.loads(payload)
        return [ImageMetadata.model_validate(item) for item in raw]
    except (ValueError, TypeError, ValidationError) as exc:
        raise RegistryError(f"Failed to parse gcloud JSON output: {exc}") from exc


def fetch_images(image_path: str) -> List[ImageMetadata]:
    """Images for a repository, most recently updated first."""
    args = [
        "gcloud",
        "artifacts",
        "docker",
        "images",
        "list",
        base_image(image_path),
        "--include-tags",
        "--format=json",
        "--sort-by=~updateTime",
    ]
    logger.debug("Running %s", " ".join(args))
    try:
        result = subprocess.run(args, capture_output=True, text=True)
    except FileNotFoundError as exc:
        raise RegistryError("Failed to execute gcloud command. Is gcloud installed and in PATH?") from exc
    if result.returncode != 0:
        raise RegistryError(f"gcloud command failed: {result.stderr.strip()}")
    return parse_images(result.stdout)
