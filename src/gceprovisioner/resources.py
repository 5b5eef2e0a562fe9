"""Lazily rendered content sources for instance metadata.

Metadata values (startup scripts, cluster config blobs) are declared as
sources and only rendered to strings when a payload is built. This keeps
desired state cheap to construct and lets file content be picked up at
apply time.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator

# Metadata values are limited by the compute API to 256KB each
MAX_METADATA_VALUE_BYTES = 256 * 1024


class ResourceRenderError(Exception):
    """Raised when a content source cannot be rendered to a string."""

    pass


class StringResource(BaseModel):
    """Literal string content."""

    model_config = {"frozen": True, "extra": "forbid"}

    kind: Literal["string"] = "string"
    value: str

    def as_string(self) -> str:
        return self.value


class FileResource(BaseModel):
    """Content read from a local file at render time."""

    model_config = {"frozen": True, "extra": "forbid"}

    kind: Literal["file"] = "file"
    path: Path

    def as_string(self) -> str:
        try:
            size = self.path.stat().st_size
        except OSError as e:
            raise ResourceRenderError(f"Failed to stat {self.path}: {e}") from e

        if size > MAX_METADATA_VALUE_BYTES:
            raise ResourceRenderError(
                f"{self.path} exceeds maximum metadata size of {MAX_METADATA_VALUE_BYTES} bytes"
            )

        try:
            return self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ResourceRenderError(f"Failed to read {self.path}: {e}") from e


def _coerce_source(value: Any) -> Any:
    """Accept plain strings and {"file": path} shorthands from config."""
    if isinstance(value, str):
        return StringResource(value=value)
    if isinstance(value, dict) and "kind" not in value:
        if "file" in value:
            return FileResource(path=value["file"])
        if "value" in value:
            return StringResource(value=value["value"])
    return value


ContentSource = Annotated[
    StringResource | FileResource,
    BeforeValidator(_coerce_source),
]


def resource_as_string(source: StringResource | FileResource) -> str:
    """Render a content source.

    Raises:
        ResourceRenderError: If the source cannot be rendered.
    """
    return source.as_string()
