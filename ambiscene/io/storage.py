"""Artifact and object storage.

Responsibilities:
- Persist JSON artifacts (reports, cache snapshots) under an output root.
- Provide the `put(bytes, key) -> url` / `get(key)` object-storage contract
  with a filesystem-backed implementation.
"""

from __future__ import annotations

import json
from pathlib import Path, PurePosixPath
from typing import Any, Protocol

from ..errors import StorageError


class ArtifactStore:
    """Filesystem-backed store for JSON run artifacts."""

    def __init__(self, root: Path) -> None:
        """Initialize the store with a root output directory."""

        self.root = root

    def save_json(self, relative_path: Path, payload: dict[str, Any]) -> Path:
        """Save JSON-serializable payload and return final path."""

        path = self.root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True),
            encoding="utf-8",
        )
        return path

    def load_json(self, relative_path: Path) -> dict[str, Any]:
        """Load a JSON object artifact."""

        path = self.root / relative_path
        payload = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Artifact `{path}` must contain a JSON object.")
        return payload

    def exists(self, relative_path: Path) -> bool:
        """Return whether the given artifact exists."""

        return (self.root / relative_path).exists()


class ObjectStorage(Protocol):
    """Protocol for durable audio asset storage."""

    def put(self, data: bytes, key: str) -> str:
        """Store bytes under `key` and return a URL for them."""

    def get(self, key: str) -> bytes:
        """Return bytes previously stored under `key`."""


def _validated_key(key: str) -> PurePosixPath:
    """Reject empty, absolute, or parent-escaping keys."""

    path = PurePosixPath(key.strip())
    if not key.strip() or path.is_absolute() or ".." in path.parts:
        raise StorageError(f"Invalid storage key `{key}`.")
    return path


class FilesystemObjectStorage:
    """Object storage rooted at a local directory.

    URLs are `public_base_url/<key>` when a base URL is configured, otherwise
    `file://` URIs of the written files.
    """

    def __init__(self, root: Path, public_base_url: str | None = None) -> None:
        """Initialize storage root and optional public URL prefix."""

        self.root = root
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def put(self, data: bytes, key: str) -> str:
        """Write bytes for `key` and return their URL."""

        relative = _validated_key(key)
        if not data:
            raise StorageError(f"Refusing to store empty object for key `{key}`.")
        path = self.root.joinpath(*relative.parts)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to store object `{key}`: {exc}") from exc
        if self.public_base_url:
            return f"{self.public_base_url}/{relative.as_posix()}"
        return path.resolve().as_uri()

    def get(self, key: str) -> bytes:
        """Read bytes stored under `key`."""

        relative = _validated_key(key)
        path = self.root.joinpath(*relative.parts)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read object `{key}`: {exc}") from exc
