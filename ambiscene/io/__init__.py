"""Input/output components for Ambiscene.

This package contains JSON artifact persistence and the object storage used
for generated audio assets.
"""

from .storage import ArtifactStore, FilesystemObjectStorage, ObjectStorage

__all__ = ["ArtifactStore", "FilesystemObjectStorage", "ObjectStorage"]
