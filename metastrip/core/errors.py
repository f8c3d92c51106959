"""Exception hierarchy for MetaStrip.

Every failure the engine or the photo collection reports derives from
MetaStripError, so callers can catch a single type at the boundary.
"""

from typing import Optional


class MetaStripError(Exception):
    """Base class for all MetaStrip errors."""


class MetadataError(MetaStripError):
    """Failure while reading, writing, or mutating photo metadata."""


class PhotoNotFoundError(MetadataError):
    """The photo file does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"file not found: {path}")


class InvalidTagKeyError(MetadataError):
    """A tag key was empty or blank."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"invalid metadata tag key: {key!r}")


class MetadataIOError(MetadataError):
    """Filesystem failure while handling a photo or its sidecar."""

    def __init__(self, path: str, original: Optional[BaseException] = None):
        self.path = path
        self.original = original
        super().__init__(f"io error: {path}: {original}")


class SerializationError(MetadataError):
    """Sidecar JSON could not be decoded or encoded."""

    def __init__(self, path: str, original: Optional[BaseException] = None):
        self.path = path
        self.original = original
        super().__init__(f"metadata serialization error: {path}: {original}")


class CollectionError(MetaStripError):
    """Failure raised by the in-memory photo collection."""


class InvalidPhotoIndexError(CollectionError):
    """No photo exists at the requested index."""

    def __init__(self, index: int):
        self.index = index
        super().__init__(f"invalid photo index: {index}")


class PresetNotFoundError(CollectionError):
    """No preset with the requested id is known."""

    def __init__(self, preset_id: int):
        self.preset_id = preset_id
        super().__init__(f"preset not found: {preset_id}")


class NoSelectionError(CollectionError):
    """A bulk operation was requested with nothing selected."""

    def __init__(self):
        super().__init__("no photos selected")
