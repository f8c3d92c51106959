"""Metadata store for MetaStrip.

Reads and writes the metadata of single photos. A JSON sidecar next to the
photo (``<filename>.metastrip.json``) is the authoritative copy of the
model; the EXIF embedded in the image is rewritten on a best-effort basis
whenever metadata is saved.
"""

import logging
import os
import shutil
from typing import Iterable

import orjson

from metastrip.core import codec
from metastrip.core.errors import (
    InvalidTagKeyError, MetadataIOError, PhotoNotFoundError, SerializationError,
)
from metastrip.core.models import (
    DateTime, Integer, PhotoMetadata, StripPreset, Tag, TagCategory, TagValue, Text,
)
from metastrip.core.presets import apply_preset_to_metadata
from metastrip.core.utils import atomic_write_json, get_unique_path, read_json

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".metastrip.json"
EXPORT_SUFFIX = "_export"


def sidecar_path(path: str) -> str:
    """Path of the sidecar for a photo: the filename plus ".metastrip.json"."""
    directory, filename = os.path.split(path)
    return os.path.join(directory, f"{filename or 'photo'}{SIDECAR_SUFFIX}")


def _require_file(path: str) -> None:
    if not os.path.exists(path):
        raise PhotoNotFoundError(path)


def _read_sidecar(path: str) -> PhotoMetadata:
    try:
        data = read_json(path)
    except orjson.JSONDecodeError as e:
        raise SerializationError(path, e) from e
    except OSError as e:
        raise MetadataIOError(path, e) from e

    try:
        return PhotoMetadata.from_json(data)
    except ValueError as e:
        raise SerializationError(path, e) from e


def default_metadata_for_path(path: str) -> PhotoMetadata:
    """Synthesize minimal metadata for a photo without readable EXIF."""
    filename = os.path.basename(path) or "unknown"
    tags = [
        Tag.create("MetaStrip.FileName", Text(filename), display_name="File Name",
                   category=TagCategory.IMAGE),
    ]

    try:
        stat = os.stat(path)
    except OSError:
        stat = None

    if stat is not None:
        tags.append(Tag.create("MetaStrip.FileSize", Integer(stat.st_size), display_name="File Size",
                               category=TagCategory.IMAGE))
        tags.append(Tag.create("Exif.Photo.DateTimeOriginal", DateTime(str(int(stat.st_mtime))),
                               display_name="Date Taken", category=TagCategory.DATETIME))

    metadata = PhotoMetadata(exif_tags=tags)
    metadata.update_summary_fields()
    return metadata


def read_metadata(path: str) -> PhotoMetadata:
    """Load a photo's metadata.

    The sidecar wins when present. Otherwise the embedded EXIF is decoded,
    and when that yields nothing a minimal synthesized set is returned.

    Raises:
        PhotoNotFoundError: If the photo does not exist.
        SerializationError: If the sidecar is not valid metadata JSON.
        MetadataIOError: If the sidecar cannot be read.
    """
    _require_file(path)

    sidecar = sidecar_path(path)
    if os.path.exists(sidecar):
        metadata = _read_sidecar(sidecar)
        metadata.update_summary_fields()
        return metadata

    tags = codec.read_embedded(path)
    if not tags:
        return default_metadata_for_path(path)

    metadata = PhotoMetadata(exif_tags=tags)
    metadata.update_summary_fields()
    return metadata


def write_metadata(path: str, metadata: PhotoMetadata, write_embedded: bool = True) -> None:
    """Persist metadata for a photo.

    Metadata that has no JSON form is rejected before anything is written.
    The embedded write is then attempted and its failure is ignored; the
    sidecar is replaced atomically last.

    Raises:
        PhotoNotFoundError: If the photo does not exist.
        SerializationError: If the metadata cannot be encoded.
        MetadataIOError: If the sidecar cannot be written.
    """
    _require_file(path)
    target = sidecar_path(path)

    try:
        payload = metadata.to_json()
    except ValueError as e:
        raise SerializationError(target, e) from e

    if write_embedded and not codec.write_embedded(path, metadata):
        logger.debug(f"Embedded metadata not updated for {path}")

    try:
        atomic_write_json(target, payload)
    except orjson.JSONEncodeError as e:
        raise SerializationError(target, e) from e
    except OSError as e:
        raise MetadataIOError(target, e) from e


def remove_sidecar(path: str) -> bool:
    """Delete the sidecar of a photo if one exists.

    Raises:
        MetadataIOError: If the sidecar exists but cannot be removed.
    """
    target = sidecar_path(path)
    if not os.path.exists(target):
        return False
    try:
        os.remove(target)
    except OSError as e:
        raise MetadataIOError(target, e) from e
    return True


def _copy_file(source: str, destination: str) -> None:
    try:
        parent = os.path.dirname(destination)
        if parent:
            os.makedirs(parent, exist_ok=True)
        shutil.copy2(source, destination)
    except OSError as e:
        raise MetadataIOError(destination, e) from e


def apply_preset(path: str, preset: StripPreset, output: str, write_embedded: bool = True) -> PhotoMetadata:
    """Apply a preset to a photo and save the result at output.

    When output differs from path the photo is copied there first and the
    source is left untouched.

    Returns:
        The metadata written to output.
    """
    _require_file(path)

    if os.path.abspath(output) != os.path.abspath(path):
        _copy_file(path, output)

    metadata = read_metadata(path)
    apply_preset_to_metadata(metadata, preset)
    write_metadata(output, metadata, write_embedded=write_embedded)
    return metadata


def set_tag_in_metadata(metadata: PhotoMetadata, key: str, value: TagValue) -> None:
    """Set the value of the first tag matching key, or append a new EXIF tag.

    Updating clears any pending removal mark. Summary fields are refreshed.
    """
    metadata.set_tag(key, value)


def set_tag(path: str, key: str, value: TagValue, write_embedded: bool = True) -> PhotoMetadata:
    """Set one tag on a photo on disk.

    Raises:
        InvalidTagKeyError: If key is blank.
    """
    if not key.strip():
        raise InvalidTagKeyError(key)

    metadata = read_metadata(path)
    set_tag_in_metadata(metadata, key.strip(), value)
    write_metadata(path, metadata, write_embedded=write_embedded)
    return metadata


def remove_tags_by_key(metadata: PhotoMetadata, keys: Iterable[str]) -> int:
    """Drop every tag whose key matches one of keys (case-insensitive).

    Returns:
        Number of tags removed.
    """
    wanted = {k.strip().lower() for k in keys if k.strip()}
    removed = metadata.retain(lambda tag: tag.key.lower() not in wanted)
    metadata.update_summary_fields()
    return removed


def remove_marked_tags(metadata: PhotoMetadata) -> int:
    """Drop every tag flagged for removal."""
    removed = metadata.retain(lambda tag: not tag.marked_for_removal)
    metadata.update_summary_fields()
    return removed


def mark_tag(metadata: PhotoMetadata, key: str, marked: bool) -> bool:
    """Flag or unflag the first tag matching key.

    Returns:
        True if a tag was found.
    """
    tag = metadata.find_tag(key)
    if tag is None:
        return False
    tag.marked_for_removal = marked
    metadata.update_summary_fields()
    return True


def export_photo(
    path: str,
    metadata: PhotoMetadata,
    export_dir: str,
    suffix: str = EXPORT_SUFFIX,
    write_embedded: bool = True
) -> str:
    """Copy a photo into export_dir and write metadata to the copy.

    The copy is named "<stem><suffix>.<ext>"; a "(n)" counter is added when
    that name is taken.

    Returns:
        Path of the exported photo.
    """
    _require_file(path)

    try:
        os.makedirs(export_dir, exist_ok=True)
    except OSError as e:
        raise MetadataIOError(export_dir, e) from e

    stem, ext = os.path.splitext(os.path.basename(path))
    try:
        destination = get_unique_path(os.path.join(export_dir, f"{stem}{suffix}{ext}"))
    except OSError as e:
        raise MetadataIOError(export_dir, e) from e

    _copy_file(path, destination)
    write_metadata(destination, metadata, write_embedded=write_embedded)
    logger.debug(f"Exported {path} -> {destination}")
    return destination
