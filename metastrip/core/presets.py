"""Preset rule engine for MetaStrip."""

import logging
import os
from typing import Callable, Dict, List, Optional, Set, Type

import orjson

from metastrip.core.models import (
    PhotoMetadata, PresetRule, RemoveAll, RemoveAllExcept, RemoveCategory,
    RemoveGps, RemoveTag, RemoveThumbnail, SetTag, StripPreset, TagCategory,
    Text, USER_VALUE_PLACEHOLDER, category_from_token,
)
from metastrip.core.utils import atomic_write_json, read_json

logger = logging.getLogger(__name__)

CUSTOM_PRESETS_FILENAME = "presets.json"


def _remove_category(metadata: PhotoMetadata, rule: RemoveCategory) -> None:
    metadata.retain(lambda tag: tag.category != rule.category)


def _remove_tag(metadata: PhotoMetadata, rule: RemoveTag) -> None:
    metadata.retain(lambda tag: not tag.matches_key(rule.key))


def _remove_all_except(metadata: PhotoMetadata, rule: RemoveAllExcept) -> None:
    allowed_keys: Set[str] = set()
    allowed_categories: Set[TagCategory] = set()

    for entry in rule.keys:
        normalized = entry.strip().lower()
        if not normalized:
            continue
        category = category_from_token(normalized)
        if category is not None:
            allowed_categories.add(category)
        else:
            allowed_keys.add(normalized)

    metadata.retain(
        lambda tag: tag.key.lower() in allowed_keys or tag.category in allowed_categories
    )


def _remove_all(metadata: PhotoMetadata, rule: RemoveAll) -> None:
    metadata.clear()


def _remove_gps(metadata: PhotoMetadata, rule: RemoveGps) -> None:
    metadata.retain(
        lambda tag: tag.category != TagCategory.LOCATION and "gps" not in tag.key.lower()
    )
    metadata.has_gps = False


def _remove_thumbnail(metadata: PhotoMetadata, rule: RemoveThumbnail) -> None:
    metadata.retain(lambda tag: "thumbnail" not in tag.key.lower())


def _set_tag(metadata: PhotoMetadata, rule: SetTag) -> None:
    metadata.set_tag(rule.key, Text(rule.value))


RULE_HANDLERS: Dict[Type[PresetRule], Callable[[PhotoMetadata, PresetRule], None]] = {
    RemoveCategory: _remove_category,
    RemoveTag: _remove_tag,
    RemoveAllExcept: _remove_all_except,
    RemoveAll: _remove_all,
    RemoveGps: _remove_gps,
    RemoveThumbnail: _remove_thumbnail,
    SetTag: _set_tag,
}


def apply_rule(metadata: PhotoMetadata, rule: PresetRule) -> None:
    """Apply one rule in place. Summary fields are not refreshed."""
    handler = RULE_HANDLERS.get(type(rule))
    if handler is None:
        raise TypeError(f"Unsupported preset rule: {rule!r}")
    handler(metadata, rule)


def apply_preset_to_metadata(metadata: PhotoMetadata, preset: StripPreset) -> PhotoMetadata:
    """Run a preset's rules in order against metadata.

    Rules are cumulative: each sees the result of the previous one.
    Summary fields are recomputed once all rules have run.

    Args:
        metadata: Metadata to modify in place.
        preset: Preset to apply.

    Returns:
        The same metadata object.
    """
    for rule in preset.rules:
        apply_rule(metadata, rule)
    metadata.update_summary_fields()
    return metadata


def builtin_presets() -> List[StripPreset]:
    """The six presets that ship with MetaStrip."""
    return [
        StripPreset(
            id=1,
            name="Strip All",
            description="Remove every metadata tag",
            icon="trash",
            rules=[RemoveAll()],
            is_builtin=True,
        ),
        StripPreset(
            id=2,
            name="Privacy Clean",
            description="Remove GPS, serial numbers, and software tags",
            icon="shield",
            rules=[
                RemoveGps(),
                RemoveCategory(TagCategory.LOCATION),
                RemoveTag("Exif.Photo.BodySerialNumber"),
                RemoveTag("Exif.Image.CameraSerialNumber"),
                RemoveCategory(TagCategory.SOFTWARE),
            ],
            is_builtin=True,
        ),
        StripPreset(
            id=3,
            name="Social Media",
            description="Keep orientation and display dimensions while stripping identifying data",
            icon="share",
            rules=[RemoveAllExcept((
                "Exif.Image.Orientation",
                "Exif.Photo.PixelXDimension",
                "Exif.Photo.PixelYDimension",
                "Exif.Photo.ColorSpace",
            ))],
            is_builtin=True,
        ),
        StripPreset(
            id=4,
            name="GPS Only",
            description="Remove only location metadata",
            icon="map-pin-off",
            rules=[RemoveGps(), RemoveCategory(TagCategory.LOCATION)],
            is_builtin=True,
        ),
        StripPreset(
            id=5,
            name="Keep Basics",
            description="Keep camera, capture, datetime, and image tags",
            icon="bookmark",
            rules=[
                RemoveCategory(TagCategory.LOCATION),
                RemoveCategory(TagCategory.DESCRIPTION),
                RemoveCategory(TagCategory.SOFTWARE),
                RemoveCategory(TagCategory.OTHER),
            ],
            is_builtin=True,
        ),
        StripPreset(
            id=6,
            name="Copyright Stamp",
            description="Strip all tags then set the copyright field",
            icon="copyright",
            rules=[RemoveAll(), SetTag("Exif.Image.Copyright", USER_VALUE_PLACEHOLDER)],
            is_builtin=True,
        ),
    ]


def preset_by_name(presets: List[StripPreset], name: str) -> Optional[StripPreset]:
    """Find a preset by name, ignoring case."""
    wanted = name.strip().lower()
    for preset in presets:
        if preset.name.lower() == wanted:
            return preset
    return None


def preset_by_id(presets: List[StripPreset], preset_id: int) -> Optional[StripPreset]:
    for preset in presets:
        if preset.id == preset_id:
            return preset
    return None


def next_preset_id(presets: List[StripPreset]) -> int:
    """Smallest id greater than every id in use."""
    return max((p.id for p in presets), default=0) + 1


def load_custom_presets(path: str) -> List[StripPreset]:
    """Load user-defined presets from a JSON file.

    A missing file yields no presets. An unreadable or invalid file is
    logged and also yields no presets.
    """
    if not os.path.exists(path):
        return []

    try:
        data = read_json(path)
        if not isinstance(data, list):
            raise ValueError("expected a list of presets")
        presets = [StripPreset.from_json(item) for item in data]
    except (OSError, orjson.JSONDecodeError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Ignoring custom presets in {path}: {e}")
        return []

    for preset in presets:
        preset.is_builtin = False
    return presets


def save_custom_presets(path: str, presets: List[StripPreset]) -> None:
    """Write user-defined presets atomically. Built-ins are never saved.

    Raises:
        OSError: On filesystem failure.
    """
    custom = [p.to_json() for p in presets if not p.is_builtin]
    atomic_write_json(path, custom)
