"""Data models for MetaStrip."""

import copy
import math
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple


class TagCategory(Enum):
    """Semantic grouping of a metadata tag."""
    CAMERA = "Camera"
    CAPTURE = "Capture"
    LOCATION = "Location"
    DATETIME = "DateTime"
    IMAGE = "Image"
    DESCRIPTION = "Description"
    SOFTWARE = "Software"
    OTHER = "Other"

    @property
    def label(self) -> str:
        """Human-readable label."""
        if self is TagCategory.DATETIME:
            return "Date/Time"
        return self.value


# Checked in order; the first group with a matching substring wins.
_CATEGORY_HINTS: Tuple[Tuple[TagCategory, Tuple[str, ...]], ...] = (
    (TagCategory.LOCATION, ("gps", "latitude", "longitude")),
    (TagCategory.DATETIME, ("datetime", "timestamp", "digitized")),
    (TagCategory.CAMERA, ("make", "model", "lens", "serial")),
    (TagCategory.CAPTURE, ("iso", "aperture", "shutter", "exposure", "flash")),
    (TagCategory.IMAGE, ("pixel", "resolution", "orientation", "colorspace", "width", "height")),
    (TagCategory.DESCRIPTION, ("title", "description", "caption", "keyword", "copyright", "artist")),
    (TagCategory.SOFTWARE, ("software", "editor", "processing")),
)

_CATEGORY_TOKENS: Dict[str, TagCategory] = {
    "camera": TagCategory.CAMERA,
    "capture": TagCategory.CAPTURE,
    "location": TagCategory.LOCATION,
    "datetime": TagCategory.DATETIME,
    "date": TagCategory.DATETIME,
    "date/time": TagCategory.DATETIME,
    "time": TagCategory.DATETIME,
    "image": TagCategory.IMAGE,
    "description": TagCategory.DESCRIPTION,
    "software": TagCategory.SOFTWARE,
    "other": TagCategory.OTHER,
}


def infer_category(key: str) -> TagCategory:
    """Guess a tag's category from substrings of its key.

    Example:
        >>> infer_category("Exif.Photo.DateTimeOriginal")
        <TagCategory.DATETIME: 'DateTime'>
    """
    lowered = key.lower()
    for category, hints in _CATEGORY_HINTS:
        if any(hint in lowered for hint in hints):
            return category
    return TagCategory.OTHER


def category_from_token(token: str) -> Optional[TagCategory]:
    """Map a category name such as "camera" or "date" to a TagCategory."""
    return _CATEGORY_TOKENS.get(token.strip().lower())


def display_name_from_key(key: str) -> str:
    """Build a display name from the last segment of a dotted key.

    Example:
        >>> display_name_from_key("Exif.Photo.DateTimeOriginal")
        'Date Time Original'
    """
    raw = key.rsplit(".", 1)[-1]
    words: List[str] = []
    current = ""

    for index, ch in enumerate(raw):
        if ch in "_-":
            if current:
                words.append(current)
                current = ""
            continue
        if ch.isascii() and ch.isupper() and index > 0 and current:
            words.append(current)
            current = ""
        current += ch

    if current:
        words.append(current)

    if not words:
        return raw
    return " ".join(word[0].upper() + word[1:] for word in words)


# ---------------------------------------------------------------------------
# Tag values
# ---------------------------------------------------------------------------

class TagValue:
    """Base of the closed set of typed tag values.

    Concrete kinds: Text, Integer, Float, Rational, DateTime, Gps, Binary,
    Unknown. JSON uses the externally tagged form ``{"Kind": payload}``.
    """

    __slots__ = ()

    kind: str = ""

    def _payload(self) -> Any:
        raise NotImplementedError

    def to_json(self) -> Dict[str, Any]:
        return {self.kind: self._payload()}

    @staticmethod
    def from_json(data: Any) -> "TagValue":
        """Decode a value from its JSON form.

        Raises:
            ValueError: If the data is not a recognised value object.
        """
        if not isinstance(data, dict) or len(data) != 1:
            raise ValueError(f"invalid tag value: {data!r}")
        kind, payload = next(iter(data.items()))
        decoder = _VALUE_DECODERS.get(kind)
        if decoder is None:
            raise ValueError(f"unknown tag value kind: {kind!r}")
        try:
            return decoder(payload)
        except (TypeError, IndexError) as e:
            raise ValueError(f"invalid {kind} payload {payload!r}: {e}") from e


@dataclass(frozen=True)
class Text(TagValue):
    value: str
    kind = "Text"

    def _payload(self) -> Any:
        return self.value

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Integer(TagValue):
    value: int
    kind = "Integer"

    def _payload(self) -> Any:
        return self.value

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Float(TagValue):
    value: float
    kind = "Float"

    def _payload(self) -> Any:
        if not math.isfinite(self.value):
            raise ValueError(f"non-finite float has no JSON form: {self.value}")
        return self.value

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Rational(TagValue):
    numerator: int
    denominator: int
    kind = "Rational"

    def _payload(self) -> Any:
        return [self.numerator, self.denominator]

    def __str__(self) -> str:
        return f"{self.numerator}/{self.denominator}"


@dataclass(frozen=True)
class DateTime(TagValue):
    """Date/time text, canonically "YYYY:MM:DD HH:MM:SS"."""
    value: str
    kind = "DateTime"

    def _payload(self) -> Any:
        return self.value

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Gps(TagValue):
    """Decimal-degree coordinates; altitude in meters, negative below sea level."""
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    kind = "Gps"

    def __post_init__(self):
        if not -90 <= self.latitude <= 90:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180 <= self.longitude <= 180:
            raise ValueError(f"longitude out of range: {self.longitude}")

    def _payload(self) -> Any:
        if self.altitude is not None and not math.isfinite(self.altitude):
            raise ValueError(f"non-finite altitude has no JSON form: {self.altitude}")
        return [self.latitude, self.longitude, self.altitude]

    def __str__(self) -> str:
        if self.altitude is not None:
            return f"{self.latitude:.6f}, {self.longitude:.6f} @ {self.altitude:.2f}m"
        return f"{self.latitude:.6f}, {self.longitude:.6f}"


@dataclass(frozen=True)
class Binary(TagValue):
    data: bytes
    kind = "Binary"

    def _payload(self) -> Any:
        return list(self.data)

    def __str__(self) -> str:
        return f"<{len(self.data)} bytes>"


@dataclass(frozen=True)
class Unknown(TagValue):
    value: str
    kind = "Unknown"

    def _payload(self) -> Any:
        return self.value

    def __str__(self) -> str:
        return self.value


def _decode_gps(payload: Any) -> Gps:
    altitude = payload[2] if len(payload) > 2 else None
    return Gps(
        float(payload[0]),
        float(payload[1]),
        float(altitude) if altitude is not None else None,
    )


_VALUE_DECODERS: Dict[str, Callable[[Any], TagValue]] = {
    "Text": lambda p: Text(str(p)),
    "Integer": lambda p: Integer(int(p)),
    "Float": lambda p: Float(float(p)),
    "Rational": lambda p: Rational(int(p[0]), int(p[1])),
    "DateTime": lambda p: DateTime(str(p)),
    "Gps": _decode_gps,
    "Binary": lambda p: Binary(bytes(p)),
    "Unknown": lambda p: Unknown(str(p)),
}


# ---------------------------------------------------------------------------
# Tags and photo metadata
# ---------------------------------------------------------------------------

@dataclass
class Tag:
    """One metadata entry."""
    key: str
    display_name: str
    value: TagValue
    category: TagCategory
    editable: bool = True
    marked_for_removal: bool = False

    @classmethod
    def create(
        cls,
        key: str,
        value: TagValue,
        display_name: Optional[str] = None,
        category: Optional[TagCategory] = None,
        editable: bool = True,
    ) -> "Tag":
        """Create a tag, deriving display name and category from the key."""
        return cls(
            key=key,
            display_name=display_name or display_name_from_key(key),
            value=value,
            category=category or infer_category(key),
            editable=editable,
        )

    def matches_key(self, key: str) -> bool:
        """Case-insensitive key comparison."""
        return self.key.lower() == key.lower()

    def to_json(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "display_name": self.display_name,
            "value": self.value.to_json(),
            "category": self.category.value,
            "editable": self.editable,
            "marked_for_removal": self.marked_for_removal,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Tag":
        key = data["key"]
        display_name = data.get("display_name")
        if not isinstance(key, str):
            raise ValueError(f"invalid tag key {key!r}")
        if display_name is not None and not isinstance(display_name, str):
            raise ValueError(f"invalid display name for {key}: {display_name!r}")
        return cls(
            key=key,
            display_name=display_name or display_name_from_key(key),
            value=TagValue.from_json(data["value"]),
            category=TagCategory(data["category"]),
            editable=bool(data.get("editable", True)),
            marked_for_removal=bool(data.get("marked_for_removal", False)),
        )


@dataclass
class PhotoMetadata:
    """Tag collections of one photo plus derived summary fields.

    The summary fields must be refreshed with update_summary_fields() after
    any change to the collections. Equality is structural and is what the
    collection uses to decide whether a photo is dirty.
    """
    exif_tags: List[Tag] = field(default_factory=list)
    iptc_tags: List[Tag] = field(default_factory=list)
    xmp_tags: List[Tag] = field(default_factory=list)
    has_gps: bool = False
    date_taken: Optional[str] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None

    def all_tags(self) -> Iterator[Tag]:
        """Iterate EXIF, then IPTC, then XMP tags."""
        yield from self.exif_tags
        yield from self.iptc_tags
        yield from self.xmp_tags

    def total_tag_count(self) -> int:
        return len(self.exif_tags) + len(self.iptc_tags) + len(self.xmp_tags)

    def find_tag(self, key: str) -> Optional[Tag]:
        """Return the first tag whose key matches case-insensitively."""
        for tag in self.all_tags():
            if tag.matches_key(key):
                return tag
        return None

    def set_tag(self, key: str, value: TagValue) -> Tag:
        """Update the first tag matching key, or append a new EXIF tag.

        Updating clears a pending removal mark. Summary fields are refreshed.
        """
        tag = self.find_tag(key)
        if tag is not None:
            tag.value = value
            tag.marked_for_removal = False
        else:
            tag = Tag.create(key, value)
            self.exif_tags.append(tag)
        self.update_summary_fields()
        return tag

    def retain(self, predicate: Callable[[Tag], bool]) -> int:
        """Keep only tags satisfying predicate in all collections.

        Returns:
            Number of tags dropped.
        """
        before = self.total_tag_count()
        self.exif_tags = [t for t in self.exif_tags if predicate(t)]
        self.iptc_tags = [t for t in self.iptc_tags if predicate(t)]
        self.xmp_tags = [t for t in self.xmp_tags if predicate(t)]
        return before - self.total_tag_count()

    def clear(self) -> None:
        """Drop every tag and reset the summary fields."""
        self.exif_tags = []
        self.iptc_tags = []
        self.xmp_tags = []
        self.has_gps = False
        self.date_taken = None
        self.camera_make = None
        self.camera_model = None

    def update_summary_fields(self) -> None:
        """Recompute has_gps, date_taken, camera_make and camera_model."""
        has_gps = False
        date_taken = None
        camera_make = None
        camera_model = None

        for tag in self.all_tags():
            key = tag.key.lower()

            if not has_gps and (isinstance(tag.value, Gps) or "gps" in key):
                has_gps = True
            if date_taken is None and "datetimeoriginal" in key:
                date_taken = str(tag.value)
            if camera_make is None and key.endswith("make"):
                camera_make = str(tag.value)
            if camera_model is None and key.endswith("model"):
                camera_model = str(tag.value)

        self.has_gps = has_gps
        self.date_taken = date_taken
        self.camera_make = camera_make
        self.camera_model = camera_model

    def copy(self) -> "PhotoMetadata":
        """Deep copy, safe to mutate independently."""
        return copy.deepcopy(self)

    def to_json(self) -> Dict[str, Any]:
        return {
            "exif_tags": [t.to_json() for t in self.exif_tags],
            "iptc_tags": [t.to_json() for t in self.iptc_tags],
            "xmp_tags": [t.to_json() for t in self.xmp_tags],
            "has_gps": self.has_gps,
            "date_taken": self.date_taken,
            "camera_make": self.camera_make,
            "camera_model": self.camera_model,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "PhotoMetadata":
        """Decode sidecar JSON.

        Raises:
            ValueError: If the structure is not a metadata object.
        """
        if not isinstance(data, dict):
            raise ValueError("metadata must be a JSON object")
        try:
            return cls(
                exif_tags=[Tag.from_json(t) for t in data.get("exif_tags", [])],
                iptc_tags=[Tag.from_json(t) for t in data.get("iptc_tags", [])],
                xmp_tags=[Tag.from_json(t) for t in data.get("xmp_tags", [])],
                has_gps=bool(data.get("has_gps", False)),
                date_taken=data.get("date_taken"),
                camera_make=data.get("camera_make"),
                camera_model=data.get("camera_model"),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"invalid metadata: {e}") from e


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

USER_VALUE_PLACEHOLDER = "{user_value}"


class PresetRule:
    """Base of the closed set of preset rules."""

    __slots__ = ()

    name: str = ""

    def to_json(self) -> Any:
        return self.name

    @staticmethod
    def from_json(data: Any) -> "PresetRule":
        """Decode a rule from ``"RemoveAll"`` or ``{"RemoveTag": "key"}`` form.

        Raises:
            ValueError: If the rule is not recognised.
        """
        if isinstance(data, str):
            simple = _SIMPLE_RULES.get(data)
            if simple is None:
                raise ValueError(f"unknown preset rule: {data!r}")
            return simple()

        if not isinstance(data, dict) or len(data) != 1:
            raise ValueError(f"invalid preset rule: {data!r}")

        name, payload = next(iter(data.items()))
        try:
            if name == "RemoveCategory":
                return RemoveCategory(TagCategory(payload))
            if name == "RemoveTag":
                return RemoveTag(str(payload))
            if name == "RemoveAllExcept":
                return RemoveAllExcept(tuple(str(k) for k in payload))
            if name == "SetTag":
                return SetTag(str(payload[0]), str(payload[1]))
        except (TypeError, IndexError) as e:
            raise ValueError(f"invalid {name} payload {payload!r}: {e}") from e
        if name in _SIMPLE_RULES:
            return _SIMPLE_RULES[name]()
        raise ValueError(f"unknown preset rule: {name!r}")


@dataclass(frozen=True)
class RemoveCategory(PresetRule):
    category: TagCategory
    name = "RemoveCategory"

    def to_json(self) -> Any:
        return {self.name: self.category.value}


@dataclass(frozen=True)
class RemoveTag(PresetRule):
    key: str
    name = "RemoveTag"

    def to_json(self) -> Any:
        return {self.name: self.key}


@dataclass(frozen=True)
class RemoveAllExcept(PresetRule):
    """Keep only the listed keys and/or categories (by token name)."""
    keys: Tuple[str, ...]
    name = "RemoveAllExcept"

    def to_json(self) -> Any:
        return {self.name: list(self.keys)}


@dataclass(frozen=True)
class RemoveAll(PresetRule):
    name = "RemoveAll"


@dataclass(frozen=True)
class RemoveGps(PresetRule):
    name = "RemoveGps"


@dataclass(frozen=True)
class RemoveThumbnail(PresetRule):
    name = "RemoveThumbnail"


@dataclass(frozen=True)
class SetTag(PresetRule):
    key: str
    value: str
    name = "SetTag"

    def to_json(self) -> Any:
        return {self.name: [self.key, self.value]}


_SIMPLE_RULES = {
    "RemoveAll": RemoveAll,
    "RemoveGps": RemoveGps,
    "RemoveThumbnail": RemoveThumbnail,
}


@dataclass
class StripPreset:
    """A named, ordered list of rules."""
    id: int
    name: str
    description: str
    icon: str
    rules: List[PresetRule] = field(default_factory=list)
    is_builtin: bool = False

    def with_user_value(self, value: str) -> "StripPreset":
        """Copy with "{user_value}" in SetTag values replaced by value."""
        rules = [
            SetTag(rule.key, rule.value.replace(USER_VALUE_PLACEHOLDER, value))
            if isinstance(rule, SetTag) else rule
            for rule in self.rules
        ]
        return replace(self, rules=rules)

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "rules": [rule.to_json() for rule in self.rules],
            "is_builtin": self.is_builtin,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "StripPreset":
        return cls(
            id=int(data["id"]),
            name=str(data["name"]),
            description=str(data.get("description", "")),
            icon=str(data.get("icon", "")),
            rules=[PresetRule.from_json(r) for r in data.get("rules", [])],
            is_builtin=bool(data.get("is_builtin", False)),
        )


# ---------------------------------------------------------------------------
# Photos and formats
# ---------------------------------------------------------------------------

class ImageFormat(Enum):
    JPEG = "JPEG"
    PNG = "PNG"
    TIFF = "TIFF"
    WEBP = "WebP"
    HEIF = "HEIF"
    AVIF = "AVIF"
    JXL = "JXL"
    UNKNOWN = "Unknown"


_FORMATS_BY_EXTENSION: Dict[str, ImageFormat] = {
    "jpg": ImageFormat.JPEG,
    "jpeg": ImageFormat.JPEG,
    "png": ImageFormat.PNG,
    "tif": ImageFormat.TIFF,
    "tiff": ImageFormat.TIFF,
    "webp": ImageFormat.WEBP,
    "heic": ImageFormat.HEIF,
    "heif": ImageFormat.HEIF,
    "avif": ImageFormat.AVIF,
    "jxl": ImageFormat.JXL,
}

SUPPORTED_EXTENSIONS = tuple(_FORMATS_BY_EXTENSION)

# Containers we attempt to rewrite embedded EXIF in.
EMBEDDED_WRITE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "webp", "heic", "heif"})


def file_extension(path: str) -> str:
    """Lower-cased extension without the dot ("" if none)."""
    return os.path.splitext(path)[1][1:].lower()


def detect_format(path: str) -> ImageFormat:
    """Detect the image format from the file extension."""
    return _FORMATS_BY_EXTENSION.get(file_extension(path), ImageFormat.UNKNOWN)


def is_supported(path: str) -> bool:
    return detect_format(path) is not ImageFormat.UNKNOWN


@dataclass
class PhotoEntry:
    """A photo loaded into the collection."""
    id: int
    path: str
    filename: str
    file_size: int
    format: ImageFormat
    metadata: PhotoMetadata = field(default_factory=PhotoMetadata)
    persisted_metadata: PhotoMetadata = field(default_factory=PhotoMetadata)
    selected: bool = False
    dirty: bool = False

    @classmethod
    def from_path(cls, photo_id: int, path: str, image_format: Optional[ImageFormat] = None) -> "PhotoEntry":
        try:
            file_size = os.path.getsize(path)
        except OSError:
            file_size = 0
        return cls(
            id=photo_id,
            path=path,
            filename=os.path.basename(path) or "unknown",
            file_size=file_size,
            format=image_format or detect_format(path),
        )

    def set_loaded_metadata(self, metadata: PhotoMetadata) -> None:
        """Replace both current and persisted metadata with freshly read data."""
        self.persisted_metadata = metadata.copy()
        self.metadata = metadata
        self.dirty = False

    def recompute_dirty(self) -> None:
        self.dirty = self.metadata != self.persisted_metadata


@dataclass
class UndoEntry:
    """Snapshot of one photo taken before a mutating operation."""
    index: int
    metadata: PhotoMetadata
    persisted_metadata: PhotoMetadata
    dirty: bool


# ---------------------------------------------------------------------------
# Bulk operations
# ---------------------------------------------------------------------------

class OutputMode:
    """Base of the output path policies for bulk processing."""

    __slots__ = ()

    label: str = ""


@dataclass(frozen=True)
class Overwrite(OutputMode):
    label = "Overwrite"


@dataclass(frozen=True)
class ExportTo(OutputMode):
    directory: str
    label = "ExportTo"


@dataclass(frozen=True)
class Suffix(OutputMode):
    suffix: str
    label = "Suffix"


@dataclass
class OperationResult:
    """Outcome of processing one photo in a batch."""
    photo_id: int
    output_path: str
    success: bool
    error: Optional[str] = None

    @classmethod
    def succeeded(cls, photo_id: int, output_path: str) -> "OperationResult":
        return cls(photo_id=photo_id, output_path=output_path, success=True)

    @classmethod
    def failed(cls, photo_id: int, output_path: str, error: str) -> "OperationResult":
        return cls(photo_id=photo_id, output_path=output_path, success=False, error=error)


@dataclass(frozen=True)
class ProgressEvent:
    current: int
    total: int
    filename: str
    success: bool


@dataclass
class OperationSummary:
    """Counts derived from a batch's results."""
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0

    @classmethod
    def from_results(cls, expected_total: int, results: List[OperationResult]) -> "OperationSummary":
        succeeded = sum(1 for r in results if r.success)
        return cls(
            total=expected_total,
            succeeded=succeeded,
            failed=max(0, len(results) - succeeded),
            cancelled=max(0, expected_total - len(results)),
        )


# Type aliases for callbacks
ProgressSink = Callable[[ProgressEvent], None]
