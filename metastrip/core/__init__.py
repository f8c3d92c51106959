"""Metadata engine and batch pipeline for MetaStrip."""

from metastrip.core.errors import (
    MetaStripError,
    MetadataError,
    PhotoNotFoundError,
    InvalidTagKeyError,
    MetadataIOError,
    SerializationError,
    CollectionError,
    InvalidPhotoIndexError,
    PresetNotFoundError,
    NoSelectionError,
)

from metastrip.core.models import (
    TagCategory,
    TagValue,
    Text,
    Integer,
    Float,
    Rational,
    DateTime,
    Gps,
    Binary,
    Unknown,
    Tag,
    PhotoMetadata,
    PresetRule,
    RemoveCategory,
    RemoveTag,
    RemoveAllExcept,
    RemoveAll,
    RemoveGps,
    RemoveThumbnail,
    SetTag,
    StripPreset,
    ImageFormat,
    PhotoEntry,
    UndoEntry,
    OutputMode,
    Overwrite,
    ExportTo,
    Suffix,
    OperationResult,
    ProgressEvent,
    OperationSummary,
    ProgressSink,
    infer_category,
    category_from_token,
    display_name_from_key,
    detect_format,
    is_supported,
)

from metastrip.core.utils import (
    get_unique_path,
    normalize_path,
)

from metastrip.core.logger import (
    BufferedLogger,
    NullLogger,
    create_logger,
    write_summary,
)

from metastrip.core.scanner import scan_directory

from metastrip.core.exiftool import (
    get_exiftool_path,
    is_exiftool_available,
    ExifToolManager,
)

from metastrip.core.codec import (
    decode_exif,
    encode_tags,
    decimal_to_dms,
    dms_to_decimal,
    read_embedded,
    write_embedded,
)

from metastrip.core.presets import (
    apply_preset_to_metadata,
    apply_rule,
    builtin_presets,
    preset_by_name,
    preset_by_id,
    load_custom_presets,
    save_custom_presets,
)

from metastrip.core.metadata import (
    sidecar_path,
    read_metadata,
    write_metadata,
    apply_preset,
    set_tag,
    set_tag_in_metadata,
    remove_tags_by_key,
    remove_marked_tags,
    mark_tag,
    export_photo,
    remove_sidecar,
)

from metastrip.core.bulk import (
    BulkProcessor,
    add_suffix,
)

from metastrip.core.collection import (
    PhotoCollection,
    MetadataTab,
    TableColumn,
    TableSort,
)

from metastrip.core.settings import Settings

__all__ = [
    # Errors
    "MetaStripError",
    "MetadataError",
    "PhotoNotFoundError",
    "InvalidTagKeyError",
    "MetadataIOError",
    "SerializationError",
    "CollectionError",
    "InvalidPhotoIndexError",
    "PresetNotFoundError",
    "NoSelectionError",
    # Models
    "TagCategory",
    "TagValue",
    "Text",
    "Integer",
    "Float",
    "Rational",
    "DateTime",
    "Gps",
    "Binary",
    "Unknown",
    "Tag",
    "PhotoMetadata",
    "PresetRule",
    "RemoveCategory",
    "RemoveTag",
    "RemoveAllExcept",
    "RemoveAll",
    "RemoveGps",
    "RemoveThumbnail",
    "SetTag",
    "StripPreset",
    "ImageFormat",
    "PhotoEntry",
    "UndoEntry",
    "OutputMode",
    "Overwrite",
    "ExportTo",
    "Suffix",
    "OperationResult",
    "ProgressEvent",
    "OperationSummary",
    "ProgressSink",
    "infer_category",
    "category_from_token",
    "display_name_from_key",
    "detect_format",
    "is_supported",
    # Utils
    "get_unique_path",
    "normalize_path",
    # Logger
    "BufferedLogger",
    "NullLogger",
    "create_logger",
    "write_summary",
    # Scanner
    "scan_directory",
    # ExifTool
    "get_exiftool_path",
    "is_exiftool_available",
    "ExifToolManager",
    # Codec
    "decode_exif",
    "encode_tags",
    "decimal_to_dms",
    "dms_to_decimal",
    "read_embedded",
    "write_embedded",
    # Presets
    "apply_preset_to_metadata",
    "apply_rule",
    "builtin_presets",
    "preset_by_name",
    "preset_by_id",
    "load_custom_presets",
    "save_custom_presets",
    # Metadata store
    "sidecar_path",
    "read_metadata",
    "write_metadata",
    "apply_preset",
    "set_tag",
    "set_tag_in_metadata",
    "remove_tags_by_key",
    "remove_marked_tags",
    "mark_tag",
    "export_photo",
    "remove_sidecar",
    # Bulk
    "BulkProcessor",
    "add_suffix",
    # Collection
    "PhotoCollection",
    "MetadataTab",
    "TableColumn",
    "TableSort",
    # Settings
    "Settings",
]
