"""MetaStrip - Inspect, edit and strip photo metadata, one photo or thousands.

High-level API:
    from metastrip import PhotoCollection, Suffix

    collection = PhotoCollection()
    collection.import_directory("/path/to/photos")

    # Strip identifying data from everything into "<name>_clean.<ext>" copies
    collection.select_all_visible()
    summary = collection.run_bulk_selected(2, Suffix("_clean"))
    print(f"Cleaned {summary.succeeded} of {summary.total} photos")
"""

__version__ = "1.0.0"

# Public API exports
from metastrip.core.collection import PhotoCollection
from metastrip.core.metadata import read_metadata, write_metadata, apply_preset, set_tag
from metastrip.core.models import (
    ExportTo,
    OperationSummary,
    Overwrite,
    PhotoMetadata,
    StripPreset,
    Suffix,
    Tag,
    TagCategory,
)
from metastrip.core.presets import builtin_presets

__all__ = [
    "PhotoCollection",
    "read_metadata",
    "write_metadata",
    "apply_preset",
    "set_tag",
    "ExportTo",
    "OperationSummary",
    "Overwrite",
    "PhotoMetadata",
    "StripPreset",
    "Suffix",
    "Tag",
    "TagCategory",
    "builtin_presets",
    "__version__",
]
