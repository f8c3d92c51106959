"""In-memory photo collection for MetaStrip.

Owns the imported photos, the selection, the inspector query state and a
single collection-wide undo stack. Every single-photo mutation pushes an
undo snapshot of the photo before changing it.
"""

import logging
import os
import threading
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Set, Tuple

from metastrip.core.bulk import BulkProcessor
from metastrip.core.errors import (
    InvalidPhotoIndexError, InvalidTagKeyError, MetaStripError, NoSelectionError,
    PresetNotFoundError,
)
from metastrip.core.logger import OperationLogger
from metastrip.core.metadata import (
    export_photo as export_photo_file, mark_tag, read_metadata,
    remove_marked_tags, remove_tags_by_key, set_tag_in_metadata, write_metadata,
)
from metastrip.core.models import (
    ImageFormat, OperationResult, OperationSummary, OutputMode, Overwrite,
    PhotoEntry, ProgressEvent, ProgressSink, StripPreset, Tag, TagCategory,
    TagValue, UndoEntry, detect_format,
)
from metastrip.core.presets import apply_preset_to_metadata, builtin_presets, preset_by_id
from metastrip.core.scanner import scan_directory

logger = logging.getLogger(__name__)


class MetadataTab(Enum):
    EXIF = "EXIF"
    IPTC = "IPTC"
    XMP = "XMP"
    ALL = "All"

    @property
    def label(self) -> str:
        return self.value


class TableColumn(Enum):
    FILENAME = "Filename"
    DATE_TAKEN = "Date Taken"
    CAMERA = "Camera"
    GPS = "GPS"
    TAG_COUNT = "Tags"
    FILE_SIZE = "Size"

    @property
    def label(self) -> str:
        return self.value


@dataclass(frozen=True)
class TableSort:
    column: TableColumn = TableColumn.FILENAME
    descending: bool = False


def camera_label(photo: PhotoEntry) -> str:
    """Camera make and model joined by a space, whichever are known."""
    parts = [p for p in (photo.metadata.camera_make, photo.metadata.camera_model) if p]
    return " ".join(parts)


def photo_matches_query(photo: PhotoEntry, query: str) -> bool:
    """Case-insensitive match against filename, camera and every tag.

    Args:
        photo: Photo to test.
        query: Already lower-cased, non-empty query.
    """
    if query in photo.filename.lower():
        return True
    if photo.metadata.camera_make and query in photo.metadata.camera_make.lower():
        return True
    if photo.metadata.camera_model and query in photo.metadata.camera_model.lower():
        return True
    return any(_tag_matches_query(tag, query) for tag in photo.metadata.all_tags())


def _tag_matches_query(tag: Tag, query: str) -> bool:
    return (
        query in tag.key.lower()
        or query in tag.display_name.lower()
        or query in str(tag.value).lower()
    )


def _sort_value(photo: PhotoEntry, column: TableColumn):
    if column is TableColumn.FILENAME:
        return photo.filename.lower()
    if column is TableColumn.DATE_TAKEN:
        return photo.metadata.date_taken or ""
    if column is TableColumn.CAMERA:
        return camera_label(photo).lower()
    if column is TableColumn.GPS:
        return photo.metadata.has_gps
    if column is TableColumn.TAG_COUNT:
        return photo.metadata.total_tag_count()
    return photo.file_size


class PhotoCollection:
    """Photos loaded for inspection, editing and bulk stripping.

    Usage:
        collection = PhotoCollection()
        skipped = collection.import_paths(["/photos/a.jpg", "/photos/b.png"])
        collection.edit_tag(0, "Exif.Image.Artist", Text("Jane"))
        collection.save_all_dirty()

        collection.select_all_visible()
        summary = collection.run_bulk_selected(2, Suffix("_clean"))
    """

    def __init__(
        self,
        presets: Optional[List[StripPreset]] = None,
        max_workers: Optional[int] = None,
        write_embedded: bool = True,
        operation_logger: Optional[OperationLogger] = None
    ):
        """Initialize an empty collection.

        Args:
            presets: Presets available to preset operations (default: built-ins).
            max_workers: Worker cap for bulk runs.
            write_embedded: Whether saves also rewrite embedded EXIF.
            operation_logger: Optional operation log for bulk runs.
        """
        self.photos: List[PhotoEntry] = []
        self.selected_indices: Set[int] = set()
        self.active_photo: Optional[int] = None

        self.search_query = ""
        self.tag_filter: Optional[TagCategory] = None
        self.metadata_search_query = ""
        self.metadata_tab = MetadataTab.ALL
        self.table_sort = TableSort()

        self.presets: List[StripPreset] = presets if presets is not None else builtin_presets()
        self.active_preset: Optional[int] = None
        self.bulk_output_mode: OutputMode = Overwrite()

        self.is_processing = False
        self.progress: Optional[ProgressEvent] = None
        self.operation_results: List[OperationResult] = []
        self.last_summary: Optional[OperationSummary] = None

        self.max_workers = max_workers
        self.write_embedded = write_embedded
        self.operation_logger = operation_logger

        self._undo_stack: List[UndoEntry] = []
        self._next_id = 1

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_paths(self, paths: List[str]) -> List[str]:
        """Add photos to the collection.

        Paths already present are ignored. Metadata that fails to load
        leaves the photo with empty metadata.

        Returns:
            Paths that were skipped (not a file, or unsupported format).
        """
        skipped = []
        known = {photo.path for photo in self.photos}

        for path in paths:
            if not os.path.isfile(path):
                skipped.append(path)
                continue
            if path in known:
                continue

            image_format = detect_format(path)
            if image_format is ImageFormat.UNKNOWN:
                skipped.append(path)
                continue

            entry = PhotoEntry.from_path(self._next_id, path, image_format)
            self._next_id += 1

            try:
                entry.set_loaded_metadata(read_metadata(path))
            except MetaStripError as e:
                logger.warning(f"Could not read metadata for {path}: {e}")

            self.photos.append(entry)
            known.add(path)

        if self.active_photo is None and self.photos:
            self.active_photo = 0

        if skipped:
            logger.debug(f"Skipped {len(skipped)} paths during import")
        return skipped

    def import_directory(self, directory: str, recursive: bool = True) -> List[str]:
        """Import every supported image found under directory."""
        return self.import_paths(scan_directory(directory, recursive=recursive))

    # ------------------------------------------------------------------
    # Query state
    # ------------------------------------------------------------------

    def set_search_query(self, query: str) -> None:
        self.search_query = query

    def set_metadata_search_query(self, query: str) -> None:
        self.metadata_search_query = query

    def set_tag_filter(self, category: Optional[TagCategory]) -> None:
        self.tag_filter = category

    def set_metadata_tab(self, tab: MetadataTab) -> None:
        self.metadata_tab = tab

    def set_table_sort(self, sort: TableSort) -> None:
        self.table_sort = sort

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def _sync_selection_flags(self) -> None:
        for index, photo in enumerate(self.photos):
            photo.selected = index in self.selected_indices

    def select_photo(self, index: int, additive: bool = False) -> None:
        """Select one photo; without additive the previous selection is dropped.

        Out-of-range indices are ignored.
        """
        if not 0 <= index < len(self.photos):
            return
        if not additive:
            self.selected_indices.clear()
        self.selected_indices.add(index)
        self.active_photo = index
        self._sync_selection_flags()

    def toggle_photo_selection(self, index: int) -> None:
        if not 0 <= index < len(self.photos):
            return
        if index in self.selected_indices:
            self.selected_indices.discard(index)
        else:
            self.selected_indices.add(index)
        self.active_photo = index
        self._sync_selection_flags()

    def select_range(self, start: int, end: int) -> None:
        """Add the inclusive range between start and end, clamped to the list."""
        if not self.photos:
            return
        low = max(0, min(start, end))
        high = min(max(start, end), len(self.photos) - 1)
        self.selected_indices.update(range(low, high + 1))
        self.active_photo = high
        self._sync_selection_flags()

    def select_all_visible(self) -> None:
        self.selected_indices.update(self.sorted_visible_indices())
        self._sync_selection_flags()

    def clear_selection(self) -> None:
        self.selected_indices.clear()
        self._sync_selection_flags()

    def _selected_indices_sorted(self) -> List[int]:
        return sorted(i for i in self.selected_indices if 0 <= i < len(self.photos))

    def selected_photos(self) -> List[PhotoEntry]:
        return [self.photos[i] for i in self._selected_indices_sorted()]

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def visible_photo_indices(self) -> List[int]:
        """Indices passing the search query and category filter, in list order."""
        query = self.search_query.strip().lower()
        visible = []
        for index, photo in enumerate(self.photos):
            if query and not photo_matches_query(photo, query):
                continue
            if self.tag_filter is not None and not any(
                tag.category == self.tag_filter for tag in photo.metadata.all_tags()
            ):
                continue
            visible.append(index)
        return visible

    def sorted_visible_indices(self) -> List[int]:
        """Visible indices ordered by the table sort.

        Ties are broken by filename (case-insensitive, ascending) regardless
        of direction.
        """
        column = self.table_sort.column
        descending = self.table_sort.descending

        # Two stable passes: tie-break key first, then the primary column.
        indices = sorted(self.visible_photo_indices(), key=lambda i: self.photos[i].filename.lower())
        indices.sort(key=lambda i: _sort_value(self.photos[i], column), reverse=descending)
        return indices

    def visible_photos(self) -> List[PhotoEntry]:
        return [self.photos[i] for i in self.sorted_visible_indices()]

    def inspector_tags(self, index: int) -> List[Tag]:
        """Tags of one photo for the current tab, query and category filter.

        Returns:
            Tags sorted by display name then key; empty for a bad index.
        """
        if not 0 <= index < len(self.photos):
            return []
        metadata = self.photos[index].metadata

        if self.metadata_tab is MetadataTab.EXIF:
            tags = list(metadata.exif_tags)
        elif self.metadata_tab is MetadataTab.IPTC:
            tags = list(metadata.iptc_tags)
        elif self.metadata_tab is MetadataTab.XMP:
            tags = list(metadata.xmp_tags)
        else:
            tags = list(metadata.all_tags())

        query = self.metadata_search_query.strip().lower()
        if query:
            tags = [t for t in tags if _tag_matches_query(t, query)]
        if self.tag_filter is not None:
            tags = [t for t in tags if t.category == self.tag_filter]

        tags.sort(key=lambda t: (t.display_name.lower(), t.key.lower()))
        return tags

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _photo(self, index: int) -> PhotoEntry:
        if not 0 <= index < len(self.photos):
            raise InvalidPhotoIndexError(index)
        return self.photos[index]

    def _push_undo_snapshot(self, index: int) -> PhotoEntry:
        photo = self._photo(index)
        self._undo_stack.append(UndoEntry(
            index=index,
            metadata=photo.metadata.copy(),
            persisted_metadata=photo.persisted_metadata.copy(),
            dirty=photo.dirty,
        ))
        return photo

    def _preset(self, preset_id: int) -> StripPreset:
        preset = preset_by_id(self.presets, preset_id)
        if preset is None:
            raise PresetNotFoundError(preset_id)
        return preset

    def edit_tag(self, index: int, key: str, value: TagValue) -> None:
        """Set a tag's value on one photo (unsaved).

        Raises:
            InvalidTagKeyError: If key is blank.
            InvalidPhotoIndexError: If index does not resolve.
        """
        if not key.strip():
            raise InvalidTagKeyError(key)
        photo = self._push_undo_snapshot(index)
        set_tag_in_metadata(photo.metadata, key.strip(), value)
        photo.recompute_dirty()

    def clear_tag(self, index: int, key: str) -> bool:
        """Remove every tag with key from one photo. Returns True if any was removed."""
        photo = self._push_undo_snapshot(index)
        removed = remove_tags_by_key(photo.metadata, [key])
        photo.recompute_dirty()
        return removed > 0

    def mark_tag_for_removal(self, index: int, key: str, marked: bool = True) -> bool:
        photo = self._push_undo_snapshot(index)
        found = mark_tag(photo.metadata, key, marked)
        photo.recompute_dirty()
        return found

    def strip_marked_tags(self, index: int) -> int:
        photo = self._push_undo_snapshot(index)
        removed = remove_marked_tags(photo.metadata)
        photo.recompute_dirty()
        return removed

    def apply_preset_to_photo(self, index: int, preset_id: int) -> None:
        """Apply a preset to one photo's in-memory metadata (unsaved)."""
        preset = self._preset(preset_id)
        photo = self._push_undo_snapshot(index)
        apply_preset_to_metadata(photo.metadata, preset)
        photo.recompute_dirty()
        self.active_preset = preset_id

    def revert_photo(self, index: int) -> None:
        """Discard unsaved edits. Undoable like any other mutation."""
        photo = self._push_undo_snapshot(index)
        photo.metadata = photo.persisted_metadata.copy()
        photo.dirty = False

    def clear_all_metadata(self) -> int:
        """Empty the metadata of every photo (unsaved, not undoable).

        Returns:
            Number of photos affected.
        """
        for photo in self.photos:
            photo.metadata.clear()
            photo.recompute_dirty()
        return len(self.photos)

    def undo_last_change(self) -> bool:
        """Restore the most recent snapshot.

        Returns:
            False if there was nothing to undo or the photo is gone.
        """
        if not self._undo_stack:
            return False
        entry = self._undo_stack.pop()
        if not 0 <= entry.index < len(self.photos):
            return False

        photo = self.photos[entry.index]
        photo.metadata = entry.metadata
        photo.persisted_metadata = entry.persisted_metadata
        photo.dirty = entry.dirty
        return True

    @property
    def undo_depth(self) -> int:
        return len(self._undo_stack)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_photo_changes(self, index: int) -> None:
        photo = self._photo(index)
        write_metadata(photo.path, photo.metadata, write_embedded=self.write_embedded)
        photo.persisted_metadata = photo.metadata.copy()
        photo.dirty = False

    def save_all_dirty(self) -> int:
        """Save every dirty photo, stopping at the first failure.

        Returns:
            Number of photos saved.
        """
        dirty = [i for i, photo in enumerate(self.photos) if photo.dirty]
        for index in dirty:
            self.save_photo_changes(index)
        return len(dirty)

    def reload_photo_from_disk(self, index: int) -> None:
        photo = self._photo(index)
        photo.set_loaded_metadata(read_metadata(photo.path))
        try:
            photo.file_size = os.path.getsize(photo.path)
        except OSError:
            pass

    def export_photo(self, index: int, export_dir: str) -> str:
        """Write a copy of one photo with its current metadata into export_dir.

        Returns:
            Path of the exported copy.
        """
        photo = self._photo(index)
        return export_photo_file(photo.path, photo.metadata, export_dir,
                                 write_embedded=self.write_embedded)

    def export_all(self, export_dir: str) -> Tuple[int, int]:
        """Export every photo, continuing past failures.

        Returns:
            (exported, failed) counts.
        """
        exported = 0
        failed = 0
        for index, photo in enumerate(self.photos):
            try:
                self.export_photo(index, export_dir)
                exported += 1
            except MetaStripError as e:
                logger.warning(f"Export failed for {photo.path}: {e}")
                failed += 1
        return exported, failed

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def run_bulk_selected(
        self,
        preset_id: int,
        mode: OutputMode,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[ProgressSink] = None
    ) -> OperationSummary:
        """Apply a preset to the selected photos on disk.

        Overwrite reloads the affected photos afterwards; the other modes
        import the successfully written outputs as new photos.

        Raises:
            PresetNotFoundError: If preset_id is unknown.
            NoSelectionError: If nothing is selected.
        """
        preset = self._preset(preset_id)
        indices = self._selected_indices_sorted()
        if not indices:
            raise NoSelectionError()

        photos = [self.photos[i] for i in indices]

        def track_progress(event: ProgressEvent) -> None:
            self.progress = event
            if on_progress:
                on_progress(event)

        processor = BulkProcessor(
            max_workers=self.max_workers,
            logger=self.operation_logger,
            write_embedded=self.write_embedded,
        )

        self.is_processing = True
        try:
            results = processor.process(photos, preset, mode,
                                        on_progress=track_progress, cancel_event=cancel_event)
        finally:
            self.is_processing = False

        summary = processor.summarize(len(photos), results)
        self.operation_results = results
        self.last_summary = summary
        self.bulk_output_mode = mode
        self.active_preset = preset_id

        if isinstance(mode, Overwrite):
            for index in indices:
                try:
                    self.reload_photo_from_disk(index)
                except MetaStripError as e:
                    logger.warning(f"Could not reload {self.photos[index].path}: {e}")
        else:
            self.import_paths([r.output_path for r in results if r.success])

        return summary

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def dirty_count(self) -> int:
        return sum(1 for photo in self.photos if photo.dirty)

    def status_line(self) -> str:
        """One-line summary of the collection state."""
        return (
            f"photos={len(self.photos)} selected={len(self.selected_indices)} "
            f"dirty={self.dirty_count()} undo={self.undo_depth} "
            f"processing={self.is_processing}"
        )
