"""Parallel batch application of presets."""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional, Tuple

from metastrip.core.errors import MetaStripError
from metastrip.core.logger import OperationLogger
from metastrip.core.metadata import apply_preset
from metastrip.core.models import (
    ExportTo, OperationResult, OperationSummary, OutputMode, Overwrite,
    PhotoEntry, ProgressEvent, ProgressSink, StripPreset, Suffix,
)

logger = logging.getLogger(__name__)


def add_suffix(path: str, suffix: str) -> str:
    """Insert suffix before the extension ("a/b.jpg" -> "a/b_clean.jpg").

    Paths without an extension get the suffix appended.
    """
    base, ext = os.path.splitext(path)
    return f"{base}{suffix}{ext}"


class BulkProcessor:
    """Applies one preset to many photos on a thread pool.

    Workers only do per-photo IO. Progress counting, event emission and
    operation logging happen on the calling thread inside the
    as_completed() loop, so callbacks are never invoked concurrently.

    Usage:
        processor = BulkProcessor(max_workers=4)
        results = processor.process(photos, preset, Suffix("_clean"),
                                    on_progress=print, cancel_event=event)
        summary = processor.summarize(len(photos), results)
    """

    def __init__(
        self,
        max_workers: Optional[int] = None,
        logger: Optional[OperationLogger] = None,
        write_embedded: bool = True
    ):
        """Initialize processor.

        Args:
            max_workers: Thread pool size cap. Defaults to the CPU count.
            logger: Optional operation log, one line per processed photo.
            write_embedded: Whether outputs get their embedded EXIF rewritten.
        """
        self.max_workers = max_workers
        self.logger = logger
        self.write_embedded = write_embedded

    def output_path(self, photo: PhotoEntry, mode: OutputMode) -> str:
        """Resolve where the processed copy of photo goes."""
        if isinstance(mode, Overwrite):
            return photo.path
        if isinstance(mode, ExportTo):
            return os.path.join(mode.directory, photo.filename)
        if isinstance(mode, Suffix):
            return add_suffix(photo.path, mode.suffix)
        raise TypeError(f"Unsupported output mode: {mode!r}")

    def _process_one(
        self,
        photo: PhotoEntry,
        preset: StripPreset,
        output: str,
        cancel_event: Optional[threading.Event]
    ) -> Optional[OperationResult]:
        # Cancellation is only observed before an item starts.
        if cancel_event is not None and cancel_event.is_set():
            return None

        try:
            apply_preset(photo.path, preset, output, write_embedded=self.write_embedded)
        except (MetaStripError, OSError) as e:
            return OperationResult.failed(photo.id, output, str(e))
        return OperationResult.succeeded(photo.id, output)

    def process(
        self,
        photos: List[PhotoEntry],
        preset: StripPreset,
        mode: OutputMode,
        on_progress: Optional[ProgressSink] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> List[OperationResult]:
        """Apply preset to every photo.

        Args:
            photos: Photos to process.
            preset: Preset to apply.
            mode: Output policy.
            on_progress: Called once per finished item with a ProgressEvent.
            cancel_event: When set, items that have not started are skipped.

        Returns:
            One result per item that ran, in input order. Skipped items
            have no result.
        """
        if not photos:
            return []

        total = len(photos)
        workers = max(1, min(total, self.max_workers or os.cpu_count() or 1))

        if self.logger:
            self.logger.log(f"Applying preset '{preset.name}' to {total} photos ({workers} workers)")

        indexed: List[Tuple[int, OperationResult]] = []
        completed = 0

        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_item = {
                executor.submit(
                    self._process_one, photo, preset, self.output_path(photo, mode), cancel_event
                ): (index, photo)
                for index, photo in enumerate(photos)
            }

            for future in as_completed(future_to_item):
                index, photo = future_to_item[future]
                try:
                    result = future.result()
                except Exception as e:
                    logger.error(f"Unexpected failure processing {photo.path}: {e}")
                    result = OperationResult.failed(photo.id, self.output_path(photo, mode), str(e))

                if result is None:
                    continue

                completed += 1
                indexed.append((index, result))

                if self.logger:
                    if result.success:
                        self.logger.log(f"Processed: {photo.path} -> {result.output_path}")
                    else:
                        self.logger.log(f"Error: {photo.path}: {result.error}")

                if on_progress:
                    on_progress(ProgressEvent(
                        current=completed,
                        total=total,
                        filename=photo.filename,
                        success=result.success,
                    ))

        indexed.sort(key=lambda item: item[0])
        results = [result for _, result in indexed]

        skipped = total - len(results)
        if skipped:
            logger.info(f"Bulk run cancelled: {skipped} of {total} photos skipped")
        if self.logger:
            self.logger.log(f"Finished: {len(results)} processed, {skipped} skipped")
            self.logger.flush()

        return results

    @staticmethod
    def summarize(expected_total: int, results: List[OperationResult]) -> OperationSummary:
        return OperationSummary.from_results(expected_total, results)
