"""Operation log files for MetaStrip bulk runs."""

import os
import time
from typing import List, Optional, TextIO, Union

from metastrip.core.models import OperationResult, OperationSummary


class BufferedLogger:
    """Append-only, timestamped operation log.

    The file is opened on the first message, so a run that never logs
    leaves nothing behind.

    Usage:
        with BufferedLogger("/path/to/logs") as oplog:
            oplog.log("Stripping 12 photos with preset 'Privacy Clean'")
    """

    def __init__(self, output_dir: str, filename: str = "metastrip_log.txt"):
        """Initialize logger.

        Args:
            output_dir: Directory to write the log file into.
            filename: Name of the log file.
        """
        self.output_dir = output_dir
        self.filename = filename
        self.filepath = os.path.join(output_dir, filename)
        self._handle: Optional[TextIO] = None

    def _open(self) -> None:
        if self._handle is None:
            os.makedirs(self.output_dir, exist_ok=True)
            self._handle = open(self.filepath, "a", encoding="utf-8")

    def log(self, message: str) -> None:
        """Write one timestamped line."""
        self._open()
        timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
        self._handle.write(f"{timestamp} - {message}\n")

    def flush(self) -> None:
        if self._handle:
            self._handle.flush()

    def close(self) -> None:
        if self._handle:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> "BufferedLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        """True once the log file has been opened."""
        return self._handle is not None


class NullLogger:
    """Drop-in logger used when the operation log is disabled."""

    def log(self, message: str) -> None:
        pass

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass

    def __enter__(self) -> "NullLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        pass

    @property
    def is_open(self) -> bool:
        return True


OperationLogger = Union[BufferedLogger, NullLogger]


def create_logger(output_dir: str, enabled: bool = True) -> OperationLogger:
    """Create an operation logger.

    Args:
        output_dir: Directory for the log file.
        enabled: If False, returns a NullLogger.

    Returns:
        Logger instance.
    """
    if enabled:
        return BufferedLogger(output_dir)
    return NullLogger()


def format_duration(elapsed: float) -> str:
    """Format seconds as "1m 5s" or "4.2s"."""
    if elapsed >= 60:
        minutes = int(elapsed // 60)
        seconds = int(elapsed % 60)
        return f"{minutes}m {seconds}s"
    return f"{elapsed:.1f}s"


def write_summary(
    output_dir: str,
    preset_name: str,
    summary: OperationSummary,
    results: List[OperationResult],
    elapsed: float,
    filename: str = "summary.txt"
) -> str:
    """Write a concise report of a bulk run.

    Args:
        output_dir: Directory to write the report into (created if needed).
        preset_name: Name of the preset that was applied.
        summary: Counts for the run.
        results: Per-item results, in input order.
        elapsed: Wall-clock duration in seconds.
        filename: Report file name.

    Returns:
        Path to the report.
    """
    os.makedirs(output_dir, exist_ok=True)
    filepath = os.path.join(output_dir, filename)

    with open(filepath, "w", encoding="utf-8") as f:
        f.write("MetaStrip - Bulk Summary\n")
        f.write("=" * 40 + "\n\n")
        f.write(f"Preset:    {preset_name}\n")
        f.write(f"Finished:  {time.strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"Duration:  {format_duration(elapsed)}\n\n")

        f.write(f"Total:     {summary.total:,}\n")
        f.write(f"Succeeded: {summary.succeeded:,}\n")
        f.write(f"Failed:    {summary.failed:,}\n")
        if summary.cancelled:
            f.write(f"Cancelled: {summary.cancelled:,}\n")

        failures = [r for r in results if not r.success]
        if failures:
            f.write("\nFailures:\n\n")
            for result in failures:
                f.write(f"    {result.output_path} | {result.error}\n")

    return filepath
