"""ExifTool management for MetaStrip.

piexif only understands EXIF inside JPEG, WebP and TIFF files. For other
containers (PNG, HEIC/HEIF, AVIF, JXL) the raw EXIF block is moved in and
out through ExifTool, and piexif does the decoding.
"""

import logging
import os
import shutil
import sys
import tempfile
from typing import Optional

logger = logging.getLogger(__name__)

EXIFTOOL_DIR = os.path.join("tools", "exiftool")
EXIFTOOL_EXE = "exiftool.exe" if sys.platform == "win32" else "exiftool"


def _default_base_dir() -> str:
    # metastrip/core/ -> project root
    return os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def get_exiftool_path(base_dir: Optional[str] = None) -> Optional[str]:
    """Find the ExifTool executable.

    Checks the system PATH first, then ``tools/exiftool`` under base_dir.

    Args:
        base_dir: Base directory for the local tools folder.
                 Defaults to the project root.

    Returns:
        Path to the executable, or None if not found.
    """
    if shutil.which("exiftool"):
        return "exiftool"

    if base_dir is None:
        base_dir = _default_base_dir()

    local_path = os.path.join(base_dir, EXIFTOOL_DIR, EXIFTOOL_EXE)
    if os.path.exists(local_path):
        return local_path

    logger.debug("ExifTool not found; install it from https://exiftool.org/")
    return None


def is_exiftool_available(base_dir: Optional[str] = None) -> bool:
    """Check whether an ExifTool executable can be found."""
    return get_exiftool_path(base_dir) is not None


class ExifToolManager:
    """Manages one ExifTool process for raw EXIF block transfers.

    Usage:
        with ExifToolManager() as et:
            block = et.read_exif_block("/photos/IMG_0001.heic")

    Every method degrades to a falsy return when the process could not be
    started.
    """

    def __init__(self, base_dir: Optional[str] = None):
        self._helper = None
        self._exiftool_path = None
        self._base_dir = base_dir

    def start(self) -> bool:
        """Start the ExifTool process.

        Returns:
            True if started successfully, False otherwise.
        """
        try:
            import exiftool
        except ImportError:
            logger.warning("pyexiftool not installed. Run: pip install pyexiftool")
            return False

        self._exiftool_path = get_exiftool_path(self._base_dir)
        if not self._exiftool_path:
            return False

        try:
            self._helper = exiftool.ExifToolHelper(executable=self._exiftool_path)
            self._helper.run()
            return True
        except Exception as e:
            logger.error(f"Failed to start ExifTool: {e}")
            self._helper = None
            return False

    def stop(self) -> None:
        """Stop the ExifTool process."""
        if self._helper:
            try:
                self._helper.terminate()
            except Exception as e:
                logger.debug(f"Error stopping ExifTool: {e}")
            self._helper = None

    def read_exif_block(self, filepath: str) -> Optional[bytes]:
        """Extract the raw EXIF (TIFF) block of a file.

        Returns:
            The block bytes, or None when the file has none or on error.
        """
        if not self._helper:
            return None

        try:
            data = self._helper.execute("-b", "-EXIF", filepath, raw_bytes=True)
        except Exception as e:
            logger.debug(f"Failed to read EXIF block from {filepath}: {e}")
            return None

        return data or None

    def write_exif_block(self, filepath: str, block: bytes) -> bool:
        """Replace the EXIF block of a file in place.

        Args:
            filepath: Target file.
            block: Raw EXIF (TIFF) data without the "Exif\\0\\0" header.

        Returns:
            True if ExifTool reported success.
        """
        if not self._helper or not block:
            return False

        fd, tmp_path = tempfile.mkstemp(suffix=".exif", prefix=".metastrip_")
        try:
            with open(fd, "wb") as f:
                f.write(block)
            self._helper.execute(f"-EXIF<={tmp_path}", "-overwrite_original", filepath)
            return True
        except Exception as e:
            logger.debug(f"Failed to write EXIF block to {filepath}: {e}")
            return False
        finally:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass

    def delete_exif_block(self, filepath: str) -> bool:
        """Remove the EXIF block from a file in place."""
        if not self._helper:
            return False

        try:
            self._helper.execute("-EXIF=", "-overwrite_original", filepath)
            return True
        except Exception as e:
            logger.debug(f"Failed to delete EXIF block from {filepath}: {e}")
            return False

    @property
    def is_running(self) -> bool:
        return self._helper is not None

    @property
    def exiftool_path(self) -> Optional[str]:
        """Path of the executable used by the running process."""
        return self._exiftool_path

    def __enter__(self) -> "ExifToolManager":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
