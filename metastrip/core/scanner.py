"""Directory scanning for importable photos."""

import logging
import os
from typing import Iterator, List, Tuple

from metastrip.core.models import is_supported

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".metastrip.json"


def _fast_walk(path: str, recursive: bool = True) -> Iterator[Tuple[str, List[str], List[str]]]:
    """Walk a directory tree with os.scandir.

    Symlinked directories are reported as files and never descended into.
    Entries or directories that cannot be accessed are logged and skipped.

    Yields:
        Tuples of (dirpath, dirnames, filenames) like os.walk().
    """
    try:
        with os.scandir(path) as entries:
            dirs = []
            files = []
            for entry in entries:
                try:
                    if entry.is_dir(follow_symlinks=False):
                        dirs.append(entry.name)
                    else:
                        files.append(entry.name)
                except OSError as e:
                    logger.debug(f"Cannot access entry {entry.path}: {e}")
                    continue
    except OSError as e:
        logger.debug(f"Cannot access directory {path}: {e}")
        return

    yield path, dirs, files
    if recursive:
        for d in dirs:
            yield from _fast_walk(os.path.join(path, d), recursive)


def scan_directory(path: str, recursive: bool = True) -> List[str]:
    """Find supported images under a directory.

    Args:
        path: Directory to scan.
        recursive: Descend into subdirectories.

    Returns:
        Sorted list of image paths. Sidecar files are never included.
    """
    found = []
    for dirpath, _, filenames in _fast_walk(path, recursive):
        for filename in filenames:
            if filename.lower().endswith(SIDECAR_SUFFIX):
                continue
            if is_supported(filename):
                found.append(os.path.join(dirpath, filename))

    found.sort()
    logger.debug(f"Scanned {path}: {len(found)} supported images")
    return found
