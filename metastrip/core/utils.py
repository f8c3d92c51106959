"""File and path helpers shared by the metadata store and the collection."""

import os
import tempfile
from typing import Any

import orjson


def normalize_path(path: str) -> str:
    """Normalize a user-supplied path (whitespace, ~, separators)."""
    return os.path.normpath(os.path.expanduser(path.strip()))


def get_unique_path(path: str) -> str:
    """Reserve and return a file path that did not exist before.

    The path is claimed with O_CREAT | O_EXCL, so concurrent callers never
    receive the same path. On collision a "(n)" counter is inserted before
    the extension. The reserved placeholder is empty and meant to be
    overwritten by the caller.

    Examples:
        >>> get_unique_path("/out/photo_export.jpg")  # free
        '/out/photo_export.jpg'
        >>> get_unique_path("/out/photo_export.jpg")  # taken
        '/out/photo_export(1).jpg'
    """
    base, ext = os.path.splitext(path)
    candidate = path
    n = 0
    while True:
        try:
            fd = os.open(candidate, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            os.close(fd)
            return candidate
        except FileExistsError:
            n += 1
            candidate = f"{base}({n}){ext}"


def atomic_write_json(path: str, data: Any) -> None:
    """Serialize data with orjson and atomically replace path.

    The payload goes to a temporary file in the target directory which then
    replaces the target via os.replace(), so readers never observe a
    half-written file.

    Raises:
        OSError: On filesystem failure.
        orjson.JSONEncodeError: If data is not serializable.
    """
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)

    payload = orjson.dumps(data, option=orjson.OPT_INDENT_2)

    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp", prefix=".metastrip_")
    try:
        with open(fd, "wb") as f:
            f.write(payload)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def read_json(path: str) -> Any:
    """Read and decode a JSON file with orjson.

    Raises:
        OSError: If the file cannot be read.
        orjson.JSONDecodeError: If the content is not valid JSON.
    """
    with open(path, "rb") as f:
        return orjson.loads(f.read())
