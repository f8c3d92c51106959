"""Pytest configuration and fixtures."""

import os
import tempfile
import shutil
from typing import Generator, List

import pytest

from metastrip.core.models import (
    DateTime, Gps, PhotoMetadata, Tag, TagCategory, Text,
)


# Smallest byte stream piexif accepts as a JPEG: SOI, a JFIF APP0 segment,
# a one-component SOS header, one byte of scan data and EOI.
MINIMAL_JPEG = (
    b"\xff\xd8"
    b"\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    b"\xff\xda\x00\x08\x01\x01\x00\x00\x3f\x00"
    b"\x00"
    b"\xff\xd9"
)


@pytest.fixture
def temp_dir() -> Generator[str, None, None]:
    """Create a temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    yield tmpdir
    shutil.rmtree(tmpdir)


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A structurally valid JPEG without any EXIF."""
    return MINIMAL_JPEG


@pytest.fixture
def sample_photos(temp_dir: str, jpeg_bytes: bytes) -> List[str]:
    """Create three real JPEG files.

    Structure:
        temp_dir/
        ├── beach.jpg
        ├── city.jpg
        └── forest.jpg
    """
    paths = []
    for name in ("beach.jpg", "city.jpg", "forest.jpg"):
        path = os.path.join(temp_dir, name)
        with open(path, "wb") as f:
            f.write(jpeg_bytes)
        paths.append(path)
    return paths


@pytest.fixture
def sample_metadata() -> PhotoMetadata:
    """Metadata with camera, GPS, date, software and an IPTC caption."""
    metadata = PhotoMetadata(
        exif_tags=[
            Tag.create("Exif.Image.Make", Text("Canon"), display_name="Make"),
            Tag.create("Exif.Image.Model", Text("EOS R5"), display_name="Model"),
            Tag.create("Exif.Image.Software", Text("Lightroom"), display_name="Software"),
            Tag.create("Exif.Photo.DateTimeOriginal", DateTime("2023:06:01 12:30:00"),
                       display_name="Date Taken"),
            Tag(
                key="Exif.GPSInfo.GPSCoordinates",
                display_name="GPS Coordinates",
                value=Gps(40.7128, -74.006, 10.5),
                category=TagCategory.LOCATION,
            ),
        ],
        iptc_tags=[
            Tag.create("Iptc.Application2.Caption", Text("Summer trip")),
        ],
    )
    metadata.update_summary_fields()
    return metadata
