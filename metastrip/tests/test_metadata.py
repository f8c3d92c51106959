"""Tests for metastrip.core.metadata module."""

import os
from unittest.mock import patch

import orjson
import pytest

from metastrip.core.codec import GPS_KEY
from metastrip.core.errors import (
    InvalidTagKeyError,
    PhotoNotFoundError,
    SerializationError,
)
from metastrip.core.metadata import (
    EXPORT_SUFFIX,
    apply_preset,
    default_metadata_for_path,
    export_photo,
    mark_tag,
    read_metadata,
    remove_marked_tags,
    remove_sidecar,
    remove_tags_by_key,
    set_tag,
    sidecar_path,
    write_metadata,
)
from metastrip.core.models import (
    Binary, DateTime, Float, Gps, Integer, PhotoMetadata, Rational, StripPreset,
    Tag, TagCategory, Text, Unknown, RemoveAll, RemoveGps,
)


@pytest.fixture
def photo(temp_dir, jpeg_bytes):
    path = os.path.join(temp_dir, "photo.jpg")
    with open(path, "wb") as f:
        f.write(jpeg_bytes)
    return path


class TestSidecarPath:
    """Tests for sidecar_path() function."""

    def test_appends_suffix_to_full_filename(self):
        assert sidecar_path(os.path.join("a", "b.jpg")) == os.path.join("a", "b.jpg.metastrip.json")


class TestReadMetadata:
    """Tests for read_metadata() function."""

    def test_missing_file_raises(self, temp_dir):
        with pytest.raises(PhotoNotFoundError) as exc_info:
            read_metadata(os.path.join(temp_dir, "nope.jpg"))
        assert "file not found" in str(exc_info.value)

    def test_defaults_without_exif(self, photo, jpeg_bytes):
        metadata = read_metadata(photo)

        assert metadata.find_tag("MetaStrip.FileName").value == Text("photo.jpg")
        assert metadata.find_tag("MetaStrip.FileSize").value == Integer(len(jpeg_bytes))
        assert isinstance(metadata.find_tag("Exif.Photo.DateTimeOriginal").value, DateTime)
        assert metadata.date_taken is not None
        assert metadata.has_gps is False

    def test_defaults_for_unreadable_image(self, temp_dir):
        path = os.path.join(temp_dir, "broken.jpg")
        with open(path, "wb") as f:
            f.write(b"12345")

        metadata = read_metadata(path)

        assert metadata.find_tag("MetaStrip.FileSize").value == Integer(5)

    def test_embedded_exif_used_without_sidecar(self, photo):
        write_metadata(photo, PhotoMetadata(exif_tags=[Tag.create("Exif.Image.Make", Text("Canon"))]))
        remove_sidecar(photo)

        metadata = read_metadata(photo)

        assert [t.key for t in metadata.all_tags()] == ["Exif.Image.Make"]
        assert metadata.camera_make == "Canon"

    def test_sidecar_is_authoritative(self, photo):
        with open(sidecar_path(photo), "wb") as f:
            f.write(orjson.dumps(PhotoMetadata(
                iptc_tags=[Tag.create("Iptc.Application2.Caption", Text("from sidecar"))]
            ).to_json()))

        metadata = read_metadata(photo)

        assert metadata.total_tag_count() == 1
        assert str(metadata.find_tag("Iptc.Application2.Caption").value) == "from sidecar"

    def test_summary_fields_recomputed_from_sidecar(self, photo):
        data = PhotoMetadata(exif_tags=[Tag.create("Exif.Image.Make", Text("Leica"))]).to_json()
        data["camera_make"] = "stale"
        with open(sidecar_path(photo), "wb") as f:
            f.write(orjson.dumps(data))

        assert read_metadata(photo).camera_make == "Leica"

    def test_invalid_sidecar_json(self, photo):
        with open(sidecar_path(photo), "w") as f:
            f.write("{not json")

        with pytest.raises(SerializationError):
            read_metadata(photo)

    def test_invalid_sidecar_structure(self, photo):
        with open(sidecar_path(photo), "w") as f:
            f.write('{"exif_tags": [{"key": "A", "value": {"Color": 1}, "category": "Other"}]}')

        with pytest.raises(SerializationError):
            read_metadata(photo)

    @pytest.mark.parametrize("tag", [
        {"key": 5, "value": {"Text": "x"}, "category": "Camera"},
        {"key": None, "value": {"Text": "x"}, "category": "Camera"},
        {"key": "Exif.Image.Make", "display_name": 7, "value": {"Text": "x"}, "category": "Camera"},
    ])
    def test_sidecar_with_non_string_key(self, photo, tag):
        with open(sidecar_path(photo), "wb") as f:
            f.write(orjson.dumps({"exif_tags": [tag]}))

        with pytest.raises(SerializationError):
            read_metadata(photo)


class TestDefaultMetadata:
    """Tests for default_metadata_for_path() function."""

    def test_missing_file_only_has_name(self, temp_dir):
        metadata = default_metadata_for_path(os.path.join(temp_dir, "ghost.png"))
        assert [t.key for t in metadata.all_tags()] == ["MetaStrip.FileName"]

    def test_categories(self, photo):
        metadata = default_metadata_for_path(photo)
        categories = {t.key: t.category for t in metadata.all_tags()}

        assert categories["MetaStrip.FileName"] == TagCategory.IMAGE
        assert categories["MetaStrip.FileSize"] == TagCategory.IMAGE
        assert categories["Exif.Photo.DateTimeOriginal"] == TagCategory.DATETIME


class TestWriteMetadata:
    """Tests for write_metadata() function."""

    def test_sidecar_round_trip_is_lossless(self, photo, sample_metadata):
        sample_metadata.exif_tags.extend([
            Tag.create("Exif.Image.Orientation", Integer(6)),
            Tag.create("Exif.Photo.SubjectDistance", Float(2.5)),
            Tag.create("Exif.Photo.FNumber", Rational(28, 10)),
            Tag.create("Exif.Photo.MakerNote", Binary(b"\x00\xff")),
            Tag.create("Exif.Unknown.0x1234", Unknown("?")),
        ])
        sample_metadata.exif_tags[0].marked_for_removal = True
        sample_metadata.update_summary_fields()

        write_metadata(photo, sample_metadata)

        assert read_metadata(photo) == sample_metadata

    def test_missing_photo_raises(self, temp_dir):
        with pytest.raises(PhotoNotFoundError):
            write_metadata(os.path.join(temp_dir, "gone.jpg"), PhotoMetadata())

    def test_embedded_write_skipped(self, photo, sample_metadata):
        with patch("metastrip.core.metadata.codec.write_embedded") as mock_write:
            write_metadata(photo, sample_metadata, write_embedded=False)

        mock_write.assert_not_called()
        assert os.path.exists(sidecar_path(photo))

    def test_embedded_failure_ignored(self, photo, sample_metadata):
        with patch("metastrip.core.metadata.codec.write_embedded", return_value=False):
            write_metadata(photo, sample_metadata)

        assert read_metadata(photo) == sample_metadata

    def test_no_temp_files_left(self, photo, sample_metadata):
        write_metadata(photo, sample_metadata)

        leftovers = [n for n in os.listdir(os.path.dirname(photo)) if n.startswith(".metastrip_")]
        assert leftovers == []

    @pytest.mark.parametrize("value", [Float(float("inf")), Float(float("nan")), Gps(1.0, 2.0, float("-inf"))])
    def test_non_finite_numbers_rejected(self, photo, value):
        metadata = PhotoMetadata(exif_tags=[Tag.create("Exif.Photo.Custom", value)])

        with patch("metastrip.core.metadata.codec.write_embedded") as mock_embed:
            with pytest.raises(SerializationError):
                write_metadata(photo, metadata)

        mock_embed.assert_not_called()
        assert not os.path.exists(sidecar_path(photo))


class TestRemoveSidecar:
    """Tests for remove_sidecar() function."""

    def test_remove(self, photo):
        write_metadata(photo, PhotoMetadata(), write_embedded=False)

        assert remove_sidecar(photo) is True
        assert not os.path.exists(sidecar_path(photo))

    def test_nothing_to_remove(self, photo):
        assert remove_sidecar(photo) is False


class TestSetTag:
    """Tests for set_tag() function."""

    def test_sets_and_persists(self, photo):
        set_tag(photo, "Exif.Image.Artist", Text("Jane"))

        assert str(read_metadata(photo).find_tag("Exif.Image.Artist").value) == "Jane"

    def test_updates_existing_ignoring_case(self, photo):
        set_tag(photo, "Exif.Image.Artist", Text("Jane"))
        set_tag(photo, "exif.image.artist", Text("John"))

        metadata = read_metadata(photo)
        artists = [t for t in metadata.all_tags() if t.matches_key("Exif.Image.Artist")]
        assert len(artists) == 1
        assert artists[0].value == Text("John")

    def test_blank_key_raises(self, photo):
        with pytest.raises(InvalidTagKeyError):
            set_tag(photo, "   ", Text("x"))
        assert not os.path.exists(sidecar_path(photo))

    def test_missing_photo_raises(self, temp_dir):
        with pytest.raises(PhotoNotFoundError):
            set_tag(os.path.join(temp_dir, "gone.jpg"), "Exif.Image.Artist", Text("x"))


class TestTagHelpers:
    """Tests for remove_tags_by_key(), mark_tag() and remove_marked_tags()."""

    def test_remove_tags_by_key(self, sample_metadata):
        removed = remove_tags_by_key(sample_metadata, ["exif.image.make", GPS_KEY, "Nope"])

        assert removed == 2
        assert sample_metadata.camera_make is None
        assert sample_metadata.has_gps is False

    def test_mark_and_strip(self, sample_metadata):
        assert mark_tag(sample_metadata, "Exif.Image.Software", True) is True
        assert mark_tag(sample_metadata, "Iptc.Application2.Caption", True) is True
        assert mark_tag(sample_metadata, "Missing", True) is False

        assert remove_marked_tags(sample_metadata) == 2
        assert sample_metadata.total_tag_count() == 4

    def test_unmark(self, sample_metadata):
        mark_tag(sample_metadata, "Exif.Image.Software", True)
        mark_tag(sample_metadata, "Exif.Image.Software", False)

        assert remove_marked_tags(sample_metadata) == 0


class TestApplyPreset:
    """Tests for apply_preset() function."""

    def test_in_place(self, photo, sample_metadata):
        write_metadata(photo, sample_metadata)
        preset = StripPreset(1, "GPS", "", "", [RemoveGps()])

        result = apply_preset(photo, preset, photo)

        assert result.has_gps is False
        assert read_metadata(photo) == result

    def test_copy_leaves_source_untouched(self, photo, sample_metadata, temp_dir):
        write_metadata(photo, sample_metadata)
        output = os.path.join(temp_dir, "out", "photo_clean.jpg")

        apply_preset(photo, StripPreset(1, "All", "", "", [RemoveAll()]), output)

        assert os.path.exists(output)
        assert read_metadata(output).total_tag_count() == 0
        assert read_metadata(photo) == sample_metadata

    def test_missing_source_raises(self, temp_dir):
        with pytest.raises(PhotoNotFoundError):
            apply_preset(os.path.join(temp_dir, "gone.jpg"), StripPreset(1, "All", "", "", [RemoveAll()]),
                         os.path.join(temp_dir, "out.jpg"))


class TestExportPhoto:
    """Tests for export_photo() function."""

    def test_export_naming(self, photo, sample_metadata, temp_dir):
        export_dir = os.path.join(temp_dir, "exports")

        destination = export_photo(photo, sample_metadata, export_dir)

        assert destination == os.path.join(export_dir, f"photo{EXPORT_SUFFIX}.jpg")
        assert read_metadata(destination) == sample_metadata

    def test_collision_adds_counter(self, photo, sample_metadata, temp_dir):
        export_dir = os.path.join(temp_dir, "exports")

        first = export_photo(photo, sample_metadata, export_dir)
        second = export_photo(photo, sample_metadata, export_dir)

        assert first != second
        assert second == os.path.join(export_dir, "photo_export(1).jpg")

    def test_custom_suffix(self, photo, temp_dir):
        destination = export_photo(photo, PhotoMetadata(), temp_dir, suffix="_web")
        assert os.path.basename(destination) == "photo_web.jpg"

    def test_missing_photo_raises(self, temp_dir):
        with pytest.raises(PhotoNotFoundError):
            export_photo(os.path.join(temp_dir, "gone.jpg"), PhotoMetadata(), temp_dir)


class TestGpsSidecar:
    """Sidecar keeps GPS at full precision."""

    def test_precision(self, photo):
        metadata = PhotoMetadata(exif_tags=[Tag.create(GPS_KEY, Gps(12.3456789, -98.7654321, 1.23))])
        metadata.update_summary_fields()

        write_metadata(photo, metadata, write_embedded=False)

        assert read_metadata(photo).exif_tags[0].value == Gps(12.3456789, -98.7654321, 1.23)
