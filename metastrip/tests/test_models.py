"""Tests for metastrip.core.models module."""

import os

import pytest

from metastrip.core.models import (
    Binary,
    DateTime,
    Float,
    Gps,
    ImageFormat,
    Integer,
    OperationResult,
    OperationSummary,
    PhotoEntry,
    PhotoMetadata,
    PresetRule,
    Rational,
    RemoveAll,
    RemoveAllExcept,
    RemoveCategory,
    RemoveGps,
    RemoveTag,
    SetTag,
    StripPreset,
    Tag,
    TagCategory,
    TagValue,
    Text,
    Unknown,
    category_from_token,
    detect_format,
    display_name_from_key,
    infer_category,
    is_supported,
)


class TestInferCategory:
    """Tests for infer_category() function."""

    def test_gps_is_location(self):
        assert infer_category("Exif.GPSInfo.GPSLatitude") == TagCategory.LOCATION

    def test_datetime_original(self):
        assert infer_category("Exif.Photo.DateTimeOriginal") == TagCategory.DATETIME

    def test_make_is_camera(self):
        assert infer_category("Exif.Image.Make") == TagCategory.CAMERA

    def test_iso_is_capture(self):
        assert infer_category("Exif.Photo.ISOSpeed") == TagCategory.CAPTURE

    def test_orientation_is_image(self):
        assert infer_category("Exif.Image.Orientation") == TagCategory.IMAGE

    def test_caption_is_description(self):
        assert infer_category("Iptc.Application2.Caption") == TagCategory.DESCRIPTION

    def test_software(self):
        assert infer_category("Exif.Image.Software") == TagCategory.SOFTWARE

    def test_fallback_is_other(self):
        assert infer_category("Exif.Unknown.0x9999") == TagCategory.OTHER

    def test_case_insensitive(self):
        assert infer_category("EXIF.IMAGE.MAKE") == TagCategory.CAMERA

    def test_first_group_wins(self):
        # "gps" is checked before "timestamp"
        assert infer_category("Exif.GPSInfo.GPSTimeStamp") == TagCategory.LOCATION


class TestCategoryTokens:
    """Tests for category_from_token() and TagCategory.label."""

    def test_known_tokens(self):
        assert category_from_token("camera") == TagCategory.CAMERA
        assert category_from_token("Date") == TagCategory.DATETIME
        assert category_from_token(" date/time ") == TagCategory.DATETIME
        assert category_from_token("other") == TagCategory.OTHER

    def test_unknown_token(self):
        assert category_from_token("Exif.Image.Make") is None

    def test_datetime_label(self):
        assert TagCategory.DATETIME.label == "Date/Time"
        assert TagCategory.CAMERA.label == "Camera"


class TestDisplayNameFromKey:
    """Tests for display_name_from_key() function."""

    def test_camel_case(self):
        assert display_name_from_key("Exif.Photo.DateTimeOriginal") == "Date Time Original"

    def test_underscores_and_dashes(self):
        assert display_name_from_key("Xmp.custom.my_field-name") == "My Field Name"

    def test_no_dots(self):
        assert display_name_from_key("Make") == "Make"

    def test_capitalizes_first_letter(self):
        assert display_name_from_key("Xmp.dc.title") == "Title"


class TestTagValue:
    """Tests for the TagValue kinds."""

    def test_display_strings(self):
        assert str(Text("hello")) == "hello"
        assert str(Integer(6)) == "6"
        assert str(Rational(28, 10)) == "28/10"
        assert str(DateTime("2024:01:02 03:04:05")) == "2024:01:02 03:04:05"
        assert str(Binary(b"\x00\x01\x02")) == "<3 bytes>"
        assert str(Unknown("?")) == "?"

    def test_gps_display(self):
        assert str(Gps(40.7128, -74.006)) == "40.712800, -74.006000"
        assert str(Gps(1.5, 2.5, -3.25)) == "1.500000, 2.500000 @ -3.25m"

    @pytest.mark.parametrize("value", [
        Text("a"),
        Integer(42),
        Float(1.25),
        Rational(1, 250),
        DateTime("2024:01:02 03:04:05"),
        Gps(-33.8688, 151.2093, 58.0),
        Gps(10.0, 20.0),
        Binary(b"\xff\x00"),
        Unknown("raw"),
    ])
    def test_json_round_trip(self, value):
        assert TagValue.from_json(value.to_json()) == value

    def test_json_form_is_externally_tagged(self):
        assert Text("x").to_json() == {"Text": "x"}
        assert Rational(1, 2).to_json() == {"Rational": [1, 2]}
        assert Binary(b"\x01\x02").to_json() == {"Binary": [1, 2]}

    def test_unknown_kind_raises(self):
        with pytest.raises(ValueError):
            TagValue.from_json({"Color": "red"})

    def test_non_object_raises(self):
        with pytest.raises(ValueError):
            TagValue.from_json("Text")

    def test_bad_payload_raises(self):
        with pytest.raises(ValueError):
            TagValue.from_json({"Rational": [1]})

    def test_gps_range_checked(self):
        with pytest.raises(ValueError):
            Gps(90.5, 0.0)
        with pytest.raises(ValueError):
            Gps(0.0, -180.1)

    def test_gps_bounds_inclusive(self):
        Gps(-90.0, 180.0)
        Gps(90.0, -180.0)


class TestTag:
    """Tests for Tag dataclass."""

    def test_create_derives_display_and_category(self):
        tag = Tag.create("Exif.Photo.LensModel", Text("RF 24-70"))

        assert tag.display_name == "Lens Model"
        assert tag.category == TagCategory.CAMERA
        assert tag.editable is True
        assert tag.marked_for_removal is False

    def test_create_keeps_explicit_values(self):
        tag = Tag.create("Custom.Key", Text("v"), display_name="Mine", category=TagCategory.DESCRIPTION)

        assert tag.display_name == "Mine"
        assert tag.category == TagCategory.DESCRIPTION

    def test_matches_key_ignores_case(self):
        tag = Tag.create("Exif.Image.Make", Text("Canon"))
        assert tag.matches_key("exif.image.make")
        assert not tag.matches_key("Exif.Image.Model")

    def test_json_round_trip(self):
        tag = Tag.create("Exif.Image.Artist", Text("Jane"))
        tag.marked_for_removal = True

        assert Tag.from_json(tag.to_json()) == tag


class TestPhotoMetadata:
    """Tests for PhotoMetadata."""

    def test_summary_fields(self, sample_metadata):
        assert sample_metadata.has_gps is True
        assert sample_metadata.date_taken == "2023:06:01 12:30:00"
        assert sample_metadata.camera_make == "Canon"
        assert sample_metadata.camera_model == "EOS R5"

    def test_summary_fields_reset(self, sample_metadata):
        sample_metadata.exif_tags = []
        sample_metadata.update_summary_fields()

        assert sample_metadata.has_gps is False
        assert sample_metadata.date_taken is None
        assert sample_metadata.camera_make is None

    def test_all_tags_order(self, sample_metadata):
        keys = [t.key for t in sample_metadata.all_tags()]
        assert keys[-1] == "Iptc.Application2.Caption"
        assert sample_metadata.total_tag_count() == 6

    def test_find_tag(self, sample_metadata):
        assert sample_metadata.find_tag("exif.image.model").value == Text("EOS R5")
        assert sample_metadata.find_tag("Missing.Key") is None

    def test_set_tag_updates_existing(self, sample_metadata):
        sample_metadata.find_tag("Exif.Image.Make").marked_for_removal = True

        sample_metadata.set_tag("Exif.Image.Make", Text("Nikon"))

        tag = sample_metadata.find_tag("Exif.Image.Make")
        assert tag.value == Text("Nikon")
        assert tag.marked_for_removal is False
        assert sample_metadata.camera_make == "Nikon"
        assert sample_metadata.total_tag_count() == 6

    def test_set_tag_appends_to_exif(self):
        metadata = PhotoMetadata()
        metadata.set_tag("Exif.Image.Artist", Text("Jane"))

        assert len(metadata.exif_tags) == 1
        assert metadata.exif_tags[0].category == TagCategory.DESCRIPTION

    def test_retain_counts_dropped(self, sample_metadata):
        dropped = sample_metadata.retain(lambda t: t.category == TagCategory.CAMERA)

        assert dropped == 4
        assert sample_metadata.total_tag_count() == 2

    def test_clear(self, sample_metadata):
        sample_metadata.clear()

        assert sample_metadata.total_tag_count() == 0
        assert sample_metadata.has_gps is False
        assert sample_metadata.camera_model is None

    def test_copy_is_independent(self, sample_metadata):
        clone = sample_metadata.copy()
        clone.exif_tags[0].value = Text("Sony")

        assert clone != sample_metadata
        assert sample_metadata.exif_tags[0].value == Text("Canon")

    def test_json_round_trip(self, sample_metadata):
        assert PhotoMetadata.from_json(sample_metadata.to_json()) == sample_metadata

    def test_from_json_rejects_non_object(self):
        with pytest.raises(ValueError):
            PhotoMetadata.from_json([1, 2, 3])

    def test_from_json_rejects_missing_key(self):
        with pytest.raises(ValueError):
            PhotoMetadata.from_json({"exif_tags": [{"value": {"Text": "x"}}]})


class TestPresetModels:
    """Tests for PresetRule and StripPreset serialization."""

    @pytest.mark.parametrize("rule", [
        RemoveAll(),
        RemoveGps(),
        RemoveCategory(TagCategory.SOFTWARE),
        RemoveTag("Exif.Image.Make"),
        RemoveAllExcept(("Exif.Image.Orientation", "camera")),
        SetTag("Exif.Image.Copyright", "(c) Jane"),
    ])
    def test_rule_round_trip(self, rule):
        assert PresetRule.from_json(rule.to_json()) == rule

    def test_simple_rule_is_plain_string(self):
        assert RemoveAll().to_json() == "RemoveAll"

    def test_unknown_rule_raises(self):
        with pytest.raises(ValueError):
            PresetRule.from_json("RemoveEverything")
        with pytest.raises(ValueError):
            PresetRule.from_json({"Explode": 1})

    def test_with_user_value(self):
        preset = StripPreset(1, "Stamp", "", "", [RemoveAll(), SetTag("Exif.Image.Copyright", "(c) {user_value}")])

        filled = preset.with_user_value("Jane")

        assert filled.rules[1] == SetTag("Exif.Image.Copyright", "(c) Jane")
        assert preset.rules[1].value == "(c) {user_value}"

    def test_preset_round_trip(self):
        preset = StripPreset(7, "Mine", "desc", "star", [RemoveGps(), RemoveTag("X.Y")])
        assert StripPreset.from_json(preset.to_json()) == preset


class TestFormats:
    """Tests for format detection."""

    def test_detect_format(self):
        assert detect_format("a/IMG_1.JPG") == ImageFormat.JPEG
        assert detect_format("b.heic") == ImageFormat.HEIF
        assert detect_format("c.webp") == ImageFormat.WEBP
        assert detect_format("d.txt") == ImageFormat.UNKNOWN
        assert detect_format("noext") == ImageFormat.UNKNOWN

    def test_is_supported(self):
        assert is_supported("x.tiff")
        assert not is_supported("x.mp4")


class TestPhotoEntry:
    """Tests for PhotoEntry."""

    def test_from_path(self, temp_dir):
        path = os.path.join(temp_dir, "shot.png")
        with open(path, "wb") as f:
            f.write(b"12345")

        entry = PhotoEntry.from_path(3, path)

        assert entry.id == 3
        assert entry.filename == "shot.png"
        assert entry.file_size == 5
        assert entry.format == ImageFormat.PNG
        assert entry.dirty is False

    def test_missing_file_has_zero_size(self, temp_dir):
        entry = PhotoEntry.from_path(1, os.path.join(temp_dir, "gone.jpg"))
        assert entry.file_size == 0

    def test_recompute_dirty(self, sample_metadata):
        entry = PhotoEntry(1, "/x.jpg", "x.jpg", 0, ImageFormat.JPEG)
        entry.set_loaded_metadata(sample_metadata)
        assert entry.dirty is False

        entry.metadata.set_tag("Exif.Image.Make", Text("Sony"))
        entry.recompute_dirty()
        assert entry.dirty is True

        entry.metadata.set_tag("Exif.Image.Make", Text("Canon"))
        entry.recompute_dirty()
        assert entry.dirty is False


class TestOperationSummary:
    """Tests for OperationSummary.from_results()."""

    def test_counts(self):
        results = [
            OperationResult.succeeded(1, "a"),
            OperationResult.failed(2, "b", "boom"),
            OperationResult.succeeded(3, "c"),
        ]

        summary = OperationSummary.from_results(5, results)

        assert summary.total == 5
        assert summary.succeeded == 2
        assert summary.failed == 1
        assert summary.cancelled == 2
