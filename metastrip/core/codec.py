"""EXIF codec for MetaStrip.

Converts between piexif's IFD dictionary and Tag entries, and moves that
dictionary in and out of image files. JPEG, WebP and TIFF are handled by
piexif directly; other containers go through ExifTool for the raw block.

Decoding surfaces a fixed set of well-known fields with stable keys, folds
the GPS sub-fields into one coordinate tag and exposes everything else as
``Exif.Unknown.0xXXXX``. Encoding is intentionally lossy: only fields whose
value kind round-trips cleanly are written back.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import piexif

from metastrip.core.exiftool import ExifToolManager
from metastrip.core.models import (
    Binary, DateTime, Float, Gps, Integer, PhotoMetadata, Rational, Tag,
    TagCategory, TagValue, Text, file_extension,
)

logger = logging.getLogger(__name__)

GPS_KEY = "Exif.GPSInfo.GPSCoordinates"
THUMBNAIL_KEY = "Exif.Thumbnail.JPEGData"

DMS_SECONDS_DENOMINATOR = 10000
ALTITUDE_DENOMINATOR = 100

# Formats piexif can load from and insert into directly.
PIEXIF_READ_EXTENSIONS = frozenset({"jpg", "jpeg", "webp", "tif", "tiff"})
PIEXIF_WRITE_EXTENSIONS = frozenset({"jpg", "jpeg", "webp"})
EXIFTOOL_WRITE_EXTENSIONS = frozenset({"png", "heic", "heif"})

# Field kinds, see _DECODERS and _ENCODERS.
TEXT = "text"
DATETIME = "datetime"
INT = "int"
RATIONAL = "rational"
FLOAT = "float"
BINARY = "binary"
VERSION = "version"
LENSINFO = "lensinfo"


@dataclass(frozen=True)
class ExifField:
    """One modeled EXIF record."""
    ifd: str
    tag_id: int
    key: str
    display: str
    kind: str


FIELDS: Tuple[ExifField, ...] = (
    # 0th IFD
    ExifField("0th", 271, "Exif.Image.Make", "Make", TEXT),
    ExifField("0th", 272, "Exif.Image.Model", "Model", TEXT),
    ExifField("0th", 305, "Exif.Image.Software", "Software", TEXT),
    ExifField("0th", 315, "Exif.Image.Artist", "Artist", TEXT),
    ExifField("0th", 33432, "Exif.Image.Copyright", "Copyright", TEXT),
    ExifField("0th", 270, "Exif.Image.ImageDescription", "Image Description", TEXT),
    ExifField("0th", 306, "Exif.Image.ModifyDate", "Modify Date", DATETIME),
    ExifField("0th", 274, "Exif.Image.Orientation", "Orientation", INT),
    ExifField("0th", 259, "Exif.Image.Compression", "Compression", INT),
    ExifField("0th", 296, "Exif.Image.ResolutionUnit", "Resolution Unit", INT),
    ExifField("0th", 256, "Exif.Image.ImageWidth", "Image Width", INT),
    ExifField("0th", 257, "Exif.Image.ImageHeight", "Image Height", INT),
    ExifField("0th", 282, "Exif.Image.XResolution", "X Resolution", RATIONAL),
    ExifField("0th", 283, "Exif.Image.YResolution", "Y Resolution", RATIONAL),
    # Exif IFD: camera body and lens
    ExifField("Exif", 42035, "Exif.Photo.LensMake", "Lens Make", TEXT),
    ExifField("Exif", 42036, "Exif.Photo.LensModel", "Lens Model", TEXT),
    ExifField("Exif", 42037, "Exif.Photo.LensSerialNumber", "Lens Serial Number", TEXT),
    ExifField("Exif", 42032, "Exif.Photo.OwnerName", "Owner Name", TEXT),
    ExifField("Exif", 42033, "Exif.Photo.SerialNumber", "Serial Number", TEXT),
    ExifField("Exif", 42034, "Exif.Photo.LensInfo", "Lens Info", LENSINFO),
    # Exif IFD: dates
    ExifField("Exif", 36867, "Exif.Photo.DateTimeOriginal", "Date Taken", DATETIME),
    ExifField("Exif", 36868, "Exif.Photo.CreateDate", "Create Date", DATETIME),
    ExifField("Exif", 36880, "Exif.Photo.OffsetTime", "Offset Time", TEXT),
    ExifField("Exif", 36881, "Exif.Photo.OffsetTimeOriginal", "Offset Time Original", TEXT),
    ExifField("Exif", 36882, "Exif.Photo.OffsetTimeDigitized", "Offset Time Digitized", TEXT),
    ExifField("Exif", 37520, "Exif.Photo.SubSecTime", "Sub Sec Time", TEXT),
    ExifField("Exif", 37521, "Exif.Photo.SubSecTimeOriginal", "Sub Sec Time Original", TEXT),
    ExifField("Exif", 37522, "Exif.Photo.SubSecTimeDigitized", "Sub Sec Time Digitized", TEXT),
    # Exif IFD: capture settings
    ExifField("Exif", 34855, "Exif.Photo.ISO", "ISO", INT),
    ExifField("Exif", 34850, "Exif.Photo.ExposureProgram", "Exposure Program", INT),
    ExifField("Exif", 37383, "Exif.Photo.MeteringMode", "Metering Mode", INT),
    ExifField("Exif", 37385, "Exif.Photo.Flash", "Flash", INT),
    ExifField("Exif", 40961, "Exif.Photo.ColorSpace", "Color Space", INT),
    ExifField("Exif", 41986, "Exif.Photo.ExposureMode", "Exposure Mode", INT),
    ExifField("Exif", 41987, "Exif.Photo.WhiteBalance", "White Balance", INT),
    ExifField("Exif", 41990, "Exif.Photo.SceneCaptureType", "Scene Capture Type", INT),
    ExifField("Exif", 41992, "Exif.Photo.Contrast", "Contrast", INT),
    ExifField("Exif", 41993, "Exif.Photo.Saturation", "Saturation", INT),
    ExifField("Exif", 41994, "Exif.Photo.Sharpness", "Sharpness", INT),
    ExifField("Exif", 37384, "Exif.Photo.LightSource", "Light Source", INT),
    ExifField("Exif", 41989, "Exif.Photo.FocalLengthIn35mmFormat", "Focal Length (35mm)", INT),
    ExifField("Exif", 41495, "Exif.Photo.SensingMethod", "Sensing Method", INT),
    ExifField("Exif", 41985, "Exif.Photo.CustomRendered", "Custom Rendered", INT),
    ExifField("Exif", 41991, "Exif.Photo.GainControl", "Gain Control", INT),
    ExifField("Exif", 41996, "Exif.Photo.SubjectDistanceRange", "Subject Distance Range", INT),
    ExifField("Exif", 40962, "Exif.Photo.PixelXDimension", "Pixel X Dimension", INT),
    ExifField("Exif", 40963, "Exif.Photo.PixelYDimension", "Pixel Y Dimension", INT),
    ExifField("Exif", 33434, "Exif.Photo.ExposureTime", "Exposure Time", RATIONAL),
    ExifField("Exif", 33437, "Exif.Photo.FNumber", "F-Number", RATIONAL),
    ExifField("Exif", 37386, "Exif.Photo.FocalLength", "Focal Length", RATIONAL),
    ExifField("Exif", 37378, "Exif.Photo.ApertureValue", "Aperture Value", RATIONAL),
    ExifField("Exif", 37381, "Exif.Photo.MaxApertureValue", "Max Aperture Value", RATIONAL),
    ExifField("Exif", 41988, "Exif.Photo.DigitalZoomRatio", "Digital Zoom Ratio", RATIONAL),
    ExifField("Exif", 37122, "Exif.Photo.CompressedBitsPerPixel", "Compressed Bits Per Pixel", RATIONAL),
    ExifField("Exif", 37382, "Exif.Photo.SubjectDistance", "Subject Distance", FLOAT),
    ExifField("Exif", 37377, "Exif.Photo.ShutterSpeedValue", "Shutter Speed Value", FLOAT),
    ExifField("Exif", 37379, "Exif.Photo.BrightnessValue", "Brightness Value", FLOAT),
    ExifField("Exif", 37380, "Exif.Photo.ExposureCompensation", "Exposure Compensation", FLOAT),
    # Exif IFD: undefined-typed records
    ExifField("Exif", 37500, "Exif.Photo.MakerNote", "Maker Note", BINARY),
    ExifField("Exif", 37121, "Exif.Photo.ComponentsConfiguration", "Components Configuration", BINARY),
    ExifField("Exif", 36864, "Exif.Photo.ExifVersion", "EXIF Version", VERSION),
    ExifField("Exif", 40960, "Exif.Photo.FlashpixVersion", "Flashpix Version", VERSION),
)

FIELDS_BY_KEY: Dict[str, ExifField] = {f.key.lower(): f for f in FIELDS}
FIELDS_BY_ID: Dict[Tuple[str, int], ExifField] = {(f.ifd, f.tag_id): f for f in FIELDS}

# Structural records that never become tags.
SKIPPED_RECORDS = frozenset({
    ("0th", 34665),  # ExifTag pointer
    ("0th", 34853),  # GPSTag pointer
    ("0th", 273),    # StripOffsets
    ("0th", 279),    # StripByteCounts
    ("0th", 513),    # JPEGInterchangeFormat
    ("0th", 514),    # JPEGInterchangeFormatLength
    ("Exif", 40965),  # InteroperabilityTag pointer
})

# GPS IFD tag ids
GPS_VERSION_ID = 0
GPS_LATITUDE_REF = 1
GPS_LATITUDE = 2
GPS_LONGITUDE_REF = 3
GPS_LONGITUDE = 4
GPS_ALTITUDE_REF = 5
GPS_ALTITUDE = 6

# Surfaced IFDs and their piexif.TAGS section.
_TAG_SECTIONS = {"0th": "Image", "Exif": "Exif"}

_SHORT_MAX = 0xFFFF
_LONG_MAX = 0xFFFFFFFF


# ---------------------------------------------------------------------------
# DMS helpers
# ---------------------------------------------------------------------------

def dms_to_decimal(degrees: float, minutes: float, seconds: float) -> float:
    """Convert degrees/minutes/seconds to decimal degrees."""
    return degrees + minutes / 60.0 + seconds / 3600.0


def decimal_to_dms(value: float) -> Tuple[int, int, int, int]:
    """Convert decimal degrees to DMS parts suitable for EXIF rationals.

    The sign is dropped; hemisphere is stored separately.

    Returns:
        (degrees, minutes, seconds_numerator, seconds_denominator)
    """
    value = abs(value)
    degrees = math.floor(value)
    minutes_full = (value - degrees) * 60.0
    minutes = math.floor(minutes_full)
    seconds = (minutes_full - minutes) * 60.0
    return (
        int(degrees),
        int(minutes),
        int(round(seconds * DMS_SECONDS_DENOMINATOR)),
        DMS_SECONDS_DENOMINATOR,
    )


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _first(value: Any) -> Any:
    """First element of a vector value, or the scalar itself."""
    if isinstance(value, (tuple, list)):
        if not value:
            return None
        return value[0]
    return value


def _altitude_ref(value: Any) -> Optional[int]:
    """GPSAltitudeRef as an int; some writers store it as UNDEFINED bytes."""
    value = _first(value)
    if isinstance(value, bytes):
        return value[0] if value else None
    return value


def _rational(value: Any) -> Optional[Tuple[int, int]]:
    """Extract one (numerator, denominator) pair from a piexif value."""
    if isinstance(value, (tuple, list)) and value and isinstance(value[0], (tuple, list)):
        value = value[0]
    if (
        isinstance(value, (tuple, list)) and len(value) == 2
        and all(isinstance(part, int) for part in value)
    ):
        return int(value[0]), int(value[1])
    return None


def _rationals(value: Any) -> Optional[List[Tuple[int, int]]]:
    """Extract a list of rational pairs, or None when the shape is wrong."""
    if not isinstance(value, (tuple, list)) or not value:
        return None
    if isinstance(value[0], int):
        pair = _rational(value)
        return [pair] if pair else None
    pairs = [_rational(item) for item in value]
    if any(pair is None for pair in pairs):
        return None
    return pairs


def _ratio(pair: Tuple[int, int]) -> float:
    numerator, denominator = pair
    if denominator == 0:
        return 0.0
    return numerator / denominator


def _decode_text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        raw = value
    elif isinstance(value, (bytes, bytearray)):
        data = bytes(value)
        try:
            raw = data.decode("utf-8")
        except UnicodeDecodeError:
            raw = data.decode("latin-1")
    else:
        return None
    return raw.replace("\x00", "").strip()


def _decode_int(value: Any) -> Optional[TagValue]:
    first = _first(value)
    if isinstance(first, int):
        return Integer(int(first))
    return None


def _decode_rational(value: Any) -> Optional[TagValue]:
    pair = _rational(value)
    if pair is None:
        return None
    return Rational(*pair)


def _decode_float(value: Any) -> Optional[TagValue]:
    pair = _rational(value)
    if pair is None:
        return None
    return Float(_ratio(pair))


def _decode_binary(value: Any) -> Optional[TagValue]:
    if isinstance(value, (bytes, bytearray)):
        return Binary(bytes(value))
    if isinstance(value, (tuple, list)) and all(isinstance(b, int) for b in value):
        return Binary(bytes(b & 0xFF for b in value))
    if isinstance(value, int):
        return Binary(bytes([value & 0xFF]))
    return None


def _decode_version(value: Any) -> Optional[TagValue]:
    if isinstance(value, (bytes, bytearray)):
        return Text(bytes(value).decode("latin-1"))
    return None


def _decode_lensinfo(value: Any) -> Optional[TagValue]:
    pairs = _rationals(value)
    if not pairs:
        return None
    parts = []
    for pair in pairs:
        ratio = _ratio(pair)
        parts.append("0" if pair[1] == 0 else f"{ratio:g}")
    return Text(" ".join(parts))


def _decode_text_value(value: Any) -> Optional[TagValue]:
    text = _decode_text(value)
    return Text(text) if text is not None else None


def _decode_datetime_value(value: Any) -> Optional[TagValue]:
    text = _decode_text(value)
    return DateTime(text) if text is not None else None


_DECODERS = {
    TEXT: _decode_text_value,
    DATETIME: _decode_datetime_value,
    INT: _decode_int,
    RATIONAL: _decode_rational,
    FLOAT: _decode_float,
    BINARY: _decode_binary,
    VERSION: _decode_version,
    LENSINFO: _decode_lensinfo,
}


def _unknown_tag(ifd: str, tag_id: int, value: Any) -> Optional[Tag]:
    """Surface a record we do not model as Exif.Unknown.0xXXXX."""
    section = piexif.TAGS.get(_TAG_SECTIONS.get(ifd, ifd), {})
    value_type = section.get(tag_id, {}).get("type")

    decoded: Optional[TagValue] = None
    editable = False

    if value_type == piexif.TYPES.Ascii and isinstance(value, (bytes, bytearray, str)):
        decoded = _decode_text_value(value)
        editable = True
    elif isinstance(value, (bytes, bytearray)) or value_type in (piexif.TYPES.Byte, piexif.TYPES.Undefined):
        decoded = _decode_binary(value)
    elif isinstance(value, int):
        decoded = Text(str(value))
    elif isinstance(value, (tuple, list)) and value:
        if all(isinstance(v, int) for v in value) and value_type not in (
            piexif.TYPES.Rational, piexif.TYPES.SRational
        ):
            decoded = Text(", ".join(str(v) for v in value))
        else:
            pairs = _rationals(value)
            if pairs:
                decoded = Text(", ".join(f"{n}/{d}" for n, d in pairs))

    if decoded is None:
        return None

    return Tag(
        key=f"Exif.Unknown.0x{tag_id:04X}",
        display_name=f"Tag 0x{tag_id:04X}",
        value=decoded,
        category=TagCategory.OTHER,
        editable=editable,
    )


def _decode_gps(gps_ifd: Dict[int, Any]) -> Optional[Tag]:
    lat = _rationals(gps_ifd.get(GPS_LATITUDE))
    lon = _rationals(gps_ifd.get(GPS_LONGITUDE))
    if not lat or not lon or len(lat) < 3 or len(lon) < 3:
        return None

    latitude = dms_to_decimal(*(_ratio(p) for p in lat[:3]))
    longitude = dms_to_decimal(*(_ratio(p) for p in lon[:3]))

    if _decode_text(gps_ifd.get(GPS_LATITUDE_REF)) == "S":
        latitude = -latitude
    if _decode_text(gps_ifd.get(GPS_LONGITUDE_REF)) == "W":
        longitude = -longitude

    altitude = None
    altitude_pair = _rational(gps_ifd.get(GPS_ALTITUDE))
    if altitude_pair is not None:
        altitude = _ratio(altitude_pair)
        if _altitude_ref(gps_ifd.get(GPS_ALTITUDE_REF)) == 1:
            altitude = -altitude

    try:
        value = Gps(latitude, longitude, altitude)
    except ValueError as e:
        logger.debug(f"Dropping out-of-range GPS coordinates: {e}")
        return None

    return Tag(
        key=GPS_KEY,
        display_name="GPS Coordinates",
        value=value,
        category=TagCategory.LOCATION,
    )


def decode_exif(exif_dict: Dict[str, Any]) -> List[Tag]:
    """Convert a piexif IFD dictionary to tags.

    Never raises for record content; malformed records are dropped.

    Args:
        exif_dict: Dictionary as returned by piexif.load().

    Returns:
        Tags in 0th, Exif, GPS, thumbnail order.
    """
    tags: List[Tag] = []

    for ifd in ("0th", "Exif"):
        records = exif_dict.get(ifd) or {}
        for tag_id in sorted(records):
            if (ifd, tag_id) in SKIPPED_RECORDS:
                continue
            value = records[tag_id]
            field = FIELDS_BY_ID.get((ifd, tag_id))

            if field is None:
                tag = _unknown_tag(ifd, tag_id, value)
                if tag is not None:
                    tags.append(tag)
                continue

            decoded = _DECODERS[field.kind](value)
            if decoded is None:
                logger.debug(f"Dropping malformed record {field.key}: {value!r}")
                continue
            tags.append(Tag.create(field.key, decoded, display_name=field.display))

    gps = _decode_gps(exif_dict.get("GPS") or {})
    if gps is not None:
        tags.append(gps)

    thumbnail = exif_dict.get("thumbnail")
    if thumbnail:
        tags.append(Tag(
            key=THUMBNAIL_KEY,
            display_name="Thumbnail",
            value=Binary(bytes(thumbnail)),
            category=TagCategory.IMAGE,
            editable=False,
        ))

    return tags


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _record_type(field: ExifField) -> Optional[int]:
    section = piexif.TAGS.get(_TAG_SECTIONS[field.ifd], {})
    return section.get(field.tag_id, {}).get("type")


def _encode_int(field: ExifField, value: TagValue) -> Any:
    if not isinstance(value, Integer):
        return None
    limit = _SHORT_MAX if _record_type(field) == piexif.TYPES.Short else _LONG_MAX
    if not 0 <= value.value <= limit:
        return None
    return value.value


def _encode_rational(field: ExifField, value: TagValue) -> Any:
    if not isinstance(value, Rational):
        return None
    if not (0 <= value.numerator <= _LONG_MAX and 0 <= value.denominator <= _LONG_MAX):
        return None
    return (value.numerator, value.denominator)


def _encode_text(field: ExifField, value: TagValue) -> Any:
    if not isinstance(value, Text):
        return None
    return value.value.encode("utf-8")


def _encode_datetime(field: ExifField, value: TagValue) -> Any:
    if not isinstance(value, DateTime):
        return None
    return value.value.encode("utf-8")


_ENCODERS = {
    TEXT: _encode_text,
    DATETIME: _encode_datetime,
    INT: _encode_int,
    RATIONAL: _encode_rational,
}


def _encode_gps(value: Gps) -> Dict[int, Any]:
    lat_d, lat_m, lat_s, lat_den = decimal_to_dms(value.latitude)
    lon_d, lon_m, lon_s, lon_den = decimal_to_dms(value.longitude)

    gps_ifd: Dict[int, Any] = {
        GPS_VERSION_ID: (2, 2, 0, 0),
        GPS_LATITUDE_REF: b"S" if value.latitude < 0 else b"N",
        GPS_LATITUDE: ((lat_d, 1), (lat_m, 1), (lat_s, lat_den)),
        GPS_LONGITUDE_REF: b"W" if value.longitude < 0 else b"E",
        GPS_LONGITUDE: ((lon_d, 1), (lon_m, 1), (lon_s, lon_den)),
    }

    if value.altitude is not None:
        gps_ifd[GPS_ALTITUDE_REF] = 1 if value.altitude < 0 else 0
        gps_ifd[GPS_ALTITUDE] = (
            int(round(abs(value.altitude) * ALTITUDE_DENOMINATOR)),
            ALTITUDE_DENOMINATOR,
        )

    return gps_ifd


def encode_tags(tags: List[Tag]) -> Dict[str, Any]:
    """Build a fresh piexif IFD dictionary from tags.

    Only modeled keys whose value kind matches their record are encoded;
    everything else is skipped. The result contains no records from the
    original file, so tags removed from the model disappear from the file.
    """
    exif_dict: Dict[str, Any] = {
        "0th": {}, "Exif": {}, "GPS": {}, "Interop": {}, "1st": {}, "thumbnail": None,
    }

    for tag in tags:
        if isinstance(tag.value, Gps):
            exif_dict["GPS"] = _encode_gps(tag.value)
            continue

        if tag.key.lower() == THUMBNAIL_KEY.lower():
            if isinstance(tag.value, Binary) and tag.value.data:
                exif_dict["thumbnail"] = tag.value.data
                exif_dict["1st"] = {259: 6}  # Compression: JPEG
            continue

        field = FIELDS_BY_KEY.get(tag.key.lower())
        if field is None:
            continue
        encoder = _ENCODERS.get(field.kind)
        if encoder is None:
            continue
        encoded = encoder(field, tag.value)
        if encoded is None:
            logger.debug(f"Skipping {tag.key}: {tag.value.kind} value not encodable")
            continue
        exif_dict[field.ifd][field.tag_id] = encoded

    return exif_dict


def has_records(exif_dict: Dict[str, Any]) -> bool:
    """True if the dictionary holds anything worth writing."""
    return bool(
        exif_dict.get("0th") or exif_dict.get("Exif")
        or exif_dict.get("GPS") or exif_dict.get("thumbnail")
    )


# ---------------------------------------------------------------------------
# Embedded IO
# ---------------------------------------------------------------------------

def read_embedded(path: str) -> Optional[List[Tag]]:
    """Decode the EXIF embedded in an image file.

    Returns:
        Tags, or None when the file has no readable EXIF.
    """
    ext = file_extension(path)

    try:
        if ext in PIEXIF_READ_EXTENSIONS:
            exif_dict = piexif.load(path)
        else:
            with ExifToolManager() as et:
                block = et.read_exif_block(path)
            if not block:
                return None
            exif_dict = piexif.load(block)
    except Exception as e:
        logger.debug(f"No embedded EXIF read from {path}: {e}")
        return None

    return decode_exif(exif_dict)


def write_embedded(path: str, metadata: PhotoMetadata) -> bool:
    """Rewrite the EXIF embedded in path from metadata.exif_tags.

    Best effort: unsupported containers and any failure return False and
    leave the file unchanged.
    """
    ext = file_extension(path)
    if ext not in PIEXIF_WRITE_EXTENSIONS and ext not in EXIFTOOL_WRITE_EXTENSIONS:
        return False

    exif_dict = encode_tags(metadata.exif_tags)

    try:
        if ext in PIEXIF_WRITE_EXTENSIONS:
            if has_records(exif_dict):
                piexif.insert(piexif.dump(exif_dict), path)
            else:
                piexif.remove(path)
            return True

        with ExifToolManager() as et:
            if not et.is_running:
                return False
            if has_records(exif_dict):
                # ExifTool expects the bare TIFF block, without the APP1 "Exif\0\0" header.
                return et.write_exif_block(path, piexif.dump(exif_dict)[6:])
            return et.delete_exif_block(path)
    except Exception as e:
        logger.warning(f"Embedded metadata write failed for {path}: {e}")
        return False
