"""
Metadata Container Helpers
==========================

Low-level helpers shared by the encoding strategies for building the
metadata containers that end up inside an image file.

- EXIF: piexif dictionaries ("0th", "Exif", "GPS", "Interop", "1st") are the
  working representation for every format. JPEG gets them spliced back with
  piexif.insert, PNG re-encodes them into an eXIf chunk through Pillow, and
  TIFF receives them as a Pillow ``tiffinfo`` mapping.
- IPTC: iptcinfo3 handles JPEG. TIFF stores a raw IIM block in the IPTC-NAA
  tag, built here.
- Property lists: a flat view over all EXIF IFDs for the legacy
  property-rewrite strategy.

Dependencies:
- piexif: EXIF dictionary load/dump and UserComment charset handling
"""

import struct
from typing import Any, Dict, Iterable, List, Optional

import piexif
import piexif.helper

from src.core import config
from src.core.metadata.models import PropertyItem

# ============================================================================
# EXIF DICTIONARIES
# ============================================================================

IFD_NAMES = ("0th", "Exif", "GPS", "Interop", "1st")

# IFD0 tags safe to copy into a re-encoded TIFF. Structural tags (strips,
# dimensions, compression) are regenerated by the encoder.
TIFF_DESCRIPTIVE_TAGS = (
    piexif.ImageIFD.ImageDescription,
    piexif.ImageIFD.Make,
    piexif.ImageIFD.Model,
    piexif.ImageIFD.Software,
    piexif.ImageIFD.DateTime,
    piexif.ImageIFD.Artist,
    piexif.ImageIFD.Copyright,
    piexif.ImageIFD.XPTitle,
    piexif.ImageIFD.XPComment,
    piexif.ImageIFD.XPAuthor,
    piexif.ImageIFD.XPKeywords,
    piexif.ImageIFD.XPSubject,
)


def empty_exif_dict() -> Dict[str, Any]:
    """Return a piexif dictionary with no entries."""
    exif_dict: Dict[str, Any] = {name: {} for name in IFD_NAMES}
    exif_dict["thumbnail"] = None
    return exif_dict


def load_exif_dict(source: Optional[bytes]) -> Dict[str, Any]:
    """
    Parse raw EXIF (APP1 payload, eXIf chunk, or a whole JPEG/TIFF file).

    Args:
        source: Raw bytes or None when the image carries no EXIF.

    Raises:
        piexif.InvalidImageDataError / ValueError: the data cannot be parsed.
    """
    if not source:
        return empty_exif_dict()
    exif_dict = piexif.load(source)
    for name in IFD_NAMES:
        if exif_dict.get(name) is None:
            exif_dict[name] = {}
    return exif_dict


def apply_tag_fields(exif_dict: Dict[str, Any], tags: List[str], software: str) -> None:
    """
    Write the tag fields into a piexif dictionary in place.

    The joined tag string goes into ImageDescription (IFD0) and UserComment
    (Exif IFD), the writer identity into Software, and the individual tags
    into the Windows XPKeywords field. Existing values are replaced, not
    merged, so repeated writes converge.
    """
    joined = config.TAG_SEPARATOR.join(tags)

    zeroth = exif_dict["0th"]
    zeroth[piexif.ImageIFD.ImageDescription] = joined.encode("utf-8")
    zeroth[piexif.ImageIFD.Software] = software.encode("utf-8")
    zeroth[piexif.ImageIFD.XPKeywords] = config.XP_KEYWORD_SEPARATOR.join(tags).encode("utf-16le")

    exif_dict["Exif"][piexif.ExifIFD.UserComment] = piexif.helper.UserComment.dump(joined, encoding="unicode")


def uses_libtiff(compression: Optional[str]) -> bool:
    """True if Pillow hands this TIFF compression to libtiff for encoding."""
    return (compression or config.TIFF_DEFAULT_COMPRESSION) not in config.TIFF_NATIVE_COMPRESSIONS


def to_tiffinfo(exif_dict: Dict[str, Any], include_exif_ifd: bool = True) -> Dict[int, Any]:
    """
    Convert a piexif dictionary into a Pillow ``tiffinfo`` mapping.

    Only descriptive IFD0 tags and byte-valued Exif IFD entries are carried
    over; the Exif IFD is passed as a nested dict, which Pillow writes as a
    sub-IFD. libtiff rejects that nested dict, so callers saving with a
    libtiff compression pass ``include_exif_ifd=False`` and keep only the
    IFD0 fields.
    """
    tiffinfo: Dict[int, Any] = {}
    zeroth = exif_dict.get("0th", {})
    for tag_id in TIFF_DESCRIPTIVE_TAGS:
        if tag_id in zeroth:
            tiffinfo[tag_id] = zeroth[tag_id]

    if not include_exif_ifd:
        return tiffinfo

    sub_ifd = {
        tag_id: value
        for tag_id, value in exif_dict.get("Exif", {}).items()
        if isinstance(value, bytes)
    }
    if sub_ifd:
        tiffinfo[config.EXIF_IFD_POINTER] = sub_ifd
    return tiffinfo


# ============================================================================
# IPTC (IIM) BLOCKS
# ============================================================================

_IIM_MARKER = 0x1C
_IIM_UTF8 = b"\x1b%G"


def _iim_dataset(record: int, number: int, data: bytes) -> bytes:
    if len(data) > 0x7FFF:
        raise ValueError(f"IPTC dataset {record}:{number} too long ({len(data)} bytes)")
    return struct.pack(">BBBH", _IIM_MARKER, record, number, len(data)) + data


def encode_iim_keywords(keywords: Iterable[str]) -> bytes:
    """
    Build an IPTC IIM block with one Keywords (2:25) dataset per keyword.

    The block declares UTF-8 (1:90) and record version 4 (2:0).
    """
    block = bytearray()
    block += _iim_dataset(1, 90, _IIM_UTF8)
    block += _iim_dataset(config.IPTC_RECORD_APPLICATION, 0, b"\x00\x04")
    record, number = config.IPTC_KEYWORDS
    for keyword in keywords:
        block += _iim_dataset(record, number, keyword.encode("utf-8"))
    return bytes(block)


# ============================================================================
# FLAT PROPERTY LISTS
# ============================================================================

def _value_length(value: Any) -> int:
    if isinstance(value, (bytes, tuple, list)):
        return len(value)
    return 1


def _tag_type(ifd_name: str, tag_id: int) -> int:
    lookup = "Image" if ifd_name in ("0th", "1st") else ifd_name
    return piexif.TAGS.get(lookup, {}).get(tag_id, {}).get("type", config.EXIF_TYPE_UNDEFINED)


def iter_property_items(exif_dict: Dict[str, Any]) -> List[PropertyItem]:
    """Flatten every IFD of a piexif dictionary into a property list."""
    items = []
    for ifd_name in IFD_NAMES:
        for tag_id, value in exif_dict.get(ifd_name, {}).items():
            items.append(PropertyItem(
                id=tag_id,
                type=_tag_type(ifd_name, tag_id),
                length=_value_length(value),
                value=value,
                ifd=ifd_name,
            ))
    return items


def property_items_to_dict(items: Iterable[PropertyItem], thumbnail: Optional[bytes] = None) -> Dict[str, Any]:
    """Rebuild a piexif dictionary from a flat property list."""
    exif_dict = empty_exif_dict()
    for item in items:
        exif_dict.setdefault(item.ifd, {})[item.id] = item.value
    if thumbnail and exif_dict["1st"]:
        exif_dict["thumbnail"] = thumbnail
    return exif_dict
