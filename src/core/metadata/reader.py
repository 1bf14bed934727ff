"""
Metadata Reader
===============

Extracts existing human tags from an image's embedded metadata, regardless
of which strategy wrote them.

The reader walks every metadata *directory* the container exposes (EXIF
IFD0, the EXIF sub-IFD, IPTC, PNG text chunks) and every *entry* inside it,
and keeps the decoded value of entries whose name mentions a comment, a
description or keywords.

Read failures are absorbed: an unsupported format, a missing file and a
parse error all yield an empty list, the same as an image with no tags.
Sidecar files are not consulted by read_tags(); read_sidecar_tags() reads
them explicitly.

Dependencies:
- PIL (Pillow): Container parsing (EXIF, IPTC, PNG text)
- piexif: UserComment charset decoding
"""

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple, Union

import piexif.helper
from PIL import ExifTags, Image, IptcImagePlugin

from src.core import config
from src.core.metadata.formats import FormatSupportTable


@dataclass
class MetadataDirectory:
    """One group of named metadata entries, e.g. 'Exif IFD0' or 'IPTC'."""
    name: str
    entries: List[Tuple[str, Any]] = field(default_factory=list)


def _exif_tag_name(tag_id: int) -> str:
    return ExifTags.TAGS.get(tag_id, f"Unknown tag 0x{tag_id:04X}")


def decode_entry_value(name: str, value: Any) -> str:
    """
    Turn a raw entry value into display text.

    Handles the Windows XP* fields (UTF-16LE), charset-prefixed
    UserComment payloads, plain byte strings and everything else via str().
    """
    if isinstance(value, tuple) and value and all(isinstance(v, int) for v in value):
        try:
            value = bytes(value)
        except ValueError:
            return str(value)

    if isinstance(value, bytes):
        if name.startswith("XP"):
            return value.decode("utf-16le", errors="ignore").rstrip("\x00").strip()
        try:
            return piexif.helper.UserComment.load(value).rstrip("\x00").strip()
        except ValueError:
            pass
        return value.decode("utf-8", errors="replace").rstrip("\x00").strip()

    if value is None:
        return ""
    return str(value).strip()


def is_tag_entry(name: str) -> bool:
    """True if the entry name contains one of the tag fragments."""
    lowered = name.lower()
    return any(fragment in lowered for fragment in config.TAG_ENTRY_NAME_FRAGMENTS)


def read_directories(path: Union[str, Path]) -> List[MetadataDirectory]:
    """
    Parse every metadata directory of an image.

    Raises whatever Pillow raises for unreadable files; callers that need
    the absorbing behaviour use MetadataReader.
    """
    data = Path(path).read_bytes()
    directories: List[MetadataDirectory] = []

    with Image.open(io.BytesIO(data)) as img:
        exif = img.getexif()

        ifd0 = MetadataDirectory("Exif IFD0")
        for tag_id, value in exif.items():
            if tag_id == config.EXIF_IFD_POINTER:
                continue
            ifd0.entries.append((_exif_tag_name(tag_id), value))
        directories.append(ifd0)

        sub_ifd = exif.get_ifd(config.EXIF_IFD_POINTER)
        if sub_ifd:
            directories.append(MetadataDirectory(
                "Exif SubIFD",
                [(_exif_tag_name(tag_id), value) for tag_id, value in sub_ifd.items()]
            ))

        iptc = IptcImagePlugin.getiptcinfo(img)
        if iptc:
            iptc_dir = MetadataDirectory("IPTC")
            for key, value in iptc.items():
                name = config.IPTC_DATASET_NAMES.get(key, f"Dataset {key[0]}:{key[1]}")
                values = value if isinstance(value, list) else [value]
                iptc_dir.entries.extend((name, v) for v in values)
            directories.append(iptc_dir)

        text_chunks = getattr(img, "text", None)
        if text_chunks:
            directories.append(MetadataDirectory(
                "PNG Text",
                [(str(key), value) for key, value in text_chunks.items()]
            ))

    return directories


class MetadataReader:
    """
    Reads human tags back out of supported images.

    Attributes:
        format_table: Decides which files are readable at all
        logger: Diagnostic sink
    """

    def __init__(self, format_table: Optional[FormatSupportTable] = None, logger: Optional[logging.Logger] = None):
        self.format_table = format_table or FormatSupportTable()
        self.logger = logger or logging.getLogger(__name__)

    def iter_tags(self, path: Union[str, Path]) -> Iterator[str]:
        """
        Yield tag strings in directory/entry order.

        Yields nothing if the file is unsupported, missing or unreadable.
        """
        if not self.format_table.is_supported(path):
            self.logger.debug(f"Not reading tags from unsupported or missing file: {path}")
            return

        try:
            directories = read_directories(path)
        except Exception as e:
            self.logger.warning(f"Could not read metadata from {Path(path).name}: {type(e).__name__}: {e}")
            return

        self.logger.debug(f"Found {len(directories)} metadata directories in {Path(path).name}")
        for directory in directories:
            for name, value in directory.entries:
                if not is_tag_entry(name):
                    continue
                text = decode_entry_value(name, value)
                if text:
                    self.logger.debug(f"{directory.name}: {name} = {text}")
                    yield text

    def read_tags(self, path: Union[str, Path]) -> List[str]:
        """Collect iter_tags() into a list."""
        tags = list(self.iter_tags(path))
        self.logger.info(f"Read {len(tags)} tag entries from {Path(path).name}")
        return tags

    def read_sidecar_tags(self, path: Union[str, Path]) -> List[str]:
        """
        Read tags from the plain-text sidecar written next to an image.

        Returns an empty list when there is no sidecar.
        """
        image_path = Path(path)
        sidecar = image_path.with_name(image_path.stem + config.TAGS_SIDECAR_SUFFIX)
        if not sidecar.is_file():
            return []
        try:
            content = sidecar.read_text(encoding="utf-8")
        except OSError as e:
            self.logger.warning(f"Could not read sidecar {sidecar.name}: {e}")
            return []
        return [tag for tag in content.split(config.TAG_SEPARATOR) if tag]
