"""
Metadata Engine Data Model
==========================

Value types shared by the format table, the reader, the strategies and the
transactional guard.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Union

from src.core import config
from src.core.metadata.errors import RestoreFailedError


class StrategyOutcome(Enum):
    """Result of a single strategy attempt."""
    SUCCESS = "success"
    FAILED = "failed"    # returned False, try the next strategy
    FAULTED = "faulted"  # raised, treated as FAILED by the chain


class PersistenceStatus(Enum):
    """Terminal state of one save_tags call."""
    COMMITTED = "committed"
    UNSUPPORTED_FORMAT = "unsupported_format"
    TARGET_MISSING = "target_missing"
    READ_ONLY_UNCLEARABLE = "read_only_unclearable"
    BACKUP_FAILED = "backup_failed"
    STRATEGY_EXHAUSTED = "strategy_exhausted"
    RESTORE_FAILED = "restore_failed"


@dataclass(frozen=True)
class ImageTarget:
    """
    A filesystem path plus its resolved extension.

    The extension is lowercased with the leading dot stripped, so
    ``Photo.JPG`` resolves to ``jpg``.
    """
    path: Path
    extension: str

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "ImageTarget":
        p = Path(path)
        return cls(path=p, extension=p.suffix.lower().lstrip("."))

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + config.BACKUP_SUFFIX)


@dataclass
class PropertyItem:
    """
    One numeric-tagged property of a flat EXIF property list.

    Attributes:
        id: EXIF tag identifier (e.g. 0x9286 for UserComment)
        type: EXIF field type code (2 = ASCII, 7 = UNDEFINED, ...)
        length: Payload length (bytes, or value count for numeric types)
        value: Payload. Bytes for ASCII/BYTE/UNDEFINED fields; numeric
               fields keep the int/tuple form piexif uses.
        ifd: Name of the IFD the property lives in ("0th", "Exif", ...)
    """
    id: int
    type: int
    length: int
    value: Any
    ifd: str = "0th"

    @classmethod
    def ascii(cls, tag_id: int, text: str, ifd: str = "Exif") -> "PropertyItem":
        payload = text.encode("utf-8")
        return cls(id=tag_id, type=config.EXIF_TYPE_ASCII, length=len(payload), value=payload, ifd=ifd)


@dataclass
class PersistenceResult:
    """Detailed outcome of one guarded save."""
    status: PersistenceStatus
    strategy: Optional[str] = None
    backup_path: Optional[Path] = None
    verified_tags: List[str] = field(default_factory=list)
    # Set with RESTORE_FAILED; carries the OSError that broke the restore
    error: Optional[RestoreFailedError] = None

    @property
    def success(self) -> bool:
        return self.status is PersistenceStatus.COMMITTED

    @property
    def critical(self) -> bool:
        return self.status is PersistenceStatus.RESTORE_FAILED


@dataclass
class ImageInfo:
    """File-level facts about an image plus the tags found in it."""
    file_path: str = ""
    file_size: int = 0
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)

    @property
    def file_name(self) -> str:
        return Path(self.file_path).name

    @property
    def extension(self) -> str:
        return Path(self.file_path).suffix.lower()

    @property
    def has_tags(self) -> bool:
        return len(self.tags) > 0
