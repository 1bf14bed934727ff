"""
Format Support Table
====================

Classifies a path as supported or unsupported by the metadata engine.
The verdict is purely extension based, checked against a configurable
allow-list, and includes an existence check. No side effects.
"""

from pathlib import Path
from typing import Iterable, Optional, Union

from src.core import config


class FormatSupportTable:
    """
    Extension allow-list for metadata writes.

    Example:
        >>> table = FormatSupportTable()
        >>> table.is_supported("holiday/beach.JPG")  # if the file exists
        True
    """

    def __init__(self, supported_formats: Optional[Iterable[str]] = None):
        if supported_formats is None:
            supported_formats = config.DEFAULT_SUPPORTED_FORMATS
        self._formats = frozenset(fmt.lower().lstrip(".") for fmt in supported_formats)

    @property
    def formats(self) -> frozenset:
        return self._formats

    def supports_extension(self, extension: str) -> bool:
        """Case-insensitive extension check; a leading dot is ignored."""
        return extension.lower().lstrip(".") in self._formats

    def is_supported(self, path: Union[str, Path, None]) -> bool:
        """
        Return True if the path exists and its extension is in the allow-list.

        Args:
            path: Image path. Empty or None is never supported.
        """
        if not path:
            return False
        p = Path(path)
        if not p.is_file():
            return False
        return self.supports_extension(p.suffix)
