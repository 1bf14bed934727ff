"""
Metadata Engine Exceptions
==========================

Exception hierarchy for the metadata persistence engine. Most failure classes
are reported to callers as a plain False from save_tags(); the exceptions exist
so the guard can name what went wrong, and so the one critical condition
(RestoreFailedError) can escape as a hard failure.
"""

from pathlib import Path
from typing import Optional


class MetadataError(Exception):
    """Base exception for all metadata engine errors."""
    pass


class UnsupportedFormatError(MetadataError):
    """Raised when the file extension is not in the allow-list."""
    pass


class TargetMissingError(MetadataError):
    """Raised when the target image does not exist."""
    pass


class ReadOnlyUnclearableError(MetadataError):
    """Raised when the read-only attribute of the target cannot be cleared."""
    pass


class BackupCreationError(MetadataError):
    """Raised when the pre-write backup copy cannot be created."""
    pass


class StrategyExhaustedError(MetadataError):
    """Raised when every encoding strategy failed or faulted."""
    pass


class RestoreFailedError(MetadataError):
    """
    Raised when the backup could not be copied back over the target.

    The target may be corrupted. The backup file is left on disk and is the
    only remaining recovery path.
    """

    def __init__(self, target: Path, backup_path: Optional[Path], cause: Optional[BaseException] = None):
        self.target = target
        self.backup_path = backup_path
        self.cause = cause
        message = f"Could not restore {target} from backup {backup_path}"
        if cause is not None:
            message += f": {type(cause).__name__}: {cause}"
        super().__init__(message)


class OperationCancelledError(MetadataError):
    """Raised when a queued operation is cancelled before it starts."""
    pass
