"""
Metadata Persistence Engine
===========================

Writes tag lists into image files (JPEG, PNG, TIFF) with a fallback chain
of encoding strategies, wrapped in a backup/restore transaction, and reads
them back.

Usage:
------
    from src.core.metadata import TransactionalGuard, MetadataReader

    guard = TransactionalGuard()
    result = guard.persist("photos/cat.jpg", ["cat", "outdoor"])
    if result.critical:
        print(f"Restore failed, original kept at {result.backup_path}")

    tags = MetadataReader().read_tags("photos/cat.jpg")
"""

from src.core.metadata.errors import (
    MetadataError,
    UnsupportedFormatError,
    TargetMissingError,
    ReadOnlyUnclearableError,
    BackupCreationError,
    StrategyExhaustedError,
    RestoreFailedError,
    OperationCancelledError
)
from src.core.metadata.models import (
    StrategyOutcome,
    PersistenceStatus,
    PersistenceResult,
    ImageTarget,
    PropertyItem,
    ImageInfo
)
from src.core.metadata.formats import FormatSupportTable
from src.core.metadata.reader import MetadataReader, MetadataDirectory, read_directories
from src.core.metadata.strategies import (
    EncodingStrategy,
    EmbeddedContainerStrategy,
    LegacyPropertyRewriteStrategy,
    SidecarStrategy,
    default_strategies
)
from src.core.metadata.selector import StrategySelector
from src.core.metadata.guard import TransactionalGuard

__all__ = [
    # Errors
    'MetadataError',
    'UnsupportedFormatError',
    'TargetMissingError',
    'ReadOnlyUnclearableError',
    'BackupCreationError',
    'StrategyExhaustedError',
    'RestoreFailedError',
    'OperationCancelledError',

    # Data model
    'StrategyOutcome',
    'PersistenceStatus',
    'PersistenceResult',
    'ImageTarget',
    'PropertyItem',
    'ImageInfo',

    # Format support
    'FormatSupportTable',

    # Reading
    'MetadataReader',
    'MetadataDirectory',
    'read_directories',

    # Strategies
    'EncodingStrategy',
    'EmbeddedContainerStrategy',
    'LegacyPropertyRewriteStrategy',
    'SidecarStrategy',
    'default_strategies',
    'StrategySelector',

    # Transaction
    'TransactionalGuard',
]
