"""
Transactional Guard
===================

Wraps one tag write in a backup/restore transaction so a failed write never
leaves a half-modified image behind.

State flow for a single persist() call:

    Idle -> SupportChecked -> BackupCreated -> StrategyChainRunning
         -> Committed | RolledBack

- SupportChecked: unsupported extension, missing file, or a read-only flag
  that cannot be cleared ends the call before anything is touched.
- BackupCreated: the target is copied to ``<target>.backup``. If the copy
  fails no strategy runs.
- StrategyChainRunning: strategies run one at a time against the live file.
  Before every strategy after the first, the target is restored from the
  backup so each attempt starts from the original bytes.
- Committed: optional read-back for diagnostics, backup deleted.
- RolledBack: backup copied back over the target and deleted. If that copy
  fails the result is RESTORE_FAILED, logged at CRITICAL, and the backup is
  kept as the only recovery path.
"""

import logging
import os
import shutil
import stat
import time
from pathlib import Path
from typing import List, Optional, Union

from src.core import config
from src.core.metadata.errors import (
    BackupCreationError,
    ReadOnlyUnclearableError,
    RestoreFailedError,
    StrategyExhaustedError,
)
from src.core.metadata.formats import FormatSupportTable
from src.core.metadata.models import ImageTarget, PersistenceResult, PersistenceStatus, StrategyOutcome
from src.core.metadata.reader import MetadataReader
from src.core.metadata.selector import StrategySelector
from src.core.metadata.strategies import SidecarStrategy
from src.core.settings import MetadataSettings
from src.utils.logger import log_exception, log_performance


class TransactionalGuard:
    """
    Orchestrates format check, backup, strategy chain, verification and
    commit/rollback for one image at a time.

    The guard itself holds no per-call state, so one instance can serve
    several threads as long as they target different paths.
    """

    def __init__(
        self,
        format_table: Optional[FormatSupportTable] = None,
        selector: Optional[StrategySelector] = None,
        reader: Optional[MetadataReader] = None,
        settings: Optional[MetadataSettings] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.settings = settings or MetadataSettings()
        self.logger = logger or logging.getLogger(__name__)
        self.format_table = format_table or FormatSupportTable(self.settings.normalized_formats())
        self.selector = selector or StrategySelector.default(self.settings, self.logger)
        self.reader = reader or MetadataReader(self.format_table, self.logger)

    def persist(self, path: Union[str, Path], tags: List[str]) -> PersistenceResult:
        """
        Write tags to an image inside a backup/restore transaction.

        Args:
            path: Target image
            tags: Tags to store, in order

        Returns:
            PersistenceResult. Only RESTORE_FAILED is critical; every other
            non-committed status leaves the target byte-identical to before.
        """
        target = ImageTarget.from_path(path)
        tags = list(tags)
        start_time = time.perf_counter()

        self.logger.info(f"Saving {len(tags)} tags to {target.path.name}")
        self.logger.debug(f"Tags: {tags}")

        # Idle -> SupportChecked
        if not self.format_table.supports_extension(target.extension):
            self.logger.warning(f"Unsupported format for metadata write: .{target.extension}")
            return PersistenceResult(PersistenceStatus.UNSUPPORTED_FORMAT)

        if not target.path.is_file():
            self.logger.error(f"Image not found: {target.path}")
            return PersistenceResult(PersistenceStatus.TARGET_MISSING)

        try:
            self._ensure_writable(target.path)
        except ReadOnlyUnclearableError as e:
            log_exception(self.logger, e, "Clear read-only attribute")
            return PersistenceResult(PersistenceStatus.READ_ONLY_UNCLEARABLE)

        # SupportChecked -> BackupCreated
        backup_path = target.backup_path
        try:
            self._create_backup(target.path, backup_path)
        except BackupCreationError as e:
            log_exception(self.logger, e, "Create backup")
            return PersistenceResult(PersistenceStatus.BACKUP_FAILED)

        # BackupCreated -> StrategyChainRunning
        try:
            winner = self._run_chain(target, backup_path, tags)
        except RestoreFailedError as e:
            return self._critical(e)
        except Exception as e:
            log_exception(self.logger, e, "Strategy chain")
            winner = None

        if winner is None:
            result = self._roll_back(target.path, backup_path)
        else:
            result = self._commit(target.path, backup_path, tags, winner)

        log_performance(self.logger, f"save_tags {target.path.name}", time.perf_counter() - start_time)
        return result

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    def _ensure_writable(self, path: Path):
        st = path.stat()
        mode = st.st_mode
        self.logger.debug(
            f"{path.name}: {st.st_size} bytes, mode {stat.filemode(mode)}, "
            f"read-only={not mode & stat.S_IWUSR}"
        )
        if mode & stat.S_IWUSR:
            return

        self.logger.info(f"Clearing read-only attribute on {path.name}")
        try:
            os.chmod(path, mode | stat.S_IWUSR)
        except OSError as e:
            raise ReadOnlyUnclearableError(f"Cannot make {path} writable: {e}") from e

    def _create_backup(self, path: Path, backup_path: Path):
        if backup_path.exists():
            # Never overwrite an existing backup
            raise BackupCreationError(f"Backup already exists, refusing to overwrite: {backup_path}")
        try:
            shutil.copy2(path, backup_path)
        except OSError as e:
            raise BackupCreationError(f"Failed to create backup {backup_path}: {e}") from e
        self.logger.info(f"Created backup: {backup_path.name}")

    def _run_chain(self, target: ImageTarget, backup_path: Path, tags: List[str]) -> Optional[str]:
        """Return the name of the winning strategy, or None if all failed."""
        strategies = self.selector.strategies_for(target.extension)
        if not strategies:
            raise StrategyExhaustedError(f"No strategies configured for .{target.extension}")

        for index, strategy in enumerate(strategies):
            if index > 0:
                self._restore(target.path, backup_path)

            outcome = strategy.run(target.path, tags)
            if outcome is StrategyOutcome.SUCCESS:
                self.logger.info(f"Tags written to {target.path.name} using {strategy.name}")
                return strategy.name
            self.logger.warning(f"{strategy.name} strategy {outcome.value} for {target.path.name}")

        self.logger.error(f"All strategies failed for {target.path.name}")
        return None

    def _commit(self, path: Path, backup_path: Path, tags: List[str], strategy: str) -> PersistenceResult:
        verified: List[str] = []
        if self.settings.verify_after_write:
            if strategy == SidecarStrategy.name:
                verified = self.reader.read_sidecar_tags(path)
                found = verified == [tag for tag in tags if tag]
            else:
                verified = self.reader.read_tags(path)
                found = config.TAG_SEPARATOR.join(tags) in verified
            if tags and not found:
                self.logger.warning(f"Verification did not find written tags in {path.name} (strategy: {strategy})")
            else:
                self.logger.debug(f"Verification read back {len(verified)} tag entries")

        try:
            backup_path.unlink()
            self.logger.debug(f"Removed backup file: {backup_path.name}")
        except OSError as e:
            self.logger.warning(f"Failed to delete backup file {backup_path}: {e}")

        return PersistenceResult(PersistenceStatus.COMMITTED, strategy=strategy, verified_tags=verified)

    def _roll_back(self, path: Path, backup_path: Path) -> PersistenceResult:
        try:
            self._restore(path, backup_path)
        except RestoreFailedError as e:
            return self._critical(e)

        try:
            backup_path.unlink()
        except OSError as e:
            self.logger.warning(f"Restored original but could not delete backup {backup_path}: {e}")
        self.logger.info(f"Rolled back {path.name} to its original contents")
        return PersistenceResult(PersistenceStatus.STRATEGY_EXHAUSTED)

    def _restore(self, path: Path, backup_path: Path):
        try:
            shutil.copy2(backup_path, path)
        except OSError as e:
            raise RestoreFailedError(path, backup_path, e) from e
        self.logger.debug(f"Restored {path.name} from backup")

    def _critical(self, error: RestoreFailedError) -> PersistenceResult:
        self.logger.critical(
            f"CRITICAL: {error}. The image may be corrupted; "
            f"the original is preserved at {error.backup_path}"
        )
        return PersistenceResult(PersistenceStatus.RESTORE_FAILED, backup_path=error.backup_path, error=error)
