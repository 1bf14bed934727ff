"""
Metadata Service
================

Public entry point of the ImageTagger metadata engine.

The service ties together the Format Support Table, the Metadata Reader, the
Strategy Selector and the Transactional Guard, and adds:
- A boolean save_tags() contract, with RestoreFailedError as the one hard
  failure.
- Per-path locking so two saves to the same file never interleave.
- Background dispatch (save_tags_async, read_tags_async) on daemon worker
  threads, with cooperative cancellation checked only before the work
  starts and after it finishes.

Usage:
------
    service = MetadataService()
    if service.save_tags("photos/cat.jpg", ["cat", "outdoor"]):
        print(service.read_tags("photos/cat.jpg"))

    future = service.save_tags_async("photos/dog.png", ["dog"])
    ok = future.result()

Author: ImageTagger Project
"""

import logging
import os
import threading
from concurrent.futures import Future
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from src.core.metadata.errors import OperationCancelledError, RestoreFailedError
from src.core.metadata.formats import FormatSupportTable
from src.core.metadata.guard import TransactionalGuard
from src.core.metadata.models import ImageInfo, PersistenceResult
from src.core.metadata.reader import MetadataReader
from src.core.metadata.selector import StrategySelector
from src.core.settings import MetadataSettings
from src.utils.concurrency import DaemonThreadPoolExecutor, PathLockRegistry
from src.utils.logger import log_exception, log_timing

PathLike = Union[str, Path]


class MetadataService:
    """
    Reads and writes image tags.

    Attributes:
        settings: Engine settings (formats, software tag, verification)
        logger: Diagnostic sink shared by every component of the engine
        format_table: Extension allow-list built from settings
        reader: Tag reader
        guard: Transactional writer
    """

    def __init__(
        self,
        settings: Optional[MetadataSettings] = None,
        logger: Optional[logging.Logger] = None,
        selector: Optional[StrategySelector] = None,
        executor: Optional[DaemonThreadPoolExecutor] = None
    ):
        self.settings = settings or MetadataSettings()
        self.logger = logger or logging.getLogger(__name__)
        self.format_table = FormatSupportTable(self.settings.normalized_formats())
        self.reader = MetadataReader(self.format_table, self.logger)
        self.guard = TransactionalGuard(
            format_table=self.format_table,
            selector=selector or StrategySelector.default(self.settings, self.logger),
            reader=self.reader,
            settings=self.settings,
            logger=self.logger
        )
        self._path_locks = PathLockRegistry()
        self._executor = executor
        self._owns_executor = executor is None
        self._executor_lock = threading.Lock()

    # ========================================================================
    # SYNCHRONOUS API
    # ========================================================================

    def is_supported(self, path: PathLike) -> bool:
        """True if the file exists and its extension is writable."""
        return self.format_table.is_supported(path)

    @log_timing(operation="read_tags")
    def read_tags(self, path: PathLike) -> List[str]:
        """
        Read tags from the image's embedded metadata.

        Never raises; unreadable and untagged files both give [].
        """
        return self.reader.read_tags(path)

    def read_sidecar_tags(self, path: PathLike) -> List[str]:
        """Read tags from the <name>.tags sidecar, if one exists."""
        return self.reader.read_sidecar_tags(path)

    def save_tags_detailed(self, path: PathLike, tags: List[str]) -> PersistenceResult:
        """Save tags and return the full outcome. Never raises for I/O problems."""
        with self._path_locks.hold(path):
            return self.guard.persist(path, tags)

    def save_tags(self, path: PathLike, tags: List[str]) -> bool:
        """
        Save tags into an image.

        Returns:
            True when the tags were persisted by any strategy, False for
            every ordinary failure (the image is then unchanged).

        Raises:
            RestoreFailedError: the rollback copy failed. The image may be
                corrupted and the backup file was kept.
        """
        result = self.save_tags_detailed(path, tags)
        if result.critical:
            raise result.error or RestoreFailedError(Path(path), result.backup_path)
        return result.success

    def get_image_info(self, path: PathLike) -> ImageInfo:
        """
        Collect file facts and embedded tags for an image.

        A missing or unreadable file gives an ImageInfo with only file_path set.
        """
        file_path = str(path)
        try:
            st = os.stat(file_path)
        except OSError as e:
            self.logger.warning(f"Cannot stat {file_path}: {e}")
            return ImageInfo(file_path=file_path)

        created = getattr(st, "st_birthtime", st.st_ctime)
        return ImageInfo(
            file_path=file_path,
            file_size=st.st_size,
            created_at=datetime.fromtimestamp(created),
            modified_at=datetime.fromtimestamp(st.st_mtime),
            tags=self.read_tags(file_path)
        )

    # ========================================================================
    # BACKGROUND API
    # ========================================================================

    def save_tags_async(self, path: PathLike, tags: List[str], cancel_event: Optional[threading.Event] = None) -> Future:
        """Run save_tags() on a worker thread. The Future yields its bool."""
        return self._submit(f"save_tags {Path(path).name}", self.save_tags, cancel_event, path, list(tags))

    def read_tags_async(self, path: PathLike, cancel_event: Optional[threading.Event] = None) -> Future:
        """Run read_tags() on a worker thread."""
        return self._submit(f"read_tags {Path(path).name}", self.read_tags, cancel_event, path)

    def get_image_info_async(self, path: PathLike, cancel_event: Optional[threading.Event] = None) -> Future:
        """Run get_image_info() on a worker thread."""
        return self._submit(f"get_image_info {Path(path).name}", self.get_image_info, cancel_event, path)

    def _get_executor(self) -> DaemonThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = DaemonThreadPoolExecutor(thread_name_prefix="MetadataWorker")
            return self._executor

    def _submit(self, label: str, fn: Callable, cancel_event: Optional[threading.Event], *args) -> Future:
        return self._get_executor().submit(self._run_cancellable, label, fn, cancel_event, *args)

    def _run_cancellable(self, label: str, fn: Callable, cancel_event: Optional[threading.Event], *args) -> Any:
        if cancel_event is not None and cancel_event.is_set():
            self.logger.info(f"{label} cancelled before start")
            raise OperationCancelledError(f"{label} was cancelled before it started")

        try:
            result = fn(*args)
        except Exception as e:
            log_exception(self.logger, e, label)
            raise

        if cancel_event is not None and cancel_event.is_set():
            # The write already ran to commit or rollback; report it as is.
            self.logger.info(f"Cancellation requested during {label}; operation had already completed")
        return result

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def close(self, wait: bool = True):
        """Stop the worker threads this service created."""
        if not self._owns_executor:
            return
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
