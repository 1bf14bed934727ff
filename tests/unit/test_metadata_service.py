"""
Unit tests for the MetadataService facade.

End-to-end saves use the real strategy chain on generated images; the
concurrency and failure tests plug in small fake strategies.
"""

import logging
import shutil
import threading
import time
from pathlib import Path
from unittest.mock import patch

import pytest
from iptcinfo3 import IPTCInfo
from PIL import Image

from src.core.metadata.errors import OperationCancelledError, RestoreFailedError
from src.core.metadata.models import PersistenceStatus
from src.core.metadata.selector import StrategySelector
from src.core.metadata.strategies import EncodingStrategy, SidecarStrategy
from src.core.metadata_service import MetadataService
from src.core.settings import MetadataSettings
from tests.unit.image_fixtures import make_jpeg, make_tiff


class SlowStrategy(EncodingStrategy):
    """Tracks how many calls run at once."""
    name = "slow"

    def __init__(self, on_attempt=None):
        super().__init__()
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()
        self.on_attempt = on_attempt

    def attempt(self, path, tags):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        if self.on_attempt:
            self.on_attempt()
        time.sleep(0.05)
        with self._lock:
            self.active -= 1
        return True


class FailingStrategy(EncodingStrategy):
    name = "failing"

    def attempt(self, path, tags):
        path.write_bytes(b"damaged")
        return False


@pytest.fixture
def service():
    svc = MetadataService()
    yield svc
    svc.close()


def _service_with(*strategies):
    return MetadataService(
        settings=MetadataSettings(verify_after_write=False),
        selector=StrategySelector(strategies=list(strategies))
    )


# ============================================================================
# END TO END
# ============================================================================

def test_save_and_read_jpeg(service, jpeg_file):
    assert service.save_tags(jpeg_file, ["cat", "outdoor"]) is True

    assert "cat, outdoor" in service.read_tags(jpeg_file)
    keywords = [k.decode("utf-8") if isinstance(k, bytes) else k
                for k in IPTCInfo(str(jpeg_file), force=True)['keywords']]
    assert keywords == ["cat", "outdoor"]
    assert not Path(str(jpeg_file) + ".backup").exists()
    assert not (jpeg_file.parent / "photo.tags").exists()


def test_save_and_read_png(service, png_file):
    assert service.save_tags(png_file, ["dog"]) is True
    assert "dog" in service.read_tags(png_file)


def test_save_and_read_tiff(service, tiff_file):
    assert service.save_tags(tiff_file, ["scan", "archive"]) is True
    assert "scan, archive" in service.read_tags(tiff_file)


@pytest.mark.parametrize("compression", ["tiff_lzw", "tiff_adobe_deflate"])
def test_save_and_read_compressed_tiff(service, tmp_path, compression):
    path = make_tiff(tmp_path / "scan.tif", compression=compression)
    with Image.open(path) as img:
        before = img.tobytes()

    result = service.save_tags_detailed(path, ["cat", "outdoor"])

    assert result.status is PersistenceStatus.COMMITTED
    assert result.strategy == "embedded_container"
    assert "cat, outdoor" in service.read_tags(path)
    assert not (tmp_path / "scan.tags").exists()
    with Image.open(path) as img:
        assert img.info["compression"] == compression
        assert img.tobytes() == before


def test_save_is_idempotent(service, jpeg_file):
    service.save_tags(jpeg_file, ["cat", "outdoor"])
    first = service.read_tags(jpeg_file)
    service.save_tags(jpeg_file, ["cat", "outdoor"])
    assert service.read_tags(jpeg_file) == first


def test_unsupported_format_returns_false(service, tmp_path):
    gif = tmp_path / "anim.gif"
    gif.write_bytes(b"GIF89a")
    assert service.save_tags(gif, ["x"]) is False
    assert gif.read_bytes() == b"GIF89a"
    assert service.is_supported(gif) is False


def test_missing_file_returns_false(service, tmp_path):
    assert service.save_tags(tmp_path / "absent.jpg", ["x"]) is False


def test_failed_chain_restores_original(jpeg_file):
    original = jpeg_file.read_bytes()
    svc = _service_with(FailingStrategy())

    result = svc.save_tags_detailed(jpeg_file, ["x"])

    assert not result.success
    assert jpeg_file.read_bytes() == original
    assert svc.save_tags(jpeg_file, ["x"]) is False


def test_restore_failure_raises(jpeg_file):
    svc = _service_with(FailingStrategy())
    real_copy2 = shutil.copy2

    def copy2(src, dst, **kwargs):
        if Path(dst) == jpeg_file:
            raise OSError("device gone")
        return real_copy2(src, dst, **kwargs)

    with patch("src.core.metadata.guard.shutil.copy2", side_effect=copy2):
        with pytest.raises(RestoreFailedError) as exc_info:
            svc.save_tags(jpeg_file, ["x"])

    assert exc_info.value.backup_path == Path(str(jpeg_file) + ".backup")
    assert exc_info.value.backup_path.exists()
    assert isinstance(exc_info.value.cause, OSError)
    assert exc_info.value.__cause__ is exc_info.value.cause
    assert "device gone" in str(exc_info.value)


def test_sidecar_tags_read_separately(jpeg_file):
    svc = _service_with(SidecarStrategy())

    assert svc.save_tags(jpeg_file, ["a", "b"]) is True
    assert svc.read_tags(jpeg_file) == []
    assert svc.read_sidecar_tags(jpeg_file) == ["a", "b"]


# ============================================================================
# IMAGE INFO
# ============================================================================

def test_get_image_info(service, jpeg_file):
    service.save_tags(jpeg_file, ["cat"])
    info = service.get_image_info(jpeg_file)

    assert info.file_name == "photo.jpg"
    assert info.extension == ".jpg"
    assert info.file_size == jpeg_file.stat().st_size
    assert info.created_at is not None
    assert info.modified_at is not None
    assert info.has_tags
    assert "cat" in info.tags


def test_get_image_info_missing_file(service, tmp_path):
    path = tmp_path / "absent.jpg"
    info = service.get_image_info(path)
    assert info.file_path == str(path)
    assert info.file_size == 0
    assert info.created_at is None
    assert not info.has_tags


# ============================================================================
# BACKGROUND EXECUTION
# ============================================================================

def test_save_tags_async(service, jpeg_file):
    future = service.save_tags_async(jpeg_file, ["async"])
    assert future.result(timeout=10) is True
    assert "async" in service.read_tags_async(jpeg_file).result(timeout=10)


def test_get_image_info_async(service, jpeg_file):
    info = service.get_image_info_async(jpeg_file).result(timeout=10)
    assert info.file_size > 0


def test_cancelled_before_start_does_nothing(service, jpeg_file):
    original = jpeg_file.read_bytes()
    cancel = threading.Event()
    cancel.set()

    future = service.save_tags_async(jpeg_file, ["x"], cancel_event=cancel)

    with pytest.raises(OperationCancelledError):
        future.result(timeout=10)
    assert jpeg_file.read_bytes() == original
    assert not Path(str(jpeg_file) + ".backup").exists()


def test_cancel_during_write_keeps_result(jpeg_file):
    cancel = threading.Event()
    svc = _service_with(SlowStrategy(on_attempt=cancel.set))
    try:
        assert svc.save_tags_async(jpeg_file, ["x"], cancel_event=cancel).result(timeout=10) is True
    finally:
        svc.close()


def test_saves_to_same_path_are_serialized(jpeg_file):
    slow = SlowStrategy()
    svc = _service_with(slow)
    try:
        futures = [svc.save_tags_async(jpeg_file, [str(i)]) for i in range(4)]
        assert all(f.result(timeout=10) for f in futures)
    finally:
        svc.close()
    assert slow.peak == 1


def test_saves_to_different_paths_run_in_parallel(tmp_path):
    paths = [make_jpeg(tmp_path / f"img{i}.jpg") for i in range(4)]
    slow = SlowStrategy()
    svc = _service_with(slow)
    try:
        futures = [svc.save_tags_async(p, ["x"]) for p in paths]
        assert all(f.result(timeout=10) for f in futures)
    finally:
        svc.close()
    assert slow.peak > 1
    assert not any(Path(str(p) + ".backup").exists() for p in paths)


def test_context_manager_closes_executor(jpeg_file):
    with MetadataService() as svc:
        svc.read_tags_async(jpeg_file).result(timeout=10)
    assert svc._executor is None


def test_injected_logger_receives_records(jpeg_file, caplog):
    logger = logging.getLogger("test.service")
    svc = MetadataService(logger=logger)
    with caplog.at_level(logging.INFO, logger="test.service"):
        svc.save_tags(jpeg_file, ["cat"])
    assert any(r.name == "test.service" for r in caplog.records)
