import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from tests.unit.image_fixtures import make_jpeg, make_png, make_tiff


@pytest.fixture
def jpeg_file(tmp_path):
    return make_jpeg(tmp_path / "photo.jpg")


@pytest.fixture
def png_file(tmp_path):
    return make_png(tmp_path / "graphic.png", text={"Author": "ImageTagger tests"})


@pytest.fixture
def tiff_file(tmp_path):
    return make_tiff(tmp_path / "scan.tiff")
