"""
Unit tests for the Strategy Selector.
"""

import pytest

from src.core.metadata.selector import StrategySelector
from src.core.metadata.strategies import SidecarStrategy


@pytest.mark.parametrize("ext", ["jpg", "jpeg", "png", "tiff", "tif", ".JPG"])
def test_uniform_chain_for_every_format(ext):
    names = [s.name for s in StrategySelector.default().strategies_for(ext)]
    assert names == ["embedded_container", "legacy_property_rewrite", "sidecar"]


def test_returned_list_is_a_copy():
    selector = StrategySelector.default()
    chain = selector.strategies_for("jpg")
    chain.clear()
    assert len(selector.strategies_for("jpg")) == 3


def test_register_override_is_local():
    selector = StrategySelector.default()
    sidecar_only = [SidecarStrategy()]
    selector.register(".PNG", sidecar_only)

    assert [s.name for s in selector.strategies_for("png")] == ["sidecar"]
    assert len(selector.strategies_for("jpg")) == 3


def test_custom_default_chain():
    sidecar = SidecarStrategy()
    selector = StrategySelector(strategies=[sidecar])
    assert selector.strategies_for("tif") == [sidecar]
