"""
Strategy Selector
=================

Maps a file extension to the ordered list of encoding strategies the guard
should try. Every built-in format gets the same chain:

    embedded_container -> legacy_property_rewrite -> sidecar

Per-extension overrides can be registered, so adding a format or changing
the order for one format stays a local change.
"""

import logging
from typing import Dict, List, Optional, Sequence

from src.core.metadata.strategies import EncodingStrategy, default_strategies
from src.core.settings import MetadataSettings


class StrategySelector:
    """
    Extension -> strategy chain lookup.

    Attributes:
        strategies: Default chain used for any extension without an override
    """

    def __init__(
        self,
        strategies: Optional[Sequence[EncodingStrategy]] = None,
        settings: Optional[MetadataSettings] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.logger = logger or logging.getLogger(__name__)
        if strategies is None:
            strategies = default_strategies(settings, self.logger)
        self.strategies: List[EncodingStrategy] = list(strategies)
        self._overrides: Dict[str, List[EncodingStrategy]] = {}

    @classmethod
    def default(cls, settings: Optional[MetadataSettings] = None, logger: Optional[logging.Logger] = None) -> "StrategySelector":
        return cls(settings=settings, logger=logger)

    def register(self, extension: str, strategies: Sequence[EncodingStrategy]):
        """Use a specific chain for one extension."""
        key = extension.lower().lstrip(".")
        self._overrides[key] = list(strategies)
        self.logger.debug(f"Registered strategy chain for .{key}: {[s.name for s in strategies]}")

    def strategies_for(self, extension: str) -> List[EncodingStrategy]:
        """Return a fresh list so callers cannot reorder the stored chain."""
        key = extension.lower().lstrip(".")
        return list(self._overrides.get(key, self.strategies))
