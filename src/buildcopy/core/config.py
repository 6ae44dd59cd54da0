"""Runtime settings resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class UpstreamFilterStrategy(str, Enum):
    """Order in which the triggering selector tries upstream builds."""

    USE_GLOBAL_SETTING = "UseGlobalSetting"
    USE_OLDEST = "UseOldest"
    USE_NEWEST = "UseNewest"


@dataclass(frozen=True)
class Settings:
    """
    Process-wide settings.

    Attributes:
        home: Root directory of the on-disk build registry.
        upstream_filter_strategy: Default strategy used by triggering
                                  selectors configured with
                                  `UseGlobalSetting`.
        verbose: Whether diagnostic (debug) logs are emitted.
    """

    _HOME_ENV = "BUILDCOPY_HOME"
    _STRATEGY_ENV = "BUILDCOPY_UPSTREAM_STRATEGY"
    _VERBOSE_ENV = "BUILDCOPY_VERBOSE"

    home: Path = Path.home() / ".buildcopy"
    upstream_filter_strategy: UpstreamFilterStrategy = UpstreamFilterStrategy.USE_OLDEST
    verbose: bool = False

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the environment, ignoring invalid values."""
        raw_home = os.getenv(cls._HOME_ENV)
        home = Path(raw_home).expanduser() if raw_home else Path.home() / ".buildcopy"

        strategy = UpstreamFilterStrategy.USE_OLDEST
        raw_strategy = os.getenv(cls._STRATEGY_ENV, "").strip()
        if raw_strategy:
            try:
                strategy = UpstreamFilterStrategy(raw_strategy)
            except ValueError:
                strategy = UpstreamFilterStrategy.USE_OLDEST
            if strategy is UpstreamFilterStrategy.USE_GLOBAL_SETTING:
                # the global setting cannot defer to itself
                strategy = UpstreamFilterStrategy.USE_OLDEST

        verbose = os.getenv(cls._VERBOSE_ENV, "").strip().lower() in {"1", "true", "yes"}
        return cls(home=home, upstream_filter_strategy=strategy, verbose=verbose)
