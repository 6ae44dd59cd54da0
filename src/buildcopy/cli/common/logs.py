"""Logging setup for the CLI."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

from buildcopy.cli.common.output import console
from buildcopy.core.context import LOGGER


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Route the `buildcopy` logger through a rich handler on the CLI console."""
    for handler in list(LOGGER.handlers):
        if isinstance(handler, RichHandler):
            LOGGER.removeHandler(handler)
    handler = RichHandler(console=console, show_time=False, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    LOGGER.addHandler(handler)
    LOGGER.setLevel(logging.DEBUG if verbose else logging.INFO)
    LOGGER.propagate = False
    return LOGGER
