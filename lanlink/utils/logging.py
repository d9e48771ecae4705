"""
Logging helpers for LANLink.

The signaling core only ever calls ``logging.getLogger(__name__)``; the
entrypoints decide where records go by calling :func:`configure_logging`.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Union

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"

# aiortc and aioice are chatty at DEBUG; keep them one step above the app.
NOISY_LOGGERS = ("aioice", "aiortc")


def resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    candidate = logging.getLevelName(str(level).strip().upper())
    if isinstance(candidate, int):
        return candidate
    raise ValueError(f"Unknown log level '{level}'")


def configure_logging(level: Union[int, str] = logging.INFO, format: Optional[str] = None) -> None:
    """
    Ensure the root logger is configured exactly once.
    """

    if logging.getLogger().handlers:
        # Respect any user provided configuration.
        return

    numeric_level = resolve_level(level)
    logging.basicConfig(
        level=numeric_level,
        format=format or DEFAULT_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.INFO))
