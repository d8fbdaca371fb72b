"""Logging helpers."""

from __future__ import annotations

import logging
import os
from typing import Optional

_LOGGING_CONFIGURED = False
_ROOT_NAME = "ssh_transfer"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger below the ``ssh_transfer`` namespace.

    The first call configures basic logging; the level comes from
    ``SSH_TRANSFER_LOG_LEVEL`` (default ``INFO``).
    """
    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        level_name = os.getenv("SSH_TRANSFER_LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level_name, logging.INFO),
            format="[%(asctime)s] %(levelname)s %(name)s - %(message)s",
        )
        _LOGGING_CONFIGURED = True
    if not name:
        return logging.getLogger(_ROOT_NAME)
    if name == _ROOT_NAME or name.startswith(_ROOT_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_NAME}.{name}")
