# app/core/log_config.py
from __future__ import annotations

import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str | None = None) -> None:
    """
    Configure the root logger once. Safe to call more than once.
    """
    root = logging.getLogger()
    lvl = (level or settings.LOG_LEVEL or "INFO").upper()
    root.setLevel(lvl)
    if any(getattr(h, "_ipd_handler", False) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._ipd_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
