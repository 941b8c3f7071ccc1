"""
Structured logging helpers: one JSON record per event.

Lambda's runtime installs a root handler; the analyzer CLI and local runs
get a plain stream handler from `configure_logging`.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

logger = logging.getLogger("intake_bot")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _level_from_env(default: int) -> int:
    raw = (os.getenv("LOG_LEVEL") or "").strip()
    if not raw:
        return default
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw.upper())
    return level if isinstance(level, int) else default


def configure_logging(default: int = logging.INFO) -> int:
    """Apply LOG_LEVEL to the package logger; returns the level in effect."""
    level = _level_from_env(default)
    logger.setLevel(level)
    if not logging.getLogger().handlers:
        logging.basicConfig(format=LOG_FORMAT)
    return level


def rid(context: Any) -> str | None:
    return getattr(context, "aws_request_id", None)


def log_event(msg: str, level: int = logging.INFO, **fields: Any) -> None:
    try:
        rec = {"msg": msg, **fields}
        logger.log(level, json.dumps(rec, ensure_ascii=False, default=str))
    except (TypeError, ValueError):
        logger.log(level, "%s | %s", msg, fields)
