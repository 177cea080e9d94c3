"""Logging helpers."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def parse_level(level: str) -> int:
    """Translate a string log level into logging constant."""
    value = getattr(logging, (level or "").upper(), None)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Configure root logger for the portal CLIs and the reference server."""
    logging.basicConfig(level=parse_level(level), format=LOG_FORMAT)
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(parse_level(level), logging.WARNING))
