"""
Centralized logging configuration.

Every record carries the label being validated (`%(label)s`, "-" outside
a validation), so interleaved output from concurrent validations can be
told apart.

Usage:
    from nfp_compliance.utils.log import get_logger, label_context
    logger = get_logger(__name__)
    with label_context("granola-bar.json"):
        logger.info("Loaded %d claims", 2)
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Iterator

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(label)s | %(message)s"
NO_LABEL = "-"

_current_label: ContextVar[str] = ContextVar("nfp_compliance_label", default=NO_LABEL)
_configured = False


class LabelContextFilter(logging.Filter):
    """Stamps each record with the label currently being validated."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.label = _current_label.get()
        return True


@contextmanager
def label_context(name: str) -> Iterator[None]:
    """Tag log records emitted inside the block (in this thread or task) with a label name."""
    token = _current_label.set(name or NO_LABEL)
    try:
        yield
    finally:
        _current_label.reset(token)


def current_label() -> str:
    return _current_label.get()


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure the nfp_compliance loggers. Call once at startup."""
    global _configured
    if _configured:
        return

    root = logging.getLogger("nfp_compliance")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    fmt = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(log_file), encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(fmt)
        handler.addFilter(LabelContextFilter())
        root.addHandler(handler)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module. Automatically namespaced under 'nfp_compliance'."""
    if not name.startswith("nfp_compliance"):
        name = f"nfp_compliance.{name}"
    return logging.getLogger(name)
