"""Logging setup for dchat.

All modules obtain loggers through this module so that level, format and
destinations are driven by ``LoggingConfig``.
"""
from __future__ import annotations

import functools
import json
import logging
import logging.handlers
import time
from pathlib import Path
from typing import Any, Callable, Optional

from .config import get_config

ROOT_LOGGER = "dchat"

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        d = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            d["exc"] = self.formatException(record.exc_info)
        return json.dumps(d, ensure_ascii=False)


def configure_logging(*, force: bool = False) -> logging.Logger:
    """Attach handlers to the ``dchat`` root logger from the current config.

    Safe to call repeatedly; handlers are only installed once unless
    ``force`` is given.
    """
    global _configured
    root = logging.getLogger(ROOT_LOGGER)
    if _configured and not force:
        return root

    cfg = get_config().logging
    for h in list(root.handlers):
        root.removeHandler(h)

    root.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))
    if cfg.json_format:
        fmt: logging.Formatter = JsonFormatter()
    else:
        fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    if cfg.console_output:
        sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        root.addHandler(sh)
    if cfg.log_dir:
        log_dir = Path(cfg.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            log_dir / "dchat.log", maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        fh.setFormatter(fmt)
        root.addHandler(fh)
    if not root.handlers:
        root.addHandler(logging.NullHandler())

    root.propagate = False
    _configured = True
    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``dchat`` namespace."""
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def get_ledger_logger() -> logging.Logger:
    return get_logger("dchat.ledger")


def get_chain_logger() -> logging.Logger:
    return get_logger("dchat.chain")


def get_node_logger() -> logging.Logger:
    return get_logger("dchat.node")


class Timer:
    """Context manager measuring elapsed wall time in milliseconds."""

    def __init__(self) -> None:
        self.start: float = 0.0
        self.elapsed_ms: float = 0.0

    def __enter__(self) -> "Timer":
        self.start = time.perf_counter()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.elapsed_ms = (time.perf_counter() - self.start) * 1000


def log_operation(name: str, logger: Optional[logging.Logger] = None) -> Callable:
    """Decorator that logs the duration and failure of an operation."""

    def deco(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            log = logger or get_logger(fn.__module__)
            t = Timer()
            try:
                with t:
                    return fn(*args, **kwargs)
            except Exception as e:
                log.warning(f"{name} failed: {type(e).__name__}: {e}")
                raise
            finally:
                log.debug(f"{name} took {t.elapsed_ms:.1f}ms")
        return wrapper

    return deco
