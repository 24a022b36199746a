"""Centralized logging for agentpipe."""

from __future__ import annotations

import logging
import sys
import threading

_lock = threading.Lock()
_setup_done = False


class _Formatter(logging.Formatter):
    """Format log records as ``[tag] message``, stripping the ``agentpipe.`` prefix."""

    def format(self, record: logging.LogRecord) -> str:
        name = record.name
        if name.startswith("agentpipe."):
            name = name[len("agentpipe.") :]
        record.msg = f"[{name}] {record.msg}"
        return super().format(record)


def setup_logging(verbose: bool = False) -> None:
    """Configure the ``agentpipe`` root logger (idempotent).

    Attaches a single ``StreamHandler(sys.stderr)`` with level WARNING
    (or DEBUG when *verbose* is True). Sets ``propagate = False`` so
    messages don't bubble to the root logger.

    A later call with ``verbose=True`` still lowers the level even when
    the handler is already installed.
    """
    global _setup_done
    with _lock:
        logger = logging.getLogger("agentpipe")
        if _setup_done:
            if verbose:
                logger.setLevel(logging.DEBUG)
            return
        logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_Formatter())
        logger.addHandler(handler)
        logger.propagate = False
        _setup_done = True


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(f"agentpipe.{name}")``.

    Lazily calls :func:`setup_logging` on first use so that log output
    is routed to stderr even when callers skip explicit setup.
    """
    setup_logging()
    return logging.getLogger(f"agentpipe.{name}")
