"""SIGINT/SIGTERM routing to a pipeline run's cancel path."""

from __future__ import annotations

import os
import signal
import sys
import threading
from collections.abc import Callable


def install_cancel_handler(on_cancel: Callable[[], None]) -> Callable[[], None]:
    """Route SIGINT/SIGTERM to *on_cancel*, with double-signal force-exit.

    First signal: calls *on_cancel* so the in-flight agent process is
    terminated and the runner returns a cancelled result.
    Second signal: calls ``os._exit(1)`` immediately.

    Returns a callable that restores the previously installed handlers.
    Outside the main thread this is a no-op (``signal.signal`` would raise).
    """
    if threading.current_thread() is not threading.main_thread():
        return lambda: None

    cancelling = threading.Event()

    def _handler(signum: int, frame: object) -> None:
        if cancelling.is_set():
            print("\nForce shutdown.", file=sys.stderr, flush=True)
            os._exit(1)
        cancelling.set()
        print("\nCancelling pipeline (press Ctrl-C again to force)...", file=sys.stderr, flush=True)
        on_cancel()

    previous = {
        signal.SIGINT: signal.signal(signal.SIGINT, _handler),
        signal.SIGTERM: signal.signal(signal.SIGTERM, _handler),
    }

    def _restore() -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    return _restore
