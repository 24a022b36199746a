"""Subprocess helpers for CLI-wrapping agents.

``stream_process`` runs one command with stdout/stderr read incrementally on
reader threads, forwarding each chunk to callbacks as it arrives. Retained
output is capped. The process is terminated (SIGTERM, grace period, SIGKILL)
when the abort event is set or the timeout expires, and is always reaped
before the function returns.
"""

from __future__ import annotations

import subprocess
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import IO

DEFAULT_MAX_OUTPUT_CHARS = 1_000_000
_POLL_INTERVAL = 0.05
_TERMINATE_GRACE = 3.0
_TRUNCATED_MARKER = "\n[truncated]"


class ProbeTimeout(Exception):
    """Raised when a short probe command exceeds its timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Probe timed out after {timeout}s")


@dataclass
class ProcessOutcome:
    stdout: str
    stderr: str
    returncode: int | None
    timed_out: bool = False
    aborted: bool = False


class _CappedBuffer:
    """Accumulates text chunks, retaining at most one character past *max_chars*."""

    def __init__(self, max_chars: int) -> None:
        self._max_chars = max_chars
        self._parts: list[str] = []
        self._size = 0

    def append(self, chunk: str) -> None:
        room = self._max_chars + 1 - self._size
        if room <= 0:
            return
        chunk = chunk[:room]
        self._parts.append(chunk)
        self._size += len(chunk)

    def text(self) -> str:
        text = "".join(self._parts)
        if len(text) <= self._max_chars:
            return text
        keep = max(self._max_chars - len(_TRUNCATED_MARKER), 0)
        return text[:keep] + _TRUNCATED_MARKER[: self._max_chars - keep]


def _pump(stream: IO[str], buf: _CappedBuffer, callback: Callable[[str], None] | None) -> None:
    for chunk in iter(stream.readline, ""):
        buf.append(chunk)
        if callback is not None:
            callback(chunk)
    stream.close()


def terminate_process(proc: subprocess.Popen, grace: float = _TERMINATE_GRACE) -> None:
    """SIGTERM *proc*, escalate to SIGKILL after *grace* seconds, then reap it."""
    if proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


def stream_process(
    cmd: list[str],
    *,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
    abort: threading.Event | None = None,
    on_stdout: Callable[[str], None] | None = None,
    on_stderr: Callable[[str], None] | None = None,
    on_spawn: Callable[[subprocess.Popen], None] | None = None,
    max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
) -> ProcessOutcome:
    """Run *cmd* (no shell), streaming its output line by line.

    Raises:
        OSError: If the process cannot be spawned (e.g. command not found).
    """
    proc = subprocess.Popen(
        cmd,
        cwd=cwd,
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
        bufsize=1,
    )
    if on_spawn is not None:
        on_spawn(proc)

    out_buf = _CappedBuffer(max_output_chars)
    err_buf = _CappedBuffer(max_output_chars)
    readers = [
        threading.Thread(target=_pump, args=(proc.stdout, out_buf, on_stdout), daemon=True),
        threading.Thread(target=_pump, args=(proc.stderr, err_buf, on_stderr), daemon=True),
    ]
    for t in readers:
        t.start()

    deadline = time.monotonic() + timeout if timeout is not None else None
    timed_out = aborted = False
    try:
        while proc.poll() is None:
            if abort is not None and abort.is_set():
                aborted = True
                break
            if deadline is not None and time.monotonic() >= deadline:
                timed_out = True
                break
            try:
                proc.wait(timeout=_POLL_INTERVAL)
            except subprocess.TimeoutExpired:
                pass
    finally:
        terminate_process(proc)
        for t in readers:
            t.join(timeout=_TERMINATE_GRACE)

    return ProcessOutcome(
        stdout=out_buf.text(),
        stderr=err_buf.text(),
        returncode=proc.returncode,
        timed_out=timed_out,
        aborted=aborted,
    )


def run_probe(cmd: list[str], *, timeout: float = 5.0) -> tuple[str, int]:
    """Run a short command (e.g. ``--version``) and return ``(stdout, returncode)``.

    Raises:
        ProbeTimeout: If the command exceeds *timeout* seconds.
        OSError: If the command cannot be spawned.
    """
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            timeout=timeout,
            stdin=subprocess.DEVNULL,
        )
    except subprocess.TimeoutExpired:
        raise ProbeTimeout(timeout) from None
    return result.stdout.decode("utf-8", errors="replace"), result.returncode
