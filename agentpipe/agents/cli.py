"""Base class for agents that wrap an external command-line tool."""

from __future__ import annotations

import os
import re
import shutil
import subprocess
import threading
import time

from agentpipe.agents._process import (
    DEFAULT_MAX_OUTPUT_CHARS,
    ProbeTimeout,
    run_probe,
    stream_process,
)
from agentpipe.agents.base import (
    Artifacts,
    Capabilities,
    ExecutionAgent,
    ExecutionRequest,
    ExecutionResult,
    RoutingConfig,
    StreamCallbacks,
)

_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_FENCE_RE = re.compile(r"```\w*\n?")


def extract_code_blocks(output: str) -> list[str]:
    """Return the bodies of fenced code blocks in *output*, fences stripped."""
    return [_FENCE_RE.sub("", block).strip() for block in _CODE_BLOCK_RE.findall(output)]


class CliAgent(ExecutionAgent):
    """Runs a CLI tool once per attempt, streaming its output.

    Subclasses customise :meth:`build_command`, :meth:`format_task` and the
    class-level patterns used by :meth:`parse_output`.
    """

    install_hint = ""
    version_pattern: re.Pattern[str] = re.compile(r"([\d.]+)")
    file_pattern: re.Pattern[str] | None = re.compile(
        r"(?:created|modified|wrote|saved):\s*(\S+)", re.IGNORECASE
    )
    collect_code_blocks = True
    default_routing = RoutingConfig()
    default_timeout = 300_000

    def __init__(
        self,
        name: str,
        command: str,
        *,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
        capabilities: Capabilities | None = None,
        routing: RoutingConfig | None = None,
        default_timeout_ms: int | None = None,
        max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
    ) -> None:
        super().__init__(
            name,
            capabilities=capabilities,
            routing=routing or self.default_routing,
            default_timeout_ms=default_timeout_ms or self.default_timeout,
        )
        self.command = command
        self.args = list(args or [])
        self.env = dict(env or {})
        self.max_output_chars = max_output_chars
        self._process: subprocess.Popen | None = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    def check_availability(self) -> bool:
        if shutil.which(self.command) is None:
            return False
        try:
            _, returncode = run_probe([self.command, "--version"])
        except (ProbeTimeout, OSError):
            return False
        return returncode == 0

    def get_version(self) -> str | None:
        try:
            stdout, _ = run_probe([self.command, "--version"])
        except (ProbeTimeout, OSError):
            return None
        match = self.version_pattern.search(stdout)
        return match.group(1) if match else None

    # ------------------------------------------------------------------
    # Command construction
    # ------------------------------------------------------------------

    def format_task(self, request: ExecutionRequest) -> str:
        prompt = request.task
        if request.files:
            prompt += "\n\nFiles to work with:\n" + "\n".join(request.files)
        if request.previous_output:
            prompt += (
                "\n\n## Context from earlier steps\n\n"
                f"<prior-step-output>\n{request.previous_output}\n</prior-step-output>"
            )
        return prompt

    def build_command(self, request: ExecutionRequest) -> list[str]:
        return [self.command, *self.args, self.format_task(request)]

    def parse_output(self, output: str) -> Artifacts:
        artifacts = Artifacts()
        if self.file_pattern is not None:
            artifacts.files = [m.strip() for m in self.file_pattern.findall(output) if m.strip()]
        if self.collect_code_blocks:
            artifacts.code = extract_code_blocks(output)
        return artifacts

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(
        self,
        request: ExecutionRequest,
        callbacks: StreamCallbacks | None = None,
    ) -> ExecutionResult:
        callbacks = callbacks or StreamCallbacks()
        start = time.monotonic()
        timeout_ms = request.timeout_ms or self.default_timeout_ms

        if callbacks.on_start is not None:
            callbacks.on_start()

        try:
            outcome = stream_process(
                self.build_command(request),
                cwd=str(request.project_root),
                env={**os.environ, **self.env},
                timeout=timeout_ms / 1000,
                abort=request.abort,
                on_stdout=callbacks.on_output,
                on_stderr=callbacks.on_error,
                on_spawn=self._track,
                max_output_chars=self.max_output_chars,
            )
        except OSError as e:
            hint = f" {self.install_hint}" if self.install_hint else ""
            result = ExecutionResult(
                success=False,
                error=f"Failed to start '{self.command}': {e}.{hint}",
                tool_used=self.name,
            )
        else:
            result = ExecutionResult(
                success=outcome.returncode == 0 and not (outcome.timed_out or outcome.aborted),
                output=outcome.stdout,
                artifacts=self.parse_output(outcome.stdout),
                tool_used=self.name,
            )
            if outcome.timed_out:
                result.error = f"Execution timed out after {timeout_ms} ms"
            elif outcome.aborted:
                result.error = "Execution aborted"
            elif not result.success:
                result.error = outcome.stderr.strip() or f"Exit code: {outcome.returncode}"
        finally:
            self._track(None)

        result.duration_ms = int((time.monotonic() - start) * 1000)
        if callbacks.on_complete is not None:
            callbacks.on_complete(result)
        return result

    def stop(self) -> None:
        with self._lock:
            proc = self._process
        if proc is not None and proc.poll() is None:
            proc.terminate()

    def _track(self, proc: subprocess.Popen | None) -> None:
        with self._lock:
            self._process = proc
