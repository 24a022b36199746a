"""Data-driven rule tables for task-type routing.

Two ordered tables live here so they can be read and tested on their own:

* ``TASK_REQUIREMENTS``: the capability flags an agent must have before it
  may be routed a task of a given type. Types missing from the table have no
  requirements.
* ``TASK_KEYWORDS``: keyword rules used to guess a task type from free-form
  task text when a step does not declare one. First match wins.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentpipe.agents.base import Capabilities

DEFAULT_TASK_TYPE = "code"

_WRITES_CODE = ("can_code", "can_write_files")

TASK_REQUIREMENTS: dict[str, tuple[str, ...]] = {
    "code": _WRITES_CODE,
    "refactor": _WRITES_CODE,
    "test": _WRITES_CODE,
    "analyze": ("can_read_files",),
    "review": ("can_read_files",),
    "explain": ("can_read_files",),
    "debug": ("can_code", "can_execute_shell"),
    "document": ("can_write_files",),
    "chat": ("can_chat",),
    "shell": ("can_execute_shell",),
}

TASK_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("analyze", "review"), "analyze"),
    (("test", "spec"), "test"),
    (("refactor", "cleanup"), "refactor"),
    (("debug", "fix bug"), "debug"),
    (("document", "readme"), "document"),
    (("explain", "what is"), "explain"),
    (("implement", "create", "add"), "code"),
)


def meets_requirements(capabilities: Capabilities, task_type: str) -> bool:
    """Return True if *capabilities* satisfy every flag *task_type* requires."""
    required = TASK_REQUIREMENTS.get(task_type, ())
    return all(getattr(capabilities, flag) for flag in required)


def infer_task_type(task: str) -> str:
    """Guess a task type from substrings of *task* (case-insensitive)."""
    lowered = task.lower()
    for keywords, task_type in TASK_KEYWORDS:
        if any(k in lowered for k in keywords):
            return task_type
    return DEFAULT_TASK_TYPE
