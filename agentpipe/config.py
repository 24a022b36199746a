"""Centralized path configuration for agentpipe.

Respects ``AGENTPIPE_HOME`` env var, then ``XDG_DATA_HOME/agentpipe``,
and falls back to ``~/.agentpipe``.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

PROJECT_DIR_NAME = ".agentpipe"


@lru_cache(maxsize=1)
def get_home_dir() -> Path:
    """Return the agentpipe data directory.

    Resolution order:
    1. ``AGENTPIPE_HOME`` environment variable
    2. ``XDG_DATA_HOME/agentpipe`` (if ``XDG_DATA_HOME`` is set)
    3. ``~/.agentpipe``
    """
    env = os.environ.get("AGENTPIPE_HOME")
    if env:
        return Path(env)
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "agentpipe"
    return Path.home() / ".agentpipe"


def get_pipelines_dir() -> Path:
    return get_home_dir() / "pipelines"


def get_agents_config_path() -> Path:
    return get_home_dir() / "agents.yaml"


def get_global_env_path() -> Path:
    return get_home_dir() / ".env"


def get_project_dir(project_root: Path) -> Path:
    """Return the per-project ``.agentpipe`` directory under *project_root*."""
    return project_root / PROJECT_DIR_NAME


def load_dotenv_files(project_root: Path) -> None:
    """Load .env files, project first, then global as fallback.

    Uses ``override=False`` so existing env vars always win.
    Project is loaded before global so project-local values take precedence.
    """
    from dotenv import load_dotenv

    local_env = project_root / ".env"
    if local_env.is_file():
        load_dotenv(local_env, override=False)

    global_env = get_global_env_path()
    if global_env.is_file():
        load_dotenv(global_env, override=False)
