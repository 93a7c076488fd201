from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs

APP_NAME = "msreplay"

RUNTIME_DIR_ENV = "MSREPLAY_RUNTIME_DIR"
STRICT_TRANSITIONS_ENV = "MSREPLAY_STRICT_TRANSITIONS"


def _app_dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=False)


def default_runtime_dir() -> Path:
    override = os.environ.get(RUNTIME_DIR_ENV)
    if override:
        return Path(override).expanduser().resolve()
    return Path(_app_dirs().user_data_path).resolve()


def strict_transitions_enabled() -> bool:
    raw = str(os.environ.get(STRICT_TRANSITIONS_ENV, "1")).strip().lower()
    return raw not in {"0", "false", "off", "no"}


__all__ = [
    "APP_NAME",
    "RUNTIME_DIR_ENV",
    "STRICT_TRANSITIONS_ENV",
    "default_runtime_dir",
    "strict_transitions_enabled",
]
