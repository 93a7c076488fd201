from __future__ import annotations

"""Plain-text trace sink for decode and analysis runs.

One line per record: `<utc iso timestamp> event=<name> key=value ...` with
keys sorted. Nothing is written until `init_debug_log` picks a file.
"""

from collections.abc import Iterator
from contextlib import contextmanager
import datetime as dt
import enum
import os
from pathlib import Path
from threading import Lock

from . import __version__

_TRACE_LOCK = Lock()
_TRACE_PATH: Path | None = None


def _format_value(value: object) -> str:
    if isinstance(value, enum.Enum):
        text = value.name
    elif isinstance(value, (bytes, bytearray)):
        text = bytes(value).decode("latin-1")
    elif isinstance(value, float):
        text = f"{value:.3f}"
    else:
        text = str(value)
    return text.replace("\n", "\\n").replace("\r", "\\r")


def debug_log_path() -> Path | None:
    with _TRACE_LOCK:
        return _TRACE_PATH


def init_debug_log(*, base_dir: Path, command: str = "analyse", replay: Path | None = None) -> Path:
    """Start a trace file under `<base_dir>/logs/` and make it the active sink."""
    command_name = str(command).strip().lower() or "unknown"
    stamp = dt.datetime.now(dt.timezone.utc).strftime("%Y%m%dT%H%M%S.%fZ")
    path = Path(base_dir) / "logs" / f"msreplay-{command_name}-pid{os.getpid()}-{stamp}.log"
    path.parent.mkdir(parents=True, exist_ok=True)

    with _TRACE_LOCK:
        global _TRACE_PATH
        _TRACE_PATH = path

    fields: dict[str, object] = {"command": command_name, "version": __version__}
    if replay is not None:
        fields["replay"] = Path(replay).name
    debug_log("init", **fields)
    return path


def debug_log(event: str, **fields: object) -> None:
    with _TRACE_LOCK:
        path = _TRACE_PATH
        if path is None:
            return
        parts = [dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds"), f"event={str(event).strip()}"]
        parts.extend(f"{key}={_format_value(fields[key])}" for key in sorted(fields))
        with path.open("a", encoding="utf-8") as handle:
            handle.write(" ".join(parts) + "\n")


def close_debug_log() -> None:
    with _TRACE_LOCK:
        global _TRACE_PATH
        _TRACE_PATH = None


@contextmanager
def debug_log_session(*, base_dir: Path, command: str, replay: Path | None = None) -> Iterator[Path]:
    path = init_debug_log(base_dir=base_dir, command=command, replay=replay)
    try:
        yield path
    finally:
        debug_log("close", command=command)
        close_debug_log()


__all__ = [
    "close_debug_log",
    "debug_log",
    "debug_log_path",
    "debug_log_session",
    "init_debug_log",
]
