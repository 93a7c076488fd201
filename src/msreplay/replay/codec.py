from __future__ import annotations

from pathlib import Path

from . import avf, evf
from .cursor import DecodeErrorReason, ReplayDecodeError
from .types import ReplayFormat, Video

_SUFFIX_FORMATS: dict[str, ReplayFormat] = {
    ".avf": "avf",
    ".evf": "evf",
}


class ReplayFormatError(ValueError):
    pass


def detect_format(path: Path) -> ReplayFormat:
    suffix = Path(path).suffix.lower()
    fmt = _SUFFIX_FORMATS.get(suffix)
    if fmt is None:
        known = ", ".join(sorted(_SUFFIX_FORMATS))
        raise ReplayFormatError(f"unknown replay suffix {suffix!r} (expected one of: {known})")
    return fmt


def load_video(data: bytes, fmt: ReplayFormat = "evf") -> Video:
    if not data:
        raise ReplayDecodeError(DecodeErrorReason.FILE_IS_EMPTY)
    if fmt == "avf":
        return avf.loads(data)
    if fmt == "evf":
        return evf.loads(data)
    raise ReplayFormatError(f"unknown replay format: {fmt!r}")


def load_video_file(path: Path, fmt: ReplayFormat | None = None) -> Video:
    path = Path(path)
    if fmt is None:
        fmt = detect_format(path)
    return load_video(path.read_bytes(), fmt)


def dump_video(video: Video) -> bytes:
    """Encode in the open format; the legacy format is read-only."""

    return evf.dumps(video)


def available_evf_path(base: Path) -> Path:
    """`name.evf`, or the first free `name(2).evf`, `name(3).evf`, ..."""

    base = Path(base)
    if base.suffix.lower() == ".evf":
        base = base.with_suffix("")
    candidate = base.with_name(f"{base.name}.evf")
    index = 2
    while candidate.exists():
        candidate = base.with_name(f"{base.name}({index}).evf")
        index += 1
    return candidate


def dump_video_file(video: Video, path: Path, *, overwrite: bool = False) -> Path:
    data = dump_video(video)
    path = Path(path)
    if overwrite:
        target = path if path.suffix.lower() == ".evf" else path.with_name(f"{path.name}.evf")
    else:
        target = available_evf_path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    return target
