from __future__ import annotations

"""
Legacy Arbiter replay decoder (`.avf`, decode-only).

Layout, as far as this decoder relies on it:

  u8      ignored
  4 bytes skipped
  u8      level: 3 beginner, 4 intermediate, 5 expert, 6 custom
          custom: u8 width-1, u8 height-1, u16 mine count
  mines   (row, col) byte pairs, 1-based

The rest is located by scanning for ASCII markers: `[d|` then start and end
time strings, a `|B` marker, the 3BV count up to `T`, the time result up to `]`.
Mouse events follow an 8-byte alignment scan, in 8-byte frames. A trailing
`Skin:` line is followed by the player name.
"""

from pathlib import Path
from typing import Final

from ..board import MINE, board_from_mine_mask
from ..debug_log import debug_log
from .cursor import ByteCursor, DecodeErrorReason, ReplayDecodeError
from .types import DEFAULT_CELL_PIXEL_SIZE, Video, VideoEvent, VideoHeader

SOFTWARE: Final[bytes] = b"Arbiter"

LEVEL_SIZES: Final[dict[int, tuple[int, int, int]]] = {
    # level: (width, height, mines)
    3: (8, 8, 10),
    4: (16, 16, 40),
    5: (30, 16, 99),
}
LEVEL_CUSTOM: Final[int] = 6

BUTTON_CODES: Final[dict[int, str]] = {
    1: "mv",
    3: "lc",
    5: "lr",
    9: "rc",
    17: "rr",
    33: "mc",
    65: "mr",
    145: "rr",
    193: "mr",
    11: "cc",
    21: "lr",
}

_FRAME_SIZE: Final[int] = 8
_SKIN_MARKER: Final[str] = "Skin:\r"


def _read_char(cursor: ByteCursor, what: str) -> str:
    if cursor.at_end():
        raise ReplayDecodeError(DecodeErrorReason.MISSING_SENTINEL, what, offset=cursor.offset)
    return cursor.read_char()


def _read_until(cursor: ByteCursor, terminator: str, what: str) -> str:
    out: list[str] = []
    while True:
        ch = _read_char(cursor, what)
        if ch == terminator:
            return "".join(out)
        out.append(ch)


def _latin1(text: str) -> bytes:
    return text.encode("latin-1")


def _read_header(cursor: ByteCursor) -> tuple[int, int, int, int]:
    if cursor.at_end():
        raise ReplayDecodeError(DecodeErrorReason.FILE_IS_EMPTY)
    cursor.read_u8()
    cursor.skip(4)
    level = cursor.read_u8()
    if level in LEVEL_SIZES:
        width, height, mine_num = LEVEL_SIZES[level]
    elif level == LEVEL_CUSTOM:
        width = cursor.read_u8() + 1
        height = cursor.read_u8() + 1
        mine_num = cursor.read_u16()
    else:
        raise ReplayDecodeError(DecodeErrorReason.INVALID_LEVEL, f"level={level}", offset=cursor.offset - 1)
    if mine_num > width * height:
        raise ReplayDecodeError(
            DecodeErrorReason.INVALID_BOARD_SIZE,
            f"{mine_num} mines on {height}x{width}",
            offset=cursor.offset,
        )
    return level, width, height, mine_num


def _read_mines(cursor: ByteCursor, *, width: int, height: int, mine_num: int) -> list[list[bool]]:
    mask = [[False] * width for _ in range(height)]
    for _ in range(mine_num):
        offset = cursor.offset
        row = cursor.read_u8()
        col = cursor.read_u8()
        if not (1 <= row <= height and 1 <= col <= width):
            raise ReplayDecodeError(
                DecodeErrorReason.INVALID_MINE_POSITION,
                f"mine at ({row}, {col}) outside {height}x{width}",
                offset=offset,
            )
        if mask[row - 1][col - 1]:
            raise ReplayDecodeError(
                DecodeErrorReason.INVALID_MINE_POSITION,
                f"duplicate mine at ({row}, {col})",
                offset=offset,
            )
        mask[row - 1][col - 1] = True
    return mask


def _read_params(cursor: ByteCursor) -> tuple[str, str, int, float]:
    window = ["\0", "\0", "\0"]
    while not (window[0] == "[" and window[1] in "0123" and window[2] == "|"):
        window = [window[1], window[2], _read_char(cursor, "'[d|' marker")]

    start_time = _read_until(cursor, "|", "start time")
    end_time = _read_until(cursor, "|", "end time")

    ch = _read_char(cursor, "'|B' marker")
    if ch == "|":
        pair = ["\0", "|"]
    elif ch == "B":
        pair = ["|", "B"]
    else:
        pair = ["\0", "\0"]
    while not (pair[0] == "|" and pair[1] == "B"):
        pair = [pair[1], _read_char(cursor, "'|B' marker")]

    bbbv_text = _read_until(cursor, "T", "3BV")
    try:
        bbbv = int(bbbv_text)
    except ValueError as exc:
        raise ReplayDecodeError(DecodeErrorReason.INVALID_PARAMS, f"3BV {bbbv_text!r}") from exc

    # Some recorders write a comma as the decimal separator.
    rtime_text = _read_until(cursor, "]", "time result").replace(",", ".")
    try:
        rtime = float(rtime_text)
    except ValueError as exc:
        raise ReplayDecodeError(DecodeErrorReason.INVALID_PARAMS, f"time {rtime_text!r}") from exc
    return start_time, end_time, bbbv, rtime


def _read_frame_byte(cursor: ByteCursor) -> int:
    if cursor.at_end():
        raise ReplayDecodeError(DecodeErrorReason.MISSING_SENTINEL, "event frame", offset=cursor.offset)
    return cursor.read_u8()


def _read_events(cursor: ByteCursor) -> list[VideoEvent]:
    frame = [0] * _FRAME_SIZE
    # Align on the first frame: byte 2 (the low time byte) is 1 and byte 1 is 0 or 1.
    while frame[2] != 1 or frame[1] > 1:
        frame[0], frame[1] = frame[1], frame[2]
        frame[2] = _read_frame_byte(cursor)
    for i in range(3, _FRAME_SIZE):
        frame[i] = _read_frame_byte(cursor)

    events: list[VideoEvent] = []
    while True:
        tag = BUTTON_CODES.get(frame[0])
        if tag is None:
            raise ReplayDecodeError(
                DecodeErrorReason.INVALID_VIDEO_EVENT,
                f"button code {frame[0]}",
                offset=cursor.offset - _FRAME_SIZE,
            )
        # Whole seconds are stored off by one; hundredths live in their own byte.
        time_ms = (((frame[6] << 8) | frame[2]) - 1) * 1000 + frame[4] * 10
        events.append(
            VideoEvent(
                time=time_ms / 1000.0,
                mouse=tag,
                x=(frame[1] << 8) | frame[3],
                y=(frame[5] << 8) | frame[7],
            )
        )
        frame = [_read_frame_byte(cursor) for _ in range(_FRAME_SIZE)]
        if frame[2] == 0 and frame[6] == 0:
            return events


def _read_player(cursor: ByteCursor) -> str:
    for marker in _SKIN_MARKER:
        while _read_char(cursor, "'Skin:' marker") != marker:
            pass
    return _read_until(cursor, "\r", "player name")


def loads(data: bytes) -> Video:
    cursor = ByteCursor(data)
    level, width, height, mine_num = _read_header(cursor)
    mask = _read_mines(cursor, width=width, height=height, mine_num=mine_num)
    board = board_from_mine_mask(mask)
    start_time, end_time, bbbv, rtime = _read_params(cursor)
    events = _read_events(cursor)
    player = _read_player(cursor)

    header = VideoHeader(
        height=height,
        width=width,
        mine_num=mine_num,
        cell_pixel_size=DEFAULT_CELL_PIXEL_SIZE,
        bbbv=bbbv,
        rtime_ms=int(round(rtime * 1000.0)),
        software=SOFTWARE,
        player_identifier=_latin1(player),
        start_time=_latin1(start_time),
        end_time=_latin1(end_time),
        level=level,
    )
    debug_log(
        "decode",
        format="avf",
        level=level,
        height=height,
        width=width,
        mines=sum(1 for row in board for value in row if value == MINE),
        events=len(events),
        size=len(data),
    )
    return Video(
        header=header,
        board=tuple(tuple(row) for row in board),
        events=tuple(events),
        checksum=None,
        source_format="avf",
    )


def load(path: Path) -> Video:
    return loads(Path(path).read_bytes())


__all__ = [
    "BUTTON_CODES",
    "LEVEL_CUSTOM",
    "LEVEL_SIZES",
    "SOFTWARE",
    "load",
    "loads",
]
