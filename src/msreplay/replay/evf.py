from __future__ import annotations

import io
from pathlib import Path
from typing import Final

from construct import Byte, Bytes, ConstructError, GreedyBytes, Int16ub, Int24ub, NullTerminated, StreamError, Struct

from ..board import MINE, board_from_mine_mask, board_shape, count_mines
from ..debug_log import debug_log
from .cursor import DecodeErrorReason, ReplayDecodeError
from .types import EVF_CODE_TAGS, EVF_TAG_CODES, Video, VideoEvent, VideoHeader, unpack_header_flags

VERSION: Final[int] = 0
CHECKSUM_SIZE: Final[int] = 32

TAG_END_WITH_CHECKSUM: Final[int] = 0
TAG_END_WITHOUT_CHECKSUM: Final[int] = 255

U8_MAX: Final[int] = 0xFF
U16_MAX: Final[int] = 0xFFFF
U24_MAX: Final[int] = 0xFFFFFF

STRING_FIELDS: Final[tuple[str, ...]] = (
    "software",
    "player_identifier",
    "race_identifier",
    "uniqueness_identifier",
    "start_time",
    "end_time",
    "country",
)


class ReplayEncodeError(ValueError):
    pass


_CSTRING = NullTerminated(GreedyBytes)

_HEADER = Struct(
    "version" / Byte,
    "flags" / Byte,
    "height" / Byte,
    "width" / Byte,
    "mine_num" / Int16ub,
    "cell_pixel_size" / Byte,
    "mode" / Int16ub,
    "bbbv" / Int16ub,
    "rtime_ms" / Int24ub,
    "software" / _CSTRING,
    "player_identifier" / _CSTRING,
    "race_identifier" / _CSTRING,
    "uniqueness_identifier" / _CSTRING,
    "start_time" / _CSTRING,
    "end_time" / _CSTRING,
    "country" / _CSTRING,
)

_EVENT_BODY = Struct(
    "time_ms" / Int24ub,
    "x" / Int16ub,
    "y" / Int16ub,
)

_EVENT = Struct(
    "tag" / Byte,
    "body" / _EVENT_BODY,
)

_CHECKSUM = Bytes(CHECKSUM_SIZE)


def bitmap_size(height: int, width: int) -> int:
    return (int(height) * int(width) + 7) // 8


def pack_mine_bitmap(board: tuple[tuple[int, ...], ...] | list[list[int]]) -> bytes:
    """Row-major, most significant bit first, 1 = mine."""

    height, width = board_shape(board)
    out = bytearray(bitmap_size(height, width))
    index = 0
    for row in board:
        for value in row:
            if value == MINE:
                out[index >> 3] |= 0x80 >> (index & 7)
            index += 1
    return bytes(out)


def unpack_mine_bitmap(data: bytes, *, height: int, width: int) -> list[list[bool]]:
    mask: list[list[bool]] = []
    index = 0
    for _ in range(int(height)):
        row: list[bool] = []
        for _ in range(int(width)):
            row.append(bool(data[index >> 3] & (0x80 >> (index & 7))))
            index += 1
        mask.append(row)
    return mask


def _short(exc: Exception, what: str) -> ReplayDecodeError:
    return ReplayDecodeError(DecodeErrorReason.FILE_IS_TOO_SHORT, f"{what}: {exc}")


def loads(data: bytes) -> Video:
    if not data:
        raise ReplayDecodeError(DecodeErrorReason.FILE_IS_EMPTY)
    stream = io.BytesIO(data)

    try:
        header_raw = _HEADER.parse_stream(stream)
    except StreamError as exc:
        raise _short(exc, "header") from exc
    except ConstructError as exc:
        raise ReplayDecodeError(DecodeErrorReason.INVALID_PARAMS, str(exc)) from exc

    height = int(header_raw["height"])
    width = int(header_raw["width"])
    if height == 0 or width == 0:
        raise ReplayDecodeError(DecodeErrorReason.INVALID_BOARD_SIZE, f"{height}x{width}")

    try:
        bitmap = bytes(Bytes(bitmap_size(height, width)).parse_stream(stream))
    except StreamError as exc:
        raise _short(exc, "mine bitmap") from exc
    board = board_from_mine_mask(unpack_mine_bitmap(bitmap, height=height, width=width))

    events: list[VideoEvent] = []
    checksum: bytes | None = None
    try:
        while True:
            offset = stream.tell()
            tag_code = int(Byte.parse_stream(stream))
            if tag_code == TAG_END_WITH_CHECKSUM:
                checksum = bytes(_CHECKSUM.parse_stream(stream))
                break
            if tag_code == TAG_END_WITHOUT_CHECKSUM:
                break
            tag = EVF_CODE_TAGS.get(tag_code)
            if tag is None:
                raise ReplayDecodeError(DecodeErrorReason.INVALID_VIDEO_EVENT, f"tag {tag_code}", offset=offset)
            body = _EVENT_BODY.parse_stream(stream)
            events.append(
                VideoEvent(
                    time=int(body["time_ms"]) / 1000.0,
                    mouse=tag,
                    x=int(body["x"]),
                    y=int(body["y"]),
                )
            )
    except StreamError as exc:
        raise _short(exc, f"event {len(events)}") from exc

    is_completed, is_official, is_fair = unpack_header_flags(int(header_raw["flags"]))
    header = VideoHeader(
        height=height,
        width=width,
        mine_num=int(header_raw["mine_num"]),
        cell_pixel_size=int(header_raw["cell_pixel_size"]),
        mode=int(header_raw["mode"]),
        bbbv=int(header_raw["bbbv"]),
        rtime_ms=int(header_raw["rtime_ms"]),
        is_completed=is_completed,
        is_official=is_official,
        is_fair=is_fair,
        **{name: bytes(header_raw[name]) for name in STRING_FIELDS},
    )
    debug_log(
        "decode",
        format="evf",
        height=height,
        width=width,
        mines=header.mine_num,
        events=len(events),
        checksum=checksum is not None,
        size=len(data),
    )
    return Video(
        header=header,
        board=tuple(tuple(row) for row in board),
        events=tuple(events),
        checksum=checksum,
        source_format="evf",
    )


def load(path: Path) -> Video:
    return loads(Path(path).read_bytes())


def event_time_ms(event: VideoEvent) -> int:
    return int(round(float(event.time) * 1000.0))


def _check_range(name: str, value: int, maximum: int) -> None:
    if not (0 <= int(value) <= maximum):
        raise ReplayEncodeError(f"{name}={value} does not fit in [0, {maximum}]")


def validate_video(video: Video) -> None:
    """Reject anything `dumps` could not write or `loads` would read back differently."""

    header = video.header
    _check_range("height", header.height, U8_MAX)
    _check_range("width", header.width, U8_MAX)
    if header.height == 0 or header.width == 0:
        raise ReplayEncodeError(f"empty board: {header.height}x{header.width}")
    rows = len(video.board)
    if rows != header.height:
        raise ReplayEncodeError(f"board has {rows} rows, header says height={header.height}")
    for index, row in enumerate(video.board):
        if len(row) != header.width:
            raise ReplayEncodeError(f"board row {index} has {len(row)} cells, header says width={header.width}")

    _check_range("mine_num", header.mine_num, U16_MAX)
    mines = count_mines(video.board)
    if mines != header.mine_num:
        raise ReplayEncodeError(f"board has {mines} mines, header says mine_num={header.mine_num}")
    expected = board_from_mine_mask(video.mine_mask())
    if [list(row) for row in video.board] != expected:
        raise ReplayEncodeError("board numbers do not match the mine layout")

    _check_range("cell_pixel_size", header.cell_pixel_size, U8_MAX)
    _check_range("mode", header.mode, U16_MAX)
    _check_range("bbbv", header.bbbv, U16_MAX)
    _check_range("rtime_ms", header.rtime_ms, U24_MAX)
    for name in STRING_FIELDS:
        value = getattr(header, name)
        if not isinstance(value, (bytes, bytearray)):
            raise ReplayEncodeError(f"{name} must be bytes, got {type(value).__name__}")
        if b"\x00" in value:
            raise ReplayEncodeError(f"{name} contains a NUL byte")

    for index, event in enumerate(video.events):
        if event.mouse not in EVF_TAG_CODES:
            raise ReplayEncodeError(f"event {index}: tag {event.mouse!r} has no open-format code")
        time_ms = event_time_ms(event)
        if time_ms / 1000.0 != float(event.time):
            raise ReplayEncodeError(f"event {index}: time {event.time!r} is not a whole number of milliseconds")
        _check_range(f"event {index} time_ms", time_ms, U24_MAX)
        _check_range(f"event {index} x", event.x, U16_MAX)
        _check_range(f"event {index} y", event.y, U16_MAX)

    if video.checksum is not None and len(video.checksum) != CHECKSUM_SIZE:
        raise ReplayEncodeError(f"checksum must be {CHECKSUM_SIZE} bytes, got {len(video.checksum)}")


def dumps(video: Video) -> bytes:
    validate_video(video)
    header = video.header
    out = io.BytesIO()
    try:
        _HEADER.build_stream(
            {
                "version": VERSION,
                "flags": header.flags,
                "height": int(header.height),
                "width": int(header.width),
                "mine_num": int(header.mine_num),
                "cell_pixel_size": int(header.cell_pixel_size),
                "mode": int(header.mode),
                "bbbv": int(header.bbbv),
                "rtime_ms": int(header.rtime_ms),
                **{name: bytes(getattr(header, name)) for name in STRING_FIELDS},
            },
            out,
        )
        out.write(pack_mine_bitmap(video.board))
        for event in video.events:
            _EVENT.build_stream(
                {
                    "tag": EVF_TAG_CODES[event.mouse],
                    "body": {"time_ms": event_time_ms(event), "x": int(event.x), "y": int(event.y)},
                },
                out,
            )
        if video.checksum is None:
            Byte.build_stream(TAG_END_WITHOUT_CHECKSUM, out)
        else:
            Byte.build_stream(TAG_END_WITH_CHECKSUM, out)
            _CHECKSUM.build_stream(bytes(video.checksum), out)
    except ConstructError as exc:
        raise ReplayEncodeError(str(exc)) from exc
    return out.getvalue()


def dump(video: Video, path: Path) -> None:
    data = dumps(video)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


__all__ = [
    "CHECKSUM_SIZE",
    "ReplayEncodeError",
    "STRING_FIELDS",
    "VERSION",
    "bitmap_size",
    "dump",
    "dumps",
    "event_time_ms",
    "load",
    "loads",
    "pack_mine_bitmap",
    "unpack_mine_bitmap",
    "validate_video",
]
