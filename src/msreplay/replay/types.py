from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Literal, TypeAlias

from ..board import MINE, Board, copy_board
from ..state_machine import MOUSE_TAGS, MouseTag

ReplayFormat: TypeAlias = Literal["avf", "evf"]

FLAG_COMPLETED: Final[int] = 1 << 7
FLAG_OFFICIAL: Final[int] = 1 << 6
FLAG_FAIR: Final[int] = 1 << 5

DEFAULT_CELL_PIXEL_SIZE: Final[int] = 16

# Tags the open format can carry; the remaining tags only exist in memory.
EVF_TAG_CODES: Final[dict[str, int]] = {
    "mv": 1,
    "lc": 2,
    "lr": 3,
    "rc": 4,
    "rr": 5,
    "mc": 6,
    "mr": 7,
    "pf": 8,
    "cc": 9,
}
EVF_CODE_TAGS: Final[dict[int, str]] = {code: tag for tag, code in EVF_TAG_CODES.items()}

__all__ = [
    "DEFAULT_CELL_PIXEL_SIZE",
    "EVF_CODE_TAGS",
    "EVF_TAG_CODES",
    "FLAG_COMPLETED",
    "FLAG_FAIR",
    "FLAG_OFFICIAL",
    "MOUSE_TAGS",
    "MouseTag",
    "ReplayFormat",
    "Video",
    "VideoEvent",
    "VideoHeader",
    "pack_header_flags",
    "unpack_header_flags",
]


def pack_header_flags(*, is_completed: bool, is_official: bool, is_fair: bool) -> int:
    flags = 0
    if is_completed:
        flags |= FLAG_COMPLETED
    if is_official:
        flags |= FLAG_OFFICIAL
    if is_fair:
        flags |= FLAG_FAIR
    return int(flags)


def unpack_header_flags(flags: int) -> tuple[bool, bool, bool]:
    flags = int(flags)
    return (
        bool(flags & FLAG_COMPLETED),
        bool(flags & FLAG_OFFICIAL),
        bool(flags & FLAG_FAIR),
    )


@dataclass(frozen=True, slots=True)
class VideoHeader:
    height: int
    width: int
    mine_num: int
    cell_pixel_size: int = DEFAULT_CELL_PIXEL_SIZE
    mode: int = 0
    # 3BV as written in the file; not trusted for statistics.
    bbbv: int = 0
    rtime_ms: int = 0
    is_completed: bool = False
    is_official: bool = False
    is_fair: bool = False
    software: bytes = b""
    player_identifier: bytes = b""
    race_identifier: bytes = b""
    uniqueness_identifier: bytes = b""
    start_time: bytes = b""
    end_time: bytes = b""
    country: bytes = b""
    # Legacy level code (3..6); 0 for formats without one.
    level: int = 0

    @property
    def rtime(self) -> float:
        return int(self.rtime_ms) / 1000.0

    @property
    def flags(self) -> int:
        return pack_header_flags(
            is_completed=self.is_completed,
            is_official=self.is_official,
            is_fair=self.is_fair,
        )


@dataclass(frozen=True, slots=True)
class VideoEvent:
    """One recorded mouse sample; `x`/`y` are pixels, `time` is seconds."""

    time: float
    mouse: str
    x: int
    y: int


@dataclass(frozen=True, slots=True)
class Video:
    header: VideoHeader
    board: tuple[tuple[int, ...], ...]
    events: tuple[VideoEvent, ...] = ()
    checksum: bytes | None = None
    source_format: ReplayFormat = "evf"

    @property
    def height(self) -> int:
        return int(self.header.height)

    @property
    def width(self) -> int:
        return int(self.header.width)

    def board_rows(self) -> Board:
        return copy_board(self.board)

    def mine_mask(self) -> list[list[bool]]:
        return [[value == MINE for value in row] for row in self.board]
