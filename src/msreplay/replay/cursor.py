from __future__ import annotations

from enum import StrEnum


class DecodeErrorReason(StrEnum):
    FILE_IS_EMPTY = "file_is_empty"
    FILE_IS_TOO_SHORT = "file_is_too_short"
    INVALID_LEVEL = "invalid_level"
    INVALID_BOARD_SIZE = "invalid_board_size"
    INVALID_PARAMS = "invalid_params"
    INVALID_VIDEO_EVENT = "invalid_video_event"
    INVALID_MINE_POSITION = "invalid_mine_position"
    MISSING_SENTINEL = "missing_sentinel"


class ReplayDecodeError(ValueError):
    def __init__(self, reason: DecodeErrorReason, detail: str = "", *, offset: int | None = None) -> None:
        self.reason = DecodeErrorReason(reason)
        self.offset = offset
        message = str(self.reason)
        if detail:
            message += f": {detail}"
        if offset is not None:
            message += f" (offset={offset})"
        super().__init__(message)


class ByteCursor:
    """Big-endian reader over an immutable buffer.

    Reading past the end raises `ReplayDecodeError(FILE_IS_TOO_SHORT)`.
    """

    __slots__ = ("data", "offset")

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self.data = bytes(data)
        self.offset = int(offset)

    def __len__(self) -> int:
        return len(self.data)

    @property
    def remaining(self) -> int:
        return max(0, len(self.data) - self.offset)

    def at_end(self) -> bool:
        return self.offset >= len(self.data)

    def _take(self, count: int) -> bytes:
        end = self.offset + int(count)
        if count < 0 or end > len(self.data):
            raise ReplayDecodeError(
                DecodeErrorReason.FILE_IS_TOO_SHORT,
                f"need {count} byte(s), {self.remaining} left",
                offset=self.offset,
            )
        chunk = self.data[self.offset : end]
        self.offset = end
        return chunk

    def skip(self, count: int) -> None:
        self._take(count)

    def read_bytes(self, count: int) -> bytes:
        return self._take(count)

    def read_u8(self) -> int:
        return self._take(1)[0]

    def read_u16(self) -> int:
        return int.from_bytes(self._take(2), "big")

    def read_u24(self) -> int:
        return int.from_bytes(self._take(3), "big")

    def read_u32(self) -> int:
        return int.from_bytes(self._take(4), "big")

    def read_char(self) -> str:
        # Latin-1: every byte maps to exactly one code point.
        return chr(self.read_u8())


__all__ = [
    "ByteCursor",
    "DecodeErrorReason",
    "ReplayDecodeError",
]
