from __future__ import annotations

from collections.abc import Sequence

from .board import CELL_FLAGGED, CELL_REVEALED_MINE, CELL_UNOPENED, MINE, Board, board_shape, copy_board, count_mines
from .clock import Clock, MonotonicClock
from .replay.analysis import (
    EventRecord,
    ReplayTracker,
    SnapshotStore,
    StaticParams,
    VideoStats,
    compute_static_params,
    compute_stats,
)
from .replay.types import DEFAULT_CELL_PIXEL_SIZE, Video, VideoEvent, VideoHeader
from .state_machine import TERMINAL_STATES, GameBoardState, KeyDynamicParams, MouseState

SOFTWARE = b"msreplay"

_GAME_PHASES = frozenset({GameBoardState.PLAYING, GameBoardState.WIN, GameBoardState.LOSS})
_PRE_GAME_PHASES = frozenset({GameBoardState.READY, GameBoardState.PRE_FLAGING})


def _elapsed_ms(now: float, since: float) -> int:
    return max(0, int(round((float(now) - float(since)) * 1000.0)))


def _wall_micros(clock: Clock) -> bytes:
    return str(int(clock.wall_time().timestamp() * 1_000_000)).encode("ascii")


class LiveVideo:
    """Records a game while it is played.

    `step(tag, (row_px, col_px))` takes pixel positions measured from the top
    and the left of the board. Event times are milliseconds since the first
    event that left `Ready`; `rtime` runs from the first opening click to the
    click that ended the game. Going back to `Ready` discards the recording.
    """

    def __init__(
        self,
        board: Sequence[Sequence[int]],
        *,
        cell_pixel_size: int = DEFAULT_CELL_PIXEL_SIZE,
        clock: Clock | None = None,
    ) -> None:
        self.clock: Clock = clock if clock is not None else MonotonicClock()
        self.cell_pixel_size = int(cell_pixel_size)
        self._board = copy_board(board)
        self._reset_state()

    def _reset_state(self) -> None:
        self._tracker = ReplayTracker(self._board, cell_pixel_size=self.cell_pixel_size)
        self._video_start = 0.0
        self._game_start = 0.0
        self.rtime_ms = 0
        self.start_time = b""
        self.end_time = b""
        self._static_params: StaticParams | None = None
        self._stats: VideoStats | None = None

    def reset(self, board: Sequence[Sequence[int]] | None = None) -> None:
        if board is not None:
            self._board = copy_board(board)
        self._reset_state()

    def set_board(self, board: Sequence[Sequence[int]]) -> None:
        """Swap the ground truth before the game ends; dimensions must not change."""

        if self.game_board_state in TERMINAL_STATES:
            raise ValueError(f"cannot replace the board in phase {self.game_board_state.name}")
        if board_shape(board) != board_shape(self._board):
            raise ValueError(f"board shape {board_shape(board)} != {board_shape(self._board)}")
        self._board = copy_board(board)
        self._tracker.machine.board = copy_board(board)

    @property
    def height(self) -> int:
        return self._tracker.machine.row

    @property
    def width(self) -> int:
        return self._tracker.machine.column

    @property
    def mine_num(self) -> int:
        return count_mines(self._board)

    @property
    def board(self) -> Board:
        return copy_board(self._board)

    @property
    def game_board(self) -> Board:
        return self._tracker.machine.game_board

    @property
    def game_board_state(self) -> GameBoardState:
        return self._tracker.machine.game_board_state

    @property
    def mouse_state(self) -> MouseState:
        return self._tracker.machine.mouse_state

    @property
    def key_dynamic_params(self) -> KeyDynamicParams:
        return self._tracker.machine.key_dynamic_params

    @property
    def events(self) -> tuple[EventRecord, ...]:
        return tuple(self._tracker.records)

    @property
    def snapshots(self) -> SnapshotStore:
        return self._tracker.snapshots

    @property
    def is_completed(self) -> bool:
        return self.game_board_state == GameBoardState.WIN

    @property
    def rtime(self) -> float:
        return self.rtime_ms / 1000.0

    @property
    def static_params(self) -> StaticParams | None:
        return self._static_params

    @property
    def stats(self) -> VideoStats | None:
        """Post-game statistics; `None` until the game is won or lost."""

        return self._stats

    def step(self, tag: str, pos: tuple[int, int]) -> int:
        old_phase = self.game_board_state
        if old_phase in TERMINAL_STATES:
            return 0
        now = self.clock.monotonic()
        if old_phase == GameBoardState.READY:
            # Nothing before this event survives, so it starts the clock.
            self._video_start = now
        row_px, col_px = int(pos[0]), int(pos[1])
        event = VideoEvent(
            time=_elapsed_ms(now, self._video_start) / 1000.0,
            mouse=str(tag),
            x=col_px,
            y=row_px,
        )
        record = self._tracker.feed(event)
        phase = self.game_board_state

        if phase == GameBoardState.READY:
            self._tracker.discard_history()
            return 0
        if old_phase in _PRE_GAME_PHASES and phase in _GAME_PHASES:
            self._game_start = now
            self.start_time = _wall_micros(self.clock)
        if phase in (GameBoardState.WIN, GameBoardState.LOSS):
            self.rtime_ms = _elapsed_ms(now, self._game_start)
            self.end_time = _wall_micros(self.clock)
            self._gather_params_after_game()
        return record.useful_level

    def _gather_params_after_game(self) -> None:
        static = compute_static_params(self._board)
        self._static_params = static
        self._stats = compute_stats(
            self.key_dynamic_params,
            rtime=self.rtime,
            bbbv=static.bbbv,
            height=self.height,
            width=self.width,
            mine_num=self.mine_num,
            path=self._tracker.path,
        )

    def win_then_flag_all_mine(self) -> None:
        if self.game_board_state != GameBoardState.WIN:
            return
        for row in self.game_board:
            for j, value in enumerate(row):
                if value == CELL_UNOPENED:
                    row[j] = CELL_FLAGGED

    def loss_then_open_all_mine(self) -> None:
        """Show every unflagged mine; the machine never does this by itself."""

        if self.game_board_state != GameBoardState.LOSS:
            return
        game_board = self.game_board
        for i, row in enumerate(self._board):
            for j, value in enumerate(row):
                if value == MINE and game_board[i][j] == CELL_UNOPENED:
                    game_board[i][j] = CELL_REVEALED_MINE

    def to_video(
        self,
        *,
        player_identifier: bytes = b"",
        race_identifier: bytes = b"",
        uniqueness_identifier: bytes = b"",
        country: bytes = b"",
        mode: int = 0,
        is_official: bool = False,
        is_fair: bool = False,
        software: bytes = SOFTWARE,
    ) -> Video:
        if self.game_board_state not in (GameBoardState.WIN, GameBoardState.LOSS):
            raise ValueError(f"game is not over (phase {self.game_board_state.name})")
        static = self._static_params or compute_static_params(self._board)
        header = VideoHeader(
            height=self.height,
            width=self.width,
            mine_num=self.mine_num,
            cell_pixel_size=self.cell_pixel_size,
            mode=int(mode),
            bbbv=static.bbbv,
            rtime_ms=self.rtime_ms,
            is_completed=self.is_completed,
            is_official=bool(is_official),
            is_fair=bool(is_fair),
            software=bytes(software),
            player_identifier=bytes(player_identifier),
            race_identifier=bytes(race_identifier),
            uniqueness_identifier=bytes(uniqueness_identifier),
            start_time=self.start_time,
            end_time=self.end_time,
            country=bytes(country),
        )
        return Video(
            header=header,
            board=tuple(tuple(row) for row in self._board),
            events=tuple(
                VideoEvent(time=record.time, mouse=record.mouse, x=record.x, y=record.y)
                for record in self._tracker.records
            ),
            checksum=None,
            source_format="evf",
        )


__all__ = [
    "LiveVideo",
    "SOFTWARE",
]
