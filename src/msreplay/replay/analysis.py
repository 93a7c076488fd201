from __future__ import annotations

"""
Batch replay driver.

`analyse_video` folds the recorded events through a fresh `MinesweeperBoard`:

  - snapshot 0 is the all-unopened board, so every event resolves to a board
  - an event that changes the visible board appends one snapshot; everything
    else shares the previous one
  - move events are not stepped but still get counters and snapshot ids
  - path length accumulates between consecutive in-board samples, scaled to a
    16 px cell

Statistics are derived from the final counters; any ratio with a zero
denominator is 0.
"""

import math
import warnings
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Final, TypeAlias

from ..board import CELL_UNOPENED, Board, cal_bbbv, cal_cell_nums, cal_isl, cal_op, copy_board
from ..debug_log import debug_log
from ..paths import strict_transitions_enabled
from ..state_machine import (
    MOVE_TAG,
    GameBoardState,
    ImpossibleTransitionError,
    KeyDynamicParams,
    MinesweeperBoard,
    MouseState,
)
from .checks import ReplayTransitionWarning, warn_on_bbbv_mismatch
from .types import Video, VideoEvent

CANONICAL_CELL_PIXEL_SIZE: Final[int] = 16

# (height, width, mines) -> stnb constant.
STNB_CONSTANTS: Final[dict[tuple[int, int, int], float]] = {
    (8, 8, 10): 47.22,
    (16, 16, 40): 153.73,
    (16, 30, 99): 435.001,
}

_PATH_PHASES: Final[frozenset[GameBoardState]] = frozenset(
    {GameBoardState.PLAYING, GameBoardState.WIN, GameBoardState.LOSS}
)

Snapshot: TypeAlias = tuple[tuple[int, ...], ...]


class ReplayAnalysisError(ValueError):
    def __init__(self, message: str, *, event_index: int | None = None) -> None:
        self.event_index = event_index
        if event_index is not None:
            message = f"event {event_index}: {message}"
        super().__init__(message)


class SnapshotStore:
    """Append-only list of distinct visible boards, addressed by index."""

    __slots__ = ("_boards",)

    def __init__(self, height: int, width: int) -> None:
        self._boards: list[Snapshot] = [tuple((CELL_UNOPENED,) * int(width) for _ in range(int(height)))]

    def __len__(self) -> int:
        return len(self._boards)

    def __getitem__(self, index: int) -> Snapshot:
        return self._boards[index]

    def __iter__(self) -> Iterator[Snapshot]:
        return iter(self._boards)

    @property
    def latest_id(self) -> int:
        return len(self._boards) - 1

    def push_if_changed(self, board: Sequence[Sequence[int]]) -> bool:
        snapshot = tuple(tuple(row) for row in board)
        if snapshot == self._boards[-1]:
            return False
        self._boards.append(snapshot)
        return True

    def board(self, index: int) -> Board:
        return copy_board(self._boards[index])


@dataclass(frozen=True, slots=True)
class EventRecord:
    index: int
    time: float
    mouse: str
    x: int
    y: int
    useful_level: int
    prior_game_board_id: int
    next_game_board_id: int
    mouse_state: MouseState
    game_board_state: GameBoardState
    key_dynamic_params: KeyDynamicParams
    path: float = 0.0
    # Lenient mode only: the machine rejected this event.
    skipped: bool = False


@dataclass(frozen=True, slots=True)
class StaticParams:
    bbbv: int
    recorded_bbbv: int
    op: int
    isl: int
    cell_nums: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class VideoStats:
    rtime: float
    left: int
    right: int
    double: int
    cl: int
    flag: int
    ce: int
    bbbv_solved: int
    left_s: float
    right_s: float
    double_s: float
    cl_s: float
    flag_s: float
    ce_s: float
    bbbv_s: float
    rqp: float
    qg: float
    etime: float
    stnb: float
    ioe: float
    corr: float
    thrp: float
    path: float

    @property
    def rtime_ms(self) -> int:
        return int(round(self.rtime * 1000.0))


def _ratio(num: float, den: float) -> float:
    if not den:
        return 0.0
    return float(num) / float(den)


def stnb_constant(height: int, width: int, mine_num: int) -> float:
    return STNB_CONSTANTS.get((int(height), int(width), int(mine_num)), 0.0)


def compute_stats(
    params: KeyDynamicParams,
    *,
    rtime: float,
    bbbv: int,
    height: int,
    width: int,
    mine_num: int,
    path: float = 0.0,
) -> VideoStats:
    rtime = max(0.0, float(rtime))
    cl = params.cl
    solved = int(params.bbbv_solved)

    stnb = 0.0
    c = stnb_constant(height, width, mine_num)
    if c and rtime > 0 and bbbv > 0:
        stnb = c * bbbv / rtime**1.7 * math.sqrt(solved / bbbv)

    return VideoStats(
        rtime=rtime,
        left=int(params.left),
        right=int(params.right),
        double=int(params.double),
        cl=cl,
        flag=int(params.flag),
        ce=int(params.ce),
        bbbv_solved=solved,
        left_s=_ratio(params.left, rtime),
        right_s=_ratio(params.right, rtime),
        double_s=_ratio(params.double, rtime),
        cl_s=_ratio(cl, rtime),
        flag_s=_ratio(params.flag, rtime),
        ce_s=_ratio(params.ce, rtime),
        bbbv_s=_ratio(solved, rtime),
        rqp=_ratio(rtime * rtime, solved),
        qg=_ratio(rtime**1.7, solved),
        etime=_ratio(rtime, solved) * bbbv,
        stnb=stnb,
        ioe=_ratio(solved, cl),
        corr=_ratio(params.ce, cl),
        thrp=_ratio(solved, params.ce),
        path=float(path),
    )


def compute_static_params(board: Sequence[Sequence[int]], *, recorded_bbbv: int = 0) -> StaticParams:
    return StaticParams(
        bbbv=cal_bbbv(board),
        recorded_bbbv=int(recorded_bbbv),
        op=cal_op(board),
        isl=cal_isl(board),
        cell_nums=cal_cell_nums(board),
    )


@dataclass(frozen=True, slots=True)
class AnalysedVideo:
    video: Video
    events: tuple[EventRecord, ...]
    snapshots: SnapshotStore
    static_params: StaticParams
    stats: VideoStats
    game_board_state: GameBoardState
    delta_time: float = 0.0
    skipped_events: int = 0

    @property
    def is_completed(self) -> bool:
        return self.game_board_state == GameBoardState.WIN

    @property
    def final_params(self) -> KeyDynamicParams:
        if not self.events:
            return KeyDynamicParams()
        return self.events[-1].key_dynamic_params

    def prior_board(self, event_index: int) -> Board:
        return self.snapshots.board(self.events[event_index].prior_game_board_id)

    def posterior_board(self, event_index: int) -> Board:
        return self.snapshots.board(self.events[event_index].next_game_board_id)

    def final_board(self) -> Board:
        return self.snapshots.board(self.snapshots.latest_id)


def _resolve_rtime(video: Video, delta_time: float) -> float:
    if video.header.rtime_ms > 0:
        return video.header.rtime
    if not video.events:
        return 0.0
    return max(0.0, float(video.events[-1].time) - float(delta_time))


class ReplayTracker:
    """Incremental event fold shared by the batch and live drivers.

    `feed` steps one event through the machine and returns its record. With
    `skip_errors`, an impossible transition is recorded as a skipped no-op
    instead of raised, except on the first stepped event.
    """

    def __init__(self, board: Sequence[Sequence[int]], *, cell_pixel_size: int, skip_errors: bool = False) -> None:
        cell_pixel_size = int(cell_pixel_size)
        if cell_pixel_size <= 0:
            raise ReplayAnalysisError(f"cell_pixel_size must be positive, got {cell_pixel_size}")
        self.machine = MinesweeperBoard(board)
        self.cell_pixel_size = cell_pixel_size
        self.skip_errors = bool(skip_errors)
        self._path_scale = CANONICAL_CELL_PIXEL_SIZE / cell_pixel_size
        self.discard_history()

    def discard_history(self) -> None:
        """Forget recorded events and snapshots; the machine state is kept."""

        self.snapshots = SnapshotStore(self.machine.row, self.machine.column)
        self.records: list[EventRecord] = []
        self.delta_time = 0.0
        self.stepped = 0
        self.skipped = 0
        self._last_inside: EventRecord | None = None

    def _inside(self, event: VideoEvent) -> bool:
        size = self.cell_pixel_size
        return int(event.x) < self.machine.column * size and int(event.y) < self.machine.row * size

    def feed(self, event: VideoEvent) -> EventRecord:
        machine = self.machine
        index = len(self.records)
        prior_id = self.snapshots.latest_id
        level = 0
        was_skipped = False
        if event.mouse != MOVE_TAG:
            old_phase = machine.game_board_state
            cell = (int(event.y) // self.cell_pixel_size, int(event.x) // self.cell_pixel_size)
            try:
                level = machine.step(event.mouse, cell)
            except ImpossibleTransitionError as exc:
                debug_log(
                    "transition_error",
                    index=index,
                    tag=event.mouse,
                    phase=exc.phase,
                    mouse_state=exc.mouse_state,
                    skip=self.skip_errors,
                )
                if not self.skip_errors or self.stepped == 0:
                    raise
                warnings.warn(
                    f"Skipping event {index} ({event.mouse!r} at t={event.time}): {exc}",
                    category=ReplayTransitionWarning,
                    stacklevel=3,
                )
                self.skipped += 1
                was_skipped = True
            self.stepped += 1
            # Level 0 can still touch the board: an exploded mine or a taken-back pre-flag.
            self.snapshots.push_if_changed(machine.game_board)
            if level >= 1:
                if old_phase != GameBoardState.PLAYING:
                    # Ends on the event that opened the board.
                    self.delta_time = float(event.time)

        phase = machine.game_board_state
        inside = self._inside(event)
        path = 0.0
        if phase in _PATH_PHASES:
            if not inside:
                path = self.records[-1].path if self.records else 0.0
            elif self._last_inside is not None:
                last = self._last_inside
                distance = math.hypot(int(event.x) - int(last.x), int(event.y) - int(last.y))
                path = last.path + distance * self._path_scale

        record = EventRecord(
            index=index,
            time=float(event.time),
            mouse=event.mouse,
            x=int(event.x),
            y=int(event.y),
            useful_level=level,
            prior_game_board_id=prior_id,
            next_game_board_id=self.snapshots.latest_id,
            mouse_state=machine.mouse_state,
            game_board_state=phase,
            key_dynamic_params=machine.key_dynamic_params,
            path=path,
            skipped=was_skipped,
        )
        self.records.append(record)
        if inside:
            self._last_inside = record
        return record

    @property
    def path(self) -> float:
        return self.records[-1].path if self.records else 0.0


def analyse_video(video: Video, *, strict: bool | None = None, check_bbbv: bool = True) -> AnalysedVideo:
    if strict is None:
        strict = strict_transitions_enabled()
    static_params = compute_static_params(video.board, recorded_bbbv=video.header.bbbv)
    if check_bbbv:
        warn_on_bbbv_mismatch(video, computed_bbbv=static_params.bbbv)

    tracker = ReplayTracker(video.board, cell_pixel_size=video.header.cell_pixel_size, skip_errors=not strict)
    for index, event in enumerate(video.events):
        try:
            tracker.feed(event)
        except ImpossibleTransitionError as exc:
            raise ReplayAnalysisError(str(exc), event_index=index) from exc

    machine = tracker.machine
    final_params = machine.key_dynamic_params
    stats = compute_stats(
        final_params,
        rtime=_resolve_rtime(video, tracker.delta_time),
        bbbv=static_params.bbbv,
        height=video.height,
        width=video.width,
        mine_num=video.header.mine_num,
        path=tracker.path,
    )
    debug_log(
        "analyse",
        events=len(tracker.records),
        snapshots=len(tracker.snapshots),
        phase=machine.game_board_state,
        bbbv_solved=final_params.bbbv_solved,
        skipped=tracker.skipped,
        strict=strict,
    )
    return AnalysedVideo(
        video=video,
        events=tuple(tracker.records),
        snapshots=tracker.snapshots,
        static_params=static_params,
        stats=stats,
        game_board_state=machine.game_board_state,
        delta_time=tracker.delta_time,
        skipped_events=tracker.skipped,
    )


__all__ = [
    "AnalysedVideo",
    "CANONICAL_CELL_PIXEL_SIZE",
    "EventRecord",
    "KeyDynamicParams",
    "ReplayAnalysisError",
    "ReplayTracker",
    "STNB_CONSTANTS",
    "Snapshot",
    "SnapshotStore",
    "StaticParams",
    "VideoStats",
    "analyse_video",
    "compute_static_params",
    "compute_stats",
    "stnb_constant",
]
