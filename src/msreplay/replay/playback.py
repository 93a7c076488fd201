from __future__ import annotations

from ..board import Board
from ..state_machine import GameBoardState, KeyDynamicParams, MouseState
from .analysis import AnalysedVideo, EventRecord, VideoStats, compute_stats


class VideoPlayback:
    """Display-phase cursor over an analysed replay.

    Seeking moves `current_event_id`; every query answers for that event:
    the board after it, the counters after it, and the pointer position
    rescaled to the playback cell size.
    """

    def __init__(self, analysed: AnalysedVideo, *, pix_size: int | None = None) -> None:
        self.analysed = analysed
        self.current_event_id = 0
        self.current_time = analysed.events[0].time if analysed.events else 0.0
        self._pix_scale = 1.0
        if pix_size is not None:
            self.set_pix_size(pix_size)

    @property
    def game_board_state(self) -> GameBoardState:
        return GameBoardState.DISPLAY

    @property
    def event_count(self) -> int:
        return len(self.analysed.events)

    @property
    def video_time(self) -> float:
        if not self.analysed.events:
            return 0.0
        return self.analysed.events[-1].time

    def _current(self) -> EventRecord | None:
        if not self.analysed.events:
            return None
        return self.analysed.events[self.current_event_id]

    def set_pix_size(self, pix_size: int) -> None:
        if int(pix_size) <= 0:
            raise ValueError(f"pix_size must be positive, got {pix_size}")
        self._pix_scale = int(pix_size) / int(self.analysed.video.header.cell_pixel_size)

    def set_current_time(self, time: float) -> None:
        """Seek to the last event at or before `time`; out of range clamps to the ends."""

        events = self.analysed.events
        if not events:
            return
        index = self.current_event_id
        if time > events[index].time:
            while index < len(events) - 1 and events[index + 1].time <= time:
                index += 1
        else:
            while index > 0 and events[index].time > time:
                index -= 1
        self.current_event_id = index
        self.current_time = events[index].time

    def set_current_event_id(self, event_id: int) -> None:
        event_id = int(event_id)
        if not (0 <= event_id < len(self.analysed.events)):
            raise IndexError(f"event id {event_id} out of range [0, {len(self.analysed.events)})")
        self.current_event_id = event_id
        self.current_time = self.analysed.events[event_id].time

    @property
    def game_board(self) -> Board:
        event = self._current()
        if event is None:
            return self.analysed.snapshots.board(0)
        return self.analysed.snapshots.board(event.next_game_board_id)

    @property
    def mouse_state(self) -> MouseState:
        event = self._current()
        if event is None:
            return MouseState.UP_UP
        return event.mouse_state

    @property
    def key_dynamic_params(self) -> KeyDynamicParams:
        event = self._current()
        if event is None:
            return KeyDynamicParams()
        return event.key_dynamic_params

    @property
    def path(self) -> float:
        event = self._current()
        return 0.0 if event is None else event.path

    @property
    def rtime(self) -> float:
        return max(0.0, self.current_time - self.analysed.delta_time)

    @property
    def stats(self) -> VideoStats:
        video = self.analysed.video
        return compute_stats(
            self.key_dynamic_params,
            rtime=self.rtime,
            bbbv=self.analysed.static_params.bbbv,
            height=video.height,
            width=video.width,
            mine_num=video.header.mine_num,
            path=self.path,
        )

    @property
    def x_y(self) -> tuple[int, int]:
        event = self._current()
        if event is None:
            return 0, 0
        return int(event.x * self._pix_scale), int(event.y * self._pix_scale)
