from __future__ import annotations

import dataclasses

from msreplay.replay.analysis import AnalysedVideo, analyse_video
from msreplay.replay.diff import compare_analysed_videos, compare_event_records
from msreplay.replay.types import Video, VideoEvent, VideoHeader

BOARD_8X8 = (
    (0, 0, 1, -1, 2, 1, 1, -1),
    (0, 0, 2, 3, -1, 3, 3, 2),
    (1, 1, 3, -1, 4, -1, -1, 2),
    (2, -1, 4, -1, 3, 4, -1, 4),
    (3, -1, 5, 2, 1, 3, -1, -1),
    (3, -1, -1, 2, 1, 2, -1, 3),
    (-1, 5, 4, -1, 1, 1, 2, 2),
    (-1, 3, -1, 2, 1, 0, 1, -1),
)

EVENTS = (
    VideoEvent(time=0.0, mouse="lc", x=8, y=8),
    VideoEvent(time=0.1, mouse="lr", x=8, y=8),
    VideoEvent(time=0.2, mouse="rc", x=56, y=8),
    VideoEvent(time=0.3, mouse="rr", x=56, y=8),
)


def _analysed(events: tuple[VideoEvent, ...] = EVENTS) -> AnalysedVideo:
    video = Video(
        header=VideoHeader(height=8, width=8, mine_num=20, bbbv=31, rtime_ms=1000),
        board=BOARD_8X8,
        events=events,
    )
    return analyse_video(video, strict=True)


def test_compare_identical_replays_ok() -> None:
    result = compare_analysed_videos(_analysed(), _analysed())

    assert result.ok
    assert result.checked_count == 4
    assert result.failure is None


def test_compare_reports_missing_event() -> None:
    result = compare_analysed_videos(_analysed(), _analysed(EVENTS[:3]))

    assert not result.ok
    assert result.failure is not None
    assert result.failure.kind == "missing_event"
    assert result.failure.event_index == 3


def test_compare_reports_extra_event() -> None:
    extra = (*EVENTS, VideoEvent(time=0.4, mouse="mv", x=20, y=20))

    result = compare_analysed_videos(_analysed(), _analysed(extra))

    assert not result.ok
    assert result.failure is not None
    assert result.failure.kind == "extra_event"
    assert result.failure.event_index == 4
    assert result.failure.expected is None


def test_compare_reports_input_mismatch() -> None:
    moved = (*EVENTS[:2], dataclasses.replace(EVENTS[2], x=57), EVENTS[3])

    result = compare_analysed_videos(_analysed(), _analysed(moved))

    assert not result.ok
    assert result.failure is not None
    assert result.failure.kind == "input_mismatch"
    assert result.failure.event_index == 2
    assert result.failure.fields == ("x",)


def test_compare_reports_state_mismatch() -> None:
    expected = _analysed().events
    actual = list(expected)
    params = dataclasses.replace(actual[1].key_dynamic_params, ce=7)
    actual[1] = dataclasses.replace(actual[1], key_dynamic_params=params)

    result = compare_event_records(expected, actual)

    assert not result.ok
    assert result.failure is not None
    assert result.failure.kind == "state_mismatch"
    assert result.failure.event_index == 1
    assert result.failure.fields == ("key_dynamic_params",)


def test_compare_boards_instead_of_snapshot_ids() -> None:
    expected = _analysed()
    renumbered = [dataclasses.replace(event, next_game_board_id=0) for event in expected.events]

    assert compare_event_records(expected.events, expected.events, expected_boards=expected, actual_boards=expected).ok
    result = compare_event_records(expected.events, renumbered)
    assert result.failure is not None
    assert "next_game_board_id" in result.failure.fields
