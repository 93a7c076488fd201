from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass

from .analysis import AnalysedVideo, EventRecord

# Fields that describe the recorded input rather than its outcome.
INPUT_FIELDS: tuple[str, ...] = ("time", "mouse", "x", "y")
SNAPSHOT_ID_FIELDS: tuple[str, ...] = ("prior_game_board_id", "next_game_board_id")


@dataclass(frozen=True, slots=True)
class ReplayDiffFailure:
    kind: str
    event_index: int
    expected: EventRecord | None
    actual: EventRecord | None = None
    fields: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ReplayDiffResult:
    ok: bool
    checked_count: int
    failure: ReplayDiffFailure | None = None


def _record_dict(record: EventRecord) -> dict[str, object]:
    obj = asdict(record)
    obj.pop("index", None)
    return obj


def _differing_fields(exp: dict[str, object], act: dict[str, object], keys: Sequence[str]) -> tuple[str, ...]:
    return tuple(key for key in keys if exp.get(key) != act.get(key))


def compare_event_records(
    expected: Sequence[EventRecord],
    actual: Sequence[EventRecord],
    *,
    expected_boards: AnalysedVideo | None = None,
    actual_boards: AnalysedVideo | None = None,
) -> ReplayDiffResult:
    """Report the first event where two trajectories diverge.

    When both analysed videos are given, the snapshot behind each event is
    compared too, so two stores that number their boards differently still
    match as long as the boards agree.
    """

    checked_count = 0
    for index, exp in enumerate(expected):
        checked_count += 1
        if index >= len(actual):
            return ReplayDiffResult(
                ok=False,
                checked_count=checked_count,
                failure=ReplayDiffFailure(kind="missing_event", event_index=index, expected=exp),
            )
        act = actual[index]
        exp_obj = _record_dict(exp)
        act_obj = _record_dict(act)

        input_diff = _differing_fields(exp_obj, act_obj, INPUT_FIELDS)
        if input_diff:
            return ReplayDiffResult(
                ok=False,
                checked_count=checked_count,
                failure=ReplayDiffFailure(
                    kind="input_mismatch",
                    event_index=index,
                    expected=exp,
                    actual=act,
                    fields=input_diff,
                ),
            )

        compare_boards = expected_boards is not None and actual_boards is not None
        skipped_keys = set(INPUT_FIELDS)
        if compare_boards:
            skipped_keys.update(SNAPSHOT_ID_FIELDS)
        state_keys = [key for key in exp_obj if key not in skipped_keys]
        state_diff = _differing_fields(exp_obj, act_obj, state_keys)
        if compare_boards:
            if expected_boards.posterior_board(index) != actual_boards.posterior_board(index):
                state_diff += ("game_board",)
        if state_diff:
            return ReplayDiffResult(
                ok=False,
                checked_count=checked_count,
                failure=ReplayDiffFailure(
                    kind="state_mismatch",
                    event_index=index,
                    expected=exp,
                    actual=act,
                    fields=state_diff,
                ),
            )

    if len(actual) > len(expected):
        index = len(expected)
        return ReplayDiffResult(
            ok=False,
            checked_count=checked_count,
            failure=ReplayDiffFailure(kind="extra_event", event_index=index, expected=None, actual=actual[index]),
        )

    return ReplayDiffResult(ok=True, checked_count=checked_count)


def compare_analysed_videos(expected: AnalysedVideo, actual: AnalysedVideo) -> ReplayDiffResult:
    return compare_event_records(
        expected.events,
        actual.events,
        expected_boards=expected,
        actual_boards=actual,
    )
