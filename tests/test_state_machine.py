from __future__ import annotations

import pytest

from msreplay.board import CELL_EXPLODED_MINE, CELL_FLAGGED, CELL_UNOPENED, MINE, board_from_mine_mask
from msreplay.state_machine import (
    GameBoardState,
    ImpossibleTransitionError,
    KeyDynamicParams,
    MinesweeperBoard,
    MouseState,
)

BOARD_8X8 = [
    [0, 0, 1, -1, 2, 1, 1, -1],
    [0, 0, 2, 3, -1, 3, 3, 2],
    [1, 1, 3, -1, 4, -1, -1, 2],
    [2, -1, 4, -1, 3, 4, -1, 4],
    [3, -1, 5, 2, 1, 3, -1, -1],
    [3, -1, -1, 2, 1, 2, -1, 3],
    [-1, 5, 4, -1, 1, 1, 2, 2],
    [-1, 3, -1, 2, 1, 0, 1, -1],
]


def _opened(machine: MinesweeperBoard) -> MinesweeperBoard:
    assert machine.step("lc", (0, 0)) == 0
    assert machine.step("lr", (0, 0)) == 2
    return machine


def test_first_left_click_floods_the_opening() -> None:
    machine = MinesweeperBoard(BOARD_8X8)

    assert machine.step("lc", (0, 0)) == 0
    assert machine.game_board_state == GameBoardState.PRE_FLAGING
    assert machine.mouse_state == MouseState.DOWN_UP

    assert machine.step("lr", (0, 0)) == 2
    assert machine.game_board_state == GameBoardState.PLAYING
    assert machine.mouse_state == MouseState.UP_UP
    assert machine.key_dynamic_params == KeyDynamicParams(left=1, ce=1, bbbv_solved=1)
    assert machine.game_board[2][2] == 3
    assert machine.game_board[3][3] == CELL_UNOPENED


def test_flag_on_non_mine_keeps_effective_clicks() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))

    assert machine.step("rc", (0, 4)) == 1
    assert machine.game_board[0][4] == CELL_FLAGGED
    assert machine.mouse_state == MouseState.UP_DOWN
    assert machine.step("rr", (0, 4)) == 0

    params = machine.key_dynamic_params
    assert params.flag == 1
    assert params.right == 1
    assert params.ce == 1


def test_reflagging_a_mine_counts_one_effective_click() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))

    for _ in range(3):
        machine.step("rc", (0, 3))
        machine.step("rr", (0, 3))

    params = machine.key_dynamic_params
    assert params.right == 3
    assert params.flag == 1
    assert params.ce == 2


def test_chord_opens_neighbors_when_flags_match() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))
    machine.step("rc", (0, 3))

    assert machine.step("lc", (0, 2)) == 0
    assert machine.mouse_state == MouseState.CHORDING
    assert machine.step("lr", (0, 2)) == 3
    assert machine.mouse_state == MouseState.UP_DOWN
    assert machine.step("rr", (0, 2)) == 0

    assert machine.game_board[1][3] == 3
    assert machine.key_dynamic_params == KeyDynamicParams(left=1, right=1, double=1, ce=3, flag=1, bbbv_solved=2)


def test_chord_with_wrong_flag_count_changes_nothing() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))
    machine.step("rc", (0, 3))
    before = [row[:] for row in machine.game_board]

    machine.step("lc", (1, 2))
    assert machine.step("lr", (1, 2)) == 0

    assert machine.game_board == before
    assert machine.key_dynamic_params.double == 1
    assert machine.key_dynamic_params.ce == 2


def test_right_press_on_opened_cell_is_undone_by_the_chord() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))

    assert machine.step("rc", (0, 0)) == 0
    assert machine.mouse_state == MouseState.UP_DOWN_NOT_FLAG
    assert machine.key_dynamic_params.right == 1

    machine.step("lc", (0, 0))
    assert machine.mouse_state == MouseState.CHORDING_NOT_FLAG
    assert machine.step("lr", (0, 0)) == 0

    params = machine.key_dynamic_params
    assert params.right == 0
    assert params.double == 1
    assert params.left == 1


def test_stepping_on_a_mine_loses_and_freezes_the_board() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))

    machine.step("lc", (2, 3))
    assert machine.step("lr", (2, 3)) == 0
    assert machine.game_board_state == GameBoardState.LOSS
    assert machine.game_board[2][3] == CELL_EXPLODED_MINE

    params = machine.key_dynamic_params
    assert machine.step("lc", (7, 5)) == 0
    assert machine.step("lr", (7, 5)) == 0
    assert machine.key_dynamic_params == params


def test_opening_the_last_safe_cell_wins() -> None:
    machine = MinesweeperBoard(board_from_mine_mask([[True, False]]))

    machine.step("lc", (0, 1))
    assert machine.step("lr", (0, 1)) == 2

    assert machine.game_board_state == GameBoardState.WIN
    assert machine.key_dynamic_params.bbbv_solved == 1
    assert machine.step("rc", (0, 0)) == 0


def test_win_needs_every_safe_cell() -> None:
    board = board_from_mine_mask([[True, False, False, False], [False, False, False, True]])
    machine = MinesweeperBoard(board)

    machine.step("lc", (0, 1))
    machine.step("lr", (0, 1))
    assert machine.game_board_state == GameBoardState.PLAYING

    for cell in [(0, 2), (0, 3), (1, 0), (1, 1)]:
        machine.step("lc", cell)
        machine.step("lr", cell)
        assert machine.game_board_state == GameBoardState.PLAYING

    machine.step("lc", (1, 2))
    machine.step("lr", (1, 2))
    assert machine.game_board_state == GameBoardState.WIN


def test_taking_back_every_pre_flag_returns_to_ready() -> None:
    machine = MinesweeperBoard(BOARD_8X8)

    assert machine.step("rc", (0, 0)) == 1
    assert machine.game_board_state == GameBoardState.PRE_FLAGING
    assert machine.game_board[0][0] == CELL_FLAGGED
    machine.step("rr", (0, 0))

    assert machine.step("rc", (0, 0)) == 0
    assert machine.game_board_state == GameBoardState.READY
    assert machine.game_board[0][0] == CELL_UNOPENED
    assert machine.key_dynamic_params == KeyDynamicParams()
    machine.step("rr", (0, 0))
    assert machine.mouse_state == MouseState.UP_UP


def test_pre_flag_event_flags_without_a_press() -> None:
    machine = MinesweeperBoard(BOARD_8X8)

    assert machine.step("pf", (0, 3)) == 1
    assert machine.game_board_state == GameBoardState.PRE_FLAGING
    assert machine.mouse_state == MouseState.UP_UP
    assert machine.key_dynamic_params.flag == 1

    with pytest.raises(ImpossibleTransitionError, match="pre-flag"):
        machine.step("pf", (0, 3))


def test_press_outside_the_board_is_ignored() -> None:
    machine = MinesweeperBoard(BOARD_8X8)

    assert machine.step("lc", (8, 3)) == 0
    assert machine.step("rc", (3, 8)) == 0
    assert machine.mouse_state == MouseState.UP_UP
    assert machine.game_board_state == GameBoardState.READY


def test_impossible_transition_reports_where_it_happened() -> None:
    machine = MinesweeperBoard(BOARD_8X8)

    with pytest.raises(ImpossibleTransitionError) as excinfo:
        machine.step("lr", (0, 0))

    assert excinfo.value.phase == GameBoardState.READY
    assert excinfo.value.mouse_state == MouseState.UP_UP
    assert excinfo.value.tag == "lr"


def test_chord_press_from_idle_is_impossible_while_playing() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))

    with pytest.raises(ImpossibleTransitionError, match="PLAYING"):
        machine.step("cc", (0, 2))


def test_reset_keeps_the_ground_truth() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))
    machine.step("rc", (0, 3))

    machine.reset()

    assert machine.game_board_state == GameBoardState.READY
    assert machine.mouse_state == MouseState.UP_UP
    assert machine.key_dynamic_params == KeyDynamicParams()
    assert all(value == CELL_UNOPENED for row in machine.game_board for value in row)
    assert machine.board == BOARD_8X8
    _opened(machine)
    assert machine.key_dynamic_params.bbbv_solved == 1


def test_step_flow_matches_single_steps() -> None:
    operations = [("lc", (0, 0)), ("lr", (0, 0)), ("rc", (0, 3)), ("rr", (0, 3))]
    flowed = MinesweeperBoard(BOARD_8X8)
    stepped = MinesweeperBoard(BOARD_8X8)

    flowed.step_flow(operations)
    for tag, cell in operations:
        stepped.step(tag, cell)

    assert flowed.game_board == stepped.game_board
    assert flowed.key_dynamic_params == stepped.key_dynamic_params


def test_chord_release_tags_undo_the_right_press_on_an_opened_cell() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))

    machine.step("rc", (0, 0))
    machine.step("lc", (0, 0))
    assert machine.mouse_state == MouseState.CHORDING_NOT_FLAG
    assert machine.step("crl", (0, 0)) == 0
    assert machine.mouse_state == MouseState.UP_DOWN
    machine.step("rr", (0, 0))

    machine.step("rc", (0, 0))
    machine.step("lc", (0, 0))
    assert machine.step("crr", (0, 0)) == 0
    assert machine.mouse_state == MouseState.DOWN_UP_AFTER_CHORDING
    machine.step("lr", (0, 0))

    assert machine.mouse_state == MouseState.UP_UP
    assert machine.key_dynamic_params == KeyDynamicParams(left=1, right=0, double=2, ce=1, bbbv_solved=1)


def test_chord_release_left_first_opens_neighbors() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))
    machine.step("rc", (0, 3))
    machine.step("lc", (0, 2))

    assert machine.step("crl", (0, 2)) == 3
    assert machine.mouse_state == MouseState.UP_DOWN
    assert machine.game_board[1][3] == 3


@pytest.mark.parametrize("tag", ["crl", "crr"])
def test_chord_release_from_idle_is_impossible(tag: str) -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))

    with pytest.raises(ImpossibleTransitionError) as excinfo:
        machine.step(tag, (0, 2))

    assert excinfo.value.mouse_state == MouseState.UP_UP
    assert excinfo.value.tag == tag


def test_toggle_tags_click_flag_and_chord() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))

    assert machine.step("l", (7, 5)) == 0
    assert machine.mouse_state == MouseState.DOWN_UP
    assert machine.step("l", (7, 5)) == 2
    assert machine.game_board[6][6] == 2
    assert machine.key_dynamic_params.bbbv_solved == 2

    assert machine.step("r", (0, 3)) == 1
    assert machine.mouse_state == MouseState.UP_DOWN
    assert machine.game_board[0][3] == CELL_FLAGGED
    assert machine.step("r", (0, 3)) == 0
    assert machine.mouse_state == MouseState.UP_UP

    assert machine.step("r", (0, 0)) == 0
    assert machine.mouse_state == MouseState.UP_DOWN_NOT_FLAG
    assert machine.step("l", (0, 0)) == 0
    assert machine.mouse_state == MouseState.CHORDING_NOT_FLAG
    assert machine.step("r", (0, 0)) == 0
    assert machine.mouse_state == MouseState.DOWN_UP_AFTER_CHORDING
    assert machine.step("l", (0, 0)) == 0
    assert machine.mouse_state == MouseState.UP_UP

    params = machine.key_dynamic_params
    assert params.left == 2
    assert params.right == 1
    assert params.double == 1


def test_middle_button_release_chords() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))
    machine.step("rc", (0, 3))
    machine.step("rr", (0, 3))

    assert machine.step("mc", (0, 2)) == 0
    assert machine.middle_hold
    assert machine.mouse_state == MouseState.UP_UP
    assert machine.step("mr", (0, 2)) == 3
    assert not machine.middle_hold
    assert machine.game_board[1][3] == 3
    assert machine.key_dynamic_params.double == 1


def test_middle_toggle_chords_on_the_second_event() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))
    machine.step("rc", (0, 3))
    machine.step("rr", (0, 3))

    assert machine.step("m", (0, 2)) == 0
    assert machine.middle_hold
    assert machine.game_board[1][3] == CELL_UNOPENED
    assert machine.step("m", (0, 2)) == 3
    assert not machine.middle_hold
    assert machine.game_board[1][3] == 3


def test_chord_into_an_opening_credits_it_once() -> None:
    machine = _opened(MinesweeperBoard(BOARD_8X8))
    machine.step("lc", (6, 4))
    assert machine.step("lr", (6, 4)) == 2
    # (6, 4) touches the (7, 5) opening, so it is not a 3BV cell of its own.
    assert machine.key_dynamic_params.bbbv_solved == 1

    machine.step("rc", (6, 3))
    machine.step("lc", (6, 4))
    assert machine.step("lr", (6, 4)) == 3

    # Opening at (7, 5) plus the boundary numbers (5, 3), (5, 4), (5, 5), (7, 3).
    assert machine.key_dynamic_params == KeyDynamicParams(left=2, right=1, double=1, ce=4, flag=1, bbbv_solved=6)
    assert machine.game_board[7][5] == 0
    assert machine.game_board[7][6] == 1
    assert machine.game_board[6][5] == 1


def test_chord_on_an_eight_changes_nothing() -> None:
    board = board_from_mine_mask(
        [
            [True, True, True, False],
            [True, False, True, False],
            [True, True, True, False],
        ]
    )
    machine = MinesweeperBoard(board)
    machine.step("lc", (1, 1))
    assert machine.step("lr", (1, 1)) == 2
    assert machine.game_board[1][1] == 8
    for cell in [(0, 0), (0, 1), (0, 2), (1, 0), (1, 2), (2, 0), (2, 1), (2, 2)]:
        machine.step("rc", cell)
        machine.step("rr", cell)
    before = [row[:] for row in machine.game_board]

    machine.step("lc", (1, 1))
    machine.step("rc", (1, 1))
    assert machine.step("lr", (1, 1)) == 0

    assert machine.game_board == before
    assert machine.game_board_state == GameBoardState.PLAYING
    assert machine.key_dynamic_params.double == 1


def test_won_board_matches_the_ground_truth_and_stays_frozen() -> None:
    board = board_from_mine_mask([[True, False, False, False], [False, False, False, True]])
    machine = MinesweeperBoard(board)
    for cell in [(0, 1), (0, 2), (0, 3), (1, 0), (1, 1), (1, 2)]:
        machine.step("lc", cell)
        machine.step("lr", cell)
    assert machine.game_board_state == GameBoardState.WIN

    for i, row in enumerate(board):
        for j, value in enumerate(row):
            if value != MINE:
                assert machine.game_board[i][j] == value
    before = [row[:] for row in machine.game_board]
    params = machine.key_dynamic_params

    for tag, cell in [("lc", (0, 0)), ("lr", (0, 0)), ("rc", (1, 3)), ("rr", (1, 3)), ("mr", (0, 1))]:
        assert machine.step(tag, cell) == 0

    assert machine.game_board == before
    assert machine.key_dynamic_params == params
    assert machine.game_board_state == GameBoardState.WIN


def test_rejected_unflag_leaves_the_button_state_alone() -> None:
    machine = MinesweeperBoard(BOARD_8X8)
    machine.step("lc", (0, 0))
    assert machine.game_board_state == GameBoardState.PRE_FLAGING
    # A flag the pre-game counter never saw.
    machine.mouse_state = MouseState.UP_UP
    machine.game_board[0][0] = CELL_FLAGGED

    with pytest.raises(ImpossibleTransitionError, match="unflag"):
        machine.step("rc", (0, 0))

    assert machine.mouse_state == MouseState.UP_UP
    assert machine.game_board[0][0] == CELL_FLAGGED
    assert machine.game_board_state == GameBoardState.PRE_FLAGING
