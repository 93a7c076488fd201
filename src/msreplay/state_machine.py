from __future__ import annotations

"""
Mouse/game state machine.

`MinesweeperBoard.step(tag, cell)` consumes one button event on a logical cell
(row, column) and returns how useful the event was:
  0 no effect (clicking a number, stepping on a mine, a chord that failed)
  1 flag bookkeeping only (flag / unflag)
  2 opened one or more cells with a left click
  3 a chord that opened at least one cell

The machine has no notion of time or pixels. The same instance type backs both
the live driver and the batch replay driver, so both produce identical counter
trajectories for identical event sequences.

Note: repeatedly flagging and unflagging the same mine counts as one effective
click (ce), not one per flag.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import Final, Literal, TypeAlias

from .board import (
    CELL_FLAGGED,
    CELL_UNOPENED,
    MINE,
    Board,
    Cell,
    board_shape,
    copy_board,
    empty_game_board,
    is_bbbv_number,
    neighbors,
    refresh_board,
)

MouseTag: TypeAlias = Literal["mv", "lc", "lr", "rc", "rr", "mc", "mr", "cc", "crl", "crr", "l", "r", "m", "pf"]

MOVE_TAG: Final[str] = "mv"
PRE_FLAG_TAG: Final[str] = "pf"
# The low-level button vocabulary resolved by the transition table.
BUTTON_TAGS: Final[tuple[str, ...]] = ("lc", "lr", "rc", "rr", "mc", "mr", "cc", "crl", "crr", "l", "r")
MOUSE_TAGS: Final[tuple[str, ...]] = (MOVE_TAG, *BUTTON_TAGS, "m", PRE_FLAG_TAG)

_PRESS_TAGS: Final[frozenset[str]] = frozenset({"lc", "rc", "cc"})


class MouseState(IntEnum):
    UP_UP = 1
    UP_DOWN = 2
    # Right button down on a cell that could not be flagged (already opened).
    UP_DOWN_NOT_FLAG = 3
    DOWN_UP = 4
    CHORDING = 5
    # Both buttons down, right pressed first on a cell that could not be flagged.
    CHORDING_NOT_FLAG = 6
    # Right released after a chord while left is still down.
    DOWN_UP_AFTER_CHORDING = 7
    UNDEFINED = 8


class GameBoardState(IntEnum):
    READY = 1
    PRE_FLAGING = 2
    PLAYING = 3
    LOSS = 4
    WIN = 5
    # Board is a replay being displayed; no live input is accepted.
    DISPLAY = 6


TERMINAL_STATES: Final[frozenset[GameBoardState]] = frozenset(
    {GameBoardState.WIN, GameBoardState.LOSS, GameBoardState.DISPLAY}
)


class Action(IntFlag):
    NONE = 0
    LEFT_CLICK = 1 << 0
    # Right click whose resulting button state depends on the target cell.
    RIGHT_PRESS = 1 << 1
    CHORD = 1 << 2
    # The right press of a not-flaggable chord did not count as a right click.
    UNDO_RIGHT = 1 << 3
    MIDDLE_PRESS = 1 << 4
    MIDDLE_RELEASE = 1 << 5
    MIDDLE_TOGGLE = 1 << 6


@dataclass(frozen=True, slots=True)
class Transition:
    next_state: MouseState | None = None
    action: Action = Action.NONE


class ImpossibleTransitionError(ValueError):
    def __init__(self, phase: GameBoardState, mouse_state: MouseState, tag: str, detail: str = "") -> None:
        self.phase = phase
        self.mouse_state = mouse_state
        self.tag = tag
        message = f"impossible transition: phase={phase.name} mouse_state={mouse_state.name} tag={tag!r}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class KeyDynamicParams:
    left: int = 0
    right: int = 0
    double: int = 0
    ce: int = 0
    flag: int = 0
    bbbv_solved: int = 0

    @property
    def cl(self) -> int:
        return int(self.left) + int(self.right) + int(self.double)


_S = MouseState
_A = Action
_KEEP = Transition()


def _every_state(transition: Transition) -> dict[MouseState, Transition]:
    return {state: transition for state in MouseState}


_LEFT_RELEASE: dict[MouseState, Transition] = {
    _S.DOWN_UP: Transition(_S.UP_UP, _A.LEFT_CLICK),
    _S.CHORDING: Transition(_S.UP_DOWN, _A.CHORD),
    _S.DOWN_UP_AFTER_CHORDING: Transition(_S.UP_UP),
    _S.CHORDING_NOT_FLAG: Transition(_S.UP_DOWN, _A.UNDO_RIGHT | _A.CHORD),
}

_RIGHT_RELEASE: dict[MouseState, Transition] = {
    _S.UP_DOWN: Transition(_S.UP_UP),
    _S.UP_DOWN_NOT_FLAG: Transition(_S.UP_UP),
    _S.CHORDING: Transition(_S.DOWN_UP_AFTER_CHORDING, _A.CHORD),
    _S.CHORDING_NOT_FLAG: Transition(_S.DOWN_UP_AFTER_CHORDING, _A.UNDO_RIGHT | _A.CHORD),
}

# Playing-phase table: tag -> button state -> transition. A missing entry is an
# impossible sequence for two-button hardware.
PLAYING_TRANSITIONS: Final[dict[str, dict[MouseState, Transition]]] = {
    "mv": _every_state(_KEEP),
    "lc": {
        _S.UP_UP: Transition(_S.DOWN_UP),
        _S.UP_DOWN: Transition(_S.CHORDING),
        _S.UP_DOWN_NOT_FLAG: Transition(_S.CHORDING_NOT_FLAG),
        _S.DOWN_UP: _KEEP,
        _S.DOWN_UP_AFTER_CHORDING: _KEEP,
        _S.CHORDING: _KEEP,
        _S.CHORDING_NOT_FLAG: _KEEP,
        _S.UNDEFINED: Transition(_S.DOWN_UP),
    },
    "lr": {
        **_LEFT_RELEASE,
        _S.UP_DOWN: _KEEP,
        _S.UP_DOWN_NOT_FLAG: _KEEP,
        _S.UP_UP: _KEEP,
        _S.UNDEFINED: Transition(_S.UP_UP),
    },
    "l": {
        **_LEFT_RELEASE,
        _S.UP_UP: Transition(_S.DOWN_UP),
        _S.UP_DOWN: Transition(_S.CHORDING),
        _S.UP_DOWN_NOT_FLAG: Transition(_S.CHORDING_NOT_FLAG),
        _S.UNDEFINED: Transition(_S.UP_UP),
    },
    "rc": {
        _S.UP_UP: Transition(None, _A.RIGHT_PRESS),
        _S.DOWN_UP: Transition(_S.CHORDING),
        _S.DOWN_UP_AFTER_CHORDING: Transition(_S.CHORDING),
        _S.UP_DOWN: _KEEP,
        _S.UP_DOWN_NOT_FLAG: _KEEP,
        _S.CHORDING: _KEEP,
        _S.CHORDING_NOT_FLAG: _KEEP,
        _S.UNDEFINED: Transition(_S.UP_DOWN),
    },
    "rr": {
        **_RIGHT_RELEASE,
        _S.DOWN_UP: _KEEP,
        _S.DOWN_UP_AFTER_CHORDING: _KEEP,
        _S.UP_UP: _KEEP,
        _S.UNDEFINED: Transition(_S.UP_UP),
    },
    "r": {
        **_RIGHT_RELEASE,
        _S.UP_UP: Transition(None, _A.RIGHT_PRESS),
        _S.DOWN_UP: Transition(_S.CHORDING),
        _S.DOWN_UP_AFTER_CHORDING: Transition(_S.CHORDING),
        _S.UNDEFINED: Transition(_S.UP_UP),
    },
    "cc": {
        _S.DOWN_UP: Transition(_S.CHORDING),
        _S.DOWN_UP_AFTER_CHORDING: Transition(_S.CHORDING),
        _S.UP_DOWN: Transition(_S.CHORDING),
        _S.UP_DOWN_NOT_FLAG: Transition(_S.CHORDING_NOT_FLAG),
    },
    "crl": {
        _S.CHORDING: Transition(_S.UP_DOWN, _A.CHORD),
        _S.CHORDING_NOT_FLAG: Transition(_S.UP_DOWN, _A.UNDO_RIGHT | _A.CHORD),
    },
    "crr": {
        _S.CHORDING: Transition(_S.DOWN_UP_AFTER_CHORDING, _A.CHORD),
        _S.CHORDING_NOT_FLAG: Transition(_S.DOWN_UP_AFTER_CHORDING, _A.UNDO_RIGHT | _A.CHORD),
    },
    "mc": _every_state(Transition(None, _A.MIDDLE_PRESS)),
    "mr": _every_state(Transition(None, _A.MIDDLE_RELEASE)),
    "m": _every_state(Transition(None, _A.MIDDLE_TOGGLE)),
}

# Both-buttons-down press shared by the pre-game phases.
_PRE_GAME_CHORD_PRESS: Final[dict[MouseState, MouseState]] = {
    _S.DOWN_UP: _S.CHORDING,
    _S.DOWN_UP_AFTER_CHORDING: _S.CHORDING,
    _S.UP_DOWN: _S.CHORDING,
    _S.UP_DOWN_NOT_FLAG: _S.CHORDING_NOT_FLAG,
}


def playing_transition(mouse_state: MouseState, tag: str) -> Transition | None:
    by_state = PLAYING_TRANSITIONS.get(tag)
    if by_state is None:
        return None
    return by_state.get(mouse_state)


class MinesweeperBoard:
    def __init__(self, board: Sequence[Sequence[int]]) -> None:
        self.board: Board = copy_board(board)
        self.row, self.column = board_shape(self.board)
        self.game_board: Board = empty_game_board(self.row, self.column)
        self.left = 0
        self.right = 0
        self.double = 0
        self.ce = 0
        self.flag = 0
        self.bbbv_solved = 0
        self.mouse_state = MouseState.UP_UP
        self.game_board_state = GameBoardState.READY
        self.middle_hold = False
        self._flagged_before: set[Cell] = set()
        self._pre_flag_num = 0
        self._scan_row = 0
        self._scan_col = 0

    @property
    def outside(self) -> Cell:
        return self.row, self.column

    @property
    def key_dynamic_params(self) -> KeyDynamicParams:
        return KeyDynamicParams(
            left=self.left,
            right=self.right,
            double=self.double,
            ce=self.ce,
            flag=self.flag,
            bbbv_solved=self.bbbv_solved,
        )

    def reset(self) -> None:
        """Back to an all-unopened board; the ground truth is kept."""

        self.game_board = empty_game_board(self.row, self.column)
        self._clear_click_num()
        self.ce = 0
        self.bbbv_solved = 0
        self.mouse_state = MouseState.UP_UP
        self.game_board_state = GameBoardState.READY
        self.middle_hold = False
        self._pre_flag_num = 0
        self._scan_row = 0
        self._scan_col = 0

    def normalize_cell(self, cell: Cell) -> Cell:
        row, col = int(cell[0]), int(cell[1])
        if row >= self.row or col >= self.column or row < 0 or col < 0:
            return self.outside
        return row, col

    def step(self, tag: str, cell: Cell) -> int:
        cell = self.normalize_cell(cell)
        if cell == self.outside and tag in _PRESS_TAGS:
            # Presses outside the board never reach the game.
            return 0
        phase = self.game_board_state
        if phase in TERMINAL_STATES:
            return 0
        if phase == GameBoardState.READY:
            return self._step_ready(tag, cell)
        if phase == GameBoardState.PRE_FLAGING:
            level = self._step_pre_flaging(tag, cell)
            if level is not None:
                return level
        return self._step_playing(tag, cell)

    def step_flow(self, operations: Iterable[tuple[str, Cell]]) -> None:
        for tag, cell in operations:
            self.step(tag, cell)

    def _impossible(self, tag: str, detail: str = "") -> ImpossibleTransitionError:
        return ImpossibleTransitionError(self.game_board_state, self.mouse_state, tag, detail)

    def _step_ready(self, tag: str, cell: Cell) -> int:
        state = self.mouse_state
        if tag == "mv":
            return 0
        if tag == "lc":
            if state == _S.UP_UP:
                self.game_board_state = GameBoardState.PRE_FLAGING
                self.mouse_state = _S.DOWN_UP
            elif state == _S.UP_DOWN:
                self.mouse_state = _S.CHORDING
            elif state == _S.UP_DOWN_NOT_FLAG:
                self.mouse_state = _S.CHORDING_NOT_FLAG
            else:
                raise self._impossible(tag)
            return 0
        if tag == "pf":
            self._check_pre_flag(tag, cell)
            self._pre_flag_num += 1
            self.game_board_state = GameBoardState.PRE_FLAGING
            return self._right_click(cell)
        if tag == "rc":
            if state == _S.UP_UP:
                self._pre_flag_num = 1
                self.game_board_state = GameBoardState.PRE_FLAGING
                self.mouse_state = _S.UP_DOWN
                return self._right_click(cell)
            if state == _S.DOWN_UP_AFTER_CHORDING:
                self.mouse_state = _S.CHORDING
                return 0
            raise self._impossible(tag)
        if tag == "lr":
            if state in (_S.CHORDING, _S.CHORDING_NOT_FLAG):
                self.mouse_state = _S.UP_DOWN
            elif state == _S.DOWN_UP_AFTER_CHORDING:
                self.mouse_state = _S.UP_UP
            else:
                raise self._impossible(tag)
            return 0
        if tag == "rr":
            if state == _S.UP_DOWN:
                self.mouse_state = _S.UP_UP
            elif state == _S.CHORDING:
                self.mouse_state = _S.DOWN_UP_AFTER_CHORDING
            else:
                raise self._impossible(tag)
            return 0
        if tag == "cc":
            next_state = _PRE_GAME_CHORD_PRESS.get(state)
            if next_state is None:
                raise self._impossible(tag)
            self.mouse_state = next_state
            return 0
        raise self._impossible(tag)

    def _step_pre_flaging(self, tag: str, cell: Cell) -> int | None:
        """Handle a pre-game event; `None` hands the event on to the playing table."""

        state = self.mouse_state
        if tag in ("lc", "rr", "mv"):
            return None
        if tag == "lr":
            if state == _S.DOWN_UP:
                if cell == self.outside:
                    self.mouse_state = _S.UP_UP
                    if self._pre_flag_num == 0:
                        self.game_board_state = GameBoardState.READY
                        self._clear_click_num()
                    return 0
                if self.game_board[cell[0]][cell[1]] != CELL_UNOPENED:
                    return 0
                self.game_board_state = GameBoardState.PLAYING
                return None
            if state in (_S.CHORDING, _S.DOWN_UP_AFTER_CHORDING, _S.CHORDING_NOT_FLAG, _S.UP_UP, _S.UNDEFINED):
                return None
            raise self._impossible(tag)
        if tag == "pf":
            self._check_pre_flag(tag, cell)
            self._pre_flag_num += 1
            return self._right_click(cell)
        if tag == "rc":
            if state == _S.UP_UP:
                if self.game_board[cell[0]][cell[1]] == CELL_UNOPENED:
                    self.mouse_state = _S.UP_DOWN
                    self._pre_flag_num += 1
                    return self._right_click(cell)
                if self._pre_flag_num <= 0:
                    raise self._impossible(tag, "unflag without a pre-game flag")
                self.mouse_state = _S.UP_DOWN
                self._pre_flag_num -= 1
                if self._pre_flag_num == 0:
                    # Every pre-game flag was taken back: the game never started.
                    self.game_board_state = GameBoardState.READY
                    self._clear_click_num()
                    self.game_board[cell[0]][cell[1]] = CELL_UNOPENED
                    return 0
                return self._right_click(cell)
            if state == _S.DOWN_UP:
                if self._pre_flag_num == 0:
                    self.game_board_state = GameBoardState.READY
                self.mouse_state = _S.CHORDING
                return None
            if state == _S.DOWN_UP_AFTER_CHORDING:
                self.mouse_state = _S.CHORDING
                return None
            raise self._impossible(tag)
        if tag == "cc":
            next_state = _PRE_GAME_CHORD_PRESS.get(state)
            if next_state is None:
                raise self._impossible(tag)
            if state == _S.DOWN_UP and self._pre_flag_num == 0:
                self.game_board_state = GameBoardState.READY
            self.mouse_state = next_state
            return 0
        raise self._impossible(tag)

    def _step_playing(self, tag: str, cell: Cell) -> int:
        transition = playing_transition(self.mouse_state, tag)
        if transition is None:
            raise self._impossible(tag)
        if transition.next_state is not None:
            self.mouse_state = transition.next_state
        action = transition.action
        if action & _A.UNDO_RIGHT:
            self.right -= 1
        if action & _A.MIDDLE_PRESS:
            self.middle_hold = True
            return 0
        if action & _A.MIDDLE_RELEASE:
            self.middle_hold = False
            action |= _A.CHORD
        if action & _A.MIDDLE_TOGGLE:
            self.middle_hold = not self.middle_hold
            if self.middle_hold:
                return 0
            action |= _A.CHORD
        if cell == self.outside:
            return 0
        if action & _A.LEFT_CLICK:
            return self._left_click(cell)
        if action & _A.CHORD:
            return self._chording_click(cell)
        if action & _A.RIGHT_PRESS:
            if self.game_board[cell[0]][cell[1]] < CELL_UNOPENED:
                self.mouse_state = _S.UP_DOWN_NOT_FLAG
            else:
                self.mouse_state = _S.UP_DOWN
            return self._right_click(cell)
        return 0

    def _check_pre_flag(self, tag: str, cell: Cell) -> None:
        # A pre-flag is recorded without its press, so it can only land on a closed cell.
        if cell == self.outside or self.game_board[cell[0]][cell[1]] != CELL_UNOPENED:
            raise self._impossible(tag, "pre-flag on a cell that is not unopened")

    def _left_click(self, cell: Cell) -> int:
        x, y = cell
        self.left += 1
        if self.game_board[x][y] != CELL_UNOPENED:
            return 0
        refresh_board(self.board, self.game_board, [cell])
        value = self.board[x][y]
        if value == MINE:
            self.game_board_state = GameBoardState.LOSS
            return 0
        if value == 0 or is_bbbv_number(self.board, x, y):
            self.bbbv_solved += 1
        self.ce += 1
        if self._is_win():
            self.game_board_state = GameBoardState.WIN
        return 2

    def _right_click(self, cell: Cell) -> int:
        x, y = cell
        self.right += 1
        value = self.game_board[x][y]
        if value < CELL_UNOPENED:
            return 0
        if value == CELL_UNOPENED:
            self.game_board[x][y] = CELL_FLAGGED
            self.flag += 1
            if self.board[x][y] == MINE and cell not in self._flagged_before:
                self.ce += 1
                self._flagged_before.add(cell)
        elif value == CELL_FLAGGED:
            self.game_board[x][y] = CELL_UNOPENED
            self.flag -= 1
        else:
            raise self._impossible("r", f"right click on visible value {value}")
        return 1

    def _chording_click(self, cell: Cell) -> int:
        x, y = cell
        self.double += 1
        value = self.game_board[x][y]
        if value == 0 or value >= 8:
            return 0
        flagged = 0
        closed: list[Cell] = []
        surround_bbbv = 0
        opens_zero = False
        for i, j in neighbors(x, y, self.row, self.column):
            if (i, j) == cell:
                continue
            shown = self.game_board[i][j]
            if shown == CELL_FLAGGED:
                flagged += 1
            elif shown == CELL_UNOPENED:
                closed.append((i, j))
                truth = self.board[i][j]
                if truth > 0 and is_bbbv_number(self.board, i, j):
                    surround_bbbv += 1
                elif truth == 0:
                    opens_zero = True
        if flagged != value or not closed:
            return 0
        self.ce += 1
        # A single chord can open at most one opening.
        self.bbbv_solved += surround_bbbv + (1 if opens_zero else 0)
        if any(self.board[i][j] == MINE for i, j in closed):
            self.game_board_state = GameBoardState.LOSS
        refresh_board(self.board, self.game_board, closed)
        if self.game_board_state != GameBoardState.LOSS and self._is_win():
            self.game_board_state = GameBoardState.WIN
        return 3

    def _is_win(self) -> bool:
        # The scan cursor only moves forward: opened cells never close again.
        row = self._scan_row
        for j in range(self._scan_col, self.column):
            if self.game_board[row][j] >= CELL_UNOPENED and self.board[row][j] != MINE:
                self._scan_col = j
                return False
        for i in range(row + 1, self.row):
            for j in range(self.column):
                if self.game_board[i][j] >= CELL_UNOPENED and self.board[i][j] != MINE:
                    self._scan_row = i
                    self._scan_col = j
                    return False
        return True

    def _clear_click_num(self) -> None:
        self.flag = 0
        self._flagged_before.clear()
        self.double = 0
        self.left = 0
        self.right = 0
        self.ce = 0
