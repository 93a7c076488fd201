from __future__ import annotations

"""
Board model.

Two matrices describe a game, both indexed `[row][column]`:
  - ground truth (`board`): -1 is a mine, 0..8 is the adjacent mine count
  - visible board (`game_board`): 0..8 opened, 10 unopened, 11 flagged,
    15 the mine that was clicked, 16 a mine revealed after a loss

Everything here is a pure function over those matrices, except `refresh_board`
which opens cells of a visible board in place.
"""

from collections.abc import Iterator, Sequence
from typing import TypeAlias

MINE = -1
CELL_UNOPENED = 10
CELL_FLAGGED = 11
CELL_EXPLODED_MINE = 15
CELL_REVEALED_MINE = 16

Board: TypeAlias = list[list[int]]
Cell: TypeAlias = tuple[int, int]


def neighbors(row: int, col: int, height: int, width: int) -> Iterator[Cell]:
    """Yield the in-bounds 3x3 block around `(row, col)`, the cell itself included."""

    for i in range(max(row - 1, 0), min(row + 2, height)):
        for j in range(max(col - 1, 0), min(col + 2, width)):
            yield i, j


def board_shape(board: Sequence[Sequence[int]]) -> tuple[int, int]:
    height = len(board)
    width = len(board[0]) if height else 0
    return height, width


def empty_game_board(height: int, width: int) -> Board:
    return [[CELL_UNOPENED] * int(width) for _ in range(int(height))]


def copy_board(board: Sequence[Sequence[int]]) -> Board:
    return [list(row) for row in board]


def cal_board_numbers(board: Board) -> None:
    """Fill every non-mine cell with its adjacent mine count, in place."""

    height, width = board_shape(board)
    for i in range(height):
        for j in range(width):
            if board[i][j] == MINE:
                continue
            board[i][j] = sum(1 for r, c in neighbors(i, j, height, width) if board[r][c] == MINE)


def board_from_mine_mask(mask: Sequence[Sequence[bool]]) -> Board:
    board = [[MINE if bool(is_mine) else 0 for is_mine in row] for row in mask]
    cal_board_numbers(board)
    return board


def count_mines(board: Sequence[Sequence[int]]) -> int:
    return sum(1 for row in board for value in row if value == MINE)


def is_bbbv_number(board: Sequence[Sequence[int]], row: int, col: int) -> bool:
    # Zero cells are 3BV too, but they are counted per opening, not per cell.
    if board[row][col] <= 0:
        return False
    height, width = board_shape(board)
    return all(board[r][c] != 0 for r, c in neighbors(row, col, height, width))


def refresh_board(board: Sequence[Sequence[int]], game_board: Board, clicked: Sequence[Cell]) -> None:
    """Open `clicked` cells on `game_board`; zeros flood to unopened neighbors."""

    height, width = board_shape(board)
    stack = list(clicked)
    while stack:
        row, col = stack.pop()
        value = board[row][col]
        if value == MINE:
            game_board[row][col] = CELL_EXPLODED_MINE
            continue
        game_board[row][col] = value
        if value != 0:
            continue
        for r, c in neighbors(row, col, height, width):
            if game_board[r][c] == CELL_UNOPENED:
                stack.append((r, c))


def _flood_zero_region(board: Sequence[Sequence[int]], start: Cell, seen: set[Cell]) -> None:
    height, width = board_shape(board)
    seen.add(start)
    stack = [start]
    while stack:
        row, col = stack.pop()
        for r, c in neighbors(row, col, height, width):
            if (r, c) not in seen and board[r][c] == 0:
                seen.add((r, c))
                stack.append((r, c))


def cal_op(board: Sequence[Sequence[int]]) -> int:
    """Number of openings (8-connected regions of zero cells)."""

    height, width = board_shape(board)
    seen: set[Cell] = set()
    openings = 0
    for i in range(height):
        for j in range(width):
            if board[i][j] == 0 and (i, j) not in seen:
                openings += 1
                _flood_zero_region(board, (i, j), seen)
    return openings


def cal_bbbv(board: Sequence[Sequence[int]]) -> int:
    height, width = board_shape(board)
    numbers = sum(1 for i in range(height) for j in range(width) if is_bbbv_number(board, i, j))
    return cal_op(board) + numbers


def cal_isl(board: Sequence[Sequence[int]]) -> int:
    """Number of islands (8-connected groups of numbers not touching any opening)."""

    height, width = board_shape(board)
    seen: set[Cell] = set()
    islands = 0
    for i in range(height):
        for j in range(width):
            if (i, j) in seen or not is_bbbv_number(board, i, j):
                continue
            islands += 1
            seen.add((i, j))
            stack = [(i, j)]
            while stack:
                row, col = stack.pop()
                for r, c in neighbors(row, col, height, width):
                    if (r, c) not in seen and is_bbbv_number(board, r, c):
                        seen.add((r, c))
                        stack.append((r, c))
    return islands


def cal_cell_nums(board: Sequence[Sequence[int]]) -> tuple[int, ...]:
    """Histogram of values 0..8 over the non-mine cells."""

    counts = [0] * 9
    for row in board:
        for value in row:
            if 0 <= value <= 8:
                counts[value] += 1
    return tuple(counts)
