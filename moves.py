from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field

from expressions import synthesize_expression
from hexmath import AxialCoord, neighbors
from maze import CellKind, Grid, MazeLayout

logger = logging.getLogger(__name__)

ANSWERS = tuple(range(1, 10))


@dataclass(frozen=True)
class ValidMove:
    coord: AxialCoord
    answer: int


@dataclass
class MoveUpdate:
    valid_moves: list[ValidMove]
    collected: list[AxialCoord] = field(default_factory=list)


@dataclass(frozen=True)
class MoveResult:
    accepted: bool
    player_pos: AxialCoord
    level_complete: bool = False
    collected: tuple[AxialCoord, ...] = ()

    @property
    def fragment_collected(self) -> bool:
        return bool(self.collected)


@dataclass
class LevelState:
    """Mutable per-level state: the maze, the player and the current choices."""

    layout: MazeLayout
    player_pos: AxialCoord
    valid_moves: list[ValidMove] = field(default_factory=list)

    @property
    def grid(self) -> Grid:
        return self.layout.grid

    @property
    def exit_pos(self) -> AxialCoord:
        return self.layout.exit

    @property
    def level(self) -> int:
        return self.layout.params.level

    def at_exit(self) -> bool:
        return self.player_pos == self.layout.exit

    def move_for(self, answer: int) -> ValidMove | None:
        for move in self.valid_moves:
            if move.answer == answer:
                return move
        return None


def collect_adjacent_data(grid: Grid, player_pos: AxialCoord) -> list[AxialCoord]:
    collected = []
    for n in neighbors(player_pos):
        cell = grid.get(n)
        if cell is not None and cell.kind is CellKind.DATA and not cell.collected:
            cell.collected = True
            collected.append(n)
    return collected


def recompute_valid_moves(
    grid: Grid,
    player_pos: AxialCoord,
    difficulty: int,
    rng: random.Random | None = None,
) -> MoveUpdate:
    """
    Collect adjacent data cells, then give every neighboring cell a distinct
    answer in 1..9 and an expression that evaluates to it.
    """
    rng = rng or random.Random()
    collected = collect_adjacent_data(grid, player_pos)

    candidates = [n for n in neighbors(player_pos) if n in grid]
    answers = list(ANSWERS)
    rng.shuffle(answers)

    for cell in grid.values():
        if cell.answer is not None:
            cell.clear_expression()

    moves: list[ValidMove] = []
    for coord, answer in zip(candidates, answers):
        expression = synthesize_expression(answer, difficulty, rng)
        cell = grid[coord]
        cell.expression = expression.text
        cell.answer = expression.answer
        moves.append(ValidMove(coord=coord, answer=answer))

    if collected:
        logger.debug("Collected %d data fragment(s) near %s", len(collected), player_pos)
    return MoveUpdate(valid_moves=moves, collected=collected)


def refresh(state: LevelState, rng: random.Random | None = None) -> MoveUpdate:
    update = recompute_valid_moves(state.grid, state.player_pos, state.layout.params.difficulty, rng)
    state.valid_moves = update.valid_moves
    return update


def attempt_move(answer: int, state: LevelState, rng: random.Random | None = None) -> MoveResult:
    """
    Move the player to the cell keyed by answer. Unknown answers are rejected
    without touching the state.
    """
    move = state.move_for(answer)
    if move is None:
        logger.debug("Rejected answer %r at %s", answer, state.player_pos)
        return MoveResult(accepted=False, player_pos=state.player_pos)

    state.player_pos = move.coord
    if state.at_exit():
        for cell in state.grid.values():
            cell.clear_expression()
        state.valid_moves = []
        return MoveResult(accepted=True, player_pos=state.player_pos, level_complete=True)

    update = refresh(state, rng)
    return MoveResult(
        accepted=True,
        player_pos=state.player_pos,
        collected=tuple(update.collected),
    )
