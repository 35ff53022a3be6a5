from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable

from config import DEFAULT_CONFIG, GameConfig
from hexmath import AxialCoord, hex_distance, hex_region, in_region, neighbors

logger = logging.getLogger(__name__)


class EmptyCarveError(RuntimeError):
    """Carving produced no cells; the coordinate region was empty."""


class CellKind(Enum):
    NORMAL = "normal"
    DATA = "data"
    EXIT = "exit"


@dataclass
class Cell:
    coord: AxialCoord
    kind: CellKind = CellKind.NORMAL
    expression: str = ""
    answer: int | None = None
    collected: bool = False

    def clear_expression(self) -> None:
        self.expression = ""
        self.answer = None


Grid = Dict[AxialCoord, Cell]


@dataclass(frozen=True)
class LevelParams:
    level: int
    grid_radius: int
    min_cells: int
    data_node_chance: float
    difficulty: int


@dataclass
class MazeLayout:
    params: LevelParams
    grid: Grid
    start: AxialCoord
    exit: AxialCoord

    def data_cells(self) -> list[Cell]:
        return [cell for cell in self.grid.values() if cell.kind is CellKind.DATA]


def level_params(level: int, config: GameConfig = DEFAULT_CONFIG) -> LevelParams:
    if level < 1:
        raise ValueError(f"Level must be >= 1, got {level}")
    radius = config.grid_radius(level)
    return LevelParams(
        level=level,
        grid_radius=radius,
        min_cells=max(config.min_maze_cells, radius * 2),
        data_node_chance=config.data_node_chance,
        difficulty=min(level, config.max_difficulty),
    )


def carve_region(region: Iterable[AxialCoord], rng: random.Random) -> set[AxialCoord]:
    """
    Randomized-Prim carving over a coordinate region.
    A frontier coordinate is carved only when exactly one of its neighbors is
    already carved, so the result is a connected tree.
    """
    region_list = list(region)
    if not region_list:
        raise EmptyCarveError("Cannot carve an empty coordinate region")
    region_set = set(region_list)

    seed = rng.choice(region_list)
    carved: set[AxialCoord] = {seed}
    frontier: list[AxialCoord] = []
    in_frontier: set[AxialCoord] = set()

    def push_neighbors(coord: AxialCoord) -> None:
        for n in neighbors(coord):
            if n in region_set and n not in carved and n not in in_frontier:
                frontier.append(n)
                in_frontier.add(n)

    push_neighbors(seed)
    while frontier:
        idx = rng.randrange(len(frontier))
        frontier[idx], frontier[-1] = frontier[-1], frontier[idx]
        coord = frontier.pop()
        in_frontier.discard(coord)

        carved_neighbors = sum(1 for n in neighbors(coord) if n in carved)
        if carved_neighbors == 1:
            carved.add(coord)
            push_neighbors(coord)

    return carved


def _pad_carved(
    carved: set[AxialCoord],
    region: list[AxialCoord],
    min_cells: int,
    rng: random.Random,
) -> None:
    # Pads only with cells touching the carved set, keeping it connected.
    while len(carved) < min_cells:
        border = [
            coord
            for coord in region
            if coord not in carved and any(n in carved for n in neighbors(coord))
        ]
        if not border:
            break
        carved.add(rng.choice(border))


def farthest_coord(origin: AxialCoord, coords: Iterable[AxialCoord]) -> AxialCoord:
    """
    Coordinate with the greatest hex distance from origin.
    Ties resolve to the lexicographically smallest (q, r).
    """
    best = origin
    best_distance = 0
    for coord in sorted(coords):
        distance = hex_distance(origin, coord)
        if distance > best_distance:
            best = coord
            best_distance = distance
    return best


def build_grid(
    coords: Iterable[AxialCoord],
    start: AxialCoord,
    exit_pos: AxialCoord | None = None,
    data: Iterable[AxialCoord] = (),
    params: LevelParams | None = None,
) -> MazeLayout:
    """Assemble a layout from an explicit set of carved coordinates."""
    grid: Grid = {coord: Cell(coord=coord) for coord in sorted(set(coords))}
    if not grid:
        raise EmptyCarveError("Cannot build a maze without cells")
    if start not in grid:
        raise ValueError(f"Start {start} is not a maze cell")
    if exit_pos is None:
        exit_pos = farthest_coord(start, grid)
    if exit_pos not in grid:
        raise ValueError(f"Exit {exit_pos} is not a maze cell")
    if exit_pos == start:
        raise ValueError("A maze needs at least two cells to place an exit")

    grid[exit_pos].kind = CellKind.EXIT
    for coord in data:
        if coord in (start, exit_pos):
            raise ValueError(f"Data cell cannot share start or exit: {coord}")
        grid[coord].kind = CellKind.DATA

    if params is None:
        params = LevelParams(
            level=1,
            grid_radius=max(max(abs(c.q), abs(c.r), abs(c.q + c.r)) for c in grid) or 1,
            min_cells=len(grid),
            data_node_chance=0.0,
            difficulty=1,
        )
    return MazeLayout(params=params, grid=grid, start=start, exit=exit_pos)


def generate_maze(
    level: int,
    *,
    data_nodes: bool = False,
    rng: random.Random | None = None,
    config: GameConfig = DEFAULT_CONFIG,
) -> MazeLayout:
    """Carve a fresh hex maze for a level and place start, exit and data cells."""
    rng = rng or random.Random()
    params = level_params(level, config)

    region = hex_region(params.grid_radius)
    carved = carve_region(region, rng)
    if len(carved) < params.min_cells:
        logger.debug("Padding maze from %d to %d cells", len(carved), params.min_cells)
        _pad_carved(carved, region, params.min_cells, rng)

    ordered = sorted(carved)
    start = rng.choice(ordered)
    exit_pos = farthest_coord(start, ordered)

    data: list[AxialCoord] = []
    if data_nodes:
        for coord in ordered:
            if coord in (start, exit_pos):
                continue
            if rng.random() < params.data_node_chance:
                data.append(coord)

    layout = build_grid(ordered, start=start, exit_pos=exit_pos, data=data, params=params)
    logger.debug(
        "Generated level %d: radius=%d cells=%d data=%d start=%s exit=%s",
        level,
        params.grid_radius,
        len(layout.grid),
        len(data),
        start,
        exit_pos,
    )
    return layout


def is_connected(coords: Iterable[AxialCoord]) -> bool:
    coord_set = set(coords)
    if not coord_set:
        return False
    first = min(coord_set)
    seen = {first}
    stack = [first]
    while stack:
        cur = stack.pop()
        for n in neighbors(cur):
            if n in coord_set and n not in seen:
                seen.add(n)
                stack.append(n)
    return seen == coord_set


def within_radius(layout: MazeLayout) -> bool:
    return all(in_region(coord, layout.params.grid_radius) for coord in layout.grid)
