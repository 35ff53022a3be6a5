import importlib
import json
import random
from collections import deque
from pathlib import Path
from typing import Any

import pytest

from hexmath import neighbors


def import_required(module_name: str):
    """
    Import a project module with a clearer failure message than ModuleNotFoundError.
    """
    try:
        return importlib.import_module(module_name)
    except ModuleNotFoundError as e:
        pytest.fail(f"Required module '{module_name}.py' could not be imported. Original error: {e}")


@pytest.fixture
def hexmath_module():
    return import_required("hexmath")


@pytest.fixture
def maze_module():
    return import_required("maze")


@pytest.fixture
def moves_module():
    return import_required("moves")


@pytest.fixture
def db_module():
    return import_required("db")


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def repo_path(tmp_path):
    return tmp_path / "runs.json"


@pytest.fixture
def repo(repo_path, db_module):
    return db_module.JsonRunRepository(repo_path)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def evaluate(text: str) -> int:
    """Independent check of generated expressions using Python arithmetic."""
    value = eval(text.replace("×", "*").replace("÷", "/"), {"__builtins__": {}}, {})
    assert value == int(value)
    return int(value)


def read_json(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def path_to_exit(layout, start):
    """Coordinates from start (exclusive) to the exit along a shortest path."""
    q = deque([start])
    prev = {start: None}
    while q:
        cur = q.popleft()
        if cur == layout.exit:
            break
        for n in neighbors(cur):
            if n in layout.grid and n not in prev:
                prev[n] = cur
                q.append(n)
    assert layout.exit in prev, "Exit must be reachable from the player"
    path = []
    cur = layout.exit
    while cur != start:
        path.append(cur)
        cur = prev[cur]
    path.reverse()
    return path


def answer_for(engine, coord):
    for move in engine.valid_moves:
        if move.coord == coord:
            return move.answer
    pytest.fail(f"{coord} is not a valid move from {engine.player_pos}")


def play_to_exit(engine):
    result = None
    for coord in path_to_exit(engine.layout, engine.player_pos):
        result = engine.attempt_move(answer_for(engine, coord))
        assert result.accepted
    return result
