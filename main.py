from __future__ import annotations

import argparse
import logging
import random
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from config import DEFAULT_CONFIG, GameConfig
from hexmath import AxialCoord
from maze import CellKind, MazeLayout, generate_maze
from moves import LevelState, MoveResult, ValidMove, attempt_move, refresh
from outcome import RunOutcome, classify_outcome

logger = logging.getLogger(__name__)

MOVE_LABELS = "ABCDEF"


class LevelStatus(Enum):
    GENERATING = "generating"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Command:
    """
    Normalized command object consumed by the engine.
    """

    verb: str
    args: list[str] = field(default_factory=list)


@dataclass
class GameView:
    """
    UI-agnostic state projection returned by the engine.
    """

    level: int
    status: str
    pos: dict[str, int]
    exit: dict[str, int]
    valid_moves: list[dict[str, Any]]
    data_fragments: int
    average_performance: float | None
    is_run_complete: bool
    last_performance: float | None = None
    outcome: str | None = None


@dataclass
class GameOutput:
    """
    Wrapper for state + user-facing messages from engine commands.
    """

    view: GameView
    messages: list[str] = field(default_factory=list)
    result: MoveResult | None = None
    did_persist: bool = False


def _coord_dict(coord: AxialCoord) -> dict[str, int]:
    return {"q": coord.q, "r": coord.r}


class GameEngine:
    """
    Session object for one run: owns the RNG, the current level and the
    scoring totals. Presentation layers talk to it through start_level,
    attempt_move, pause/resume, apply_choice and handle.
    """

    def __init__(
        self,
        *,
        config: GameConfig = DEFAULT_CONFIG,
        rng: random.Random | None = None,
        repo: Any = None,
        player_id: str | None = None,
        run_id: str | None = None,
        data_nodes: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
        start_level: int = 1,
    ):
        self.config = config
        self.rng = rng or random.Random()
        self.repo = repo
        self.player_id = player_id
        self.run_id = run_id
        self.data_nodes = data_nodes
        self.clock = clock

        self._level = start_level
        self._levels_completed = 0
        self._data_fragments = 0
        self._performance_sum = 0.0
        self._performance_rating = 0
        self._fragment_bonus = 0
        self._last_performance: float | None = None
        self._started_at = _utc_now_iso()
        self._run_complete = False
        self._load_state()

        self.state: LevelState | None = None
        self.status = LevelStatus.GENERATING
        self._level_started = 0.0
        self._paused_at: float | None = None
        self._paused_total = 0.0
        if self._run_complete:
            self._show_finished_run()
        else:
            self.start_level(self._level)

    def _load_state(self) -> None:
        if self.repo is None or self.run_id is None:
            return
        run = self.repo.get_run(self.run_id)
        if run is None:
            raise KeyError(f"Unknown run_id: {self.run_id}")
        saved = run["state"]
        self._level = int(saved["level"])
        self._levels_completed = int(saved["levels_completed"])
        self._data_fragments = int(saved["data_fragments"])
        self._performance_sum = float(saved["performance_sum"])
        self._performance_rating = int(saved["performance_rating"])
        self._fragment_bonus = int(saved["fragment_bonus"])
        if self.data_nodes is None:
            self.data_nodes = saved["data_nodes"]
        self._started_at = saved["started_at"] or self._started_at
        self._run_complete = run["status"] == "completed"

    def _serialize_state(self) -> dict[str, Any]:
        return {
            "level": self._level,
            "levels_completed": self._levels_completed,
            "data_fragments": self._data_fragments,
            "performance_sum": self._performance_sum,
            "performance_rating": self._performance_rating,
            "fragment_bonus": self._fragment_bonus,
            "data_nodes": self.data_nodes,
            "started_at": self._started_at,
            "ended_at": _utc_now_iso() if self._run_complete else None,
        }

    def _persist(self) -> bool:
        if self.repo is None or self.run_id is None:
            return False
        status = "completed" if self._run_complete else "in_progress"
        self.repo.save_run(run_id=self.run_id, state=self._serialize_state(), status=status)
        return True

    @property
    def level(self) -> int:
        return self._level

    @property
    def layout(self) -> MazeLayout:
        return self._require_state().layout

    @property
    def player_pos(self) -> AxialCoord:
        return self._require_state().player_pos

    @property
    def valid_moves(self) -> list[ValidMove]:
        return list(self._require_state().valid_moves)

    @property
    def data_fragments(self) -> int:
        return self._data_fragments

    @property
    def performance_rating(self) -> int:
        return self._performance_rating

    @property
    def fragment_bonus(self) -> int:
        return self._fragment_bonus

    @property
    def average_performance(self) -> float | None:
        if self._levels_completed == 0:
            return None
        return self._performance_sum / self._levels_completed

    @property
    def is_run_complete(self) -> bool:
        return self._run_complete

    @property
    def outcome(self) -> RunOutcome | None:
        """Ending of the run, decided once the final level is cleared."""
        if not self._run_complete:
            return None
        return classify_outcome(
            self.average_performance,
            self._performance_rating,
            self._data_fragments,
            self._fragment_bonus,
            self.config,
        )

    def _require_state(self) -> LevelState:
        if self.state is None:
            raise RuntimeError("No level has been generated yet")
        return self.state

    def _show_finished_run(self) -> None:
        # A finished run reopens on its last maze with the player on the exit.
        layout = generate_maze(self._level, data_nodes=bool(self.data_nodes), rng=self.rng, config=self.config)
        self.state = LevelState(layout=layout, player_pos=layout.exit)
        self.status = LevelStatus.COMPLETE
        logger.info("Run %s already complete at level %d", self.run_id, self._level)

    def start_level(self, level: int | None = None) -> GameView:
        """Generate the maze for a level and make it playable."""
        if self._run_complete:
            raise RuntimeError("Run is complete; no further levels can start")
        if level is None:
            level = self._level
        self.status = LevelStatus.GENERATING
        layout = generate_maze(
            level,
            data_nodes=bool(self.data_nodes),
            rng=self.rng,
            config=self.config,
        )
        self._level = level
        self.state = LevelState(layout=layout, player_pos=layout.start)
        self.recompute_valid_moves()

        self._paused_total = 0.0
        self._paused_at = None
        self._level_started = self.clock()
        self.status = LevelStatus.ACTIVE
        logger.info("Level %d started with %d cells", level, len(layout.grid))
        return self.view()

    def apply_choice(
        self,
        rating_delta: int = 0,
        data_nodes: bool | None = None,
        fragment_bonus: int = 0,
    ) -> bool:
        """
        Apply the effects of a story choice to the run.

        rating_delta shifts the performance rating used for the ending,
        fragment_bonus adds to the fragment count used for the ending, and
        data_nodes switches data cells on or off for mazes generated from now
        on. Returns False once the run is complete.
        """
        if self._run_complete:
            return False
        self._performance_rating += rating_delta
        self._fragment_bonus += fragment_bonus
        if data_nodes is not None:
            self.data_nodes = data_nodes
        logger.debug(
            "Choice applied: rating %+d -> %d, bonus %+d -> %d, data nodes %s",
            rating_delta,
            self._performance_rating,
            fragment_bonus,
            self._fragment_bonus,
            self.data_nodes,
        )
        self._persist()
        return True

    def recompute_valid_moves(self) -> list[ValidMove]:
        update = refresh(self._require_state(), self.rng)
        self._data_fragments += len(update.collected)
        return update.valid_moves

    def pause(self) -> bool:
        if self.status is not LevelStatus.ACTIVE:
            return False
        self.status = LevelStatus.PAUSED
        self._paused_at = self.clock()
        return True

    def resume(self) -> bool:
        if self.status is not LevelStatus.PAUSED:
            return False
        if self._paused_at is not None:
            self._paused_total += self.clock() - self._paused_at
        self._paused_at = None
        self.status = LevelStatus.ACTIVE
        return True

    def attempt_move(self, answer: int) -> MoveResult:
        state = self._require_state()
        if self.status is not LevelStatus.ACTIVE:
            return MoveResult(accepted=False, player_pos=state.player_pos)

        result = attempt_move(answer, state, self.rng)
        self._data_fragments += len(result.collected)
        if result.level_complete:
            self._finish_level()
        return result

    def _round_performance(self) -> tuple[float, float]:
        elapsed = max(0.0, self.clock() - self._level_started - self._paused_total)
        over_par = max(0.0, elapsed - self.config.par_time(self._level))
        return elapsed, max(float(self.config.min_performance), 100.0 - over_par)

    def _finish_level(self) -> None:
        self.status = LevelStatus.COMPLETE
        elapsed, performance = self._round_performance()
        self._last_performance = performance
        self._performance_sum += performance
        self._levels_completed += 1
        if self._level >= self.config.final_level:
            self._run_complete = True
            logger.info("Run complete after %d levels: %s", self._levels_completed, self.outcome.value)
        else:
            logger.info("Level %d complete, performance %.0f%%", self._level, performance)

        if self.repo is not None and self.run_id is not None and self.player_id is not None:
            self.repo.record_score(
                player_id=self.player_id,
                run_id=self.run_id,
                level=self._level,
                performance=round(performance, 2),
                elapsed_seconds=round(elapsed, 2),
                data_fragments=self._data_fragments,
            )
        if not self._run_complete:
            self._level += 1
        self._persist()

    def next_level(self) -> GameView | None:
        if self.status is not LevelStatus.COMPLETE or self._run_complete:
            return None
        return self.start_level(self._level)

    def _make_view(self) -> GameView:
        state = self._require_state()
        moves = []
        for label, move in zip(MOVE_LABELS, state.valid_moves):
            moves.append({
                "label": label,
                "answer": move.answer,
                "expression": state.grid[move.coord].expression,
                **_coord_dict(move.coord),
            })
        return GameView(
            level=state.level,
            status=self.status.value,
            pos=_coord_dict(state.player_pos),
            exit=_coord_dict(state.exit_pos),
            valid_moves=moves,
            data_fragments=self._data_fragments,
            average_performance=self.average_performance,
            is_run_complete=self._run_complete,
            last_performance=self._last_performance,
            outcome=self.outcome.value if self._run_complete else None,
        )

    def view(self) -> GameView:
        return self._make_view()

    def _answer_from_token(self, token: str | None) -> int | None:
        if token is None:
            return None
        t = token.strip()
        if len(t) == 1 and t.isdigit() and t != "0":
            return int(t)
        return None

    def handle(self, command: Command) -> GameOutput:
        verb = (command.verb or "").strip().lower()
        args = command.args or []

        if verb in {"look", "map"}:
            return GameOutput(view=self._make_view())

        if verb == "save":
            did_persist = self._persist()
            message = "Progress saved." if did_persist else "Nothing to save to."
            return GameOutput(view=self._make_view(), messages=[message], did_persist=did_persist)

        if verb in {"p", "pause", "resume"}:
            if verb == "resume" or (verb == "p" and self.status is LevelStatus.PAUSED):
                ok = self.resume()
                message = "Resumed." if ok else "Not paused."
            else:
                ok = self.pause()
                message = "Paused." if ok else "Nothing to pause."
            return GameOutput(view=self._make_view(), messages=[message])

        if verb == "next":
            if self.next_level() is None:
                return GameOutput(view=self._make_view(), messages=["No level to start."])
            return GameOutput(view=self._make_view(), messages=[f"Level {self._level}."])

        if verb == "answer":
            answer = self._answer_from_token(args[0] if args else None)
        elif verb.isdigit():
            answer = self._answer_from_token(verb)
        else:
            return GameOutput(view=self._make_view(), messages=["Unknown command."])

        if answer is None:
            return GameOutput(view=self._make_view(), messages=["Answers are single digits 1-9."])
        if self.status is LevelStatus.PAUSED:
            return GameOutput(view=self._make_view(), messages=["Game is paused."])
        if self.status is not LevelStatus.ACTIVE:
            return GameOutput(view=self._make_view(), messages=["No active level."])

        result = self.attempt_move(answer)
        messages = []
        if not result.accepted:
            messages.append("Incorrect.")
        else:
            messages.append("Correct.")
            if result.collected:
                messages.append(f"Data fragment recovered ({self._data_fragments} total).")
            if result.level_complete:
                messages.append(f"Exit reached. Performance {self._last_performance:.0f}%.")
                if self._run_complete:
                    messages.append("Protocol complete.")
        return GameOutput(
            view=self._make_view(),
            messages=messages,
            result=result,
            did_persist=result.level_complete and self.repo is not None and self.run_id is not None,
        )


def _render_map(
    layout: MazeLayout,
    pos: AxialCoord,
    valid_moves: list[ValidMove],
) -> str:
    """Text projection of the maze: one character per cell, offset rows."""
    labels = {move.coord: label for label, move in zip(MOVE_LABELS, valid_moves)}
    coords = list(layout.grid)
    min_x = min(2 * c.q + c.r for c in coords)
    min_r = min(c.r for c in coords)
    max_r = max(c.r for c in coords)
    width = max(2 * c.q + c.r for c in coords) - min_x + 1

    rows = [[" "] * width for _ in range(max_r - min_r + 1)]
    for coord, cell in layout.grid.items():
        if coord == pos:
            ch = "@"
        elif coord in labels:
            ch = labels[coord]
        elif cell.kind is CellKind.EXIT:
            ch = "X"
        elif cell.kind is CellKind.DATA:
            ch = "*" if cell.collected else "?"
        else:
            ch = "."
        rows[coord.r - min_r][2 * coord.q + coord.r - min_x] = ch
    return "\n".join("".join(row).rstrip() for row in rows)


def _render_moves(view: GameView) -> str:
    return "\n".join(f"  {move['label']}: {move['expression']}" for move in view.valid_moves)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Navigate a hex maze by solving arithmetic.")
    parser.add_argument("--seed", type=int, default=None, help="seed for reproducible mazes")
    parser.add_argument("--db", default=None, help="save file (.db for SQLite, otherwise JSON)")
    parser.add_argument("--player", default="subject", help="player handle for saved runs")
    parser.add_argument("--run", default=None, help="resume a saved run by id")
    parser.add_argument("--level", type=int, default=1, help="level to start at")
    parser.add_argument("--data-nodes", action="store_true", default=None, help="always place data nodes")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.verbose)

    repo = None
    player_id = run_id = None
    if args.db:
        from db import open_repo

        repo = open_repo(args.db)
        player_id = repo.get_or_create_player(args.player)["id"]
        run_id = args.run or repo.create_run(player_id=player_id, initial_state={"level": args.level})["id"]

    engine = GameEngine(
        rng=random.Random(args.seed),
        repo=repo,
        player_id=player_id,
        run_id=run_id,
        data_nodes=args.data_nodes,
        start_level=args.level,
    )
    print("Type the value of an expression to move. p pauses, next continues, quit exits.")
    while True:
        view = engine.view()
        if view.is_run_complete:
            avg = view.average_performance or 0.0
            print(f"Average performance {avg:.0f}%, {view.data_fragments} fragments. Outcome: {view.outcome}.")
            break
        print(f"\nLEVEL {view.level}  FRAGMENTS {view.data_fragments}  STATUS {view.status}")
        print(_render_map(engine.layout, engine.player_pos, engine.valid_moves))
        print(_render_moves(view))
        try:
            line = input("> ").strip()
        except EOFError:
            break
        if line in {"q", "quit", "exit"}:
            break
        if not line:
            continue
        verb, *rest = line.split()
        out = engine.handle(Command(verb=verb, args=rest))
        for message in out.messages:
            print(message)
    return 0


if __name__ == "__main__":
    sys.exit(main())
