from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlmodel import Field, Session, SQLModel, col, create_engine, select

# Progress a run carries between sessions, with the value a fresh run starts from.
RUN_STATE_DEFAULTS: dict[str, Any] = {
    "level": 1,
    "levels_completed": 0,
    "data_fragments": 0,
    "performance_sum": 0.0,
    "performance_rating": 0,
    "fragment_bonus": 0,
    "data_nodes": None,
    "started_at": None,
    "ended_at": None,
}

RUN_STATUSES = ("in_progress", "completed")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def run_state(partial: dict[str, Any] | None = None) -> dict[str, Any]:
    """Fill a partial run state with defaults; unknown keys are an error."""
    partial = partial or {}
    unknown = set(partial) - set(RUN_STATE_DEFAULTS)
    if unknown:
        raise ValueError(f"Unknown run state keys: {sorted(unknown)}")
    return {**RUN_STATE_DEFAULTS, **partial}


def _check_status(status: str) -> None:
    if status not in RUN_STATUSES:
        raise ValueError(f"Run status must be one of {RUN_STATUSES}, got {status!r}")


class JsonRunRepository:
    """Single JSON document holding players, runs and level scores."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        if not self.path.exists():
            self._write({"players": {}, "runs": {}, "scores": []})

    def _read(self) -> dict[str, Any]:
        raw = self.path.read_text(encoding="utf-8").strip() if self.path.exists() else ""
        doc = json.loads(raw) if raw else {}
        for key, empty in (("players", {}), ("runs", {}), ("scores", [])):
            doc.setdefault(key, empty)
        return doc

    def _write(self, doc: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(doc, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self.path)

    def get_player(self, player_id: str) -> dict[str, Any] | None:
        return self._read()["players"].get(player_id)

    def get_or_create_player(self, handle: str) -> dict[str, Any]:
        doc = self._read()
        existing = next((p for p in doc["players"].values() if p["handle"] == handle), None)
        if existing is not None:
            return existing
        player = {"id": str(uuid4()), "handle": handle, "created_at": _utc_now_iso()}
        doc["players"][player["id"]] = player
        self._write(doc)
        return player

    def create_run(self, player_id: str, initial_state: dict[str, Any] | None = None) -> dict[str, Any]:
        doc = self._read()
        now = _utc_now_iso()
        run = {
            "id": str(uuid4()),
            "player_id": player_id,
            "status": "in_progress",
            "state": run_state(initial_state),
            "created_at": now,
            "updated_at": now,
        }
        doc["runs"][run["id"]] = run
        self._write(doc)
        return run

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        return self._read()["runs"].get(run_id)

    def save_run(self, run_id: str, state: dict[str, Any], status: str = "in_progress") -> dict[str, Any]:
        _check_status(status)
        doc = self._read()
        run = doc["runs"].get(run_id)
        if run is None:
            raise KeyError(f"Unknown run_id: {run_id}")
        run["state"] = run_state({**run["state"], **state})
        run["status"] = status
        run["updated_at"] = _utc_now_iso()
        self._write(doc)
        return run

    def record_score(
        self,
        player_id: str,
        run_id: str,
        level: int,
        performance: float,
        elapsed_seconds: float,
        data_fragments: int = 0,
    ) -> dict[str, Any]:
        doc = self._read()
        score = {
            "id": str(uuid4()),
            "player_id": player_id,
            "run_id": run_id,
            "level": level,
            "performance": float(performance),
            "elapsed_seconds": float(elapsed_seconds),
            "data_fragments": int(data_fragments),
            "created_at": _utc_now_iso(),
        }
        doc["scores"].append(score)
        self._write(doc)
        return score

    def top_scores(self, level: int | None = None, limit: int = 10) -> list[dict[str, Any]]:
        scores = [s for s in self._read()["scores"] if level is None or s["level"] == level]
        scores.sort(key=lambda s: (-s["performance"], s["elapsed_seconds"]))
        return scores[:limit]


class PlayerModel(SQLModel, table=True):
    __tablename__ = "players"
    id: str = Field(primary_key=True)
    handle: str = Field(index=True, unique=True)
    created_at: str


class RunModel(SQLModel, table=True):
    __tablename__ = "runs"
    id: str = Field(primary_key=True)
    player_id: str = Field(foreign_key="players.id", index=True)
    status: str = "in_progress"
    level: int = 1
    levels_completed: int = 0
    data_fragments: int = 0
    performance_sum: float = 0.0
    performance_rating: int = 0
    fragment_bonus: int = 0
    data_nodes: bool | None = None
    started_at: str | None = None
    ended_at: str | None = None
    created_at: str
    updated_at: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "player_id": self.player_id,
            "status": self.status,
            "state": {key: getattr(self, key) for key in RUN_STATE_DEFAULTS},
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class ScoreModel(SQLModel, table=True):
    __tablename__ = "scores"
    id: str = Field(primary_key=True)
    player_id: str = Field(foreign_key="players.id")
    run_id: str = Field(foreign_key="runs.id", index=True)
    level: int = Field(index=True)
    performance: float
    elapsed_seconds: float
    data_fragments: int = 0
    created_at: str


class SqliteRunRepository:
    """SQLite store for players, runs and level scores; same methods as JsonRunRepository."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(f"sqlite:///{self.path}", connect_args={"check_same_thread": False})
        SQLModel.metadata.create_all(self.engine)

    def get_player(self, player_id: str) -> dict[str, Any] | None:
        with Session(self.engine) as session:
            row = session.get(PlayerModel, player_id)
            return row.model_dump() if row is not None else None

    def get_or_create_player(self, handle: str) -> dict[str, Any]:
        with Session(self.engine) as session:
            row = session.exec(select(PlayerModel).where(PlayerModel.handle == handle)).first()
            if row is None:
                row = PlayerModel(id=str(uuid4()), handle=handle, created_at=_utc_now_iso())
                session.add(row)
                session.commit()
                session.refresh(row)
            return row.model_dump()

    def create_run(self, player_id: str, initial_state: dict[str, Any] | None = None) -> dict[str, Any]:
        now = _utc_now_iso()
        with Session(self.engine) as session:
            row = RunModel(id=str(uuid4()), player_id=player_id, created_at=now, updated_at=now, **run_state(initial_state))
            session.add(row)
            session.commit()
            session.refresh(row)
            return row.as_dict()

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        with Session(self.engine) as session:
            row = session.get(RunModel, run_id)
            return row.as_dict() if row is not None else None

    def save_run(self, run_id: str, state: dict[str, Any], status: str = "in_progress") -> dict[str, Any]:
        _check_status(status)
        with Session(self.engine) as session:
            row = session.get(RunModel, run_id)
            if row is None:
                raise KeyError(f"Unknown run_id: {run_id}")
            run_state(state)
            for key, value in state.items():
                setattr(row, key, value)
            row.status = status
            row.updated_at = _utc_now_iso()
            session.add(row)
            session.commit()
            session.refresh(row)
            return row.as_dict()

    def record_score(
        self,
        player_id: str,
        run_id: str,
        level: int,
        performance: float,
        elapsed_seconds: float,
        data_fragments: int = 0,
    ) -> dict[str, Any]:
        with Session(self.engine) as session:
            row = ScoreModel(
                id=str(uuid4()),
                player_id=player_id,
                run_id=run_id,
                level=level,
                performance=performance,
                elapsed_seconds=elapsed_seconds,
                data_fragments=data_fragments,
                created_at=_utc_now_iso(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return row.model_dump()

    def top_scores(self, level: int | None = None, limit: int = 10) -> list[dict[str, Any]]:
        stmt = select(ScoreModel)
        if level is not None:
            stmt = stmt.where(ScoreModel.level == level)
        stmt = stmt.order_by(col(ScoreModel.performance).desc(), col(ScoreModel.elapsed_seconds)).limit(limit)
        with Session(self.engine) as session:
            return [row.model_dump() for row in session.exec(stmt)]

    def close(self) -> None:
        self.engine.dispose()


def open_repo(path: str | Path) -> JsonRunRepository | SqliteRunRepository:
    """SQLite for .db paths, a JSON document otherwise."""
    path = Path(path)
    if path.suffix == ".db":
        return SqliteRunRepository(path)
    return JsonRunRepository(path)
