import pytest

INITIAL_STATE = {"level": 1, "levels_completed": 0, "data_fragments": 0, "performance_sum": 0.0}


@pytest.fixture(params=["runs.json", "runs.db"])
def any_repo(request, tmp_path, db_module):
    repo = db_module.open_repo(tmp_path / request.param)
    yield repo
    if hasattr(repo, "close"):
        repo.close()


def _new_run(repo, state=INITIAL_STATE):
    player = repo.get_or_create_player("neo")
    run = repo.create_run(player_id=player["id"], initial_state=state)
    return player["id"], run["id"]


def _record(repo, player_id, run_id, rows):
    for level, perf, elapsed in rows:
        repo.record_score(
            player_id=player_id,
            run_id=run_id,
            level=level,
            performance=perf,
            elapsed_seconds=elapsed,
        )


def test_get_or_create_player_is_idempotent(any_repo):
    p1 = any_repo.get_or_create_player("neo")
    p2 = any_repo.get_or_create_player("neo")
    p3 = any_repo.get_or_create_player("trinity")

    assert p1["id"] == p2["id"]
    assert p3["id"] != p1["id"]
    assert any_repo.get_player(p1["id"])["handle"] == "neo"


def test_new_run_fills_state_defaults(any_repo, db_module):
    player_id, run_id = _new_run(any_repo, {"level": 3})

    loaded = any_repo.get_run(run_id)
    assert loaded["player_id"] == player_id
    assert loaded["status"] == "in_progress"
    assert loaded["state"] == {**db_module.RUN_STATE_DEFAULTS, "level": 3}


def test_save_run_updates_state_and_status(any_repo):
    _, run_id = _new_run(any_repo)

    updated = any_repo.save_run(
        run_id=run_id,
        state={"level": 4, "data_fragments": 3, "performance_rating": -5, "fragment_bonus": 2, "data_nodes": True},
        status="completed",
    )

    assert updated["status"] == "completed"
    assert updated["updated_at"] >= updated["created_at"]
    state = any_repo.get_run(run_id)["state"]
    assert state["level"] == 4
    assert state["data_fragments"] == 3
    assert state["performance_rating"] == -5
    assert state["fragment_bonus"] == 2
    assert state["data_nodes"] is True
    assert state["levels_completed"] == 0


def test_save_unknown_run_raises(any_repo):
    with pytest.raises(KeyError):
        any_repo.save_run(run_id="nope", state=INITIAL_STATE)


def test_unknown_state_key_rejected(any_repo):
    _, run_id = _new_run(any_repo)
    with pytest.raises(ValueError):
        any_repo.save_run(run_id=run_id, state={"lives": 3})
    with pytest.raises(ValueError):
        any_repo.save_run(run_id=run_id, state=INITIAL_STATE, status="abandoned")


def test_top_scores_order_by_performance_then_time(any_repo):
    player_id, run_id = _new_run(any_repo)
    _record(any_repo, player_id, run_id, [(1, 80.0, 30), (1, 95.0, 40), (1, 95.0, 12), (2, 100.0, 5)])

    top = any_repo.top_scores(level=1, limit=2)
    assert [(s["performance"], s["elapsed_seconds"]) for s in top] == [(95.0, 12.0), (95.0, 40.0)]
    assert all(s["level"] == 1 for s in top)
    assert all(s["run_id"] == run_id for s in top)

    overall = any_repo.top_scores()
    assert overall[0]["level"] == 2
    assert len(overall) == 4


def test_score_keeps_fragment_count(any_repo):
    player_id, run_id = _new_run(any_repo)
    any_repo.record_score(
        player_id=player_id,
        run_id=run_id,
        level=5,
        performance=72.5,
        elapsed_seconds=41.0,
        data_fragments=4,
    )

    (score,) = any_repo.top_scores(level=5)
    assert score["data_fragments"] == 4
    assert score["performance"] == 72.5
    assert any_repo.top_scores(level=6) == []


def test_get_player_returns_none_for_unknown_id(any_repo):
    assert any_repo.get_player("nonexistent-id") is None


def test_get_run_returns_none_for_unknown_id(any_repo):
    assert any_repo.get_run("nonexistent-id") is None
