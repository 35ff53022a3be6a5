import pytest

from config import GameConfig
from outcome import RunOutcome, classify_outcome


@pytest.mark.parametrize(
    "average, rating, fragments, bonus, expected",
    [
        (75.0, 0, 2, 0, RunOutcome.ASSET),
        (74.5, 0, 0, 0, RunOutcome.ASSET),
        (74.4, 0, 0, 0, RunOutcome.RECALIBRATION),
        (60.0, 15, 0, 0, RunOutcome.ASSET),
        (90.0, 0, 3, 0, RunOutcome.RECALIBRATION),
        (90.0, 0, 1, 2, RunOutcome.RECALIBRATION),
        (90.0, 0, 4, 0, RunOutcome.RECALIBRATION),
        (90.0, 0, 5, 0, RunOutcome.ASYLUM),
        (90.0, 0, 3, 2, RunOutcome.ASYLUM),
        (50.0, 0, 0, 0, RunOutcome.RECALIBRATION),
        (49.4, 0, 0, 0, RunOutcome.ASYLUM),
        (60.0, -15, 0, 0, RunOutcome.ASYLUM),
        (None, 60, 0, 0, RunOutcome.RECALIBRATION),
    ],
)
def test_outcome_thresholds(average, rating, fragments, bonus, expected):
    assert classify_outcome(average, rating, fragments, bonus) is expected


def test_asset_check_wins_over_fragment_failure():
    # Fewer than three fragments can never reach the failure count of five.
    assert classify_outcome(100.0, 0, 2, 0) is RunOutcome.ASSET


def test_thresholds_come_from_config():
    config = GameConfig(asset_min_performance=90, asset_fragment_limit=1, asylum_performance=20, asylum_fragments=2)
    assert classify_outcome(85.0, config=config) is RunOutcome.RECALIBRATION
    assert classify_outcome(95.0, data_fragments=1, config=config) is RunOutcome.RECALIBRATION
    assert classify_outcome(95.0, config=config) is RunOutcome.ASSET
    assert classify_outcome(95.0, fragment_bonus=2, config=config) is RunOutcome.ASYLUM
