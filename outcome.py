from __future__ import annotations

import math
from enum import Enum

from config import DEFAULT_CONFIG, GameConfig


class RunOutcome(Enum):
    ASSET = "asset"
    RECALIBRATION = "recalibration"
    ASYLUM = "asylum"


def classify_outcome(
    average_performance: float | None,
    performance_rating: int = 0,
    data_fragments: int = 0,
    fragment_bonus: int = 0,
    config: GameConfig = DEFAULT_CONFIG,
) -> RunOutcome:
    """
    Ending for a finished run.

    The rounded average performance is shifted by the rating earned from
    choices, and collected fragments are topped up by the choice bonus.
    High performance with few fragments makes an asset; low performance or
    many fragments ends in the asylum; anything between is recalibrated.
    """
    # Halves round up.
    final_performance = math.floor((average_performance or 0.0) + 0.5) + performance_rating
    final_fragments = data_fragments + fragment_bonus
    if final_performance >= config.asset_min_performance and final_fragments < config.asset_fragment_limit:
        return RunOutcome.ASSET
    if final_performance < config.asylum_performance or final_fragments >= config.asylum_fragments:
        return RunOutcome.ASYLUM
    return RunOutcome.RECALIBRATION
