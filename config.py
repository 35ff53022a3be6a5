from __future__ import annotations

from dataclasses import dataclass
from typing import Final


@dataclass(frozen=True)
class GameConfig:
    """
    Level-scaling knobs for maze generation, expressions and scoring.
    """

    base_radius: int = 3
    radius_step_levels: int = 3
    radius_cap: int = 7
    final_level: int = 6
    final_level_radius: int = 7
    min_maze_cells: int = 8
    data_node_chance: float = 0.15
    max_difficulty: int = 5
    hex_size: float = 35.0
    par_time_base: int = 20
    par_time_per_level: int = 5
    min_performance: int = 10
    asset_min_performance: int = 75
    asset_fragment_limit: int = 3
    asylum_performance: int = 50
    asylum_fragments: int = 5

    def __post_init__(self) -> None:
        if self.base_radius < 1:
            raise ValueError(f"base_radius must be >= 1, got {self.base_radius}")
        if self.radius_cap < self.base_radius:
            raise ValueError(
                f"radius_cap ({self.radius_cap}) is smaller than base_radius ({self.base_radius})"
            )
        if self.final_level_radius < 1:
            raise ValueError(f"final_level_radius must be >= 1, got {self.final_level_radius}")
        if self.radius_step_levels < 1:
            raise ValueError("radius_step_levels must be >= 1")
        if self.final_level < 1:
            raise ValueError("final_level must be >= 1")
        if not 0.0 <= self.data_node_chance <= 1.0:
            raise ValueError(f"data_node_chance must be within [0, 1], got {self.data_node_chance}")
        if self.max_difficulty < 1:
            raise ValueError("max_difficulty must be >= 1")
        if self.asylum_performance > self.asset_min_performance:
            raise ValueError("asylum_performance cannot exceed asset_min_performance")

    def grid_radius(self, level: int) -> int:
        if level == self.final_level:
            return self.final_level_radius
        return min(self.base_radius + level // self.radius_step_levels, self.radius_cap)

    def par_time(self, level: int) -> int:
        return self.par_time_base + self.par_time_per_level * level


DEFAULT_CONFIG: Final[GameConfig] = GameConfig()
