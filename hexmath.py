"""Axial hex coordinates: adjacency, distance and pixel layout."""

from __future__ import annotations

import math
from dataclasses import dataclass

# Order matters: valid-move answers are assigned in this order.
NEIGHBOR_OFFSETS: tuple[tuple[int, int], ...] = (
    (1, 0),
    (-1, 0),
    (0, 1),
    (0, -1),
    (1, -1),
    (-1, 1),
)


@dataclass(frozen=True, order=True)
class AxialCoord:
    q: int
    r: int

    def key(self) -> str:
        return f"{self.q},{self.r}"

    @classmethod
    def from_key(cls, key: str) -> "AxialCoord":
        q, r = key.split(",")
        return cls(q=int(q), r=int(r))


def neighbors(coord: AxialCoord) -> list[AxialCoord]:
    return [AxialCoord(coord.q + dq, coord.r + dr) for dq, dr in NEIGHBOR_OFFSETS]


def hex_distance(a: AxialCoord, b: AxialCoord) -> int:
    dq = a.q - b.q
    dr = a.r - b.r
    return max(abs(dq), abs(dr), abs(dq + dr))


def axial_to_pixel(coord: AxialCoord, size: float) -> tuple[float, float]:
    """Center of a flat-top hex relative to the origin hex."""
    x = size * 1.5 * coord.q
    y = size * (math.sqrt(3) / 2 * coord.q + math.sqrt(3) * coord.r)
    return x, y


def in_region(coord: AxialCoord, radius: int) -> bool:
    return abs(coord.q) <= radius and abs(coord.r) <= radius and abs(coord.q + coord.r) <= radius


def hex_region(radius: int) -> list[AxialCoord]:
    """
    All coordinates of a hexagon of the given radius around the origin,
    in lexicographic (q, r) order.
    """
    if radius < 1:
        raise ValueError(f"Hex region radius must be >= 1, got {radius}")
    coords: list[AxialCoord] = []
    for q in range(-radius, radius + 1):
        for r in range(-radius, radius + 1):
            coord = AxialCoord(q, r)
            if in_region(coord, radius):
                coords.append(coord)
    return coords
