"""Nearest fishing spot lookup."""

import math
from dataclasses import dataclass
from typing import Optional

from ..interfaces import Position, WorldState

DEFAULT_SEARCH_RADIUS = 150.0


@dataclass(frozen=True)
class FishingSpot:
    position: Position
    distance: float
    base_id: int
    name: str


def find_nearest(world: WorldState, max_range: float = DEFAULT_SEARCH_RADIUS) -> Optional[FishingSpot]:
    """Return the closest loaded fishing spot within ``max_range`` of the player."""
    player = world.player_position()
    if player is None:
        return None

    closest: Optional[FishingSpot] = None
    for obj in world.fishing_spots():
        dist = math.dist(player, obj.position)
        if dist > max_range:
            continue
        if closest is None or dist < closest.distance:
            closest = FishingSpot(obj.position, dist, obj.base_id, obj.name)
    return closest


def distance_to(world: WorldState, position: Position) -> Optional[float]:
    player = world.player_position()
    if player is None:
        return None
    return math.dist(player, position)
