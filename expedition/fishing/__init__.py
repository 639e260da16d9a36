"""Autonomous fishing session."""

from .config import FishingConfig
from .session import FishingSession, FishingState, PreFishingStep
from .spots import FishingSpot, find_nearest

__all__ = [
    "FishingConfig",
    "FishingSession",
    "FishingSpot",
    "FishingState",
    "PreFishingStep",
    "find_nearest",
]
