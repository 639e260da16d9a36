"""Fishing session tunables, parsed from the ``fishing:`` config section."""

from dataclasses import dataclass
from typing import List

from .actions import CHUM, MIN_GP_TARGET, PATIENCE_II, Buff


@dataclass
class FishingConfig:
    """Configuration for an autonomous fishing session.

    Parsed from the ``fishing:`` section of ``.expedition.yml``.
    """

    use_patience: bool = True
    use_chum: bool = True
    use_thaliaks_favor: bool = True
    gp_float_threshold: int = 200
    update_interval: float = 0.5       # seconds between non-navigation ticks
    buff_check_interval: float = 5.0
    nav_timeout: float = 60.0
    arrival_distance: float = 5.0
    search_radius: float = 150.0
    action_delay: float = 1.5
    stall_timeout: float = 10.0

    @classmethod
    def from_dict(cls, data: dict) -> "FishingConfig":
        """Parse a FishingConfig from a raw config dictionary (YAML fishing: section)."""
        if not data:
            return cls()

        return cls(
            use_patience=bool(data.get("use-patience", True)),
            use_chum=bool(data.get("use-chum", True)),
            use_thaliaks_favor=bool(data.get("use-thaliaks-favor", True)),
            gp_float_threshold=int(data.get("gp-float-threshold", 200)),
            update_interval=float(data.get("update-interval", 0.5)),
            buff_check_interval=float(data.get("buff-check-interval", 5.0)),
            nav_timeout=float(data.get("nav-timeout", 60.0)),
            arrival_distance=float(data.get("arrival-distance", 5.0)),
            search_radius=float(data.get("search-radius", 150.0)),
            action_delay=float(data.get("action-delay", 1.5)),
            stall_timeout=float(data.get("stall-timeout", 10.0)),
        )

    def enabled_buffs(self) -> List[Buff]:
        """Enabled buffs in application order."""
        buffs = []
        if self.use_patience:
            buffs.append(PATIENCE_II)
        if self.use_chum:
            buffs.append(CHUM)
        return buffs

    def gp_needed_for_buffs(self) -> int:
        needed = sum(b.gp_cost for b in self.enabled_buffs())
        return needed if needed > 0 else MIN_GP_TARGET
