"""Collaborator interfaces consumed by the orchestration core.

Everything the core knows about the outside world comes through these
abstract classes. Real implementations talk to game plugins; tests and the
simulator substitute deterministic fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .plan import ItemRef, Plan

Position = Tuple[float, float, float]


class InventoryReader(ABC):
    """Read-only view of the player's item counts."""

    @abstractmethod
    def count(self, item_id: int) -> int:
        """Return how many of ``item_id`` the player currently holds."""

    @abstractmethod
    def free_slots(self) -> int:
        """Return the number of empty inventory slots."""


class Resolver(ABC):
    """Turns a requested item into a plan of gather and craft steps."""

    @abstractmethod
    def resolve(self, item: ItemRef, quantity: int) -> Plan:
        """Return the plan or raise :class:`~expedition.errors.ResolutionError`."""


class ExternalExecutor(ABC):
    """Common surface of the crafting and gathering executors."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable tool name used in error messages."""

    @property
    @abstractmethod
    def is_available(self) -> bool: ...

    @abstractmethod
    def check_availability(self) -> None:
        """Re-probe the tool so ``is_available`` reflects its current state."""

    @abstractmethod
    def is_busy(self) -> bool: ...

    @abstractmethod
    def set_stop_request(self, stop: bool) -> None: ...


class CraftingExecutor(ExternalExecutor):
    """External crafting tool."""

    @abstractmethod
    def craft_item(self, recipe_id: int, quantity: int) -> None: ...

    @abstractmethod
    def change_solver(self, recipe_id: int, solver_name: str, temporary: bool = True) -> None: ...

    @abstractmethod
    def reset_solver(self, recipe_id: int) -> None: ...


class GatheringExecutor(ExternalExecutor):
    """External gathering tool, item-quantity oriented."""

    @abstractmethod
    def gather_item(self, item_id: int, quantity: int) -> None: ...

    def change_preference(self, item_id: int, preference: str) -> None:
        """Switch the gathering policy for one item. Optional."""

    def reset_preference(self, item_id: int) -> None:
        """Restore the default gathering policy. Optional."""


class Navigator(ABC):
    """Navigation mover that walks or flies the player to a position."""

    @property
    @abstractmethod
    def is_available(self) -> bool: ...

    @abstractmethod
    def move_to(self, position: Position, fly: bool = False) -> None: ...

    @abstractmethod
    def is_path_running(self) -> bool: ...

    @abstractmethod
    def is_pathfind_in_progress(self) -> bool: ...

    @abstractmethod
    def stop(self) -> None: ...


class CompanionTool(ABC):
    """Fishing-assist tool that handles hooksets and re-casting."""

    @property
    @abstractmethod
    def is_available(self) -> bool: ...

    @abstractmethod
    def check_availability(self) -> None: ...


@dataclass(frozen=True)
class SpotObject:
    """A world object that marks a fishing spot."""

    base_id: int
    name: str
    position: Position


class WorldState(ABC):
    """Probes for player state: position, job, buffs, GP and condition flags."""

    @abstractmethod
    def player_position(self) -> Optional[Position]:
        """Return the player position, or ``None`` if no player is loaded."""

    @abstractmethod
    def job_id(self) -> int: ...

    @abstractmethod
    def has_status(self, status_id: int) -> bool: ...

    @abstractmethod
    def current_gp(self) -> int: ...

    @abstractmethod
    def is_mounted(self) -> bool: ...

    @abstractmethod
    def is_casting(self) -> bool: ...

    @abstractmethod
    def is_occupied(self) -> bool: ...

    @abstractmethod
    def is_fishing(self) -> bool: ...

    @abstractmethod
    def fishing_spots(self) -> Iterable[SpotObject]:
        """Return the fishing-spot objects currently loaded around the player."""


class ActionExecutor(ABC):
    """Uses player actions (abilities) and reports whether they are usable."""

    @abstractmethod
    def can_use(self, action_id: int) -> bool: ...

    @abstractmethod
    def use(self, action_id: int) -> bool: ...

    @abstractmethod
    def dismount(self) -> None: ...


class Notifier(ABC):
    """Surface for user-facing notices (chat lines, toasts)."""

    @abstractmethod
    def info(self, message: str) -> None: ...

    @abstractmethod
    def error(self, message: str) -> None: ...


class NullNotifier(Notifier):
    """Notifier that drops every message."""

    def info(self, message: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass


__all__: List[str] = [
    "Position",
    "InventoryReader",
    "Resolver",
    "ExternalExecutor",
    "CraftingExecutor",
    "GatheringExecutor",
    "Navigator",
    "CompanionTool",
    "WorldState",
    "SpotObject",
    "ActionExecutor",
    "Notifier",
    "NullNotifier",
]
