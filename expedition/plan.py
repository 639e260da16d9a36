"""Plan definitions produced by a resolver and consumed by the workflow engine."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .interfaces import InventoryReader


@dataclass(frozen=True)
class ItemRef:
    """An item the user asked for."""

    item_id: int
    name: str


@dataclass
class MaterialRequirement:
    """A single material needed somewhere in the plan."""

    item_id: int
    name: str
    quantity_needed: int
    quantity_owned: int = 0
    is_craftable: bool = False
    is_gatherable: bool = False
    is_collectable: bool = False
    gather_type: str = ""              # "botanist" | "miner" | "fisher" | ""
    preference: Optional[str] = None

    @property
    def quantity_remaining(self) -> int:
        return max(0, self.quantity_needed - self.quantity_owned)

    def __str__(self) -> str:
        return f"{self.name} (x{self.quantity_remaining}/{self.quantity_needed})"


@dataclass
class CraftStep:
    """One recipe to craft, in dependency order (ingredients first)."""

    recipe_id: int
    item_id: int
    name: str
    quantity: int
    craft_type: int = -1
    is_collectable: bool = False


@dataclass
class Plan:
    """Resolved breakdown of a requested item.

    ``craft_order`` is sorted bottom-up: sub-components first, the requested
    item last. ``other_materials`` can be neither gathered nor crafted and
    must be supplied by the player.
    """

    root: ItemRef
    quantity: int = 1
    gather_list: List[MaterialRequirement] = field(default_factory=list)
    craft_order: List[CraftStep] = field(default_factory=list)
    other_materials: List[MaterialRequirement] = field(default_factory=list)

    def refresh_owned(self, inventory: "InventoryReader") -> None:
        """Re-read owned quantities for every gatherable and other material."""
        for mat in self.gather_list:
            mat.quantity_owned = inventory.count(mat.item_id)
        for mat in self.other_materials:
            mat.quantity_owned = inventory.count(mat.item_id)

    def gather_shortfall(self) -> List[MaterialRequirement]:
        return [m for m in self.gather_list if m.quantity_remaining > 0]

    def missing_other(self) -> List[MaterialRequirement]:
        return [m for m in self.other_materials if m.quantity_remaining > 0]

    def summary(self) -> str:
        return (
            f"{len(self.gather_list)} gatherable, "
            f"{len(self.craft_order)} craft steps, "
            f"{len(self.other_materials)} other."
        )
