"""Task definitions for orchestrated executor work."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..plan import CraftStep, MaterialRequirement


class TaskStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.SKIPPED})


@dataclass
class Task:
    """A single produce-N-of-item unit delegated to an external executor."""

    job_id: int                          # recipe id for crafts, item id for gathers
    item_id: int
    name: str
    quantity: int
    quantity_confirmed: int = 0
    status: TaskStatus = TaskStatus.PENDING
    retry_count: int = 0
    error_message: Optional[str] = None
    preference: Optional[str] = None     # executor policy override (solver name etc.)
    craft_type: int = -1
    is_collectable: bool = False

    @property
    def quantity_remaining(self) -> int:
        return max(0, self.quantity - self.quantity_confirmed)

    @property
    def is_satisfied(self) -> bool:
        return self.quantity_remaining <= 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    # ── Lifecycle ─────────────────────────────────────────────

    def record_progress(self, delta: int) -> int:
        """Add confirmed units. Negative deltas are clamped so the count never drops."""
        gained = max(0, delta)
        self.quantity_confirmed += gained
        return gained

    def mark_in_progress(self) -> None:
        if self.is_terminal:
            raise ValueError(f"Task {self.name} is already {self.status.value}")
        self.status = TaskStatus.IN_PROGRESS

    def mark_completed(self) -> None:
        self.status = TaskStatus.COMPLETED
        self.error_message = None

    def mark_failed(self, reason: str) -> None:
        self.status = TaskStatus.FAILED
        self.error_message = reason or "Unknown failure"

    def mark_skipped(self, reason: str) -> None:
        self.status = TaskStatus.SKIPPED
        self.error_message = reason or "Skipped"

    # ── Factories ─────────────────────────────────────────────

    @classmethod
    def from_craft_step(cls, step: CraftStep, preference: Optional[str] = None) -> "Task":
        return cls(
            job_id=step.recipe_id,
            item_id=step.item_id,
            name=step.name,
            quantity=step.quantity,
            preference=preference,
            craft_type=step.craft_type,
            is_collectable=step.is_collectable,
        )

    @classmethod
    def from_material(cls, mat: MaterialRequirement, preference: Optional[str] = None) -> "Task":
        return cls(
            job_id=mat.item_id,
            item_id=mat.item_id,
            name=mat.name,
            quantity=mat.quantity_remaining,
            preference=preference or mat.preference,
            is_collectable=mat.is_collectable,
        )
