"""Gathering orchestrator bound to an external gathering executor."""

from typing import List, Optional

from ..interfaces import GatheringExecutor, InventoryReader
from ..plan import Plan
from .orchestrator import TaskOrchestrator
from .tasks import Task


class GatheringOrchestrator(TaskOrchestrator):
    """One task per gatherable material that is still short."""

    label = "gathering"

    def __init__(self, executor: GatheringExecutor, inventory: InventoryReader, **kwargs):
        super().__init__(executor, inventory, **kwargs)
        self.executor: GatheringExecutor = executor

    def _tasks_from_plan(self, plan: Plan, preference: Optional[str]) -> List[Task]:
        return [Task.from_material(mat, preference) for mat in plan.gather_shortfall()]

    def _send_to_executor(self, task: Task, quantity: int) -> None:
        self.executor.gather_item(task.item_id, quantity)

    def _apply_preference(self, task: Task) -> None:
        self.executor.change_preference(task.item_id, task.preference)

    def _restore_preference(self, task: Task) -> None:
        self.executor.reset_preference(task.item_id)

    def _verb(self) -> str:
        return "Gathering"
