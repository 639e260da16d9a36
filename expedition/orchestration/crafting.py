"""Crafting orchestrator bound to an external crafting executor."""

from typing import List, Optional

from ..interfaces import CraftingExecutor, InventoryReader
from ..logger import get_logger
from ..plan import Plan
from .orchestrator import TaskOrchestrator
from .tasks import Task

_log = get_logger(__name__)


class CraftingOrchestrator(TaskOrchestrator):
    """Runs the plan's craft order, ingredients first, through the crafting tool.

    Switching craft classes between jobs can leave the tool stuck, so the
    stop request is cycled before such a dispatch.
    """

    label = "crafting"

    def __init__(self, executor: CraftingExecutor, inventory: InventoryReader, *,
                 skip_after_failed_step: bool = False, **kwargs):
        super().__init__(executor, inventory, **kwargs)
        self.executor: CraftingExecutor = executor
        self.skip_after_failed_step = skip_after_failed_step
        self._last_craft_type = -1

    def _tasks_from_plan(self, plan: Plan, preference: Optional[str]) -> List[Task]:
        return [Task.from_craft_step(step, preference) for step in plan.craft_order]

    def _send_to_executor(self, task: Task, quantity: int) -> None:
        self.executor.craft_item(task.job_id, quantity)

    def _apply_preference(self, task: Task) -> None:
        _log.info("Switching solver for %s to %s", task.name, task.preference)
        self.executor.change_solver(task.job_id, task.preference, temporary=True)

    def _restore_preference(self, task: Task) -> None:
        self.executor.reset_solver(task.job_id)

    def _before_dispatch(self, task: Task) -> None:
        if (task.craft_type >= 0 and self._last_craft_type >= 0
                and task.craft_type != self._last_craft_type):
            _log.info("Craft class change %d -> %d before %s; cycling stop request.",
                      self._last_craft_type, task.craft_type, task.name)
            self.executor.set_stop_request(True)
            self.executor.set_stop_request(False)
        if task.craft_type >= 0:
            self._last_craft_type = task.craft_type

    def _skip_reason(self, task: Task) -> Optional[str]:
        if self.skip_after_failed_step and self.queue.any_failed_before_cursor():
            return "an earlier craft step failed"
        return None

    def _on_reset(self) -> None:
        self._last_craft_type = -1

    def _verb(self) -> str:
        return "Crafting"
