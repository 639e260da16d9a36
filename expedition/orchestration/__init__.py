"""Task orchestration: queue, scheduler and executor-bound orchestrators."""

from .crafting import CraftingOrchestrator
from .events import ActionKind, ActionScheduler, ScheduledAction
from .gathering import GatheringOrchestrator
from .orchestrator import OrchestratorState, TaskOrchestrator
from .queue import TaskQueue
from .tasks import Task, TaskStatus

__all__ = [
    "ActionKind",
    "ActionScheduler",
    "CraftingOrchestrator",
    "GatheringOrchestrator",
    "OrchestratorState",
    "ScheduledAction",
    "Task",
    "TaskOrchestrator",
    "TaskQueue",
    "TaskStatus",
]
