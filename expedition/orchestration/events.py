"""Scheduled follow-up actions consumed on the orchestrator's tick."""

import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from ..logger import get_logger

_log = get_logger(__name__)


class ActionKind(Enum):
    START_NEXT = "start_next"    # settle delay elapsed → dispatch the current task
    RETRY = "retry"              # retry delay elapsed → re-dispatch the shortfall


@dataclass
class ScheduledAction:
    kind: ActionKind
    task_index: int
    due_at: float
    reason: str = ""
    created_at: float = field(default_factory=time.time)
    action_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def is_due(self, now: float) -> bool:
        return now >= self.due_at


# Maximum number of actions kept in history (ring buffer)
_MAX_HISTORY = 200


class ActionScheduler:
    """Single-slot timer queue.

    At most one action is pending at any time: scheduling replaces whatever
    was pending. Actions are only ever taken by the owner's tick through
    :meth:`pop_due`, so no callback runs outside ``update()``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic,
                 max_history: int = _MAX_HISTORY):
        self._clock = clock
        self._pending: Optional[ScheduledAction] = None
        self._history: deque[ScheduledAction] = deque(maxlen=max_history)

    def schedule(self, kind: ActionKind, task_index: int, delay: float,
                 reason: str = "") -> ScheduledAction:
        if self._pending is not None:
            _log.warning(
                "Replacing pending %s action for task #%d with %s",
                self._pending.kind.value, self._pending.task_index, kind.value,
            )
        action = ScheduledAction(
            kind=kind,
            task_index=task_index,
            due_at=self._clock() + max(0.0, delay),
            reason=reason,
        )
        self._pending = action
        self._history.append(action)
        return action

    def pop_due(self) -> Optional[ScheduledAction]:
        """Take the pending action if its delay has elapsed."""
        action = self._pending
        if action is None or not action.is_due(self._clock()):
            return None
        self._pending = None
        return action

    def cancel(self) -> Optional[ScheduledAction]:
        action, self._pending = self._pending, None
        return action

    @property
    def pending(self) -> Optional[ScheduledAction]:
        return self._pending

    def seconds_until_due(self) -> float:
        if self._pending is None:
            return 0.0
        return max(0.0, self._pending.due_at - self._clock())

    def get_history(self) -> List[ScheduledAction]:
        """Return a snapshot of recently scheduled actions."""
        return list(self._history)
