"""TaskQueue: ordered task list with a forward-only cursor."""

from typing import Iterable, List, Optional, Tuple

from .tasks import Task, TaskStatus, TERMINAL_STATUSES


class TaskQueue:
    """Ordered sequence of tasks owned by exactly one orchestrator.

    The cursor starts before the first task, only moves forward, and once it
    passes the end the queue stays exhausted until :meth:`rebuild` is called.
    """

    def __init__(self):
        self._tasks: List[Task] = []
        self._index = -1

    # ── Task management ───────────────────────────────────────

    def rebuild(self, tasks: Iterable[Task]) -> None:
        """Replace the whole queue (never appends) and rewind the cursor."""
        self._tasks = list(tasks)
        self._index = -1

    def clear(self) -> None:
        self.rebuild([])

    # ── Cursor ────────────────────────────────────────────────

    def begin(self) -> Optional[Task]:
        """Point the cursor at the first task and return it."""
        if self._index >= 0:
            raise RuntimeError("Queue already started; rebuild it to run again")
        self._index = 0
        return self.current

    def advance(self) -> Optional[Task]:
        """Move past the current task. Returns the new current task or ``None``."""
        if self._index < len(self._tasks):
            self._index += 1
        return self.current

    @property
    def index(self) -> int:
        return self._index

    @property
    def current(self) -> Optional[Task]:
        if 0 <= self._index < len(self._tasks):
            return self._tasks[self._index]
        return None

    @property
    def is_exhausted(self) -> bool:
        return self._index >= len(self._tasks)

    # ── Queries ───────────────────────────────────────────────

    @property
    def tasks(self) -> Tuple[Task, ...]:
        """Read-only snapshot of the tasks in queue order."""
        return tuple(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def __bool__(self) -> bool:
        return bool(self._tasks)

    def failed_tasks(self) -> List[Task]:
        return [t for t in self._tasks if t.status == TaskStatus.FAILED]

    def has_failures(self) -> bool:
        return any(t.status == TaskStatus.FAILED for t in self._tasks)

    def any_failed_before_cursor(self) -> bool:
        """True if a task earlier than the current one ended in FAILED."""
        return any(
            t.status == TaskStatus.FAILED for t in self._tasks[:max(0, self._index)]
        )

    def all_resolved(self) -> bool:
        """True when every task is COMPLETED, FAILED or SKIPPED."""
        return all(t.status in TERMINAL_STATUSES for t in self._tasks) if self._tasks else False

    def counts(self) -> dict:
        """Task count per status value."""
        result = {s.value: 0 for s in TaskStatus}
        for t in self._tasks:
            result[t.status.value] += 1
        return result
