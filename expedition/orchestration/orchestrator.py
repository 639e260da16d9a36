"""TaskOrchestrator: drives a TaskQueue through an external executor.

The executor only tells us whether it is busy. How much it actually produced
is inferred from the inventory: a baseline count is taken right before each
dispatch and compared with the count once the executor goes idle. Every
retry and failure decision is keyed off that delta.

Executors often report idle for a few seconds after accepting a job (class
switch, opening a recipe), so an idle reading only ends a job once the
startup grace window has passed and the executor has been seen busy at
least once. If it never reports busy within the confirmation window, the
command is treated as lost and the attempt is judged by the delta as usual.
"""

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, List, Optional, Tuple

from ..interfaces import ExternalExecutor, InventoryReader
from ..logger import get_logger
from ..plan import Plan
from .events import ActionKind, ActionScheduler, ScheduledAction
from .queue import TaskQueue
from .tasks import Task, TaskStatus

_log = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY = 3.0
DEFAULT_SETTLE_DELAY = 2.0
DEFAULT_IDLE_WAIT_TIMEOUT = 30.0
DEFAULT_STARTUP_GRACE = 8.0
DEFAULT_BUSY_CONFIRM_TIMEOUT = 15.0


class OrchestratorState(Enum):
    IDLE = "idle"
    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class TaskOrchestrator(ABC):
    """Delegates each queued task to an executor and supervises it by polling.

    Subclasses bind the generic algorithm to one executor: how tasks are
    built from a plan, how a job is sent, and how preference overrides are
    applied and restored.
    """

    label = "task"

    def __init__(
        self,
        executor: ExternalExecutor,
        inventory: InventoryReader,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        idle_wait_timeout: float = DEFAULT_IDLE_WAIT_TIMEOUT,
        startup_grace: float = DEFAULT_STARTUP_GRACE,
        busy_confirm_timeout: float = DEFAULT_BUSY_CONFIRM_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.executor = executor
        self.inventory = inventory
        self.poll_interval = poll_interval
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.settle_delay = settle_delay
        self.idle_wait_timeout = idle_wait_timeout
        self.startup_grace = startup_grace
        self.busy_confirm_timeout = busy_confirm_timeout
        self._clock = clock
        self.queue = TaskQueue()
        self.scheduler = ActionScheduler(clock)
        self.state = OrchestratorState.IDLE
        self.status_message = ""
        self.dispatch_count = 0
        self._last_poll = float("-inf")
        self._awaiting_completion = False
        self._baseline = 0
        self._idle_wait_started: Optional[float] = None
        self._sent_at = 0.0
        self.executor_seen_busy = False

    # ── Binding points ────────────────────────────────────────

    @abstractmethod
    def _tasks_from_plan(self, plan: Plan, preference: Optional[str]) -> List[Task]:
        """Return tasks for this executor in the plan's order."""

    @abstractmethod
    def _send_to_executor(self, task: Task, quantity: int) -> None: ...

    def _apply_preference(self, task: Task) -> None:
        pass

    def _restore_preference(self, task: Task) -> None:
        pass

    def _before_dispatch(self, task: Task) -> None:
        pass

    def _skip_reason(self, task: Task) -> Optional[str]:
        return None

    def _on_reset(self) -> None:
        pass

    # ── Public API ────────────────────────────────────────────

    @property
    def tasks(self) -> Tuple[Task, ...]:
        return self.queue.tasks

    @property
    def current_task(self) -> Optional[Task]:
        return self.queue.current

    @property
    def is_running(self) -> bool:
        return self.state == OrchestratorState.RUNNING

    @property
    def is_complete(self) -> bool:
        return self.state == OrchestratorState.COMPLETED or len(self.queue) == 0

    @property
    def has_failures(self) -> bool:
        return self.queue.has_failures()

    @property
    def is_awaiting_completion(self) -> bool:
        return self._awaiting_completion

    def build_queue(self, plan: Plan, preference: Optional[str] = None,
                    quantity_buffer: int = 0) -> None:
        """Replace the queue with one task per plan step, in plan order."""
        self.scheduler.cancel()
        self._awaiting_completion = False
        self._idle_wait_started = None
        self._on_reset()

        tasks = self._tasks_from_plan(plan, preference)
        for task in tasks:
            task.quantity += quantity_buffer
        self.queue.rebuild(tasks)

        self.state = OrchestratorState.READY if tasks else OrchestratorState.IDLE
        self.status_message = f"{self.label.capitalize()} queue: {len(tasks)} tasks."
        _log.info(self.status_message)

    def start(self) -> None:
        if not self.queue:
            self.state = OrchestratorState.IDLE
            return
        if self.queue.index >= 0:
            _log.warning("%s queue already ran; build a new queue before starting.", self.label)
            return

        # A stop request left over from an earlier stop() makes the executor drop new jobs.
        self.executor.set_stop_request(False)
        self.state = OrchestratorState.RUNNING
        self.queue.begin()

        if self.executor.is_busy():
            # Something else is still running; the idle gate in update() holds the first dispatch.
            _log.info("%s is still busy at queue start. Waiting for idle before dispatching.",
                      self.executor.name)
            self.scheduler.schedule(ActionKind.START_NEXT, self.queue.index, 0.0,
                                    reason="executor busy at start")
        else:
            self._start_current_task()

    def stop(self) -> None:
        if self.state == OrchestratorState.RUNNING:
            self.executor.set_stop_request(True)

        self.state = OrchestratorState.IDLE
        self._awaiting_completion = False
        self._idle_wait_started = None
        self.scheduler.cancel()
        self._on_reset()
        self.status_message = f"{self.label.capitalize()} stopped."

    def update(self, inventory: Optional[InventoryReader] = None) -> None:
        """Poll the executor. Call once per tick; internally rate-limited."""
        if inventory is not None:
            self.inventory = inventory
        if self.state != OrchestratorState.RUNNING:
            return

        now = self._clock()
        if now - self._last_poll < self.poll_interval:
            return
        self._last_poll = now

        if self.scheduler.pending is not None:
            self._poll_pending_action(now)
            return

        task = self.queue.current
        if task is None:
            self._finish_queue()
            return

        if self._awaiting_completion:
            self._watch_running_job(task, now)
            return

        if task.status == TaskStatus.IN_PROGRESS:
            self._awaiting_completion = True

    # ── Dispatch ──────────────────────────────────────────────

    def _poll_pending_action(self, now: float) -> None:
        pending = self.scheduler.pending
        if not pending.is_due(now):
            return

        if self.executor.is_busy():
            if self._idle_wait_started is None:
                self._idle_wait_started = now
                _log.info("%s still busy; holding %s until it is idle.",
                          self.executor.name, pending.kind.value)
            waited = now - self._idle_wait_started
            if waited <= self.idle_wait_timeout:
                self.status_message = (
                    f"Waiting for {self.executor.name} to finish previous job... ({waited:.0f}s)"
                )
                return
            _log.warning("%s still busy after %.0fs idle-wait timeout. Proceeding anyway.",
                         self.executor.name, waited)

        self._idle_wait_started = None
        action = self.scheduler.pop_due()
        if action is not None:
            self._run_action(action)

    def _run_action(self, action: ScheduledAction) -> None:
        if action.task_index != self.queue.index:
            _log.warning("Discarding stale %s action for task #%d (cursor at #%d)",
                         action.kind.value, action.task_index, self.queue.index)
            return
        task = self.queue.current
        if task is None:
            self._finish_queue()
            return
        if action.kind == ActionKind.START_NEXT:
            self._start_current_task()
        else:
            self._send_job(task)

    def _start_current_task(self) -> None:
        task = self.queue.current
        if task is None:
            self._finish_queue()
            return

        if task.is_satisfied:
            task.mark_completed()
            self.status_message = f"{task.name} already satisfied."
            _log.info(self.status_message)
            self._advance()
            return

        skip = self._skip_reason(task)
        if skip:
            task.mark_skipped(skip)
            self.status_message = f"Skipped {task.name}: {skip}"
            _log.warning(self.status_message)
            self._advance()
            return

        task.mark_in_progress()
        if task.preference:
            self._apply_preference(task)

        self.status_message = f"{self._verb()} {task.name} x{task.quantity_remaining}..."
        _log.info(self.status_message)
        self._send_job(task)

    def _send_job(self, task: Task) -> None:
        if task.is_satisfied:
            task.mark_completed()
            self._advance()
            return

        self._before_dispatch(task)
        self._baseline = self.inventory.count(task.item_id)
        quantity = task.quantity_remaining
        self._send_to_executor(task, quantity)
        self._sent_at = self._clock()
        self.executor_seen_busy = False
        self._awaiting_completion = True
        self.dispatch_count += 1
        _log.info(
            "Sent %s x%d to %s (baseline=%d, retries so far=%d/%d)",
            task.name, quantity, self.executor.name, self._baseline,
            task.retry_count, self.max_retries,
        )

    # ── Completion detection ──────────────────────────────────

    def _watch_running_job(self, task: Task, now: float) -> None:
        elapsed = now - self._sent_at
        busy = self.executor.is_busy()
        if busy and not self.executor_seen_busy:
            self.executor_seen_busy = True
            _log.info("%s confirmed busy for %s at %.1fs", self.executor.name, task.name, elapsed)

        if elapsed < self.startup_grace:
            self.status_message = (
                f"Waiting for {self.executor.name} to start {task.name}... ({elapsed:.0f}s)"
            )
            return

        if not self.executor_seen_busy:
            if elapsed < self.startup_grace + self.busy_confirm_timeout:
                self.status_message = (
                    f"Waiting for {self.executor.name} to acknowledge {task.name}... "
                    f"({elapsed:.0f}s)"
                )
                return
            _log.warning("%s never reported busy for %s after %.1fs; the job may have been lost.",
                         self.executor.name, task.name, elapsed)
        elif busy:
            self.status_message = (
                f"{self._verb()} {task.name}... ({self.executor.name} busy, "
                f"{task.quantity_confirmed}/{task.quantity})"
            )
            return

        self._awaiting_completion = False
        self._handle_executor_idle(task)

    def _handle_executor_idle(self, task: Task) -> None:
        current = self.inventory.count(task.item_id)
        delta = task.record_progress(current - self._baseline)
        _log.info(
            "%s check: %s had %d, now %d, delta=%d, confirmed %d/%d",
            self.label.capitalize(), task.name, self._baseline, current, delta,
            task.quantity_confirmed, task.quantity,
        )

        if task.is_satisfied:
            task.mark_completed()
            self.status_message = f"Finished {task.name} x{task.quantity_confirmed}."
            _log.info(self.status_message)
            self._advance()
            return

        if delta == 0:
            retry_note = f"{task.name} produced 0 items"
            failure = (
                f"{self.executor.name} produced 0 items after {self.max_retries} retries "
                f"(missing prerequisites?)."
            )
        else:
            retry_note = (
                f"{task.name}: {task.quantity_confirmed}/{task.quantity}, "
                f"retrying remaining {task.quantity_remaining}"
            )
            failure = (
                f"Only produced {task.quantity_confirmed}/{task.quantity} "
                f"after {self.max_retries} retries."
            )

        if task.retry_count < self.max_retries:
            task.retry_count += 1
            _log.warning("%s (attempt %d/%d). Retrying in %.1fs...",
                         retry_note, task.retry_count, self.max_retries, self.retry_delay)
            self.status_message = (
                f"Retrying {task.name} (attempt {task.retry_count}/{self.max_retries})..."
            )
            self.scheduler.schedule(ActionKind.RETRY, self.queue.index, self.retry_delay,
                                    reason=retry_note)
        else:
            task.mark_failed(failure)
            self.status_message = f"FAILED: {task.name} - {failure}"
            _log.error(self.status_message)
            self._advance()

    def _advance(self) -> None:
        previous = self.queue.current
        if previous is not None and previous.preference:
            self._restore_preference(previous)

        if self.queue.advance() is None:
            self._finish_queue()
            return

        self.scheduler.schedule(ActionKind.START_NEXT, self.queue.index, self.settle_delay,
                                reason="settle")

    def _finish_queue(self) -> None:
        self.state = OrchestratorState.COMPLETED
        failed = len(self.queue.failed_tasks())
        self.status_message = f"All {self.label} tasks complete."
        if failed:
            self.status_message += f" ({failed} failed)"
        _log.info(self.status_message)

    def _verb(self) -> str:
        return "Running"
