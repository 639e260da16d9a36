"""WorkflowEngine: resolve -> check inventory -> gather -> craft.

Each phase has one handler. A handler inspects the world through the
injected collaborators and returns a :class:`Transition` (or ``None`` to stay
put); :meth:`WorkflowEngine._apply` is the only place state changes.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from ..config import Config
from ..errors import CollaboratorUnavailableError, ExpeditionError
from ..interfaces import (
    CraftingExecutor,
    ExternalExecutor,
    GatheringExecutor,
    InventoryReader,
    Notifier,
    NullNotifier,
    Resolver,
    WorldState,
)
from ..logger import get_logger
from ..orchestration import CraftingOrchestrator, GatheringOrchestrator, TaskStatus
from ..plan import ItemRef, MaterialRequirement, Plan

_log = get_logger(__name__)


class WorkflowState(Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    CHECKING_INVENTORY = "checking_inventory"
    PREPARING_GATHER = "preparing_gather"
    GATHERING = "gathering"
    PREPARING_CRAFT = "preparing_craft"
    CRAFTING = "crafting"
    COMPLETED = "completed"
    ERROR = "error"


ACTIVE_STATES = frozenset(
    s for s in WorkflowState
    if s not in (WorkflowState.IDLE, WorkflowState.COMPLETED, WorkflowState.ERROR)
)


@dataclass
class Transition:
    state: WorkflowState
    message: str = ""


class Signal:
    """A list of callbacks that a presentation layer can subscribe to."""

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Callable] = []

    def subscribe(self, handler: Callable) -> Callable[[], None]:
        """Register ``handler``; returns a function that unsubscribes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit(self, *args) -> None:
        for handler in list(self._handlers):
            try:
                handler(*args)
            except Exception:
                _log.exception("%s handler %r raised", self.name, handler)

    def __len__(self) -> int:
        return len(self._handlers)


class WorkflowEngine:
    """Top-level phase sequencer for one gather-to-craft run.

    Drive it by calling :meth:`update` once per tick. Subscribe to
    ``on_state_changed``, ``on_status_changed``, ``on_completed`` and
    ``on_error`` for UI updates; :attr:`run_log` keeps the timestamped
    history of the current run.
    """

    def __init__(
        self,
        resolver: Resolver,
        inventory: InventoryReader,
        crafting_executor: CraftingExecutor,
        gathering_executor: GatheringExecutor,
        *,
        world: Optional[WorldState] = None,
        notifier: Optional[Notifier] = None,
        config: Optional[Config] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = datetime.now,
    ):
        self.resolver = resolver
        self.inventory = inventory
        self.crafting_executor = crafting_executor
        self.gathering_executor = gathering_executor
        self.world = world
        self.notifier = notifier or NullNotifier()
        self.config = config or Config()
        self._clock = clock
        self._wall_clock = wall_clock

        shared = self.config.orchestrator_kwargs()
        self.gathering = GatheringOrchestrator(
            gathering_executor, inventory, clock=clock, **shared
        )
        self.crafting = CraftingOrchestrator(
            crafting_executor, inventory, clock=clock,
            skip_after_failed_step=self.config.skip_after_failed_step, **shared
        )

        self.on_state_changed = Signal("on_state_changed")   # (old, new)
        self.on_status_changed = Signal("on_status_changed") # (message)
        self.on_completed = Signal("on_completed")           # (plan)
        self.on_error = Signal("on_error")                   # (message)

        self.state = WorkflowState.IDLE
        self.status_message = ""
        self.error_message: Optional[str] = None
        self.plan: Optional[Plan] = None
        self.target: Optional[ItemRef] = None
        self.quantity = 0
        self.gather_only = False
        self._run_log: List[str] = []
        self._started_at = 0.0
        self._waiting_for_player = False

        self._handlers: Dict[WorkflowState, Callable[[], Optional[Transition]]] = {
            WorkflowState.RESOLVING: self._tick_resolving,
            WorkflowState.CHECKING_INVENTORY: self._tick_checking_inventory,
            WorkflowState.PREPARING_GATHER: self._tick_preparing_gather,
            WorkflowState.GATHERING: self._tick_gathering,
            WorkflowState.PREPARING_CRAFT: self._tick_preparing_craft,
            WorkflowState.CRAFTING: self._tick_crafting,
        }

    # ── Public API ────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def run_log(self) -> Tuple[str, ...]:
        return tuple(self._run_log)

    @property
    def elapsed(self) -> float:
        if not self._started_at:
            return 0.0
        return self._clock() - self._started_at

    def start(self, item: ItemRef, quantity: int = 1) -> bool:
        """Begin a full run for ``quantity`` of ``item``. False if one is already active."""
        if not self._begin_run(item, quantity, gather_only=False):
            return False
        self._line(f"Starting workflow: {item.name} x{quantity}")
        self._apply(Transition(WorkflowState.RESOLVING))
        return True

    def start_gather(self, item: ItemRef, quantity: int) -> bool:
        """Gather ``quantity`` more of ``item`` without resolving or crafting."""
        if not self._begin_run(item, quantity, gather_only=True):
            return False
        owned = self.inventory.count(item.item_id)
        self.plan = Plan(
            root=item,
            quantity=quantity,
            gather_list=[MaterialRequirement(
                item_id=item.item_id,
                name=item.name,
                quantity_needed=owned + quantity,
                quantity_owned=owned,
                is_gatherable=True,
            )],
        )
        self._line(f"Starting gather: {item.name} x{quantity} (have {owned})")
        self._apply(Transition(WorkflowState.PREPARING_GATHER))
        return True

    def cancel(self) -> None:
        if self.state == WorkflowState.IDLE:
            return
        self.gathering.stop()
        self.crafting.stop()
        self._line("Workflow cancelled.")
        self._apply(Transition(WorkflowState.IDLE, "Cancelled"))

    def update(self) -> None:
        handler = self._handlers.get(self.state)
        if handler is None:
            return
        try:
            transition = handler()
        except ExpeditionError as exc:
            transition = Transition(WorkflowState.ERROR, str(exc))
        except Exception as exc:
            _log.exception("Workflow tick failed in %s", self.state.value)
            transition = Transition(WorkflowState.ERROR, f"Unexpected error: {exc}")
        if transition is not None:
            self._apply(transition)

    # ── Phase handlers ────────────────────────────────────────

    def _tick_resolving(self) -> Optional[Transition]:
        self._set_status(f"Resolving {self.target.name}...")
        plan = self.resolver.resolve(self.target, self.quantity)
        if plan is None:
            return Transition(WorkflowState.ERROR, f"Failed to resolve recipe for {self.target.name}.")
        self.plan = plan
        self._line(f"Recipe resolved: {plan.summary()}")
        return Transition(WorkflowState.CHECKING_INVENTORY)

    def _tick_checking_inventory(self) -> Optional[Transition]:
        plan = self.plan
        plan.refresh_owned(self.inventory)

        shortfall = plan.gather_shortfall()
        if shortfall:
            self._line(f"Need to gather {len(shortfall)} materials:")
            for mat in shortfall:
                self._line(f"  {mat}")

        free = self.inventory.free_slots()
        slots_short = len(shortfall) - free
        if slots_short > 0:
            self._line(f"Inventory may be short by {slots_short} slots ({free} free).",
                       warning=True)

        missing = plan.missing_other()
        if missing:
            names = ", ".join(f"{m.name} x{m.quantity_remaining}" for m in missing)
            if self.config.halt_on_missing_materials:
                return Transition(WorkflowState.ERROR,
                                  f"Missing materials that cannot be gathered: {names}")
            self._line(f"Missing non-gatherable materials: {names}. Continuing anyway.",
                       warning=True)

        if shortfall:
            return Transition(WorkflowState.PREPARING_GATHER)
        self._line("All gatherable materials on hand.")
        return Transition(WorkflowState.PREPARING_CRAFT)

    def _tick_preparing_gather(self) -> Optional[Transition]:
        if self.world is not None and self.world.is_occupied():
            if not self._waiting_for_player:
                self._line("Waiting for player to be free before gathering...")
                self._waiting_for_player = True
            self._set_status("Waiting for player to be free...")
            return None
        self._waiting_for_player = False

        self._require(self.gathering_executor)
        self.gathering.build_queue(
            self.plan, quantity_buffer=self.config.gather_quantity_buffer
        )
        if not self.gathering.queue:
            self._line("Nothing left to gather.")
            return self._after_gathering()

        self.gathering.start()
        self._line(f"Gathering {len(self.gathering.queue)} materials "
                   f"with {self.gathering_executor.name}.")
        return Transition(WorkflowState.GATHERING)

    def _tick_gathering(self) -> Optional[Transition]:
        self.gathering.update(self.inventory)
        self._set_status(self.gathering.status_message)
        if not self.gathering.is_complete:
            return None

        failed = self.gathering.queue.failed_tasks()
        if failed:
            names = ", ".join(t.name for t in failed)
            if self.config.halt_on_missing_materials:
                return Transition(WorkflowState.ERROR, f"Gathering failed for: {names}")
            self._line(f"Gathering failed for: {names}. Continuing anyway.", warning=True)
        else:
            self._line("Gathering complete.")
        return self._after_gathering()

    def _tick_preparing_craft(self) -> Optional[Transition]:
        if not self.plan.craft_order:
            self._line("Nothing to craft.")
            return Transition(WorkflowState.COMPLETED)

        self._require(self.crafting_executor)
        self.crafting.build_queue(
            self.plan,
            preference=self.config.solver_preference,
            quantity_buffer=self.config.craft_quantity_buffer,
        )
        self.crafting.start()
        self._line(f"Crafting {len(self.crafting.queue)} steps "
                   f"with {self.crafting_executor.name}.")
        return Transition(WorkflowState.CRAFTING)

    def _tick_crafting(self) -> Optional[Transition]:
        self.crafting.update(self.inventory)
        self._set_status(self.crafting.status_message)
        if not self.crafting.is_complete:
            return None

        for task in self.crafting.queue.failed_tasks():
            self._line(f"Craft failed: {task.name} - {task.error_message}", warning=True)
        for task in self.crafting.tasks:
            if task.status == TaskStatus.SKIPPED:
                self._line(f"Craft skipped: {task.name} - {task.error_message}", warning=True)

        final = self.inventory.count(self.target.item_id)
        self._line(f"Inventory now holds {final}x {self.target.name}.")
        return Transition(WorkflowState.COMPLETED)

    # ── Helpers ───────────────────────────────────────────────

    def _begin_run(self, item: ItemRef, quantity: int, gather_only: bool) -> bool:
        if self.is_running:
            _log.warning("Workflow already running (%s); ignoring start.", self.state.value)
            return False
        if self.state != WorkflowState.IDLE:
            self._apply(Transition(WorkflowState.IDLE))

        self._run_log.clear()
        self.error_message = None
        self.plan = None
        self.target = item
        self.quantity = quantity
        self.gather_only = gather_only
        self._waiting_for_player = False
        self._started_at = self._clock()
        return True

    def _after_gathering(self) -> Transition:
        self.plan.refresh_owned(self.inventory)
        if self.gather_only:
            return Transition(WorkflowState.COMPLETED)
        return Transition(WorkflowState.PREPARING_CRAFT)

    def _require(self, executor: ExternalExecutor) -> None:
        executor.check_availability()
        if not executor.is_available:
            raise CollaboratorUnavailableError(executor.name)

    def _apply(self, transition: Transition) -> None:
        old, new = self.state, transition.state
        self.state = new
        _log.info("Workflow: %s -> %s", old.value, new.value)
        self.on_state_changed.emit(old, new)

        if new == WorkflowState.ERROR:
            reason = transition.message or "Unknown error"
            self.error_message = reason
            self._line(f"ERROR: {reason}", error=True)
            self._set_status(f"Error: {reason}")
            self.on_error.emit(reason)
            if self.config.notify_on_completion:
                self.notifier.error(f"Workflow failed: {reason}")
        elif new == WorkflowState.COMPLETED:
            minutes = self.elapsed / 60.0
            label = "Gather" if self.gather_only else "Workflow"
            self._line(f"{label} complete in {minutes:.1f} min.")
            self._set_status(f"{label} complete: {self.target.name} ({minutes:.1f} min)")
            self.on_completed.emit(self.plan)
            if self.config.notify_on_completion:
                self.notifier.info(f"{label} complete: {self.target.name} x{self.quantity}")
        elif new == WorkflowState.IDLE:
            self._set_status(transition.message or "Idle")
        elif transition.message:
            self._set_status(transition.message)

    def _set_status(self, message: str) -> None:
        if message and message != self.status_message:
            self.status_message = message
            self.on_status_changed.emit(message)

    def _line(self, message: str, warning: bool = False, error: bool = False) -> None:
        stamp = self._wall_clock().strftime("%H:%M:%S")
        self._run_log.append(f"[{stamp}] {message}")
        if error:
            _log.error(message)
        elif warning:
            _log.warning(message)
        else:
            _log.info(message)
