"""Autonomous fishing loop: find a spot, travel, buff, cast, count catches.

Hooksets and automatic re-casting belong to the companion tool. This
session only supervises it: catches are counted from the falling edge of
the world's "fishing" flag, buffs are re-applied when they lapse, and GP is
budgeted so buffs can always be afforded.
"""

import time
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Callable, Dict, Optional

from ..errors import ExpeditionError, NavigationTimeoutError
from ..interfaces import ActionExecutor, CompanionTool, Navigator, WorldState
from ..logger import get_logger
from .actions import CAST, CHUM, FISHER_JOB_ID, PATIENCE_II, THALIAKS_FAVOR, Buff
from .config import FishingConfig
from .spots import FishingSpot, distance_to, find_nearest

_log = get_logger(__name__)


class FishingState(Enum):
    IDLE = "idle"
    VALIDATING_PREREQS = "validating_prereqs"
    NAVIGATING_TO_SPOT = "navigating_to_spot"
    PRE_FISHING = "pre_fishing"
    FISHING = "fishing"
    WAITING_FOR_GP = "waiting_for_gp"
    STOPPED = "stopped"
    ERROR = "error"


class PreFishingStep(IntEnum):
    DISMOUNT = 0
    QUALITY_BUFF = 1
    SECONDARY_BUFF = 2
    CAST = 3


@dataclass
class Transition:
    state: FishingState
    message: str = ""
    step: Optional[PreFishingStep] = None    # where PRE_FISHING resumes


class FishingSession:
    """Fishing state machine. Call :meth:`update` once per frame."""

    def __init__(
        self,
        world: WorldState,
        actions: ActionExecutor,
        companion: CompanionTool,
        navigator: Optional[Navigator] = None,
        config: Optional[FishingConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.world = world
        self.actions = actions
        self.companion = companion
        self.navigator = navigator
        self.config = config or FishingConfig()
        self._clock = clock

        self.state = FishingState.IDLE
        self.status_message = ""
        self.error_message: Optional[str] = None
        self.start_time: Optional[float] = None
        self.total_catches = 0
        self.target_spot: Optional[FishingSpot] = None
        self.gp_needed_for_buffs = 0

        self._last_update = float("-inf")
        self._last_buff_check = float("-inf")
        self._nav_started: Optional[float] = None
        self._last_action: Optional[float] = None
        self._step = PreFishingStep.DISMOUNT
        self._was_fishing = False
        self._idle_since: Optional[float] = None

        self._handlers: Dict[FishingState, Callable[[float], Optional[Transition]]] = {
            FishingState.VALIDATING_PREREQS: self._tick_validating,
            FishingState.NAVIGATING_TO_SPOT: self._tick_navigating,
            FishingState.PRE_FISHING: self._tick_pre_fishing,
            FishingState.FISHING: self._tick_fishing,
            FishingState.WAITING_FOR_GP: self._tick_waiting_for_gp,
        }

    @property
    def is_active(self) -> bool:
        return self.state not in (FishingState.IDLE, FishingState.STOPPED, FishingState.ERROR)

    @property
    def pre_fishing_step(self) -> PreFishingStep:
        return self._step

    def start(self) -> None:
        if self.is_active:
            _log.warning("Fishing session already active.")
            return

        self.total_catches = 0
        self.start_time = self._clock()
        self.target_spot = None
        self.error_message = None
        self.gp_needed_for_buffs = 0
        self._last_update = float("-inf")
        self._last_buff_check = float("-inf")
        self._nav_started = None
        self._last_action = None
        self._step = PreFishingStep.DISMOUNT
        self._was_fishing = False
        self._idle_since = None

        self._transition_to(Transition(FishingState.VALIDATING_PREREQS, "Validating prerequisites..."))

    def stop(self) -> None:
        if self.state in (FishingState.IDLE, FishingState.STOPPED):
            return
        if self.navigator is not None:
            self.navigator.stop()
        self._transition_to(Transition(
            FishingState.STOPPED,
            f"Stopped. {self.total_catches} catches in {self.duration_string()}.",
        ))

    def dispose(self) -> None:
        if self.is_active:
            self.stop()

    def update(self) -> None:
        if not self.is_active:
            return

        now = self._clock()
        # Navigation runs every frame; the navigator throttles itself.
        if self.state != FishingState.NAVIGATING_TO_SPOT:
            if now - self._last_update < self.config.update_interval:
                return
            self._last_update = now

        handler = self._handlers[self.state]
        try:
            transition = handler(now)
        except ExpeditionError as exc:
            transition = Transition(FishingState.ERROR, str(exc))
        except Exception as exc:
            _log.exception("Fishing tick failed in %s", self.state.value)
            transition = Transition(FishingState.ERROR, f"Error: {exc}")

        if transition is not None:
            self._transition_to(transition)

    # ── State ticks ───────────────────────────────────────────

    def _tick_validating(self, now: float) -> Optional[Transition]:
        if self.world.player_position() is None:
            return Transition(FishingState.ERROR, "Player not found.")

        if self.world.job_id() != FISHER_JOB_ID:
            return Transition(FishingState.ERROR, "Must be on Fisher (FSH) class.")

        self.companion.check_availability()
        if not self.companion.is_available:
            return Transition(FishingState.ERROR, "Fishing companion tool required but not loaded.")

        spot = find_nearest(self.world, self.config.search_radius)
        if spot is None:
            return Transition(
                FishingState.ERROR,
                f"No fishing spot found nearby ({self.config.search_radius:.0f}y range).",
            )

        self.target_spot = spot
        _log.info("Found spot: %s (%.1fy away)", spot.name, spot.distance)

        if spot.distance <= self.config.arrival_distance:
            return Transition(FishingState.PRE_FISHING, "Preparing to fish...",
                              step=PreFishingStep.DISMOUNT)

        if self.navigator is None or not self.navigator.is_available:
            return Transition(FishingState.ERROR, "Navigation required to reach the spot but not available.")

        self._nav_started = now
        self.navigator.move_to(spot.position, fly=False)
        return Transition(FishingState.NAVIGATING_TO_SPOT, f"Moving to {spot.name}...")

    def _tick_navigating(self, now: float) -> Optional[Transition]:
        spot = self.target_spot
        if spot is None:
            return Transition(FishingState.ERROR, "Lost target fishing spot.")

        dist = distance_to(self.world, spot.position)
        if dist is not None:
            self.status_message = f"Moving to {spot.name} ({dist:.0f}y)..."
            if dist <= self.config.arrival_distance:
                self.navigator.stop()
                return Transition(FishingState.PRE_FISHING, "Arrived. Preparing to fish...",
                                  step=PreFishingStep.DISMOUNT)

        if self._nav_started is not None and now - self._nav_started > self.config.nav_timeout:
            self.navigator.stop()
            raise NavigationTimeoutError(self.config.nav_timeout)

        if dist is not None and not (self.navigator.is_path_running()
                                     or self.navigator.is_pathfind_in_progress()):
            _log.info("Navigation dropped; re-issuing move to %s", spot.name)
            self.navigator.move_to(spot.position, fly=False)
        return None

    def _tick_pre_fishing(self, now: float) -> Optional[Transition]:
        if self.world.is_casting() or self.world.is_occupied():
            return None
        if self._last_action is not None and now - self._last_action < self.config.action_delay:
            return None

        gp = self.world.current_gp()

        if self._step == PreFishingStep.DISMOUNT:
            if self.world.is_mounted():
                self.actions.dismount()
                self._last_action = now
                return None
            self._step = PreFishingStep.QUALITY_BUFF

        if self._step == PreFishingStep.QUALITY_BUFF:
            if self._try_buff(PATIENCE_II, self.config.use_patience, gp, now):
                return None
            self._step = PreFishingStep.SECONDARY_BUFF

        if self._step == PreFishingStep.SECONDARY_BUFF:
            if self._try_buff(CHUM, self.config.use_chum, gp, now):
                return None
            self._step = PreFishingStep.CAST

        if self.world.is_fishing():
            self._was_fishing = True
            self._idle_since = None
            return Transition(FishingState.FISHING, "Fishing...")

        if self.actions.can_use(CAST) and self.actions.use(CAST):
            self._was_fishing = False
            self._idle_since = now
            _log.info("Cast line.")
            return Transition(FishingState.FISHING, "Fishing...")

        self.status_message = "Waiting to cast..."
        return None

    def _tick_fishing(self, now: float) -> Optional[Transition]:
        fishing_now = self.world.is_fishing()

        if self._was_fishing and not fishing_now:
            self.total_catches += 1
            self._was_fishing = False
            self._idle_since = now
            _log.info("Catch #%d", self.total_catches)

            if now - self._last_buff_check >= self.config.buff_check_interval:
                self._last_buff_check = now
                transition = self._check_buffs_and_gp()
                if transition is not None:
                    return transition

            self.status_message = (
                f"Fishing... ({self.total_catches} caught, {self.catch_rate():.1f}/hr)"
            )
            return None

        if fishing_now:
            if not self._was_fishing:
                self._was_fishing = True
                self.status_message = f"Fishing... ({self.total_catches} caught)"
            self._idle_since = None
            return None

        if self.world.is_casting() or self.world.is_occupied():
            self._idle_since = now
            return None

        if self._idle_since is None:
            self._idle_since = now
        elif now - self._idle_since > self.config.stall_timeout:
            return Transition(FishingState.PRE_FISHING, "Re-casting...", step=PreFishingStep.CAST)
        return None

    def _tick_waiting_for_gp(self, now: float) -> Optional[Transition]:
        gp = self.world.current_gp()

        if self.config.use_thaliaks_favor and self.actions.can_use(THALIAKS_FAVOR):
            self.actions.use(THALIAKS_FAVOR)
            _log.info("Used Thaliak's Favor.")
            self._last_action = now

        self.status_message = f"Waiting for GP ({gp}/{self.gp_needed_for_buffs})..."

        if gp >= self.gp_needed_for_buffs:
            return Transition(FishingState.PRE_FISHING, "GP recovered. Preparing to fish...",
                              step=PreFishingStep.QUALITY_BUFF)
        return None

    # ── Helpers ───────────────────────────────────────────────

    def _try_buff(self, buff: Buff, enabled: bool, gp: int, now: float) -> bool:
        if not enabled or gp < buff.gp_cost or self.world.has_status(buff.status_id):
            return False
        if not self.actions.can_use(buff.action_id):
            return False
        self.actions.use(buff.action_id)
        _log.info("Applied %s.", buff.name)
        self._last_action = now
        return True

    def _check_buffs_and_gp(self) -> Optional[Transition]:
        gp = self.world.current_gp()
        need_quality = (self.config.use_patience and gp >= PATIENCE_II.gp_cost
                        and not self.world.has_status(PATIENCE_II.status_id))
        need_secondary = (self.config.use_chum and gp >= CHUM.gp_cost
                          and not self.world.has_status(CHUM.status_id))
        if need_quality or need_secondary:
            step = PreFishingStep.QUALITY_BUFF if need_quality else PreFishingStep.SECONDARY_BUFF
            return Transition(FishingState.PRE_FISHING, "Reapplying buffs...", step=step)

        if self.config.use_thaliaks_favor and gp < self.config.gp_float_threshold:
            self.gp_needed_for_buffs = self.config.gp_needed_for_buffs()
            if self.gp_needed_for_buffs > gp:
                return Transition(FishingState.WAITING_FOR_GP,
                                  f"Waiting for GP ({gp}/{self.gp_needed_for_buffs})...")
        return None

    def _transition_to(self, transition: Transition) -> None:
        old = self.state
        _log.info("Fishing: %s -> %s: %s", old.value, transition.state.value, transition.message)
        self.state = transition.state
        self.status_message = transition.message
        if transition.step is not None:
            self._step = transition.step
            self._last_action = None
        if transition.state == FishingState.ERROR:
            self.error_message = transition.message or "Unknown error"
            _log.error("Fishing session error: %s", self.error_message)

    def duration_string(self) -> str:
        if self.start_time is None:
            return "0:00"
        elapsed = max(0.0, self._clock() - self.start_time)
        return f"{int(elapsed // 60)}:{int(elapsed % 60):02d}"

    def catch_rate(self) -> float:
        """Catches per hour since the session started."""
        if self.start_time is None or self.total_catches == 0:
            return 0.0
        hours = (self._clock() - self.start_time) / 3600.0
        return self.total_catches / hours if hours > 0 else 0.0
