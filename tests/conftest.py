"""Shared fixtures for expedition tests."""

import os
from typing import Callable, Dict, List, Optional, Set, Tuple
from unittest.mock import MagicMock

import pytest
import yaml

from expedition.interfaces import (
    ActionExecutor,
    CompanionTool,
    CraftingExecutor,
    GatheringExecutor,
    InventoryReader,
    Navigator,
    Notifier,
    Resolver,
    SpotObject,
    WorldState,
)
from expedition.plan import CraftStep, ItemRef, MaterialRequirement, Plan

# Fakes finish on dispatch and never report busy on their own.
INSTANT_EXECUTOR = {"startup_grace": 0.0, "busy_confirm_timeout": 0.0}


# ── Fakes ────────────────────────────────────────────────────


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeInventory(InventoryReader):
    def __init__(self, counts: Optional[Dict[int, int]] = None, free: int = 100):
        self.counts: Dict[int, int] = dict(counts or {})
        self.free = free

    def count(self, item_id: int) -> int:
        return self.counts.get(item_id, 0)

    def free_slots(self) -> int:
        return self.free

    def add(self, item_id: int, quantity: int) -> None:
        self.counts[item_id] = self.count(item_id) + quantity


class _FakeExecutor:
    """Busy flag and call log controlled directly by the test."""

    def __init__(self, name: str):
        self._name = name
        self.busy = False
        self.available = True
        self.availability_checks = 0
        self.stop_requests: List[bool] = []
        # Called with (job_id, quantity) on every dispatch; use it to "produce" items.
        self.on_dispatch: Optional[Callable[[int, int], None]] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_available(self) -> bool:
        return self.available

    def check_availability(self) -> None:
        self.availability_checks += 1

    def is_busy(self) -> bool:
        return self.busy

    def set_stop_request(self, stop: bool) -> None:
        self.stop_requests.append(stop)

    @property
    def stop_requested(self) -> bool:
        return bool(self.stop_requests) and self.stop_requests[-1]

    def _dispatched(self, job_id: int, quantity: int) -> None:
        # A standing stop request makes the tool drop new jobs.
        if self.on_dispatch is not None and not self.stop_requested:
            self.on_dispatch(job_id, quantity)


class FakeCrafter(_FakeExecutor, CraftingExecutor):
    def __init__(self, name: str = "FakeCraft"):
        super().__init__(name)
        self.crafted: List[Tuple[int, int]] = []
        self.solver_changes: List[Tuple[int, str, bool]] = []
        self.solver_resets: List[int] = []

    def craft_item(self, recipe_id: int, quantity: int) -> None:
        self.crafted.append((recipe_id, quantity))
        self._dispatched(recipe_id, quantity)

    def change_solver(self, recipe_id: int, solver_name: str, temporary: bool = True) -> None:
        self.solver_changes.append((recipe_id, solver_name, temporary))

    def reset_solver(self, recipe_id: int) -> None:
        self.solver_resets.append(recipe_id)


class FakeGatherer(_FakeExecutor, GatheringExecutor):
    def __init__(self, name: str = "FakeGather"):
        super().__init__(name)
        self.gathered: List[Tuple[int, int]] = []
        self.preference_changes: List[Tuple[int, str]] = []
        self.preference_resets: List[int] = []

    def gather_item(self, item_id: int, quantity: int) -> None:
        self.gathered.append((item_id, quantity))
        self._dispatched(item_id, quantity)

    def change_preference(self, item_id: int, preference: str) -> None:
        self.preference_changes.append((item_id, preference))

    def reset_preference(self, item_id: int) -> None:
        self.preference_resets.append(item_id)


class FakeResolver(Resolver):
    def __init__(self, plan: Optional[Plan] = None, error: Optional[Exception] = None):
        self.plan = plan
        self.error = error
        self.calls: List[Tuple[ItemRef, int]] = []

    def resolve(self, item: ItemRef, quantity: int) -> Plan:
        self.calls.append((item, quantity))
        if self.error is not None:
            raise self.error
        return self.plan


class FakeWorld(WorldState):
    def __init__(self):
        self.position: Optional[Tuple[float, float, float]] = (0.0, 0.0, 0.0)
        self.job = 18
        self.statuses: Set[int] = set()
        self.gp = 700
        self.mounted = False
        self.casting = False
        self.occupied = False
        self.fishing = False
        self.spots: List[SpotObject] = []

    def player_position(self):
        return self.position

    def job_id(self) -> int:
        return self.job

    def has_status(self, status_id: int) -> bool:
        return status_id in self.statuses

    def current_gp(self) -> int:
        return self.gp

    def is_mounted(self) -> bool:
        return self.mounted

    def is_casting(self) -> bool:
        return self.casting

    def is_occupied(self) -> bool:
        return self.occupied

    def is_fishing(self) -> bool:
        return self.fishing

    def fishing_spots(self):
        return list(self.spots)


class FakeActions(ActionExecutor):
    """Applies buff statuses and GP costs to a FakeWorld when actions are used."""

    BUFF_EFFECTS = {4106: (850, 560), 4104: (763, 100)}

    def __init__(self, world: FakeWorld):
        self.world = world
        self.blocked: Set[int] = set()
        self.used: List[int] = []
        self.dismounts = 0

    def can_use(self, action_id: int) -> bool:
        return action_id not in self.blocked

    def use(self, action_id: int) -> bool:
        self.used.append(action_id)
        effect = self.BUFF_EFFECTS.get(action_id)
        if effect is not None:
            status_id, cost = effect
            self.world.statuses.add(status_id)
            self.world.gp -= cost
        return True

    def dismount(self) -> None:
        self.dismounts += 1


class FakeNavigator(Navigator):
    def __init__(self):
        self.available = True
        self.running = True
        self.pathfinding = False
        self.moves: List[Tuple[Tuple[float, float, float], bool]] = []
        self.stops = 0

    @property
    def is_available(self) -> bool:
        return self.available

    def move_to(self, position, fly: bool = False) -> None:
        self.moves.append((position, fly))

    def is_path_running(self) -> bool:
        return self.running

    def is_pathfind_in_progress(self) -> bool:
        return self.pathfinding

    def stop(self) -> None:
        self.stops += 1


class FakeCompanion(CompanionTool):
    def __init__(self, available: bool = True):
        self.available = available

    @property
    def is_available(self) -> bool:
        return self.available

    def check_availability(self) -> None:
        pass


class RecordingNotifier(Notifier):
    def __init__(self):
        self.infos: List[str] = []
        self.errors: List[str] = []

    def info(self, message: str) -> None:
        self.infos.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


def producing(inventory: FakeInventory, item_for_job: Optional[Dict[int, int]] = None,
              fraction: float = 1.0):
    """on_dispatch hook that adds ``fraction`` of the requested quantity to the inventory."""
    def hook(job_id: int, quantity: int) -> None:
        item_id = (item_for_job or {}).get(job_id, job_id)
        inventory.add(item_id, int(quantity * fraction))
    return hook


def drive(machine, clock: FakeClock, ticks: int, step: float = 1.0) -> None:
    """Advance the clock by ``step`` and call ``update()`` ``ticks`` times."""
    for _ in range(ticks):
        clock.advance(step)
        machine.update()


def make_plan(
    gather: Optional[List[MaterialRequirement]] = None,
    craft: Optional[List[CraftStep]] = None,
    other: Optional[List[MaterialRequirement]] = None,
) -> Plan:
    return Plan(
        root=ItemRef(100, "Bronze Ingot"),
        quantity=1,
        gather_list=list(gather or []),
        craft_order=list(craft or []),
        other_materials=list(other or []),
    )


# ── Fixtures ─────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep config and log files out of the real home directory."""
    home = tmp_path / "home" / ".expedition"
    monkeypatch.setattr("expedition.config.CONFIG_DIR", home)
    monkeypatch.setattr("expedition.config.CONFIG_FILE", home / "config.yml")
    monkeypatch.setattr("expedition.logger.DEFAULT_LOG_FILE", home / "logs" / "expedition.log")
    for var in ("EXPEDITION_VERBOSE", "EXPEDITION_SOLVER", "EXPEDITION_MAX_RETRIES"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    project = tmp_path / "project"
    project.mkdir()
    os.chdir(project)
    yield project
    os.chdir(orig)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def inventory():
    return FakeInventory()


@pytest.fixture
def crafter():
    return FakeCrafter()


@pytest.fixture
def gatherer():
    return FakeGatherer()


@pytest.fixture
def world():
    return FakeWorld()


@pytest.fixture
def sample_config_data():
    """Minimal .expedition.yml data dict."""
    return {
        "poll-interval": 1.0,
        "max-retry-per-task": 3,
        "retry-delay": 5.0,
        "settle-delay": 2.0,
        "idle-wait-timeout": 30.0,
        "craft-quantity-buffer": 1,
        "gather-quantity-buffer": 0,
        "preferred-solver": "Raphael",
        "halt-on-missing-materials": False,
        "skip-after-failed-step": False,
        "notify-on-completion": True,
        "verbose": False,
        "fishing": {
            "use-chum": False,
            "gp-float-threshold": 250,
            "stall-timeout": 12,
        },
    }


@pytest.fixture
def config_yaml_file(tmp_dir, sample_config_data):
    """Write a config YAML to tmp_dir and return its Path."""
    path = tmp_dir / ".expedition.yml"
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f, default_flow_style=False)
    return path


@pytest.fixture
def mock_console():
    """A mock Rich Console that silently accepts all print calls."""
    c = MagicMock()
    c.print = MagicMock()
    return c
