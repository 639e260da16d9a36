"""In-memory collaborators for dry runs of the workflow engine.

A plan file describes one unit of the target item::

    item: {id: 100, name: Bronze Ingot}
    gather:
      - {id: 5, name: Copper Ore, needed: 3, type: miner}
    craft:
      - {recipe: 10, id: 100, name: Bronze Ingot, quantity: 1,
         craft-type: 1, ingredients: {5: 3}}
    other:
      - {id: 2, name: Fire Shard, needed: 1}
    inventory: {2: 10}
    free-slots: 40

The simulated executors take ``job-seconds`` of simulated time per job and
write their output into a shared :class:`SimulatedInventory`. Crafts only
produce what their ingredients allow, so a failed gather surfaces as a
zero-progress craft exactly as it would against a real tool.
"""

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

import yaml

from .errors import ConfigError, ResolutionError
from .interfaces import CraftingExecutor, GatheringExecutor, InventoryReader, Resolver
from .logger import get_logger
from .plan import CraftStep, ItemRef, MaterialRequirement, Plan

_log = get_logger(__name__)

DEFAULT_JOB_SECONDS = 4.0
DEFAULT_TICK_SECONDS = 0.5


class SimulatedClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SimulatedInventory(InventoryReader):
    def __init__(self, counts: Optional[Dict[int, int]] = None, free_slots: int = 140):
        self.counts: Dict[int, int] = dict(counts or {})
        self._free_slots = free_slots

    def count(self, item_id: int) -> int:
        return self.counts.get(item_id, 0)

    def free_slots(self) -> int:
        return self._free_slots

    def add(self, item_id: int, quantity: int) -> None:
        self.counts[item_id] = self.count(item_id) + quantity

    def take(self, item_id: int, quantity: int) -> None:
        self.counts[item_id] = max(0, self.count(item_id) - quantity)


class _SimulatedTool:
    """Busy/idle bookkeeping shared by the simulated executors."""

    def __init__(self, name: str, inventory: SimulatedInventory, clock: SimulatedClock,
                 job_seconds: float = DEFAULT_JOB_SECONDS, available: bool = True):
        self._name = name
        self.inventory = inventory
        self.clock = clock
        self.job_seconds = job_seconds
        self.available = available
        self.stop_requested = False
        self.jobs: List[Tuple[int, int]] = []
        self._busy_until = 0.0
        self._pending: Optional[Tuple[int, int]] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_available(self) -> bool:
        return self.available

    def check_availability(self) -> None:
        pass

    def is_busy(self) -> bool:
        if self._pending is not None and self.clock() >= self._busy_until:
            job, quantity = self._pending
            self._pending = None
            if not self.stop_requested:
                self._finish(job, quantity)
        return self.clock() < self._busy_until

    def set_stop_request(self, stop: bool) -> None:
        self.stop_requested = stop
        if stop:
            self._busy_until = min(self._busy_until, self.clock())
            self._pending = None

    def _begin(self, job: int, quantity: int) -> None:
        self.jobs.append((job, quantity))
        self._pending = (job, quantity)
        self._busy_until = self.clock() + self.job_seconds

    def _finish(self, job: int, quantity: int) -> None:
        raise NotImplementedError


class SimulatedGatherer(_SimulatedTool, GatheringExecutor):
    """Gathers exactly what it is asked for, except items listed as flaky."""

    def __init__(self, inventory: SimulatedInventory, clock: SimulatedClock,
                 flaky: Iterable[int] = (), **kwargs):
        super().__init__("SimGather", inventory, clock, **kwargs)
        self.flaky: Set[int] = set(flaky)

    def gather_item(self, item_id: int, quantity: int) -> None:
        self._begin(item_id, quantity)

    def _finish(self, item_id: int, quantity: int) -> None:
        if item_id in self.flaky:
            _log.info("SimGather: %d is flaky, produced nothing", item_id)
            return
        self.inventory.add(item_id, quantity)


class SimulatedCrafter(_SimulatedTool, CraftingExecutor):
    """Crafts as many units as the inventory's ingredients allow."""

    def __init__(self, inventory: SimulatedInventory, clock: SimulatedClock,
                 recipes: Dict[int, "RecipeSpec"], flaky: Iterable[int] = (), **kwargs):
        super().__init__("SimCraft", inventory, clock, **kwargs)
        self.recipes = recipes
        self.flaky: Set[int] = set(flaky)
        self.solver_overrides: Dict[int, str] = {}

    def craft_item(self, recipe_id: int, quantity: int) -> None:
        self._begin(recipe_id, quantity)

    def change_solver(self, recipe_id: int, solver_name: str, temporary: bool = True) -> None:
        self.solver_overrides[recipe_id] = solver_name

    def reset_solver(self, recipe_id: int) -> None:
        self.solver_overrides.pop(recipe_id, None)

    def _finish(self, recipe_id: int, quantity: int) -> None:
        recipe = self.recipes.get(recipe_id)
        if recipe is None or recipe.item_id in self.flaky:
            return
        makeable = quantity
        for ingredient, per_unit in recipe.ingredients.items():
            if per_unit > 0:
                makeable = min(makeable, self.inventory.count(ingredient) // per_unit)
        for ingredient, per_unit in recipe.ingredients.items():
            self.inventory.take(ingredient, per_unit * makeable)
        self.inventory.add(recipe.item_id, makeable)


@dataclass
class RecipeSpec:
    item_id: int
    ingredients: Dict[int, int] = field(default_factory=dict)


class StaticResolver(Resolver):
    """Scales a per-unit plan loaded from a file by the requested quantity."""

    def __init__(self, plan: Plan):
        self.plan = plan

    def resolve(self, item: ItemRef, quantity: int) -> Plan:
        if item.item_id != self.plan.root.item_id:
            raise ResolutionError(item.name, "not described by this plan file")
        plan = copy.deepcopy(self.plan)
        plan.quantity = quantity
        for mat in plan.gather_list + plan.other_materials:
            mat.quantity_needed *= quantity
        for step in plan.craft_order:
            step.quantity *= quantity
        return plan


@dataclass
class PlanFixture:
    plan: Plan
    recipes: Dict[int, RecipeSpec]
    inventory: Dict[int, int]
    free_slots: int


def load_plan_file(path: str) -> PlanFixture:
    """Parse a YAML plan file; raises :class:`ConfigError` when it is malformed."""
    file_path = Path(path)
    try:
        with open(file_path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigError(f"Cannot read plan file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    return parse_plan(data, source=str(file_path))


def parse_plan(data: dict, source: str = "<plan>") -> PlanFixture:
    if not isinstance(data, dict) or "item" not in data:
        raise ConfigError(f"{source}: plan must be a mapping with an 'item' entry")

    try:
        root = ItemRef(int(data["item"]["id"]), str(data["item"]["name"]))
        gather = [
            MaterialRequirement(
                item_id=int(m["id"]),
                name=str(m["name"]),
                quantity_needed=int(m.get("needed", 1)),
                is_gatherable=True,
                is_collectable=bool(m.get("collectable", False)),
                gather_type=str(m.get("type", "")),
                preference=m.get("preference"),
            )
            for m in data.get("gather", []) or []
        ]
        other = [
            MaterialRequirement(
                item_id=int(m["id"]),
                name=str(m["name"]),
                quantity_needed=int(m.get("needed", 1)),
            )
            for m in data.get("other", []) or []
        ]
        craft: List[CraftStep] = []
        recipes: Dict[int, RecipeSpec] = {}
        for s in data.get("craft", []) or []:
            step = CraftStep(
                recipe_id=int(s["recipe"]),
                item_id=int(s["id"]),
                name=str(s["name"]),
                quantity=int(s.get("quantity", 1)),
                craft_type=int(s.get("craft-type", -1)),
                is_collectable=bool(s.get("collectable", False)),
            )
            craft.append(step)
            recipes[step.recipe_id] = RecipeSpec(
                item_id=step.item_id,
                ingredients={int(k): int(v) for k, v in (s.get("ingredients") or {}).items()},
            )
        inventory = {int(k): int(v) for k, v in (data.get("inventory") or {}).items()}
        free_slots = int(data.get("free-slots", 140))
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"{source}: malformed plan entry ({exc})") from exc

    plan = Plan(root=root, quantity=1, gather_list=gather, craft_order=craft,
                other_materials=other)
    return PlanFixture(plan=plan, recipes=recipes, inventory=inventory, free_slots=free_slots)


@dataclass
class Simulation:
    clock: SimulatedClock
    inventory: SimulatedInventory
    resolver: StaticResolver
    crafter: SimulatedCrafter
    gatherer: SimulatedGatherer

    def advance(self, seconds: float = DEFAULT_TICK_SECONDS) -> None:
        self.clock.advance(seconds)


def build_simulation(fixture: PlanFixture, flaky: Iterable[int] = (),
                     job_seconds: float = DEFAULT_JOB_SECONDS) -> Simulation:
    flaky = set(flaky)
    clock = SimulatedClock()
    inventory = SimulatedInventory(fixture.inventory, fixture.free_slots)
    return Simulation(
        clock=clock,
        inventory=inventory,
        resolver=StaticResolver(fixture.plan),
        crafter=SimulatedCrafter(inventory, clock, fixture.recipes, flaky=flaky,
                                 job_seconds=job_seconds),
        gatherer=SimulatedGatherer(inventory, clock, flaky=flaky, job_seconds=job_seconds),
    )


def item_id_by_name(fixture: PlanFixture, name: str) -> Optional[int]:
    """Look up an item id in the plan by case-insensitive name, or parse a numeric id."""
    if name.isdigit():
        return int(name)
    wanted = name.strip().lower()
    plan = fixture.plan
    candidates = [(plan.root.item_id, plan.root.name)]
    candidates += [(m.item_id, m.name) for m in plan.gather_list + plan.other_materials]
    candidates += [(s.item_id, s.name) for s in plan.craft_order]
    for item_id, item_name in candidates:
        if item_name.lower() == wanted:
            return item_id
    return None
