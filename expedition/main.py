"""
expedition v1.0.0: supervised gather-to-craft orchestration.

Commands: expedition simulate PLAN_FILE, expedition config show|set|reset
"""

import sys

import click
from rich.console import Console
from rich.markup import escape

from . import __version__
from .config import CONFIG_FIELDS, Config
from .errors import ConfigError
from .interfaces import Notifier
from .logger import setup_logger
from .rendering import (
    get_icon,
    render_config_table,
    render_error,
    render_run_log,
    render_workflow_summary,
    set_use_unicode,
)
from .simulation import DEFAULT_TICK_SECONDS, build_simulation, item_id_by_name, load_plan_file
from .theme import ACCENT, DIM, ERROR, SUCCESS
from .workflow import WorkflowEngine, WorkflowState

console = Console()
BANNER = (
    f"[bold {ACCENT}]expedition[/bold {ACCENT}] "
    f"[dim]v{__version__} · gather-to-craft orchestration[/dim]"
)


class ConsoleNotifier(Notifier):
    """Prints workflow notices to the terminal."""

    def __init__(self, out: Console):
        self.out = out

    def info(self, message: str) -> None:
        self.out.print(f"  [{SUCCESS}]{escape(get_icon('✓'))} {escape(message)}[/{SUCCESS}]")

    def error(self, message: str) -> None:
        self.out.print(f"  [{ERROR}]{escape(get_icon('✗'))} {escape(message)}[/{ERROR}]")


@click.group()
@click.option("--ascii", "ascii_icons", is_flag=True, help="Use ASCII icons instead of Unicode")
def cli(ascii_icons):
    """expedition: supervised gather-to-craft orchestration."""
    set_use_unicode(not ascii_icons)


@cli.group("config")
def config_group():
    """Show or change settings."""


@config_group.command("show")
@click.option("--project-dir", "-d", default=".", help="Project directory")
def config_show(project_dir):
    """Show all settings and which ones differ from defaults."""
    cfg = _load_config(project_dir)
    render_config_table(console, cfg.get_config_diff(), cfg.source)


@config_group.command("set")
@click.argument("key", type=click.Choice(sorted(CONFIG_FIELDS)))
@click.argument("value")
@click.option("--project-dir", "-d", default=".", help="Project directory")
def config_set(key, value, project_dir):
    """Validate and save one setting."""
    cfg = _load_config(project_dir)
    ok, error = cfg.set_config_value(key, value)
    if not ok:
        render_error(console, f"{key}: {error}")
        sys.exit(1)
    console.print(f"  {key} = {cfg.get_config_value(key)}  [{DIM}]({cfg.source})[/{DIM}]")


@config_group.command("reset")
@click.argument("key", type=click.Choice(sorted(CONFIG_FIELDS)))
@click.option("--project-dir", "-d", default=".", help="Project directory")
def config_reset(key, project_dir):
    """Restore one setting to its default."""
    cfg = _load_config(project_dir)
    cfg.reset_config_value(key)
    console.print(f"  {key} = {cfg.get_config_value(key)}  [{DIM}](default)[/{DIM}]")


@cli.command()
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--quantity", "-q", default=1, show_default=True, type=click.IntRange(min=1),
              help="How many of the plan's item to make")
@click.option("--ticks", default=2000, show_default=True, type=click.IntRange(min=1),
              help="Maximum simulated ticks before giving up")
@click.option("--tick-seconds", default=DEFAULT_TICK_SECONDS, show_default=True, type=float,
              help="Simulated seconds per tick")
@click.option("--flaky", multiple=True, help="Item name or id the simulated tools never produce")
@click.option("--gather-only", is_flag=True, help="Only gather the plan's item, skip crafting")
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def simulate(plan_file, quantity, ticks, tick_seconds, flaky, gather_only, project_dir, verbose):
    """Run the workflow against simulated tools described by PLAN_FILE."""
    console.print(BANNER)
    cfg = _load_config(project_dir)
    if verbose:
        cfg.verbose = True
    setup_logger(verbose=cfg.verbose)

    try:
        fixture = load_plan_file(plan_file)
    except ConfigError as exc:
        render_error(console, str(exc))
        sys.exit(1)

    flaky_ids = set()
    for name in flaky:
        item_id = item_id_by_name(fixture, name)
        if item_id is None:
            render_error(console, f"Unknown item in --flaky: {name}")
            sys.exit(1)
        flaky_ids.add(item_id)

    sim = build_simulation(fixture, flaky=flaky_ids)
    engine = WorkflowEngine(
        sim.resolver, sim.inventory, sim.crafter, sim.gatherer,
        notifier=ConsoleNotifier(console), config=cfg, clock=sim.clock,
    )
    if cfg.verbose:
        engine.on_state_changed.subscribe(
            lambda old, new: console.print(f"  [{DIM}]{old.value} {get_icon('▸')} {new.value}[/{DIM}]")
        )

    root = fixture.plan.root
    if gather_only:
        engine.start_gather(root, quantity)
    else:
        engine.start(root, quantity)

    for _ in range(ticks):
        engine.update()
        if not engine.is_running:
            break
        sim.advance(tick_seconds)
    else:
        render_error(console, f"Workflow still {engine.state.value} after {ticks} ticks; cancelling.")
        engine.cancel()

    render_run_log(console, engine.run_log)
    render_workflow_summary(console, engine)
    if engine.state != WorkflowState.COMPLETED:
        sys.exit(1)


def _load_config(project_dir: str) -> Config:
    try:
        return Config.load(project_dir)
    except ConfigError as exc:
        render_error(console, str(exc))
        sys.exit(1)


if __name__ == "__main__":
    cli()
