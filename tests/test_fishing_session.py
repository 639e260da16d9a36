"""Tests for the FishingSession state machine."""

import pytest

from conftest import FakeActions, FakeClock, FakeCompanion, FakeNavigator, FakeWorld, drive

from expedition.fishing import (
    FishingConfig,
    FishingSession,
    FishingState,
    PreFishingStep,
    find_nearest,
)
from expedition.fishing.actions import CAST, CHUM, PATIENCE_II, THALIAKS_FAVOR
from expedition.interfaces import SpotObject

NEAR = SpotObject(base_id=1, name="Near Spot", position=(3.0, 0.0, 0.0))
FAR = SpotObject(base_id=2, name="Far Spot", position=(50.0, 0.0, 0.0))
OUT_OF_RANGE = SpotObject(base_id=3, name="Distant Spot", position=(200.0, 0.0, 0.0))


@pytest.fixture
def fishing_world():
    world = FakeWorld()
    world.spots = [NEAR]
    return world


def _session(world, clock, navigator=None, companion=None, config=None):
    actions = FakeActions(world)
    session = FishingSession(world, actions, companion or FakeCompanion(), navigator=navigator,
                             config=config, clock=clock)
    return session, actions


def _until(session, clock, predicate, limit=100, step=0.5):
    for _ in range(limit):
        if predicate():
            return
        clock.advance(step)
        session.update()
    raise AssertionError(f"condition not reached; state={session.state}")


def _fishing(world, clock, **kwargs):
    """A session that has finished its opening buffs and cast."""
    session, actions = _session(world, clock, **kwargs)
    session.start()
    session.update()
    _until(session, clock, lambda: session.state == FishingState.FISHING)
    return session, actions


class TestValidation:
    def _error_for(self, world, clock, **kwargs):
        session, _ = _session(world, clock, **kwargs)
        session.start()
        session.update()
        assert session.state == FishingState.ERROR
        return session.error_message

    def test_player_missing(self, fishing_world, clock):
        fishing_world.position = None
        assert self._error_for(fishing_world, clock) == "Player not found."

    def test_wrong_job(self, fishing_world, clock):
        fishing_world.job = 8
        assert self._error_for(fishing_world, clock) == "Must be on Fisher (FSH) class."

    def test_companion_missing(self, fishing_world, clock):
        msg = self._error_for(fishing_world, clock, companion=FakeCompanion(available=False))
        assert msg == "Fishing companion tool required but not loaded."

    def test_no_spot_in_range(self, fishing_world, clock):
        fishing_world.spots = [OUT_OF_RANGE]
        assert self._error_for(fishing_world, clock) == "No fishing spot found nearby (150y range)."

    def test_far_spot_without_navigator(self, fishing_world, clock):
        fishing_world.spots = [FAR]
        msg = self._error_for(fishing_world, clock)
        assert msg == "Navigation required to reach the spot but not available."

    def test_far_spot_with_unavailable_navigator(self, fishing_world, clock):
        fishing_world.spots = [FAR]
        nav = FakeNavigator()
        nav.available = False
        msg = self._error_for(fishing_world, clock, navigator=nav)
        assert "Navigation required" in msg

    def test_near_spot_goes_straight_to_pre_fishing(self, fishing_world, clock):
        session, _ = _session(fishing_world, clock)
        session.start()
        session.update()
        assert session.state == FishingState.PRE_FISHING
        assert session.pre_fishing_step == PreFishingStep.DISMOUNT
        assert session.target_spot.name == "Near Spot"


class TestNavigation:
    @pytest.fixture
    def far_world(self, fishing_world):
        fishing_world.spots = [FAR]
        return fishing_world

    def _navigating(self, world, clock):
        nav = FakeNavigator()
        session, _ = _session(world, clock, navigator=nav)
        session.start()
        session.update()
        assert session.state == FishingState.NAVIGATING_TO_SPOT
        return session, nav

    def test_move_issued_on_ground(self, far_world, clock):
        _, nav = self._navigating(far_world, clock)
        assert nav.moves == [((50.0, 0.0, 0.0), False)]

    def test_arrival(self, far_world, clock):
        session, nav = self._navigating(far_world, clock)
        far_world.position = (47.0, 0.0, 0.0)
        clock.advance(0.1)
        session.update()
        assert session.state == FishingState.PRE_FISHING
        assert nav.stops == 1

    def test_navigation_is_not_rate_limited(self, far_world, clock):
        session, nav = self._navigating(far_world, clock)
        nav.running = False
        session.update()
        assert len(nav.moves) == 2

    def test_dropped_path_is_reissued(self, far_world, clock):
        session, nav = self._navigating(far_world, clock)
        clock.advance(1.0)
        session.update()
        assert len(nav.moves) == 1
        nav.running = False
        nav.pathfinding = True
        clock.advance(1.0)
        session.update()
        assert len(nav.moves) == 1
        nav.pathfinding = False
        clock.advance(1.0)
        session.update()
        assert len(nav.moves) == 2

    def test_timeout(self, far_world, clock):
        session, nav = self._navigating(far_world, clock)
        clock.advance(61.0)
        session.update()
        assert session.state == FishingState.ERROR
        assert session.error_message == "Navigation timed out (60s)."
        assert nav.stops == 1


class TestPreFishing:
    def test_buffs_then_cast(self, fishing_world, clock):
        session, actions = _fishing(fishing_world, clock)
        assert actions.used == [PATIENCE_II.action_id, CHUM.action_id, CAST]
        assert fishing_world.gp == 700 - 560 - 100

    def test_action_delay_between_buffs(self, fishing_world, clock):
        session, actions = _session(fishing_world, clock)
        session.start()
        session.update()
        drive(session, clock, 1, step=0.5)
        assert actions.used == [PATIENCE_II.action_id]
        drive(session, clock, 2, step=0.5)
        assert actions.used == [PATIENCE_II.action_id]
        drive(session, clock, 1, step=0.5)
        assert actions.used == [PATIENCE_II.action_id, CHUM.action_id]

    def test_dismounts_first(self, fishing_world, clock):
        fishing_world.mounted = True
        session, actions = _session(fishing_world, clock)
        session.start()
        session.update()
        drive(session, clock, 1, step=0.5)
        assert actions.dismounts == 1
        assert actions.used == []
        assert session.pre_fishing_step == PreFishingStep.DISMOUNT
        fishing_world.mounted = False
        drive(session, clock, 3, step=0.5)
        assert actions.used == [PATIENCE_II.action_id]

    def test_updates_are_rate_limited(self, fishing_world, clock):
        fishing_world.mounted = True
        session, actions = _session(fishing_world, clock)
        session.start()
        session.update()
        clock.advance(0.25)
        session.update()
        assert actions.dismounts == 0
        clock.advance(0.25)
        session.update()
        assert actions.dismounts == 1

    def test_disabled_buffs_are_skipped(self, fishing_world, clock):
        config = FishingConfig(use_patience=False, use_chum=False)
        session, actions = _fishing(fishing_world, clock, config=config)
        assert actions.used == [CAST]

    def test_unaffordable_buff_is_skipped(self, fishing_world, clock):
        fishing_world.gp = 300
        session, actions = _fishing(fishing_world, clock)
        assert actions.used == [CHUM.action_id, CAST]

    def test_already_fishing_skips_cast(self, fishing_world, clock):
        fishing_world.statuses = {PATIENCE_II.status_id, CHUM.status_id}
        fishing_world.fishing = True
        session, actions = _fishing(fishing_world, clock)
        assert CAST not in actions.used

    def test_waits_while_casting(self, fishing_world, clock):
        fishing_world.casting = True
        session, actions = _session(fishing_world, clock)
        session.start()
        session.update()
        drive(session, clock, 6, step=0.5)
        assert actions.used == []
        assert session.state == FishingState.PRE_FISHING


class TestFishing:
    def test_catch_counted_on_falling_edge(self, fishing_world, clock):
        session, _ = _fishing(fishing_world, clock)
        fishing_world.gp = 700
        fishing_world.fishing = True
        drive(session, clock, 2, step=0.5)
        assert session.total_catches == 0
        fishing_world.fishing = False
        drive(session, clock, 3, step=0.5)
        assert session.total_catches == 1
        assert session.state == FishingState.FISHING

    def test_lapsed_buff_is_reapplied(self, fishing_world, clock):
        session, actions = _fishing(fishing_world, clock)
        fishing_world.gp = 700
        fishing_world.statuses.discard(PATIENCE_II.status_id)
        fishing_world.fishing = True
        drive(session, clock, 1, step=0.5)
        fishing_world.fishing = False
        drive(session, clock, 1, step=0.5)
        assert session.state == FishingState.PRE_FISHING
        assert session.pre_fishing_step == PreFishingStep.QUALITY_BUFF
        drive(session, clock, 1, step=0.5)
        assert actions.used[-1] == PATIENCE_II.action_id

    def test_buffs_checked_at_most_every_interval(self, fishing_world, clock):
        session, _ = _fishing(fishing_world, clock)
        fishing_world.gp = 700
        fishing_world.fishing = True
        drive(session, clock, 1, step=0.5)
        fishing_world.fishing = False
        drive(session, clock, 1, step=0.5)
        assert session.total_catches == 1
        fishing_world.statuses.discard(CHUM.status_id)
        fishing_world.fishing = True
        drive(session, clock, 1, step=0.5)
        fishing_world.fishing = False
        drive(session, clock, 1, step=0.5)
        assert session.total_catches == 2
        assert session.state == FishingState.FISHING

    def test_low_gp_waits_then_resumes(self, fishing_world, clock):
        session, actions = _fishing(fishing_world, clock)
        assert fishing_world.gp == 40
        fishing_world.fishing = True
        drive(session, clock, 1, step=0.5)
        fishing_world.fishing = False
        drive(session, clock, 1, step=0.5)
        assert session.state == FishingState.WAITING_FOR_GP
        assert session.gp_needed_for_buffs == 660
        drive(session, clock, 1, step=0.5)
        assert THALIAKS_FAVOR in actions.used
        assert session.state == FishingState.WAITING_FOR_GP
        fishing_world.gp = 660
        drive(session, clock, 1, step=0.5)
        assert session.state == FishingState.PRE_FISHING
        assert session.pre_fishing_step == PreFishingStep.QUALITY_BUFF

    def test_no_gp_wait_without_thaliaks_favor(self, fishing_world, clock):
        config = FishingConfig(use_thaliaks_favor=False)
        session, _ = _fishing(fishing_world, clock, config=config)
        fishing_world.fishing = True
        drive(session, clock, 1, step=0.5)
        fishing_world.fishing = False
        drive(session, clock, 1, step=0.5)
        assert session.state == FishingState.FISHING

    def test_stall_recasts(self, fishing_world, clock):
        session, actions = _fishing(fishing_world, clock)
        _until(session, clock, lambda: session.state == FishingState.PRE_FISHING, limit=40)
        assert session.pre_fishing_step == PreFishingStep.CAST
        assert session.status_message == "Re-casting..."
        drive(session, clock, 1, step=0.5)
        assert session.state == FishingState.FISHING
        assert actions.used.count(CAST) == 2

    def test_no_stall_while_occupied(self, fishing_world, clock):
        session, _ = _fishing(fishing_world, clock)
        fishing_world.occupied = True
        drive(session, clock, 40, step=0.5)
        assert session.state == FishingState.FISHING

    def test_unexpected_exception_is_error(self, fishing_world, clock):
        session, _ = _session(fishing_world, clock)
        session.start()
        session.update()

        def boom():
            raise RuntimeError("boom")

        fishing_world.is_casting = boom
        drive(session, clock, 1, step=0.5)
        assert session.state == FishingState.ERROR
        assert session.error_message == "Error: boom"
        assert not session.is_active


class TestLifecycle:
    def test_stop_reports_catches_and_duration(self, fishing_world, clock):
        nav = FakeNavigator()
        session, _ = _session(fishing_world, clock, navigator=nav)
        session.start()
        session.update()
        clock.advance(125)
        session.stop()
        assert session.state == FishingState.STOPPED
        assert session.status_message == "Stopped. 0 catches in 2:05."
        assert nav.stops == 1

    def test_stop_when_idle_is_noop(self, fishing_world, clock):
        session, _ = _session(fishing_world, clock)
        session.stop()
        assert session.state == FishingState.IDLE

    def test_update_when_inactive_is_noop(self, fishing_world, clock):
        session, actions = _session(fishing_world, clock)
        session.update()
        assert session.state == FishingState.IDLE
        assert actions.used == []

    def test_restart_resets_counters(self, fishing_world, clock):
        session, _ = _fishing(fishing_world, clock)
        session.total_catches = 4
        session.stop()
        session.start()
        assert session.total_catches == 0
        assert session.state == FishingState.VALIDATING_PREREQS
        assert session.pre_fishing_step == PreFishingStep.DISMOUNT

    def test_start_while_active_is_ignored(self, fishing_world, clock):
        session, _ = _fishing(fishing_world, clock)
        session.start()
        assert session.state == FishingState.FISHING

    def test_dispose_stops_active_session(self, fishing_world, clock):
        session, _ = _fishing(fishing_world, clock)
        session.dispose()
        assert session.state == FishingState.STOPPED

    def test_catch_rate(self, fishing_world):
        clock = FakeClock()
        session, _ = _session(fishing_world, clock)
        assert session.catch_rate() == 0.0
        session.start()
        session.total_catches = 3
        clock.advance(1800)
        assert session.catch_rate() == pytest.approx(6.0)
        assert session.duration_string() == "30:00"


class TestSpotsAndConfig:
    def test_find_nearest_picks_closest_in_range(self, fishing_world):
        fishing_world.spots = [FAR, NEAR, OUT_OF_RANGE]
        spot = find_nearest(fishing_world)
        assert spot.name == "Near Spot"
        assert spot.distance == pytest.approx(3.0)

    def test_find_nearest_respects_range(self, fishing_world):
        fishing_world.spots = [FAR]
        assert find_nearest(fishing_world, max_range=10) is None

    def test_find_nearest_without_player(self, fishing_world):
        fishing_world.position = None
        assert find_nearest(fishing_world) is None

    def test_config_from_kebab_keys(self):
        cfg = FishingConfig.from_dict({"use-chum": False, "gp-float-threshold": 250,
                                       "stall-timeout": 12})
        assert cfg.use_chum is False
        assert cfg.use_patience is True
        assert cfg.gp_float_threshold == 250
        assert cfg.stall_timeout == 12.0

    def test_gp_needed_for_buffs(self):
        assert FishingConfig().gp_needed_for_buffs() == 660
        assert FishingConfig(use_patience=False).gp_needed_for_buffs() == 100
        assert FishingConfig(use_patience=False, use_chum=False).gp_needed_for_buffs() == 100
