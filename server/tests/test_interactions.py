"""Tests for station/wild interaction detection and the pairwise resolver."""

import math

import pytest

from arena.agents.agent import (
    RELATION_FRIEND,
    RELATION_RIVAL,
    STATE_COOLDOWN,
    STATE_FIGHT,
    STATE_FLEE,
    STATE_FRIENDLY,
    STATE_SEPARATE,
    STATE_WANDER,
)
from arena.sim.interactions import (
    STATION_RATE_PER_SEC,
    WILD_RATE_PER_SEC,
    agents_near_station,
    find_ally,
    is_eligible,
    lock_pair,
    start_fight,
    station_interactions,
    wild_interactions,
)
from arena.sim.lifecycle import ENGAGE_MS
from arena.sim.rng import RandomSource
from conftest import FAR_FUTURE, ScriptedRandom, make_world, spawn


# Default 1600x1000 arena: food (352, 320), water (1248, 340), play (800, 740).
OFF_STATION_Y = 700.0


class TestEligibility:
    def test_free_agent_is_eligible(self, world):
        agent = spawn(world, "a", 300.0, OFF_STATION_Y)
        assert is_eligible(agent, 0.0)

    @pytest.mark.parametrize("state", [STATE_FRIENDLY, STATE_FIGHT, STATE_SEPARATE, STATE_FLEE])
    def test_busy_states_are_not_eligible(self, world, state):
        agent = spawn(world, "a", 300.0, OFF_STATION_Y, state=state)
        assert not is_eligible(agent, 0.0)

    def test_cooldown_window_blocks_eligibility(self, world):
        agent = spawn(world, "a", 300.0, OFF_STATION_Y, no_event_until=500.0)
        assert not is_eligible(agent, 499.0)
        assert is_eligible(agent, 500.0)

    def test_dragging_blocks_eligibility(self, world):
        agent = spawn(world, "a", 300.0, OFF_STATION_Y, dragging=True)
        assert not is_eligible(agent, 0.0)


class TestLocking:
    def test_lock_pair_is_symmetric(self, world):
        a = spawn(world, "a", 300.0, OFF_STATION_Y)
        b = spawn(world, "b", 320.0, OFF_STATION_Y)
        a.vel.x = 30.0
        ctx = world._context(0.05)
        lock_pair(a, b, STATE_FRIENDLY, ctx)

        assert a.state == b.state == STATE_FRIENDLY
        assert a.target_id == "b" and b.target_id == "a"
        assert a.engage_end == b.engage_end == ctx.now + ENGAGE_MS
        assert (a.lock_position.x, a.lock_position.y) == (300.0, OFF_STATION_Y)
        assert (b.lock_position.x, b.lock_position.y) == (320.0, OFF_STATION_Y)
        assert (a.vel.x, a.vel.y) == (0.0, 0.0)
        assert a.relations["b"] == b.relations["a"] == RELATION_FRIEND

    def test_new_outcome_overwrites_relation(self, world):
        a = spawn(world, "a", 300.0, OFF_STATION_Y)
        b = spawn(world, "b", 320.0, OFF_STATION_Y)
        a.relations["b"] = RELATION_FRIEND
        b.relations["a"] = RELATION_FRIEND
        lock_pair(a, b, STATE_FIGHT, world._context(0.05))
        assert a.relations["b"] == b.relations["a"] == RELATION_RIVAL


class TestAllyAssist:
    def test_ally_cancels_fight_and_scatters_opponent(self, world):
        a = spawn(world, "a", 300.0, OFF_STATION_Y)
        b = spawn(world, "b", 330.0, OFF_STATION_Y)
        c = spawn(world, "c", 360.0, OFF_STATION_Y)
        c.relations["a"] = RELATION_FRIEND
        ctx = world._context(0.05)

        ally = start_fight(a, b, ctx)

        assert ally is c
        assert a.state == STATE_WANDER
        assert b.state == STATE_FLEE
        assert c.state == STATE_COOLDOWN
        assert a.target_id is None and b.target_id is None and c.target_id is None
        assert b.no_event_until > ctx.now
        assert math.hypot(b.vel.x, b.vel.y) == pytest.approx(120.0)
        assert "b" not in a.relations

    def test_ally_of_second_combatant_scatters_first(self, world):
        a = spawn(world, "a", 300.0, OFF_STATION_Y)
        b = spawn(world, "b", 330.0, OFF_STATION_Y)
        c = spawn(world, "c", 360.0, OFF_STATION_Y)
        c.relations["b"] = RELATION_FRIEND
        start_fight(a, b, world._context(0.05))
        assert a.state == STATE_FLEE
        assert b.state == STATE_WANDER

    def test_first_ally_in_collection_order_wins(self, world):
        a = spawn(world, "a", 300.0, OFF_STATION_Y)
        b = spawn(world, "b", 330.0, OFF_STATION_Y)
        far = spawn(world, "far", 410.0, OFF_STATION_Y)
        near = spawn(world, "near", 310.0, OFF_STATION_Y)
        far.relations["a"] = RELATION_FRIEND
        near.relations["a"] = RELATION_FRIEND
        assert find_ally(a, b, world._context(0.05)) is far

    def test_out_of_range_friend_does_not_help(self, world):
        a = spawn(world, "a", 300.0, OFF_STATION_Y)
        b = spawn(world, "b", 330.0, OFF_STATION_Y)
        c = spawn(world, "c", 600.0, OFF_STATION_Y)
        c.relations["a"] = RELATION_FRIEND
        assert start_fight(a, b, world._context(0.05)) is None
        assert a.state == b.state == STATE_FIGHT

    def test_rival_does_not_help(self, world):
        a = spawn(world, "a", 300.0, OFF_STATION_Y)
        b = spawn(world, "b", 330.0, OFF_STATION_Y)
        c = spawn(world, "c", 360.0, OFF_STATION_Y)
        c.relations["a"] = RELATION_RIVAL
        start_fight(a, b, world._context(0.05))
        assert a.state == b.state == STATE_FIGHT

    def test_cooling_friend_does_not_help(self, world):
        a = spawn(world, "a", 300.0, OFF_STATION_Y)
        b = spawn(world, "b", 330.0, OFF_STATION_Y)
        c = spawn(world, "c", 360.0, OFF_STATION_Y, no_event_until=FAR_FUTURE)
        c.relations["a"] = RELATION_FRIEND
        start_fight(a, b, world._context(0.05))
        assert a.state == b.state == STATE_FIGHT

    def test_world_step_never_locks_defended_pair(self, scripted):
        # One wild trigger; every chance roll is False, which selects fight.
        scripted.triggers = [True]
        world = make_world(rng=scripted)
        a = spawn(world, "a", 300.0, OFF_STATION_Y)
        b = spawn(world, "b", 330.0, OFF_STATION_Y)
        c = spawn(world, "c", 360.0, OFF_STATION_Y)
        c.relations["a"] = RELATION_FRIEND

        result = world.step(0.05)

        assert STATE_FIGHT not in (a.state, b.state)
        assert [a.state, b.state].count(STATE_FLEE) == 1
        assert c.state == STATE_COOLDOWN
        kinds = [event["kind"] for event in result.events]
        assert "ally_assist" in kinds and "flee" in kinds


class TestStationDetection:
    def test_station_pair_locks_friendly_on_play(self):
        rng = ScriptedRandom(fire=True, chance_default=False)
        world = make_world(rng=rng)
        a = spawn(world, "a", 800.0, 740.0)
        b = spawn(world, "b", 810.0, 740.0)
        ctx = world._context(0.05)
        assert station_interactions(world.stations, ctx) == 1
        assert a.state == b.state == STATE_FRIENDLY
        assert 0.30 in rng.chance_calls

    def test_food_station_uses_higher_fight_bias(self):
        rng = ScriptedRandom(fire=True, chance_default=True)
        world = make_world(rng=rng)
        a = spawn(world, "a", 352.0, 320.0)
        b = spawn(world, "b", 362.0, 320.0)
        station_interactions(world.stations, world._context(0.05))
        assert a.state == b.state == STATE_FIGHT
        assert 0.60 in rng.chance_calls

    def test_cooling_agents_are_not_detected(self, world):
        spawn(world, "a", 800.0, 740.0, no_event_until=FAR_FUTURE)
        b = spawn(world, "b", 810.0, 740.0)
        assert agents_near_station(world.stations[2], world._context(0.05)) == [b]

    def test_station_replenishes_nearby_agents(self, world):
        a = spawn(world, "a", 800.0, 740.0)
        station_interactions(world.stations, world._context(0.5))
        assert a.needs["play"] == pytest.approx(56.0)
        assert a.needs["food"] == 50.0

    def test_locked_agent_is_not_repaired_in_same_tick(self):
        rng = ScriptedRandom(fire=True, chance_default=False)
        world = make_world(rng=rng)
        a = spawn(world, "a", 800.0, 740.0)
        b = spawn(world, "b", 805.0, 740.0)
        c = spawn(world, "c", 810.0, 740.0)
        assert station_interactions(world.stations, world._context(0.05)) == 1
        assert a.target_id == "b" and b.target_id == "a"
        assert c.state == STATE_WANDER


class TestWildDetection:
    def test_wild_pair_needs_proximity(self, scripted):
        scripted.fire = True
        world = make_world(rng=scripted)
        spawn(world, "a", 300.0, OFF_STATION_Y)
        spawn(world, "b", 300.0 + 110.0 * 0.9 + 1.0, OFF_STATION_Y)
        assert wild_interactions(world.stations, world._context(0.05)) == 0
        assert scripted.trigger_calls == 0

    def test_wild_pair_skipped_when_one_is_on_station(self, scripted):
        scripted.fire = True
        world = make_world(rng=scripted)
        spawn(world, "a", 800.0, 740.0 - 105.0)
        spawn(world, "b", 800.0, 740.0 - 170.0)
        assert wild_interactions(world.stations, world._context(0.05)) == 0

    def test_wild_even_split_selects_friendly_on_true_roll(self):
        rng = ScriptedRandom(fire=True, chance_default=True)
        world = make_world(rng=rng)
        a = spawn(world, "a", 300.0, OFF_STATION_Y)
        b = spawn(world, "b", 340.0, OFF_STATION_Y)
        assert wild_interactions(world.stations, world._context(0.05)) == 1
        assert a.state == b.state == STATE_FRIENDLY
        assert rng.chance_calls == [0.5]


def _empirical_rate(world, a, b, x_a, x_b, y, ticks, dt):
    """Hold a pair in place, counting ticks on which it locks."""
    locked = 0
    for _ in range(ticks):
        for agent, x in ((a, x_a), (b, x_b)):
            agent.state = STATE_WANDER
            agent.engagement = None
            agent.no_event_until = 0.0
            agent.pos.x, agent.pos.y = x, y
            agent.vel.x = agent.vel.y = 0.0
            agent.needs = {"food": 50.0, "water": 50.0, "play": 50.0}
        world.step(dt)
        if a.state in (STATE_FRIENDLY, STATE_FIGHT):
            locked += 1
    return locked / ticks


class TestRateConformance:
    @pytest.mark.parametrize("rate", [STATION_RATE_PER_SEC, WILD_RATE_PER_SEC])
    def test_trigger_frequency_matches_poisson(self, rate):
        rng = RandomSource(seed=20240501)
        dt = 0.05
        trials = 40_000
        hits = sum(rng.trigger(rate, dt) for _ in range(trials))
        expected = 1.0 - math.exp(-rate * dt)
        assert hits / trials == pytest.approx(expected, abs=0.005)

    def test_station_pair_locks_at_station_rate(self):
        world = make_world(rng=RandomSource(seed=99))
        a = spawn(world, "a", 800.0, 740.0)
        b = spawn(world, "b", 820.0, 740.0)
        observed = _empirical_rate(world, a, b, 800.0, 820.0, 740.0, ticks=6000, dt=0.05)
        assert observed == pytest.approx(1.0 - math.exp(-STATION_RATE_PER_SEC * 0.05), abs=0.01)

    def test_wild_pair_locks_at_wild_rate(self):
        world = make_world(rng=RandomSource(seed=1234))
        a = spawn(world, "a", 300.0, OFF_STATION_Y)
        b = spawn(world, "b", 340.0, OFF_STATION_Y)
        observed = _empirical_rate(world, a, b, 300.0, 340.0, OFF_STATION_Y, ticks=6000, dt=0.05)
        assert observed == pytest.approx(1.0 - math.exp(-WILD_RATE_PER_SEC * 0.05), abs=0.01)
