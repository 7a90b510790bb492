from __future__ import annotations

from arena.agents.agent import (
    ENGAGED_STATES,
    INTENT_STATION,
    INTENT_WANDER,
    STATE_GOING_STATION,
    STATE_IDLE,
    STATE_SEPARATE,
    AgentState,
    Vec2,
)
from arena.sim.movement import velocity_towards
from arena.sim.needs import Station, lowest_need
from arena.sim.rng import RandomSource


STATION_INTENT_SHARE = 0.33
INTENT_MIN_MS = 10_000.0
INTENT_MAX_MS = 18_000.0

STATION_SPEED_FACTOR = 0.9
IDLE_CHANCE = 0.004
IDLE_MIN_MS = 900.0
IDLE_MAX_MS = 2200.0
WANDER_NUDGE_CHANCE = 0.02
WANDER_NUDGE = 15.0


def roll_intent(rng: RandomSource) -> str:
    return INTENT_STATION if rng.chance(STATION_INTENT_SHARE) else INTENT_WANDER


def refresh_intent(agent: AgentState, now: float, rng: RandomSource) -> bool:
    """Re-roll the agent's intent once its window passes; returns True on re-roll."""
    cooling = now < agent.no_event_until
    if cooling:
        agent.intent = INTENT_WANDER
    if now < agent.intent_until or agent.state in ENGAGED_STATES:
        return False

    agent.intent = roll_intent(rng)
    if cooling:
        agent.intent = INTENT_WANDER
    agent.intent_until = now + rng.uniform(INTENT_MIN_MS, INTENT_MAX_MS)
    return True


def navigate(
    agent: AgentState,
    stations: list[Station],
    now: float,
    speed: float,
    rng: RandomSource,
) -> None:
    if agent.state == STATE_IDLE:
        return

    if agent.intent == INTENT_STATION and now >= agent.no_event_until:
        key = lowest_need(agent)
        station = next((item for item in stations if item.key == key), None)
        if station is None:
            return
        agent.target_station = key
        if agent.state != STATE_SEPARATE:
            agent.state = STATE_GOING_STATION
        agent.vel = velocity_towards(agent.pos, station.pos, speed * STATION_SPEED_FACTOR)
        if rng.chance(IDLE_CHANCE):
            agent.state = STATE_IDLE
            agent.vel = Vec2()
            agent.idle_until = now + rng.uniform(IDLE_MIN_MS, IDLE_MAX_MS)
        return

    if rng.chance(WANDER_NUDGE_CHANCE):
        agent.vel.x += rng.uniform(-WANDER_NUDGE, WANDER_NUDGE)
        agent.vel.y += rng.uniform(-WANDER_NUDGE, WANDER_NUDGE)
