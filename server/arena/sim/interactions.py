from __future__ import annotations

import logging

from arena.agents.agent import (
    FREE_STATES,
    STATE_COOLDOWN,
    STATE_FIGHT,
    STATE_FRIENDLY,
    AgentState,
    Engagement,
    Vec2,
)
from arena.sim.context import TickContext
from arena.sim.lifecycle import ENGAGE_MS, force_flee
from arena.sim.movement import distance_2d
from arena.sim.needs import Station, replenish
from arena.sim.relations import is_friend_of, record_interaction


STATION_RATE_PER_SEC = 0.60
WILD_RATE_PER_SEC = 0.40
FIGHT_BIAS_BY_STATION = {"food": 0.60, "water": 0.60, "play": 0.30}
WILD_FIGHT_BIAS = 0.50
WILD_RANGE_FACTOR = 0.9
ALLY_RANGE_FACTOR = 1.1

LOGGER = logging.getLogger("arena.sim.interactions")


def is_eligible(agent: AgentState, now: float) -> bool:
    return not agent.dragging and agent.state in FREE_STATES and now >= agent.no_event_until


def agents_near_station(station: Station, ctx: TickContext) -> list[AgentState]:
    return [
        agent
        for agent in ctx.ordered_agents()
        if distance_2d(agent.pos, station.pos) < station.radius and is_eligible(agent, ctx.now)
    ]


def lock_pair(a: AgentState, b: AgentState, outcome: str, ctx: TickContext, station: str | None = None) -> None:
    ends_at = ctx.now + ENGAGE_MS
    for agent, partner in ((a, b), (b, a)):
        agent.state = outcome
        agent.engagement = Engagement(
            partner_id=partner.id,
            kind=outcome,
            lock_position=agent.pos.copy(),
            started_at=ctx.now,
            ends_at=ends_at,
        )
        agent.vel = Vec2()
    record_interaction(a, b, outcome)
    ctx.emit(outcome, a.id, target_id=b.id, station=station)


def find_ally(a: AgentState, b: AgentState, ctx: TickContext) -> AgentState | None:
    """First eligible friend of either combatant in range, in collection order."""
    reach = ctx.interaction_radius * ALLY_RANGE_FACTOR
    for candidate in ctx.ordered_agents():
        if candidate is a or candidate is b or not is_eligible(candidate, ctx.now):
            continue
        if distance_2d(candidate.pos, a.pos) >= reach and distance_2d(candidate.pos, b.pos) >= reach:
            continue
        if is_friend_of(candidate, a.id) or is_friend_of(candidate, b.id):
            return candidate
    return None


def start_fight(a: AgentState, b: AgentState, ctx: TickContext, station: str | None = None) -> AgentState | None:
    """Lock a fight unless an ally steps in; returns the ally when the fight is cancelled."""
    ally = find_ally(a, b, ctx)
    if ally is None:
        lock_pair(a, b, STATE_FIGHT, ctx, station=station)
        return None

    fleeing = b if is_friend_of(ally, a.id) else a
    ctx.emit("ally_assist", ally.id, target_id=fleeing.id, station=station)
    force_flee(fleeing, ctx)
    ally.state = STATE_COOLDOWN
    ally.engagement = None
    return ally


def start_friendly(a: AgentState, b: AgentState, ctx: TickContext, station: str | None = None) -> None:
    lock_pair(a, b, STATE_FRIENDLY, ctx, station=station)


def station_interactions(stations: list[Station], ctx: TickContext) -> int:
    triggered = 0
    for station in stations:
        nearby = agents_near_station(station, ctx)
        for agent in nearby:
            replenish(agent, station, ctx.dt)

        fight_bias = FIGHT_BIAS_BY_STATION.get(station.key, WILD_FIGHT_BIAS)
        for i, a in enumerate(nearby):
            for b in nearby[i + 1 :]:
                # Earlier pairs this tick may have locked or scattered either side.
                if not is_eligible(a, ctx.now) or not is_eligible(b, ctx.now):
                    continue
                if not ctx.rng.trigger(STATION_RATE_PER_SEC, ctx.dt):
                    continue
                triggered += 1
                if ctx.rng.chance(fight_bias):
                    start_fight(a, b, ctx, station=station.key)
                else:
                    start_friendly(a, b, ctx, station=station.key)
    return triggered


def wild_interactions(stations: list[Station], ctx: TickContext) -> int:
    agents = ctx.ordered_agents()
    reach = ctx.interaction_radius * WILD_RANGE_FACTOR

    def on_station(agent: AgentState) -> bool:
        return any(distance_2d(agent.pos, station.pos) < station.radius for station in stations)

    triggered = 0
    for i, a in enumerate(agents):
        for b in agents[i + 1 :]:
            if not is_eligible(a, ctx.now) or not is_eligible(b, ctx.now):
                continue
            if on_station(a) or on_station(b):
                continue
            if distance_2d(a.pos, b.pos) > reach:
                continue
            if not ctx.rng.trigger(WILD_RATE_PER_SEC, ctx.dt):
                continue
            triggered += 1
            if ctx.rng.chance(WILD_FIGHT_BIAS):
                start_friendly(a, b, ctx)
            else:
                start_fight(a, b, ctx)
    if triggered and LOGGER.isEnabledFor(logging.DEBUG):
        LOGGER.debug("Wild interactions triggered=%s now=%.1f", triggered, ctx.now)
    return triggered
