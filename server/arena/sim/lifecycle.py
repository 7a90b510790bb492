"""Engagement lifecycle: locked pair -> separate -> cooldown -> wander.

Also holds the two forced exits from normal play (flee after an ally steps in,
and drag release) plus the central symmetry check run after every tick.
"""

from __future__ import annotations

import logging
import math

from arena.agents.agent import (
    ENGAGED_STATES,
    INTENT_WANDER,
    STATE_COOLDOWN,
    STATE_DRAG,
    STATE_FLEE,
    STATE_IDLE,
    STATE_SEPARATE,
    STATE_WANDER,
    STATES,
    AgentState,
    Vec2,
)
from arena.sim.context import TickContext
from arena.sim.movement import unit_between, velocity_at_angle


ENGAGE_MS = 8000.0
SEPARATE_MS = 1400.0
FLEE_MS = 2200.0
NO_EVENT_MIN_MS = 4200.0
NO_EVENT_MAX_MS = 7000.0
INTENT_RESET_MIN_MS = 4000.0
INTENT_RESET_MAX_MS = 8000.0

SEPARATE_SPEED_FACTOR = 1.1
FLEE_SPEED_FACTOR = 1.3
FLEE_SPEED_FLOOR = 120.0
FLEE_SPREAD = 0.8
COOLDOWN_DAMPING = 0.98
COOLDOWN_EXIT_CHANCE = 0.02

LOGGER = logging.getLogger("arena.sim.lifecycle")


class EngagementInvariantError(RuntimeError):
    pass


def flee_speed(speed: float) -> float:
    return max(FLEE_SPEED_FLOOR, speed * FLEE_SPEED_FACTOR)


def extend_no_event(agent: AgentState, until: float) -> None:
    agent.no_event_until = max(agent.no_event_until, until)


def _begin_separation(agent: AgentState, vel: Vec2, ctx: TickContext) -> None:
    agent.vel = vel
    agent.state = STATE_SEPARATE
    agent.separate_end = ctx.now + SEPARATE_MS
    extend_no_event(agent, ctx.now + ctx.rng.uniform(NO_EVENT_MIN_MS, NO_EVENT_MAX_MS))
    agent.intent = INTENT_WANDER
    agent.intent_until = ctx.now + ctx.rng.uniform(INTENT_RESET_MIN_MS, INTENT_RESET_MAX_MS)
    agent.engagement = None


def separate_pair(a: AgentState, b: AgentState, ctx: TickContext) -> None:
    # unit_between points a -> b, so a is pushed along the negated vector.
    nx, ny = unit_between(a.pos, b.pos, ctx.rng)
    push = ctx.speed * SEPARATE_SPEED_FACTOR
    _begin_separation(a, Vec2(-nx * push, -ny * push), ctx)
    _begin_separation(b, Vec2(nx * push, ny * push), ctx)
    ctx.emit("separate", a.id, target_id=b.id)


def self_separate(agent: AgentState, ctx: TickContext) -> None:
    vel = velocity_at_angle(ctx.rng.angle(), ctx.speed * SEPARATE_SPEED_FACTOR)
    _begin_separation(agent, vel, ctx)
    ctx.emit("separate", agent.id, tags=["self"])


def force_flee(agent: AgentState, ctx: TickContext) -> None:
    agent.state = STATE_FLEE
    agent.flee_end = ctx.now + FLEE_MS
    agent.engagement = None
    heading = math.atan2(agent.pos.y, agent.pos.x) + ctx.rng.uniform(-FLEE_SPREAD, FLEE_SPREAD)
    agent.vel = velocity_at_angle(heading, flee_speed(ctx.speed))
    extend_no_event(agent, ctx.now + ctx.rng.uniform(NO_EVENT_MIN_MS, NO_EVENT_MAX_MS))
    ctx.emit("flee", agent.id)


def engaged_partner(agent: AgentState, agents: dict[str, AgentState]) -> AgentState | None:
    """The partner, only if it is still locked in the same engagement with us."""
    if agent.target_id is None:
        return None
    partner = agents.get(agent.target_id)
    if partner is None or partner.target_id != agent.id or partner.state not in ENGAGED_STATES:
        return None
    return partner


def end_engagement(agent: AgentState, ctx: TickContext) -> None:
    partner = engaged_partner(agent, ctx.agents)
    if partner is not None:
        separate_pair(agent, partner, ctx)
    else:
        self_separate(agent, ctx)


def release_partner(agent: AgentState, ctx: TickContext) -> None:
    """Free the partner of an agent whose engagement is being broken one-sidedly."""
    if agent.state not in ENGAGED_STATES:
        return
    partner = engaged_partner(agent, ctx.agents)
    if partner is not None:
        self_separate(partner, ctx)


def advance_state(agent: AgentState, ctx: TickContext) -> bool:
    """Run timed transitions for one agent; returns True when it is pinned this tick."""
    now = ctx.now
    if agent.state in ENGAGED_STATES:
        lock = agent.lock_position
        if lock is not None:
            agent.pos.x = lock.x
            agent.pos.y = lock.y
        agent.vel = Vec2()
        if now >= agent.engage_end:
            end_engagement(agent, ctx)
        return True

    if agent.state == STATE_SEPARATE and now >= agent.separate_end:
        agent.state = STATE_COOLDOWN

    if agent.state == STATE_FLEE and now >= agent.flee_end:
        agent.state = STATE_COOLDOWN
        agent.engagement = None

    if agent.state == STATE_COOLDOWN:
        agent.vel.x *= COOLDOWN_DAMPING
        agent.vel.y *= COOLDOWN_DAMPING
        if now >= agent.no_event_until and ctx.rng.chance(COOLDOWN_EXIT_CHANCE):
            agent.state = STATE_WANDER

    if agent.state == STATE_IDLE and now >= agent.idle_until:
        agent.state = STATE_WANDER

    return False


def begin_drag(agent: AgentState) -> None:
    agent.dragging = True
    agent.vel = Vec2()
    # An engaged agent keeps its state so the partner's view stays symmetric.
    if agent.state not in ENGAGED_STATES:
        agent.state = STATE_DRAG


def release_drag(agent: AgentState, ctx: TickContext) -> None:
    agent.dragging = False
    if agent.state in ENGAGED_STATES:
        end_engagement(agent, ctx)
    else:
        agent.state = STATE_COOLDOWN


def engagement_violations(agents: dict[str, AgentState]) -> list[tuple[AgentState, str]]:
    problems: list[tuple[AgentState, str]] = []
    for agent in agents.values():
        if agent.state not in STATES:
            problems.append((agent, f"unknown state {agent.state!r}"))
            continue
        if agent.state not in ENGAGED_STATES:
            if agent.engagement is not None:
                problems.append((agent, f"stale engagement while {agent.state}"))
            continue
        if agent.engagement is None:
            problems.append((agent, "engaged without partner"))
            continue
        if agent.engagement.kind != agent.state:
            problems.append((agent, f"engagement kind {agent.engagement.kind} != state {agent.state}"))
            continue
        partner = agents.get(agent.engagement.partner_id)
        if partner is None:
            problems.append((agent, f"partner {agent.engagement.partner_id} missing"))
        elif partner.target_id != agent.id or partner.state != agent.state:
            problems.append((agent, f"asymmetric engagement with {partner.id}"))
    return problems


def enforce_invariants(ctx: TickContext, strict: bool) -> int:
    """Validate engagement symmetry; heal both sides to cooldown unless strict."""
    problems = engagement_violations(ctx.agents)
    if not problems:
        return 0
    if strict:
        details = "; ".join(f"{agent.id}: {reason}" for agent, reason in problems)
        raise EngagementInvariantError(details)

    for agent, reason in problems:
        LOGGER.warning("Healing agent=%s reason=%s", agent.id, reason)
        partner = ctx.agents.get(agent.target_id) if agent.target_id else None
        for side in (agent, partner):
            if side is None:
                continue
            if side is partner and side.target_id != agent.id:
                continue
            side.state = STATE_COOLDOWN
            side.engagement = None
        ctx.emit("invariant_healed", agent.id, tags=[reason])
    return len(problems)
