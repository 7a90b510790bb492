from __future__ import annotations

from arena.agents.agent import STATE_COOLDOWN, AgentState, Vec2
from arena.sim.context import TickContext
from arena.sim.lifecycle import release_partner
from arena.sim.movement import outside_margin, random_interior_point, velocity_towards


def warp_if_outside(agent: AgentState, ctx: TickContext, width: float, height: float, margin: float) -> bool:
    """Teleport an agent that crossed the edge margin back inside; breaks any engagement."""
    if not outside_margin(agent.pos, width, height, margin):
        return False

    release_partner(agent, ctx)
    agent.state = STATE_COOLDOWN
    agent.engagement = None
    agent.pos = random_interior_point(width, height, ctx.rng)
    agent.vel = velocity_towards(agent.pos, Vec2(width / 2.0, height / 2.0), ctx.speed)
    ctx.emit("warp", agent.id)
    return True
