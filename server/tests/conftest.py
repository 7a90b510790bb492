"""Shared fixtures: scripted random sources and small hand-placed worlds."""

from __future__ import annotations

import pytest

from arena.agents.agent import INTENT_WANDER, NEED_KEYS, STATE_WANDER, AgentState, Vec2
from arena.config import SimConfig
from arena.sim.engine import ArenaWorld
from arena.sim.rng import RandomSource


FAR_FUTURE = 1e12


class ScriptedRandom(RandomSource):
    """Random source whose Poisson triggers and chance rolls can be forced.

    Queued answers are consumed first; afterwards the defaults apply.
    Continuous draws (uniform, angle, choice) stay seeded and reproducible.
    """

    def __init__(self, seed: int = 7, fire: bool = True, chance_default: bool = False) -> None:
        super().__init__(seed)
        self.fire = fire
        self.chance_default = chance_default
        self.triggers: list[bool] = []
        self.chances: list[bool] = []
        self.trigger_calls = 0
        self.chance_calls: list[float] = []

    def trigger(self, rate_per_sec: float, dt: float) -> bool:
        self.trigger_calls += 1
        if self.triggers:
            return self.triggers.pop(0)
        return self.fire

    def chance(self, probability: float) -> bool:
        self.chance_calls.append(probability)
        if self.chances:
            return self.chances.pop(0)
        return self.chance_default

    def forget_calls(self) -> None:
        self.trigger_calls = 0
        self.chance_calls.clear()


def make_world(rng: RandomSource | None = None, **overrides) -> ArenaWorld:
    settings = {"num_agents": 0, "seed": 11, "strict_invariants": True}
    settings.update(overrides)
    return ArenaWorld(SimConfig(**settings), rng=rng or ScriptedRandom(fire=False))


def spawn(world: ArenaWorld, agent_id: str, x: float, y: float, **fields) -> AgentState:
    """Add an agent at an exact spot with calm defaults (no motion, no intent re-roll)."""
    agent = world.add_agent(agent_id=agent_id, pos_x=x, pos_y=y)
    agent.pos = Vec2(x, y)
    agent.vel = Vec2()
    agent.state = STATE_WANDER
    agent.intent = INTENT_WANDER
    agent.intent_until = FAR_FUTURE
    agent.needs = {key: 50.0 for key in NEED_KEYS}
    for name, value in fields.items():
        setattr(agent, name, value)
    # Spawning rolls an intent; only rolls made by the code under test are recorded.
    if isinstance(world.rng, ScriptedRandom):
        world.rng.forget_calls()
    return agent


def run_ms(world: ArenaWorld, ms: float, dt: float = 0.05) -> None:
    for _ in range(int(round(ms / (dt * 1000.0)))):
        world.step(dt)


@pytest.fixture
def scripted() -> ScriptedRandom:
    return ScriptedRandom(fire=False)


@pytest.fixture
def world(scripted: ScriptedRandom) -> ArenaWorld:
    return make_world(rng=scripted)
