from __future__ import annotations

from dataclasses import dataclass

from arena.agents.agent import INTENT_WANDER, NEED_KEYS, STATE_COOLDOWN, STATE_FLEE, STATE_WANDER, AgentState, Vec2
from arena.sim.movement import clamp


NEED_MIN = 0.0
NEED_MAX = 100.0

DECAY_PER_SEC = {"food": 0.7, "water": 0.8, "play": 0.6}
REPLENISH_PER_SEC = 12.0
SATISFIED_THRESHOLD = 85.0

# Fractions of the arena bounds.
STATION_LAYOUT = (
    ("food", "Food", 0.22, 0.32),
    ("water", "Water", 0.78, 0.34),
    ("play", "Play", 0.50, 0.74),
)


@dataclass
class Station:
    key: str
    label: str
    pos: Vec2
    radius: float

    @property
    def resource(self) -> str:
        return self.key

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "pos": self.pos.to_dict(),
            "radius": self.radius,
        }


def build_stations(width: float, height: float, radius: float) -> list[Station]:
    return [
        Station(key=key, label=label, pos=Vec2(width * fx, height * fy), radius=radius)
        for key, label, fx, fy in STATION_LAYOUT
    ]


def clamp_need(value: float) -> float:
    return clamp(value, NEED_MIN, NEED_MAX)


def decay_needs(agent: AgentState, dt: float) -> None:
    for key in NEED_KEYS:
        agent.needs[key] = clamp_need(agent.needs[key] - dt * DECAY_PER_SEC[key])


def replenish(agent: AgentState, station: Station, dt: float) -> bool:
    """Top up the station's need; returns True once the agent is satisfied."""
    key = station.resource
    agent.needs[key] = clamp_need(agent.needs[key] + REPLENISH_PER_SEC * dt)
    if agent.needs[key] <= SATISFIED_THRESHOLD or agent.state == STATE_FLEE:
        return False
    agent.intent = INTENT_WANDER
    if agent.state != STATE_COOLDOWN:
        agent.state = STATE_WANDER
    return True


def lowest_need(agent: AgentState) -> str:
    # Ties resolve in NEED_KEYS order.
    return min(NEED_KEYS, key=lambda key: agent.needs[key])
