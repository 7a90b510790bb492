from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from arena.agents.agent import AgentState
from arena.sim.rng import RandomSource


class EventSink(Protocol):
    def __call__(
        self,
        kind: str,
        source_id: str | None,
        target_id: str | None = None,
        station: str | None = None,
        tags: list[str] | None = None,
    ) -> dict: ...


@dataclass
class TickContext:
    now: float
    dt: float
    speed: float
    interaction_radius: float
    rng: RandomSource
    agents: dict[str, AgentState]
    emit: EventSink

    def ordered_agents(self) -> list[AgentState]:
        return list(self.agents.values())
