from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Deque

from arena.agents.agent import (
    GLYPHS,
    NEED_KEYS,
    STATE_FLEE,
    AgentState,
    Vec2,
)
from arena.config import SPEED_MAX, SPEED_MIN, SimConfig
from arena.sim.boundary import warp_if_outside
from arena.sim.context import TickContext
from arena.sim.intents import INTENT_MAX_MS, INTENT_MIN_MS, navigate, refresh_intent, roll_intent
from arena.sim.interactions import station_interactions, wild_interactions
from arena.sim.lifecycle import (
    SEPARATE_SPEED_FACTOR,
    advance_state,
    begin_drag,
    enforce_invariants,
    flee_speed,
    release_drag,
    release_partner,
)
from arena.sim.movement import clamp, integrate, limit_velocity, random_interior_point
from arena.sim.needs import Station, build_stations, decay_needs
from arena.sim.relations import relations_payload
from arena.sim.rng import RandomSource


LOGGER = logging.getLogger("arena.sim.engine")

RADIUS_MIN = 18.0
RADIUS_MAX = 24.0
NEED_SPAWN_MIN = 60.0
NEED_SPAWN_MAX = 95.0
SPAWN_VELOCITY_FACTOR = 0.3


def _utc_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass
class TickResult:
    ran: bool = True
    dt: float = 0.0
    events: list[dict] = field(default_factory=list)
    warped_ids: list[str] = field(default_factory=list)


@dataclass
class WorldState:
    agents: dict[str, AgentState]
    stations: list[Station]
    event_log: Deque[dict]
    speed: float = 80.0
    running: bool = True
    tick: int = 0
    time_ms: float = 0.0
    next_event_id: int = 0
    next_agent_seq: int = 0


class ArenaWorld:
    def __init__(self, config: SimConfig | None = None, rng: RandomSource | None = None):
        self.config = config or SimConfig()
        self.rng = rng or RandomSource(self.config.seed)
        self.state = WorldState(
            agents={},
            stations=build_stations(self.config.width, self.config.height, self.config.interaction_radius),
            event_log=deque(maxlen=self.config.history_limit),
            speed=clamp(self.config.speed, SPEED_MIN, SPEED_MAX),
        )
        self.state.agents = self._build_agents(self.config.num_agents)
        LOGGER.info(
            "World ready agents=%s bounds=%sx%s seed=%s",
            len(self.state.agents),
            self.config.width,
            self.config.height,
            self.rng.seed,
        )

    @property
    def speed(self) -> float:
        return self.state.speed

    @property
    def running(self) -> bool:
        return self.state.running

    @property
    def now_ms(self) -> float:
        return self.state.time_ms

    @property
    def world_state(self) -> WorldState:
        return self.state

    @property
    def agents(self) -> dict[str, AgentState]:
        return self.state.agents

    @property
    def stations(self) -> list[Station]:
        return self.state.stations

    def _ordered_agents(self) -> list[AgentState]:
        return list(self.state.agents.values())

    def _require_agent(self, agent_id: str) -> AgentState:
        agent = self.state.agents.get(agent_id)
        if agent is None:
            raise KeyError(agent_id)
        return agent

    def _context(self, dt: float = 0.0) -> TickContext:
        return TickContext(
            now=self.state.time_ms,
            dt=dt,
            speed=self.state.speed,
            interaction_radius=self.config.interaction_radius,
            rng=self.rng,
            agents=self.state.agents,
            emit=self._append_event,
        )

    def _append_event(
        self,
        kind: str,
        source_id: str | None,
        target_id: str | None = None,
        station: str | None = None,
        tags: list[str] | None = None,
    ) -> dict:
        self.state.next_event_id += 1
        event = {
            "id": f"e{self.state.next_event_id}",
            "seq": self.state.next_event_id,
            "ts": _utc_iso(),
            "tick": self.state.tick,
            "time_ms": round(self.state.time_ms, 3),
            "kind": kind,
            "source_id": source_id,
            "tags": list(tags or []),
        }
        if target_id is not None:
            event["target_id"] = target_id
        if station is not None:
            event["station"] = station
        self.state.event_log.append(event)
        return event

    def _next_agent_id(self) -> str:
        while True:
            self.state.next_agent_seq += 1
            agent_id = f"a{self.state.next_agent_seq}"
            if agent_id not in self.state.agents:
                return agent_id

    def _make_agent(
        self,
        agent_id: str | None = None,
        glyph: str | None = None,
        pos_x: float | None = None,
        pos_y: float | None = None,
    ) -> AgentState:
        rng = self.rng
        nominal = self.state.speed
        radius = rng.uniform(RADIUS_MIN, RADIUS_MAX)
        pos = random_interior_point(self.config.width, self.config.height, rng)
        margin = self.config.edge_margin
        if pos_x is not None:
            pos.x = clamp(pos_x, margin, self.config.width - margin)
        if pos_y is not None:
            pos.y = clamp(pos_y, margin, self.config.height - margin)
        spread = nominal * SPAWN_VELOCITY_FACTOR
        vel = Vec2(rng.uniform(-spread, spread), rng.uniform(-spread, spread))
        needs = {key: rng.uniform(NEED_SPAWN_MIN, NEED_SPAWN_MAX) for key in NEED_KEYS}
        intent = roll_intent(rng)
        intent_until = self.state.time_ms + rng.uniform(INTENT_MIN_MS, INTENT_MAX_MS)
        return AgentState(
            id=agent_id or self._next_agent_id(),
            glyph=glyph or rng.choice(GLYPHS),
            pos=pos,
            radius=radius,
            vel=vel,
            needs=needs,
            intent=intent,
            intent_until=intent_until,
        )

    def _build_agents(self, count: int) -> dict[str, AgentState]:
        agents: dict[str, AgentState] = {}
        for _ in range(min(count, self.config.max_agents)):
            agent = self._make_agent()
            agents[agent.id] = agent
        return agents

    def _velocity_limit(self, agent: AgentState) -> float:
        if agent.state == STATE_FLEE:
            return flee_speed(self.state.speed)
        return self.state.speed * SEPARATE_SPEED_FACTOR

    def step(self, dt: float) -> TickResult:
        """Advance the simulation by one frame of dt seconds (clamped to max_dt)."""
        if not self.state.running:
            return TickResult(ran=False)

        dt = clamp(dt, 0.0, self.config.max_dt)
        self.state.tick += 1
        self.state.time_ms += round(dt * 1000.0, 3)
        before_event_id = self.state.next_event_id
        ctx = self._context(dt)
        agents = self._ordered_agents()
        active = [agent for agent in agents if not agent.dragging]

        for agent in active:
            decay_needs(agent, dt)

        for agent in active:
            refresh_intent(agent, ctx.now, self.rng)

        for agent in active:
            pinned = advance_state(agent, ctx)
            if not pinned:
                navigate(agent, self.state.stations, ctx.now, self.state.speed, self.rng)

        station_interactions(self.state.stations, ctx)
        wild_interactions(self.state.stations, ctx)

        warped: list[str] = []
        for agent in agents:
            if agent.dragging:
                continue
            limit_velocity(agent.vel, self._velocity_limit(agent))
            if not agent.is_engaged:
                integrate(agent.pos, agent.vel, dt)
            if warp_if_outside(agent, ctx, self.config.width, self.config.height, self.config.edge_margin):
                warped.append(agent.id)

        enforce_invariants(ctx, strict=self.config.strict_invariants)

        return TickResult(ran=True, dt=dt, events=self.events_since(before_event_id), warped_ids=warped)

    def heal_invariants(self) -> int:
        """Force every broken engagement back to cooldown regardless of strict mode."""
        return enforce_invariants(self._context(), strict=False)

    def pause(self) -> bool:
        self.state.running = False
        LOGGER.info("Simulation paused tick=%s", self.state.tick)
        return self.state.running

    def resume(self) -> bool:
        self.state.running = True
        LOGGER.info("Simulation resumed tick=%s", self.state.tick)
        return self.state.running

    def toggle_running(self) -> bool:
        return self.resume() if not self.state.running else self.pause()

    def update_speed(self, speed: float) -> float:
        self.state.speed = clamp(speed, SPEED_MIN, SPEED_MAX)
        return self.state.speed

    def add_agent(
        self,
        agent_id: str | None = None,
        glyph: str | None = None,
        pos_x: float | None = None,
        pos_y: float | None = None,
    ) -> AgentState:
        if len(self.state.agents) >= self.config.max_agents:
            raise ValueError(f"population limit reached ({self.config.max_agents})")
        if agent_id is not None and agent_id in self.state.agents:
            raise ValueError(f"agent {agent_id} already exists")

        agent = self._make_agent(agent_id=agent_id, glyph=glyph, pos_x=pos_x, pos_y=pos_y)
        self.state.agents[agent.id] = agent
        self._append_event("agent_added", agent.id)
        LOGGER.info("Agent added id=%s population=%s", agent.id, len(self.state.agents))
        return agent

    def remove_agent(self, agent_id: str | None = None) -> AgentState:
        if not self.state.agents:
            raise ValueError("no agents to remove")
        if agent_id is None:
            agent_id = next(reversed(self.state.agents))
        agent = self._require_agent(agent_id)

        release_partner(agent, self._context())
        del self.state.agents[agent_id]
        self._append_event("agent_removed", agent_id)
        LOGGER.info("Agent removed id=%s population=%s", agent_id, len(self.state.agents))
        return agent

    def reset(self) -> int:
        self.state.agents = self._build_agents(self.config.num_agents)
        self._append_event("reset", None)
        LOGGER.info("World reset agents=%s", len(self.state.agents))
        return len(self.state.agents)

    def begin_drag(self, agent_id: str) -> AgentState:
        agent = self._require_agent(agent_id)
        if not agent.dragging:
            begin_drag(agent)
        return agent

    def drag_move(self, agent_id: str, dx: float, dy: float) -> AgentState:
        agent = self.begin_drag(agent_id)
        agent.pos.x += dx
        agent.pos.y += dy
        return agent

    def release_drag(self, agent_id: str) -> AgentState:
        agent = self._require_agent(agent_id)
        if agent.dragging:
            release_drag(agent, self._context())
        return agent

    def events_since(self, event_id: int) -> list[dict]:
        return [event for event in self.state.event_log if event["seq"] > event_id]

    def agents_state_payload(self) -> list[dict]:
        payload: list[dict] = []
        for agent in self._ordered_agents():
            item = agent.to_state_payload(self.state.time_ms)
            item["tick"] = self.state.tick
            payload.append(item)
        return payload

    def stations_payload(self) -> list[dict]:
        return [station.to_dict() for station in self.state.stations]

    def relations_payload(self) -> dict:
        return relations_payload(self._ordered_agents())

    def agents_list_payload(self) -> list[dict]:
        return [agent.to_agent_summary() for agent in self._ordered_agents()]

    def state_payload(self) -> dict:
        return {
            "tick": self.state.tick,
            "time_ms": round(self.state.time_ms, 3),
            "running": self.state.running,
            "speed": self.state.speed,
            "bounds": {"w": self.config.width, "h": self.config.height},
            "max_agents": self.config.max_agents,
            "stations": self.stations_payload(),
            "agents": self.agents_state_payload(),
            "events": list(self.state.event_log)[-50:],
        }

    def events_payload(self, limit: int = 200, agent_id: str | None = None) -> list[dict]:
        items = list(self.state.event_log)
        if agent_id:
            items = [
                event
                for event in items
                if event.get("source_id") == agent_id or event.get("target_id") == agent_id
            ]
        return items[-max(1, min(limit, 500)) :]

    def agent_details(self, agent_id: str) -> dict | None:
        agent = self.state.agents.get(agent_id)
        if not agent:
            return None

        now = self.state.time_ms
        details = agent.to_state_payload(now)
        details.update(
            {
                "velocity": agent.vel.to_dict(),
                "target_station": agent.target_station,
                "lock_position": agent.lock_position.to_dict() if agent.lock_position else None,
                "timers": {
                    "idle_until": agent.idle_until,
                    "engage_end": agent.engage_end,
                    "separate_end": agent.separate_end,
                    "no_event_until": agent.no_event_until,
                    "intent_until": agent.intent_until,
                    "flee_end": agent.flee_end,
                },
                "relation_map": dict(sorted(agent.relations.items())),
                "recent_events": self.events_payload(limit=10, agent_id=agent.id),
            }
        )
        return details
