from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import time
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from arena.config import SimConfig, _env_float
from arena.db.models import (
    ControlAgentAddIn,
    ControlAgentRemoveIn,
    ControlSpeedIn,
    DragMessageIn,
    DragMoveIn,
    DragReleaseIn,
    DragStartIn,
)
from arena.sim.engine import ArenaWorld
from arena.sim.lifecycle import EngagementInvariantError


LOGGER = logging.getLogger("arena.main")


def _load_env_from_repo_root() -> None:
    # server/arena/main.py -> repo root is 2 levels up from "server"
    env_path = Path(__file__).resolve().parents[2] / ".env"
    if not env_path.exists():
        return

    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = value.strip()
        if value and value[0] == value[-1] and value[0] in {'"', "'"}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


_load_env_from_repo_root()


class WsHub:
    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def add(self, ws: WebSocket) -> None:
        await ws.accept()
        async with self._lock:
            self._clients.add(ws)

    async def remove(self, ws: WebSocket) -> None:
        async with self._lock:
            self._clients.discard(ws)

    async def send(self, ws: WebSocket, message: dict) -> None:
        await ws.send_text(json.dumps(message, ensure_ascii=False))

    async def broadcast(self, message: dict) -> None:
        async with self._lock:
            clients = list(self._clients)
        if not clients:
            return

        serialized = json.dumps(message, ensure_ascii=False)
        stale: list[WebSocket] = []
        for ws in clients:
            try:
                await ws.send_text(serialized)
            except RuntimeError:
                stale.append(ws)
            except Exception:
                LOGGER.debug("Dropping websocket client after send failure", exc_info=True)
                stale.append(ws)
        if stale:
            async with self._lock:
                for ws in stale:
                    self._clients.discard(ws)


FRAME_INTERVAL_SEC = _env_float("ARENA_FRAME_INTERVAL_SEC", 1.0 / 60.0, 0.005, 1.0)
SNAPSHOT_INTERVAL_MS = _env_float("ARENA_SNAPSHOT_INTERVAL_MS", 300.0, 16.0, 10_000.0)

app = FastAPI(title="Social Arena Server", version="0.6.0")
world = ArenaWorld(SimConfig.from_env())
hub = WsHub()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def step_world(dt: float) -> bool:
    """Run one frame; a failing frame is logged and the loop keeps ticking."""
    try:
        world.step(dt)
    except EngagementInvariantError:
        LOGGER.exception("Engagement invariant broken at tick=%s; healing", world.world_state.tick)
        world.heal_invariants()
        return False
    except Exception:
        LOGGER.exception("Simulation step failed at tick=%s", world.world_state.tick)
        return False
    return True


async def tick_loop() -> None:
    last = time.perf_counter()
    last_publish = 0.0
    published_event_id = world.world_state.next_event_id
    while True:
        await asyncio.sleep(FRAME_INTERVAL_SEC)

        started_at = time.perf_counter()
        dt = started_at - last
        last = started_at
        step_world(dt)

        if (started_at - last_publish) * 1000.0 >= SNAPSHOT_INTERVAL_MS:
            last_publish = started_at
            await hub.broadcast({"type": "agents_state", "payload": world.agents_state_payload()})
            for event in world.events_since(published_event_id):
                await hub.broadcast({"type": "event", "payload": event})
            published_event_id = world.world_state.next_event_id

        tick_ms = (time.perf_counter() - started_at) * 1000.0
        avg = getattr(app.state, "avg_tick_ms", 0.0)
        if avg <= 0.0:
            app.state.avg_tick_ms = tick_ms
        else:
            app.state.avg_tick_ms = (avg * 0.88) + (tick_ms * 0.12)
        app.state.last_tick_ms = tick_ms


@app.on_event("startup")
async def startup() -> None:
    app.state.last_tick_ms = 0.0
    app.state.avg_tick_ms = 0.0
    app.state.tick_task = asyncio.create_task(tick_loop())
    LOGGER.info("Tick loop started frame_interval=%.4fs snapshot_interval=%.0fms", FRAME_INTERVAL_SEC, SNAPSHOT_INTERVAL_MS)


@app.on_event("shutdown")
async def shutdown() -> None:
    task = getattr(app.state, "tick_task", None)
    if task:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/api/state")
async def state() -> dict:
    payload = world.state_payload()
    payload["runtime"] = {
        "last_tick_ms": round(float(getattr(app.state, "last_tick_ms", 0.0)), 3),
        "avg_tick_ms": round(float(getattr(app.state, "avg_tick_ms", 0.0)), 3),
    }
    return payload


@app.get("/api/agents")
async def agents() -> list[dict]:
    return world.agents_state_payload()


@app.get("/api/agents/{agent_id}")
async def agent(agent_id: str) -> dict:
    details = world.agent_details(agent_id)
    if not details:
        raise HTTPException(status_code=404, detail="agent not found")
    return details


@app.get("/api/stations")
async def stations() -> list[dict]:
    return world.stations_payload()


@app.get("/api/relations")
async def relations() -> dict:
    return world.relations_payload()


@app.get("/api/events")
async def events(
    limit: int = Query(default=200, ge=1, le=500),
    agent_id: str | None = Query(default=None),
) -> list[dict]:
    return world.events_payload(limit=limit, agent_id=agent_id)


@app.post("/api/control/pause")
async def control_pause() -> dict:
    return {"running": world.pause()}


@app.post("/api/control/resume")
async def control_resume() -> dict:
    return {"running": world.resume()}


@app.post("/api/control/reset")
async def control_reset() -> dict:
    count = world.reset()
    await hub.broadcast({"type": "agents_state", "payload": world.agents_state_payload()})
    return {"accepted": True, "agents": count}


@app.post("/api/control/speed")
async def control_speed(payload: ControlSpeedIn) -> dict:
    speed = world.update_speed(payload.speed)
    return {"speed": speed}


@app.post("/api/control/agent/add")
async def control_agent_add(payload: ControlAgentAddIn) -> dict:
    try:
        added = world.add_agent(
            agent_id=payload.id,
            glyph=payload.glyph,
            pos_x=payload.pos_x,
            pos_y=payload.pos_y,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from None

    await hub.broadcast({"type": "agents_state", "payload": world.agents_state_payload()})
    return {"accepted": True, "agent": added.to_agent_summary()}


@app.post("/api/control/agent/remove")
async def control_agent_remove(payload: ControlAgentRemoveIn) -> dict:
    try:
        removed = world.remove_agent(payload.agent_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from None
    except KeyError:
        raise HTTPException(status_code=404, detail="agent not found") from None

    await hub.broadcast({"type": "agents_state", "payload": world.agents_state_payload()})
    return {"accepted": True, "agent_id": removed.id}


@app.post("/api/control/drag/start")
async def control_drag_start(payload: DragStartIn) -> dict:
    try:
        dragged = world.begin_drag(payload.agent_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="agent not found") from None
    return dragged.to_state_payload(world.now_ms)


@app.post("/api/control/drag/move")
async def control_drag_move(payload: DragMoveIn) -> dict:
    try:
        dragged = world.drag_move(payload.agent_id, payload.dx, payload.dy)
    except KeyError:
        raise HTTPException(status_code=404, detail="agent not found") from None
    return dragged.to_state_payload(world.now_ms)


@app.post("/api/control/drag/release")
async def control_drag_release(payload: DragReleaseIn) -> dict:
    try:
        released = world.release_drag(payload.agent_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="agent not found") from None
    return released.to_state_payload(world.now_ms)


def _apply_drag_message(message: DragMessageIn) -> dict:
    if message.type == "drag_start":
        dragged = world.begin_drag(message.agent_id)
    elif message.type == "drag_move":
        dragged = world.drag_move(message.agent_id, message.dx, message.dy)
    else:
        dragged = world.release_drag(message.agent_id)
    return dragged.to_state_payload(world.now_ms)


@app.websocket("/ws/stream")
async def ws_stream(ws: WebSocket) -> None:
    await hub.add(ws)
    try:
        await hub.send(ws, {"type": "stations", "payload": world.stations_payload()})
        await hub.send(ws, {"type": "agents_state", "payload": world.agents_state_payload()})
        for event in world.events_payload(limit=10):
            await hub.send(ws, {"type": "event", "payload": event})

        while True:
            raw = await ws.receive_text()
            try:
                message = DragMessageIn.model_validate_json(raw)
            except ValidationError as exc:
                await hub.send(ws, {"type": "error", "payload": {"detail": exc.errors(include_url=False, include_context=False)}})
                continue
            try:
                agent_payload = _apply_drag_message(message)
            except KeyError:
                await hub.send(ws, {"type": "error", "payload": {"detail": "agent not found"}})
                continue
            await hub.send(ws, {"type": "agent", "payload": agent_payload})
    except WebSocketDisconnect:
        pass
    finally:
        await hub.remove(ws)
