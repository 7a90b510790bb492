from typing import Literal

from pydantic import BaseModel, Field


class ControlSpeedIn(BaseModel):
    speed: float = Field(ge=60.0, le=120.0)


class ControlAgentAddIn(BaseModel):
    id: str | None = Field(default=None, min_length=1, max_length=32)
    glyph: str | None = Field(default=None, min_length=1, max_length=8)
    pos_x: float | None = Field(default=None, ge=0.0)
    pos_y: float | None = Field(default=None, ge=0.0)


class ControlAgentRemoveIn(BaseModel):
    agent_id: str | None = Field(default=None, min_length=1, max_length=32)


class DragStartIn(BaseModel):
    agent_id: str = Field(min_length=1, max_length=32)


class DragMoveIn(BaseModel):
    agent_id: str = Field(min_length=1, max_length=32)
    dx: float = Field(ge=-2000.0, le=2000.0)
    dy: float = Field(ge=-2000.0, le=2000.0)


class DragReleaseIn(BaseModel):
    agent_id: str = Field(min_length=1, max_length=32)


class DragMessageIn(BaseModel):
    type: Literal["drag_start", "drag_move", "drag_release"]
    agent_id: str = Field(min_length=1, max_length=32)
    dx: float = Field(default=0.0, ge=-2000.0, le=2000.0)
    dy: float = Field(default=0.0, ge=-2000.0, le=2000.0)


class PointOut(BaseModel):
    x: float
    y: float


class RelationCountsOut(BaseModel):
    friends: int = Field(ge=0)
    rivals: int = Field(ge=0)
    total: int = Field(ge=0)


class AgentSnapshotOut(BaseModel):
    id: str
    glyph: str
    pos: PointOut
    radius: float
    state: Literal[
        "idle",
        "wander",
        "going_station",
        "cooldown",
        "separate",
        "flee",
        "friendly",
        "fight",
        "drag",
    ]
    intent: Literal["station", "wander"]
    needs: dict[str, float]
    relations: RelationCountsOut
    target_id: str | None = None
    dragging: bool = False
    engaged_ms: float = Field(default=0.0, ge=0.0)
    tick: int = Field(default=0, ge=0)
