from __future__ import annotations

from dataclasses import dataclass, field


STATE_IDLE = "idle"
STATE_WANDER = "wander"
STATE_GOING_STATION = "going_station"
STATE_COOLDOWN = "cooldown"
STATE_SEPARATE = "separate"
STATE_FLEE = "flee"
STATE_FRIENDLY = "friendly"
STATE_FIGHT = "fight"
STATE_DRAG = "drag"

STATES = frozenset(
    {
        STATE_IDLE,
        STATE_WANDER,
        STATE_GOING_STATION,
        STATE_COOLDOWN,
        STATE_SEPARATE,
        STATE_FLEE,
        STATE_FRIENDLY,
        STATE_FIGHT,
        STATE_DRAG,
    }
)
ENGAGED_STATES = frozenset({STATE_FRIENDLY, STATE_FIGHT})
FREE_STATES = frozenset({STATE_IDLE, STATE_WANDER, STATE_GOING_STATION, STATE_COOLDOWN})

INTENT_STATION = "station"
INTENT_WANDER = "wander"

RELATION_NONE = "none"
RELATION_FRIEND = "friend"
RELATION_RIVAL = "rival"

NEED_KEYS = ("food", "water", "play")

GLYPHS = (
    "🦊", "🐼", "🐧", "🐯", "🦉", "🐸", "🦄", "🐙", "🐶", "🐱",
    "🦁", "🐵", "🐮", "🐷", "🦒", "🐨", "🦝", "🐰", "🐻", "🦔",
)


@dataclass
class Vec2:
    x: float = 0.0
    y: float = 0.0

    def copy(self) -> Vec2:
        return Vec2(self.x, self.y)

    def to_dict(self) -> dict:
        return {"x": round(self.x, 2), "y": round(self.y, 2)}


@dataclass
class Engagement:
    partner_id: str
    kind: str
    lock_position: Vec2
    started_at: float
    ends_at: float


@dataclass
class AgentState:
    id: str
    glyph: str
    pos: Vec2
    radius: float
    vel: Vec2 = field(default_factory=Vec2)
    state: str = STATE_WANDER
    intent: str = INTENT_WANDER
    target_station: str | None = None
    needs: dict[str, float] = field(default_factory=lambda: {key: 100.0 for key in NEED_KEYS})
    relations: dict[str, str] = field(default_factory=dict)
    engagement: Engagement | None = None
    dragging: bool = False
    idle_until: float = 0.0
    separate_end: float = 0.0
    no_event_until: float = 0.0
    intent_until: float = 0.0
    flee_end: float = 0.0

    @property
    def target_id(self) -> str | None:
        return self.engagement.partner_id if self.engagement is not None else None

    @property
    def lock_position(self) -> Vec2 | None:
        return self.engagement.lock_position if self.engagement is not None else None

    @property
    def engage_end(self) -> float:
        return self.engagement.ends_at if self.engagement is not None else 0.0

    @property
    def is_engaged(self) -> bool:
        return self.state in ENGAGED_STATES

    def engaged_ms(self, now: float) -> float:
        if self.engagement is None:
            return 0.0
        return max(0.0, now - self.engagement.started_at)

    def relation_counts(self) -> dict[str, int]:
        friends = sum(1 for tag in self.relations.values() if tag == RELATION_FRIEND)
        rivals = sum(1 for tag in self.relations.values() if tag == RELATION_RIVAL)
        return {"friends": friends, "rivals": rivals, "total": len(self.relations)}

    def to_state_payload(self, now: float) -> dict:
        return {
            "id": self.id,
            "glyph": self.glyph,
            "pos": self.pos.to_dict(),
            "radius": round(self.radius, 2),
            "state": self.state,
            "intent": self.intent,
            "needs": {key: round(value, 2) for key, value in self.needs.items()},
            "relations": self.relation_counts(),
            "target_id": self.target_id,
            "dragging": self.dragging,
            "engaged_ms": round(self.engaged_ms(now), 1),
        }

    def to_agent_summary(self) -> dict:
        return {
            "id": self.id,
            "glyph": self.glyph,
            "state": self.state,
            "intent": self.intent,
        }
