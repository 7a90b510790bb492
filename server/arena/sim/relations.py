from __future__ import annotations

from arena.agents.agent import RELATION_FRIEND, RELATION_NONE, RELATION_RIVAL, STATE_FRIENDLY, AgentState


def relation_of(agent: AgentState, other_id: str) -> str:
    return agent.relations.get(other_id, RELATION_NONE)


def is_friend_of(agent: AgentState, other_id: str) -> bool:
    return relation_of(agent, other_id) == RELATION_FRIEND


def record_interaction(a: AgentState, b: AgentState, outcome: str) -> None:
    # Only the latest outcome per pair is kept.
    tag = RELATION_FRIEND if outcome == STATE_FRIENDLY else RELATION_RIVAL
    a.relations[b.id] = tag
    b.relations[a.id] = tag


def relations_payload(agents: list[AgentState]) -> dict:
    return {
        "nodes": [{"id": agent.id, "glyph": agent.glyph} for agent in agents],
        "edges": [
            {"from": agent.id, "to": other_id, "value": tag}
            for agent in agents
            for other_id, tag in sorted(agent.relations.items())
        ],
    }
