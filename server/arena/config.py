from __future__ import annotations

import os
from dataclasses import dataclass


SPEED_MIN = 60.0
SPEED_MAX = 120.0


def _is_enabled(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, low: int, high: int) -> int:
    try:
        value = int(os.getenv(name, str(default)))
    except ValueError:
        value = default
    return max(low, min(high, value))


def _env_float(name: str, default: float, low: float, high: float) -> float:
    try:
        value = float(os.getenv(name, str(default)))
    except ValueError:
        value = default
    return max(low, min(high, value))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return _is_enabled(raw)


def _env_seed(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


@dataclass
class SimConfig:
    num_agents: int = 8
    max_agents: int = 16
    speed: float = 80.0
    interaction_radius: float = 110.0
    width: float = 1600.0
    height: float = 1000.0
    max_dt: float = 0.05
    edge_margin: float = 6.0
    history_limit: int = 300
    seed: int | None = None
    strict_invariants: bool = False

    @classmethod
    def from_env(cls) -> "SimConfig":
        max_agents = _env_int("ARENA_MAX_AGENTS", 16, 1, 256)
        return cls(
            num_agents=_env_int("ARENA_NUM_AGENTS", 8, 0, max_agents),
            max_agents=max_agents,
            speed=_env_float("ARENA_SPEED", 80.0, SPEED_MIN, SPEED_MAX),
            interaction_radius=_env_float("ARENA_INTERACTION_RADIUS", 110.0, 20.0, 400.0),
            width=_env_float("ARENA_WIDTH", 1600.0, 400.0, 8000.0),
            height=_env_float("ARENA_HEIGHT", 1000.0, 400.0, 8000.0),
            max_dt=_env_float("ARENA_MAX_DT", 0.05, 0.005, 0.25),
            edge_margin=_env_float("ARENA_EDGE_MARGIN", 6.0, 0.0, 50.0),
            history_limit=_env_int("ARENA_HISTORY_LIMIT", 300, 10, 5000),
            seed=_env_seed("ARENA_SEED"),
            strict_invariants=_env_bool("ARENA_STRICT_INVARIANTS", False),
        )
