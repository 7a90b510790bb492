from __future__ import annotations

import math

from arena.agents.agent import Vec2
from arena.sim.rng import RandomSource


SPAWN_MARGIN_X = 100.0
SPAWN_MARGIN_Y = 140.0


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def distance_2d(a: Vec2, b: Vec2) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def unit_between(source: Vec2, target: Vec2, rng: RandomSource) -> tuple[float, float]:
    """Unit vector from source to target, or a random heading if they coincide."""
    dx = target.x - source.x
    dy = target.y - source.y
    distance = math.hypot(dx, dy)
    if distance < 1e-9:
        heading = rng.angle()
        return math.cos(heading), math.sin(heading)
    return dx / distance, dy / distance


def velocity_towards(current: Vec2, target: Vec2, speed: float) -> Vec2:
    dx = target.x - current.x
    dy = target.y - current.y
    distance = math.hypot(dx, dy) or 1.0
    return Vec2(dx / distance * speed, dy / distance * speed)


def velocity_at_angle(heading: float, speed: float) -> Vec2:
    return Vec2(math.cos(heading) * speed, math.sin(heading) * speed)


def random_interior_point(width: float, height: float, rng: RandomSource) -> Vec2:
    return Vec2(
        rng.uniform(SPAWN_MARGIN_X, width - SPAWN_MARGIN_X),
        rng.uniform(SPAWN_MARGIN_Y, height - SPAWN_MARGIN_Y),
    )


def limit_velocity(vel: Vec2, limit: float) -> None:
    vel.x = clamp(vel.x, -limit, limit)
    vel.y = clamp(vel.y, -limit, limit)


def integrate(pos: Vec2, vel: Vec2, dt: float) -> None:
    pos.x += vel.x * dt
    pos.y += vel.y * dt


def outside_margin(pos: Vec2, width: float, height: float, margin: float) -> bool:
    return pos.x < margin or pos.x > width - margin or pos.y < margin or pos.y > height - margin
