"""Quaternion helpers for orienting objects along the track.

Quaternions are plain numpy arrays laid out as ``[w, x, y, z]``.
"""
from __future__ import annotations

import numpy as np

WORLD_UP = np.array([0.0, 1.0, 0.0])
WORLD_RIGHT = np.array([1.0, 0.0, 0.0])


def _unit(vector: np.ndarray) -> np.ndarray:
    vector = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(vector)
    if norm == 0.0:
        raise ValueError("Cannot normalize zero-length vector")
    return vector / norm


def identity() -> np.ndarray:
    return np.array([1.0, 0.0, 0.0, 0.0])


def axis_angle_quat(axis: np.ndarray, angle: float) -> np.ndarray:
    """Rotation of ``angle`` radians about ``axis`` (any non-zero length)."""

    axis = _unit(axis)
    half = 0.5 * angle
    return np.concatenate(([np.cos(half)], axis * np.sin(half)))


def quat_mul(q1: np.ndarray, q2: np.ndarray) -> np.ndarray:
    """Hamilton product ``q1 * q2``; applied to a vector, ``q2`` acts first."""

    w1, x1, y1, z1 = q1
    w2, x2, y2, z2 = q2
    return np.array(
        [
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        ]
    )


def quat_rotate(q: np.ndarray, vector: np.ndarray) -> np.ndarray:
    """Rotate ``vector`` by the unit quaternion ``q``."""

    w = q[0]
    u = q[1:]
    v = np.asarray(vector, dtype=np.float64)
    t = 2.0 * np.cross(u, v)
    return v + w * t + np.cross(u, t)


def quat_to_matrix(q: np.ndarray) -> np.ndarray:
    """3x3 rotation matrix of the unit quaternion ``q``."""

    w, x, y, z = q
    return np.array(
        [
            [1.0 - 2.0 * (y * y + z * z), 2.0 * (x * y - w * z), 2.0 * (x * z + w * y)],
            [2.0 * (x * y + w * z), 1.0 - 2.0 * (x * x + z * z), 2.0 * (y * z - w * x)],
            [2.0 * (x * z - w * y), 2.0 * (y * z + w * x), 1.0 - 2.0 * (x * x + y * y)],
        ]
    )


def perpendicular_axis(vector: np.ndarray) -> np.ndarray:
    """Deterministic unit axis perpendicular to ``vector``.

    World up is preferred so that a half turn about it keeps a level road
    level; world right is used when ``vector`` is (anti-)parallel to up.
    """

    direction = _unit(vector)
    for hint in (WORLD_UP, WORLD_RIGHT):
        projected = hint - direction * np.dot(direction, hint)
        norm = np.linalg.norm(projected)
        if norm > 1e-6:
            return projected / norm
    # Unreachable for finite input: up and right cannot both be parallel.
    raise ValueError("No perpendicular axis found")


def rotation_between(a: np.ndarray, b: np.ndarray, eps: float = 1e-9) -> np.ndarray:
    """Shortest-arc unit quaternion mapping the direction of ``a`` onto ``b``.

    Anti-parallel inputs have no unique shortest arc; a half turn about
    :func:`perpendicular_axis` of ``a`` is returned instead.
    """

    a = _unit(a)
    b = _unit(b)
    dot = float(np.dot(a, b))
    if dot < -1.0 + eps:
        return axis_angle_quat(perpendicular_axis(a), np.pi)

    q = np.concatenate(([1.0 + dot], np.cross(a, b)))
    return q / np.linalg.norm(q)
