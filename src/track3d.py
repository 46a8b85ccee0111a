"""Composite cubic track curve: evaluation, sampling and traversal."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

import numpy as np

from quat3d import axis_angle_quat, quat_mul, quat_to_matrix, rotation_between

LOGGER = logging.getLogger(__name__)


def _vec3(values, name: str) -> np.ndarray:
    array = np.asarray(values, dtype=np.float64)
    if array.shape != (3,):
        raise ValueError(f"{name} must be a 3D vector")
    return array


@dataclass
class TrackControl:
    """Authored anchor of the track.

    ``tangent`` is both the direction of travel and the length of the Bézier
    handles on either side of ``position``. A zero tangent is allowed but
    leaves the orientation undefined at this anchor.
    """

    position: np.ndarray
    tangent: np.ndarray
    twist: float = 0.0

    def __post_init__(self) -> None:
        self.position = _vec3(self.position, "position")
        self.tangent = _vec3(self.tangent, "tangent")
        self.twist = float(self.twist)

    def front_handle(self) -> np.ndarray:
        """The Bézier handle in front of this control."""
        return self.position + self.tangent

    def back_handle(self) -> np.ndarray:
        """The Bézier handle behind this control."""
        return self.position - self.tangent


@dataclass
class TrackSample:
    position: np.ndarray
    derivative: np.ndarray
    twist: float
    param: float

    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.derivative))

    def direction(self) -> np.ndarray:
        speed = self.speed
        if speed == 0.0:
            raise ValueError("Orientation is undefined where the derivative is zero")
        return self.derivative / speed

    def orientation(self, axis: np.ndarray) -> np.ndarray:
        """Quaternion turning ``axis`` onto the track direction, rolled by the twist.

        Applied to a vector, the alignment ``axis -> direction`` acts first
        and the roll of ``twist`` radians about the direction acts second, so
        ``axis`` itself always lands on the direction.
        """

        direction = self.direction()
        align = rotation_between(axis, direction)
        roll = axis_angle_quat(direction, self.twist)
        return quat_mul(roll, align)

    def transform(self, axis: np.ndarray) -> np.ndarray:
        """4x4 matrix placing a model whose forward is ``axis`` at this sample."""

        matrix = np.identity(4)
        matrix[:3, :3] = quat_to_matrix(self.orientation(axis))
        matrix[:3, 3] = self.position
        return matrix


def smooth_step(i: float) -> float:
    return i * i * (3.0 - 2.0 * i)


def lerp(a: float, b: float, i: float) -> float:
    return a * (1.0 - i) + b * i


def _bezier_points(begin: TrackControl, end: TrackControl):
    return begin.position, begin.front_handle(), end.back_handle(), end.position


def spline(begin: TrackControl, end: TrackControl, i: float) -> np.ndarray:
    """Position between two controls at local parameter ``i``."""

    p0, p1, p2, p3 = _bezier_points(begin, end)
    iv = 1.0 - i
    return (
        iv ** 3 * p0
        + 3.0 * iv ** 2 * i * p1
        + 3.0 * iv * i ** 2 * p2
        + i ** 3 * p3
    )


def spline_deriv(begin: TrackControl, end: TrackControl, i: float) -> np.ndarray:
    """Analytic derivative of :func:`spline`."""

    p0, p1, p2, p3 = _bezier_points(begin, end)
    iv = 1.0 - i
    return (
        3.0 * iv ** 2 * (p1 - p0)
        + 6.0 * iv * i * (p2 - p1)
        + 3.0 * i ** 2 * (p3 - p2)
    )


def sample(begin: TrackControl, end: TrackControl, i: float) -> TrackSample:
    """Sample one segment. Twist eases in and out across the segment."""

    return TrackSample(
        position=spline(begin, end, i),
        derivative=spline_deriv(begin, end, i),
        twist=lerp(begin.twist, end.twist, smooth_step(i)),
        param=i,
    )


def sample_at(controls: Sequence[TrackControl], t: float) -> Optional[TrackSample]:
    """Sample the whole track at global parameter ``t``.

    The integer part of ``t`` picks the segment, the fractional part is the
    position inside it. Returns ``None`` when ``t`` falls outside the track.
    """

    if not math.isfinite(t):
        return None
    base = math.floor(t)
    if base < 0 or base + 1 >= len(controls):
        return None

    result = sample(controls[base], controls[base + 1], t - base)
    result.param = t
    return result


class TrackFollower:
    """Walks the track at roughly ``rate`` world units between samples.

    The step in parameter space is ``rate`` divided by the local speed, so
    spacing is only as even as the speed is locally constant. Once a sample
    falls off the end the follower stays exhausted.
    """

    def __init__(
        self,
        controls: Sequence[TrackControl],
        rate: float,
        min_speed: float = 1e-4,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if min_speed <= 0:
            raise ValueError("min_speed must be positive")
        self._controls = controls
        self.rate = float(rate)
        self.min_speed = float(min_speed)
        self.i = 0.0
        self._count = 0
        self._exhausted = False

    @classmethod
    def over(
        cls,
        controls: Sequence[TrackControl],
        rate: float,
        start: int = 0,
        stop: Optional[int] = None,
        min_speed: float = 1e-4,
    ) -> "TrackFollower":
        """Follow only the controls in ``controls[start:stop]``."""
        return cls(controls[start:stop], rate, min_speed)

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def __iter__(self) -> Iterator[TrackSample]:
        return self

    def __next__(self) -> TrackSample:
        if self._exhausted:
            raise StopIteration

        current = sample_at(self._controls, self.i)
        if current is None:
            self._exhausted = True
            LOGGER.debug("Follower finished after %d samples at i=%.4f", self._count, self.i)
            raise StopIteration

        self.i += self.rate / max(current.speed, self.min_speed)
        self._count += 1
        return current
