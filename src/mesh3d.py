"""Mesh buffers built from the track: road surface, centre line and debug traces."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import numpy as np

from quat3d import quat_rotate
from track3d import TrackControl, TrackFollower

LOGGER = logging.getLogger(__name__)

VERTEX_DTYPE = np.dtype([("pos", np.float32, (3,)), ("color", np.float32, (3,))])
INDEX_DTYPE = np.uint32

PRIMITIVE_ARITY = {"lines": 2, "triangles": 3}

Buffers = Tuple[np.ndarray, np.ndarray]


def make_vertices(positions, colors) -> np.ndarray:
    """Pack ``(N, 3)`` positions and ``(N, 3)`` colours into vertex records."""

    positions = np.asarray(positions, dtype=np.float32).reshape(-1, 3)
    colors = np.broadcast_to(np.asarray(colors, dtype=np.float32), positions.shape)
    vertices = np.empty(positions.shape[0], dtype=VERTEX_DTYPE)
    vertices["pos"] = positions
    vertices["color"] = colors
    return vertices


def _indices(values) -> np.ndarray:
    return np.asarray(values, dtype=INDEX_DTYPE).reshape(-1)


@dataclass
class RoadConfig:
    """Shape of the road ribbon.

    ``forward`` is the reference axis aligned with the track direction and
    ``lateral`` the axis, perpendicular to it, along which lanes are spread.
    """

    width: float = 1.0
    lanes: int = 2
    rate: float = 0.1
    double_sided: bool = False
    forward: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0]))
    lateral: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 1.0]))

    def __post_init__(self) -> None:
        if self.width < 0:
            raise ValueError("width must be >= 0")
        if self.lanes < 0:
            raise ValueError("lanes must be >= 0")
        if self.rate <= 0:
            raise ValueError("rate must be positive")
        self.forward = np.asarray(self.forward, dtype=np.float64)
        self.lateral = np.asarray(self.lateral, dtype=np.float64)
        if self.forward.shape != (3,) or self.lateral.shape != (3,):
            raise ValueError("forward and lateral must be 3D vectors")

        forward_norm = np.linalg.norm(self.forward)
        if forward_norm == 0.0:
            raise ValueError("forward must be non-zero")
        # Only the part of lateral across forward spreads the lanes; width alone sets the size.
        unit_forward = self.forward / forward_norm
        across = self.lateral - unit_forward * np.dot(unit_forward, self.lateral)
        across_norm = np.linalg.norm(across)
        if across_norm < 1e-9:
            raise ValueError("lateral must not be parallel to forward")
        self.lateral = across / across_norm

    @property
    def row_width(self) -> int:
        return 2 * self.lanes + 1


@dataclass
class Mesh3D:
    """Vertex and index buffers ready to hand to the renderer."""

    vertices: np.ndarray
    indices: np.ndarray
    primitive: str = "triangles"

    def __post_init__(self) -> None:
        self.vertices = np.asarray(self.vertices, dtype=VERTEX_DTYPE)
        self.indices = _indices(self.indices)
        if self.primitive not in PRIMITIVE_ARITY:
            raise ValueError(f"primitive must be one of {sorted(PRIMITIVE_ARITY)}")
        if self.indices.size % PRIMITIVE_ARITY[self.primitive]:
            raise ValueError(f"index count must be a multiple of {PRIMITIVE_ARITY[self.primitive]}")
        if self.indices.size and int(self.indices.max()) >= self.n_vertices:
            raise ValueError("index out of range of the vertex buffer")

    @classmethod
    def from_buffers(cls, buffers: Buffers, primitive: str) -> "Mesh3D":
        vertices, indices = buffers
        return cls(vertices, indices, primitive)

    @property
    def n_vertices(self) -> int:
        return self.vertices.shape[0]

    @property
    def positions(self) -> np.ndarray:
        return self.vertices["pos"]

    @property
    def colors(self) -> np.ndarray:
        return self.vertices["color"]

    def elements(self) -> np.ndarray:
        """Indices grouped per primitive, shape ``(n, arity)``."""
        return self.indices.reshape(-1, PRIMITIVE_ARITY[self.primitive])


def grid_indices(rows: int, row_width: int) -> np.ndarray:
    """Triangulate ``rows`` consecutive rows of ``row_width`` vertices each.

    Every quad between two rows becomes two triangles, so the buffer holds
    ``6 * (rows - 1) * (row_width - 1)`` indices.
    """

    if rows < 2 or row_width < 2:
        return _indices([])

    def idx(row: int, col: int) -> int:
        return row * row_width + col

    indices: List[int] = []
    for row in range(rows - 1):
        for col in range(row_width - 1):
            v0 = idx(row, col)
            v1 = idx(row, col + 1)
            v2 = idx(row + 1, col)
            v3 = idx(row + 1, col + 1)
            indices.extend((v0, v2, v1))
            indices.extend((v1, v2, v3))
    return _indices(indices)


def double_sided(indices: np.ndarray) -> np.ndarray:
    """Append every triangle again with reversed winding."""

    triangles = _indices(indices).reshape(-1, 3)
    return np.concatenate((triangles, triangles[:, ::-1])).reshape(-1)


def line_indices(count: int) -> np.ndarray:
    """Line list joining ``count`` points in order: ``0,1, 1,2, ...``."""

    if count < 2:
        return _indices([])
    starts = np.arange(count - 1, dtype=INDEX_DTYPE)
    return np.stack((starts, starts + 1), axis=1).reshape(-1)


def track_road(controls: Sequence[TrackControl], config: RoadConfig) -> Buffers:
    """Multi-lane road surface following the track.

    Each row holds ``2 * lanes + 1`` vertices spread evenly across the road.
    The colour slot carries ``(lateral fraction, row fraction, track param)``
    for shading.
    """

    row_width = config.row_width
    # A lone vertex per row sits on the centre line.
    lateral_fraction = np.linspace(0.0, 1.0, row_width) if row_width > 1 else np.full(1, 0.5)
    across = lateral_fraction - 0.5

    positions: List[np.ndarray] = []
    params: List[float] = []
    for point in TrackFollower(controls, config.rate):
        side = quat_rotate(point.orientation(config.forward), config.lateral) * config.width
        positions.append(point.position + across[:, None] * side)
        params.append(point.param)

    rows = len(positions)
    if rows == 0:
        return make_vertices(np.empty((0, 3)), np.empty((0, 3))), _indices([])

    row_fraction = np.arange(rows) / (rows - 1) if rows > 1 else np.zeros(1)
    aux = np.empty((rows, row_width, 3))
    aux[:, :, 0] = lateral_fraction[None, :]
    aux[:, :, 1] = row_fraction[:, None]
    aux[:, :, 2] = np.asarray(params)[:, None]

    vertices = make_vertices(np.concatenate(positions), aux.reshape(-1, 3))
    indices = grid_indices(rows, row_width)
    if config.double_sided:
        indices = double_sided(indices)

    LOGGER.debug("Road mesh: %d rows, %d vertices, %d indices", rows, vertices.shape[0], indices.size)
    return vertices, indices


def track_line(
    controls: Sequence[TrackControl],
    rate: float,
    color: Sequence[float] = (1.0, 1.0, 1.0),
) -> Buffers:
    """Centre line of the track as a line list."""

    positions = [point.position for point in TrackFollower(controls, rate)]
    vertices = make_vertices(np.reshape(positions, (-1, 3)), color)
    return vertices, line_indices(len(positions))


def track_trace(
    controls: Sequence[TrackControl],
    rate: float,
    axis: Sequence[float],
    color: Sequence[float] = (0.0, 1.0, 0.0),
    forward: Sequence[float] = (1.0, 0.0, 0.0),
) -> Buffers:
    """Short tick at every sample showing where ``axis`` points in the local frame."""

    axis = np.asarray(axis, dtype=np.float64)
    forward = np.asarray(forward, dtype=np.float64)
    positions: List[np.ndarray] = []
    for point in TrackFollower(controls, rate):
        positions.append(point.position)
        positions.append(point.position + quat_rotate(point.orientation(forward), axis))

    vertices = make_vertices(np.reshape(positions, (-1, 3)), color)
    return vertices, _indices(np.arange(len(positions)))


def floor_grid(size: int, scale: float, color: Sequence[float] = (0.3, 0.3, 0.3)) -> Buffers:
    """Reference grid of lines on the XZ plane, ``2 * size + 1`` lines per axis."""

    if size < 0:
        raise ValueError("size must be >= 0")

    extent = size * scale
    positions: List[Tuple[float, float, float]] = []
    for step in range(-size, size + 1):
        offset = step * scale
        positions.extend(((extent, 0.0, offset), (-extent, 0.0, offset)))
        positions.extend(((offset, 0.0, extent), (offset, 0.0, -extent)))

    vertices = make_vertices(positions, color)
    return vertices, _indices(np.arange(len(positions)))


# Half-size of the input dot relative to the [-1, 1] axes box.
DOT_SCALE = 0.05


def _square(color: Sequence[float]) -> np.ndarray:
    return make_vertices([(-1.0, -1.0, 0.0), (-1.0, 1.0, 0.0), (1.0, 1.0, 0.0), (1.0, -1.0, 0.0)], color)


def square_outline(color: Sequence[float] = (1.0, 1.0, 1.0)) -> Buffers:
    """Outline of the ``[-1, 1]`` square on the XY plane, as a line list."""
    return _square(color), _indices([0, 1, 1, 2, 2, 3, 3, 0])


def square_fill(color: Sequence[float] = (1.0, 0.0, 0.0)) -> Buffers:
    return _square(color), _indices([0, 1, 2, 0, 2, 3])


def axes_dot(
    axes: Tuple[float, float],
    scale: float = DOT_SCALE,
    color: Sequence[float] = (1.0, 0.0, 0.0),
) -> Buffers:
    """Filled square marking two-axis input inside the :func:`square_outline` box."""

    vertices, indices = square_fill(color)
    offset = np.array([axes[0], axes[1], 0.0], dtype=np.float32)
    vertices["pos"] = vertices["pos"] * np.float32(scale) + offset
    return vertices, indices
