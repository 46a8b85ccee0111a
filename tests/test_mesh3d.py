"""Tests for the road, line and trace meshes built from the track."""
from __future__ import annotations

import numpy as np
import pytest

from mesh3d import (
    DOT_SCALE,
    Mesh3D,
    RoadConfig,
    axes_dot,
    double_sided,
    floor_grid,
    grid_indices,
    line_indices,
    make_vertices,
    square_outline,
    track_line,
    track_road,
    track_trace,
)
from track3d import TrackControl, TrackFollower


def make_straight_track(count: int = 3) -> list[TrackControl]:
    return [
        TrackControl((float(index), 0.0, 0.0), (1.0 / 3.0, 0.0, 0.0))
        for index in range(count)
    ]


def make_banked_track() -> list[TrackControl]:
    return [
        TrackControl((0.0, 0.0, 0.0), (1.0, 0.0, 0.5), twist=0.0),
        TrackControl((3.0, 1.0, 2.0), (0.0, 0.5, 1.5), twist=0.8),
        TrackControl((1.0, 0.0, 5.0), (-1.5, 0.0, 0.0), twist=-0.3),
    ]


def test_road_index_buffer_topology() -> None:
    track = make_banked_track()
    config = RoadConfig(width=2.0, lanes=3, rate=0.2)
    rows = len(list(TrackFollower(track, config.rate)))

    vertices, indices = track_road(track, config)

    assert rows > 2
    assert vertices.shape[0] == rows * (2 * config.lanes + 1)
    assert indices.size == 6 * (rows - 1) * (2 * config.lanes)
    assert indices.max() < vertices.shape[0]
    assert indices.dtype == np.uint32


def test_road_rows_span_the_width_across_the_track() -> None:
    config = RoadConfig(width=2.0, lanes=2, rate=0.5)
    vertices, _ = track_road(make_straight_track(), config)

    first_row = vertices["pos"][: config.row_width]
    np.testing.assert_allclose(first_row[:, 0], 0.0, atol=1e-6)
    np.testing.assert_allclose(first_row[:, 1], 0.0, atol=1e-6)
    np.testing.assert_allclose(first_row[:, 2], [-1.0, -0.5, 0.0, 0.5, 1.0], atol=1e-6)


def test_road_auxiliary_coordinates() -> None:
    track = make_straight_track()
    config = RoadConfig(width=1.0, lanes=1, rate=0.5)
    params = [point.param for point in TrackFollower(track, config.rate)]
    vertices, _ = track_road(track, config)

    aux = vertices["color"].reshape(len(params), config.row_width, 3)
    np.testing.assert_allclose(aux[0, :, 0], [0.0, 0.5, 1.0])
    np.testing.assert_allclose(aux[:, 0, 1], np.linspace(0.0, 1.0, len(params)), atol=1e-6)
    np.testing.assert_allclose(aux[:, 0, 2], params, atol=1e-6)


def test_road_lanes_follow_the_twist() -> None:
    begin = TrackControl((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), twist=np.pi / 2.0)
    end = TrackControl((3.0, 0.0, 0.0), (1.0, 0.0, 0.0), twist=np.pi / 2.0)
    config = RoadConfig(width=2.0, lanes=1, rate=1.0)
    vertices, _ = track_road([begin, end], config)

    first_row = vertices["pos"][:3]
    # Lateral +Z rolled a quarter turn about +X points down.
    np.testing.assert_allclose(first_row[:, 1], [1.0, 0.0, -1.0], atol=1e-6)
    np.testing.assert_allclose(first_row[:, 2], 0.0, atol=1e-6)


def test_double_sided_road_repeats_triangles_reversed() -> None:
    track = make_banked_track()
    single, single_indices = track_road(track, RoadConfig(lanes=2, rate=0.3))
    double, double_indices = track_road(track, RoadConfig(lanes=2, rate=0.3, double_sided=True))

    assert double.shape == single.shape
    assert double_indices.size == 2 * single_indices.size
    front = double_indices[: single_indices.size].reshape(-1, 3)
    back = double_indices[single_indices.size:].reshape(-1, 3)
    np.testing.assert_array_equal(front, single_indices.reshape(-1, 3))
    np.testing.assert_array_equal(back, front[:, ::-1])


def test_road_from_too_few_controls_is_empty() -> None:
    for track in ([], make_straight_track(1)):
        vertices, indices = track_road(track, RoadConfig())
        assert vertices.shape[0] == 0
        assert indices.size == 0


def test_road_without_lanes_has_no_triangles() -> None:
    track = make_straight_track()
    config = RoadConfig(lanes=0, rate=0.25)
    rows = len(list(TrackFollower(track, config.rate)))
    vertices, indices = track_road(track, config)

    assert vertices.shape[0] == rows
    assert indices.size == 0
    np.testing.assert_allclose(vertices["pos"][:, 2], 0.0, atol=1e-6)


def test_road_with_a_single_row_has_no_triangles() -> None:
    track = [
        TrackControl((0.0, 0.0, 0.0), (1.0, 0.0, 0.0)),
        TrackControl((1.0, 0.0, 0.0), (1.0, 0.0, 0.0)),
    ]
    vertices, indices = track_road(track, RoadConfig(lanes=2, rate=10.0))
    assert vertices.shape[0] == 5
    assert indices.size == 0
    np.testing.assert_allclose(vertices["color"][:, 1], 0.0)


def test_road_config_validation() -> None:
    with pytest.raises(ValueError):
        RoadConfig(width=-1.0)
    with pytest.raises(ValueError):
        RoadConfig(lanes=-1)
    with pytest.raises(ValueError):
        RoadConfig(rate=0.0)
    with pytest.raises(ValueError):
        RoadConfig(forward=(1.0, 0.0))
    with pytest.raises(ValueError):
        RoadConfig(forward=(0.0, 0.0, 0.0))
    with pytest.raises(ValueError):
        RoadConfig(lateral=(2.0, 0.0, 0.0))
    with pytest.raises(ValueError):
        RoadConfig(lateral=(0.0, 0.0, 0.0))


def test_road_config_lateral_is_a_unit_axis_across_forward() -> None:
    config = RoadConfig(lateral=(0.0, 0.0, 3.0))
    np.testing.assert_allclose(config.lateral, [0.0, 0.0, 1.0])
    config = RoadConfig(lateral=(1.0, 0.0, 1.0))
    np.testing.assert_allclose(config.lateral, [0.0, 0.0, 1.0], atol=1e-12)


def test_road_width_does_not_depend_on_lateral_length() -> None:
    config = RoadConfig(width=2.0, lanes=1, rate=0.5, lateral=(0.0, 0.0, 3.0))
    vertices, _ = track_road(make_straight_track(), config)

    first_row = vertices["pos"][: config.row_width]
    np.testing.assert_allclose(first_row[:, 2], [-1.0, 0.0, 1.0], atol=1e-6)


def test_road_with_oblique_lateral_stays_flat_across_the_track() -> None:
    config = RoadConfig(width=2.0, lanes=1, rate=0.5, lateral=(1.0, 0.0, 1.0))
    vertices, indices = track_road(make_straight_track(), config)

    first_row = vertices["pos"][: config.row_width]
    np.testing.assert_allclose(first_row[:, 0], 0.0, atol=1e-6)
    np.testing.assert_allclose(first_row[:, 2], [-1.0, 0.0, 1.0], atol=1e-6)

    triangles = vertices["pos"][indices.reshape(-1, 3)].astype(np.float64)
    areas = np.linalg.norm(
        np.cross(triangles[:, 1] - triangles[:, 0], triangles[:, 2] - triangles[:, 0]), axis=1
    )
    assert np.all(areas > 1e-6)


def test_grid_indices_counts() -> None:
    assert grid_indices(3, 3).size == 6 * 2 * 2
    assert grid_indices(1, 5).size == 0
    assert grid_indices(5, 1).size == 0
    assert grid_indices(0, 0).size == 0


def test_grid_indices_first_quad() -> None:
    indices = grid_indices(2, 2)
    np.testing.assert_array_equal(indices, [0, 2, 1, 1, 2, 3])


def test_double_sided_reverses_winding() -> None:
    np.testing.assert_array_equal(double_sided([0, 1, 2]), [0, 1, 2, 2, 1, 0])


def test_line_indices_connect_consecutive_points() -> None:
    np.testing.assert_array_equal(line_indices(4), [0, 1, 1, 2, 2, 3])
    assert line_indices(1).size == 0
    assert line_indices(0).size == 0


def test_track_line_follows_samples() -> None:
    track = make_banked_track()
    points = list(TrackFollower(track, 0.1))
    vertices, indices = track_line(track, 0.1, color=(1.0, 0.0, 0.0))

    assert vertices.shape[0] == len(points)
    assert indices.size == 2 * (len(points) - 1)
    np.testing.assert_allclose(vertices["pos"][5], points[5].position, atol=1e-5)
    np.testing.assert_allclose(vertices["color"], np.tile([1.0, 0.0, 0.0], (len(points), 1)))


def test_track_line_from_too_few_controls_is_empty() -> None:
    vertices, indices = track_line([], 0.1)
    assert vertices.shape[0] == 0
    assert indices.size == 0


def test_track_trace_pairs_point_and_tick() -> None:
    track = make_straight_track()
    vertices, indices = track_trace(track, 0.5, axis=(0.0, 0.3, 0.0))
    rows = len(list(TrackFollower(track, 0.5)))

    assert vertices.shape[0] == 2 * rows
    np.testing.assert_array_equal(indices, np.arange(2 * rows))
    ticks = vertices["pos"][1::2] - vertices["pos"][0::2]
    np.testing.assert_allclose(ticks, np.tile([0.0, 0.3, 0.0], (rows, 1)), atol=1e-6)


def test_track_trace_tick_turns_with_the_track() -> None:
    track = [
        TrackControl((0.0, 0.0, 0.0), (0.0, 0.0, 1.0)),
        TrackControl((0.0, 0.0, 3.0), (0.0, 0.0, 1.0)),
    ]
    vertices, _ = track_trace(track, 1.0, axis=(0.0, 0.0, 1.0))
    # Forward +X is turned onto +Z about +Y, taking +Z to -X.
    np.testing.assert_allclose(vertices["pos"][1] - vertices["pos"][0], [-1.0, 0.0, 0.0], atol=1e-6)


def test_floor_grid_lines() -> None:
    vertices, indices = floor_grid(2, 0.5)
    assert vertices.shape[0] == 2 * 2 * (2 * 2 + 1)
    assert indices.size == vertices.shape[0]
    np.testing.assert_allclose(vertices["pos"][:, 1], 0.0)
    assert np.abs(vertices["pos"]).max() == pytest.approx(1.0)
    with pytest.raises(ValueError):
        floor_grid(-1, 1.0)


def test_mesh_validates_indices() -> None:
    vertices = make_vertices(np.zeros((3, 3)), (1.0, 1.0, 1.0))
    mesh = Mesh3D(vertices, [0, 1, 2], "triangles")
    assert mesh.n_vertices == 3
    assert mesh.elements().shape == (1, 3)

    with pytest.raises(ValueError):
        Mesh3D(vertices, [0, 1, 3], "triangles")
    with pytest.raises(ValueError):
        Mesh3D(vertices, [0, 1, 2], "lines")
    with pytest.raises(ValueError):
        Mesh3D(vertices, [0, 1], "points")


def test_mesh_from_road_buffers() -> None:
    mesh = Mesh3D.from_buffers(track_road(make_banked_track(), RoadConfig(rate=0.25)), "triangles")
    assert mesh.positions.shape == (mesh.n_vertices, 3)
    assert mesh.colors.shape == (mesh.n_vertices, 3)
    assert mesh.elements().max() < mesh.n_vertices


def test_square_outline_closes_the_box() -> None:
    mesh = Mesh3D.from_buffers(square_outline(), "lines")
    assert mesh.n_vertices == 4
    assert mesh.elements().tolist() == [[0, 1], [1, 2], [2, 3], [3, 0]]
    np.testing.assert_allclose(np.abs(mesh.positions[:, :2]), 1.0)
    np.testing.assert_allclose(mesh.positions[:, 2], 0.0)


def test_axes_dot_sits_on_the_input() -> None:
    mesh = Mesh3D.from_buffers(axes_dot((0.5, -1.0)), "triangles")
    assert mesh.elements().tolist() == [[0, 1, 2], [0, 2, 3]]
    np.testing.assert_allclose(mesh.positions.mean(axis=0), [0.5, -1.0, 0.0], atol=1e-6)
    np.testing.assert_allclose(np.ptp(mesh.positions[:, :2], axis=0), 2 * DOT_SCALE, atol=1e-6)
    np.testing.assert_allclose(mesh.colors, np.tile([1.0, 0.0, 0.0], (4, 1)))
