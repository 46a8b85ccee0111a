"""Entry point for the track viewer demo."""
from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from typing import List, Optional, TextIO

import numpy as np

_MODULE_DIR = pathlib.Path(__file__).resolve().parent
if str(_MODULE_DIR) not in sys.path:
    sys.path.insert(0, str(_MODULE_DIR))

from controls import CONTROL_BACKENDS, make_controls
from draw3d import Draw3D, DrawItem, road_colors
from mesh3d import Mesh3D, RoadConfig, floor_grid, track_line, track_road, track_trace
from track3d import TrackControl

LOGGER = logging.getLogger("main")


def build_demo_track() -> List[TrackControl]:
    """A closed-ish loop with a banked turn and a roll."""

    return [
        TrackControl((0.0, 1.0, 0.0), (1.5, 0.0, 0.0)),
        TrackControl((4.0, 1.5, 2.0), (0.5, 0.5, 1.5), twist=0.4),
        TrackControl((2.0, 2.5, 5.0), (-1.5, 0.0, 0.5), twist=np.pi),
        TrackControl((-2.0, 1.5, 3.0), (-0.5, -0.5, -1.5), twist=2.0 * np.pi),
        TrackControl((0.0, 1.0, 0.0), (1.5, 0.0, 0.0), twist=2.0 * np.pi),
    ]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Track curve demo")
    parser.add_argument(
        "--scenario",
        choices=("road", "line", "trace", "controls"),
        default="road",
        help="Mesh built from the track: road surface, centre line, orientation ticks, "
        "or the centre line with an input debugger overlay",
    )
    parser.add_argument("--rate", type=float, default=0.1, help="Distance between samples along the track")
    parser.add_argument("--width", type=float, default=1.0, help="Road width")
    parser.add_argument("--lanes", type=int, default=2, help="Lanes on each side of the centre line")
    parser.add_argument("--double-sided", action="store_true", help="Emit back faces for the road")
    parser.add_argument("--speed", type=float, default=0.01, help="Track parameter advanced per frame")
    parser.add_argument(
        "--controls",
        choices=CONTROL_BACKENDS,
        default="keyboard",
        help="Input device that shifts the rider sideways",
    )
    parser.add_argument(
        "--sensor-stream",
        type=pathlib.Path,
        default=None,
        help="Balance board readings, four corner loads per line ('-' for stdin)",
    )
    parser.add_argument(
        "--lateral-range",
        type=float,
        default=0.5,
        help="Sideways offset of the rider at full input deflection",
    )
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default="INFO",
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def build_items(track: List[TrackControl], args: argparse.Namespace) -> List[DrawItem]:
    items = [DrawItem(Mesh3D.from_buffers(floor_grid(10, 1.0), "lines"))]

    if args.scenario == "road":
        config = RoadConfig(
            width=args.width,
            lanes=args.lanes,
            rate=args.rate,
            double_sided=args.double_sided,
        )
        road = Mesh3D.from_buffers(track_road(track, config), "triangles")
        items.append(DrawItem(road, road_colors(road.colors, config.lanes)))
    elif args.scenario in ("line", "controls"):
        items.append(DrawItem(Mesh3D.from_buffers(track_line(track, args.rate), "lines")))
    else:
        trace = track_trace(track, args.rate, axis=(0.0, 0.3, 0.0), color=(0.0, 1.0, 0.0))
        items.append(DrawItem(Mesh3D.from_buffers(trace, "lines")))
        items.append(DrawItem(Mesh3D.from_buffers(track_line(track, args.rate), "lines")))

    for item in items:
        LOGGER.debug("%s mesh with %d vertices", item.mesh.primitive, item.mesh.n_vertices)
    return items


def _open_sensor_stream(path: Optional[pathlib.Path]) -> Optional[TextIO]:
    if path is None:
        return None
    if str(path) == "-":
        return sys.stdin
    return path.open("r", encoding="utf-8")


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=args.log_level, format="[%(asctime)s] %(levelname)s %(message)s")

    track = build_demo_track()
    items = build_items(track, args)
    sensor_stream = _open_sensor_stream(args.sensor_stream)
    try:
        viewer = Draw3D(
            track=track,
            items=items,
            input_device=make_controls(args.controls, sensor_stream),
            speed=args.speed,
            lateral_range=args.lateral_range,
            show_axes=args.scenario == "controls",
        )
        viewer.run()
    finally:
        if sensor_stream is not None and sensor_stream is not sys.stdin:
            sensor_stream.close()


if __name__ == "__main__":
    main()
