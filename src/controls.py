"""Two-axis input devices used to steer the rider sideways on the track."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Protocol, TextIO, Tuple

LOGGER = logging.getLogger(__name__)

Axes = Tuple[float, float]
# Corner loads: top-left, top-right, bottom-left, bottom-right.
Loads = Tuple[float, float, float, float]
SensorReader = Callable[[], Loads]


class DeviceError(RuntimeError):
    """Raised when an input device cannot be read."""


class TwoAxisControls(Protocol):
    def axes(self) -> Axes:
        """Latest input as two axes in ``[-1, 1]``. Raises :class:`DeviceError`."""
        ...


def _clamp(value: float) -> float:
    return max(-1.0, min(1.0, value))


@dataclass
class KeyboardControls:
    """Arrow keys held down, fed from the viewer's GLUT key callbacks."""

    held: Dict[str, bool] = field(default_factory=dict)

    def press(self, key: str) -> None:
        self.held[key] = True

    def release(self, key: str) -> None:
        self.held[key] = False

    def axes(self) -> Axes:
        x = float(self.held.get("right", False)) - float(self.held.get("left", False))
        y = float(self.held.get("up", False)) - float(self.held.get("down", False))
        return x, y


@dataclass
class JoystickControls:
    """Game controller reported through ``glutJoystickFunc``.

    GLUT reports axes in ``[-1000, 1000]`` with ``y`` pointing down.
    """

    timeout: float = 1.0
    dead_zone: float = 0.05
    clock: Callable[[], float] = time.monotonic
    _latest: Optional[Axes] = field(default=None, init=False)
    _stamp: float = field(default=0.0, init=False)

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if not 0.0 <= self.dead_zone < 1.0:
            raise ValueError("dead_zone must be in the range [0, 1)")

    def on_joystick(self, buttons: int, x: int, y: int, z: int) -> None:
        self._latest = (_clamp(x / 1000.0), _clamp(-y / 1000.0))
        self._stamp = self.clock()

    def axes(self) -> Axes:
        if self._latest is None:
            raise DeviceError("no joystick report received")
        if self.clock() - self._stamp > self.timeout:
            raise DeviceError(f"joystick silent for more than {self.timeout:.2f}s")
        x, y = self._latest
        return (
            0.0 if abs(x) < self.dead_zone else x,
            0.0 if abs(y) < self.dead_zone else y,
        )


@dataclass
class BalanceBoardControls:
    """Pressure board with a load sensor under each corner.

    The axes are the centre of pressure; below ``min_weight`` nobody is
    standing on the board and the axes are neutral.
    """

    reader: SensorReader
    min_weight: float = 5.0

    def __post_init__(self) -> None:
        if self.min_weight < 0:
            raise ValueError("min_weight must be >= 0")

    def axes(self) -> Axes:
        try:
            top_left, top_right, bottom_left, bottom_right = self.reader()
        except (OSError, ValueError) as exc:
            raise DeviceError(f"balance board read failed: {exc}") from exc

        total = top_left + top_right + bottom_left + bottom_right
        if total < max(self.min_weight, 1e-9):
            return 0.0, 0.0
        x = ((top_right + bottom_right) - (top_left + bottom_left)) / total
        y = ((top_left + top_right) - (bottom_left + bottom_right)) / total
        return _clamp(x), _clamp(y)


def open_sensor_stream(stream: TextIO) -> SensorReader:
    """Reader over a text stream with four corner loads per line."""

    def _read() -> Loads:
        line = stream.readline()
        if not line:
            raise OSError("sensor stream closed")
        values = [float(part) for part in line.split()]
        if len(values) != 4:
            raise ValueError(f"expected 4 sensor values, got {len(values)}")
        return values[0], values[1], values[2], values[3]

    return _read


@dataclass
class SensorFeed:
    """Reads corner loads on a background thread and keeps only the latest.

    :meth:`latest` never blocks, so it can serve as the reader of a
    :class:`BalanceBoardControls` polled from the render loop.
    """

    reader: SensorReader
    timeout: float = 1.0
    clock: Callable[[], float] = time.monotonic
    _latest: Optional[Loads] = field(default=None, init=False)
    _stamp: float = field(default=0.0, init=False)
    _error: Optional[Exception] = field(default=None, init=False)
    _closed: bool = field(default=False, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _thread: Optional[threading.Thread] = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")

    def start(self) -> "SensorFeed":
        self._thread = threading.Thread(target=self._run, name="sensor-feed", daemon=True)
        self._thread.start()
        return self

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        while self.poll_once():
            pass
        LOGGER.debug("Sensor feed stopped: %s", self._error)

    def poll_once(self) -> bool:
        """Block for one reading. Returns ``False`` once the source is gone."""

        try:
            loads = self.reader()
        except ValueError as exc:
            with self._lock:
                self._error = exc
            return True
        except OSError as exc:
            with self._lock:
                self._error = exc
                self._closed = True
            return False

        with self._lock:
            self._latest = loads
            self._stamp = self.clock()
            self._error = None
        return True

    def latest(self) -> Loads:
        with self._lock:
            latest, stamp, error, closed = self._latest, self._stamp, self._error, self._closed
        if error is not None:
            raise DeviceError(f"balance board read failed: {error}") from error
        if latest is None:
            raise DeviceError("no balance board reading received")
        if closed or self.clock() - stamp > self.timeout:
            raise DeviceError(f"balance board silent for more than {self.timeout:.2f}s")
        return latest


CONTROL_BACKENDS = ("keyboard", "joystick", "balance")


def make_controls(name: str, sensor_stream: Optional[TextIO] = None) -> TwoAxisControls:
    """Build the backend selected on the command line."""

    if name == "keyboard":
        controls: TwoAxisControls = KeyboardControls()
    elif name == "joystick":
        controls = JoystickControls()
    elif name == "balance":
        if sensor_stream is None:
            raise ValueError("the balance backend needs a sensor stream")
        feed = SensorFeed(open_sensor_stream(sensor_stream)).start()
        controls = BalanceBoardControls(feed.latest)
    else:
        raise ValueError(f"unknown controls backend {name!r}, choose from {CONTROL_BACKENDS}")
    LOGGER.debug("Using %s controls", name)
    return controls
