"""OpenGL viewer: draws the track meshes and a rider animated along the curve."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from OpenGL.GL import (
    glBegin,
    glClear,
    glClearColor,
    glColor3f,
    glColor3fv,
    glDisable,
    glEnable,
    glEnd,
    glLoadIdentity,
    glMatrixMode,
    glMultMatrixf,
    glOrtho,
    glPopMatrix,
    glPushMatrix,
    glScalef,
    glTranslatef,
    glVertex3f,
    glVertex3fv,
    glViewport,
    GL_COLOR_BUFFER_BIT,
    GL_DEPTH_BUFFER_BIT,
    GL_DEPTH_TEST,
    GL_LINES,
    GL_MODELVIEW,
    GL_PROJECTION,
    GL_TRIANGLES,
)
from OpenGL.GLU import gluLookAt, gluPerspective
from OpenGL.GLUT import (
    GLUT_DEPTH,
    GLUT_DOUBLE,
    GLUT_KEY_DOWN,
    GLUT_KEY_LEFT,
    GLUT_KEY_RIGHT,
    GLUT_KEY_UP,
    GLUT_LEFT_BUTTON,
    GLUT_RGB,
    GLUT_UP,
    glutCreateWindow,
    glutDisplayFunc,
    glutIdleFunc,
    glutInit,
    glutInitDisplayMode,
    glutInitWindowPosition,
    glutInitWindowSize,
    glutJoystickFunc,
    glutMainLoop,
    glutMotionFunc,
    glutMouseFunc,
    glutPostRedisplay,
    glutReshapeFunc,
    glutSpecialFunc,
    glutSpecialUpFunc,
    glutSwapBuffers,
)

from controls import DeviceError, JoystickControls, KeyboardControls, TwoAxisControls
from mesh3d import Mesh3D, axes_dot, square_outline
from track3d import TrackControl, sample_at

LOGGER = logging.getLogger(__name__)

# The axes box fills half of the window in the controls overlay.
OVERLAY_SCALE = 0.5

ARROW_KEYS = {
    GLUT_KEY_LEFT: "left",
    GLUT_KEY_RIGHT: "right",
    GLUT_KEY_UP: "up",
    GLUT_KEY_DOWN: "down",
}

# Rider marker in its local frame: +X forward, +Y up, +Z to the side.
RIDER_TRIANGLES = np.array(
    [
        [0.3, 0.0, 0.0], [-0.15, 0.0, 0.12], [-0.15, 0.0, -0.12],
        [0.3, 0.0, 0.0], [-0.15, 0.15, 0.0], [-0.15, 0.0, 0.0],
    ],
    dtype=np.float64,
)


def road_colors(aux: np.ndarray, lanes: int) -> np.ndarray:
    """Shade road auxiliary coordinates into lane stripes.

    Vertices on lane borders are light, the ones between them dark; every
    other segment of the track is tinted so segment joins are visible.
    """

    lateral = aux[:, 0] * max(2 * lanes, 1)
    on_border = np.isclose(np.mod(np.rint(lateral), 2.0), 0.0)
    shade = np.where(on_border, 0.85, 0.25)
    tint = np.where(np.mod(np.floor(aux[:, 2]), 2.0) == 0.0, 0.0, 0.1)
    return np.stack((shade, shade, shade + tint), axis=1)


@dataclass
class DrawItem:
    mesh: Mesh3D
    colors: Optional[np.ndarray] = None

    def color_at(self, index: int) -> np.ndarray:
        if self.colors is None:
            return self.mesh.colors[index]
        return self.colors[index]


@dataclass
class Draw3D:
    track: Sequence[TrackControl]
    items: List[DrawItem]
    input_device: TwoAxisControls
    speed: float = 0.01
    lateral_range: float = 0.5
    forward: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0]))
    window_size: Tuple[int, int] = (960, 720)
    fov_y: float = 45.0
    show_axes: bool = False

    theta: float = math.pi / 4.0
    phi: float = 0.6
    radius: float = 8.0
    center: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))

    time: float = 0.0
    _left_button_down: bool = False
    _last_mouse_pos: Optional[Tuple[int, int]] = None
    _device_failing: bool = False

    def __post_init__(self) -> None:
        if self.speed <= 0:
            raise ValueError("speed must be positive")
        if self.lateral_range < 0:
            raise ValueError("lateral_range must be >= 0")
        self.center = np.asarray(self.center, dtype=np.float64)
        if not np.any(self.center) and self.track:
            self.center = np.mean([control.position for control in self.track], axis=0)

    # -- OpenGL setup -----------------------------------------------------
    def run(self) -> None:
        glutInit()
        glutInitDisplayMode(GLUT_DOUBLE | GLUT_RGB | GLUT_DEPTH)
        glutInitWindowSize(*self.window_size)
        glutInitWindowPosition(100, 100)
        glutCreateWindow(b"Track")

        glClearColor(0.05, 0.05, 0.08, 1.0)
        glEnable(GL_DEPTH_TEST)

        glutDisplayFunc(self.display)
        glutIdleFunc(self.idle)
        glutReshapeFunc(self.reshape)
        glutMouseFunc(self.mouse_button)
        glutMotionFunc(self.mouse_motion)
        if isinstance(self.input_device, KeyboardControls):
            glutSpecialFunc(self.special_down)
            glutSpecialUpFunc(self.special_up)
        if isinstance(self.input_device, JoystickControls):
            glutJoystickFunc(self.input_device.on_joystick, 10)

        LOGGER.info("Viewer started with %d meshes", len(self.items))
        glutMainLoop()

    # -- Camera handling --------------------------------------------------
    def _compute_camera(self) -> Tuple[np.ndarray, np.ndarray]:
        phi = float(np.clip(self.phi, -math.pi / 2 + 1e-3, math.pi / 2 - 1e-3))
        r = max(self.radius, 0.1)
        offset = np.array(
            [
                r * math.cos(self.theta) * math.cos(phi),
                r * math.sin(phi),
                r * math.sin(self.theta) * math.cos(phi),
            ]
        )
        return self.center + offset, np.array([0.0, 1.0, 0.0])

    def mouse_button(self, button: int, state: int, x: int, y: int) -> None:
        if button == GLUT_LEFT_BUTTON:
            self._left_button_down = state != GLUT_UP
            self._last_mouse_pos = (x, y) if self._left_button_down else None

        # GLUT reports the wheel as buttons 3 (up) and 4 (down).
        if button == 3 and state != GLUT_UP:
            self.radius = max(0.5, self.radius * 0.9)
        elif button == 4 and state != GLUT_UP:
            self.radius = min(200.0, self.radius * 1.1)

        glutPostRedisplay()

    def mouse_motion(self, x: int, y: int) -> None:
        if not self._left_button_down or self._last_mouse_pos is None:
            return

        dx = x - self._last_mouse_pos[0]
        dy = y - self._last_mouse_pos[1]
        self._last_mouse_pos = (x, y)
        self.theta += dx * 0.005
        self.phi += dy * 0.005
        self.phi = float(np.clip(self.phi, -math.pi / 2 + 1e-3, math.pi / 2 - 1e-3))
        glutPostRedisplay()

    def special_down(self, key: int, x: int, y: int) -> None:
        if key in ARROW_KEYS:
            self.input_device.press(ARROW_KEYS[key])

    def special_up(self, key: int, x: int, y: int) -> None:
        if key in ARROW_KEYS:
            self.input_device.release(ARROW_KEYS[key])

    # -- Animation --------------------------------------------------------
    def read_axes(self) -> Tuple[float, float]:
        """Input axes for this frame; a failing device counts as neutral."""

        try:
            axes = self.input_device.axes()
        except DeviceError as exc:
            if not self._device_failing:
                LOGGER.warning("Input device unavailable, using neutral axes: %s", exc)
            self._device_failing = True
            return 0.0, 0.0

        if self._device_failing:
            LOGGER.info("Input device recovered")
        self._device_failing = False
        return axes

    def rider_transform(self) -> Optional[np.ndarray]:
        current = sample_at(self.track, self.time)
        if current is None:
            self.time = 0.0
            current = sample_at(self.track, self.time)
            if current is None:
                return None
        try:
            return current.transform(self.forward)
        except ValueError:
            # Zero tangent at this point, no frame to ride on.
            return None

    # -- GLUT callbacks ---------------------------------------------------
    def reshape(self, width: int, height: int) -> None:
        if height == 0:
            height = 1
        glViewport(0, 0, width, height)
        glMatrixMode(GL_PROJECTION)
        glLoadIdentity()
        gluPerspective(self.fov_y, width / float(height), 0.1, 500.0)
        glMatrixMode(GL_MODELVIEW)

    def idle(self) -> None:
        self.time += self.speed
        glutPostRedisplay()

    def display(self) -> None:
        glClear(GL_COLOR_BUFFER_BIT | GL_DEPTH_BUFFER_BIT)
        glLoadIdentity()

        eye, up = self._compute_camera()
        gluLookAt(*eye, *self.center, *up)

        axes = self.read_axes()
        for item in self.items:
            self._draw_item(item)
        self._draw_rider(axes)
        if self.show_axes:
            self._draw_axes_overlay(axes)

        glutSwapBuffers()

    def _draw_item(self, item: DrawItem) -> None:
        mesh = item.mesh
        glBegin(GL_LINES if mesh.primitive == "lines" else GL_TRIANGLES)
        for index in mesh.indices:
            glColor3fv(item.color_at(index))
            glVertex3fv(mesh.positions[index])
        glEnd()

    def _draw_rider(self, axes: Tuple[float, float]) -> None:
        transform = self.rider_transform()
        if transform is None:
            return
        side, lift = axes

        glPushMatrix()
        # OpenGL expects column-major matrices.
        glMultMatrixf(transform.T.astype(np.float32))
        glTranslatef(0.0, lift * self.lateral_range * 0.5, side * self.lateral_range)
        glColor3f(1.0, 0.35, 0.1)
        glBegin(GL_TRIANGLES)
        for vertex in RIDER_TRIANGLES:
            glVertex3f(*vertex)
        glEnd()
        glPopMatrix()

    def _draw_axes_overlay(self, axes: Tuple[float, float]) -> None:
        """Input box with a dot at the current axes, drawn flat over the scene."""

        bounds = DrawItem(Mesh3D.from_buffers(square_outline(), "lines"))
        dot = DrawItem(Mesh3D.from_buffers(axes_dot(axes), "triangles"))

        glMatrixMode(GL_PROJECTION)
        glPushMatrix()
        glLoadIdentity()
        glOrtho(-1.0, 1.0, -1.0, 1.0, -1.0, 1.0)
        glMatrixMode(GL_MODELVIEW)
        glPushMatrix()
        glLoadIdentity()
        glScalef(OVERLAY_SCALE, OVERLAY_SCALE, 1.0)
        glDisable(GL_DEPTH_TEST)

        self._draw_item(bounds)
        self._draw_item(dot)

        glEnable(GL_DEPTH_TEST)
        glPopMatrix()
        glMatrixMode(GL_PROJECTION)
        glPopMatrix()
        glMatrixMode(GL_MODELVIEW)
