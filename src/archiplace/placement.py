"""
Screen-to-world placement and anchor lifecycle.

A screen-space anchor point is turned into a ray from the virtual camera and
intersected with the ground plane (normal +y, offset 0). Before placement the
intersection drives a live indicator; an explicit place command freezes the
anchor under the screen centre until reset.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from .pose import Pose, Vector3, quaternion_to_matrix

LOGGER = logging.getLogger(__name__)

GROUND_NORMAL = (0.0, 1.0, 0.0)


def euler_yxz_to_matrix(x: float, y: float, z: float) -> np.ndarray:
    """Rotation matrix for intrinsic Y-X-Z Euler angles (yaw, pitch, roll)."""
    cx, sx = math.cos(x), math.sin(x)
    cy, sy = math.cos(y), math.sin(y)
    cz, sz = math.cos(z), math.sin(z)
    rx = np.array([[1.0, 0.0, 0.0], [0.0, cx, -sx], [0.0, sx, cx]])
    ry = np.array([[cy, 0.0, sy], [0.0, 1.0, 0.0], [-sy, 0.0, cy]])
    rz = np.array([[cz, -sz, 0.0], [sz, cz, 0.0], [0.0, 0.0, 1.0]])
    return ry @ rx @ rz


def ray_plane_intersection(
    origin: Sequence[float],
    direction: Sequence[float],
    normal: Sequence[float] = GROUND_NORMAL,
    offset: float = 0.0,
) -> Optional[np.ndarray]:
    """Intersect a ray with the plane ``normal . p + offset = 0``.

    Args:
        origin: Ray origin (3,)
        direction: Ray direction (3,), need not be normalised
        normal: Plane normal
        offset: Plane constant

    Returns:
        Intersection point lying exactly on the plane, or None when the ray
        is parallel to the plane or points away from it.
    """
    origin = np.asarray(origin, dtype=np.float64)
    direction = np.asarray(direction, dtype=np.float64)
    normal = np.asarray(normal, dtype=np.float64)

    length = np.linalg.norm(normal)
    if length < 1e-12:
        raise ValueError("Plane normal must be non-zero.")
    normal = normal / length
    offset = offset / length

    denom = float(normal @ direction)
    origin_distance = float(normal @ origin) + offset

    if abs(denom) < 1e-12:
        if abs(origin_distance) > 1e-12:
            return None
        point = origin.copy()
    else:
        t = -origin_distance / denom
        if t < 0:
            return None
        point = origin + t * direction

    return _snap_to_plane(point, normal, offset)


def _snap_to_plane(point: np.ndarray, normal: np.ndarray, offset: float) -> np.ndarray:
    return point - (float(normal @ point) + offset) * normal


class VirtualCamera:
    """
    Perspective camera used for screen-to-world ray casting.

    ``rotation`` maps camera axes to world axes; the camera looks down its
    local ``-z`` axis with ``+y`` up.
    """

    def __init__(
        self,
        fov_deg: float = 60.0,
        aspect: float = 16.0 / 9.0,
        position: Sequence[float] = (0.0, 1.5, 0.0),
        target: Sequence[float] = (0.0, 0.0, -3.0),
    ):
        self.fov_deg = float(fov_deg)
        self.aspect = float(aspect)
        self.position = np.asarray(position, dtype=np.float64).copy()
        self.rotation = np.eye(3, dtype=np.float64)
        self.look_at(target)

        self.world_tracking_enabled = False
        self._initial_position = self.position.copy()
        self._initial_rotation = self.rotation.copy()
        self._initial_target = np.asarray(target, dtype=np.float64).copy()

    @property
    def forward(self) -> np.ndarray:
        return -self.rotation[:, 2]

    def look_at(self, target: Sequence[float], up: Sequence[float] = (0.0, 1.0, 0.0)):
        """Orient the camera towards ``target``."""
        z_axis = self.position - np.asarray(target, dtype=np.float64)
        if np.linalg.norm(z_axis) < 1e-12:
            return
        z_axis = z_axis / np.linalg.norm(z_axis)

        up = np.asarray(up, dtype=np.float64)
        x_axis = np.cross(up, z_axis)
        if np.linalg.norm(x_axis) < 1e-12:
            # looking straight along up: nudge like three.js does
            z_axis = z_axis + np.array([0.0, 0.0, 1e-4])
            z_axis = z_axis / np.linalg.norm(z_axis)
            x_axis = np.cross(up, z_axis)
        x_axis = x_axis / np.linalg.norm(x_axis)
        y_axis = np.cross(z_axis, x_axis)

        self.rotation = np.column_stack((x_axis, y_axis, z_axis))

    def ray_from_ndc(self, ndc_x: float, ndc_y: float) -> Tuple[np.ndarray, np.ndarray]:
        """Ray through normalised device coordinates (-1..1, +y up).

        Returns:
            (origin, unit direction) in world space
        """
        tan_half = math.tan(math.radians(self.fov_deg) / 2.0)
        direction_cam = np.array([ndc_x * tan_half * self.aspect, ndc_y * tan_half, -1.0])
        direction = self.rotation @ direction_cam
        return self.position.copy(), direction / np.linalg.norm(direction)

    def apply_viewer_transform(self, transform) -> None:
        """Follow the host viewer pose (hit-test sessions)."""
        self.position = transform.position.to_array()
        self.rotation = quaternion_to_matrix(transform.orientation)

    def apply_device_pose(self, pose: Optional[Pose]) -> bool:
        """Drive the camera from a device pose when world tracking is enabled.

        Pitch and roll are inverted to map device orientation axes onto the
        scene camera.
        """
        if not self.world_tracking_enabled or pose is None:
            return False
        self.position = pose.position.to_array()
        self.rotation = euler_yxz_to_matrix(-pose.rotation.x, pose.rotation.y, -pose.rotation.z)
        return True

    def enable_world_tracking(self):
        self.world_tracking_enabled = True
        self._initial_position = self.position.copy()
        self._initial_rotation = self.rotation.copy()
        LOGGER.info("World tracking enabled")

    def disable_world_tracking(self):
        self.world_tracking_enabled = False
        self.position = self._initial_position.copy()
        self.rotation = self._initial_rotation.copy()
        self.look_at(self._initial_target)
        LOGGER.info("World tracking disabled")


@dataclass(frozen=True)
class Anchor:
    """World anchor of the virtual object."""

    world_position: Vector3 = field(default_factory=Vector3)
    rotation_y_degrees: float = 0.0
    placed: bool = False

    def as_matrix(self, scale: float = 1.0) -> np.ndarray:
        """World transform (yaw + uniform scale + translation)."""
        theta = math.radians(self.rotation_y_degrees)
        c, s = math.cos(theta), math.sin(theta)
        transform = np.eye(4, dtype=np.float64)
        transform[:3, :3] = np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]]) * scale
        transform[:3, 3] = self.world_position.to_array()
        return transform


@dataclass(frozen=True)
class IndicatorState:
    """Live placement indicator shown before placement."""

    position: Vector3 = field(default_factory=Vector3)
    visible: bool = False
    grid_visible: bool = False


@dataclass
class PlacementConfig:
    """Configuration for placement and the virtual camera."""

    screen_width: int = 1280
    screen_height: int = 720
    fov_deg: float = 60.0
    camera_height: float = 1.5  # meters, phone held at chest height
    look_at_distance: float = 3.0  # meters ahead on the ground
    fallback_distance: float = 2.0  # meters ahead when the ray misses the plane
    indicator_lift: float = 0.01  # keeps the indicator ring above the ground

    @classmethod
    def from_dict(cls, config: Optional[Dict]) -> "PlacementConfig":
        cfg_dict = dict(config or {})
        return cls(**{k: v for k, v in cfg_dict.items() if k in cls.__dataclass_fields__})


class PlacementManager:
    """
    Owns the ``Anchor`` and converts screen anchors into world positions.

    The model itself is loaded elsewhere; this class only tracks whether one
    is present.
    """

    def __init__(self, config: Optional[Dict] = None, camera: Optional[VirtualCamera] = None):
        self.config = PlacementConfig.from_dict(config)
        self.camera = camera or VirtualCamera(
            fov_deg=self.config.fov_deg,
            aspect=self.config.screen_width / self.config.screen_height,
            position=(0.0, self.config.camera_height, 0.0),
            target=(0.0, 0.0, -self.config.look_at_distance),
        )
        self.plane_normal = np.array(GROUND_NORMAL, dtype=np.float64)
        self.plane_offset = 0.0

        self.model_loaded = False
        self.model_rotation_degrees = 0.0
        self.model_scale = 1.0

        self.anchor = Anchor()
        self.indicator = IndicatorState()
        self.last_pose: Optional[Pose] = None

    # ------------------------------------------------------------------ #
    # Model / screen state
    # ------------------------------------------------------------------ #
    @property
    def is_placed(self) -> bool:
        return self.anchor.placed

    @property
    def screen_center(self) -> Tuple[float, float]:
        return self.config.screen_width / 2.0, self.config.screen_height / 2.0

    def set_model_loaded(self, loaded: bool = True):
        """A new model always starts unplaced."""
        self.model_loaded = loaded
        self.anchor = replace(self.anchor, placed=False)
        LOGGER.debug("Model loaded: %s", loaded)

    def resize(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValueError("Screen dimensions must be positive.")
        self.config.screen_width = width
        self.config.screen_height = height
        self.camera.aspect = width / height

    def set_model_rotation(self, degrees: float):
        self.model_rotation_degrees = float(degrees)
        if self.anchor.placed:
            self.anchor = replace(self.anchor, rotation_y_degrees=self.model_rotation_degrees)

    def set_model_scale(self, scale: float):
        if scale <= 0:
            raise ValueError("Model scale must be positive.")
        self.model_scale = float(scale)

    # ------------------------------------------------------------------ #
    # Projection
    # ------------------------------------------------------------------ #
    def screen_to_ndc(self, x: float, y: float) -> Tuple[float, float]:
        ndc_x = (x / self.config.screen_width) * 2.0 - 1.0
        ndc_y = -(y / self.config.screen_height) * 2.0 + 1.0
        return ndc_x, ndc_y

    def project_screen_point(self, x: float, y: float) -> Tuple[np.ndarray, bool]:
        """World point under a screen pixel.

        Returns:
            (point, hit) where ``hit`` is False if the fallback was used
        """
        origin, direction = self.camera.ray_from_ndc(*self.screen_to_ndc(x, y))
        point = ray_plane_intersection(origin, direction, self.plane_normal, self.plane_offset)
        if point is not None:
            return point, True
        return self._fallback_point(), False

    def _fallback_point(self) -> np.ndarray:
        """Point ``fallback_distance`` straight ahead of the camera, on the plane."""
        forward = self.camera.forward
        forward = forward - float(self.plane_normal @ forward) * self.plane_normal
        if np.linalg.norm(forward) < 1e-9:
            forward = np.array([0.0, 0.0, -1.0])
        forward = forward / np.linalg.norm(forward)
        point = self.camera.position + forward * self.config.fallback_distance
        return _snap_to_plane(point, self.plane_normal, self.plane_offset)

    # ------------------------------------------------------------------ #
    # Anchor lifecycle
    # ------------------------------------------------------------------ #
    def update_indicator(self, pose: Optional[Pose]) -> IndicatorState:
        """Move the live indicator under the pose's screen anchor (pre-placement only)."""
        if pose is None or self.anchor.placed:
            return self.indicator

        self.last_pose = pose
        if pose.plane_center is not None:
            screen_x, screen_y = pose.plane_center
        else:
            screen_x, screen_y = self.screen_center

        point, hit = self.project_screen_point(screen_x, screen_y)
        if not hit:
            LOGGER.debug("Indicator ray missed the ground, using fallback")

        self.indicator = IndicatorState(
            position=Vector3(float(point[0]), float(point[1]) + self.config.indicator_lift, float(point[2])),
            visible=True,
            grid_visible=True,
        )
        self.anchor = Anchor(world_position=Vector3.from_array(point), placed=False)
        return self.indicator

    def place(self) -> bool:
        """Freeze the anchor under the screen centre (the crosshair)."""
        if not self.model_loaded:
            LOGGER.warning("No model to place")
            return False

        point, hit = self.project_screen_point(*self.screen_center)
        if not hit:
            LOGGER.info("No ground intersection, placing at fallback position")

        self.anchor = Anchor(
            world_position=Vector3.from_array(point),
            rotation_y_degrees=self.model_rotation_degrees,
            placed=True,
        )
        self.indicator = IndicatorState()
        LOGGER.info(
            "Model placed at (%.3f, %.3f, %.3f)",
            self.anchor.world_position.x,
            self.anchor.world_position.y,
            self.anchor.world_position.z,
        )
        return True

    def reset(self):
        """Unplace and hide indicators; the model stays loaded."""
        self.anchor = Anchor()
        self.indicator = IndicatorState()
        self.last_pose = None
        LOGGER.info("Placement reset")

    def world_transform(self) -> np.ndarray:
        return self.anchor.as_matrix(self.model_scale)
