"""
Pose and tracking-result data model.

Every tracker emits the same ``TrackingResult`` shape so the placement stage
never branches on which backend produced it. Poses are immutable snapshots:
a new one is built every tick.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from .sensors import LocationFix, OrientationSample

Point2 = Tuple[float, float]
Quaternion = Tuple[float, float, float, float]


@dataclass(frozen=True)
class Vector3:
    """Immutable 3-component vector."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    @classmethod
    def from_array(cls, values) -> "Vector3":
        arr = np.asarray(values, dtype=np.float64).reshape(-1)
        return cls(float(arr[0]), float(arr[1]), float(arr[2]))


@dataclass(frozen=True)
class Pose:
    """Confidence-scored pose estimate.

    ``rotation`` holds Euler angles in radians. The optional fields carry
    backend-specific hints: the screen-space plane centre (visual tracker),
    the raw quaternion and 4x4 matrix (hit-test tracker) and the range
    figures of the geodetic tracker.
    """

    position: Vector3 = field(default_factory=Vector3)
    rotation: Vector3 = field(default_factory=Vector3)
    confidence: float = 0.0
    plane_center: Optional[Point2] = None
    orientation: Optional[Quaternion] = None
    matrix: Optional[np.ndarray] = None
    distance: Optional[float] = None
    bearing: Optional[float] = None
    accuracy: Optional[float] = None


@dataclass(frozen=True)
class TrackedPointPair:
    """Correspondence of one feature between the previous and current frame."""

    prev: Point2
    curr: Point2


@dataclass(frozen=True)
class GroundPlaneEstimate:
    """Latest homography fit of the tracked ground plane."""

    homography: np.ndarray
    inlier_count: int
    center: Point2
    confidence: float


@dataclass(frozen=True)
class TargetLocation:
    """Fixed geodetic location the virtual object is anchored to."""

    latitude: float
    longitude: float
    altitude: float = 0.0


@dataclass(frozen=True)
class GeodeticPayload:
    """GPS-specific part of a tracking result."""

    current_location: Optional[LocationFix] = None
    target_location: Optional[TargetLocation] = None
    distance: Optional[float] = None
    bearing: Optional[float] = None


@dataclass
class TrackingResult:
    """Per-tick output of a tracking backend."""

    is_tracking: bool = False
    has_features: bool = False
    feature_count: int = 0
    plane_count: int = 0
    pose: Optional[Pose] = None
    imu_sample: Optional[OrientationSample] = None
    gps_fix: Optional[GeodeticPayload] = None
    viewer_transform: Optional[object] = None
    hit_test_pose: Optional[object] = None


# ---------------------------------------------------------------------- #
# Rotation helpers
# ---------------------------------------------------------------------- #
def matrix_to_euler(R: np.ndarray) -> Vector3:
    """Extract (roll, pitch, yaw) in radians, for R = Rz @ Ry @ Rx."""
    sy = math.sqrt(R[0, 0] ** 2 + R[1, 0] ** 2)
    singular = sy < 1e-6

    if not singular:
        roll = math.atan2(R[2, 1], R[2, 2])
        pitch = math.atan2(-R[2, 0], sy)
        yaw = math.atan2(R[1, 0], R[0, 0])
    else:
        roll = math.atan2(-R[1, 2], R[1, 1])
        pitch = math.atan2(-R[2, 0], sy)
        yaw = 0.0

    return Vector3(roll, pitch, yaw)


def quaternion_to_matrix(q: Quaternion) -> np.ndarray:
    """Rotation matrix of a unit quaternion given as (x, y, z, w)."""
    x, y, z, w = q
    norm = math.sqrt(x * x + y * y + z * z + w * w)
    if norm < 1e-12:
        return np.eye(3, dtype=np.float64)
    x, y, z, w = x / norm, y / norm, z / norm, w / norm
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ],
        dtype=np.float64,
    )


def quaternion_to_euler(q: Quaternion) -> Vector3:
    return matrix_to_euler(quaternion_to_matrix(q))
