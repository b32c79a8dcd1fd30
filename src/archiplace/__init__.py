"""
ARCHIPLACE - Augmented reality placement toolkit.

This package provides functionality for:
- Ground-plane tracking from camera frames (ORB + RANSAC homography)
- Host hit-test tracking
- GPS/compass tracking towards a target coordinate
- Kalman smoothing of 6-DoF poses
- Screen-to-world placement by ray/plane intersection
"""

from .errors import ArchiplaceError, FitRejected, InitializationError, InputUnavailable, MatchingFailure
from .filtering import PoseKalmanFilter, ScalarKalmanFilter, SmoothingConfig
from .placement import (
    Anchor,
    IndicatorState,
    PlacementConfig,
    PlacementManager,
    VirtualCamera,
    ray_plane_intersection,
)
from .pose import Pose, TrackingResult, Vector3
from .sensors import LocationFix, LocationSource, OrientationSample, StaticLocationSource
from .session import ARSession, TickReport, TrackingStatus, choose_tracking_mode, describe_status
from .tracking import (
    GeodeticTracker,
    HitTestTracker,
    TrackingBackend,
    TrackingMode,
    VisualPlaneTracker,
)

__version__ = "0.1.0"

__all__ = [
    # Errors
    "ArchiplaceError",
    "FitRejected",
    "InitializationError",
    "InputUnavailable",
    "MatchingFailure",
    # Data model & sensors
    "Pose",
    "TrackingResult",
    "Vector3",
    "LocationFix",
    "LocationSource",
    "OrientationSample",
    "StaticLocationSource",
    # Tracking
    "TrackingBackend",
    "TrackingMode",
    "VisualPlaneTracker",
    "HitTestTracker",
    "GeodeticTracker",
    # Smoothing
    "PoseKalmanFilter",
    "ScalarKalmanFilter",
    "SmoothingConfig",
    # Placement
    "Anchor",
    "IndicatorState",
    "PlacementConfig",
    "PlacementManager",
    "VirtualCamera",
    "ray_plane_intersection",
    # Session
    "ARSession",
    "TickReport",
    "TrackingStatus",
    "choose_tracking_mode",
    "describe_status",
]
