"""
Tracking subpackage.

Three interchangeable backends producing the same ``TrackingResult``:

- VisualPlaneTracker: ORB features + RANSAC homography on camera frames
- HitTestTracker: host AR session hit testing
- GeodeticTracker: GPS fix + compass heading towards a target coordinate
"""

from .base import TrackingBackend, TrackingMode
from .confidence import ConfidenceGate
from .geodetic import GeodeticConfig, GeodeticTracker
from .hittest import (
    HitTestFrame,
    HitTestResult,
    HitTestSession,
    HitTestTracker,
    RigidTransform,
    ViewerPose,
)
from .visual import (
    CalibrationData,
    DebugSnapshot,
    FeatureDetectorFactory,
    FrameBufferArena,
    TrackerState,
    VisualPlaneTracker,
    VisualTrackerConfig,
    approximate_calibration,
)

__all__ = [
    "TrackingBackend",
    "TrackingMode",
    "ConfidenceGate",
    # Visual
    "CalibrationData",
    "DebugSnapshot",
    "FeatureDetectorFactory",
    "FrameBufferArena",
    "TrackerState",
    "VisualPlaneTracker",
    "VisualTrackerConfig",
    "approximate_calibration",
    # Hit test
    "HitTestFrame",
    "HitTestResult",
    "HitTestSession",
    "HitTestTracker",
    "RigidTransform",
    "ViewerPose",
    # Geodetic
    "GeodeticConfig",
    "GeodeticTracker",
]
