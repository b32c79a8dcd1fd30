"""
Visual ground-plane tracker.

Detects binary features on each camera frame, matches them one-to-one
against the previous frame, fits a RANSAC homography between the two and
gates the result through confidence hysteresis. Translation is a coarse
estimate from the homography; rotation comes from the device-orientation
sensor.

Supported detectors (all produce binary descriptors matched with Hamming
distance):
- ORB (default)
- AKAZE
- BRISK
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from ..errors import FitRejected, InputUnavailable, MatchingFailure
from ..pose import GroundPlaneEstimate, Pose, TrackedPointPair, TrackingResult, Vector3
from .base import TrackingBackend, TrackingMode
from .confidence import ConfidenceGate

LOGGER = logging.getLogger(__name__)


class TrackerState(Enum):
    """Per-tick state of the visual tracker."""
    NO_PRIOR_FRAME = "no_prior_frame"
    FEATURES_DETECTED = "features_detected"
    TRACKED = "tracked"
    LOST_TRACK = "lost_track"


@dataclass
class VisualTrackerConfig:
    """Configuration for the visual plane tracker."""

    # Detector selection
    method: str = "orb"
    max_features: int = 500

    # ORB-specific
    fast_threshold: int = 20
    orb_scale_factor: float = 1.2
    orb_nlevels: int = 8
    orb_edge_threshold: int = 31
    orb_patch_size: int = 31

    # AKAZE / BRISK
    akaze_threshold: float = 0.001
    brisk_threshold: int = 30

    # Matching
    match_distance_ratio: float = 3.0  # keep matches below ratio * best distance
    match_distance_floor: float = 30.0  # ...but never tighter than this
    min_inliers: int = 10

    # Homography
    ransac_threshold: float = 3.0  # reprojection threshold in pixels

    # Reporting
    min_search_features: int = 20  # has_features needs more than this
    assumed_depth: float = 3.0  # meters, fixed z of the estimated pose

    @classmethod
    def from_dict(cls, config: Optional[Dict]) -> "VisualTrackerConfig":
        cfg_dict = dict(config or {})
        return cls(**{k: v for k, v in cfg_dict.items() if k in cls.__dataclass_fields__})


@dataclass
class CalibrationData:
    """Container for camera calibration parameters."""

    camera_matrix: np.ndarray
    dist_coeffs: np.ndarray


def approximate_calibration(width: int, height: int) -> CalibrationData:
    """Pinhole intrinsics typical of phone cameras: focal length ~ frame width."""
    fx = fy = float(width)
    camera_matrix = np.array(
        [
            [fx, 0.0, width / 2.0],
            [0.0, fy, height / 2.0],
            [0.0, 0.0, 1.0],
        ],
        dtype=np.float64,
    )
    return CalibrationData(camera_matrix=camera_matrix, dist_coeffs=np.zeros((5, 1), dtype=np.float64))


class FeatureDetectorFactory:
    """Factory for binary feature detectors and their matcher."""

    @staticmethod
    def create_detector(detector_type: str, config: VisualTrackerConfig) -> cv2.Feature2D:
        dtype = detector_type.lower()

        if dtype == "orb":
            return cv2.ORB_create(
                nfeatures=config.max_features,
                scaleFactor=config.orb_scale_factor,
                nlevels=config.orb_nlevels,
                edgeThreshold=config.orb_edge_threshold,
                patchSize=config.orb_patch_size,
                fastThreshold=config.fast_threshold,
            )
        elif dtype == "akaze":
            return cv2.AKAZE_create(threshold=config.akaze_threshold)
        elif dtype == "brisk":
            return cv2.BRISK_create(thresh=config.brisk_threshold)
        else:
            LOGGER.warning("Unknown detector type '%s', using ORB", dtype)
            return FeatureDetectorFactory.create_detector("orb", config)

    @staticmethod
    def create_matcher() -> cv2.DescriptorMatcher:
        """Brute-force Hamming matcher with cross check (one-to-one matches)."""
        return cv2.BFMatcher(cv2.NORM_HAMMING, crossCheck=True)


@dataclass
class FrameSlot:
    """One frame's worth of tracking buffers."""

    gray: Optional[np.ndarray] = None
    keypoints: List[cv2.KeyPoint] = field(default_factory=list)
    descriptors: Optional[np.ndarray] = None
    filled: bool = False

    def clear(self):
        self.keypoints = []
        self.descriptors = None
        self.filled = False


class FrameBufferArena:
    """
    Two fixed frame slots addressed by a parity bit.

    ``current`` is written during a tick and ``previous`` holds the last
    processed frame. ``swap`` flips the parity and clears the slot that
    becomes current, so no buffer is ever shared between the two roles.
    """

    def __init__(self):
        self.slots: Tuple[FrameSlot, FrameSlot] = (FrameSlot(), FrameSlot())
        self.shape: Optional[Tuple[int, int]] = None
        self._parity = 0

    @property
    def current(self) -> FrameSlot:
        return self.slots[self._parity]

    @property
    def previous(self) -> FrameSlot:
        return self.slots[self._parity ^ 1]

    def ensure_shape(self, height: int, width: int) -> bool:
        """Allocate gray buffers for a frame size; returns True on reallocation."""
        if self.shape == (height, width):
            return False
        self.release()
        for slot in self.slots:
            slot.gray = np.zeros((height, width), dtype=np.uint8)
        self.shape = (height, width)
        return True

    def swap(self):
        self._parity ^= 1
        self.current.clear()

    def clear(self):
        """Drop frame history but keep the allocated buffers."""
        for slot in self.slots:
            slot.clear()
        self._parity = 0

    def release(self):
        """Free every buffer."""
        for slot in self.slots:
            slot.clear()
            slot.gray = None
        self.shape = None
        self._parity = 0


@dataclass
class DebugSnapshot:
    """Read-only view of the last tick for caller-side drawing."""

    keypoints: np.ndarray  # (N, 2)
    tracked_points: List[TrackedPointPair]
    plane_center: Optional[Tuple[float, float]]
    confidence: float


class VisualPlaneTracker(TrackingBackend):
    """
    Single-plane visual tracker.

    Owns its detector, matcher and frame buffers exclusively; all of them are
    released on ``dispose``.
    """

    mode = TrackingMode.VISUAL

    def __init__(self, config: Optional[Dict] = None):
        super().__init__()
        self.config = VisualTrackerConfig.from_dict(config)

        self.detector: Optional[cv2.Feature2D] = None
        self.matcher: Optional[cv2.DescriptorMatcher] = None
        self.calibration: Optional[CalibrationData] = None

        self._arena = FrameBufferArena()
        self._gate = ConfidenceGate()
        self.tracked_points: List[TrackedPointPair] = []
        self.ground_plane: Optional[GroundPlaneEstimate] = None
        self.current_pose: Optional[Pose] = None
        self.state = TrackerState.NO_PRIOR_FRAME
        self.frame_index = 0

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def init(self):
        """Create the detector and matcher."""
        self._build_detector()
        LOGGER.info(
            "VisualPlaneTracker initialized: detector=%s, max_features=%d",
            self.config.method,
            self.config.max_features,
        )

    def reset(self):
        """Reset tracker state; frame buffers stay allocated."""
        self._arena.clear()
        self._gate.reset()
        self.tracked_points = []
        self.ground_plane = None
        self.current_pose = None
        self.state = TrackerState.NO_PRIOR_FRAME
        self.is_tracking = False
        self.frame_index = 0

    def _release(self):
        self._arena.release()
        self.detector = None
        self.matcher = None
        self.calibration = None
        self.tracked_points = []
        self.ground_plane = None
        self.current_pose = None

    def update_settings(self, **settings):
        """Apply runtime settings; detector-affecting ones rebuild the detector."""
        super().update_settings(**settings)
        if self.detector is not None and ({"max_features", "method"} & set(settings)):
            self._build_detector()
            LOGGER.info("Detector rebuilt: %s (max_features=%d)", self.config.method, self.config.max_features)

    def _build_detector(self):
        self.detector = FeatureDetectorFactory.create_detector(self.config.method, self.config)
        self.matcher = FeatureDetectorFactory.create_matcher()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def confidence(self) -> float:
        return self._gate.confidence

    @property
    def detected_planes(self) -> List[GroundPlaneEstimate]:
        return [self.ground_plane] if self.ground_plane is not None else []

    def process_frame(self, frame: Optional[np.ndarray] = None) -> TrackingResult:
        """Track the ground plane on one camera frame."""
        if self.disposed:
            raise RuntimeError("Tracker has been disposed.")
        if self.detector is None:
            self.init()

        result = TrackingResult(imu_sample=self.orientation)

        try:
            self._load_frame(frame)
        except InputUnavailable as exc:
            LOGGER.warning("Skipping frame: %s", exc)
            self.is_tracking = False
            return result

        self.frame_index += 1
        current = self._arena.current
        previous = self._arena.previous

        current.keypoints, current.descriptors = self._detect_features(current.gray)
        current.filled = True
        result.feature_count = len(current.keypoints)
        result.has_features = result.feature_count > self.config.min_search_features
        self.state = TrackerState.FEATURES_DETECTED

        if previous.filled:
            try:
                self.tracked_points = self._match_features(previous, current)
                H, inliers, center = self._fit_plane(self.tracked_points)
            except (MatchingFailure, FitRejected) as exc:
                LOGGER.debug("Plane detection failed: %s", exc)
                self._register_failure()
            except cv2.error as exc:
                LOGGER.warning("Plane detection error: %s", exc)
                self._register_failure()
            else:
                self._register_success(H, inliers, center)
                result.plane_count = len(self.detected_planes)

            result.is_tracking = self._gate.is_confident and self.ground_plane is not None
            if result.is_tracking:
                self.current_pose = self._estimate_pose(self.ground_plane)
                result.pose = self.current_pose
            else:
                self.current_pose = None
            self.state = TrackerState.TRACKED if result.is_tracking else TrackerState.LOST_TRACK

        self._arena.swap()
        self.is_tracking = result.is_tracking
        return result

    def debug_snapshot(self) -> DebugSnapshot:
        """Features and correspondences of the last processed frame."""
        last = self._arena.previous
        if last.keypoints:
            keypoints = np.array([kp.pt for kp in last.keypoints], dtype=np.float32)
        else:
            keypoints = np.empty((0, 2), dtype=np.float32)
        return DebugSnapshot(
            keypoints=keypoints,
            tracked_points=list(self.tracked_points),
            plane_center=self.ground_plane.center if self.ground_plane else None,
            confidence=self._gate.confidence,
        )

    # ------------------------------------------------------------------ #
    # Frame handling
    # ------------------------------------------------------------------ #
    def _load_frame(self, frame: Optional[np.ndarray]):
        """Validate ``frame`` and convert it into the current gray buffer."""
        if frame is None:
            raise InputUnavailable("no frame")
        if frame.ndim not in (2, 3) or frame.shape[0] == 0 or frame.shape[1] == 0:
            raise InputUnavailable(f"invalid frame dimensions {frame.shape}")
        if frame.dtype != np.uint8:
            frame = cv2.convertScaleAbs(frame)

        height, width = frame.shape[:2]
        if self._arena.ensure_shape(height, width):
            LOGGER.info("Creating frame buffers: %dx%d", width, height)
            self.calibration = approximate_calibration(width, height)
            # keypoints and plane fits of the old size go with their buffers
            self.tracked_points = []
            self.ground_plane = None
            self.current_pose = None

        gray = self._arena.current.gray
        if frame.ndim == 2:
            np.copyto(gray, frame)
        elif frame.shape[2] == 4:
            cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY, dst=gray)
        elif frame.shape[2] == 3:
            cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY, dst=gray)
        elif frame.shape[2] == 1:
            np.copyto(gray, frame[:, :, 0])
        else:
            raise InputUnavailable(f"unsupported channel count {frame.shape[2]}")

    def _detect_features(self, gray: np.ndarray) -> Tuple[List[cv2.KeyPoint], Optional[np.ndarray]]:
        """Detect up to ``max_features`` keypoints with descriptors."""
        try:
            keypoints, descriptors = self.detector.detectAndCompute(gray, None)
        except cv2.error as exc:
            LOGGER.warning("Feature detection failed: %s", exc)
            return [], None

        keypoints = list(keypoints or [])
        if descriptors is None or not keypoints:
            return [], None

        if len(keypoints) > self.config.max_features:
            order = np.argsort([-kp.response for kp in keypoints])[: self.config.max_features]
            keypoints = [keypoints[i] for i in order]
            descriptors = descriptors[order]
        return keypoints, descriptors

    # ------------------------------------------------------------------ #
    # Matching and plane fitting
    # ------------------------------------------------------------------ #
    def _match_features(self, previous: FrameSlot, current: FrameSlot) -> List[TrackedPointPair]:
        """Match previous -> current descriptors and keep unambiguous matches."""
        if previous.descriptors is None or current.descriptors is None:
            raise MatchingFailure("no descriptors to match")

        matches = self.matcher.match(previous.descriptors, current.descriptors)
        if len(matches) < self.config.min_inliers:
            raise MatchingFailure(f"{len(matches)} matches < {self.config.min_inliers}")

        min_dist = min(m.distance for m in matches)
        threshold = max(self.config.match_distance_ratio * min_dist, self.config.match_distance_floor)

        pairs = [
            TrackedPointPair(
                prev=previous.keypoints[m.queryIdx].pt,
                curr=current.keypoints[m.trainIdx].pt,
            )
            for m in matches
            if m.distance < threshold
        ]
        if len(pairs) < self.config.min_inliers:
            raise MatchingFailure(f"{len(pairs)} good matches < {self.config.min_inliers}")
        return pairs

    def _fit_plane(self, pairs: List[TrackedPointPair]) -> Tuple[np.ndarray, int, Tuple[float, float]]:
        """Fit a RANSAC homography previous -> current and count inliers."""
        if len(pairs) < max(4, self.config.min_inliers):
            raise FitRejected(f"only {len(pairs)} correspondences")

        src = np.array([p.prev for p in pairs], dtype=np.float32).reshape(-1, 1, 2)
        dst = np.array([p.curr for p in pairs], dtype=np.float32).reshape(-1, 1, 2)

        H, mask = cv2.findHomography(src, dst, cv2.RANSAC, self.config.ransac_threshold)
        if H is None or mask is None:
            raise FitRejected("degenerate homography")

        inliers = int(np.count_nonzero(mask))
        if inliers < self.config.min_inliers:
            raise FitRejected(f"{inliers} inliers < {self.config.min_inliers}")

        center = dst.reshape(-1, 2).mean(axis=0)
        return H, inliers, (float(center[0]), float(center[1]))

    def _register_success(self, H: np.ndarray, inliers: int, center: Tuple[float, float]):
        confidence = self._gate.reinforce()
        self.ground_plane = GroundPlaneEstimate(
            homography=H,
            inlier_count=inliers,
            center=center,
            confidence=confidence,
        )
        LOGGER.debug("Plane fit: %d inliers, confidence %.2f", inliers, confidence)

    def _register_failure(self):
        confidence = self._gate.weaken()
        if self.ground_plane is not None:
            self.ground_plane = replace(self.ground_plane, confidence=confidence)

    # ------------------------------------------------------------------ #
    # Pose
    # ------------------------------------------------------------------ #
    def _estimate_pose(self, plane: GroundPlaneEstimate) -> Pose:
        """Coarse pose: homography translation over focal length, fixed depth.

        Rotation is taken from the orientation sensor (beta, gamma, alpha).
        """
        H = plane.homography
        K = self.calibration.camera_matrix
        tx = float(H[0, 2] / K[0, 0])
        ty = float(H[1, 2] / K[1, 1])

        alpha, beta, gamma = self.orientation.as_radians()
        return Pose(
            position=Vector3(tx, ty, self.config.assumed_depth),
            rotation=Vector3(beta, gamma, alpha),
            confidence=plane.confidence,
            plane_center=plane.center,
        )
