"""
Hit-test tracker backed by a host AR session.

Surface detection is done by the host platform (ARCore/ARKit through a
WebXR-like API). This module only consumes the per-frame viewer pose and
ranked hit-test results, and applies the same confidence ramp as the visual
tracker so both backends behave alike in the UI.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import InitializationError
from ..pose import Pose, Quaternion, TrackingResult, Vector3, quaternion_to_euler, quaternion_to_matrix
from .base import TrackingBackend, TrackingMode
from .confidence import ConfidenceGate

LOGGER = logging.getLogger(__name__)

SESSION_MODE = "immersive-ar"


@dataclass(frozen=True)
class RigidTransform:
    """Position + unit quaternion (x, y, z, w) reported by the host."""

    position: Vector3
    orientation: Quaternion = (0.0, 0.0, 0.0, 1.0)

    @property
    def matrix(self) -> np.ndarray:
        transform = np.eye(4, dtype=np.float64)
        transform[:3, :3] = quaternion_to_matrix(self.orientation)
        transform[:3, 3] = self.position.to_array()
        return transform


@dataclass(frozen=True)
class ViewerPose:
    """Pose of the viewer with one transform per rendered view."""

    transform: RigidTransform
    views: Tuple[RigidTransform, ...] = ()


class HitTestResult(ABC):
    """A single surface intersection along the viewer ray."""

    @abstractmethod
    def get_pose(self, reference_space) -> Optional[RigidTransform]:
        """Pose of the hit in ``reference_space``, or None if unavailable."""


class HitTestFrame(ABC):
    """Per-frame query surface of the host session."""

    @abstractmethod
    def get_viewer_pose(self, reference_space) -> Optional[ViewerPose]:
        """Viewer pose for this frame, or None while the host is not tracking."""

    @abstractmethod
    def get_hit_test_results(self, source) -> Sequence[HitTestResult]:
        """Hit results for ``source``, best first."""


class HitTestSession(ABC):
    """Host AR session lifecycle. Start/end belong to the platform."""

    @abstractmethod
    def is_supported(self, mode: str = SESSION_MODE) -> bool:
        """Return True if the host can run an AR session in ``mode``."""

    @abstractmethod
    def start(self, mode: str, required_features: Sequence[str], optional_features: Sequence[str]):
        """Request the session; raises if the host refuses."""

    @abstractmethod
    def request_reference_space(self, kind: str):
        """Return a reference space handle (``"local"`` or ``"viewer"``)."""

    @abstractmethod
    def request_hit_test_source(self, space):
        """Return a hit-test source casting rays from ``space``."""

    @abstractmethod
    def add_end_listener(self, callback: Callable[[], None]):
        """Register ``callback`` for when the session ends."""

    @abstractmethod
    def end(self):
        """End the session."""


class HitTestTracker(TrackingBackend):
    """Tracks the surface under the viewer using host hit testing."""

    mode = TrackingMode.HIT_TEST

    def __init__(self, session: Optional[HitTestSession] = None):
        super().__init__()
        self.session = session
        self.is_supported = False
        self.is_session_active = False

        self._reference_space = None
        self._hit_test_source = None
        self._gate = ConfidenceGate()

        self.current_pose: Optional[Pose] = None
        self.viewer_pose: Optional[ViewerPose] = None
        self.hit_test_results: List[HitTestResult] = []

    @property
    def confidence(self) -> float:
        return self._gate.confidence

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def check_support(self) -> bool:
        if self.session is None:
            LOGGER.warning("No AR session available")
            return False
        try:
            self.is_supported = bool(self.session.is_supported(SESSION_MODE))
        except Exception as exc:
            LOGGER.error("Error checking AR support: %s", exc)
            self.is_supported = False
        LOGGER.info("%s supported: %s", SESSION_MODE, self.is_supported)
        return self.is_supported

    def init(self):
        if not self.check_support():
            raise InitializationError("AR hit testing is not supported on this device")
        LOGGER.info("HitTestTracker ready to start session")

    def start_session(self):
        """Start the host session and set up reference spaces and hit testing."""
        if not self.is_supported:
            raise InitializationError("AR hit testing is not supported on this device")
        try:
            self.session.start(SESSION_MODE, ("hit-test",), ("dom-overlay",))
            self._reference_space = self.session.request_reference_space("local")
            viewer_space = self.session.request_reference_space("viewer")
            self._hit_test_source = self.session.request_hit_test_source(viewer_space)
        except Exception as exc:
            LOGGER.error("Failed to start AR session: %s", exc)
            raise InitializationError(f"Failed to start AR session: {exc}") from exc

        self.session.add_end_listener(self._on_session_end)
        self.is_session_active = True
        LOGGER.info("AR session started")

    def end_session(self):
        if self.session is not None and self.is_session_active:
            self.session.end()
        # hosts that do not fire the end event synchronously
        if self.is_session_active:
            self._on_session_end()

    def _on_session_end(self):
        LOGGER.info("AR session ended")
        self.is_session_active = False
        self._reference_space = None
        self._hit_test_source = None
        self.is_tracking = False
        self._gate.reset()

    def reset(self):
        self.is_tracking = False
        self.current_pose = None
        self.hit_test_results = []
        self._gate.reset()

    def _release(self):
        self.end_session()

    # ------------------------------------------------------------------ #
    # Per-frame
    # ------------------------------------------------------------------ #
    def process_frame(self, frame: Optional[HitTestFrame] = None) -> TrackingResult:
        result = TrackingResult(imu_sample=self.orientation)

        if not self.is_session_active or frame is None:
            self.is_tracking = False
            return result

        # at most one confidence step per tick
        scored = False
        try:
            self.viewer_pose = frame.get_viewer_pose(self._reference_space)
            if self.viewer_pose is None:
                self.is_tracking = False
                return result

            if self._hit_test_source is not None:
                self.hit_test_results = list(frame.get_hit_test_results(self._hit_test_source))
                hit_pose = None
                if self.hit_test_results:
                    hit_pose = self.hit_test_results[0].get_pose(self._reference_space)

                if hit_pose is not None:
                    self._register_hit(hit_pose)
                    scored = True
                    result.has_features = True
                    result.feature_count = len(self.hit_test_results)
                    result.plane_count = len(self.hit_test_results)
                    result.hit_test_pose = hit_pose
                else:
                    self._gate.weaken()
                    scored = True

            views = self.viewer_pose.views
            result.viewer_transform = views[0] if views else self.viewer_pose.transform

        except Exception as exc:
            LOGGER.warning("Hit-test frame processing error: %s", exc)
            if not scored:
                self._gate.weaken()

        result.is_tracking = self._gate.is_confident and self.current_pose is not None
        if result.is_tracking:
            result.pose = replace(self.current_pose, confidence=self._gate.confidence)
        self.is_tracking = result.is_tracking
        return result

    def _register_hit(self, hit_pose: RigidTransform):
        confidence = self._gate.reinforce()
        self.current_pose = Pose(
            position=hit_pose.position,
            rotation=quaternion_to_euler(hit_pose.orientation),
            confidence=confidence,
            orientation=hit_pose.orientation,
            matrix=hit_pose.matrix,
        )
