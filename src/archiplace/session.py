"""
Per-tick driver tying a tracker, the smoothing bank and placement together.

One ``ARSession`` owns exactly one tracking backend. Each ``tick`` feeds the
backend one unit of input, smooths the pose (visual and geodetic paths only;
host hit-test poses are already filtered by the platform), drives the
virtual camera and the pre-placement indicator, and reports a UI status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Union

from .errors import InitializationError
from .filtering import PoseKalmanFilter, SmoothingConfig
from .placement import Anchor, IndicatorState, PlacementManager
from .pose import Pose, TrackingResult
from .sensors import LocationSource, OrientationSample
from .tracking import (
    GeodeticTracker,
    HitTestSession,
    HitTestTracker,
    TrackingBackend,
    TrackingMode,
    VisualPlaneTracker,
)
from .tracking.hittest import SESSION_MODE
from .utils import FrameRateMeter, get_config

LOGGER = logging.getLogger(__name__)

SMOOTHING_KNOBS = ("process_noise", "measurement_noise")


@dataclass(frozen=True)
class TrackingStatus:
    """What a UI shows for one tick."""

    level: str  # "tracking", "searching" or "lost"
    message: str
    can_place: bool


@dataclass(frozen=True)
class TickReport:
    """Everything produced by one ``ARSession.tick``."""

    result: TrackingResult
    smoothed_pose: Optional[Pose]
    indicator: IndicatorState
    anchor: Anchor
    status: TrackingStatus
    fps: Optional[float] = None


def describe_status(result: TrackingResult, mode: TrackingMode) -> TrackingStatus:
    """Status line for ``result``; has no side effects."""
    if mode is TrackingMode.GEODETIC:
        gps = result.gps_fix
        if gps is not None and gps.distance is not None:
            accuracy = gps.current_location.accuracy_meters if gps.current_location else float("nan")
            return TrackingStatus(
                "tracking",
                f"Target: {gps.distance:.1f}m away (±{accuracy:.1f}m accuracy)",
                True,
            )
        return TrackingStatus("searching", "Acquiring GPS location...", False)

    if result.is_tracking:
        confidence = result.pose.confidence if result.pose is not None else 0.0
        suffix = f" ({confidence * 100:.0f}%)" if confidence else ""
        return TrackingStatus("tracking", "Surface detected" + suffix, True)
    if result.has_features:
        return TrackingStatus("searching", f"Searching... ({result.feature_count} features)", False)
    return TrackingStatus("lost", "Point at a textured surface", False)


def choose_tracking_mode(
    outdoor_requested: bool,
    hit_test_supported: bool,
    location_supported: bool,
) -> TrackingMode:
    """Outdoor requests use GPS when available; indoors prefer host hit testing."""
    if outdoor_requested:
        if location_supported:
            return TrackingMode.GEODETIC
        LOGGER.warning("GPS or compass not supported, falling back to indoor mode")
    if hit_test_supported:
        return TrackingMode.HIT_TEST
    return TrackingMode.VISUAL


class ARSession:
    """
    Owns one tracker plus smoothing and placement state.

    Args:
        config: Nested configuration (see ``utils.get_config``)
        mode: Tracking mode; chosen from capabilities when omitted
        tracker: Pre-built backend, overrides ``mode``
        location_source: Geolocation provider for the geodetic backend
        hit_test_session: Host AR session for the hit-test backend
    """

    def __init__(
        self,
        config: Optional[Dict] = None,
        mode: Optional[Union[TrackingMode, str]] = None,
        tracker: Optional[TrackingBackend] = None,
        location_source: Optional[LocationSource] = None,
        hit_test_session: Optional[HitTestSession] = None,
    ):
        self.config = config if config is not None else get_config()
        session_cfg = self.config.get("session", {})

        if tracker is not None:
            self.mode = tracker.mode
        else:
            self.mode = self._resolve_mode(mode, location_source, hit_test_session)
        self.tracker = tracker or self._build_tracker(self.mode, location_source, hit_test_session)

        self.smoother = PoseKalmanFilter(SmoothingConfig.from_dict(self.config.get("smoothing")))
        self.placement = PlacementManager(self.config.get("placement"))
        if session_cfg.get("world_tracking", False):
            self.placement.camera.enable_world_tracking()

        self.fps_meter = FrameRateMeter()
        self.log_interval = int(session_cfg.get("log_interval", 60))
        self.frame_count = 0

        self.last_result: Optional[TrackingResult] = None
        self.current_pose: Optional[Pose] = None
        self.is_initialized = False
        self._disposed = False

        LOGGER.info("ARSession created in %s mode", self.mode.value)

    # ------------------------------------------------------------------ #
    # Construction helpers
    # ------------------------------------------------------------------ #
    def _resolve_mode(self, mode, location_source, hit_test_session) -> TrackingMode:
        mode = mode or self.config.get("tracking_mode")
        if mode is not None:
            return TrackingMode(mode)

        hit_test_supported = hit_test_session is not None and bool(hit_test_session.is_supported(SESSION_MODE))
        location_supported = location_source is not None and location_source.is_available()
        outdoor = bool(self.config.get("session", {}).get("outdoor", False))
        return choose_tracking_mode(outdoor, hit_test_supported, location_supported)

    def _build_tracker(self, mode, location_source, hit_test_session) -> TrackingBackend:
        if mode is TrackingMode.VISUAL:
            return VisualPlaneTracker(self.config.get("visual_tracking"))
        if mode is TrackingMode.HIT_TEST:
            return HitTestTracker(hit_test_session)
        return GeodeticTracker(self.config.get("geodetic"), location_source)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def initialize(self):
        """Start the tracker; ``InitializationError`` propagates to the caller."""
        try:
            self.tracker.init()
            if self.mode is TrackingMode.HIT_TEST:
                self.tracker.start_session()
        except InitializationError as exc:
            LOGGER.error("Failed to initialize %s tracking: %s", self.mode.value, exc)
            raise
        self.is_initialized = True
        self.fps_meter.reset()
        LOGGER.info("ARSession initialized")

    def reset(self):
        """Unplace the model and forget tracking and smoothing history."""
        self.placement.reset()
        self.tracker.reset()
        self.smoother.reset()
        self.current_pose = None
        self.last_result = None
        LOGGER.info("ARSession reset")

    def dispose(self):
        if self._disposed:
            return
        self._disposed = True
        self.tracker.dispose()
        self.is_initialized = False
        LOGGER.info("ARSession disposed after %d frames", self.frame_count)

    @property
    def disposed(self) -> bool:
        return self._disposed

    # ------------------------------------------------------------------ #
    # Inputs
    # ------------------------------------------------------------------ #
    def update_orientation(self, sample: Union[OrientationSample, Dict]):
        """Device-orientation callback; accepts a sample or a raw event mapping."""
        if not isinstance(sample, OrientationSample):
            sample = OrientationSample.from_event(sample)
        self.tracker.update_orientation(sample)

    def set_target_location(self, latitude: float, longitude: float, altitude: float = 0.0):
        if self.mode is not TrackingMode.GEODETIC:
            raise ValueError("Target locations are only used in geodetic mode.")
        self.tracker.set_target_location(latitude, longitude, altitude)

    def update_settings(self, **knobs):
        """Route runtime knobs to the smoother or the tracker."""
        noise = {k: knobs.pop(k) for k in SMOOTHING_KNOBS if k in knobs}
        if noise:
            self.smoother.set_noise(
                noise.get("process_noise", self.smoother.config.process_noise),
                noise.get("measurement_noise", self.smoother.config.measurement_noise),
            )
        if knobs:
            self.tracker.update_settings(**knobs)
            LOGGER.debug("Tracker settings updated: %s", sorted(knobs))

    # ------------------------------------------------------------------ #
    # Model / placement
    # ------------------------------------------------------------------ #
    def set_model_loaded(self, loaded: bool = True):
        self.placement.set_model_loaded(loaded)

    def set_model_rotation(self, degrees: float):
        self.placement.set_model_rotation(degrees)

    def set_model_scale(self, scale: float):
        self.placement.set_model_scale(scale)

    def place(self) -> bool:
        """Anchor the model under the crosshair; needs a model and a pose."""
        if not self.placement.model_loaded or self.current_pose is None:
            LOGGER.warning("Cannot place - missing model or pose")
            return False
        return self.placement.place()

    # ------------------------------------------------------------------ #
    # Per-tick
    # ------------------------------------------------------------------ #
    def tick(self, frame=None) -> TickReport:
        """Process one tick of input (image, host frame, or nothing for GPS)."""
        if self._disposed:
            raise RuntimeError("Session has been disposed.")

        self.frame_count += 1
        fps = self.fps_meter.tick()
        if fps is not None:
            LOGGER.debug("FPS: %.1f", fps)

        result = self.tracker.process_frame(frame)
        self.last_result = result

        if self.mode is TrackingMode.HIT_TEST:
            smoothed = result.pose
        else:
            smoothed = self.smoother.filter(result.pose)
        self.current_pose = smoothed

        if self.frame_count == 1 or self.frame_count % self.log_interval == 0:
            self._log_tick(result)

        self._drive_scene(result, smoothed)

        return TickReport(
            result=result,
            smoothed_pose=smoothed,
            indicator=self.placement.indicator,
            anchor=self.placement.anchor,
            status=describe_status(result, self.mode),
            fps=fps,
        )

    def _drive_scene(self, result: TrackingResult, pose: Optional[Pose]):
        camera = self.placement.camera
        if self.mode is TrackingMode.HIT_TEST:
            if result.viewer_transform is not None:
                camera.apply_viewer_transform(result.viewer_transform)
        elif pose is not None:
            camera.apply_device_pose(pose)

        if (
            self.mode is not TrackingMode.GEODETIC
            and result.is_tracking
            and self.placement.model_loaded
            and not self.placement.is_placed
        ):
            self.placement.update_indicator(pose)

    def _log_tick(self, result: TrackingResult):
        if self.mode is TrackingMode.GEODETIC:
            gps = result.gps_fix
            distance = gps.distance if gps is not None else None
            accuracy = gps.current_location.accuracy_meters if gps and gps.current_location else None
            LOGGER.info("GPS frame %d distance=%s accuracy=%s", self.frame_count, distance, accuracy)
        elif self.mode is TrackingMode.HIT_TEST:
            LOGGER.info(
                "Hit-test frame %d tracking=%s confidence=%s",
                self.frame_count,
                result.is_tracking,
                result.pose.confidence if result.pose else None,
            )
        else:
            LOGGER.info(
                "Frame %d features=%d tracking=%s",
                self.frame_count,
                result.feature_count,
                result.is_tracking,
            )

    @property
    def status(self) -> Optional[TrackingStatus]:
        if self.last_result is None:
            return None
        return describe_status(self.last_result, self.mode)
