"""
GPS + compass tracker for outdoor placement at real-world coordinates.

No frames are processed: each tick reports the range and bearing from the
latest location fix to a fixed target, turned into a local-tangent-plane
offset relative to the device's compass heading.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional

from .. import geodesy
from ..errors import InitializationError
from ..pose import GeodeticPayload, Pose, TargetLocation, TrackingResult, Vector3
from ..sensors import LocationFix, LocationSource
from .base import TrackingBackend, TrackingMode

LOGGER = logging.getLogger(__name__)


@dataclass
class GeodeticConfig:
    """Configuration for the geodetic tracker."""

    gps_accuracy_threshold: float = 50.0  # meters
    min_distance: float = 5.0  # meters, closer targets are not placed
    max_distance: float = 1000.0  # meters
    fix_timeout_s: float = 10.0

    @classmethod
    def from_dict(cls, config: Optional[Dict]) -> "GeodeticConfig":
        cfg_dict = dict(config or {})
        return cls(**{k: v for k, v in cfg_dict.items() if k in cls.__dataclass_fields__})


class GeodeticTracker(TrackingBackend):
    """Places content relative to a target latitude/longitude."""

    mode = TrackingMode.GEODETIC

    def __init__(self, config: Optional[Dict] = None, location_source: Optional[LocationSource] = None):
        super().__init__()
        self.config = GeodeticConfig.from_dict(config)
        self.location_source = location_source

        self.is_supported = False
        self.is_initialized = False
        self._watch_id: Optional[int] = None

        self.current_location: Optional[LocationFix] = None
        self.target_location: Optional[TargetLocation] = None
        self.current_pose: Optional[Pose] = None
        self.distance: Optional[float] = None
        self.bearing: Optional[float] = None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def check_support(self) -> bool:
        self.is_supported = self.location_source is not None and self.location_source.is_available()
        LOGGER.info("GPS/compass support: %s", self.is_supported)
        return self.is_supported

    def init(self):
        """Fetch an initial fix and start watching the location stream."""
        if not self.check_support():
            raise InitializationError("GPS or compass not supported")

        try:
            fix = self.location_source.get_current_fix(self.config.fix_timeout_s)
        except Exception as exc:
            LOGGER.error("Initial location fix failed: %s", exc)
            raise InitializationError(f"Location unavailable: {exc}") from exc

        self.update_location(fix)
        self._watch_id = self.location_source.watch(self.update_location)
        self.is_initialized = True
        LOGGER.info("GeodeticTracker initialized")

    def reset(self):
        self.target_location = None
        self.current_pose = None
        self.distance = None
        self.bearing = None
        self.is_tracking = False
        LOGGER.debug("GeodeticTracker reset")

    def _release(self):
        if self._watch_id is not None and self.location_source is not None:
            self.location_source.clear_watch(self._watch_id)
        self._watch_id = None
        self.is_initialized = False

    def update_settings(self, **settings):
        super().update_settings(**settings)
        self._update_tracking()

    # ------------------------------------------------------------------ #
    # Sensor input
    # ------------------------------------------------------------------ #
    def update_location(self, fix: LocationFix):
        """Location watch callback."""
        self.current_location = fix
        LOGGER.debug(
            "Location updated: lat=%.6f lon=%.6f accuracy=%.1fm",
            fix.latitude,
            fix.longitude,
            fix.accuracy_meters,
        )
        self._update_tracking()

    def set_target_location(self, latitude: float, longitude: float, altitude: float = 0.0):
        self.target_location = TargetLocation(latitude, longitude, altitude)
        LOGGER.info("Target set: lat=%.6f lon=%.6f alt=%.1f", latitude, longitude, altitude)
        self._update_tracking()

    def _update_tracking(self):
        """Recompute range and bearing and decide whether the fix is usable."""
        if self.current_location is None or self.target_location is None:
            self.is_tracking = False
            return

        here, there = self.current_location, self.target_location
        self.distance = geodesy.distance(here.latitude, here.longitude, there.latitude, there.longitude)
        self.bearing = geodesy.bearing(here.latitude, here.longitude, there.latitude, there.longitude)

        accuracy_ok = here.accuracy_meters <= self.config.gps_accuracy_threshold
        distance_ok = self.config.min_distance <= self.distance <= self.config.max_distance
        self.is_tracking = accuracy_ok and distance_ok

    # ------------------------------------------------------------------ #
    # Per-tick
    # ------------------------------------------------------------------ #
    def process_frame(self, frame=None) -> TrackingResult:
        """Report the current GPS tracking state; ``frame`` is ignored."""
        self.current_pose = self._build_pose() if self.is_tracking else None

        return TrackingResult(
            is_tracking=self.is_tracking,
            has_features=self.current_location is not None,
            feature_count=1 if self.is_tracking else 0,
            plane_count=0,
            pose=self.current_pose,
            imu_sample=self.orientation,
            gps_fix=GeodeticPayload(
                current_location=self.current_location,
                target_location=self.target_location,
                distance=self.distance,
                bearing=self.bearing,
            ),
        )

    def _build_pose(self) -> Pose:
        """Local pose of the target relative to the device heading."""
        heading = geodesy.relative_heading(self.bearing, self.orientation.alpha)
        x, z = geodesy.local_offset(self.distance, heading)
        y = self.target_location.altitude - (self.current_location.altitude or 0.0)

        accuracy = self.current_location.accuracy_meters
        if accuracy > 0:
            confidence = min(1.0, self.config.gps_accuracy_threshold / accuracy)
        else:
            confidence = 1.0

        return Pose(
            position=Vector3(x, y, z),
            rotation=Vector3(
                math.radians(self.orientation.beta),
                math.radians(self.orientation.alpha),
                math.radians(self.orientation.gamma),
            ),
            confidence=confidence,
            distance=self.distance,
            bearing=self.bearing,
            accuracy=accuracy,
        )
