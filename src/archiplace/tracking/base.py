"""
Common contract for tracking backends.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from ..pose import TrackingResult
from ..sensors import OrientationSample

LOGGER = logging.getLogger(__name__)


class TrackingMode(Enum):
    """Supported tracking backends."""
    VISUAL = "visual"  # ORB features + homography on camera frames
    HIT_TEST = "hit_test"  # host platform surface hit testing
    GEODETIC = "geodetic"  # GPS + compass


class TrackingBackend(ABC):
    """
    Interface shared by all trackers.

    Exactly one backend is active per session. Input to ``process_frame``
    depends on the backend (image, host frame or nothing) but the output is
    always a ``TrackingResult``.
    """

    mode: TrackingMode

    def __init__(self):
        self.orientation = OrientationSample()
        self.is_tracking = False
        self._disposed = False

    @abstractmethod
    def init(self):
        """Start the backend; raises ``InitializationError`` on failure."""

    @abstractmethod
    def process_frame(self, frame: Optional[Any] = None) -> TrackingResult:
        """Consume one tick of input and report the tracking state."""

    @abstractmethod
    def reset(self):
        """Forget tracking history; must be idempotent."""

    def dispose(self):
        """Release owned resources. Only the first call has an effect."""
        if self._disposed:
            return
        self._disposed = True
        self._release()
        LOGGER.info("%s disposed", type(self).__name__)

    def _release(self):
        """Hook for subclasses owning native resources."""

    @property
    def disposed(self) -> bool:
        return self._disposed

    def update_orientation(self, sample: OrientationSample):
        """Store the latest device-orientation sample."""
        self.orientation = sample

    def update_settings(self, **settings):
        """Apply runtime knobs this backend understands; others are ignored."""
        config = getattr(self, "config", None)
        if config is None:
            return
        for key, value in settings.items():
            if key in type(config).__dataclass_fields__:
                setattr(config, key, value)
