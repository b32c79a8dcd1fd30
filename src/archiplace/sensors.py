"""
Sensor samples and the location-source interface.

Sensor callbacks run on the same event loop as the tracking tick, so a
tracker only keeps the most recent sample of each stream and reads it at the
tick boundary.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrientationSample:
    """Device orientation in degrees.

    ``alpha`` is the rotation about the z axis (compass heading when the
    sample is absolute), ``beta`` the front-to-back tilt and ``gamma`` the
    left-to-right tilt.
    """

    alpha: float = 0.0
    beta: float = 0.0
    gamma: float = 0.0
    absolute: bool = False

    @classmethod
    def from_event(cls, event: Dict) -> "OrientationSample":
        """Build a sample from a raw event mapping, treating missing values as 0."""
        return cls(
            alpha=float(event.get("alpha") or 0.0),
            beta=float(event.get("beta") or 0.0),
            gamma=float(event.get("gamma") or 0.0),
            absolute=bool(event.get("absolute", False)),
        )

    def as_radians(self) -> tuple:
        """Return (alpha, beta, gamma) in radians."""
        return math.radians(self.alpha), math.radians(self.beta), math.radians(self.gamma)


@dataclass(frozen=True)
class LocationFix:
    """A single geolocation reading."""

    latitude: float
    longitude: float
    accuracy_meters: float
    timestamp_ms: float = 0.0
    altitude: Optional[float] = None


LocationCallback = Callable[[LocationFix], None]


class LocationSource(ABC):
    """Host geolocation + compass provider used by the geodetic tracker."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return True when both geolocation and orientation are supported."""

    @abstractmethod
    def get_current_fix(self, timeout_s: float) -> LocationFix:
        """Return one fix, raising on permission denial or timeout."""

    @abstractmethod
    def watch(self, callback: LocationCallback) -> int:
        """Start delivering fixes to ``callback``; returns a watch handle."""

    @abstractmethod
    def clear_watch(self, handle: int):
        """Stop the watch identified by ``handle``."""


class StaticLocationSource(LocationSource):
    """Location source replaying a fixed fix.

    Used by the command line and by tests; ``push`` delivers a new fix to
    every active watcher.
    """

    def __init__(self, fix: Optional[LocationFix] = None, available: bool = True):
        self.fix = fix
        self.available = available
        self._watchers: Dict[int, LocationCallback] = {}
        self._next_handle = 1

    def is_available(self) -> bool:
        return self.available

    def get_current_fix(self, timeout_s: float) -> LocationFix:
        if self.fix is None:
            raise TimeoutError(f"No location fix within {timeout_s:.1f}s")
        return self.fix

    def watch(self, callback: LocationCallback) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._watchers[handle] = callback
        return handle

    def clear_watch(self, handle: int):
        self._watchers.pop(handle, None)

    @property
    def active_watches(self) -> int:
        return len(self._watchers)

    def push(self, fix: LocationFix):
        """Deliver ``fix`` to all watchers."""
        self.fix = fix
        for callback in list(self._watchers.values()):
            callback(fix)
