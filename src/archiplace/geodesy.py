"""
Geodesic helpers for GPS-anchored placement.

All angles at the public surface are in degrees, distances in meters.
"""

from __future__ import annotations

import math

EARTH_RADIUS_M = 6371000.0


def normalize_degrees(angle: float) -> float:
    """Wrap an angle into ``[0, 360)``."""
    value = angle % 360.0
    # tiny negative inputs round up to exactly 360.0
    if value >= 360.0:
        value = 0.0
    return value


def distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates (haversine formula).

    Args:
        lat1, lon1: Start point in degrees
        lat2, lon2: End point in degrees

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    a = min(1.0, max(0.0, a))
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial bearing from point 1 towards point 2.

    Returns:
        Bearing in degrees, 0 = north, 90 = east, always in ``[0, 360)``
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_lambda = math.radians(lon2 - lon1)

    y = math.sin(d_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
    return normalize_degrees(math.degrees(math.atan2(y, x)))


def relative_heading(target_bearing: float, device_heading: float) -> float:
    """Bearing of the target as seen from the device's current compass heading."""
    return normalize_degrees(target_bearing - device_heading)


def local_offset(range_m: float, heading_deg: float) -> tuple:
    """Project a range along a heading onto the local tangent plane.

    Forward is ``-z`` and right is ``+x``, matching the scene convention.

    Returns:
        (x, z) offsets in meters
    """
    theta = math.radians(heading_deg)
    return range_m * math.sin(theta), -range_m * math.cos(theta)
