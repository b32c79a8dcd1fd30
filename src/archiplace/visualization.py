"""
Debug drawing for the visual tracker and session status.

All functions draw in place on a BGR frame and return it.
"""

from __future__ import annotations

import logging
from typing import Optional

import cv2
import numpy as np

from .tracking.visual import DebugSnapshot

LOGGER = logging.getLogger(__name__)

# BGR colors
KEYPOINT_COLOR = (0, 255, 0)
TRACK_COLOR = (0, 255, 255)
CENTER_COLOR = (0, 0, 255)
PLANE_COLOR = (255, 255, 0)
CROSSHAIR_COLOR = (255, 255, 255)

STATUS_COLORS = {
    "tracking": (0, 255, 0),
    "searching": (0, 200, 255),
    "lost": (0, 0, 255),
}


def draw_debug(frame: np.ndarray, snapshot: DebugSnapshot) -> np.ndarray:
    """Draw keypoints, feature tracks and the plane centre.

    Args:
        frame: BGR image, modified in place
        snapshot: Output of ``VisualPlaneTracker.debug_snapshot()``

    Returns:
        The annotated frame
    """
    for x, y in snapshot.keypoints:
        cv2.circle(frame, (int(x), int(y)), 3, KEYPOINT_COLOR, -1)

    for pair in snapshot.tracked_points:
        pt1 = (int(pair.prev[0]), int(pair.prev[1]))
        pt2 = (int(pair.curr[0]), int(pair.curr[1]))
        cv2.line(frame, pt1, pt2, TRACK_COLOR, 1, cv2.LINE_AA)

    if snapshot.plane_center is not None:
        center = (int(snapshot.plane_center[0]), int(snapshot.plane_center[1]))
        cv2.circle(frame, center, 10, CENTER_COLOR, -1)
        cv2.circle(frame, center, 50, PLANE_COLOR, 2, cv2.LINE_AA)

    return frame


def draw_crosshair(frame: np.ndarray, size: int = 12) -> np.ndarray:
    """Placement crosshair at the frame centre."""
    h, w = frame.shape[:2]
    cx, cy = w // 2, h // 2
    cv2.line(frame, (cx - size, cy), (cx + size, cy), CROSSHAIR_COLOR, 1, cv2.LINE_AA)
    cv2.line(frame, (cx, cy - size), (cx, cy + size), CROSSHAIR_COLOR, 1, cv2.LINE_AA)
    return frame


def draw_status(frame: np.ndarray, level: str, message: str, fps: Optional[float] = None) -> np.ndarray:
    """Status bar with tracking level, message and optional FPS."""
    h, w = frame.shape[:2]
    color = STATUS_COLORS.get(level, (255, 255, 255))

    cv2.rectangle(frame, (5, 5), (min(w - 5, 420), 55), (0, 0, 0), -1)
    cv2.putText(frame, level.upper(), (12, 25), cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 2)
    cv2.putText(frame, message, (12, 47), cv2.FONT_HERSHEY_SIMPLEX, 0.45, (255, 255, 255), 1)

    if fps is not None:
        cv2.putText(frame, f"FPS: {fps:.1f}", (w - 110, h - 12),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.5, (255, 255, 255), 1)
    return frame
