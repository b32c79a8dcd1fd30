"""
Error types raised by the tracking and placement pipeline.

Only ``InitializationError`` is meant to reach callers. The per-tick errors
are raised inside a tracker and converted into a confidence decay before
``process_frame`` returns.
"""


class ArchiplaceError(Exception):
    """Base class for all package errors."""


class InitializationError(ArchiplaceError):
    """A backend could not start (unsupported capability, permission denied)."""


class InputUnavailable(ArchiplaceError):
    """No usable input for this tick (empty frame, no sensor fix yet)."""


class MatchingFailure(ArchiplaceError):
    """Too few descriptor correspondences survived filtering."""


class FitRejected(ArchiplaceError):
    """The robust homography fit failed or kept too few inliers."""
