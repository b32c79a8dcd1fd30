"""
Command line entry point for ARCHIPLACE.

Replays a video file or camera through the visual tracker, or evaluates a
static GPS fix against a target coordinate, places the model and prints a
JSON summary of the final anchor.

Usage:
    archiplace --video walk.mp4 --place-after 30
    archiplace --mode geodetic --fix 37.0,-122.0,5 --target 37.001,-122.0
    archiplace --video 0 --show --verbose
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Dict, List, Optional, Sequence

import cv2

from .errors import InitializationError
from .sensors import LocationFix, OrientationSample, StaticLocationSource
from .session import ARSession, TickReport
from .tracking import VisualPlaneTracker
from .utils import get_config, setup_logging, validate_config
from .visualization import draw_crosshair, draw_debug, draw_status

LOGGER = logging.getLogger(__name__)

WINDOW_NAME = "ARCHIPLACE"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="ARCHIPLACE - place a virtual model on the ground or at a GPS coordinate",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Controls (with --show):
  P  - Place model at the crosshair
  R  - Reset placement
  Q  - Quit
        """,
    )

    parser.add_argument(
        "--mode", "-m",
        choices=("visual", "geodetic"),
        default="visual",
        help="Tracking mode (default: visual)",
    )
    parser.add_argument(
        "--video",
        default="0",
        help="Video file path or camera index (visual mode)",
    )
    parser.add_argument(
        "--max-frames",
        type=int,
        default=None,
        help="Stop after this many ticks (geodetic mode defaults to 1)",
    )
    parser.add_argument(
        "--place-after",
        type=int,
        default=None,
        help="Place the model once this many ticks have run",
    )
    parser.add_argument(
        "--target",
        default=None,
        help="Target coordinate LAT,LON[,ALT] (geodetic mode)",
    )
    parser.add_argument(
        "--fix",
        default=None,
        help="Device fix LAT,LON,ACCURACY[,ALT] (geodetic mode)",
    )
    parser.add_argument(
        "--heading",
        type=float,
        default=0.0,
        help="Compass heading in degrees (geodetic mode)",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to JSON configuration file",
    )
    parser.add_argument(
        "--show",
        action="store_true",
        help="Display frames with debug drawing",
    )
    parser.add_argument(
        "--verbose", "-V",
        action="store_true",
        help="Enable verbose/debug logging",
    )

    return parser.parse_args(argv)


def parse_floats(text: str, minimum: int, maximum: int, name: str) -> List[float]:
    """Parse a comma separated list of numbers."""
    try:
        values = [float(part) for part in text.split(",")]
    except ValueError:
        raise ValueError(f"{name} must be comma separated numbers, got '{text}'")
    if not minimum <= len(values) <= maximum:
        raise ValueError(f"{name} takes {minimum} to {maximum} values, got {len(values)}")
    return values


def open_capture(source: str) -> cv2.VideoCapture:
    """Open a camera index or a video file."""
    if source.isdigit():
        return cv2.VideoCapture(int(source))
    return cv2.VideoCapture(source)


def summarize(session: ARSession, report: Optional[TickReport]) -> Dict:
    """JSON-serialisable summary of the session state."""
    anchor = session.placement.anchor
    summary = {
        "mode": session.mode.value,
        "frames": session.frame_count,
        "anchor": {
            "placed": anchor.placed,
            "position": [anchor.world_position.x, anchor.world_position.y, anchor.world_position.z],
            "rotation_y_degrees": anchor.rotation_y_degrees,
        },
        "status": None,
        "pose": None,
    }
    if report is not None:
        summary["status"] = {
            "level": report.status.level,
            "message": report.status.message,
            "can_place": report.status.can_place,
        }
    if session.current_pose is not None:
        pose = session.current_pose
        summary["pose"] = {
            "position": [pose.position.x, pose.position.y, pose.position.z],
            "rotation": [pose.rotation.x, pose.rotation.y, pose.rotation.z],
            "confidence": pose.confidence,
        }
    return summary


def _maybe_place(session: ARSession, place_after: Optional[int]):
    if place_after is None or session.placement.is_placed:
        return
    if session.frame_count >= place_after:
        session.place()


def run_visual(session: ARSession, args: argparse.Namespace) -> Optional[TickReport]:
    """Feed video frames through the session."""
    capture = open_capture(args.video)
    if not capture.isOpened():
        raise InitializationError(f"Could not open video source {args.video}")

    report = None
    try:
        while args.max_frames is None or session.frame_count < args.max_frames:
            ok, frame = capture.read()
            if not ok:
                LOGGER.info("End of video stream")
                break

            if session.frame_count == 0:
                h, w = frame.shape[:2]
                session.placement.resize(w, h)

            report = session.tick(frame)
            _maybe_place(session, args.place_after)

            if args.show:
                if isinstance(session.tracker, VisualPlaneTracker):
                    draw_debug(frame, session.tracker.debug_snapshot())
                draw_crosshair(frame)
                draw_status(frame, report.status.level, report.status.message, session.fps_meter.fps)
                cv2.imshow(WINDOW_NAME, frame)

                key = cv2.waitKey(1) & 0xFF
                if key == ord('q'):
                    break
                elif key == ord('p'):
                    session.place()
                elif key == ord('r'):
                    session.reset()
    finally:
        capture.release()
        if args.show:
            cv2.destroyAllWindows()

    return report


def run_geodetic(session: ARSession, args: argparse.Namespace) -> Optional[TickReport]:
    """Tick the GPS tracker against a static fix."""
    target = parse_floats(args.target, 2, 3, "--target")
    session.set_target_location(*target)
    session.update_orientation(OrientationSample(alpha=args.heading, absolute=True))

    max_frames = args.max_frames if args.max_frames is not None else 1
    report = None
    while session.frame_count < max_frames:
        report = session.tick()
        _maybe_place(session, args.place_after)
    return report


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level=log_level)

    config = get_config(args.config, overrides={"tracking_mode": args.mode})
    if not validate_config(config):
        return 2

    location_source = None
    if args.mode == "geodetic":
        if args.fix is None or args.target is None:
            LOGGER.error("Geodetic mode needs --fix and --target")
            return 2
        try:
            fix = parse_floats(args.fix, 3, 4, "--fix")
            parse_floats(args.target, 2, 3, "--target")
        except ValueError as e:
            LOGGER.error("%s", e)
            return 2
        location_source = StaticLocationSource(
            LocationFix(
                latitude=fix[0],
                longitude=fix[1],
                accuracy_meters=fix[2],
                altitude=fix[3] if len(fix) > 3 else None,
            )
        )

    session = ARSession(config, location_source=location_source)
    session.set_model_loaded(True)

    try:
        session.initialize()
        if args.mode == "geodetic":
            report = run_geodetic(session, args)
        else:
            report = run_visual(session, args)
    except InitializationError as e:
        LOGGER.error("Initialization failed: %s", e)
        return 1
    except KeyboardInterrupt:
        LOGGER.info("Interrupted by user")
        report = None
    finally:
        session.dispose()

    print(json.dumps(summarize(session, report), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
