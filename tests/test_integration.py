"""
Integration tests for the ARCHIPLACE pipeline.

Runs the command line end to end: a synthetic camera feed through the visual
tracker, and a static GPS fix through the geodetic tracker.
"""

from __future__ import annotations

import json
import os
import sys
from typing import List

import cv2
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from archiplace import main as cli  # type: ignore
from archiplace.session import ARSession  # type: ignore
from archiplace.utils import get_config  # type: ignore


class SyntheticCapture:
    """Stands in for ``cv2.VideoCapture`` with in-memory frames."""

    def __init__(self, frames: List[np.ndarray]):
        self.frames = list(frames)
        self.released = False

    def isOpened(self) -> bool:
        return True

    def read(self):
        if not self.frames:
            return False, None
        return True, self.frames.pop(0)

    def release(self):
        self.released = True


def create_translation_sequence(num_frames: int = 20, width: int = 640, height: int = 480) -> List[np.ndarray]:
    """Block texture panning 2 px per frame."""
    rng = np.random.RandomState(11)
    blocks = rng.randint(0, 256, size=(height // 16, width // 16), dtype=np.uint8)
    base = cv2.cvtColor(cv2.resize(blocks, (width, height), interpolation=cv2.INTER_NEAREST), cv2.COLOR_GRAY2BGR)
    cv2.putText(base, "GROUND", (width // 5, height // 2), cv2.FONT_HERSHEY_SIMPLEX, 2.0, (255, 255, 255), 4)

    frames = []
    for i in range(num_frames):
        matrix = np.float32([[1, 0, 2 * i], [0, 1, 0]])
        frames.append(cv2.warpAffine(base, matrix, (width, height), flags=cv2.INTER_NEAREST,
                                     borderMode=cv2.BORDER_REFLECT))
    return frames


def read_summary(capsys) -> dict:
    out = capsys.readouterr().out
    return json.loads(out[out.index("{"):])


class TestVisualPipeline:
    """Camera frames -> tracking -> smoothing -> placement."""

    def test_cli_places_model_on_ground(self, monkeypatch, capsys):
        capture = SyntheticCapture(create_translation_sequence(20))
        monkeypatch.setattr(cli, "open_capture", lambda source: capture)

        code = cli.main(["--video", "synthetic", "--max-frames", "15", "--place-after", "8"])

        assert code == 0
        assert capture.released
        summary = read_summary(capsys)
        assert summary["mode"] == "visual"
        assert summary["frames"] == 15
        assert summary["anchor"]["placed"] is True
        assert summary["anchor"]["position"][1] == 0.0
        assert summary["status"]["level"] == "tracking"
        assert summary["status"]["message"].startswith("Surface detected")

    def test_session_tracks_synthetic_sequence(self):
        session = ARSession(get_config(), mode="visual")
        session.initialize()
        session.set_model_loaded(True)
        session.placement.resize(640, 480)

        reports = [session.tick(frame) for frame in create_translation_sequence(12)]
        tracked = [r for r in reports if r.result.is_tracking]

        assert len(tracked) >= 6
        assert not reports[0].result.is_tracking
        assert tracked[-1].indicator.visible
        assert tracked[-1].smoothed_pose.position.z == pytest.approx(3.0, abs=0.5)
        session.dispose()

    def test_unopenable_source_fails(self, monkeypatch):
        class ClosedCapture(SyntheticCapture):
            def isOpened(self):
                return False

        monkeypatch.setattr(cli, "open_capture", lambda source: ClosedCapture([]))
        assert cli.main(["--video", "missing.mp4"]) == 1


class TestGeodeticPipeline:
    """Static fix -> distance/bearing -> local pose -> placement."""

    def test_cli_reports_target(self, capsys):
        code = cli.main([
            "--mode", "geodetic",
            "--fix", "37.0,-122.0,5",
            "--target", "37.001,-122.0",
            "--max-frames", "3",
            "--place-after", "1",
        ])

        assert code == 0
        summary = read_summary(capsys)
        assert summary["mode"] == "geodetic"
        assert summary["status"]["message"] == "Target: 111.2m away (±5.0m accuracy)"
        assert summary["anchor"]["placed"] is True
        assert summary["pose"]["confidence"] == 1.0

    def test_cli_requires_fix_and_target(self):
        assert cli.main(["--mode", "geodetic", "--target", "37.0,-122.0"]) == 2
        assert cli.main(["--mode", "geodetic", "--fix", "37.0", "--target", "37.0,-122.0"]) == 2

    def test_cli_poor_accuracy_is_searching(self, capsys):
        code = cli.main([
            "--mode", "geodetic",
            "--fix", "37.0,-122.0,80",
            "--target", "37.001,-122.0",
        ])

        assert code == 0
        summary = read_summary(capsys)
        # distance is known, so the status still shows it, but no pose is produced
        assert summary["status"]["level"] == "tracking"
        assert summary["pose"] is None
        assert summary["anchor"]["placed"] is False


def test_parse_floats():
    assert cli.parse_floats("1,2.5", 2, 3, "--target") == [1.0, 2.5]
    with pytest.raises(ValueError):
        cli.parse_floats("1", 2, 3, "--target")
    with pytest.raises(ValueError):
        cli.parse_floats("a,b", 2, 3, "--target")
