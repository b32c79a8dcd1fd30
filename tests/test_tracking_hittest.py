"""
Tests for the hit-test tracker against a fake host session.
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from archiplace.errors import InitializationError  # type: ignore
from archiplace.pose import Vector3  # type: ignore
from archiplace.tracking.hittest import (  # type: ignore
    HitTestFrame,
    HitTestResult,
    HitTestSession,
    HitTestTracker,
    RigidTransform,
    ViewerPose,
)


class FakeHit(HitTestResult):
    def __init__(self, pose):
        self.pose = pose

    def get_pose(self, reference_space):
        return self.pose


class FakeFrame(HitTestFrame):
    def __init__(self, viewer_pose=None, hits=(), error=None):
        self.viewer_pose = viewer_pose
        self.hits = list(hits)
        self.error = error

    def get_viewer_pose(self, reference_space):
        if self.error is not None:
            raise self.error
        return self.viewer_pose

    def get_hit_test_results(self, source):
        return self.hits


class FakeSession(HitTestSession):
    def __init__(self, supported=True, fail_start=False):
        self.supported = supported
        self.fail_start = fail_start
        self.calls = []
        self.end_listeners = []

    def is_supported(self, mode="immersive-ar"):
        return self.supported

    def start(self, mode, required_features, optional_features):
        self.calls.append(("start", mode, tuple(required_features), tuple(optional_features)))
        if self.fail_start:
            raise RuntimeError("user declined")

    def request_reference_space(self, kind):
        self.calls.append(("space", kind))
        return kind

    def request_hit_test_source(self, space):
        self.calls.append(("source", space))
        return "source"

    def add_end_listener(self, callback):
        self.end_listeners.append(callback)

    def end(self):
        self.calls.append(("end",))
        for callback in self.end_listeners:
            callback()


VIEWER = ViewerPose(
    transform=RigidTransform(Vector3(0.0, 1.6, 0.0)),
    views=(RigidTransform(Vector3(0.01, 1.6, 0.0)),),
)
HIT = RigidTransform(Vector3(0.2, 0.0, -1.5), (0.0, 0.0, 0.0, 1.0))


class TestHitTestTracker(unittest.TestCase):
    """Session lifecycle and per-frame hit handling."""

    def make_tracker(self, **session_kwargs):
        session = FakeSession(**session_kwargs)
        tracker = HitTestTracker(session)
        tracker.init()
        tracker.start_session()
        return tracker, session

    def test_unsupported_host_fails_init(self):
        with self.assertRaises(InitializationError):
            HitTestTracker(FakeSession(supported=False)).init()
        with self.assertRaises(InitializationError):
            HitTestTracker(None).init()

    def test_start_failure_is_initialization_error(self):
        tracker = HitTestTracker(FakeSession(fail_start=True))
        tracker.init()
        with self.assertRaises(InitializationError):
            tracker.start_session()
        self.assertFalse(tracker.is_session_active)

    def test_session_setup_order(self):
        _, session = self.make_tracker()
        self.assertEqual(
            session.calls,
            [
                ("start", "immersive-ar", ("hit-test",), ("dom-overlay",)),
                ("space", "local"),
                ("space", "viewer"),
                ("source", "viewer"),
            ],
        )

    def test_hits_ramp_confidence(self):
        tracker, _ = self.make_tracker()
        frame = FakeFrame(VIEWER, [FakeHit(HIT), FakeHit(None)])
        results = [tracker.process_frame(frame) for _ in range(4)]

        self.assertFalse(results[2].is_tracking)
        final = results[-1]
        self.assertTrue(final.is_tracking)
        self.assertAlmostEqual(final.pose.confidence, 0.6)
        self.assertEqual(final.pose.position, HIT.position)
        self.assertEqual(final.feature_count, 2)
        self.assertEqual(final.plane_count, 2)
        self.assertIs(final.hit_test_pose, HIT)
        self.assertIs(final.viewer_transform, VIEWER.views[0])

    def test_miss_decays_confidence(self):
        tracker, _ = self.make_tracker()
        hit_frame = FakeFrame(VIEWER, [FakeHit(HIT)])
        for _ in range(4):
            tracker.process_frame(hit_frame)
        result = tracker.process_frame(FakeFrame(VIEWER, []))
        self.assertAlmostEqual(tracker.confidence, 0.5)
        self.assertFalse(result.is_tracking)
        self.assertIsNone(result.pose)

    def test_missing_viewer_pose_leaves_confidence(self):
        tracker, _ = self.make_tracker()
        tracker.process_frame(FakeFrame(VIEWER, [FakeHit(HIT)]))
        result = tracker.process_frame(FakeFrame(None, [FakeHit(HIT)]))
        self.assertFalse(result.is_tracking)
        self.assertAlmostEqual(tracker.confidence, 0.15)

    def test_frame_error_decays_confidence(self):
        tracker, _ = self.make_tracker()
        tracker.process_frame(FakeFrame(VIEWER, [FakeHit(HIT)]))
        tracker.process_frame(FakeFrame(error=RuntimeError("lost")))
        self.assertAlmostEqual(tracker.confidence, 0.05)

    def test_error_after_hit_keeps_reinforcement(self):
        class BrokenViewer:
            transform = VIEWER.transform

            @property
            def views(self):
                raise RuntimeError("views unavailable")

        tracker, _ = self.make_tracker()
        result = tracker.process_frame(FakeFrame(BrokenViewer(), [FakeHit(HIT)]))
        self.assertAlmostEqual(tracker.confidence, 0.15)
        self.assertIsNone(result.viewer_transform)

    def test_viewer_transform_without_views(self):
        tracker, _ = self.make_tracker()
        viewer = ViewerPose(transform=RigidTransform(Vector3(1.0, 1.0, 1.0)))
        result = tracker.process_frame(FakeFrame(viewer, []))
        self.assertIs(result.viewer_transform, viewer.transform)

    def test_inactive_session_reports_not_tracking(self):
        tracker = HitTestTracker(FakeSession())
        result = tracker.process_frame(FakeFrame(VIEWER, [FakeHit(HIT)]))
        self.assertFalse(result.is_tracking)
        self.assertFalse(result.has_features)

    def test_session_end_resets(self):
        tracker, session = self.make_tracker()
        for _ in range(4):
            tracker.process_frame(FakeFrame(VIEWER, [FakeHit(HIT)]))
        session.end()
        self.assertFalse(tracker.is_session_active)
        self.assertEqual(tracker.confidence, 0.0)
        self.assertFalse(tracker.process_frame(FakeFrame(VIEWER, [FakeHit(HIT)])).is_tracking)

    def test_dispose_ends_session_once(self):
        tracker, session = self.make_tracker()
        tracker.dispose()
        tracker.dispose()
        self.assertEqual(session.calls.count(("end",)), 1)
        self.assertTrue(tracker.disposed)

    def test_reset_is_idempotent(self):
        tracker, _ = self.make_tracker()
        for _ in range(4):
            tracker.process_frame(FakeFrame(VIEWER, [FakeHit(HIT)]))
        tracker.reset()
        tracker.reset()
        self.assertEqual(tracker.confidence, 0.0)
        self.assertIsNone(tracker.current_pose)
        self.assertTrue(tracker.is_session_active)


if __name__ == "__main__":
    unittest.main()
