"""
Tests for ray casting, the virtual camera and the anchor lifecycle.
"""

import math
import os
import sys
import unittest

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from archiplace.placement import (  # type: ignore
    PlacementManager,
    VirtualCamera,
    euler_yxz_to_matrix,
    ray_plane_intersection,
)
from archiplace.pose import Pose, Vector3  # type: ignore
from archiplace.tracking.hittest import RigidTransform  # type: ignore


class TestRayPlaneIntersection(unittest.TestCase):
    """Ground plane intersection."""

    def test_straight_down(self):
        point = ray_plane_intersection((1.0, 2.0, -3.0), (0.0, -1.0, 0.0))
        np.testing.assert_allclose(point, [1.0, 0.0, -3.0])

    def test_result_lies_exactly_on_plane(self):
        rng = np.random.RandomState(3)
        for _ in range(50):
            origin = rng.uniform(-5, 5, size=3)
            origin[1] = abs(origin[1]) + 0.1
            direction = rng.uniform(-1, 1, size=3)
            direction[1] = -abs(direction[1]) - 0.01
            point = ray_plane_intersection(origin, direction)
            self.assertIsNotNone(point)
            self.assertEqual(point[1], 0.0)

    def test_parallel_ray_misses(self):
        self.assertIsNone(ray_plane_intersection((0.0, 1.0, 0.0), (1.0, 0.0, 0.0)))

    def test_ray_pointing_away_misses(self):
        self.assertIsNone(ray_plane_intersection((0.0, 1.0, 0.0), (0.0, 1.0, -1.0)))

    def test_offset_plane(self):
        # n . p + d = 0 with n = +y, d = -1 is the plane y = 1
        point = ray_plane_intersection((0.0, 3.0, 0.0), (0.0, -1.0, -1.0), offset=-1.0)
        np.testing.assert_allclose(point, [0.0, 1.0, -2.0])


class TestVirtualCamera(unittest.TestCase):
    """Camera orientation and rays."""

    def test_default_camera_looks_at_target(self):
        camera = VirtualCamera()
        expected = np.array([0.0, -1.5, -3.0]) / np.linalg.norm([0.0, -1.5, -3.0])
        np.testing.assert_allclose(camera.forward, expected, atol=1e-9)

        origin, direction = camera.ray_from_ndc(0.0, 0.0)
        np.testing.assert_allclose(origin, [0.0, 1.5, 0.0])
        np.testing.assert_allclose(direction, expected, atol=1e-9)

    def test_ndc_edges_follow_field_of_view(self):
        camera = VirtualCamera(fov_deg=60.0, aspect=1.0, position=(0.0, 0.0, 0.0), target=(0.0, 0.0, -1.0))
        _, direction = camera.ray_from_ndc(0.0, 1.0)
        angle = math.degrees(math.atan2(direction[1], -direction[2]))
        self.assertAlmostEqual(angle, 30.0, places=6)

    def test_straight_down_hits_point_below(self):
        camera = VirtualCamera(position=(1.0, 1.5, 2.0), target=(1.0, 0.0, 2.0))
        origin, direction = camera.ray_from_ndc(0.0, 0.0)
        point = ray_plane_intersection(origin, direction)
        self.assertEqual(point[1], 0.0)
        self.assertAlmostEqual(point[0], 1.0, places=3)
        self.assertAlmostEqual(point[2], 2.0, places=3)

    def test_viewer_transform(self):
        camera = VirtualCamera()
        camera.apply_viewer_transform(RigidTransform(Vector3(1.0, 2.0, 3.0)))
        np.testing.assert_allclose(camera.position, [1.0, 2.0, 3.0])
        np.testing.assert_allclose(camera.forward, [0.0, 0.0, -1.0], atol=1e-12)

    def test_device_pose_needs_world_tracking(self):
        camera = VirtualCamera()
        pose = Pose(position=Vector3(1.0, 2.0, 3.0))
        self.assertFalse(camera.apply_device_pose(pose))
        np.testing.assert_allclose(camera.position, [0.0, 1.5, 0.0])

        camera.enable_world_tracking()
        self.assertTrue(camera.apply_device_pose(pose))
        np.testing.assert_allclose(camera.position, [1.0, 2.0, 3.0])
        np.testing.assert_allclose(camera.rotation, np.eye(3), atol=1e-12)

        camera.disable_world_tracking()
        np.testing.assert_allclose(camera.position, [0.0, 1.5, 0.0])

    def test_device_pose_inverts_pitch_and_roll(self):
        camera = VirtualCamera()
        camera.enable_world_tracking()
        camera.apply_device_pose(Pose(rotation=Vector3(0.2, 0.4, -0.1)))
        np.testing.assert_allclose(camera.rotation, euler_yxz_to_matrix(-0.2, 0.4, 0.1))


class TestPlacementManager(unittest.TestCase):
    """Indicator, placement and reset."""

    def setUp(self):
        self.manager = PlacementManager({"screen_width": 1280, "screen_height": 720})

    def test_place_without_model_is_rejected(self):
        self.assertFalse(self.manager.place())
        self.assertFalse(self.manager.is_placed)
        self.assertEqual(self.manager.anchor.world_position, Vector3())

    def test_place_under_crosshair(self):
        self.manager.set_model_loaded(True)
        self.manager.set_model_rotation(45.0)
        self.assertTrue(self.manager.place())

        anchor = self.manager.anchor
        self.assertTrue(anchor.placed)
        self.assertAlmostEqual(anchor.world_position.x, 0.0, places=9)
        self.assertEqual(anchor.world_position.y, 0.0)
        self.assertAlmostEqual(anchor.world_position.z, -3.0, places=9)
        self.assertEqual(anchor.rotation_y_degrees, 45.0)
        self.assertFalse(self.manager.indicator.visible)

    def test_indicator_follows_plane_center(self):
        self.manager.set_model_loaded(True)
        pose = Pose(plane_center=(640.0, 720.0))  # bottom centre of the screen
        indicator = self.manager.update_indicator(pose)
        self.assertTrue(indicator.visible)
        self.assertAlmostEqual(indicator.position.y, 0.01)
        # lower on screen is closer to the camera
        self.assertGreater(indicator.position.z, -3.0)
        self.assertLess(indicator.position.z, 0.0)
        self.assertFalse(self.manager.anchor.placed)
        self.assertEqual(self.manager.anchor.world_position.y, 0.0)

    def test_indicator_defaults_to_screen_center(self):
        indicator = self.manager.update_indicator(Pose())
        self.assertAlmostEqual(indicator.position.z, -3.0, places=9)

    def test_indicator_frozen_after_placement(self):
        self.manager.set_model_loaded(True)
        self.manager.place()
        anchor = self.manager.anchor
        self.manager.update_indicator(Pose(plane_center=(0.0, 720.0)))
        self.assertEqual(self.manager.anchor, anchor)
        self.assertFalse(self.manager.indicator.visible)

    def test_fallback_when_ray_misses(self):
        self.manager.camera.look_at((0.0, 3.0, -3.0))  # looking up
        point, hit = self.manager.project_screen_point(640.0, 360.0)
        self.assertFalse(hit)
        np.testing.assert_allclose(point, [0.0, 0.0, -2.0], atol=1e-9)

        self.manager.set_model_loaded(True)
        self.assertTrue(self.manager.place())
        self.assertAlmostEqual(self.manager.anchor.world_position.z, -2.0, places=9)

    def test_rotation_and_scale_after_placement(self):
        self.manager.set_model_loaded(True)
        self.manager.place()
        self.manager.set_model_rotation(90.0)
        self.manager.set_model_scale(2.0)
        self.assertEqual(self.manager.anchor.rotation_y_degrees, 90.0)
        transform = self.manager.world_transform()
        np.testing.assert_allclose(transform[:3, :3], [[0, 0, 2], [0, 2, 0], [-2, 0, 0]], atol=1e-12)
        np.testing.assert_allclose(transform[:3, 3], [0.0, 0.0, -3.0], atol=1e-9)
        with self.assertRaises(ValueError):
            self.manager.set_model_scale(0.0)

    def test_reset_keeps_model(self):
        self.manager.set_model_loaded(True)
        self.manager.place()
        self.manager.reset()
        self.manager.reset()
        self.assertFalse(self.manager.is_placed)
        self.assertEqual(self.manager.anchor.world_position, Vector3())
        self.assertEqual(self.manager.anchor.rotation_y_degrees, 0.0)
        self.assertFalse(self.manager.indicator.visible)
        self.assertTrue(self.manager.model_loaded)

    def test_resize_updates_aspect(self):
        self.manager.resize(600, 600)
        self.assertEqual(self.manager.camera.aspect, 1.0)
        self.assertEqual(self.manager.screen_center, (300.0, 300.0))
        with self.assertRaises(ValueError):
            self.manager.resize(0, 600)


if __name__ == "__main__":
    unittest.main()
