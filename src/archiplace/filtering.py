"""
Temporal smoothing of tracked poses.

A bank of six independent constant-velocity Kalman filters, one per position
and rotation axis. Cross-axis correlation is not modelled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional

import numpy as np

from .pose import Pose, Vector3

LOGGER = logging.getLogger(__name__)

DEFAULT_DT = 1.0 / 30.0


@dataclass
class SmoothingConfig:
    """Configuration for pose smoothing."""

    enable_smoothing: bool = True
    process_noise: float = 0.01  # Q: trust in the motion model
    measurement_noise: float = 0.1  # R: trust in the measurements
    rotation_noise_scale: float = 0.5  # rotation filters use (Q, R) * scale
    dt: float = DEFAULT_DT

    @classmethod
    def from_dict(cls, config: Optional[Dict]) -> "SmoothingConfig":
        cfg_dict = dict(config or {})
        return cls(**{k: v for k, v in cfg_dict.items() if k in cls.__dataclass_fields__})


class ScalarKalmanFilter:
    """
    One-dimensional constant-velocity Kalman filter.

    State is ``[value, velocity]`` with a 2x2 covariance. ``predict`` inflates
    the diagonal by the process noise; ``update`` corrects value and velocity
    from a scalar measurement.
    """

    def __init__(
        self,
        process_noise: float = 0.01,
        measurement_noise: float = 0.1,
        dt: float = DEFAULT_DT,
    ):
        if process_noise <= 0 or measurement_noise <= 0:
            raise ValueError("Process and measurement noise must be positive.")
        self.Q = float(process_noise)
        self.R = float(measurement_noise)
        self.dt = float(dt)
        self.x = 0.0
        self.v = 0.0
        self.P = np.eye(2, dtype=np.float64)

    def predict(self) -> float:
        """Advance the state by one time step."""
        self.x = self.x + self.v * self.dt
        self.P[0, 0] += self.Q
        self.P[1, 1] += self.Q
        return self.x

    def update(self, measurement: float) -> float:
        """Correct the state with a measurement and return the new estimate."""
        innovation = float(measurement) - self.x
        S = self.P[0, 0] + self.R
        K = np.array([self.P[0, 0] / S, self.P[1, 0] / S])

        self.x = self.x + K[0] * innovation
        self.v = self.v + K[1] * innovation

        P00, P01 = self.P[0, 0], self.P[0, 1]
        P10, P11 = self.P[1, 0], self.P[1, 1]
        self.P = np.array(
            [
                [(1.0 - K[0]) * P00, (1.0 - K[0]) * P01],
                [P10 - K[1] * P00, P11 - K[1] * P01],
            ],
            dtype=np.float64,
        )
        return self.x

    def filter(self, measurement: float) -> float:
        """Predict then update."""
        self.predict()
        return self.update(measurement)

    def set_noise(self, process_noise: float, measurement_noise: float):
        """Retune the filter without touching its state."""
        if process_noise <= 0 or measurement_noise <= 0:
            raise ValueError("Process and measurement noise must be positive.")
        self.Q = float(process_noise)
        self.R = float(measurement_noise)

    def reset(self):
        """Return to the zero state with unit covariance."""
        self.x = 0.0
        self.v = 0.0
        self.P = np.eye(2, dtype=np.float64)


class PoseKalmanFilter:
    """
    Smoothing bank for a 6-DoF pose.

    Position filters use ``(Q, R)``; rotation filters use the scaled pair
    ``(Q, R) * rotation_noise_scale`` since orientation sensors are less
    noisy than vision-derived position.
    """

    def __init__(self, config: Optional[SmoothingConfig] = None):
        self.config = config or SmoothingConfig()
        q, r = self.config.process_noise, self.config.measurement_noise
        s = self.config.rotation_noise_scale
        dt = self.config.dt

        self.pos_x = ScalarKalmanFilter(q, r, dt)
        self.pos_y = ScalarKalmanFilter(q, r, dt)
        self.pos_z = ScalarKalmanFilter(q, r, dt)
        self.rot_x = ScalarKalmanFilter(q * s, r * s, dt)
        self.rot_y = ScalarKalmanFilter(q * s, r * s, dt)
        self.rot_z = ScalarKalmanFilter(q * s, r * s, dt)

    @property
    def position_filters(self):
        return (self.pos_x, self.pos_y, self.pos_z)

    @property
    def rotation_filters(self):
        return (self.rot_x, self.rot_y, self.rot_z)

    def filter(self, pose: Optional[Pose]) -> Optional[Pose]:
        """Return a smoothed copy of ``pose``; hints and confidence pass through."""
        if pose is None:
            return None
        if not self.config.enable_smoothing:
            return pose

        position = Vector3(
            self.pos_x.filter(pose.position.x),
            self.pos_y.filter(pose.position.y),
            self.pos_z.filter(pose.position.z),
        )
        rotation = Vector3(
            self.rot_x.filter(pose.rotation.x),
            self.rot_y.filter(pose.rotation.y),
            self.rot_z.filter(pose.rotation.z),
        )
        return replace(pose, position=position, rotation=rotation)

    def set_noise(self, process_noise: float, measurement_noise: float):
        """Change Q and R for all six filters, keeping the rotation scaling."""
        s = self.config.rotation_noise_scale
        for kf in self.position_filters:
            kf.set_noise(process_noise, measurement_noise)
        for kf in self.rotation_filters:
            kf.set_noise(process_noise * s, measurement_noise * s)
        self.config.process_noise = process_noise
        self.config.measurement_noise = measurement_noise
        LOGGER.debug("Smoothing noise set: Q=%.4f R=%.4f", process_noise, measurement_noise)

    def reset(self):
        """Zero every filter so stale velocity cannot leak into a new placement."""
        for kf in self.position_filters + self.rotation_filters:
            kf.reset()
