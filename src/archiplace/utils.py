"""
Shared helper functions and utilities.

Logging setup, the nested default configuration and a small frame-rate
meter used by the session loop.
"""

import copy
import json
import logging
import os
import time
from typing import Callable, Dict, Optional

LOGGER = logging.getLogger(__name__)

TRACKING_MODES = ("visual", "hit_test", "geodetic")


def setup_logging(level=logging.INFO):
    """Set up logging configuration.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    LOGGER.info("Logging initialized")


def default_config() -> Dict:
    """Return a fresh copy of the default configuration."""
    return {
        # 'visual', 'hit_test', 'geodetic' or None to pick from capabilities
        'tracking_mode': None,

        'visual_tracking': {
            # Detector selection: 'orb', 'akaze', 'brisk'
            'method': 'orb',
            'max_features': 500,
            'fast_threshold': 20,
            'orb_scale_factor': 1.2,
            'orb_nlevels': 8,

            # Matching / homography
            'match_distance_ratio': 3.0,
            'match_distance_floor': 30.0,
            'min_inliers': 10,
            'ransac_threshold': 3.0,  # pixels

            'min_search_features': 20,
            'assumed_depth': 3.0,  # meters
        },

        'geodetic': {
            'gps_accuracy_threshold': 50.0,  # meters
            'min_distance': 5.0,  # meters
            'max_distance': 1000.0,  # meters
            'fix_timeout_s': 10.0,
        },

        # Pose smoothing (constant-velocity Kalman bank)
        'smoothing': {
            'enable_smoothing': True,
            'process_noise': 0.01,
            'measurement_noise': 0.1,
            'rotation_noise_scale': 0.5,
            'dt': 1.0 / 30.0,
        },

        'placement': {
            'screen_width': 1280,
            'screen_height': 720,
            'fov_deg': 60.0,
            'camera_height': 1.5,  # meters
            'look_at_distance': 3.0,  # meters
            'fallback_distance': 2.0,  # meters
            'indicator_lift': 0.01,
        },

        'session': {
            'log_interval': 60,  # frames between status log lines
            'world_tracking': False,
            'outdoor': False,  # prefer GPS tracking when no mode is set
        },
    }


def _merge(base: Dict, overrides: Dict) -> Dict:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def get_config(config_path=None, overrides: Optional[Dict] = None):
    """Load configuration from file or return defaults.

    Sections present in the file are merged key by key into the defaults.

    Args:
        config_path: Path to JSON configuration file (optional)
        overrides: Extra values merged last (optional)

    Returns:
        dict: Configuration dictionary
    """
    config = default_config()

    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                _merge(config, json.load(f))
            LOGGER.info("Configuration loaded from %s", config_path)
        except (OSError, ValueError) as e:
            LOGGER.warning("Failed to load config from %s: %s", config_path, e)
    elif config_path:
        LOGGER.warning("Config file not found: %s", config_path)

    if overrides:
        _merge(config, copy.deepcopy(overrides))

    return config


def save_config(config, config_path):
    """Save configuration to file.

    Args:
        config: Configuration dictionary
        config_path: Path to save configuration file

    Returns:
        bool: True if save successful, False otherwise
    """
    try:
        with open(config_path, 'w') as f:
            json.dump(config, f, indent=4)
        LOGGER.info("Configuration saved to %s", config_path)
        return True
    except (OSError, TypeError) as e:
        LOGGER.error("Failed to save config to %s: %s", config_path, e)
        return False


def validate_config(config):
    """Validate configuration parameters.

    Args:
        config: Configuration dictionary

    Returns:
        bool: True if valid, False otherwise
    """
    required_sections = ['visual_tracking', 'geodetic', 'smoothing', 'placement']

    for key in required_sections:
        if key not in config:
            LOGGER.error("Missing required config section: %s", key)
            return False

    mode = config.get('tracking_mode')
    if mode is not None and mode not in TRACKING_MODES:
        LOGGER.error("Unknown tracking mode: %s", mode)
        return False

    placement = config['placement']
    if placement.get('screen_width', 1) <= 0 or placement.get('screen_height', 1) <= 0:
        LOGGER.error("Screen dimensions must be positive")
        return False

    smoothing = config['smoothing']
    if smoothing.get('process_noise', 1) <= 0 or smoothing.get('measurement_noise', 1) <= 0:
        LOGGER.error("Smoothing noise must be positive")
        return False

    geodetic = config['geodetic']
    if geodetic.get('min_distance', 0) > geodetic.get('max_distance', float('inf')):
        LOGGER.error("geodetic.min_distance exceeds geodetic.max_distance")
        return False

    if config['visual_tracking'].get('max_features', 1) <= 0:
        LOGGER.error("max_features must be positive")
        return False

    LOGGER.info("Configuration validated successfully")
    return True


class FrameRateMeter:
    """Counts ticks and reports frames per second once per ``interval``."""

    def __init__(self, interval: float = 1.0, clock: Callable[[], float] = time.perf_counter):
        self.interval = interval
        self._clock = clock
        self._window_start = clock()
        self._count = 0
        self.fps = 0.0

    def tick(self) -> Optional[float]:
        """Count one frame; returns the new FPS value when a window closes."""
        self._count += 1
        now = self._clock()
        elapsed = now - self._window_start
        if elapsed < self.interval:
            return None
        self.fps = self._count / elapsed
        self._count = 0
        self._window_start = now
        return self.fps

    def reset(self):
        self._window_start = self._clock()
        self._count = 0
        self.fps = 0.0
