"""
Confidence hysteresis shared by the visual and hit-test trackers.
"""

from __future__ import annotations

from dataclasses import dataclass

CONFIDENCE_GAIN = 0.15
CONFIDENCE_DECAY = 0.10
TRACKING_THRESHOLD = 0.5


@dataclass
class ConfidenceGate:
    """
    Rate-limited confidence in [0, 1].

    Each success adds ``gain`` and each failure removes ``decay``. Tracking is
    reported only while confidence is strictly above ``threshold``, so one
    good frame cannot make an indicator pop in and one bad frame cannot make
    it drop out once confidence is comfortably above the threshold.
    """

    gain: float = CONFIDENCE_GAIN
    decay: float = CONFIDENCE_DECAY
    threshold: float = TRACKING_THRESHOLD
    confidence: float = 0.0

    def reinforce(self) -> float:
        self.confidence = self._quantize(min(1.0, self.confidence + self.gain))
        return self.confidence

    def weaken(self) -> float:
        self.confidence = self._quantize(max(0.0, self.confidence - self.decay))
        return self.confidence

    @property
    def is_confident(self) -> bool:
        return self.confidence > self.threshold

    def reset(self):
        self.confidence = 0.0

    @staticmethod
    def _quantize(value: float) -> float:
        # keep repeated +/- steps on exact decimals
        return round(value, 6)
