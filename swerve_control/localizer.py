"""Pose estimation by fusing wheel odometry with latent vision measurements.

This module keeps one authoritative field-relative pose:
- Odometry twists are composed onto the estimate every control tick (predict)
- A short, time-ordered history of odometry-only poses is retained
- Vision poses arrive late and out of order; each one is carried forward to
  the present through the odometry recorded since its capture time and then
  blended into the current estimate (update)

The correction is a one-step explicit filter: history is never rewritten, only
the current estimate moves.
"""

import bisect
import logging
import math
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import InvalidInputError
from .geometry import Pose2D, Twist2D, interpolate_angle


@dataclass(frozen=True)
class VisionMeasurement:
    """One externally computed robot pose.

    Attributes:
        pose: Field-relative robot pose reported by the vision pipeline.
        timestamp: Capture time in the control loop time base (seconds).
        trust: Confidence weight in [0, 1]; lower trust = weaker correction.
        ambiguity: Pose ambiguity reported by the solver (>= 0); higher = weaker.
    """

    pose: Pose2D
    timestamp: float
    trust: float = 1.0
    ambiguity: float = 0.0


@dataclass(frozen=True)
class PoseHistorySample:
    """Odometry-only pose at a past control tick."""

    timestamp: float
    pose: Pose2D


def vision_blend_weight(
    trust: float, ambiguity: float, trust_exponent: float, max_ambiguity: float
) -> float:
    """Map trust and ambiguity to a correction weight in [0, 1].

    Monotonically increasing in trust and decreasing in ambiguity. Full trust
    with zero ambiguity gives 1.0 (snap to the measurement); ambiguity at or
    above ``max_ambiguity`` gives 0.0 (measurement ignored).
    """
    trust = max(0.0, min(1.0, trust))
    ambiguity_factor = max(0.0, 1.0 - max(0.0, ambiguity) / max_ambiguity)
    return (trust ** trust_exponent) * ambiguity_factor


class PoseEstimator:
    """Odometry and vision fusion with latency compensation.

    Both public mutators take the same lock, so a vision insertion from the
    network task is never interleaved with a predict from the control loop.
    Callers block on the lock rather than dropping measurements.
    """

    def __init__(self, initial_pose: Optional[Pose2D] = None, config=None):
        """Initialize the estimator.

        Args:
            initial_pose: Starting pose (default: field origin).
            config: Configuration module or object with estimator parameters.
                    If None, uses default values from swerve_control.config.
        """
        if config is None:
            from swerve_control import config as cfg
        else:
            cfg = config

        self.history_seconds: float = cfg.POSE_HISTORY_SECONDS
        self.trust_exponent: float = cfg.VISION_TRUST_EXPONENT
        self.max_ambiguity: float = cfg.VISION_MAX_AMBIGUITY

        pose = initial_pose if initial_pose is not None else Pose2D()
        self._estimate: Pose2D = pose
        self._odometry_pose: Pose2D = pose
        self._timestamps: List[float] = []
        self._poses: List[Pose2D] = []
        self._lock = threading.Lock()

        # Diagnostics (for logging/tuning)
        self.vision_accepted = 0
        self.vision_rejected = 0
        self.last_correction = 0.0

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def predict(self, odometry_delta: Twist2D, timestamp: float) -> Pose2D:
        """Compose one tick of odometry onto the estimate and record history.

        Args:
            odometry_delta: Robot-frame twist measured since the previous tick.
            timestamp: Control loop time of this tick (seconds).

        Returns:
            The updated pose estimate. Non-finite input is rejected and the
            estimate is returned unchanged.
        """
        if not odometry_delta.is_finite() or not math.isfinite(timestamp):
            logging.warning(f"Rejected non-finite odometry delta {odometry_delta} at t={timestamp}")
            return self.get_estimated_pose()

        with self._lock:
            self._odometry_pose = self._odometry_pose.exp(odometry_delta)
            self._estimate = self._estimate.exp(odometry_delta)

            if self._timestamps and timestamp <= self._timestamps[-1]:
                # Same tick reported twice: keep the later pose
                self._poses[-1] = self._odometry_pose
            else:
                self._timestamps.append(timestamp)
                self._poses.append(self._odometry_pose)

            cutoff = self._timestamps[-1] - self.history_seconds
            drop = bisect.bisect_left(self._timestamps, cutoff)
            if drop:
                del self._timestamps[:drop]
                del self._poses[:drop]

            return self._estimate

    # ------------------------------------------------------------------
    # Vision correction
    # ------------------------------------------------------------------

    def _odometry_at(self, timestamp: float) -> Pose2D:
        """Interpolate the odometry-only pose at ``timestamp``. Caller holds the lock."""
        index = bisect.bisect_left(self._timestamps, timestamp)
        if index >= len(self._timestamps):
            return self._poses[-1]
        if self._timestamps[index] == timestamp or index == 0:
            return self._poses[index]

        t0, t1 = self._timestamps[index - 1], self._timestamps[index]
        fraction = (timestamp - t0) / (t1 - t0)
        return self._poses[index - 1].interpolate(self._poses[index], fraction)

    def add_vision_measurement(self, measurement: VisionMeasurement) -> bool:
        """Blend a latent vision pose into the current estimate.

        The measurement is moved forward to the present by the odometry motion
        recorded between its capture time and now, then the current estimate is
        pulled toward it by the blend weight. Translation blends linearly,
        heading along the shortest arc.

        Args:
            measurement: Vision pose with capture timestamp and trust indicators.

        Returns:
            True if the measurement was fused, False if it was discarded
            (older than the retained history, non-finite, or zero weight).
        """
        if not measurement.pose.is_finite() or not math.isfinite(measurement.timestamp):
            logging.warning(f"Rejected non-finite vision measurement: {measurement}")
            with self._lock:
                self.vision_rejected += 1
            return False

        weight = vision_blend_weight(
            measurement.trust, measurement.ambiguity, self.trust_exponent, self.max_ambiguity
        )

        with self._lock:
            if not self._timestamps or measurement.timestamp < self._timestamps[0]:
                logging.debug(
                    f"Discarded stale vision measurement at t={measurement.timestamp:.3f}"
                )
                self.vision_rejected += 1
                return False
            if weight <= 0.0:
                self.vision_rejected += 1
                return False

            # Future timestamps clamp to the newest sample rather than extrapolating
            timestamp = min(measurement.timestamp, self._timestamps[-1])
            odometry_then = self._odometry_at(timestamp)
            motion_since = self._odometry_pose.relative_to(odometry_then)
            vision_now = measurement.pose.transform_by(motion_since)

            current = self._estimate
            corrected = Pose2D(
                current.x + weight * (vision_now.x - current.x),
                current.y + weight * (vision_now.y - current.y),
                interpolate_angle(current.heading, vision_now.heading, weight),
            )
            self.last_correction = current.distance_to(corrected)
            self._estimate = corrected
            self.vision_accepted += 1
            return True

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_estimated_pose(self) -> Pose2D:
        """Current best pose estimate. Pure read."""
        with self._lock:
            return self._estimate

    def get_odometry_pose(self) -> Pose2D:
        """Odometry-only pose, never corrected by vision."""
        with self._lock:
            return self._odometry_pose

    def history(self) -> List[PoseHistorySample]:
        """Snapshot of the retained odometry history, oldest first."""
        with self._lock:
            return [PoseHistorySample(t, p) for t, p in zip(self._timestamps, self._poses)]

    def reset_pose(self, pose: Pose2D, timestamp: Optional[float] = None) -> None:
        """Reset both poses and clear the history.

        Args:
            pose: New pose for the estimate and the odometry.
            timestamp: If given, seeds the history with this pose so vision
                captured from this time onward can be fused immediately.
        """
        if not pose.is_finite():
            raise InvalidInputError(f"Cannot reset to non-finite pose {pose}")
        with self._lock:
            self._estimate = pose
            self._odometry_pose = pose
            self._timestamps.clear()
            self._poses.clear()
            if timestamp is not None:
                self._timestamps.append(timestamp)
                self._poses.append(pose)
        logging.info(f"Pose reset to ({pose.x:.2f}, {pose.y:.2f}, {math.degrees(pose.heading):.1f}°)")

    def get_diagnostics(self) -> Dict[str, float]:
        """Get diagnostic information for logging and debugging.

        Returns:
            Dictionary with vision acceptance counters, the size of the last
            correction and the history length.
        """
        with self._lock:
            return {
                "vision_accepted": self.vision_accepted,
                "vision_rejected": self.vision_rejected,
                "last_correction": self.last_correction,
                "history_length": len(self._timestamps),
            }
