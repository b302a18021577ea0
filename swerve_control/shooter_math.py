"""Firing solutions for the shooter.

Pure functions: every call depends only on its arguments and the constants
in swerve_control.config. Goal geometry is passed in explicitly (see
``goal_position``), so nothing here reads alliance or robot state.

Angle conventions:
- The shooter fires out of the back of the robot, so the static aim heading
  points from the goal toward the robot.
- The goal-to-robot angle is measured from the goal's facing direction
  (into the field), positive counter-clockwise, clamped to ±π/2.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Tuple

import numpy as np

from . import config as cfg
from .geometry import ChassisSpeeds, Pose2D, rotate, wrap_angle

Point = Tuple[float, float]


class Alliance(Enum):
    BLUE = "blue"
    RED = "red"


class ShotConfidence(Enum):
    """Coarse confidence bands used for operator feedback."""

    LOW = 0
    MEDIUM = 1
    HIGH = 2

    @staticmethod
    def from_score(confidence: float) -> "ShotConfidence":
        if confidence >= 0.99:
            return ShotConfidence.HIGH
        if confidence >= cfg.SHOT_CONFIDENCE_THRESHOLD:
            return ShotConfidence.MEDIUM
        return ShotConfidence.LOW


@dataclass(frozen=True)
class ShotData:
    """Firing solution for one tick.

    Attributes:
        pivot_angle: Shooter pivot (launch) angle (rad).
        rpm: Flywheel speed (RPM).
        robot_angle: Robot heading that aims the shooter at the goal (rad).
        confidence: Solution reliability in [0, 1].
        distance: Distance from the robot to the goal (m).
    """

    pivot_angle: float
    rpm: float
    robot_angle: float
    confidence: float
    distance: float

    @property
    def level(self) -> ShotConfidence:
        return ShotConfidence.from_score(self.confidence)


class InterpolatingTable:
    """Piecewise-linear lookup over (x, y) samples, clamped at both ends."""

    def __init__(self, samples: Sequence[Tuple[float, float]]):
        data = np.array(sorted(samples), dtype=float)
        if data.ndim != 2 or data.shape[0] < 2 or data.shape[1] != 2:
            raise ValueError("InterpolatingTable needs at least two (x, y) samples")
        self.xs = data[:, 0]
        self.ys = data[:, 1]

    def get(self, x: float) -> float:
        return float(np.interp(x, self.xs, self.ys))


PIVOT_ANGLE_LOOKUP = InterpolatingTable(cfg.PIVOT_ANGLE_TABLE)


# ============================================================================
# Goal geometry
# ============================================================================


def goal_position(alliance: Alliance) -> Point:
    """Goal position for an alliance. Red mirrors blue across the field length."""
    x, y = cfg.BLUE_GOAL
    if alliance == Alliance.RED:
        return cfg.FIELD_LENGTH - x, y
    return x, y


def goal_facing(alliance: Alliance) -> float:
    """Direction the goal opening faces, pointing into the field (rad)."""
    return math.pi if alliance == Alliance.RED else 0.0


def goal_distance(pose: Pose2D, goal: Point) -> float:
    return math.hypot(pose.x - goal[0], pose.y - goal[1])


def goal_to_robot_angle(pose: Pose2D, goal: Point, facing: float) -> float:
    """Angle of the robot as seen from the goal, relative to straight out (rad).

    Zero when the robot is directly in front of the goal, clamped to ±π/2 so
    positions behind the alliance wall do not wrap around.
    """
    bearing = math.atan2(pose.y - goal[1], pose.x - goal[0])
    angle = wrap_angle(bearing - facing)
    return max(-math.pi / 2.0, min(math.pi / 2.0, angle))


def calculate_static_robot_angle(pose: Pose2D, goal: Point, facing: float) -> float:
    """Robot heading that points the rear shooter at ``goal`` while stationary.

    Side shots are turned slightly away from the goal wall.
    """
    heading = math.atan2(pose.y - goal[1], pose.x - goal[0])
    heading -= goal_to_robot_angle(pose, goal, facing) * cfg.SIDE_SHOT_ROBOT_ANGLE_COEFFICIENT
    return wrap_angle(heading)


def in_range(pose: Pose2D, goal: Point) -> bool:
    return goal_distance(pose, goal) <= cfg.MAX_RANGE


# ============================================================================
# Shooter setpoints
# ============================================================================


def calculate_pivot_angle(distance: float, angle_to_goal: float) -> float:
    """Pivot angle from the measured distance table plus a side-shot adjustment (rad)."""
    return PIVOT_ANGLE_LOOKUP.get(distance) + abs(angle_to_goal) * cfg.SIDE_SHOT_PIVOT_COEFFICIENT


def calculate_shooter_rpm(distance: float) -> float:
    """Flywheel speed for a distance (RPM).

    Linear falloff from MAX_SHOOTER_RPM at MAX_RPM_FALLOFF_RANGE down to
    (1 - RPM_FALLOFF_COEFFICIENT) * MAX_SHOOTER_RPM at CLOSEST_RANGE; the
    distance is clamped to that interval first.
    """
    distance = max(cfg.CLOSEST_RANGE, min(cfg.MAX_RPM_FALLOFF_RANGE, distance))
    scalar = (distance - cfg.CLOSEST_RANGE) / (cfg.MAX_RPM_FALLOFF_RANGE - cfg.CLOSEST_RANGE)
    rpm_amount = cfg.MAX_SHOOTER_RPM * cfg.RPM_FALLOFF_COEFFICIENT
    base = cfg.MAX_SHOOTER_RPM - rpm_amount
    return base + rpm_amount * scalar


def calculate_exit_velocity(rpm: float, pivot_angle: float) -> float:
    """Horizontal speed of the note leaving the shooter (m/s)."""
    surface_speed = rpm * 2.0 * math.pi / 60.0 * cfg.SHOOTER_WHEEL_RADIUS
    return surface_speed * cfg.SHOOTER_EXIT_EFFICIENCY * math.cos(pivot_angle)


def time_of_flight(distance: float, angle_to_goal: float = 0.0) -> float:
    """Time for a note fired with the setpoints for ``distance`` to cover it (s)."""
    speed = calculate_exit_velocity(
        calculate_shooter_rpm(distance), calculate_pivot_angle(distance, angle_to_goal)
    )
    return distance / speed


# ============================================================================
# Moving shots
# ============================================================================


def inherited_velocity(pose: Pose2D, field_speeds: ChassisSpeeds) -> Tuple[float, float]:
    """Field velocity the note inherits at the shooter exit (m/s).

    Translational velocity plus the tangential velocity of the exit point
    from the robot's rotation (omega x r).
    """
    rx, ry = rotate(cfg.SHOOTER_OFFSET[0], cfg.SHOOTER_OFFSET[1], pose.heading)
    return (
        field_speeds.vx - field_speeds.omega * ry,
        field_speeds.vy + field_speeds.omega * rx,
    )


def calculate_robot_angle_momentum_compensation(
    pose: Pose2D, field_speeds: ChassisSpeeds, goal: Point, facing: float
) -> float:
    """Aim heading that cancels the momentum the note inherits from the robot.

    Solves for a virtual goal: the point the note must be aimed at so that,
    drifting with the inherited velocity for its time of flight, it lands in
    the real goal. The fixed-point iteration is damped and bounded, and with
    no inherited velocity the virtual goal is the real goal, so the result is
    exactly the static aim heading.

    Args:
        pose: Robot pose (optionally already predicted forward).
        field_speeds: Field-relative robot velocity.
        goal: Goal position (m).
        facing: Goal facing direction (rad).

    Returns:
        Compensated robot heading (rad).
    """
    drift_x, drift_y = inherited_velocity(pose, field_speeds)
    if drift_x == 0.0 and drift_y == 0.0:
        return calculate_static_robot_angle(pose, goal, facing)

    virtual_x, virtual_y = goal
    for _ in range(cfg.MOMENTUM_COMPENSATION_ITERATIONS):
        virtual = (virtual_x, virtual_y)
        flight = time_of_flight(
            goal_distance(pose, virtual), goal_to_robot_angle(pose, virtual, facing)
        )
        step_x = cfg.MOMENTUM_COMPENSATION_DAMPING * (goal[0] - drift_x * flight - virtual_x)
        step_y = cfg.MOMENTUM_COMPENSATION_DAMPING * (goal[1] - drift_y * flight - virtual_y)
        virtual_x += step_x
        virtual_y += step_y
        if math.hypot(step_x, step_y) < cfg.MOMENTUM_COMPENSATION_TOLERANCE:
            break

    return calculate_static_robot_angle(pose, (virtual_x, virtual_y), facing)


def predict_pose(pose: Pose2D, field_speeds: ChassisSpeeds, distance: float) -> Pose2D:
    """Move the pose forward by a distance-dependent lookahead.

    Farther shots take longer to line up, so they look further ahead.
    """
    period = cfg.ROBOT_PERIOD * (cfg.PREDICTION_FACTOR + cfg.PREDICTION_DISTANCE_FACTOR * distance)
    return Pose2D(
        pose.x + field_speeds.vx * period,
        pose.y + field_speeds.vy * period,
        pose.heading + field_speeds.omega * period,
    )


# ============================================================================
# Confidence
# ============================================================================


def _falloff(value: float, reliable: float, maximum: float) -> float:
    """1 up to ``reliable``, linear down to 0 at ``maximum``."""
    if value <= reliable:
        return 1.0
    if value >= maximum:
        return 0.0
    return 1.0 - (value - reliable) / (maximum - reliable)


def calculate_confidence(distance: float, angle_to_goal: float, robot_speeds: ChassisSpeeds) -> float:
    """Reliability of a shot in [0, 1].

    Product of four factors, each non-increasing: distance, off-axis angle,
    linear speed and angular speed. Non-finite inputs give 0.
    """
    values = (distance, angle_to_goal, robot_speeds.vx, robot_speeds.vy, robot_speeds.omega)
    if not all(math.isfinite(v) for v in values):
        return 0.0
    confidence = (
        _falloff(distance, cfg.MAX_RELIABLE_RANGE, cfg.MAX_RANGE)
        * _falloff(abs(angle_to_goal), cfg.MAX_RELIABLE_ANGLE, cfg.MAX_ANGLE)
        * _falloff(robot_speeds.linear_magnitude, cfg.MAX_RELIABLE_ROBOT_VELOCITY, cfg.MAX_ROBOT_VELOCITY)
        * _falloff(abs(robot_speeds.omega), cfg.MAX_RELIABLE_ANGULAR_VELOCITY, cfg.MAX_ANGULAR_VELOCITY)
    )
    return max(0.0, min(1.0, confidence))


def calculate_shot_data(
    pose: Pose2D,
    field_speeds: ChassisSpeeds,
    goal: Point,
    facing: float,
    degraded: bool = False,
    use_momentum_compensation: bool = True,
) -> ShotData:
    """Complete firing solution for the current pose and velocity.

    Args:
        pose: Estimated robot pose.
        field_speeds: Field-relative robot velocity.
        goal: Goal position (m).
        facing: Goal facing direction (rad).
        degraded: Hardware fault upstream; confidence is forced to 0.
        use_momentum_compensation: If False, aim with the static heading.

    Returns:
        ShotData. Non-finite pose or speeds also yield zero confidence.
    """
    if not (pose.is_finite() and field_speeds.is_finite()):
        return ShotData(cfg.STOW_PIVOT_ANGLE, 0.0, pose.heading, 0.0, float("nan"))

    distance = goal_distance(pose, goal)
    angle = goal_to_robot_angle(pose, goal, facing)
    predicted = predict_pose(pose, field_speeds, distance)

    rpm = calculate_shooter_rpm(distance)
    pivot_angle = calculate_pivot_angle(
        goal_distance(predicted, goal), goal_to_robot_angle(predicted, goal, facing)
    )
    if use_momentum_compensation:
        robot_angle = calculate_robot_angle_momentum_compensation(predicted, field_speeds, goal, facing)
    else:
        robot_angle = calculate_static_robot_angle(predicted, goal, facing)

    confidence = 0.0 if degraded else calculate_confidence(distance, angle, field_speeds)
    return ShotData(pivot_angle, rpm, robot_angle, confidence, distance)
