"""Operator and point-seek drive command shaping.

Maps normalized operator axes (-1..1) or a target pose into chassis speeds:
- Deadband with rescaling, then a power response curve for fine control near zero
- Translation magnitude clamped to 1 before scaling, so combined x/y input
  never exceeds the speed envelope
- Moving-average smoothing of the shaped inputs and of the speed limit
- Heading-lock mode: operator drives translation, a PID holds the heading
"""

import math
from collections import deque
from typing import Deque

from .geometry import ChassisSpeeds, Pose2D
from .pid import PIDController


def apply_deadband(value: float, deadband: float) -> float:
    """Zero inputs inside the deadband and rescale the rest to keep full range."""
    if abs(value) <= deadband:
        return 0.0
    return math.copysign((abs(value) - deadband) / (1.0 - deadband), value)


def curve(value: float, exponent: float) -> float:
    """Sign-preserving power curve: sign(v) * |v| ** exponent."""
    return math.copysign(abs(value) ** exponent, value)


def clamp_magnitude(value: float, limit: float) -> float:
    """Clamp |value| to ``limit`` keeping the sign."""
    if abs(value) > limit:
        return math.copysign(limit, value)
    return value


def _finite_or_zero(value: float) -> float:
    return value if math.isfinite(value) else 0.0


class MovingAverage:
    """Moving average over the last ``size`` samples (fewer while filling)."""

    def __init__(self, size: int):
        self._samples: Deque[float] = deque(maxlen=max(1, size))

    def calculate(self, value: float) -> float:
        self._samples.append(value)
        return sum(self._samples) / len(self._samples)

    def reset(self) -> None:
        self._samples.clear()


class DriveController:
    """Shapes operator input and seek goals into chassis speeds.

    Holds smoothing filters and PID state, so use one instance per drivetrain.
    """

    def __init__(self, config=None):
        """Initialize the drive controller.

        Args:
            config: Configuration module or object with drive parameters.
                    If None, uses default values from swerve_control.config.
        """
        if config is None:
            from swerve_control import config as cfg
        else:
            cfg = config

        self.deadband: float = cfg.DRIVE_DEADBAND
        self.drive_curve: float = cfg.DRIVE_CURVE_EXPONENT
        self.turn_curve: float = cfg.TURN_CURVE_EXPONENT
        self.speed_multiplier: float = cfg.DRIVE_SPEED_MULTIPLIER
        self.rotational_speed: float = cfg.DRIVE_ROTATIONAL_SPEED
        self.minimum_speed: float = cfg.DRIVE_MINIMUM_SPEED
        self.max_angular_speed: float = cfg.MAX_ANGULAR_SPEED

        self.drive_filter = MovingAverage(cfg.DRIVE_FILTER_SIZE)
        self.turn_filter = MovingAverage(cfg.TURN_FILTER_SIZE)
        self.max_speed_filter = MovingAverage(cfg.MAX_SPEED_FILTER_SIZE)

        self.heading_controller = PIDController(
            cfg.HEADING_LOCK_KP,
            kd=cfg.HEADING_LOCK_KD,
            integral_limit=cfg.PID_INTEGRAL_LIMIT,
            continuous=True,
            tolerance=cfg.TRAJECTORY_HEADING_TOLERANCE,
        )
        self.x_controller = PIDController(
            cfg.DRIVE_TO_POSE_KP, ki=cfg.DRIVE_TO_POSE_KI, integral_limit=cfg.PID_INTEGRAL_LIMIT,
            tolerance=cfg.TRAJECTORY_POSITION_TOLERANCE,
        )
        self.y_controller = PIDController(
            cfg.DRIVE_TO_POSE_KP, ki=cfg.DRIVE_TO_POSE_KI, integral_limit=cfg.PID_INTEGRAL_LIMIT,
            tolerance=cfg.TRAJECTORY_POSITION_TOLERANCE,
        )

    def reset(self) -> None:
        """Clear filters and PID state (e.g. when switching drive modes)."""
        for f in (self.drive_filter, self.turn_filter, self.max_speed_filter):
            f.reset()
        for c in (self.heading_controller, self.x_controller, self.y_controller):
            c.reset()

    def _shape_translation(self, x: float, y: float, max_speed: float):
        x, y = _finite_or_zero(x), _finite_or_zero(y)
        magnitude = min(1.0, math.hypot(x, y))
        direction = math.atan2(y, x)

        magnitude = apply_deadband(magnitude, self.deadband)
        if magnitude == 0.0:
            self.drive_filter.reset()
        magnitude = self.drive_filter.calculate(curve(magnitude, self.drive_curve))
        maximum_speed = self.max_speed_filter.calculate(max_speed * self.speed_multiplier)
        return (
            magnitude * math.cos(direction) * maximum_speed,
            magnitude * math.sin(direction) * maximum_speed,
        )

    def get_speeds(
        self, x: float, y: float, theta: float, robot_heading: float, max_speed: float
    ) -> ChassisSpeeds:
        """Convert operator axes into robot-relative chassis speeds.

        Args:
            x: Field-relative forward axis, -1 to 1.
            y: Field-relative left axis, -1 to 1.
            theta: Rotation axis, -1 to 1 (counter-clockwise positive).
            robot_heading: Current robot heading for the field-relative conversion (rad).
            max_speed: Maximum linear speed of the drivetrain (m/s).

        Returns:
            Robot-relative ChassisSpeeds.
        """
        vx, vy = self._shape_translation(x, y, max_speed)

        theta = apply_deadband(clamp_magnitude(_finite_or_zero(theta), 1.0), self.deadband)
        if theta == 0.0:
            self.turn_filter.reset()
        theta = self.turn_filter.calculate(curve(theta, self.turn_curve))

        return ChassisSpeeds.from_field_relative(vx, vy, theta * self.rotational_speed, robot_heading)

    def drive_with_heading_lock(
        self,
        x: float,
        y: float,
        target_heading: float,
        estimated_pose: Pose2D,
        max_speed: float,
        dt: float,
    ) -> ChassisSpeeds:
        """Operator translation with the heading held on a closed-loop target.

        Used for aiming while driving: translation stays open loop, rotation
        comes from the heading PID.
        """
        vx, vy = self._shape_translation(x, y, max_speed)
        omega = self.heading_controller.calculate(estimated_pose.heading, target_heading, dt)
        omega = clamp_magnitude(omega, self.max_angular_speed)
        return ChassisSpeeds.from_field_relative(vx, vy, omega, estimated_pose.heading)

    def drive_to_pose(
        self, target: Pose2D, estimated_pose: Pose2D, max_speed: float, dt: float
    ) -> ChassisSpeeds:
        """Point-seek toward ``target`` with PID on x, y and heading.

        The translation command is clamped to ``max_speed`` as a vector.
        """
        vx = self.x_controller.calculate(estimated_pose.x, target.x, dt)
        vy = self.y_controller.calculate(estimated_pose.y, target.y, dt)
        speed = math.hypot(vx, vy)
        if speed > max_speed:
            vx, vy = vx * max_speed / speed, vy * max_speed / speed
        omega = clamp_magnitude(
            self.heading_controller.calculate(estimated_pose.heading, target.heading, dt),
            self.max_angular_speed,
        )
        return ChassisSpeeds.from_field_relative(vx, vy, omega, estimated_pose.heading)

    def at_pose(self) -> bool:
        """True when the last drive_to_pose call was within tolerance on every axis."""
        return (
            self.x_controller.at_setpoint()
            and self.y_controller.at_setpoint()
            and self.heading_controller.at_setpoint()
        )

    def finalize(self, speeds: ChassisSpeeds) -> ChassisSpeeds:
        """Replace negligible commands with an explicit stop."""
        if (
            abs(speeds.vx) < self.minimum_speed
            and abs(speeds.vy) < self.minimum_speed
            and abs(speeds.omega) < self.minimum_speed
        ):
            return ChassisSpeeds.zero()
        return speeds

