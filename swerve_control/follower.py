"""Trajectory tracking for a holonomic drive.

This module implements a path-frame tracking controller that:
- Splits position error into along-path and cross-track components
- Adds proportional (and optionally derivative) correction to the reference
  velocity feedforward on each axis
- Slows the forward feedforward while the robot is off the path
- Tracks the rotation sequence independently of translation

It also provides TrajectoryFollower, the command that drives one generated
trajectory from start to finish and always hands back a stop command.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from .config import TERM_BLUE, TERM_RESET
from .geometry import ChassisSpeeds, Pose2D, angle_difference
from .path import GeneratedTrajectory, RotationState, TrajectoryState


@dataclass(frozen=True)
class TrackingGains:
    """Feedback gains for the three decoupled tracking axes."""

    along_kp: float
    cross_kp: float
    heading_kp: float
    along_kd: float = 0.0
    cross_kd: float = 0.0


class TrajectoryController:
    """Path-frame feedforward + feedback tracking controller.

    ``calculate`` is a pure function of its arguments and the fixed gain
    configuration, so one controller can be shared by any number of followers.
    """

    def __init__(
        self,
        gains: Optional[TrackingGains] = None,
        max_velocity: Optional[float] = None,
        max_angular_velocity: Optional[float] = None,
        max_acceleration: Optional[float] = None,
        max_angular_acceleration: Optional[float] = None,
        use_feedforward: bool = True,
        config=None,
    ):
        """Initialize the tracking controller.

        Args:
            gains: Axis gains. Defaults to the values in swerve_control.config.
            max_velocity: Output linear speed limit (m/s).
            max_angular_velocity: Output rotation rate limit (rad/s).
            max_acceleration: Linear rate limit applied against a previous
                command (m/s²). None disables it.
            max_angular_acceleration: Angular rate limit (rad/s²). None disables it.
            use_feedforward: If False, only feedback terms are used.
            config: Configuration module or object; defaults to swerve_control.config.
        """
        if config is None:
            from swerve_control import config as cfg
        else:
            cfg = config

        if gains is None:
            gains = TrackingGains(
                along_kp=cfg.ALONG_TRACK_KP,
                cross_kp=cfg.CROSS_TRACK_KP,
                heading_kp=cfg.HEADING_KP,
                along_kd=cfg.ALONG_TRACK_KD,
                cross_kd=cfg.CROSS_TRACK_KD,
            )
        self.gains = gains
        self.max_velocity = cfg.MAX_LINEAR_SPEED if max_velocity is None else max_velocity
        self.max_angular_velocity = (
            cfg.MAX_ANGULAR_SPEED if max_angular_velocity is None else max_angular_velocity
        )
        self.max_acceleration = max_acceleration
        self.max_angular_acceleration = max_angular_acceleration
        self.use_feedforward = use_feedforward
        self.slowdown_distance: float = cfg.CROSS_TRACK_SLOWDOWN_DISTANCE
        self.min_forward_scale: float = cfg.CROSS_TRACK_MIN_SCALE
        self.default_dt: float = cfg.ROBOT_PERIOD

    def calculate(
        self,
        reference: TrajectoryState,
        rotation_reference: RotationState,
        estimated_pose: Pose2D,
        measured_field_speeds: Optional[ChassisSpeeds] = None,
        previous_command: Optional[ChassisSpeeds] = None,
        dt: Optional[float] = None,
    ) -> ChassisSpeeds:
        """Compute the robot-relative chassis command for one tick.

        Args:
            reference: Sampled translation reference (pose, velocity, curvature).
            rotation_reference: Sampled heading reference.
            estimated_pose: Current pose estimate.
            measured_field_speeds: Measured field-relative velocity; enables
                the derivative terms when given.
            previous_command: Last robot-relative command; enables the
                acceleration limits when given.
            dt: Tick length (s). Defaults to the robot period.

        Returns:
            Robot-relative ChassisSpeeds, saturated to the configured limits.
        """
        dt = self.default_dt if dt is None or dt <= 0.0 else dt
        gains = self.gains

        path_heading = reference.pose.heading
        tx, ty = math.cos(path_heading), math.sin(path_heading)
        nx, ny = -ty, tx

        ex = reference.pose.x - estimated_pose.x
        ey = reference.pose.y - estimated_pose.y
        along_error = ex * tx + ey * ty
        cross_error = ex * nx + ey * ny

        along_cmd = gains.along_kp * along_error
        cross_cmd = gains.cross_kp * cross_error
        if measured_field_speeds is not None:
            measured_along = measured_field_speeds.vx * tx + measured_field_speeds.vy * ty
            measured_cross = measured_field_speeds.vx * nx + measured_field_speeds.vy * ny
            along_cmd += gains.along_kd * (reference.velocity - measured_along)
            cross_cmd -= gains.cross_kd * measured_cross

        vx = along_cmd * tx + cross_cmd * nx
        vy = along_cmd * ty + cross_cmd * ny
        omega = gains.heading_kp * angle_difference(rotation_reference.heading, estimated_pose.heading)

        if self.use_feedforward:
            # Far off the path, trade forward progress for getting back on it
            forward_scale = 1.0 - abs(cross_error) / self.slowdown_distance
            forward_scale = max(self.min_forward_scale, min(1.0, forward_scale))
            feedforward = reference.velocity * forward_scale
            # Aim at the path direction half a tick ahead
            ff_heading = path_heading + 0.5 * reference.curvature * reference.velocity * dt
            vx += feedforward * math.cos(ff_heading)
            vy += feedforward * math.sin(ff_heading)
            omega += rotation_reference.angular_velocity

        command = ChassisSpeeds.from_field_relative(vx, vy, omega, estimated_pose.heading)
        command = self._saturate(command)
        if previous_command is not None:
            command = self._rate_limit(command, previous_command, dt)
        return command

    def _saturate(self, command: ChassisSpeeds) -> ChassisSpeeds:
        vx, vy, omega = command.vx, command.vy, command.omega
        speed = math.hypot(vx, vy)
        if speed > self.max_velocity:
            scale = self.max_velocity / speed
            vx, vy = vx * scale, vy * scale
        omega = max(-self.max_angular_velocity, min(self.max_angular_velocity, omega))
        return ChassisSpeeds(vx, vy, omega)

    def _rate_limit(self, command: ChassisSpeeds, previous: ChassisSpeeds, dt: float) -> ChassisSpeeds:
        vx, vy, omega = command.vx, command.vy, command.omega
        if self.max_acceleration is not None:
            dvx, dvy = vx - previous.vx, vy - previous.vy
            change = math.hypot(dvx, dvy)
            max_change = self.max_acceleration * dt
            if change > max_change:
                scale = max_change / change
                vx, vy = previous.vx + dvx * scale, previous.vy + dvy * scale
        if self.max_angular_acceleration is not None:
            max_change = self.max_angular_acceleration * dt
            omega = previous.omega + max(-max_change, min(max_change, omega - previous.omega))
        return ChassisSpeeds(vx, vy, omega)


class TrajectoryFollower:
    """Command that follows one generated trajectory.

    Lifecycle: ``initialize`` once, ``execute`` every tick until
    ``is_finished``, then ``end``. ``end`` returns the zero command the
    drivetrain must receive, whether the trajectory completed or was
    interrupted.
    """

    def __init__(
        self,
        trajectory: GeneratedTrajectory,
        controller: TrajectoryController,
        config=None,
    ):
        if config is None:
            from swerve_control import config as cfg
        else:
            cfg = config

        self.trajectory = trajectory
        self.controller = controller
        self.position_tolerance: float = cfg.TRAJECTORY_POSITION_TOLERANCE
        self.heading_tolerance: float = cfg.TRAJECTORY_HEADING_TOLERANCE
        self.end_timeout: float = cfg.TRAJECTORY_END_TIMEOUT

        self.start_time: Optional[float] = None
        self.last_time: Optional[float] = None
        self.last_command = ChassisSpeeds.zero()
        self.finished = False

    def initialize(self, now: float) -> None:
        self.start_time = now
        self.last_time = None
        self.last_command = ChassisSpeeds.zero()
        self.finished = False
        logging.info(
            f"{TERM_BLUE}✓ Following trajectory ({self.trajectory.trajectory.total_distance:.2f} m, "
            f"{self.trajectory.total_time:.2f} s){TERM_RESET}"
        )

    def elapsed(self, now: float) -> float:
        if self.start_time is None:
            return 0.0
        return max(0.0, now - self.start_time)

    def progress(self, now: float) -> float:
        """Fraction of the trajectory's duration elapsed, in [0, 1]."""
        total = self.trajectory.total_time
        return 1.0 if total <= 0.0 else min(1.0, self.elapsed(now) / total)

    def execute(
        self, now: float, estimated_pose: Pose2D, measured_field_speeds: Optional[ChassisSpeeds] = None
    ) -> ChassisSpeeds:
        """Compute this tick's drive command.

        Raises:
            RuntimeError: If called before ``initialize``.
        """
        if self.start_time is None:
            raise RuntimeError("TrajectoryFollower.execute called before initialize")

        dt = None if self.last_time is None else now - self.last_time
        reference, rotation_reference = self.trajectory.sample(self.elapsed(now))
        command = self.controller.calculate(
            reference,
            rotation_reference,
            estimated_pose,
            measured_field_speeds=measured_field_speeds,
            previous_command=self.last_command,
            dt=dt,
        )
        self.last_time = now
        self.last_command = command
        return command

    def is_finished(self, now: float, estimated_pose: Pose2D) -> bool:
        """True once the trajectory has ended and the goal is reached (or timed out)."""
        t = self.elapsed(now)
        if t < self.trajectory.total_time:
            return False
        goal = self.trajectory.target_pose(self.trajectory.total_time)
        at_goal = (
            estimated_pose.distance_to(goal) <= self.position_tolerance
            and abs(angle_difference(goal.heading, estimated_pose.heading)) <= self.heading_tolerance
        )
        return at_goal or t >= self.trajectory.total_time + self.end_timeout

    def end(self, interrupted: bool) -> ChassisSpeeds:
        """Finish the command and return the stop command for the drivetrain."""
        self.finished = True
        self.last_command = ChassisSpeeds.zero()
        if interrupted:
            logging.warning("Trajectory interrupted, stopping drive")
        else:
            logging.info(f"{TERM_BLUE}✓ Trajectory complete{TERM_RESET}")
        return ChassisSpeeds.zero()
