"""
Swerve drive kinematic model and wheel odometry.

This module converts between chassis velocities and the states of N
independently steered and driven modules, and integrates measured module
motion into a running odometry pose.

For a module at (x_i, y_i) in the robot frame, its velocity is:
    v_ix = vx - omega * y_i
    v_iy = vy + omega * x_i

Stacking every module gives the 2N x 3 inverse kinematics matrix. Forward
kinematics is its Moore-Penrose pseudo-inverse, which is the least-squares
chassis motion when the modules disagree (wheel slip, sensor noise).
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidInputError, InvalidModuleDataError
from .geometry import ChassisSpeeds, Pose2D, Twist2D, wrap_angle


@dataclass(frozen=True)
class ModuleState:
    """One module's steering angle (rad), wheel velocity (m/s) and distance (m)."""

    angle: float = 0.0
    velocity: float = 0.0
    distance: float = 0.0

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.angle, self.velocity, self.distance))

    def optimize(self, current_angle: float) -> "ModuleState":
        """Flip the target when steering more than 90° would be needed.

        Args:
            current_angle: Module's measured steering angle (rad).

        Returns:
            Equivalent state that never requires more than a quarter turn.
        """
        delta = wrap_angle(self.angle - current_angle)
        if abs(delta) > math.pi / 2.0:
            return ModuleState(wrap_angle(self.angle + math.pi), -self.velocity, self.distance)
        return self


class SwerveDriveKinematics:
    """Inverse and forward kinematics for an N-module swerve drive.

    Attributes:
        module_translations: (N, 2) array of module positions in the robot frame.
        inverse_matrix: (2N, 3) matrix mapping [vx, vy, omega] to module velocity components.
        forward_matrix: (3, 2N) pseudo-inverse of inverse_matrix.
    """

    def __init__(self, module_translations: Sequence[Tuple[float, float]]):
        """Build the kinematics matrices.

        Args:
            module_translations: Module (x, y) positions relative to the robot center (m).

        Raises:
            InvalidInputError: If fewer than two modules are given, positions are
                not finite, or all modules share a position.
        """
        translations = np.asarray(module_translations, dtype=float)
        if translations.ndim != 2 or translations.shape[1] != 2 or translations.shape[0] < 2:
            raise InvalidInputError(
                f"Need at least two (x, y) module translations, got shape {translations.shape}"
            )
        if not np.all(np.isfinite(translations)):
            raise InvalidInputError("Module translations must be finite")
        if np.allclose(translations, translations[0]):
            raise InvalidInputError("Module translations are coincident; rotation is unobservable")

        self.module_translations = translations
        self.num_modules = translations.shape[0]

        self.inverse_matrix = np.zeros((2 * self.num_modules, 3))
        for i, (x, y) in enumerate(translations):
            self.inverse_matrix[2 * i] = [1.0, 0.0, -y]
            self.inverse_matrix[2 * i + 1] = [0.0, 1.0, x]
        self.forward_matrix = np.linalg.pinv(self.inverse_matrix)

        # Angles held when the command is zero, so modules don't snap back to 0
        self._last_angles = [0.0] * self.num_modules

    def _check_count(self, count: int) -> None:
        if count != self.num_modules:
            raise InvalidModuleDataError(
                f"Expected {self.num_modules} module readings, got {count}"
            )

    def to_module_states(
        self, speeds: ChassisSpeeds, center_of_rotation: Tuple[float, float] = (0.0, 0.0)
    ) -> List[ModuleState]:
        """Compute the module states that realize a robot-relative chassis velocity.

        Args:
            speeds: Desired robot-relative chassis speeds.
            center_of_rotation: Point the robot rotates about, robot frame (m).

        Returns:
            One ModuleState per module, in configuration order.
        """
        if not speeds.is_finite():
            raise InvalidInputError(f"Chassis speeds must be finite: {speeds}")

        if speeds.vx == 0.0 and speeds.vy == 0.0 and speeds.omega == 0.0:
            return [ModuleState(angle, 0.0) for angle in self._last_angles]

        if center_of_rotation == (0.0, 0.0):
            matrix = self.inverse_matrix
        else:
            cx, cy = center_of_rotation
            matrix = self.inverse_matrix.copy()
            matrix[0::2, 2] += cy
            matrix[1::2, 2] -= cx

        components = matrix @ np.array([speeds.vx, speeds.vy, speeds.omega])
        states = []
        for i in range(self.num_modules):
            vx, vy = components[2 * i], components[2 * i + 1]
            velocity = math.hypot(vx, vy)
            angle = math.atan2(vy, vx) if velocity > 1e-9 else self._last_angles[i]
            self._last_angles[i] = angle
            states.append(ModuleState(angle, velocity))
        return states

    def to_chassis_speeds(self, states: Sequence[ModuleState]) -> ChassisSpeeds:
        """Least-squares chassis velocity from measured module states.

        Raises:
            InvalidModuleDataError: On a count mismatch or non-finite readings.
        """
        self._check_count(len(states))
        components = np.empty(2 * self.num_modules)
        for i, state in enumerate(states):
            if not (math.isfinite(state.angle) and math.isfinite(state.velocity)):
                raise InvalidModuleDataError(f"Module {i} reading is not finite: {state}")
            components[2 * i] = state.velocity * math.cos(state.angle)
            components[2 * i + 1] = state.velocity * math.sin(state.angle)
        vx, vy, omega = self.forward_matrix @ components
        return ChassisSpeeds(float(vx), float(vy), float(omega))

    def to_twist(self, distance_deltas: Sequence[float], angles: Sequence[float]) -> Twist2D:
        """Robot-frame twist from per-module wheel travel since the last reading.

        Args:
            distance_deltas: Wheel distance travelled by each module (m).
            angles: Module steering angles over the interval (rad).

        Raises:
            InvalidModuleDataError: On a count mismatch or non-finite readings.
        """
        self._check_count(len(distance_deltas))
        self._check_count(len(angles))
        deltas = np.asarray(distance_deltas, dtype=float)
        headings = np.asarray(angles, dtype=float)
        if not (np.all(np.isfinite(deltas)) and np.all(np.isfinite(headings))):
            raise InvalidModuleDataError("Module distance deltas and angles must be finite")

        components = np.empty(2 * self.num_modules)
        components[0::2] = deltas * np.cos(headings)
        components[1::2] = deltas * np.sin(headings)
        dx, dy, dtheta = self.forward_matrix @ components
        return Twist2D(float(dx), float(dy), float(dtheta))

    @staticmethod
    def desaturate_wheel_speeds(states: Sequence[ModuleState], max_speed: float) -> List[ModuleState]:
        """Scale every module down uniformly so none exceeds ``max_speed``.

        Uniform scaling keeps the direction of travel and the rotation ratio intact.
        """
        fastest = max((abs(s.velocity) for s in states), default=0.0)
        if fastest <= max_speed or fastest == 0.0:
            return list(states)
        scale = max_speed / fastest
        return [ModuleState(s.angle, s.velocity * scale, s.distance) for s in states]


@dataclass(frozen=True)
class OdometryUpdate:
    """Result of one odometry step."""

    twist: Twist2D
    pose: Pose2D
    speeds: ChassisSpeeds
    valid: bool = True


@dataclass
class SwerveOdometry:
    """Running wheel odometry with exponential-map integration.

    Malformed readings are rejected and logged; the pose and the previous
    module distances are held so one bad sample cannot corrupt the pose.
    """

    kinematics: SwerveDriveKinematics
    pose: Pose2D = field(default_factory=Pose2D)
    rejected_updates: int = 0

    def __post_init__(self) -> None:
        self._previous_distances: Optional[List[float]] = None
        self._previous_gyro_yaw: Optional[float] = None

    def reset(
        self,
        pose: Pose2D,
        module_states: Optional[Sequence[ModuleState]] = None,
        gyro_yaw: Optional[float] = None,
    ) -> None:
        """Re-seed the pose and the distance reference."""
        self.pose = pose
        self._previous_distances = (
            [s.distance for s in module_states] if module_states is not None else None
        )
        self._previous_gyro_yaw = gyro_yaw

    def update(
        self,
        module_states: Sequence[ModuleState],
        gyro_yaw: Optional[float] = None,
        gyro_connected: bool = False,
    ) -> OdometryUpdate:
        """Advance the odometry pose from new module readings.

        Args:
            module_states: Current module readings with accumulated distances.
            gyro_yaw: Gyro yaw angle (rad), if available.
            gyro_connected: When True the gyro yaw delta replaces the
                wheel-derived rotation, which slips under hard turns.

        Returns:
            OdometryUpdate with the twist since the last reading and the new pose.
            On rejected input the twist is zero and ``valid`` is False.
        """
        try:
            if any(not s.is_finite() for s in module_states):
                raise InvalidModuleDataError("Module readings contain NaN or inf")
            speeds = self.kinematics.to_chassis_speeds(module_states)
            distances = [s.distance for s in module_states]
            if self._previous_distances is None:
                self._previous_distances = distances
            deltas = [d - p for d, p in zip(distances, self._previous_distances)]
            twist = self.kinematics.to_twist(deltas, [s.angle for s in module_states])
        except InvalidModuleDataError as e:
            self.rejected_updates += 1
            logging.warning(f"Odometry update rejected, holding pose: {e}")
            return OdometryUpdate(Twist2D(), self.pose, ChassisSpeeds.zero(), valid=False)

        use_gyro = gyro_connected and gyro_yaw is not None and math.isfinite(gyro_yaw)
        if use_gyro:
            if self._previous_gyro_yaw is not None:
                twist = Twist2D(twist.dx, twist.dy, wrap_angle(gyro_yaw - self._previous_gyro_yaw))
            self._previous_gyro_yaw = gyro_yaw
        else:
            self._previous_gyro_yaw = None

        self._previous_distances = distances
        self.pose = self.pose.exp(twist)
        return OdometryUpdate(twist, self.pose, speeds)
