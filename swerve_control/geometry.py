"""Planar geometry primitives shared by every control layer.

Poses live in the field frame: x along the field length, y across it,
heading counter-clockwise from +x. Headings are always wrapped to [-π, π).
Twists and chassis speeds are expressed in the robot frame unless a method
name says otherwise.

The exponential and logarithm maps follow the standard SE(2) closed forms
with series expansions near zero rotation, so integrating a small twist and
taking the log of the result round-trips without numerical blow-up.
"""

import math
from dataclasses import dataclass
from typing import Tuple

TWO_PI = 2.0 * math.pi

# Below this rotation the closed forms switch to their series expansions
SMALL_ANGLE_EPSILON = 1e-9


def wrap_angle(angle: float) -> float:
    """Wrap an angle to [-π, π).

    Args:
        angle: Angle in radians (any range).

    Returns:
        Equivalent angle in [-π, π).
    """
    return (angle + math.pi) % TWO_PI - math.pi


def angle_difference(target: float, current: float) -> float:
    """Shortest signed rotation that takes ``current`` onto ``target`` (rad)."""
    return wrap_angle(target - current)


def interpolate_angle(start: float, end: float, t: float) -> float:
    """Interpolate between two headings along the shortest arc.

    Args:
        start: Heading at t = 0 (rad).
        end: Heading at t = 1 (rad).
        t: Interpolation parameter, clamped to [0, 1].

    Returns:
        Wrapped heading (rad).
    """
    t = max(0.0, min(1.0, t))
    return wrap_angle(start + t * angle_difference(end, start))


def rotate(x: float, y: float, angle: float) -> Tuple[float, float]:
    """Rotate a 2D vector counter-clockwise by ``angle``."""
    c = math.cos(angle)
    s = math.sin(angle)
    return x * c - y * s, x * s + y * c


@dataclass(frozen=True)
class Twist2D:
    """Robot-frame displacement: forward ``dx``, left ``dy``, rotation ``dtheta``."""

    dx: float = 0.0
    dy: float = 0.0
    dtheta: float = 0.0

    def scaled(self, factor: float) -> "Twist2D":
        return Twist2D(self.dx * factor, self.dy * factor, self.dtheta * factor)

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.dx, self.dy, self.dtheta))


@dataclass(frozen=True)
class Pose2D:
    """Field-frame pose (meters, radians). Heading is wrapped on construction."""

    x: float = 0.0
    y: float = 0.0
    heading: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "heading", wrap_angle(self.heading))

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.heading))

    def distance_to(self, other: "Pose2D") -> float:
        """Euclidean distance between the two positions (m)."""
        return math.hypot(other.x - self.x, other.y - self.y)

    def transform_by(self, transform: "Pose2D") -> "Pose2D":
        """Apply a transform expressed in this pose's frame.

        Args:
            transform: Offset (x, y, heading) relative to this pose.

        Returns:
            Resulting pose in the field frame.
        """
        dx, dy = rotate(transform.x, transform.y, self.heading)
        return Pose2D(self.x + dx, self.y + dy, self.heading + transform.heading)

    def relative_to(self, origin: "Pose2D") -> "Pose2D":
        """Express this pose in the frame of ``origin``.

        Inverse of :meth:`transform_by`:
        ``origin.transform_by(pose.relative_to(origin)) == pose``.
        """
        dx, dy = rotate(self.x - origin.x, self.y - origin.y, -origin.heading)
        return Pose2D(dx, dy, angle_difference(self.heading, origin.heading))

    def exp(self, twist: Twist2D) -> "Pose2D":
        """Integrate a constant-curvature robot-frame twist from this pose.

        Args:
            twist: Displacement over one interval, robot frame.

        Returns:
            Pose reached after following the twist.
        """
        dtheta = twist.dtheta
        sin_theta = math.sin(dtheta)
        cos_theta = math.cos(dtheta)

        if abs(dtheta) < SMALL_ANGLE_EPSILON:
            s = 1.0 - dtheta * dtheta / 6.0
            c = 0.5 * dtheta
        else:
            s = sin_theta / dtheta
            c = (1.0 - cos_theta) / dtheta

        offset = Pose2D(
            twist.dx * s - twist.dy * c,
            twist.dx * c + twist.dy * s,
            dtheta,
        )
        return self.transform_by(offset)

    def log(self, end: "Pose2D") -> Twist2D:
        """Twist that takes this pose onto ``end`` (inverse of :meth:`exp`)."""
        transform = end.relative_to(self)
        dtheta = transform.heading
        half_dtheta = 0.5 * dtheta
        cos_minus_one = math.cos(dtheta) - 1.0

        if abs(cos_minus_one) < SMALL_ANGLE_EPSILON:
            half_theta_by_tan = 1.0 - dtheta * dtheta / 12.0
        else:
            half_theta_by_tan = -(half_dtheta * math.sin(dtheta)) / cos_minus_one

        # Multiply the translation by the complex number (a + ib)
        a = half_theta_by_tan
        b = -half_dtheta
        return Twist2D(
            transform.x * a - transform.y * b,
            transform.x * b + transform.y * a,
            dtheta,
        )

    def interpolate(self, end: "Pose2D", t: float) -> "Pose2D":
        """Interpolate along the constant-curvature arc joining two poses.

        Args:
            end: Pose at t = 1.
            t: Interpolation parameter, clamped to [0, 1].
        """
        if t <= 0.0:
            return self
        if t >= 1.0:
            return end
        return self.exp(self.log(end).scaled(t))


@dataclass(frozen=True)
class ChassisSpeeds:
    """Chassis velocity: ``vx``/``vy`` (m/s) and ``omega`` (rad/s).

    Robot-relative unless produced by :meth:`to_field_relative`.
    """

    vx: float = 0.0
    vy: float = 0.0
    omega: float = 0.0

    @staticmethod
    def zero() -> "ChassisSpeeds":
        return ChassisSpeeds(0.0, 0.0, 0.0)

    @staticmethod
    def from_field_relative(vx: float, vy: float, omega: float, heading: float) -> "ChassisSpeeds":
        """Convert a field-frame velocity into the robot frame.

        Args:
            vx: Field-frame x velocity (m/s).
            vy: Field-frame y velocity (m/s).
            omega: Angular velocity (rad/s), frame-independent.
            heading: Current robot heading (rad).
        """
        rx, ry = rotate(vx, vy, -heading)
        return ChassisSpeeds(rx, ry, omega)

    def to_field_relative(self, heading: float) -> "ChassisSpeeds":
        fx, fy = rotate(self.vx, self.vy, heading)
        return ChassisSpeeds(fx, fy, self.omega)

    @property
    def linear_magnitude(self) -> float:
        return math.hypot(self.vx, self.vy)

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.vx, self.vy, self.omega))

    def to_twist(self, dt: float) -> Twist2D:
        return Twist2D(self.vx * dt, self.vy * dt, self.omega * dt)
