"""Trajectory generation for a holonomic drive.

A trajectory is built in two independent parts that share one time axis:

- Translation: a cubic Hermite spline through the waypoint positions,
  sampled densely by arc length and time-parameterized with a trapezoidal
  velocity profile (acceleration, cruise, deceleration) subject to
  velocity, acceleration and centripetal limits. The profile comes to a
  stop wherever the path turns back on itself.
- Rotation: a RotationSequence that moves the robot heading between the
  waypoint rotation targets, timed to the moment the path reaches each
  waypoint, along the shortest arc with a smoothstep easing.

Where the robot points is therefore decoupled from the direction it travels.
"""

import bisect
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidInputError, InvalidWaypointsError, TrajectoryGenerationError
from .geometry import Pose2D, angle_difference, interpolate_angle, wrap_angle


@dataclass(frozen=True)
class PathConstraints:
    """Limits applied to the segment that starts at a waypoint."""

    max_velocity: float
    max_acceleration: float
    max_centripetal_acceleration: Optional[float] = None


@dataclass(frozen=True)
class Waypoint:
    """Trajectory control point.

    Attributes:
        x, y: Position in the field frame (m).
        path_heading: Direction of travel through the point (rad). Defaults to
            the direction implied by the neighboring waypoints.
        rotation: Robot heading target when the path reaches this point (rad).
        velocity: Speed override at this point (m/s).
        constraints: Limits for the segment leaving this point.
    """

    x: float
    y: float
    path_heading: Optional[float] = None
    rotation: Optional[float] = None
    velocity: Optional[float] = None
    constraints: Optional[PathConstraints] = None

    @staticmethod
    def from_pose(pose: Pose2D, path_heading: Optional[float] = None, **kwargs) -> "Waypoint":
        """Waypoint at a pose, using the pose heading as the rotation target."""
        return Waypoint(pose.x, pose.y, path_heading=path_heading, rotation=pose.heading, **kwargs)

    def values(self) -> Tuple[float, ...]:
        vals = [self.x, self.y]
        for optional in (self.path_heading, self.rotation, self.velocity):
            if optional is not None:
                vals.append(optional)
        return tuple(vals)


@dataclass(frozen=True)
class TrajectoryState:
    """Reference translation state at one instant.

    ``pose.heading`` is the direction of travel, not the robot heading.
    ``acceleration`` applies from this state until the next one.
    """

    time: float
    pose: Pose2D
    velocity: float
    acceleration: float
    curvature: float
    distance: float


@dataclass(frozen=True)
class RotationState:
    """Reference robot heading (rad) and angular velocity (rad/s) at one instant."""

    time: float
    heading: float
    angular_velocity: float


class Trajectory:
    """Immutable time-parameterized translation path."""

    def __init__(self, states: Sequence[TrajectoryState]):
        if len(states) < 2:
            raise TrajectoryGenerationError("A trajectory needs at least two states")
        self.states: Tuple[TrajectoryState, ...] = tuple(states)
        self._times = [s.time for s in self.states]

    @property
    def total_time(self) -> float:
        return self._times[-1]

    @property
    def total_distance(self) -> float:
        return self.states[-1].distance

    @property
    def initial_state(self) -> TrajectoryState:
        return self.states[0]

    @property
    def final_state(self) -> TrajectoryState:
        return self.states[-1]

    def sample(self, t: float) -> TrajectoryState:
        """Reference state at time ``t``, clamped to the trajectory's time domain.

        Between dense states the motion is integrated with the interval's
        constant acceleration, so position and velocity stay consistent.
        """
        if t <= 0.0:
            return self.states[0]
        if t >= self.total_time:
            return self.states[-1]

        index = bisect.bisect_right(self._times, t) - 1
        start = self.states[index]
        end = self.states[index + 1]

        tau = t - start.time
        velocity = start.velocity + start.acceleration * tau
        travelled = start.velocity * tau + 0.5 * start.acceleration * tau * tau
        span = end.distance - start.distance
        fraction = 0.0 if span <= 0.0 else max(0.0, min(1.0, travelled / span))

        pose = Pose2D(
            start.pose.x + fraction * (end.pose.x - start.pose.x),
            start.pose.y + fraction * (end.pose.y - start.pose.y),
            interpolate_angle(start.pose.heading, end.pose.heading, fraction),
        )
        return TrajectoryState(
            time=t,
            pose=pose,
            velocity=velocity,
            acceleration=start.acceleration,
            curvature=start.curvature + fraction * (end.curvature - start.curvature),
            distance=start.distance + travelled,
        )


class RotationSequence:
    """Immutable heading profile over the trajectory's time domain.

    Queries outside the domain clamp to the first or last entry; headings are
    never extrapolated.
    """

    def __init__(self, states: Sequence[RotationState]):
        if not states:
            raise TrajectoryGenerationError("A rotation sequence needs at least one state")
        self.states: Tuple[RotationState, ...] = tuple(states)
        self._times = [s.time for s in self.states]
        if any(b <= a for a, b in zip(self._times, self._times[1:])):
            raise TrajectoryGenerationError("Rotation sequence times must be strictly increasing")

    @classmethod
    def from_anchors(
        cls,
        anchors: Sequence[Tuple[float, float]],
        sample_period: float,
        end_time: Optional[float] = None,
    ) -> "RotationSequence":
        """Build dense entries between (time, heading) anchors.

        Each pair of anchors is joined by a smoothstep easing f(u) = 3u² - 2u³
        along the shortest arc, so angular velocity is zero at every anchor.

        Args:
            anchors: (time, heading) pairs with strictly increasing times.
            sample_period: Spacing of the dense entries (s).
            end_time: If later than the last anchor, the final heading is held
                until this time.
        """
        if not anchors:
            raise TrajectoryGenerationError("No rotation anchors")

        states = [RotationState(anchors[0][0], wrap_angle(anchors[0][1]), 0.0)]
        for (t0, h0), (t1, h1) in zip(anchors, anchors[1:]):
            duration = t1 - t0
            if duration <= 0.0:
                raise TrajectoryGenerationError(
                    f"Rotation anchors must have increasing times ({t0} -> {t1})"
                )
            delta = angle_difference(h1, h0)
            steps = max(1, int(math.ceil(duration / sample_period)))
            for k in range(1, steps + 1):
                u = k / steps
                eased = u * u * (3.0 - 2.0 * u)
                rate = delta * (6.0 * u - 6.0 * u * u) / duration
                states.append(RotationState(t0 + u * duration, wrap_angle(h0 + delta * eased), rate))

        if end_time is not None and end_time > states[-1].time:
            states.append(RotationState(end_time, states[-1].heading, 0.0))
        return cls(states)

    @property
    def start_time(self) -> float:
        return self._times[0]

    @property
    def end_time(self) -> float:
        return self._times[-1]

    def sample(self, t: float) -> RotationState:
        """Reference heading at time ``t`` (clamped to the sequence's domain)."""
        if t <= self._times[0]:
            first = self.states[0]
            return RotationState(t, first.heading, 0.0)
        if t >= self._times[-1]:
            last = self.states[-1]
            return RotationState(t, last.heading, 0.0)

        index = bisect.bisect_right(self._times, t) - 1
        start = self.states[index]
        end = self.states[index + 1]
        fraction = (t - start.time) / (end.time - start.time)
        return RotationState(
            t,
            interpolate_angle(start.heading, end.heading, fraction),
            start.angular_velocity + fraction * (end.angular_velocity - start.angular_velocity),
        )


@dataclass(frozen=True)
class GeneratedTrajectory:
    """Translation trajectory paired with its independently timed rotation."""

    trajectory: Trajectory
    rotation: RotationSequence

    @property
    def total_time(self) -> float:
        return self.trajectory.total_time

    def sample(self, t: float) -> Tuple[TrajectoryState, RotationState]:
        return self.trajectory.sample(t), self.rotation.sample(t)

    def target_pose(self, t: float) -> Pose2D:
        """Path position at ``t`` combined with the rotation-sequence heading."""
        state = self.trajectory.sample(t)
        return Pose2D(state.pose.x, state.pose.y, self.rotation.sample(t).heading)


def _collapse_waypoints(waypoints: Sequence[Waypoint], merge_distance: float) -> List[Waypoint]:
    """Merge consecutive waypoints that coincide, keeping the later targets."""
    merged: List[Waypoint] = [waypoints[0]]
    for waypoint in waypoints[1:]:
        previous = merged[-1]
        if math.hypot(waypoint.x - previous.x, waypoint.y - previous.y) < merge_distance:
            merged[-1] = Waypoint(
                previous.x,
                previous.y,
                path_heading=previous.path_heading,
                rotation=waypoint.rotation if waypoint.rotation is not None else previous.rotation,
                velocity=waypoint.velocity if waypoint.velocity is not None else previous.velocity,
                constraints=waypoint.constraints or previous.constraints,
            )
        else:
            merged.append(waypoint)
    return merged


def _tangent_directions(
    points: np.ndarray, waypoints: Sequence[Waypoint]
) -> Tuple[np.ndarray, np.ndarray, List[int]]:
    """Unit tangents leaving and arriving at every waypoint.

    Explicit path headings win; otherwise interior points use the direction
    from the previous to the next point and the ends use their chord. An
    interior point where the path turns back by more than 90° is a stop:
    the path arrives along the incoming chord and leaves along the outgoing
    one, so neither segment overshoots the waypoint.

    Returns:
        (departing tangents, arriving tangents, indices of stop waypoints).
    """
    count = len(points)
    departing = np.zeros((count, 2))
    arriving = np.zeros((count, 2))
    stops: List[int] = []
    for i, waypoint in enumerate(waypoints):
        if waypoint.path_heading is not None:
            departing[i] = arriving[i] = (math.cos(waypoint.path_heading), math.sin(waypoint.path_heading))
            continue
        if i == 0:
            vector = points[1] - points[0]
        elif i == count - 1:
            vector = points[-1] - points[-2]
        else:
            incoming = points[i] - points[i - 1]
            outgoing = points[i + 1] - points[i]
            if float(np.dot(incoming, outgoing)) < 0.0:
                arriving[i] = incoming / np.linalg.norm(incoming)
                departing[i] = outgoing / np.linalg.norm(outgoing)
                stops.append(i)
                continue
            vector = points[i + 1] - points[i - 1]
        departing[i] = arriving[i] = vector / np.linalg.norm(vector)
    return departing, arriving, stops


class TrajectoryGenerator:
    """Builds GeneratedTrajectory objects from waypoint lists.

    Generation is deterministic and has no side effects; the same generator
    can be reused for any number of paths.
    """

    def __init__(
        self,
        max_velocity: Optional[float] = None,
        max_acceleration: Optional[float] = None,
        max_centripetal_acceleration: Optional[float] = None,
        config=None,
    ):
        """Initialize the generator.

        Args:
            max_velocity: Global velocity limit (m/s).
            max_acceleration: Global acceleration and deceleration limit (m/s²).
            max_centripetal_acceleration: Lateral acceleration limit on curves
                (m/s²). None disables the curvature limit.
            config: Configuration module or object. If None, uses
                    swerve_control.config for unspecified limits and sampling.

        Raises:
            InvalidInputError: If a limit is not a positive finite number.
        """
        if config is None:
            from swerve_control import config as cfg
        else:
            cfg = config

        self.max_velocity = cfg.TRAJECTORY_MAX_VELOCITY if max_velocity is None else max_velocity
        self.max_acceleration = (
            cfg.TRAJECTORY_MAX_ACCELERATION if max_acceleration is None else max_acceleration
        )
        self.max_centripetal_acceleration = max_centripetal_acceleration
        self.sample_spacing: float = cfg.TRAJECTORY_SAMPLE_SPACING
        self.merge_distance: float = cfg.WAYPOINT_MERGE_DISTANCE
        self.rotation_period: float = cfg.ROTATION_SAMPLE_PERIOD

        limits = [self.max_velocity, self.max_acceleration]
        if self.max_centripetal_acceleration is not None:
            limits.append(self.max_centripetal_acceleration)
        for limit in limits:
            if not (math.isfinite(limit) and limit > 0.0):
                raise InvalidInputError(f"Trajectory limits must be positive and finite: {limits}")

    def _segment_limits(self, waypoint: Waypoint) -> Tuple[float, float, Optional[float]]:
        v_max, a_max, a_c = self.max_velocity, self.max_acceleration, self.max_centripetal_acceleration
        c = waypoint.constraints
        if c is not None:
            v_max = min(v_max, c.max_velocity)
            a_max = min(a_max, c.max_acceleration)
            if c.max_centripetal_acceleration is not None:
                a_c = (
                    c.max_centripetal_acceleration
                    if a_c is None
                    else min(a_c, c.max_centripetal_acceleration)
                )
        return v_max, a_max, a_c

    def _validate(self, waypoints: Sequence[Waypoint], start_velocity: float, end_velocity: float) -> None:
        if len(waypoints) < 2:
            raise InvalidWaypointsError(f"Need at least two waypoints, got {len(waypoints)}")
        for i, waypoint in enumerate(waypoints):
            if not all(math.isfinite(v) for v in waypoint.values()):
                raise InvalidWaypointsError(f"Waypoint {i} has non-finite values: {waypoint}")
            if waypoint.velocity is not None and waypoint.velocity < 0.0:
                raise InvalidWaypointsError(f"Waypoint {i} velocity override must be >= 0")
            c = waypoint.constraints
            if c is not None and (c.max_velocity <= 0.0 or c.max_acceleration <= 0.0):
                raise InvalidWaypointsError(f"Waypoint {i} constraints must be positive: {c}")
        for name, value in (("start", start_velocity), ("end", end_velocity)):
            if not (math.isfinite(value) and value >= 0.0):
                raise InvalidWaypointsError(f"{name} velocity must be finite and >= 0, got {value}")

    def _sample_spline(
        self, points: np.ndarray, departing: np.ndarray, arriving: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, List[int]]:
        """Densely sample the Hermite spline.

        Returns:
            (positions, headings, curvatures, segment index per sample, sample
            index of every waypoint).
        """
        positions, headings, curvatures, segments = [], [], [], []
        waypoint_indices = [0]

        for i in range(len(points) - 1):
            p0, p1 = points[i], points[i + 1]
            chord = float(np.linalg.norm(p1 - p0))
            m0 = departing[i] * chord
            m1 = arriving[i + 1] * chord
            n = max(8, int(math.ceil(chord / self.sample_spacing)))
            u = np.linspace(0.0, 1.0, n + 1)[:, None]
            if i > 0:
                u = u[1:]

            u2, u3 = u * u, u * u * u
            pos = (
                (2 * u3 - 3 * u2 + 1) * p0
                + (u3 - 2 * u2 + u) * m0
                + (-2 * u3 + 3 * u2) * p1
                + (u3 - u2) * m1
            )
            d1 = (6 * u2 - 6 * u) * p0 + (3 * u2 - 4 * u + 1) * m0 + (-6 * u2 + 6 * u) * p1 + (3 * u2 - 2 * u) * m1
            d2 = (12 * u - 6) * p0 + (6 * u - 4) * m0 + (-12 * u + 6) * p1 + (6 * u - 2) * m1

            speed = np.hypot(d1[:, 0], d1[:, 1])
            safe = np.maximum(speed, 1e-9)
            positions.append(pos)
            headings.append(np.arctan2(d1[:, 1], d1[:, 0]))
            curvatures.append((d1[:, 0] * d2[:, 1] - d1[:, 1] * d2[:, 0]) / safe**3)
            segments.append(np.full(len(u), i))
            waypoint_indices.append(waypoint_indices[-1] + len(u) - (1 if i == 0 else 0))

        return (
            np.vstack(positions),
            np.concatenate(headings),
            np.concatenate(curvatures),
            np.concatenate(segments),
            waypoint_indices,
        )

    def generate(
        self,
        waypoints: Sequence[Waypoint],
        start_velocity: float = 0.0,
        end_velocity: float = 0.0,
        start_rotation: Optional[float] = None,
    ) -> GeneratedTrajectory:
        """Generate a trajectory through the waypoints.

        Args:
            waypoints: Ordered control points (at least two distinct positions).
            start_velocity: Speed at the first waypoint (m/s).
            end_velocity: Speed at the last waypoint (m/s).
            start_rotation: Robot heading at t = 0 (rad). Defaults to the first
                waypoint's rotation target, then to the initial path heading.

        Returns:
            GeneratedTrajectory with the translation trajectory and rotation sequence.

        Raises:
            InvalidWaypointsError: Fewer than two waypoints, non-finite values,
                invalid overrides, or all waypoints collapse to one point.
            TrajectoryGenerationError: The profile does not produce strictly
                increasing times.
        """
        self._validate(waypoints, start_velocity, end_velocity)
        waypoints = _collapse_waypoints(waypoints, self.merge_distance)
        if len(waypoints) < 2:
            raise InvalidWaypointsError("All waypoints collapse to a single point")

        points = np.array([(w.x, w.y) for w in waypoints], dtype=float)
        departing, arriving, stops = _tangent_directions(points, waypoints)
        positions, headings, curvatures, segments, waypoint_indices = self._sample_spline(
            points, departing, arriving
        )

        steps = np.hypot(np.diff(positions[:, 0]), np.diff(positions[:, 1]))
        distances = np.concatenate(([0.0], np.cumsum(steps)))
        count = len(positions)

        # Velocity caps from constraints, curvature and waypoint overrides
        limits = [self._segment_limits(waypoints[s]) for s in range(len(waypoints) - 1)]
        caps = np.empty(count)
        accels = np.empty(count)
        for k in range(count):
            segment = int(segments[k])
            v_max, a_max, a_c = limits[segment]
            cap = v_max
            if a_c is not None and abs(curvatures[k]) > 1e-9:
                cap = min(cap, math.sqrt(a_c / abs(curvatures[k])))
            caps[k] = cap
            accels[k] = a_max
        for index, waypoint in zip(waypoint_indices, waypoints):
            if waypoint.velocity is not None:
                caps[index] = min(caps[index], waypoint.velocity)
        for i in stops:
            caps[waypoint_indices[i]] = 0.0
        caps[0] = min(caps[0], start_velocity)
        caps[-1] = min(caps[-1], end_velocity)
        # Stop wherever the sampled heading flips, leaving no two adjacent zero caps
        for k in range(1, count - 1):
            if abs(angle_difference(headings[k], headings[k - 1])) > math.pi / 2:
                if caps[k - 1] > 0.0 and caps[k] > 0.0 and caps[k + 1] > 0.0:
                    caps[k] = 0.0

        # Forward (acceleration) then backward (deceleration) passes
        velocities = caps.copy()
        for k in range(count - 1):
            reachable = math.sqrt(velocities[k] ** 2 + 2.0 * accels[k] * steps[k])
            velocities[k + 1] = min(velocities[k + 1], reachable)
        for k in range(count - 2, -1, -1):
            reachable = math.sqrt(velocities[k + 1] ** 2 + 2.0 * accels[k] * steps[k])
            velocities[k] = min(velocities[k], reachable)

        times = np.zeros(count)
        interval_accels = np.zeros(count)
        for k in range(count - 1):
            v_sum = velocities[k] + velocities[k + 1]
            if v_sum <= 1e-12:
                raise TrajectoryGenerationError(
                    f"Profile stalls at distance {distances[k]:.3f} m (zero velocity over a nonzero step)"
                )
            times[k + 1] = times[k] + 2.0 * steps[k] / v_sum
            interval_accels[k] = (velocities[k + 1] ** 2 - velocities[k] ** 2) / (2.0 * steps[k])

        if not np.all(np.diff(times) > 0.0):
            raise TrajectoryGenerationError("Trajectory times are not strictly increasing")

        states = [
            TrajectoryState(
                time=float(times[k]),
                pose=Pose2D(float(positions[k, 0]), float(positions[k, 1]), float(headings[k])),
                velocity=float(velocities[k]),
                acceleration=float(interval_accels[k]),
                curvature=float(curvatures[k]),
                distance=float(distances[k]),
            )
            for k in range(count)
        ]
        trajectory = Trajectory(states)

        # Rotation anchors at the time the path reaches each waypoint
        if start_rotation is not None:
            initial_heading = start_rotation
        elif waypoints[0].rotation is not None:
            initial_heading = waypoints[0].rotation
        else:
            initial_heading = float(headings[0])
        anchors = [(0.0, initial_heading)]
        for index, waypoint in zip(waypoint_indices[1:], waypoints[1:]):
            if waypoint.rotation is not None:
                anchors.append((float(times[index]), waypoint.rotation))
        rotation = RotationSequence.from_anchors(anchors, self.rotation_period, trajectory.total_time)

        logging.debug(
            f"Generated trajectory: {len(waypoints)} waypoints, "
            f"{trajectory.total_distance:.2f} m in {trajectory.total_time:.2f} s"
        )
        return GeneratedTrajectory(trajectory, rotation)
