import math

import numpy as np
import pytest

from swerve_control.errors import InvalidInputError, InvalidWaypointsError, TrajectoryGenerationError
from swerve_control.path import (
    PathConstraints,
    RotationSequence,
    RotationState,
    TrajectoryGenerator,
    Waypoint,
)


def straight_line(length=3.0):
    return [Waypoint(0.0, 0.0), Waypoint(length, 0.0)]


def test_straight_line_trapezoid_timing():
    generator = TrajectoryGenerator(max_velocity=2.0, max_acceleration=2.0)
    generated = generator.generate(straight_line(3.0))
    trajectory = generated.trajectory
    # 1 s accelerating, 0.5 s cruising, 1 s braking
    assert generated.total_time == pytest.approx(2.5, abs=0.02)
    assert trajectory.total_distance == pytest.approx(3.0)
    assert trajectory.initial_state.velocity == 0.0
    assert trajectory.final_state.velocity == 0.0
    assert max(s.velocity for s in trajectory.states) == pytest.approx(2.0)


def test_profile_respects_limits():
    generator = TrajectoryGenerator(max_velocity=3.0, max_acceleration=2.5, max_centripetal_acceleration=2.0)
    waypoints = [Waypoint(1.0, 1.0), Waypoint(3.0, 2.5), Waypoint(5.0, 1.0), Waypoint(6.0, 3.0)]
    trajectory = generator.generate(waypoints).trajectory
    times = [s.time for s in trajectory.states]
    assert all(b > a for a, b in zip(times, times[1:]))
    for state in trajectory.states:
        assert state.velocity <= 3.0 + 1e-9
        assert abs(state.acceleration) <= 2.5 + 1e-6
        assert state.velocity ** 2 * abs(state.curvature) <= 2.0 + 1e-6


def test_out_and_back_stops_at_turnaround():
    generator = TrajectoryGenerator(max_velocity=4.0, max_acceleration=3.0, max_centripetal_acceleration=4.0)
    trajectory = generator.generate([Waypoint(0.0, 0.0), Waypoint(2.0, 0.0), Waypoint(0.0, 0.0)]).trajectory
    states = trajectory.states

    xs = [s.pose.x for s in states]
    assert max(xs) <= 2.0 + 1e-9
    assert states[int(np.argmax(xs))].velocity < 0.2

    for a, b in zip(states, states[1:]):
        if abs(math.remainder(b.pose.heading - a.pose.heading, 2.0 * math.pi)) > math.pi / 2:
            assert min(a.velocity, b.velocity) < 0.2
        step = b.distance - a.distance
        if step > 0.0:
            assert abs(b.velocity ** 2 - a.velocity ** 2) / (2.0 * step) <= 3.0 + 1e-6

    final = trajectory.final_state.pose
    assert (final.x, final.y) == pytest.approx((0.0, 0.0), abs=1e-9)


def test_sharp_corner_does_not_overshoot():
    generator = TrajectoryGenerator(max_velocity=3.0, max_acceleration=2.0)
    trajectory = generator.generate([Waypoint(0.0, 0.0), Waypoint(2.0, 0.0), Waypoint(0.5, 1.0)]).trajectory
    corner = min(trajectory.states, key=lambda s: math.hypot(s.pose.x - 2.0, s.pose.y))

    assert max(s.pose.x for s in trajectory.states) <= 2.0 + 1e-9
    assert corner.velocity == 0.0


def test_trajectory_passes_through_waypoints():
    generator = TrajectoryGenerator(max_velocity=2.0, max_acceleration=2.0)
    waypoints = [Waypoint(0.0, 0.0), Waypoint(2.0, 1.0), Waypoint(4.0, 0.0)]
    trajectory = generator.generate(waypoints).trajectory
    positions = np.array([(s.pose.x, s.pose.y) for s in trajectory.states])
    for waypoint in waypoints:
        gaps = np.hypot(positions[:, 0] - waypoint.x, positions[:, 1] - waypoint.y)
        assert gaps.min() == pytest.approx(0.0, abs=1e-9)
    final = trajectory.final_state.pose
    assert (final.x, final.y) == pytest.approx((4.0, 0.0))


def test_sample_clamps_to_time_domain():
    generated = TrajectoryGenerator(max_velocity=2.0, max_acceleration=2.0).generate(straight_line())
    trajectory = generated.trajectory
    assert trajectory.sample(-1.0) == trajectory.initial_state
    assert trajectory.sample(100.0) == trajectory.final_state
    mid = trajectory.sample(1.25)
    assert mid.velocity == pytest.approx(2.0, abs=1e-6)
    assert mid.pose.x == pytest.approx(1.5, abs=1e-3)


def test_sample_is_monotonic_in_distance():
    trajectory = TrajectoryGenerator(max_velocity=2.0, max_acceleration=2.0).generate(straight_line()).trajectory
    distances = [trajectory.sample(t).distance for t in np.linspace(0.0, trajectory.total_time, 200)]
    assert all(b >= a - 1e-12 for a, b in zip(distances, distances[1:]))


def test_rotation_sequence_hits_targets_and_holds():
    generator = TrajectoryGenerator(max_velocity=2.0, max_acceleration=2.0)
    waypoints = [Waypoint(0.0, 0.0, rotation=0.0), Waypoint(3.0, 0.0, rotation=math.pi / 2)]
    generated = generator.generate(waypoints)
    rotation = generated.rotation
    assert rotation.sample(0.0).heading == pytest.approx(0.0)
    assert rotation.sample(generated.total_time).heading == pytest.approx(math.pi / 2)
    assert rotation.sample(generated.total_time + 5.0).heading == pytest.approx(math.pi / 2)
    assert rotation.sample(generated.total_time + 5.0).angular_velocity == 0.0
    assert generated.target_pose(generated.total_time).heading == pytest.approx(math.pi / 2)


def test_start_rotation_default_order():
    generator = TrajectoryGenerator(max_velocity=2.0, max_acceleration=2.0)
    # No rotation targets: start heading follows the path tangent
    generated = generator.generate([Waypoint(0.0, 0.0), Waypoint(0.0, 2.0)])
    assert generated.rotation.sample(0.0).heading == pytest.approx(math.pi / 2)
    # Explicit start rotation wins over the first waypoint's target
    generated = generator.generate([Waypoint(0.0, 0.0, rotation=1.0), Waypoint(0.0, 2.0)], start_rotation=-1.0)
    assert generated.rotation.sample(0.0).heading == pytest.approx(-1.0)


def test_rotation_from_anchors_eases_between_targets():
    sequence = RotationSequence.from_anchors([(0.0, 0.0), (1.0, 1.0)], 0.1)
    assert sequence.start_time == 0.0
    assert sequence.end_time == pytest.approx(1.0)
    assert sequence.sample(0.5).heading == pytest.approx(0.5)
    assert sequence.states[-1].angular_velocity == pytest.approx(0.0)
    assert sequence.sample(0.5).angular_velocity == pytest.approx(1.5)


def test_rotation_sequence_requires_increasing_times():
    with pytest.raises(TrajectoryGenerationError):
        RotationSequence([RotationState(0.0, 0.0, 0.0), RotationState(0.0, 1.0, 0.0)])
    with pytest.raises(TrajectoryGenerationError):
        RotationSequence.from_anchors([(1.0, 0.0), (0.5, 1.0)], 0.1)


def test_constraint_zone_slows_segment():
    generator = TrajectoryGenerator(max_velocity=3.0, max_acceleration=3.0)
    slow = PathConstraints(max_velocity=0.5, max_acceleration=3.0)
    waypoints = [Waypoint(0.0, 0.0), Waypoint(3.0, 0.0, constraints=slow), Waypoint(6.0, 0.0)]
    trajectory = generator.generate(waypoints).trajectory
    in_zone = [s for s in trajectory.states if 3.05 < s.pose.x < 5.95]
    assert in_zone
    assert max(s.velocity for s in in_zone) <= 0.5 + 1e-9
    assert max(s.velocity for s in trajectory.states if s.pose.x < 2.9) > 1.0


def test_waypoint_velocity_override():
    generator = TrajectoryGenerator(max_velocity=3.0, max_acceleration=3.0)
    waypoints = [Waypoint(0.0, 0.0), Waypoint(3.0, 0.0, velocity=0.5), Waypoint(6.0, 0.0)]
    trajectory = generator.generate(waypoints).trajectory
    at_waypoint = min(trajectory.states, key=lambda s: abs(s.pose.x - 3.0))
    assert at_waypoint.velocity == pytest.approx(0.5)


def test_end_velocity_is_honoured():
    generator = TrajectoryGenerator(max_velocity=2.0, max_acceleration=2.0)
    trajectory = generator.generate(straight_line(), start_velocity=1.0, end_velocity=1.5).trajectory
    assert trajectory.initial_state.velocity == pytest.approx(1.0)
    assert trajectory.final_state.velocity == pytest.approx(1.5)


def test_duplicate_waypoints_are_merged():
    generator = TrajectoryGenerator(max_velocity=2.0, max_acceleration=2.0)
    waypoints = [Waypoint(0.0, 0.0), Waypoint(0.0, 0.0, rotation=1.0), Waypoint(3.0, 0.0)]
    generated = generator.generate(waypoints)
    assert generated.total_time == pytest.approx(2.5, abs=0.02)
    assert generated.rotation.sample(0.0).heading == pytest.approx(1.0)


def test_invalid_waypoints():
    generator = TrajectoryGenerator()
    with pytest.raises(InvalidWaypointsError):
        generator.generate([Waypoint(0.0, 0.0)])
    with pytest.raises(InvalidWaypointsError):
        generator.generate([Waypoint(1.0, 1.0), Waypoint(1.0, 1.0)])
    with pytest.raises(InvalidWaypointsError):
        generator.generate([Waypoint(0.0, 0.0), Waypoint(float("nan"), 1.0)])
    with pytest.raises(InvalidWaypointsError):
        generator.generate(straight_line(), end_velocity=-1.0)
    # Still a ValueError for callers that don't know the hierarchy
    with pytest.raises(ValueError):
        generator.generate([])


def test_invalid_limits():
    with pytest.raises(InvalidInputError):
        TrajectoryGenerator(max_velocity=0.0)
    with pytest.raises(InvalidInputError):
        TrajectoryGenerator(max_acceleration=float("inf"))
