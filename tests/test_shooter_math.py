import math

import numpy as np
import pytest

from swerve_control import config
from swerve_control.geometry import ChassisSpeeds, Pose2D
from swerve_control.shooter_math import (
    Alliance,
    InterpolatingTable,
    ShotConfidence,
    calculate_confidence,
    calculate_robot_angle_momentum_compensation,
    calculate_shooter_rpm,
    calculate_shot_data,
    calculate_static_robot_angle,
    goal_facing,
    goal_position,
    goal_to_robot_angle,
    in_range,
)

BLUE = goal_position(Alliance.BLUE)
BLUE_FACING = goal_facing(Alliance.BLUE)
STILL = ChassisSpeeds.zero()


def test_red_goal_mirrors_blue():
    red = goal_position(Alliance.RED)
    assert red[0] == pytest.approx(config.FIELD_LENGTH - BLUE[0])
    assert red[1] == pytest.approx(BLUE[1])
    assert goal_facing(Alliance.RED) == pytest.approx(math.pi)
    assert BLUE_FACING == 0.0


def test_static_aim_points_rear_at_goal():
    pose = Pose2D(3.0, BLUE[1], 1.0)
    assert calculate_static_robot_angle(pose, BLUE, BLUE_FACING) == pytest.approx(0.0)

    red = goal_position(Alliance.RED)
    red_pose = Pose2D(red[0] - 3.0, red[1], 0.0)
    assert abs(calculate_static_robot_angle(red_pose, red, goal_facing(Alliance.RED))) == pytest.approx(math.pi)


def test_goal_to_robot_angle_is_clamped():
    assert goal_to_robot_angle(Pose2D(2.0, BLUE[1] + 2.0, 0.0), BLUE, BLUE_FACING) == pytest.approx(math.pi / 4)
    # Behind the alliance wall
    assert goal_to_robot_angle(Pose2D(-1.0, BLUE[1] + 0.1, 0.0), BLUE, BLUE_FACING) == pytest.approx(math.pi / 2)


def test_rpm_falloff_is_clamped_and_monotonic():
    minimum = (1.0 - config.RPM_FALLOFF_COEFFICIENT) * config.MAX_SHOOTER_RPM
    assert calculate_shooter_rpm(0.2) == pytest.approx(minimum)
    assert calculate_shooter_rpm(config.CLOSEST_RANGE) == pytest.approx(minimum)
    assert calculate_shooter_rpm(10.0) == pytest.approx(config.MAX_SHOOTER_RPM)
    values = [calculate_shooter_rpm(d) for d in np.linspace(0.5, 6.0, 50)]
    assert all(b >= a for a, b in zip(values, values[1:]))


def test_interpolating_table_clamps():
    table = InterpolatingTable([(1.0, 10.0), (3.0, 30.0)])
    assert table.get(2.0) == pytest.approx(20.0)
    assert table.get(0.0) == 10.0
    assert table.get(9.0) == 30.0
    with pytest.raises(ValueError):
        InterpolatingTable([(1.0, 1.0)])


def test_confidence_falloffs():
    assert calculate_confidence(3.0, 0.0, STILL) == 1.0
    assert calculate_confidence(config.MAX_RANGE + 0.5, 0.0, STILL) == 0.0
    assert calculate_confidence(3.0, 0.0, ChassisSpeeds(2.0, 0.0, 0.0)) == pytest.approx(0.5)
    assert calculate_confidence(3.0, math.radians(80), STILL) == 0.0
    assert calculate_confidence(3.0, 0.0, ChassisSpeeds(0.0, 0.0, 5.0)) == 0.0
    assert calculate_confidence(float("nan"), 0.0, STILL) == 0.0


def test_confidence_non_increasing_in_each_factor():
    distances = [calculate_confidence(d, 0.0, STILL) for d in np.linspace(0.0, 8.0, 80)]
    speeds = [calculate_confidence(3.0, 0.0, ChassisSpeeds(v, 0.0, 0.0)) for v in np.linspace(0.0, 4.0, 40)]
    for series in (distances, speeds):
        assert all(b <= a for a, b in zip(series, series[1:]))
        assert all(0.0 <= c <= 1.0 for c in series)


def test_confidence_levels():
    assert ShotConfidence.from_score(1.0) is ShotConfidence.HIGH
    assert ShotConfidence.from_score(config.SHOT_CONFIDENCE_THRESHOLD) is ShotConfidence.MEDIUM
    assert ShotConfidence.from_score(0.1) is ShotConfidence.LOW


def test_stationary_shot_uses_static_heading():
    pose = Pose2D(3.0, BLUE[1] + 1.0, 0.0)
    shot = calculate_shot_data(pose, STILL, BLUE, BLUE_FACING)
    assert shot.robot_angle == calculate_static_robot_angle(pose, BLUE, BLUE_FACING)
    assert calculate_robot_angle_momentum_compensation(pose, STILL, BLUE, BLUE_FACING) == shot.robot_angle
    assert shot.distance == pytest.approx(math.hypot(3.0, 1.0))
    assert shot.rpm == pytest.approx(calculate_shooter_rpm(shot.distance))
    assert shot.confidence == 1.0
    assert shot.level is ShotConfidence.HIGH
    assert in_range(pose, BLUE)


def test_moving_shot_leads_against_drift():
    pose = Pose2D(3.0, BLUE[1], 0.0)
    # Strafing toward +y: the note drifts +y, so aim below the goal
    speeds = ChassisSpeeds(0.0, 1.0, 0.0)
    compensated = calculate_shot_data(pose, speeds, BLUE, BLUE_FACING).robot_angle
    static = calculate_shot_data(pose, speeds, BLUE, BLUE_FACING, use_momentum_compensation=False).robot_angle
    assert compensated > static


def test_compensation_converges_to_static_as_speed_vanishes():
    pose = Pose2D(3.0, BLUE[1] + 0.5, 0.0)
    static = calculate_static_robot_angle(pose, BLUE, BLUE_FACING)
    gaps = [
        abs(
            calculate_robot_angle_momentum_compensation(pose, ChassisSpeeds(0.0, speed, 0.0), BLUE, BLUE_FACING)
            - static
        )
        for speed in (1e-3, 1e-6, 1e-9)
    ]
    assert gaps == sorted(gaps, reverse=True)
    assert gaps[-1] < 1e-6


def test_degraded_or_invalid_input_gives_zero_confidence():
    pose = Pose2D(3.0, BLUE[1], 0.0)
    assert calculate_shot_data(pose, STILL, BLUE, BLUE_FACING, degraded=True).confidence == 0.0
    bad = calculate_shot_data(Pose2D(float("nan"), 0.0, 0.0), STILL, BLUE, BLUE_FACING)
    assert bad.confidence == 0.0
    assert bad.rpm == 0.0
    assert calculate_shot_data(pose, ChassisSpeeds(float("inf"), 0.0, 0.0), BLUE, BLUE_FACING).confidence == 0.0
