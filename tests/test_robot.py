import math
import time

import pytest

from swerve_control import config
from swerve_control.component_modes import ComponentMode
from swerve_control.errors import SchedulingOverrunError
from swerve_control.geometry import ChassisSpeeds, Pose2D
from swerve_control.hardware import build_hardware
from swerve_control.localizer import VisionMeasurement
from swerve_control.path import Waypoint
from swerve_control.robot import (
    DEMO_START,
    DEMO_WAYPOINTS,
    ControlLoop,
    DemoRoutine,
    OperatorInput,
    RobotContext,
)
from swerve_control.shooter_math import Alliance, goal_position
from swerve_control.superstructure import SuperstructureEvent, SuperstructureState
from tests.conftest import make_config

PERIOD = config.ROBOT_PERIOD


def make_loop(cfg, component_mode=None, alliance_supplier=None, start=DEMO_START):
    hardware = build_hardware("sim", len(cfg.MODULE_TRANSLATIONS), cfg.ROBOT_PERIOD)
    context = RobotContext(
        hardware, component_mode=component_mode, alliance_supplier=alliance_supplier, config=cfg
    )
    context.reset_pose(start, 0.0)
    return ControlLoop(context)


def run_ticks(loop, count, start=0.0):
    snapshots = []
    for i in range(count):
        snapshots.append(loop.tick(start + i * PERIOD))
    return snapshots


def test_disabled_tick_commands_nothing(loop_config):
    loop = make_loop(loop_config)
    loop.set_operator_input(OperatorInput(x=1.0))
    loop.context.superstructure.request(SuperstructureEvent.INTAKE_REQUEST)

    snapshot = loop.tick(0.0)

    assert snapshot.command == ChassisSpeeds.zero()
    assert snapshot.state is SuperstructureState.STOW
    assert snapshot.outputs == loop.context.superstructure.safe_outputs
    assert not snapshot.enabled
    assert loop.tick_count == 1
    for module in loop.context.hardware.modules:
        assert module.velocity == 0.0


def test_snapshot_reaches_observers(loop_config):
    seen = []
    loop = make_loop(loop_config)
    loop.observers.append(seen.append)

    snapshots = run_ticks(loop, 3)

    assert seen == snapshots
    assert [s.timestamp for s in seen] == pytest.approx([0.0, PERIOD, 2 * PERIOD])


def test_operator_drive_moves_robot(loop_config):
    loop = make_loop(loop_config)
    loop.set_enabled(True)
    loop.set_operator_input(OperatorInput(x=1.0))

    snapshots = run_ticks(loop, 50)

    assert snapshots[-1].command.vx > 0.0
    assert snapshots[-1].pose.x > DEMO_START.x
    assert snapshots[-1].pose.y == pytest.approx(DEMO_START.y, abs=1e-6)


def test_follows_demo_trajectory_to_goal(loop_config):
    loop = make_loop(loop_config)
    trajectory = loop.context.trajectory_generator.generate(DEMO_WAYPOINTS)
    loop.set_enabled(True)
    loop.follow_trajectory(trajectory, 0.0)

    limit = int((trajectory.total_time + loop_config.TRAJECTORY_END_TIMEOUT) / PERIOD) + 10
    snapshots = []
    for i in range(limit):
        snapshots.append(loop.tick(i * PERIOD))
        if loop.follower is None:
            break

    assert loop.follower is None
    goal = DEMO_WAYPOINTS[-1]
    final = snapshots[-1].pose
    assert math.hypot(final.x - goal.x, final.y - goal.y) < 0.25

    references = [s.progress for s in snapshots if s.progress is not None]
    assert references == sorted(references)
    assert snapshots[-1].command == ChassisSpeeds.zero()


def test_new_trajectory_interrupts_running_one(loop_config):
    loop = make_loop(loop_config)
    generator = loop.context.trajectory_generator
    first = generator.generate(DEMO_WAYPOINTS)
    loop.set_enabled(True)
    old = loop.follow_trajectory(first, 0.0)
    run_ticks(loop, 10)

    second = generator.generate([Waypoint(DEMO_START.x, DEMO_START.y), Waypoint(4.0, 1.5)])
    new = loop.follow_trajectory(second, 10 * PERIOD)

    assert old.finished
    assert loop.follower is new
    assert loop.context.command == ChassisSpeeds.zero()
    for module in loop.context.hardware.modules:
        assert module.velocity == 0.0


def test_disable_cancels_trajectory(loop_config):
    loop = make_loop(loop_config)
    loop.set_enabled(True)
    follower = loop.follow_trajectory(loop.context.trajectory_generator.generate(DEMO_WAYPOINTS), 0.0)
    run_ticks(loop, 5)

    loop.set_enabled(False)

    assert follower.finished
    assert loop.follower is None
    assert loop.tick(5 * PERIOD).command == ChassisSpeeds.zero()


def test_disable_stops_mechanism_immediately(loop_config):
    loop = make_loop(loop_config)
    loop.set_enabled(True)
    loop.context.superstructure.request(SuperstructureEvent.INTAKE_REQUEST)
    run_ticks(loop, 2)
    mechanism = loop.context.hardware.mechanism
    assert loop.context.superstructure.state is SuperstructureState.INTAKE
    assert mechanism.intake_volts > 0.0

    loop.set_enabled(False)

    assert mechanism.intake_volts == 0.0
    assert mechanism.feeder_volts == 0.0
    assert mechanism.rpm_setpoint == 0.0


def test_drive_to_seeks_target(loop_config):
    loop = make_loop(loop_config)
    loop.set_enabled(True)
    loop.drive_to(Pose2D(DEMO_START.x + 0.5, DEMO_START.y, 0.0))

    snapshots = run_ticks(loop, 25)

    assert snapshots[-1].pose.x > DEMO_START.x
    assert snapshots[-1].pose.x < DEMO_START.x + 0.6


def test_vision_is_fused_between_ticks(loop_config):
    loop = make_loop(loop_config)
    loop.tick(0.0)

    sink = loop.context.hardware.vision_sink
    sink(VisionMeasurement(Pose2D(DEMO_START.x + 0.5, DEMO_START.y, 0.0), timestamp=0.0))
    snapshot = loop.tick(PERIOD)

    assert snapshot.vision_accepted == 1
    assert snapshot.pose.x == pytest.approx(DEMO_START.x + 0.5)
    assert snapshot.odometry_pose.x == pytest.approx(DEMO_START.x)


def test_vision_ignored_when_disabled_by_component_mode(loop_config):
    loop = make_loop(loop_config, component_mode=ComponentMode(use_vision=False))
    loop.tick(0.0)

    loop.context.hardware.vision_sink(VisionMeasurement(Pose2D(3.0, 1.5, 0.0), timestamp=0.0))
    snapshot = loop.tick(PERIOD)

    assert snapshot.vision_accepted == 0
    assert snapshot.pose.x == pytest.approx(DEMO_START.x)
    # Measurements are drained even when not fused
    assert loop.context.hardware.vision.poll() == []


def test_shot_solution_every_tick(loop_config):
    loop = make_loop(loop_config)
    snapshot = loop.tick(0.0)

    assert snapshot.shot is not None
    assert loop.context.shot is snapshot.shot
    goal = goal_position(Alliance.BLUE)
    expected = math.hypot(DEMO_START.x - goal[0], DEMO_START.y - goal[1])
    assert snapshot.shot.distance == pytest.approx(expected)


def test_goal_follows_alliance_changes():
    alliance = [Alliance.BLUE]
    loop = make_loop(
        make_config(ENFORCE_PERIOD=False, ALLIANCE_REFRESH_TICKS=2),
        alliance_supplier=lambda: alliance[0],
    )
    context = loop.context

    assert context.goal()[0] == goal_position(Alliance.BLUE)
    alliance[0] = Alliance.RED
    assert context.goal()[0] == goal_position(Alliance.RED)


def test_overrun_raises_when_enforced():
    loop = make_loop(make_config(ENFORCE_PERIOD=True))
    loop.observers.append(lambda snapshot: time.sleep(PERIOD * 2))

    with pytest.raises(SchedulingOverrunError):
        loop.tick(0.0)


def test_demo_routine_intakes_then_fires(loop_config):
    loop = make_loop(loop_config)
    loop.observers.append(DemoRoutine(loop))
    trajectory = loop.context.trajectory_generator.generate(DEMO_WAYPOINTS)
    loop.set_enabled(True)
    loop.follow_trajectory(trajectory, 0.0)

    limit = int((trajectory.total_time + loop_config.TRAJECTORY_END_TIMEOUT + 3.0) / PERIOD)
    states = [s.state for s in run_ticks(loop, limit)]

    assert SuperstructureState.INTAKE in states
    assert SuperstructureState.FIRE in states
    assert states.index(SuperstructureState.INTAKE) < states.index(SuperstructureState.FIRE)
    assert not loop.context.hardware.mechanism.note_present
