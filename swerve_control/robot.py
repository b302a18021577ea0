#!/usr/bin/env python3
"""
Fixed-Period Control Loop for a Swerve Robot

This module wires the estimation, control and mechanism components into one
periodic loop. Each tick runs in a fixed order:

1. Read gyro, module and mechanism inputs
2. Wheel odometry update and pose estimator prediction
3. Fuse queued vision measurements
4. Take one pose snapshot for the rest of the tick
5. Drive command: trajectory follower, point seek or operator input
6. Shot solution for the snapshot pose and velocity
7. Superstructure step
8. Module and mechanism outputs
9. Observers (telemetry)

Vision arrives on an asyncio websocket task sharing the event loop, so it
can only be inserted between ticks.
"""

import asyncio
import logging
import math
import signal
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .cache import Cache, CountingCache
from .component_modes import ComponentMode
from .config import BLUE_GOAL, TERM_BLUE, TERM_ORANGE, TERM_RESET, VISION_WS_URI
from .data_collector import TelemetryRecorder
from .drive_controller import DriveController
from .errors import SchedulingOverrunError
from .follower import TrajectoryController, TrajectoryFollower
from .geometry import ChassisSpeeds, Pose2D
from .hardware import Hardware, ModuleInputs, build_hardware
from .localizer import PoseEstimator
from .model import ModuleState, SwerveDriveKinematics, SwerveOdometry
from .path import GeneratedTrajectory, TrajectoryGenerator, Waypoint
from .shooter_math import Alliance, ShotData, calculate_shot_data, goal_facing, goal_position
from .superstructure import (
    Superstructure,
    SuperstructureEvent,
    SuperstructureInputs,
    SuperstructureOutputs,
    SuperstructureState,
)
from .vision_client import VisionClient


class CustomFormatter(logging.Formatter):
    """Custom logging formatter that removes timestamps from INFO messages.

    This formatter provides clean console output by showing INFO messages without
    timestamps while preserving full context for WARNING, ERROR, and DEBUG messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno == logging.INFO:
            return record.getMessage()
        return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels with timestamps. If False, show INFO
                 without timestamps and WARNING/ERROR with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
        logger = logging.getLogger()
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)


@dataclass(frozen=True)
class OperatorInput:
    """Driver axes for one tick.

    ``x``, ``y`` and ``theta`` are in [-1, 1]. ``heading_lock`` holds a
    field heading (rad) in place of the rotation axis; ``aim_lock`` holds
    the shot solution's robot angle instead.
    """

    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0
    heading_lock: Optional[float] = None
    aim_lock: bool = False


@dataclass(frozen=True)
class TickSnapshot:
    """Everything one tick decided, handed to observers."""

    timestamp: float
    pose: Pose2D
    odometry_pose: Pose2D
    command: ChassisSpeeds
    reference_pose: Optional[Pose2D]
    progress: Optional[float]
    shot: Optional[ShotData]
    state: SuperstructureState
    outputs: SuperstructureOutputs
    enabled: bool
    vision_accepted: int = 0


class RobotContext:
    """Shared robot state, passed explicitly to the control loop.

    Attributes:
        hardware: Capability implementations chosen at startup.
        kinematics: Swerve kinematics for the configured module layout.
        odometry: Wheel odometry integrator.
        estimator: Latency-compensated pose estimator.
        trajectory_generator: Builds trajectories from waypoints.
        trajectory_controller: Shared tracking law for trajectory followers.
        drive_controller: Operator and point-seek drive shaping.
        superstructure: Mechanism state machine.
        alliance_cache: Alliance, refreshed every ALLIANCE_REFRESH_TICKS reads.
        goal_cache: Goal position and facing for the cached alliance.
    """

    def __init__(
        self,
        hardware: Hardware,
        component_mode: Optional[ComponentMode] = None,
        alliance_supplier: Optional[Callable[[], Alliance]] = None,
        config=None,
    ):
        if config is None:
            from swerve_control import config as cfg
        else:
            cfg = config

        self.config = cfg
        self.hardware = hardware
        self.component_mode = component_mode or ComponentMode()

        self.kinematics = SwerveDriveKinematics(cfg.MODULE_TRANSLATIONS)
        self.odometry = SwerveOdometry(self.kinematics)
        self.estimator = PoseEstimator(config=cfg)
        self.trajectory_generator = TrajectoryGenerator(
            max_centripetal_acceleration=cfg.TRAJECTORY_MAX_CENTRIPETAL_ACCELERATION, config=cfg
        )
        self.trajectory_controller = TrajectoryController(
            max_acceleration=cfg.MAX_LINEAR_ACCELERATION,
            max_angular_acceleration=cfg.MAX_ANGULAR_ACCELERATION,
            use_feedforward=self.component_mode.use_feedforward,
            config=cfg,
        )
        self.drive_controller = DriveController(config=cfg)
        self.superstructure = Superstructure(auto_fire=self.component_mode.auto_fire, config=cfg)

        self.alliance_cache = CountingCache(alliance_supplier or (lambda: Alliance.BLUE), cfg.ALLIANCE_REFRESH_TICKS)
        self._goal_alliance: Optional[Alliance] = None
        self.goal_cache = Cache(lambda: (goal_position(self._goal_alliance), goal_facing(self._goal_alliance)))

        self.shot: Optional[ShotData] = None
        self.command = ChassisSpeeds.zero()

    def goal(self):
        """Goal position and facing for the current alliance."""
        alliance = self.alliance_cache.get()
        if alliance is not self._goal_alliance:
            self._goal_alliance = alliance
            return self.goal_cache.update()
        return self.goal_cache.get()

    def reset_pose(self, pose: Pose2D, now: float) -> None:
        """Re-seed odometry and the estimator at a known pose."""
        self.odometry.reset(pose)
        self.estimator.reset_pose(pose, now)


class ControlLoop:
    """Runs the robot tick by tick.

    ``tick`` is a plain synchronous call so it can be driven by tests with a
    synthetic clock; ``run`` schedules it at the robot period on asyncio.

    Attributes:
        context: Shared robot state.
        observers: Callables receiving a TickSnapshot after every tick.
        follower: Active trajectory follower, if any.
        enabled: Robot enable state. Disabled ticks command zero everywhere.
        should_stop: Flag indicating whether to stop ``run``.
    """

    def __init__(
        self,
        context: RobotContext,
        observers: Sequence[Callable[[TickSnapshot], None]] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        cfg = context.config
        self.context = context
        self.observers: List[Callable[[TickSnapshot], None]] = list(observers)
        self.clock = clock
        self.period: float = cfg.ROBOT_PERIOD
        self.enforce_period: bool = cfg.ENFORCE_PERIOD
        self.max_linear_speed: float = cfg.MAX_LINEAR_SPEED

        self.follower: Optional[TrajectoryFollower] = None
        self.drive_target: Optional[Pose2D] = None
        self.operator = OperatorInput()
        self.enabled = False
        self.should_stop = False
        self.tick_count = 0
        self._module_inputs: Optional[List[ModuleInputs]] = None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def follow_trajectory(self, trajectory: GeneratedTrajectory, now: float) -> TrajectoryFollower:
        """Start following ``trajectory``; a running follower is interrupted first."""
        self.cancel_trajectory()
        self.drive_target = None
        self.follower = TrajectoryFollower(trajectory, self.context.trajectory_controller, config=self.context.config)
        self.follower.initialize(now)
        return self.follower

    def cancel_trajectory(self) -> None:
        """Interrupt the active follower and hand the drivetrain its stop command."""
        if self.follower is None:
            return
        self._apply_drive(self.follower.end(interrupted=True))
        self.follower = None

    def drive_to(self, target: Optional[Pose2D]) -> None:
        """Seek ``target`` with the point-seek controller (None cancels)."""
        self.cancel_trajectory()
        self.context.drive_controller.reset()
        self.drive_target = target

    def set_operator_input(self, operator: OperatorInput) -> None:
        self.operator = operator

    def set_enabled(self, enabled: bool) -> None:
        if enabled != self.enabled:
            logging.info(f"{TERM_ORANGE}Robot {'enabled' if enabled else 'disabled'}{TERM_RESET}")
        self.enabled = enabled
        if not enabled:
            self.cancel_trajectory()
            self.drive_target = None
            self.context.hardware.mechanism.apply(self.context.superstructure.safe_outputs)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def _apply_drive(self, command: ChassisSpeeds) -> None:
        ctx = self.context
        states = ctx.kinematics.to_module_states(command)
        states = SwerveDriveKinematics.desaturate_wheel_speeds(states, self.max_linear_speed)
        for i, (state, io) in enumerate(zip(states, ctx.hardware.modules)):
            if self._module_inputs is not None:
                state = state.optimize(self._module_inputs[i].angle)
            io.set_state(state.angle, state.velocity)
        ctx.hardware.gyro.set_expected_yaw_rate(command.omega)
        ctx.command = command

    def _drive_command(self, now: float, pose: Pose2D, field_speeds: ChassisSpeeds):
        """Pick this tick's drive command and the trajectory reference, if any.

        Aim lock steers to the previous tick's shot solution.
        """
        ctx = self.context
        drive = ctx.drive_controller

        if self.follower is not None:
            if self.follower.is_finished(now, pose):
                command = self.follower.end(interrupted=False)
                self.follower = None
                return command, None, None
            follower = self.follower
            command = follower.execute(now, pose, field_speeds)
            reference = follower.trajectory.target_pose(follower.elapsed(now))
            return command, reference, follower.progress(now)

        if self.drive_target is not None:
            command = drive.drive_to_pose(self.drive_target, pose, self.max_linear_speed, self.period)
            if drive.at_pose():
                logging.info(f"{TERM_BLUE}✓ Reached drive target{TERM_RESET}")
                self.drive_target = None
                command = ChassisSpeeds.zero()
            return drive.finalize(command), None, None

        op = self.operator
        if op.aim_lock:
            target = ctx.shot.robot_angle if ctx.shot is not None else pose.heading
            command = drive.drive_with_heading_lock(
                op.x, op.y, target, pose, self.max_linear_speed, self.period
            )
        elif op.heading_lock is not None:
            command = drive.drive_with_heading_lock(
                op.x, op.y, op.heading_lock, pose, self.max_linear_speed, self.period
            )
        else:
            command = drive.get_speeds(op.x, op.y, op.theta, pose.heading, self.max_linear_speed)
        return drive.finalize(command), None, None

    def tick(self, now: float) -> TickSnapshot:
        """Run one control period.

        Args:
            now: Tick timestamp in the control loop time base (s).

        Returns:
            TickSnapshot of what this tick estimated and commanded.

        Raises:
            SchedulingOverrunError: If the tick took longer than the period
                and period enforcement is on.
        """
        started = time.perf_counter()
        ctx = self.context
        hw = ctx.hardware

        gyro = hw.gyro.update_inputs()
        module_inputs = [io.update_inputs() for io in hw.modules]
        mechanism = hw.mechanism.update_inputs()
        self._module_inputs = module_inputs

        readings = [ModuleState(m.angle, m.velocity, m.distance) for m in module_inputs]
        update = ctx.odometry.update(readings, gyro.yaw, gyro.connected)
        ctx.estimator.predict(update.twist, now)

        accepted = 0
        measurements = hw.vision.poll()
        if ctx.component_mode.use_vision:
            accepted = sum(1 for m in measurements if ctx.estimator.add_vision_measurement(m))

        pose = ctx.estimator.get_estimated_pose()
        field_speeds = update.speeds.to_field_relative(pose.heading)

        if self.enabled:
            command, reference, progress = self._drive_command(now, pose, field_speeds)
        else:
            command, reference, progress = ChassisSpeeds.zero(), None, None

        goal, facing = ctx.goal()
        shot = calculate_shot_data(
            pose,
            field_speeds,
            goal,
            facing,
            degraded=mechanism.faulted or not update.valid,
            use_momentum_compensation=ctx.component_mode.use_momentum_compensation,
        )
        ctx.shot = shot

        outputs = ctx.superstructure.step(SuperstructureInputs(now, self.enabled, shot, mechanism))

        self._apply_drive(command)
        hw.mechanism.apply(outputs)

        snapshot = TickSnapshot(
            timestamp=now,
            pose=pose,
            odometry_pose=ctx.estimator.get_odometry_pose(),
            command=command,
            reference_pose=reference,
            progress=progress,
            shot=shot,
            state=ctx.superstructure.state,
            outputs=outputs,
            enabled=self.enabled,
            vision_accepted=accepted,
        )
        for observer in self.observers:
            observer(snapshot)
        self.tick_count += 1

        elapsed = time.perf_counter() - started
        if self.enforce_period and elapsed > self.period:
            raise SchedulingOverrunError(elapsed, self.period)
        return snapshot

    async def run(self, duration: Optional[float] = None) -> None:
        """Tick at the robot period until stopped or ``duration`` elapses."""
        self.should_stop = False
        start = self.clock()
        next_tick = start
        logging.info(f"{TERM_BLUE}✓ Control loop running at {1.0 / self.period:.0f} Hz{TERM_RESET}")

        while not self.should_stop:
            now = self.clock()
            if duration is not None and now - start >= duration:
                break
            self.tick(now)
            next_tick += self.period
            await asyncio.sleep(max(0.0, next_tick - self.clock()))

        logging.info(f"Control loop stopped after {self.tick_count} ticks")

    def stop(self) -> None:
        """Signal the loop to stop."""
        self.should_stop = True


# ============================================================================
# Demo routine
# ============================================================================

DEMO_START = Pose2D(2.0, 1.5, 0.0)
DEMO_WAYPOINTS = [
    Waypoint(2.0, 1.5, rotation=0.0),
    Waypoint(3.5, 3.0),
    Waypoint(2.5, 5.5, rotation=math.atan2(5.5 - BLUE_GOAL[1], 2.5 - BLUE_GOAL[0])),
]
"""Drive from the source side to a shooting spot in front of the blue goal."""


class DemoRoutine:
    """Observer that sequences intake, then aim and fire once the trajectory ends."""

    def __init__(self, loop: ControlLoop):
        self.loop = loop
        self.superstructure = loop.context.superstructure
        self.intake_requested = False
        self.aim_requested = False

    def __call__(self, snapshot: TickSnapshot) -> None:
        if not snapshot.enabled:
            return
        if not self.intake_requested:
            self.superstructure.request(SuperstructureEvent.INTAKE_REQUEST)
            self.intake_requested = True
        elif self.loop.follower is None and not self.aim_requested and snapshot.state is SuperstructureState.STOW:
            # Fire as soon as the pivot and flywheel report ready
            self.superstructure.auto_fire = True
            self.superstructure.request(SuperstructureEvent.AIM_REQUEST)
            self.aim_requested = True


async def main(
    component_mode: Optional[ComponentMode] = None,
    duration: Optional[float] = None,
    output_dir: str = ".",
) -> None:
    """Main entry point: run the demo routine on the selected hardware.

    Args:
        component_mode: ComponentMode configuration for component isolation testing.
        duration: Seconds to run. Defaults to the trajectory time plus 3 s.
        output_dir: Base directory for telemetry output.
    """
    from swerve_control import config as cfg

    mode = component_mode or ComponentMode()
    logging.info(f"{TERM_ORANGE}Component mode: {mode}{TERM_RESET}")

    hardware = build_hardware(mode.hardware, len(cfg.MODULE_TRANSLATIONS), cfg.ROBOT_PERIOD)
    context = RobotContext(hardware, component_mode=mode)

    with TelemetryRecorder(output_dir=output_dir) as recorder:
        loop = ControlLoop(context, observers=[recorder.record])
        loop.observers.append(DemoRoutine(loop))

        trajectory = context.trajectory_generator.generate(DEMO_WAYPOINTS)
        if duration is None:
            duration = trajectory.total_time + 3.0

        vision = None
        vision_task = None
        if mode.use_vision and hardware.vision_sink is not None:
            vision = VisionClient(VISION_WS_URI, hardware.vision_sink, clock=loop.clock)
            vision_task = asyncio.create_task(vision.run())

        event_loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            """Handle shutdown signals (SIGINT, SIGTERM)."""
            logging.info("\nShutdown signal received...")
            loop.stop()
            if vision is not None:
                vision.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            event_loop.add_signal_handler(sig, signal_handler)

        now = loop.clock()
        context.reset_pose(DEMO_START, now)
        loop.set_enabled(True)
        loop.follow_trajectory(trajectory, now)
        try:
            await loop.run(duration)
        finally:
            loop.set_enabled(False)
            if vision is not None:
                vision.stop()
            if vision_task is not None:
                vision_task.cancel()
                try:
                    await vision_task
                except asyncio.CancelledError:
                    pass
