"""Swerve Control - Motion Estimation and Control Core for a Swerve-Drive Robot

A fixed-period control stack for a four-module swerve robot that estimates its
field pose, follows time-parameterized trajectories, solves shots on the move
and sequences its intake/shooter mechanism.

## Architecture Overview

The system runs one control loop (50 Hz) with the following layers:

### Layer 1: State Estimation (model.py, localizer.py)
Wheel odometry fused with delayed vision measurements.
- Swerve kinematics: module states <-> chassis speeds (least squares)
- Odometry: exponential-map integration, gyro yaw replaces wheel rotation
- Pose estimator: buffered history, latency-compensated vision blending
- Output: Estimated field pose (x, y, heading)

### Layer 2: Trajectory Generation (path.py)
Builds time-parameterized paths from waypoints.
- Hermite spline through the waypoints
- Forward/backward velocity passes (trapezoid profile with curvature limits)
- Independent rotation sequence between heading targets

### Layer 3: Motion Control (follower.py, drive_controller.py, pid.py)
- Path-frame feedforward + feedback tracking of trajectories
- Operator drive shaping (deadband, curves, smoothing, heading lock)
- Point seek with PID on x, y and heading

### Layer 4: Shooting and Mechanism (shooter_math.py, superstructure.py)
- Pivot angle, flywheel RPM and aim heading with momentum compensation
- Shot confidence score gating the aim and fire transitions
- Table-driven state machine for intake, aim, fire and fault handling

## Modules

### Core Modules
- `config.py` - Centralized configuration parameters with documentation
- `geometry.py` - Poses, twists, chassis speeds and angle helpers
- `model.py` - Swerve kinematics and wheel odometry
- `localizer.py` - Pose estimator with vision fusion
- `path.py` - Trajectory generator and rotation sequences
- `follower.py` - Trajectory tracking controller and follower command
- `drive_controller.py` / `pid.py` - Operator drive and point seek
- `shooter_math.py` - Shot solutions and confidence
- `superstructure.py` - Mechanism state machine
- `cache.py` - Memoized and periodically refreshed values
- `hardware.py` - Capability interfaces and simulated hardware
- `errors.py` - Exception hierarchy

### Runtime & Data
- `robot.py` - Robot context, fixed-period control loop and demo routine
- `vision_client.py` - WebSocket client for vision measurements
- `component_modes.py` - Feature toggles for isolation testing
- `data_collector.py` - CSV telemetry recording

### Visualization
- `visualization.py` - Post-run plots of a recorded run
- `plot_results.py` - CLI for visualization tools

## Quick Start

```bash
python -m swerve_control            # run the simulated demo routine
python -m swerve_control.plot_results
```

## Version

0.1.0 - Initial implementation
"""

__version__ = "0.1.0"

# Export key classes for convenience
from .data_collector import TelemetryRecorder
from .follower import TrajectoryController, TrajectoryFollower
from .localizer import PoseEstimator
from .model import SwerveDriveKinematics, SwerveOdometry
from .path import TrajectoryGenerator
from .robot import ControlLoop, RobotContext
from .superstructure import Superstructure

__all__ = [
    "SwerveDriveKinematics",
    "SwerveOdometry",
    "PoseEstimator",
    "TrajectoryGenerator",
    "TrajectoryController",
    "TrajectoryFollower",
    "Superstructure",
    "RobotContext",
    "ControlLoop",
    "TelemetryRecorder",
]
