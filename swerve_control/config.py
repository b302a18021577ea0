"""Configuration parameters for the swerve control system.

This module centralizes all configuration parameters including:
- Physical robot parameters (module layout, speed envelope)
- Control loop timing
- Pose estimation and vision fusion parameters
- Trajectory generation and tracking gains
- Operator drive shaping
- Shooter ballistics and field geometry
- Superstructure interlocks and timings
- Vision link and visualization settings

Components take explicit constructor overrides; this module is the default
source. All parameters are documented with their purpose, valid ranges, and
tuning rationale.
"""

import math

# ============================================================================
# Physical Robot Parameters
# ============================================================================

MODULE_OFFSET = 0.3302
"""Distance from the robot center to each swerve module along x and y (meters).

13 inches: the modules sit at the corners of a square frame.
"""

MODULE_TRANSLATIONS = (
    (MODULE_OFFSET, MODULE_OFFSET),  # front left
    (MODULE_OFFSET, -MODULE_OFFSET),  # front right
    (-MODULE_OFFSET, MODULE_OFFSET),  # back left
    (-MODULE_OFFSET, -MODULE_OFFSET),  # back right
)
"""Module positions in the robot frame (meters), x forward, y left.

Order matters: module readings and commands use the same ordering.
"""

MAX_LINEAR_SPEED = 4.5
"""Maximum module wheel speed (m/s). Hardware limit of the drive motors."""

MAX_ANGULAR_SPEED = MAX_LINEAR_SPEED / math.hypot(MODULE_OFFSET, MODULE_OFFSET)
"""Maximum chassis rotation rate (rad/s).

Spinning in place at this rate puts every module at MAX_LINEAR_SPEED.
"""

MAX_LINEAR_ACCELERATION = 8.0
"""Chassis acceleration limit applied by the trajectory controller (m/s²).

Below the traction limit so commanded steps never break the wheels loose.
"""

MAX_ANGULAR_ACCELERATION = 20.0
"""Chassis angular acceleration limit applied by the trajectory controller (rad/s²)."""


# ============================================================================
# Control Loop Timing
# ============================================================================

ROBOT_PERIOD = 0.02
"""Control loop period (seconds). 50 Hz, the standard robot controller rate."""

ENFORCE_PERIOD = True
"""Raise SchedulingOverrunError when a tick takes longer than ROBOT_PERIOD.

Disable only for offline replay where wall-clock time is meaningless.
"""


# ============================================================================
# Pose Estimation Parameters
# ============================================================================

POSE_HISTORY_SECONDS = 0.3
"""Retention window of the odometry pose history (seconds).

Vision measurements older than the oldest retained sample are discarded.

Tuning rationale:
- Camera pipeline latency is 30-120 ms on the co-processor
- 0.3 s covers worst-case latency plus network jitter with margin
- Longer windows allow fusing older frames whose motion correction is less accurate
"""

VISION_TRUST_EXPONENT = 2.0
"""Exponent applied to the measurement trust weight (dimensionless, >= 1).

weight = trust ** VISION_TRUST_EXPONENT * ambiguity_factor

Higher exponent = partially trusted frames move the estimate less.
Full trust (1.0) always yields a full-strength correction.
"""

VISION_MAX_AMBIGUITY = 0.2
"""Ambiguity at which a vision measurement stops contributing (dimensionless).

ambiguity_factor = max(0, 1 - ambiguity / VISION_MAX_AMBIGUITY)

Tuning rationale:
- Single-tag solves report ambiguity as the ratio of the two best reprojection errors
- Above 0.2 the pose flip between the two solutions is common
"""

FIELD_LENGTH = 16.451
"""Field length along x (meters)."""

FIELD_WIDTH = 8.211
"""Field width along y (meters)."""

FIELD_BORDER_MARGIN = 0.5
"""Vision poses further than this outside the field boundary are rejected (meters)."""


# ============================================================================
# Trajectory Generation Parameters
# ============================================================================

TRAJECTORY_MAX_VELOCITY = 4.0
"""Default trajectory cruise velocity limit (m/s). Slightly below MAX_LINEAR_SPEED
to leave headroom for feedback corrections."""

TRAJECTORY_MAX_ACCELERATION = 3.0
"""Default trajectory acceleration limit (m/s²)."""

TRAJECTORY_MAX_CENTRIPETAL_ACCELERATION = 4.0
"""Default lateral acceleration limit on curved sections (m/s²).

v_max(s) = sqrt(a_c / |curvature(s)|)
"""

TRAJECTORY_SAMPLE_SPACING = 0.02
"""Arc length between dense samples of the translation path (meters).

Smaller spacing = smoother velocity profile but more states to store.
"""

WAYPOINT_MERGE_DISTANCE = 1e-3
"""Consecutive waypoints closer than this collapse into one (meters)."""

ROTATION_SAMPLE_PERIOD = 0.02
"""Time between dense entries of the rotation sequence (seconds). Matches ROBOT_PERIOD."""


# ============================================================================
# Trajectory Tracking Parameters
# ============================================================================

ALONG_TRACK_KP = 2.0
"""Proportional gain on along-path position error (1/s)."""

ALONG_TRACK_KD = 0.0
"""Derivative gain on along-path velocity error (dimensionless).
Only active when measured speeds are supplied."""

CROSS_TRACK_KP = 5.0
"""Proportional gain on cross-track position error (1/s).

Stiffer than the along-path gain: lateral error is what makes the robot
clip field elements, while along-path error only shifts timing.
"""

CROSS_TRACK_KD = 0.0
"""Derivative gain on cross-track velocity error (dimensionless)."""

HEADING_KP = 6.4
"""Proportional gain on heading error (1/s)."""

CROSS_TRACK_SLOWDOWN_DISTANCE = 0.5
"""Cross-track error at which the forward feedforward reaches its floor (meters).

forward_scale = clamp(1 - |cross| / CROSS_TRACK_SLOWDOWN_DISTANCE, CROSS_TRACK_MIN_SCALE, 1)
"""

CROSS_TRACK_MIN_SCALE = 0.3
"""Lowest forward feedforward scale while far off the path (range: [0, 1])."""

TRAJECTORY_POSITION_TOLERANCE = 0.05
"""Position error below which a finished trajectory counts as reached (meters)."""

TRAJECTORY_HEADING_TOLERANCE = math.radians(3.0)
"""Heading error below which a finished trajectory counts as reached (rad)."""

TRAJECTORY_END_TIMEOUT = 1.0
"""Extra time after the trajectory ends to settle before giving up (seconds)."""


# ============================================================================
# Operator Drive Parameters
# ============================================================================

DRIVE_DEADBAND = 0.1
"""Input deadband for operator axes (normalized, range: [0, 1))."""

DRIVE_CURVE_EXPONENT = 2.0
"""Response curve exponent for translation input. 2.0 = squared response
for fine control near zero."""

TURN_CURVE_EXPONENT = 2.0
"""Response curve exponent for rotation input."""

DRIVE_SPEED_MULTIPLIER = 0.70
"""Fraction of the maximum speed used for operator driving (range: (0, 1])."""

DRIVE_ROTATIONAL_SPEED = 7.5
"""Rotation rate at full turn input (rad/s)."""

DRIVE_MINIMUM_SPEED = 1e-3
"""Commands with every component below this are replaced with an explicit stop."""

DRIVE_FILTER_SIZE = 13
"""Moving-average window for translation magnitude (ticks)."""

TURN_FILTER_SIZE = 3
"""Moving-average window for rotation input (ticks)."""

MAX_SPEED_FILTER_SIZE = 24
"""Moving-average window for the speed limit, smoothing limit changes (ticks)."""

HEADING_LOCK_KP = 5.0
"""Proportional gain for heading hold in alignment mode (1/s)."""

HEADING_LOCK_KD = 0.0
"""Derivative gain for heading hold (dimensionless)."""

DRIVE_TO_POSE_KP = 3.0
"""Proportional gain for point-seek translation (1/s)."""

DRIVE_TO_POSE_KI = 0.0
"""Integral gain for point-seek translation (1/s²)."""

PID_INTEGRAL_LIMIT = 0.5
"""Anti-windup clamp on PID integral state (error·seconds)."""


# ============================================================================
# Shooter Ballistics Parameters
# ============================================================================

SPEAKER_Y = FIELD_WIDTH - 2.638
"""Goal opening center along y (meters), identical for both alliances."""

BLUE_GOAL = (0.0, SPEAKER_Y)
"""Blue goal position (meters). The red goal mirrors it across the field length."""

MAX_RELIABLE_RANGE = 4.5
"""Distance up to which shots are fully reliable (meters)."""

MAX_RANGE = 7.0
"""Distance beyond which shot confidence is zero (meters)."""

MAX_RELIABLE_ANGLE = math.radians(50.0)
"""Off-axis goal-to-robot angle up to which shots are fully reliable (rad)."""

MAX_ANGLE = math.radians(75.0)
"""Off-axis angle beyond which shot confidence is zero (rad)."""

MAX_RELIABLE_ROBOT_VELOCITY = 1.0
"""Robot speed up to which moving shots are fully reliable (m/s)."""

MAX_ROBOT_VELOCITY = 3.0
"""Robot speed beyond which shot confidence is zero (m/s)."""

MAX_RELIABLE_ANGULAR_VELOCITY = 1.0
"""Rotation rate up to which shots are fully reliable (rad/s)."""

MAX_ANGULAR_VELOCITY = 4.0
"""Rotation rate beyond which shot confidence is zero (rad/s)."""

MAX_SHOOTER_RPM = 5600.0
"""Maximum flywheel speed (RPM)."""

CLOSEST_RANGE = 1.02
"""Closest shooting distance; the RPM falloff reaches its minimum here (meters)."""

MAX_RPM_FALLOFF_RANGE = 4.3
"""Distance past which the flywheel runs at MAX_SHOOTER_RPM (meters)."""

RPM_FALLOFF_COEFFICIENT = 0.46
"""Share of the RPM range controlled by linear distance falloff (range: [0, 1]).

Minimum RPM = (1 - RPM_FALLOFF_COEFFICIENT) * MAX_SHOOTER_RPM at CLOSEST_RANGE.
"""

SIDE_SHOT_PIVOT_COEFFICIENT = 0.045
"""Pivot adjustment per radian of off-axis angle (rad/rad)."""

SIDE_SHOT_ROBOT_ANGLE_COEFFICIENT = 0.032
"""Robot aim adjustment away from the goal wall per radian of off-axis angle (rad/rad)."""

PIVOT_ANGLE_TABLE = (
    (1.096, 0.498),
    (1.406, 0.52),
    (2.197, 0.8072),
    (2.379, 0.816),
    (4.305, 1.0005),
    (5.295, 1.0601),
)
"""Measured distance (m) -> pivot angle (rad) samples.

Origin: practice-field shot sweep. Queries outside the table clamp to the end values.
"""

PREDICTION_FACTOR = 0.0
"""Fixed lookahead applied to the pose before aiming (robot periods)."""

PREDICTION_DISTANCE_FACTOR = 2.0
"""Distance-proportional lookahead (robot periods per meter to the goal)."""

SHOOTER_WHEEL_RADIUS = 0.0508
"""Flywheel radius (meters). 2-inch wheels."""

SHOOTER_EXIT_EFFICIENCY = 0.5
"""Fraction of the flywheel surface speed transferred to the note (range: (0, 1]).

Origin: high-speed video of shots at 4000 RPM; note speed was roughly half of
the wheel surface speed.
"""

SHOOTER_OFFSET = (-0.25, 0.0)
"""Shooter exit position in the robot frame (meters). The shooter fires out the back."""

MOMENTUM_COMPENSATION_ITERATIONS = 10
"""Maximum fixed-point iterations for the moving-shot virtual goal."""

MOMENTUM_COMPENSATION_TOLERANCE = 1e-4
"""Virtual goal movement below which the moving-shot solve has converged (meters)."""

MOMENTUM_COMPENSATION_DAMPING = 0.8
"""Relaxation factor for the moving-shot iteration (range: (0, 1]).

Below 1.0 the iteration approaches the fixed point without overshooting.
"""


# ============================================================================
# Superstructure Parameters
# ============================================================================

SHOT_CONFIDENCE_THRESHOLD = 0.5
"""Minimum shot confidence for entering AIM and FIRE (range: [0, 1])."""

INTAKE_TIMEOUT = 4.0
"""INTAKE returns to STOW if no note is detected within this time (seconds)."""

FIRE_DURATION = 0.5
"""Time the feeder runs before FIRE returns to STOW (seconds)."""

FIRE_MIN_DWELL = 0.25
"""Minimum time in FIRE before a STOW request is honored (seconds).

Guarantees the note clears the flywheels before they spin down.
"""

STOW_PIVOT_ANGLE = 0.0
"""Pivot angle for STOW and INTAKE (rad)."""

INTAKE_VOLTS = 8.0
"""Intake roller voltage while intaking (V)."""

FEEDER_VOLTS = 10.0
"""Feeder voltage while firing (V)."""

PIVOT_TOLERANCE = 0.02
"""Pivot error accepted as at position (rad)."""

FLYWHEEL_TOLERANCE = 150.0
"""Flywheel error accepted as at speed (RPM)."""

TRANSITION_HISTORY_LENGTH = 64
"""Number of transition records kept for telemetry."""


# ============================================================================
# Simulation Parameters
# ============================================================================

SIM_PIVOT_RATE = 3.0
"""Simulated pivot slew rate (rad/s)."""

SIM_FLYWHEEL_RATE = 12000.0
"""Simulated flywheel spin-up rate (RPM/s)."""

SIM_INTAKE_TIME = 0.6
"""Simulated time of running the intake until a note is acquired (seconds)."""


# ============================================================================
# Visualization Colors
# ============================================================================

PLOT_ORANGE = "#f74823"
"""Primary plot color - used for estimates and measurements."""

PLOT_BLUE = "#2374f7"
"""Secondary plot color - used for references and planned paths."""

PLOT_CREAM = "#fffdee"
"""Light text color for dark-mode plots."""

PLOT_TAUPE = "#686a5f"
"""Neutral color for guides, grids, and secondary elements."""

PLOT_YELLOW_ORANGE = "#ffa726"
"""Accent color for highlights and warnings."""

PLOT_DARK_BLUE = "#0d1b2a"
"""Dark-mode plot background."""

# Terminal color codes (ANSI escape sequences)
TERM_ORANGE = "\033[38;2;247;72;35m"
"""Terminal color code for plot orange (RGB: 247, 72, 35)."""

TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color code for complementary blue (RGB: 35, 116, 247)."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""


# ============================================================================
# Vision Link Configuration
# ============================================================================

VISION_WS_URI = "ws://10.41.45.11:5800"
"""WebSocket URI of the vision co-processor."""

WS_RETRY_DELAY_SECONDS = 1
"""Initial retry delay for failed WebSocket connections (seconds)."""

WS_MAX_RETRY_DELAY_SECONDS = 30
"""Maximum retry delay with exponential backoff (seconds)."""

WS_TIMEOUT_SECONDS = 5.0
"""Timeout for WebSocket message reception (seconds)."""

ALLIANCE_REFRESH_TICKS = 50
"""Ticks between refreshes of the cached alliance (50 ticks = 1 s)."""
