"""Exception hierarchy for the swerve control system.

Boundary validation (constructors, trajectory generation, kinematics inputs)
raises these. Long-lived components such as the odometry, the pose estimator
and the superstructure catch the input errors, log them and hold their last
known-good state instead of propagating.
"""


class SwerveControlError(Exception):
    """Base class for every error raised by swerve_control."""


class InvalidInputError(SwerveControlError, ValueError):
    """Input failed validation (NaN, wrong shape, out of range)."""


class InvalidModuleDataError(InvalidInputError):
    """Module readings do not match the configured drive (count or finiteness)."""


class InvalidWaypointsError(InvalidInputError):
    """Waypoint list cannot produce a trajectory."""


class TrajectoryGenerationError(SwerveControlError):
    """Time parameterization produced an invalid (non-increasing) trajectory."""


class SchedulingOverrunError(SwerveControlError):
    """A control tick exceeded its period.

    Treated as fatal: the loop surfaces it to the caller rather than
    silently dropping the deadline.
    """

    def __init__(self, elapsed: float, period: float) -> None:
        self.elapsed = elapsed
        self.period = period
        super().__init__(
            f"Control tick took {elapsed * 1000.0:.1f} ms (period {period * 1000.0:.1f} ms)"
        )
