"""PID feedback building block shared by the drive and alignment controllers."""

import math
from typing import Dict, Optional

from .geometry import wrap_angle


class PIDController:
    """PID controller with anti-windup and optional continuous (angle) input.

    Control law:
        u = kp * e + ki * integral(e) + kd * de/dt

    With ``continuous=True`` the error is wrapped to [-π, π) so the
    controller always turns the short way around.

    Attributes:
        kp: Proportional gain.
        ki: Integral gain.
        kd: Derivative gain.
        integral_limit: Anti-windup clamp on the accumulated error.
        tolerance: Error magnitude accepted as "at setpoint".
    """

    def __init__(
        self,
        kp: float,
        ki: float = 0.0,
        kd: float = 0.0,
        integral_limit: float = 0.5,
        continuous: bool = False,
        tolerance: float = 0.0,
    ):
        self.kp = kp
        self.ki = ki
        self.kd = kd
        self.integral_limit = integral_limit
        self.continuous = continuous
        self.tolerance = tolerance

        # Integral state (accumulated error)
        self.integral: float = 0.0

        # Previous error for derivative computation
        self.prev_error: Optional[float] = None
        self.last_error: float = 0.0
        self.last_output: float = 0.0

    def calculate(self, measurement: float, setpoint: float, dt: float) -> float:
        """Compute the control output for one step.

        Args:
            measurement: Measured process value.
            setpoint: Desired process value.
            dt: Time since the previous call (seconds). Non-positive values
                skip the integral and derivative terms.

        Returns:
            Controller output. Non-finite inputs return 0.0 and leave state untouched.
        """
        if not (math.isfinite(measurement) and math.isfinite(setpoint)):
            return 0.0

        error = setpoint - measurement
        if self.continuous:
            error = wrap_angle(error)

        derivative = 0.0
        if dt > 0:
            self.integral += error * dt
            self.integral = max(-self.integral_limit, min(self.integral_limit, self.integral))
            if self.prev_error is not None:
                change = error - self.prev_error
                if self.continuous:
                    change = wrap_angle(change)
                derivative = change / dt

        self.prev_error = error
        self.last_error = error
        self.last_output = self.kp * error + self.ki * self.integral + self.kd * derivative
        return self.last_output

    def at_setpoint(self) -> bool:
        return self.prev_error is not None and abs(self.last_error) <= self.tolerance

    def reset(self) -> None:
        """Reset integral and derivative states.

        Call this when a new alignment or seek starts so stale integral
        action does not kick the first command.
        """
        self.integral = 0.0
        self.prev_error = None
        self.last_error = 0.0
        self.last_output = 0.0

    def get_diagnostics(self) -> Dict[str, float]:
        return {
            "error": self.last_error,
            "integral": self.integral,
            "output": self.last_output,
        }
