"""Hardware capability interfaces and simulated implementations.

The control core only talks to these interfaces. Concrete variants are
chosen once at startup by name from HARDWARE_VARIANTS; nothing downstream
inspects which implementation it received.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Deque, Dict, List, Optional

from .geometry import wrap_angle
from .localizer import VisionMeasurement

if TYPE_CHECKING:
    from .superstructure import SuperstructureOutputs


@dataclass(frozen=True)
class GyroInputs:
    connected: bool = True
    yaw: float = 0.0
    yaw_rate: float = 0.0


@dataclass(frozen=True)
class ModuleInputs:
    angle: float = 0.0
    velocity: float = 0.0
    distance: float = 0.0
    connected: bool = True


@dataclass(frozen=True)
class MechanismInputs:
    """Discrete and continuous feedback from the intake/shooter mechanism."""

    note_present: bool = False
    at_position: bool = False
    flywheel_at_speed: bool = False
    pivot_angle: float = 0.0
    flywheel_rpm: float = 0.0
    faulted: bool = False


class GyroIO(ABC):
    @abstractmethod
    def update_inputs(self) -> GyroInputs:
        """Read the gyro once per tick."""

    def set_expected_yaw_rate(self, yaw_rate: float) -> None:
        """Commanded rotation rate; only simulated gyros use it."""


class ModuleIO(ABC):
    @abstractmethod
    def update_inputs(self) -> ModuleInputs:
        """Read the module once per tick."""

    @abstractmethod
    def set_state(self, angle: float, velocity: float) -> None:
        """Command a steering angle (rad) and wheel velocity (m/s)."""

    def stop(self) -> None:
        self.set_state(self.update_inputs().angle, 0.0)


class VisionIO(ABC):
    @abstractmethod
    def poll(self) -> List[VisionMeasurement]:
        """Return every measurement received since the last poll (possibly none)."""


class MechanismIO(ABC):
    @abstractmethod
    def update_inputs(self) -> MechanismInputs:
        """Read mechanism sensors once per tick."""

    @abstractmethod
    def apply(self, outputs: "SuperstructureOutputs") -> None:
        """Send actuator setpoints."""


# ============================================================================
# Simulated implementations
# ============================================================================


class GyroIOSim(GyroIO):
    """Integrates the commanded yaw rate."""

    def __init__(self, period: float):
        self.period = period
        self.yaw = 0.0
        self.yaw_rate = 0.0
        self.connected = True

    def set_expected_yaw_rate(self, yaw_rate: float) -> None:
        self.yaw_rate = yaw_rate

    def update_inputs(self) -> GyroInputs:
        self.yaw = wrap_angle(self.yaw + self.yaw_rate * self.period)
        return GyroInputs(self.connected, self.yaw, self.yaw_rate)


class ModuleIOSim(ModuleIO):
    """Ideal module: reaches the commanded state instantly, integrates distance."""

    def __init__(self, period: float):
        self.period = period
        self.angle = 0.0
        self.velocity = 0.0
        self.distance = 0.0

    def set_state(self, angle: float, velocity: float) -> None:
        self.angle = angle
        self.velocity = velocity

    def update_inputs(self) -> ModuleInputs:
        self.distance += self.velocity * self.period
        return ModuleInputs(self.angle, self.velocity, self.distance)


class MechanismIOSim(MechanismIO):
    """First-order pivot and flywheel with a timed note pickup and release."""

    def __init__(self, period: float, config=None):
        if config is None:
            from swerve_control import config as cfg
        else:
            cfg = config

        self.period = period
        self.pivot_rate: float = cfg.SIM_PIVOT_RATE
        self.flywheel_rate: float = cfg.SIM_FLYWHEEL_RATE
        self.intake_time: float = cfg.SIM_INTAKE_TIME
        self.pivot_tolerance: float = cfg.PIVOT_TOLERANCE
        self.flywheel_tolerance: float = cfg.FLYWHEEL_TOLERANCE

        self.pivot_angle = 0.0
        self.flywheel_rpm = 0.0
        self.pivot_setpoint = 0.0
        self.rpm_setpoint = 0.0
        self.intake_volts = 0.0
        self.feeder_volts = 0.0
        self.note_present = False
        self.faulted = False
        self._intake_elapsed = 0.0

    def apply(self, outputs: "SuperstructureOutputs") -> None:
        self.pivot_setpoint = outputs.pivot_angle
        self.rpm_setpoint = outputs.flywheel_rpm
        self.intake_volts = outputs.intake_volts
        self.feeder_volts = outputs.feeder_volts

    @staticmethod
    def _approach(value: float, target: float, max_step: float) -> float:
        return value + max(-max_step, min(max_step, target - value))

    def update_inputs(self) -> MechanismInputs:
        self.pivot_angle = self._approach(self.pivot_angle, self.pivot_setpoint, self.pivot_rate * self.period)
        self.flywheel_rpm = self._approach(
            self.flywheel_rpm, self.rpm_setpoint, self.flywheel_rate * self.period
        )

        if self.intake_volts > 0.0 and not self.note_present:
            self._intake_elapsed += self.period
            if self._intake_elapsed >= self.intake_time:
                self.note_present = True
        else:
            self._intake_elapsed = 0.0
        if self.feeder_volts > 0.0 and self.flywheel_rpm > 0.0:
            self.note_present = False

        return MechanismInputs(
            note_present=self.note_present,
            at_position=abs(self.pivot_angle - self.pivot_setpoint) <= self.pivot_tolerance,
            flywheel_at_speed=self.rpm_setpoint > 0.0
            and abs(self.flywheel_rpm - self.rpm_setpoint) <= self.flywheel_tolerance,
            pivot_angle=self.pivot_angle,
            flywheel_rpm=self.flywheel_rpm,
            faulted=self.faulted,
        )


class QueuedVisionIO(VisionIO):
    """Thread-safe inbox filled by a network producer and drained each tick.

    The queue is unbounded between polls so no measurement is lost to
    contention; staleness is judged by the pose estimator.
    """

    def __init__(self):
        self._queue: Deque[VisionMeasurement] = deque()
        self._lock = threading.Lock()

    def push(self, measurement: VisionMeasurement) -> None:
        with self._lock:
            self._queue.append(measurement)

    def poll(self) -> List[VisionMeasurement]:
        with self._lock:
            measurements = list(self._queue)
            self._queue.clear()
        return measurements


@dataclass
class Hardware:
    """Bundle of capability implementations for one robot."""

    gyro: GyroIO
    modules: List[ModuleIO]
    vision: VisionIO
    mechanism: MechanismIO
    name: str = "custom"
    vision_sink: Optional[Callable[[VisionMeasurement], None]] = None
    """Where a network vision producer delivers measurements, if the variant accepts them."""


def _build_sim(module_count: int, period: float) -> Hardware:
    vision = QueuedVisionIO()
    return Hardware(
        gyro=GyroIOSim(period),
        modules=[ModuleIOSim(period) for _ in range(module_count)],
        vision=vision,
        mechanism=MechanismIOSim(period),
        name="sim",
        vision_sink=vision.push,
    )


HARDWARE_VARIANTS: Dict[str, Callable[[int, float], Hardware]] = {
    "sim": _build_sim,
}
"""Registered hardware builders: name -> builder(module_count, period)."""


def build_hardware(variant: str, module_count: int, period: float) -> Hardware:
    """Build the named hardware variant.

    Raises:
        ValueError: If the variant is not registered.
    """
    try:
        builder = HARDWARE_VARIANTS[variant]
    except KeyError:
        raise ValueError(
            f"Unknown hardware variant '{variant}'. Available: {', '.join(sorted(HARDWARE_VARIANTS))}"
        ) from None
    logging.info(f"Hardware variant: {variant} ({module_count} modules)")
    return builder(module_count, period)
