"""Superstructure state machine for the intake, pivot, flywheel and feeder.

Every state change goes through the TRANSITIONS table: (state, event) maps
to the next state and an optional guard. Requests with no entry, or whose
guard refuses them, leave the state unchanged and are logged and recorded.

Each ``step`` runs in a fixed order:
1. Disable: while the robot is disabled, force STOW and refuse everything else
2. Fault: mechanism fault forces FAULT; clearing it returns to STOW
3. Automatic events: note detected, timeouts, auto-fire
4. Queued requests, oldest first
Then the actuator setpoints for the resulting state are computed.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Tuple

from .config import TERM_BLUE, TERM_RESET
from .hardware import MechanismInputs
from .shooter_math import ShotData


class SuperstructureState(Enum):
    STOW = "stow"
    INTAKE = "intake"
    AIM = "aim"
    FIRE = "fire"
    FAULT = "fault"


class SuperstructureEvent(Enum):
    INTAKE_REQUEST = "intake_request"
    AIM_REQUEST = "aim_request"
    FIRE_REQUEST = "fire_request"
    STOW_REQUEST = "stow_request"
    AUTO_AIM_READY = "auto_aim_ready"
    NOTE_DETECTED = "note_detected"
    TIMEOUT = "timeout"
    FAULT = "fault"
    FAULT_CLEARED = "fault_cleared"
    DISABLE = "disable"


@dataclass(frozen=True)
class SuperstructureInputs:
    """Everything one step may look at, captured at the tick boundary."""

    now: float
    enabled: bool
    shot: Optional[ShotData]
    mechanism: MechanismInputs


@dataclass(frozen=True)
class SuperstructureOutputs:
    """Actuator setpoints: pivot (rad), flywheel (RPM), intake and feeder (V)."""

    pivot_angle: float
    flywheel_rpm: float
    intake_volts: float
    feeder_volts: float


@dataclass(frozen=True)
class TransitionRecord:
    timestamp: float
    event: SuperstructureEvent
    from_state: SuperstructureState
    to_state: SuperstructureState
    accepted: bool
    reason: str = ""


@dataclass(frozen=True)
class GuardContext:
    inputs: SuperstructureInputs
    confidence_threshold: float


Guard = Callable[[GuardContext], Optional[str]]
"""Returns None to allow the transition, or the reason it is refused."""


@dataclass(frozen=True)
class Transition:
    next_state: SuperstructureState
    guard: Optional[Guard] = None
    respects_dwell: bool = True


# ============================================================================
# Guards
# ============================================================================


def _no_fault(ctx: GuardContext) -> Optional[str]:
    if ctx.inputs.mechanism.faulted:
        return "mechanism fault"
    return None


def _confident(ctx: GuardContext) -> Optional[str]:
    if reason := _no_fault(ctx):
        return reason
    shot = ctx.inputs.shot
    if shot is None:
        return "no shot solution"
    if shot.confidence < ctx.confidence_threshold:
        return f"shot confidence {shot.confidence:.2f} below {ctx.confidence_threshold:.2f}"
    return None


def _ready_to_fire(ctx: GuardContext) -> Optional[str]:
    if reason := _confident(ctx):
        return reason
    mechanism = ctx.inputs.mechanism
    if not mechanism.at_position:
        return "pivot not at position"
    if not mechanism.flywheel_at_speed:
        return "flywheel not at speed"
    return None


def _can_intake(ctx: GuardContext) -> Optional[str]:
    if reason := _no_fault(ctx):
        return reason
    if ctx.inputs.mechanism.note_present:
        return "note already held"
    return None


def _fault_gone(ctx: GuardContext) -> Optional[str]:
    if ctx.inputs.mechanism.faulted:
        return "fault still present"
    return None


# ============================================================================
# Transition table
# ============================================================================

S = SuperstructureState
E = SuperstructureEvent

TRANSITIONS: Dict[Tuple[SuperstructureState, SuperstructureEvent], Transition] = {
    (S.STOW, E.INTAKE_REQUEST): Transition(S.INTAKE, _can_intake),
    (S.STOW, E.AIM_REQUEST): Transition(S.AIM, _confident),
    (S.INTAKE, E.NOTE_DETECTED): Transition(S.STOW),
    (S.INTAKE, E.TIMEOUT): Transition(S.STOW, respects_dwell=False),
    (S.INTAKE, E.STOW_REQUEST): Transition(S.STOW),
    (S.AIM, E.FIRE_REQUEST): Transition(S.FIRE, _ready_to_fire),
    (S.AIM, E.AUTO_AIM_READY): Transition(S.FIRE, _ready_to_fire),
    (S.AIM, E.STOW_REQUEST): Transition(S.STOW),
    (S.FIRE, E.TIMEOUT): Transition(S.STOW, respects_dwell=False),
    (S.FIRE, E.STOW_REQUEST): Transition(S.STOW),
    (S.FAULT, E.FAULT_CLEARED): Transition(S.STOW, _fault_gone, respects_dwell=False),
}
for _state in SuperstructureState:
    if _state is not S.FAULT:
        TRANSITIONS[(_state, E.FAULT)] = Transition(S.FAULT, respects_dwell=False)
    if _state is not S.STOW:
        TRANSITIONS[(_state, E.DISABLE)] = Transition(S.STOW, respects_dwell=False)


class Superstructure:
    """Owns the one authoritative superstructure state.

    ``request`` may be called from any thread; requests are queued and
    resolved in the next ``step``.
    """

    def __init__(self, auto_fire: bool = False, config=None):
        """Initialize the state machine in STOW.

        Args:
            auto_fire: If True, AIM fires on its own once the shot and the
                mechanism are ready.
            config: Configuration module or object with superstructure
                parameters. If None, uses swerve_control.config.
        """
        if config is None:
            from swerve_control import config as cfg
        else:
            cfg = config

        self.auto_fire = auto_fire
        self.confidence_threshold: float = cfg.SHOT_CONFIDENCE_THRESHOLD
        self.intake_timeout: float = cfg.INTAKE_TIMEOUT
        self.fire_duration: float = cfg.FIRE_DURATION
        self.min_dwell: Dict[SuperstructureState, float] = {S.FIRE: cfg.FIRE_MIN_DWELL}
        self.stow_pivot_angle: float = cfg.STOW_PIVOT_ANGLE
        self.intake_volts: float = cfg.INTAKE_VOLTS
        self.feeder_volts: float = cfg.FEEDER_VOLTS

        self._state = S.STOW
        self._entered_at: Optional[float] = None
        self._fire_setpoint: Optional[ShotData] = None
        self._pending: Deque[SuperstructureEvent] = deque()
        self._lock = threading.Lock()
        self.history: Deque[TransitionRecord] = deque(maxlen=cfg.TRANSITION_HISTORY_LENGTH)

    @property
    def state(self) -> SuperstructureState:
        return self._state

    @property
    def safe_outputs(self) -> SuperstructureOutputs:
        return SuperstructureOutputs(self.stow_pivot_angle, 0.0, 0.0, 0.0)

    def time_in_state(self, now: float) -> float:
        return 0.0 if self._entered_at is None else now - self._entered_at

    def request(self, event: SuperstructureEvent) -> None:
        """Queue an event for the next step."""
        with self._lock:
            self._pending.append(event)

    def _record(
        self, inputs: SuperstructureInputs, event: SuperstructureEvent, to_state: SuperstructureState,
        accepted: bool, reason: str = "",
    ) -> TransitionRecord:
        record = TransitionRecord(inputs.now, event, self._state, to_state, accepted, reason)
        self.history.append(record)
        if accepted:
            logging.info(
                f"{TERM_BLUE}Superstructure: {self._state.name} → {to_state.name} ({event.name}){TERM_RESET}"
            )
        else:
            logging.warning(
                f"Superstructure ignored {event.name} in {self._state.name}: {reason}"
            )
        return record

    def _check(self, event: SuperstructureEvent, inputs: SuperstructureInputs) -> Tuple[Optional[Transition], str]:
        transition = TRANSITIONS.get((self._state, event))
        if transition is None:
            return None, f"no transition from {self._state.name} on {event.name}"
        dwell = self.min_dwell.get(self._state, 0.0)
        if transition.respects_dwell and self.time_in_state(inputs.now) < dwell:
            return None, f"minimum dwell of {dwell:.2f} s in {self._state.name} not elapsed"
        if transition.guard is not None:
            reason = transition.guard(GuardContext(inputs, self.confidence_threshold))
            if reason:
                return None, reason
        return transition, ""

    def _handle(self, event: SuperstructureEvent, inputs: SuperstructureInputs) -> TransitionRecord:
        transition, reason = self._check(event, inputs)
        if transition is None:
            return self._record(inputs, event, self._state, False, reason)

        record = self._record(inputs, event, transition.next_state, True)
        self._state = transition.next_state
        self._entered_at = inputs.now
        if self._state is S.FIRE:
            # Hold the setpoints that satisfied the interlock for the whole shot
            self._fire_setpoint = inputs.shot
        return record

    def step(self, inputs: SuperstructureInputs) -> SuperstructureOutputs:
        """Advance the state machine one tick and compute actuator setpoints.

        Args:
            inputs: Enable flag, shot solution and mechanism feedback for this tick.

        Returns:
            Setpoints for the state after this step. Disabled and faulted
            states always produce the safe default.
        """
        if self._entered_at is None:
            self._entered_at = inputs.now
        with self._lock:
            events: List[SuperstructureEvent] = list(self._pending)
            self._pending.clear()

        if not inputs.enabled or E.DISABLE in events:
            if self._state is not S.STOW:
                self._handle(E.DISABLE, inputs)
            for event in events:
                if event is not E.DISABLE:
                    self._record(inputs, event, self._state, False, "preempted by disable")
            return self.safe_outputs

        mechanism = inputs.mechanism
        if mechanism.faulted and self._state is not S.FAULT:
            self._handle(E.FAULT, inputs)
        elif not mechanism.faulted and self._state is S.FAULT:
            self._handle(E.FAULT_CLEARED, inputs)

        elapsed = self.time_in_state(inputs.now)
        if self._state is S.INTAKE and mechanism.note_present:
            self._handle(E.NOTE_DETECTED, inputs)
        elif self._state is S.INTAKE and elapsed >= self.intake_timeout:
            self._handle(E.TIMEOUT, inputs)
        elif self._state is S.FIRE and elapsed >= self.fire_duration:
            self._handle(E.TIMEOUT, inputs)

        for event in events:
            self._handle(event, inputs)

        if self.auto_fire and self._state is S.AIM:
            transition, _ = self._check(E.AUTO_AIM_READY, inputs)
            if transition is not None:
                self._handle(E.AUTO_AIM_READY, inputs)

        return self._outputs(inputs)

    def _outputs(self, inputs: SuperstructureInputs) -> SuperstructureOutputs:
        state = self._state
        if state is S.INTAKE:
            return SuperstructureOutputs(self.stow_pivot_angle, 0.0, self.intake_volts, 0.0)
        if state is S.AIM and inputs.shot is not None:
            return SuperstructureOutputs(inputs.shot.pivot_angle, inputs.shot.rpm, 0.0, 0.0)
        if state is S.FIRE:
            shot = self._fire_setpoint or inputs.shot
            if shot is not None:
                return SuperstructureOutputs(shot.pivot_angle, shot.rpm, 0.0, self.feeder_volts)
        return self.safe_outputs
