import pytest

from swerve_control import config
from swerve_control.component_modes import ComponentMode, parse_component_flags
from swerve_control.geometry import Pose2D
from swerve_control.hardware import HARDWARE_VARIANTS, QueuedVisionIO, build_hardware
from swerve_control.localizer import VisionMeasurement
from swerve_control.superstructure import SuperstructureOutputs

PERIOD = config.ROBOT_PERIOD


def test_unknown_variant_raises():
    with pytest.raises(ValueError, match="Unknown hardware variant"):
        build_hardware("real", 4, PERIOD)


def test_sim_variant_registered():
    hardware = build_hardware("sim", 4, PERIOD)
    assert "sim" in HARDWARE_VARIANTS
    assert hardware.name == "sim"
    assert len(hardware.modules) == 4
    assert hardware.vision_sink is not None


def test_sim_module_integrates_distance():
    module = build_hardware("sim", 1, PERIOD).modules[0]
    module.set_state(0.3, 2.0)
    inputs = [module.update_inputs() for _ in range(5)][-1]

    assert inputs.angle == 0.3
    assert inputs.velocity == 2.0
    assert inputs.distance == pytest.approx(2.0 * 5 * PERIOD)

    module.stop()
    assert module.velocity == 0.0
    assert module.angle == 0.3


def test_sim_gyro_integrates_expected_rate():
    gyro = build_hardware("sim", 4, PERIOD).gyro
    gyro.set_expected_yaw_rate(1.0)
    for _ in range(10):
        inputs = gyro.update_inputs()

    assert inputs.connected
    assert inputs.yaw == pytest.approx(10 * PERIOD)
    assert inputs.yaw_rate == 1.0


def test_queued_vision_drains_on_poll():
    vision = QueuedVisionIO()
    first = VisionMeasurement(Pose2D(1.0, 1.0, 0.0), 0.1)
    second = VisionMeasurement(Pose2D(1.1, 1.0, 0.0), 0.2)
    vision.push(first)
    vision.push(second)

    assert vision.poll() == [first, second]
    assert vision.poll() == []


def test_sim_mechanism_reaches_setpoints():
    mechanism = build_hardware("sim", 4, PERIOD).mechanism
    mechanism.apply(SuperstructureOutputs(pivot_angle=0.5, flywheel_rpm=3000.0, intake_volts=0.0, feeder_volts=0.0))

    inputs = mechanism.update_inputs()
    assert not inputs.at_position
    assert not inputs.flywheel_at_speed

    for _ in range(50):
        inputs = mechanism.update_inputs()
    assert inputs.at_position
    assert inputs.flywheel_at_speed
    assert inputs.pivot_angle == pytest.approx(0.5)


def test_sim_mechanism_intakes_and_fires_note():
    mechanism = build_hardware("sim", 4, PERIOD).mechanism
    mechanism.apply(SuperstructureOutputs(0.0, 0.0, config.INTAKE_VOLTS, 0.0))
    ticks = int(round(config.SIM_INTAKE_TIME / PERIOD)) + 1
    for _ in range(ticks):
        inputs = mechanism.update_inputs()
    assert inputs.note_present

    mechanism.apply(SuperstructureOutputs(0.5, 3000.0, 0.0, config.FEEDER_VOLTS))
    assert not mechanism.update_inputs().note_present


def test_sim_mechanism_reports_fault():
    mechanism = build_hardware("sim", 4, PERIOD).mechanism
    mechanism.faulted = True
    assert mechanism.update_inputs().faulted


def test_component_flags_defaults():
    mode, remaining = parse_component_flags([])
    assert mode == ComponentMode()
    assert remaining == []


def test_component_flags_parsed():
    mode, remaining = parse_component_flags(["--no-vision", "--auto-fire", "--hardware", "sim", "-v"])

    assert not mode.use_vision
    assert mode.auto_fire
    assert mode.use_feedforward
    assert remaining == ["-v"]
    assert mode.to_dict()["use_vision"] is False
    assert "Odometry" in str(mode)
