import json

import pytest

from swerve_control.geometry import Pose2D
from swerve_control.vision_client import VisionClient, on_field, parse_vision_message


def pose_message(**fields):
    message = {"message_type": "pose", "x": 2.0, "y": 3.0, "heading": 0.5}
    message.update(fields)
    return message


def test_parse_uses_latency():
    measurement = parse_vision_message(pose_message(latency=0.05, trust=0.8, ambiguity=0.1), 10.0)

    assert measurement.pose == Pose2D(2.0, 3.0, 0.5)
    assert measurement.timestamp == pytest.approx(9.95)
    assert measurement.trust == 0.8
    assert measurement.ambiguity == 0.1


def test_parse_prefers_absolute_timestamp():
    measurement = parse_vision_message(pose_message(timestamp=4.2, latency=1.0), 10.0)
    assert measurement.timestamp == 4.2


def test_parse_defaults():
    measurement = parse_vision_message(pose_message(), 1.0)
    assert measurement.timestamp == 1.0
    assert measurement.trust == 1.0
    assert measurement.ambiguity == 0.0


def test_parse_ignores_other_message_types():
    assert parse_vision_message({"message_type": "heartbeat"}, 0.0) is None


def test_parse_drops_off_field_pose():
    assert parse_vision_message(pose_message(x=-3.0), 0.0) is None


def test_parse_rejects_non_finite():
    with pytest.raises(ValueError):
        parse_vision_message(pose_message(x="nan"), 0.0)


def test_parse_rejects_missing_fields():
    with pytest.raises(KeyError):
        parse_vision_message({"message_type": "pose", "x": 1.0}, 0.0)


def test_on_field_margin():
    assert on_field(Pose2D(-0.4, 0.0, 0.0))
    assert not on_field(Pose2D(-0.6, 0.0, 0.0))
    assert not on_field(Pose2D(0.0, -0.4, 0.0), margin=0.0)


def test_client_rejects_bad_uri():
    with pytest.raises(ValueError):
        VisionClient("http://localhost:8765", lambda m: None)
    with pytest.raises(ValueError):
        VisionClient("", lambda m: None)


def test_handle_message_forwards_to_sink():
    received = []
    client = VisionClient("ws://localhost:8765", received.append, clock=lambda: 5.0)

    measurement = client.handle_message(json.dumps(pose_message(latency=0.1)).encode("utf-8"))

    assert received == [measurement]
    assert measurement.timestamp == pytest.approx(4.9)
    assert client.received == 1
    assert client.dropped == 0


def test_handle_message_drops_bad_input():
    received = []
    client = VisionClient("ws://localhost:8765", received.append, clock=lambda: 0.0)

    assert client.handle_message("{not json") is None
    assert client.handle_message(json.dumps({"message_type": "pose"})) is None
    assert client.handle_message(json.dumps(pose_message(y=100.0))) is None

    assert received == []
    assert client.dropped == 3


def test_stop_sets_flag():
    client = VisionClient("ws://localhost:8765", lambda m: None)
    client.stop()
    assert client.should_stop
