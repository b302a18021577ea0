import math
import threading

import pytest

from swerve_control.errors import InvalidInputError
from swerve_control.geometry import Pose2D, Twist2D
from swerve_control.localizer import PoseEstimator, VisionMeasurement, vision_blend_weight

PERIOD = 0.02


def drive_forward(estimator, ticks, speed=1.0, start_tick=0):
    """Predict straight-line motion at ``speed`` for ``ticks`` ticks."""
    for i in range(start_tick, start_tick + ticks):
        estimator.predict(Twist2D(speed * PERIOD, 0.0, 0.0), (i + 1) * PERIOD)


def test_blend_weight_bounds_and_monotonicity():
    assert vision_blend_weight(1.0, 0.0, 2.0, 0.2) == 1.0
    assert vision_blend_weight(0.0, 0.0, 2.0, 0.2) == 0.0
    assert vision_blend_weight(1.0, 0.2, 2.0, 0.2) == 0.0
    assert vision_blend_weight(1.0, 5.0, 2.0, 0.2) == 0.0
    assert vision_blend_weight(2.0, -1.0, 2.0, 0.2) == 1.0
    assert vision_blend_weight(0.5, 0.0, 2.0, 0.2) < vision_blend_weight(0.8, 0.0, 2.0, 0.2)
    assert vision_blend_weight(0.8, 0.1, 2.0, 0.2) < vision_blend_weight(0.8, 0.05, 2.0, 0.2)


def test_predict_integrates_odometry():
    estimator = PoseEstimator(Pose2D(1.0, 1.0, 0.0))
    estimator.reset_pose(Pose2D(1.0, 1.0, 0.0), 0.0)
    drive_forward(estimator, 10)
    pose = estimator.get_estimated_pose()
    assert pose.x == pytest.approx(1.2)
    assert pose.y == pytest.approx(1.0)
    assert estimator.get_odometry_pose() == pose


def test_reads_are_pure():
    estimator = PoseEstimator()
    estimator.reset_pose(Pose2D(), 0.0)
    drive_forward(estimator, 3)
    assert estimator.get_estimated_pose() == estimator.get_estimated_pose()
    assert len(estimator.history()) == len(estimator.history())


def test_history_is_bounded():
    estimator = PoseEstimator()
    estimator.reset_pose(Pose2D(), 0.0)
    drive_forward(estimator, 100)
    history = estimator.history()
    assert history[-1].timestamp == pytest.approx(2.0)
    assert history[0].timestamp >= 2.0 - 0.3 - 1e-9
    assert len(history) <= int(0.3 / PERIOD) + 2


def test_repeated_timestamp_replaces_last_sample():
    estimator = PoseEstimator()
    estimator.reset_pose(Pose2D(), 0.0)
    estimator.predict(Twist2D(0.1, 0.0, 0.0), 0.02)
    estimator.predict(Twist2D(0.1, 0.0, 0.0), 0.02)
    history = estimator.history()
    assert [s.timestamp for s in history] == [0.0, 0.02]
    assert history[-1].pose.x == pytest.approx(0.2)


def test_non_finite_odometry_is_rejected():
    estimator = PoseEstimator()
    estimator.reset_pose(Pose2D(), 0.0)
    drive_forward(estimator, 5)
    before = estimator.get_estimated_pose()
    assert estimator.predict(Twist2D(float("nan"), 0.0, 0.0), 1.0) == before
    assert estimator.get_estimated_pose() == before


def test_full_trust_current_measurement_snaps_to_vision():
    estimator = PoseEstimator()
    estimator.reset_pose(Pose2D(), 0.0)
    drive_forward(estimator, 10)
    now = 10 * PERIOD
    assert estimator.add_vision_measurement(VisionMeasurement(Pose2D(3.0, 2.0, 0.5), now))
    pose = estimator.get_estimated_pose()
    assert pose.x == pytest.approx(3.0)
    assert pose.y == pytest.approx(2.0)
    assert pose.heading == pytest.approx(0.5)
    # Odometry is never corrected
    assert estimator.get_odometry_pose().x == pytest.approx(0.2)


def test_latent_measurement_is_moved_forward_by_odometry():
    estimator = PoseEstimator()
    estimator.reset_pose(Pose2D(), 0.0)
    drive_forward(estimator, 50)

    # Captured 0.1 s ago, when the robot had actually been 1 m further along
    measurement = VisionMeasurement(Pose2D(1.9, 0.0, 0.0), 0.9)
    assert estimator.add_vision_measurement(measurement)
    pose = estimator.get_estimated_pose()
    assert pose.x == pytest.approx(2.0)
    assert pose.y == pytest.approx(0.0, abs=1e-9)


def test_partial_trust_moves_part_way():
    estimator = PoseEstimator()
    estimator.reset_pose(Pose2D(), 0.0)
    estimator.predict(Twist2D(), PERIOD)
    assert estimator.add_vision_measurement(VisionMeasurement(Pose2D(1.0, 0.0, 0.0), PERIOD, trust=0.5))
    x = estimator.get_estimated_pose().x
    assert 0.0 < x < 1.0
    assert x == pytest.approx(0.25)


def test_heading_blends_along_shortest_arc():
    estimator = PoseEstimator(Pose2D(0.0, 0.0, math.radians(170)))
    estimator.reset_pose(Pose2D(0.0, 0.0, math.radians(170)), 0.0)
    estimator.predict(Twist2D(), PERIOD)
    estimator.add_vision_measurement(
        VisionMeasurement(Pose2D(0.0, 0.0, math.radians(-170)), PERIOD, trust=math.sqrt(0.5))
    )
    assert abs(estimator.get_estimated_pose().heading) == pytest.approx(math.pi)


def test_stale_and_invalid_measurements_are_rejected():
    estimator = PoseEstimator()
    # Empty history
    assert not estimator.add_vision_measurement(VisionMeasurement(Pose2D(1.0, 1.0, 0.0), 0.0))

    estimator.reset_pose(Pose2D(), 0.0)
    drive_forward(estimator, 50)
    before = estimator.get_estimated_pose()

    assert not estimator.add_vision_measurement(VisionMeasurement(Pose2D(5.0, 5.0, 0.0), 0.1))
    assert not estimator.add_vision_measurement(VisionMeasurement(Pose2D(float("nan"), 0.0, 0.0), 0.95))
    assert not estimator.add_vision_measurement(VisionMeasurement(Pose2D(5.0, 5.0, 0.0), 0.95, ambiguity=0.5))
    assert estimator.get_estimated_pose() == before
    assert estimator.get_diagnostics()["vision_rejected"] == 4


def test_rejections_counted_across_threads():
    estimator = PoseEstimator()
    estimator.reset_pose(Pose2D(), 0.0)
    drive_forward(estimator, 10)
    bad = VisionMeasurement(Pose2D(float("nan"), 0.0, 0.0), 0.1)
    stale = VisionMeasurement(Pose2D(1.0, 0.0, 0.0), -5.0)

    def submit(measurement):
        for _ in range(200):
            estimator.add_vision_measurement(measurement)

    workers = [threading.Thread(target=submit, args=(m,)) for m in (bad, stale, bad, stale)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert estimator.get_diagnostics()["vision_rejected"] == 800


def test_future_measurement_is_clamped_to_newest_sample():
    estimator = PoseEstimator()
    estimator.reset_pose(Pose2D(), 0.0)
    drive_forward(estimator, 5)
    assert estimator.add_vision_measurement(VisionMeasurement(Pose2D(4.0, 1.0, 0.0), 10.0))
    assert estimator.get_estimated_pose().x == pytest.approx(4.0)


def test_reset_rejects_non_finite_pose():
    with pytest.raises(InvalidInputError):
        PoseEstimator().reset_pose(Pose2D(float("inf"), 0.0, 0.0))
