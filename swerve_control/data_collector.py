"""Telemetry recording to CSV for swerve control runs.

This module provides CSV logging, one row per control tick, for:
- Pose estimates (fused estimate and raw odometry)
- Trajectory tracking (reference pose, progress, drive command)
- Shot solutions (distance, pivot, RPM, robot heading, confidence)
- Superstructure state and actuator setpoints
"""

import csv
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, TextIO

from .config import TERM_BLUE, TERM_RESET

if TYPE_CHECKING:
    from .robot import TickSnapshot

POSE_COLUMNS = ["timestamp", "x", "y", "heading", "odom_x", "odom_y", "odom_heading", "vision_accepted"]
TRAJECTORY_COLUMNS = [
    "timestamp", "ref_x", "ref_y", "ref_heading", "progress", "vx", "vy", "omega",
]
SHOT_COLUMNS = ["timestamp", "distance", "pivot_angle", "rpm", "robot_angle", "confidence"]
SUPERSTRUCTURE_COLUMNS = [
    "timestamp", "state", "enabled", "pivot_angle", "flywheel_rpm", "intake_volts", "feeder_volts",
]


def _blank_if_none(value: Optional[float]) -> Any:
    return "" if value is None else value


class TelemetryRecorder:
    """Control-loop observer that writes one CSV row per tick.

    Use as a context manager, or call ``setup`` and ``cleanup`` yourself.
    ``record`` is the observer callable handed to the ControlLoop.

    Attributes:
        run_dir: Directory path for this run's output files.
        rows_written: Number of ticks recorded so far.
    """

    def __init__(self, output_dir: str = ".", run_dir: Optional[str] = None) -> None:
        """Initialize the recorder.

        Args:
            output_dir: Base directory for output files (default: current directory).
            run_dir: Optional specific run directory. If None, creates a
                timestamped directory. Can also be set via RUN_DIR.

        Raises:
            ValueError: If output_dir exists but is not a directory.
        """
        output_path = Path(output_dir)
        if output_path.exists() and not output_path.is_dir():
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.pose_csv_file: Optional[TextIO] = None
        self.pose_csv_writer: Any = None
        self.trajectory_csv_file: Optional[TextIO] = None
        self.trajectory_csv_writer: Any = None
        self.shot_csv_file: Optional[TextIO] = None
        self.shot_csv_writer: Any = None
        self.superstructure_csv_file: Optional[TextIO] = None
        self.superstructure_csv_writer: Any = None
        self.rows_written = 0

        if run_dir:
            self.run_dir: Path = Path(run_dir)
        elif env_run_dir := os.environ.get("RUN_DIR"):
            self.run_dir = Path(env_run_dir)
        else:
            # results/run_YYYYMMDD_HHMMSS/
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.run_dir = output_path / "results" / f"run_{timestamp}"

        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.pose_output_path: Path = self.run_dir / "pose.csv"
        self.trajectory_output_path: Path = self.run_dir / "trajectory.csv"
        self.shot_output_path: Path = self.run_dir / "shot.csv"
        self.superstructure_output_path: Path = self.run_dir / "superstructure.csv"

    def setup(self) -> None:
        """Create the CSV files and write their headers."""
        self.pose_csv_file = open(self.pose_output_path, "w", newline="")
        self.pose_csv_writer = csv.writer(self.pose_csv_file)
        self.pose_csv_writer.writerow(POSE_COLUMNS)

        self.trajectory_csv_file = open(self.trajectory_output_path, "w", newline="")
        self.trajectory_csv_writer = csv.writer(self.trajectory_csv_file)
        self.trajectory_csv_writer.writerow(TRAJECTORY_COLUMNS)

        self.shot_csv_file = open(self.shot_output_path, "w", newline="")
        self.shot_csv_writer = csv.writer(self.shot_csv_file)
        self.shot_csv_writer.writerow(SHOT_COLUMNS)

        self.superstructure_csv_file = open(self.superstructure_output_path, "w", newline="")
        self.superstructure_csv_writer = csv.writer(self.superstructure_csv_file)
        self.superstructure_csv_writer.writerow(SUPERSTRUCTURE_COLUMNS)

        self.flush()

    def record(self, snapshot: "TickSnapshot") -> None:
        """Write one tick's telemetry.

        Raises:
            RuntimeError: If called before ``setup``.
        """
        if self.pose_csv_writer is None:
            raise RuntimeError("TelemetryRecorder.record called before setup")

        t = snapshot.timestamp
        pose, odom = snapshot.pose, snapshot.odometry_pose
        self.pose_csv_writer.writerow(
            [t, pose.x, pose.y, pose.heading, odom.x, odom.y, odom.heading, snapshot.vision_accepted]
        )

        reference = snapshot.reference_pose
        command = snapshot.command
        self.trajectory_csv_writer.writerow([
            t,
            _blank_if_none(reference.x if reference else None),
            _blank_if_none(reference.y if reference else None),
            _blank_if_none(reference.heading if reference else None),
            _blank_if_none(snapshot.progress),
            command.vx,
            command.vy,
            command.omega,
        ])

        shot = snapshot.shot
        if shot is not None:
            self.shot_csv_writer.writerow(
                [t, shot.distance, shot.pivot_angle, shot.rpm, shot.robot_angle, shot.confidence]
            )

        outputs = snapshot.outputs
        self.superstructure_csv_writer.writerow([
            t,
            snapshot.state.name,
            int(snapshot.enabled),
            outputs.pivot_angle,
            outputs.flywheel_rpm,
            outputs.intake_volts,
            outputs.feeder_volts,
        ])
        self.rows_written += 1

    def flush(self) -> None:
        for f in (self.pose_csv_file, self.trajectory_csv_file, self.shot_csv_file, self.superstructure_csv_file):
            if f:
                f.flush()

    def cleanup(self) -> None:
        """Close all open CSV files."""
        for f in (self.pose_csv_file, self.trajectory_csv_file, self.shot_csv_file, self.superstructure_csv_file):
            if f:
                f.close()
        self.pose_csv_file = self.trajectory_csv_file = None
        self.shot_csv_file = self.superstructure_csv_file = None
        self.pose_csv_writer = self.trajectory_csv_writer = None
        self.shot_csv_writer = self.superstructure_csv_writer = None
        logging.info(f"{TERM_BLUE}✓ Telemetry saved to {self.run_dir} ({self.rows_written} ticks){TERM_RESET}")

    def __enter__(self) -> "TelemetryRecorder":
        self.setup()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()
