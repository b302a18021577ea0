"""
Visualization utilities for recorded swerve control runs.

This module loads the CSV telemetry written by TelemetryRecorder and plots:
- Estimated, odometry and reference paths on the field
- Tracking error over time
- Shot confidence and the superstructure state timeline
It also plots a generated trajectory before it is driven.
"""

import csv
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.axes import Axes
from matplotlib.colors import LinearSegmentedColormap
from matplotlib.figure import Figure

from .config import (
    FIELD_LENGTH,
    FIELD_WIDTH,
    PLOT_BLUE,
    PLOT_CREAM,
    PLOT_DARK_BLUE,
    PLOT_ORANGE,
    PLOT_TAUPE,
    PLOT_YELLOW_ORANGE,
    SHOT_CONFIDENCE_THRESHOLD,
)
from .path import GeneratedTrajectory
from .superstructure import SuperstructureState

SPEED_CMAP = LinearSegmentedColormap.from_list(
    "speed", [PLOT_ORANGE, PLOT_BLUE]
)
"""Colormap for speed, from orange (slow) to blue (fast)."""


def load_csv_to_dict(csv_path: Path, text_columns: Sequence[str] = ()) -> Dict[str, np.ndarray]:
    """Load CSV file into dictionary of numpy arrays.

    Numeric columns are converted to floats; non-numeric or empty values
    become NaN. Columns named in ``text_columns`` are kept as strings.

    Args:
        csv_path: Path to CSV file.
        text_columns: Columns to keep as strings.

    Returns:
        Dictionary mapping column names to numpy arrays.

    Raises:
        FileNotFoundError: If the CSV file does not exist.
    """
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    with open(csv_path) as f:
        reader = csv.DictReader(f)
        data: Dict[str, List] = {key: [] for key in reader.fieldnames or []}
        for row in reader:
            for key, value in row.items():
                if key in text_columns:
                    data[key].append(value)
                    continue
                try:
                    data[key].append(float(value))
                except (ValueError, TypeError):
                    data[key].append(np.nan)

    return {key: np.array(values) for key, values in data.items()}


def _style_dark_axis(ax: Axes) -> None:
    ax.set_facecolor(PLOT_DARK_BLUE)
    for spine in ax.spines.values():
        spine.set_color(PLOT_CREAM)
    ax.tick_params(colors=PLOT_CREAM, which="both")
    ax.xaxis.label.set_color(PLOT_CREAM)
    ax.yaxis.label.set_color(PLOT_CREAM)
    ax.title.set_color(PLOT_CREAM)
    ax.grid(True, alpha=0.2, color=PLOT_CREAM)


def _dark_legend(ax: Axes, **kwargs) -> None:
    legend = ax.legend(facecolor=PLOT_DARK_BLUE, edgecolor=PLOT_CREAM, **kwargs)
    plt.setp(legend.get_texts(), color=PLOT_CREAM)


def _draw_field(ax: Axes) -> None:
    ax.add_patch(
        plt.Rectangle((0.0, 0.0), FIELD_LENGTH, FIELD_WIDTH, fill=False, edgecolor=PLOT_TAUPE, linewidth=1.5)
    )
    ax.set_xlim(-0.5, FIELD_LENGTH + 0.5)
    ax.set_ylim(-0.5, FIELD_WIDTH + 0.5)
    ax.set_aspect("equal")


def plot_trajectory(
    trajectory: GeneratedTrajectory,
    title: str = "Generated Trajectory",
    save_path: Optional[Path] = None,
    heading_arrows: int = 12,
) -> Figure:
    """Plot a generated trajectory colored by planned speed.

    Args:
        trajectory: Trajectory to plot.
        title: Plot title.
        save_path: Optional path to save the figure.
        heading_arrows: Number of rotation-target arrows drawn along the path.

    Returns:
        Matplotlib figure object.
    """
    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(14, 6), facecolor=PLOT_DARK_BLUE)
    for ax in (ax1, ax2):
        _style_dark_axis(ax)

    states = trajectory.trajectory.states
    times = np.array([s.time for s in states])
    x = np.array([s.pose.x for s in states])
    y = np.array([s.pose.y for s in states])
    v = np.array([s.velocity for s in states])

    ax1.plot(x, y, "-", color=PLOT_TAUPE, linewidth=1.0, zorder=1)
    scatter = ax1.scatter(x, y, c=v, cmap=SPEED_CMAP, s=8, zorder=2)
    plt.colorbar(scatter, ax=ax1, label="Speed (m/s)")

    for t in np.linspace(0.0, trajectory.total_time, heading_arrows):
        pose = trajectory.target_pose(t)
        ax1.arrow(
            pose.x, pose.y, 0.3 * np.cos(pose.heading), 0.3 * np.sin(pose.heading),
            width=0.02, color=PLOT_YELLOW_ORANGE, zorder=3,
        )

    ax1.set_xlabel("X Position (m)")
    ax1.set_ylabel("Y Position (m)")
    ax1.set_title(title)
    ax1.set_aspect("equal")

    ax2.plot(times, v, color=PLOT_ORANGE, label="Speed")
    ax2.plot(times, [s.acceleration for s in states], color=PLOT_BLUE, alpha=0.7, label="Acceleration")
    ax2.set_xlabel("Time (s)")
    ax2.set_ylabel("m/s, m/s²")
    ax2.set_title(f"Profile ({trajectory.total_time:.2f} s)")
    _dark_legend(ax2)

    plt.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
    return fig


def plot_tracking(
    pose_data: Dict[str, np.ndarray],
    trajectory_data: Dict[str, np.ndarray],
    title: str = "Tracking",
    save_path: Optional[Path] = None,
) -> Figure:
    """Plot estimated, odometry and reference paths plus the position error.

    Args:
        pose_data: Columns from pose.csv.
        trajectory_data: Columns from trajectory.csv.
        title: Plot title prefix.
        save_path: Optional path to save the figure.

    Returns:
        Matplotlib figure object.
    """
    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(15, 6), facecolor=PLOT_DARK_BLUE)
    for ax in (ax1, ax2):
        _style_dark_axis(ax)

    _draw_field(ax1)
    ax1.plot(trajectory_data["ref_x"], trajectory_data["ref_y"], "--",
             color=PLOT_YELLOW_ORANGE, linewidth=2.0, label="Reference")
    ax1.plot(pose_data["odom_x"], pose_data["odom_y"], "-",
             color=PLOT_TAUPE, linewidth=1.0, label="Odometry")
    ax1.plot(pose_data["x"], pose_data["y"], "-",
             color=PLOT_ORANGE, linewidth=1.5, label="Estimate")
    if len(pose_data["x"]) > 0:
        ax1.plot(pose_data["x"][0], pose_data["y"][0], "o", color=PLOT_BLUE,
                 markeredgecolor="black", label="Start")
    ax1.set_xlabel("X Position (m)")
    ax1.set_ylabel("Y Position (m)")
    ax1.set_title(f"{title} - Field Path")
    _dark_legend(ax1)

    timestamps = pose_data["timestamp"]
    if len(timestamps) > 0:
        timestamps = timestamps - timestamps[0]
    error = np.hypot(pose_data["x"] - trajectory_data["ref_x"], pose_data["y"] - trajectory_data["ref_y"])
    ax2.plot(timestamps, error, color=PLOT_ORANGE, label="Position error")
    ax2.set_xlabel("Time (s)")
    ax2.set_ylabel("Error (m)")
    ax2.set_title(f"{title} - Position Error")
    _dark_legend(ax2)

    plt.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
    return fig


def plot_shot_timeline(
    shot_data: Dict[str, np.ndarray],
    superstructure_data: Dict[str, np.ndarray],
    title: str = "Superstructure",
    save_path: Optional[Path] = None,
) -> Figure:
    """Plot shot confidence against the superstructure state timeline.

    Args:
        shot_data: Columns from shot.csv.
        superstructure_data: Columns from superstructure.csv (``state`` as strings).
        title: Plot title prefix.
        save_path: Optional path to save the figure.

    Returns:
        Matplotlib figure object.
    """
    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8), sharex=True, facecolor=PLOT_DARK_BLUE)
    for ax in (ax1, ax2):
        _style_dark_axis(ax)

    start = superstructure_data["timestamp"][0] if len(superstructure_data["timestamp"]) else 0.0

    ax1.plot(shot_data["timestamp"] - start, shot_data["confidence"], color=PLOT_ORANGE, label="Confidence")
    ax1.axhline(SHOT_CONFIDENCE_THRESHOLD, linestyle="--", color=PLOT_TAUPE, label="Threshold")
    ax1.set_ylim(-0.05, 1.05)
    ax1.set_ylabel("Confidence")
    ax1.set_title(f"{title} - Shot Confidence")
    _dark_legend(ax1)

    states = [s.name for s in SuperstructureState]
    levels = [states.index(name) if name in states else np.nan for name in superstructure_data["state"]]
    ax2.step(superstructure_data["timestamp"] - start, levels, where="post", color=PLOT_BLUE)
    ax2.set_yticks(range(len(states)))
    ax2.set_yticklabels(states)
    ax2.set_xlabel("Time (s)")
    ax2.set_title(f"{title} - State")

    plt.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
    return fig


def plot_run_summary(run_dir: Path, save_plots: bool = False, show_plots: bool = True) -> None:
    """Generate summary plots for a complete run.

    Args:
        run_dir: Directory containing the TelemetryRecorder CSV files.
        save_plots: If True, save plots to run directory.
        show_plots: If True, display plots interactively.

    Raises:
        FileNotFoundError: If required CSV files are not found.
    """
    pose_data = load_csv_to_dict(run_dir / "pose.csv")
    trajectory_data = load_csv_to_dict(run_dir / "trajectory.csv")
    shot_data = load_csv_to_dict(run_dir / "shot.csv")
    superstructure_data = load_csv_to_dict(run_dir / "superstructure.csv", text_columns=("state",))

    run_name = run_dir.name
    plot_tracking(
        pose_data,
        trajectory_data,
        title=run_name,
        save_path=run_dir / "tracking.png" if save_plots else None,
    )
    plot_shot_timeline(
        shot_data,
        superstructure_data,
        title=run_name,
        save_path=run_dir / "superstructure.png" if save_plots else None,
    )

    if show_plots:
        plt.show()
    else:
        plt.close("all")
