"""
Runtime component modes.

This module defines which optional control features are active and which
hardware variant is built, so each feature's contribution can be evaluated
in isolation from the command line.
"""

import argparse
import sys
from dataclasses import dataclass


@dataclass
class ComponentMode:
    """Configuration for which control components are active."""

    # Pose estimation
    use_vision: bool = True  # If False, run on wheel odometry only

    # Trajectory tracking
    use_feedforward: bool = True  # If False, feedback-only tracking

    # Shooting
    use_momentum_compensation: bool = True  # If False, aim with the static heading
    auto_fire: bool = False  # If True, AIM fires as soon as the interlocks pass

    # Hardware variant (see hardware.HARDWARE_VARIANTS)
    hardware: str = "sim"

    def __str__(self):
        """Human-readable description of active components."""
        components = ["Odometry+Vision" if self.use_vision else "Odometry"]
        components.append("Tracking(FF+FB)" if self.use_feedforward else "Tracking(FB)")
        shot = "Shot(Moving)" if self.use_momentum_compensation else "Shot(Static)"
        if self.auto_fire:
            shot += "+AutoFire"
        components.append(shot)
        components.append(f"HW({self.hardware})")
        return " → ".join(components)

    def to_dict(self):
        """Convert to dictionary for logging."""
        return {
            "use_vision": self.use_vision,
            "use_feedforward": self.use_feedforward,
            "use_momentum_compensation": self.use_momentum_compensation,
            "auto_fire": self.auto_fire,
            "hardware": self.hardware,
        }


def parse_component_flags(args=None):
    """
    Parse command-line flags to determine which components are active.

    Args:
        args: List of command-line arguments (default: sys.argv[1:])

    Returns:
        tuple: (ComponentMode, remaining_args)
            - ComponentMode with appropriate settings
            - List of remaining arguments not consumed
    """
    parser = argparse.ArgumentParser(add_help=False)

    parser.add_argument("--no-vision", action="store_true",
                        help="Ignore vision measurements (wheel odometry only)")
    parser.add_argument("--no-feedforward", action="store_true",
                        help="Disable trajectory feedforward terms")
    parser.add_argument("--no-momentum-comp", action="store_true",
                        help="Aim with the static heading while moving")
    parser.add_argument("--auto-fire", action="store_true",
                        help="Fire automatically once aimed and ready")
    parser.add_argument("--hardware", default="sim",
                        help="Hardware variant to build (default: sim)")

    # Parse known args, keep the rest
    if args is None:
        args = sys.argv[1:]

    known_args, remaining_args = parser.parse_known_args(args)

    mode = ComponentMode(
        use_vision=not known_args.no_vision,
        use_feedforward=not known_args.no_feedforward,
        use_momentum_compensation=not known_args.no_momentum_comp,
        auto_fire=known_args.auto_fire,
        hardware=known_args.hardware,
    )

    return mode, remaining_args
