"""
Main entry point when running the swerve_control module with python -m.
"""

import argparse
import asyncio
import logging
import sys

from .component_modes import parse_component_flags
from .robot import main, setup_logging

if __name__ == "__main__":
    # Parse component isolation flags first
    component_mode, remaining_args = parse_component_flags()

    parser = argparse.ArgumentParser(
        description="Fixed-period swerve control loop with vision fusion and telemetry logging"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    parser.add_argument(
        "--duration", type=float, default=None, help="Seconds to run (default: trajectory time + 3 s)"
    )
    parser.add_argument(
        "--output-dir", default=".", help="Base directory for results/ (default: current directory)"
    )
    args = parser.parse_args(remaining_args)

    setup_logging(args.verbose)

    try:
        asyncio.run(main(component_mode=component_mode, duration=args.duration, output_dir=args.output_dir))
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(0)
