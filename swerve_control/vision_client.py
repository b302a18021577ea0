"""
WebSocket client for the vision co-processor.

The co-processor publishes one JSON message per solved camera frame:

    {"message_type": "pose", "x": 2.31, "y": 5.02, "heading": 3.10,
     "latency": 0.045, "ambiguity": 0.05, "trust": 0.9}

``latency`` (seconds before receipt) or an absolute ``timestamp`` in the
control loop time base locates the capture time. Valid measurements are
pushed into a sink (normally the QueuedVisionIO drained by the control
loop); malformed or off-field poses are logged and dropped.
"""

import asyncio
import json
import logging
import math
import time
from typing import Any, Callable, Dict, Optional, Union

import websockets

from .config import (
    FIELD_BORDER_MARGIN,
    FIELD_LENGTH,
    FIELD_WIDTH,
    TERM_BLUE,
    TERM_RESET,
    WS_MAX_RETRY_DELAY_SECONDS,
    WS_RETRY_DELAY_SECONDS,
    WS_TIMEOUT_SECONDS,
)
from .geometry import Pose2D
from .localizer import VisionMeasurement


def on_field(pose: Pose2D, margin: float = FIELD_BORDER_MARGIN) -> bool:
    """True if the pose lies within the field boundary plus ``margin``."""
    return -margin <= pose.x <= FIELD_LENGTH + margin and -margin <= pose.y <= FIELD_WIDTH + margin


def parse_vision_message(data: Dict[str, Any], received_at: float) -> Optional[VisionMeasurement]:
    """Convert one decoded pose message into a VisionMeasurement.

    Args:
        data: Decoded JSON object.
        received_at: Control loop time at which the message arrived (seconds).

    Returns:
        The measurement, or None if the message is not a usable pose.

    Raises:
        KeyError, TypeError, ValueError: If required fields are missing or malformed.
    """
    if data.get("message_type") != "pose":
        return None

    pose = Pose2D(float(data["x"]), float(data["y"]), float(data["heading"]))
    if "timestamp" in data:
        timestamp = float(data["timestamp"])
    else:
        timestamp = received_at - float(data.get("latency", 0.0))

    trust = float(data.get("trust", 1.0))
    ambiguity = float(data.get("ambiguity", 0.0))
    if not all(math.isfinite(v) for v in (pose.x, pose.y, pose.heading, timestamp, trust, ambiguity)):
        raise ValueError("Vision message contains non-finite values")
    if not on_field(pose):
        logging.warning(f"Dropped off-field vision pose ({pose.x:.2f}, {pose.y:.2f})")
        return None
    return VisionMeasurement(pose, timestamp, trust=trust, ambiguity=ambiguity)


class VisionClient:
    """Receives vision poses over WebSocket and hands them to a sink.

    Attributes:
        uri: WebSocket URI of the co-processor.
        sink: Callable receiving each valid VisionMeasurement.
        clock: Time source in the control loop time base.
        should_stop: Flag indicating whether to stop the receive loop.
    """

    def __init__(
        self,
        uri: str,
        sink: Callable[[VisionMeasurement], None],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the vision client.

        Raises:
            ValueError: If URI format is invalid.
        """
        if not uri or not uri.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URI: {uri}. Must start with 'ws://' or 'wss://'")

        self.uri: str = uri
        self.sink = sink
        self.clock = clock
        self.should_stop: bool = False
        self.received: int = 0
        self.dropped: int = 0

    def handle_message(self, message: Union[str, bytes]) -> Optional[VisionMeasurement]:
        """Parse one raw message and forward it to the sink if valid."""
        received_at = self.clock()
        try:
            if isinstance(message, bytes):
                message = message.decode("utf-8")
            measurement = parse_vision_message(json.loads(message), received_at)
        except json.JSONDecodeError as e:
            logging.error(f"Error parsing vision JSON: {e}")
            measurement = None
        except (KeyError, TypeError, ValueError) as e:
            logging.error(f"Error processing vision message: {e}")
            measurement = None

        if measurement is None:
            self.dropped += 1
            return None
        self.received += 1
        self.sink(measurement)
        return measurement

    async def run(self) -> None:
        """Connect and receive until stopped, reconnecting with exponential backoff."""
        retry_delay = WS_RETRY_DELAY_SECONDS

        while not self.should_stop:
            try:
                async with websockets.connect(self.uri) as websocket:
                    logging.info(f"{TERM_BLUE}✓ Connected to vision co-processor{TERM_RESET}")
                    retry_delay = WS_RETRY_DELAY_SECONDS

                    while not self.should_stop:
                        try:
                            message = await asyncio.wait_for(websocket.recv(), timeout=WS_TIMEOUT_SECONDS)
                        except asyncio.TimeoutError:
                            continue
                        self.handle_message(message)

            except websockets.exceptions.ConnectionClosed:
                logging.warning("Vision connection closed by co-processor")
            except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
                logging.error(f"Vision connection error: {e}")

            if self.should_stop:
                break
            logging.info(f"Retrying vision connection in {retry_delay} seconds...")
            await asyncio.sleep(retry_delay)
            retry_delay = min(retry_delay * 2, WS_MAX_RETRY_DELAY_SECONDS)

    def stop(self) -> None:
        """Signal the client to stop."""
        self.should_stop = True
