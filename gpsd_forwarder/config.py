"""
Configuration defaults and parsing for gpsd-forwarder.
"""

import argparse
from dataclasses import dataclass, field
from typing import Optional

from gpsd_forwarder.messages import SAMPLING_PRESETS, SamplingConfig


def _port(text: str) -> int:
    value = int(text)
    if not 1 <= value <= 65535:
        raise argparse.ArgumentTypeError(f"port must be 1-65535, got {value}")
    return value


def _sampling(text: str) -> SamplingConfig:
    try:
        return SamplingConfig.parse(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


@dataclass
class Config:
    """Runtime configuration."""

    server: str = "127.0.0.1"
    port: int = 2947
    attitude: SamplingConfig = field(default_factory=SamplingConfig)
    gpsd_host: str = "127.0.0.1"
    gpsd_port: int = 2947
    serial_device: Optional[str] = None
    baudrate: int = 9600
    accel_path: Optional[str] = None
    gyro_path: Optional[str] = None
    magnetometer_path: Optional[str] = None
    debug: bool = False


def parse_args(args: Optional[list] = None) -> Config:
    """Parse command-line arguments into Config."""
    parser = argparse.ArgumentParser(
        description="Stream NMEA and fused attitude (gpsd ATT) to a remote gpsd."
    )
    parser.add_argument(
        "--server",
        default="127.0.0.1",
        help="gpsd server hostname or IP to stream to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=_port,
        default=2947,
        help="gpsd server port (default: 2947)",
    )
    parser.add_argument(
        "--attitude",
        type=_sampling,
        default=SamplingConfig(),
        help=(
            "Attitude sampling: disabled, "
            + ", ".join(SAMPLING_PRESETS)
            + " or a period in microseconds (default: normal)"
        ),
    )
    parser.add_argument(
        "--gpsd-host",
        default="127.0.0.1",
        help="Local gpsd providing NMEA (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--gpsd-port",
        type=_port,
        default=2947,
        help="Local gpsd port (default: 2947)",
    )
    parser.add_argument(
        "--serial-device",
        default=None,
        help="Read NMEA from this serial GPS (e.g. /dev/ttyACM0) instead of gpsd",
    )
    parser.add_argument(
        "--baudrate",
        type=int,
        default=9600,
        help="Serial GPS baud rate (default: 9600)",
    )
    parser.add_argument(
        "--accel-path",
        default=None,
        help="IIO sysfs path for accelerometer (default: auto-detect)",
    )
    parser.add_argument(
        "--gyro-path",
        default=None,
        help="IIO sysfs path for gyroscope (default: auto-detect)",
    )
    parser.add_argument(
        "--magnetometer-path",
        default=None,
        help="IIO sysfs path for magnetometer (default: auto-detect)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parsed = parser.parse_args(args)
    return Config(
        server=parsed.server,
        port=parsed.port,
        attitude=parsed.attitude,
        gpsd_host=parsed.gpsd_host,
        gpsd_port=parsed.gpsd_port,
        serial_device=parsed.serial_device,
        baudrate=parsed.baudrate,
        accel_path=parsed.accel_path,
        gyro_path=parsed.gyro_path,
        magnetometer_path=parsed.magnetometer_path,
        debug=parsed.debug,
    )
