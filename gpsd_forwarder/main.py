"""
Headless front-end: stream local GPS and IIO motion sensors to a gpsd server.
"""

import logging
import queue
import signal
import sys
from typing import Optional, Tuple

from gpsd_forwarder.config import Config, parse_args
from gpsd_forwarder.logging_sink import QueueLoggingSink
from gpsd_forwarder.session import SessionState, StreamingSession
from gpsd_forwarder.sources.base import LocationManager, SensorManager
from gpsd_forwarder.sources.linux import IIOSensorManager

logger = logging.getLogger(__name__)

_shutdown = False


def _signal_handler(signum: int, frame: Optional[object]) -> None:
    global _shutdown
    _shutdown = True


def create_platform(config: Config) -> Tuple[LocationManager, SensorManager]:
    """Location manager (serial GPS or gpsd) and IIO sensor manager."""
    location_manager: LocationManager
    if config.serial_device:
        from gpsd_forwarder.sources.serial_port import SerialLocationManager

        location_manager = SerialLocationManager(config.serial_device, config.baudrate)
    else:
        from gpsd_forwarder.sources.gpsd import GpsdLocationManager

        location_manager = GpsdLocationManager(config.gpsd_host, config.gpsd_port)
    sensor_manager = IIOSensorManager(
        accel_path=config.accel_path,
        gyro_path=config.gyro_path,
        magnetometer_path=config.magnetometer_path,
    )
    return location_manager, sensor_manager


def run(config: Config) -> int:
    """
    Run one streaming session until interrupted or failed.

    Returns exit code (0 = stopped by signal, 1 = session failed).
    """
    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    log_level = logging.DEBUG if config.debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    location_manager, sensor_manager = create_platform(config)
    sink = QueueLoggingSink()
    session = StreamingSession(location_manager, sensor_manager, sink)
    session.start(config.server, config.port, config.attitude)

    try:
        while not _shutdown and session.state not in (
            SessionState.FAILED,
            SessionState.STOPPED,
        ):
            try:
                print(sink.get(timeout=0.5), flush=True)
            except queue.Empty:
                continue
    except KeyboardInterrupt:
        pass
    finally:
        session.stop()
        for message in sink.drain():
            print(message, flush=True)

    return 1 if session.state is SessionState.FAILED else 0


def main() -> None:
    """Entry point for the gpsd-forwarder script."""
    config = parse_args()
    sys.exit(run(config))


if __name__ == "__main__":
    main()
