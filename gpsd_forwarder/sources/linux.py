"""
Motion sensors from Linux IIO sysfs.

Discovers IIO devices under /sys/bus/iio/devices/ and reads raw channels
with scale/offset. Each registered sensor is polled on its own thread and
delivered as SensorEvents in platform units: m/s^2 for accel, rad/s for
gyro, microtesla (uT) for magnetometer.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

from gpsd_forwarder.messages import Vector
from gpsd_forwarder.sources.base import (
    Sensor,
    SensorEvent,
    SensorEventListener,
    SensorManager,
    SensorType,
)

logger = logging.getLogger(__name__)

IIO_BASE = Path("/sys/bus/iio/devices")

CHANNEL_PREFIX = {
    SensorType.ACCELEROMETER: "in_accel",
    SensorType.GYROSCOPE: "in_anglvel",
    SensorType.MAGNETIC_FIELD: "in_magn",
}

# IIO reports magnetic field in gauss.
_UNIT_FACTOR = {
    SensorType.ACCELEROMETER: 1.0,
    SensorType.GYROSCOPE: 1.0,
    SensorType.MAGNETIC_FIELD: 100.0,
}

MIN_POLL_INTERVAL_S = 0.001


def _read_one(path: Path, default: float = 0.0) -> float:
    """Read a single value from sysfs; return default on error."""
    try:
        return float(path.read_text().strip())
    except (OSError, ValueError):
        return default


def has_channels(device_path: Path, prefix: str) -> bool:
    """Return True if device has x,y,z raw and scale for the given prefix."""
    if not (device_path / f"{prefix}_scale").exists():
        return False
    return all(
        (device_path / f"{prefix}_{axis}_raw").exists() for axis in ("x", "y", "z")
    )


def discover_iio_devices(base: Optional[Path] = None) -> List[Path]:
    """Return IIO device sysfs paths (e.g. .../iio:device0), sorted by name."""
    base = base or IIO_BASE
    if not base.exists():
        return []
    return sorted(
        (p for p in base.iterdir() if p.is_dir() and p.name.startswith("iio:device")),
        key=lambda p: p.name,
    )


def find_device(
    sensor_type: SensorType,
    override: Optional[str] = None,
    base: Optional[Path] = None,
) -> Optional[Path]:
    """
    Return the IIO device providing sensor_type.

    An explicit override path wins if it has the channels; otherwise the
    first discovered device with them.
    """
    prefix = CHANNEL_PREFIX[sensor_type]
    if override:
        path = Path(override)
        if path.exists() and has_channels(path, prefix):
            return path
        logger.warning("%s path %s missing or invalid", sensor_type.name, override)
    for device in discover_iio_devices(base):
        if has_channels(device, prefix):
            return device
    return None


class IIOChannel:
    """Scaled 3-axis channel of one IIO device."""

    def __init__(self, device_path: Path, sensor_type: SensorType) -> None:
        self.device_path = device_path
        self.sensor_type = sensor_type
        self._prefix = CHANNEL_PREFIX[sensor_type]
        self._scale = _read_one(device_path / f"{self._prefix}_scale", 1.0)
        self._scale *= _UNIT_FACTOR[sensor_type]
        self._offset = [
            _read_one(device_path / f"{self._prefix}_{axis}_offset", 0.0)
            for axis in ("x", "y", "z")
        ]

    @property
    def name(self) -> str:
        try:
            return (self.device_path / "name").read_text().strip()
        except OSError:
            return self.device_path.name

    def read(self) -> Optional[Vector]:
        """Current value, or None if the device could not be read."""
        try:
            raw = [
                float((self.device_path / f"{self._prefix}_{axis}_raw").read_text())
                for axis in ("x", "y", "z")
            ]
        except (OSError, ValueError):
            return None
        return (
            (raw[0] + self._offset[0]) * self._scale,
            (raw[1] + self._offset[1]) * self._scale,
            (raw[2] + self._offset[2]) * self._scale,
        )


class _Poller:
    """Reads one channel periodically and delivers events to one listener."""

    def __init__(
        self,
        channel: IIOChannel,
        listener: SensorEventListener,
        interval_s: float,
    ) -> None:
        self._channel = channel
        self._listener = listener
        self._interval_s = max(MIN_POLL_INTERVAL_S, interval_s)
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name=f"iio-{channel.sensor_type.name.lower()}",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)

    def _run(self) -> None:
        while not self._stop.wait(self._interval_s):
            values = self._channel.read()
            if values is None:
                continue
            self._listener.on_sensor_changed(
                SensorEvent(self._channel.sensor_type, values, time.time())
            )


class IIOSensorManager(SensorManager):
    """SensorManager backed by IIO sysfs devices."""

    def __init__(
        self,
        accel_path: Optional[str] = None,
        gyro_path: Optional[str] = None,
        magnetometer_path: Optional[str] = None,
        base: Optional[Path] = None,
    ) -> None:
        overrides = {
            SensorType.ACCELEROMETER: accel_path,
            SensorType.GYROSCOPE: gyro_path,
            SensorType.MAGNETIC_FIELD: magnetometer_path,
        }
        self._channels: Dict[SensorType, IIOChannel] = {}
        for sensor_type, override in overrides.items():
            device = find_device(sensor_type, override, base)
            if device is not None:
                self._channels[sensor_type] = IIOChannel(device, sensor_type)
                logger.info("%s found at %s", sensor_type.name, device)
        self._lock = threading.Lock()
        self._pollers: Dict[int, List[_Poller]] = {}

    def get_default_sensor(self, sensor_type: SensorType) -> Optional[Sensor]:
        channel = self._channels.get(sensor_type)
        if channel is None:
            return None
        return Sensor(sensor_type, channel.name)

    def register_listener(
        self, listener: SensorEventListener, sensor: Sensor, sampling_period_us: int
    ) -> bool:
        channel = self._channels.get(sensor.type)
        if channel is None:
            return False
        poller = _Poller(channel, listener, sampling_period_us / 1e6)
        with self._lock:
            self._pollers.setdefault(id(listener), []).append(poller)
        poller.start()
        return True

    def unregister_listener(self, listener: SensorEventListener) -> None:
        with self._lock:
            pollers = self._pollers.pop(id(listener), [])
        for poller in pollers:
            poller.stop()
