"""
Abstract interfaces for the platform location and motion-sensor subsystems.

Concrete backends (IIO, gpsd, serial GPS) and test doubles implement these.
Callbacks run on whatever thread the backend delivers them on; a backend
must not deliver two callbacks for the same source concurrently.
"""

import enum
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

GPS_PROVIDER = "gps"

# Location provider status codes passed to on_status_changed.
OUT_OF_SERVICE = 0
TEMPORARILY_UNAVAILABLE = 1
AVAILABLE = 2

# Modern NMEA callback: (message, timestamp_ms). Legacy: (timestamp_ms, message).
NmeaMessageCallback = Callable[[str, int], None]
LegacyNmeaCallback = Callable[[int, str], None]


class ProviderUnavailable(Exception):
    """The requested location provider does not exist on this device."""


class LocationAccessDenied(Exception):
    """The process lacks permission to use the location provider."""


class SensorType(enum.IntEnum):
    ACCELEROMETER = 1
    MAGNETIC_FIELD = 2
    GYROSCOPE = 4


@dataclass(frozen=True)
class Sensor:
    """A motion sensor exposed by the platform."""

    type: SensorType
    name: str = ""


@dataclass(frozen=True)
class SensorEvent:
    """
    One sensor reading.

    values: at least three components for 3-axis sensors; extra components
    (e.g. uncalibrated bias) are ignored by consumers.
    timestamp: seconds (epoch).
    """

    sensor_type: SensorType
    values: Sequence[float]
    timestamp: float


class SensorEventListener:
    def on_sensor_changed(self, event: SensorEvent) -> None:
        raise NotImplementedError

    def on_accuracy_changed(self, sensor: Sensor, accuracy: int) -> None:
        pass


class LocationListener:
    def on_location_changed(self, location: object) -> None:
        pass

    def on_status_changed(self, provider: str, status: int, extras: dict) -> None:
        pass

    def on_provider_enabled(self, provider: str) -> None:
        pass

    def on_provider_disabled(self, provider: str) -> None:
        pass


class SensorManager:
    """Source of motion sensor events."""

    def get_default_sensor(self, sensor_type: SensorType) -> Optional[Sensor]:
        """Return the sensor of that type or None if the device has none."""
        raise NotImplementedError

    def register_listener(
        self, listener: SensorEventListener, sensor: Sensor, sampling_period_us: int
    ) -> bool:
        """Start delivering events for sensor; return False if refused."""
        raise NotImplementedError

    def unregister_listener(self, listener: SensorEventListener) -> None:
        """Stop every registration of listener. No-op if none."""
        raise NotImplementedError


class LocationManager:
    """
    Source of location status and NMEA sentences.

    NMEA delivery is optional and comes in one of two flavours, detected by
    attribute lookup: add_nmea_message_listener/remove_nmea_message_listener
    (NmeaMessageCallback) or the legacy add_nmea_listener/remove_nmea_listener
    (LegacyNmeaCallback).
    """

    def request_location_updates(
        self, provider: str, listener: LocationListener
    ) -> None:
        """
        Subscribe listener to provider.

        Raises ProviderUnavailable or LocationAccessDenied.
        """
        raise NotImplementedError

    def remove_updates(self, listener: LocationListener) -> None:
        raise NotImplementedError
