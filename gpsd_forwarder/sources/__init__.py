"""
Platform event sources and the adapter that unifies them.

- base: LocationManager / SensorManager interfaces
- adapter: EventSourceAdapter (NMEA + fused attitude feed)
- linux: IIO sysfs motion sensors
- gpsd: location via a local gpsd (message-listener NMEA)
- serial_port: location via a serial GPS receiver (legacy NMEA listener)
"""

from gpsd_forwarder.sources.adapter import Capabilities, EventSourceAdapter
from gpsd_forwarder.sources.base import (
    LocationManager,
    SensorEvent,
    SensorManager,
    SensorType,
)

__all__ = [
    "Capabilities",
    "EventSourceAdapter",
    "LocationManager",
    "SensorEvent",
    "SensorManager",
    "SensorType",
]
