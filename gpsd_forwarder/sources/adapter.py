"""
Event source adapter: one uniform feed from the platform subsystems.

Subscribes to location status, NMEA (whichever mechanism the platform has)
and the three motion sensors, and hands NMEA sentences and fused attitude
records to a target (normally the MessageMultiplexer). The latest sample of
each motion sensor is kept in a slot; every magnetometer sample triggers one
attitude record.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from gpsd_forwarder.attitude import fuse
from gpsd_forwarder.errors import (
    DegradedModeWarning,
    LocationPermissionError,
    NoProviderError,
)
from gpsd_forwarder.logging_sink import LoggingSink
from gpsd_forwarder.messages import (
    ZERO_VECTOR,
    FusedAttitudeRecord,
    NmeaSentence,
    SamplingConfig,
    Vector,
)
from gpsd_forwarder.sources.base import (
    AVAILABLE,
    GPS_PROVIDER,
    OUT_OF_SERVICE,
    TEMPORARILY_UNAVAILABLE,
    LocationAccessDenied,
    LocationListener,
    LocationManager,
    ProviderUnavailable,
    Sensor,
    SensorEvent,
    SensorEventListener,
    SensorManager,
    SensorType,
)
from gpsd_forwarder.sources.nmea import (
    NmeaSubscription,
    NmeaSubscriptionError,
    select_nmea_subscription,
)

logger = logging.getLogger(__name__)

_STATUS_TEXT = {
    OUT_OF_SERVICE: "Out of service",
    TEMPORARILY_UNAVAILABLE: "Temporarily unavailable",
    AVAILABLE: "Available",
}


def status_to_string(status: int) -> str:
    return _STATUS_TEXT.get(status, "Unknown")


class StreamTarget:
    """Receiver of the adapter's output (see MessageMultiplexer)."""

    def on_nmea(self, sentence: NmeaSentence) -> None:
        raise NotImplementedError

    def on_attitude(self, record: FusedAttitudeRecord) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class RawVectorSample:
    axis: SensorType
    values: Vector
    timestamp: float


class VectorSlots:
    """
    Latest sample per motion sensor.

    Each slot has its own lock; a writer replaces the whole sample so a
    reader never sees a half-written vector. Unsampled slots hold zeros.
    """

    def __init__(self) -> None:
        self._locks = {axis: threading.Lock() for axis in SensorType}
        self._samples: Dict[SensorType, RawVectorSample] = {}
        self.reset()

    def reset(self) -> None:
        for axis in SensorType:
            with self._locks[axis]:
                self._samples[axis] = RawVectorSample(axis, ZERO_VECTOR, 0.0)

    def update(self, sample: RawVectorSample) -> None:
        with self._locks[sample.axis]:
            self._samples[sample.axis] = sample

    def latest(self, axis: SensorType) -> RawVectorSample:
        with self._locks[axis]:
            return self._samples[axis]

    def vectors(self) -> Tuple[Vector, Vector, Vector]:
        """(accel, gyro, mag) values."""
        return (
            self.latest(SensorType.ACCELEROMETER).values,
            self.latest(SensorType.GYROSCOPE).values,
            self.latest(SensorType.MAGNETIC_FIELD).values,
        )


@dataclass
class Capabilities:
    """What the platform could provide for this session."""

    nmea_mechanism: Optional[str] = None
    sensors: Tuple[SensorType, ...] = ()
    warnings: List[DegradedModeWarning] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


def _to_vector(values: Sequence[float]) -> Optional[Vector]:
    """First three components as floats, or None if fewer or non-finite."""
    try:
        if len(values) < 3:
            return None
        vector = (float(values[0]), float(values[1]), float(values[2]))
    except (TypeError, ValueError):
        return None
    if not all(math.isfinite(v) for v in vector):
        return None
    return vector


class EventSourceAdapter(LocationListener, SensorEventListener):
    """
    Wraps a LocationManager and a SensorManager behind start/stop.

    start() raises NoProviderError or LocationPermissionError when the GPS
    provider cannot be used; a missing NMEA mechanism or missing sensors
    only degrade the session. stop() is idempotent.
    """

    def __init__(
        self, location_manager: LocationManager, sensor_manager: SensorManager
    ) -> None:
        self._location_manager = location_manager
        self._sensor_manager = sensor_manager
        self._lock = threading.Lock()
        self._running = False
        self._target: Optional[StreamTarget] = None
        self._sink: Optional[LoggingSink] = None
        self._nmea: Optional[NmeaSubscription] = None
        self._sensors: Dict[SensorType, Sensor] = {}
        self._sampling = SamplingConfig.disabled()
        self._had_orientation = False
        self.slots = VectorSlots()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def sampling(self) -> SamplingConfig:
        return self._sampling

    def start(
        self,
        target: StreamTarget,
        sampling: SamplingConfig,
        sink: LoggingSink,
    ) -> Capabilities:
        with self._lock:
            if self._running:
                raise RuntimeError("event source adapter already started")
            self._target = target
            self._sink = sink
            self._had_orientation = False
            self.slots.reset()
            try:
                self._location_manager.request_location_updates(GPS_PROVIDER, self)
            except ProviderUnavailable as e:
                raise NoProviderError("No GPS available") from e
            except LocationAccessDenied as e:
                raise LocationPermissionError("No permission to access GPS") from e

            capabilities = Capabilities()
            nmea = select_nmea_subscription(self._location_manager)
            if nmea is None:
                capabilities.warnings.append(
                    DegradedModeWarning("NMEA delivery not supported; no NMEA will be sent")
                )
            else:
                try:
                    nmea.subscribe(self._on_nmea)
                    capabilities.nmea_mechanism = nmea.mechanism
                except NmeaSubscriptionError as e:
                    capabilities.warnings.append(
                        DegradedModeWarning(f"Failed to add NMEA listener: {e}")
                    )
                    nmea = None
            self._nmea = nmea

            self._sensors = {}
            for sensor_type in SensorType:
                sensor = self._sensor_manager.get_default_sensor(sensor_type)
                if sensor is None:
                    logger.info("No %s sensor", sensor_type.name.lower())
                    continue
                self._sensors[sensor_type] = sensor
            capabilities.sensors = tuple(self._sensors)
            self._running = True

        for warning in capabilities.warnings:
            logger.warning("%s", warning)
            sink.log(str(warning))
        self.set_sampling_config(sampling)
        return capabilities

    def set_sampling_config(self, sampling: SamplingConfig) -> None:
        """Re-register motion sensors; disabled unsubscribes them all."""
        with self._lock:
            self._sampling = sampling
            if not self._running:
                return
            self._sensor_manager.unregister_listener(self)
            if not sampling.enabled:
                logger.debug("Attitude disabled; motion sensors not subscribed")
                return
            for sensor_type, sensor in self._sensors.items():
                if not self._sensor_manager.register_listener(
                    self, sensor, sampling.period_us
                ):
                    logger.warning("Could not register %s", sensor_type.name.lower())

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            nmea, self._nmea = self._nmea, None
            sink, self._sink = self._sink, None
            self._target = None
        self._location_manager.remove_updates(self)
        self._sensor_manager.unregister_listener(self)
        if nmea is not None:
            try:
                nmea.unsubscribe()
            except NmeaSubscriptionError as e:
                logger.warning("NMEA unsubscribe failed: %s", e)
                if sink:
                    sink.log(f"Failed to remove NMEA listener: {e}")
        self.slots.reset()

    def _on_nmea(self, sentence: NmeaSentence) -> None:
        target = self._target
        if self._running and target is not None:
            target.on_nmea(sentence)

    def on_sensor_changed(self, event: SensorEvent) -> None:
        target = self._target
        if not self._running or target is None:
            return
        try:
            axis = SensorType(event.sensor_type)
        except ValueError:
            logger.debug("Ignoring event from sensor type %s", event.sensor_type)
            return
        vector = _to_vector(event.values)
        if vector is None:
            logger.debug("Malformed %s event: %r", axis.name, event.values)
            if self._sink:
                self._sink.log(f"Dropped malformed {axis.name.lower()} sample")
            return
        self.slots.update(RawVectorSample(axis, vector, event.timestamp))
        if axis is SensorType.MAGNETIC_FIELD:
            accel, gyro, _ = self.slots.vectors()
            record = fuse(accel, gyro, vector, timestamp=time.time())
            self._check_orientation(record)
            target.on_attitude(record)

    def _check_orientation(self, record: FusedAttitudeRecord) -> None:
        """Warn once each time records fall back to heading only."""
        lost = self._had_orientation and not record.has_orientation
        self._had_orientation = record.has_orientation
        if lost:
            warning = DegradedModeWarning(
                "Orientation unavailable; sending heading only"
            )
            logger.warning("%s", warning)
            sink = self._sink
            if sink:
                sink.log(str(warning))

    def on_status_changed(self, provider: str, status: int, extras: dict) -> None:
        message = f"{provider} status: {status_to_string(status)}"
        satellites = (extras or {}).get("satellites", -1)
        if satellites != -1:
            message += f" with {satellites} satellites"
        self._log(message)

    def on_provider_enabled(self, provider: str) -> None:
        self._log(f"Location provider enabled: {provider}")

    def on_provider_disabled(self, provider: str) -> None:
        self._log(f"Location provider disabled: {provider}")

    def _log(self, message: str) -> None:
        logger.info("%s", message)
        if self._sink:
            self._sink.log(message)
