"""
Data carried through a streaming session.

NMEA sentences are opaque and passed through unchanged; attitude records are
created per magnetometer sample and serialized by the multiplexer.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

Vector = Tuple[float, float, float]

ZERO_VECTOR: Vector = (0.0, 0.0, 0.0)

# Sampling periods in microseconds, matching the platform's named delays.
SAMPLING_PRESETS = {
    "fastest": 0,
    "game": 20000,
    "ui": 66667,
    "normal": 200000,
}


@dataclass(frozen=True)
class NmeaSentence:
    """NMEA sentence as produced by the location provider."""

    message: str
    timestamp_ms: int


@dataclass(frozen=True)
class FusedAttitudeRecord:
    """
    Attitude derived from the latest accelerometer, gyroscope and
    magnetometer samples.

    heading is always set; yaw/pitch/roll are None when the rotation matrix
    could not be built (free fall, accel parallel to the magnetic field).
    All angles in degrees.
    """

    timestamp: float
    acc: Vector
    gyro: Vector
    mag: Vector
    heading: float
    yaw: Optional[float] = None
    pitch: Optional[float] = None
    roll: Optional[float] = None

    @property
    def has_orientation(self) -> bool:
        return self.yaw is not None


ProtocolMessage = Union[NmeaSentence, FusedAttitudeRecord]


@dataclass(frozen=True)
class ConnectionTarget:
    """Resolved server endpoint; fixed for the lifetime of a session."""

    address: str
    port: int

    def __str__(self) -> str:
        if ":" in self.address:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"


@dataclass(frozen=True)
class SamplingConfig:
    """
    Motion sensor sampling period in microseconds.

    period_us None (or negative) means attitude is disabled: motion sensors
    are not subscribed at all.
    """

    period_us: Optional[int] = SAMPLING_PRESETS["normal"]

    @property
    def enabled(self) -> bool:
        return self.period_us is not None and self.period_us >= 0

    @classmethod
    def disabled(cls) -> "SamplingConfig":
        return cls(period_us=None)

    @classmethod
    def from_period(cls, period_us: Optional[int]) -> "SamplingConfig":
        """Negative or None period means disabled."""
        if period_us is None or period_us < 0:
            return cls.disabled()
        return cls(period_us=int(period_us))

    @classmethod
    def parse(cls, text: str) -> "SamplingConfig":
        """
        Parse "disabled", a preset name (fastest, game, ui, normal) or an
        integer period in microseconds. Raises ValueError otherwise.
        """
        value = text.strip().lower()
        if value in ("disabled", "off", "none"):
            return cls.disabled()
        if value in SAMPLING_PRESETS:
            return cls(period_us=SAMPLING_PRESETS[value])
        try:
            return cls.from_period(int(value))
        except ValueError:
            raise ValueError(f"invalid sampling period: {text!r}") from None
