"""
Attitude fusion from a single accelerometer + magnetometer sample.

Heading comes straight from the horizontal magnetometer components. Yaw,
pitch and roll come from a rotation matrix built from the gravity and
geomagnetic vectors (east = mag x gravity, north = gravity x east), read out
as azimuth/pitch/roll. Gyroscope data is passed through untouched; nothing
is integrated over time.
"""

import logging
import math
import time
from typing import Optional, Tuple

import numpy as np

from gpsd_forwarder.messages import FusedAttitudeRecord, Vector

logger = logging.getLogger(__name__)

STANDARD_GRAVITY = 9.80665
# Below 10% of g the device is treated as falling and gravity is unusable.
FREE_FALL_GRAVITY_SQUARED = 0.01 * STANDARD_GRAVITY * STANDARD_GRAVITY
# Minimum |mag x gravity|; smaller means the field is (nearly) vertical.
MIN_EAST_NORM = 0.1


def _wrap_degrees(angle: float) -> float:
    """Map an angle in degrees onto (-180, 180]."""
    wrapped = math.fmod(angle, 360.0)
    if wrapped <= -180.0:
        wrapped += 360.0
    elif wrapped > 180.0:
        wrapped -= 360.0
    return wrapped


def compute_heading(mag: Vector) -> float:
    """Heading in degrees, (-180, 180], from atan2(mag_y, mag_x)."""
    return _wrap_degrees(math.degrees(math.atan2(mag[1], mag[0])))


def rotation_matrix(accel: Vector, mag: Vector) -> Optional[np.ndarray]:
    """
    Build the 3x3 device-to-world rotation matrix (rows: east, north, up).

    Returns None when the vectors are degenerate: non-finite input, free
    fall, or a magnetic field parallel to gravity.
    """
    a = np.asarray(accel, dtype=float)
    e = np.asarray(mag, dtype=float)
    if not (np.all(np.isfinite(a)) and np.all(np.isfinite(e))):
        return None
    norm_a_sq = float(a @ a)
    if norm_a_sq < FREE_FALL_GRAVITY_SQUARED:
        return None
    east = np.cross(e, a)
    norm_east = float(np.linalg.norm(east))
    if not norm_east >= MIN_EAST_NORM:
        return None
    east /= norm_east
    up = a / math.sqrt(norm_a_sq)
    north = np.cross(up, east)
    return np.vstack((east, north, up))


def orientation_angles(matrix: np.ndarray) -> Tuple[float, float, float]:
    """(yaw, pitch, roll) in degrees, each in (-180, 180]."""
    yaw = math.atan2(matrix[0, 1], matrix[1, 1])
    pitch = math.asin(max(-1.0, min(1.0, -float(matrix[2, 1]))))
    roll = math.atan2(-matrix[2, 0], matrix[2, 2])
    return (
        _wrap_degrees(math.degrees(yaw)),
        _wrap_degrees(math.degrees(pitch)),
        _wrap_degrees(math.degrees(roll)),
    )


def fuse(
    accel: Vector,
    gyro: Vector,
    mag: Vector,
    timestamp: Optional[float] = None,
) -> FusedAttitudeRecord:
    """
    Fuse the latest three samples into one attitude record.

    Stateless: the result depends only on the arguments. Missing samples
    should be passed as zero vectors; with a zero accelerometer the record
    carries heading only.
    """
    if timestamp is None:
        timestamp = time.time()
    heading = compute_heading(mag)
    matrix = rotation_matrix(accel, mag)
    if matrix is None:
        logger.debug("Rotation matrix unavailable for accel=%s mag=%s", accel, mag)
        return FusedAttitudeRecord(
            timestamp=timestamp, acc=accel, gyro=gyro, mag=mag, heading=heading
        )
    yaw, pitch, roll = orientation_angles(matrix)
    return FusedAttitudeRecord(
        timestamp=timestamp,
        acc=accel,
        gyro=gyro,
        mag=mag,
        heading=heading,
        yaw=yaw,
        pitch=pitch,
        roll=roll,
    )
