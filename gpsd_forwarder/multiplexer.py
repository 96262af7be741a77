"""
Merge NMEA sentences and attitude records into one line stream.

NMEA text is passed through verbatim. Attitude records are serialized to a
gpsd "ATT" JSON object here and nowhere else. Lines are handed downstream in
arrival order; a lock makes "arrival" a single point so that two sources
calling in concurrently cannot interleave inside the emit.
"""

import json
import logging
import threading
from typing import Callable, Optional

from gpsd_forwarder.logging_sink import LoggingSink
from gpsd_forwarder.messages import FusedAttitudeRecord, NmeaSentence

logger = logging.getLogger(__name__)

ATT_CLASS = "ATT"
ATT_DEVICE = "ANDROID"


def attitude_to_json(record: FusedAttitudeRecord) -> str:
    """
    Serialize a record as compact gpsd ATT JSON.

    yaw/pitch/roll are present only when fusion produced them. Raises
    ValueError for non-finite values, which are not valid JSON.
    """
    obj = {
        "class": ATT_CLASS,
        "device": ATT_DEVICE,
        "time": record.timestamp,
        "timeTag": record.timestamp,
        "acc_x": record.acc[0],
        "acc_y": record.acc[1],
        "acc_z": record.acc[2],
        "gyro_x": record.gyro[0],
        "gyro_y": record.gyro[1],
        "gyro_z": record.gyro[2],
        "mag_x": record.mag[0],
        "mag_y": record.mag[1],
        "mag_z": record.mag[2],
        "heading": record.heading,
    }
    if record.has_orientation:
        obj["yaw"] = record.yaw
        obj["pitch"] = record.pitch
        obj["roll"] = record.roll
    return json.dumps(obj, separators=(",", ":"), allow_nan=False)


class MessageMultiplexer:
    """
    Single ordered output for both event sources.

    emit is called with one text line per message (no trailing newline
    added); it must not block for long, since it runs on the thread that
    delivered the event.
    """

    def __init__(
        self,
        emit: Callable[[str], object],
        sink: Optional[LoggingSink] = None,
    ) -> None:
        self._emit = emit
        self._sink = sink
        self._lock = threading.Lock()

    def on_nmea(self, sentence: NmeaSentence) -> None:
        if not sentence.message:
            return
        with self._lock:
            self._emit(sentence.message)

    def on_attitude(self, record: FusedAttitudeRecord) -> None:
        try:
            line = attitude_to_json(record)
        except ValueError as e:
            logger.debug("ATT serialization failed: %s", e)
            if self._sink:
                self._sink.log(f"Failed to send IMU data: {e}")
            return
        with self._lock:
            self._emit(line)
