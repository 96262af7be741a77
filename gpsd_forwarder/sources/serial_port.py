"""
Location provider reading NMEA from a serial GPS receiver (pyserial).

Only the legacy NMEA listener mechanism is offered: callbacks receive
(timestamp_ms, message).
"""

import errno
import logging
import threading
import time
from typing import List, Optional

import serial

from gpsd_forwarder.sources.base import (
    GPS_PROVIDER,
    LegacyNmeaCallback,
    LocationAccessDenied,
    LocationListener,
    LocationManager,
    ProviderUnavailable,
)

logger = logging.getLogger(__name__)


class SerialLocationManager(LocationManager):
    """LocationManager for a GPS receiver on a serial device."""

    def __init__(
        self, device: str, baudrate: int = 9600, read_timeout_s: float = 1.0
    ) -> None:
        self._device = device
        self._baudrate = baudrate
        self._read_timeout_s = read_timeout_s
        self._port: Optional[serial.Serial] = None
        self._listener: Optional[LocationListener] = None
        self._callbacks: List[LegacyNmeaCallback] = []
        self._lock = threading.Lock()
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def request_location_updates(
        self, provider: str, listener: LocationListener
    ) -> None:
        if provider != GPS_PROVIDER:
            raise ProviderUnavailable(f"unknown provider {provider!r}")
        try:
            port = serial.Serial(
                self._device, self._baudrate, timeout=self._read_timeout_s
            )
        except serial.SerialException as e:
            if e.errno == errno.EACCES:
                raise LocationAccessDenied(str(e)) from e
            raise ProviderUnavailable(str(e)) from e
        self._port = port
        self._listener = listener
        self._running = True
        self._thread = threading.Thread(
            target=self._read_loop, args=(port,), name="serial-nmea", daemon=True
        )
        self._thread.start()
        logger.info("Reading NMEA from %s at %d baud", self._device, self._baudrate)
        listener.on_provider_enabled(provider)

    def remove_updates(self, listener: LocationListener) -> None:
        if listener is not self._listener:
            return
        self._listener = None
        self._running = False
        port, self._port = self._port, None
        if port is not None:
            port.close()
        thread, self._thread = self._thread, None
        if thread and thread is not threading.current_thread():
            thread.join(timeout=2.0)

    def add_nmea_listener(self, callback: LegacyNmeaCallback) -> None:
        with self._lock:
            self._callbacks.append(callback)

    def remove_nmea_listener(self, callback: LegacyNmeaCallback) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def _read_loop(self, port: serial.Serial) -> None:
        while self._running:
            try:
                raw = port.readline()
            except (serial.SerialException, OSError, TypeError) as e:
                # pyserial raises TypeError when the port is closed mid-read.
                if self._running:
                    logger.warning("Serial GPS read failed: %s", e)
                    listener = self._listener
                    if listener is not None:
                        listener.on_provider_disabled(GPS_PROVIDER)
                return
            if not raw:
                continue
            line = raw.decode("ascii", errors="replace").rstrip("\r\n")
            if not line.startswith("$"):
                continue
            timestamp_ms = int(time.time() * 1000)
            with self._lock:
                callbacks = list(self._callbacks)
            for callback in callbacks:
                callback(timestamp_ms, line)
