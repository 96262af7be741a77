"""
Location provider backed by a local gpsd.

Fix mode and satellite count come from gpsd-py3 polling; NMEA sentences come
from a separate gpsd connection in raw NMEA watch mode and are delivered
through the message-listener mechanism.
"""

import logging
import socket
import threading
import time
from typing import Callable, List, Optional

import gpsd  # type: ignore[import-untyped]

from gpsd_forwarder.sources.base import (
    AVAILABLE,
    GPS_PROVIDER,
    OUT_OF_SERVICE,
    TEMPORARILY_UNAVAILABLE,
    LocationAccessDenied,
    LocationListener,
    LocationManager,
    NmeaMessageCallback,
    ProviderUnavailable,
)

logger = logging.getLogger(__name__)

NMEA_WATCH = '?WATCH={"enable":true,"nmea":true};\n'


def fix_status(mode: int) -> int:
    """Provider status for a gpsd fix mode (0/1 = no fix, 2 = 2D, 3 = 3D)."""
    return AVAILABLE if mode >= 2 else TEMPORARILY_UNAVAILABLE


class GpsdLocationManager(LocationManager):
    """
    LocationManager talking to gpsd.

    A status thread polls gpsd every poll_interval_s seconds and reports
    status transitions to the registered listener.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 2947,
        poll_interval_s: float = 1.0,
        connect: Callable[..., socket.socket] = socket.create_connection,
    ) -> None:
        self._host = host
        self._port = port
        self._poll_interval_s = poll_interval_s
        self._connect = connect
        self._listener: Optional[LocationListener] = None
        self._status_stop = threading.Event()
        self._status_thread: Optional[threading.Thread] = None
        self._nmea_callbacks: List[NmeaMessageCallback] = []
        self._nmea_lock = threading.Lock()
        self._nmea_sock: Optional[socket.socket] = None
        self._nmea_thread: Optional[threading.Thread] = None

    def request_location_updates(
        self, provider: str, listener: LocationListener
    ) -> None:
        if provider != GPS_PROVIDER:
            raise ProviderUnavailable(f"unknown provider {provider!r}")
        try:
            gpsd.connect(host=self._host, port=self._port)
        except PermissionError as e:
            raise LocationAccessDenied(str(e)) from e
        except OSError as e:
            raise ProviderUnavailable(
                f"gpsd not reachable at {self._host}:{self._port}: {e}"
            ) from e
        self._listener = listener
        self._status_stop.clear()
        self._status_thread = threading.Thread(
            target=self._status_loop, name="gpsd-status", daemon=True
        )
        self._status_thread.start()
        listener.on_provider_enabled(provider)

    def remove_updates(self, listener: LocationListener) -> None:
        if listener is not self._listener:
            return
        self._listener = None
        self._status_stop.set()
        thread, self._status_thread = self._status_thread, None
        if thread and thread is not threading.current_thread():
            thread.join(timeout=2.0)

    def _status_loop(self) -> None:
        last_status: Optional[int] = None
        while not self._status_stop.wait(self._poll_interval_s):
            listener = self._listener
            if listener is None:
                return
            extras = {}
            try:
                packet = gpsd.get_current()
                status = fix_status(packet.mode)
                extras["satellites"] = packet.sats
            except Exception as e:
                # gpsd-py3 raises bare Exception on unexpected replies.
                logger.debug("gpsd poll failed: %s", e)
                status = OUT_OF_SERVICE
                packet = None
            if status != last_status:
                listener.on_status_changed(GPS_PROVIDER, status, extras)
                last_status = status
            if packet is not None and status == AVAILABLE:
                listener.on_location_changed(packet)

    def add_nmea_message_listener(self, callback: NmeaMessageCallback) -> None:
        """Start raw NMEA watch on first listener. Raises OSError."""
        with self._nmea_lock:
            self._nmea_callbacks.append(callback)
            if self._nmea_sock is not None:
                return
            try:
                sock = self._connect((self._host, self._port))
                sock.sendall(NMEA_WATCH.encode("ascii"))
            except OSError:
                self._nmea_callbacks.remove(callback)
                raise
            self._nmea_sock = sock
            self._nmea_thread = threading.Thread(
                target=self._nmea_loop, args=(sock,), name="gpsd-nmea", daemon=True
            )
            self._nmea_thread.start()

    def remove_nmea_message_listener(self, callback: NmeaMessageCallback) -> None:
        with self._nmea_lock:
            if callback in self._nmea_callbacks:
                self._nmea_callbacks.remove(callback)
            if self._nmea_callbacks:
                return
            sock, self._nmea_sock = self._nmea_sock, None
            thread, self._nmea_thread = self._nmea_thread, None
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
        if thread and thread is not threading.current_thread():
            thread.join(timeout=2.0)

    def _nmea_loop(self, sock: socket.socket) -> None:
        try:
            with sock.makefile(mode="r", encoding="ascii", errors="replace") as f:
                for line in f:
                    line = line.rstrip("\r\n")
                    # gpsd interleaves its own JSON reports; NMEA starts with $ or !
                    if not line.startswith(("$", "!")):
                        continue
                    timestamp_ms = int(time.time() * 1000)
                    with self._nmea_lock:
                        callbacks = list(self._nmea_callbacks)
                    for callback in callbacks:
                        callback(line, timestamp_ms)
        except (OSError, ValueError) as e:
            logger.debug("gpsd NMEA stream ended: %s", e)
