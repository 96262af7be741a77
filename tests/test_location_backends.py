"""
Unit tests for the gpsd and serial location managers, with gpsd-py3 and
pyserial replaced by mocks.
"""

import errno
import socket
import threading
from unittest.mock import MagicMock, patch

import pytest
import serial

from gpsd_forwarder.sources.base import (
    AVAILABLE,
    GPS_PROVIDER,
    OUT_OF_SERVICE,
    TEMPORARILY_UNAVAILABLE,
    LocationAccessDenied,
    LocationListener,
    ProviderUnavailable,
)
from gpsd_forwarder.sources.gpsd import NMEA_WATCH, GpsdLocationManager, fix_status
from gpsd_forwarder.sources.serial_port import SerialLocationManager


class RecordingListener(LocationListener):
    def __init__(self) -> None:
        self.statuses = []
        self.enabled = []
        self.disabled = []
        self.changed = threading.Event()

    def on_status_changed(self, provider: str, status: int, extras: dict) -> None:
        self.statuses.append((provider, status, extras))
        self.changed.set()

    def on_provider_enabled(self, provider: str) -> None:
        self.enabled.append(provider)

    def on_provider_disabled(self, provider: str) -> None:
        self.disabled.append(provider)
        self.changed.set()


class TestGpsdLocationManager:
    """gpsd-py3 for status, raw watch socket for NMEA."""

    def test_fix_status(self) -> None:
        assert fix_status(0) == TEMPORARILY_UNAVAILABLE
        assert fix_status(1) == TEMPORARILY_UNAVAILABLE
        assert fix_status(2) == AVAILABLE
        assert fix_status(3) == AVAILABLE

    def test_unknown_provider(self) -> None:
        with pytest.raises(ProviderUnavailable):
            GpsdLocationManager().request_location_updates("network", RecordingListener())

    @patch("gpsd_forwarder.sources.gpsd.gpsd")
    def test_connect_refused_is_no_provider(self, mock_gpsd: MagicMock) -> None:
        mock_gpsd.connect.side_effect = ConnectionRefusedError("refused")
        with pytest.raises(ProviderUnavailable):
            GpsdLocationManager().request_location_updates(
                GPS_PROVIDER, RecordingListener()
            )

    @patch("gpsd_forwarder.sources.gpsd.gpsd")
    def test_status_transitions_reported(self, mock_gpsd: MagicMock) -> None:
        mock_gpsd.get_current.return_value = MagicMock(mode=3, sats=7)
        manager = GpsdLocationManager(poll_interval_s=0.01)
        listener = RecordingListener()
        manager.request_location_updates(GPS_PROVIDER, listener)
        assert listener.enabled == [GPS_PROVIDER]
        assert listener.changed.wait(2.0)
        listener.changed.clear()
        mock_gpsd.get_current.side_effect = Exception("Unexpected message")
        assert listener.changed.wait(2.0)
        manager.remove_updates(listener)
        assert listener.statuses[0] == (GPS_PROVIDER, AVAILABLE, {"satellites": 7})
        assert listener.statuses[1] == (GPS_PROVIDER, OUT_OF_SERVICE, {})
        assert len(listener.statuses) == 2

    def test_nmea_watch_delivers_sentences_only(self) -> None:
        client, server = socket.socketpair()
        manager = GpsdLocationManager(connect=lambda address: client)
        received = []
        done = threading.Event()

        def callback(message: str, timestamp_ms: int) -> None:
            received.append(message)
            if len(received) == 2:
                done.set()

        manager.add_nmea_message_listener(callback)
        assert server.recv(1024) == NMEA_WATCH.encode("ascii")
        server.sendall(
            b'{"class":"VERSION","release":"3.25"}\r\n'
            b"$GPGGA,123519,4807.038,N*47\r\n"
            b"!AIVDM,1,1,,A,13u?etPv2;0n:dDPwUM1U1Cb069D,0*24\r\n"
        )
        assert done.wait(2.0)
        manager.remove_nmea_message_listener(callback)
        server.close()
        assert received == [
            "$GPGGA,123519,4807.038,N*47",
            "!AIVDM,1,1,,A,13u?etPv2;0n:dDPwUM1U1Cb069D,0*24",
        ]

    def test_nmea_connect_error_propagates(self) -> None:
        def refuse(address):
            raise ConnectionRefusedError("refused")

        manager = GpsdLocationManager(connect=refuse)
        with pytest.raises(OSError):
            manager.add_nmea_message_listener(lambda message, ts: None)


class FakePort:
    """Stands in for serial.Serial: yields queued lines, then empty reads."""

    def __init__(self, lines) -> None:
        self._lines = list(lines)
        self.closed = False

    def readline(self) -> bytes:
        if self.closed:
            raise serial.SerialException("port closed")
        if self._lines:
            item = self._lines.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        threading.Event().wait(0.01)
        return b""

    def close(self) -> None:
        self.closed = True


class TestSerialLocationManager:
    """pyserial port with the legacy NMEA listener."""

    def test_no_modern_mechanism(self) -> None:
        manager = SerialLocationManager("/dev/ttyACM0")
        assert not hasattr(manager, "add_nmea_message_listener")
        assert callable(manager.add_nmea_listener)

    @patch("gpsd_forwarder.sources.serial_port.serial.Serial")
    def test_permission_denied(self, mock_serial: MagicMock) -> None:
        mock_serial.side_effect = serial.SerialException(errno.EACCES, "denied")
        with pytest.raises(LocationAccessDenied):
            SerialLocationManager("/dev/ttyACM0").request_location_updates(
                GPS_PROVIDER, RecordingListener()
            )

    @patch("gpsd_forwarder.sources.serial_port.serial.Serial")
    def test_missing_device(self, mock_serial: MagicMock) -> None:
        mock_serial.side_effect = serial.SerialException(errno.ENOENT, "no such file")
        with pytest.raises(ProviderUnavailable):
            SerialLocationManager("/dev/ttyACM9").request_location_updates(
                GPS_PROVIDER, RecordingListener()
            )

    @patch("gpsd_forwarder.sources.serial_port.serial.Serial")
    def test_legacy_callbacks_receive_sentences(self, mock_serial: MagicMock) -> None:
        mock_serial.return_value = FakePort(
            [b"$GPRMC,1*11\r\n", b"\xff\xfe noise\r\n", b"$GPGGA,2*47\r\n"]
        )
        manager = SerialLocationManager("/dev/ttyACM0")
        listener = RecordingListener()
        received = []
        done = threading.Event()

        def callback(timestamp_ms: int, message: str) -> None:
            received.append((isinstance(timestamp_ms, int), message))
            if len(received) == 2:
                done.set()

        manager.add_nmea_listener(callback)
        manager.request_location_updates(GPS_PROVIDER, listener)
        assert done.wait(2.0)
        manager.remove_nmea_listener(callback)
        manager.remove_updates(listener)
        assert listener.enabled == [GPS_PROVIDER]
        assert received == [(True, "$GPRMC,1*11"), (True, "$GPGGA,2*47")]
        assert mock_serial.return_value.closed

    @patch("gpsd_forwarder.sources.serial_port.serial.Serial")
    def test_read_failure_disables_provider(self, mock_serial: MagicMock) -> None:
        mock_serial.return_value = FakePort([serial.SerialException("unplugged")])
        manager = SerialLocationManager("/dev/ttyACM0")
        listener = RecordingListener()
        manager.request_location_updates(GPS_PROVIDER, listener)
        assert listener.changed.wait(2.0)
        assert listener.disabled == [GPS_PROVIDER]
        manager.remove_updates(listener)
