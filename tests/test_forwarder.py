"""
Unit tests for the stream forwarder: state machine, streaming, failures.
Uses real loopback sockets.
"""

import socket
import threading
import time

import pytest

from gpsd_forwarder.errors import ConnectError, WriteError
from gpsd_forwarder.forwarder import ForwarderState, StreamForwarder
from gpsd_forwarder.messages import ConnectionTarget


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _closed_port() -> int:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


class TestForwarderLifecycle:
    """States without a server."""

    def test_initial_state_idle(self) -> None:
        assert StreamForwarder().state is ForwarderState.IDLE

    def test_stop_from_idle(self) -> None:
        forwarder = StreamForwarder()
        forwarder.stop()
        assert forwarder.state is ForwarderState.CLOSED

    def test_stop_twice(self) -> None:
        forwarder = StreamForwarder()
        forwarder.stop()
        forwarder.stop()
        assert forwarder.state is ForwarderState.CLOSED

    def test_send_before_start_rejected(self) -> None:
        assert StreamForwarder().send("$GPGGA*00") is False

    def test_send_after_stop_rejected(self) -> None:
        forwarder = StreamForwarder()
        forwarder.stop()
        assert forwarder.send("$GPGGA*00") is False
        assert forwarder.state is ForwarderState.CLOSED

    def test_cannot_restart(self) -> None:
        forwarder = StreamForwarder()
        forwarder.stop()
        with pytest.raises(RuntimeError):
            forwarder.start(ConnectionTarget("127.0.0.1", 1))


class TestForwarderStreaming:
    """Lines reach the server in order, one per message."""

    def test_lines_sent_in_order(self, line_server, sink) -> None:
        forwarder = StreamForwarder(sink=sink)
        forwarder.start(ConnectionTarget("127.0.0.1", line_server.port))
        for i in range(5):
            assert forwarder.send(f"$GPTXT,{i}*00")
        lines = [line_server.read_line() for _ in range(5)]
        assert lines == [f"$GPTXT,{i}*00\n".encode() for i in range(5)]
        assert forwarder.state is ForwarderState.STREAMING
        forwarder.stop()
        assert forwarder.state is ForwarderState.CLOSED
        assert sink.messages == []

    def test_existing_newline_not_doubled(self, line_server) -> None:
        forwarder = StreamForwarder()
        forwarder.start(ConnectionTarget("127.0.0.1", line_server.port))
        forwarder.send("$GPGGA*47\n")
        forwarder.send("$GPRMC*11")
        assert line_server.read_line() == b"$GPGGA*47\n"
        assert line_server.read_line() == b"$GPRMC*11\n"
        forwarder.stop()

    def test_nothing_sent_after_stop(self, line_server) -> None:
        forwarder = StreamForwarder()
        forwarder.start(ConnectionTarget("127.0.0.1", line_server.port))
        forwarder.send("first")
        assert line_server.read_line() == b"first\n"
        forwarder.stop()
        assert forwarder.send("second") is False
        assert line_server.read_line() == b""


class TestForwarderFailures:
    """Connect and write errors are terminal and reported once."""

    def test_connect_refused(self, sink) -> None:
        failures = []
        forwarder = StreamForwarder(sink=sink, on_failure=failures.append)
        forwarder.start(ConnectionTarget("127.0.0.1", _closed_port()))
        assert forwarder.join(timeout=5.0)
        assert forwarder.state is ForwarderState.FAILED
        assert isinstance(forwarder.failure, ConnectError)
        assert len(sink.messages) == 1
        assert failures == [forwarder.failure]
        assert forwarder.send("late") is False

    def test_peer_close_fails_once_without_reconnect(self, line_server, sink) -> None:
        failures = []
        forwarder = StreamForwarder(sink=sink, on_failure=failures.append)
        forwarder.start(ConnectionTarget("127.0.0.1", line_server.port))
        conn = line_server.accept()
        conn.close()

        def failed() -> bool:
            forwarder.send("$GPGGA*47")
            return forwarder.state is ForwarderState.FAILED

        assert _wait_for(failed)
        assert forwarder.join(timeout=5.0)
        assert isinstance(forwarder.failure, WriteError)
        assert len(sink.messages) == 1
        assert len(failures) == 1

        line_server.sock.settimeout(0.3)
        with pytest.raises(socket.timeout):
            line_server.sock.accept()

        forwarder.stop()
        assert forwarder.state is ForwarderState.FAILED
        assert len(sink.messages) == 1

    def test_stop_while_connecting_discards_connection(self, sink) -> None:
        release = threading.Event()
        client, server = socket.socketpair()

        def slow_connect(address):
            release.wait(5.0)
            return client

        forwarder = StreamForwarder(sink=sink, connect=slow_connect)
        forwarder.start(ConnectionTarget("127.0.0.1", 2947))
        assert forwarder.send("queued") is True
        assert forwarder.state is ForwarderState.CONNECTING
        forwarder.stop()
        assert forwarder.state is ForwarderState.CLOSED
        release.set()
        assert forwarder.join(timeout=5.0)
        assert forwarder.state is ForwarderState.CLOSED
        assert client.fileno() == -1
        server.settimeout(1.0)
        assert server.recv(64) == b""
        server.close()
        assert sink.messages == []
