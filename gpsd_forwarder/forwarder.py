"""
TCP client that streams protocol lines to a gpsd server.

State machine: IDLE -> CONNECTING -> STREAMING -> CLOSED, with
CONNECTING -> FAILED on connect error and STREAMING -> FAILED on write error.
FAILED and CLOSED are terminal; there is no reconnect.
"""

import enum
import logging
import queue
import socket
import threading
from typing import Callable, Optional, Tuple

from gpsd_forwarder.errors import ConnectError, ForwarderError, WriteError
from gpsd_forwarder.logging_sink import LoggingSink
from gpsd_forwarder.messages import ConnectionTarget

logger = logging.getLogger(__name__)

_STOP = object()


class ForwarderState(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"
    FAILED = "failed"


TERMINAL_STATES = (ForwarderState.CLOSED, ForwarderState.FAILED)


class StreamForwarder:
    """
    Owns the outbound connection.

    Thread-safe: call send() from any thread. Lines are queued and written
    by a dedicated worker thread, so send() never blocks on the network.
    Lines accepted while connecting are written once the connection is up.
    """

    def __init__(
        self,
        sink: Optional[LoggingSink] = None,
        on_failure: Optional[Callable[[ForwarderError], None]] = None,
        connect: Callable[[Tuple[str, int]], socket.socket] = socket.create_connection,
    ) -> None:
        self._sink = sink
        self._on_failure = on_failure
        self._connect = connect
        self._lock = threading.Lock()
        self._state = ForwarderState.IDLE
        self._queue: "queue.SimpleQueue[object]" = queue.SimpleQueue()
        self._sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._target: Optional[ConnectionTarget] = None
        self._failure: Optional[ForwarderError] = None

    @property
    def state(self) -> ForwarderState:
        return self._state

    @property
    def failure(self) -> Optional[ForwarderError]:
        """The error that moved the forwarder to FAILED, if any."""
        return self._failure

    def start(self, target: ConnectionTarget) -> None:
        """Begin connecting to an already-resolved address."""
        with self._lock:
            if self._state is not ForwarderState.IDLE:
                raise RuntimeError(f"forwarder cannot start from {self._state.value}")
            self._state = ForwarderState.CONNECTING
            self._target = target
            self._thread = threading.Thread(
                target=self._run, name="stream-forwarder", daemon=True
            )
            self._thread.start()

    def send(self, line: str) -> bool:
        """
        Queue one line for sending. A newline is appended if missing.

        Returns False (and drops the line) once stopped or failed.
        """
        with self._lock:
            if self._state not in (ForwarderState.CONNECTING, ForwarderState.STREAMING):
                return False
            self._queue.put(line)
            return True

    def stop(self) -> None:
        """
        Close the connection. Safe from any state and from any thread.

        A pending connect is abandoned: if it completes later, the socket is
        closed and nothing is sent. A FAILED forwarder stays FAILED.
        """
        with self._lock:
            streaming = self._state is ForwarderState.STREAMING
            if self._state is not ForwarderState.FAILED:
                self._state = ForwarderState.CLOSED
            sock, self._sock = self._sock, None
            thread = self._thread
        self._queue.put(_STOP)
        _close(sock)
        # A blocked connect is left to finish on its own.
        if streaming and thread and thread is not threading.current_thread():
            thread.join(timeout=2.0)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker to exit; return True if it has."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _run(self) -> None:
        target = self._target
        assert target is not None
        try:
            sock = self._connect((target.address, target.port))
        except OSError as e:
            self._fail(ConnectError(f"Failed to connect to {target}: {e}"))
            return
        with self._lock:
            if self._state is not ForwarderState.CONNECTING:
                logger.debug("Connect to %s finished after stop; discarding", target)
                _close(sock)
                return
            self._sock = sock
            self._state = ForwarderState.STREAMING
        logger.info("Connected to %s", target)

        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            line = str(item)
            if not line.endswith("\n"):
                line += "\n"
            try:
                sock.sendall(line.encode("utf-8"))
            except OSError as e:
                self._fail(WriteError(f"Connection to {target} lost: {e}"))
                break

    def _fail(self, error: ForwarderError) -> None:
        """Move to FAILED and report once. Ignored after stop()."""
        with self._lock:
            if self._state in TERMINAL_STATES:
                logger.debug("Ignoring error after stop: %s", error)
                return
            self._state = ForwarderState.FAILED
            self._failure = error
            sock, self._sock = self._sock, None
        _close(sock)
        logger.error("%s", error)
        if self._sink:
            self._sink.log(str(error))
        if self._on_failure:
            self._on_failure(error)


def _close(sock: Optional[socket.socket]) -> None:
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    try:
        sock.close()
    except OSError:
        pass
