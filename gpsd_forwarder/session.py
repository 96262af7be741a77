"""
Streaming session: resolve the server, connect, subscribe, stream, stop.

Resolution and adapter start run on a single worker thread so the caller
(typically a UI) never blocks on the network. Every failure is terminal;
a new session is needed to try again.
"""

import enum
import logging
import socket
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional

from gpsd_forwarder.errors import (
    ForwarderError,
    LocationPermissionError,
    NoProviderError,
    UnresolvedHostError,
)
from gpsd_forwarder.forwarder import StreamForwarder
from gpsd_forwarder.logging_sink import LoggingSink
from gpsd_forwarder.messages import ConnectionTarget, SamplingConfig
from gpsd_forwarder.multiplexer import MessageMultiplexer
from gpsd_forwarder.sources.adapter import Capabilities, EventSourceAdapter
from gpsd_forwarder.sources.base import LocationManager, SensorManager

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"
    STOPPED = "stopped"


def resolve_host(host: str) -> str:
    """First stream address for host, IPv4 or IPv6. Raises socket.gaierror."""
    return socket.getaddrinfo(host, None, type=socket.SOCK_STREAM)[0][4][0]


def validate_port(port: int) -> int:
    port = int(port)
    if not 1 <= port <= 65535:
        raise ValueError(f"port out of range 1-65535: {port}")
    return port


class StreamingSession:
    """
    One start/stop cycle of streaming to a gpsd server.

    start() returns immediately with a Future that resolves to the
    adapter's Capabilities, or raises the ForwarderError that ended the
    session. The error has already been reported through the sink.
    """

    def __init__(
        self,
        location_manager: LocationManager,
        sensor_manager: SensorManager,
        sink: LoggingSink,
        resolve: Callable[[str], str] = resolve_host,
        forwarder_factory: Callable[..., StreamForwarder] = StreamForwarder,
    ) -> None:
        self._adapter = EventSourceAdapter(location_manager, sensor_manager)
        self._sink = sink
        self._resolve = resolve
        self._forwarder_factory = forwarder_factory
        self._lock = threading.Lock()
        self._state = SessionState.IDLE
        self._error: Optional[ForwarderError] = None
        self._forwarder: Optional[StreamForwarder] = None
        self._future: Optional[Future] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="session")

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def error(self) -> Optional[ForwarderError]:
        return self._error

    @property
    def forwarder(self) -> Optional[StreamForwarder]:
        return self._forwarder

    @property
    def adapter(self) -> EventSourceAdapter:
        return self._adapter

    def start(
        self,
        server_address: str,
        server_port: int,
        sampling: Optional[SamplingConfig] = None,
    ) -> "Future[Capabilities]":
        port = validate_port(server_port)
        if sampling is None:
            sampling = SamplingConfig()
        with self._lock:
            if self._state is not SessionState.IDLE:
                raise RuntimeError(f"session cannot start from {self._state.value}")
            self._state = SessionState.STARTING
            self._future = self._executor.submit(
                self._start, server_address, port, sampling
            )
            return self._future

    def _start(
        self, server_address: str, port: int, sampling: SamplingConfig
    ) -> Capabilities:
        try:
            address = self._resolve(server_address)
        except (OSError, UnicodeError) as e:
            logger.debug("Resolve %s failed: %s", server_address, e)
            error = UnresolvedHostError(f"Can't resolve {server_address}")
            self._fail(error)
            raise error from e

        target = ConnectionTarget(address, port)
        with self._lock:
            if self._state is not SessionState.STARTING:
                logger.debug("Session stopped while resolving; discarding %s", target)
                raise RuntimeError("session stopped")
            forwarder = self._forwarder_factory(
                sink=self._sink, on_failure=self._on_forwarder_failure
            )
            self._forwarder = forwarder

        self._sink.log(f"Streaming to {target}")
        forwarder.start(target)
        multiplexer = MessageMultiplexer(forwarder.send, self._sink)
        try:
            capabilities = self._adapter.start(multiplexer, sampling, self._sink)
        except (NoProviderError, LocationPermissionError) as e:
            forwarder.stop()
            if not self._fail(e) and self._state is SessionState.FAILED:
                # Already failed on the connection; report this one as well.
                logger.error("%s", e)
                self._sink.log(str(e))
            raise

        with self._lock:
            if self._state is SessionState.STARTING:
                self._state = SessionState.RUNNING
                return capabilities
        # Stopped or failed while the adapter was starting.
        self._adapter.stop()
        if self._error is not None:
            raise self._error
        raise RuntimeError("session stopped")

    def set_sampling_config(self, sampling: SamplingConfig) -> None:
        self._adapter.set_sampling_config(sampling)

    def stop(self) -> None:
        """
        End the session. Idempotent; safe while starting.

        A pending resolve or connect is abandoned and its result discarded.
        """
        with self._lock:
            if self._state is not SessionState.FAILED:
                self._state = SessionState.STOPPED
            forwarder = self._forwarder
            future = self._future
        if future is not None:
            future.cancel()
        self._adapter.stop()
        if forwarder is not None:
            forwarder.stop()
        self._executor.shutdown(wait=False)

    def wait(self, timeout: Optional[float] = None) -> SessionState:
        """Block until start() has finished (or timeout); return the state."""
        future = self._future
        if future is not None:
            try:
                future.exception(timeout=timeout)
            except (CancelledError, FutureTimeoutError):
                pass
        return self._state

    def _fail(self, error: ForwarderError, report: bool = True) -> bool:
        """Move to FAILED; False if the session had already ended."""
        with self._lock:
            if self._state in (SessionState.FAILED, SessionState.STOPPED):
                return False
            self._state = SessionState.FAILED
            self._error = error
        logger.error("%s", error)
        if report:
            self._sink.log(str(error))
        return True

    def _on_forwarder_failure(self, error: ForwarderError) -> None:
        # The forwarder has already reported the error through the sink.
        self._fail(error, report=False)
        self._adapter.stop()
