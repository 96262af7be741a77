"""
Logging sink: one-way channel for human-readable status text.

The core calls sink.log(message) synchronously from whatever thread it is
running on. Front-ends that need messages on their own thread use
QueueLoggingSink and drain it on their own schedule.
"""

import logging
import queue
from typing import List

logger = logging.getLogger(__name__)


class LoggingSink:
    """Receiver of status and error messages."""

    def log(self, message: str) -> None:
        raise NotImplementedError


class LoggerSink(LoggingSink):
    """Forwards messages to a stdlib logger at INFO level."""

    def __init__(self, target: logging.Logger = logger) -> None:
        self._logger = target

    def log(self, message: str) -> None:
        self._logger.info("%s", message)


class QueueLoggingSink(LoggingSink):
    """
    Thread-safe message channel.

    log() never blocks; drain() returns everything queued so far in order.
    """

    def __init__(self) -> None:
        self._queue: "queue.SimpleQueue[str]" = queue.SimpleQueue()

    def log(self, message: str) -> None:
        self._queue.put(message)

    def get(self, timeout: float) -> str:
        """Block up to timeout seconds for the next message; raises queue.Empty."""
        return self._queue.get(timeout=timeout)

    def drain(self) -> List[str]:
        messages = []
        while True:
            try:
                messages.append(self._queue.get_nowait())
            except queue.Empty:
                return messages
