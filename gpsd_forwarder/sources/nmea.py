"""
NMEA delivery strategies.

A location manager offers at most one of two mechanisms: the message
listener, called as (message, timestamp_ms), or the older NMEA listener,
called as (timestamp_ms, message) and only reachable by name lookup.
select_nmea_subscription() checks once and returns the matching strategy.
"""

import logging
from typing import Callable, Optional

from gpsd_forwarder.messages import NmeaSentence
from gpsd_forwarder.sources.base import LocationManager

logger = logging.getLogger(__name__)

SentenceCallback = Callable[[NmeaSentence], None]


class NmeaSubscriptionError(Exception):
    """The NMEA mechanism could not be (un)registered."""


class NmeaSubscription:
    """Registers one NMEA callback with a location manager."""

    mechanism = "none"

    def __init__(self, location_manager: LocationManager) -> None:
        self._location_manager = location_manager

    def subscribe(self, callback: SentenceCallback) -> None:
        raise NotImplementedError

    def unsubscribe(self) -> None:
        raise NotImplementedError


class MessageListenerSubscription(NmeaSubscription):
    mechanism = "message-listener"

    def __init__(self, location_manager: LocationManager) -> None:
        super().__init__(location_manager)
        self._listener: Optional[Callable[[str, int], None]] = None

    def subscribe(self, callback: SentenceCallback) -> None:
        def listener(message: str, timestamp_ms: int) -> None:
            callback(NmeaSentence(message, timestamp_ms))

        try:
            self._location_manager.add_nmea_message_listener(listener)  # type: ignore[attr-defined]
        except OSError as e:
            raise NmeaSubscriptionError(f"add_nmea_message_listener failed: {e}") from e
        self._listener = listener

    def unsubscribe(self) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            self._location_manager.remove_nmea_message_listener(listener)  # type: ignore[attr-defined]


class LegacyListenerSubscription(NmeaSubscription):
    """Older mechanism: argument order reversed, methods looked up by name."""

    mechanism = "legacy-listener"

    def __init__(self, location_manager: LocationManager) -> None:
        super().__init__(location_manager)
        self._listener: Optional[Callable[[int, str], None]] = None

    def _method(self, name: str) -> Callable:
        method = getattr(self._location_manager, name, None)
        if not callable(method):
            raise NmeaSubscriptionError(f"{name} is not available")
        return method

    def subscribe(self, callback: SentenceCallback) -> None:
        def listener(timestamp_ms: int, message: str) -> None:
            callback(NmeaSentence(message, timestamp_ms))

        add = self._method("add_nmea_listener")
        try:
            add(listener)
        except (OSError, TypeError) as e:
            raise NmeaSubscriptionError(f"add_nmea_listener failed: {e}") from e
        self._listener = listener

    def unsubscribe(self) -> None:
        listener, self._listener = self._listener, None
        if listener is None:
            return
        remove = self._method("remove_nmea_listener")
        try:
            remove(listener)
        except TypeError as e:
            raise NmeaSubscriptionError(f"remove_nmea_listener failed: {e}") from e


def select_nmea_subscription(
    location_manager: LocationManager,
) -> Optional[NmeaSubscription]:
    """Pick the NMEA mechanism the manager supports, or None."""
    if callable(getattr(location_manager, "add_nmea_message_listener", None)):
        return MessageListenerSubscription(location_manager)
    if callable(getattr(location_manager, "add_nmea_listener", None)):
        return LegacyListenerSubscription(location_manager)
    return None
