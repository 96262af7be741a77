"""
Unit tests for NMEA mechanism selection and the two strategies.
"""

import pytest

from gpsd_forwarder.messages import NmeaSentence
from gpsd_forwarder.sources.nmea import (
    LegacyListenerSubscription,
    MessageListenerSubscription,
    NmeaSubscriptionError,
    select_nmea_subscription,
)
from tests.fakes import BareLocationManager, FakeLocationManager, LegacyLocationManager


class BothLocationManager(FakeLocationManager):
    def add_nmea_listener(self, callback) -> None:
        raise AssertionError("legacy mechanism must not be used")


class FailingLocationManager(FakeLocationManager):
    def add_nmea_message_listener(self, callback) -> None:
        raise ConnectionRefusedError("gpsd down")


class TestSelection:
    """Capability check picks one mechanism."""

    def test_message_listener(self) -> None:
        sub = select_nmea_subscription(FakeLocationManager())
        assert isinstance(sub, MessageListenerSubscription)

    def test_legacy(self) -> None:
        sub = select_nmea_subscription(LegacyLocationManager())
        assert isinstance(sub, LegacyListenerSubscription)

    def test_prefers_message_listener(self) -> None:
        sub = select_nmea_subscription(BothLocationManager())
        assert isinstance(sub, MessageListenerSubscription)

    def test_none_available(self) -> None:
        assert select_nmea_subscription(BareLocationManager()) is None


class TestStrategies:
    """Callbacks are normalized to NmeaSentence."""

    def test_message_listener_roundtrip(self) -> None:
        manager = FakeLocationManager()
        received = []
        sub = MessageListenerSubscription(manager)
        sub.subscribe(received.append)
        manager.emit_nmea("$GPGSV*1A", 5)
        sub.unsubscribe()
        manager.emit_nmea("$GPGSV*1B", 6)
        assert received == [NmeaSentence("$GPGSV*1A", 5)]

    def test_legacy_argument_order(self) -> None:
        manager = LegacyLocationManager()
        received = []
        sub = LegacyListenerSubscription(manager)
        sub.subscribe(received.append)
        manager.emit_nmea("$GPGLL*20", 7)
        assert received == [NmeaSentence("$GPGLL*20", 7)]
        sub.unsubscribe()
        assert manager.nmea_callbacks == []

    def test_unsubscribe_without_subscribe(self) -> None:
        LegacyListenerSubscription(BareLocationManager()).unsubscribe()
        MessageListenerSubscription(FakeLocationManager()).unsubscribe()

    def test_legacy_missing_method(self) -> None:
        sub = LegacyListenerSubscription(BareLocationManager())
        with pytest.raises(NmeaSubscriptionError):
            sub.subscribe(lambda sentence: None)

    def test_message_listener_os_error_wrapped(self) -> None:
        sub = MessageListenerSubscription(FailingLocationManager())
        with pytest.raises(NmeaSubscriptionError):
            sub.subscribe(lambda sentence: None)
