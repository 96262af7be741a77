"""
Error taxonomy for a streaming session.

Every ForwarderError is terminal for the session that raised it; the caller
has to start a new session. DegradedModeWarning marks a non-fatal feature
loss and is reported through the logging sink, never raised.
"""


class ForwarderError(Exception):
    """Base class for session-fatal errors."""


class LocationPermissionError(ForwarderError, PermissionError):
    """No permission to access the location provider."""


class NoProviderError(ForwarderError):
    """Device has no GPS location provider."""


class UnresolvedHostError(ForwarderError):
    """Server address could not be resolved."""


class ConnectError(ForwarderError):
    """TCP connection to the server failed."""


class WriteError(ForwarderError):
    """Writing to an established connection failed (e.g. peer reset)."""


class DegradedModeWarning(UserWarning):
    """A feature was lost but the session continues."""
