"""
Exception hierarchy for the MQTT-HTTP bridge.

Session-level failures (TransportError, AuthError) are absorbed by the
connection supervisor. Command-path failures (InvalidInput, PublishError)
are raised straight to the HTTP caller.
"""


class BridgeError(Exception):
    """Base class for all bridge errors"""


class ConfigError(BridgeError):
    """Invalid configuration supplied at startup"""


class TransportError(BridgeError):
    """Network or TLS failure talking to the broker"""


class AuthError(TransportError):
    """Broker rejected the credentials"""


class DecodeError(BridgeError):
    """Telemetry payload could not be decoded"""


class InvalidInput(BridgeError):
    """Caller supplied an invalid command"""


class PublishError(BridgeError):
    """Publish could not be confirmed by the broker"""


class SessionClosingError(PublishError):
    """Publish raced a shutdown of the broker session"""
