"""Relay error taxonomy"""


class RelayError(Exception):
    """Base class for relay errors"""


class ConfigurationError(RelayError):
    """Required configuration is missing; the relay instance cannot start"""


class CredentialError(RelayError):
    """Short-lived speech-service credential could not be obtained"""


class ConnectError(RelayError):
    """Upstream speech socket did not reach the open state"""


class DecodeError(RelayError):
    """A single inbound audio frame is malformed"""


class PersistenceError(RelayError):
    """A durable-store read or write failed"""


class ResolutionError(RelayError):
    """Provider call id never resolved to an internal call id"""

    def __init__(self, call_sid: str, attempts: int):
        super().__init__(f"Call {call_sid} not found after {attempts} attempts")
        self.call_sid = call_sid
        self.attempts = attempts
