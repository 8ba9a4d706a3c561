"""
Error taxonomy shared by the signaling core, the media engine and the CLI.
"""

from __future__ import annotations


class CliveError(RuntimeError):
    """Base class for clive errors."""


class ConfigError(CliveError):
    """Raised when configuration files, profiles or values are invalid."""


class TransportError(CliveError):
    """Raised when the signaling connection cannot be opened or dies abruptly."""


class DecodeError(CliveError):
    """Raised when an inbound frame cannot be turned into a signaling message."""


class UnknownType(DecodeError):
    """The envelope carried a ``type`` this client does not understand."""

    def __init__(self, message_type: str) -> None:
        super().__init__(f"unknown message type '{message_type}'")
        self.message_type = message_type


class MalformedPayload(DecodeError):
    """The envelope is not valid JSON or a known type is missing fields."""


class ProtocolViolation(CliveError):
    """A well formed message arrived that the current state or role cannot accept."""


class NegotiationError(CliveError):
    """The negotiation engine could not create or apply a session description."""


class EngineUnavailableError(NegotiationError):
    """Raised when the media runtime (GStreamer/PyGObject) is not installed."""


class ProcessError(CliveError):
    """Raised when a supervised relay or client process cannot be started or stopped."""
