"""
Exceptions raised by the protocol core.
"""
from __future__ import annotations


class RelayError(Exception):
    """Base class for all relay errors."""


class ConverterError(RelayError):
    """The converter was driven in a way that would break the event stream."""


class MessageNotOpenError(ConverterError):
    """Message content was added while no text message is open."""


class EncoderError(RelayError):
    """Base class for encoder failures."""


class TransportError(EncoderError):
    """Writing to or flushing the underlying transport failed.

    Fatal for the in-flight request: the peer is gone, nothing more can be
    delivered and nothing is retried.
    """


class EventSerializationError(EncoderError):
    """A single event could not be serialised to its wire form."""
