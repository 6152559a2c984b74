"""SAP/SDP decoding and listener error hierarchy."""

from __future__ import annotations


class SapError(Exception):
    """Base error for anything that makes an announcement unusable."""


class TruncatedInput(SapError):
    """Datagram ended before a required field."""


class TruncatedPayloadType(TruncatedInput):
    """Payload type string is not NUL-terminated within the datagram."""


class UnsupportedAddressFamily(SapError):
    """Header declares an IPv6 originating source."""


class UnrecognizedPayloadType(SapError):
    """Payload is not an SDP session description."""


class MalformedDescription(SapError):
    """SDP body is missing one of the mandatory v=, o=, s= lines."""


class InvalidOrigin(SapError):
    """SDP o= line cannot be tokenized."""


class SocketFatal(SapError):
    """Socket setup, wait or receive failed; the listener stops."""
