"""SAP announcement header decoding (RFC 2974 §3).

Only the IPv4 variant of the originating source is supported.
Authentication data is skipped without validation.
"""

from __future__ import annotations

import dataclasses
import socket
import struct
from enum import IntEnum

from sap_browse.sap.errors import (
    TruncatedInput,
    TruncatedPayloadType,
    UnsupportedAddressFamily,
)

SDP_MIME_TYPE = "application/sdp"
# A payload starting with the SDP version line has no payload type field
SDP_MARKER = b"v=0"

_FIXED_HEADER = struct.Struct("!BBH")
_IPV4_LEN = 4


class AddressType(IntEnum):
    IPV4 = 0
    IPV6 = 1


class MessageType(IntEnum):
    ANNOUNCE = 0
    DELETE = 1


@dataclasses.dataclass
class SapHeader:
    """Decoded SAP header fields."""

    version: int
    address_type: AddressType
    message_type: MessageType
    encrypted: bool
    compressed: bool
    auth_len: int
    msg_id: int
    origin: str
    payload_type: str

    @property
    def is_delete(self) -> bool:
        return self.message_type == MessageType.DELETE


def parse_header(data: bytes) -> tuple[SapHeader, int]:
    """Decode the SAP header at the start of *data*.

    Returns the header and the number of bytes it occupies, so that
    ``data[consumed:]`` is the payload. When the payload type field is
    omitted the ``v=0`` marker belongs to the payload and is not counted.
    """
    if len(data) < _FIXED_HEADER.size:
        raise TruncatedInput(f"SAP header needs 4 bytes, got {len(data)}")

    # RFC 2974 §3: V(3) A(1) R(1) T(1) E(1) C(1) | auth len | msg id hash
    flags, auth_len, msg_id = _FIXED_HEADER.unpack_from(data)
    version = (flags >> 5) & 0x7
    address_type = AddressType((flags >> 4) & 0x1)
    message_type = MessageType((flags >> 2) & 0x1)
    encrypted = bool((flags >> 1) & 0x1)
    compressed = bool(flags & 0x1)
    pos = _FIXED_HEADER.size

    if address_type == AddressType.IPV6:
        raise UnsupportedAddressFamily("IPv6 originating source is not supported")

    remaining = len(data) - pos
    if remaining < _IPV4_LEN + auth_len:
        raise TruncatedInput(
            f"need {_IPV4_LEN + auth_len} bytes for origin and auth data,"
            f" got {remaining}"
        )
    origin = socket.inet_ntoa(data[pos : pos + _IPV4_LEN])
    pos += _IPV4_LEN + auth_len

    if data[pos : pos + len(SDP_MARKER)] == SDP_MARKER:
        payload_type = SDP_MIME_TYPE
    else:
        end = data.find(b"\0", pos)
        if end < 0:
            raise TruncatedPayloadType("payload type is not NUL-terminated")
        payload_type = data[pos:end].decode("ascii", errors="replace")
        pos = end + 1

    header = SapHeader(
        version=version,
        address_type=address_type,
        message_type=message_type,
        encrypted=encrypted,
        compressed=compressed,
        auth_len=auth_len,
        msg_id=msg_id,
        origin=origin,
        payload_type=payload_type,
    )
    return header, pos


def build_header(
    origin: str,
    msg_id: int,
    *,
    message_type: MessageType = MessageType.ANNOUNCE,
    version: int = 1,
    auth_data: bytes = b"",
    payload_type: str | None = None,
) -> bytes:
    """Encode an IPv4 SAP header.

    With ``payload_type=None`` the type field is omitted and receivers
    infer SDP from the payload itself.
    """
    if len(auth_data) > 0xFF:
        raise ValueError("auth data longer than 255 bytes")
    flags = ((version & 0x7) << 5) | (int(message_type) << 2)
    header = _FIXED_HEADER.pack(flags, len(auth_data), msg_id & 0xFFFF)
    header += socket.inet_aton(origin) + auth_data
    if payload_type is not None:
        header += payload_type.encode("ascii") + b"\0"
    return header
