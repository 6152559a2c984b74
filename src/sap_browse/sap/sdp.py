"""SDP session description decoding for SAP payloads (RFC 4566 §5).

The decoder walks the body once, front to back.  Each field is located
by seeking forward to the next line carrying its type letter; lines in
between are skipped and the cursor never moves backwards.  A field that
is not found leaves the cursor where it was, so the next field is
searched from the same place.
"""

from __future__ import annotations

import dataclasses
import re

from sap_browse.sap.errors import InvalidOrigin, MalformedDescription

# <type>=<value> terminated by any run of CR/LF; a NUL ends the body
_LINE_RE = re.compile(r"([^=\r\n\0]*)=?([^\r\n\0]*)[\r\n]*")


@dataclasses.dataclass
class TimeDescription:
    active: str
    repeat: str = ""


@dataclasses.dataclass
class MediaDescription:
    name: str
    title: str = ""
    connection: str = ""
    attributes: list[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class SessionDescription:
    """Parsed session-level SDP fields with time and media sections."""

    version: str
    origin: str
    name: str
    title: str = ""
    bandwidth: str = ""
    attributes: list[str] = dataclasses.field(default_factory=list)
    times: list[TimeDescription] = dataclasses.field(default_factory=list)
    media: list[MediaDescription] = dataclasses.field(default_factory=list)

    @property
    def label(self) -> str:
        """Human readable name: the i= title when set, else the s= name."""
        return self.title or self.name


@dataclasses.dataclass
class SdpOrigin:
    """Tokens of an SDP o= line.

    ``complete`` is False when the line had fewer than six tokens; the
    missing trailing fields are then empty strings.
    """

    username: str
    session_id: str
    session_version: str
    nettype: str
    addrtype: str
    address: str
    complete: bool = True

    @property
    def session_id_int(self) -> int:
        """Session id as an integer, reading leading digits only."""
        match = re.match(r"\d+", self.session_id)
        return int(match.group()) if match else 0


def _read_line(text: str, pos: int) -> tuple[str, str, int]:
    """Read one ``type=value`` line starting at *pos*."""
    match = _LINE_RE.match(text, pos)
    assert match is not None  # the pattern accepts the empty string
    return match.group(1), match.group(2), match.end()


class _SdpReader:
    def __init__(self, text: str) -> None:
        self._text = text
        self.pos = 0

    def take(self, key: str) -> str | None:
        """Seek forward to the next *key* line and consume it."""
        text = self._text
        pos = self.pos
        while pos < len(text) and text[pos] != "\0":
            line_key, value, pos = _read_line(text, pos)
            if line_key == key:
                self.pos = pos
                return value
        return None

    def take_all(self, key: str) -> list[str]:
        values: list[str] = []
        while (value := self.take(key)) is not None:
            values.append(value)
        return values


def parse_sdp(text: str) -> tuple[SessionDescription, int]:
    """Decode an SDP body.

    Returns the description and the number of characters consumed.
    Raises MalformedDescription when v=, o= or s= cannot be found in
    that order.
    """
    reader = _SdpReader(text)

    mandatory: list[str] = []
    for key in ("v", "o", "s"):
        value = reader.take(key)
        if value is None:
            raise MalformedDescription(f"missing mandatory {key}= line")
        mandatory.append(value)
    version, origin, name = mandatory

    desc = SessionDescription(version=version, origin=origin, name=name)
    desc.title = reader.take("i") or ""
    desc.bandwidth = reader.take("b") or ""
    desc.attributes = reader.take_all("a")

    while (active := reader.take("t")) is not None:
        repeat = reader.take("r") or ""
        desc.times.append(TimeDescription(active=active, repeat=repeat))

    while (media_name := reader.take("m")) is not None:
        media = MediaDescription(name=media_name)
        media.title = reader.take("i") or ""
        media.connection = reader.take("c") or ""
        media.attributes = reader.take_all("a")
        desc.media.append(media)

    return desc, reader.pos


def parse_origin(text: str) -> SdpOrigin:
    """Split an o= value into its six fields.

    o=<username> <sess-id> <sess-version> <nettype> <addrtype> <address>
    """
    tokens = text.split()
    if not tokens:
        raise InvalidOrigin(f"empty origin {text!r}")
    complete = len(tokens) >= 6
    tokens += [""] * (6 - len(tokens))
    return SdpOrigin(
        username=tokens[0],
        session_id=tokens[1],
        session_version=tokens[2],
        nettype=tokens[3],
        addrtype=tokens[4],
        address=tokens[5],
        complete=complete,
    )
