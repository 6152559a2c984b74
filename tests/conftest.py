"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from sap_browse.registry import SessionRegistry
from sap_browse.sap.header import MessageType, build_header

MINIMAL_SDP = "v=0\r\no=alice 123 1 IN IP4 10.0.0.9\r\ns=Demo\r\n"


class FakeTransport(asyncio.DatagramTransport):
    """Records close() and reports a fixed local address."""

    def __init__(self) -> None:
        super().__init__()
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def get_extra_info(self, name: str, default: Any = None) -> Any:
        if name == "sockname":
            return ("127.0.0.1", 9875)
        return default


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_datagram(
    sdp: str = MINIMAL_SDP,
    *,
    origin: str = "10.0.0.5",
    msg_id: int = 0x1234,
    message_type: MessageType = MessageType.ANNOUNCE,
    auth_data: bytes = b"",
    payload_type: str | None = None,
) -> bytes:
    """Build a complete SAP datagram carrying *sdp*."""
    header = build_header(
        origin,
        msg_id,
        message_type=message_type,
        auth_data=auth_data,
        payload_type=payload_type,
    )
    return header + sdp.encode()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def registry(clock: ManualClock) -> SessionRegistry:
    return SessionRegistry(clock=clock)
