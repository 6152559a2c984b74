"""Tests for the session registry lifecycle."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor

from sap_browse.registry import (
    SESSION_TIMEOUT,
    SessionRegistry,
    UpsertStatus,
    build_session_path,
)
from sap_browse.sap.header import SDP_MIME_TYPE, AddressType, MessageType, SapHeader
from sap_browse.sap.sdp import SessionDescription, parse_origin, parse_sdp

from .conftest import MINIMAL_SDP, ManualClock


def _header(
    *,
    origin: str = "10.0.0.5",
    msg_id: int = 1,
    message_type: MessageType = MessageType.ANNOUNCE,
    payload_type: str = SDP_MIME_TYPE,
) -> SapHeader:
    return SapHeader(
        version=1,
        address_type=AddressType.IPV4,
        message_type=message_type,
        encrypted=False,
        compressed=False,
        auth_len=0,
        msg_id=msg_id,
        origin=origin,
        payload_type=payload_type,
    )


def _desc(sdp: str = MINIMAL_SDP) -> SessionDescription:
    desc, _ = parse_sdp(sdp)
    return desc


def test_first_announce_inserts():
    registry = SessionRegistry()
    result = registry.upsert(_header(), _desc(), MINIMAL_SDP)
    assert result.status == UpsertStatus.INSERTED
    assert len(registry) == 1
    [session] = registry.snapshot()
    assert session.origin == "10.0.0.5"
    assert session.msg_id == 1
    assert session.payload_origin == "alice 123 1 IN IP4 10.0.0.9"
    assert session.payload_type == SDP_MIME_TYPE
    assert session.payload == MINIMAL_SDP
    assert session.path == "sap://alice@10.0.0.9/IN/IP4/0x7b.sdp"


def test_insert_sets_timeout_horizon(registry: SessionRegistry, clock: ManualClock):
    registry.upsert(_header(), _desc(), MINIMAL_SDP)
    [session] = registry.snapshot()
    assert session.timeout == clock.now + SESSION_TIMEOUT


def test_repeat_announce_refreshes(registry: SessionRegistry, clock: ManualClock):
    registry.upsert(_header(), _desc(), MINIMAL_SDP)
    first_timeout = registry.snapshot()[0].timeout

    clock.advance(30)
    other_body = MINIMAL_SDP + "i=Changed\r\n"
    result = registry.upsert(_header(), _desc(other_body), other_body)

    assert result.status == UpsertStatus.REFRESHED
    assert len(registry) == 1
    [session] = registry.snapshot()
    assert session.timeout > first_timeout
    # only the timeout moves on refresh
    assert session.payload == MINIMAL_SDP


def test_key_includes_sender_msg_id_and_origin(registry: SessionRegistry):
    registry.upsert(_header(), _desc(), MINIMAL_SDP)
    registry.upsert(_header(origin="10.0.0.6"), _desc(), MINIMAL_SDP)
    registry.upsert(_header(msg_id=2), _desc(), MINIMAL_SDP)
    other = "v=0\r\no=alice 124 1 IN IP4 10.0.0.9\r\ns=Demo\r\n"
    registry.upsert(_header(), _desc(other), other)
    assert len(registry) == 4


def test_delete_removes_only_matching(registry: SessionRegistry):
    registry.upsert(_header(msg_id=1), _desc(), MINIMAL_SDP)
    registry.upsert(_header(msg_id=2), _desc(), MINIMAL_SDP)

    result = registry.upsert(
        _header(msg_id=1, message_type=MessageType.DELETE), _desc(), MINIMAL_SDP
    )

    assert result.status == UpsertStatus.DELETED
    assert [s.msg_id for s in registry.snapshot()] == [2]


def test_delete_unknown_is_noop(registry: SessionRegistry):
    registry.upsert(_header(msg_id=1), _desc(), MINIMAL_SDP)
    result = registry.upsert(
        _header(msg_id=9, message_type=MessageType.DELETE), _desc(), MINIMAL_SDP
    )
    assert result.status == UpsertStatus.DELETED
    assert len(registry) == 1


def test_empty_origin_rejected(registry: SessionRegistry):
    desc = SessionDescription(version="0", origin="", name="x")
    result = registry.upsert(_header(), desc, "v=0\r\no=\r\ns=x\r\n")
    assert result.status == UpsertStatus.REJECTED
    assert result.reason
    assert len(registry) == 0


def test_short_origin_still_inserted(registry: SessionRegistry):
    body = "v=0\r\no=carol 99\r\ns=Short\r\n"
    result = registry.upsert(_header(), _desc(body), body)
    assert result.status == UpsertStatus.INSERTED
    assert registry.snapshot()[0].path == "sap://carol@///0x63.sdp"


def test_snapshot_is_a_copy(registry: SessionRegistry):
    registry.upsert(_header(), _desc(), MINIMAL_SDP)
    snap = registry.snapshot()
    snap[0].timeout = 0
    snap.clear()
    assert registry.snapshot()[0].timeout > 0


def test_snapshot_keeps_insertion_order(registry: SessionRegistry):
    for msg_id in (5, 3, 9):
        registry.upsert(_header(msg_id=msg_id), _desc(), MINIMAL_SDP)
    assert [s.msg_id for s in registry.snapshot()] == [5, 3, 9]


def test_expired_sessions_hidden_from_snapshot(
    registry: SessionRegistry, clock: ManualClock
):
    registry.upsert(_header(), _desc(), MINIMAL_SDP)
    clock.advance(SESSION_TIMEOUT)
    assert registry.snapshot() == []
    # still stored until purged
    assert len(registry) == 1


def test_refresh_keeps_session_alive(registry: SessionRegistry, clock: ManualClock):
    registry.upsert(_header(), _desc(), MINIMAL_SDP)
    clock.advance(SESSION_TIMEOUT - 1)
    registry.upsert(_header(), _desc(), MINIMAL_SDP)
    clock.advance(SESSION_TIMEOUT - 1)
    assert len(registry.snapshot()) == 1


def test_purge_expired(registry: SessionRegistry, clock: ManualClock):
    registry.upsert(_header(msg_id=1), _desc(), MINIMAL_SDP)
    clock.advance(10)
    registry.upsert(_header(msg_id=2), _desc(), MINIMAL_SDP)
    clock.advance(SESSION_TIMEOUT - 5)

    assert registry.purge_expired() == 1
    assert [s.msg_id for s in registry.snapshot()] == [2]
    assert registry.purge_expired() == 0


def test_custom_timeout():
    clock = ManualClock()
    registry = SessionRegistry(timeout=60, clock=clock)
    registry.upsert(_header(), _desc(), MINIMAL_SDP)
    clock.advance(61)
    assert registry.snapshot() == []


def test_lookup_by_path(registry: SessionRegistry):
    registry.upsert(_header(), _desc(), MINIMAL_SDP)
    session = registry.lookup("sap://alice@10.0.0.9/IN/IP4/0x7b.sdp")
    assert session is not None
    assert session.payload == MINIMAL_SDP
    assert registry.lookup("sap://nobody@10.0.0.1/IN/IP4/0x1.sdp") is None


def test_path_url_encodes_username():
    origin = parse_origin("jane@lab 3724394400 1 IN IP4 192.0.2.1")
    assert build_session_path(origin) == (
        "sap://jane%40lab@192.0.2.1/IN/IP4/0xddfdbfa0.sdp"
    )

    origin = parse_origin("j%ane/x 255 1 IN IP4 192.0.2.1")
    assert build_session_path(origin) == "sap://j%25ane%2Fx@192.0.2.1/IN/IP4/0xff.sdp"


def test_concurrent_upsert_and_snapshot(registry: SessionRegistry):
    def write() -> None:
        for msg_id in range(500):
            registry.upsert(_header(msg_id=msg_id), _desc(), MINIMAL_SDP)

    def read(writer: Future[None]) -> list[int]:
        sizes: list[int] = []
        while not writer.done():
            sizes.append(len(registry.snapshot()))
        sizes.append(len(registry.snapshot()))
        return sizes

    with ThreadPoolExecutor(max_workers=2) as pool:
        writer = pool.submit(write)
        reader = pool.submit(read, writer)
        writer.result()
        sizes = reader.result()

    assert sizes == sorted(sizes)
    assert sizes[-1] == 500
