"""In-memory registry of announced SAP sessions."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from collections.abc import Callable
from enum import StrEnum
from urllib.parse import quote

from sap_browse.sap.errors import InvalidOrigin
from sap_browse.sap.header import SapHeader
from sap_browse.sap.sdp import SdpOrigin, SessionDescription, parse_origin

logger = logging.getLogger(__name__)

# How long a session survives without being re-announced
SESSION_TIMEOUT = 60 * 60

SessionKey = tuple[str, int, str]


class UpsertStatus(StrEnum):
    INSERTED = "inserted"
    REFRESHED = "refreshed"
    DELETED = "deleted"
    REJECTED = "rejected"


@dataclasses.dataclass
class UpsertResult:
    status: UpsertStatus
    reason: str | None = None


@dataclasses.dataclass
class Session:
    """A discovered session, keyed by sender, message id and SDP origin."""

    origin: str
    msg_id: int
    payload_origin: str
    payload_type: str
    payload: str
    path: str
    timeout: float

    @property
    def key(self) -> SessionKey:
        return (self.origin, self.msg_id, self.payload_origin)


def build_session_path(origin: SdpOrigin) -> str:
    """Browse path for a session: sap://user@address/net/addr/0x<id>.sdp"""
    user = quote(origin.username, safe="")
    return (
        f"sap://{user}@{origin.address}/{origin.nettype}/{origin.addrtype}"
        f"/0x{origin.session_id_int:x}.sdp"
    )


class SessionRegistry:
    """Thread-safe store of active sessions.

    Writers (the listener) and readers (the directory) go through a single
    lock held only for the duration of one call.
    """

    def __init__(
        self,
        *,
        timeout: float = SESSION_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[SessionKey, Session] = {}
        self._timeout = timeout
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def upsert(
        self, header: SapHeader, desc: SessionDescription, payload: str
    ) -> UpsertResult:
        """Apply an announcement or deletion to the registry."""
        try:
            sdp_origin = parse_origin(desc.origin)
        except InvalidOrigin as exc:
            logger.warning("Rejecting announcement from %s: %s", header.origin, exc)
            return UpsertResult(UpsertStatus.REJECTED, str(exc))
        if not sdp_origin.complete:
            logger.debug("Short origin line from %s: %r", header.origin, desc.origin)

        key: SessionKey = (header.origin, header.msg_id, desc.origin)
        with self._lock:
            existing = self._sessions.get(key)
            if header.is_delete:
                if existing is not None:
                    del self._sessions[key]
                    logger.info("Session deleted: %s", existing.path)
                return UpsertResult(UpsertStatus.DELETED)

            now = self._clock()
            if existing is not None:
                existing.timeout = now + self._timeout
                return UpsertResult(UpsertStatus.REFRESHED)

            session = Session(
                origin=header.origin,
                msg_id=header.msg_id,
                payload_origin=desc.origin,
                payload_type=header.payload_type,
                payload=payload,
                path=build_session_path(sdp_origin),
                timeout=now + self._timeout,
            )
            self._sessions[key] = session
        logger.info("Session added: %s (%s)", session.path, desc.label)
        return UpsertResult(UpsertStatus.INSERTED)

    def snapshot(self) -> list[Session]:
        """Copy of the sessions that have not yet expired, oldest first."""
        with self._lock:
            now = self._clock()
            return [
                dataclasses.replace(s)
                for s in self._sessions.values()
                if s.timeout > now
            ]

    def lookup(self, path: str) -> Session | None:
        """Find an unexpired session by its browse path."""
        for session in self.snapshot():
            if session.path == path:
                return session
        return None

    def purge_expired(self) -> int:
        """Drop expired sessions and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, s in self._sessions.items() if s.timeout <= now]
            for key in expired:
                session = self._sessions.pop(key)
                logger.info("Session expired: %s", session.path)
        return len(expired)
