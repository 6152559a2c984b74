"""Multicast SAP listener feeding the session registry."""

from __future__ import annotations

import asyncio
import logging
import socket
import struct

from sap_browse.registry import SessionRegistry, UpsertResult
from sap_browse.sap.errors import SapError, SocketFatal, UnrecognizedPayloadType
from sap_browse.sap.header import SDP_MIME_TYPE, parse_header
from sap_browse.sap.sdp import parse_sdp

logger = logging.getLogger(__name__)

# RFC 2974 §3: SAP always uses this port
SAP_PORT = 9875

# RFC 2974 §3: one announcement address per IPv4 administrative scope
SAP_V4_GLOBAL_ADDRESS = "224.2.127.254"
SAP_V4_ORG_ADDRESS = "239.195.255.255"
SAP_V4_LOCAL_ADDRESS = "239.255.255.255"
SAP_V4_LINK_ADDRESS = "224.0.0.255"
SAP_GROUPS = (
    SAP_V4_GLOBAL_ADDRESS,
    SAP_V4_ORG_ADDRESS,
    SAP_V4_LOCAL_ADDRESS,
    SAP_V4_LINK_ADDRESS,
)

# Upper bound on how long stop() takes to be noticed
POLL_INTERVAL = 5.0


class SapListener(asyncio.DatagramProtocol):
    """Receives SAP announcements and applies them to a registry.

    The listener owns its socket for the lifetime of one ``run()``.  A
    socket failure ends the run; ``ensure_running()`` starts a fresh one
    with a new socket.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        host: str = "0.0.0.0",
        port: int = SAP_PORT,
        groups: tuple[str, ...] = SAP_GROUPS,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        self._registry = registry
        self._host = host
        self._port = port
        self._groups = groups
        self._poll_interval = poll_interval
        self._loop: asyncio.AbstractEventLoop | None = None
        self._transport: asyncio.DatagramTransport | None = None
        self._task: asyncio.Task[None] | None = None
        self._stop: asyncio.Event | None = None
        self._fatal: SocketFatal | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def local_address(self) -> tuple[str, int] | None:
        """Bound (host, port) while the socket is open."""
        if self._transport is None:
            return None
        return self._transport.get_extra_info("sockname")

    def open_socket(self) -> socket.socket:
        """Bind the SAP port and join every configured multicast group."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setblocking(False)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self._host, self._port))
        except OSError:
            sock.close()
            raise

        for group in self._groups:
            mreq = struct.pack(
                "=4s4s", socket.inet_aton(group), socket.inet_aton("0.0.0.0")
            )
            try:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
            except OSError as exc:
                logger.warning("Failed to join SAP group %s: %s", group, exc)
        return sock

    async def run(self) -> None:
        """Receive announcements until stop() or a socket failure."""
        loop = asyncio.get_running_loop()
        if self._stop is None:
            self._stop = asyncio.Event()
        stop = self._stop
        self._fatal = None
        try:
            sock = self.open_socket()
            transport, _ = await loop.create_datagram_endpoint(
                lambda: self, sock=sock
            )
        except OSError as exc:
            logger.error("SAP listener setup failed: %s", exc)
            self._stop = None
            return

        try:
            while not stop.is_set():
                try:
                    await asyncio.wait_for(stop.wait(), timeout=self._poll_interval)
                except TimeoutError:
                    self._registry.purge_expired()
        finally:
            transport.close()
            self._transport = None
            self._stop = None

        if self._fatal is not None:
            logger.error("SAP listener stopped: %s", self._fatal)
        else:
            logger.info("SAP listener stopped")

    def ensure_running(self) -> bool:
        """Start run() unless it is already running.

        Safe to call from any thread.  Off the event loop the listener was
        first started on, the start is handed to that loop and False is
        returned; otherwise returns True when a new run was started.
        """
        if self.running:
            return False
        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        owner = self._loop
        if loop is not None and (
            owner is None or owner is loop or owner.is_closed()
        ):
            return self._start(loop)
        if owner is None or owner.is_closed():
            logger.warning("Cannot start SAP listener: no event loop")
            return False
        owner.call_soon_threadsafe(self._start, owner)
        return False

    def _start(self, loop: asyncio.AbstractEventLoop) -> bool:
        if self.running:
            return False
        self._loop = loop
        self._stop = asyncio.Event()
        self._task = loop.create_task(self.run())
        return True

    def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()

    async def wait_closed(self) -> None:
        if self._task is not None:
            await self._task

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]
        logger.info(
            "SAP listener on %s:%d (%s)",
            self._host,
            self._port,
            ", ".join(self._groups) or "no groups",
        )

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            self._fail(exc)

    def error_received(self, exc: Exception) -> None:
        self._fail(exc)

    def _fail(self, exc: Exception) -> None:
        self._fatal = SocketFatal(str(exc))
        if self._stop is not None:
            self._stop.set()

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        try:
            result = self.handle_announcement(data)
        except UnrecognizedPayloadType as exc:
            logger.debug("Ignoring announcement from %s: %s", addr, exc)
            return
        except SapError as exc:
            logger.warning("Dropping announcement from %s: %s", addr, exc)
            return
        except Exception:
            logger.exception("Failed to handle announcement from %s", addr)
            return
        logger.debug("Announcement from %s: %s", addr, result.status)

    def handle_announcement(self, data: bytes) -> UpsertResult:
        """Decode one SAP datagram and apply it to the registry."""
        header, size = parse_header(data)
        if header.payload_type != SDP_MIME_TYPE:
            raise UnrecognizedPayloadType(
                f"unknown payload type {header.payload_type!r}"
            )
        # the SDP body ends at the datagram end or the first NUL
        payload = data[size:].split(b"\0", 1)[0]
        body = payload.decode("utf-8", errors="replace")
        try:
            desc, _ = parse_sdp(body)
        except SapError:
            logger.debug("Unparseable SDP [ --->\n%s\n<--- ]", body)
            raise
        return self._registry.upsert(header, desc, body)
