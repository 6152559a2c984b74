"""Directory view of discovered SAP sessions."""

from __future__ import annotations

import dataclasses
import logging

from sap_browse.registry import SessionRegistry
from sap_browse.sap.errors import SapError
from sap_browse.sap.header import SDP_MIME_TYPE
from sap_browse.sap.listener import SapListener
from sap_browse.sap.sdp import parse_origin, parse_sdp

logger = logging.getLogger(__name__)

ROOT_PATH = "sap://"


@dataclasses.dataclass
class BrowseItem:
    label: str
    path: str


class SapDirectory:
    """Lists registry sessions as (label, path) items under ``sap://``."""

    def __init__(
        self, registry: SessionRegistry, listener: SapListener | None = None
    ) -> None:
        self._registry = registry
        self._listener = listener

    def sessions(self) -> list[BrowseItem]:
        """Every announced session that still decodes.

        Starts the listener on first use and may be called from any
        thread.  Sessions whose stored SDP no longer decodes are skipped.
        """
        if self._listener is not None and self._listener.ensure_running():
            logger.info("Started SAP listener")

        items: list[BrowseItem] = []
        for session in self._registry.snapshot():
            if session.payload_type != SDP_MIME_TYPE:
                logger.debug("Unknown payload type %r", session.payload_type)
                continue
            try:
                desc, _ = parse_sdp(session.payload)
                parse_origin(desc.origin)
            except SapError as exc:
                logger.debug("Skipping %s: %s", session.path, exc)
                continue
            items.append(BrowseItem(label=desc.label, path=session.path))
        return items

    def list(self, path: str) -> list[BrowseItem] | None:
        """Return the current sessions, or None if *path* is not ours."""
        if path != ROOT_PATH:
            return None
        return self.sessions()

    def read(self, path: str) -> str | None:
        """Raw SDP of the session at *path*, if it is still announced."""
        session = self._registry.lookup(path)
        if session is None:
            return None
        return session.payload
