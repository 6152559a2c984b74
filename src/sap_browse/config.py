"""Runtime settings read from the environment (and an optional .env)."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping

from sap_browse.registry import SESSION_TIMEOUT
from sap_browse.sap.listener import POLL_INTERVAL, SAP_PORT


@dataclasses.dataclass(frozen=True)
class Settings:
    listen_host: str = "0.0.0.0"
    sap_port: int = SAP_PORT
    poll_interval: float = POLL_INTERVAL
    session_timeout: float = SESSION_TIMEOUT
    web_host: str = "0.0.0.0"
    web_port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(
            listen_host=env.get("SAP_LISTEN_HOST", cls.listen_host),
            sap_port=_number(env, "SAP_PORT", int, cls.sap_port),
            poll_interval=_number(env, "SAP_POLL_INTERVAL", float, cls.poll_interval),
            session_timeout=_number(
                env, "SAP_SESSION_TIMEOUT", float, cls.session_timeout
            ),
            web_host=env.get("WEB_HOST", cls.web_host),
            web_port=_number(env, "WEB_PORT", int, cls.web_port),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
        )


def _number(env: Mapping[str, str], name: str, kind: type, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
