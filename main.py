"""sap-browse entrypoint: SAP listener plus session browser webapp."""

import asyncio
import logging
import signal

from dotenv import load_dotenv

from sap_browse.browse import SapDirectory
from sap_browse.config import Settings
from sap_browse.registry import SessionRegistry
from sap_browse.sap.listener import SapListener
from sap_browse.web import create_app, start_webapp, stop_webapp

logger = logging.getLogger(__name__)


async def main() -> None:
    load_dotenv()
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    registry = SessionRegistry(timeout=settings.session_timeout)
    listener = SapListener(
        registry,
        host=settings.listen_host,
        port=settings.sap_port,
        poll_interval=settings.poll_interval,
    )
    directory = SapDirectory(registry, listener)

    # Start listening right away rather than on the first page view
    listener.ensure_running()

    app = create_app(directory)
    runner = await start_webapp(app, settings.web_host, settings.web_port)
    logger.info(
        "Browse sessions at http://%s:%d/", settings.web_host, settings.web_port
    )

    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)
    try:
        await shutdown.wait()
        logger.info("Shutting down...")
    finally:
        listener.stop()
        await listener.wait_closed()
        await stop_webapp(runner)


if __name__ == "__main__":
    asyncio.run(main())
