"""Session browser webapp — aiohttp-based."""

from __future__ import annotations

import dataclasses

import aiohttp_jinja2
import jinja2
from aiohttp import web

from sap_browse.browse import ROOT_PATH, BrowseItem, SapDirectory

_directory_key = web.AppKey("directory", SapDirectory)


def _list_items(request: web.Request) -> list[BrowseItem]:
    return request.app[_directory_key].sessions()


async def _index_handler(request: web.Request) -> web.Response:
    context = {"items": _list_items(request), "root": ROOT_PATH}
    return aiohttp_jinja2.render_template("sessions.html", request, context)


async def _sessions_handler(request: web.Request) -> web.Response:
    items = _list_items(request)
    return web.json_response([dataclasses.asdict(item) for item in items])


async def _sdp_handler(request: web.Request) -> web.Response:
    path = request.query.get("path")
    if not path:
        return web.Response(status=400, text="Missing path parameter")
    sdp = request.app[_directory_key].read(path)
    if sdp is None:
        raise web.HTTPNotFound(text=f"No session at {path}")
    return web.Response(text=sdp, content_type="application/sdp")


def create_app(directory: SapDirectory) -> web.Application:
    app = web.Application()
    aiohttp_jinja2.setup(
        app,
        loader=jinja2.PackageLoader("sap_browse"),
        autoescape=jinja2.select_autoescape(),
    )
    app[_directory_key] = directory
    app.router.add_get("/", _index_handler)
    app.router.add_get("/sessions", _sessions_handler)
    app.router.add_get("/sdp", _sdp_handler)
    return app


async def start_webapp(app: web.Application, host: str, port: int) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    return runner


async def stop_webapp(runner: web.AppRunner) -> None:
    await runner.cleanup()
