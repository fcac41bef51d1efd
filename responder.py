import asyncio
import logging
import weakref
from typing import Optional, List, Any

from aiohttp import web

from protocol import now_us, encode_echo_body
from config import HarnessConfig

logger = logging.getLogger(__name__)

# Uploaded ledgers and padded requests can exceed aiohttp's 1 MiB default.
SERVER_MAX_BODY_BYTES = 1024 ** 3
CONN_ORDINAL = "conn_ordinal"


class ConnectionOrdinals:
    """Counts requests served per underlying connection, including the current one."""

    def __init__(self):
        # Entries go away with the transport when the connection is closed
        self._served: "weakref.WeakKeyDictionary[Any, int]" = weakref.WeakKeyDictionary()

    def next_ordinal(self, transport) -> int:
        if transport is None:  # Peer already gone
            return 0
        ordinal = self._served.get(transport, 0) + 1
        self._served[transport] = ordinal
        return ordinal

    def __len__(self):
        return len(self._served)


CONFIG_KEY = web.AppKey("config", HarnessConfig)
ORDINALS_KEY = web.AppKey("ordinals", ConnectionOrdinals)


@web.middleware
async def connection_ordinal_middleware(request: web.Request, handler):
    request[CONN_ORDINAL] = request.app[ORDINALS_KEY].next_ordinal(request.transport)
    return await handler(request)


def _parse_size(value: Optional[str]) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except ValueError:
        return 0


async def _requested_resp_size(request: web.Request) -> int:
    value = request.query.get("respSize")
    if value is None and request.method == "POST":
        form = await request.post()
        value = form.get("respSize")
    return _parse_size(value)


async def handle_echo(request: web.Request) -> web.Response:
    arrival_us = now_us()
    resp_size = await _requested_resp_size(request)
    body = encode_echo_body(arrival_us, request[CONN_ORDINAL], resp_size)
    return web.Response(text=body)


def _store_report(path: str, contents: str):
    with open(path, "w", newline="") as f:
        f.write(contents)


async def handle_report(request: web.Request) -> web.Response:
    form = await request.post()
    filename = form.get("filename")
    if not filename:
        logger.warning(f"Report from {request.remote} without filename, ignoring.")
        raise web.HTTPBadRequest(text="missing filename")

    # No sanitising: the filename is trusted and may escape the prefix directory.
    path = f"{request.app[CONFIG_KEY].report_prefix}{filename}"
    contents = form.get("csv", "")
    try:
        await asyncio.to_thread(_store_report, path, contents)
    except OSError as e:
        logger.error(f"Failed to store report {path}: {e}", exc_info=True)
        raise web.HTTPInternalServerError(text="cannot store report")
    logger.info(f"Stored report from {request.remote} at {path} ({len(contents)} chars)")
    return web.Response(text="OK")


def build_app(config: HarnessConfig) -> web.Application:
    app = web.Application(
        middlewares=[connection_ordinal_middleware],
        client_max_size=SERVER_MAX_BODY_BYTES,
    )
    app[CONFIG_KEY] = config
    app[ORDINALS_KEY] = ConnectionOrdinals()
    app.router.add_get("/", handle_echo)
    app.router.add_post("/", handle_echo)
    app.router.add_post("/report", handle_report)
    return app


class ResponderServer:
    def __init__(self, config: HarnessConfig):
        self.config = config
        self.host = config.listen_host
        self.port = config.listen_port
        self._runner: Optional[web.AppRunner] = None
        self._stop_event = asyncio.Event()

    @property
    def addresses(self) -> List[Any]:
        return self._runner.addresses if self._runner else []

    async def start(self):
        logger.info(f"Starting responder on {self.host}:{self.port}, report prefix {self.config.report_prefix!r}")
        self._stop_event.clear()
        # Access logging would add work to every measured exchange
        self._runner = web.AppRunner(build_app(self.config), access_log=None)
        await self._runner.setup()
        try:
            site = web.TCPSite(self._runner, self.host, self.port)
            await site.start()
        except Exception as e:
            logger.error(f"Failed to start responder: {e}", exc_info=True)
            await self.stop()
            raise
        logger.info(f"Responder listening on {self.addresses}")

    async def serve_forever(self):
        if self._runner is None:
            await self.start()
        try:
            await self._stop_event.wait()
        finally:
            await self.stop()

    def request_stop(self):
        self._stop_event.set()

    async def stop(self):
        if self._runner is None:
            return
        logger.info("Stopping responder...")
        runner, self._runner = self._runner, None
        await runner.cleanup()
        logger.info("Responder stopped.")
