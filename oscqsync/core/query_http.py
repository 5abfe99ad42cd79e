"""
OSCQuery HTTP query server.

Serves two documents for this process:

- ``HOST_INFO``: any request whose raw URL contains the ``HOST_INFO`` token
- the namespace tree: any other request for ``/``

Everything else is answered with 404. aiohttp runs every connection in its own
task, so a slow client never holds up the next request.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from aiohttp import web
from loguru import logger

from ..datastructures.parameter_tree import ParameterNode
from ..datastructures.type_aliases import HostAddress, PortNumber
from ..serialization import encode_document
from .model import HostInfo, StartupError

HOST_INFO_TOKEN = "HOST_INFO"
NAMESPACE_PATH = "/"
JSON_CONTENT_TYPE = "application/json"


@dataclass(slots=True)
class OSCQueryHttpServer:
    host: HostAddress
    port: PortNumber
    namespace: ParameterNode
    host_info: HostInfo

    app: web.Application = field(init=False)
    runner: web.AppRunner | None = field(default=None, init=False)
    site: web.TCPSite | None = field(default=None, init=False)
    _bound_port: PortNumber | None = field(default=None, init=False)
    _namespace_body: bytes = field(default=b"", init=False)
    _host_info_body: bytes = field(default=b"", init=False)

    def __post_init__(self) -> None:
        self._namespace_body = encode_document(self.namespace.to_dict())
        self._host_info_body = encode_document(self.host_info.to_dict())
        self.app = web.Application(middlewares=[self._isolate_failures])
        self.app.router.add_route("*", "/{tail:.*}", self._handle_request)

    @property
    def bound_port(self) -> PortNumber:
        return self._bound_port if self._bound_port is not None else self.port

    @property
    def running(self) -> bool:
        return self.site is not None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.bound_port}/"

    async def start(self) -> None:
        """Bind and start listening.

        Raises:
            StartupError: the address/port cannot be bound.
        """
        if self.runner is not None:
            return
        self.runner = web.AppRunner(self.app, access_log=None)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, host=self.host, port=self.port)
        try:
            await self.site.start()
        except OSError as exc:
            self.site = None
            await self.runner.cleanup()
            self.runner = None
            raise StartupError(
                f"Unable to bind OSCQuery HTTP server on {self.host}:{self.port}: {exc}"
            ) from exc

        self._bound_port = self.port
        if self.runner.addresses:
            self._bound_port = int(self.runner.addresses[0][1])
        logger.info(f"OSCQuery HTTP server listening at {self.url}")

    async def stop(self) -> None:
        if self.site is not None:
            await self.site.stop()
            self.site = None
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
            logger.debug("OSCQuery HTTP server stopped")

    def _json_response(self, body: bytes) -> web.Response:
        return web.Response(
            body=body,
            content_type=JSON_CONTENT_TYPE,
            headers={"Pragma": "no-cache"},
        )

    async def _handle_request(self, request: web.Request) -> web.Response:
        if HOST_INFO_TOKEN in request.raw_path:
            logger.debug(f"OSCQuery HTTP request: {request.raw_path} (host info)")
            return self._json_response(self._host_info_body)

        if request.path != NAMESPACE_PATH:
            return web.Response(status=404, reason="Not Found")

        logger.debug(f"OSCQuery HTTP request: {request.raw_path}")
        return self._json_response(self._namespace_body)

    @web.middleware
    async def _isolate_failures(self, request: web.Request, handler) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except Exception as exc:
            logger.error(f"Error processing {request.raw_path}: {exc}")
            return web.Response(status=404, reason="Not Found")
