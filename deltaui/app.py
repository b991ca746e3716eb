"""
ASGI application exposing the request handler over HTTP and Socket.IO.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import socketio
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp

from deltaui.config import DeltaConfig, load_config
from deltaui.handler import RequestHandler

logger = logging.getLogger(__name__)

__version__ = "0.1.0"


class App:
    """
    Hosts components for remote clients.

    ```python
    app = App(signing_key="...")
    uvicorn.run(app.asgi)
    ```

    Routes (under `route_prefix`, `/_delta` by default):

    - `POST /update`: `call` and `update` requests
    - `POST /mount`: initial render of a component
    - `GET /health`

    The same requests are accepted as the `delta.call`, `delta.update` and
    `delta.mount` Socket.IO events, answered through the event ack.
    """

    fastapi: FastAPI
    sio: socketio.AsyncServer
    asgi: ASGIApp

    def __init__(
        self,
        config: Optional[DeltaConfig] = None,
        cors_origins: Optional[list[str]] = None,
        **overrides: Any,
    ):
        self.config = config if config is not None else load_config(**overrides)
        self.handler = RequestHandler(self.config)
        self.route_prefix = self.config.get("route_prefix", "/_delta").rstrip("/")

        self.fastapi = FastAPI(title="deltaui")
        if cors_origins:
            self.fastapi.add_middleware(
                CORSMiddleware,
                allow_origins=cors_origins,
                allow_credentials=True,
                allow_methods=["*"],
                allow_headers=["*"],
            )
        self.sio = socketio.AsyncServer(
            async_mode="asgi", cors_allowed_origins=cors_origins or []
        )
        self.asgi = socketio.ASGIApp(self.sio, self.fastapi)
        self.setup()

    def setup(self):
        prefix = self.route_prefix

        @self.fastapi.get(f"{prefix}/health")
        def healthcheck():  # pyright: ignore[reportUnusedFunction]
            return {
                "status": "ok",
                "version": __version__,
                "transports": ["http", "socketio"],
            }

        @self.fastapi.post(f"{prefix}/update")
        async def update(request: Request):  # pyright: ignore[reportUnusedFunction]
            message = await _read_json(request)
            if message is None:
                return _invalid_json()
            status, body = await self.handler.handle(message)
            return JSONResponse(body, status_code=status)

        @self.fastapi.post(f"{prefix}/mount")
        async def mount(request: Request):  # pyright: ignore[reportUnusedFunction]
            message = await _read_json(request)
            if message is None:
                return _invalid_json()
            status, body = await self.handler.handle_mount(message)
            return JSONResponse(body, status_code=status)

        @self.sio.event
        async def connect(sid: str, environ: dict[str, Any], auth: Any = None):  # pyright: ignore[reportUnusedFunction]
            logger.debug("Socket.IO client connected sid=%s", sid)

        @self.sio.event
        def disconnect(sid: str, *args: Any):  # pyright: ignore[reportUnusedFunction]
            logger.debug("Socket.IO client disconnected sid=%s", sid)

        @self.sio.on("delta.call")
        async def on_call(sid: str, data: Any):  # pyright: ignore[reportUnusedFunction]
            return await self._socket_request("call", data)

        @self.sio.on("delta.update")
        async def on_update(sid: str, data: Any):  # pyright: ignore[reportUnusedFunction]
            return await self._socket_request("update", data)

        @self.sio.on("delta.mount")
        async def on_mount(sid: str, data: Any):  # pyright: ignore[reportUnusedFunction]
            _, body = await self.handler.handle_mount(data)
            return body

    async def _socket_request(self, kind: str, data: Any) -> dict[str, Any]:
        if isinstance(data, dict):
            data = {**data, "type": kind}
        _, body = await self.handler.handle(data)
        return body

    async def render(self, component_class: str, **params: Any) -> dict[str, Any]:
        """Initial render for embedding a component in a server-rendered page."""
        status, body = await self.handler.handle_mount(
            {"componentClass": component_class, "params": params}
        )
        if status != 200:
            raise RuntimeError(f"Could not render {component_class}: {body['error']}")
        return body

    def run(self, host: str = "localhost", port: int = 8000, log_level: str = "info"):
        uvicorn.run(self.asgi, host=host, port=port, log_level=log_level)


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def _invalid_json() -> JSONResponse:
    return JSONResponse(
        {"s": False, "type": "exception", "error": "Invalid JSON body"},
        status_code=400,
    )
