"""FastAPI application receiving signed webhook calls."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, MutableMapping

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from starlette.requests import ClientDisconnect

from ..config import RookConfig
from ..dispatch import Dispatcher
from ..errors import BodyReadFailed, BodyTooLarge, MalformedHeader, MissingHeader, RookError
from ..launcher import Launcher
from ..logging import AccessRecord, log_access
from ..models import RouteTable

MAX_BODY_LENGTH = 1 << 21  # 2 MiB
OK_BODY = "ok"
HOOK_PATH = "/{path:path}"


def guard_content_length(headers: Mapping[str, str], limit: int = MAX_BODY_LENGTH) -> int:
    """Validate the declared body length before anything is read."""
    raw = headers.get("content-length")
    if raw is None:
        raise MissingHeader("content-length")
    if not (raw.isascii() and raw.isdigit()):
        raise MalformedHeader("content-length")
    length = int(raw)
    if length > limit:
        raise BodyTooLarge(f"declared {length} bytes")
    return length


def request_path(scope: MutableMapping[str, Any]) -> str:
    """Return the path as sent on the wire, without percent-decoding or query."""
    raw_path = scope.get("raw_path")
    if raw_path is None:
        return scope["path"]
    return raw_path.split(b"?", 1)[0].decode("latin-1")


async def read_body(request: Request, limit: int = MAX_BODY_LENGTH) -> bytes:
    """Buffer the whole body, refusing to hold more than ``limit`` bytes."""
    data = bytearray()
    try:
        async for chunk in request.stream():
            data.extend(chunk)
            if len(data) > limit:
                raise BodyTooLarge(f"received more than {limit} bytes")
    except ClientDisconnect as exc:
        raise BodyReadFailed("client disconnected") from exc
    return bytes(data)


def create_app(
    routes: RouteTable,
    *,
    dispatcher: Dispatcher | None = None,
    inherit_output: bool = False,
) -> FastAPI:
    """Create the FastAPI application serving every path in ``routes``."""

    app = FastAPI(title="rook", docs_url=None, redoc_url=None, openapi_url=None)
    hook_dispatcher = dispatcher or Dispatcher(routes, Launcher(inherit_output=inherit_output))
    app.state.dispatcher = hook_dispatcher

    @app.middleware("http")
    async def record_access(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        started = time.perf_counter()
        status: int | None = None
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            elapsed_us = int((time.perf_counter() - started) * 1_000_000)
            log_access(
                AccessRecord(
                    client=request.client.host if request.client else "-",
                    method=request.method,
                    path=request_path(request.scope),
                    http_version=request.scope.get("http_version", "1.1"),
                    status=status,
                    finished=datetime.now(timezone.utc),
                    elapsed_us=elapsed_us,
                )
            )

    # Registered without a method list: routing is by path alone.
    async def receive_hook(request: Request) -> PlainTextResponse:
        guard_content_length(request.headers)
        body = await read_body(request)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, hook_dispatcher.dispatch, request_path(request.scope), request.headers, body
        )
        return PlainTextResponse(OK_BODY)

    app.add_route(HOOK_PATH, receive_hook)

    @app.exception_handler(RookError)
    async def rook_error_handler(_: Any, exc: RookError) -> PlainTextResponse:
        return PlainTextResponse(exc.reason, status_code=exc.status_code)

    return app


def run_service(config: RookConfig) -> None:  # pragma: no cover - integration path
    app = create_app(config.routes, inherit_output=config.inherit_output)
    uvicorn.run(app, host=config.addr, port=config.port, access_log=False)
