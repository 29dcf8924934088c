"""
Azure OpenAI proxy (OpenAI-compatible) -> Azure OpenAI deployments as upstream.

Routes:
  GET  /                      informational page
  *    /v1/models             static model catalog
  *    /v1/chat/completions   proxied to deployments/{deployment}/chat/completions
  *    /v1/completions        proxied to deployments/{deployment}/completions
  OPTIONS on any path         CORS preflight, answered before routing

The public model name in the request body is mapped to a deployment name.
Streamed upstream bodies are re-framed on blank lines and paced (see sse_handler).
"""

from __future__ import annotations

import contextlib
import json
import logging
import uuid
from typing import Any, AsyncIterator, Optional

import anyio
import httpx
from fastapi import FastAPI, Header, Request, Response
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse, PlainTextResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Receive, Scope, Send

from config import load_config
from logger import setup_logging
from models import build_model_mapper, model_catalog, resolve_deployment
from sse_handler import reframe
from upstream import (
    UpstreamBodyMissing,
    UpstreamClient,
    UpstreamError,
    response_has_body,
)
from utils import dump_config, load_env_files

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Headers": "*",
}

# Headers describing the upstream body framing; the relayed body is re-framed and decoded.
_DROPPED_RESPONSE_HEADERS = frozenset(
    {"content-length", "content-encoding", "transfer-encoding", "connection", "keep-alive"}
)

# OPTIONS is answered by the preflight middleware.
_ROUTE_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]

INDEX_HTML = """
<html>
  <head>
    <title>Azure API</title>
    <style>
      body {
        font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
        font-size: 1.2rem;
        line-height: 1.5;
        color: #333;
      }
      .container {
        max-width: 800px;
        margin: 0 auto;
        padding: 0 1rem;
      }
    </style>
  </head>
  <body>
    <div class="container">
      <h1>Hello World!</h1>
      <p>The quieter you become, the more you are able to hear.</p>
    </div>
  </body>
</html>
"""


class InvalidRequestBody(Exception):
    """POST body is present but is not JSON."""


# Load environment
load_env_files()

# Load configuration
config = load_config()
config.validate()

# Initialize logging
log = setup_logging(config.log_path, config.log_level, config.log_color)
dump_config(config)

# Read-only for the lifetime of the process.
model_mapper = build_model_mapper(config.model_mapper_overrides)
upstream_client = UpstreamClient(config)


class CORSPreflightMiddleware:
    """Answer any OPTIONS request with a permissive CORS preflight response."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["method"] == "OPTIONS":
            response = Response(status_code=200, headers=CORS_HEADERS)
            await response(scope, receive, send)
            return
        await self.app(scope, receive, send)


class RelayStreamingResponse(StreamingResponse):
    """StreamingResponse that always closes its body iterator.

    When the client goes away the send fails (or the task is cancelled) and Starlette
    stops iterating without closing the generator; closing it here runs the relay's
    cleanup right away instead of whenever the generator is garbage collected.
    """

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            aclose = getattr(self.body_iterator, "aclose", None)
            if aclose is not None:
                with anyio.CancelScope(shield=True):
                    await aclose()


app = FastAPI(title="azure-proxy", version="1.0.0")

app.add_middleware(CORSPreflightMiddleware)


@app.exception_handler(StarletteHTTPException)
async def not_found_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Plain-text 404 for unknown paths; everything else keeps the default handling."""
    if exc.status_code == 404:
        return PlainTextResponse("404 Not Found", status_code=404)
    return await http_exception_handler(request, exc)


@app.exception_handler(InvalidRequestBody)
async def invalid_body_handler(request: Request, exc: InvalidRequestBody) -> Response:
    log.error("Invalid JSON body path=%s err=%s", request.url.path, exc)
    return PlainTextResponse("Invalid JSON body", status_code=500)


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError) -> Response:
    log.error("Upstream failure path=%s err=%s", request.url.path, exc)
    if isinstance(exc, UpstreamBodyMissing):
        return PlainTextResponse("Upstream response body is missing", status_code=502)
    return PlainTextResponse("Upstream request failed", status_code=502)


@app.api_route("/", methods=_ROUTE_METHODS)
async def index() -> Response:
    """Informational page, doubles as a health check."""
    return HTMLResponse(INDEX_HTML, status_code=200)


@app.api_route("/v1/models", methods=_ROUTE_METHODS)
async def v1_models() -> Response:
    """List available models (fixed catalog)."""
    return Response(
        content=json.dumps(model_catalog(), indent=2),
        media_type="application/json",
    )


@app.api_route("/v1/chat/completions", methods=_ROUTE_METHODS)
async def v1_chat_completions(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Response:
    """Handle chat completion requests."""
    return await proxy_completion(request, "chat/completions", authorization)


@app.api_route("/v1/completions", methods=_ROUTE_METHODS)
async def v1_completions(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Response:
    """Handle legacy completion requests."""
    return await proxy_completion(request, "completions", authorization)


async def _read_json_body(request: Request) -> Any:
    """Parse the request body as JSON; an empty body means no body."""
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        raise InvalidRequestBody(str(e)) from e


def _request_id(request: Request) -> str:
    return (
        (request.headers.get("x-request-id") or "").strip()
        or (request.headers.get("x-correlation-id") or "").strip()
        or uuid.uuid4().hex
    )


async def proxy_completion(
    request: Request,
    operation: str,
    authorization: Optional[str],
) -> Response:
    """
    Forward a completion request to the mapped Azure deployment.

    The body is parsed before the key check, so an invalid body fails even without
    a valid key. The upstream is contacted only after the key check passes.
    """
    req_id = _request_id(request)
    client_ip = request.client.host if request.client else "unknown"

    body = None
    if request.method == "POST":
        body = await _read_json_body(request)

    model = body.get("model") if isinstance(body, dict) else None
    deployment = resolve_deployment(model_mapper, model)

    log.info(
        "Incoming req_id=%s from=%s %s %s model=%r deployment=%r",
        req_id,
        client_ip,
        request.method,
        request.url.path,
        model,
        deployment,
    )

    if not authorization or authorization != config.api_key:
        log.warning(
            "Rejected req_id=%s from=%s reason=%s",
            req_id,
            client_ip,
            "missing-authorization" if not authorization else "key-mismatch",
        )
        return PlainTextResponse("Not allowed: Key Error", status_code=403)

    if config.require_model and not deployment:
        log.warning("Rejected req_id=%s reason=missing-model", req_id)
        return PlainTextResponse("Missing model", status_code=400)

    upstream_request = upstream_client.build_request(request.method, deployment, operation, body)
    client = upstream_client.open_client()
    try:
        resp = await upstream_client.send(client, upstream_request, req_id)
        return await relay_upstream_response(client, resp, request.method, req_id)
    except Exception:
        with contextlib.suppress(Exception):
            await client.aclose()
        raise


async def relay_upstream_response(
    client: httpx.AsyncClient,
    resp: httpx.Response,
    method: str,
    req_id: str,
) -> Response:
    """
    Relay the upstream status and headers with the body piped through the reframer.

    A response without a body cannot be relayed and raises UpstreamBodyMissing.
    The upstream response and client are closed once the body is done or aborted.
    """
    if not response_has_body(method, resp.status_code):
        await resp.aclose()
        raise UpstreamBodyMissing(resp.status_code, str(resp.request.url))

    async def gen() -> AsyncIterator[bytes]:
        try:
            async with contextlib.aclosing(reframe(resp.aiter_bytes(), config.pacing_delay_s)) as frames:
                async for chunk in frames:
                    yield chunk
            log.info("Stream relayed req_id=%s status=%s", req_id, resp.status_code)
        except Exception as e:
            log.warning("Stream relay aborted req_id=%s err=%r", req_id, e)
            raise
        finally:
            with contextlib.suppress(Exception):
                await resp.aclose()
            with contextlib.suppress(Exception):
                await client.aclose()

    relay = RelayStreamingResponse(gen(), status_code=resp.status_code)
    for key, value in resp.headers.multi_items():
        if key.lower() not in _DROPPED_RESPONSE_HEADERS:
            relay.headers.append(key, value)
    return relay


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.port, reload=False)
