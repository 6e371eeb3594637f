import logging

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from mcp_oauth.common.exceptions import AppException
from mcp_oauth.core.config import settings
from mcp_oauth.middleware.bearer_auth import AuthContext

logger = logging.getLogger(__name__)

router = APIRouter(include_in_schema=False)

_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# Hop-by-hop and auth headers are never copied between client and upstream
_STRIPPED_REQUEST_HEADERS = {"host", "authorization", "content-length", "connection"}
_STRIPPED_RESPONSE_HEADERS = {"content-length", "transfer-encoding", "connection"}


def get_upstream_client() -> httpx.AsyncClient:
    """
    Client for the upstream MCP server.

    The caller owns it: it has to outlive the route so streamed responses can
    be relayed, and is closed once the response body has been sent.
    """
    if not settings.UPSTREAM_URL:
        raise AppException(message="Upstream MCP server not configured", status_code=503)

    return httpx.AsyncClient(
        base_url=settings.UPSTREAM_URL,
        timeout=settings.UPSTREAM_TIMEOUT,
    )


async def _forward(request: Request, client: httpx.AsyncClient) -> StreamingResponse:
    auth: AuthContext | None = getattr(request.state, "auth", None)
    if auth is None:
        await client.aclose()
        # The bearer gate did not run for this path
        raise AppException(message="Unauthorized", status_code=401)

    headers = {
        key: value
        for key, value in request.headers.items()
        if key.lower() not in _STRIPPED_REQUEST_HEADERS
    }
    headers["Authorization"] = f"Bearer {auth.credential}"

    upstream_request = client.build_request(
        request.method,
        request.url.path,
        params=request.query_params,
        content=await request.body(),
        headers=headers,
    )

    try:
        # SSE responses never finish on their own, so the body is relayed as it arrives
        upstream = await client.send(upstream_request, stream=True)
    except httpx.HTTPError as exc:
        await client.aclose()
        logger.error("Upstream request to %s failed: %s", request.url.path, exc)
        raise AppException(message="Upstream MCP server unavailable", status_code=502)

    logger.debug(
        "Forwarded %s %s (%s) -> %d",
        request.method,
        request.url.path,
        auth.method,
        upstream.status_code,
    )

    async def close_upstream():
        await upstream.aclose()
        await client.aclose()

    return StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        headers={
            key: value
            for key, value in upstream.headers.items()
            if key.lower() not in _STRIPPED_RESPONSE_HEADERS
        },
        background=BackgroundTask(close_upstream),
    )


@router.api_route("/api/{plugin_id}/mcp", methods=_METHODS)
async def mcp_root(
    plugin_id: str,
    request: Request,
    client: httpx.AsyncClient = Depends(get_upstream_client),
):
    return await _forward(request, client)


@router.api_route("/api/{plugin_id}/mcp/{path:path}", methods=_METHODS)
async def mcp_path(
    plugin_id: str,
    path: str,
    request: Request,
    client: httpx.AsyncClient = Depends(get_upstream_client),
):
    return await _forward(request, client)
