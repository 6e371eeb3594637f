import hmac
import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mcp_oauth.common.exceptions import AppException
from mcp_oauth.common.redirect import parse_redirect_uris
from mcp_oauth.core.config import settings
from mcp_oauth.core.db import get_session
from mcp_oauth.middleware.bearer_auth import extract_bearer_token
from mcp_oauth.models.dto.oauth_models import (
    ClientCreateRequest,
    ClientResponse,
    EndpointCheckResponse,
    EndpointRegisterRequest,
    EndpointResponse,
    RevokeResponse,
    SweepResponse,
)
from mcp_oauth.models.persistance.oauth import OAuthClient
from mcp_oauth.services.endpoints import endpoint_services
from mcp_oauth.services.oauth import client_registry, token_store

logger = logging.getLogger(__name__)


def require_admin(request: Request) -> None:
    """Admin calls must present ``ADMIN_TOKEN`` as a bearer token."""
    if not settings.ADMIN_TOKEN:
        raise AppException(message="Not found", status_code=404)

    token = extract_bearer_token(request.headers.get("authorization")) or ""
    if not hmac.compare_digest(token.encode("utf-8"), settings.ADMIN_TOKEN.encode("utf-8")):
        raise AppException(
            message="Invalid admin token",
            status_code=401,
            headers={"WWW-Authenticate": "Bearer"},
        )


router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)], tags=["admin"])


def _client_response(client: OAuthClient) -> ClientResponse:
    return ClientResponse(
        client_id=client.client_id,
        name=client.name,
        redirect_uris=parse_redirect_uris(client.redirect_uris),
        active=client.active,
        has_secret=bool(client.client_secret),
    )

# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

@router.post("/clients", response_model=ClientResponse, status_code=201)
async def create_client(
    payload: ClientCreateRequest,
    db: AsyncSession = Depends(get_session),
):
    client = await client_registry.create_client(
        db,
        client_id=payload.client_id,
        client_secret=payload.client_secret,
        name=payload.name,
        redirect_uris=payload.redirect_uris,
        upstream_token=payload.upstream_token,
    )
    return _client_response(client)


@router.get("/clients/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: str,
    db: AsyncSession = Depends(get_session),
):
    client = await client_registry.get_client(db, client_id)
    if client is None:
        raise AppException(message=f"Unknown client_id: {client_id}", status_code=404)
    return _client_response(client)


@router.post("/clients/{client_id}/deactivate", response_model=ClientResponse)
async def deactivate_client(
    client_id: str,
    db: AsyncSession = Depends(get_session),
):
    if not await client_registry.deactivate_client(db, client_id):
        raise AppException(message=f"Unknown client_id: {client_id}", status_code=404)
    client = await client_registry.get_client(db, client_id)
    return _client_response(client)


@router.post("/clients/{client_id}/revoke-tokens", response_model=RevokeResponse)
async def revoke_client_tokens(
    client_id: str,
    db: AsyncSession = Depends(get_session),
):
    revoked = await token_store.revoke_all_for_client(db, client_id)
    return RevokeResponse(client_id=client_id, revoked=revoked)

# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/endpoints", response_model=EndpointResponse)
async def register_endpoint(
    payload: EndpointRegisterRequest,
    db: AsyncSession = Depends(get_session),
):
    return await endpoint_services.register(
        db,
        name=payload.name,
        plugin_id=payload.plugin_id,
        path=payload.path,
        description=payload.description,
    )


@router.get("/endpoints", response_model=list[EndpointResponse])
async def list_endpoints(
    plugin_id: str | None = None,
    active_only: bool = True,
    db: AsyncSession = Depends(get_session),
):
    if plugin_id:
        return await endpoint_services.get_by_plugin(db, plugin_id, active_only=active_only)
    return await endpoint_services.get_all(db, active_only=active_only)


@router.get("/endpoints/check", response_model=EndpointCheckResponse)
async def check_endpoint(
    path: str = Query(...),
    db: AsyncSession = Depends(get_session),
):
    """Report whether a request path falls under a registered endpoint."""
    protected = await endpoint_services.is_protected(db, path)
    return EndpointCheckResponse(path=path, protected=protected)


@router.delete("/endpoints")
async def unregister_endpoint(
    path: str = Query(...),
    db: AsyncSession = Depends(get_session),
):
    if not await endpoint_services.unregister(db, path):
        raise AppException(message=f"Unknown endpoint: {path}", status_code=404)
    return {"status": True, "message": f"Unregistered {path}"}

# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

@router.post("/sweep", response_model=SweepResponse)
async def sweep(db: AsyncSession = Depends(get_session)):
    result = await token_store.sweep_expired(db)
    logger.info(
        "Manual sweep removed %d token(s) and %d code(s)",
        result.tokens_removed,
        result.codes_removed,
    )
    return SweepResponse(tokens_removed=result.tokens_removed, codes_removed=result.codes_removed)
