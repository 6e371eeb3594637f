import base64
import binascii
import logging
from typing import Optional, Tuple

from fastapi import Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from mcp_oauth.common.exceptions import (
    invalid_client,
    invalid_request,
    unsupported_grant_type,
    unsupported_response_type,
)
from mcp_oauth.common.redirect import matches
from mcp_oauth.common.urls import append_query, get_base_url, get_issuer
from mcp_oauth.core.config import settings
from mcp_oauth.models.dto.oauth_models import AuthorizeRequest, TokenRequest
from mcp_oauth.models.persistance.oauth import OAuthToken
from mcp_oauth.services.endpoints import endpoint_services
from mcp_oauth.services.oauth import client_registry, code_store, token_store

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Metadata / utility
# ---------------------------------------------------------------------------

def health():
    return {
        "status": "ok",
        "app": settings.APP_NAME,
        "env": settings.ENV,
    }


async def protected_resource_metadata(request: Request, db: AsyncSession):
    base_url = get_base_url(request)
    endpoints = await endpoint_services.get_all(db)
    resources = [f"{base_url}{endpoint.path}" for endpoint in endpoints]

    return {
        "resource": resources[0] if len(resources) == 1 else resources,
        "authorization_servers": [get_issuer(request)],
        "bearer_methods_supported": ["header"],
    }


def authorization_server_metadata(request: Request):
    issuer = get_issuer(request)
    return {
        "issuer": issuer,
        "authorization_endpoint": f"{issuer}/oauth/authorize",
        "token_endpoint": f"{issuer}/oauth/token",
        "response_types_supported": settings.RESPONSE_TYPES_SUPPORTED,
        "grant_types_supported": settings.GRANT_TYPES_SUPPORTED,
        "token_endpoint_auth_methods_supported": settings.TOKEN_ENDPOINT_AUTH_METHODS_SUPPORTED,
        "code_challenge_methods_supported": settings.CODE_CHALLENGE_METHODS_SUPPORTED,
    }

# ---------------------------------------------------------------------------
# Authorization endpoint
# ---------------------------------------------------------------------------

async def authorize(
    db: AsyncSession,
    params: AuthorizeRequest,
) -> RedirectResponse:
    if not params.client_id:
        raise invalid_request("client_id is required")

    if not params.redirect_uri:
        raise invalid_request("redirect_uri is required")

    if params.response_type != "code":
        raise unsupported_response_type("Only code response type is supported")

    client = await client_registry.find_active_client(db, params.client_id)
    if client is None:
        raise invalid_client("Unknown client_id")

    allowed = client_registry.allowed_redirect_uris(client)
    logger.debug("Checking redirect_uri %s against %d pattern(s)", params.redirect_uri, len(allowed))

    if not matches(params.redirect_uri, allowed):
        logger.warning(
            "Invalid redirect_uri %s for client %s (allowed: %s)",
            params.redirect_uri,
            client.client_id,
            ", ".join(allowed),
        )
        raise invalid_request("Invalid redirect_uri")

    auth_code = await code_store.issue(
        db,
        client_id=client.client_id,
        redirect_uri=params.redirect_uri,
        code_challenge=params.code_challenge,
        code_challenge_method=params.code_challenge_method,
    )

    query = {"code": auth_code.code}
    if params.state:
        query["state"] = params.state

    return RedirectResponse(
        append_query(params.redirect_uri, query),
        status_code=302,
    )

# ---------------------------------------------------------------------------
# Token endpoint
# ---------------------------------------------------------------------------

def parse_basic_auth(header: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Decode ``Authorization: Basic base64(id:secret)``.

    Returns (None, None) when the header is absent or malformed.
    """
    if not header or not header.startswith("Basic "):
        return None, None

    try:
        decoded = base64.b64decode(header[6:].strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        logger.debug("Ignoring malformed Basic authorization header")
        return None, None

    client_id, _, client_secret = decoded.partition(":")
    return client_id or None, client_secret or None


def resolve_client_credentials(
    body: TokenRequest,
    authorization: Optional[str],
) -> Tuple[Optional[str], Optional[str]]:
    """Body credentials first, filling whichever is missing from Basic auth."""
    client_id = body.client_id or None
    client_secret = body.client_secret or None

    if client_id is None or client_secret is None:
        basic_id, basic_secret = parse_basic_auth(authorization)
        client_id = client_id or basic_id
        client_secret = client_secret or basic_secret

    return client_id, client_secret


def _token_response(token: OAuthToken) -> dict:
    return {
        "access_token": token.access_token,
        "token_type": "Bearer",
        "expires_in": settings.ACCESS_TOKEN_TTL,
        "refresh_token": token.refresh_token,
    }


async def issue_token(
    db: AsyncSession,
    body: TokenRequest,
    authorization: Optional[str] = None,
) -> dict:
    client_id, client_secret = resolve_client_credentials(body, authorization)

    if not client_id:
        raise invalid_client("Client authentication required", status_code=401)

    client = await client_registry.find_active_client(db, client_id)
    if client is None or not client_registry.verify_secret(client, client_secret, context="token"):
        logger.warning("Client authentication failed for %s", client_id)
        raise invalid_client("Invalid client credentials", status_code=401)

    if body.grant_type == "authorization_code":
        return await _code_grant(db, client.client_id, body.code, body.redirect_uri)
    elif body.grant_type == "refresh_token":
        return await _refresh_grant(db, client.client_id, body.refresh_token)

    raise unsupported_grant_type("Unsupported grant type")

# ---------------------------------------------------------------------------
# Grants
# ---------------------------------------------------------------------------

async def _code_grant(
    db: AsyncSession,
    client_id: str,
    code: Optional[str],
    redirect_uri: Optional[str],
) -> dict:
    if not code:
        raise invalid_request("code is required")

    # Consumed only if the pair below is committed with it
    await code_store.redeem(db, code, client_id, redirect_uri, commit=False)
    token = await token_store.issue(db, client_id)
    return _token_response(token)


async def _refresh_grant(
    db: AsyncSession,
    client_id: str,
    refresh_token: Optional[str],
) -> dict:
    if not refresh_token:
        raise invalid_request("refresh_token is required")

    token = await token_store.rotate(db, refresh_token, client_id)
    return _token_response(token)
