from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from mcp_oauth.common.exceptions import invalid_request
from mcp_oauth.services.oauth import oauth_services
from mcp_oauth.core.db import get_session
from mcp_oauth.models.dto.oauth_models import (
    HealthResponse,
    ProtectedResourceMetadata,
    AuthorizationServerMetadata,
    AuthorizeRequest,
    OAuthErrorResponse,
    TokenRequest,
    TokenResponse,
)

router = APIRouter()

_ERROR_RESPONSES = {
    400: {"model": OAuthErrorResponse},
    401: {"model": OAuthErrorResponse},
}

# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse, include_in_schema=False)
def health():
    return oauth_services.health()


@router.get(
    "/.well-known/oauth-protected-resource",
    response_model=ProtectedResourceMetadata,
)
async def protected_resource_metadata(
    request: Request,
    db: AsyncSession = Depends(get_session),
):
    return await oauth_services.protected_resource_metadata(request, db)


@router.get(
    "/.well-known/oauth-authorization-server",
    response_model=AuthorizationServerMetadata,
)
def authorization_server_metadata(request: Request):
    return oauth_services.authorization_server_metadata(request)

# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

@router.get("/oauth/authorize", responses=_ERROR_RESPONSES)
async def authorize(
    params: AuthorizeRequest = Depends(),
    db: AsyncSession = Depends(get_session),
):
    return await oauth_services.authorize(db, params)

# ---------------------------------------------------------------------------
# Token endpoint
# ---------------------------------------------------------------------------

async def _read_token_request(request: Request) -> TokenRequest:
    """Accept both form-encoded and JSON bodies."""
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            raise invalid_request("Malformed JSON body")
        if not isinstance(data, dict):
            raise invalid_request("Request body must be an object")
    else:
        data = dict(await request.form())

    return TokenRequest(**{
        key: value for key, value in data.items() if isinstance(value, str)
    })


@router.post("/oauth/token", response_model=TokenResponse, responses=_ERROR_RESPONSES)
async def token(
    request: Request,
    db: AsyncSession = Depends(get_session),
):
    body = await _read_token_request(request)
    result = await oauth_services.issue_token(
        db,
        body,
        authorization=request.headers.get("authorization"),
    )
    return JSONResponse(
        content=result,
        headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
    )
