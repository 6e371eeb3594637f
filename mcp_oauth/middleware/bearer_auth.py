"""Bearer token gate for protected MCP routes.

Every request whose path satisfies one of the configured predicates must
carry ``Authorization: Bearer <value>``. The value is first looked up as an
OAuth access token; when that succeeds the owning client's upstream
credential is forwarded. Any other bearer value is forwarded as-is and left
for the upstream resource to accept or reject.

Downstream handlers read the outcome from ``request.state.auth``.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Literal, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.requests import HTTPConnection
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from mcp_oauth.common.urls import get_resource_metadata_url
from mcp_oauth.services.oauth import token_store

logger = logging.getLogger(__name__)

RoutePredicate = Callable[[str], bool]
AuthMethod = Literal["oauth", "api-token"]


@dataclass(frozen=True)
class AuthContext:
    """Credential to forward upstream and how it was obtained."""

    credential: str
    method: AuthMethod
    client_id: Optional[str] = None


def path_pattern(pattern: str) -> RoutePredicate:
    compiled = re.compile(pattern)
    return lambda path: compiled.match(path) is not None


def extract_bearer_token(header: Optional[str]) -> Optional[str]:
    if not header or not header.startswith("Bearer "):
        return None
    token = header[7:].strip()
    return token or None


class BearerAuthMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        protected_routes: Iterable[RoutePredicate],
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self.app = app
        self.protected_routes: Tuple[RoutePredicate, ...] = tuple(protected_routes)
        self.session_factory = session_factory

    def is_protected(self, path: str) -> bool:
        return any(predicate(path) for predicate in self.protected_routes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.is_protected(scope["path"]):
            await self.app(scope, receive, send)
            return

        conn = HTTPConnection(scope)
        logger.debug("Protecting MCP endpoint %s", conn.url.path)

        token = extract_bearer_token(conn.headers.get("authorization"))
        if token is None:
            response = JSONResponse(
                status_code=401,
                content={
                    "error": "Unauthorized",
                    "message": "No authorization token provided",
                },
                headers={
                    "WWW-Authenticate": f'Bearer resource_metadata="{get_resource_metadata_url(conn)}"',
                },
            )
            await response(scope, receive, send)
            return

        scope.setdefault("state", {})["auth"] = await self.authenticate(token)
        await self.app(scope, receive, send)

    async def authenticate(self, token: str) -> AuthContext:
        try:
            async with self.session_factory() as db:
                result = await token_store.validate_access(db, token)
        except SQLAlchemyError as exc:
            logger.error("OAuth token lookup failed, forwarding as API token: %s", exc)
            result = None

        if result is not None:
            logger.debug("Authenticated OAuth client %s", result.client_id)
            return AuthContext(
                credential=result.upstream_token,
                method="oauth",
                client_id=result.client_id,
            )

        return AuthContext(credential=token, method="api-token")
