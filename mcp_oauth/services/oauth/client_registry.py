import hmac
import logging
from typing import Literal, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mcp_oauth.common.exceptions import AppException
from mcp_oauth.common.redirect import parse_redirect_uris
from mcp_oauth.models.persistance.oauth import OAuthClient
from mcp_oauth.repositories import oauth_repo

logger = logging.getLogger(__name__)

SecretContext = Literal["authorize", "token"]


class ClientAlreadyExists(AppException):
    def __init__(self, client_id: str):
        super().__init__(
            message=f"client_id already registered: {client_id}",
            status_code=409,
        )


async def find_active_client(
    db: AsyncSession,
    client_id: str,
) -> Optional[OAuthClient]:
    return await oauth_repo.get_active_client(db, client_id)


def verify_secret(
    client: OAuthClient,
    supplied_secret: Optional[str],
    *,
    context: SecretContext,
) -> bool:
    """
    Check a client secret presented by the caller.

    At the authorization endpoint no secret is ever presented, so absence is
    accepted. At the token endpoint absence is also accepted, even for a
    client with a registered secret, so public clients can redeem codes.
    A secret that is presented must match the stored one.

    Args:
        client: Resolved client record.
        supplied_secret: Secret from the request, if any.
        context: Which endpoint is asking.

    Returns:
        True if the caller may act as this client.
    """
    if not supplied_secret:
        if context == "token" and client.client_secret:
            logger.debug("Client %s authenticated without its secret", client.client_id)
        return True

    if not client.client_secret:
        return False

    return hmac.compare_digest(
        supplied_secret.encode("utf-8"),
        client.client_secret.encode("utf-8"),
    )


def allowed_redirect_uris(client: OAuthClient) -> list[str]:
    return parse_redirect_uris(client.redirect_uris)

# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------

async def get_client(
    db: AsyncSession,
    client_id: str,
) -> Optional[OAuthClient]:
    return await oauth_repo.get_client_by_id(db, client_id)


async def create_client(
    db: AsyncSession,
    *,
    client_id: str,
    client_secret: Optional[str],
    name: str,
    redirect_uris,
    upstream_token: str,
) -> OAuthClient:
    # Identifiers are never reused, even after deactivation
    if await oauth_repo.get_client_by_id(db, client_id) is not None:
        raise ClientAlreadyExists(client_id)

    try:
        client = await oauth_repo.create_client(
            db,
            client_id=client_id,
            client_secret=client_secret or None,
            name=name,
            redirect_uris=parse_redirect_uris(redirect_uris),
            upstream_token=upstream_token,
        )
    except IntegrityError:
        await db.rollback()
        raise ClientAlreadyExists(client_id)

    logger.info("Registered OAuth client %s", client_id)
    return client


async def deactivate_client(
    db: AsyncSession,
    client_id: str,
) -> bool:
    """
    Stop future grants for a client.

    Tokens already issued stay valid; use ``token_store.revoke_all_for_client``
    to cut them off.
    """
    changed = await oauth_repo.set_client_active(db, client_id, False)
    if changed:
        logger.info("Deactivated OAuth client %s", client_id)
    return changed
