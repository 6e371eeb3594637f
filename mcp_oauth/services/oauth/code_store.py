import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from mcp_oauth.common.exceptions import invalid_grant
from mcp_oauth.common.token import TokenFactory, is_expired, utc_now
from mcp_oauth.models.persistance.oauth import AuthorizationCode
from mcp_oauth.repositories import oauth_repo

logger = logging.getLogger(__name__)

_tokens = TokenFactory()


async def issue(
    db: AsyncSession,
    client_id: str,
    redirect_uri: str,
    code_challenge: Optional[str] = None,
    code_challenge_method: Optional[str] = None,
) -> AuthorizationCode:
    """
    Create a single-use authorization code bound to a client and redirect URI.

    PKCE fields are stored verbatim and are not checked at redemption.
    """
    auth_code = await oauth_repo.create_code(
        db,
        code=_tokens.new_code(),
        client_id=client_id,
        redirect_uri=redirect_uri,
        code_challenge=code_challenge or None,
        code_challenge_method=code_challenge_method or None,
        expires_at=_tokens.code_expiry(),
    )
    logger.info("Issued authorization code for client %s", client_id)
    return auth_code


async def redeem(
    db: AsyncSession,
    code: str,
    client_id: str,
    redirect_uri: Optional[str],
    commit: bool = True,
) -> AuthorizationCode:
    """
    Consume an authorization code.

    Args:
        db: Database session.
        code: Code value presented at the token endpoint.
        client_id: Client that authenticated at the token endpoint.
        redirect_uri: Redirect URI presented at the token endpoint; must equal
            the one stored with the code.
        commit: Pass False to leave the consumption uncommitted, so that it
            only lands together with the token pair the caller issues next.

    Returns:
        The consumed code record.

    Raises:
        OAuthException: ``invalid_grant`` if the code is unknown, belongs to
            another client, was already used, has expired, or the redirect
            URI differs. Exactly one of several concurrent redemptions wins.
    """
    auth_code = await oauth_repo.get_unused_code(db, code, client_id)
    if auth_code is None:
        logger.warning("Rejected unknown or used authorization code for client %s", client_id)
        raise invalid_grant("Invalid authorization code")

    if is_expired(auth_code.expires_at, utc_now()):
        logger.warning("Rejected expired authorization code for client %s", client_id)
        raise invalid_grant("Authorization code expired")

    if auth_code.redirect_uri != redirect_uri:
        logger.warning("Rejected authorization code for client %s: redirect_uri mismatch", client_id)
        raise invalid_grant("redirect_uri mismatch")

    if not await oauth_repo.mark_code_used(db, auth_code.id, commit=commit):
        if not commit:
            await db.rollback()
        logger.warning("Authorization code for client %s was redeemed concurrently", client_id)
        raise invalid_grant("Invalid authorization code")

    return auth_code
