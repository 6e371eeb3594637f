import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from mcp_oauth.common.exceptions import invalid_grant
from mcp_oauth.common.token import TokenFactory, is_expired, utc_now
from mcp_oauth.models.persistance.oauth import OAuthToken
from mcp_oauth.repositories import oauth_repo

logger = logging.getLogger(__name__)

_tokens = TokenFactory()


@dataclass(frozen=True)
class TokenValidation:
    """Outcome of a successful access token check."""

    client_id: str
    upstream_token: str


@dataclass(frozen=True)
class SweepResult:
    tokens_removed: int
    codes_removed: int


async def issue(
    db: AsyncSession,
    client_id: str,
) -> OAuthToken:
    """Create a fresh access/refresh pair for a client."""
    now = utc_now()
    token = await oauth_repo.create_token(
        db,
        access_token=_tokens.new_access_token(),
        refresh_token=_tokens.new_refresh_token(),
        client_id=client_id,
        expires_at=_tokens.access_expiry(now),
        refresh_expires_at=_tokens.refresh_expiry(now),
    )
    logger.info("Issued token pair for client %s", client_id)
    return token


async def validate_access(
    db: AsyncSession,
    access_token: str,
) -> Optional[TokenValidation]:
    """
    Look up a live access token.

    Only the access expiry is checked; the refresh expiry is irrelevant here.
    The owning client's active flag is not consulted, so deactivating a client
    leaves its tokens usable until they are revoked.

    Returns:
        The owning client and its upstream credential, or None.
    """
    token = await oauth_repo.get_live_token_by_access(db, access_token)
    if token is None:
        return None

    if is_expired(token.expires_at):
        logger.debug("Access token for client %s has expired", token.client_id)
        return None

    client = await oauth_repo.get_client_by_id(db, token.client_id)
    if client is None:
        logger.warning("Access token references missing client %s", token.client_id)
        return None

    return TokenValidation(client_id=client.client_id, upstream_token=client.upstream_token)


async def rotate(
    db: AsyncSession,
    refresh_token: str,
    client_id: str,
) -> OAuthToken:
    """
    Exchange a refresh token for a new pair, revoking the old one.

    Refresh tokens are single-use: replaying one that was already rotated
    always fails. The revocation and the new pair are committed together, so a
    storage failure while issuing leaves the old refresh token usable.

    Raises:
        OAuthException: ``invalid_grant`` if the refresh token is unknown,
            revoked, owned by another client, expired, or lost a race with a
            concurrent rotation.
    """
    token = await oauth_repo.get_live_token_by_refresh(db, refresh_token, client_id)
    if token is None:
        logger.warning("Rejected unknown or revoked refresh token for client %s", client_id)
        raise invalid_grant("Invalid refresh token")

    if is_expired(token.refresh_expires_at):
        logger.warning("Rejected expired refresh token for client %s", client_id)
        raise invalid_grant("Refresh token expired")

    if not await oauth_repo.revoke_token(db, token.id, commit=False):
        await db.rollback()
        logger.warning("Refresh token for client %s was rotated concurrently", client_id)
        raise invalid_grant("Invalid refresh token")

    logger.info("Rotated refresh token for client %s", client_id)
    return await issue(db, client_id)


async def revoke_all_for_client(
    db: AsyncSession,
    client_id: str,
) -> int:
    count = await oauth_repo.revoke_client_tokens(db, client_id)
    logger.info("Revoked %d token(s) for client %s", count, client_id)
    return count


async def sweep_expired(db: AsyncSession) -> SweepResult:
    """
    Delete expired codes and tokens past their refresh expiry.

    Both deletes filter on a fixed ``now``, so rows issued while the sweep
    runs are never candidates.
    """
    now = utc_now()
    codes_removed = await oauth_repo.delete_expired_codes(db, now)
    tokens_removed = await oauth_repo.delete_expired_tokens(db, now)
    return SweepResult(tokens_removed=tokens_removed, codes_removed=codes_removed)
