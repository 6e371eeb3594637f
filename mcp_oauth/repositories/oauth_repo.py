from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mcp_oauth.models.persistance.oauth import (
    AuthorizationCode,
    OAuthClient,
    OAuthToken,
)

# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

async def create_client(
    db: AsyncSession,
    *,
    client_id: str,
    client_secret: str | None,
    name: str,
    redirect_uris: list[str],
    upstream_token: str,
) -> OAuthClient:
    client = OAuthClient(
        client_id=client_id,
        client_secret=client_secret,
        name=name,
        redirect_uris=redirect_uris,
        upstream_token=upstream_token,
        active=True,
    )

    db.add(client)
    await db.commit()
    await db.refresh(client)
    return client


async def get_client_by_id(
    db: AsyncSession,
    client_id: str,
) -> OAuthClient | None:
    stmt = select(OAuthClient).where(OAuthClient.client_id == client_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_client(
    db: AsyncSession,
    client_id: str,
) -> OAuthClient | None:
    stmt = select(OAuthClient).where(
        OAuthClient.client_id == client_id,
        OAuthClient.active.is_(True),
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def set_client_active(
    db: AsyncSession,
    client_id: str,
    active: bool,
) -> bool:
    stmt = (
        update(OAuthClient)
        .where(OAuthClient.client_id == client_id)
        .values(active=active)
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount > 0

# ---------------------------------------------------------------------------
# Authorization codes
# ---------------------------------------------------------------------------

async def create_code(
    db: AsyncSession,
    *,
    code: str,
    client_id: str,
    redirect_uri: str,
    code_challenge: str | None,
    code_challenge_method: str | None,
    expires_at: datetime,
) -> AuthorizationCode:
    auth_code = AuthorizationCode(
        code=code,
        client_id=client_id,
        redirect_uri=redirect_uri,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
        expires_at=expires_at,
        used=False,
    )

    db.add(auth_code)
    await db.commit()
    await db.refresh(auth_code)
    return auth_code


async def get_unused_code(
    db: AsyncSession,
    code: str,
    client_id: str,
) -> AuthorizationCode | None:
    stmt = select(AuthorizationCode).where(
        AuthorizationCode.code == code,
        AuthorizationCode.client_id == client_id,
        AuthorizationCode.used.is_(False),
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def mark_code_used(
    db: AsyncSession,
    code_pk: int,
    commit: bool = True,
) -> bool:
    """
    Flip ``used`` only if it is still false. False means another request won.

    With ``commit=False`` the update stays in the open transaction so the
    caller can commit it together with the tokens it issues.
    """
    stmt = (
        update(AuthorizationCode)
        .where(
            AuthorizationCode.id == code_pk,
            AuthorizationCode.used.is_(False),
        )
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if commit:
        await db.commit()
    return result.rowcount == 1


async def delete_expired_codes(
    db: AsyncSession,
    now: datetime,
) -> int:
    stmt = (
        delete(AuthorizationCode)
        .where(AuthorizationCode.expires_at < now)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount

# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

async def create_token(
    db: AsyncSession,
    *,
    access_token: str,
    refresh_token: str,
    client_id: str,
    expires_at: datetime,
    refresh_expires_at: datetime,
) -> OAuthToken:
    token = OAuthToken(
        access_token=access_token,
        refresh_token=refresh_token,
        client_id=client_id,
        expires_at=expires_at,
        refresh_expires_at=refresh_expires_at,
        revoked=False,
    )

    db.add(token)
    await db.commit()
    await db.refresh(token)
    return token


async def get_live_token_by_access(
    db: AsyncSession,
    access_token: str,
) -> OAuthToken | None:
    stmt = select(OAuthToken).where(
        OAuthToken.access_token == access_token,
        OAuthToken.revoked.is_(False),
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_live_token_by_refresh(
    db: AsyncSession,
    refresh_token: str,
    client_id: str,
) -> OAuthToken | None:
    stmt = select(OAuthToken).where(
        OAuthToken.refresh_token == refresh_token,
        OAuthToken.client_id == client_id,
        OAuthToken.revoked.is_(False),
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def revoke_token(
    db: AsyncSession,
    token_pk: int,
    commit: bool = True,
) -> bool:
    """Flip ``revoked`` only if it is still false. False means another request won."""
    stmt = (
        update(OAuthToken)
        .where(
            OAuthToken.id == token_pk,
            OAuthToken.revoked.is_(False),
        )
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if commit:
        await db.commit()
    return result.rowcount == 1


async def revoke_client_tokens(
    db: AsyncSession,
    client_id: str,
) -> int:
    stmt = (
        update(OAuthToken)
        .where(
            OAuthToken.client_id == client_id,
            OAuthToken.revoked.is_(False),
        )
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount


async def delete_expired_tokens(
    db: AsyncSession,
    now: datetime,
) -> int:
    # Access expiry alone does not qualify; the refresh path still needs the row
    stmt = (
        delete(OAuthToken)
        .where(OAuthToken.refresh_expires_at < now)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount
