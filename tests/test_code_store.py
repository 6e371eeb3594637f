"""Tests for authorization code issuance and single-use redemption."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select, update

from mcp_oauth.common.exceptions import OAuthException
from mcp_oauth.common.token import as_utc, utc_now
from mcp_oauth.models.persistance.oauth import AuthorizationCode
from mcp_oauth.services.oauth import code_store

from conftest import ACME_REDIRECT


async def _expire(session, code: str):
    await session.execute(
        update(AuthorizationCode)
        .where(AuthorizationCode.code == code)
        .values(expires_at=utc_now() - timedelta(seconds=1))
    )
    await session.commit()


class TestIssue:
    async def test_issue_persists_unused_code(self, session, acme):
        before = utc_now()
        auth_code = await code_store.issue(session, "acme", ACME_REDIRECT)

        assert len(auth_code.code) == 64
        int(auth_code.code, 16)
        assert auth_code.used is False
        assert auth_code.redirect_uri == ACME_REDIRECT

        expires_at = as_utc(auth_code.expires_at)
        assert before + timedelta(minutes=10) <= expires_at <= utc_now() + timedelta(minutes=10)

    async def test_codes_are_unique(self, session, acme):
        first = await code_store.issue(session, "acme", ACME_REDIRECT)
        second = await code_store.issue(session, "acme", ACME_REDIRECT)
        assert first.code != second.code

    async def test_pkce_fields_stored_verbatim(self, session, acme):
        auth_code = await code_store.issue(
            session, "acme", ACME_REDIRECT, code_challenge="abc", code_challenge_method="S256"
        )
        assert auth_code.code_challenge == "abc"
        assert auth_code.code_challenge_method == "S256"


class TestRedeem:
    async def test_redeem_marks_used(self, session, acme):
        auth_code = await code_store.issue(session, "acme", ACME_REDIRECT)
        redeemed = await code_store.redeem(session, auth_code.code, "acme", ACME_REDIRECT)
        assert redeemed.id == auth_code.id

        stored = (
            await session.execute(
                select(AuthorizationCode.used).where(AuthorizationCode.id == auth_code.id)
            )
        ).scalar_one()
        assert stored is True

    async def test_second_redeem_fails(self, session, acme):
        auth_code = await code_store.issue(session, "acme", ACME_REDIRECT)
        await code_store.redeem(session, auth_code.code, "acme", ACME_REDIRECT)

        with pytest.raises(OAuthException) as exc:
            await code_store.redeem(session, auth_code.code, "acme", ACME_REDIRECT)
        assert exc.value.error == "invalid_grant"

    async def test_unknown_code(self, session, acme):
        with pytest.raises(OAuthException) as exc:
            await code_store.redeem(session, "0" * 64, "acme", ACME_REDIRECT)
        assert exc.value.error == "invalid_grant"

    async def test_code_bound_to_client(self, session, acme, chat_client):
        auth_code = await code_store.issue(session, "acme", ACME_REDIRECT)
        with pytest.raises(OAuthException) as exc:
            await code_store.redeem(session, auth_code.code, "chat-assistant", ACME_REDIRECT)
        assert exc.value.error == "invalid_grant"

        # Still redeemable by its owner
        await code_store.redeem(session, auth_code.code, "acme", ACME_REDIRECT)

    async def test_expired_code(self, session, acme):
        auth_code = await code_store.issue(session, "acme", ACME_REDIRECT)
        await _expire(session, auth_code.code)

        with pytest.raises(OAuthException) as exc:
            await code_store.redeem(session, auth_code.code, "acme", ACME_REDIRECT)
        assert exc.value.error == "invalid_grant"
        assert exc.value.description == "Authorization code expired"

    @pytest.mark.parametrize("redirect_uri", ["https://acme.test/cb/", "https://acme.test/other", None])
    async def test_redirect_uri_must_be_identical(self, session, acme, redirect_uri):
        auth_code = await code_store.issue(session, "acme", ACME_REDIRECT)
        with pytest.raises(OAuthException) as exc:
            await code_store.redeem(session, auth_code.code, "acme", redirect_uri)
        assert exc.value.error == "invalid_grant"
        assert exc.value.description == "redirect_uri mismatch"

    async def test_concurrent_redemption_succeeds_once(self, session_factory, session, acme):
        auth_code = await code_store.issue(session, "acme", ACME_REDIRECT)

        async def attempt():
            async with session_factory() as db:
                try:
                    await code_store.redeem(db, auth_code.code, "acme", ACME_REDIRECT)
                    return "ok"
                except OAuthException as exc:
                    return exc.error

        results = await asyncio.gather(*(attempt() for _ in range(4)))
        assert results.count("ok") == 1
        assert results.count("invalid_grant") == 3
