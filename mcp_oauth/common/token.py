import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from mcp_oauth.core.config import settings


def utc_now() -> datetime:
    """
    Get the current UTC time.

    Returns:
        A timezone-aware datetime in UTC.
    """
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """
    Attach UTC to a naive datetime read back from the database.

    SQLite drops tzinfo on round-trip; every stored timestamp is UTC.

    Args:
        dt: A naive or aware datetime.

    Returns:
        A timezone-aware datetime in UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def is_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    """
    Check whether an absolute expiry timestamp has passed.

    Args:
        expires_at: Stored expiry timestamp.
        now: Reference time, defaults to the current UTC time.

    Returns:
        True if ``expires_at`` is strictly before ``now``.
    """
    return as_utc(expires_at) < (now or utc_now())


class TokenFactory:
    """
    Generates opaque random credentials and their expiry timestamps.

    Codes, access tokens and refresh tokens are independent random values
    of ``TOKEN_BYTES`` bytes, hex-encoded. They carry no claims; every
    lookup goes through the database.
    """

    TOKEN_BYTES: int = settings.TOKEN_BYTES

    CODE_TTL: int = settings.CODE_TTL
    ACCESS_TTL: int = settings.ACCESS_TOKEN_TTL
    REFRESH_TTL: int = settings.REFRESH_TOKEN_TTL

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _random_value(self) -> str:
        return secrets.token_hex(self.TOKEN_BYTES)

    @staticmethod
    def _expiry(ttl_seconds: int, now: Optional[datetime] = None) -> datetime:
        return (now or utc_now()) + timedelta(seconds=ttl_seconds)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def new_code(self) -> str:
        return self._random_value()

    def new_access_token(self) -> str:
        return self._random_value()

    def new_refresh_token(self) -> str:
        return self._random_value()

    def code_expiry(self, now: Optional[datetime] = None) -> datetime:
        return self._expiry(self.CODE_TTL, now)

    def access_expiry(self, now: Optional[datetime] = None) -> datetime:
        return self._expiry(self.ACCESS_TTL, now)

    def refresh_expiry(self, now: Optional[datetime] = None) -> datetime:
        return self._expiry(self.REFRESH_TTL, now)
