from datetime import datetime, timezone

from sqlalchemy import (
    String,
    Integer,
    Text,
    JSON,
    Boolean,
    DateTime,
)
from sqlalchemy.orm import Mapped, mapped_column

from mcp_oauth.core.db import Base


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OAuthClient(Base):
    __tablename__ = "oauth_clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Unique across active and inactive clients; never reused
    client_id: Mapped[str] = mapped_column(
        String(128),
        unique=True,
        index=True,
        nullable=False,
    )

    # Public clients have no secret
    client_secret: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )

    # Normally a list; older rows may hold a JSON-encoded or bare string
    redirect_uris: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
    )

    # Opaque credential forwarded to protected resources
    upstream_token: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
    )


class AuthorizationCode(Base):
    __tablename__ = "oauth_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    code: Mapped[str] = mapped_column(
        String(128),
        unique=True,
        index=True,
        nullable=False,
    )

    client_id: Mapped[str] = mapped_column(
        String(128),
        index=True,
        nullable=False,
    )

    redirect_uri: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    # Stored as received, never verified
    code_challenge: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    code_challenge_method: Mapped[str | None] = mapped_column(
        String(16),
        nullable=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        index=True,
        nullable=False,
    )

    used: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
    )


class OAuthToken(Base):
    __tablename__ = "oauth_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    access_token: Mapped[str] = mapped_column(
        String(128),
        unique=True,
        index=True,
        nullable=False,
    )

    refresh_token: Mapped[str] = mapped_column(
        String(128),
        unique=True,
        index=True,
        nullable=False,
    )

    client_id: Mapped[str] = mapped_column(
        String(128),
        index=True,
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    refresh_expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        index=True,
        nullable=False,
    )

    revoked: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
    )


class McpEndpoint(Base):
    __tablename__ = "mcp_endpoints"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    plugin_id: Mapped[str] = mapped_column(
        String(128),
        index=True,
        nullable=False,
    )

    path: Mapped[str] = mapped_column(
        String(512),
        unique=True,
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
    )
