from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    APP_NAME: str = "MCP OAuth Gateway"
    DEBUG: bool = False
    ENV: str = "development"
    HOST: str = "127.0.0.1"
    PORT: int = 1337

    # Fallback origin when neither forwarded headers nor Host are present
    SERVER_URL: str = "http://localhost:1337"

    # Path prefix under which the OAuth endpoints are mounted; also part of the issuer
    ISSUER_PATH: str = ""

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------
    DATABASE_URL: str = "sqlite+aiosqlite:///./mcp_oauth.db"

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------
    TOKEN_BYTES: int = 32

    CODE_TTL: int = 600  # 10 minutes
    ACCESS_TOKEN_TTL: int = 3600  # 1 hour
    REFRESH_TOKEN_TTL: int = 30 * 24 * 3600  # 30 days

    RESPONSE_TYPES_SUPPORTED: List[str] = ["code"]
    GRANT_TYPES_SUPPORTED: List[str] = ["authorization_code", "refresh_token"]
    TOKEN_ENDPOINT_AUTH_METHODS_SUPPORTED: List[str] = [
        "client_secret_post",
        "client_secret_basic",
    ]
    CODE_CHALLENGE_METHODS_SUPPORTED: List[str] = ["S256"]

    SWEEP_INTERVAL_MINUTES: int = 5

    # ------------------------------------------------------------------
    # Protected MCP routes
    # ------------------------------------------------------------------
    PROTECTED_PATH_PATTERN: str = r"^/api/[^/]+/mcp(/.*)?$"

    # Where authenticated MCP requests are forwarded; empty disables the proxy
    UPSTREAM_URL: str = ""
    UPSTREAM_TIMEOUT: float = 30.0

    # ------------------------------------------------------------------
    # Admin API (disabled when empty)
    # ------------------------------------------------------------------
    ADMIN_TOKEN: str = ""

    # ------------------------------------------------------------------
    # CORS / hosts
    # ------------------------------------------------------------------
    CORS_ALLOW_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_METHODS: List[str] = ["*"]
    CORS_ALLOW_HEADERS: List[str] = ["*"]
    ALLOWED_HOSTS: str = "*"

    # ------------------------------------------------------------------
    # Meta
    # ------------------------------------------------------------------
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Singleton settings object (import this everywhere)
settings = Settings()
