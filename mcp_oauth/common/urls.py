from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from starlette.requests import HTTPConnection

from mcp_oauth.core.config import settings


def get_base_url(conn: HTTPConnection) -> str:
    """
    Build the public origin of this server for the current request.

    Forwarded headers win so tunnels and reverse proxies advertise their
    public address. Falls back to the request's own scheme and Host header,
    then to ``SERVER_URL``.
    """
    headers = conn.headers
    proto = headers.get("x-forwarded-proto") or conn.url.scheme
    host = headers.get("x-forwarded-host") or headers.get("host")

    if not host:
        return settings.SERVER_URL.rstrip("/")

    # Proxies may send a comma-separated chain; the first hop is the client-facing one
    proto = proto.split(",")[0].strip()
    host = host.split(",")[0].strip()
    return f"{proto}://{host}"


def get_issuer(conn: HTTPConnection) -> str:
    return f"{get_base_url(conn)}{settings.ISSUER_PATH}"


def get_resource_metadata_url(conn: HTTPConnection) -> str:
    return f"{get_issuer(conn)}/.well-known/oauth-protected-resource"


def append_query(url: str, params: dict) -> str:
    """
    Set query parameters on a URL, keeping the others it already carries.
    """
    parts = urlsplit(url)
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in params
    ]
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))
