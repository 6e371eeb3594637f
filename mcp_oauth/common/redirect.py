import json
import re
from typing import Any, Iterable, List


def _compile(pattern: str) -> re.Pattern:
    # "*" matches any run of characters within a single path segment
    escaped = re.escape(pattern).replace(r"\*", "[^/]*")
    return re.compile(escaped)


def matches(candidate: str, patterns: Iterable[str]) -> bool:
    """
    Check a redirect URI against a client's allow-list.

    Patterns are compared literally except for ``*``, which matches any run
    of characters that does not contain ``/``. The whole candidate must
    match. No normalization is applied, so scheme, host, case and trailing
    slashes must be registered exactly as clients send them.

    Args:
        candidate: Redirect URI supplied by the client.
        patterns: Registered redirect URI patterns.

    Returns:
        True if any pattern matches the candidate in full.
    """
    return any(_compile(pattern).fullmatch(candidate) for pattern in patterns)


def parse_redirect_uris(value: Any) -> List[str]:
    """
    Normalize a stored redirect URI allow-list to a list of strings.

    Accepts a native list, a JSON-encoded list, or a bare string which is
    treated as a single pattern.
    """
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]

    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return [value]
        if isinstance(decoded, list):
            return [str(v) for v in decoded]
        if isinstance(decoded, str):
            return [decoded]
        return [value]

    return []
