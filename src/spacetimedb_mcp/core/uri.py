"""Endpoint URI normalization.

Callers hand us whatever URI they have (usually the WebSocket one printed by
``spacetime start``). The request/response transport and the streaming
transport each need their own form of it.
"""

from __future__ import annotations

# scheme -> (request/response scheme, streaming scheme)
# wss maps to plain http: the HTTP API sits on an unencrypted internal port
# behind the same host when a reverse proxy terminates TLS for the stream.
_SCHEME_MAP: dict[str, tuple[str, str]] = {
    "http": ("http", "ws"),
    "https": ("https", "wss"),
    "ws": ("http", "ws"),
    "wss": ("http", "wss"),
}


def split_scheme(uri: str) -> tuple[str, str]:
    """Split ``uri`` into a lowercased scheme and the remainder after ``://``.

    Raises:
        ValueError: If the URI has no scheme or an unsupported one
    """
    if "://" not in uri:
        raise ValueError(
            f"Invalid URI '{uri}'. Expected one of: "
            f"{', '.join(s + '://' for s in _SCHEME_MAP)}"
        )
    scheme, rest = uri.split("://", 1)
    scheme = scheme.lower()
    if scheme not in _SCHEME_MAP:
        raise ValueError(
            f"Unsupported URI scheme '{scheme}'. Supported: {', '.join(_SCHEME_MAP)}"
        )
    return scheme, rest


def normalize_uri(uri: str) -> tuple[str, str]:
    """Map a user-supplied endpoint URI to its (request, stream) forms.

    Only the scheme changes; host, port and path are left untouched (a
    trailing slash is dropped so endpoint paths can be appended).

    Examples:
        "ws://localhost:3000"   -> ("http://localhost:3000", "ws://localhost:3000")
        "wss://example.com"     -> ("http://example.com", "wss://example.com")
        "https://example.com"   -> ("https://example.com", "wss://example.com")

    Args:
        uri: URI using http, https, ws or wss

    Returns:
        Tuple of (request/response URI, streaming URI)

    Raises:
        ValueError: If the scheme is missing or unsupported
    """
    scheme, rest = split_scheme(uri.strip())
    rest = rest.rstrip("/")
    http_scheme, ws_scheme = _SCHEME_MAP[scheme]
    return f"{http_scheme}://{rest}", f"{ws_scheme}://{rest}"
