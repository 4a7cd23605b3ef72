"""Canonical HTTP and stream endpoint forms from free-form operator input."""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from botwatch.config import EndpointConfig

_HTTP_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_STREAM_SCHEME_RE = re.compile(r"^wss?://", re.IGNORECASE)

STREAM_SUFFIX = "/ws"


def normalize_http_endpoint(raw: str | None) -> str:
    """Return ``scheme://host[:port]/path`` without trailing slashes, or "" if unusable."""
    text = str(raw or "").strip()
    if not text:
        return ""

    with_scheme = text if _HTTP_SCHEME_RE.match(text) else f"http://{text}"

    try:
        parsed = urlsplit(with_scheme)
        # .port raises ValueError for non-numeric or out-of-range ports
        _ = parsed.port
    except ValueError:
        return ""

    if not parsed.hostname or any(ch.isspace() for ch in parsed.netloc):
        return ""

    return f"{parsed.scheme.lower()}://{parsed.netloc}{parsed.path}".rstrip("/")


def join_url(base: str, suffix: str) -> str:
    """Join a base endpoint and a path with exactly one slash between them."""
    suffix = suffix if suffix.startswith("/") else f"/{suffix}"
    return f"{base.rstrip('/')}{suffix}"


def _http_to_stream(url: str) -> str:
    return re.sub(r"^http", "ws", url, count=1, flags=re.IGNORECASE)


def to_stream_endpoint(config: EndpointConfig | None) -> str:
    """Resolve the streaming endpoint, deriving it from the API endpoint when unset."""
    if config is None:
        return ""

    explicit = str(config.stream_endpoint or "").strip()
    if explicit:
        if _STREAM_SCHEME_RE.match(explicit):
            return explicit
        if _HTTP_SCHEME_RE.match(explicit):
            return _http_to_stream(explicit)
        return f"ws://{explicit.lstrip('/')}"

    api = normalize_http_endpoint(config.api_endpoint)
    if not api:
        return ""
    return f"{_http_to_stream(api)}{STREAM_SUFFIX}"
