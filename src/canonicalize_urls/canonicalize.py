"""URL canonicalization used as the dedup key for articles and sources."""

from __future__ import annotations

from typing import Iterable
from urllib.parse import parse_qsl, unquote_plus, urlsplit, urlunsplit

# Query parameter prefixes that are always tracking noise
TRACKING_PARAM_PREFIXES: tuple[str, ...] = ("utm_",)

# Known analytics / click-id keys (matched case-insensitively)
TRACKING_PARAMS: frozenset[str] = frozenset({
    "fbclid", "gclid", "msclkid", "dclid", "yclid", "igshid",
    "ref", "source", "_ga", "_gl", "mc_cid", "mc_eid",
    "_hsenc", "_hsmkt", "mkt_tok", "oly_anon_id", "oly_enc_id",
    "vero_id", "wickedid", "ncid",
})

# Parameters a redirect wrapper uses to carry its destination URL
REDIRECT_PARAMS: tuple[str, ...] = (
    "url", "q", "u", "target", "dest", "destination", "redirect", "redirect_url",
)

ALLOWED_SCHEMES = ("http", "https")
MAX_UNWRAP_DEPTH = 10


class InvalidURL(ValueError):
    """Raised when a string is not a usable absolute http(s) URL."""


def _is_absolute_http(value: str) -> bool:
    try:
        parts = urlsplit(value.strip())
    except ValueError:
        return False
    return parts.scheme.lower() in ALLOWED_SCHEMES and bool(parts.hostname)


def _is_tracking_param(key: str, denylist: frozenset[str]) -> bool:
    key = key.lower()
    return key.startswith(TRACKING_PARAM_PREFIXES) or key in denylist


def unwrap_redirect(url: str) -> str | None:
    """
    Return the destination embedded in a redirect/tracking wrapper URL.

    A wrapper is any URL with a redirect-style query parameter whose decoded
    value is itself an absolute http(s) URL, e.g. Google Alert links
    (``https://www.google.com/url?...&url=https%3A%2F%2Fexample.com%2Fa``).
    Returns None when the URL is not a wrapper.
    """
    try:
        query = urlsplit(url).query
    except ValueError:
        return None
    if not query:
        return None

    params = parse_qsl(query, keep_blank_values=False)
    by_key: dict[str, str] = {}
    for key, value in params:
        by_key.setdefault(key.lower(), value)

    for key in REDIRECT_PARAMS:
        value = by_key.get(key)
        if value and _is_absolute_http(value):
            return value.strip()
    return None


def _build_netloc(parts) -> str:
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    netloc = host
    if parts.port is not None:
        netloc = f"{netloc}:{parts.port}"
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"
    return netloc


def _strip_tracking(query: str, denylist: frozenset[str]) -> str:
    kept = []
    for segment in query.split("&"):
        if not segment:
            continue
        key = unquote_plus(segment.split("=", 1)[0])
        if _is_tracking_param(key, denylist):
            continue
        kept.append(segment)
    return "&".join(kept)


def canonicalize(raw: str, tracking_params: Iterable[str] | None = None) -> str:
    """
    Map any representation of a URL to a single normal form.

    Steps, in order: unwrap redirect wrappers (repeatedly), lower-case scheme
    and host, strip tracking query parameters, drop the fragment, strip
    trailing slashes from the path.

    Args:
        raw: The URL as found in a notification or model output.
        tracking_params: Extra parameter names to strip, on top of
            TRACKING_PARAMS and the ``utm_`` prefix.

    Raises:
        InvalidURL: If the input is not an absolute http(s) URL, or is wrapped in
            more than MAX_UNWRAP_DEPTH redirects.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidURL(f"Empty or non-string URL: {raw!r}")

    denylist = TRACKING_PARAMS
    if tracking_params:
        denylist = denylist | {p.lower() for p in tracking_params}

    url = raw.strip()
    for _ in range(MAX_UNWRAP_DEPTH + 1):
        destination = unwrap_redirect(url)
        if destination is None:
            break
        url = destination
    else:
        raise InvalidURL(f"More than {MAX_UNWRAP_DEPTH} nested redirects in {raw!r}")

    try:
        parts = urlsplit(url)
        # Accessing port validates it
        parts.port
    except ValueError as e:
        raise InvalidURL(f"Malformed URL {raw!r}: {e}") from e

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise InvalidURL(f"Unsupported scheme in {raw!r}")
    if not parts.hostname:
        raise InvalidURL(f"Missing host in {raw!r}")
    if any(ch.isspace() for ch in parts.netloc):
        raise InvalidURL(f"Whitespace in host of {raw!r}")

    netloc = _build_netloc(parts)
    query = _strip_tracking(parts.query, denylist)
    path = parts.path.rstrip("/")

    return urlunsplit((scheme, netloc, path, query, ""))


def try_canonicalize(raw: str, tracking_params: Iterable[str] | None = None) -> str | None:
    """Canonicalize, returning None instead of raising InvalidURL."""
    try:
        return canonicalize(raw, tracking_params)
    except InvalidURL:
        return None
