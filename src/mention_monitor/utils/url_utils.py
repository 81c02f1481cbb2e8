from __future__ import annotations

import hashlib
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_TRACKING_PARAMS = frozenset(
    {"fbclid", "gclid", "igshid", "mc_cid", "mc_eid", "mkt_tok", "ref"}
)


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered.startswith("utm_") or lowered in _TRACKING_PARAMS


def canonicalize_url(url: str) -> str:
    """Normalize a URL so trivially different links hash the same.

    Lowercases scheme and host, drops trailing slashes, fragments and
    tracking parameters, and sorts what is left of the query string.
    Values that are not absolute URLs are returned stripped but unchanged.
    """
    value = (url or "").strip()
    parts = urlsplit(value)
    if not parts.scheme or not parts.netloc:
        return value

    path = parts.path.rstrip("/") or "/"
    query = sorted(
        (key, item)
        for key, item in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(key)
    )
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), path, urlencode(query, doseq=True), "")
    )


def stable_hash(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def derive_mention_id(prefix: str, native_id: str | None, url: str) -> str:
    """Build a run-stable mention id from a source-native id, else the URL."""
    native = (native_id or "").strip()
    if native:
        return f"{prefix}_{native}"
    return f"{prefix}_urlhash:{stable_hash(canonicalize_url(url))}"
