from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

TRACKING_KEYS = {"ref", "refid", "trackingid", "trk", "fbclid", "gclid", "source", "se"}


def normalize_url(raw_url: str) -> str:
    """Lower-case scheme/host, drop default ports, fragments and tracking params.

    Remaining query params keep their relative order since some boards route on them.
    """
    parsed = urlparse(raw_url.strip())
    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    if ":" in netloc:
        host, port = netloc.rsplit(":", maxsplit=1)
        if (scheme == "http" and port == "80") or (scheme == "https" and port == "443"):
            netloc = host

    path = parsed.path or "/"
    if path != "/" and path.endswith("/"):
        path = path[:-1]

    query_pairs = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if not _is_tracking_param(key.lower())
    ]
    return urlunparse((scheme, netloc, path, "", urlencode(query_pairs, doseq=True), ""))


def domain_of(url: str) -> str:
    host = urlparse(url.strip()).hostname or ""
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def _is_tracking_param(key: str) -> bool:
    return key.startswith("utm_") or key in TRACKING_KEYS
