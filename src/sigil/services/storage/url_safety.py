"""Server-side fetch guard for provider output URLs.

Only HTTPS URLs on known provider/storage hosts are fetched. Loopback,
private and link-local addresses are refused even when they appear in an
allowed form.
"""

import ipaddress
from urllib.parse import unquote, urlsplit

ALLOWED_HOSTS = frozenset(
    {
        "storage.googleapis.com",
        "generativelanguage.googleapis.com",
        "api.replicate.com",
        "replicate.delivery",
        "fal.media",
    }
)
ALLOWED_HOST_SUFFIXES = (".supabase.co",)
LOCALHOST_HOSTS = frozenset({"localhost", "::1", "0.0.0.0"})

GOOGLE_STORAGE_HOST = "storage.googleapis.com"


def is_private_host(host: str) -> bool:
    """True for localhost names and loopback/private/link-local/unspecified IPs."""
    if host in LOCALHOST_HOSTS:
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
    )


def is_allowed_host(host: str) -> bool:
    return host in ALLOWED_HOSTS or host.endswith(ALLOWED_HOST_SUFFIXES)


def safe_fetch_url(raw_url: str, allow_gs: bool = False) -> str | None:
    """Resolve ``raw_url`` to an HTTPS URL that is safe to fetch, or None.

    Args:
        raw_url: http(s) URL, or ``gs://bucket/path`` when ``allow_gs`` is set
        allow_gs: Rewrite ``gs://`` URLs to the Google Cloud Storage HTTPS host

    Returns:
        The URL to fetch, or None when the URL is malformed or not allowed
    """
    if not isinstance(raw_url, str) or not raw_url.strip():
        return None
    url = raw_url.strip()

    if url.startswith("gs://"):
        if not allow_gs:
            return None
        bucket, _, path = url[len("gs://") :].partition("/")
        if not bucket or len(bucket) > 200 or "/" in bucket or "@" in bucket:
            return None
        resolved = f"https://{GOOGLE_STORAGE_HOST}/{bucket}/{path}"
        if _hostname(resolved) != GOOGLE_STORAGE_HOST:
            return None
        return resolved

    if not url.startswith("https://"):
        return None

    host = _hostname(url)
    if not host or is_private_host(host) or not is_allowed_host(host):
        return None
    return url


def _hostname(url: str) -> str | None:
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return None
    return unquote(host).lower() if host else None
