# =============================================================================
# finance_core/offline/resource_keys.py
# Resource-Type Key Derivation
# =============================================================================
"""
Maps request endpoints to the cache key they are stored under.

    resource_key("/customers?page=2")                     -> "/customers"
    resource_key("/daily-loans/17", ["/daily-loans"])     -> "/daily-loans"
    resource_key("/daily-loans-archive", ["/daily-loans"]) -> "/daily-loans-archive"
"""

from __future__ import annotations
import re
from typing import Iterable
from urllib.parse import urlsplit

_MULTI_SLASH = re.compile(r"/{2,}")


def normalize_endpoint(endpoint: str) -> str:
    """Strip query/fragment, collapse slashes, force a leading and no trailing '/'."""
    if not isinstance(endpoint, str) or not endpoint.strip():
        raise ValueError(f"Endpoint must be a non-empty string, got {endpoint!r}")

    raw = endpoint.strip()
    if "://" in raw:
        path = urlsplit(raw).path
    else:
        path = raw.split("#", 1)[0].split("?", 1)[0]
    path = _MULTI_SLASH.sub("/", "/" + path.lstrip("/"))
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def resource_key(endpoint: str, prefixes: Iterable[str] = ()) -> str:
    """
    Derive the resource-type key for an endpoint.

    The longest configured prefix matching on a path-segment boundary wins;
    without a match the normalized path itself is the key.
    """
    path = normalize_endpoint(endpoint)

    best = None
    for prefix in prefixes:
        candidate = normalize_endpoint(prefix)
        if path == candidate or path.startswith(candidate.rstrip("/") + "/"):
            if best is None or len(candidate) > len(best):
                best = candidate

    return best or path
