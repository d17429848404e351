# redirects.py
from __future__ import annotations

import re
from typing import Iterable, Optional
from urllib.parse import urlsplit, urlunsplit

DEFAULT_REDIRECT = "https://webflow.com/dashboard"

# Trusted post-auth destinations:
#  - the Webflow dashboard (webflow.com and any subdomain)
#  - a Designer extension frame (<id>.webflow-ext.com)
#  - local development servers
_TRUSTED = (
    re.compile(r"^https://(?:[a-z0-9-]+\.)?webflow\.com/", re.I),
    re.compile(r"^https://[a-z0-9]+\.webflow-ext\.com/", re.I),
    re.compile(r"^http://(?:localhost|127\.0\.0\.1)(?::\d+)?/", re.I),
)


def _canonical(u: str) -> Optional[str]:
    """Parse and re-serialize like a WHATWG URL would: lower host, '/' path for bare origins."""
    try:
        parts = urlsplit(u.strip())
        _ = parts.port  # raises ValueError on garbage ports
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    path = parts.path or "/"
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), path, parts.query, parts.fragment)
    )


def sanitize_redirect(u: Optional[str]) -> Optional[str]:
    if not u:
        return None
    s = _canonical(str(u))
    if s and any(p.match(s) for p in _TRUSTED):
        return s
    return None


def first_safe_redirect(candidates: Iterable[Optional[str]], default: str = DEFAULT_REDIRECT) -> str:
    for c in candidates:
        safe = sanitize_redirect(c)
        if safe:
            return safe
    return default
