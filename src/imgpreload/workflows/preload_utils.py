"""Shared helper functions used by the preloader workflow."""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

from .preload_config import (
    DEFAULT_MAX_CONCURRENT,
    ENV_PAGE_URL,
    ENV_SETTINGS_PATH,
    MAX_CONCURRENT,
    MIN_CONCURRENT,
)

_HTTP_SCHEMES = {"http", "https"}
_DEFAULT_PORTS = {"http": 80, "https": 443}


def clamp_concurrency(value: Any, default: int = DEFAULT_MAX_CONCURRENT) -> int:
    """Clamp a requested concurrency into ``[MIN_CONCURRENT, MAX_CONCURRENT]``.

    ``None`` and values that cannot be read as integers fall back to
    ``default``. Booleans are treated as missing.
    """

    if value is None or isinstance(value, bool):
        number = default
    else:
        try:
            number = int(value)
        except (TypeError, ValueError):
            number = default
    return max(MIN_CONCURRENT, min(MAX_CONCURRENT, number))


def origin_of(url: str) -> Optional[str]:
    """Return ``scheme://host[:port]`` for an absolute http(s) URL, else None."""

    try:
        parsed = urlparse((url or "").strip())
    except ValueError:
        return None
    scheme = (parsed.scheme or "").lower()
    if scheme not in _HTTP_SCHEMES or not parsed.hostname:
        return None
    host = parsed.hostname.lower()
    try:
        port = parsed.port
    except ValueError:
        return None
    if port is None or port == _DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def is_cross_origin(url: str, page_origin: Optional[str]) -> bool:
    """Return True when ``url`` is absolute http(s) and not on ``page_origin``.

    Relative URLs are always same-origin. Without a page origin every
    absolute http(s) URL counts as foreign.
    """

    target = origin_of(url)
    if target is None:
        return False
    return target != page_origin


def resolve_url(url: str, page_url: Optional[str]) -> str:
    """Resolve a possibly-relative image URL against the page URL.

    Raises ``ValueError`` when ``url`` cannot be parsed.
    """

    if not page_url or origin_of(url) is not None:
        return url
    return urljoin(page_url, url)


def normalize_url_list(value: Any) -> Optional[List[Any]]:
    """Return a list copy for list/tuple input, a one-item list for a string.

    Anything else yields None so callers can treat it as "not configured".
    """

    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    return None


def collect_environment_warnings() -> List[Dict[str, str]]:
    """Return structured warnings about the preloader environment."""

    warnings: List[Dict[str, str]] = []
    page_url = os.getenv(ENV_PAGE_URL)
    if page_url and origin_of(page_url) is None:
        warnings.append(
            {
                "code": "page_url_invalid",
                "message": f"{ENV_PAGE_URL} is not an absolute http(s) URL: {page_url}",
                "remedy": "Set it to the page the images are preloaded for, e.g. https://site.example/.",
            }
        )
    elif not page_url:
        warnings.append(
            {
                "code": "page_url_missing",
                "message": "No page URL configured; relative image URLs cannot be resolved.",
                "remedy": f"Set {ENV_PAGE_URL} or pass --page-url.",
            }
        )
    settings_path = os.getenv(ENV_SETTINGS_PATH)
    if settings_path and not os.path.exists(settings_path):
        warnings.append(
            {
                "code": "settings_path_missing",
                "message": f"{ENV_SETTINGS_PATH} points to a missing file: {settings_path}",
                "remedy": "Create the settings JSON or unset the variable.",
            }
        )
    return warnings


__all__ = [
    "clamp_concurrency",
    "origin_of",
    "is_cross_origin",
    "resolve_url",
    "normalize_url_list",
    "collect_environment_warnings",
]
