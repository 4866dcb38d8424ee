"""Input contract between the admin/settings layer and the preloader.

The admin layer stores raw options (newline-separated URLs, a method choice,
an enable flag). ``sanitize_settings`` applies the same rules the settings
form does, and ``load_settings`` reads either that raw shape or the
already-localized ``{"images", "maxConcurrent", "method"}`` payload.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import urlparse

from ..core.keys import (
    K_ENABLE_PRELOAD,
    K_IMAGE_URLS,
    K_IMAGES,
    K_MAX_CONCURRENT,
    K_MAX_CONCURRENT_CAMEL,
    K_METHOD,
    K_PRELOAD_METHOD,
)
from .preload_config import ALLOWED_METHODS, DEFAULT_METHOD, ENV_SETTINGS_PATH, MAX_CONCURRENT
from .preload_utils import clamp_concurrency

logger = logging.getLogger(__name__)

_FALSE_TOKENS = {"0", "false", "no", "off", ""}


@dataclass
class PreloadSettings:
    """Sanitized values handed to :class:`ImagePreloader`."""

    images: List[str] = field(default_factory=list)
    max_concurrent: Optional[int] = None
    method: str = DEFAULT_METHOD
    enabled: bool = True

    @property
    def effective_concurrency(self) -> int:
        return clamp_concurrency(self.max_concurrent)

    def to_localized(self) -> Dict[str, Any]:
        """Return the payload shape a page script consumes."""

        payload: Dict[str, Any] = {K_IMAGES: list(self.images), K_METHOD: self.method}
        if self.max_concurrent is not None:
            payload[K_MAX_CONCURRENT_CAMEL] = self.max_concurrent
        return payload


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in _FALSE_TOKENS


def sanitize_url(raw: Any) -> Optional[str]:
    """Return a trimmed http(s) absolute or root-relative URL, else None."""

    if not isinstance(raw, str):
        return None
    url = raw.strip()
    if not url or any(ch.isspace() for ch in url):
        return None
    if url.startswith("/") and not url.startswith("//"):
        return url
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.scheme.lower() in {"http", "https"} and parsed.netloc:
        return url
    return None


def sanitize_url_lines(value: Any) -> List[str]:
    """Split newline text (or take a list) and keep only usable URLs."""

    if isinstance(value, str):
        candidates: Iterable[Any] = value.splitlines()
    elif isinstance(value, (list, tuple)):
        candidates = value
    else:
        return []
    urls: List[str] = []
    for candidate in candidates:
        clean = sanitize_url(candidate)
        if clean:
            urls.append(clean)
        elif isinstance(candidate, str) and candidate.strip():
            logger.debug("Dropping unusable image URL: %s", candidate.strip())
    return urls


def sanitize_method(value: Any) -> str:
    token = str(value or "").strip().lower()
    return token if token in ALLOWED_METHODS else DEFAULT_METHOD


def sanitize_settings(raw: Mapping[str, Any]) -> PreloadSettings:
    """Normalize raw admin options or a localized payload into settings."""

    if K_IMAGE_URLS in raw:
        images = sanitize_url_lines(raw.get(K_IMAGE_URLS))
    else:
        images = sanitize_url_lines(raw.get(K_IMAGES))

    method = sanitize_method(raw.get(K_PRELOAD_METHOD, raw.get(K_METHOD)))

    requested = raw.get(K_MAX_CONCURRENT_CAMEL, raw.get(K_MAX_CONCURRENT))
    max_concurrent: Optional[int] = None
    if requested is not None and not isinstance(requested, bool):
        try:
            max_concurrent = int(requested)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric max concurrency: %r", requested)
    elif K_IMAGE_URLS in raw and images:
        # Admin options carry no explicit limit; scale with the list size.
        max_concurrent = min(MAX_CONCURRENT, len(images))

    return PreloadSettings(
        images=images,
        max_concurrent=max_concurrent,
        method=method,
        enabled=_as_bool(raw.get(K_ENABLE_PRELOAD), default=True),
    )


def load_settings(path: Optional[Path] = None) -> Optional[PreloadSettings]:
    """Load settings from ``path`` (or ``IMGPRELOAD_SETTINGS_PATH``).

    Returns None when no path is configured. Raises ``FileNotFoundError`` for
    a missing file and ``ValueError`` for a document that is not an object.
    """

    if path is None:
        env_path = os.getenv(ENV_SETTINGS_PATH)
        if not env_path:
            return None
        path = Path(env_path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Settings file is not valid JSON: {path} ({exc})") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Settings file must contain a JSON object: {path}")
    return sanitize_settings(data)


__all__ = [
    "PreloadSettings",
    "sanitize_url",
    "sanitize_url_lines",
    "sanitize_method",
    "sanitize_settings",
    "load_settings",
]
