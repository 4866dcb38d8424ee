"""Preloader defaults (limits, timings, methods, outcome reasons, env names).

Centralizes static defaults so image_preloader.py has no embedded magic
numbers. Callers can inject their own PreloadConfig to override any of them.
"""

from __future__ import annotations

# Concurrency window
DEFAULT_MAX_CONCURRENT = 3
MIN_CONCURRENT = 1
MAX_CONCURRENT = 10

# Timings (seconds)
IMAGE_TIMEOUT = 10.0
START_DELAY = 0.1
IDLE_TIMEOUT = 2.0

# Transport methods configured by the admin layer
METHOD_JAVASCRIPT = "javascript"
METHOD_LINK_PRELOAD = "link_preload"
METHOD_BOTH = "both"
ALLOWED_METHODS = (METHOD_JAVASCRIPT, METHOD_LINK_PRELOAD, METHOD_BOTH)
DEFAULT_METHOD = METHOD_JAVASCRIPT

# Outcome statuses
STATUS_FULFILLED = "fulfilled"
STATUS_REJECTED = "rejected"

# Failure reasons
REASON_INVALID_URL = "invalid-url"
REASON_NETWORK_ERROR = "network-error"
REASON_TIMEOUT = "timeout"

# Request headers
HDR_ACCEPT = "Accept"
HDR_USER_AGENT = "User-Agent"
IMAGE_ACCEPT = "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"
USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

# Environment variables
ENV_MAX_CONCURRENT = "IMGPRELOAD_MAX_CONCURRENT"
ENV_TIMEOUT = "IMGPRELOAD_TIMEOUT"
ENV_START_DELAY = "IMGPRELOAD_START_DELAY"
ENV_PAGE_URL = "IMGPRELOAD_PAGE_URL"
ENV_METHOD = "IMGPRELOAD_METHOD"
ENV_USER_AGENT = "IMGPRELOAD_USER_AGENT"
ENV_SETTINGS_PATH = "IMGPRELOAD_SETTINGS_PATH"
