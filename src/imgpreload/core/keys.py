"""Shared schema keys to avoid magic strings across imgpreload modules."""

from __future__ import annotations

# Summary document keys
K_TOTAL = "total"
K_SUCCESSFUL = "successful"
K_FAILED = "failed"
K_METHOD = "method"
K_MAX_CONCURRENT = "max_concurrent"
K_OUTCOMES = "outcomes"
K_FAILURES = "failures"

# Per-URL outcome keys
K_INDEX = "index"
K_URL = "url"
K_STATUS = "status"
K_REASON = "reason"
K_DETAIL = "detail"
K_CACHED = "cached"
K_ELAPSED_MS = "elapsed_ms"

# Localized settings payload keys (camelCase as emitted for page scripts)
K_IMAGES = "images"
K_MAX_CONCURRENT_CAMEL = "maxConcurrent"

# Admin option keys
K_IMAGE_URLS = "image_urls"
K_PRELOAD_METHOD = "preload_method"
K_ENABLE_PRELOAD = "enable_preload"
