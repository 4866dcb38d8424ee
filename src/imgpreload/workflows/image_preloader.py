from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple
from urllib.parse import urlsplit

import aiohttp

from ..core.keys import (
    K_CACHED,
    K_DETAIL,
    K_ELAPSED_MS,
    K_FAILED,
    K_FAILURES,
    K_INDEX,
    K_MAX_CONCURRENT,
    K_METHOD,
    K_OUTCOMES,
    K_REASON,
    K_STATUS,
    K_SUCCESSFUL,
    K_TOTAL,
    K_URL,
)
from .preload_config import (
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_METHOD,
    ENV_MAX_CONCURRENT,
    ENV_METHOD,
    ENV_PAGE_URL,
    ENV_START_DELAY,
    ENV_TIMEOUT,
    ENV_USER_AGENT,
    HDR_ACCEPT,
    HDR_USER_AGENT,
    IDLE_TIMEOUT,
    IMAGE_ACCEPT,
    IMAGE_TIMEOUT,
    METHOD_BOTH,
    METHOD_LINK_PRELOAD,
    REASON_INVALID_URL,
    REASON_NETWORK_ERROR,
    REASON_TIMEOUT,
    START_DELAY,
    STATUS_FULFILLED,
    STATUS_REJECTED,
    USER_AGENT,
)
from .preload_utils import clamp_concurrency, is_cross_origin, normalize_url_list, origin_of, resolve_url

logger = logging.getLogger(__name__)

IdleHook = Callable[[], Awaitable[Any]]


def _env_int(name: str, default: int) -> int:
    try:
        raw = os.getenv(name, "")
        return int(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        raw = os.getenv(name, "")
        return float(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


@dataclass
class PreloadConfig:
    """Configuration parameters for a preloader instance."""

    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    timeout: float = IMAGE_TIMEOUT
    start_delay: float = START_DELAY
    idle_timeout: float = IDLE_TIMEOUT
    method: str = DEFAULT_METHOD
    # Page the images are preloaded for; its origin decides credentials mode.
    page_url: Optional[str] = None
    user_agent: str = USER_AGENT
    accept: str = IMAGE_ACCEPT
    # Only sent to same-origin targets.
    credential_headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)


def load_config_from_env(base: Optional[PreloadConfig] = None) -> PreloadConfig:
    """Overlay ``IMGPRELOAD_*`` environment variables onto ``base``."""

    config = base or PreloadConfig()
    config.max_concurrent = _env_int(ENV_MAX_CONCURRENT, config.max_concurrent)
    config.timeout = max(0.0, _env_float(ENV_TIMEOUT, config.timeout))
    config.start_delay = max(0.0, _env_float(ENV_START_DELAY, config.start_delay))
    config.page_url = os.getenv(ENV_PAGE_URL, "").strip() or config.page_url
    config.method = os.getenv(ENV_METHOD, "").strip().lower() or config.method
    config.user_agent = os.getenv(ENV_USER_AGENT, "").strip() or config.user_agent
    return config


@dataclass
class PreloadOutcome:
    """Settlement of a single preload attempt."""

    index: int
    url: Any
    status: str
    reason: Optional[str] = None
    detail: Optional[str] = None
    cached: bool = False
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == STATUS_FULFILLED

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            K_INDEX: self.index,
            K_URL: self.url if isinstance(self.url, str) else repr(self.url),
            K_STATUS: self.status,
            K_CACHED: self.cached,
            K_ELAPSED_MS: self.elapsed_ms,
        }
        if self.reason:
            payload[K_REASON] = self.reason
        if self.detail:
            payload[K_DETAIL] = self.detail
        return payload


@dataclass
class PreloadSummary:
    """Aggregate result of one run, with outcomes in request order."""

    method: str
    max_concurrent: int
    outcomes: List[PreloadOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def successful(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == STATUS_FULFILLED)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == STATUS_REJECTED)

    @property
    def failures(self) -> List[PreloadOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status == STATUS_REJECTED]

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_TOTAL: self.total,
            K_SUCCESSFUL: self.successful,
            K_FAILED: self.failed,
            K_METHOD: self.method,
            K_MAX_CONCURRENT: self.max_concurrent,
            K_FAILURES: [
                {K_INDEX: item.index, K_URL: item.to_dict()[K_URL], K_REASON: item.reason}
                for item in self.failures
            ],
            K_OUTCOMES: [outcome.to_dict() for outcome in self.outcomes],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


class ImagePreloader:
    """Bounded-concurrency image preloader with a per-instance dedup set.

    Each run drains a shared queue of ``(index, url)`` pairs with a fixed
    pool of workers, so a slot freed by a settled fetch is refilled from the
    head of the remaining queue straight away. Every URL gets exactly one
    attempt per run; URLs that already loaded successfully on this instance
    settle immediately without network activity.
    """

    def __init__(
        self,
        config: Optional[PreloadConfig] = None,
        *,
        idle_hook: Optional[IdleHook] = None,
        on_complete: Optional[Callable[[PreloadSummary], None]] = None,
    ) -> None:
        self.config = config or PreloadConfig()
        self.max_concurrent = clamp_concurrency(self.config.max_concurrent)
        self._idle_hook = idle_hook
        self._on_complete = on_complete
        self._page_origin = origin_of(self.config.page_url or "")
        self._preloaded: Set[str] = set()
        self._sessions: Dict[bool, aiohttp.ClientSession] = {}
        # Keep references so pending tasks are not garbage collected mid-flight
        self._runs: Set[asyncio.Task] = set()
        self._abandoned: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------ public

    def is_preloaded(self, url: str) -> bool:
        if not isinstance(url, str) or not url.strip():
            return False
        try:
            return self._dedup_key(url) in self._preloaded
        except ValueError:
            return False

    @property
    def preloaded_count(self) -> int:
        return len(self._preloaded)

    def run(self, urls: Any, max_concurrent: Optional[int] = None) -> Optional[asyncio.Task]:
        """Schedule a deferred preload run on the running event loop.

        Returns the task (its result is the :class:`PreloadSummary`), or None
        when there is nothing to preload. Raises ``RuntimeError`` when no event
        loop is running.
        """

        images = self._accept(urls)
        if images is None:
            return None
        loop = asyncio.get_running_loop()
        limit = self._announce(images, max_concurrent)
        task = loop.create_task(self._run_when_idle(images, limit))
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)
        return task

    def preload_additional(self, url_or_urls: Any) -> Optional[asyncio.Task]:
        """Enqueue more URLs using the current concurrency limit and dedup set."""

        return self.run(normalize_url_list(url_or_urls))

    async def preload_images(
        self,
        urls: Any,
        max_concurrent: Optional[int] = None,
    ) -> Optional[PreloadSummary]:
        """Run a preload immediately and return its summary (None for no-ops)."""

        images = self._accept(urls)
        if images is None:
            return None
        limit = self._announce(images, max_concurrent)
        return await self._drain(images, limit)

    async def preload_one(self, url: Any, *, index: int = 0) -> PreloadOutcome:
        """Attempt a single image; never raises for per-URL failures."""

        if not isinstance(url, str) or not url.strip():
            return PreloadOutcome(
                index=index,
                url=url,
                status=STATUS_REJECTED,
                reason=REASON_INVALID_URL,
                detail="Invalid URL",
            )
        try:
            target = self._dedup_key(url)
        except ValueError as exc:
            return PreloadOutcome(
                index=index,
                url=url,
                status=STATUS_REJECTED,
                reason=REASON_INVALID_URL,
                detail=f"Invalid URL: {url} ({exc})",
            )
        if target in self._preloaded:
            return PreloadOutcome(index=index, url=url, status=STATUS_FULFILLED, cached=True)

        anonymous = is_cross_origin(target, self._page_origin)
        started = time.perf_counter()
        fetch = asyncio.ensure_future(self._fetch_image(target, anonymous=anonymous))
        try:
            done, _pending = await asyncio.wait({fetch}, timeout=self.config.timeout)
        except asyncio.CancelledError:
            fetch.cancel()
            raise
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        if not done:
            # Abandon without awaiting the transfer's termination.
            fetch.cancel()
            self._abandon(fetch)
            return PreloadOutcome(
                index=index,
                url=url,
                status=STATUS_REJECTED,
                reason=REASON_TIMEOUT,
                detail=f"Timeout loading image: {url}",
                elapsed_ms=elapsed_ms,
            )

        exc = fetch.exception()
        if exc is not None:
            logger.debug("Fetch failed for %s: %r", url, exc)
            return PreloadOutcome(
                index=index,
                url=url,
                status=STATUS_REJECTED,
                reason=REASON_NETWORK_ERROR,
                detail=f"Failed to load image: {url} ({exc})",
                elapsed_ms=elapsed_ms,
            )

        self._preloaded.add(target)
        return PreloadOutcome(index=index, url=url, status=STATUS_FULFILLED, elapsed_ms=elapsed_ms)

    async def wait_idle(self) -> None:
        """Wait for every scheduled run on this instance to finish."""

        while self._runs:
            await asyncio.gather(*list(self._runs), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._abandoned):
            task.cancel()
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await session.close()

    async def __aenter__(self) -> "ImagePreloader":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ---------------------------------------------------------------- internal

    def _accept(self, urls: Any) -> Optional[List[Any]]:
        if urls is None:
            logger.info("No image data found or preloader not configured")
            return None
        if not isinstance(urls, (list, tuple)) or not urls:
            logger.info("No images to preload")
            return None
        return list(urls)

    def _announce(self, images: List[Any], max_concurrent: Optional[int]) -> int:
        if max_concurrent is not None:
            self.max_concurrent = clamp_concurrency(max_concurrent)
        limit = self.max_concurrent
        method = self.config.method or DEFAULT_METHOD
        logger.info("Starting preload of %d images using method: %s", len(images), method)
        if method == METHOD_BOTH:
            logger.info("Using both script preloading and link preload hints")
        elif method == METHOD_LINK_PRELOAD:
            logger.info("Link preload hints are emitted by the page markup; preloading here as well")
        logger.info("Max concurrent loads: %d", limit)
        return limit

    def _dedup_key(self, url: str) -> str:
        """Resolved form of ``url``; raises ``ValueError`` when it cannot be parsed."""

        target = resolve_url(url.strip(), self.config.page_url)
        # Malformed ports only surface on access.
        urlsplit(target).port
        return target

    async def _run_when_idle(self, images: List[Any], limit: int) -> PreloadSummary:
        await self._wait_for_idle()
        return await self._drain(images, limit)

    async def _wait_for_idle(self) -> None:
        if self._idle_hook is None:
            await asyncio.sleep(self.config.start_delay)
            return
        try:
            await asyncio.wait_for(self._idle_hook(), timeout=self.config.idle_timeout)
        except asyncio.TimeoutError:
            logger.debug("Host not idle after %.1fs; starting preload anyway", self.config.idle_timeout)
        except Exception as exc:
            logger.warning("Idle hook failed (%s); starting preload anyway", exc)

    async def _drain(self, images: Sequence[Any], limit: int) -> PreloadSummary:
        queue: "asyncio.Queue[Tuple[int, Any]]" = asyncio.Queue()
        for index, url in enumerate(images):
            queue.put_nowait((index, url))
        outcomes: List[Optional[PreloadOutcome]] = [None] * len(images)

        async def worker() -> None:
            while True:
                try:
                    index, url = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    outcomes[index] = await self.preload_one(url, index=index)
                except Exception as exc:
                    logger.exception("Unexpected failure preloading %r", url)
                    outcomes[index] = PreloadOutcome(
                        index=index,
                        url=url,
                        status=STATUS_REJECTED,
                        reason=REASON_NETWORK_ERROR,
                        detail=f"Failed to load image: {url} ({exc})",
                    )

        workers = [asyncio.create_task(worker()) for _ in range(min(limit, len(images)))]
        await asyncio.gather(*workers)

        summary = PreloadSummary(
            method=self.config.method or DEFAULT_METHOD,
            max_concurrent=limit,
            outcomes=[outcome for outcome in outcomes if outcome is not None],
        )
        self._log_results(summary)
        if self._on_complete is not None:
            try:
                self._on_complete(summary)
            except Exception:
                logger.exception("Preload completion callback failed")
        return summary

    def _log_results(self, summary: PreloadSummary) -> None:
        logger.info(
            "Preload completed: %d/%d successful, %d failed",
            summary.successful,
            summary.total,
            summary.failed,
        )
        if summary.successful:
            logger.info("Images preloaded successfully and cached")
        if summary.failed:
            logger.warning("Some images failed to load. Check URLs, network connectivity, and CORS policies.")
            for outcome in summary.failures:
                logger.warning("Failed to load: %s (%s)", outcome.url, outcome.reason)

    def _abandon(self, task: asyncio.Future) -> None:
        self._abandoned.add(task)
        task.add_done_callback(self._forget_abandoned)

    def _forget_abandoned(self, task: asyncio.Future) -> None:
        self._abandoned.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Abandoned fetch ended with %r", task.exception())

    def _session(self, anonymous: bool) -> aiohttp.ClientSession:
        session = self._sessions.get(anonymous)
        if session is None or session.closed:
            headers = {
                HDR_USER_AGENT: self.config.user_agent,
                HDR_ACCEPT: self.config.accept,
            }
            if anonymous:
                session = aiohttp.ClientSession(headers=headers, cookie_jar=aiohttp.DummyCookieJar())
            else:
                session = aiohttp.ClientSession(headers=headers, cookies=self.config.cookies or None)
            self._sessions[anonymous] = session
        return session

    async def _fetch_image(self, url: str, *, anonymous: bool) -> int:
        session = self._session(anonymous)
        headers = None if anonymous else (self.config.credential_headers or None)
        async with session.get(url, headers=headers) as resp:
            resp.raise_for_status()
            await resp.read()
            return resp.status


__all__ = [
    "PreloadConfig",
    "PreloadOutcome",
    "PreloadSummary",
    "ImagePreloader",
    "load_config_from_env",
]
