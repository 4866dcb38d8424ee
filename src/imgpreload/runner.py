from __future__ import annotations

import asyncio
import secrets
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, TextIO, Tuple

from .core.keys import K_FAILED, K_FAILURES, K_REASON, K_SUCCESSFUL, K_TOTAL, K_URL
from .workflows.image_preloader import ImagePreloader, PreloadConfig, PreloadSummary
from .workflows.preload_utils import collect_environment_warnings
from .workflows.settings import PreloadSettings


def parse_manifest_lines(lines: Iterable[str]) -> List[str]:
    urls: List[str] = []
    for raw_line in lines:
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("#"):
            continue
        if any(ch.isspace() for ch in line):
            raise ValueError(f"Invalid manifest line (inline metadata not allowed): {raw_line.rstrip()}")
        urls.append(line)
    return urls


def load_manifest(path_or_dash: str, *, stdin: Optional[TextIO] = None) -> List[str]:
    if path_or_dash == "-":
        stream = stdin or sys.stdin
        return parse_manifest_lines(stream.read().splitlines())
    path = Path(path_or_dash)
    if not path.exists():
        raise FileNotFoundError(f"Manifest not found: {path}")
    return parse_manifest_lines(path.read_text(encoding="utf-8").splitlines())


def generate_run_id(now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
    suffix = secrets.token_hex(3)
    return f"{stamp}_{suffix}"


def apply_settings(config: PreloadConfig, settings: Optional[PreloadSettings]) -> PreloadConfig:
    """Copy admin-provided method and limit onto a controller config."""

    if settings is None:
        return config
    config.method = settings.method
    if settings.max_concurrent is not None:
        config.max_concurrent = settings.max_concurrent
    return config


async def _drive(urls: Sequence[str], config: PreloadConfig) -> Optional[PreloadSummary]:
    async with ImagePreloader(config) as preloader:
        task = preloader.run(list(urls))
        if task is None:
            return None
        return await task


def run_preload(
    urls: Sequence[str],
    *,
    config: PreloadConfig,
    soft_fail: bool = False,
) -> Tuple[Dict[str, Any], int]:
    """Preload ``urls`` once and return ``(summary, exit_code)``.

    A run with nothing to preload yields a summary with zero counts and
    ``"skipped": true``.
    """

    started_at = datetime.now(timezone.utc)
    run_id = generate_run_id(started_at)
    env_warnings = collect_environment_warnings()
    for warning in env_warnings:
        message = warning.get("message") or warning.get("code") or "environment warning"
        print(f"[imgpreload] warning: {message}", file=sys.stderr)

    result = asyncio.run(_drive(urls, config))
    finished_at = datetime.now(timezone.utc)

    if result is None:
        summary: Dict[str, Any] = {K_TOTAL: 0, K_SUCCESSFUL: 0, K_FAILED: 0, K_FAILURES: [], "skipped": True}
    else:
        summary = result.to_dict()
        summary["skipped"] = False
    summary["run_id"] = run_id
    summary["started_at"] = started_at.replace(microsecond=0).isoformat().replace("+00:00", "Z")
    summary["duration_ms"] = int((finished_at - started_at).total_seconds() * 1000)
    if env_warnings:
        summary["environment_warnings"] = env_warnings

    exit_code = 0
    if not soft_fail and summary[K_FAILED] > 0:
        exit_code = 1
    return summary, exit_code


def render_report(summary: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append(f"Run ID: {summary.get('run_id')}")
    if summary.get("skipped"):
        lines.append("Nothing to preload.")
        return "\n".join(lines) + "\n"
    lines.append(
        f"Preloaded {summary.get(K_SUCCESSFUL, 0)}/{summary.get(K_TOTAL, 0)} images, "
        f"{summary.get(K_FAILED, 0)} failed ({summary.get('duration_ms', 0)} ms)"
    )
    for failure in summary.get(K_FAILURES) or []:
        lines.append(f"- {failure.get(K_URL)}: {failure.get(K_REASON)}")
    return "\n".join(lines) + "\n"
