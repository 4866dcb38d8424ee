from __future__ import annotations

import importlib.util
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .preload_config import (
    ENV_MAX_CONCURRENT,
    ENV_METHOD,
    ENV_PAGE_URL,
    ENV_SETTINGS_PATH,
    ALLOWED_METHODS,
    MAX_CONCURRENT,
    MIN_CONCURRENT,
)
from .preload_utils import collect_environment_warnings, origin_of


def _check_aiohttp_available() -> bool:
    return importlib.util.find_spec("aiohttp") is not None


def _env_int_or_none(name: str) -> Optional[int]:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def build_doctor_report(*, settings_path: Optional[Path] = None) -> Dict[str, Any]:
    report: Dict[str, Any] = {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": True,
        "checks": [],
        "environment_warnings": collect_environment_warnings(),
    }

    def add_check(
        name: str,
        status: bool,
        *,
        detail: Optional[str] = None,
        remedy: Optional[str] = None,
        level: str = "warn",
        value: Optional[str] = None,
    ) -> None:
        entry = {
            "name": name,
            "status": "ok" if status else "missing",
            "level": level,
            "detail": detail,
        }
        if remedy:
            entry["remedy"] = remedy
        if value is not None:
            entry["value"] = value
        report["checks"].append(entry)
        if not status and level == "warn":
            report["ok"] = False

    aiohttp_ok = _check_aiohttp_available()
    add_check(
        "aiohttp",
        aiohttp_ok,
        detail="HTTP fetches enabled" if aiohttp_ok else "HTTP fetches unavailable",
        remedy="Install aiohttp (pip install aiohttp).",
        level="warn",
    )

    page_url = os.getenv(ENV_PAGE_URL)
    if page_url:
        add_check(
            ENV_PAGE_URL,
            origin_of(page_url) is not None,
            detail=f"page origin {origin_of(page_url)}" if origin_of(page_url) else "not an absolute http(s) URL",
            remedy="Use an absolute http(s) URL such as https://site.example/.",
            level="warn",
            value=page_url,
        )
    else:
        add_check(
            ENV_PAGE_URL,
            False,
            detail="every absolute URL is fetched without credentials; relative URLs cannot resolve",
            remedy=f"Set {ENV_PAGE_URL} or pass --page-url.",
            level="info",
        )

    raw_limit = os.getenv(ENV_MAX_CONCURRENT)
    if raw_limit:
        parsed = _env_int_or_none(ENV_MAX_CONCURRENT)
        in_range = parsed is not None and MIN_CONCURRENT <= parsed <= MAX_CONCURRENT
        add_check(
            ENV_MAX_CONCURRENT,
            in_range,
            detail="within limits" if in_range else f"will be clamped to [{MIN_CONCURRENT}, {MAX_CONCURRENT}]",
            level="info",
            value=raw_limit,
        )

    method = os.getenv(ENV_METHOD)
    if method:
        known = method.strip().lower() in ALLOWED_METHODS
        add_check(
            ENV_METHOD,
            known,
            detail="recognized method" if known else f"expected one of {', '.join(ALLOWED_METHODS)}",
            level="warn",
            value=method,
        )

    settings = settings_path or (Path(os.environ[ENV_SETTINGS_PATH]) if os.getenv(ENV_SETTINGS_PATH) else None)
    if settings is None:
        add_check(ENV_SETTINGS_PATH, False, detail="no settings file configured", level="info")
    else:
        add_check(
            ENV_SETTINGS_PATH,
            settings.exists(),
            detail=str(settings),
            remedy="Create the settings JSON or point IMGPRELOAD_SETTINGS_PATH elsewhere.",
            level="warn",
        )

    return report


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("imgpreload doctor")
    lines.append(f"Generated: {report.get('generated_at')}")
    lines.append("")
    for check in report.get("checks", []):
        name = check.get("name", "check")
        status = check.get("status", "unknown")
        level = check.get("level", "info")
        detail = check.get("detail")
        value = check.get("value")
        label = f"{name}: {status}"
        if value:
            label = f"{label} ({value})"
        lines.append(f"- [{level}] {label}")
        if detail:
            lines.append(f"  detail: {detail}")
        remedy = check.get("remedy")
        if remedy:
            lines.append(f"  remedy: {remedy}")
    warnings = report.get("environment_warnings") or []
    if warnings:
        lines.append("")
        lines.append("Environment warnings:")
        for warning in warnings:
            code = warning.get("code", "warning")
            message = warning.get("message", "")
            remedy = warning.get("remedy", "")
            lines.append(f"- {code}: {message}")
            if remedy:
                lines.append(f"  remedy: {remedy}")
    return "\n".join(lines).rstrip() + "\n"
