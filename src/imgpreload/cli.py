from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer

from .runner import apply_settings, load_manifest, render_report, run_preload
from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.image_preloader import load_config_from_env
from .workflows.preload_config import ALLOWED_METHODS
from .workflows.settings import load_settings, sanitize_method

app = typer.Typer(add_help_option=True, no_args_is_help=True, help="Preload image URLs with bounded concurrency.")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@app.command("doctor")
def doctor_cmd(
    settings: Optional[Path] = typer.Option(None, "--settings", help="Settings JSON to check."),
) -> None:
    """Print environment and dependency diagnostics."""
    report = build_doctor_report(settings_path=settings)
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)


@app.command("run")
def run_cmd(
    manifest: Optional[str] = typer.Argument(None, help="Manifest of image URLs, or '-' for stdin."),
    settings: Optional[Path] = typer.Option(None, "--settings", help="Settings JSON (admin options or localized payload)."),
    max_concurrent: Optional[int] = typer.Option(None, "--max-concurrent", help="Simultaneous fetches (clamped to 1-10)."),
    method: Optional[str] = typer.Option(None, "--method", help=f"One of: {', '.join(ALLOWED_METHODS)}."),
    page_url: Optional[str] = typer.Option(None, "--page-url", help="Page the images are preloaded for."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-image timeout in seconds."),
    json_out: bool = typer.Option(False, "--json", help="Print summary JSON to stdout only."),
    soft_fail: bool = typer.Option(False, "--soft-fail", help="Exit 0 even if some images fail."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Preload every image URL once and report the outcome."""
    _configure_logging(verbose)
    try:
        loaded = load_settings(settings)
        urls: List[str] = load_manifest(manifest) if manifest else list(loaded.images if loaded else [])
    except (FileNotFoundError, ValueError) as exc:
        if not json_out:
            typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)

    config = apply_settings(load_config_from_env(), loaded)
    if max_concurrent is not None:
        config.max_concurrent = max_concurrent
    if method is not None:
        config.method = sanitize_method(method)
    if page_url is not None:
        config.page_url = page_url
    if timeout is not None:
        config.timeout = timeout
    if loaded is not None and not loaded.enabled:
        logging.getLogger(__name__).info("Preloading disabled in settings")
        urls = []

    try:
        summary, exit_code = run_preload(urls, config=config, soft_fail=soft_fail)
    except Exception as exc:
        if not json_out:
            typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=3)
    if json_out:
        sys.stdout.write(json.dumps(summary, ensure_ascii=False) + "\n")
    else:
        typer.echo(render_report(summary))
    raise typer.Exit(code=exit_code)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
