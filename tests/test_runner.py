import asyncio
import io
import re

import pytest

from imgpreload.runner import (
    apply_settings,
    generate_run_id,
    load_manifest,
    parse_manifest_lines,
    render_report,
    run_preload,
)
from imgpreload.workflows.image_preloader import ImagePreloader, PreloadConfig
from imgpreload.workflows.settings import PreloadSettings


@pytest.fixture
def fake_fetch(monkeypatch):
    calls = []

    async def fetch_image(self, url, *, anonymous):
        calls.append(url)
        await asyncio.sleep(0)
        if "broken" in url:
            raise OSError("boom")
        return 200

    monkeypatch.setattr(ImagePreloader, "_fetch_image", fetch_image, raising=False)
    monkeypatch.delenv("IMGPRELOAD_PAGE_URL", raising=False)
    return calls


def test_parse_manifest_lines_allows_comments_and_blank():
    lines = ["# hero images", "", "https://cdn.example/a.png", "/b.png", "   "]
    assert parse_manifest_lines(lines) == ["https://cdn.example/a.png", "/b.png"]


def test_parse_manifest_lines_rejects_inline_metadata():
    with pytest.raises(ValueError):
        parse_manifest_lines(["https://cdn.example/a.png # nope"])


def test_load_manifest_from_stdin_and_missing_file(tmp_path):
    assert load_manifest("-", stdin=io.StringIO("/a.png\n/b.png\n")) == ["/a.png", "/b.png"]
    with pytest.raises(FileNotFoundError):
        load_manifest(str(tmp_path / "absent.txt"))


def test_generate_run_id_format():
    assert re.match(r"^\d{8}T\d{6}Z_[0-9a-f]{6}$", generate_run_id())


def test_apply_settings_overrides_method_and_limit():
    config = apply_settings(PreloadConfig(), PreloadSettings(images=["/a.png"], max_concurrent=5, method="both"))
    assert config.method == "both"
    assert config.max_concurrent == 5
    untouched = apply_settings(PreloadConfig(max_concurrent=2), PreloadSettings(images=["/a.png"]))
    assert untouched.max_concurrent == 2


def test_run_preload_counts_and_exit_code(fake_fetch):
    config = PreloadConfig(start_delay=0.0, page_url="https://site.example/")

    summary, exit_code = run_preload(["/ok.png", "/broken.png", ""], config=config)

    assert summary["total"] == 3
    assert summary["successful"] == 1
    assert summary["failed"] == 2
    assert [f["reason"] for f in summary["failures"]] == ["network-error", "invalid-url"]
    assert summary["skipped"] is False
    assert exit_code == 1
    assert fake_fetch == ["https://site.example/ok.png", "https://site.example/broken.png"]


def test_run_preload_soft_fail(fake_fetch):
    config = PreloadConfig(start_delay=0.0)
    _summary, exit_code = run_preload(["https://cdn.example/broken.png"], config=config, soft_fail=True)
    assert exit_code == 0


def test_run_preload_empty_list_is_skipped(fake_fetch):
    summary, exit_code = run_preload([], config=PreloadConfig(start_delay=0.0))
    assert summary["skipped"] is True
    assert summary["total"] == 0
    assert exit_code == 0
    assert fake_fetch == []
    assert render_report(summary).endswith("Nothing to preload.\n")


def test_render_report_lists_failures():
    summary = {
        "run_id": "20260102T153045Z_a1b2c3",
        "skipped": False,
        "total": 2,
        "successful": 1,
        "failed": 1,
        "duration_ms": 12,
        "failures": [{"index": 1, "url": "/bad.png", "reason": "timeout"}],
    }
    output = render_report(summary)
    assert output.startswith("Run ID: 20260102T153045Z_a1b2c3")
    assert "Preloaded 1/2 images, 1 failed (12 ms)" in output
    assert "- /bad.png: timeout" in output
