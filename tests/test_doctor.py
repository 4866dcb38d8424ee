from imgpreload.workflows.doctor import build_doctor_report, format_doctor_report


def _check(report, name):
    return next(item for item in report["checks"] if item["name"] == name)


def test_doctor_flags_unknown_method(monkeypatch):
    monkeypatch.setenv("IMGPRELOAD_METHOD", "smoke-signals")
    monkeypatch.setenv("IMGPRELOAD_PAGE_URL", "https://site.example/")
    monkeypatch.delenv("IMGPRELOAD_SETTINGS_PATH", raising=False)

    report = build_doctor_report()

    assert report["ok"] is False
    assert _check(report, "IMGPRELOAD_METHOD")["status"] == "missing"
    assert _check(report, "IMGPRELOAD_PAGE_URL")["status"] == "ok"


def test_doctor_reports_clamped_concurrency(monkeypatch, tmp_path):
    settings = tmp_path / "settings.json"
    settings.write_text("{}", encoding="utf-8")
    monkeypatch.setenv("IMGPRELOAD_MAX_CONCURRENT", "40")
    monkeypatch.delenv("IMGPRELOAD_METHOD", raising=False)
    monkeypatch.delenv("IMGPRELOAD_SETTINGS_PATH", raising=False)
    monkeypatch.delenv("IMGPRELOAD_PAGE_URL", raising=False)

    report = build_doctor_report(settings_path=settings)

    limit = _check(report, "IMGPRELOAD_MAX_CONCURRENT")
    assert limit["level"] == "info"
    assert "clamped" in limit["detail"]
    assert _check(report, "IMGPRELOAD_SETTINGS_PATH")["status"] == "ok"
    assert report["ok"] is True

    text = format_doctor_report(report)
    assert text.startswith("imgpreload doctor")
    assert "- [info] IMGPRELOAD_MAX_CONCURRENT: missing (40)" in text
    assert "page_url_missing" in text
