import pytest

from imgpreload.workflows import preload_utils
from imgpreload.workflows.preload_utils import (
    clamp_concurrency,
    is_cross_origin,
    normalize_url_list,
    origin_of,
    resolve_url,
)


def test_clamp_concurrency_bounds_and_defaults():
    assert clamp_concurrency(0) == 1
    assert clamp_concurrency(50) == 10
    assert clamp_concurrency(None) == 3
    assert clamp_concurrency("4") == 4
    assert clamp_concurrency("many") == 3
    assert clamp_concurrency(True) == 3


def test_origin_of_drops_default_ports_and_paths():
    assert origin_of("https://Site.Example:443/a/b.png?x=1") == "https://site.example"
    assert origin_of("http://site.example:8080/x") == "http://site.example:8080"
    assert origin_of("/local.png") is None
    assert origin_of("data:image/png;base64,AAAA") is None


def test_malformed_urls_have_no_origin():
    assert origin_of("http://[bad/x.png") is None
    assert origin_of("http://site.example:99999/x.png") is None
    assert not is_cross_origin("http://[bad/x.png", "https://site.example")
    with pytest.raises(ValueError):
        resolve_url("http://[bad/x.png", "https://site.example/")


def test_cross_origin_rule():
    page = origin_of("https://site.example/")
    assert is_cross_origin("https://other.example/img.png", page)
    assert not is_cross_origin("/local.png", page)
    assert not is_cross_origin("https://site.example/own.png", page)
    assert is_cross_origin("http://site.example/own.png", page)


def test_resolve_url_against_page():
    assert resolve_url("/local.png", "https://site.example/blog/") == "https://site.example/local.png"
    assert resolve_url("img/a.png", "https://site.example/blog/") == "https://site.example/blog/img/a.png"
    assert resolve_url("https://cdn.example/a.png", "https://site.example/") == "https://cdn.example/a.png"
    assert resolve_url("/local.png", None) == "/local.png"


def test_normalize_url_list():
    assert normalize_url_list("a.png") == ["a.png"]
    assert normalize_url_list(("a.png", "b.png")) == ["a.png", "b.png"]
    assert normalize_url_list(None) is None
    assert normalize_url_list({"a.png"}) is None


def test_collect_environment_warnings_page_url_missing(monkeypatch):
    monkeypatch.delenv("IMGPRELOAD_PAGE_URL", raising=False)
    monkeypatch.delenv("IMGPRELOAD_SETTINGS_PATH", raising=False)
    codes = {item.get("code") for item in preload_utils.collect_environment_warnings()}
    assert codes == {"page_url_missing"}


def test_collect_environment_warnings_bad_values(monkeypatch, tmp_path):
    monkeypatch.setenv("IMGPRELOAD_PAGE_URL", "site.example")
    monkeypatch.setenv("IMGPRELOAD_SETTINGS_PATH", str(tmp_path / "absent.json"))
    codes = {item.get("code") for item in preload_utils.collect_environment_warnings()}
    assert codes == {"page_url_invalid", "settings_path_missing"}
