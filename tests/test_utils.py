import asyncio
from datetime import datetime

from arbor import utils
from arbor.html_utils import join_root_url, parse_document, serialize_document


def test_normalize_and_join_site_paths():
    assert utils.normalize_path("posts//a.md") == "/posts/a.md"
    assert utils.normalize_path("/posts/../about.md") == "/about.md"
    assert utils.normalize_path("") == "/"
    assert utils.normalize_path("//double") == "/double"
    assert utils.join_site_path("/posts/", "a") == "/posts/a"
    assert utils.join_site_path("_includes", "layout.html") == "/_includes/layout.html"
    assert utils.split_site_path("/posts/a.md") == ("/posts", "a.md")
    assert utils.split_site_path("a.md") == ("/", "a.md")


def test_match_extension_prefers_longest_suffix():
    exts = [".html", ".tmpl.html", ".md"]
    assert utils.match_extension("index.tmpl.html", exts) == ".tmpl.html"
    assert utils.match_extension("index.html", exts) == ".html"
    assert utils.match_extension("notes.txt", exts) is None
    # the extension alone is not a file name
    assert utils.match_extension(".md", exts) is None


def test_date_prefix_helpers():
    assert utils.extract_date_from_name("2024-01-15-cool") == datetime(2024, 1, 15)
    assert utils.extract_date_from_name("invalid") is None
    assert utils.extract_date_from_name("2024-13-32-post") is None
    assert utils.strip_date_prefix("2024-01-15-hello-world") == "hello-world"
    assert utils.strip_date_prefix("2024-01-15") == "2024-01-15"
    assert utils.strip_date_prefix("hello") == "hello"


def test_ensure_clean_dir(tmp_path):
    target = tmp_path / "build"
    (target / "nested").mkdir(parents=True)
    (target / "nested" / "old.txt").write_text("old", encoding="utf-8")
    utils.ensure_clean_dir(target)
    assert target.is_dir()
    assert list(target.iterdir()) == []

    missing = tmp_path / "missing"
    utils.ensure_clean_dir(missing)
    assert missing.is_dir()


def test_maybe_await_accepts_values_and_coroutines():
    async def value():
        return 42

    assert asyncio.run(utils.maybe_await(1)) == 1
    assert asyncio.run(utils.maybe_await(value())) == 42


def test_join_root_url_handles_slashes():
    assert join_root_url("https://example.com", "/about") == "https://example.com/about"
    assert join_root_url("https://example.com/", "about") == "https://example.com/about"
    assert join_root_url("", "/about") == "/about"


def test_document_round_trip_keeps_edits():
    document = parse_document("<p>Hello</p>")
    paragraph = document.body[0]
    paragraph.set("class", "lead")
    html = serialize_document(document)
    assert html.startswith("<!DOCTYPE html>\n<html>")
    assert '<p class="lead">Hello</p>' in html
