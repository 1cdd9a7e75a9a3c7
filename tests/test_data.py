from datetime import datetime

from arbor.data import (
    Dest,
    copy_data,
    is_draft,
    merge_data,
    merge_tags,
    normalize_tags,
    render_order,
    template_engines,
)


def test_merge_data_deep_merges_mappings_and_overrides_the_rest():
    base = {
        "site": {"title": "Base", "meta": {"lang": "en"}},
        "menu": ["a", "b"],
        "count": 1,
    }
    local = {"site": {"meta": {"author": "Ann"}}, "menu": ["c"], "count": 2}
    merged = merge_data(base, local)
    assert merged["site"] == {"title": "Base", "meta": {"lang": "en", "author": "Ann"}}
    assert merged["menu"] == ["c"]
    assert merged["count"] == 2
    assert merged["tags"] == []


def test_merge_data_never_leaks_into_base():
    base = {"site": {"title": "Base"}, "list": [1]}
    merged = merge_data(base, {})
    merged["site"]["title"] = "Changed"
    merged["list"].append(2)
    assert base == {"site": {"title": "Base"}, "list": [1]}


def test_tags_are_unioned_in_ancestor_order():
    merged = merge_data({"tags": ["a", "b"]}, {"tags": ["b", "c"]})
    assert merged["tags"] == ["a", "b", "c"]
    assert merge_tags("x, y", ["y", "z"], None) == ["x", "y", "z"]
    assert normalize_tags("python, web") == ["python", "web"]
    assert normalize_tags(None) == []
    assert normalize_tags(3) == ["3"]


def test_copy_data_copies_containers_only():
    when = datetime(2024, 1, 1)
    original = {"nested": {"list": [1, {"deep": True}]}, "when": when}
    copied = copy_data(original)
    assert copied == original
    assert copied["nested"] is not original["nested"]
    assert copied["nested"]["list"][1] is not original["nested"]["list"][1]
    assert copied["when"] is when


def test_reserved_key_accessors():
    assert template_engines({"templateEngine": "jinja, md"}) == [".jinja", ".md"]
    assert template_engines({"templateEngine": [".md"]}) == [".md"]
    assert template_engines({}) == []
    assert render_order({"renderOrder": "3"}) == 3
    assert render_order({"renderOrder": "soon"}) == 0
    assert is_draft({"draft": True})
    assert not is_draft({})


def test_dest_filename():
    assert Dest(path="/posts/a/index", ext=".html").filename == "/posts/a/index.html"
