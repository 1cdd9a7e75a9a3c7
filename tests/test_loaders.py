import pytest
import yaml

from arbor.loaders import (
    extract_frontmatter,
    load_binary,
    load_json,
    load_raw_text,
    load_text,
    load_yaml,
)


def test_extract_frontmatter():
    data, body = extract_frontmatter("---\ntitle: Hello\ntags: [a]\n---\n# Body\n")
    assert data == {"title": "Hello", "tags": ["a"]}
    assert body == "# Body\n"

    data, body = extract_frontmatter("No frontmatter")
    assert data == {}
    assert body == "No frontmatter"

    with pytest.raises(yaml.YAMLError):
        extract_frontmatter("---\ntitle: [unclosed\n---\nbody")


def test_text_loaders(tmp_path):
    page = tmp_path / "page.md"
    page.write_text("---\ntitle: Hi\n---\nHello", encoding="utf-8")
    assert load_text(page) == {"title": "Hi", "content": "Hello"}
    assert load_raw_text(page) == {"content": "---\ntitle: Hi\n---\nHello"}

    image = tmp_path / "logo.bin"
    image.write_bytes(b"\x00\x01")
    assert load_binary(image) == {"content": b"\x00\x01"}


def test_data_loaders_expose_non_mappings_under_the_stem(tmp_path):
    (tmp_path / "site.yml").write_text("title: Test\n", encoding="utf-8")
    (tmp_path / "nav.yml").write_text("- home\n- about\n", encoding="utf-8")
    (tmp_path / "empty.yml").write_text("", encoding="utf-8")
    (tmp_path / "authors.json").write_text('{"ann": {"name": "Ann"}}', encoding="utf-8")
    (tmp_path / "years.json").write_text("[2023, 2024]", encoding="utf-8")

    assert load_yaml(tmp_path / "site.yml") == {"title": "Test"}
    assert load_yaml(tmp_path / "nav.yml") == {"nav": ["home", "about"]}
    assert load_yaml(tmp_path / "empty.yml") == {}
    assert load_json(tmp_path / "authors.json") == {"ann": {"name": "Ann"}}
    assert load_json(tmp_path / "years.json") == {"years": [2023, 2024]}
