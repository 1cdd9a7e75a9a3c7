import asyncio

import pytest
from jinja2 import TemplateSyntaxError
from markupsafe import Markup

from arbor.data import HelperOptions
from arbor.engines import JinjaEngine, MarkdownEngine, _generate_heading_id
from arbor.protocols import Engine


def test_engines_satisfy_the_protocol(tmp_path):
    assert isinstance(MarkdownEngine(), Engine)
    assert isinstance(JinjaEngine(tmp_path), Engine)


def test_heading_ids():
    assert _generate_heading_id("Hello World!") == "hello-world"
    assert _generate_heading_id("<em>Tagged</em> title") == "tagged-title"


def test_markdown_renders_headings_and_code():
    engine = MarkdownEngine()
    html = engine.render("# Intro\n\n# Intro\n\n```python\nprint(1)\n```\n", {}, "a.md")
    assert '<h1 id="intro">Intro</h1>' in html
    assert '<h1 id="intro-1">Intro</h1>' in html
    assert 'class="highlight"' in html

    plain = engine.render("```nolang\n<tag>\n```\n", {}, "b.md")
    assert '<code class="language-nolang">&lt;tag&gt;' in plain
    assert engine.render(None, {}, "c.md") == ""


def test_markdown_keeps_helpers_without_using_them():
    engine = MarkdownEngine()
    engine.add_helper("upper", str.upper, HelperOptions(type="filter"))
    assert "upper" in engine.helpers


def test_jinja_renders_data_and_includes(tmp_path):
    (tmp_path / "nav.html").write_text("<nav>{{ title }}</nav>", encoding="utf-8")
    engine = JinjaEngine(tmp_path)
    html = asyncio.run(
        engine.render('{% include "nav.html" %}<p>{{ content }}</p>', {"title": "T", "content": "<b>x</b>"}, "page.html")
    )
    assert html == "<nav>T</nav><p><b>x</b></p>"


def test_jinja_escapes_data_values(tmp_path):
    engine = JinjaEngine(tmp_path)
    html = asyncio.run(engine.render("{{ title }}", {"title": "<script>"}, "page.html"))
    assert html == "&lt;script&gt;"


def test_jinja_helpers(tmp_path):
    engine = JinjaEngine(tmp_path)

    async def fetch(name):
        return f"fetched {name}"

    engine.add_helper("shout", lambda text: text.upper(), HelperOptions(type="filter"))
    engine.add_helper("fetch", fetch, HelperOptions(async_=True))
    engine.add_helper("wrap", lambda body: Markup(f"<div>{body}</div>"), HelperOptions(type="tag", body=True))
    html = asyncio.run(
        engine.render(
            "{{ 'a' | shout }} {{ fetch('x') }} {% filter wrap %}inner{% endfilter %}",
            {},
            "page.html",
        )
    )
    assert html == "A fetched x <div>inner</div>"


def test_jinja_template_cache(tmp_path):
    engine = JinjaEngine(tmp_path)
    assert asyncio.run(engine.render("one", {}, "page.html")) == "one"
    assert asyncio.run(engine.render("two", {}, "page.html")) == "two"
    engine.delete_cache("page.html")
    engine.delete_cache()
    assert engine._templates == {}


def test_jinja_tracks_referenced_templates(tmp_path):
    (tmp_path / "note.html").write_text("note", encoding="utf-8")
    engine = JinjaEngine(tmp_path)
    asyncio.run(engine.render('{% include "note.html" %}', {}, "page.html"))

    assert engine.references("note.html")
    assert not engine.references("other.html")
    engine.delete_cache("page.html")
    assert not engine.references("note.html")


def test_jinja_syntax_errors_propagate(tmp_path):
    engine = JinjaEngine(tmp_path)
    with pytest.raises(TemplateSyntaxError):
        asyncio.run(engine.render("{% if %}", {}, "broken.html"))
