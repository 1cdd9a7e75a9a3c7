"""Template engines for Arbor.

This module contains the default implementations of the Engine protocol.
Each engine handles a single responsibility: turning one kind of source
into HTML.

Key classes:
- JinjaEngine: Renders Jinja2 templates, pages and layouts.
- MarkdownEngine: Renders Markdown to HTML with syntax highlighting.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import mistune
from jinja2 import Environment, FileSystemLoader, Template, meta, select_autoescape
from markupsafe import Markup

from .data import HelperOptions
from .protocols import Helper


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text.

    Args:
        text: The heading text.

    Returns:
        URL-friendly slug suitable for anchor links.
    """
    slug = text.lower().strip()
    slug = re.sub(r"<[^>]+>", "", slug)
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown renderer adding heading ids and Pygments highlighting."""

    def __init__(self):
        super().__init__(escape=False)
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        """Render a heading with an auto-generated, unique ID."""
        base_id = _generate_heading_id(text)

        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id

        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block with Pygments syntax highlighting.

        Args:
            code: The code content.
            info: Language identifier (e.g., 'python', 'javascript').

        Returns:
            HTML string with highlighted code.
        """
        if info:
            from pygments import highlight
            from pygments.formatters import HtmlFormatter
            from pygments.lexers import get_lexer_by_name
            from pygments.util import ClassNotFound

            try:
                lexer = get_lexer_by_name(info.split()[0], stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang_class = f' class="language-{info}"' if info else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


class MarkdownEngine:
    """Renders Markdown content to HTML.

    Markdown has no template syntax, so helpers are recorded but not used.
    """

    plugins = ["strikethrough", "footnotes", "table", "url"]

    def __init__(self) -> None:
        self.helpers: dict[str, tuple[Helper, HelperOptions]] = {}

    def render(self, content: Any, data: dict[str, Any], filename: str) -> str:
        """Render Markdown source to HTML."""
        markdown = mistune.create_markdown(
            renderer=_HighlightRenderer(), plugins=self.plugins
        )
        return markdown(str(content or ""))

    def add_helper(self, name: str, fn: Helper, options: HelperOptions) -> None:
        self.helpers[name] = (fn, options)


class JinjaEngine:
    """Template engine using Jinja2.

    Layouts and partials are looked up in the includes directories. Pages
    and layouts are compiled from their loaded content and cached by file
    name until the content changes.

    Attributes:
        env: Jinja2 environment (async mode, so helpers may be coroutines).
    """

    def __init__(self, includes: Path | Iterable[Path]):
        """Initialize the engine.

        Args:
            includes: Directory (or directories) with layouts and partials.
        """
        paths = [includes] if isinstance(includes, (str, Path)) else list(includes)
        self.env = Environment(
            loader=FileSystemLoader([str(path) for path in paths]),
            autoescape=select_autoescape(["html", "xml"], default_for_string=True),
            enable_async=True,
        )
        self._templates: dict[str, tuple[str, Template]] = {}
        # Templates named by include, import and extends tags, by file name
        self._references: dict[str, set[str]] = {}

    def _template(self, source: str, filename: str) -> Template:
        cached = self._templates.get(filename)
        if cached is not None and cached[0] == source:
            return cached[1]
        template = self.env.from_string(source)
        self._templates[filename] = (source, template)
        names = meta.find_referenced_templates(self.env.parse(source))
        self._references[filename] = {name for name in names if name is not None}
        return template

    def delete_cache(self, filename: str | None = None) -> None:
        """Forget compiled templates (all of them when no file is given)."""
        if filename is None:
            self._templates.clear()
            self._references.clear()
        else:
            self._templates.pop(filename, None)
            self._references.pop(filename, None)

    def references(self, name: str) -> bool:
        """Check whether a compiled page or layout includes, imports or extends ``name``."""
        return any(name in names for names in self._references.values())

    async def render(self, content: Any, data: dict[str, Any], filename: str) -> str:
        """Render a template string with the page data.

        A string ``content`` value in the data is rendered output from a
        previous step, so it is marked safe for autoescaping.
        """
        template = self._template(str(content or ""), filename)
        context = dict(data)
        if isinstance(context.get("content"), str):
            context["content"] = Markup(context["content"])
        return await template.render_async(context)

    def add_helper(self, name: str, fn: Helper, options: HelperOptions) -> None:
        """Expose a helper to templates.

        Filters and body helpers become Jinja filters (body helpers are used
        through ``{% filter name %}...{% endfilter %}``); tags and functions
        become globals.
        """
        if options.type == "filter" or options.body:
            self.env.filters[name] = fn
        else:
            self.env.globals[name] = fn
