"""HTML utility functions for Arbor.

This module provides the URL joining used when qualifying page URLs with the
site location, and the parsed-document view of rendered pages.

Functions:
    join_root_url: Join a base URL with a path.
    parse_document: Parse rendered HTML into an lxml document tree.
    serialize_document: Turn a parsed document back into HTML text.
"""

from __future__ import annotations

from lxml import html as lxml_html

DOCTYPE = "<!DOCTYPE html>"


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Args:
        root_url: Base URL (e.g., https://example.com/blog).
        path: Path beginning with or without a leading slash.

    Returns:
        Combined URL with proper slash handling.

    Examples:
        >>> join_root_url('https://example.com', '/about')
        'https://example.com/about'

        >>> join_root_url('https://example.com/', 'about')
        'https://example.com/about'
    """
    if not root_url:
        return path
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def parse_document(content: str):
    """Parse HTML text into a full lxml document.

    Fragments are wrapped in ``<html><body>`` by the parser.

    Args:
        content: Rendered HTML.

    Returns:
        The root ``<html>`` element.
    """
    return lxml_html.document_fromstring(content or "<html></html>")


def serialize_document(document) -> str:
    """Serialize a parsed document back to HTML with a doctype."""
    body = lxml_html.tostring(document, encoding="unicode", method="html")
    return f"{DOCTYPE}\n{body}"
