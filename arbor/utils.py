"""Utility functions for Arbor.

This module contains small helpers used throughout the Arbor codebase:
site path handling, extension matching, date prefixes and awaitables.

Key functions:
    normalize_path: Convert a site path to its canonical slash form.
    match_extension: Find the longest registered extension of a filename.
    extract_date_from_name: Extract date from filename prefix.
    strip_date_prefix: Drop a YYYY-MM-DD- prefix from a filename stem.
    ensure_clean_dir: Ensure a directory exists and is empty.
    maybe_await: Resolve a value that may be awaitable.
"""

from __future__ import annotations

import inspect
import posixpath
import shutil
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any


def normalize_path(path: str) -> str:
    """Normalize a site path to an absolute, slash-separated form.

    Args:
        path: Path relative to the site source, with or without a leading slash.

    Returns:
        Normalized path such as ``/posts/a.md``; the root is ``/``.

    Examples:
        >>> normalize_path("posts//a.md")
        '/posts/a.md'
    """
    cleaned = path.replace("\\", "/")
    normalized = posixpath.normpath("/" + cleaned.lstrip("/"))
    # normpath keeps a double leading slash
    return "/" + normalized.lstrip("/")


def join_site_path(*parts: str) -> str:
    """Join site path segments into a normalized path."""
    return normalize_path("/".join(part.strip("/") for part in parts if part))


def split_site_path(path: str) -> tuple[str, str]:
    """Split a site path into its parent directory and base name.

    Examples:
        >>> split_site_path("/posts/a.md")
        ('/posts', 'a.md')
    """
    normalized = normalize_path(path)
    parent, name = posixpath.split(normalized)
    return parent or "/", name


def match_extension(filename: str, extensions: Iterable[str]) -> str | None:
    """Return the longest extension in ``extensions`` that ends ``filename``.

    Args:
        filename: File name or path to check.
        extensions: Registered extensions (e.g. ``.md``, ``.tmpl.html``).

    Returns:
        The matched extension, or None if nothing matches.

    Examples:
        >>> match_extension("index.tmpl.html", [".html", ".tmpl.html"])
        '.tmpl.html'
    """
    for ext in sorted(extensions, key=len, reverse=True):
        if filename.endswith(ext) and len(filename) > len(ext):
            return ext
    return None


def extract_date_from_name(name: str) -> datetime | None:
    """Extract a date from a filename with YYYY-MM-DD prefix.

    Args:
        name: Filename stem (without extension).

    Returns:
        datetime object if a valid date prefix is found, None otherwise.

    Examples:
        >>> extract_date_from_name("2024-01-15-hello-world")
        datetime(2024, 1, 15, 0, 0)

        >>> extract_date_from_name("hello-world")
        None
    """
    parts = name.split("-")
    if len(parts) >= 3 and all(p.isdigit() for p in parts[:3]):
        try:
            return datetime(int(parts[0]), int(parts[1]), int(parts[2]))
        except ValueError:
            return None
    return None


def strip_date_prefix(name: str) -> str:
    """Remove a YYYY-MM-DD- prefix from a filename stem.

    Names that are only a date, or carry an invalid date, are kept.

    Examples:
        >>> strip_date_prefix("2024-01-15-hello-world")
        'hello-world'
    """
    parts = name.split("-")
    if len(parts) >= 4 and extract_date_from_name(name) is not None:
        return "-".join(parts[3:])
    return name


def ensure_clean_dir(path: Path) -> None:
    """Empty a directory, creating it when missing.

    The directory itself is kept, so anything serving it keeps a valid
    handle; only its children are removed.

    Args:
        path: Directory path to clean or create.
    """
    if not path.is_dir():
        path.mkdir(parents=True, exist_ok=True)
        return
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it unchanged.

    Loaders, engines, listeners and script callables may be plain functions
    or coroutines; every call site goes through this helper.
    """
    if inspect.isawaitable(value):
        return await value
    return value
