"""Data model and merge engine for Arbor.

Every node in the source tree carries a mapping of raw, node-local data.
The effective data of a node is its parent's effective data combined with
its own raw data:

- nested mappings are merged key by key,
- every other value (scalars, lists, dates, callables) is overridden by the child,
- ``tags`` is the duplicate-free union of ancestor and local tags.

Key objects:
- Src / Dest: origin and output descriptors of nodes and pages.
- HelperOptions: how a template helper is registered in engines.
- merge_data: compute effective data from a base and local data.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union

Data = dict[str, Any]

# Page URLs can be literal strings, functions of the page, or False (not saved)
UrlValue = Union[str, Callable[[Any], str], bool, None]

RESERVED_KEYS = frozenset(
    {"tags", "url", "draft", "renderOrder", "content", "layout", "templateEngine"}
)


@dataclass
class Src:
    """Origin of a node in the source directory.

    Attributes:
        path: Site path without the extension (``/posts/a``).
        ext: Registered extension that matched the file (``.md``).
        last_modified: File modification time.
        created: File creation time.
    """

    path: str
    ext: str = ""
    last_modified: datetime | None = None
    created: datetime | None = None


@dataclass
class Dest:
    """Output location of a page.

    Attributes:
        path: Output path without the extension (``/posts/a/index``).
        ext: Output extension (``.html``).
        hash: Content hash of the last persisted output.
    """

    path: str
    ext: str
    hash: str | None = None

    @property
    def filename(self) -> str:
        """The output path including its extension."""
        return f"{self.path}{self.ext}"


@dataclass(frozen=True)
class HelperOptions:
    """Registration options of a template helper.

    Attributes:
        type: ``filter``, ``tag`` or ``function``.
        async_: Whether the helper returns an awaitable.
        body: Whether the helper receives a block body as first argument.
    """

    type: str = "function"
    async_: bool = False
    body: bool = False


def copy_data(value: Any) -> Any:
    """Copy mapping and list containers recursively, keeping leaf values."""
    if isinstance(value, Mapping):
        return {key: copy_data(item) for key, item in value.items()}
    if isinstance(value, list):
        return [copy_data(item) for item in value]
    return value


def normalize_tags(value: Any) -> list[str]:
    """Convert a ``tags`` value to a list of tag strings.

    Strings are split on commas; ``None`` becomes an empty list.

    Examples:
        >>> normalize_tags("python, web")
        ['python', 'web']
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [tag.strip() for tag in value.split(",") if tag.strip()]
    if isinstance(value, Iterable):
        return [str(tag) for tag in value if tag is not None and str(tag) != ""]
    return [str(value)]


def merge_tags(*groups: Any) -> list[str]:
    """Union of tag groups, duplicate-free, in first-seen order."""
    seen: list[str] = []
    for group in groups:
        for tag in normalize_tags(group):
            if tag not in seen:
                seen.append(tag)
    return seen


def _merge_mappings(base: Mapping[str, Any], local: Mapping[str, Any]) -> Data:
    merged = copy_data(base)
    for key, value in local.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = _merge_mappings(current, value)
        else:
            merged[key] = copy_data(value)
    return merged


def merge_data(base: Mapping[str, Any], local: Mapping[str, Any]) -> Data:
    """Combine inherited data with node-local data.

    Args:
        base: Effective data of the parent (or site-wide extra data).
        local: Raw data of the node.

    Returns:
        A new mapping. Containers are copied, so mutating the result
        never affects ``base`` or ``local``.
    """
    merged = _merge_mappings(base, {k: v for k, v in local.items() if k != "tags"})
    merged["tags"] = merge_tags(base.get("tags"), local.get("tags"))
    return merged


def template_engines(data: Mapping[str, Any]) -> list[str]:
    """Return the engine names listed in ``templateEngine``.

    Accepts a comma-separated string or a list; names are returned as
    extensions with a leading dot.

    Examples:
        >>> template_engines({"templateEngine": "jinja, md"})
        ['.jinja', '.md']
    """
    value = data.get("templateEngine")
    if not value:
        return []
    names = value.split(",") if isinstance(value, str) else list(value)
    engines = []
    for name in names:
        name = str(name).strip()
        if name:
            engines.append(name if name.startswith(".") else f".{name}")
    return engines


def render_order(data: Mapping[str, Any]) -> int:
    """Return the ``renderOrder`` of a page (0 when unset or invalid)."""
    try:
        return int(data.get("renderOrder") or 0)
    except (TypeError, ValueError):
        return 0


def is_draft(data: Mapping[str, Any]) -> bool:
    return bool(data.get("draft", False))
