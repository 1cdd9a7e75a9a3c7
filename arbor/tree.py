"""Source tree for Arbor.

The source tree is a hierarchy of Directories and Pages. Directories own
their children through the ``pages`` and ``dirs`` mappings; a child only
keeps a weak reference to its parent.

Each node memoizes its effective data (parent data merged with its own raw
data). The memoized value is dropped whenever the node's raw data changes,
an ancestor's raw data changes, or the node moves to another directory, and
the drop always propagates to every descendant.

Key classes:
- NodeData: Raw data mapping that invalidates its owner on writes.
- Directory: Node holding pages and sub-directories.
- Page: Node with an output descriptor, content and a parsed document view.
"""

from __future__ import annotations

import weakref
from collections.abc import Iterator, Mapping, MutableMapping
from copy import copy
from typing import Any

from .data import Data, Dest, Src, copy_data, is_draft, merge_data, merge_tags
from .data import render_order as _render_order
from .data import template_engines as _template_engines
from .html_utils import parse_document, serialize_document

HTML_EXTENSIONS = (".html", ".htm")


class NodeData(MutableMapping):
    """Raw data of a node.

    Assigning or deleting a key refreshes the owner's data cache. Nested
    values mutated in place are not tracked; call ``refresh_cache()`` on the
    owner afterwards.
    """

    def __init__(self, owner: Node, initial: Mapping[str, Any] | None = None):
        self._owner = weakref.ref(owner)
        self._items: Data = dict(initial or {})

    def __getitem__(self, key: str) -> Any:
        return self._items[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._items[key] = value
        self._touch()

    def __delitem__(self, key: str) -> None:
        del self._items[key]
        self._touch()

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"NodeData({self._items!r})"

    def _touch(self) -> None:
        owner = self._owner()
        if owner is not None:
            owner.refresh_cache()


class Node:
    """Base of every path-addressable node in the source tree.

    Attributes:
        src: Origin of the node; None for synthetic pages.
        defaults: Data inherited by a node without parent (the site's extra data).
    """

    def __init__(
        self,
        src: Src | None = None,
        data: Mapping[str, Any] | None = None,
        defaults: Mapping[str, Any] | None = None,
    ):
        self.src = src
        self.defaults = defaults
        self._raw = NodeData(self, data)
        self._parent: weakref.ReferenceType[Directory] | None = None
        self._cache: Data | None = None

    @property
    def parent(self) -> Directory | None:
        """The directory holding this node, if any."""
        return self._parent() if self._parent is not None else None

    @property
    def raw_data(self) -> NodeData:
        """Node-local data, before inheritance."""
        return self._raw

    def set_data(self, data: Mapping[str, Any]) -> None:
        """Replace the raw data of the node."""
        self._raw = NodeData(self, data)
        self.refresh_cache()

    @property
    def data(self) -> Data:
        """Effective data: inherited data merged with the node's raw data.

        The returned mapping is the cached value itself; changes made to it
        last until the cache is refreshed.
        """
        if self._cache is None:
            parent = self.parent
            if parent is not None:
                base = parent.data
            else:
                base = self.defaults or {}
            self._cache = merge_data(base, self._raw)
        return self._cache

    @property
    def is_cached(self) -> bool:
        return self._cache is not None

    def refresh_cache(self) -> None:
        """Drop the memoized effective data."""
        self._cache = None

    def _attach(self, parent: Directory) -> None:
        if self.parent is not parent:
            self._parent = weakref.ref(parent)
        self.refresh_cache()

    def _detach(self) -> None:
        self._parent = None
        self.refresh_cache()


class Page(Node):
    """A page of the site.

    Attributes:
        dest: Output descriptor; None when the page must not be saved.
    """

    def __init__(
        self,
        src: Src | None = None,
        data: Mapping[str, Any] | None = None,
        dest: Dest | None = None,
    ):
        super().__init__(src, data)
        self.dest = dest
        self._content: str | bytes | None = self._raw.get("content")
        self._document = None

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"Page({self.source_path or self.dest!r})"

    @property
    def source_path(self) -> str | None:
        """Site path of the source file, extension included."""
        if self.src is None:
            return None
        return f"{self.src.path}{self.src.ext}"

    @property
    def content(self) -> str | bytes | None:
        """Raw or rendered body of the page."""
        return self._content

    @content.setter
    def content(self, value: str | bytes | None) -> None:
        self._content = value
        self._document = None

    @property
    def document(self):
        """Parsed HTML view of the rendered content.

        Only available for textual pages written to an HTML file; None
        otherwise. Changes made to the document are written back to the
        content at the end of the processing phase.
        """
        if self._document is None:
            if self.dest is None or self.dest.ext not in HTML_EXTENSIONS:
                return None
            if not isinstance(self._content, str):
                return None
            self._document = parse_document(self._content)
        return self._document

    def sync_document(self) -> None:
        """Write an accessed document back into the content."""
        if self._document is not None:
            document = self._document
            self._content = serialize_document(document)
            self._document = None

    @property
    def tags(self) -> list[str]:
        return merge_tags(self.data.get("tags"))

    @property
    def layout(self) -> str | None:
        return self.data.get("layout") or None

    @property
    def is_draft(self) -> bool:
        return is_draft(self.data)

    @property
    def render_order(self) -> int:
        return _render_order(self.data)

    @property
    def template_engines(self) -> list[str]:
        return _template_engines(self.data)

    def duplicate(self, data: Mapping[str, Any] | None = None) -> Page:
        """Return an independent copy of the page.

        Args:
            data: Values shallow-merged over a copy of the raw data.

        Returns:
            A new Page with the same parent that is not registered in
            the parent's ``pages`` mapping.
        """
        raw = copy_data(dict(self._raw))
        raw.update(data or {})
        page = Page(
            src=copy(self.src) if self.src is not None else None,
            data=raw,
            dest=copy(self.dest) if self.dest is not None else None,
        )
        page._content = self._content
        page._parent = self._parent
        return page


class Directory(Node):
    """A directory of the source tree.

    Attributes:
        pages: Pages stored in the directory, by file name.
        dirs: Sub-directories, by name.
    """

    def __init__(
        self,
        src: Src | None = None,
        data: Mapping[str, Any] | None = None,
        defaults: Mapping[str, Any] | None = None,
    ):
        super().__init__(src, data, defaults)
        self.pages: dict[str, Page] = {}
        self.dirs: dict[str, Directory] = {}

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"Directory({self.path!r})"

    @property
    def path(self) -> str:
        return self.src.path if self.src is not None else "/"

    def create_directory(self, name: str) -> Directory:
        """Return the sub-directory ``name``, creating it if needed."""
        directory = self.dirs.get(name)
        if directory is None:
            base = self.path.rstrip("/")
            directory = Directory(Src(path=f"{base}/{name}"))
            directory._attach(self)
            self.dirs[name] = directory
        return directory

    def set_page(self, name: str, page: Page) -> None:
        """Store ``page`` under ``name``, replacing any page with that name."""
        previous = self.pages.get(name)
        if previous is not None and previous is not page:
            previous._detach()
        current = page.parent
        if current is not None:
            # A page is stored under one name only
            for key, value in list(current.pages.items()):
                if value is page and not (current is self and key == name):
                    del current.pages[key]
        self.pages[name] = page
        page._attach(self)

    def unset_page(self, name: str) -> None:
        """Remove the page ``name``; does nothing if there is none."""
        page = self.pages.pop(name, None)
        if page is not None:
            page._detach()

    def unset_directory(self, name: str) -> None:
        """Remove the sub-directory ``name``; does nothing if there is none."""
        directory = self.dirs.pop(name, None)
        if directory is not None:
            directory._detach()

    def get_pages(self) -> Iterator[Page]:
        """Yield every page under this directory, depth first.

        The directory's own pages come first, then each sub-directory;
        names are visited in sorted order.
        """
        for name in sorted(self.pages):
            yield self.pages[name]
        for name in sorted(self.dirs):
            yield from self.dirs[name].get_pages()

    def refresh_cache(self) -> None:
        """Drop the memoized data of this directory and all its descendants."""
        super().refresh_cache()
        for page in self.pages.values():
            page.refresh_cache()
        for directory in self.dirs.values():
            directory.refresh_cache()
