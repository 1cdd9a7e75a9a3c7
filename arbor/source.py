"""Source loading for Arbor.

The Source maps the files of the source directory to the virtual tree of
Directories and Pages. Files are classified by extension into one of four
channels:

- data files (``_data.yml``, ``_data/*.json``) merged into the data of
  their directory,
- pages, rendered through template engines,
- assets, loaded like pages but keeping their extension,
- static files, copied verbatim.

Anything else is left unclassified: neither built nor copied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .data import Data, Dest, Src, merge_data
from .errors import LoadError
from .protocols import Loader
from .tree import Directory, Page
from .utils import (
    extract_date_from_name,
    join_site_path,
    match_extension,
    maybe_await,
    normalize_path,
    split_site_path,
    strip_date_prefix,
)

if TYPE_CHECKING:
    from .site import Site

log = logging.getLogger(__name__)

DATA_NAME = "_data"


@dataclass
class FileChange:
    """Outcome of reloading one changed path.

    Attributes:
        path: Site path of the file.
        kind: ``data``, ``page``, ``directory``, ``static``, ``removed``,
            ``ignored`` or ``unknown``.
        pages: Pages whose data cache was invalidated.
        removed: Pages removed from the tree.
    """

    path: str
    kind: str
    pages: list[Page] = field(default_factory=list)
    removed: list[Page] = field(default_factory=list)


def default_dest(src: Src, asset: bool, pretty_urls: bool) -> Dest:
    """Derive the output location of a page from its source.

    A ``YYYY-MM-DD-`` prefix is dropped from the file name. Pages are
    written as HTML (as ``name/index.html`` with pretty URLs); assets keep
    their extension.
    """
    parent, name = split_site_path(src.path)
    name = strip_date_prefix(name)
    path = join_site_path(parent, name)
    if asset:
        return Dest(path=path, ext=src.ext)
    if pretty_urls and name != "index":
        path = join_site_path(path, "index")
    return Dest(path=path, ext=".html")


def _stat_times(path: Path) -> tuple[datetime, datetime]:
    info = path.stat()
    created = getattr(info, "st_birthtime", None) or info.st_ctime
    return datetime.fromtimestamp(info.st_mtime), datetime.fromtimestamp(created)


class Source:
    """Loads the source directory into a tree of Directories and Pages.

    Attributes:
        site: The owning site (paths and options).
        root: Root directory of the tree.
        data: Data loaders by extension.
        pages: Page and asset loaders by extension.
        assets: Extensions loaded as assets.
        static_files: Static mappings (source path to destination path).
        ignored: Site paths excluded from loading.
        static_paths: Static files and directories found by the last walk.
        errors: Load errors of the current run.
    """

    def __init__(self, site: Site):
        self.site = site
        self.root = Directory(Src(path="/"), defaults=site.extra_data)
        self.data: dict[str, Loader] = {}
        self.pages: dict[str, Loader] = {}
        self.assets: set[str] = set()
        self.static_files: dict[str, str] = {}
        self.ignored: set[str] = set()
        self.static_paths: dict[str, str] = {}
        self.errors: list[LoadError] = []

    # Tree access

    def get_or_create_directory(self, path: str) -> Directory:
        """Return the directory at ``path``, creating every missing ancestor."""
        directory = self.root
        for name in normalize_path(path).strip("/").split("/"):
            if name:
                directory = directory.create_directory(name)
        return directory

    def get_file_or_directory(self, path: str) -> Page | Directory | None:
        """Return the page or directory at ``path``, or None."""
        names = [n for n in normalize_path(path).strip("/").split("/") if n]
        directory = self.root
        for index, name in enumerate(names):
            last = index == len(names) - 1
            if name in directory.dirs:
                directory = directory.dirs[name]
            elif last and name in directory.pages:
                return directory.pages[name]
            else:
                return None
        return directory

    # Classification

    def is_static(self, file: str) -> tuple[str, str] | None:
        """Check whether a file is copied verbatim.

        Args:
            file: Site path of the file.

        Returns:
            The ``(source, destination)`` pair from the longest matching
            static mapping, or None.
        """
        file = normalize_path(file)
        best: str | None = None
        for source in self.static_files:
            if file == source or file.startswith(source.rstrip("/") + "/"):
                if best is None or len(source) > len(best):
                    best = source
        if best is None:
            return None
        destination = self.static_files[best]
        return file, normalize_path(destination + file[len(best) :])

    def is_ignored(self, path: str) -> bool:
        """Check whether a path equals or is nested under an ignored path."""
        path = normalize_path(path)
        for ignored in self.ignored:
            if path == ignored or path.startswith(ignored.rstrip("/") + "/"):
                return True
        return False

    def is_asset(self, ext: str) -> bool:
        return ext in self.assets

    # Loading

    async def load(self, path: Path, loader: Loader) -> Data:
        """Load a file with a loader.

        Raises:
            LoadError: If the loader fails or does not return a mapping.
        """
        try:
            data = await maybe_await(loader(path))
        except Exception as exc:
            raise LoadError(self._site_path(path), _describe(exc), exc) from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise LoadError(
                self._site_path(path),
                f"Loader returned {type(data).__name__}, expected a mapping",
            )
        return data

    async def load_directory(self, directory: Directory | None = None) -> None:
        """Load a directory and everything below it.

        Pages and sub-directories that no longer exist are removed from
        the tree. Load errors are recorded in ``errors``; the walk goes on.
        """
        directory = directory or self.root
        folder = self.site.src(directory.path)
        if not folder.is_dir():
            log.warning("Source directory not found: %s", folder)
            return
        await self._load_data(directory)

        seen_pages: set[str] = set()
        seen_dirs: set[str] = set()
        for entry in sorted(folder.iterdir(), key=lambda p: p.name):
            if entry.name == DATA_NAME or _is_data_file(entry.name, self.data):
                continue
            site_path = join_site_path(directory.path, entry.name)
            if self.is_ignored(site_path):
                continue
            static = self.is_static(site_path)
            if static:
                self.static_paths[static[0]] = static[1]
                continue
            if entry.name.startswith((".", "_")):
                continue
            if entry.is_dir():
                seen_dirs.add(entry.name)
                await self.load_directory(directory.create_directory(entry.name))
                continue
            ext = match_extension(entry.name, self.pages)
            if ext is None:
                continue
            seen_pages.add(entry.name)
            try:
                page = await self._load_page(directory, entry, ext)
            except LoadError as exc:
                self._record(exc)
                continue
            directory.set_page(entry.name, page)

        for name in set(directory.pages) - seen_pages:
            directory.unset_page(name)
        for name in set(directory.dirs) - seen_dirs:
            directory.unset_directory(name)

    async def load_file(self, file: str) -> FileChange:
        """Reload a single changed path in place.

        Args:
            file: Site path of the changed file or directory.

        Returns:
            What the path is and which pages were affected.
        """
        file = normalize_path(file)
        parent_path, name = split_site_path(file)
        fs_path = self.site.src(file)

        if self.is_ignored(file):
            return FileChange(file, "ignored")

        owner = self._data_owner(file)
        if owner is not None:
            directory = self.get_file_or_directory(owner)
            if directory is None and self._is_source_directory(owner):
                directory = await self._open_directory(owner)
            if not isinstance(directory, Directory):
                return FileChange(file, "ignored")
            await self._load_data(directory)
            return FileChange(file, "data", pages=list(directory.get_pages()))

        static = self.is_static(file)
        if static:
            if fs_path.exists():
                self.static_paths[static[0]] = static[1]
            else:
                self.static_paths.pop(static[0], None)
            return FileChange(file, "static")

        parts = file.strip("/").split("/")
        if any(part.startswith((".", "_")) for part in parts):
            return FileChange(file, "ignored")

        if not fs_path.exists():
            node = self.get_file_or_directory(file)
            parent = node.parent if node is not None else None
            if isinstance(node, Page) and parent is not None:
                parent.unset_page(name)
                return FileChange(file, "removed", removed=[node])
            if isinstance(node, Directory) and parent is not None:
                removed = list(node.get_pages())
                parent.unset_directory(name)
                return FileChange(file, "removed", removed=removed)
            return FileChange(file, "unknown")

        if fs_path.is_dir():
            directory = await self._open_directory(file)
            await self.load_directory(directory)
            return FileChange(file, "directory", pages=list(directory.get_pages()))

        ext = match_extension(name, self.pages)
        if ext is None:
            return FileChange(file, "unknown")
        directory = await self._open_directory(parent_path)
        try:
            page = await self._load_page(directory, fs_path, ext)
        except LoadError as exc:
            # The previous version of the page stays in the tree
            self._record(exc)
            return FileChange(file, "page")
        directory.set_page(name, page)
        return FileChange(file, "page", pages=[page])

    async def _open_directory(self, path: str) -> Directory:
        """Return the directory at ``path``, loading the data of each directory it creates."""
        directory = self.root
        for name in normalize_path(path).strip("/").split("/"):
            if not name:
                continue
            child = directory.dirs.get(name)
            if child is None:
                child = directory.create_directory(name)
                await self._load_data(child)
            directory = child
        return directory

    def _is_source_directory(self, path: str) -> bool:
        """Check whether ``path`` is a directory the walk would load."""
        if self.is_ignored(path) or self.is_static(path):
            return False
        parts = [part for part in path.strip("/").split("/") if part]
        if any(part.startswith((".", "_")) for part in parts):
            return False
        return self.site.src(path).is_dir()

    async def _load_page(self, directory: Directory, path: Path, ext: str) -> Page:
        data = await self.load(path, self.pages[ext])
        stem = path.name[: -len(ext)]
        last_modified, created = _stat_times(path)
        src = Src(
            path=join_site_path(directory.path, stem),
            ext=ext,
            last_modified=last_modified,
            created=created,
        )
        if "date" not in data:
            data["date"] = extract_date_from_name(stem) or created
        dest = default_dest(src, self.is_asset(ext), self.site.options.pretty_urls)
        return Page(src=src, data=data, dest=dest)

    async def _load_data(self, directory: Directory) -> None:
        """Rebuild the raw data of a directory from its data files."""
        folder = self.site.src(directory.path)
        data: Data = {}
        if folder.is_dir():
            for entry in sorted(folder.iterdir(), key=lambda p: p.name):
                if entry.is_file() and _is_data_file(entry.name, self.data):
                    loaded = await self._load_data_file(entry)
                    data = merge_data(data, loaded) if loaded is not None else data
            data_folder = folder / DATA_NAME
            if data_folder.is_dir():
                for key, value in (await self._load_data_folder(data_folder)).items():
                    data[key] = value
        if not data.get("tags"):
            data.pop("tags", None)
        directory.set_data(data)

    async def _load_data_folder(self, folder: Path) -> Data:
        data: Data = {}
        for entry in sorted(folder.iterdir(), key=lambda p: p.name):
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                data[entry.name] = await self._load_data_folder(entry)
                continue
            ext = match_extension(entry.name, self.data)
            if ext is None:
                continue
            loaded = await self._load_data_file(entry)
            if loaded is not None:
                data[entry.name[: -len(ext)]] = loaded
        return data

    async def _load_data_file(self, path: Path) -> Data | None:
        ext = match_extension(path.name, self.data)
        try:
            return await self.load(path, self.data[ext])
        except LoadError as exc:
            self._record(exc)
            return None

    def _data_owner(self, file: str) -> str | None:
        """Return the directory whose data a changed path belongs to."""
        parts = file.strip("/").split("/")
        if DATA_NAME in parts[:-1]:
            index = parts.index(DATA_NAME)
            return "/" + "/".join(parts[:index])
        name = parts[-1]
        if name == DATA_NAME or _is_data_file(name, self.data):
            return "/" + "/".join(parts[:-1])
        return None

    def _record(self, error: LoadError) -> None:
        log.error("Failed to load %s: %s", error.source_path, error.message)
        self.errors.append(error)

    def _site_path(self, path: Path) -> str:
        try:
            rel = Path(path).relative_to(self.site.src())
        except ValueError:
            return str(path)
        return normalize_path(rel.as_posix())


def _is_data_file(name: str, loaders: dict[str, Any]) -> bool:
    ext = match_extension(name, loaders)
    return ext is not None and name[: -len(ext)] == DATA_NAME


def _describe(exc: Exception) -> str:
    return f"{type(exc).__name__}: {exc}"
