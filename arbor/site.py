"""Site building for Arbor.

This module contains the Site, which drives the build pipeline:

    load -> preprocess -> render -> process -> save

A full build loads the whole source directory; an incremental update
reloads only the changed paths and runs the rest of the pipeline on the
pages whose data depends on them. Lifecycle events are dispatched at the
boundaries of the phases, and "before" listeners may veto the run.

Per-file failures do not stop the build: failing pages are skipped, and
every failure is reported at the end through BuildFailure.
"""

from __future__ import annotations

import hashlib
import logging
import posixpath
import shutil
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from .config import SiteOptions
from .data import Data, Dest, HelperOptions, template_engines
from .engines import JinjaEngine, MarkdownEngine
from .errors import ArborError, BuildError, BuildFailure, ConfigurationError, RenderError
from .events import Event, EventBus, EventType
from .helpers import paginate
from .html_utils import join_root_url
from .loaders import load_json, load_text, load_yaml
from .metrics import Metrics
from .protocols import Engine, Helper, Loader, Plugin, Processor
from .scripts import Scripts
from .source import Source, default_dest
from .tree import Page
from .utils import (
    ensure_clean_dir,
    join_site_path,
    match_extension,
    maybe_await,
    normalize_path,
    split_site_path,
)

log = logging.getLogger(__name__)


class BuildState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    UPDATING = "updating"
    PREPROCESSING = "preprocessing"
    RENDERING = "rendering"
    PROCESSING = "processing"
    SAVING = "saving"


@dataclass
class BuildResult:
    """Result of a build or update.

    Attributes:
        pages: Pages rendered during the run.
        written: Output files written (site-relative).
        copied: Static paths copied (destination, site-relative).
        errors: Files that failed to load or render.
        cancelled: A listener vetoed the run.
        output_dir: Destination directory.
    """

    pages: list[Page] = field(default_factory=list)
    written: list[str] = field(default_factory=list)
    copied: list[str] = field(default_factory=list)
    errors: list[BuildError] = field(default_factory=list)
    cancelled: bool = False
    output_dir: Path | None = None


def _extensions(extensions: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(extensions, str):
        return (extensions,)
    return tuple(extensions)


def _matches(extensions: tuple[str, ...], ext: str | None) -> bool:
    return "*" in extensions or (ext is not None and ext in extensions)


def _content_kind(content: Any) -> str | None:
    if isinstance(content, (bytes, bytearray)):
        return "binary"
    if isinstance(content, str):
        return "text"
    return None


def _describe(exc: Exception) -> str:
    return f"{type(exc).__name__}: {exc}"


class Site:
    """A site: registries, source tree and build pipeline.

    Attributes:
        options: Site options, fixed for the run.
        source: Source tree and loader registry.
        scripts: Named scripts.
        metrics: Phase timings of the last run.
        events: Listeners by event type.
        engines: Template engines by extension.
        helpers: Template helpers by name.
        extra_data: Data inherited by every page.
        preprocessors: ``(extensions, fn)`` run before rendering.
        processors: ``(extensions, fn)`` run after rendering.
        pages: Pages of the site (drafts only in dev mode).
        state: Current pipeline phase.
    """

    def __init__(self, options: SiteOptions | dict[str, Any] | None = None, **overrides: Any):
        if options is None:
            options = SiteOptions.from_dict(overrides)
        elif isinstance(options, dict):
            options = SiteOptions.from_dict({**options, **overrides})
        elif overrides:
            options = replace(options, **overrides)
        self.options = options
        self.extra_data: Data = {}
        self.source = Source(self)
        self.scripts = Scripts(self)
        self.metrics = Metrics()
        self.events = EventBus(self.scripts)
        self.engines: dict[str, Engine] = {}
        self.helpers: dict[str, tuple[Helper, HelperOptions]] = {}
        self.preprocessors: list[tuple[tuple[str, ...], Processor]] = []
        self.processors: list[tuple[tuple[str, ...], Processor]] = []
        self.pages: list[Page] = []
        self.state = BuildState.IDLE

        # Output tracking: hash by output file, output file by source page
        self._hashes: dict[str, str] = {}
        self._outputs: dict[str, str] = {}
        # Loaded layouts, and the pages that used each layout
        self._layouts: dict[str, Data] = {}
        self._dependencies: dict[str, set[str]] = {}

        self._install_defaults()

    def _install_defaults(self) -> None:
        self.load_data([".yml", ".yaml"], load_yaml)
        self.load_data([".json"], load_json)
        self.load_pages([".html", ".jinja"], load_text, JinjaEngine(self.src(self.options.includes)))
        self.load_pages([".md"], load_text, MarkdownEngine())
        self.helper("paginate", paginate, HelperOptions(type="function"))
        self.filter("url", self.url)

        includes = normalize_path(self.options.includes)
        if not includes.strip("/").startswith("_"):
            self.ignore(includes)
        try:
            rel = self.dest().resolve().relative_to(self.src().resolve())
        except ValueError:
            pass
        else:
            self.ignore(rel.as_posix())

    @property
    def flags(self) -> list[str]:
        return self.options.flags

    @property
    def listeners(self) -> dict[EventType, list]:
        return self.events.listeners

    # Paths

    def src(self, *path: str) -> Path:
        """Return a path inside the source directory."""
        parts = [p.strip("/") for p in path if p and p.strip("/")]
        return Path(self.options.cwd, self.options.src, *parts)

    def dest(self, *path: str) -> Path:
        """Return a path inside the destination directory."""
        parts = [p.strip("/") for p in path if p and p.strip("/")]
        return Path(self.options.cwd, self.options.dest, *parts)

    # Registration

    def use(self, plugin: Plugin) -> Site:
        plugin(self)
        return self

    def script(self, name: str, *commands: Any) -> Site:
        self.scripts.set(name, *commands)
        return self

    def add_event_listener(self, type: EventType | str, listener: Any) -> Site:
        self.events.add(type, listener)
        return self

    async def dispatch_event(self, event: Event) -> bool:
        return await self.events.dispatch(event)

    def load_data(self, extensions: str | Iterable[str], loader: Loader) -> Site:
        for ext in _extensions(extensions):
            self.source.data[ext] = loader
        return self

    def load_pages(
        self,
        extensions: str | Iterable[str],
        loader: Loader = load_text,
        engine: Engine | None = None,
    ) -> Site:
        """Register a page loader, and optionally its engine, for extensions."""
        if engine is not None and all(e is not engine for e in self.engines.values()):
            for name, (fn, options) in self.helpers.items():
                engine.add_helper(name, fn, options)
        for ext in _extensions(extensions):
            self.source.pages[ext] = loader
            self.source.assets.discard(ext)
            if engine is not None:
                self.engines[ext] = engine
        return self

    def load_assets(self, extensions: str | Iterable[str], loader: Loader = load_text) -> Site:
        """Register an asset loader: assets keep their extension and skip engines."""
        for ext in _extensions(extensions):
            self.source.pages[ext] = loader
            self.source.assets.add(ext)
        return self

    def preprocess(self, extensions: str | Iterable[str], preprocessor: Processor) -> Site:
        self.preprocessors.append((_extensions(extensions), preprocessor))
        return self

    def process(self, extensions: str | Iterable[str], processor: Processor) -> Site:
        self.processors.append((_extensions(extensions), processor))
        return self

    def filter(self, name: str, filter: Helper, async_: bool = False) -> Site:
        return self.helper(name, filter, HelperOptions(type="filter", async_=async_))

    def helper(self, name: str, fn: Helper, options: HelperOptions) -> Site:
        self.helpers[name] = (fn, options)
        for engine in self._unique_engines():
            engine.add_helper(name, fn, options)
        return self

    def data(self, name: str, data: Any) -> Site:
        """Add data inherited by every page."""
        self.extra_data[name] = data
        self.source.root.refresh_cache()
        return self

    def copy(self, from_: str, to: str | None = None) -> Site:
        """Copy a file or directory verbatim to the destination."""
        source = normalize_path(from_)
        self.source.static_files[source] = normalize_path(to) if to else source
        return self

    def ignore(self, *paths: str) -> Site:
        for path in paths:
            self.source.ignored.add(normalize_path(path))
        return self

    def _unique_engines(self) -> list[Engine]:
        engines: list[Engine] = []
        for engine in self.engines.values():
            if all(e is not engine for e in engines):
                engines.append(engine)
        return engines

    # Commands

    async def clear(self) -> None:
        """Empty the destination directory."""
        ensure_clean_dir(self.dest())
        self._hashes.clear()
        self._outputs.clear()

    async def run(self, name: str, **options: Any) -> bool:
        """Run a script (or a shell command)."""
        return await self.scripts.run(options, name)

    def url(self, path: str, absolute: bool = False) -> str:
        """Return the public URL of a path.

        Args:
            path: A URL path, or ``~/file.md`` for the URL of a source file.
            absolute: Include the scheme and host of the site location.

        Raises:
            ArborError: If a ``~`` path matches no page.
        """
        if path.startswith(("http://", "https://", "//", "mailto:", "tel:", "#")):
            return path
        if path.startswith("~"):
            file = normalize_path(path[1:])
            page = self.source.get_file_or_directory(file)
            if not isinstance(page, Page) or page.dest is None:
                raise ArborError(f"Source file not found: {file}")
            path = self._page_url(page.dest)
        elif not path.startswith("/"):
            path = f"/{path}"

        location = urlparse(self.options.location)
        path = location.path.rstrip("/") + path
        if absolute:
            return join_root_url(f"{location.scheme}://{location.netloc}", path)
        return path

    # Build

    async def build(self, watch_mode: bool = False) -> BuildResult:
        """Build the whole site.

        Args:
            watch_mode: Return failures in the result instead of raising.

        Raises:
            ConfigurationError: On invalid registrations, before anything runs.
            BuildFailure: If any file failed, once the rest was saved.
        """
        self._check_configuration()
        self._reset_tracking()
        self.metrics.clear()
        total = self.metrics.start("Build")
        if not await self.dispatch_event(Event(EventType.BEFORE_BUILD)):
            total.stop()
            return BuildResult(cancelled=True, output_dir=self.dest())

        try:
            self.state = BuildState.LOADING
            self.source.errors.clear()
            self.source.static_paths.clear()
            metric = self.metrics.start("Load")
            await self.source.load_directory()
            metric.stop()
            result = await self._run(
                list(self.source.root.get_pages()),
                errors=list(self.source.errors),
                statics=dict(self.source.static_paths),
                incremental=False,
                after=Event(EventType.AFTER_BUILD),
            )
        finally:
            self.state = BuildState.IDLE
            total.stop()

        self._report(result)
        if result.errors and not watch_mode:
            raise BuildFailure(result.errors, result)
        return result

    async def update(self, files: Iterable[str]) -> BuildResult:
        """Rebuild the pages affected by changed paths.

        Only the pages whose data depends on the changed files are rendered
        again, and only outputs whose content changed are written.

        Args:
            files: Changed site paths (relative to the source directory).

        Returns:
            The result of the update, including its errors.
        """
        changed = {normalize_path(file) for file in files}
        self._check_configuration()
        self.metrics.clear()
        total = self.metrics.start("Update")
        if not await self.dispatch_event(Event(EventType.BEFORE_UPDATE, files=set(changed))):
            total.stop()
            return BuildResult(cancelled=True, output_dir=self.dest())

        try:
            self.state = BuildState.UPDATING
            self.source.errors.clear()
            includes = normalize_path(self.options.includes)
            affected: dict[int, Page] = {}
            removed: list[Page] = []
            statics: dict[str, str] = {}

            for file in sorted(changed):
                if file == includes or file.startswith(includes.rstrip("/") + "/"):
                    for page in self._pages_using(file):
                        affected.setdefault(id(page), page)
                    continue
                change = await self.source.load_file(file)
                for page in change.pages:
                    affected.setdefault(id(page), page)
                removed.extend(change.removed)
                if change.kind == "static":
                    source, target = self.source.is_static(file)
                    if self.src(source).exists():
                        statics[source] = target
                    else:
                        self._remove_file(target)

            for page in removed:
                self._remove_output(page)
            result = await self._run(
                [page for page in self.source.root.get_pages() if id(page) in affected],
                errors=list(self.source.errors),
                statics=statics,
                incremental=True,
                after=Event(EventType.AFTER_UPDATE, files=set(changed)),
            )
        finally:
            self.state = BuildState.IDLE
            total.stop()

        self._report(result)
        return result

    async def _run(
        self,
        pages: list[Page],
        errors: list[BuildError],
        statics: dict[str, str],
        incremental: bool,
        after: Event,
    ) -> BuildResult:
        result = BuildResult(errors=errors, output_dir=self.dest())
        failed: set[int] = set()
        for page in pages:
            page.refresh_cache()
            page.content = page.data.get("content")
        self._validate_engines(pages)
        active = [p for p in pages if self.options.dev or not p.is_draft]
        if incremental:
            for page in pages:
                if page.is_draft and not self.options.dev:
                    self._remove_output(page)

        self.state = BuildState.PREPROCESSING
        metric = self.metrics.start("Preprocess")
        for extensions, preprocessor in self.preprocessors:
            for page in active:
                ext = page.src.ext if page.src is not None else None
                if id(page) not in failed and _matches(extensions, ext):
                    await self._call_hook(preprocessor, page, "preprocess", result, failed)
        metric.stop()

        self.state = BuildState.RENDERING
        metric = self.metrics.start("Render")
        for page in sorted(active, key=lambda p: p.render_order):
            if id(page) in failed:
                continue
            try:
                self._resolve_dest(page)
                page.content = await self._render_page(page)
            except ConfigurationError:
                raise
            except Exception as exc:
                self._fail(page, "render", exc, result, failed)
                continue
            result.pages.append(page)
        metric.stop()
        self._refresh_page_list()
        await self.dispatch_event(Event(EventType.AFTER_RENDER, files=after.files))

        self.state = BuildState.PROCESSING
        metric = self.metrics.start("Process")
        for extensions, processor in self.processors:
            for page in result.pages:
                ext = page.dest.ext if page.dest is not None else None
                if id(page) not in failed and _matches(extensions, ext):
                    await self._call_hook(processor, page, "process", result, failed)
        for page in result.pages:
            page.sync_document()
        metric.stop()
        result.pages = [page for page in result.pages if id(page) not in failed]

        if await self.dispatch_event(Event(EventType.BEFORE_SAVE, files=after.files)):
            self.state = BuildState.SAVING
            metric = self.metrics.start("Save")
            for page in result.pages:
                filename = self._save_page(page, incremental)
                if filename is not None:
                    result.written.append(filename)
            result.copied.extend(self._copy_static(statics))
            metric.stop()
        else:
            result.cancelled = True

        await self.dispatch_event(after)
        return result

    # Pipeline steps

    def _check_configuration(self) -> None:
        if not self.src().is_dir():
            raise ConfigurationError(f"Source directory not found: {self.src()}")
        for ext, engine in self.engines.items():
            for method in ("render", "add_helper"):
                if not callable(getattr(engine, method, None)):
                    raise ConfigurationError(f"Engine for {ext} has no {method}() method")
        for ext, loader in {**self.source.data, **self.source.pages}.items():
            if not callable(loader):
                raise ConfigurationError(f"Loader for {ext} is not callable")
        for extensions, fn in self.preprocessors + self.processors:
            if not callable(fn):
                raise ConfigurationError(f"Hook for {', '.join(extensions)} is not callable")

    def _validate_engines(self, pages: Iterable[Page]) -> None:
        for page in pages:
            for name in page.template_engines:
                if name not in self.engines:
                    raise ConfigurationError(
                        f"{self._label(page)}: unknown templateEngine '{name.lstrip('.')}'"
                    )

    def _engines_for(self, data: Data, ext: str | None) -> list[Engine]:
        names = template_engines(data)
        if names:
            missing = [name for name in names if name not in self.engines]
            if missing:
                raise ConfigurationError(f"Unknown templateEngine: {', '.join(missing)}")
            return [self.engines[name] for name in names]
        engine = self.engines.get(ext) if ext else None
        return [engine] if engine is not None else []

    async def _call_hook(
        self, hook: Processor, page: Page, stage: str, result: BuildResult, failed: set[int]
    ) -> None:
        before = _content_kind(page.content)
        try:
            await maybe_await(hook(page, self))
        except ConfigurationError:
            raise
        except Exception as exc:
            self._fail(page, stage, exc, result, failed)
            return
        after = _content_kind(page.content)
        if before is not None and after is not None and before != after:
            raise ConfigurationError(
                f"{stage} hook {getattr(hook, '__name__', hook)!r} changed the content "
                f"of {self._label(page)} from {before} to {after}"
            )

    def _resolve_dest(self, page: Page) -> None:
        """Compute the output location of a page from its ``url`` data."""
        data = page.data
        url = data.get("url")
        if url is False:
            page.dest = None
            data["url"] = None
            return
        if callable(url):
            url = url(page)
        if isinstance(url, str) and url:
            if not url.startswith("/") and page.src is not None:
                url = posixpath.join(split_site_path(page.src.path)[0], url)
            page.dest = self._dest_from_url(url)
        elif page.src is not None:
            page.dest = default_dest(
                page.src, self.source.is_asset(page.src.ext), self.options.pretty_urls
            )
        if page.dest is not None:
            data["url"] = self._page_url(page.dest)

    @staticmethod
    def _dest_from_url(url: str) -> Dest:
        if url.endswith("/"):
            return Dest(path=join_site_path(url, "index"), ext=".html")
        path = normalize_path(url)
        ext = posixpath.splitext(path)[1]
        return Dest(path=path[: -len(ext)] if ext else path, ext=ext)

    def _page_url(self, dest: Dest) -> str:
        url = dest.filename
        if self.options.pretty_urls and url.endswith("/index.html"):
            return url[: -len("index.html")]
        return url

    async def _render_page(self, page: Page) -> Any:
        """Render a page through its engines and its layout chain."""
        data = page.data
        key = page.source_path
        if key is not None:
            for dependents in self._dependencies.values():
                dependents.discard(key)
        if page.src is not None and self.source.is_asset(page.src.ext):
            return page.content

        ext = page.src.ext if page.src is not None else (page.dest.ext if page.dest else None)
        filename = str(self.src(key)) if key is not None else self._label(page)
        content = page.content
        for engine in self._engines_for(data, ext):
            content = await maybe_await(engine.render(content, data, filename))

        page_data = data
        layout = data.get("layout")
        seen: set[str] = set()
        while layout:
            layout_path = join_site_path(self.options.includes, layout)
            if layout_path in seen:
                raise RenderError(self._label(page), f"Layout cycle at {layout_path}")
            seen.add(layout_path)
            if key is not None:
                self._dependencies.setdefault(layout_path, set()).add(key)

            layout_data = await self._load_layout(page, layout_path)
            page_data = {**layout_data, **page_data, "content": content}
            engines = self._engines_for(
                layout_data, match_extension(layout_path, self.source.pages)
            )
            if not engines:
                raise RenderError(self._label(page), f"No engine for layout {layout_path}")
            content = layout_data.get("content")
            for engine in engines:
                content = await maybe_await(
                    engine.render(content, page_data, str(self.src(layout_path)))
                )
            layout = layout_data.get("layout")
        return content

    async def _load_layout(self, page: Page, layout_path: str) -> Data:
        cached = self._layouts.get(layout_path)
        if cached is None:
            ext = match_extension(layout_path, self.source.pages)
            path = self.src(layout_path)
            if ext is None or not path.is_file():
                raise RenderError(self._label(page), f"Layout not found: {layout_path}")
            cached = await self.source.load(path, self.source.pages[ext])
            self._layouts[layout_path] = cached
        return cached

    def _pages_using(self, include: str) -> list[Page]:
        """Pages to render again after a change in the includes directory."""
        self._layouts.pop(include, None)
        keys = self._dependencies.get(include)
        if keys is None or self._is_partial(include):
            # A partial can be used by any template
            return [
                page
                for page in self.source.root.get_pages()
                if page.src is None or not self.source.is_asset(page.src.ext)
            ]
        pages = []
        for key in sorted(keys):
            node = self.source.get_file_or_directory(key)
            if isinstance(node, Page):
                pages.append(node)
        return pages

    def _is_partial(self, include: str) -> bool:
        """Check whether a template includes, imports or extends ``include``."""
        name = include[len(normalize_path(self.options.includes)) :].lstrip("/")
        for engine in self._unique_engines():
            references = getattr(engine, "references", None)
            if callable(references) and references(name):
                return True
        return False

    def _save_page(self, page: Page, incremental: bool) -> str | None:
        """Write a page to the destination; returns the file written, if any."""
        if page.dest is None or page.content is None:
            return None
        if page.is_draft and not self.options.dev:
            return None
        content = page.content
        raw = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        digest = hashlib.sha1(raw).hexdigest()
        filename = page.dest.filename
        page.dest.hash = digest

        key = page.source_path
        if key is not None:
            previous = self._outputs.get(key)
            if previous is not None and previous != filename:
                self._remove_file(previous)
            self._outputs[key] = filename

        if incremental and self._hashes.get(filename) == digest:
            return None
        self._hashes[filename] = digest
        output = self.dest(filename)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(raw)
        log.debug("Saved %s", filename)
        return filename

    def _copy_static(self, statics: dict[str, str]) -> list[str]:
        copied = []
        for source, target in sorted(statics.items()):
            origin = self.src(source)
            output = self.dest(target)
            if origin.is_dir():
                shutil.copytree(origin, output, dirs_exist_ok=True)
            elif origin.is_file():
                output.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(origin, output)
            else:
                continue
            copied.append(target)
        return copied

    def _remove_output(self, page: Page) -> None:
        key = page.source_path
        filename = self._outputs.pop(key, None) if key is not None else None
        if filename is None and page.dest is not None:
            filename = page.dest.filename
        if filename is not None:
            self._remove_file(filename)
        if key is not None:
            for dependents in self._dependencies.values():
                dependents.discard(key)

    def _remove_file(self, filename: str) -> None:
        self._hashes.pop(filename, None)
        output = self.dest(filename)
        if output.is_file():
            output.unlink()
            log.debug("Removed %s", filename)

    def _fail(
        self, page: Page, stage: str, exc: Exception, result: BuildResult, failed: set[int]
    ) -> None:
        if isinstance(exc, RenderError):
            error = exc
        else:
            error = RenderError(self._label(page), f"{stage} failed: {_describe(exc)}", exc)
        log.error("Failed to build %s: %s", error.source_path, error.message)
        result.errors.append(error)
        failed.add(id(page))

    def _label(self, page: Page) -> str:
        if page.source_path is not None:
            return page.source_path
        if page.dest is not None:
            return page.dest.filename
        return "<page>"

    def _reset_tracking(self) -> None:
        self._hashes.clear()
        self._outputs.clear()
        self._layouts.clear()
        self._dependencies.clear()

    def _refresh_page_list(self) -> None:
        self.pages = [
            page
            for page in self.source.root.get_pages()
            if self.options.dev or not page.is_draft
        ]

    def _report(self, result: BuildResult) -> None:
        if result.cancelled:
            log.info("Run cancelled by a listener")
        else:
            log.info(
                "%d pages rendered, %d files written", len(result.pages), len(result.written)
            )
        if self.options.metrics:
            self.metrics.print()
