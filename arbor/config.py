"""Site configuration for Arbor.

Options are read once when the site is created and stay the same for the
whole run. They come from ``arbor.yaml`` in the project root, overridden
by explicit values (for example CLI flags).

A project may also ship a ``_config.py`` module exposing ``setup(site)``
to register plugins, loaders, hooks and scripts.

Key functions:
- load_config: Build SiteOptions from arbor.yaml and overrides.
- load_setup: Import _config.py and apply it to a site.
"""

from __future__ import annotations

import importlib.util
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import yaml

from .errors import ConfigurationError

if TYPE_CHECKING:
    from .site import Site

CONFIG_FILES = ("arbor.yaml", "arbor.yml")
SETUP_FILE = "_config.py"


@dataclass
class ServerOptions:
    """Options of the local server.

    Attributes:
        port: Port to listen on.
        open: Open the browser on start.
        page404: Page served for missing paths.
    """

    port: int = 3000
    open: bool = False
    page404: str = "/404.html"


@dataclass
class SiteOptions:
    """Options of a site build.

    Attributes:
        cwd: Working directory; every other path is relative to it.
        src: Source directory.
        dest: Destination directory.
        includes: Directory with layouts and partials, relative to src.
        dev: Development mode (drafts are built).
        location: Canonical URL of the published site.
        metrics: Collect and print phase timings.
        pretty_urls: Write pages as ``name/index.html``.
        flags: Free-form flags for plugins.
        quiet: Only report warnings and errors.
        server: Local server options.
    """

    cwd: Path = field(default_factory=Path.cwd)
    src: str = "."
    dest: str = "_site"
    includes: str = "_includes"
    dev: bool = False
    location: str = "http://localhost"
    metrics: bool = False
    pretty_urls: bool = True
    flags: list[str] = field(default_factory=list)
    quiet: bool = False
    server: ServerOptions = field(default_factory=ServerOptions)

    def __post_init__(self) -> None:
        self.cwd = Path(self.cwd)
        if isinstance(self.server, dict):
            self.server = ServerOptions(**self.server)
        self.flags = list(self.flags or [])
        parsed = urlparse(str(self.location))
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"Invalid site location: {self.location!r}")

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> SiteOptions:
        """Create options from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown site options: {', '.join(unknown)}")
        return cls(**values)


def _read_config_file(project_root: Path) -> dict[str, Any]:
    for name in CONFIG_FILES:
        path = project_root / name
        if not path.is_file():
            continue
        with open(path, encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Invalid {name}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"{name} must contain a mapping")
        return loaded
    return {}


def load_config(project_root: Path, **overrides: Any) -> SiteOptions:
    """Load site options from arbor.yaml.

    Args:
        project_root: Root directory of the project.
        **overrides: Values taking precedence over the file; None is ignored.

    Returns:
        SiteOptions with defaults applied.
    """
    values = _read_config_file(project_root)
    values.update({k: v for k, v in overrides.items() if v is not None})
    values.setdefault("cwd", project_root)
    return SiteOptions.from_dict(values)


def load_setup(site: Site, path: Path | None = None) -> bool:
    """Import the project's setup module and apply it to ``site``.

    Args:
        site: Site to configure.
        path: Setup module; defaults to ``_config.py`` in the site cwd.

    Returns:
        True if a setup module was found and applied.

    Raises:
        ConfigurationError: If the module does not define ``setup(site)``.
    """
    path = path or site.options.cwd / SETUP_FILE
    if not path.is_file():
        return False
    spec = importlib.util.spec_from_file_location("_arbor_config", path)
    if spec is None or spec.loader is None:
        raise ConfigurationError(f"Cannot import {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    setup = getattr(module, "setup", None)
    if not callable(setup):
        raise ConfigurationError(f"{path} must define a setup(site) function")
    setup(site)
    return True
