"""Protocol definitions for Arbor.

This module defines the interfaces the build pipeline consumes. Template
engines, loaders and transformation hooks are plain objects or callables
satisfying these protocols; any of them may be synchronous or return an
awaitable.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .data import HelperOptions
    from .site import Site
    from .tree import Page

# A loader reads a file and returns its data
Loader = Callable[[Path], Any]

# A (pre)processor transforms a page in place
Processor = Callable[["Page", "Site"], Any]

# A plugin registers loaders, engines, hooks... on a site
Plugin = Callable[["Site"], Any]

Helper = Callable[..., Any]


@runtime_checkable
class Engine(Protocol):
    """Protocol for template engines.

    Implementations render the content of a page or a layout with the
    page data, and expose helpers (filters, tags, functions) to templates.
    """

    @abstractmethod
    def render(self, content: Any, data: dict[str, Any], filename: str) -> Any:
        """Render a template.

        Args:
            content: Template source.
            data: Variables available in the template.
            filename: Source file of the template (used for caching and errors).

        Returns:
            Rendered content, or an awaitable resolving to it.
        """
        ...

    @abstractmethod
    def add_helper(self, name: str, fn: Helper, options: HelperOptions) -> None:
        """Register a helper usable from templates.

        Args:
            name: Name of the helper in templates.
            fn: Helper implementation.
            options: Helper type and invocation flags.
        """
        ...
