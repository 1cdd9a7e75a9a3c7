"""Arbor static site builder.

Arbor loads a tree of source files into a virtual tree of directories and
pages, merges inherited data down the tree, renders pages through pluggable
template engines and layouts, and writes the output tree. Rebuilds after a
change only render the pages whose data depends on the changed files.

The main entry point is the Site class; the CLI wraps it with ``arbor build``
and ``arbor run``.
"""

__all__ = [
    "__version__",
    "BuildFailure",
    "BuildResult",
    "ConfigurationError",
    "Directory",
    "Page",
    "Site",
    "SiteOptions",
]
__version__ = "0.1.0"

from .config import SiteOptions
from .errors import BuildFailure, ConfigurationError
from .site import BuildResult, Site
from .tree import Directory, Page
