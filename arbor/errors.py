"""Error hierarchy for Arbor.

All arbor-specific errors inherit from ArborError for easy catching.

Per-file failures (LoadError, RenderError) are collected during a run and
reported together through BuildFailure. ConfigurationError and ScriptError
raised from hooks are fatal to the run.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .site import BuildResult


class ArborError(Exception):
    """Base error for all arbor operations."""


class ConfigurationError(ArborError):
    """Invalid registration or site configuration."""


class BuildError(ArborError):
    """Error while building a single file, with file context.

    Attributes:
        source_path: Site-relative path of the file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: str,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


class LoadError(BuildError):
    """A loader failed while reading or parsing a file."""


class RenderError(BuildError):
    """An engine, layout or transformation hook failed for a page."""


class ScriptError(ArborError):
    """A script invoked as a required hook failed."""

    def __init__(self, name: str, message: str):
        self.name = name
        self.message = message
        super().__init__(f"Script '{name}' failed: {message}")


class BuildFailure(ArborError):
    """Aggregated report of every file that failed during a run.

    Attributes:
        errors: The per-file errors, in the order they happened.
        result: The result of the run; successful pages were persisted.
    """

    def __init__(self, errors: list[BuildError], result: BuildResult | None = None):
        self.errors = list(errors)
        self.result = result
        noun = "file" if len(self.errors) == 1 else "files"
        super().__init__(f"{len(self.errors)} {noun} failed to build")
