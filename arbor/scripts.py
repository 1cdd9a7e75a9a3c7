"""Script runner for Arbor.

Scripts are named sequences of commands. A command is either a shell
command line, a callable receiving the site, or a nested sequence of
commands. Commands run in order and the first failure stops the sequence.

Key classes:
- Shell, Call, Sequence: The command tree.
- Scripts: Registry and executor of named scripts.
"""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from .utils import maybe_await

if TYPE_CHECKING:
    from .site import Site

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Shell:
    """A shell command line, or the name of a registered script."""

    command: str


@dataclass(frozen=True)
class Call:
    """A Python callable receiving the site."""

    fn: Callable[[Any], Any]


@dataclass(frozen=True)
class Sequence:
    """Commands run one after another."""

    commands: tuple[Command, ...]


Command = Union[Shell, Call, Sequence]


def to_command(value: Any) -> Command:
    """Convert a string, callable or (nested) list into a command tree."""
    if isinstance(value, (Shell, Call, Sequence)):
        return value
    if isinstance(value, str):
        return Shell(value)
    if isinstance(value, (list, tuple)):
        return Sequence(tuple(to_command(item) for item in value))
    if callable(value):
        return Call(value)
    raise TypeError(f"Invalid script command: {value!r}")


class Scripts:
    """Registry and executor of named scripts.

    Attributes:
        site: Site passed to callable commands.
        scripts: Registered scripts by name.
    """

    def __init__(self, site: Site | None = None):
        self.site = site
        self.scripts: dict[str, Sequence] = {}

    def set(self, name: str, *commands: Any) -> None:
        """Register (or replace) the script ``name``."""
        self.scripts[name] = Sequence(tuple(to_command(c) for c in commands))

    def __contains__(self, name: str) -> bool:
        return name in self.scripts

    async def run(self, options: Mapping[str, Any] | None, *commands: Any) -> bool:
        """Run commands in order.

        Args:
            options: ``cwd`` and ``env`` for shell commands.
            *commands: Script names, shell commands, callables or sequences.

        Returns:
            True if every command succeeded.
        """
        options = dict(options or {})
        for command in commands:
            if not await self._execute(to_command(command), options, ()):
                return False
        return True

    async def _execute(
        self, command: Command, options: dict[str, Any], stack: tuple[str, ...]
    ) -> bool:
        if isinstance(command, Sequence):
            for item in command.commands:
                if not await self._execute(item, options, stack):
                    return False
            return True

        if isinstance(command, Call):
            try:
                result = await maybe_await(command.fn(self.site))
            except Exception as exc:
                log.error("Script function %r failed: %s", command.fn, exc)
                return False
            return result is not False

        name = command.command
        if name in self.scripts:
            if name in stack:
                log.error("Recursive script: %s", " > ".join(stack + (name,)))
                return False
            return await self._execute(self.scripts[name], options, stack + (name,))
        return await self._run_shell(name, options)

    async def _run_shell(self, command: str, options: dict[str, Any]) -> bool:
        cwd = options.get("cwd")
        if cwd is None and self.site is not None:
            cwd = self.site.options.cwd
        env = options.get("env")
        if env is not None:
            env = {**os.environ, **env}
        log.info("$ %s", command)
        # Blocking call, kept off the event loop
        result = await asyncio.to_thread(
            subprocess.run,
            command,
            shell=True,
            cwd=str(cwd) if cwd is not None else None,
            env=env,
            capture_output=True,
            text=True,
        )
        if result.stdout:
            log.info(result.stdout.rstrip())
        if result.returncode != 0:
            log.error("Command failed (%s): %s", result.returncode, result.stderr.strip())
            return False
        return True
