"""Lifecycle events for Arbor.

The build pipeline dispatches six event types. Listeners are either Python
callables or references to scripts run through the site's script runner.
Listeners run one after another, in registration order, and each one is
awaited before the next starts.

A listener returning ``False`` for a cancelable event vetoes the rest of
the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from .errors import ScriptError
from .utils import maybe_await

if TYPE_CHECKING:
    from .scripts import Scripts

log = logging.getLogger(__name__)


class EventType(str, Enum):
    BEFORE_BUILD = "beforeBuild"
    AFTER_BUILD = "afterBuild"
    BEFORE_UPDATE = "beforeUpdate"
    AFTER_UPDATE = "afterUpdate"
    AFTER_RENDER = "afterRender"
    BEFORE_SAVE = "beforeSave"


CANCELABLE_EVENTS = frozenset(
    {EventType.BEFORE_BUILD, EventType.BEFORE_UPDATE, EventType.BEFORE_SAVE}
)


@dataclass
class Event:
    """An event dispatched by the pipeline.

    Attributes:
        type: The event type.
        files: Changed files, for update events.
    """

    type: EventType
    files: set[str] | None = None

    @property
    def cancelable(self) -> bool:
        return self.type in CANCELABLE_EVENTS


@dataclass(frozen=True)
class FunctionListener:
    """Listener calling a Python function with the event."""

    handler: Callable[[Event], Any]


@dataclass(frozen=True)
class ScriptListener:
    """Listener running a script (a registered name or a shell command)."""

    name: str


Listener = Union[FunctionListener, ScriptListener]


def to_listener(value: Listener | Callable[[Event], Any] | str) -> Listener:
    """Wrap a callable or a script name in the matching listener type."""
    if isinstance(value, (FunctionListener, ScriptListener)):
        return value
    if isinstance(value, str):
        return ScriptListener(value)
    if callable(value):
        return FunctionListener(value)
    raise TypeError(f"Invalid event listener: {value!r}")


async def invoke_listener(listener: Listener, event: Event, scripts: Scripts) -> Any:
    """Run a listener for an event and return its result.

    Raises:
        ScriptError: If a script listener fails.
    """
    if isinstance(listener, ScriptListener):
        success = await scripts.run({}, listener.name)
        if not success:
            raise ScriptError(listener.name, f"failed on {event.type.value}")
        return True
    return await maybe_await(listener.handler(event))


@dataclass
class EventBus:
    """Registry of listeners by event type."""

    scripts: Scripts
    listeners: dict[EventType, list[Listener]] = field(default_factory=dict)

    def add(self, type: EventType | str, listener: Any) -> None:
        self.listeners.setdefault(EventType(type), []).append(to_listener(listener))

    def get(self, type: EventType | str) -> Iterable[Listener]:
        return tuple(self.listeners.get(EventType(type), ()))

    async def dispatch(self, event: Event) -> bool:
        """Run every listener of ``event.type``.

        Returns:
            False if a listener vetoed a cancelable event, True otherwise.
        """
        for listener in self.get(event.type):
            result = await invoke_listener(listener, event, self.scripts)
            if result is False and event.cancelable:
                log.info("%s cancelled by a listener", event.type.value)
                return False
        return True
