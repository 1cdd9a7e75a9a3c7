import asyncio

import pytest

from arbor.errors import ScriptError
from arbor.events import (
    Event,
    EventBus,
    EventType,
    FunctionListener,
    ScriptListener,
    invoke_listener,
    to_listener,
)
from arbor.scripts import Scripts


def test_to_listener_wraps_callables_and_script_names():
    def handler(event):
        return None

    assert to_listener(handler) == FunctionListener(handler)
    assert to_listener("deploy") == ScriptListener("deploy")
    listener = ScriptListener("x")
    assert to_listener(listener) is listener
    with pytest.raises(TypeError):
        to_listener(42)


def test_cancelable_events():
    assert Event(EventType.BEFORE_BUILD).cancelable
    assert Event(EventType.BEFORE_UPDATE).cancelable
    assert Event(EventType.BEFORE_SAVE).cancelable
    assert not Event(EventType.AFTER_BUILD).cancelable
    assert not Event(EventType.AFTER_RENDER).cancelable


def test_dispatch_runs_listeners_in_order_and_stops_on_veto():
    bus = EventBus(Scripts())
    calls = []

    async def first(event):
        calls.append("first")

    def veto(event):
        calls.append("veto")
        return False

    bus.add("beforeBuild", first)
    bus.add(EventType.BEFORE_BUILD, veto)
    bus.add("beforeBuild", lambda event: calls.append("never"))

    assert asyncio.run(bus.dispatch(Event(EventType.BEFORE_BUILD))) is False
    assert calls == ["first", "veto"]


def test_false_does_not_cancel_non_cancelable_events():
    bus = EventBus(Scripts())
    calls = []
    bus.add("afterBuild", lambda event: False)
    bus.add("afterBuild", lambda event: calls.append(event.type))
    assert asyncio.run(bus.dispatch(Event(EventType.AFTER_BUILD))) is True
    assert calls == [EventType.AFTER_BUILD]


def test_unknown_event_type_is_rejected():
    bus = EventBus(Scripts())
    with pytest.raises(ValueError):
        bus.add("beforeNothing", lambda event: None)


def test_script_listeners_run_through_the_script_runner():
    scripts = Scripts()
    ran = []
    scripts.set("notify", lambda site: ran.append("notify"))
    bus = EventBus(scripts)
    bus.add("afterBuild", "notify")

    assert asyncio.run(bus.dispatch(Event(EventType.AFTER_BUILD))) is True
    assert ran == ["notify"]


def test_failing_script_listener_raises():
    scripts = Scripts()
    scripts.set("broken", lambda site: False)

    with pytest.raises(ScriptError) as excinfo:
        asyncio.run(invoke_listener(ScriptListener("broken"), Event(EventType.AFTER_BUILD), scripts))
    assert excinfo.value.name == "broken"
