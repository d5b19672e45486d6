"""Event / EventActions 的语义"""

import dataclasses

import pytest

from adk_runtime.events import Event, EventActions, create_error_event
from adk_runtime.models import Content, Part


def test_plain_text_event_is_final():
    event = Event(author="agent", content=Content.from_text("done", role="model"))

    assert event.is_final_response()
    assert event.text == "done"


def test_partial_event_is_not_final():
    event = Event(author="agent", content=Content.from_text("d", role="model"), partial=True)

    assert not event.is_final_response()


def test_function_call_event_is_not_final():
    event = Event(
        author="agent",
        content=Content(role="model", parts=[Part.from_function_call("search", {"q": "x"}, id="c1")]),
    )

    assert not event.is_final_response()
    assert event.get_function_calls()[0].name == "search"


def test_function_response_is_final_only_when_skipping_summarization():
    content = Content(role="user", parts=[Part.from_function_response("search", {"result": 1}, id="c1")])

    assert not Event(author="agent", content=content).is_final_response()
    assert Event(
        author="agent",
        content=content,
        actions=EventActions(skip_summarization=True),
    ).is_final_response()


def test_long_running_event_is_not_final():
    event = Event(
        author="agent",
        content=Content.from_text("waiting", role="model"),
        long_running_tool_ids=frozenset({"c1"}),
    )

    assert not event.is_final_response()


def test_events_are_immutable():
    event = Event(author="agent")

    with pytest.raises(dataclasses.FrozenInstanceError):
        event.author = "other"

    updated = event.with_updates(branch="a.b")
    assert updated.branch == "a.b"
    assert event.branch is None
    assert updated.id == event.id


def test_thought_text_is_hidden():
    content = Content(role="model", parts=[Part(text="thinking", thought=True), Part(text="answer")])

    assert Event(author="agent", content=content).text == "answer"


def test_actions_merge_prefers_later_values():
    first = EventActions(state_delta={"a": 1, "b": 1}, transfer_to_agent="x")
    second = EventActions(state_delta={"b": 2}, escalate=True)

    merged = first.merge(second)

    assert merged.state_delta == {"a": 1, "b": 2}
    assert merged.escalate
    assert merged.transfer_to_agent == "x"
    assert first.state_delta == {"a": 1, "b": 1}
    assert EventActions().is_empty()
    assert not merged.is_empty()


def test_event_dict_round_trip():
    event = Event(
        author="agent",
        content=Content(role="model", parts=[Part(text="hi"), Part.from_function_call("f", {"x": 1}, id="c1")]),
        actions=EventActions(state_delta={"k": [1, 2]}),
        branch="p.c",
    )

    restored = Event.from_dict(event.to_dict())

    assert restored == event


def test_error_event():
    event = create_error_event("agent", "FLOW_EXHAUSTED", "too many rounds", invocation_id="e-1")

    assert event.is_error()
    assert event.error_code == "FLOW_EXHAUSTED"
    assert event.invocation_id == "e-1"
    assert "too many rounds" in event.text
