"""Session 存储契约：三种后端跑同一组测试"""

import asyncio

import pytest

from adk_runtime.errors import DuplicateSessionError, NotFoundError, SessionStoreError
from adk_runtime.events import Event, EventActions
from adk_runtime.models import Content
from adk_runtime.sessions import (
    FileSessionService,
    GetSessionConfig,
    InMemorySessionService,
    SqliteSessionService,
    project_state,
)

APP = "app"


@pytest.fixture(params=["memory", "file", "sqlite"])
def service(request, tmp_path):
    if request.param == "memory":
        return InMemorySessionService()
    if request.param == "file":
        return FileSessionService(tmp_path / "sessions")
    return SqliteSessionService(tmp_path / "sessions.db")


def user_event(text: str, **kwargs) -> Event:
    return Event(author="user", content=Content.from_text(text), **kwargs)


def state_event(delta: dict) -> Event:
    return Event(author="agent", actions=EventActions(state_delta=delta))


@pytest.mark.asyncio
async def test_create_and_get(service):
    created = await service.create_session(app_name=APP, user_id="u1", session_id="s1", state={"k": "v"})

    fetched = await service.get_session(app_name=APP, user_id="u1", session_id="s1")

    assert created.id == "s1"
    assert fetched.id == "s1"
    assert fetched.app_name == APP
    assert fetched.user_id == "u1"
    assert fetched.state == {"k": "v"}
    assert fetched.events == []


@pytest.mark.asyncio
async def test_generated_session_id(service):
    session = await service.create_session(app_name=APP, user_id="u1")

    assert session.id
    assert await service.get_session(app_name=APP, user_id="u1", session_id=session.id) is not None


@pytest.mark.asyncio
async def test_missing_session_is_none(service):
    assert await service.get_session(app_name=APP, user_id="u1", session_id="nope") is None


@pytest.mark.asyncio
async def test_duplicate_session_id(service):
    await service.create_session(app_name=APP, user_id="u1", session_id="s1")

    with pytest.raises(DuplicateSessionError):
        await service.create_session(app_name=APP, user_id="u1", session_id="s1")


@pytest.mark.asyncio
async def test_sessions_are_scoped_by_user(service):
    await service.create_session(app_name=APP, user_id="u1", session_id="s1")

    assert await service.get_session(app_name=APP, user_id="u2", session_id="s1") is None
    await service.create_session(app_name=APP, user_id="u2", session_id="s1")


@pytest.mark.asyncio
async def test_append_event_persists_event_and_state(service):
    session = await service.create_session(app_name=APP, user_id="u1", session_id="s1")

    await service.append_event(session, user_event("hi"))
    await service.append_event(session, state_event({"count": 1}))
    await service.append_event(session, state_event({"count": 2, "name": "x"}))

    assert session.state == {"count": 2, "name": "x"}
    fetched = await service.get_session(app_name=APP, user_id="u1", session_id="s1")
    assert fetched.state == {"count": 2, "name": "x"}
    assert [e.author for e in fetched.events] == ["user", "agent", "agent"]
    assert fetched.events[0].text == "hi"
    assert [e.id for e in fetched.events] == [e.id for e in session.events]


@pytest.mark.asyncio
async def test_partial_events_are_not_stored(service):
    session = await service.create_session(app_name=APP, user_id="u1", session_id="s1")

    await service.append_event(session, Event(author="agent", content=Content.from_text("a", role="model"), partial=True))

    fetched = await service.get_session(app_name=APP, user_id="u1", session_id="s1")
    assert fetched.events == []
    assert session.events == []


@pytest.mark.asyncio
async def test_replay_matches_live_state(service):
    session = await service.create_session(app_name=APP, user_id="u1", session_id="s1", state={"count": 0})
    for i in range(1, 4):
        await service.append_event(session, state_event({"count": i, f"step_{i}": True}))

    fetched = await service.get_session(app_name=APP, user_id="u1", session_id="s1")

    assert project_state(fetched.events, seed={"count": 0}) == fetched.state


@pytest.mark.asyncio
async def test_temp_state_is_not_persisted(service):
    session = await service.create_session(app_name=APP, user_id="u1", session_id="s1")

    await service.append_event(session, state_event({"temp:scratch": 1, "kept": 2}))

    assert session.state["temp:scratch"] == 1
    fetched = await service.get_session(app_name=APP, user_id="u1", session_id="s1")
    assert fetched.state == {"kept": 2}
    assert fetched.events[0].actions.state_delta == {"kept": 2}


@pytest.mark.asyncio
async def test_app_and_user_state_are_shared(service):
    s1 = await service.create_session(app_name=APP, user_id="u1", session_id="s1")
    await service.append_event(s1, state_event({"app:theme": "dark", "user:lang": "fr", "local": 1}))

    s2 = await service.create_session(app_name=APP, user_id="u1", session_id="s2")
    other_user = await service.create_session(app_name=APP, user_id="u2", session_id="s3")

    assert s2.state == {"app:theme": "dark", "user:lang": "fr"}
    assert other_user.state == {"app:theme": "dark"}
    fetched = await service.get_session(app_name=APP, user_id="u1", session_id="s1")
    assert fetched.state == {"app:theme": "dark", "user:lang": "fr", "local": 1}


@pytest.mark.asyncio
async def test_list_sessions_newest_first(service):
    s1 = await service.create_session(app_name=APP, user_id="u1", session_id="s1")
    await asyncio.sleep(0.01)
    await service.create_session(app_name=APP, user_id="u1", session_id="s2")
    await asyncio.sleep(0.01)
    await service.append_event(s1, user_event("hi"))
    await service.create_session(app_name=APP, user_id="u2", session_id="other")

    summaries = await service.list_sessions(app_name=APP, user_id="u1")

    assert [s.id for s in summaries] == ["s1", "s2"]
    assert summaries[0].event_count == 1
    assert [s.id for s in await service.list_sessions(app_name=APP, user_id="u1", limit=1)] == ["s1"]


@pytest.mark.asyncio
async def test_delete_session(service):
    await service.create_session(app_name=APP, user_id="u1", session_id="s1")

    await service.delete_session(app_name=APP, user_id="u1", session_id="s1")

    assert await service.get_session(app_name=APP, user_id="u1", session_id="s1") is None
    with pytest.raises(NotFoundError):
        await service.delete_session(app_name=APP, user_id="u1", session_id="s1")


@pytest.mark.asyncio
async def test_get_session_config_filters_events(service):
    session = await service.create_session(app_name=APP, user_id="u1", session_id="s1")
    for text in ["one", "two", "three"]:
        await service.append_event(session, user_event(text))

    recent = await service.get_session(
        app_name=APP, user_id="u1", session_id="s1",
        config=GetSessionConfig(num_recent_events=2),
    )

    assert [e.text for e in recent.events] == ["two", "three"]


@pytest.mark.asyncio
async def test_event_fields_survive_storage(service):
    session = await service.create_session(app_name=APP, user_id="u1", session_id="s1")
    event = Event(
        author="agent",
        content=Content.from_text("result", role="model"),
        actions=EventActions(escalate=True, skip_summarization=True, transfer_to_agent="other"),
        invocation_id="e-1",
        branch="root.agent",
        long_running_tool_ids=frozenset({"call-1"}),
    )

    await service.append_event(session, event)

    stored = (await service.get_session(app_name=APP, user_id="u1", session_id="s1")).events[0]
    assert stored.actions == event.actions
    assert stored.branch == "root.agent"
    assert stored.invocation_id == "e-1"
    assert stored.long_running_tool_ids == frozenset({"call-1"})
    assert stored.content == event.content


@pytest.fixture(params=["file", "sqlite"])
def durable_service(request, tmp_path):
    if request.param == "file":
        return FileSessionService(tmp_path / "sessions")
    return SqliteSessionService(tmp_path / "sessions.db")


@pytest.mark.asyncio
async def test_failed_append_leaves_no_state_behind(durable_service):
    session = await durable_service.create_session(app_name=APP, user_id="u1", session_id="s1")

    with pytest.raises(SessionStoreError):
        await durable_service.append_event(session, state_event({"user:color": "red", "obj": object()}))

    fetched = await durable_service.get_session(app_name=APP, user_id="u1", session_id="s1")
    assert fetched.state == {}
    assert fetched.events == []
    assert session.events == []
    sibling = await durable_service.create_session(app_name=APP, user_id="u1", session_id="s2")
    assert "user:color" not in sibling.state


@pytest.mark.asyncio
async def test_file_backend_survives_restart(tmp_path):
    first = FileSessionService(tmp_path)
    session = await first.create_session(app_name=APP, user_id="user/with/slash", session_id="s1")
    await first.append_event(session, state_event({"count": 1, "user:seen": True}))

    second = FileSessionService(tmp_path)
    fetched = await second.get_session(app_name=APP, user_id="user/with/slash", session_id="s1")

    assert fetched.state == {"count": 1, "user:seen": True}
    assert len(fetched.events) == 1


@pytest.mark.asyncio
async def test_sqlite_backend_survives_restart(tmp_path):
    path = tmp_path / "store.db"
    first = SqliteSessionService(path)
    session = await first.create_session(app_name=APP, user_id="u1", session_id="s1")
    await first.append_event(session, user_event("hi"))
    first.close()

    second = SqliteSessionService(path)
    fetched = await second.get_session(app_name=APP, user_id="u1", session_id="s1")

    assert [e.text for e in fetched.events] == ["hi"]
    second.close()
