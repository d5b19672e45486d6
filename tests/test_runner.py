"""Runner：Session 解析、持久化、错误事件、Agent 跳转、同步接口和已加载上下文"""

import pytest

from adk_runtime.agents import LlmAgent, RunConfig, SequentialAgent
from adk_runtime.config import Config, LLMConfig, SessionConfig
from adk_runtime.errors import NotFoundError, SessionStoreError
from adk_runtime.models import Content, LlmRegistry
from adk_runtime.runners import InMemoryRunner, Runner
from adk_runtime.sessions import InMemorySessionService, SqliteSessionService
from adk_runtime.sessions.state import project_state
from adk_runtime.tools import ToolContext, ToolRegistry

from conftest import call, collect, fake_llm, stream


@pytest.mark.asyncio
async def test_increment_scenario(make_runner, session_service):
    await session_service.create_session(
        app_name="test_app", user_id="u1", session_id="s1", state={"count": 0},
    )

    def increment(tool_context: ToolContext) -> dict:
        """计数器加一"""
        tool_context.state["count"] = tool_context.state["count"] + 1
        tool_context.actions.skip_summarization = True
        return {"count": tool_context.state["count"]}

    llm = fake_llm(call("increment"))
    agent = LlmAgent(name="counter", model=llm, tools=[increment])

    events = await collect(make_runner(agent).run_async("u1", "s1", "increment"))

    session = await session_service.get_session(app_name="test_app", user_id="u1", session_id="s1")
    assert session.state == {"count": 1}
    assert len(session.events) == 3
    assert [e.author for e in session.events] == ["user", "counter", "counter"]
    assert session.events[1].get_function_calls()[0].name == "increment"
    assert session.events[2].is_final_response()
    assert llm.call_count == 1
    assert events[-1].get_function_responses()[0].response == {"count": 1}


@pytest.mark.asyncio
async def test_state_replay_matches_live_state(make_runner, session_service):
    await session_service.create_session(
        app_name="test_app", user_id="u1", session_id="s1", state={"count": 0},
    )

    def bump(tool_context: ToolContext) -> str:
        tool_context.state["count"] = tool_context.state["count"] + 1
        return "ok"

    agent = LlmAgent(
        name="counter",
        model=fake_llm(call("bump"), call("bump"), "done"),
        tools=[bump],
        output_key="last_reply",
    )

    await collect(make_runner(agent).run_async("u1", "s1", "go"))

    session = await session_service.get_session(app_name="test_app", user_id="u1", session_id="s1")
    assert project_state(session.events, seed={"count": 0}) == session.state
    assert session.state == {"count": 2, "last_reply": "done"}


@pytest.mark.asyncio
async def test_user_event_is_persisted_first(make_runner, session_service):
    agent = LlmAgent(name="assistant", model=fake_llm("hello"))

    events = await collect(make_runner(agent).run_async("u1", "s1", Content.from_text("hi")))

    session = await session_service.get_session(app_name="test_app", user_id="u1", session_id="s1")
    assert session.events[0].author == "user"
    assert session.events[0].text == "hi"
    assert session.events[1].id == events[-1].id
    assert {e.invocation_id for e in session.events} == {events[-1].invocation_id}


@pytest.mark.asyncio
async def test_missing_session_without_auto_create(make_runner, session_service):
    agent = LlmAgent(name="assistant", model=fake_llm("hello"))

    events = await collect(
        make_runner(agent).run_async(
            "u1", "nope", "hi", run_config=RunConfig(auto_create_session=False)
        )
    )

    assert len(events) == 1
    assert events[0].error_code == "NOT_FOUND"
    assert events[0].author == "assistant"
    assert await session_service.get_session(app_name="test_app", user_id="u1", session_id="nope") is None


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_internal_error(make_runner):
    def before_model(callback_context, llm_request):
        raise RuntimeError("unexpected")

    agent = LlmAgent(name="assistant", model=fake_llm("hello"), before_model_callback=before_model)

    events = await collect(make_runner(agent).run_async("u1", "s1", "hi"))

    assert events[-1].error_code == "INTERNAL_ERROR"
    assert events[-1].error_message == "unexpected"


@pytest.mark.asyncio
async def test_model_resolved_through_registry(make_runner):
    registry = LlmRegistry()
    registry.register("scripted", fake_llm("from registry"))
    agent = LlmAgent(name="assistant", model="scripted")

    events = await collect(make_runner(agent, llm_registry=registry).run_async("u1", "s1", "hi"))

    assert events[-1].text == "from registry"


@pytest.mark.asyncio
async def test_unknown_model_name_is_terminal_error(make_runner):
    agent = LlmAgent(name="assistant", model="no-such-model")

    events = await collect(make_runner(agent).run_async("u1", "s1", "hi"))

    assert events[-1].error_code == "NOT_FOUND"


@pytest.mark.asyncio
async def test_agent_without_model_is_model_unavailable(make_runner):
    agent = LlmAgent(name="assistant")

    events = await collect(make_runner(agent).run_async("u1", "s1", "hi"))

    assert events[-1].error_code == "MODEL_UNAVAILABLE"


@pytest.mark.asyncio
async def test_tool_resolved_through_registry(make_runner):
    def lookup(key: str) -> str:
        """查询配置"""
        return f"value-of-{key}"

    agent = LlmAgent(
        name="assistant",
        model=fake_llm(call("lookup", key="a"), "done"),
        tools=["lookup"],
    )

    events = await collect(
        make_runner(agent, tool_registry=ToolRegistry([lookup])).run_async("u1", "s1", "go")
    )

    response = next(e for e in events if e.get_function_responses())
    assert response.get_function_responses()[0].response == {"result": "value-of-a"}


@pytest.mark.asyncio
async def test_sub_agent_inherits_ancestor_model(make_runner):
    llm = fake_llm(call("transfer_to_agent", agent_name="pipeline"), "child answer")
    child = LlmAgent(name="child")
    pipeline = SequentialAgent(name="pipeline", sub_agents=[child])
    root = LlmAgent(name="root", model=llm, sub_agents=[pipeline])

    events = await collect(make_runner(root).run_async("u1", "s1", "hi"))

    assert events[-1].author == "child"
    assert events[-1].text == "child answer"
    assert llm.call_count == 2



class FailingAppendSessionService(InMemorySessionService):
    """第 fail_on 次 append_event 时写入失败"""

    def __init__(self, fail_on: int):
        super().__init__()
        self.fail_on = fail_on
        self.appends = 0

    async def append_event(self, session, event):
        if not event.partial:
            self.appends += 1
            if self.appends == self.fail_on:
                raise SessionStoreError("disk full")
        return await super().append_event(session, event)


@pytest.mark.asyncio
async def test_store_failure_ends_invocation():
    calls = []

    def ping() -> str:
        calls.append("ping")
        return "pong"

    service = FailingAppendSessionService(fail_on=2)
    agent = LlmAgent(name="assistant", model=fake_llm(call("ping"), "done"), tools=[ping])
    runner = Runner(app_name="test_app", agent=agent, session_service=service, config=Config())

    events = await collect(runner.run_async("u1", "s1", "hi"))

    assert len(events) == 1
    assert events[-1].error_code == "SESSION_STORE_ERROR"
    assert events[-1].author == "assistant"
    assert calls == []
    session = await service.get_session(app_name="test_app", user_id="u1", session_id="s1")
    assert [e.author for e in session.events] == ["user"]


# ==================== Agent 跳转 ====================

@pytest.mark.asyncio
async def test_transfer_to_sub_agent_and_stay_there(make_runner):
    coordinator_llm = fake_llm(call("transfer_to_agent", agent_name="billing"))
    billing_llm = fake_llm("Billing here", "Still billing")
    billing = LlmAgent(name="billing", description="账单问题", model=billing_llm)
    coordinator = LlmAgent(name="coordinator", model=coordinator_llm, sub_agents=[billing])
    runner = make_runner(coordinator)

    events = await collect(runner.run_async("u1", "s1", "my invoice"))

    assert [e.author for e in events] == ["coordinator", "coordinator", "billing"]
    assert events[1].actions.transfer_to_agent == "billing"
    assert events[-1].text == "Billing here"
    assert "transfer_to_agent" in coordinator_llm.requests[0].tools_dict

    # 下一轮直接由 billing 回复
    events = await collect(runner.run_async("u1", "s1", "and another"))
    assert events[-1].author == "billing"
    assert events[-1].text == "Still billing"
    assert coordinator_llm.call_count == 1


@pytest.mark.asyncio
async def test_next_turn_returns_to_root_when_parent_transfer_disallowed(make_runner):
    coordinator_llm = fake_llm(call("transfer_to_agent", agent_name="billing"), "root again")
    billing = LlmAgent(
        name="billing",
        model=fake_llm("Billing here"),
        disallow_transfer_to_parent=True,
    )
    coordinator = LlmAgent(name="coordinator", model=coordinator_llm, sub_agents=[billing])
    runner = make_runner(coordinator)

    await collect(runner.run_async("u1", "s1", "my invoice"))
    events = await collect(runner.run_async("u1", "s1", "something else"))

    assert events[-1].author == "coordinator"
    assert events[-1].text == "root again"


@pytest.mark.asyncio
async def test_transfer_to_unknown_agent_is_rejected(make_runner):
    billing = LlmAgent(name="billing", model=fake_llm("unused"))
    coordinator = LlmAgent(
        name="coordinator",
        model=fake_llm(call("transfer_to_agent", agent_name="nobody"), "I will handle it"),
        sub_agents=[billing],
    )

    events = await collect(make_runner(coordinator).run_async("u1", "s1", "hi"))

    response = next(e for e in events if e.get_function_responses())
    assert "error" in response.get_function_responses()[0].response
    assert response.actions.transfer_to_agent is None
    assert events[-1].text == "I will handle it"



@pytest.mark.asyncio
async def test_transfer_ping_pong_is_bounded(make_runner):
    helper_llm = fake_llm(call("transfer_to_agent", agent_name="coordinator"))
    coordinator_llm = fake_llm(call("transfer_to_agent", agent_name="helper"))
    helper = LlmAgent(name="helper", model=helper_llm, max_tool_iterations=3)
    coordinator = LlmAgent(
        name="coordinator", model=coordinator_llm, sub_agents=[helper], max_tool_iterations=3,
    )

    events = await collect(make_runner(coordinator).run_async("u1", "s1", "hi"))

    assert events[-1].error_code == "FLOW_EXHAUSTED"
    assert coordinator_llm.call_count == 2
    assert helper_llm.call_count == 2


# ==================== 同步接口 ====================

def test_sync_run_yields_events():
    runner = InMemoryRunner(
        LlmAgent(name="assistant", model=fake_llm("hello")),
        config=Config(),
    )

    events = list(runner.run("u1", "s1", "hi"))

    assert events[-1].text == "hello"
    assert runner.app_name == "InMemoryRunner"


def test_sync_run_can_stop_early():
    runner = InMemoryRunner(
        LlmAgent(name="assistant", model=fake_llm(stream("a", "b", "c"))),
        config=Config(),
    )

    events = runner.run("u1", "s1", "hi")
    first = next(events)
    events.close()

    assert first.author == "assistant"


@pytest.mark.asyncio
async def test_run_debug_creates_session():
    runner = InMemoryRunner(LlmAgent(name="assistant", model=fake_llm("hello")), config=Config())

    events = await runner.run_debug("hi")

    assert [e.text for e in events] == ["hello"]
    session = await runner.session_service.get_session(
        app_name="InMemoryRunner", user_id="debug_user", session_id="debug_session",
    )
    assert session is not None


# ==================== 已加载的上下文 ====================

@pytest.mark.asyncio
async def test_load_caches_context_and_switches_session(make_runner, session_service):
    runner = make_runner(LlmAgent(name="assistant", model=fake_llm("one", "two")))

    context = await runner.load("u1", "s1")
    assert await runner.load("u1", "s1") is context
    assert runner.loaded_contexts() == [context]

    await collect(context.run_async("hi"))
    await session_service.create_session(app_name="test_app", user_id="u1", session_id="s2")
    await context.switch_session("s2")
    await collect(context.run_async("hi again"))

    s1 = await session_service.get_session(app_name="test_app", user_id="u1", session_id="s1")
    s2 = await session_service.get_session(app_name="test_app", user_id="u1", session_id="s2")
    assert len(s1.events) == 2
    assert s2.events[-1].text == "two"

    assert runner.unload("u1", "s2") is True
    assert runner.loaded_contexts() == []
    assert runner.unload("u1", "s2") is False


@pytest.mark.asyncio
async def test_switch_to_missing_session_fails(make_runner):
    runner = make_runner(LlmAgent(name="assistant", model=fake_llm("one")))
    context = await runner.load("u1", "s1")

    with pytest.raises(NotFoundError):
        await context.switch_session("missing")
    assert context.session_id == "s1"


@pytest.mark.asyncio
async def test_load_without_auto_create_fails():
    config = Config()
    config.runner.auto_create_session = False
    runner = InMemoryRunner(LlmAgent(name="assistant", model=fake_llm("x")), config=config)

    with pytest.raises(NotFoundError):
        await runner.load("u1", "missing")


# ==================== 配置 ====================

def test_runner_builds_session_service_from_config():
    config = Config(session=SessionConfig(backend="sqlite"))

    runner = Runner(app_name="app", agent=LlmAgent(name="assistant"), config=config)

    assert isinstance(runner.session_service, SqliteSessionService)


def test_runner_registers_configured_llm():
    config = Config(llm=LLMConfig(api_base="http://localhost:8000/v1", model="local-model"))

    runner = Runner(app_name="app", agent=LlmAgent(name="assistant"), config=config)

    assert "local-model" in runner.llm_registry
    assert "gpt-4o" in runner.llm_registry
    assert "unknown" not in runner.llm_registry
