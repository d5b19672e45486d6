"""工具：函数 schema 提取、装饰器、注册表、AgentTool"""

from typing import Optional

import pytest

from adk_runtime.agents import LlmAgent
from adk_runtime.errors import NotFoundError
from adk_runtime.tools import AgentTool, FunctionTool, ToolContext, ToolRegistry, TransferToAgentTool, tool

from conftest import call, collect, fake_llm


def get_weather(city: str, unit: str = "celsius", days: Optional[int] = None, tool_context: ToolContext = None) -> dict:
    """
    查询城市天气

    Args:
        city: 城市名称
        unit: 温度单位
    """
    return {"city": city, "unit": unit}


def test_declaration_from_signature_and_docstring():
    declaration = FunctionTool.from_function(get_weather).get_declaration()

    assert declaration["name"] == "get_weather"
    assert declaration["description"] == "查询城市天气"
    params = declaration["parameters"]
    assert params["required"] == ["city"]
    assert params["properties"]["city"] == {"type": "string", "description": "城市名称"}
    assert params["properties"]["unit"]["default"] == "celsius"
    assert params["properties"]["days"]["type"] == "integer"
    assert "tool_context" not in params["properties"]


def test_sphinx_docstring_params():
    def search(query: str, limit: int = 5) -> list:
        """
        搜索文档

        :param query: 搜索关键词
        :param limit: 最多返回条数
        """
        return []

    params = FunctionTool.from_function(search).get_declaration()["parameters"]

    assert params["properties"]["query"]["description"] == "搜索关键词"
    assert params["properties"]["limit"]["description"] == "最多返回条数"


def test_decorator_options():
    @tool(name="lookup_order", description="查询订单", is_long_running=True)
    def lookup(order_id: str) -> dict:
        return {}

    assert isinstance(lookup, FunctionTool)
    assert lookup.name == "lookup_order"
    assert lookup.description == "查询订单"
    assert lookup.is_long_running
    assert not lookup.is_fatal


@pytest.mark.asyncio
async def test_run_async_filters_unknown_args(make_context):
    async def add(a: int, b: int) -> int:
        return a + b

    ctx = await make_context(LlmAgent(name="agent"))
    result = await FunctionTool.from_function(add).run_async(
        args={"a": 1, "b": 2, "extra": "ignored"},
        tool_context=ToolContext(ctx),
    )

    assert result == 3


@pytest.mark.asyncio
async def test_tool_context_is_injected(make_context):
    def whoami(tool_context: ToolContext) -> str:
        return tool_context.agent_name

    ctx = await make_context(LlmAgent(name="agent"))
    result = await FunctionTool.from_function(whoami).run_async(args={}, tool_context=ToolContext(ctx))

    assert result == "agent"


def test_registry():
    def ping() -> str:
        return "pong"

    registry = ToolRegistry([ping])
    alias = registry.register(FunctionTool.from_function(ping), name="ping_alias")

    assert "ping" in registry
    assert registry.resolve("ping_alias") is alias
    assert sorted(registry.names()) == ["ping", "ping_alias"]
    with pytest.raises(NotFoundError):
        registry.resolve("missing")


@pytest.mark.asyncio
async def test_transfer_tool_validates_target(make_context):
    transfer = TransferToAgentTool(available_agents=["billing"])
    ctx = await make_context(LlmAgent(name="agent"))

    tool_context = ToolContext(ctx)
    assert await transfer.run_async(args={"agent_name": "billing"}, tool_context=tool_context) == {
        "transferred_to": "billing"
    }
    assert tool_context.actions.transfer_to_agent == "billing"

    rejected = ToolContext(ctx)
    result = await transfer.run_async(args={"agent_name": "nobody"}, tool_context=rejected)
    assert "error" in result
    assert rejected.actions.transfer_to_agent is None
    assert transfer.get_declaration()["parameters"]["properties"]["agent_name"]["enum"] == ["billing"]


@pytest.mark.asyncio
async def test_agent_tool_runs_agent_and_copies_state(make_runner, session_service):
    summarizer = LlmAgent(name="summarizer", model=fake_llm("short summary"), output_key="summary")
    agent = LlmAgent(
        name="assistant",
        model=fake_llm(call("summarizer", request="long text"), "Here it is."),
        tools=[AgentTool(agent=summarizer)],
    )

    events = await collect(make_runner(agent).run_async("u1", "s1", "summarize"))

    response = next(e for e in events if e.get_function_responses())
    assert response.get_function_responses()[0].response == {"result": "short summary"}
    session = await session_service.get_session(app_name="test_app", user_id="u1", session_id="s1")
    assert session.state["summary"] == "short summary"
    assert events[-1].text == "Here it is."
