"""测试公共设施：按脚本返回响应的 FakeLlm 和常用 fixture"""

from __future__ import annotations

from typing import Any, AsyncIterator, Union

import pytest
from pydantic import Field

from adk_runtime.agents import BaseAgent, InvocationContext, RunConfig
from adk_runtime.config import Config
from adk_runtime.models import BaseLlm, Content, LlmRequest, LlmResponse, Part
from adk_runtime.runners import Runner
from adk_runtime.sessions import InMemorySessionService

ScriptItem = Union[str, LlmResponse, list[LlmResponse]]


def text(value: str) -> LlmResponse:
    return LlmResponse.from_text(value)


def call(name: str, **args: Any) -> LlmResponse:
    return LlmResponse(
        content=Content(role='model', parts=[Part.from_function_call(name, args)]),
        finish_reason='tool_calls',
    )


def stream(*chunks: str) -> list[LlmResponse]:
    """流式响应：每个片段一个 partial 响应，最后是完整响应"""
    return [LlmResponse.create_delta(c) for c in chunks] + [text(''.join(chunks))]


class FakeLlm(BaseLlm):
    """
    按脚本依次返回响应的模型

    每次调用消费 responses 中的一项，脚本用完后重复最后一项。
    一项可以是文本、单个 LlmResponse 或一组响应（模拟流式输出）。
    """

    model: str = 'fake-model'
    responses: list[Any] = Field(default_factory=list)
    requests: list[Any] = Field(default_factory=list)

    async def generate_async(
        self,
        request: LlmRequest,
        stream: bool = False,
    ) -> AsyncIterator[LlmResponse]:
        self.requests.append(request)
        index = min(len(self.requests), len(self.responses)) - 1
        item: ScriptItem = self.responses[index] if self.responses else ''
        if isinstance(item, str):
            item = [text(item)]
        elif isinstance(item, LlmResponse):
            item = [item]
        for response in item:
            yield response

    @property
    def call_count(self) -> int:
        return len(self.requests)


def fake_llm(*responses: ScriptItem) -> FakeLlm:
    return FakeLlm(responses=list(responses))


async def collect(agen: AsyncIterator[Any]) -> list[Any]:
    return [item async for item in agen]


@pytest.fixture
def session_service() -> InMemorySessionService:
    return InMemorySessionService()


@pytest.fixture
def make_runner(session_service):
    def factory(agent: BaseAgent, **kwargs: Any) -> Runner:
        kwargs.setdefault('config', Config())
        return Runner(
            app_name='test_app',
            agent=agent,
            session_service=session_service,
            **kwargs,
        )

    return factory


@pytest.fixture
def make_context(session_service):
    """直接构造 InvocationContext，用于绕过 Runner 测试单个组件"""

    async def factory(agent: BaseAgent, state: dict[str, Any] | None = None, **kwargs: Any):
        session = await session_service.create_session(
            app_name='test_app', user_id='u1', state=state,
        )
        return InvocationContext(
            agent=agent,
            session=session,
            session_service=session_service,
            run_config=kwargs.pop('run_config', RunConfig(stream=True)),
            **kwargs,
        )

    return factory
