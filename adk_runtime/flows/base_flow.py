"""Flow 抽象基类 - Reason-Act 循环"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, AsyncGenerator, Optional

from ..agents.base_agent import _maybe_await
from ..agents.readonly_context import CallbackContext
from ..errors import FlowExhaustedError, ModelUnavailableError, NotFoundError
from ..events import Event
from ..models.llm_request import LlmRequest
from .functions import (
    get_long_running_call_ids,
    handle_function_calls_async,
    populate_client_function_call_ids,
)
from .processors import RequestProcessor, ResponseProcessor

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext
    from ..agents.llm_agent import LlmAgent
    from ..models.llm_response import LlmResponse

logger = logging.getLogger(__name__)


class BaseFlow:
    """
    Flow 基类

    Flow 负责编排 LLM 调用循环（Reason-Act Loop）：
    1. 构建 LLM 请求（请求处理器链）
    2. 调用 LLM，流式片段立即作为 partial 事件输出
    3. 完整响应中有工具调用时执行工具，结果作为事件输出
    4. 重复 1-3，直到得到最终回答

    设计理念:
    - Flow 是无状态的，所有状态在 Session 中
    - 所有事件只 yield，由 Runner 负责持久化；
      Runner 处理完一个事件后 Flow 才会继续，下一轮请求能看到刚产生的事件
    - max_tool_iterations 由 Agent 定义，未定义时使用 RunConfig

    停止条件:
    - 得到最终回答（is_final_response）
    - 有长时间运行的工具调用尚未返回结果
    - 控制权跳转到其他 Agent（跳转目标执行完即结束）
    - 模型在用完 max_tool_iterations 轮之后仍请求工具，或跳转次数超过同一上限
      （抛出 FlowExhaustedError）
    """

    def __init__(self):
        self.request_processors: list[RequestProcessor] = []
        self.response_processors: list[ResponseProcessor] = []

    def get_max_tool_iterations(self, ctx: 'InvocationContext') -> int:
        agent_limit = getattr(ctx.agent, 'max_tool_iterations', None)
        return agent_limit if agent_limit is not None else ctx.run_config.max_tool_iterations

    # ==================== 主循环 ====================

    async def run_async(self, ctx: 'InvocationContext') -> AsyncGenerator[Event, None]:
        agent = ctx.agent
        limit = self.get_max_tool_iterations(ctx)
        tool_rounds = 0

        while True:
            last_event: Optional[Event] = None
            long_running_ids: set[str] = set()
            responded_ids: set[str] = set()

            async for event in self._run_one_step_async(ctx, tool_rounds, limit):
                yield event
                if event.partial:
                    continue
                last_event = event
                long_running_ids.update(event.long_running_tool_ids)
                responded_ids.update(fr.id for fr in event.get_function_responses() if fr.id)

            if last_event is None or last_event.is_final_response():
                break

            if target := last_event.actions.transfer_to_agent:
                async for event in self._run_transfer(ctx, target):
                    yield event
                return

            if long_running_ids - responded_ids:
                logger.info(
                    f"[{agent.name}] Paused on long running calls: "
                    f"{sorted(long_running_ids - responded_ids)}"
                )
                break

            if ctx.end_invocation:
                break

            if last_event.get_function_responses():
                tool_rounds += 1
            else:
                # 既不是最终回答也没有工具结果（例如只有推理内容），避免空转
                break

    async def _run_transfer(
        self, ctx: 'InvocationContext', agent_name: str
    ) -> AsyncGenerator[Event, None]:
        target = ctx.agent.root_agent.find_agent(agent_name)
        if target is None:
            raise NotFoundError(f"Agent '{agent_name}' not found in the agent tree")
        limit = self.get_max_tool_iterations(ctx)
        if ctx.transfer_depth >= limit:
            logger.warning(f"[{ctx.agent.name}] Transfers exceeded limit {limit}")
            raise FlowExhaustedError(ctx.agent.name, limit)
        logger.info(f"[{ctx.agent.name}] Transferring to {agent_name}")
        async for event in target.run_async(replace(ctx, transfer_depth=ctx.transfer_depth + 1)):
            yield event

    # ==================== 单步 ====================

    async def _run_one_step_async(
        self,
        ctx: 'InvocationContext',
        tool_rounds: int = 0,
        limit: Optional[int] = None,
    ) -> AsyncGenerator[Event, None]:
        """
        一次模型调用，以及由它触发的工具调用

        已经执行了 limit 轮工具后模型仍请求工具时抛出 FlowExhaustedError，
        这次未执行的调用不会写入事件日志。
        """
        request = LlmRequest()
        for processor in self.request_processors:
            await processor.process_async(ctx, request)

        callback_context = CallbackContext(ctx)
        async for response in self._call_llm_async(ctx, request, callback_context):
            if response.partial:
                event = self._build_model_event(ctx, response)
                if event.has_content():
                    yield event
                continue

            for processor in self.response_processors:
                await processor.process_async(ctx, response)

            event = self._build_model_event(ctx, response)
            callback_actions = callback_context.actions.build()
            if not callback_actions.is_empty():
                event = event.with_updates(actions=event.actions.merge(callback_actions))

            function_calls = event.get_function_calls()
            if function_calls and limit is not None and tool_rounds >= limit:
                logger.warning(f"[{ctx.agent.name}] Tool rounds exceeded limit {limit}")
                raise FlowExhaustedError(ctx.agent.name, limit)
            if function_calls:
                event = event.with_updates(
                    content=populate_client_function_call_ids(event.content),
                )
                event = event.with_updates(
                    long_running_tool_ids=get_long_running_call_ids(
                        event.get_function_calls(), request.tools_dict
                    ),
                )
            yield event

            if function_calls:
                response_event = await handle_function_calls_async(
                    ctx, event, request.tools_dict
                )
                if response_event is not None:
                    yield response_event

    async def _call_llm_async(
        self,
        ctx: 'InvocationContext',
        request: LlmRequest,
        callback_context: CallbackContext,
    ) -> AsyncGenerator['LlmResponse', None]:
        agent: 'LlmAgent' = ctx.agent

        before_cb = getattr(agent, 'before_model_callback', None)
        if before_cb:
            response = await _maybe_await(before_cb(callback_context, request))
            if response is not None:
                yield response
                return

        llm = agent.canonical_model(ctx)
        stream = ctx.run_config.stream
        logger.debug(
            f"[{agent.name}] Calling model {request.model} "
            f"(contents={len(request.contents)}, tools={len(request.tools)}, stream={stream})"
        )

        after_cb = getattr(agent, 'after_model_callback', None)
        async for response in llm.generate_async(request, stream=stream):
            if response.is_error():
                raise ModelUnavailableError(
                    f"{response.error_code}: {response.error_message or 'model error'}"
                )
            if after_cb and not response.partial:
                replaced = await _maybe_await(after_cb(callback_context, response))
                if replaced is not None:
                    response = replaced
            yield response

    def _build_model_event(self, ctx: 'InvocationContext', response: 'LlmResponse') -> Event:
        return Event(
            author=ctx.agent.name,
            invocation_id=ctx.invocation_id,
            branch=ctx.branch,
            content=response.content,
            partial=response.partial,
        )
