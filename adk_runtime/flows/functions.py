"""工具调用的执行与结果合并"""

from __future__ import annotations

import asyncio
import logging
from functools import reduce
from typing import TYPE_CHECKING, Any, Optional

from ..agents.base_agent import _maybe_await
from ..errors import ToolInvocationError
from ..events import Event, EventActions
from ..models.content import Content, FunctionCall, Part, new_function_call_id
from ..tools.tool_context import ToolContext

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext
    from ..tools.base_tool import BaseTool

logger = logging.getLogger(__name__)


def populate_client_function_call_ids(content: Optional[Content]) -> Optional[Content]:
    """为没有 ID 的工具调用补全客户端 ID（返回新的 Content，原对象不变）"""
    if content is None or not any(
        p.function_call is not None and not p.function_call.id for p in content.parts
    ):
        return content
    parts: list[Part] = []
    for part in content.parts:
        fc = part.function_call
        if fc is not None and not fc.id:
            part = Part(
                text=part.text,
                function_call=FunctionCall(name=fc.name, args=fc.args, id=new_function_call_id()),
                thought=part.thought,
            )
        parts.append(part)
    return Content(role=content.role, parts=parts)


def get_long_running_call_ids(
    function_calls: list[FunctionCall],
    tools_dict: dict[str, 'BaseTool'],
) -> frozenset[str]:
    return frozenset(
        fc.id for fc in function_calls
        if fc.id and fc.name in tools_dict and tools_dict[fc.name].is_long_running
    )


class _CallResult:
    __slots__ = ('part', 'actions', 'error')

    def __init__(
        self,
        part: Optional[Part],
        actions: EventActions,
        error: Optional[str] = None,
    ):
        self.part = part
        self.actions = actions
        self.error = error


async def _call_tool_async(
    ctx: 'InvocationContext',
    function_call: FunctionCall,
    tools_dict: dict[str, 'BaseTool'],
) -> _CallResult:
    """执行单个工具调用"""
    agent = ctx.agent
    name = function_call.name
    args = dict(function_call.args or {})

    tool = tools_dict.get(name)
    if tool is None:
        message = f"Tool '{name}' not found"
        logger.warning(f"[{agent.name}] {message}")
        return _CallResult(
            Part.from_function_response(name, {'error': message}, function_call.id),
            EventActions(),
            message,
        )

    tool_context = ToolContext(ctx, function_call_id=function_call.id)
    result: Any = None

    before_cb = getattr(agent, 'before_tool_callback', None)
    after_cb = getattr(agent, 'after_tool_callback', None)
    # 回调和工具本身的异常按同一方式处理
    try:
        if before_cb:
            result = await _maybe_await(before_cb(tool, args, tool_context))

        if result is None:
            logger.info(f"[{agent.name}] Calling tool {name}({args})")
            result = await tool.run_async(args=args, tool_context=tool_context)

            if after_cb:
                replaced = await _maybe_await(after_cb(tool, args, tool_context, result))
                if replaced is not None:
                    result = replaced
    except Exception as e:
        if tool.is_fatal:
            raise ToolInvocationError(name, str(e), cause=e) from e
        logger.warning(f"[{agent.name}] Tool {name} failed: {e}")
        message = str(e) or type(e).__name__
        return _CallResult(
            Part.from_function_response(name, {'error': message}, function_call.id),
            tool_context.actions.build(),
            f"Tool '{name}' failed: {message}",
        )

    # 长时间运行的工具返回 None 表示结果稍后才会到达
    if tool.is_long_running and result is None:
        return _CallResult(None, tool_context.actions.build())

    if not isinstance(result, dict):
        result = {'result': result}

    return _CallResult(
        Part.from_function_response(name, result, function_call.id),
        tool_context.actions.build(),
    )


async def handle_function_calls_async(
    ctx: 'InvocationContext',
    function_call_event: Event,
    tools_dict: dict[str, 'BaseTool'],
) -> Optional[Event]:
    """
    并发执行一个事件中的所有工具调用，并合并为一个工具结果事件

    结果按调用顺序排列，各调用的 actions 按顺序合并（后面的覆盖前面的）。
    普通工具的异常被转换为 {"error": ...} 结果，事件带有 TOOL_INVOCATION_ERROR；
    is_fatal 工具的异常以 ToolInvocationError 抛出。
    """
    function_calls = function_call_event.get_function_calls()
    if not function_calls:
        return None

    results = await asyncio.gather(
        *(_call_tool_async(ctx, fc, tools_dict) for fc in function_calls)
    )

    parts = [r.part for r in results if r.part is not None]
    if not parts:
        return None

    actions = reduce(lambda a, b: a.merge(b), (r.actions for r in results), EventActions())
    errors = [r.error for r in results if r.error]

    return Event(
        author=ctx.agent.name,
        invocation_id=ctx.invocation_id,
        branch=ctx.branch,
        content=Content(role='user', parts=parts),
        actions=actions,
        error_code=ToolInvocationError.code if errors else None,
        error_message='; '.join(errors) if errors else None,
    )
