"""请求/响应处理器

每个 LLM 请求在发出前依次经过请求处理器链，
每个完整的 LLM 响应在转换为事件前经过响应处理器链。
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Optional

from ..agents.readonly_context import CallbackContext, ReadonlyContext
from ..errors import NotFoundError
from ..events import Event
from ..models.content import Content, Part
from ..sessions.state import State
from ..tools.transfer_to_agent_tool import TransferToAgentTool

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext
    from ..agents.llm_agent import LlmAgent
    from ..models.llm_request import LlmRequest
    from ..models.llm_response import LlmResponse

logger = logging.getLogger(__name__)


# ==================== Processor 协议 ====================

class RequestProcessor:
    """请求处理器：在 LLM 请求发送前原地修改请求"""

    async def process_async(self, ctx: 'InvocationContext', request: 'LlmRequest') -> None:
        pass


class ResponseProcessor:
    """响应处理器：在完整的 LLM 响应返回后原地修改响应"""

    async def process_async(self, ctx: 'InvocationContext', response: 'LlmResponse') -> None:
        pass


# ==================== 基础配置 ====================

class BasicRequestProcessor(RequestProcessor):
    """模型名称和生成参数"""

    async def process_async(self, ctx, request):
        agent: 'LlmAgent' = ctx.agent
        request.model = agent.canonical_model(ctx).get_model(request) or agent.get_model_name()
        request.temperature = agent.temperature
        request.max_tokens = agent.max_tokens


# ==================== 指令 ====================

_PLACEHOLDER = re.compile(r'{+[^{}]*}+')


def _is_state_name(name: str) -> bool:
    parts = name.split(':', 1)
    if len(parts) == 1:
        return name.isidentifier()
    prefix = parts[0] + ':'
    return (
        prefix in (State.APP_PREFIX, State.USER_PREFIX, State.TEMP_PREFIX)
        and parts[1].isidentifier()
    )


def inject_session_state(template: str, ctx: 'InvocationContext') -> str:
    """
    用会话状态填充指令中的 {key}

    {key?} 表示可选，状态中不存在时替换为空字符串；
    不是合法状态名的花括号内容原样保留。

    Raises:
        NotFoundError: 必需的 key 不在会话状态中
    """
    state = ctx.session.state

    def replace(match: re.Match) -> str:
        raw = match.group()
        name = raw.lstrip('{').rstrip('}').strip()
        optional = name.endswith('?')
        if optional:
            name = name[:-1]
        if not _is_state_name(name):
            return raw
        if name in state:
            return str(state[name])
        if optional:
            return ''
        raise NotFoundError(f"Context variable not found: `{name}`.")

    return _PLACEHOLDER.sub(replace, template)


class InstructionsRequestProcessor(RequestProcessor):
    """根 Agent 的 global_instruction + 当前 Agent 的 instruction"""

    async def process_async(self, ctx, request):
        from ..agents.llm_agent import LlmAgent

        agent: 'LlmAgent' = ctx.agent
        readonly = ReadonlyContext(ctx)
        root = agent.root_agent

        if isinstance(root, LlmAgent) and root.global_instruction:
            text, bypass = await root.canonical_global_instruction(readonly)
            if not bypass:
                text = inject_session_state(text, ctx)
            request.append_instructions([text])

        if agent.instruction:
            text, bypass = await agent.canonical_instruction(readonly)
            if not bypass:
                text = inject_session_state(text, ctx)
            request.append_instructions([text])


# ==================== 规划 ====================

class PlanningRequestProcessor(RequestProcessor):
    """规划器的请求前钩子"""

    async def process_async(self, ctx, request):
        planner = getattr(ctx.agent, 'planner', None)
        if planner is None:
            return
        instruction = planner.build_planning_instruction(ReadonlyContext(ctx), request)
        if instruction:
            request.append_instructions([instruction])


class PlanningResponseProcessor(ResponseProcessor):
    """规划器的响应后钩子"""

    async def process_async(self, ctx, response):
        planner = getattr(ctx.agent, 'planner', None)
        if planner is None or response.content is None or not response.content.parts:
            return
        parts = planner.process_planning_response(CallbackContext(ctx), response.content.parts)
        if parts is not None:
            response.content = Content(role=response.content.role, parts=parts)


# ==================== 历史内容 ====================

def _belongs_to_branch(invocation_branch: Optional[str], event: Event) -> bool:
    """事件是否对当前分支可见（祖先分支的事件可见，兄弟分支的不可见）"""
    if not invocation_branch or not event.branch:
        return True
    return invocation_branch == event.branch or invocation_branch.startswith(event.branch + '.')


def _is_other_agent_reply(agent_name: str, event: Event) -> bool:
    return bool(agent_name) and event.author != agent_name and event.author != 'user'


def _present_other_agent_message(event: Event) -> Optional[Content]:
    """把其他 Agent 的消息改写为用户侧的上下文说明"""
    parts: list[Part] = [Part.from_text('For context:')]
    for part in event.content.parts:
        if part.thought:
            continue
        if part.text:
            parts.append(Part.from_text(f"[{event.author}] said: {part.text}"))
        elif part.function_call is not None:
            fc = part.function_call
            parts.append(Part.from_text(
                f"[{event.author}] called tool `{fc.name}` with parameters: {fc.args}"
            ))
        elif part.function_response is not None:
            fr = part.function_response
            parts.append(Part.from_text(
                f"[{event.author}] `{fr.name}` tool returned result: {fr.response}"
            ))
    if len(parts) == 1:
        return None
    return Content(role='user', parts=parts)


def _strip_thoughts(content: Content) -> Optional[Content]:
    parts = [p for p in content.parts if not p.thought and not p.is_empty()]
    if not parts:
        return None
    return Content(role=content.role, parts=parts)


def _current_turn(events: list[Event]) -> list[Event]:
    """最后一条用户消息及其之后的事件"""
    for i in range(len(events) - 1, -1, -1):
        if events[i].author == 'user':
            return events[i:]
    return events


class ContentsRequestProcessor(RequestProcessor):
    """从会话事件构建对话历史"""

    async def process_async(self, ctx, request):
        agent: 'LlmAgent' = ctx.agent
        events = list(ctx.session.events)
        if getattr(agent, 'include_contents', 'default') == 'none':
            events = _current_turn(events)

        contents: list[Content] = []
        for event in events:
            if event.partial or event.content is None or not event.content.parts:
                continue
            # 终止错误事件不进入历史，工具错误结果仍需回传给模型
            if event.is_error() and not event.get_function_responses():
                continue
            if not _belongs_to_branch(ctx.branch, event):
                continue

            if _is_other_agent_reply(agent.name, event):
                content = _present_other_agent_message(event)
            else:
                content = _strip_thoughts(event.content)
            if content is not None:
                contents.append(content)

        request.contents = contents


# ==================== Agent 跳转 ====================

def _build_target_agents_instruction(agent: 'LlmAgent', targets: list) -> str:
    lines = [
        "You have a list of other agents to transfer to:",
        "",
    ]
    for target in targets:
        lines.append(f"Agent name: {target.name}")
        lines.append(f"Agent description: {target.description or 'N/A'}")
        lines.append("")
    lines.append(
        "If you are the best to answer the question according to your description, "
        "you can answer it."
    )
    lines.append(
        "If another agent is better for answering the question according to its "
        "description, call `transfer_to_agent` function to transfer the question to "
        "that agent. When transferring, do not generate any text other than the "
        "function call."
    )
    parent = agent.parent_agent
    if parent is not None and not agent.disallow_transfer_to_parent:
        lines.append(
            f"Your parent agent is {parent.name}. If neither the other agents nor you "
            f"are best for answering the question according to the descriptions, "
            f"transfer to your parent agent."
        )
    return '\n'.join(lines)


class AgentTransferRequestProcessor(RequestProcessor):
    """有可跳转目标时，声明 transfer_to_agent 工具并说明目标"""

    async def process_async(self, ctx, request):
        agent: 'LlmAgent' = ctx.agent
        targets = agent.get_transfer_targets()
        if not targets:
            return
        request.append_instructions([_build_target_agents_instruction(agent, targets)])
        request.append_tools([TransferToAgentTool(available_agents=[t.name for t in targets])])


# ==================== 工具 ====================

class ToolsRequestProcessor(RequestProcessor):
    """声明 Agent 的工具"""

    async def process_async(self, ctx, request):
        agent: 'LlmAgent' = ctx.agent
        request.append_tools(agent.canonical_tools(ctx))
