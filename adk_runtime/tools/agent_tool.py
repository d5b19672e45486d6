"""AgentTool - 把一个 Agent 包装为工具"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from typing_extensions import override

from ..events import Event
from ..models.content import Content
from .base_tool import BaseTool
from .tool_context import ToolContext

if TYPE_CHECKING:
    from ..agents.base_agent import BaseAgent

logger = logging.getLogger(__name__)


class AgentTool(BaseTool):
    """
    Agent 工具

    调用方 Agent 把请求作为一次独立的子调用交给被包装的 Agent，
    子调用在一个临时的内存 Session 中运行（继承当前状态），
    结束后把子调用产生的状态变更写回当前工具上下文，最终回答作为工具结果。

    与 transfer_to_agent 不同：控制权始终留在调用方 Agent。
    """

    agent: Any
    """被包装的 Agent（BaseAgent）"""

    name: str = ''
    description: str = ''

    def model_post_init(self, __context: Any) -> None:
        super().model_post_init(__context)
        if not self.name:
            self.name = self.agent.name
        if not self.description:
            self.description = self.agent.description

    @override
    def get_declaration(self) -> Optional[dict[str, Any]]:
        return {
            'name': self.name,
            'description': self.description,
            'parameters': {
                'type': 'object',
                'properties': {
                    'request': {
                        'type': 'string',
                        'description': 'The request to send to the agent',
                    },
                },
                'required': ['request'],
            },
        }

    @override
    async def run_async(self, *, args: dict[str, Any], tool_context: ToolContext) -> Any:
        from ..agents.invocation_context import InvocationContext
        from ..sessions.in_memory_session_service import InMemorySessionService

        parent_ctx = tool_context.invocation_context
        request = str(args.get('request', ''))
        user_content = Content.from_text(request)

        service = InMemorySessionService()
        session = await service.create_session(
            app_name=parent_ctx.app_name,
            user_id=parent_ctx.user_id,
            state=tool_context.state.to_dict(),
        )
        await service.append_event(session, Event(author='user', content=user_content))

        agent: 'BaseAgent' = self.agent
        ctx = InvocationContext(
            agent=agent,
            session=session,
            session_service=service,
            user_content=user_content,
            run_config=parent_ctx.run_config,
            llm_registry=parent_ctx.llm_registry,
            tool_registry=parent_ctx.tool_registry,
        )

        logger.info(f"[AgentTool] {self.name} start")
        last_text = ''
        async for event in agent.run_async(ctx):
            if event.partial:
                continue
            await service.append_event(session, event)
            if event.actions.state_delta:
                tool_context.state.update(event.actions.state_delta)
            if event.is_final_response() and event.text:
                last_text = event.text

        return {'result': last_text}
