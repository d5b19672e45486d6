"""SequentialAgent - 顺序执行子 Agent（编排器）"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncGenerator

from typing_extensions import override

from .base_agent import BaseAgent

if TYPE_CHECKING:
    from ..events import Event
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)


class SequentialAgent(BaseAgent):
    """
    顺序执行 Agent - 按顺序运行所有子 Agent

    这是一个编排器，它本身不调用 LLM。
    子 Agent 共享同一个 Session，后面的 Agent 能看到前面 Agent 的输出和状态变更。
    任一子 Agent 发出 escalate 时提前结束；
    嵌套 LoopAgent 用来退出自身循环的 escalate 不影响后续子 Agent。

    Example:
        pipeline = SequentialAgent(
            name="pipeline",
            sub_agents=[
                LlmAgent(name="analyzer", instruction="分析需求", output_key="analysis"),
                LlmAgent(name="generator", instruction="根据 {analysis} 生成方案"),
            ]
        )
    """

    @override
    async def _run_async_impl(
        self,
        ctx: 'InvocationContext',
    ) -> AsyncGenerator['Event', None]:
        if not self.sub_agents:
            logger.warning(f"[{self.name}] No sub_agents to run")
            return

        total = len(self.sub_agents)
        for i, sub_agent in enumerate(self.sub_agents):
            logger.info(f"[{self.name}] Running {i + 1}/{total}: {sub_agent.name}")
            async for event in sub_agent.run_async(ctx):
                escalated = ctx.is_unhandled_escalation(event)
                yield event
                if escalated:
                    logger.info(f"[{self.name}] Escalated by {event.author}")
                    return

        logger.info(f"[{self.name}] Sequential execution completed")
