"""LoopAgent - 循环执行子 Agent（编排器）"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, AsyncGenerator, Callable, Optional

from typing_extensions import override

from .base_agent import BaseAgent, _maybe_await
from .readonly_context import ReadonlyContext

if TYPE_CHECKING:
    from ..events import Event
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)

# (readonly_context) -> bool，可以是 async 函数
LoopCondition = Callable[..., Any]


class LoopAgent(BaseAgent):
    """
    循环执行 Agent - 重复运行子 Agent 直到满足条件

    停止条件（任一满足即停止）：
    - 子 Agent 事件带有 escalate（立即停止，不再运行本轮剩余的子 Agent）
    - 达到 max_iterations
    - 每轮结束后 condition_check 返回 False

    Example:
        refiner = LoopAgent(
            name="refiner",
            max_iterations=3,
            sub_agents=[
                LlmAgent(name="writer", instruction="写作"),
                LlmAgent(name="critic", instruction="评审，满意则调用 exit_loop", tools=[exit_loop]),
            ]
        )
    """

    max_iterations: Optional[int] = None
    """最大循环次数，None 表示不限次数，直到 escalate 或 condition_check 返回 False"""

    condition_check: Optional[LoopCondition] = None
    """每轮结束后调用，返回 False 时停止"""

    @override
    async def _run_async_impl(
        self,
        ctx: 'InvocationContext',
    ) -> AsyncGenerator['Event', None]:
        if not self.sub_agents:
            logger.warning(f"[{self.name}] No sub_agents to run")
            return

        logger.info(f"[{self.name}] Starting loop (max={self.max_iterations})")

        iteration = 0
        while self.max_iterations is None or iteration < self.max_iterations:
            logger.info(f"[{self.name}] Loop iteration {iteration + 1}")
            for sub_agent in self.sub_agents:
                async for event in sub_agent.run_async(ctx):
                    escalated = ctx.is_unhandled_escalation(event)
                    if escalated:
                        # 由本循环消化，外层组合 Agent 不再响应
                        ctx.handled_escalations.add(event.id)
                    yield event
                    if escalated:
                        logger.info(
                            f"[{self.name}] Escalated by {event.author} "
                            f"at iteration {iteration + 1}"
                        )
                        return
            iteration += 1

            if self.condition_check is not None:
                keep_going = await _maybe_await(self.condition_check(ReadonlyContext(ctx)))
                if not keep_going:
                    logger.info(f"[{self.name}] Condition not met, stopping")
                    break

        logger.info(f"[{self.name}] Loop completed after {iteration} iterations")
