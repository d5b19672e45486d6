"""ParallelAgent - 并发执行子 Agent（编排器）"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import TYPE_CHECKING, Any, AsyncGenerator, Optional

from typing_extensions import override

from ..errors import InvalidAgentCompositionError
from .base_agent import BaseAgent

if TYPE_CHECKING:
    from ..events import Event
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)

_DONE = object()


def _output_keys(agent: BaseAgent) -> set[str]:
    """子树中所有 Agent 声明的 output_key"""
    keys: set[str] = set()
    for a in agent.iter_agents():
        key = getattr(a, 'output_key', None)
        if key:
            keys.add(key)
    return keys


class ParallelAgent(BaseAgent):
    """
    并发执行 Agent - 同时运行所有子 Agent

    每个子 Agent 在独立的分支（{parent}.{child}）上运行，
    看不到兄弟分支的事件。各分支的事件按产生顺序交错输出；
    子 Agent 产生一个事件后会等待上游处理完成（持久化）才继续，
    保证同一分支内的事件顺序。

    任一子 Agent 失败会取消其余子 Agent，并把异常向上抛出。
    同一 ParallelAgent 下的子 Agent 不能写同一个 output_key。

    Example:
        research = ParallelAgent(
            name="research",
            sub_agents=[
                LlmAgent(name="price", instruction="查询价格", output_key="price"),
                LlmAgent(name="sentiment", instruction="分析情绪", output_key="sentiment"),
            ]
        )
    """

    def model_post_init(self, __context: Any) -> None:
        counts = Counter(key for sub in self.sub_agents for key in _output_keys(sub))
        conflicts = sorted(key for key, count in counts.items() if count > 1)
        if conflicts:
            raise InvalidAgentCompositionError(
                f"ParallelAgent '{self.name}' has sub agents writing the same "
                f"output_key: {conflicts}"
            )
        super().model_post_init(__context)

    def _branch_for(self, ctx: 'InvocationContext', sub_agent: BaseAgent) -> str:
        prefix = ctx.branch or self.name
        return f"{prefix}.{sub_agent.name}"

    @override
    async def _run_async_impl(
        self,
        ctx: 'InvocationContext',
    ) -> AsyncGenerator['Event', None]:
        if not self.sub_agents:
            logger.warning(f"[{self.name}] No sub_agents to run")
            return

        logger.info(f"[{self.name}] Starting {len(self.sub_agents)} agents in parallel")
        queue: asyncio.Queue[tuple[Any, Optional[asyncio.Future]]] = asyncio.Queue()
        loop = asyncio.get_running_loop()

        async def run_child(sub_agent: BaseAgent) -> None:
            child_ctx = ctx.for_agent(sub_agent, branch=self._branch_for(ctx, sub_agent))
            try:
                async for event in sub_agent.run_async(child_ctx):
                    ack = loop.create_future()
                    await queue.put((event, ack))
                    await ack
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[{self.name}] Sub agent {sub_agent.name} failed: {e}")
                await queue.put((e, None))
                return
            await queue.put((_DONE, None))

        tasks = [
            asyncio.create_task(run_child(sub_agent), name=f"{self.name}.{sub_agent.name}")
            for sub_agent in self.sub_agents
        ]
        remaining = len(tasks)
        try:
            while remaining:
                item, ack = await queue.get()
                if item is _DONE:
                    remaining -= 1
                    continue
                if isinstance(item, BaseException):
                    raise item
                yield item
                if ack is not None and not ack.done():
                    ack.set_result(None)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.info(f"[{self.name}] Parallel execution completed")
