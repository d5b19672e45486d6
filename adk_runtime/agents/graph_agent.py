"""GraphAgent - 按有向图执行子 Agent（编排器）"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, AsyncGenerator, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import override

from ..errors import InvalidAgentCompositionError
from .base_agent import BaseAgent, _maybe_await
from .readonly_context import ReadonlyContext

if TYPE_CHECKING:
    from ..events import Event
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)

# (last_event, readonly_context) -> bool，可以是 async 函数
NodeCondition = Callable[..., Any]


class GraphNode(BaseModel):
    """
    图中的一个节点

    Attributes:
        name: 节点名称（图内唯一）
        agent: 节点执行的 Agent
        targets: 后继节点名称，按顺序尝试
        condition: 进入该节点的条件，参数为上一个节点的最后一个事件和只读上下文；
            为 None 时总是满足
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    agent: BaseAgent
    targets: list[str] = Field(default_factory=list)
    condition: Optional[NodeCondition] = None


class GraphAgent(BaseAgent):
    """
    图执行 Agent - 从 root_node 出发，沿满足条件的边逐个执行节点

    每个节点执行完后，按 targets 的顺序检查后继节点的 condition，
    所有后继的 condition 都会被求值，声明顺序中第一个满足的后继被执行。停止条件：
    - 没有满足条件的后继
    - 事件带有 escalate
    - 执行步数达到 max_steps

    Example:
        graph = GraphAgent(
            name="router",
            root_node="classify",
            nodes=[
                GraphNode(name="classify", agent=classifier, targets=["billing", "support"]),
                GraphNode(name="billing", agent=billing,
                          condition=lambda event, ctx: ctx.state.get("topic") == "billing"),
                GraphNode(name="support", agent=support),
            ],
        )
    """

    nodes: list[GraphNode] = Field(default_factory=list)
    root_node: str
    max_steps: int = 50

    def model_post_init(self, __context: Any) -> None:
        for node in self.nodes:
            if not any(a is node.agent for a in self.sub_agents):
                self.sub_agents.append(node.agent)
        self._validate_graph()
        super().model_post_init(__context)

    def _validate_graph(self) -> None:
        names = [node.name for node in self.nodes]
        if len(names) != len(set(names)):
            raise InvalidAgentCompositionError(
                f"GraphAgent '{self.name}' has duplicate node names"
            )
        if self.root_node not in names:
            raise InvalidAgentCompositionError(
                f"GraphAgent '{self.name}' root node '{self.root_node}' not found"
            )
        for node in self.nodes:
            unknown = [t for t in node.targets if t not in names]
            if unknown:
                raise InvalidAgentCompositionError(
                    f"Node '{node.name}' targets unknown nodes: {unknown}"
                )

    def get_node(self, name: str) -> GraphNode:
        for node in self.nodes:
            if node.name == name:
                return node
        raise KeyError(name)

    async def _next_node(
        self,
        node: GraphNode,
        last_event: Optional['Event'],
        ctx: 'InvocationContext',
    ) -> Optional[GraphNode]:
        readonly = ReadonlyContext(ctx)
        satisfied: list[GraphNode] = []
        for target_name in node.targets:
            target = self.get_node(target_name)
            if target.condition is None or await _maybe_await(
                target.condition(last_event, readonly)
            ):
                satisfied.append(target)
        if len(satisfied) > 1:
            logger.debug(
                f"[{self.name}] Multiple successors satisfied after {node.name}: "
                f"{[t.name for t in satisfied]}, taking {satisfied[0].name}"
            )
        return satisfied[0] if satisfied else None

    @override
    async def _run_async_impl(
        self,
        ctx: 'InvocationContext',
    ) -> AsyncGenerator['Event', None]:
        node: Optional[GraphNode] = self.get_node(self.root_node)
        steps = 0

        while node is not None:
            if steps >= self.max_steps:
                logger.warning(f"[{self.name}] Max steps ({self.max_steps}) reached")
                return
            steps += 1
            logger.info(f"[{self.name}] Step {steps}: node={node.name}")

            last_event: Optional['Event'] = None
            async for event in node.agent.run_async(ctx):
                escalated = ctx.is_unhandled_escalation(event)
                yield event
                if not event.partial:
                    last_event = event
                if escalated:
                    logger.info(f"[{self.name}] Escalated at node {node.name}")
                    return

            node = await self._next_node(node, last_event, ctx)

        logger.info(f"[{self.name}] Graph completed after {steps} steps")
