"""LlmAgent - LLM 驱动的 Agent"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, AsyncGenerator, Callable, Literal, Optional, Union

from pydantic import Field
from typing_extensions import override

from ..errors import ModelUnavailableError, NotFoundError
from ..events import EventActions
from ..models.base_llm import BaseLlm
from ..planners.base_planner import BasePlanner
from ..tools.base_tool import BaseTool
from ..tools.function_tool import FunctionTool
from .base_agent import BaseAgent, _maybe_await
from .readonly_context import ReadonlyContext

if TYPE_CHECKING:
    from ..events import Event
    from ..flows import BaseFlow
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)

# 指令可以是字符串，也可以是 (readonly_context) -> str 的函数（可以是 async）
InstructionProvider = Callable[..., Any]

# (callback_context, llm_request) -> Optional[LlmResponse]
BeforeModelCallback = Callable[..., Any]
# (callback_context, llm_response) -> Optional[LlmResponse]
AfterModelCallback = Callable[..., Any]
# (tool, args, tool_context) -> Optional[dict]
BeforeToolCallback = Callable[..., Any]
# (tool, args, tool_context, tool_response) -> Optional[dict]
AfterToolCallback = Callable[..., Any]

ToolUnion = Union[BaseTool, Callable[..., Any], str]


class LlmAgent(BaseAgent):
    """
    LLM 驱动的 Agent

    职责：
    - 管理 LLM 相关配置（model, instruction, tools, planner 等）
    - 委托给 Flow 执行实际的 LLM 交互
    - 把最终回答写入 output_key

    model 和 tools 中的字符串在运行时通过 Runner 提供的 LlmRegistry / ToolRegistry 解析。
    model 为空时沿用最近的 LlmAgent 祖先的模型。
    """

    # === LLM 配置 ===
    model: Union[str, BaseLlm] = ''
    """模型名称或 LLM 实例"""

    instruction: Union[str, InstructionProvider] = ''
    """Agent 的指令，支持 {key} / {key?} 引用会话状态"""

    global_instruction: Union[str, InstructionProvider] = ''
    """全局指令，只有根 Agent 的设置生效，作用于整棵树"""

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    max_tool_iterations: Optional[int] = None
    """一次调用中最多执行的工具轮数，None 时使用 RunConfig 的设置"""

    # === 工具 ===
    tools: list[ToolUnion] = Field(default_factory=list)
    """可用工具列表：BaseTool、普通函数或注册表中的工具名"""

    planner: Optional[BasePlanner] = None

    # === 输出 ===
    output_key: Optional[str] = None
    """最终回答写入会话状态的键"""

    include_contents: Literal['default', 'none'] = 'default'
    """none 时不携带历史，只发送当前轮的内容"""

    # === Agent 跳转控制 ===
    disallow_transfer_to_parent: bool = False
    """禁止跳转回父 Agent"""

    disallow_transfer_to_peers: bool = False
    """禁止跳转到同级 Agent"""

    # === 回调 ===
    before_model_callback: Optional[BeforeModelCallback] = None
    after_model_callback: Optional[AfterModelCallback] = None
    before_tool_callback: Optional[BeforeToolCallback] = None
    after_tool_callback: Optional[AfterToolCallback] = None

    # === 解析 ===

    def canonical_model(self, ctx: 'InvocationContext') -> BaseLlm:
        """获取解析后的 LLM 实例"""
        if isinstance(self.model, BaseLlm):
            return self.model
        if self.model:
            if ctx.llm_registry is None:
                raise ModelUnavailableError(
                    f"Agent '{self.name}' names model '{self.model}' but no LlmRegistry is configured"
                )
            return ctx.llm_registry.resolve(self.model)
        ancestor = self.parent_agent
        while ancestor is not None:
            if isinstance(ancestor, LlmAgent) and ancestor.model:
                return ancestor.canonical_model(ctx)
            ancestor = ancestor.parent_agent
        raise ModelUnavailableError(f"No LLM configured for agent '{self.name}'")

    def get_model_name(self) -> str:
        if isinstance(self.model, BaseLlm):
            return self.model.model
        return self.model

    def canonical_tools(self, ctx: 'InvocationContext') -> list[BaseTool]:
        """把 tools 中的函数和名称解析为 BaseTool"""
        resolved: list[BaseTool] = []
        for item in self.tools:
            if isinstance(item, BaseTool):
                resolved.append(item)
            elif isinstance(item, str):
                if ctx.tool_registry is None:
                    raise NotFoundError(
                        f"Agent '{self.name}' names tool '{item}' but no ToolRegistry is configured"
                    )
                resolved.append(ctx.tool_registry.resolve(item))
            else:
                resolved.append(FunctionTool.from_function(item))
        return resolved

    async def canonical_instruction(self, readonly_context: ReadonlyContext) -> tuple[str, bool]:
        """
        返回 (指令文本, 是否跳过状态注入)

        函数形式的指令由调用方自己负责格式化，不再做 {key} 替换。
        """
        if isinstance(self.instruction, str):
            return self.instruction, False
        return await _maybe_await(self.instruction(readonly_context)), True

    async def canonical_global_instruction(
        self, readonly_context: ReadonlyContext
    ) -> tuple[str, bool]:
        if isinstance(self.global_instruction, str):
            return self.global_instruction, False
        return await _maybe_await(self.global_instruction(readonly_context)), True

    # === 可跳转的 Agent ===

    def get_transfer_targets(self) -> list[BaseAgent]:
        """
        获取可跳转到的 Agent 列表

        子 Agent 总是可以跳转；父 Agent 和同级 Agent 只有在父 Agent 是 LlmAgent 时才允许。
        父 Agent 是编排器（Sequential、Loop 等）时，执行顺序由编排器控制。
        """
        targets: list[BaseAgent] = list(self.sub_agents)
        parent = self.parent_agent
        if not isinstance(parent, LlmAgent):
            return targets

        if not self.disallow_transfer_to_parent:
            targets.append(parent)
        if not self.disallow_transfer_to_peers:
            targets.extend(a for a in parent.sub_agents if a.name != self.name)
        return targets

    # === 执行 ===

    @property
    def _llm_flow(self) -> 'BaseFlow':
        from ..flows import AutoFlow, SimpleFlow

        if self.disallow_transfer_to_parent and self.disallow_transfer_to_peers and not self.sub_agents:
            return SimpleFlow()
        return AutoFlow()

    @override
    async def _run_async_impl(
        self,
        ctx: 'InvocationContext',
    ) -> AsyncGenerator['Event', None]:
        async for event in self._llm_flow.run_async(ctx):
            yield self._maybe_save_output_to_state(event)

    def _maybe_save_output_to_state(self, event: 'Event') -> 'Event':
        """把最终回答写入 output_key"""
        if (
            not self.output_key
            or event.author != self.name
            or not event.is_final_response()
            or event.is_error()
            or not event.text
        ):
            return event
        actions = event.actions.merge(
            EventActions(state_delta={self.output_key: event.text})
        )
        return event.with_updates(actions=actions)

    # === 序列化 ===

    @override
    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update({
            'model': self.get_model_name(),
            'instruction': self.instruction if isinstance(self.instruction, str) else '<dynamic>',
            'tools': [t if isinstance(t, str) else getattr(t, 'name', getattr(t, '__name__', '?')) for t in self.tools],
            'output_key': self.output_key,
            'max_tool_iterations': self.max_tool_iterations,
        })
        return base


# 别名，保持向后兼容
Agent = LlmAgent
