"""BaseAgent - Agent 基类，定义配置、树形结构和生命周期框架"""

from __future__ import annotations

import inspect
import logging
import weakref
from collections import Counter
from typing import TYPE_CHECKING, Any, AsyncGenerator, Callable, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from ..errors import InvalidAgentCompositionError
from ..events import Event
from .readonly_context import CallbackContext

if TYPE_CHECKING:
    from ..models.content import Content
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)

# 回调类型定义（使用简化类型避免 Pydantic 前向引用问题）
BeforeAgentCallback = Callable[..., Any]  # (callback_context) -> Optional[Content]
AfterAgentCallback = Callable[..., Any]   # (callback_context) -> Optional[Content]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class BaseAgent(BaseModel):
    """
    Agent 基类 - 纯配置容器 + 树形结构 + 生命周期框架

    设计理念（借鉴 Google ADK）：
    - Agent 是配置，不包含运行状态，同一个 Agent 可以被并发的多次调用共享
    - run_async 是模板方法，子类实现 _run_async_impl
    - 支持 before/after 回调钩子

    树形结构在构建时校验：一个 Agent 只能有一个父 Agent，
    同一棵树中 Agent 名称唯一，否则抛出 InvalidAgentCompositionError。
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra='forbid')

    # === 基本配置 ===
    name: str
    """Agent 名称，必须是有效的 Python 标识符"""

    description: str = ''
    """Agent 描述，用于 LLM 决定是否委托给此 Agent"""

    # === 树形结构 ===
    sub_agents: list['BaseAgent'] = Field(default_factory=list)
    """子 Agent 列表"""

    # === 生命周期回调 ===
    before_agent_callback: Optional[BeforeAgentCallback] = None
    """Agent 执行前的回调，返回 Content 则跳过执行"""

    after_agent_callback: Optional[AfterAgentCallback] = None
    """Agent 执行后的回调，返回 Content 则追加一个事件"""

    _parent_ref: Optional[weakref.ReferenceType] = PrivateAttr(default=None)
    # 挂载时记录父 Agent 名称，父 Agent 被回收后仍然有效
    _attached_to: Optional[str] = PrivateAttr(default=None)

    # === 验证器 ===

    @field_validator('name', mode='after')
    @classmethod
    def validate_name(cls, value: str) -> str:
        if not value.isidentifier():
            raise ValueError(
                f"Invalid agent name: '{value}'. "
                "Must be a valid Python identifier."
            )
        if value == 'user':
            raise ValueError("Agent name cannot be 'user' (reserved).")
        return value

    def model_post_init(self, __context: Any) -> None:
        """初始化后设置父子关系"""
        self._set_parent_for_sub_agents()

    def _set_parent_for_sub_agents(self) -> None:
        for sub_agent in self.sub_agents:
            if sub_agent._attached_to is not None:
                raise InvalidAgentCompositionError(
                    f"Agent '{sub_agent.name}' already has parent "
                    f"'{sub_agent._attached_to}', cannot add to '{self.name}'"
                )

        duplicates = [
            name for name, count in Counter(a.name for a in self.iter_agents()).items()
            if count > 1
        ]
        if duplicates:
            raise InvalidAgentCompositionError(
                f"Duplicate agent names under '{self.name}': {sorted(duplicates)}"
            )

        for sub_agent in self.sub_agents:
            sub_agent._parent_ref = weakref.ref(self)
            sub_agent._attached_to = self.name

    # === 树形结构操作 ===

    @property
    def parent_agent(self) -> Optional['BaseAgent']:
        """父 Agent（自动设置）"""
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def root_agent(self) -> 'BaseAgent':
        root = self
        while root.parent_agent is not None:
            root = root.parent_agent
        return root

    def iter_agents(self) -> Iterator['BaseAgent']:
        """深度优先遍历当前 Agent 及其所有后代"""
        yield self
        for sub_agent in self.sub_agents:
            yield from sub_agent.iter_agents()

    def find_agent(self, name: str) -> Optional['BaseAgent']:
        """在当前 Agent 及其后代中查找"""
        if self.name == name:
            return self
        return self.find_sub_agent(name)

    def find_sub_agent(self, name: str) -> Optional['BaseAgent']:
        """在后代中查找"""
        for sub_agent in self.sub_agents:
            if result := sub_agent.find_agent(name):
                return result
        return None

    # === 执行入口（模板方法） ===

    async def run_async(
        self,
        parent_context: 'InvocationContext',
    ) -> AsyncGenerator[Event, None]:
        """
        执行入口 - 模板方法

        处理生命周期回调，具体执行逻辑委托给 _run_async_impl
        """
        ctx = parent_context.for_agent(self)
        logger.debug(f"[{self.name}] Starting execution (branch={ctx.branch})")

        if event := await self._handle_before_agent_callback(ctx):
            yield event
        if ctx.end_invocation:
            return

        async for event in self._run_async_impl(ctx):
            yield event

        if ctx.end_invocation:
            return

        if event := await self._handle_after_agent_callback(ctx):
            yield event

        logger.debug(f"[{self.name}] Execution completed")

    async def _run_async_impl(
        self,
        ctx: 'InvocationContext',
    ) -> AsyncGenerator[Event, None]:
        """核心执行逻辑 - 子类必须实现"""
        raise NotImplementedError(
            f"_run_async_impl not implemented for {type(self).__name__}"
        )
        yield  # 保持为 AsyncGenerator

    # === 回调处理 ===

    async def _handle_before_agent_callback(
        self, ctx: 'InvocationContext'
    ) -> Optional[Event]:
        if not self.before_agent_callback:
            return None
        callback_context = CallbackContext(ctx)
        content: Optional['Content'] = await _maybe_await(
            self.before_agent_callback(callback_context)
        )
        if content is not None:
            # 回调返回内容，跳过执行
            ctx.end_invocation = True
        return self._callback_event(ctx, callback_context, content)

    async def _handle_after_agent_callback(
        self, ctx: 'InvocationContext'
    ) -> Optional[Event]:
        if not self.after_agent_callback:
            return None
        callback_context = CallbackContext(ctx)
        content = await _maybe_await(self.after_agent_callback(callback_context))
        return self._callback_event(ctx, callback_context, content)

    def _callback_event(
        self,
        ctx: 'InvocationContext',
        callback_context: CallbackContext,
        content: Optional['Content'],
    ) -> Optional[Event]:
        """回调返回内容或修改了状态时生成事件"""
        if content is None and not callback_context.state.has_delta():
            return None
        return self.create_event(ctx, content=content, actions=callback_context.actions.build())

    def create_event(self, ctx: 'InvocationContext', **kwargs: Any) -> Event:
        """创建一个由当前 Agent 产生的事件"""
        return Event(
            author=self.name,
            invocation_id=ctx.invocation_id,
            branch=ctx.branch,
            **kwargs,
        )

    # === 序列化 ===

    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'description': self.description,
            'type': type(self).__name__,
            'sub_agents': [a.to_dict() for a in self.sub_agents],
        }
