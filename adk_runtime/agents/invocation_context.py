"""InvocationContext - 单次调用的执行上下文"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

from .run_config import RunConfig

if TYPE_CHECKING:
    from ..events import Event
    from ..models.content import Content
    from ..models.registry import LlmRegistry
    from ..sessions.base_session_service import BaseSessionService
    from ..sessions.session import Session
    from ..tools.registry import ToolRegistry
    from .base_agent import BaseAgent


def new_invocation_id() -> str:
    return f"e-{uuid4()}"


@dataclass
class InvocationContext:
    """
    调用上下文 - 一次 Runner 调用中所有 Agent 共享的执行环境

    Agent 树中每进入一个子 Agent 都会派生一个新的上下文（agent/branch 不同），
    session、服务和注册表在整棵树中共享。

    Attributes:
        invocation_id: 本次调用的 ID，写入每个事件
        agent: 当前执行的 Agent
        session: 当前 Session（事件追加后原地更新）
        session_service: 持久化服务，Flow 通过它记录事件
        branch: 分支路径，ParallelAgent 的子 Agent 各自在独立分支上运行
        user_content: 触发本次调用的用户消息
        end_invocation: 置为 True 后当前调用尽快结束
        transfer_depth: 本次调用中经过的 Agent 跳转次数
        handled_escalations: 已被 LoopAgent 处理的 escalate 事件 ID，外层组合 Agent 不再响应
    """
    agent: 'BaseAgent'
    session: 'Session'
    session_service: 'BaseSessionService'
    invocation_id: str = field(default_factory=new_invocation_id)
    branch: Optional[str] = None
    user_content: Optional['Content'] = None
    run_config: RunConfig = field(default_factory=RunConfig)
    llm_registry: Optional['LlmRegistry'] = None
    tool_registry: Optional['ToolRegistry'] = None
    end_invocation: bool = False
    transfer_depth: int = 0
    handled_escalations: set[str] = field(default_factory=set)

    @property
    def app_name(self) -> str:
        return self.session.app_name

    @property
    def user_id(self) -> str:
        return self.session.user_id

    def is_unhandled_escalation(self, event: 'Event') -> bool:
        return event.actions.escalate and event.id not in self.handled_escalations

    def for_agent(self, agent: 'BaseAgent', branch: Optional[str] = None) -> 'InvocationContext':
        """派生子 Agent 的上下文（branch 为 None 时沿用当前分支）"""
        return replace(
            self,
            agent=agent,
            branch=branch if branch is not None else self.branch,
        )
