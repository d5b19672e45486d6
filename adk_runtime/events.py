"""事件系统 - 记录对话过程中的每一次贡献

核心设计理念:
- 所有操作都是事件，事件组成会话历史
- 事件创建后不可变（frozen dataclass），派生事件通过 with_updates 生成
- 状态变更只通过 EventActions.state_delta 表达，Session 状态是事件日志的投影
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any, Optional
from uuid import uuid4

from .models.content import Content, FunctionCall, FunctionResponse


@dataclass(frozen=True)
class EventActions:
    """
    事件动作 - 描述事件触发的后续动作

    用于多 Agent 场景下的控制流：
    - escalate: 向上级组合 Agent 报告停止（用于退出 LoopAgent）
    - transfer_to_agent: 跳转到指定 Agent
    - skip_summarization: 工具结果直接作为最终回答，不再让模型总结
    - state_delta: 状态变更
    """
    escalate: bool = False
    """是否向上级 Agent 报告（用于退出 LoopAgent）"""

    transfer_to_agent: Optional[str] = None
    """跳转到的目标 Agent 名称"""

    skip_summarization: bool = False
    """是否跳过对工具结果的总结"""

    state_delta: dict[str, Any] = field(default_factory=dict)
    """状态变更"""

    def merge(self, other: 'EventActions') -> 'EventActions':
        """合并两组动作，other 中的值优先"""
        return EventActions(
            escalate=self.escalate or other.escalate,
            transfer_to_agent=other.transfer_to_agent or self.transfer_to_agent,
            skip_summarization=self.skip_summarization or other.skip_summarization,
            state_delta={**self.state_delta, **other.state_delta},
        )

    def is_empty(self) -> bool:
        return not (
            self.escalate
            or self.transfer_to_agent
            or self.skip_summarization
            or self.state_delta
        )

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            'escalate': self.escalate,
            'transfer_to_agent': self.transfer_to_agent,
            'skip_summarization': self.skip_summarization,
            'state_delta': dict(self.state_delta),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'EventActions':
        """从字典创建"""
        return cls(
            escalate=data.get('escalate', False),
            transfer_to_agent=data.get('transfer_to_agent'),
            skip_summarization=data.get('skip_summarization', False),
            state_delta=dict(data.get('state_delta') or {}),
        )


def new_event_id() -> str:
    """生成 8 位的事件 ID"""
    return uuid4().hex[:8]


@dataclass(frozen=True)
class Event:
    """
    事件 - 记录一次对话贡献

    Attributes:
        author: 'user' 或产生事件的 Agent 名称
        content: 结构化内容，流式标记事件可以为 None
        actions: 事件触发的动作
        partial: 是否是流式的中间片段（不会被持久化）
        invocation_id: 同一次 Runner 调用产生的事件共享此 ID
        branch: 分支路径（如 parallel.worker），用于隔离同级子 Agent 的历史
        long_running_tool_ids: 长时间运行的工具调用 ID
        error_code / error_message: 错误事件的标识
    """
    author: str
    content: Optional[Content] = None
    actions: EventActions = field(default_factory=EventActions)
    partial: bool = False
    invocation_id: str = ''
    branch: Optional[str] = None
    long_running_tool_ids: frozenset[str] = field(default_factory=frozenset)
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    id: str = field(default_factory=new_event_id)
    timestamp: float = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)

    # ==================== 查询方法 ====================

    def get_function_calls(self) -> list[FunctionCall]:
        if self.content is None:
            return []
        return self.content.function_calls()

    def get_function_responses(self) -> list[FunctionResponse]:
        if self.content is None:
            return []
        return self.content.function_responses()

    @property
    def text(self) -> str:
        """事件中的可见文本"""
        return self.content.text if self.content else ''

    def is_final_response(self) -> bool:
        """
        是否是最终响应

        没有待处理的工具调用、不是流式片段、没有长时间运行的工具标记。
        例外：设置了 skip_summarization 的工具结果事件本身就是最终回答。
        """
        if self.partial or self.long_running_tool_ids:
            return False
        if self.get_function_calls():
            return False
        if self.get_function_responses():
            return self.actions.skip_summarization
        return True

    def has_content(self) -> bool:
        """是否有可展示的内容（用于过滤空的流式片段）"""
        if self.content is None:
            return False
        return any(not part.is_empty() for part in self.content.parts)

    def is_error(self) -> bool:
        return self.error_code is not None

    def with_updates(self, **changes: Any) -> 'Event':
        """基于当前事件生成新事件（原事件不变）"""
        return replace(self, **changes)

    # ==================== 序列化 ====================

    def to_dict(self) -> dict[str, Any]:
        """转换为字典格式"""
        result: dict[str, Any] = {
            'id': self.id,
            'invocation_id': self.invocation_id,
            'author': self.author,
            'timestamp': self.timestamp,
            'content': self.content.to_dict() if self.content else None,
            'actions': self.actions.to_dict(),
        }
        if self.partial:
            result['partial'] = True
        if self.branch:
            result['branch'] = self.branch
        if self.long_running_tool_ids:
            result['long_running_tool_ids'] = sorted(self.long_running_tool_ids)
        if self.error_code:
            result['error_code'] = self.error_code
            result['error_message'] = self.error_message
        if self.metadata:
            result['metadata'] = self.metadata
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Event':
        """从字典创建事件"""
        content = data.get('content')
        return cls(
            id=data['id'],
            invocation_id=data.get('invocation_id', ''),
            author=data['author'],
            timestamp=data['timestamp'],
            content=Content.from_dict(content) if content else None,
            actions=EventActions.from_dict(data.get('actions') or {}),
            partial=data.get('partial', False),
            branch=data.get('branch'),
            long_running_tool_ids=frozenset(data.get('long_running_tool_ids', [])),
            error_code=data.get('error_code'),
            error_message=data.get('error_message'),
            metadata=data.get('metadata', {}),
        )


# ==================== 事件工厂函数 ====================

def create_error_event(
    author: str,
    error_code: str,
    error_message: str,
    invocation_id: str = '',
    branch: Optional[str] = None,
) -> Event:
    """创建终止错误事件"""
    return Event(
        author=author,
        invocation_id=invocation_id,
        branch=branch,
        content=Content.from_text(f"Error: {error_message}", role='model'),
        error_code=error_code,
        error_message=error_message,
    )
