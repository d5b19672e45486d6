"""会话 - 维护对话历史和状态"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import uuid4

from ..events import Event


@dataclass
class Session:
    """
    会话 - 维护一次完整对话的所有事件和状态

    核心设计理念:
    - Session 是有状态的，存储所有历史事件
    - Runner 是无状态的，每次执行从 Session 加载历史
    - state 是事件日志的投影，只在 append_event 中被修改
    """
    id: str = field(default_factory=lambda: str(uuid4()))
    app_name: str = ""
    user_id: str = ""
    state: dict[str, Any] = field(default_factory=dict)
    events: list[Event] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def session_id(self) -> str:
        return self.id

    def to_dict(self) -> dict[str, Any]:
        """序列化为字典"""
        return {
            'id': self.id,
            'app_name': self.app_name,
            'user_id': self.user_id,
            'state': self.state,
            'events': [e.to_dict() for e in self.events],
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Session':
        """从字典反序列化"""
        return cls(
            id=data['id'],
            app_name=data.get('app_name', ''),
            user_id=data.get('user_id', ''),
            state=data.get('state', {}),
            events=[Event.from_dict(e) for e in data.get('events', [])],
            created_at=data.get('created_at', time.time()),
            updated_at=data.get('updated_at', time.time()),
        )

    def summary(self) -> 'SessionSummary':
        return SessionSummary(
            id=self.id,
            app_name=self.app_name,
            user_id=self.user_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            event_count=len(self.events),
        )


@dataclass
class SessionSummary:
    """Session 摘要（用于列表，不包含事件日志）"""
    id: str
    app_name: str
    user_id: str
    created_at: float
    updated_at: float
    event_count: int = 0


@dataclass
class GetSessionConfig:
    """get_session 的过滤选项"""
    num_recent_events: Optional[int] = None
    """只返回最近 N 个事件"""

    after_timestamp: Optional[float] = None
    """只返回此时间之后（含）的事件"""

    def apply(self, events: list[Event]) -> list[Event]:
        if self.after_timestamp is not None:
            events = [e for e in events if e.timestamp >= self.after_timestamp]
        if self.num_recent_events is not None:
            events = events[-self.num_recent_events:] if self.num_recent_events > 0 else []
        return events
