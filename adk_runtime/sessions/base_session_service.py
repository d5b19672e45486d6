"""SessionService 抽象基类"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Optional

from ..errors import NotFoundError
from ..events import Event
from .session import GetSessionConfig, Session, SessionSummary
from .state import is_temp_key

if TYPE_CHECKING:
    from ..runners import LoadedAgentContext

logger = logging.getLogger(__name__)


class BaseSessionService(ABC):
    """
    Session 持久化服务（参考 ADK 设计）

    设计原则:
    - get_session: 只获取，不存在返回 None
    - create_session: 显式创建，重复 ID 抛出 DuplicateSessionError
    - append_event: 原子操作追加事件，事件和它的 state_delta 一起写入

    所有操作都以 (app_name, user_id, session_id) 为键。
    引擎只依赖这个契约，不针对任何具体后端做特殊处理。
    """

    # ==================== CRUD ====================

    @abstractmethod
    async def create_session(
        self,
        *,
        app_name: str,
        user_id: str,
        state: Optional[dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Session:
        """
        创建新 Session

        Args:
            app_name: 应用名称
            user_id: 用户 ID
            state: 初始状态（app:/user: 前缀的键写入共享作用域）
            session_id: 会话 ID（可选，不提供则自动生成）

        Raises:
            DuplicateSessionError: 如果 Session 已存在
        """

    @abstractmethod
    async def get_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        config: Optional[GetSessionConfig] = None,
    ) -> Optional[Session]:
        """获取 Session，不存在返回 None"""

    @abstractmethod
    async def list_sessions(
        self,
        *,
        app_name: str,
        user_id: str,
        limit: Optional[int] = None,
    ) -> list[SessionSummary]:
        """列出用户的 Session 摘要（按 updated_at 倒序）"""

    @abstractmethod
    async def delete_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
    ) -> None:
        """删除 Session，不存在时抛出 NotFoundError"""

    # ==================== 追加事件 ====================

    async def append_event(self, session: Session, event: Event) -> Event:
        """
        追加单个事件到 Session（原子操作）

        partial 事件直接返回，不会被记录。
        子类先完成持久化写入，再调用基类实现更新调用方持有的 Session 对象。
        """
        if event.partial:
            return event
        self._apply_event(session, event)
        return event

    def _apply_event(self, session: Session, event: Event) -> None:
        """把事件和它的状态变更应用到内存中的 Session 对象"""
        for key, value in event.actions.state_delta.items():
            session.state[key] = value
        session.events.append(event)
        session.updated_at = time.time()

    @staticmethod
    def _strip_temp_state(event: Event) -> Event:
        """持久化前去掉 temp: 键"""
        delta = event.actions.state_delta
        if not any(is_temp_key(k) for k in delta):
            return event
        kept = {k: v for k, v in delta.items() if not is_temp_key(k)}
        return event.with_updates(actions=replace(event.actions, state_delta=kept))

    # ==================== 活动 Session 切换 ====================

    async def switch_active_session(
        self,
        context: 'LoadedAgentContext',
        session_id: str,
    ) -> Session:
        """
        把一个已加载的 Agent 上下文切换到另一个 Session（不重建 Agent）

        Raises:
            NotFoundError: 目标 Session 不存在
        """
        session = await self.get_session(
            app_name=context.app_name,
            user_id=context.user_id,
            session_id=session_id,
        )
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")
        logger.info(
            f"[SessionService] Switch {context.agent.name} "
            f"from session={context.session_id} to session={session_id}"
        )
        context.session_id = session_id
        return session
