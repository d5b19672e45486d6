"""InMemorySessionService - 内存存储实现（测试和开发用）"""

from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Any, Optional
from uuid import uuid4

from typing_extensions import override

from ..errors import DuplicateSessionError, NotFoundError
from ..events import Event
from .base_session_service import BaseSessionService
from .session import GetSessionConfig, Session, SessionSummary
from .state import split_state_delta

logger = logging.getLogger(__name__)


class InMemorySessionService(BaseSessionService):
    """
    内存 Session 服务

    内部保存一份私有副本，get_session 返回深拷贝，
    调用方修改返回的对象不会影响存储。
    app:/user: 作用域的状态单独存放，读取时合并进 Session.state。
    """

    def __init__(self):
        # {app_name: {user_id: {session_id: Session}}}
        self._sessions: dict[str, dict[str, dict[str, Session]]] = {}
        self._app_state: dict[str, dict[str, Any]] = {}
        self._user_state: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    # ==================== 创建 ====================

    @override
    async def create_session(
        self,
        *,
        app_name: str,
        user_id: str,
        state: Optional[dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Session:
        session_id = session_id or str(uuid4())
        with self._lock:
            user_sessions = self._sessions.setdefault(app_name, {}).setdefault(user_id, {})
            if session_id in user_sessions:
                raise DuplicateSessionError(session_id)

            app_delta, user_delta, session_delta = split_state_delta(state or {})
            self._app_state.setdefault(app_name, {}).update(app_delta)
            self._user_state.setdefault(app_name, {}).setdefault(user_id, {}).update(user_delta)

            now = time.time()
            session = Session(
                id=session_id,
                app_name=app_name,
                user_id=user_id,
                state=session_delta,
                created_at=now,
                updated_at=now,
            )
            user_sessions[session_id] = session
            logger.debug(f"[InMemorySessionService] Created session {session_id}")
            return self._merged_copy(session)

    # ==================== 获取 ====================

    @override
    async def get_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        config: Optional[GetSessionConfig] = None,
    ) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(app_name, {}).get(user_id, {}).get(session_id)
            if session is None:
                return None
            result = self._merged_copy(session)
        if config:
            result.events = config.apply(result.events)
        return result

    @override
    async def list_sessions(
        self,
        *,
        app_name: str,
        user_id: str,
        limit: Optional[int] = None,
    ) -> list[SessionSummary]:
        with self._lock:
            sessions = list(self._sessions.get(app_name, {}).get(user_id, {}).values())
            summaries = [s.summary() for s in sessions]
        summaries.sort(key=lambda s: s.updated_at, reverse=True)
        if limit is not None and limit > 0:
            summaries = summaries[:limit]
        return summaries

    # ==================== 删除 ====================

    @override
    async def delete_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
    ) -> None:
        with self._lock:
            user_sessions = self._sessions.get(app_name, {}).get(user_id, {})
            if session_id not in user_sessions:
                raise NotFoundError(f"Session not found: {session_id}")
            del user_sessions[session_id]

    def clear(self) -> None:
        """清空所有 Session 和共享状态"""
        with self._lock:
            self._sessions.clear()
            self._app_state.clear()
            self._user_state.clear()

    # ==================== 追加事件 ====================

    @override
    async def append_event(self, session: Session, event: Event) -> Event:
        if event.partial:
            return event

        with self._lock:
            stored = (
                self._sessions.get(session.app_name, {})
                .get(session.user_id, {})
                .get(session.id)
            )
            if stored is None:
                raise NotFoundError(f"Session not found: {session.id}")

            stored_event = self._strip_temp_state(event)
            app_delta, user_delta, session_delta = split_state_delta(
                stored_event.actions.state_delta
            )
            if app_delta:
                self._app_state.setdefault(session.app_name, {}).update(app_delta)
            if user_delta:
                self._user_state.setdefault(session.app_name, {}).setdefault(
                    session.user_id, {}
                ).update(user_delta)
            stored.state.update(session_delta)
            stored.events.append(stored_event)
            stored.updated_at = time.time()

            await super().append_event(session, event)
        return event

    # ==================== 辅助方法 ====================

    def _merged_copy(self, session: Session) -> Session:
        """复制 Session 并合并 app/user 作用域的状态"""
        state = copy.deepcopy(session.state)
        state.update(copy.deepcopy(self._app_state.get(session.app_name, {})))
        state.update(
            copy.deepcopy(
                self._user_state.get(session.app_name, {}).get(session.user_id, {})
            )
        )
        return Session(
            id=session.id,
            app_name=session.app_name,
            user_id=session.user_id,
            state=state,
            events=list(session.events),
            created_at=session.created_at,
            updated_at=session.updated_at,
        )
