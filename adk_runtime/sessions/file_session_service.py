"""FileSessionService - 基于 JSON 文件的持久化实现

目录结构:
    {root}/{app_name}/_app_state.json
    {root}/{app_name}/{user_id}/_user_state.json
    {root}/{app_name}/{user_id}/{session_id}.json
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote
from uuid import uuid4

from typing_extensions import override

from ..errors import DuplicateSessionError, NotFoundError, SessionStoreError
from ..events import Event
from .base_session_service import BaseSessionService
from .session import GetSessionConfig, Session, SessionSummary
from .state import split_state_delta

logger = logging.getLogger(__name__)

_APP_STATE_FILE = '_app_state.json'
_USER_STATE_FILE = '_user_state.json'


def _safe_name(name: str) -> str:
    """把 ID 编码为安全的文件名"""
    return quote(name, safe='')


class FileSessionService(BaseSessionService):
    """
    文件 Session 服务

    每个 Session 一个 JSON 文件，写入时先写临时文件再 os.replace，
    保证事件和状态变更一起落盘。
    """

    def __init__(self, root: str | Path):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    # ==================== 路径 ====================

    def _app_dir(self, app_name: str) -> Path:
        return self._root / _safe_name(app_name)

    def _user_dir(self, app_name: str, user_id: str) -> Path:
        return self._app_dir(app_name) / _safe_name(user_id)

    def _session_path(self, app_name: str, user_id: str, session_id: str) -> Path:
        return self._user_dir(app_name, user_id) / f"{_safe_name(session_id)}.json"

    # ==================== 文件读写 ====================

    def _read_json(self, path: Path) -> Optional[dict[str, Any]]:
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SessionStoreError(f"Failed to read {path}", cause=e) from e

    def _dumps(self, path: Path, data: dict[str, Any]) -> str:
        try:
            return json.dumps(data, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as e:
            raise SessionStoreError(f"Failed to serialize {path}", cause=e) from e

    def _replace(self, path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + '.tmp')
        try:
            tmp_path.write_text(text, encoding='utf-8')
            os.replace(tmp_path, path)
        except OSError as e:
            raise SessionStoreError(f"Failed to write {path}", cause=e) from e

    def _commit(self, writes: list[tuple[Path, str]]) -> None:
        """
        按顺序替换文件

        所有内容在调用前已经序列化完成，序列化失败时磁盘上什么都没有改变。
        Session 文件排在共享状态文件之前。
        """
        for path, text in writes:
            self._replace(path, text)

    def _load_shared_state(self, app_name: str, user_id: str) -> dict[str, Any]:
        state: dict[str, Any] = {}
        state.update(self._read_json(self._app_dir(app_name) / _APP_STATE_FILE) or {})
        state.update(
            self._read_json(self._user_dir(app_name, user_id) / _USER_STATE_FILE) or {}
        )
        return state

    def _shared_state_writes(
        self,
        app_name: str,
        user_id: str,
        app_delta: dict[str, Any],
        user_delta: dict[str, Any],
    ) -> list[tuple[Path, str]]:
        """合并共享状态并序列化，返回待写入的 (路径, 内容)"""
        writes: list[tuple[Path, str]] = []
        for path, delta in (
            (self._app_dir(app_name) / _APP_STATE_FILE, app_delta),
            (self._user_dir(app_name, user_id) / _USER_STATE_FILE, user_delta),
        ):
            if delta:
                writes.append((path, self._dumps(path, {**(self._read_json(path) or {}), **delta})))
        return writes

    def _to_session(self, data: dict[str, Any]) -> Session:
        session = Session.from_dict(data)
        session.state.update(self._load_shared_state(session.app_name, session.user_id))
        return session

    # ==================== CRUD ====================

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
        path = self._session_path(app_name, user_id, session_id)
        with self._lock:
            if path.exists():
                raise DuplicateSessionError(session_id)

            app_delta, user_delta, session_delta = split_state_delta(state or {})
            now = time.time()
            session = Session(
                id=session_id,
                app_name=app_name,
                user_id=user_id,
                state=session_delta,
                created_at=now,
                updated_at=now,
            )
            self._commit(
                [(path, self._dumps(path, session.to_dict()))]
                + self._shared_state_writes(app_name, user_id, app_delta, user_delta)
            )
            logger.debug(f"[FileSessionService] Created session {session_id} at {path}")
            return self._to_session(session.to_dict())

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
            data = self._read_json(self._session_path(app_name, user_id, session_id))
            if data is None:
                return None
            session = self._to_session(data)
        if config:
            session.events = config.apply(session.events)
        return session

    @override
    async def list_sessions(
        self,
        *,
        app_name: str,
        user_id: str,
        limit: Optional[int] = None,
    ) -> list[SessionSummary]:
        user_dir = self._user_dir(app_name, user_id)
        if not user_dir.exists():
            return []

        summaries: list[SessionSummary] = []
        with self._lock:
            for path in user_dir.glob('*.json'):
                if path.name == _USER_STATE_FILE:
                    continue
                data = self._read_json(path)
                if data is None:
                    continue
                summaries.append(SessionSummary(
                    id=data['id'],
                    app_name=data.get('app_name', app_name),
                    user_id=data.get('user_id', user_id),
                    created_at=data.get('created_at', 0.0),
                    updated_at=data.get('updated_at', 0.0),
                    event_count=len(data.get('events', [])),
                ))
        summaries.sort(key=lambda s: s.updated_at, reverse=True)
        if limit is not None and limit > 0:
            summaries = summaries[:limit]
        return summaries

    @override
    async def delete_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
    ) -> None:
        path = self._session_path(app_name, user_id, session_id)
        with self._lock:
            if not path.exists():
                raise NotFoundError(f"Session not found: {session_id}")
            try:
                path.unlink()
            except OSError as e:
                raise SessionStoreError(f"Failed to delete {path}", cause=e) from e

    # ==================== 追加事件 ====================

    @override
    async def append_event(self, session: Session, event: Event) -> Event:
        if event.partial:
            return event

        path = self._session_path(session.app_name, session.user_id, session.id)
        with self._lock:
            data = self._read_json(path)
            if data is None:
                raise NotFoundError(f"Session not found: {session.id}")

            stored_event = self._strip_temp_state(event)
            app_delta, user_delta, session_delta = split_state_delta(
                stored_event.actions.state_delta
            )
            data.setdefault('state', {}).update(session_delta)
            data.setdefault('events', []).append(stored_event.to_dict())
            data['updated_at'] = time.time()

            self._commit(
                [(path, self._dumps(path, data))]
                + self._shared_state_writes(session.app_name, session.user_id, app_delta, user_delta)
            )

        return await super().append_event(session, event)
