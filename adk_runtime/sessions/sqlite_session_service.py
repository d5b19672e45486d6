"""SqliteSessionService - 基于 SQLite 的持久化实现"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional
from uuid import uuid4

from typing_extensions import override

from ..errors import DuplicateSessionError, NotFoundError, SessionStoreError
from ..events import Event
from .base_session_service import BaseSessionService
from .session import GetSessionConfig, Session, SessionSummary
from .state import split_state_delta

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    app_name TEXT NOT NULL,
    user_id TEXT NOT NULL,
    id TEXT NOT NULL,
    state TEXT NOT NULL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL,
    PRIMARY KEY (app_name, user_id, id)
);
CREATE TABLE IF NOT EXISTS events (
    id TEXT NOT NULL,
    app_name TEXT NOT NULL,
    user_id TEXT NOT NULL,
    session_id TEXT NOT NULL,
    timestamp REAL NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_events_session
    ON events(app_name, user_id, session_id);
CREATE TABLE IF NOT EXISTS app_states (
    app_name TEXT PRIMARY KEY,
    state TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS user_states (
    app_name TEXT NOT NULL,
    user_id TEXT NOT NULL,
    state TEXT NOT NULL,
    PRIMARY KEY (app_name, user_id)
);
"""


class SqliteSessionService(BaseSessionService):
    """
    SQLite Session 服务

    每次 append_event 在一个事务里写入事件行和各作用域的状态，
    任一步失败整体回滚。

    使用示例:
        service = SqliteSessionService("./sessions.db")
        service = SqliteSessionService(":memory:")  # 测试用
    """

    def __init__(self, db_path: str | Path = ':memory:'):
        self._db_path = str(db_path)
        self._lock = threading.Lock()
        # :memory: 数据库在连接关闭后就消失，只能复用同一个连接
        self._shared_conn: Optional[sqlite3.Connection] = None
        if self._db_path == ':memory:':
            self._shared_conn = sqlite3.connect(':memory:', check_same_thread=False)
        else:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """初始化表结构"""
        with self._connect() as conn:
            conn.executescript(_SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """获取连接并在一个事务内执行，成功提交，失败回滚"""
        with self._lock:
            conn = self._shared_conn or sqlite3.connect(self._db_path)
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise SessionStoreError(f"SQLite error: {e}", cause=e) from e
            except (TypeError, ValueError) as e:
                conn.rollback()
                raise SessionStoreError(f"Failed to serialize: {e}", cause=e) from e
            except BaseException:
                conn.rollback()
                raise
            finally:
                if conn is not self._shared_conn:
                    conn.close()

    def close(self) -> None:
        if self._shared_conn is not None:
            self._shared_conn.close()
            self._shared_conn = None

    # ==================== 共享状态 ====================

    def _read_state(self, conn: sqlite3.Connection, sql: str, params: tuple) -> dict[str, Any]:
        row = conn.execute(sql, params).fetchone()
        return json.loads(row[0]) if row else {}

    def _load_shared_state(
        self, conn: sqlite3.Connection, app_name: str, user_id: str
    ) -> dict[str, Any]:
        state = self._read_state(
            conn, "SELECT state FROM app_states WHERE app_name = ?", (app_name,)
        )
        state.update(self._read_state(
            conn,
            "SELECT state FROM user_states WHERE app_name = ? AND user_id = ?",
            (app_name, user_id),
        ))
        return state

    def _update_shared_state(
        self,
        conn: sqlite3.Connection,
        app_name: str,
        user_id: str,
        app_delta: dict[str, Any],
        user_delta: dict[str, Any],
    ) -> None:
        if app_delta:
            state = self._read_state(
                conn, "SELECT state FROM app_states WHERE app_name = ?", (app_name,)
            )
            state.update(app_delta)
            conn.execute(
                "INSERT OR REPLACE INTO app_states (app_name, state) VALUES (?, ?)",
                (app_name, json.dumps(state)),
            )
        if user_delta:
            state = self._read_state(
                conn,
                "SELECT state FROM user_states WHERE app_name = ? AND user_id = ?",
                (app_name, user_id),
            )
            state.update(user_delta)
            conn.execute(
                "INSERT OR REPLACE INTO user_states (app_name, user_id, state) VALUES (?, ?, ?)",
                (app_name, user_id, json.dumps(state)),
            )

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
        app_delta, user_delta, session_delta = split_state_delta(state or {})
        now = time.time()

        with self._connect() as conn:
            exists = conn.execute(
                "SELECT 1 FROM sessions WHERE app_name = ? AND user_id = ? AND id = ?",
                (app_name, user_id, session_id),
            ).fetchone()
            if exists:
                raise DuplicateSessionError(session_id)

            conn.execute(
                "INSERT INTO sessions (app_name, user_id, id, state, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (app_name, user_id, session_id, json.dumps(session_delta), now, now),
            )
            self._update_shared_state(conn, app_name, user_id, app_delta, user_delta)
            merged = {**session_delta, **self._load_shared_state(conn, app_name, user_id)}

        logger.debug(f"[SqliteSessionService] Created session {session_id}")
        return Session(
            id=session_id,
            app_name=app_name,
            user_id=user_id,
            state=merged,
            created_at=now,
            updated_at=now,
        )

    @override
    async def get_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        config: Optional[GetSessionConfig] = None,
    ) -> Optional[Session]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT state, created_at, updated_at FROM sessions "
                "WHERE app_name = ? AND user_id = ? AND id = ?",
                (app_name, user_id, session_id),
            ).fetchone()
            if row is None:
                return None
            event_rows = conn.execute(
                "SELECT data FROM events WHERE app_name = ? AND user_id = ? AND session_id = ? "
                "ORDER BY rowid",
                (app_name, user_id, session_id),
            ).fetchall()
            state = json.loads(row[0])
            state.update(self._load_shared_state(conn, app_name, user_id))

        events = [Event.from_dict(json.loads(r[0])) for r in event_rows]
        if config:
            events = config.apply(events)
        return Session(
            id=session_id,
            app_name=app_name,
            user_id=user_id,
            state=state,
            events=events,
            created_at=row[1],
            updated_at=row[2],
        )

    @override
    async def list_sessions(
        self,
        *,
        app_name: str,
        user_id: str,
        limit: Optional[int] = None,
    ) -> list[SessionSummary]:
        sql = (
            "SELECT s.id, s.created_at, s.updated_at, "
            "(SELECT COUNT(*) FROM events e WHERE e.app_name = s.app_name "
            " AND e.user_id = s.user_id AND e.session_id = s.id) "
            "FROM sessions s WHERE s.app_name = ? AND s.user_id = ? "
            "ORDER BY s.updated_at DESC"
        )
        params: tuple = (app_name, user_id)
        if limit is not None and limit > 0:
            sql += " LIMIT ?"
            params = (app_name, user_id, limit)

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            SessionSummary(
                id=r[0],
                app_name=app_name,
                user_id=user_id,
                created_at=r[1],
                updated_at=r[2],
                event_count=r[3],
            )
            for r in rows
        ]

    @override
    async def delete_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
    ) -> None:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM sessions WHERE app_name = ? AND user_id = ? AND id = ?",
                (app_name, user_id, session_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Session not found: {session_id}")
            conn.execute(
                "DELETE FROM events WHERE app_name = ? AND user_id = ? AND session_id = ?",
                (app_name, user_id, session_id),
            )

    # ==================== 追加事件 ====================

    @override
    async def append_event(self, session: Session, event: Event) -> Event:
        if event.partial:
            return event

        stored_event = self._strip_temp_state(event)
        app_delta, user_delta, session_delta = split_state_delta(
            stored_event.actions.state_delta
        )
        now = time.time()

        with self._connect() as conn:
            row = conn.execute(
                "SELECT state FROM sessions WHERE app_name = ? AND user_id = ? AND id = ?",
                (session.app_name, session.user_id, session.id),
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Session not found: {session.id}")

            state = json.loads(row[0])
            state.update(session_delta)
            conn.execute(
                "UPDATE sessions SET state = ?, updated_at = ? "
                "WHERE app_name = ? AND user_id = ? AND id = ?",
                (json.dumps(state), now, session.app_name, session.user_id, session.id),
            )
            conn.execute(
                "INSERT INTO events (id, app_name, user_id, session_id, timestamp, data) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    stored_event.id,
                    session.app_name,
                    session.user_id,
                    session.id,
                    stored_event.timestamp,
                    json.dumps(stored_event.to_dict()),
                ),
            )
            self._update_shared_state(
                conn, session.app_name, session.user_id, app_delta, user_delta
            )

        return await super().append_event(session, event)
