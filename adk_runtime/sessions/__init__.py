"""Session 管理 - 会话数据、状态作用域和持久化后端"""

from .base_session_service import BaseSessionService
from .factory import create_session_service
from .file_session_service import FileSessionService
from .in_memory_session_service import InMemorySessionService
from .session import GetSessionConfig, Session, SessionSummary
from .sqlite_session_service import SqliteSessionService
from .state import State, project_state, split_state_delta

__all__ = [
    'BaseSessionService',
    'InMemorySessionService',
    'FileSessionService',
    'SqliteSessionService',
    'create_session_service',
    'Session',
    'SessionSummary',
    'GetSessionConfig',
    'State',
    'project_state',
    'split_state_delta',
]
