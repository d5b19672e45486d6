"""根据配置创建 SessionService"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import SessionConfig, get_config
from .base_session_service import BaseSessionService
from .file_session_service import FileSessionService
from .in_memory_session_service import InMemorySessionService
from .sqlite_session_service import SqliteSessionService

logger = logging.getLogger(__name__)


def create_session_service(config: Optional[SessionConfig] = None) -> BaseSessionService:
    """
    按 SessionConfig.backend 创建存储后端

    - memory: InMemorySessionService
    - file: FileSessionService(path)
    - sqlite: SqliteSessionService(path)
    """
    config = config or get_config().session
    backend = config.backend.lower()
    logger.debug(f"[SessionFactory] backend={backend} path={config.path}")

    if backend == 'memory':
        return InMemorySessionService()
    if backend == 'file':
        return FileSessionService(config.path or './sessions')
    if backend == 'sqlite':
        return SqliteSessionService(config.path or ':memory:')
    raise ValueError(f"Unknown session backend: {config.backend}")
