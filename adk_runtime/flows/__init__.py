"""
Flow 层 - Reason-Act 循环

- BaseFlow: 模型调用 / 工具执行 / 跳转的主循环
- SimpleFlow: 单 Agent 的处理器链
- AutoFlow: 额外支持 Agent 跳转
"""

from .base_flow import BaseFlow
from .functions import handle_function_calls_async, populate_client_function_call_ids
from .processors import (
    RequestProcessor,
    ResponseProcessor,
    inject_session_state,
)
from .simple_flow import AutoFlow, SimpleFlow

__all__ = [
    'BaseFlow',
    'SimpleFlow',
    'AutoFlow',
    'RequestProcessor',
    'ResponseProcessor',
    'inject_session_state',
    'handle_function_calls_async',
    'populate_client_function_call_ids',
]
