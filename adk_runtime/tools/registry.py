"""ToolRegistry - 按名称引用工具"""

from __future__ import annotations

import threading
from typing import Any, Callable, Union

from ..errors import NotFoundError
from .base_tool import BaseTool
from .function_tool import FunctionTool


class ToolRegistry:
    """
    工具注册表

    LlmAgent.tools 中的字符串项在运行时通过它解析。
    由调用方显式创建并传给 Runner。
    """

    def __init__(self, tools: list[Union[BaseTool, Callable[..., Any]]] | None = None):
        self._tools: dict[str, BaseTool] = {}
        self._lock = threading.Lock()
        for t in tools or []:
            self.register(t)

    def register(self, tool: Union[BaseTool, Callable[..., Any]], name: str | None = None) -> BaseTool:
        if not isinstance(tool, BaseTool):
            tool = FunctionTool.from_function(tool, **({'name': name} if name else {}))
        with self._lock:
            self._tools[name or tool.name] = tool
        return tool

    def resolve(self, name: str) -> BaseTool:
        with self._lock:
            if name not in self._tools:
                raise NotFoundError(f"Tool not found in registry: {name}")
            return self._tools[name]

    def names(self) -> list[str]:
        with self._lock:
            return list(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
