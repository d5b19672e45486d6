"""FunctionTool - 把普通 Python 函数包装为工具"""

from __future__ import annotations

import asyncio
import inspect
import re
from typing import TYPE_CHECKING, Any, Callable, Optional, Union, get_args, get_origin

from typing_extensions import override

from .base_tool import BaseTool

if TYPE_CHECKING:
    from .tool_context import ToolContext

# 工具函数中名为 tool_context 的参数由框架注入，不向模型声明
TOOL_CONTEXT_PARAM = 'tool_context'

_JSON_TYPES: dict[Any, str] = {
    str: 'string',
    int: 'integer',
    float: 'number',
    bool: 'boolean',
    list: 'array',
    tuple: 'array',
    dict: 'object',
}


def _json_type(annotation: Any) -> Optional[str]:
    """把类型注解映射为 JSON Schema 类型"""
    if annotation is inspect.Parameter.empty:
        return None
    if isinstance(annotation, str):
        annotation = {
            'str': str, 'int': int, 'float': float, 'bool': bool,
            'list': list, 'dict': dict,
        }.get(annotation.split('[')[0].strip(), annotation)
    origin = get_origin(annotation)
    if origin is Union:
        non_none = [a for a in get_args(annotation) if a is not type(None)]
        return _json_type(non_none[0]) if len(non_none) == 1 else None
    return _JSON_TYPES.get(origin or annotation)


def _parse_docstring_params(docstring: str) -> dict[str, str]:
    """
    解析 docstring 中的参数描述

    支持 Google 风格:
      Args:
        city: 城市名称

    和 Sphinx 风格:
      :param city: 城市名称
    """
    descriptions: dict[str, str] = {}
    if not docstring:
        return descriptions

    args_match = re.search(r'Args?:\s*\n((?:[ \t]+\S.*\n?)+)', docstring, re.IGNORECASE)
    if args_match:
        for line in args_match.group(1).splitlines():
            m = re.match(r'^\s+(\w+)(?:\s*\([^)]*\))?:\s*(.+)$', line)
            if m:
                descriptions[m.group(1)] = m.group(2).strip()

    for m in re.finditer(r':param\s+(\w+):\s*(.+)', docstring):
        descriptions[m.group(1)] = m.group(2).strip()

    return descriptions


def _summary(docstring: str) -> str:
    """docstring 中参数段之前的部分"""
    return re.split(r'\n\s*(?:Args?:|:param)', docstring, maxsplit=1)[0].strip()


class FunctionTool(BaseTool):
    """
    函数包装工具

    自动从函数签名和 docstring 提取参数 schema。
    函数可以是同步或异步的，同步函数在线程中执行。
    """

    func: Callable[..., Any]
    parameters: Optional[dict[str, Any]] = None

    def model_post_init(self, __context: Any) -> None:
        super().model_post_init(__context)
        if self.parameters is None:
            self.parameters = self._extract_parameters()

    @classmethod
    def from_function(cls, func: Callable[..., Any], **kwargs: Any) -> 'FunctionTool':
        docstring = inspect.getdoc(func) or ''
        kwargs.setdefault('name', func.__name__)
        kwargs.setdefault('description', _summary(docstring) or f"Function {func.__name__}")
        return cls(func=func, **kwargs)

    def _signature(self) -> inspect.Signature:
        return inspect.signature(self.func)

    def _extract_parameters(self) -> dict[str, Any]:
        """从函数签名和 docstring 提取 JSON Schema"""
        descriptions = _parse_docstring_params(inspect.getdoc(self.func) or '')
        properties: dict[str, Any] = {}
        required: list[str] = []

        for name, param in self._signature().parameters.items():
            if name == TOOL_CONTEXT_PARAM or param.kind in (
                inspect.Parameter.VAR_POSITIONAL,
                inspect.Parameter.VAR_KEYWORD,
            ):
                continue
            schema: dict[str, Any] = {}
            if json_type := _json_type(param.annotation):
                schema['type'] = json_type
            if name in descriptions:
                schema['description'] = descriptions[name]
            if param.default is inspect.Parameter.empty:
                required.append(name)
            else:
                schema['default'] = param.default
            properties[name] = schema

        result: dict[str, Any] = {'type': 'object', 'properties': properties}
        if required:
            result['required'] = required
        return result

    @override
    def get_declaration(self) -> Optional[dict[str, Any]]:
        return {
            'name': self.name,
            'description': self.description,
            'parameters': self.parameters or {'type': 'object', 'properties': {}},
        }

    @override
    async def run_async(self, *, args: dict[str, Any], tool_context: ToolContext) -> Any:
        """异步执行工具函数"""
        kwargs = dict(args)
        params = self._signature().parameters
        if TOOL_CONTEXT_PARAM in params:
            kwargs[TOOL_CONTEXT_PARAM] = tool_context
        if not any(p.kind == inspect.Parameter.VAR_KEYWORD for p in params.values()):
            kwargs = {k: v for k, v in kwargs.items() if k in params}

        if inspect.iscoroutinefunction(self.func):
            return await self.func(**kwargs)
        return await asyncio.to_thread(self.func, **kwargs)


# 兼容旧命名
Tool = FunctionTool


def tool(
    name: str | None = None,
    description: str | None = None,
    *,
    is_long_running: bool = False,
    is_fatal: bool = False,
):
    """
    装饰器 - 将普通函数转换为 FunctionTool

    用法:
      @tool(description="搜索网页")
      def search(query: str) -> str:
        return f"搜索结果: {query}"
    """
    def decorator(func: Callable[..., Any]) -> FunctionTool:
        kwargs: dict[str, Any] = {
            'is_long_running': is_long_running,
            'is_fatal': is_fatal,
        }
        if name:
            kwargs['name'] = name
        if description:
            kwargs['description'] = description
        return FunctionTool.from_function(func, **kwargs)

    return decorator
