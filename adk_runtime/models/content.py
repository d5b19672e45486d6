"""对话内容的结构化表示

Content 由 role + parts 组成，一个 Part 是以下三者之一：
- text: 文本（planner 产生的推理文本会带 thought 标记）
- function_call: 模型发起的工具调用
- function_response: 工具返回的结果
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import uuid4

# 客户端补全的调用 ID 前缀，用于区分模型自带的 ID
CLIENT_CALL_ID_PREFIX = "adk-"


def new_function_call_id() -> str:
    """生成客户端侧的工具调用 ID"""
    return f"{CLIENT_CALL_ID_PREFIX}{uuid4()}"


@dataclass
class FunctionCall:
    """
    工具/函数调用信息

    id 可能为空（部分模型不返回），Flow 会在生成事件前补全
    """
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'args': self.args}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'FunctionCall':
        return cls(
            name=data['name'],
            args=data.get('args') or {},
            id=data.get('id'),
        )


@dataclass
class FunctionResponse:
    """工具调用结果，response 总是字典"""
    name: str
    response: dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'response': self.response}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'FunctionResponse':
        return cls(
            name=data['name'],
            response=data.get('response') or {},
            id=data.get('id'),
        )


@dataclass
class Part:
    """内容片段"""
    text: Optional[str] = None
    function_call: Optional[FunctionCall] = None
    function_response: Optional[FunctionResponse] = None
    thought: bool = False
    """是否是推理过程（由 planner 标记）"""

    @classmethod
    def from_text(cls, text: str) -> 'Part':
        return cls(text=text)

    @classmethod
    def from_function_call(cls, name: str, args: dict[str, Any], id: Optional[str] = None) -> 'Part':
        return cls(function_call=FunctionCall(name=name, args=args, id=id))

    @classmethod
    def from_function_response(
        cls,
        name: str,
        response: dict[str, Any],
        id: Optional[str] = None,
    ) -> 'Part':
        return cls(function_response=FunctionResponse(name=name, response=response, id=id))

    def is_empty(self) -> bool:
        return not self.text and self.function_call is None and self.function_response is None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.text is not None:
            result['text'] = self.text
        if self.function_call is not None:
            result['function_call'] = self.function_call.to_dict()
        if self.function_response is not None:
            result['function_response'] = self.function_response.to_dict()
        if self.thought:
            result['thought'] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Part':
        fc = data.get('function_call')
        fr = data.get('function_response')
        return cls(
            text=data.get('text'),
            function_call=FunctionCall.from_dict(fc) if fc else None,
            function_response=FunctionResponse.from_dict(fr) if fr else None,
            thought=data.get('thought', False),
        )


@dataclass
class Content:
    """一条消息：role 为 'user' 或 'model'"""
    role: str = 'user'
    parts: list[Part] = field(default_factory=list)

    @classmethod
    def from_text(cls, text: str, role: str = 'user') -> 'Content':
        return cls(role=role, parts=[Part.from_text(text)])

    @property
    def text(self) -> str:
        """拼接所有非推理文本片段"""
        return ''.join(p.text for p in self.parts if p.text and not p.thought)

    def function_calls(self) -> list[FunctionCall]:
        return [p.function_call for p in self.parts if p.function_call is not None]

    def function_responses(self) -> list[FunctionResponse]:
        return [p.function_response for p in self.parts if p.function_response is not None]

    def to_dict(self) -> dict[str, Any]:
        return {'role': self.role, 'parts': [p.to_dict() for p in self.parts]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Content':
        return cls(
            role=data.get('role', 'user'),
            parts=[Part.from_dict(p) for p in data.get('parts', [])],
        )
