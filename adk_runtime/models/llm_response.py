"""LLM 响应的标准化格式"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .content import Content, FunctionCall, Part


@dataclass
class LlmResponse:
    """
    标准化的 LLM 响应格式

    流式生成时模型会先产生若干 partial=True 的增量片段，
    最后给出一个 partial=False 的完整响应。

    Attributes:
        content: 结构化内容（文本、推理、工具调用）
        partial: 是否是流式的增量片段
        turn_complete: 模型是否结束了本轮输出
        finish_reason: 完成原因 (stop, tool_calls, length, etc.)
        error_code / error_message: 模型侧返回的错误
        usage: token 使用统计
    """

    content: Optional[Content] = None
    partial: bool = False
    turn_complete: bool = True
    finish_reason: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.content.text if self.content else ''

    @property
    def function_calls(self) -> list[FunctionCall]:
        return self.content.function_calls() if self.content else []

    def has_function_calls(self) -> bool:
        return bool(self.function_calls)

    def is_error(self) -> bool:
        return self.error_code is not None

    @classmethod
    def create_delta(cls, text: str, thought: bool = False) -> 'LlmResponse':
        """创建流式增量响应"""
        return cls(
            content=Content(role='model', parts=[Part(text=text, thought=thought)]),
            partial=True,
            turn_complete=False,
        )

    @classmethod
    def from_text(cls, text: str) -> 'LlmResponse':
        return cls(content=Content.from_text(text, role='model'))

    @classmethod
    def from_error(cls, error_code: str, error_message: str) -> 'LlmResponse':
        return cls(error_code=error_code, error_message=error_message)

    def to_dict(self) -> dict[str, Any]:
        return {
            'content': self.content.to_dict() if self.content else None,
            'partial': self.partial,
            'finish_reason': self.finish_reason,
            'error_code': self.error_code,
            'error_message': self.error_message,
            'usage': self.usage,
        }
