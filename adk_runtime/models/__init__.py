"""
Model 层 - LLM 抽象层

- BaseLlm: 所有 LLM 的抽象基类（Pydantic BaseModel）
- LlmRequest / LlmResponse: 标准化的请求/响应格式
- Content / Part / FunctionCall / FunctionResponse: 结构化对话内容
- LlmRegistry: 模型名称解析
- 具体实现: OpenAILlm

调用方（Flow 层）不需要关心具体是哪个 LLM，新增提供商只需实现 BaseLlm。
"""

from .base_llm import BaseLlm
from .content import Content, FunctionCall, FunctionResponse, Part, new_function_call_id
from .llm_request import LlmRequest, ThinkingConfig
from .llm_response import LlmResponse
from .openai_llm import OpenAILlm
from .registry import LlmRegistry

__all__ = [
    'BaseLlm',
    'LlmRequest',
    'LlmResponse',
    'ThinkingConfig',
    'Content',
    'Part',
    'FunctionCall',
    'FunctionResponse',
    'new_function_call_id',
    'LlmRegistry',
    'OpenAILlm',
]
