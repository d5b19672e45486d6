"""OpenAI 兼容的 LLM 实现"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, AsyncIterator, Iterator

from ..errors import ModelUnavailableError
from .base_llm import BaseLlm
from .content import Content, FunctionCall, Part
from .llm_request import LlmRequest
from .llm_response import LlmResponse

logger = logging.getLogger(__name__)

_THINK_OPEN = '<think>'
_THINK_CLOSE = '</think>'


class ThinkingFilter:
    """
    流式 <think> 标签拆分器

    把增量文本拆成 (可见文本, 推理文本) 两路。
    标签可能被切在两个 chunk 之间，所以尾部保留一小段缓冲。
    """

    def __init__(self):
        self._buffer = ''
        self._in_thinking = False

    def feed(self, delta: str) -> list[tuple[str, bool]]:
        """处理一个增量片段，返回 [(text, is_thought), ...]"""
        self._buffer += delta
        pieces: list[tuple[str, bool]] = []
        while self._buffer:
            tag = _THINK_CLOSE if self._in_thinking else _THINK_OPEN
            idx = self._buffer.find(tag)
            if idx == -1:
                keep = len(tag) - 1
                if len(self._buffer) > keep:
                    pieces.append((self._buffer[:-keep], self._in_thinking))
                    self._buffer = self._buffer[-keep:]
                break
            if idx > 0:
                pieces.append((self._buffer[:idx], self._in_thinking))
            self._buffer = self._buffer[idx + len(tag):]
            self._in_thinking = not self._in_thinking
        return [(text, thought) for text, thought in pieces if text]

    def flush(self) -> list[tuple[str, bool]]:
        remaining, self._buffer = self._buffer, ''
        return [(remaining, self._in_thinking)] if remaining else []


def _split_thinking(raw: str) -> tuple[str, str]:
    """非流式响应：分离 <think> 内容，返回 (可见文本, 推理文本)"""
    pattern = r'<think>(.*?)</think>'
    thoughts = re.findall(pattern, raw, re.DOTALL)
    clean = re.sub(pattern, '', raw, flags=re.DOTALL).strip()
    return clean, '\n'.join(t.strip() for t in thoughts)


def _build_content(text: str, thinking: str, calls: list[FunctionCall]) -> Content:
    parts: list[Part] = []
    if thinking:
        parts.append(Part(text=thinking, thought=True))
    if text:
        parts.append(Part.from_text(text))
    parts.extend(Part(function_call=fc) for fc in calls)
    return Content(role='model', parts=parts)


def _parse_args(raw: str | None) -> dict[str, Any]:
    try:
        args = json.loads(raw or '{}')
    except json.JSONDecodeError:
        return {}
    return args if isinstance(args, dict) else {}


class OpenAILlm(BaseLlm):
    """
    OpenAI 兼容的 LLM 实现

    - 非流式只 yield 一次，流式 yield 多个增量 + 最后完整响应
    - 连接/接口错误统一转换为 ModelUnavailableError
    """

    api_base: str | None = None
    api_key: str | None = None
    timeout: float = 60.0

    _client: Any = None

    def model_post_init(self, __context: Any) -> None:
        super().model_post_init(__context)
        self._client = None

    @property
    def client(self) -> Any:
        """获取 OpenAI 客户端（懒加载）"""
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(
                base_url=self.api_base,
                api_key=self.api_key,
                timeout=self.timeout,
            )
        return self._client

    @classmethod
    def supported_models(cls) -> list[str]:
        return [r"gpt-.*", r"o1-.*", r"o3-.*", r"chatgpt-.*"]

    # ==================== 统一生成接口 ====================

    async def generate_async(
        self,
        request: LlmRequest,
        stream: bool = False,
    ) -> AsyncIterator[LlmResponse]:
        from openai import OpenAIError

        params = self._build_params(request, stream)
        logger.debug(
            f"[OpenAILlm] Request model={params['model']} stream={stream} "
            f"messages={len(params['messages'])} tools={len(params.get('tools', []))}"
        )
        try:
            response = await asyncio.to_thread(
                self.client.chat.completions.create,
                **params,
            )
            if stream:
                for item in self._process_stream(response):
                    yield item
                    await asyncio.sleep(0)
            else:
                yield self._parse_response(response)
        except OpenAIError as e:
            logger.error(f"[OpenAILlm] Request failed: {e}")
            raise ModelUnavailableError(str(e), cause=e) from e

    # ==================== 请求转换 ====================

    def _build_params(self, request: LlmRequest, stream: bool) -> dict[str, Any]:
        params: dict[str, Any] = {
            'model': self.get_model(request),
            'messages': self._to_messages(request),
            'stream': stream,
        }
        if request.temperature is not None:
            params['temperature'] = request.temperature
        if request.max_tokens is not None:
            params['max_tokens'] = request.max_tokens
        if request.tools:
            params['tools'] = [
                {'type': 'function', 'function': decl} for decl in request.tools
            ]
            params['tool_choice'] = 'auto'
        params.update(request.extra_config)
        return params

    def _to_messages(self, request: LlmRequest) -> list[dict[str, Any]]:
        """把 Content 历史转换为 OpenAI messages"""
        messages: list[dict[str, Any]] = []
        if request.system_instruction:
            messages.append({'role': 'system', 'content': request.system_instruction})

        for content in request.contents:
            responses = content.function_responses()
            if responses:
                for fr in responses:
                    messages.append({
                        'role': 'tool',
                        'tool_call_id': fr.id,
                        'name': fr.name,
                        'content': json.dumps(fr.response, ensure_ascii=False, default=str),
                    })
                continue

            if content.role == 'model':
                msg: dict[str, Any] = {'role': 'assistant', 'content': content.text or None}
                calls = content.function_calls()
                if calls:
                    msg['tool_calls'] = [
                        {
                            'id': fc.id,
                            'type': 'function',
                            'function': {
                                'name': fc.name,
                                'arguments': json.dumps(fc.args, ensure_ascii=False),
                            },
                        }
                        for fc in calls
                    ]
                messages.append(msg)
            else:
                messages.append({'role': 'user', 'content': content.text})
        return messages

    # ==================== 响应解析 ====================

    def _parse_response(self, response: Any) -> LlmResponse:
        """解析 OpenAI 非流式响应"""
        choice = response.choices[0]
        message = choice.message
        text, thinking = _split_thinking(message.content or '')

        calls = [
            FunctionCall(
                id=tc.id,
                name=tc.function.name,
                args=_parse_args(tc.function.arguments),
            )
            for tc in (message.tool_calls or [])
        ]

        usage = {}
        if response.usage:
            usage = {
                'prompt_tokens': response.usage.prompt_tokens,
                'completion_tokens': response.usage.completion_tokens,
                'total_tokens': response.usage.total_tokens,
            }

        return LlmResponse(
            content=_build_content(text, thinking, calls),
            finish_reason=choice.finish_reason,
            model=response.model or self.model,
            usage=usage,
        )

    def _process_stream(self, stream: Any) -> Iterator[LlmResponse]:
        """处理流式响应：先逐段 yield 增量，最后 yield 聚合后的完整响应"""
        text_parts: list[str] = []
        thought_parts: list[str] = []
        tool_calls_data: list[dict[str, Any]] = []
        finish_reason = None
        model_name = None
        thinking_filter = ThinkingFilter()

        def emit(pieces: list[tuple[str, bool]]) -> Iterator[LlmResponse]:
            for text, thought in pieces:
                (thought_parts if thought else text_parts).append(text)
                yield LlmResponse.create_delta(text, thought=thought)

        for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta
            if chunk.model:
                model_name = chunk.model

            if delta.content:
                yield from emit(thinking_filter.feed(delta.content))

            for tc in delta.tool_calls or []:
                while tc.index >= len(tool_calls_data):
                    tool_calls_data.append({'id': None, 'name': None, 'arguments': ''})
                entry = tool_calls_data[tc.index]
                if tc.id:
                    entry['id'] = tc.id
                if tc.function and tc.function.name:
                    entry['name'] = tc.function.name
                if tc.function and tc.function.arguments:
                    entry['arguments'] += tc.function.arguments

            if choice.finish_reason:
                finish_reason = choice.finish_reason

        yield from emit(thinking_filter.flush())

        calls = [
            FunctionCall(id=tc['id'], name=tc['name'], args=_parse_args(tc['arguments']))
            for tc in tool_calls_data
            if tc['name']
        ]
        yield LlmResponse(
            content=_build_content(
                ''.join(text_parts).strip(),
                ''.join(thought_parts).strip(),
                calls,
            ),
            finish_reason=finish_reason,
            model=model_name or self.model,
        )
