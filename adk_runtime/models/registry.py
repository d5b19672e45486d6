"""LlmRegistry - 模型名称到 LLM 实例的解析"""

from __future__ import annotations

import logging
import re
import threading
from typing import Optional

from ..errors import NotFoundError
from .base_llm import BaseLlm

logger = logging.getLogger(__name__)


class LlmRegistry:
    """
    模型注册表

    由调用方显式创建并传给 Runner，没有进程级的全局单例。
    解析顺序：
    1. register() 注册的实例（按名称精确匹配）
    2. register_class() 注册的类（按 supported_models 正则匹配，解析后缓存）
    """

    def __init__(self):
        self._instances: dict[str, BaseLlm] = {}
        self._classes: list[type[BaseLlm]] = []
        self._lock = threading.Lock()

    def register(self, name: str, llm: BaseLlm) -> None:
        with self._lock:
            self._instances[name] = llm

    def register_class(self, llm_class: type[BaseLlm]) -> None:
        with self._lock:
            self._classes.append(llm_class)

    def resolve(self, model: str) -> BaseLlm:
        """
        解析模型名称

        Raises:
            NotFoundError: 没有匹配的注册项
        """
        with self._lock:
            if model in self._instances:
                return self._instances[model]
            llm_class = self._match_class(model)
            if llm_class is None:
                raise NotFoundError(f"Model not found in registry: {model}")
            llm = llm_class(model=model)
            self._instances[model] = llm
            logger.debug(f"[LlmRegistry] Resolved {model} -> {llm_class.__name__}")
            return llm

    def _match_class(self, model: str) -> Optional[type[BaseLlm]]:
        for llm_class in self._classes:
            for pattern in llm_class.supported_models():
                if re.fullmatch(pattern, model):
                    return llm_class
        return None

    def __contains__(self, model: str) -> bool:
        return model in self._instances or self._match_class(model) is not None
