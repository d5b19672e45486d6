"""BasePlanner - 规划器抽象基类"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..agents.readonly_context import CallbackContext, ReadonlyContext
    from ..models.content import Part
    from ..models.llm_request import LlmRequest


class BasePlanner(ABC):
    """
    规划器 - 引导 Agent 在行动前先做规划

    只有两个注入点，不改变 Flow 的状态机：
    - build_planning_instruction: 请求发出前，追加规划指令或推理配置
    - process_planning_response: 收到完整响应后，整理响应内容
    """

    @abstractmethod
    def build_planning_instruction(
        self,
        readonly_context: 'ReadonlyContext',
        llm_request: 'LlmRequest',
    ) -> Optional[str]:
        """返回要追加到系统指令的规划指令，不需要时返回 None"""

    @abstractmethod
    def process_planning_response(
        self,
        callback_context: 'CallbackContext',
        response_parts: list['Part'],
    ) -> Optional[list['Part']]:
        """返回处理后的 parts，不需要处理时返回 None"""
