"""BuiltInPlanner - 使用模型原生推理能力"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from typing_extensions import override

from ..models.llm_request import ThinkingConfig
from .base_planner import BasePlanner

if TYPE_CHECKING:
    from ..agents.readonly_context import CallbackContext, ReadonlyContext
    from ..models.content import Part
    from ..models.llm_request import LlmRequest


class BuiltInPlanner(BasePlanner):
    """
    内置规划器

    不追加任何指令，只在请求上打开模型的推理模式。
    """

    def __init__(self, thinking_config: Optional[ThinkingConfig] = None):
        self.thinking_config = thinking_config or ThinkingConfig()

    def apply_thinking_config(self, llm_request: 'LlmRequest') -> None:
        llm_request.thinking_config = self.thinking_config

    @override
    def build_planning_instruction(
        self,
        readonly_context: 'ReadonlyContext',
        llm_request: 'LlmRequest',
    ) -> Optional[str]:
        self.apply_thinking_config(llm_request)
        return None

    @override
    def process_planning_response(
        self,
        callback_context: 'CallbackContext',
        response_parts: list['Part'],
    ) -> Optional[list['Part']]:
        return None
