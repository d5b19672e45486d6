"""LLM 请求的标准化格式"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from .content import Content

if TYPE_CHECKING:
    from ..tools.base_tool import BaseTool


@dataclass
class ThinkingConfig:
    """模型原生推理配置（由 BuiltInPlanner 写入请求）"""
    include_thoughts: bool = True
    budget_tokens: Optional[int] = None


@dataclass
class LlmRequest:
    """
    标准化的 LLM 请求格式

    由 Flow 的请求处理器逐步填充：系统指令、历史内容、工具声明。
    不同的 LLM 实现把它转换为各自的 API 格式。

    Attributes:
        model: 模型名称
        system_instruction: 系统指令（多段指令以空行拼接）
        contents: 对话历史
        tools: 工具声明列表（name / description / parameters）
        tools_dict: 名称到工具实例的映射，Flow 执行工具时使用
        thinking_config: 模型原生推理配置
    """

    model: str = ""
    system_instruction: str = ""
    contents: list[Content] = field(default_factory=list)
    tools: list[dict[str, Any]] = field(default_factory=list)
    tools_dict: dict[str, 'BaseTool'] = field(default_factory=dict)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    thinking_config: Optional[ThinkingConfig] = None

    # 扩展配置（不同 LLM 可能有特定配置）
    extra_config: dict[str, Any] = field(default_factory=dict)

    def append_instructions(self, instructions: list[str]) -> None:
        """追加系统指令"""
        parts = [i for i in instructions if i]
        if not parts:
            return
        if self.system_instruction:
            parts.insert(0, self.system_instruction)
        self.system_instruction = '\n\n'.join(parts)

    def append_tools(self, tools: list['BaseTool']) -> None:
        """注册工具声明和实例"""
        for tool in tools:
            declaration = tool.get_declaration()
            if declaration is None:
                continue
            self.tools.append(declaration)
            self.tools_dict[tool.name] = tool
