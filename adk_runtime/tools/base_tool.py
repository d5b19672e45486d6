"""BaseTool - 工具基类"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel

if TYPE_CHECKING:
    from .tool_context import ToolContext


class BaseTool(BaseModel):
    """
    工具基类（使用 Pydantic）

    工具是带有描述的可调用对象，LLM 通过声明理解并调用它。

    Attributes:
        name: 工具名称，在一个 Agent 内唯一
        description: 给模型看的说明
        is_long_running: 长时间运行的工具，调用后 Flow 不等待结果，本轮直接结束
        is_fatal: 执行失败时终止整个调用，而不是把错误作为结果返回给模型
    """

    model_config = {"arbitrary_types_allowed": True}

    name: str
    description: str = ''
    is_long_running: bool = False
    is_fatal: bool = False

    def get_declaration(self) -> Optional[dict[str, Any]]:
        """
        函数声明（供 LLM 理解）

        返回 None 表示这个工具不需要向模型声明。
        """
        return {
            'name': self.name,
            'description': self.description,
            'parameters': {'type': 'object', 'properties': {}},
        }

    async def run_async(self, *, args: dict[str, Any], tool_context: 'ToolContext') -> Any:
        """执行工具（子类必须实现）"""
        raise NotImplementedError(f"Tool {self.name} must implement run_async")
