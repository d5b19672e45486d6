"""内置工具：退出循环"""

from __future__ import annotations

from typing import Any, Optional

from typing_extensions import override

from .base_tool import BaseTool
from .tool_context import ToolContext


class ExitLoopTool(BaseTool):
    """
    内置工具：退出 LoopAgent

    设置 escalate 信号，外层 LoopAgent 看到后在本次迭代结束前停止。
    结果不需要再让模型总结。
    """

    name: str = 'exit_loop'
    description: str = (
        "Exits the loop. Call this function only when you are instructed to do so."
    )

    @override
    def get_declaration(self) -> Optional[dict[str, Any]]:
        return {
            'name': self.name,
            'description': self.description,
            'parameters': {'type': 'object', 'properties': {}},
        }

    @override
    async def run_async(self, *, args: dict[str, Any], tool_context: ToolContext) -> Any:
        tool_context.actions.escalate = True
        tool_context.actions.skip_summarization = True
        return {'message': 'Loop exited successfully'}


exit_loop = ExitLoopTool()
