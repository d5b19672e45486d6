"""ToolContext - 工具执行时可用的上下文"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ..agents.readonly_context import ActionsBuilder, CallbackContext

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext


class ToolContext(CallbackContext):
    """
    工具上下文

    工具通过它读写状态、设置 escalate / transfer_to_agent / skip_summarization。
    这些修改会进入工具结果事件的 actions。

    Example:
        def increment(tool_context: ToolContext) -> dict:
            count = tool_context.state.get('count', 0) + 1
            tool_context.state['count'] = count
            tool_context.actions.skip_summarization = True
            return {'count': count}
    """

    def __init__(
        self,
        invocation_context: 'InvocationContext',
        function_call_id: Optional[str] = None,
        actions: Optional[ActionsBuilder] = None,
    ):
        super().__init__(invocation_context, actions=actions)
        self.function_call_id = function_call_id
