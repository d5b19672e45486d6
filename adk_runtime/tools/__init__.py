"""工具系统 - Agent 可以调用的函数"""

from .agent_tool import AgentTool
from .base_tool import BaseTool
from .exit_loop_tool import ExitLoopTool, exit_loop
from .function_tool import FunctionTool, Tool, tool
from .registry import ToolRegistry
from .tool_context import ToolContext
from .transfer_to_agent_tool import TRANSFER_TO_AGENT_TOOL_NAME, TransferToAgentTool

__all__ = [
    'BaseTool',
    'FunctionTool',
    'Tool',
    'tool',
    'ToolContext',
    'ToolRegistry',
    'TransferToAgentTool',
    'TRANSFER_TO_AGENT_TOOL_NAME',
    'ExitLoopTool',
    'exit_loop',
    'AgentTool',
]
