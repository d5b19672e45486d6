"""内置工具：Agent 跳转"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import Field
from typing_extensions import override

from .base_tool import BaseTool
from .tool_context import ToolContext

TRANSFER_TO_AGENT_TOOL_NAME = 'transfer_to_agent'


class TransferToAgentTool(BaseTool):
    """
    内置工具：跳转到另一个 Agent

    让 LLM 可以主动决定将控制权交给其他 Agent。
    工具本身只设置 actions.transfer_to_agent，跳转由 Flow 完成。

    使用场景：
    - 主 Agent 识别到需要专业处理，跳转到专家 Agent
    - 任务完成后返回给父 Agent
    - 在同级 Agent 之间路由
    """

    name: str = TRANSFER_TO_AGENT_TOOL_NAME
    description: str = (
        "Transfer control to another agent. "
        "Use this when the task requires expertise from a different agent."
    )
    available_agents: list[str] = Field(default_factory=list)
    """可以跳转到的 Agent 名称列表"""

    @override
    def get_declaration(self) -> Optional[dict[str, Any]]:
        agent_name: dict[str, Any] = {
            'type': 'string',
            'description': 'The name of the agent to transfer control to',
        }
        description = self.description
        if self.available_agents:
            agent_name['enum'] = list(self.available_agents)
            description += f"\n\nAvailable agents: {', '.join(self.available_agents)}"
        return {
            'name': self.name,
            'description': description,
            'parameters': {
                'type': 'object',
                'properties': {'agent_name': agent_name},
                'required': ['agent_name'],
            },
        }

    @override
    async def run_async(self, *, args: dict[str, Any], tool_context: ToolContext) -> Any:
        agent_name = args.get('agent_name', '')
        if not agent_name:
            return {'error': 'agent_name is required'}
        if self.available_agents and agent_name not in self.available_agents:
            return {
                'error': f"Agent '{agent_name}' is not available. "
                f"Available agents: {self.available_agents}"
            }
        tool_context.actions.transfer_to_agent = agent_name
        return {'transferred_to': agent_name}
