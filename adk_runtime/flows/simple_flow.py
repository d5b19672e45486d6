"""SimpleFlow / AutoFlow - 预置处理器链的 Flow"""

from __future__ import annotations

from .base_flow import BaseFlow
from .processors import (
    AgentTransferRequestProcessor,
    BasicRequestProcessor,
    ContentsRequestProcessor,
    InstructionsRequestProcessor,
    PlanningRequestProcessor,
    PlanningResponseProcessor,
    ToolsRequestProcessor,
)


class SimpleFlow(BaseFlow):
    """
    单 Agent 的 Reason-Act 循环

    请求处理器依次为：基础配置 -> 指令 -> 规划 -> 历史内容 -> 工具声明
    """

    def __init__(self):
        super().__init__()
        self.request_processors += [
            BasicRequestProcessor(),
            InstructionsRequestProcessor(),
            PlanningRequestProcessor(),
            ContentsRequestProcessor(),
            ToolsRequestProcessor(),
        ]
        self.response_processors += [
            PlanningResponseProcessor(),
        ]


class AutoFlow(SimpleFlow):
    """
    支持 Agent 跳转的 Flow

    在 SimpleFlow 的基础上声明 transfer_to_agent 工具，
    模型可以把对话交给子 Agent、父 Agent 或同级 Agent。
    """

    def __init__(self):
        super().__init__()
        self.request_processors.insert(
            len(self.request_processors) - 1,
            AgentTransferRequestProcessor(),
        )
