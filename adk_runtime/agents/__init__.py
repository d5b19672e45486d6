"""agents 模块 - Agent 定义与执行上下文"""

from .base_agent import AfterAgentCallback, BaseAgent, BeforeAgentCallback
from .graph_agent import GraphAgent, GraphNode
from .invocation_context import InvocationContext, new_invocation_id
from .llm_agent import Agent, LlmAgent
from .loop_agent import LoopAgent
from .parallel_agent import ParallelAgent
from .readonly_context import ActionsBuilder, CallbackContext, ReadonlyContext
from .run_config import RunConfig
from .sequential_agent import SequentialAgent

__all__ = [
    # 基类
    'BaseAgent',
    # LLM Agent
    'LlmAgent',
    'Agent',  # LlmAgent 的别名
    # 编排 Agent
    'SequentialAgent',
    'ParallelAgent',
    'LoopAgent',
    'GraphAgent',
    'GraphNode',
    # 上下文
    'InvocationContext',
    'ReadonlyContext',
    'CallbackContext',
    'ActionsBuilder',
    'RunConfig',
    'new_invocation_id',
    # 回调类型
    'BeforeAgentCallback',
    'AfterAgentCallback',
]
