"""
adk_runtime - Agent 执行引擎

核心组件:
- Event / EventActions: 不可变的事件和副作用描述
- Session / State: 会话、作用域状态（app: / user: / temp:）和事件日志
- BaseSessionService: Session 存储契约（内存、文件、SQLite 三种后端）
- LlmAgent: LLM 驱动的 Agent，委托给 Flow 执行 Reason-Act 循环
- SequentialAgent / ParallelAgent / LoopAgent / GraphAgent: 组合编排
- Runner: 无状态执行引擎（绑定 Agent），持久化并输出事件
- Planner: 规划钩子
- Config: 配置管理

架构:
- Runner: 执行编排（绑定 Agent）
- Agent: 组合编排 / LlmAgent
- Flow: Reason-Act 循环 + 工具执行
- Model: LLM 抽象 + 请求/响应格式化
"""

from .agents import (
    Agent,
    BaseAgent,
    CallbackContext,
    GraphAgent,
    GraphNode,
    InvocationContext,
    LlmAgent,
    LoopAgent,
    ParallelAgent,
    ReadonlyContext,
    RunConfig,
    SequentialAgent,
)
from .config import Config, LLMConfig, RunnerConfig, SessionConfig, get_config, set_config, setup_logging
from .errors import (
    AdkError,
    DuplicateSessionError,
    FlowExhaustedError,
    InvalidAgentCompositionError,
    ModelUnavailableError,
    NotFoundError,
    SessionStoreError,
    ToolInvocationError,
)
from .events import Event, EventActions
from .runners import InMemoryRunner, LoadedAgentContext, Runner
from .sessions import (
    BaseSessionService,
    FileSessionService,
    InMemorySessionService,
    Session,
    SqliteSessionService,
    State,
    create_session_service,
)
from .tools import AgentTool, BaseTool, FunctionTool, Tool, ToolContext, ToolRegistry, exit_loop, tool

# Flow 层
from .flows import AutoFlow, BaseFlow, SimpleFlow

# Model 层
from .models import BaseLlm, Content, FunctionCall, FunctionResponse, LlmRegistry, LlmRequest, LlmResponse, OpenAILlm, Part

# Planner
from .planners import BasePlanner, BuiltInPlanner, PlanReActPlanner

__all__ = [
    # Agent
    'Agent',
    'BaseAgent',
    'LlmAgent',
    'SequentialAgent',
    'ParallelAgent',
    'LoopAgent',
    'GraphAgent',
    'GraphNode',
    'InvocationContext',
    'ReadonlyContext',
    'CallbackContext',
    'RunConfig',

    # 配置
    'Config',
    'LLMConfig',
    'RunnerConfig',
    'SessionConfig',
    'get_config',
    'set_config',
    'setup_logging',

    # 错误
    'AdkError',
    'NotFoundError',
    'DuplicateSessionError',
    'ToolInvocationError',
    'FlowExhaustedError',
    'ModelUnavailableError',
    'InvalidAgentCompositionError',
    'SessionStoreError',

    # 事件与 Session
    'Event',
    'EventActions',
    'Session',
    'State',
    'BaseSessionService',
    'InMemorySessionService',
    'FileSessionService',
    'SqliteSessionService',
    'create_session_service',

    # Runner
    'Runner',
    'InMemoryRunner',
    'LoadedAgentContext',

    # 工具
    'BaseTool',
    'FunctionTool',
    'Tool',
    'tool',
    'ToolContext',
    'ToolRegistry',
    'AgentTool',
    'exit_loop',

    # Flow 层
    'BaseFlow',
    'SimpleFlow',
    'AutoFlow',

    # Model 层
    'BaseLlm',
    'LlmRegistry',
    'LlmRequest',
    'LlmResponse',
    'OpenAILlm',
    'Content',
    'Part',
    'FunctionCall',
    'FunctionResponse',

    # Planner
    'BasePlanner',
    'BuiltInPlanner',
    'PlanReActPlanner',
]

__version__ = '0.5.0'
