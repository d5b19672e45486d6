"""异常体系 - 执行引擎对外暴露的结构化错误

每个异常都带有 code，Runner 会把它写入终止事件的 error_code，
调用方据此区分失败类型，而不是解析异常消息。
"""

from __future__ import annotations

from typing import Optional


class AdkError(Exception):
    """所有引擎错误的基类"""

    code: str = "ADK_ERROR"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    @classmethod
    def wrap(cls, err: BaseException) -> "AdkError":
        if isinstance(err, AdkError):
            return err
        wrapped = AdkError(str(err) or type(err).__name__, cause=err)
        wrapped.code = "INTERNAL_ERROR"
        return wrapped


class NotFoundError(AdkError):
    """Session 或 Agent 不存在"""

    code = "NOT_FOUND"


class DuplicateSessionError(AdkError):
    """显式指定的 session_id 已存在"""

    code = "DUPLICATE_SESSION"

    def __init__(self, session_id: str):
        super().__init__(f"Session already exists: {session_id}")
        self.session_id = session_id


class ToolInvocationError(AdkError):
    """工具调用失败（只有标记为 fatal 的工具才会向上抛出）"""

    code = "TOOL_INVOCATION_ERROR"

    def __init__(self, tool_name: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"Tool '{tool_name}' failed: {message}", cause=cause)
        self.tool_name = tool_name


class FlowExhaustedError(AdkError):
    """单轮对话中的工具调用次数超过上限"""

    code = "FLOW_EXHAUSTED"

    def __init__(self, agent_name: str, limit: int):
        super().__init__(
            f"Agent '{agent_name}' exceeded max tool iterations ({limit})"
        )
        self.agent_name = agent_name
        self.limit = limit


class ModelUnavailableError(AdkError):
    """模型不可达或返回错误（重试策略属于模型实现，不在引擎内）"""

    code = "MODEL_UNAVAILABLE"


class InvalidAgentCompositionError(AdkError):
    """Agent 组合不合法：重名、一个子 Agent 挂在两个父 Agent 下等

    只会在构建 Agent 树时抛出，运行期不会出现。
    """

    code = "INVALID_AGENT_COMPOSITION"


class SessionStoreError(AdkError):
    """Session 存储后端读写失败"""

    code = "SESSION_STORE_ERROR"
