"""ReadonlyContext / CallbackContext - 暴露给指令、回调和工具的上下文视图"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Optional

from ..events import EventActions
from ..sessions.state import State

if TYPE_CHECKING:
    from ..models.content import Content
    from .invocation_context import InvocationContext


class ReadonlyContext:
    """只读上下文，用于动态指令和分支条件"""

    def __init__(self, invocation_context: 'InvocationContext'):
        self._invocation_context = invocation_context

    @property
    def invocation_id(self) -> str:
        return self._invocation_context.invocation_id

    @property
    def agent_name(self) -> str:
        return self._invocation_context.agent.name

    @property
    def app_name(self) -> str:
        return self._invocation_context.app_name

    @property
    def user_id(self) -> str:
        return self._invocation_context.user_id

    @property
    def session_id(self) -> str:
        return self._invocation_context.session.id

    @property
    def branch(self) -> Optional[str]:
        return self._invocation_context.branch

    @property
    def user_content(self) -> Optional['Content']:
        return self._invocation_context.user_content

    @property
    def state(self) -> Mapping[str, Any]:
        return MappingProxyType(self._invocation_context.session.state)


@dataclass
class ActionsBuilder:
    """
    可变的事件动作

    回调和工具在执行时修改它，执行结束后 build() 为不可变的 EventActions。
    """
    escalate: bool = False
    transfer_to_agent: Optional[str] = None
    skip_summarization: bool = False
    state_delta: dict[str, Any] = field(default_factory=dict)

    def build(self) -> EventActions:
        return EventActions(
            escalate=self.escalate,
            transfer_to_agent=self.transfer_to_agent,
            skip_summarization=self.skip_summarization,
            state_delta=dict(self.state_delta),
        )


class CallbackContext(ReadonlyContext):
    """
    回调上下文

    state 可写，写入只进入 actions.state_delta，
    由产生的事件携带，经 SessionService.append_event 生效。
    """

    def __init__(
        self,
        invocation_context: 'InvocationContext',
        actions: Optional[ActionsBuilder] = None,
    ):
        super().__init__(invocation_context)
        self.actions = actions or ActionsBuilder()
        self._state = State(
            value=invocation_context.session.state,
            delta=self.actions.state_delta,
        )

    @property
    def state(self) -> State:  # type: ignore[override]
        return self._state

    @property
    def invocation_context(self) -> 'InvocationContext':
        return self._invocation_context
