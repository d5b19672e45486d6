"""会话状态 - 带作用域前缀的键值视图

键的作用域由前缀决定:
- 无前缀: 当前 Session 私有
- user: 同一 (app_name, user_id) 下所有 Session 共享
- app: 整个应用共享
- temp: 只在当前调用内可见，不会被持久化
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Iterator, Optional

if TYPE_CHECKING:
    from ..events import Event


class State:
    """
    增量感知的状态视图

    读取时 delta 优先于 base；写入只进入 delta。
    工具和回调通过它修改状态，delta 最终成为事件的 state_delta，
    由 SessionService.append_event 统一应用。
    """

    APP_PREFIX = 'app:'
    USER_PREFIX = 'user:'
    TEMP_PREFIX = 'temp:'

    def __init__(self, value: dict[str, Any], delta: dict[str, Any]):
        self._value = value
        self._delta = delta

    def __getitem__(self, key: str) -> Any:
        if key in self._delta:
            return self._delta[key]
        return self._value[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._delta[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._delta or key in self._value

    def __iter__(self) -> Iterator[str]:
        return iter(self.to_dict())

    def __len__(self) -> int:
        return len(self.to_dict())

    def __repr__(self) -> str:
        return f"State({self.to_dict()!r})"

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self:
            return default
        return self[key]

    def setdefault(self, key: str, default: Any = None) -> Any:
        if key not in self:
            self[key] = default
        return self[key]

    def update(self, delta: dict[str, Any]) -> None:
        self._delta.update(delta)

    def has_delta(self) -> bool:
        return bool(self._delta)

    def to_dict(self) -> dict[str, Any]:
        """合并 base 和 delta 后的完整状态"""
        return {**self._value, **self._delta}


# ==================== 辅助函数 ====================

def is_temp_key(key: str) -> bool:
    return key.startswith(State.TEMP_PREFIX)


def split_state_delta(
    delta: dict[str, Any],
) -> tuple[dict[str, Any], dict[str, Any], dict[str, Any]]:
    """
    按作用域拆分状态变更（temp: 键被丢弃）

    Returns:
        (app_delta, user_delta, session_delta)，键保留原始前缀
    """
    app_delta: dict[str, Any] = {}
    user_delta: dict[str, Any] = {}
    session_delta: dict[str, Any] = {}
    for key, value in delta.items():
        if key.startswith(State.APP_PREFIX):
            app_delta[key] = value
        elif key.startswith(State.USER_PREFIX):
            user_delta[key] = value
        elif not is_temp_key(key):
            session_delta[key] = value
    return app_delta, user_delta, session_delta


def persistable_delta(delta: dict[str, Any]) -> dict[str, Any]:
    """去掉 temp: 键后的状态变更"""
    return {k: v for k, v in delta.items() if not is_temp_key(k)}


def project_state(
    events: Iterable['Event'],
    seed: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """
    重放事件日志，得到状态投影

    对一个 Session 的事件日志从创建时的状态开始重放，
    结果与存储中的实时状态一致。
    """
    state = dict(seed or {})
    for event in events:
        if event.partial:
            continue
        state.update(persistable_delta(event.actions.state_delta))
    return state
