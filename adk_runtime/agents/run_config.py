"""RunConfig - 单次调用的运行参数"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import RunnerConfig


@dataclass
class RunConfig:
    """
    单次 Runner 调用的运行参数

    未显式传入时由 Runner 根据全局 RunnerConfig 生成。
    """
    stream: bool = True
    """是否以流式方式调用模型（会产生 partial 事件）"""

    max_tool_iterations: int = 10
    """单个 LlmAgent 在一次调用中允许的最大工具轮数（Agent 自身的设置优先）"""

    auto_create_session: bool = True
    """Session 不存在时是否自动创建"""

    @classmethod
    def from_runner_config(cls, config: 'RunnerConfig') -> 'RunConfig':
        return cls(
            stream=config.stream,
            max_tool_iterations=config.max_tool_iterations,
            auto_create_session=config.auto_create_session,
        )
