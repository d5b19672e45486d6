"""规划器 - 在模型调用前后注入结构化推理"""

from .base_planner import BasePlanner
from .built_in_planner import BuiltInPlanner
from .plan_re_act_planner import (
    ACTION_TAG,
    FINAL_ANSWER_TAG,
    PLANNING_TAG,
    REASONING_TAG,
    REPLANNING_TAG,
    PlanReActPlanner,
)

__all__ = [
    'BasePlanner',
    'BuiltInPlanner',
    'PlanReActPlanner',
    'PLANNING_TAG',
    'REPLANNING_TAG',
    'REASONING_TAG',
    'ACTION_TAG',
    'FINAL_ANSWER_TAG',
]
