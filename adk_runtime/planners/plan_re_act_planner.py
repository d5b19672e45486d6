"""PlanReActPlanner - 先规划、再推理行动、最后给出答案"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from typing_extensions import override

from ..models.content import Part
from .base_planner import BasePlanner

if TYPE_CHECKING:
    from ..agents.readonly_context import CallbackContext, ReadonlyContext
    from ..models.llm_request import LlmRequest

PLANNING_TAG = '/*PLANNING*/'
REPLANNING_TAG = '/*REPLANNING*/'
REASONING_TAG = '/*REASONING*/'
ACTION_TAG = '/*ACTION*/'
FINAL_ANSWER_TAG = '/*FINAL_ANSWER*/'


class PlanReActPlanner(BasePlanner):
    """
    Plan-ReAct 规划器

    要求模型按标签组织输出：
    /*PLANNING*/ 计划 -> /*ACTION*/ 工具调用 -> /*REASONING*/ 推理
    -> (/*REPLANNING*/ 修订计划) -> /*FINAL_ANSWER*/ 最终答案

    处理响应时：最终答案之前的文本标记为 thought，
    第一个工具调用之后的文本片段被丢弃（等工具结果回来再继续）。
    """

    @override
    def build_planning_instruction(
        self,
        readonly_context: 'ReadonlyContext',
        llm_request: 'LlmRequest',
    ) -> Optional[str]:
        return self._build_nl_planner_instruction()

    @override
    def process_planning_response(
        self,
        callback_context: 'CallbackContext',
        response_parts: list['Part'],
    ) -> Optional[list['Part']]:
        if not response_parts:
            return None

        preserved: list[Part] = []
        first_call_index = -1
        for i, part in enumerate(response_parts):
            if part.function_call is not None:
                # 跳过名称为空的调用
                if not part.function_call.name:
                    continue
                preserved.append(part)
                first_call_index = i
                break
            preserved.extend(self._split_by_final_answer(part))

        if first_call_index >= 0:
            for part in response_parts[first_call_index + 1:]:
                if part.function_call is not None:
                    preserved.append(part)
                else:
                    break
        return preserved

    def _split_by_final_answer(self, part: Part) -> list[Part]:
        """把文本拆成推理部分（thought）和最终答案部分"""
        if not part.text or part.thought:
            return [part]

        text = part.text
        if FINAL_ANSWER_TAG in text:
            reasoning, answer = text.rsplit(FINAL_ANSWER_TAG, 1)
            result: list[Part] = []
            if reasoning.strip():
                result.append(Part(text=reasoning, thought=True))
            if answer.strip():
                result.append(Part(text=answer.strip()))
            return result

        if text.startswith((PLANNING_TAG, REASONING_TAG, ACTION_TAG, REPLANNING_TAG)):
            return [Part(text=text, thought=True)]
        return [part]

    def _build_nl_planner_instruction(self) -> str:
        high_level_preamble = (
            "When answering the question, try to leverage the available tools to gather "
            "the information instead of your memorized knowledge.\n\n"
            "Follow this process when answering the question: (1) first come up with a plan "
            f"in natural language text format under {PLANNING_TAG}; (2) then use tools to "
            f"execute the plan, with reasoning between tool code snippets under {REASONING_TAG}; "
            f"(3) finally, return one final answer under {FINAL_ANSWER_TAG}.\n\n"
            f"Tool code snippets should be under {ACTION_TAG}, and the final answer should be "
            f"under {FINAL_ANSWER_TAG}."
        )

        planning_preamble = (
            f"Below are the requirements for the planning:\n"
            f"The plan is made to answer the user query if following the plan. The plan is "
            f"coherent and covers all aspects of information from the user query, and only "
            f"involves the tools that are accessible by the agent. If the initial plan cannot "
            f"be successfully executed, you should learn from previous execution results and "
            f"revise your plan under {REPLANNING_TAG}."
        )

        reasoning_preamble = (
            "Below are the requirements for the reasoning:\n"
            "The reasoning makes a summary of the current trajectory based on the user query "
            "and tool outputs. Based on the tool outputs and plan, the reasoning also comes up "
            "with instructions to the next steps."
        )

        final_answer_preamble = (
            "Below are the requirements for the final answer:\n"
            "The final answer should be precise and follow query formatting requirements. "
            "Some queries may not be answerable with the available tools and information. In "
            "those cases, inform the user why you cannot process their query and ask for more "
            "information."
        )

        return '\n\n'.join([
            high_level_preamble,
            planning_preamble,
            reasoning_preamble,
            final_answer_preamble,
        ])
