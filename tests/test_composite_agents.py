"""组合编排 Agent：Sequential / Loop / Parallel / Graph 以及构建期校验"""

import asyncio
import gc

import pytest

from adk_runtime.agents import (
    BaseAgent,
    GraphAgent,
    GraphNode,
    LlmAgent,
    LoopAgent,
    ParallelAgent,
    SequentialAgent,
)
from adk_runtime.errors import InvalidAgentCompositionError
from adk_runtime.events import Event, EventActions
from adk_runtime.models import Content
from adk_runtime.tools import exit_loop

from conftest import call, collect, fake_llm


class EchoAgent(BaseAgent):
    """不调用模型，直接输出自己名字的 Agent"""

    delay: float = 0.0
    state_key: str | None = None

    async def _run_async_impl(self, ctx):
        if self.delay:
            await asyncio.sleep(self.delay)
        actions = EventActions(state_delta={self.state_key: self.name}) if self.state_key else EventActions()
        yield Event(
            author=self.name,
            invocation_id=ctx.invocation_id,
            branch=ctx.branch,
            content=Content.from_text(self.name, role='model'),
            actions=actions,
        )


class FailingAgent(BaseAgent):
    async def _run_async_impl(self, ctx):
        raise RuntimeError(f"{self.name} failed")
        yield


# ==================== SequentialAgent ====================

@pytest.mark.asyncio
async def test_sequential_runs_children_in_order(make_runner):
    writer = LlmAgent(name="writer", model=fake_llm("draft"), output_key="draft")
    reviewer_llm = fake_llm("looks good")
    reviewer = LlmAgent(name="reviewer", model=reviewer_llm, instruction="Review: {draft}")
    pipeline = SequentialAgent(name="pipeline", sub_agents=[writer, reviewer])

    events = await collect(make_runner(pipeline).run_async("u1", "s1", "write"))

    assert [e.author for e in events] == ["writer", "reviewer"]
    assert reviewer_llm.requests[0].system_instruction == "Review: draft"
    # reviewer 看到了 writer 的输出（以上下文形式）
    context = reviewer_llm.requests[0].contents[-1]
    assert context.role == "user"
    assert "[writer] said: draft" in context.parts[1].text


@pytest.mark.asyncio
async def test_sequential_stops_on_escalate(make_runner):
    first = LlmAgent(name="first", model=fake_llm(call("exit_loop")), tools=[exit_loop])
    second = EchoAgent(name="second")
    pipeline = SequentialAgent(name="pipeline", sub_agents=[first, second])

    events = await collect(make_runner(pipeline).run_async("u1", "s1", "go"))

    assert "second" not in [e.author for e in events]
    assert events[-1].actions.escalate


@pytest.mark.asyncio
async def test_loop_exit_does_not_stop_enclosing_sequence(make_runner):
    critic = LlmAgent(name="critic", model=fake_llm(call("exit_loop")), tools=[exit_loop])
    refine = LoopAgent(name="refine", max_iterations=3, sub_agents=[critic])
    publisher = EchoAgent(name="publisher")
    pipeline = SequentialAgent(name="pipeline", sub_agents=[refine, publisher])

    events = await collect(make_runner(pipeline).run_async("u1", "s1", "go"))

    assert [e.author for e in events] == ["critic", "critic", "publisher"]
    assert events[1].actions.escalate
    assert events[-1].text == "publisher"


@pytest.mark.asyncio
async def test_escalation_inside_sequence_still_ends_loop(make_runner):
    checker_llm = fake_llm(call("exit_loop"))
    checker = LlmAgent(name="checker", model=checker_llm, tools=[exit_loop])
    step = SequentialAgent(name="step", sub_agents=[checker, EchoAgent(name="after")])
    loop = LoopAgent(name="loop", max_iterations=3, sub_agents=[step])

    events = await collect(make_runner(loop).run_async("u1", "s1", "go"))

    assert "after" not in [e.author for e in events]
    assert checker_llm.call_count == 1


# ==================== LoopAgent ====================

@pytest.mark.asyncio
async def test_loop_exits_on_third_iteration(make_runner):
    llm = fake_llm("iteration 1", "iteration 2", call("exit_loop"))
    worker = LlmAgent(name="worker", model=llm, tools=[exit_loop])
    loop = LoopAgent(name="loop", max_iterations=5, sub_agents=[worker])

    events = await collect(make_runner(loop).run_async("u1", "s1", "go"))

    assert llm.call_count == 3
    assert [e.text for e in events if e.text] == ["iteration 1", "iteration 2"]
    assert events[-1].actions.escalate
    assert events[-1].get_function_responses()[0].response == {"message": "Loop exited successfully"}


@pytest.mark.asyncio
async def test_loop_stops_at_max_iterations(make_runner):
    loop = LoopAgent(name="loop", max_iterations=3, sub_agents=[EchoAgent(name="tick")])

    events = await collect(make_runner(loop).run_async("u1", "s1", "go"))

    assert [e.author for e in events] == ["tick", "tick", "tick"]


@pytest.mark.asyncio
async def test_loop_condition_check(make_runner):
    seen = []

    async def keep_going(ctx):
        seen.append(ctx.state.get("tick"))
        return len(seen) < 2

    loop = LoopAgent(
        name="loop",
        sub_agents=[EchoAgent(name="tick", state_key="tick")],
        condition_check=keep_going,
    )

    events = await collect(make_runner(loop).run_async("u1", "s1", "go"))

    assert len(events) == 2
    # 条件看到的是已持久化的最新状态
    assert seen == ["tick", "tick"]


# ==================== ParallelAgent ====================

@pytest.mark.asyncio
async def test_parallel_children_write_separate_keys(make_runner, session_service):
    price = LlmAgent(name="price_agent", model=fake_llm("42 USD"), output_key="price")
    sentiment = LlmAgent(name="sentiment_agent", model=fake_llm("positive"), output_key="sentiment")
    research = ParallelAgent(name="research", sub_agents=[price, sentiment])

    events = await collect(make_runner(research).run_async("u1", "s1", "analyze"))

    session = await session_service.get_session(app_name="test_app", user_id="u1", session_id="s1")
    assert session.state == {"price": "42 USD", "sentiment": "positive"}
    assert {e.branch for e in events} == {"research.price_agent", "research.sentiment_agent"}


@pytest.mark.asyncio
async def test_parallel_completion_order_does_not_matter(make_runner, session_service):
    slow = EchoAgent(name="slow", delay=0.05, state_key="price")
    fast = EchoAgent(name="fast", state_key="sentiment")
    research = ParallelAgent(name="research", sub_agents=[slow, fast])

    events = await collect(make_runner(research).run_async("u1", "s1", "go"))

    assert [e.author for e in events] == ["fast", "slow"]
    session = await session_service.get_session(app_name="test_app", user_id="u1", session_id="s1")
    assert session.state == {"price": "slow", "sentiment": "fast"}


@pytest.mark.asyncio
async def test_parallel_branches_do_not_see_each_other(make_runner):
    first_llm = fake_llm(call("noop"), "first done")
    second_llm = fake_llm("second done")

    def noop() -> str:
        return "ok"

    first = LlmAgent(name="first", model=first_llm, tools=[noop])
    second = LlmAgent(name="second", model=second_llm)
    pipeline = SequentialAgent(
        name="pipeline",
        sub_agents=[ParallelAgent(name="fanout", sub_agents=[first, second])],
    )

    await collect(make_runner(pipeline).run_async("u1", "s1", "go"))

    for request in first_llm.requests + second_llm.requests:
        texts = " ".join(p.text or "" for c in request.contents for p in c.parts)
        assert "second done" not in texts
    assert len(first_llm.requests[1].contents) == 3


@pytest.mark.asyncio
async def test_parallel_failure_cancels_siblings(make_runner):
    slow = EchoAgent(name="slow", delay=1.0)
    broken = FailingAgent(name="broken")
    research = ParallelAgent(name="research", sub_agents=[slow, broken])

    events = await collect(make_runner(research).run_async("u1", "s1", "go"))

    assert len(events) == 1
    assert events[0].error_code == "INTERNAL_ERROR"
    assert "broken failed" in events[0].error_message


def test_parallel_rejects_duplicate_output_keys():
    with pytest.raises(InvalidAgentCompositionError):
        ParallelAgent(
            name="research",
            sub_agents=[
                LlmAgent(name="a", output_key="result"),
                SequentialAgent(name="b", sub_agents=[LlmAgent(name="c", output_key="result")]),
            ],
        )


# ==================== GraphAgent ====================

@pytest.mark.asyncio
async def test_graph_takes_first_satisfied_successor(make_runner):
    evaluated = []

    def always(name):
        def guard(last_event, ctx):
            evaluated.append(name)
            return True
        return guard

    graph = GraphAgent(
        name="graph",
        root_node="A",
        nodes=[
            GraphNode(name="A", agent=EchoAgent(name="a"), targets=["B", "C"]),
            GraphNode(name="B", agent=EchoAgent(name="b"), targets=["D"], condition=always("B")),
            GraphNode(name="C", agent=EchoAgent(name="c"), targets=["D"], condition=always("C")),
            GraphNode(name="D", agent=EchoAgent(name="d"), condition=always("D")),
        ],
    )

    events = await collect(make_runner(graph).run_async("u1", "s1", "go"))

    assert [e.author for e in events] == ["a", "b", "d"]
    assert evaluated == ["B", "C", "D"]


@pytest.mark.asyncio
async def test_graph_routes_on_state(make_runner):
    classifier = EchoAgent(name="classifier", state_key="topic")
    graph = GraphAgent(
        name="router",
        root_node="classify",
        nodes=[
            GraphNode(name="classify", agent=classifier, targets=["billing", "support"]),
            GraphNode(
                name="billing",
                agent=EchoAgent(name="billing"),
                condition=lambda event, ctx: ctx.state.get("topic") == "billing",
            ),
            GraphNode(
                name="support",
                agent=EchoAgent(name="support"),
                condition=lambda event, ctx: event.author == "classifier",
            ),
        ],
    )

    events = await collect(make_runner(graph).run_async("u1", "s1", "help"))

    assert [e.author for e in events] == ["classifier", "support"]


@pytest.mark.asyncio
async def test_graph_stops_at_max_steps(make_runner):
    graph = GraphAgent(
        name="graph",
        root_node="ping",
        max_steps=4,
        nodes=[
            GraphNode(name="ping", agent=EchoAgent(name="ping_agent"), targets=["pong"]),
            GraphNode(name="pong", agent=EchoAgent(name="pong_agent"), targets=["ping"]),
        ],
    )

    events = await collect(make_runner(graph).run_async("u1", "s1", "go"))

    assert len(events) == 4
    assert not any(e.is_error() for e in events)


def test_graph_rejects_unknown_targets():
    with pytest.raises(InvalidAgentCompositionError):
        GraphAgent(
            name="graph",
            root_node="A",
            nodes=[GraphNode(name="A", agent=EchoAgent(name="a"), targets=["missing"])],
        )


def test_graph_rejects_missing_root():
    with pytest.raises(InvalidAgentCompositionError):
        GraphAgent(name="graph", root_node="X", nodes=[GraphNode(name="A", agent=EchoAgent(name="a"))])


# ==================== 构建期校验 ====================

def test_child_cannot_have_two_parents():
    child = EchoAgent(name="child")
    first = SequentialAgent(name="first", sub_agents=[child])

    with pytest.raises(InvalidAgentCompositionError):
        SequentialAgent(name="second", sub_agents=[child])
    assert child.parent_agent is first


def test_ownership_outlives_collected_parent():
    child = EchoAgent(name="child")
    SequentialAgent(name="first", sub_agents=[child])
    gc.collect()

    with pytest.raises(InvalidAgentCompositionError, match="first"):
        SequentialAgent(name="second", sub_agents=[child])


def test_rejected_parallel_does_not_claim_children():
    a = LlmAgent(name="a", output_key="same")
    b = LlmAgent(name="b", output_key="same")
    with pytest.raises(InvalidAgentCompositionError):
        ParallelAgent(name="fan_out", sub_agents=[a, b])

    pipeline = SequentialAgent(name="pipeline", sub_agents=[a, b])
    assert a.parent_agent is pipeline


def test_duplicate_names_anywhere_in_tree():
    with pytest.raises(InvalidAgentCompositionError):
        SequentialAgent(
            name="root",
            sub_agents=[
                EchoAgent(name="worker"),
                SequentialAgent(name="inner", sub_agents=[EchoAgent(name="worker")]),
            ],
        )


def test_agent_name_validation():
    with pytest.raises(ValueError):
        EchoAgent(name="not valid")
    with pytest.raises(ValueError):
        EchoAgent(name="user")


def test_tree_navigation():
    leaf = EchoAgent(name="leaf")
    inner = SequentialAgent(name="inner", sub_agents=[leaf])
    root = LoopAgent(name="root", sub_agents=[inner])

    assert leaf.parent_agent is inner
    assert leaf.root_agent is root
    assert root.find_agent("leaf") is leaf
    assert root.find_sub_agent("root") is None
    assert [a.name for a in root.iter_agents()] == ["root", "inner", "leaf"]


@pytest.mark.asyncio
async def test_before_agent_callback_skips_agent(make_runner):
    llm = fake_llm("never")

    def before_agent(callback_context):
        return Content.from_text("skipped", role="model")

    agent = LlmAgent(name="assistant", model=llm, before_agent_callback=before_agent)

    events = await collect(make_runner(agent).run_async("u1", "s1", "hi"))

    assert llm.call_count == 0
    assert [e.text for e in events] == ["skipped"]
