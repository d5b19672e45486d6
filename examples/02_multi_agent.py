"""
示例 2: 多 Agent 协作

展示组合编排:
1. ParallelAgent 并发调研，结果写入不同的 output_key
2. SequentialAgent 先调研再汇总
3. LoopAgent 反复修改直到评审调用 exit_loop
4. GraphAgent 按分类结果路由

运行方式:
    python examples/02_multi_agent.py
"""

import asyncio
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from adk_runtime import (
    GraphAgent,
    GraphNode,
    InMemoryRunner,
    LlmAgent,
    LoopAgent,
    ParallelAgent,
    SequentialAgent,
    exit_loop,
    get_config,
    setup_logging,
)


def build_research_pipeline(model: str) -> SequentialAgent:
    research = ParallelAgent(
        name='research',
        sub_agents=[
            LlmAgent(name='price_analyst', model=model, instruction='分析 {topic?} 的价格走势，一句话。', output_key='price'),
            LlmAgent(name='sentiment_analyst', model=model, instruction='分析 {topic?} 的市场情绪，一句话。', output_key='sentiment'),
        ],
    )
    summary = LlmAgent(
        name='summarizer',
        model=model,
        instruction='根据价格分析「{price}」和情绪分析「{sentiment}」写一段总结。',
    )
    return SequentialAgent(name='pipeline', sub_agents=[research, summary])


def build_review_loop(model: str) -> LoopAgent:
    writer = LlmAgent(name='writer', model=model, instruction='根据评审意见改写文案。', output_key='draft')
    critic = LlmAgent(
        name='critic',
        model=model,
        instruction='评审文案「{draft}」。满意时调用 exit_loop，否则给出修改意见。',
        tools=[exit_loop],
    )
    return LoopAgent(name='review_loop', max_iterations=3, sub_agents=[writer, critic])


def build_router(model: str) -> GraphAgent:
    classifier = LlmAgent(
        name='classifier',
        model=model,
        instruction='只输出 billing 或 support。',
        output_key='topic',
    )
    return GraphAgent(
        name='router',
        root_node='classify',
        nodes=[
            GraphNode(name='classify', agent=classifier, targets=['billing', 'support']),
            GraphNode(
                name='billing',
                agent=LlmAgent(name='billing', model=model, instruction='处理账单问题。'),
                condition=lambda event, ctx: 'billing' in str(ctx.state.get('topic', '')),
            ),
            GraphNode(
                name='support',
                agent=LlmAgent(name='support', model=model, instruction='处理其他问题。'),
            ),
        ],
    )


async def run(agent, message: str) -> None:
    print('=' * 60)
    print(f'{agent.name}: {message}')
    print('=' * 60)
    runner = InMemoryRunner(agent, app_name='multi_agent_demo')
    for event in await runner.run_debug(message):
        if event.is_error():
            print(f'[错误] {event.error_code}: {event.error_message}')
        elif event.text:
            print(f'[{event.author}] {event.text}')


async def main():
    setup_logging('WARNING')
    model = get_config().llm.model

    await run(build_research_pipeline(model), '分析一下新能源汽车')
    await run(build_review_loop(model), '为一款咖啡机写一句广告语')
    await run(build_router(model), '我的发票金额不对')


if __name__ == '__main__':
    asyncio.run(main())
