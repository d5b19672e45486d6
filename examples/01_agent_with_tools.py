"""
示例 1: 带工具的 Agent

运行前配置模型（OpenAI 兼容接口）:
    export ADK_RUNTIME_API_BASE=http://localhost:8000/v1
    export ADK_RUNTIME_MODEL=Qwen/Qwen2.5-7B-Instruct

运行方式:
    python examples/01_agent_with_tools.py
"""

import asyncio
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from adk_runtime import LlmAgent, InMemoryRunner, ToolContext, get_config, setup_logging, tool


@tool(description='获取指定城市的天气信息')
def get_weather(city: str) -> str:
    """模拟天气查询"""
    weather_data = {
        '北京': '晴天，25°C',
        '上海': '多云，22°C',
        '深圳': '雨天，28°C',
    }
    return weather_data.get(city, f'{city} 的天气信息暂时无法获取')


def remember_city(city: str, tool_context: ToolContext) -> str:
    """
    记住用户关心的城市

    Args:
        city: 城市名称
    """
    tool_context.state['user:favorite_city'] = city
    return f'已记住 {city}'


async def main():
    setup_logging('INFO')

    agent = LlmAgent(
        name='weather_assistant',
        model=get_config().llm.model,
        instruction=(
            '你是一个天气助手，可以查天气、记住用户关心的城市。'
            '用户关心的城市: {user:favorite_city?}'
        ),
        tools=[get_weather, remember_city],
    )
    runner = InMemoryRunner(agent, app_name='weather_app')

    for message in ['北京今天天气怎么样？', '以后我主要关心上海', '我关心的城市天气如何？']:
        print(f'\n用户: {message}')
        async for event in runner.run_async('user_001', 'session_001', message):
            if event.partial:
                print(event.text, end='', flush=True)
            elif event.get_function_calls():
                names = [fc.name for fc in event.get_function_calls()]
                print(f'\n  (调用了工具: {", ".join(names)})')
            elif event.is_error():
                print(f'\n[错误] {event.error_code}: {event.error_message}')
        print()


if __name__ == '__main__':
    asyncio.run(main())
