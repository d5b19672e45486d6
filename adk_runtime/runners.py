"""
Runner - 无状态执行引擎（参考 ADK 设计）

Runner 职责（单一职责）:
- 绑定特定的 Agent 和 App
- 解析 Session、记录用户消息、选择本轮执行的 Agent
- 把 Agent 产生的每个事件先持久化再交给调用方
- 把任何异常转换为一个终止错误事件，异常不会越过 Runner

架构:
┌────────────────────────────────────────┐
│  Runner: 执行编排（绑定 Agent）          │
├────────────────────────────────────────┤
│  Agent: 组合编排 / LlmAgent             │
├────────────────────────────────────────┤
│  Flow: Reason-Act 循环 + 工具执行       │
├────────────────────────────────────────┤
│  Model: LLM 抽象 + 请求/响应格式化       │
└────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterator, Optional, Union

from .agents import BaseAgent, InvocationContext, LlmAgent, RunConfig, new_invocation_id
from .config import Config, get_config
from .errors import AdkError, NotFoundError
from .events import Event, create_error_event
from .models import Content, LlmRegistry, OpenAILlm
from .sessions import BaseSessionService, InMemorySessionService, Session, create_session_service
from .tools import ToolRegistry


logger = logging.getLogger(__name__)

_SENTINEL = object()


@dataclass
class LoadedAgentContext:
    """
    已加载的 Agent 上下文 - 把 Agent 绑定到某个用户的某个 Session

    通过 Runner.load 创建并缓存；切换 Session 不需要重建 Agent：
        ctx = await runner.load("u1", "s1")
        await ctx.switch_session("s2")
    """
    agent: BaseAgent
    app_name: str
    user_id: str
    session_id: str
    session_service: BaseSessionService
    runner: 'Runner'

    def run_async(
        self,
        message: Union[str, Content],
        run_config: Optional[RunConfig] = None,
    ) -> AsyncIterator[Event]:
        return self.runner.run_async(
            user_id=self.user_id,
            session_id=self.session_id,
            new_message=message,
            run_config=run_config,
        )

    async def switch_session(self, session_id: str) -> Session:
        return await self.session_service.switch_active_session(self, session_id)


class Runner:
    """
    无状态 Runner（参考 ADK 设计）

    核心设计理念:
    - Runner 绑定特定的 app_name 和 agent
    - Runner 本身无状态（Agent 是只读配置，不是运行时状态）
    - Session 不存在时按 RunConfig.auto_create_session 自动创建
    - 事件通过 append_event 原子追加，持久化后才交给调用方
    - 支持高并发（状态通过 user_id + session_id 隔离）

    使用方式:
        agent = LlmAgent(name="assistant", model=my_llm, instruction="...")
        runner = Runner(
            app_name="my_app",
            agent=agent,
            session_service=InMemorySessionService(),
        )

        async for event in runner.run_async(user_id="u1", session_id="s1", new_message="你好"):
            print(event.text)
    """

    def __init__(
        self,
        app_name: str,
        agent: BaseAgent,
        session_service: Optional[BaseSessionService] = None,
        config: Optional[Config] = None,
        llm_registry: Optional[LlmRegistry] = None,
        tool_registry: Optional[ToolRegistry] = None,
    ):
        """
        初始化 Runner

        Args:
            app_name: 应用名称（用于 Session 隔离）
            agent: 绑定的根 Agent
            session_service: Session 持久化服务（不提供则按配置创建）
            config: 配置对象（不提供则使用全局配置）
            llm_registry: 模型注册表，解析 Agent 中以字符串给出的模型
            tool_registry: 工具注册表，解析 Agent 中以字符串给出的工具
        """
        self.app_name = app_name
        self.agent = agent
        self._config = config or get_config()
        self.session_service = session_service or create_session_service(self._config.session)
        self.llm_registry = llm_registry or self._create_llm_registry()
        self.tool_registry = tool_registry
        self._loaded: list[LoadedAgentContext] = []
        self._loaded_lock = threading.Lock()

    # ==================== 异步 API ====================

    async def run_async(
        self,
        user_id: str,
        session_id: str,
        new_message: Union[str, Content],
        run_config: Optional[RunConfig] = None,
    ) -> AsyncIterator[Event]:
        """
        异步执行一轮对话

        Args:
            user_id: 用户 ID
            session_id: 会话 ID
            new_message: 用户消息（文本或 Content）
            run_config: 运行参数（不提供则根据 RunnerConfig 生成）

        Yields:
            Event 对象；出错时最后一个事件是带 error_code 的终止事件
        """
        run_config = run_config or RunConfig.from_runner_config(self._config.runner)
        invocation_id = new_invocation_id()
        start_time = time.time()
        event_count = 0
        author = self.agent.name

        logger.info(
            f"[Runner] START app={self.app_name} invocation_id={invocation_id} "
            f"user={user_id} session={session_id} agent={self.agent.name}"
        )

        try:
            session = await self._resolve_session(user_id, session_id, run_config)

            content = (
                Content.from_text(new_message) if isinstance(new_message, str) else new_message
            )
            user_event = Event(author='user', content=content, invocation_id=invocation_id)
            await self.session_service.append_event(session, user_event)

            agent = self._find_agent_to_run(session)
            author = agent.name
            ctx = InvocationContext(
                agent=agent,
                session=session,
                session_service=self.session_service,
                invocation_id=invocation_id,
                user_content=content,
                run_config=run_config,
                llm_registry=self.llm_registry,
                tool_registry=self.tool_registry,
            )

            async for event in agent.run_async(ctx):
                if not event.partial:
                    await self.session_service.append_event(session, event)
                event_count += 1
                yield event

            duration = time.time() - start_time
            logger.info(
                f"[Runner] SUCCESS invocation_id={invocation_id} "
                f"duration={duration:.2f}s events={event_count}"
            )

        except Exception as e:
            duration = time.time() - start_time
            error = AdkError.wrap(e)
            logger.error(
                f"[Runner] FAILED invocation_id={invocation_id} code={error.code} "
                f"error={error.message} duration={duration:.2f}s",
                exc_info=not isinstance(e, AdkError),
            )
            yield create_error_event(
                author=author,
                error_code=error.code,
                error_message=error.message,
                invocation_id=invocation_id,
            )

    async def _resolve_session(
        self,
        user_id: str,
        session_id: str,
        run_config: RunConfig,
    ) -> Session:
        session = await self.session_service.get_session(
            app_name=self.app_name,
            user_id=user_id,
            session_id=session_id,
        )
        if session is not None:
            return session
        if not run_config.auto_create_session:
            raise NotFoundError(f"Session not found: {session_id}")
        logger.info(f"[Runner] Creating session {session_id} for user {user_id}")
        return await self.session_service.create_session(
            app_name=self.app_name,
            user_id=user_id,
            session_id=session_id,
        )

    # ==================== 选择执行的 Agent ====================

    def _find_agent_to_run(self, session: Session) -> BaseAgent:
        """
        找到本轮应该回复的 Agent

        上一轮跳转到的 Agent 如果仍然可以被跳转回来（整条祖先链都是 LlmAgent
        且没有禁止跳转回父 Agent），就由它继续回复；否则从根 Agent 开始。
        """
        root = self.agent
        for event in reversed(session.events):
            if event.author == 'user':
                continue
            if event.author == root.name:
                return root
            agent = root.find_sub_agent(event.author)
            if agent is None:
                continue
            if self._is_transferable_across_agent_tree(agent):
                return agent
        return root

    def _is_transferable_across_agent_tree(self, agent: BaseAgent) -> bool:
        current: Optional[BaseAgent] = agent
        while current is not None:
            if not isinstance(current, LlmAgent):
                return False
            if current.disallow_transfer_to_parent:
                return False
            current = current.parent_agent
        return True

    # ==================== 同步 API ====================

    def run(
        self,
        user_id: str,
        session_id: str,
        new_message: Union[str, Content],
        run_config: Optional[RunConfig] = None,
        max_buffered_events: int = 16,
    ) -> Iterator[Event]:
        """
        同步执行（在后台线程中驱动 run_async）

        事件通过有界队列传递，调用方消费慢时后台执行会等待。
        提前停止迭代会结束后台执行。
        """
        events: queue.Queue = queue.Queue(maxsize=max_buffered_events)
        stopped = threading.Event()

        def put(item: Any) -> bool:
            while not stopped.is_set():
                try:
                    events.put(item, timeout=0.1)
                    return True
                except queue.Full:
                    continue
            return False

        async def produce() -> None:
            agen = self.run_async(user_id, session_id, new_message, run_config)
            try:
                async for event in agen:
                    if not put(event):
                        break
            finally:
                await agen.aclose()

        def worker() -> None:
            try:
                asyncio.run(produce())
            except Exception as e:
                put(e)
            finally:
                put(_SENTINEL)

        thread = threading.Thread(target=worker, name=f"runner-{self.app_name}", daemon=True)
        thread.start()
        try:
            while True:
                item = events.get()
                if item is _SENTINEL:
                    break
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            stopped.set()
            thread.join()

    # ==================== 便利方法（用于调试）====================

    async def run_debug(
        self,
        message: Union[str, Content],
        user_id: str = "debug_user",
        session_id: str = "debug_session",
        run_config: Optional[RunConfig] = None,
    ) -> list[Event]:
        """
        调试用便利方法 - 自动处理 Session 创建，返回所有非 partial 事件

        注意：仅用于调试和测试，生产环境请使用 run_async
        """
        session = await self.session_service.get_session(
            app_name=self.app_name,
            user_id=user_id,
            session_id=session_id,
        )
        if not session:
            await self.session_service.create_session(
                app_name=self.app_name,
                user_id=user_id,
                session_id=session_id,
            )
            logger.info(f"[Runner] Created debug session: {session_id}")

        events = []
        async for event in self.run_async(user_id, session_id, message, run_config):
            if event.partial:
                continue
            events.append(event)
            if event.text:
                logger.info(f"[Runner] {event.author}: {event.text}")
        return events

    # ==================== 已加载的上下文 ====================

    async def load(self, user_id: str, session_id: str) -> LoadedAgentContext:
        """
        加载（或复用已缓存的）Agent 上下文

        Session 不存在时按 RunnerConfig.auto_create_session 创建，否则抛出 NotFoundError。
        """
        with self._loaded_lock:
            for context in self._loaded:
                if context.user_id == user_id and context.session_id == session_id:
                    return context

        run_config = RunConfig.from_runner_config(self._config.runner)
        await self._resolve_session(user_id, session_id, run_config)

        context = LoadedAgentContext(
            agent=self.agent,
            app_name=self.app_name,
            user_id=user_id,
            session_id=session_id,
            session_service=self.session_service,
            runner=self,
        )
        with self._loaded_lock:
            self._loaded.append(context)
        logger.info(f"[Runner] Loaded {self.agent.name} for user={user_id} session={session_id}")
        return context

    def unload(self, user_id: str, session_id: str) -> bool:
        """移除缓存的上下文，返回是否存在"""
        with self._loaded_lock:
            before = len(self._loaded)
            self._loaded = [
                c for c in self._loaded
                if not (c.user_id == user_id and c.session_id == session_id)
            ]
            return len(self._loaded) < before

    def loaded_contexts(self) -> list[LoadedAgentContext]:
        with self._loaded_lock:
            return list(self._loaded)

    # ==================== 辅助方法 ====================

    def _create_llm_registry(self) -> LlmRegistry:
        """根据配置创建默认的模型注册表"""
        registry = LlmRegistry()
        registry.register_class(OpenAILlm)
        llm_config = self._config.llm
        if llm_config.api_base and llm_config.model:
            registry.register(
                llm_config.model,
                OpenAILlm(
                    api_base=llm_config.api_base,
                    api_key=llm_config.api_key,
                    model=llm_config.model,
                    timeout=llm_config.timeout,
                ),
            )
        return registry


class InMemoryRunner(Runner):
    """使用内存 Session 存储的 Runner（测试和本地调试用）"""

    def __init__(
        self,
        agent: BaseAgent,
        app_name: str = 'InMemoryRunner',
        **kwargs: Any,
    ):
        super().__init__(
            app_name=app_name,
            agent=agent,
            session_service=InMemorySessionService(),
            **kwargs,
        )
