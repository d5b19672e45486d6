"""
运行时配置

配置分为三段: llm / runner / session，可以来自 YAML 或 JSON 文件，
环境变量会覆盖文件中的值，代码中直接修改的值优先级最高。
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, ClassVar, Optional

import yaml

logger = logging.getLogger(__name__)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('true', '1', 'yes', 'on')


@dataclass
class LLMConfig:
    """默认模型的连接参数"""
    api_base: str = ""
    api_key: str = "EMPTY"
    model: str = ""
    temperature: float = 0.7
    max_tokens: int | None = None
    timeout: float = 60.0


@dataclass
class RunnerConfig:
    """Runner 的默认行为"""
    # Agent 没有设置 max_tool_iterations 时使用
    max_tool_iterations: int = 10
    auto_create_session: bool = True
    stream: bool = True
    # DEBUG | INFO | WARNING | ERROR
    log_level: str = "INFO"


@dataclass
class SessionConfig:
    """Session 存储后端"""
    # memory | file | sqlite
    backend: str = "memory"
    # file 后端的根目录，或 sqlite 后端的数据库文件
    path: Optional[str] = None


# 环境变量后缀 -> (配置段, 字段, 转换函数)
_ENV_BINDINGS: dict[str, tuple[str, str, Callable[[str], Any]]] = {
    "API_BASE": ("llm", "api_base", str),
    "API_KEY": ("llm", "api_key", str),
    "MODEL": ("llm", "model", str),
    "TEMPERATURE": ("llm", "temperature", float),
    "MAX_TOKENS": ("llm", "max_tokens", int),
    "TIMEOUT": ("llm", "timeout", float),
    "MAX_TOOL_ITERATIONS": ("runner", "max_tool_iterations", int),
    "AUTO_CREATE_SESSION": ("runner", "auto_create_session", _parse_bool),
    "STREAM": ("runner", "stream", _parse_bool),
    "LOG_LEVEL": ("runner", "log_level", str),
    "SESSION_BACKEND": ("session", "backend", str),
    "SESSION_PATH": ("session", "path", str),
}

_DISCOVERY_NAMES = (
    "adk_runtime.yaml",
    "adk_runtime.yml",
    ".adk_runtime.yaml",
    "adk_runtime.json",
    ".adk_runtime.json",
)


@dataclass
class Config:
    """
    全部配置

    优先级（从高到低）: 代码赋值 > 环境变量 > 配置文件 > 默认值。
    环境变量名为 ENV_PREFIX 加上 _ENV_BINDINGS 中的后缀，
    例如 ADK_RUNTIME_MODEL、ADK_RUNTIME_SESSION_BACKEND。
    """
    llm: LLMConfig = field(default_factory=LLMConfig)
    runner: RunnerConfig = field(default_factory=RunnerConfig)
    session: SessionConfig = field(default_factory=SessionConfig)

    ENV_PREFIX: ClassVar[str] = "ADK_RUNTIME_"
    SECTIONS: ClassVar[tuple[str, ...]] = ("llm", "runner", "session")

    @classmethod
    def load(
        cls,
        config_file: str | Path | None = None,
        env_prefix: str = "ADK_RUNTIME_",
    ) -> Config:
        """
        读取配置文件（未指定时自动查找），再叠加环境变量

        Args:
            config_file: .yaml / .yml / .json 文件路径
            env_prefix: 环境变量前缀
        """
        config = cls()
        config.ENV_PREFIX = env_prefix

        path = Path(config_file) if config_file else config._auto_discover_config()
        if path is not None:
            config._load_from_file(path)
        config._load_from_env()
        return config

    def _auto_discover_config(self) -> Path | None:
        candidates = [Path.cwd() / name for name in _DISCOVERY_NAMES]
        candidates.insert(3, Path.home() / ".adk_runtime.yaml")
        return next((p for p in candidates if p.exists()), None)

    def _load_from_file(self, config_file: str | Path) -> None:
        path = Path(config_file)
        if not path.exists():
            logger.warning(f"[Config] file not found: {path}")
            return

        text = path.read_text(encoding='utf-8')
        if path.suffix.lower() in ('.yaml', '.yml'):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)

        logger.debug(f"[Config] loaded {path}")
        self._apply_dict(data or {})

    def _load_from_env(self) -> None:
        for suffix, (section, key, convert) in _ENV_BINDINGS.items():
            raw = os.getenv(f"{self.ENV_PREFIX}{suffix}")
            if raw:
                setattr(getattr(self, section), key, convert(raw))

    def _apply_dict(self, data: dict[str, Any]) -> None:
        """按段写入，未知的段或字段只记录警告"""
        for section, values in data.items():
            if section not in self.SECTIONS:
                logger.warning(f"[Config] unknown section: {section}")
                continue
            target = getattr(self, section)
            known = {f.name for f in fields(target)}
            for key, value in (values or {}).items():
                if key in known:
                    setattr(target, key, value)
                else:
                    logger.warning(f"[Config] unknown key: {section}.{key}")

    def to_dict(self) -> dict[str, Any]:
        return {section: asdict(getattr(self, section)) for section in self.SECTIONS}

    def save(self, config_file: str | Path) -> None:
        """按扩展名写成 YAML 或 JSON"""
        path = Path(config_file)
        data = self.to_dict()
        if path.suffix.lower() in ('.yaml', '.yml'):
            text = yaml.safe_dump(data, allow_unicode=True, sort_keys=False)
        else:
            text = json.dumps(data, indent=2, ensure_ascii=False)
        path.write_text(text, encoding='utf-8')


_default_config: Config | None = None


def get_config() -> Config:
    """进程级默认配置，首次访问时加载"""
    global _default_config
    if _default_config is None:
        _default_config = Config.load()
    return _default_config


def set_config(config: Config) -> None:
    global _default_config
    _default_config = config


def setup_logging(level: str | int | None = None) -> None:
    """
    配置 adk_runtime 的日志输出

    level 为空时使用全局配置中的 runner.log_level。
    """
    if level is None:
        level = get_config().runner.log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("adk_runtime").setLevel(level)
