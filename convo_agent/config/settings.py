"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from convo_agent.domain.exceptions import ConfigurationError


MIN_API_KEY_LENGTH = 10


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("AGENT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class AgentSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 补全后端 ----
    openai_api_key: Optional[str] = Field(default=None, description="补全后端 API 密钥")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI 兼容接口的基础URL",
    )
    openai_model: str = Field(default="gpt-3.5-turbo", description="目标模型")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0, description="采样温度，留空则使用后端默认值")
    top_p: Optional[float] = Field(default=None, gt=0.0, le=1.0, description="nucleus 采样参数")
    max_tokens: Optional[int] = Field(default=None, ge=1, description="单次回答最大 token 数")
    http_timeout: float = Field(default=60.0, ge=1.0, description="单轮模型调用超时时间（秒）")

    # ---- 对话编排 ----
    max_history: int = Field(default=20, ge=1, le=1000, description="每个用户保留的历史消息条数")
    max_tool_rounds: int = Field(default=10, ge=1, le=50, description="单轮对话内工具调用最大轮数")
    enable_tools: bool = Field(default=True, description="是否向模型提供工具目录")
    tool_timeout: float = Field(default=30.0, gt=0.0, description="单个工具执行超时时间（秒）")
    system_prompt_file: str = Field(default="prompts/system_prompt.txt", description="系统提示词文件")

    # ---- 内置工具 / 聊天平台 ----
    discord_token: Optional[str] = Field(default=None, description="内置服务器查询工具使用的 Bot Token")
    discord_api_base: str = Field(default="https://discord.com/api/v10", description="Discord REST 基础URL")
    allowed_user_id: Optional[int] = Field(default=None, description="允许对话的唯一用户 ID，留空则不限制")

    # ---- 日志 ----
    log_level: str = Field(default="INFO", description="日志级别")
    log_dir: Optional[str] = Field(default=None, description="日志目录，留空则输出到 stderr")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )

    def check(self) -> None:
        """启动时校验配置，失败时抛出 ConfigurationError。"""
        if not self.openai_api_key:
            raise ConfigurationError(code="CONFIG_ERROR", message="OPENAI_API_KEY not set")
        if len(self.openai_api_key) < MIN_API_KEY_LENGTH:
            raise ConfigurationError(code="CONFIG_ERROR", message="OPENAI_API_KEY seems too short")
        if not self.openai_model.strip():
            raise ConfigurationError(code="CONFIG_ERROR", message="OPENAI_MODEL must not be empty")


settings = AgentSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = AgentSettings
