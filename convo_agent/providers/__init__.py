"""补全后端集成层。

该包下的模块负责：
- 定义模型客户端抽象接口 (base)。
- 维护补全后端的固定配置 (registry)。
- 提供 OpenAI 兼容后端的具体实现 (openai_client)。
"""

from typing import Optional

import httpx

from convo_agent.config.settings import settings
from convo_agent.providers.base import ModelClient
from convo_agent.providers.openai_client import OpenAIClient
from convo_agent.providers.registry import CompletionOptions


def create_provider(
    cfg=None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ModelClient:
    """根据配置创建模型客户端实例，默认取全局 settings。"""

    options = CompletionOptions.from_settings(cfg or settings)
    return OpenAIClient(options, http_client=http_client)


__all__ = ["CompletionOptions", "ModelClient", "OpenAIClient", "create_provider"]
