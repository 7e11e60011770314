"""对外 API 服务模块。

提供简化的函数接口供聊天平台适配层调用：入站消息处理、管理操作，
以及把平台元数据包装进用户输入、把长回答切分为多条消息的辅助函数。
"""

from dataclasses import dataclass
from typing import List, Optional

from convo_agent.agents.base_agent import AgentConfig, AgentEngine
from convo_agent.config.settings import settings
from convo_agent.domain.models import Message
from convo_agent.infrastructure.logging.logger import logger
from convo_agent.infrastructure.storage.memory_store import InMemoryConversationStore
from convo_agent.prompts import load_system_prompt
from convo_agent.providers import create_provider
from convo_agent.tools.discord_tools import build_tool_registry


MESSAGE_CHUNK_CHARS = 1900

_agent: Optional[AgentEngine] = None


@dataclass
class InboundMetadata:
    """入站消息所在的平台上下文，私信时 guild 相关字段留空。"""

    user_name: str
    user_id: str
    channel_id: str
    channel_name: Optional[str] = None
    category_name: Optional[str] = None
    guild_name: Optional[str] = None
    guild_id: Optional[str] = None


def build_agent(cfg=None) -> AgentEngine:
    """根据配置组装一个 AgentEngine；配置非法时抛出 ConfigurationError。"""
    cfg = cfg or settings
    cfg.check()
    agent = AgentEngine(
        store=InMemoryConversationStore(max_history=cfg.max_history),
        model_client=create_provider(cfg),
        tool_registry=build_tool_registry(cfg),
        system_prompt=load_system_prompt(cfg.system_prompt_file),
        config=AgentConfig(
            max_tool_rounds=cfg.max_tool_rounds,
            enable_tools=cfg.enable_tools,
            model_timeout=cfg.http_timeout,
        ),
    )
    logger.info(
        "Agent initialised",
        extra={
            "extra": {
                "model": cfg.openai_model,
                "max_history": cfg.max_history,
                "tools_enabled": agent.tools_enabled,
            }
        },
    )
    return agent


def get_default_agent() -> AgentEngine:
    """获取默认的 Agent 实例（单例）。"""
    global _agent
    if _agent is None:
        _agent = build_agent()
    return _agent


def is_user_allowed(user_id: str, allowed_user_id: Optional[int] = None) -> bool:
    """单一白名单检查：未配置时放行所有用户。"""
    allowed = allowed_user_id if allowed_user_id is not None else settings.allowed_user_id
    if allowed is None:
        return True
    return str(user_id).strip() == str(allowed)


def build_user_prompt(content: str, metadata: InboundMetadata) -> str:
    """把平台元数据和用户输入拼成发给模型的用户消息。"""
    guild = f"{metadata.guild_name or 'DM'} ({metadata.guild_id or '0'})"
    channel = (
        f"{metadata.category_name or 'None'} > "
        f"{metadata.channel_name or metadata.channel_id} ({metadata.channel_id})"
    )
    user = f"{metadata.user_name} ({metadata.user_id})"
    return (
        f"<metadata>\nGuild: {guild}\nChannel: {channel}\nUser: {user}\n</metadata>"
        f"\n\n<user_input>{content}</user_input>"
    )


def split_message(content: str, limit: int = MESSAGE_CHUNK_CHARS) -> List[str]:
    """按字符数切分长回答，保证每段不超过 limit，且不会截断任何字符。"""
    if limit < 1:
        raise ValueError("limit must be >= 1")
    if not content:
        return []
    return [content[i : i + limit] for i in range(0, len(content), limit)]


async def process_message(user_id: str, content: str) -> str:
    return await get_default_agent().process_message(user_id, content)


async def process_message_simple(content: str) -> str:
    return await get_default_agent().process_message_simple(content)


def clear_history(user_id: str) -> None:
    get_default_agent().clear_history(user_id)


def clear_all_histories() -> None:
    get_default_agent().clear_all_histories()


def get_history(user_id: str) -> Optional[List[Message]]:
    return get_default_agent().get_history(user_id)


def active_conversations_count() -> int:
    return get_default_agent().active_conversations_count()


def update_system_prompt(new_prompt: str) -> None:
    get_default_agent().update_system_prompt(new_prompt)


async def shutdown() -> None:
    """关闭默认 Agent 持有的连接；之后再调用会重新构建。"""
    global _agent
    if _agent is not None:
        agent, _agent = _agent, None
        await agent.aclose()
