"""内置的只读服务器查询工具（Discord REST）。

工具通过 Bot Token 调用 Discord REST API，输出为便于模型阅读的纯文本。
ID 既可以是整数也可以是数字字符串；HTTP 失败会抛出 ToolExecutionError，
由分发器转换为文本错误结果。
"""

from typing import Any, Dict, List, Optional

import httpx

from convo_agent.config.settings import settings
from convo_agent.domain.exceptions import ToolExecutionError
from .definitions import ToolDef, ToolParam
from .executor import RegisteredTool, ToolFunc, ToolRegistry


# https://discord.com/developers/docs/resources/channel#channel-object-channel-types
CHANNEL_TYPES: Dict[int, str] = {
    0: "Text",
    1: "Private",
    2: "Voice",
    3: "GroupDm",
    4: "Category",
    5: "News",
    10: "NewsThread",
    11: "PublicThread",
    12: "PrivateThread",
    13: "Stage",
    14: "Directory",
    15: "Forum",
    16: "Media",
}


class DiscordRestClient:
    """最小化的 Discord REST 客户端，只支持 GET。"""

    def __init__(self, token: str, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.discord_api_base).rstrip("/"),
            headers={"Authorization": f"Bot {token}"},
            timeout=timeout or settings.tool_timeout,
        )

    async def get_json(self, path: str) -> Any:
        try:
            resp = await self._client.get(path)
        except httpx.RequestError as e:
            raise ToolExecutionError(code="NETWORK_ERROR", message=f"Discord request failed: {e}")
        if resp.status_code == 429:
            raise ToolExecutionError(code="RATE_LIMIT", message="Discord rate limit")
        if resp.status_code >= 400:
            raise ToolExecutionError(
                code="API_ERROR",
                message=f"Discord API returned {resp.status_code}",
                http_status=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError:
            raise ToolExecutionError(code="BAD_RESPONSE", message="Discord returned invalid JSON")

    async def aclose(self) -> None:
        await self._client.aclose()


def _parse_snowflake(args: Dict[str, Any], *keys: str) -> Optional[int]:
    for key in keys:
        value = args.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, int) and value > 0:
            return value
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
    return None


def _channel_kind(raw: Any) -> str:
    if isinstance(raw, int):
        return CHANNEL_TYPES.get(raw, f"Unknown({raw})")
    return "Unknown"


def _make_channel_list_tool(client: DiscordRestClient) -> ToolFunc:
    async def _run(args: Dict[str, Any]) -> str:
        guild_id = _parse_snowflake(args, "guild_id", "query")
        if guild_id is None:
            return "Invalid Guild ID"
        channels = await client.get_json(f"/guilds/{guild_id}/channels")
        if not isinstance(channels, list):
            raise ToolExecutionError(code="BAD_RESPONSE", message="unexpected channel list payload")
        lines = [
            f"{ch.get('name', '')}: {ch.get('id', '')} ({_channel_kind(ch.get('type'))})"
            for ch in channels
            if isinstance(ch, dict)
        ]
        return "\n".join(lines)

    return _run


def _make_channel_info_tool(client: DiscordRestClient) -> ToolFunc:
    async def _run(args: Dict[str, Any]) -> str:
        channel_id = _parse_snowflake(args, "channel_id")
        if channel_id is None:
            return "Invalid Channel ID"
        ch = await client.get_json(f"/channels/{channel_id}")
        if not isinstance(ch, dict):
            raise ToolExecutionError(code="BAD_RESPONSE", message="unexpected channel payload")
        lines = [
            f"name: {ch.get('name', '')}",
            f"id: {ch.get('id', '')}",
            f"type: {_channel_kind(ch.get('type'))}",
        ]
        if ch.get("topic"):
            lines.append(f"topic: {ch['topic']}")
        if ch.get("parent_id"):
            lines.append(f"parent_id: {ch['parent_id']}")
        if ch.get("guild_id"):
            lines.append(f"guild_id: {ch['guild_id']}")
        lines.append(f"nsfw: {bool(ch.get('nsfw', False))}")
        return "\n".join(lines)

    return _run


def _make_guild_info_tool(client: DiscordRestClient) -> ToolFunc:
    async def _run(args: Dict[str, Any]) -> str:
        guild_id = _parse_snowflake(args, "guild_id", "query")
        if guild_id is None:
            return "Invalid Guild ID"
        guild = await client.get_json(f"/guilds/{guild_id}?with_counts=true")
        if not isinstance(guild, dict):
            raise ToolExecutionError(code="BAD_RESPONSE", message="unexpected guild payload")
        lines = [
            f"name: {guild.get('name', '')}",
            f"id: {guild.get('id', '')}",
            f"owner_id: {guild.get('owner_id', '')}",
        ]
        if guild.get("approximate_member_count") is not None:
            lines.append(f"member_count: {guild['approximate_member_count']}")
        if guild.get("description"):
            lines.append(f"description: {guild['description']}")
        return "\n".join(lines)

    return _run


def discord_tool_defs() -> List[ToolDef]:
    return [
        ToolDef(
            name="get_channel_id_list_from_guild_id",
            description=(
                "List channel id from guild id. Columns are output as "
                "`<channel_name>: <channel_id> (<channel_type>)`."
            ),
            params={
                "guild_id": ToolParam(
                    name="guild_id",
                    description="Guild id.",
                    required=True,
                    schema={"type": "integer"},
                )
            },
        ),
        ToolDef(
            name="get_channel_info",
            description="Get channel information.",
            params={
                "channel_id": ToolParam(
                    name="channel_id",
                    description="Channel id.",
                    required=True,
                    schema={"type": "integer"},
                )
            },
        ),
        ToolDef(
            name="get_guild_info",
            description="Get guild information such as name, owner and member count.",
            params={
                "guild_id": ToolParam(
                    name="guild_id",
                    description="Guild id.",
                    required=True,
                    schema={"type": "integer"},
                )
            },
        ),
    ]


def discord_tools(client: DiscordRestClient) -> List[RegisteredTool]:
    handlers = {
        "get_channel_id_list_from_guild_id": _make_channel_list_tool(client),
        "get_channel_info": _make_channel_info_tool(client),
        "get_guild_info": _make_guild_info_tool(client),
    }
    return [RegisteredTool(definition=d, handler=handlers[d.name]) for d in discord_tool_defs()]


def build_tool_registry(cfg=settings, client: Optional[DiscordRestClient] = None) -> ToolRegistry:
    """根据配置构建默认工具注册表。

    未配置 discord_token 且未显式传入 client 时返回空目录，编排层据此关闭工具模式。
    """

    if client is None:
        token = getattr(cfg, "discord_token", None)
        if not token:
            return ToolRegistry(timeout=cfg.tool_timeout)
        client = DiscordRestClient(token, base_url=cfg.discord_api_base, timeout=cfg.tool_timeout)
    return ToolRegistry(discord_tools(client), timeout=cfg.tool_timeout, resources=[client])
