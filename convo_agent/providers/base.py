"""模型客户端抽象接口。

编排层不直接依赖具体后端的 HTTP 细节，而是依赖此协议：

- complete(messages): 单次补全，不带工具目录，返回最终文本。
- complete_with_tools(messages, tools): 返回 (文本, 可选的工具调用列表)。
- aclose(): 释放底层连接。

客户端除固定配置外无状态，也不在内部重试；重试与降级策略属于编排层。
两个方法要么返回结构化结果，要么抛出 UpstreamError，没有第三种状态。
"""

from typing import List, Optional, Protocol, Tuple

from convo_agent.domain.models import ChatMessage
from convo_agent.tools.definitions import ToolCall, ToolDef


class ModelClient(Protocol):
    """补全后端客户端协议。"""

    name: str

    async def complete(self, messages: List[ChatMessage]) -> str:
        ...

    async def complete_with_tools(
        self,
        messages: List[ChatMessage],
        tools: List[ToolDef],
        tool_choice: Optional[str] = None,
    ) -> Tuple[str, Optional[List[ToolCall]]]:
        ...
