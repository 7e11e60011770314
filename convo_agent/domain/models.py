"""统一的对话与结果数据模型。

本模块定义了编排层、会话存储与模型客户端之间共享的标准数据结构：

- Message: 一条持久化在会话记忆中的发言（system/user/assistant），创建后不可变。
- ChatMessage: 发给补全后端的一条线上消息，额外支持 tool 角色与工具调用字段。
- ChatRequest: 发给模型客户端的一次完整请求（消息 + 可选工具目录）。
- TurnOutcome: 一次编排运行的终态，要么是最终回答，要么是分类后的失败。

模型客户端只依赖这些模型，并负责在后端 JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass
from typing import Literal, Optional, List, TYPE_CHECKING

if TYPE_CHECKING:
    # 仅在类型检查时导入，避免运行时循环依赖
    from convo_agent.tools.definitions import ToolCall, ToolDef


# 会话记忆中允许出现的角色
Role = Literal["system", "user", "assistant"]
# 线上消息角色（与 OpenAI 兼容接口的 role 字段对应）
WireRole = Literal["system", "user", "assistant", "tool"]

MESSAGE_ROLES = ("system", "user", "assistant")

FailureKind = Literal["upstream_error", "tool_loop_exceeded"]


@dataclass(frozen=True)
class Message:
    """会话记忆中的一条发言。

    顺序有意义；role 决定它如何渲染给后端。
    """

    role: Role
    content: str

    def __post_init__(self) -> None:
        if self.role not in MESSAGE_ROLES:
            raise ValueError(f"invalid message role: {self.role!r}")

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role="assistant", content=content)

    def to_chat(self) -> "ChatMessage":
        return ChatMessage(role=self.role, content=self.content)


@dataclass
class ChatMessage:
    """发往后端的一条消息，既可用于请求，也可用于解析响应。

    - role: 消息角色，如 system/user/assistant/tool。
    - content: 纯文本内容。
    - tool_calls: 当 role 为 "assistant" 且模型触发工具调用时，
      这里保存模型发起的工具调用列表。
    - tool_call_id: 当 role 为 "tool" 时，用于关联某一次工具调用。
    """

    role: WireRole
    content: str
    tool_calls: Optional[List["ToolCall"]] = None
    tool_call_id: Optional[str] = None


@dataclass
class ChatRequest:
    """一次完整的补全请求。

    采样参数等固定配置不在这里，而在模型客户端持有的 CompletionOptions 中。
    """

    messages: List[ChatMessage]
    # 工具目录：为空时请求中不携带 tools/tool_choice
    tools: Optional[List["ToolDef"]] = None
    tool_choice: Optional[Literal["auto", "none", "required"]] = None


@dataclass
class ChatUsage:
    """后端返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(frozen=True)
class TurnOutcome:
    """一次编排运行的终态。

    成功时 final_text 非空；失败时 failure_kind 与 detail 描述失败类型。
    detail 仅供日志使用，面向用户的措辞由调用方决定。
    """

    final_text: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    detail: str = ""
    used_fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.failure_kind is None

    @classmethod
    def succeeded(cls, text: str, used_fallback: bool = False) -> "TurnOutcome":
        return cls(final_text=text, used_fallback=used_fallback)

    @classmethod
    def failed(cls, kind: FailureKind, detail: str) -> "TurnOutcome":
        return cls(failure_kind=kind, detail=detail)
