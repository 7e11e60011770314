"""Agent 引擎核心模块。

实现上下文构建、调用模型客户端、多轮工具调用循环、降级路径与会话记忆更新。

一轮对话（turn）分两个阶段：
1. 主阶段：system prompt + 用户历史 + 新输入，按需进入工具循环，直到模型给出最终回答。
2. 降级阶段：仅当主阶段抛出 UpstreamError 时触发，且只触发一次；
   不带历史、不带工具，只用原始输入和当前 system prompt 做一次单发请求。
ToolLoopExceeded 不会进入降级阶段，直接暴露给调用方。

同一用户的回合在回合锁内串行执行；不同用户完全并行。
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Optional, TypeVar
from uuid import uuid4

from convo_agent.domain.conversation import ConversationStore
from convo_agent.domain.exceptions import NetworkError, ToolLoopExceeded, UpstreamError
from convo_agent.domain.models import ChatMessage, Message, TurnOutcome
from convo_agent.infrastructure.logging.logger import logger
from convo_agent.prompts import DEFAULT_PROMPT
from convo_agent.providers.base import ModelClient
from convo_agent.tools.definitions import ToolDef
from convo_agent.tools.executor import ToolRegistry


T = TypeVar("T")


@dataclass
class AgentConfig:
    max_tool_rounds: int = 10  # 单轮对话内工具轮数上限，超出即 ToolLoopExceeded
    enable_tools: bool = True
    model_timeout: Optional[float] = 60.0  # 单次模型调用超时（秒），None 表示不限
    tool_choice: str = "auto"

    def __post_init__(self) -> None:
        if self.max_tool_rounds < 1:
            raise ValueError("max_tool_rounds must be >= 1")


class AgentEngine:
    def __init__(
        self,
        store: ConversationStore,
        model_client: ModelClient,
        tool_registry: Optional[ToolRegistry] = None,
        system_prompt: str = DEFAULT_PROMPT,
        config: Optional[AgentConfig] = None,
    ):
        self._store = store
        self._model_client = model_client
        self._tool_registry = tool_registry
        self._config = config or AgentConfig()
        self._system_prompt = system_prompt
        self._prompt_lock = threading.Lock()
        if self._config.enable_tools and not self.tools_enabled:
            logger.warning("Tool mode enabled but no tool definitions available; using simple runs")

    # ---- 对外入口 ----

    async def process_message(self, user_id: str, content: str) -> str:
        """处理一条入站消息，返回最终回答。

        Raises:
            UpstreamError: 主阶段与降级阶段都失败。
            ToolLoopExceeded: 工具轮数达到上限。
        """
        outcome = await self._run_turn(user_id, content)
        return outcome.final_text or ""

    async def run_turn(self, user_id: str, content: str) -> TurnOutcome:
        """与 process_message 相同，但把分类后的失败作为 TurnOutcome 返回。"""
        try:
            return await self._run_turn(user_id, content)
        except ToolLoopExceeded as exc:
            return TurnOutcome.failed("tool_loop_exceeded", exc.message)
        except UpstreamError as exc:
            return TurnOutcome.failed("upstream_error", exc.message)

    async def process_message_simple(self, content: str) -> str:
        """无状态单发：不读写记忆、不使用工具。"""
        log_ctx = {"trace_id": f"tr-{uuid4().hex}"}
        self._log(logging.INFO, "Processing simple message", log_ctx)
        return await self._run_simple(self._single_shot_messages(content), log_ctx)

    # ---- 管理操作 ----

    @property
    def system_prompt(self) -> str:
        with self._prompt_lock:
            return self._system_prompt

    def update_system_prompt(self, new_prompt: str) -> None:
        """替换 system prompt，下一轮 BuildContext 立即生效。"""
        with self._prompt_lock:
            self._system_prompt = new_prompt
        logger.info("System prompt updated", extra={"extra": {"prompt_chars": len(new_prompt)}})

    def clear_history(self, user_id: str) -> None:
        self._store.clear(user_id)
        logger.info("Cleared conversation history", extra={"extra": {"user_id": user_id}})

    def clear_all_histories(self) -> None:
        self._store.clear_all()
        logger.info("Cleared all conversation histories")

    def get_history(self, user_id: str) -> Optional[List[Message]]:
        return self._store.snapshot(user_id)

    def active_conversations_count(self) -> int:
        return self._store.active_count()

    @property
    def tools_enabled(self) -> bool:
        return bool(self._config.enable_tools and self._tool_registry is not None and len(self._tool_registry))

    async def aclose(self) -> None:
        """关闭模型客户端与工具持有的 HTTP 连接。"""
        await self._model_client.aclose()
        if self._tool_registry is not None:
            await self._tool_registry.aclose()

    # ---- 回合流水线 ----

    async def _run_turn(self, user_id: str, content: str) -> TurnOutcome:
        start_time = time.time()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "user_id": user_id,
        }
        self._log(logging.INFO, "Processing message", log_ctx)

        async with self._store.turn_lock(user_id):
            used_fallback = False
            try:
                text = await self._primary_stage(user_id, content, log_ctx)
            except ToolLoopExceeded:
                self._log(logging.WARNING, "Reached max tool rounds", log_ctx, max_rounds=self._config.max_tool_rounds)
                raise
            except UpstreamError as primary_error:
                self._log(
                    logging.WARNING,
                    "Primary stage failed, using simple fallback",
                    log_ctx,
                    code=primary_error.code,
                    error=primary_error.message,
                )
                text = await self._fallback_stage(content, primary_error, log_ctx)
                used_fallback = True

            self._finalize(user_id, content, text)

        self._log(
            logging.INFO,
            "Completed agent turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            used_fallback=used_fallback,
        )
        return TurnOutcome.succeeded(text, used_fallback=used_fallback)

    async def _primary_stage(self, user_id: str, content: str, log_ctx: Dict[str, Any]) -> str:
        chat_messages = self._build_context(user_id, content)
        registry = self._tool_registry
        if registry is not None and self.tools_enabled:
            return await self._run_with_tools(registry, chat_messages, log_ctx)
        return await self._run_simple(chat_messages, log_ctx)

    async def _fallback_stage(self, content: str, primary_error: UpstreamError, log_ctx: Dict[str, Any]) -> str:
        """降级：不带历史与工具的单发请求，只尝试一次。"""
        try:
            return await self._run_simple(self._single_shot_messages(content), log_ctx)
        except UpstreamError as exc:
            self._log(logging.ERROR, "Fallback failed", log_ctx, code=exc.code, error=exc.message)
            raise UpstreamError(
                code="FALLBACK_FAILED",
                message=f"primary: {primary_error.message}; fallback: {exc.message}",
                primary_code=primary_error.code,
                fallback_code=exc.code,
            )

    def _build_context(self, user_id: str, content: str) -> List[ChatMessage]:
        """system prompt（每轮重新读取）+ 用户历史 + 新输入。"""
        memory = self._store.get_or_create(user_id)
        chat_messages = [ChatMessage(role="system", content=self.system_prompt)]
        chat_messages.extend(m.to_chat() for m in memory.get_messages())
        chat_messages.append(ChatMessage(role="user", content=content))
        return chat_messages

    def _single_shot_messages(self, content: str) -> List[ChatMessage]:
        return [
            ChatMessage(role="system", content=self.system_prompt),
            ChatMessage(role="user", content=content),
        ]

    def _finalize(self, user_id: str, content: str, text: str) -> None:
        """只持久化用户输入和最终回答，工具中间消息不进入长期记忆。"""
        self._store.append(user_id, Message.user(content))
        self._store.append(user_id, Message.assistant(text))

    async def _run_simple(self, chat_messages: List[ChatMessage], log_ctx: Dict[str, Any]) -> str:
        """简单模式：不使用工具，直接调用模型客户端。"""
        self._log(logging.INFO, "Calling model", log_ctx, message_count=len(chat_messages))
        return await self._with_timeout(self._model_client.complete(chat_messages))

    async def _run_with_tools(
        self, registry: ToolRegistry, chat_messages: List[ChatMessage], log_ctx: Dict[str, Any]
    ) -> str:
        """工具模式：支持多轮工具调用循环。

        实现流程：
        1. 调用模型客户端
        2. 如果有 tool_calls，并发执行工具并把每个调用的结果追加到工作消息列表
        3. 重复步骤 1-2；已执行 max_tool_rounds 轮后仍请求工具则抛出 ToolLoopExceeded
        4. 返回最终回答文本
        """
        tool_defs: List[ToolDef] = registry.catalogue()
        current_messages = list(chat_messages)
        max_rounds = self._config.max_tool_rounds
        tool_rounds = 0

        while True:
            self._log(
                logging.INFO,
                "Model round",
                log_ctx,
                round=tool_rounds + 1,
                max_rounds=max_rounds,
                message_count=len(current_messages),
            )
            text, tool_calls = await self._with_timeout(
                self._model_client.complete_with_tools(current_messages, tool_defs, self._config.tool_choice)
            )

            # 没有工具调用，视为最终回答
            if not tool_calls:
                return text

            if tool_rounds >= max_rounds:
                raise ToolLoopExceeded(
                    code="TOOL_LOOP_EXCEEDED",
                    message=f"model still requested tools after {max_rounds} tool rounds",
                    max_rounds=max_rounds,
                )
            tool_rounds += 1

            self._log(
                logging.INFO,
                "Executing tool calls",
                log_ctx,
                call_count=len(tool_calls),
                tool_names=[call.name for call in tool_calls],
            )
            current_messages.append(ChatMessage(role="assistant", content=text, tool_calls=list(tool_calls)))
            results = await registry.execute_all(tool_calls)
            for result in results:
                current_messages.append(ChatMessage(role="tool", content=result.content, tool_call_id=result.call_id))

    async def _with_timeout(self, awaitable: Awaitable[T]) -> T:
        timeout = self._config.model_timeout
        if not timeout:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            raise NetworkError(code="MODEL_TIMEOUT", message=f"model round timed out after {timeout}s")

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
