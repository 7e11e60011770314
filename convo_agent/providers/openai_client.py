"""OpenAI 兼容补全后端适配器。

本模块负责：

1. 接收统一的 ChatMessage 列表与可选的工具目录。
2. 将其转换为 chat/completions 的 HTTP 请求格式。
3. 调用 HTTP 接口并把网络/API 异常映射为 UpstreamError 体系。
4. 只消费第一个 choice，将其解析为最终文本或 ToolCall 列表。

URL: {base_url}/chat/completions，认证: Authorization: Bearer <api_key>。
"""

import json
from typing import Any, Dict, List, Optional, Tuple

import httpx

from convo_agent.domain.exceptions import ApiError, NetworkError, RateLimitError, UpstreamError
from convo_agent.domain.models import ChatMessage, ChatRequest, ChatUsage
from convo_agent.infrastructure.logging.logger import logger
from convo_agent.providers.registry import CompletionOptions
from convo_agent.tools.definitions import ToolCall, ToolDef


class OpenAIClient:
    """OpenAI 兼容后端的客户端实现。

    - name: Provider 名称（供日志/调试使用）。
    - complete / complete_with_tools: 对外统一调用入口。
    """

    name = "openai"

    def __init__(self, options: CompletionOptions, http_client: Optional[httpx.AsyncClient] = None):
        self._options = options
        self._client = http_client or httpx.AsyncClient(timeout=options.timeout, trust_env=False)

    @property
    def options(self) -> CompletionOptions:
        return self._options

    async def aclose(self) -> None:
        await self._client.aclose()

    async def complete(self, messages: List[ChatMessage]) -> str:
        data = await self._post(ChatRequest(messages=messages))
        return self._text_content(self._first_message(data))

    async def complete_with_tools(
        self,
        messages: List[ChatMessage],
        tools: List[ToolDef],
        tool_choice: Optional[str] = None,
    ) -> Tuple[str, Optional[List[ToolCall]]]:
        """带工具目录的补全。

        模型选择调用工具时 text 可能为空、调用列表非空；
        否则 text 为最终回答，调用列表为 None。
        """

        req = ChatRequest(messages=messages)
        if tools:
            req.tools = list(tools)
            req.tool_choice = tool_choice or "auto"
        data = await self._post(req)
        message = self._first_message(data)
        tool_calls = self._parse_tool_calls(message)
        if tool_calls:
            return self._text_content(message, allow_empty=True), tool_calls
        return self._text_content(message), None

    # ---- 辅助方法 ----

    async def _post(self, req: ChatRequest) -> Dict[str, Any]:
        payload = self._build_payload(req)
        headers = {"Content-Type": "application/json"}
        if self._options.api_key:
            headers["Authorization"] = f"Bearer {self._options.api_key}"
        url = f"{self._options.base_url.rstrip('/')}/chat/completions"
        try:
            resp = await self._client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            # 超时与其他网络错误一样走降级路径
            raise NetworkError(code="MODEL_TIMEOUT", message=str(e) or "backend request timed out")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Backend rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        try:
            data = resp.json()
        except ValueError:
            raise UpstreamError(code="BAD_RESPONSE", message="Backend returned invalid JSON")
        if not isinstance(data, dict):
            raise UpstreamError(code="BAD_RESPONSE", message="Backend returned a non-object response")
        usage = self._parse_usage(data)
        if usage:
            logger.debug(
                "Token usage",
                extra={
                    "extra": {
                        "model": self._options.model,
                        "prompt_tokens": usage.prompt_tokens,
                        "completion_tokens": usage.completion_tokens,
                        "total_tokens": usage.total_tokens,
                    }
                },
            )
        return data

    def _build_payload(self, req: ChatRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._options.model,
            "messages": [self._message_to_payload(m) for m in req.messages],
        }
        payload.update(self._options.sampling_fields())
        # 工具调用：只有请求中携带了工具定义时才写入 tools/tool_choice
        if req.tools:
            payload["tools"] = [self._serialize_tool(tool) for tool in req.tools]
            if req.tool_choice:
                payload["tool_choice"] = req.tool_choice
        return payload

    @staticmethod
    def _first_message(data: Dict[str, Any]) -> Dict[str, Any]:
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            raise UpstreamError(code="NO_CHOICE", message="No response from backend")
        message = choices[0].get("message")
        if not isinstance(message, dict):
            raise UpstreamError(code="BAD_RESPONSE", message="Backend choice carries no message")
        return message

    @staticmethod
    def _text_content(message: Dict[str, Any], allow_empty: bool = False) -> str:
        content = message.get("content")
        if content is not None and not isinstance(content, str):
            raise UpstreamError(code="BAD_RESPONSE", message="Backend message content is not text")
        if not content:
            if allow_empty:
                return ""
            raise UpstreamError(code="EMPTY_CONTENT", message="No response content from backend")
        return content

    @staticmethod
    def _parse_usage(data: Dict[str, Any]) -> Optional[ChatUsage]:
        usage_raw = data.get("usage")
        if not isinstance(usage_raw, dict):
            return None
        return ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )

    def _parse_tool_calls(self, message: Dict[str, Any]) -> List[ToolCall]:
        """解析 tool_calls 字段，兼容旧版 function_call。"""

        raw_calls = message.get("tool_calls") or []
        if not isinstance(raw_calls, list):
            raise UpstreamError(code="BAD_RESPONSE", message="tool_calls is not a list")

        tool_calls: List[ToolCall] = []
        for idx, call in enumerate(raw_calls):
            if not isinstance(call, dict):
                raise UpstreamError(code="BAD_RESPONSE", message="tool call entry is not an object")
            func = call.get("function") or {}
            if not isinstance(func, dict):
                raise UpstreamError(code="BAD_RESPONSE", message="tool call function is not an object")
            tool_calls.append(
                ToolCall(
                    id=call.get("id") or f"tool_call_{idx}",
                    name=func.get("name") or call.get("name") or "",
                    arguments=self._raw_arguments(func.get("arguments")),
                )
            )

        function_call = message.get("function_call")
        if function_call:
            if not isinstance(function_call, dict):
                raise UpstreamError(code="BAD_RESPONSE", message="function_call is not an object")
            tool_calls.append(
                ToolCall(
                    id=function_call.get("id") or "function_call",
                    name=function_call.get("name") or "",
                    arguments=self._raw_arguments(function_call.get("arguments")),
                )
            )
        return tool_calls

    @staticmethod
    def _raw_arguments(raw: Any) -> str:
        if raw is None:
            return ""
        if isinstance(raw, str):
            return raw
        return json.dumps(raw, ensure_ascii=False)

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": message.role, "content": message.content}
        if message.tool_calls:
            payload["content"] = message.content or None
            payload["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in message.tool_calls
            ]
        if message.tool_call_id:
            payload["tool_call_id"] = message.tool_call_id
        return payload

    @staticmethod
    def _serialize_tool(tool: ToolDef) -> Dict[str, Any]:
        """把内部的 ToolDef 转成 function tool 描述。"""

        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters_schema(),
            },
        }
