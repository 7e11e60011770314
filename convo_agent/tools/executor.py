"""工具注册表与分发器。

工具名在启动时映射到处理函数，构成进程内只读的工具目录。
分发器边界上，未注册的工具名、参数 JSON 解析失败、处理函数抛错或超时
都会被转换为 {"error": ...} 形式的文本结果，从不向编排层抛出异常，
因为后端要求每个 tool_call 都有一条对应的 tool 消息。
"""

import asyncio
import inspect
import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from convo_agent.domain.exceptions import ToolExecutionError
from convo_agent.infrastructure.logging.logger import logger
from .definitions import ToolCall, ToolDef, ToolResult


ToolFunc = Callable[[Dict[str, Any]], Union[str, Awaitable[str]]]
RESULT_PREVIEW_CHARS = 200


def error_payload(message: str) -> str:
    return json.dumps({"error": message}, ensure_ascii=False)


@dataclass(frozen=True)
class RegisteredTool:
    definition: ToolDef
    handler: ToolFunc

    @property
    def name(self) -> str:
        return self.definition.name


class ToolRegistry:
    """工具名 -> 处理函数 的映射表。

    - catalogue(): 进程生命周期内稳定的 ToolDef 列表。
    - execute(name, arguments): 执行一个工具，永远返回文本。
    - execute_all(calls): 并发执行一轮中的全部调用，按请求顺序返回结果。
    - aclose(): 关闭工具共享的连接资源。
    """

    def __init__(
        self,
        tools: Iterable[RegisteredTool] = (),
        timeout: Optional[float] = None,
        resources: Iterable[Any] = (),
    ):
        self._tools: Dict[str, RegisteredTool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool
        self._catalogue = tuple(tool.definition for tool in self._tools.values())
        self._timeout = timeout
        # 工具处理函数共享的连接对象（需提供 aclose），随注册表一起关闭
        self._resources = list(resources)

    def catalogue(self) -> List[ToolDef]:
        return list(self._catalogue)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def aclose(self) -> None:
        for resource in self._resources:
            await resource.aclose()
        self._resources.clear()

    async def execute(self, name: str, arguments: str) -> str:
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Unknown tool requested", extra={"extra": {"tool_name": name}})
            return error_payload(f"unknown tool: {name}")

        try:
            args = self._parse_arguments(arguments)
        except ToolExecutionError as exc:
            logger.warning(
                "Invalid tool arguments",
                extra={"extra": {"tool_name": name, "error": exc.message}},
            )
            return error_payload(exc.message)

        start = time.monotonic()
        try:
            if self._timeout:
                output = await asyncio.wait_for(self._invoke(tool.handler, args), timeout=self._timeout)
            else:
                output = await self._invoke(tool.handler, args)
        except asyncio.TimeoutError:
            logger.error(
                "Tool execution timed out",
                extra={"extra": {"tool_name": name, "timeout": self._timeout}},
            )
            return error_payload(f"tool {name} timed out after {self._timeout}s")
        except ToolExecutionError as exc:
            logger.error(
                "Tool execution failed",
                extra={"extra": {"tool_name": name, "code": exc.code, "error": exc.message}},
            )
            return error_payload(exc.message)
        except Exception as exc:
            logger.error(
                "Tool execution raised",
                exc_info=True,
                extra={"extra": {"tool_name": name, "error": str(exc)}},
            )
            return error_payload(f"tool {name} failed: {exc}")

        text = output if isinstance(output, str) else json.dumps(output, ensure_ascii=False, default=str)
        logger.info(
            "Tool execution finished",
            extra={
                "extra": {
                    "tool_name": name,
                    "elapsed_seconds": round(time.monotonic() - start, 3),
                    "result_preview": text[:RESULT_PREVIEW_CHARS],
                }
            },
        )
        return text

    async def execute_call(self, call: ToolCall) -> ToolResult:
        return ToolResult(call_id=call.id, content=await self.execute(call.name, call.arguments))

    async def execute_all(self, calls: List[ToolCall]) -> List[ToolResult]:
        """并发执行同一轮的全部工具调用。

        结果与 calls 一一对应、顺序一致；全部完成后才返回。
        """
        if not calls:
            return []
        return list(await asyncio.gather(*(self.execute_call(call) for call in calls)))

    @staticmethod
    async def _invoke(handler: ToolFunc, args: Dict[str, Any]) -> Any:
        result = handler(args)
        if inspect.isawaitable(result):
            result = await result
        return result

    @staticmethod
    def _parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
        """解析工具调用的 arguments 字段。

        后端会把 arguments 作为 JSON 字符串返回；空字符串视为无参数。
        """

        if raw is None or not raw.strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ToolExecutionError(code="INVALID_ARGUMENTS", message=f"invalid arguments: {exc.msg}")
        if not isinstance(parsed, dict):
            raise ToolExecutionError(code="INVALID_ARGUMENTS", message="invalid arguments: expected a JSON object")
        return parsed
