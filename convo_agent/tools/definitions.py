"""工具数据结构定义。

这些 dataclass 描述了“工具调用”的 schema，既用于：
- 将可用工具目录暴露给 LLM（ToolDef / ToolParam）。
- 在编排层中保存和执行模型触发的工具调用（ToolCall / ToolResult）。
"""

from dataclasses import dataclass
from typing import Dict, Any, List


@dataclass(frozen=True)
class ToolParam:
    """单个工具参数的定义。"""

    name: str
    description: str
    required: bool
    schema: Dict[str, Any]


@dataclass(frozen=True)
class ToolDef:
    """一个可供 LLM 调用的工具定义。"""

    name: str
    description: str
    params: Dict[str, ToolParam]

    def parameters_schema(self) -> Dict[str, Any]:
        """把参数定义渲染为 JSON Schema（object 类型）。"""

        properties: Dict[str, Any] = {}
        required: List[str] = []
        for name, param in self.params.items():
            schema = dict(param.schema or {"type": "string"})
            if param.description:
                schema["description"] = param.description
            properties[name] = schema
            if param.required:
                required.append(name)
        return {
            "type": "object",
            "properties": properties,
            "required": required,
        }


@dataclass(frozen=True)
class ToolCall:
    """模型发起的一次工具调用请求。

    arguments 保留后端返回的原始 JSON 文本，解析在分发器中进行。
    """

    id: str
    name: str
    arguments: str


@dataclass(frozen=True)
class ToolResult:
    """工具执行结果的封装（文本形式），每个 ToolCall 恰好对应一个。"""

    call_id: str
    content: str
