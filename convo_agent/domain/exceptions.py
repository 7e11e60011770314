"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在服务层或聊天平台适配层做统一捕获与用户提示。

分类：
- UpstreamError: 补全后端不可用或返回了无法使用的结果，编排层会走降级路径。
- ToolLoopExceeded: 单轮对话内工具调用轮数超过上限，直接向调用方暴露。
- ToolExecutionError: 工具执行失败，仅在分发器边界内部使用，会被转换为文本结果。
- ConfigurationError: 启动阶段的配置缺失或非法，属于致命错误。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "NO_CHOICE"）。
        message: 可记录到日志的错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 trace_id、tool_name 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class UpstreamError(BusinessError):
    """补全后端错误：无候选、内容为空、响应格式错误或传输失败。"""


class NetworkError(UpstreamError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(UpstreamError):
    """后端返回非 2xx/429 错误时抛出。"""


class RateLimitError(UpstreamError):
    """后端限流错误，编排层按普通上游错误处理（走降级路径）。"""


class ToolLoopExceeded(BusinessError):
    """单轮对话内工具轮数达到上限。"""


class ToolExecutionError(BusinessError):
    """工具执行失败或工具未注册。"""


class ConfigurationError(BusinessError):
    """配置缺失或校验失败。"""
