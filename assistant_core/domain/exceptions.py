"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在会话层或 UI 层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 session_id、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、读取中断等。"""


class ApiError(BusinessError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """Provider 限流错误。本包不做自动重试，由用户重新提交。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class StreamTimeoutError(BusinessError):
    """看门狗窗口内没有收到任何数据。"""

    def __init__(self, timeout: float, **extra):
        super().__init__(
            code="TIMEOUT",
            message="Request timed out. Please try again.",
            http_status=504,
            timeout=timeout,
            **extra,
        )


class MalformedEventError(BusinessError):
    """单行事件无法解析。仅用于日志诊断，不会跨出聚合器抛出。"""

    def __init__(self, line: str, **extra):
        super().__init__(code="MALFORMED_EVENT", message=f"Malformed stream event: {line!r}", line=line, **extra)


class StreamCancelledError(BusinessError):
    """由本地主动取消触发，不向用户展示。"""

    def __init__(self, message: str = "Stream cancelled", **extra):
        super().__init__(code="CANCELLED", message=message, http_status=499, **extra)
