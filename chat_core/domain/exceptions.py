"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或 UI 层做统一捕获与用户提示。

前置条件类错误（EmptyInputError / ConcurrentSendError / MissingApiKeyError /
UnknownModelError）会在任何存储修改之前中止发送；网络阶段的错误
（NetworkError / HttpError）由 Orchestrator 转换为一条可见的助手消息。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "NOT_FOUND"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 conversation_id、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class EmptyInputError(BusinessError):
    """输入为空或只包含空白字符。"""

    def __init__(self, message: str = "Message is empty"):
        super().__init__(code="EMPTY_INPUT", message=message)


class ConcurrentSendError(BusinessError):
    """同一会话已有请求在进行中。"""

    def __init__(self, conversation_id: str):
        super().__init__(
            code="CONCURRENT_SEND",
            message="A request is already in flight for this conversation",
            http_status=409,
            conversation_id=conversation_id,
        )
        self.conversation_id = conversation_id


class MissingApiKeyError(BusinessError):
    def __init__(self, message: str = "Please set your API key in settings"):
        super().__init__(code="MISSING_API_KEY", message=message)


class UnknownModelError(BusinessError):
    """模型 ID 不在任何 Provider 的支持列表中（配置错误）。"""

    def __init__(self, model_id: str):
        super().__init__(code="UNKNOWN_MODEL", message=f"Unknown model: {model_id}", model_id=model_id)
        self.model_id = model_id


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等（没有 HTTP 响应）。"""

    def __init__(self, message: str, **extra):
        super().__init__(code="NETWORK_ERROR", message=message, http_status=502, **extra)


class HttpError(BusinessError):
    """Provider 返回非 2xx，或 2xx 响应体无法解析。

    provider_message 为从响应体中提取的错误信息，提取失败时为通用的
    "HTTP status N"。
    """

    def __init__(self, status: int, provider_message: str, **extra):
        super().__init__(code="HTTP_ERROR", message=provider_message, http_status=status, **extra)
        self.status = status
        self.provider_message = provider_message


class NotFoundError(BusinessError):
    def __init__(self, conversation_id: str):
        super().__init__(
            code="NOT_FOUND",
            message=f"Conversation not found: {conversation_id}",
            http_status=404,
            conversation_id=conversation_id,
        )
        self.conversation_id = conversation_id


class PersistenceError(BusinessError):
    """持久化写入失败。内存状态已生效，调用方只需记录/提示。"""

    def __init__(self, message: str, **extra):
        super().__init__(code="PERSISTENCE_ERROR", message=message, http_status=500, **extra)


class ValidationError(BusinessError):
    """参数或配置校验失败。"""

    def __init__(self, message: str, **extra):
        super().__init__(code="INVALID_SETTINGS", message=message, **extra)


class SendCancelledError(BusinessError):
    """发送已被调用方取消，响应被丢弃。"""

    def __init__(self, conversation_id: str):
        super().__init__(
            code="CANCELLED",
            message="Request cancelled",
            http_status=499,
            conversation_id=conversation_id,
        )
        self.conversation_id = conversation_id
