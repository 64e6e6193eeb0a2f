"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在服务层统一转换为结构化的失败结果。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MESSAGE_NOT_FOUND"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 conversation_id、role 等）。
    """

    code = "BUSINESS_ERROR"
    http_status = 400

    def __init__(self, code: str | None = None, message: str = "", http_status: int | None = None, **extra):
        self.code = code or type(self).code
        self.message = message
        self.http_status = http_status or type(self).http_status
        self.extra = extra
        super().__init__(message)


class MissingConversationOrCredentials(BusinessError):
    """缺少会话 ID、角色卡或 API 凭据，未做任何尝试。"""

    code = "MISSING_CONTEXT"


class MessageNotFound(BusinessError):
    """无法在完整历史中可靠地定位目标消息。"""

    code = "MESSAGE_NOT_FOUND"
    http_status = 404


class MutationRejected(BusinessError):
    """存储层拒绝了编辑/删除/重新生成请求（返回 False 或抛错）。"""

    code = "MUTATION_REJECTED"
    http_status = 409


class UnexpectedError(BusinessError):
    """其他未预期的异常。"""

    code = "UNEXPECTED_ERROR"
    http_status = 500


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""

    code = "NETWORK_ERROR"


class ApiError(BusinessError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""

    code = "API_ERROR"


class RateLimitError(BusinessError):
    """Provider 限流错误，由上层负责重试/退避策略。"""

    code = "RATE_LIMIT"
    http_status = 429


class ValidationError(BusinessError):
    """参数或配置校验失败。"""

    code = "VALIDATION_ERROR"
