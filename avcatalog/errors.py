"""Exception types and user-facing error messages."""

from typing import Any, Optional

import httpx


class CatalogError(Exception):
    """Base class for avcatalog errors."""


class DatabaseError(CatalogError):
    """A database operation failed."""

    def __init__(
        self,
        message: str,
        original_error: Optional[BaseException] = None,
        query: Optional[str] = None,
    ):
        super().__init__(message)
        self.original_error = original_error
        self.query = query


class ValidationError(CatalogError):
    """Input data failed validation."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.value = value


class ExternalServiceError(CatalogError):
    """An ASP or search-engine endpoint returned an error."""

    def __init__(
        self,
        message: str,
        service_name: str,
        status_code: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.service_name = service_name
        self.status_code = status_code
        self.original_error = original_error


class NotFoundError(CatalogError):
    """A requested resource does not exist."""

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(f"{resource_type} not found: {resource_id}")
        self.resource_type = resource_type
        self.resource_id = resource_id


class RateLimitError(CatalogError):
    """A client-side request budget was exhausted."""

    def __init__(self, message: str = "API rate limit exceeded (60 requests per 60 seconds)"):
        super().__init__(message)


ERROR_MESSAGES = {
    "ja": {
        "NETWORK_ERROR": "ネットワークエラーが発生しました。接続を確認してください。",
        "SERVER_ERROR": "サーバーエラーが発生しました。しばらくしてから再度お試しください。",
        "NOT_FOUND": "お探しのページが見つかりませんでした。",
        "UNAUTHORIZED": "認証が必要です。ログインしてください。",
        "FORBIDDEN": "アクセス権限がありません。",
        "VALIDATION_ERROR": "入力内容に誤りがあります。",
        "TIMEOUT": "リクエストがタイムアウトしました。",
        "RATE_LIMITED": "リクエストが多すぎます。しばらくしてから再度お試しください。",
        "UNKNOWN": "予期しないエラーが発生しました。",
    },
    "en": {
        "NETWORK_ERROR": "A network error occurred. Please check your connection.",
        "SERVER_ERROR": "A server error occurred. Please try again later.",
        "NOT_FOUND": "The page you are looking for was not found.",
        "UNAUTHORIZED": "Authentication required. Please log in.",
        "FORBIDDEN": "You do not have permission to access this resource.",
        "VALIDATION_ERROR": "There is an error in your input.",
        "TIMEOUT": "The request timed out.",
        "RATE_LIMITED": "Too many requests. Please try again later.",
        "UNKNOWN": "An unexpected error occurred.",
    },
    "zh": {
        "NETWORK_ERROR": "发生网络错误，请检查您的连接。",
        "SERVER_ERROR": "服务器错误，请稍后再试。",
        "NOT_FOUND": "未找到您要查找的页面。",
        "UNAUTHORIZED": "需要身份验证，请登录。",
        "FORBIDDEN": "您没有访问权限。",
        "VALIDATION_ERROR": "输入内容有误。",
        "TIMEOUT": "请求超时。",
        "RATE_LIMITED": "请求过多，请稍后再试。",
        "UNKNOWN": "发生意外错误。",
    },
    "ko": {
        "NETWORK_ERROR": "네트워크 오류가 발생했습니다. 연결을 확인하세요.",
        "SERVER_ERROR": "서버 오류가 발생했습니다. 잠시 후 다시 시도하세요.",
        "NOT_FOUND": "찾으시는 페이지를 찾을 수 없습니다.",
        "UNAUTHORIZED": "인증이 필요합니다. 로그인하세요.",
        "FORBIDDEN": "접근 권한이 없습니다.",
        "VALIDATION_ERROR": "입력 내용에 오류가 있습니다.",
        "TIMEOUT": "요청 시간이 초과되었습니다.",
        "RATE_LIMITED": "요청이 너무 많습니다. 잠시 후 다시 시도하세요.",
        "UNKNOWN": "예기치 않은 오류가 발생했습니다.",
    },
}


def get_error_code_from_status(status: int) -> str:
    """Map an HTTP status code to an error code key of ERROR_MESSAGES."""
    if status == 400:
        return "VALIDATION_ERROR"
    if status == 401:
        return "UNAUTHORIZED"
    if status == 403:
        return "FORBIDDEN"
    if status == 404:
        return "NOT_FOUND"
    if status == 408:
        return "TIMEOUT"
    if status == 429:
        return "RATE_LIMITED"
    if status >= 500:
        return "SERVER_ERROR"
    return "UNKNOWN"


def get_error_code(error: BaseException) -> str:
    """Classify an exception into an error code."""
    if isinstance(error, RateLimitError):
        return "RATE_LIMITED"
    if isinstance(error, NotFoundError):
        return "NOT_FOUND"
    if isinstance(error, ValidationError):
        return "VALIDATION_ERROR"
    if isinstance(error, httpx.TimeoutException):
        return "TIMEOUT"
    if isinstance(error, httpx.TransportError):
        return "NETWORK_ERROR"
    if isinstance(error, ExternalServiceError) and error.status_code:
        return get_error_code_from_status(error.status_code)
    if isinstance(error, httpx.HTTPStatusError):
        return get_error_code_from_status(error.response.status_code)
    return "UNKNOWN"


def get_user_friendly_error_message(error: BaseException, locale: str = "ja") -> str:
    """Return a localized message suitable for end users."""
    messages = ERROR_MESSAGES.get(locale) or ERROR_MESSAGES["ja"]
    return messages[get_error_code(error)]


def is_retryable_error(error: BaseException) -> bool:
    """Whether a failure is transient and worth retrying."""
    if isinstance(error, (RateLimitError, httpx.TransportError)):
        return True
    status = None
    if isinstance(error, ExternalServiceError):
        status = error.status_code
    elif isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
    if status is None:
        return False
    return status >= 500 or status in (408, 429)
