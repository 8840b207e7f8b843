"""API error definitions.

All API errors are defined here with their corresponding HTTP status codes.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Authentication errors (401)
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"

    # Authorization errors (403)
    E_FORBIDDEN = "E_FORBIDDEN"
    E_INTERNAL_ONLY = "E_INTERNAL_ONLY"
    E_NOT_A_MEMBER = "E_NOT_A_MEMBER"
    E_ADMIN_REQUIRED = "E_ADMIN_REQUIRED"
    E_NOT_MESSAGE_SENDER = "E_NOT_MESSAGE_SENDER"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_CONVERSATION_NOT_FOUND = "E_CONVERSATION_NOT_FOUND"
    E_GROUP_NOT_FOUND = "E_GROUP_NOT_FOUND"
    E_MESSAGE_NOT_FOUND = "E_MESSAGE_NOT_FOUND"
    E_JOIN_REQUEST_NOT_FOUND = "E_JOIN_REQUEST_NOT_FOUND"
    E_MEMBER_NOT_FOUND = "E_MEMBER_NOT_FOUND"
    E_IMAGE_NOT_FOUND = "E_IMAGE_NOT_FOUND"
    E_USER_NOT_FOUND = "E_USER_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_CONVERSATION = "E_INVALID_CONVERSATION"
    E_MESSAGE_EMPTY = "E_MESSAGE_EMPTY"
    E_INVALID_IMAGE = "E_INVALID_IMAGE"
    E_IMAGE_TOO_LARGE = "E_IMAGE_TOO_LARGE"
    E_INVALID_EMOJI = "E_INVALID_EMOJI"
    E_NAME_INVALID = "E_NAME_INVALID"
    E_GROUP_TOO_SMALL = "E_GROUP_TOO_SMALL"
    E_INVALID_POLL = "E_INVALID_POLL"
    E_INVALID_POLL_OPTION = "E_INVALID_POLL_OPTION"
    E_POLL_EXPIRED = "E_POLL_EXPIRED"
    E_NOT_A_POLL = "E_NOT_A_POLL"

    # Conflict errors (409)
    E_ALREADY_MEMBER = "E_ALREADY_MEMBER"
    E_GROUP_FULL = "E_GROUP_FULL"
    E_ALREADY_FRIENDS = "E_ALREADY_FRIENDS"

    # Rate limiting (429)
    E_RATE_LIMITED = "E_RATE_LIMITED"

    # Server errors
    E_AUTH_UNAVAILABLE = "E_AUTH_UNAVAILABLE"  # 503
    E_INTERNAL = "E_INTERNAL"  # 500
    E_STORE_ERROR = "E_STORE_ERROR"  # 500


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_FORBIDDEN: 403,
    ApiErrorCode.E_INTERNAL_ONLY: 403,
    ApiErrorCode.E_NOT_A_MEMBER: 403,
    ApiErrorCode.E_ADMIN_REQUIRED: 403,
    ApiErrorCode.E_NOT_MESSAGE_SENDER: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_CONVERSATION_NOT_FOUND: 404,
    ApiErrorCode.E_GROUP_NOT_FOUND: 404,
    ApiErrorCode.E_MESSAGE_NOT_FOUND: 404,
    ApiErrorCode.E_JOIN_REQUEST_NOT_FOUND: 404,
    ApiErrorCode.E_MEMBER_NOT_FOUND: 404,
    ApiErrorCode.E_IMAGE_NOT_FOUND: 404,
    ApiErrorCode.E_USER_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_INVALID_CONVERSATION: 400,
    ApiErrorCode.E_MESSAGE_EMPTY: 400,
    ApiErrorCode.E_INVALID_IMAGE: 400,
    ApiErrorCode.E_IMAGE_TOO_LARGE: 400,
    ApiErrorCode.E_INVALID_EMOJI: 400,
    ApiErrorCode.E_NAME_INVALID: 400,
    ApiErrorCode.E_GROUP_TOO_SMALL: 400,
    ApiErrorCode.E_INVALID_POLL: 400,
    ApiErrorCode.E_INVALID_POLL_OPTION: 400,
    ApiErrorCode.E_POLL_EXPIRED: 400,
    ApiErrorCode.E_NOT_A_POLL: 400,
    ApiErrorCode.E_ALREADY_MEMBER: 409,
    ApiErrorCode.E_GROUP_FULL: 409,
    ApiErrorCode.E_ALREADY_FRIENDS: 409,
    ApiErrorCode.E_RATE_LIMITED: 429,
    ApiErrorCode.E_AUTH_UNAVAILABLE: 503,
    ApiErrorCode.E_INTERNAL: 500,
    ApiErrorCode.E_STORE_ERROR: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class ForbiddenError(ApiError):
    """Authorization failure error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_FORBIDDEN, message: str = "Forbidden"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)


class ConflictError(ApiError):
    """State conflict error (already a member, group full, ...)."""

    def __init__(self, code: ApiErrorCode, message: str = "Conflict"):
        super().__init__(code, message)


class RateLimitedError(ApiError):
    """Caller exceeded a rate limit."""

    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(ApiErrorCode.E_RATE_LIMITED, message)
