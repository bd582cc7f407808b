"""API error definitions.

Every error a caller can see is defined here with its HTTP status code.
The categories mirror the failure taxonomy of the access layer:

- NotAuthenticated -> 401
- Unauthorized     -> 403
- ValidationError  -> 400
- NotFound         -> 404
- Conflict         -> 409 (opaque store failures surface as 500 E_INTERNAL)
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
    E_NOT_TICKET_OWNER = "E_NOT_TICKET_OWNER"
    E_NOT_PARTICIPANT = "E_NOT_PARTICIPANT"
    E_ROOM_PRIVATE = "E_ROOM_PRIVATE"
    E_UPLOAD_ACCESS_DENIED = "E_UPLOAD_ACCESS_DENIED"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_PROFILE_NOT_FOUND = "E_PROFILE_NOT_FOUND"
    E_TICKET_NOT_FOUND = "E_TICKET_NOT_FOUND"
    E_RESPONSE_NOT_FOUND = "E_RESPONSE_NOT_FOUND"
    E_CONVERSATION_NOT_FOUND = "E_CONVERSATION_NOT_FOUND"
    E_MEETING_NOT_FOUND = "E_MEETING_NOT_FOUND"
    E_ROOM_NOT_FOUND = "E_ROOM_NOT_FOUND"
    E_INVITE_NOT_FOUND = "E_INVITE_NOT_FOUND"
    E_USER_NOT_FOUND = "E_USER_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_USER_ID = "E_INVALID_USER_ID"
    E_INVALID_ROLE = "E_INVALID_ROLE"
    E_INVALID_SUBJECT = "E_INVALID_SUBJECT"
    E_INVALID_TIME_RANGE = "E_INVALID_TIME_RANGE"
    E_INVALID_CURSOR = "E_INVALID_CURSOR"
    E_INVALID_UPLOAD_KEY = "E_INVALID_UPLOAD_KEY"

    # Conflict errors (409)
    E_CONFLICT = "E_CONFLICT"
    E_PROFILE_EXISTS = "E_PROFILE_EXISTS"
    E_USERNAME_TAKEN = "E_USERNAME_TAKEN"
    E_INVALID_TRANSITION = "E_INVALID_TRANSITION"
    E_INVITE_ALREADY_EXISTS = "E_INVITE_ALREADY_EXISTS"
    E_INVITE_NOT_PENDING = "E_INVITE_NOT_PENDING"
    E_ALREADY_PARTICIPANT = "E_ALREADY_PARTICIPANT"
    E_ALREADY_CONNECTED = "E_ALREADY_CONNECTED"
    E_ROOM_NOT_PRIVATE = "E_ROOM_NOT_PRIVATE"

    # Server errors
    E_AUTH_UNAVAILABLE = "E_AUTH_UNAVAILABLE"  # 503
    E_INTERNAL = "E_INTERNAL"  # 500
    E_SIGN_UPLOAD_FAILED = "E_SIGN_UPLOAD_FAILED"  # 500
    E_SIGN_DOWNLOAD_FAILED = "E_SIGN_DOWNLOAD_FAILED"  # 500
    E_STORAGE_ERROR = "E_STORAGE_ERROR"  # 500


_STATUS_BY_PREFIX_GROUP: dict[int, tuple[ApiErrorCode, ...]] = {
    401: (ApiErrorCode.E_UNAUTHENTICATED,),
    403: (
        ApiErrorCode.E_FORBIDDEN,
        ApiErrorCode.E_NOT_TICKET_OWNER,
        ApiErrorCode.E_NOT_PARTICIPANT,
        ApiErrorCode.E_ROOM_PRIVATE,
        ApiErrorCode.E_UPLOAD_ACCESS_DENIED,
    ),
    404: (
        ApiErrorCode.E_NOT_FOUND,
        ApiErrorCode.E_PROFILE_NOT_FOUND,
        ApiErrorCode.E_TICKET_NOT_FOUND,
        ApiErrorCode.E_RESPONSE_NOT_FOUND,
        ApiErrorCode.E_CONVERSATION_NOT_FOUND,
        ApiErrorCode.E_MEETING_NOT_FOUND,
        ApiErrorCode.E_ROOM_NOT_FOUND,
        ApiErrorCode.E_INVITE_NOT_FOUND,
        ApiErrorCode.E_USER_NOT_FOUND,
    ),
    400: (
        ApiErrorCode.E_INVALID_REQUEST,
        ApiErrorCode.E_INVALID_USER_ID,
        ApiErrorCode.E_INVALID_ROLE,
        ApiErrorCode.E_INVALID_SUBJECT,
        ApiErrorCode.E_INVALID_TIME_RANGE,
        ApiErrorCode.E_INVALID_CURSOR,
        ApiErrorCode.E_INVALID_UPLOAD_KEY,
    ),
    409: (
        ApiErrorCode.E_CONFLICT,
        ApiErrorCode.E_PROFILE_EXISTS,
        ApiErrorCode.E_USERNAME_TAKEN,
        ApiErrorCode.E_INVALID_TRANSITION,
        ApiErrorCode.E_INVITE_ALREADY_EXISTS,
        ApiErrorCode.E_INVITE_NOT_PENDING,
        ApiErrorCode.E_ALREADY_PARTICIPANT,
        ApiErrorCode.E_ALREADY_CONNECTED,
        ApiErrorCode.E_ROOM_NOT_PRIVATE,
    ),
    503: (ApiErrorCode.E_AUTH_UNAVAILABLE,),
    500: (
        ApiErrorCode.E_INTERNAL,
        ApiErrorCode.E_SIGN_UPLOAD_FAILED,
        ApiErrorCode.E_SIGN_DOWNLOAD_FAILED,
        ApiErrorCode.E_STORAGE_ERROR,
    ),
}

# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    code: status for status, codes in _STATUS_BY_PREFIX_GROUP.items() for code in codes
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


class NotAuthenticatedError(ApiError):
    """No (valid) caller identity."""

    def __init__(
        self,
        code: ApiErrorCode = ApiErrorCode.E_UNAUTHENTICATED,
        message: str = "Authentication required",
    ):
        super().__init__(code, message)


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
    """State conflict error (duplicates, illegal transitions)."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_CONFLICT, message: str = "Conflict"):
        super().__init__(code, message)
