"""Gateway error taxonomy.

Route and service code raises ApiError subclasses; responses.py turns them
into envelopes. Provider failures (UpstreamError) and blob store failures
(StorageError) are separate exception types mapped onto these codes there.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Error codes exposed to clients."""

    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"

    # Unknown and foreign-owned ids share this code
    E_NOT_FOUND = "E_NOT_FOUND"

    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_CURSOR = "E_INVALID_CURSOR"

    E_UPSTREAM_FAILURE = "E_UPSTREAM_FAILURE"  # 502
    E_UPSTREAM_TIMEOUT = "E_UPSTREAM_TIMEOUT"  # 504

    E_STORAGE_ERROR = "E_STORAGE_ERROR"  # 500
    E_INTERNAL = "E_INTERNAL"  # 500


ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_INVALID_CURSOR: 400,
    ApiErrorCode.E_UPSTREAM_FAILURE: 502,
    ApiErrorCode.E_UPSTREAM_TIMEOUT: 504,
    ApiErrorCode.E_STORAGE_ERROR: 500,
    ApiErrorCode.E_INTERNAL: 500,
}


class ApiError(Exception):
    """An error with a client-facing code and message; status follows the code."""

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found (or not owned by the requester) error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class UnauthorizedError(ApiError):
    """Authentication failure.

    Every cause (no cookie, expired session, revoked key) uses the same message.
    """

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(ApiErrorCode.E_UNAUTHENTICATED, message)


class InvalidRequestError(ApiError):
    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)
