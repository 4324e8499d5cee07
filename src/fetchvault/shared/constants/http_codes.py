"""HTTP Status Code Constants.

This module contains HTTP status code constants for clear and
type-safe handling of API responses.
"""


class HTTPStatusCodes:
    """HTTP status code constants."""

    # 2xx Success
    OK = 200
    NO_CONTENT = 204

    # 4xx Client Errors
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    ENHANCE_YOUR_CALM = 420  # Non-standard "error limited" signal
    TOO_MANY_REQUESTS = 429

    # 5xx Server Errors
    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504

    THROTTLING = frozenset({ENHANCE_YOUR_CALM, TOO_MANY_REQUESTS})
    TRANSIENT_SERVER_ERRORS = frozenset(
        {INTERNAL_SERVER_ERROR, BAD_GATEWAY, SERVICE_UNAVAILABLE, GATEWAY_TIMEOUT}
    )

    @staticmethod
    def is_success(code: int) -> bool:
        """Check if status code indicates success (2xx)."""
        return 200 <= code < 300

    @staticmethod
    def is_throttling(code: int | None) -> bool:
        """Check if status code is an explicit slow-down signal."""
        return code in HTTPStatusCodes.THROTTLING

    @staticmethod
    def is_transient_server_error(code: int | None) -> bool:
        """Check if status code is a retryable server fault."""
        return code in HTTPStatusCodes.TRANSIENT_SERVER_ERRORS


class HTTPHeaders:
    """Common HTTP header names."""

    ACCEPT = "Accept"
    AUTHORIZATION = "Authorization"
    USER_AGENT = "User-Agent"
    RETRY_AFTER = "Retry-After"


class ContentTypes:
    """Common content type values."""

    JSON = "application/json"
