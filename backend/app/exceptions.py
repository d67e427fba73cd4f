"""
Centralized Exception Handling for the MFL Proxy Backend
Provides standardized error responses across the API.
"""
from typing import Optional, Dict, Any
from fastapi import HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class AppException(Exception):
    """
    Base exception class for application-specific errors.

    All custom exceptions should inherit from this class to ensure
    consistent error handling and response formatting.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize application exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (default: 500)
            error_code: Machine-readable error code (e.g., "VALIDATION_ERROR")
            details: Additional error details dictionary
        """
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or "INTERNAL_ERROR"
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        if identifier:
            message += f": {identifier}"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND",
            details={"resource": resource, "identifier": identifier}
        )


class LeagueNotFoundError(NotFoundError):
    """Raised when a session has no membership for the requested league."""

    def __init__(self, league_id: str):
        super().__init__(resource="League", identifier=league_id)
        self.league_id = league_id


class InvalidCredentialsError(AppException):
    """Raised when MFL rejects a login."""

    def __init__(self, message: str = "Invalid MFL credentials"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="INVALID_CREDENTIALS"
        )


class LoginTimeoutError(AppException):
    """Raised when the MFL login handshake exceeds its deadline."""

    def __init__(
        self,
        message: str = "Login timeout. MFL may be slow or credentials are incorrect."
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_408_REQUEST_TIMEOUT,
            error_code="LOGIN_TIMEOUT"
        )


class SessionExpiredError(AppException):
    """Raised when no live session exists for a credential."""

    def __init__(self, message: str = "Session expired or invalid"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="SESSION_EXPIRED"
        )


class ExternalAPIError(AppException):
    """Raised when an external API call fails."""

    def __init__(self, service: str, message: str, details: Optional[Dict[str, Any]] = None):
        full_message = f"External API error ({service}): {message}"
        super().__init__(
            message=full_message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="EXTERNAL_API_ERROR",
            details={"service": service, **details} if details else {"service": service}
        )


class UpstreamFetchError(ExternalAPIError):
    """
    Raised when a call to MFL fails at the network or HTTP level.

    Attributes:
        upstream_status: HTTP status returned by MFL, None for network errors and timeouts
    """

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(
            service="MFL",
            message=message,
            details={"upstream_status": upstream_status}
        )
        self.upstream_status = upstream_status


class MalformedResponseError(AppException):
    """Raised when an MFL response does not have the expected shape."""

    def __init__(self, message: str = "Invalid MFL response format", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="MALFORMED_RESPONSE",
            details=details
        )


class RequestRejectedError(AppException):
    """Raised when MFL answers a write action with an embedded error."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="REQUEST_REJECTED"
        )


class RateLimitedError(AppException):
    """Raised when a client exceeds the inbound /api rate limit."""

    def __init__(self, message: str = "Too many requests from this IP, please try again later."):
        super().__init__(
            message=message,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error_code="RATE_LIMITED"
        )


def create_error_response(
    exception: AppException,
    include_traceback: bool = False
) -> JSONResponse:
    """
    Create standardized error response from AppException.

    Args:
        exception: AppException instance
        include_traceback: Whether to include traceback in response (default: False for security)

    Returns:
        JSONResponse with the {success: false, message, details?} envelope
    """
    response_data = {
        "success": False,
        "message": exception.message,
        "code": exception.error_code,
    }

    # Add details if present
    if exception.details:
        response_data["details"] = exception.details

    # Include traceback only in development/debug mode
    if include_traceback:
        import traceback
        response_data["stack"] = traceback.format_exc()

    return JSONResponse(
        status_code=exception.status_code,
        content=response_data
    )


def handle_app_exception(exception: AppException, include_traceback: bool = False) -> JSONResponse:
    """
    Handle AppException and return standardized response.

    Args:
        exception: AppException instance
        include_traceback: Whether to include traceback in response

    Returns:
        JSONResponse with error details
    """
    log = logger.error if exception.status_code >= 500 else logger.warning
    log(
        f"AppException: {exception.error_code} - {exception.message}",
        extra={"error_code": exception.error_code, "details": exception.details}
    )
    return create_error_response(exception, include_traceback=include_traceback)


def handle_validation_exception(exception: RequestValidationError) -> JSONResponse:
    """
    Handle request body/query validation failures.

    Args:
        exception: RequestValidationError raised by FastAPI

    Returns:
        JSONResponse with one entry per invalid field
    """
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exception.errors()
    ]
    logger.warning(f"Validation error: {details}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Validation error", "details": details}
    )


def handle_generic_exception(exception: Exception, include_traceback: bool = False) -> JSONResponse:
    """
    Handle generic exceptions and convert to standardized format.

    Args:
        exception: Generic Exception instance
        include_traceback: Whether to include traceback in response

    Returns:
        JSONResponse with error details
    """
    logger.error(f"Unhandled exception: {str(exception)}", exc_info=True)

    # Convert to AppException
    app_exception = AppException(
        message="Internal server error",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code="INTERNAL_ERROR",
    )

    return create_error_response(app_exception, include_traceback=include_traceback)


def handle_http_exception(exception: HTTPException) -> JSONResponse:
    """
    Handle FastAPI HTTPException and convert to standardized format.

    Args:
        exception: HTTPException instance

    Returns:
        JSONResponse with standardized error format
    """
    logger.warning(f"HTTPException: {exception.status_code} - {exception.detail}")

    message = exception.detail
    if exception.status_code == status.HTTP_404_NOT_FOUND and message == "Not Found":
        message = "Route not found"

    return JSONResponse(
        status_code=exception.status_code,
        content={"success": False, "message": message}
    )


def handle_rate_limit_exception(limit: str) -> JSONResponse:
    """
    Render an exceeded inbound rate limit in the failure envelope.

    Args:
        limit: Description of the limit that was hit (e.g., "100 per 1 minute")

    Returns:
        JSONResponse with status 429
    """
    logger.warning(f"Inbound rate limit exceeded: {limit}")
    return create_error_response(RateLimitedError())
