"""
Domain exceptions and API exception handlers with request ID support
Standardized error response format: { code, message, details?, request_id }
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
from typing import Optional, Dict, Any

from .logging_config import get_request_id

logger = logging.getLogger(__name__)


class TeamNotFoundError(LookupError):
    """Raised when a team cannot be resolved by id or slug"""

    def __init__(self, team_ref: str):
        self.team_ref = team_ref
        super().__init__(f"Team not found: {team_ref}")


class StripeNotConfiguredError(RuntimeError):
    """Raised when a Stripe call is attempted without an API key"""


class WebhookProcessingError(RuntimeError):
    """Raised when a webhook event could not be fully applied and must be redelivered"""

    def __init__(self, provider_event_id: str, message: str):
        self.provider_event_id = provider_event_id
        super().__init__(f"Webhook {provider_event_id or '<no id>'}: {message}")


class ErrorResponse:
    """
    Standard error response format

    Schema: { code, message, status_code, details?, request_id }
    """

    @staticmethod
    def create(
        message: str,
        code: str,
        status_code: int,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> dict:
        """
        Create standardized error response

        Args:
            message: Human-readable error message
            code: Error code (e.g., "VALIDATION_ERROR", "FEATURE_NOT_AVAILABLE", "QUOTA_EXCEEDED")
            status_code: HTTP status code
            request_id: Request ID from context (auto-fetched if None)
            details: Optional additional error details

        Returns:
            Dictionary with error details
        """
        if request_id is None:
            request_id = get_request_id()

        response = {
            "code": code,
            "message": message,
            "status_code": status_code,
        }

        if request_id:
            response["request_id"] = request_id

        if details:
            response["details"] = details

        return response


ERROR_CODE_MAP = {
    400: "BAD_REQUEST",
    401: "AUTH_ERROR",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions with request ID"""
    request_id = get_request_id()

    error_code = ERROR_CODE_MAP.get(exc.status_code, "HTTP_ERROR")
    detail = exc.detail
    error_message = str(detail) if detail else f"HTTP {exc.status_code} error"
    error_details = None

    # Gate and quota errors carry a dict detail with their own code
    if isinstance(detail, dict):
        error_message = detail.get("message") or detail.get("error") or error_message
        error_code = detail.get("code", error_code)
        error_details = {k: v for k, v in detail.items() if k not in ["message", "code"]}

    error_response = ErrorResponse.create(
        message=error_message,
        code=error_code,
        status_code=exc.status_code,
        request_id=request_id,
        details=error_details,
    )

    logger.warning(
        f"HTTP {exc.status_code}: {detail}",
        extra={"path": request.url.path}
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle validation exceptions with request ID"""
    request_id = get_request_id()

    errors = exc.errors()
    error_messages = [f"{err['loc']}: {err['msg']}" for err in errors]
    detail = "; ".join(error_messages)

    error_response = ErrorResponse.create(
        message=f"Validation error: {detail}",
        code="VALIDATION_ERROR",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        request_id=request_id,
        details={"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in errors]},
    )

    logger.warning(f"Validation error: {detail}", extra={"path": request.url.path})

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response
    )


async def team_not_found_handler(request: Request, exc: TeamNotFoundError) -> JSONResponse:
    """Map unresolved teams to 404"""
    error_response = ErrorResponse.create(
        message=str(exc),
        code="TEAM_NOT_FOUND",
        status_code=status.HTTP_404_NOT_FOUND,
        details={"team": exc.team_ref},
    )
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=error_response)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general exceptions with request ID"""
    request_id = get_request_id()

    # Don't expose internal error details outside dev
    from .config import config
    error_message = "Internal server error"
    error_details = None

    if config.ENV == "dev":
        error_message = f"Internal server error: {str(exc)}"
        error_details = {"exception_type": type(exc).__name__}

    error_response = ErrorResponse.create(
        message=error_message,
        code="INTERNAL_ERROR",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        request_id=request_id,
        details=error_details,
    )

    logger.error(
        f"Unhandled exception: {str(exc)}",
        exc_info=True,
        extra={"path": request.url.path}
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response
    )


def register_exception_handlers(app) -> None:
    """Attach the standard handlers to a FastAPI app"""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(TeamNotFoundError, team_not_found_handler)
    app.add_exception_handler(Exception, general_exception_handler)
