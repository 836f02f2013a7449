"""Typed application errors and their HTTP mapping.

Every error raised on purpose by the service derives from ``AppError`` and
carries the status code and user-safe message returned to the client. Anything
else that escapes a handler is logged and answered with a generic 500.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors with a fixed HTTP status and a safe message."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal server error"

    def __init__(self, message: str = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication required"


class InvalidToken(Unauthenticated):
    message = "Invalid or expired token"


class WrongTokenType(Unauthenticated):
    message = "Invalid token type"


class UserNotFound(Unauthenticated):
    message = "User not found"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Forbidden"


class VerificationRequired(Forbidden):
    message = "Email verification required"


class InsufficientRole(Forbidden):
    message = "Insufficient permissions"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Resource not found"


class CourseNotFound(NotFound):
    message = "Course not found"


class CategoryNotFound(NotFound):
    message = "Category not found"


class EnrollmentNotFound(NotFound):
    message = "Enrollment not found"


class PaymentNotFound(NotFound):
    message = "Payment not found"


class ReviewNotFound(NotFound):
    message = "Review not found"


class ModuleNotFound(NotFound):
    message = "Module not found"


class Conflict(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Request conflicts with the current state"


class EmailAlreadyRegistered(Conflict):
    message = "Email already registered"


class SelfEnrollmentForbidden(Conflict):
    message = "Cannot enroll in your own course"


class AlreadyEnrolled(Conflict):
    message = "Already enrolled in this course"


class PaymentRequired(Conflict):
    message = "This course requires payment"


class FreeCourse(Conflict):
    message = "This course is free; enroll directly"


class AlreadyReviewed(Conflict):
    message = "You have already reviewed this course"


class InvalidActionToken(Conflict):
    message = "Invalid or expired token"


class InvalidSignature(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid signature"


class InvalidWebhookPayload(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid payload"


class UpstreamFailure(AppError):
    """A call to Stripe or the identity provider failed."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Upstream service failed"


async def app_error_handler(request: Request, exc: AppError):
    if isinstance(exc, UpstreamFailure):
        logger.error(f"Upstream failure on {request.method} {request.url.path}: {exc.__cause__!r}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def unhandled_error_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled error: {str(exc)}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
