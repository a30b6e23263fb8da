"""
Custom exceptions, provider error classification and global exception handlers.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import logging

from ragchat.core.config import settings

logger = logging.getLogger(__name__)

RATE_LIMIT_MARKERS = ("429", "resource_exhausted", "quota", "rate limit")
AUTH_MARKERS = ("api key", "api_key", "permission denied", "unauthenticated", "401")
AUTH_STATUSES = (401, 403)
MAX_ERROR_MESSAGE_CHARS = 300


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = None,
    ):
        self.message = message
        self.status_code = status_code
        self.detail = detail or message
        super().__init__(self.message)


class NotFoundError(AppException):
    """Resource not found."""

    def __init__(self, message: str = "Resource not found."):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class UnauthorizedError(AppException):
    """No user identity was supplied."""

    def __init__(self, message: str = "Authentication required."):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppException):
    """Access denied."""

    def __init__(self, message: str = "Not authorized."):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class BadRequestError(AppException):
    """Invalid request."""

    def __init__(self, message: str = "Invalid request."):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class ValidationError(BadRequestError):
    """Empty or too-short input, malformed identifiers."""


class ExtractionError(AppException):
    """Uploaded content could not be turned into text."""

    def __init__(self, message: str = "Could not extract text from file."):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class ProviderRateLimitError(AppException):
    """Cloud provider rate limit persisted and no local backend was reachable."""

    def __init__(self, message: str = "Rate limit or quota exceeded. Try again later."):
        super().__init__(message, status.HTTP_429_TOO_MANY_REQUESTS)


class ProviderAuthError(AppException):
    """Provider credentials are missing or rejected."""

    def __init__(self, message: str = "Cloud API key is missing or invalid."):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class LLMConnectionError(AppException):
    """LLM server connection error."""

    def __init__(self, message: str = "Failed to get response."):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class EmbeddingError(AppException):
    """Embedding generation error."""

    def __init__(self, message: str = "Failed to generate embeddings."):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class EmbeddingCountMismatchError(EmbeddingError):
    """The provider returned a different number of vectors than inputs sent."""

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Embedding count mismatch: sent {expected} texts, received {received} vectors"
        )


class IngestionError(AppException):
    """
    Ingestion stopped part way.

    Chunks persisted by earlier batches are kept, so the document is
    partially indexed when this is raised.
    """

    def __init__(self, message: str = "Failed to process document.", chunks_persisted: int = 0):
        self.chunks_persisted = chunks_persisted
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


# =============================================================================
# Provider error classification
# =============================================================================

def _status_of(exc: BaseException):
    # AppException.status_code is our own HTTP mapping, not an upstream status
    if isinstance(exc, AppException):
        return None
    return getattr(exc, "status_code", None) or getattr(exc, "status", None)


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return True if the error signals a provider rate limit or exhausted quota.

    An explicit upstream status wins over message markers, so a 429 body that
    happens to contain "401" is still a rate limit.
    """
    if isinstance(exc, ProviderRateLimitError):
        return True
    status = _status_of(exc)
    if status == 429:
        return True
    if status in AUTH_STATUSES:
        return False
    msg = str(exc).lower()
    return any(marker in msg for marker in RATE_LIMIT_MARKERS)


def is_auth_error(exc: BaseException) -> bool:
    """Return True if the error signals bad or missing provider credentials."""
    if isinstance(exc, ProviderAuthError):
        return True
    status = _status_of(exc)
    if status in AUTH_STATUSES:
        return True
    if status == 429:
        return False
    msg = str(exc).lower()
    return any(marker in msg for marker in AUTH_MARKERS)


def describe_provider_error(exc: BaseException) -> str:
    """Build the user-facing message for a failed provider call."""
    if is_auth_error(exc):
        return (
            "Cloud API key is missing or invalid. "
            "Set CLOUD_API_KEY to a valid key and restart the service."
        )
    if is_rate_limit_error(exc):
        if settings.USE_LOCAL_LLM:
            return (
                "Cloud rate limit reached and the local model server is not running. "
                'Start it with "ollama serve", then pull '
                f'"{settings.LOCAL_CHAT_MODEL}" and "{settings.LOCAL_EMBEDDING_MODEL}".'
            )
        return (
            "Cloud rate limit or quota exceeded. Try again later, "
            "or set USE_LOCAL_LLM=true and run a local model server."
        )
    raw = getattr(exc, "message", None) or str(exc)
    if not raw:
        return "Failed to get response."
    if len(raw) > MAX_ERROR_MESSAGE_CHARS:
        return raw[:MAX_ERROR_MESSAGE_CHARS] + "..."
    return raw


def to_app_exception(exc: BaseException) -> AppException:
    """Map a provider failure onto the application error taxonomy."""
    if isinstance(exc, AppException) and not isinstance(exc, (ProviderAuthError, ProviderRateLimitError)):
        return exc
    message = describe_provider_error(exc)
    if is_auth_error(exc):
        return ProviderAuthError(message)
    if is_rate_limit_error(exc):
        return ProviderRateLimitError(message)
    return LLMConnectionError(message)


# =============================================================================
# Handlers
# =============================================================================

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "message": exc.message},
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle validation errors with user-friendly messages."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        msg = error["msg"]
        errors.append(f"{field}: {msg}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Invalid input.",
            "errors": errors,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Server error. Please try again later.",
        },
    )
