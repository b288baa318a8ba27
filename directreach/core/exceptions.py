"""
Custom exceptions for the DirectReach rooms engine.
Each exception carries the HTTP status the API layer answers with.
"""
from typing import Optional, List


class DirectReachException(Exception):
    """Base exception for DirectReach"""
    status_code = 500

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(DirectReachException):
    """Malformed rule, threshold or template values. Nothing is written."""
    status_code = 422

    def __init__(self, message: str = "Validation failed", field: str = None, errors: Optional[List[str]] = None):
        if field:
            message = f"Validation failed for field '{field}': {message}"
        self.field = field
        self.errors = errors or []
        super().__init__(message)


class NotFoundError(DirectReachException):
    """Resource not found"""
    status_code = 404

    def __init__(self, resource: str = "Resource", resource_id: str = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(message)


class ConflictError(DirectReachException):
    """Optimistic version check failed on save"""
    status_code = 409

    def __init__(self, resource: str = "Resource", expected: int = None, actual: int = None):
        message = f"{resource} was modified concurrently"
        if expected is not None:
            message = f"{message} (expected version {expected}, found {actual})"
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class RateLimitExceeded(DirectReachException):
    """AI generation budget exhausted for the current window"""
    status_code = 429

    def __init__(self, message: str = "AI generation rate limit exceeded. Please try again later.", retry_after: float = 0.0):
        self.retry_after = retry_after
        super().__init__(message)


class GenerationFailure(DirectReachException):
    """External AI generation call failed"""
    status_code = 502

    def __init__(self, provider: str = "AI provider", message: str = None):
        msg = f"{provider} generation failed"
        if message:
            msg = f"{msg}: {message}"
        self.provider = provider
        super().__init__(msg)


class AIUnavailableError(GenerationFailure):
    """No AI provider is configured or reachable"""

    def __init__(self, message: str = "no AI provider configured"):
        super().__init__("AI", message)


class StorageError(DirectReachException):
    """Persistence failed; the current operation was rolled back"""
    status_code = 500

    def __init__(self, operation: str = "write", message: str = None):
        msg = f"Storage {operation} failed"
        if message:
            msg = f"{msg}: {message}"
        super().__init__(msg)
