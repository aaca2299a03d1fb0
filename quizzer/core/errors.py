"""
Error taxonomy shared by services and the HTTP layer.

Every error carries an HTTP status and a stable ``category`` string that is
rendered as ``error.type`` in JSON responses.
"""
from typing import Any, Optional


class QuizzerError(Exception):
    status_code: int = 500
    category: str = "internal_error"

    def __init__(self, message: str, *, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(QuizzerError):
    """Malformed or missing caller input."""
    status_code = 400
    category = "validation_error"


class AuthenticationError(QuizzerError):
    status_code = 401
    category = "authentication_error"


class NotFoundError(QuizzerError):
    """Referenced quiz, question, subject or user does not exist."""
    status_code = 404
    category = "not_found"


class ConflictError(QuizzerError):
    status_code = 409
    category = "conflict"


class ConfigurationError(QuizzerError):
    """Stored or configured values make the operation impossible."""
    status_code = 500
    category = "configuration_error"


class DataIntegrityError(QuizzerError):
    """Stored data violates an assumed invariant."""
    status_code = 500
    category = "data_integrity_error"


class UpstreamFormatError(QuizzerError):
    """The text-generation reply could not be parsed into the expected shape."""
    status_code = 500
    category = "upstream_format_error"


class TransientUpstreamError(QuizzerError):
    """The text-generation call failed or timed out."""
    status_code = 503
    category = "upstream_unavailable"


class RateLimitError(QuizzerError):
    status_code = 429
    category = "rate_limited"


def error_body(message: Any, error_type: str, status_code: int, details: Optional[Any] = None) -> dict:
    """The ``{"error": {...}}`` envelope every error response uses."""
    error = {"message": message, "type": error_type, "status_code": status_code}
    if details is not None:
        error["details"] = details
    return {"error": error}
