"""Exception hierarchy for the extraction pipeline."""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class ServiceUnavailableError(APIClientError):
    """Raised when a text-generation call fails or exceeds its timeout.

    Stages catch this and fall back to their default value.
    """
    pass


class MalformedResponseError(AppError):
    """Model output could not be recovered even after the full parser chain."""
    pass


class SchemaViolationError(AppError):
    """An entity or mapping refers to a type or field outside the closed set."""
    pass


class PipelineAbortError(AppError):
    """The operation is meaningless (e.g. empty document) and must not proceed."""
    pass
