"""Custom exceptions for StyleRec.

Defines specific exception types for better error handling and reporting.
Every exception carries the HTTP status code the API layer answers with.
"""

from typing import Any, Dict, Optional


class StyleRecException(Exception):
    """Base exception for StyleRec errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code for API responses
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class ValidationError(StyleRecException):
    """Raised when an interaction event is malformed and must not be recorded."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=400, details=details)


class UnknownRecommendationTypeError(StyleRecException):
    """Raised when a caller asks for a recommendation type that does not exist."""

    def __init__(self, value: str):
        message = f"Unknown recommendation type '{value}'"
        super().__init__(
            message=message,
            status_code=400,
            details={"recommendation_type": value},
        )


class ArtifactsNotFoundError(StyleRecException):
    """Raised when similarity artifacts cannot be found."""

    def __init__(self, model_dir: str, details: Optional[Dict[str, Any]] = None):
        message = (
            f"Similarity artifacts not found at '{model_dir}'. "
            "Run a similarity computation first."
        )
        super().__init__(
            message=message,
            status_code=503,
            details=details or {"model_dir": model_dir},
        )


class ArtifactLoadError(StyleRecException):
    """Raised when similarity artifacts fail to load."""

    def __init__(self, model_dir: str, error: Exception):
        message = f"Failed to load similarity artifacts from '{model_dir}': {str(error)}"
        super().__init__(
            message=message,
            status_code=500,
            details={
                "model_dir": model_dir,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )


class RecommendationError(StyleRecException):
    """Raised when recommendation generation fails."""

    def __init__(self, user_id: int, error: Exception):
        message = f"Failed to generate recommendations for user {user_id}: {str(error)}"
        super().__init__(
            message=message,
            status_code=500,
            details={
                "user_id": user_id,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )
