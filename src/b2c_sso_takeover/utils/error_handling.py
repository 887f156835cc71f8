"""
Error Handling Module

Provides a unified approach to error handling across the deployment run with:
- Hierarchical exception classes mapped to the run's failure kinds
- Error context for the log
- Standardized operator-facing formatting
- Integration with logging
"""

import logging
import traceback
from enum import Enum
from typing import Optional, Dict, Any, Union

from b2c_sso_takeover.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorSeverity(Enum):
    """Classification of error severity."""
    ERROR = "error"         # Error, the current stage failed
    FATAL = "fatal"         # Fatal error, the run cannot continue


class BaseError(Exception):
    """
    Base exception for all deployment errors.

    Provides common functionality for context enrichment and
    standardized formatting.
    """

    def __init__(
        self,
        message: str,
        original_exception: Optional[Exception] = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the error.

        Args:
            message: Human-readable error message
            original_exception: Original exception if this wraps another error
            severity: Error severity level
            context: Additional context information
        """
        self.message = message
        self.original_exception = original_exception
        self.severity = severity
        self.context = context or {}
        self.traceback = traceback.format_exc() if original_exception else None

        super().__init__(self.message)

    def log(self, logger: Optional[logging.Logger] = None) -> None:
        """
        Log the error with appropriate severity.

        Args:
            logger: Logger to use, defaults to module logger
        """
        log = logger or globals()["logger"]

        if self.severity == ErrorSeverity.ERROR:
            log_method = log.error
        else:
            log_method = log.critical

        context_str = f" Context: {self.context}" if self.context else ""
        log_method(f"{self.__class__.__name__}: {self.message}{context_str}")

        if self.traceback:
            log.debug(f"Traceback for {self.__class__.__name__}:\n{self.traceback}")


class ConfigurationError(BaseError):
    """Error raised when invocation parameters or settings are invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message,
            severity=ErrorSeverity.FATAL,
            context=context,
            **kwargs
        )


class DependencyError(BaseError):
    """Error raised when a required client library is missing and cannot be installed."""

    def __init__(
        self,
        message: str,
        dependency: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop("context", {})
        if dependency:
            context["dependency"] = dependency

        super().__init__(
            message,
            severity=ErrorSeverity.FATAL,
            context=context,
            **kwargs
        )


class ApiError(BaseError):
    """Base class for directory service interaction errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        payload: Optional[str] = None,
        **kwargs
    ):
        """
        Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            endpoint: API endpoint that was called
            payload: Verbatim error body returned by the service
            **kwargs: Additional arguments
        """
        context = kwargs.pop("context", {})
        if status_code:
            context["status_code"] = status_code
        if endpoint:
            context["endpoint"] = endpoint

        self.status_code = status_code
        self.endpoint = endpoint
        self.payload = payload

        super().__init__(
            message,
            context=context,
            **kwargs
        )


class AuthenticationError(ApiError):
    """Error raised when a session cannot be established. Never retried."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.FATAL)
        super().__init__(message, **kwargs)


class KeyProvisioningError(ApiError):
    """Error raised when a key container cannot be created or populated."""

    def __init__(
        self,
        message: str,
        key_set: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop("context", {})
        if key_set:
            context["key_set"] = key_set
        self.key_set = key_set

        kwargs.setdefault("severity", ErrorSeverity.FATAL)
        super().__init__(message, context=context, **kwargs)


class PolicyUploadError(ApiError):
    """Error raised when a policy document upload is rejected."""

    def __init__(
        self,
        message: str,
        policy_id: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop("context", {})
        if policy_id:
            context["policy_id"] = policy_id
        self.policy_id = policy_id

        super().__init__(message, context=context, **kwargs)


def format_error_for_user(error: Union[BaseError, Exception]) -> str:
    """
    Format an error into an operator-facing message.

    API errors carry the service's own error body, which is shown verbatim.

    Args:
        error: The error to format

    Returns:
        Operator-facing error message
    """
    if isinstance(error, ApiError):
        lines = [error.message]
        if error.status_code:
            lines.append(f"HTTP status: {error.status_code}")
        if error.payload:
            lines.append(f"Service response: {error.payload}")
        return "\n".join(lines)
    if isinstance(error, BaseError):
        return error.message
    return f"An unexpected error occurred: {str(error)}"
