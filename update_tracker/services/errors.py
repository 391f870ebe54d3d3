"""Error handling for the update tracker.

This module provides:
- Exception classes for each failure domain (network, classifier, resolution, storage)
- User-friendly error messages with suggested actions
- A centralized error handling service that logs and tallies failures
"""

import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import structlog

log = structlog.stdlib.get_logger()


class ErrorCategory(Enum):
    """Categories of errors for classification and handling."""
    NETWORK = "network"
    STORAGE = "storage"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    CLASSIFIER = "classifier"
    RESOLUTION = "resolution"
    PROCESSING = "processing"
    UNEXPECTED = "unexpected"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ErrorContext:
    """Context information for an error."""
    operation: str
    component: str
    details: dict[str, Any]


@dataclass(frozen=True)
class UserFriendlyError:
    """User-friendly error representation with suggested actions."""
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    suggested_actions: list[str]
    technical_details: str | None = None
    recoverable: bool = True


def _describe(error: Exception) -> str:
    return f"{type(error).__name__}: {error}"


def _join_details(*parts: str | None) -> str | None:
    lines = [part for part in parts if part]
    return "\n".join(lines) if lines else None


class AppError(Exception):
    """Base exception class for application errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNEXPECTED,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        suggested_actions: list[str] | None = None,
        technical_details: str | None = None,
        recoverable: bool = True,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.suggested_actions = suggested_actions or []
        self.technical_details = technical_details
        self.recoverable = recoverable
        self.context = context

    def to_user_friendly(self) -> UserFriendlyError:
        """Convert to user-friendly error representation."""
        return UserFriendlyError(
            message=self.message,
            category=self.category,
            severity=self.severity,
            suggested_actions=self.suggested_actions,
            technical_details=self.technical_details,
            recoverable=self.recoverable,
        )


class NetworkError(AppError):
    """Exception for network-related errors."""

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        suggested_actions = [
            "Check your internet connection",
            "Verify the service URL in the configuration",
            "Try again in a few moments",
        ]
        if status_code == 429:
            suggested_actions = [
                "Wait a few minutes before retrying",
                "Increase request_delay in the configuration",
            ]
        elif status_code == 404:
            suggested_actions = [
                "The endpoint may have moved",
                "Check the configured URL",
            ]
        elif status_code is not None and status_code >= 500:
            suggested_actions = [
                "The remote service is experiencing issues",
                "Try again later",
            ]

        super().__init__(
            message=message,
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.ERROR,
            suggested_actions=suggested_actions,
            technical_details=_join_details(
                f"Status: {status_code}" if status_code else None,
                f"URL: {url}" if url else None,
                _describe(original_error) if original_error else None,
            ),
            recoverable=True,
        )
        self.original_error = original_error
        self.url = url
        self.status_code = status_code


class StorageError(AppError):
    """Exception for catalogue persistence failures."""

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        path: str | None = None,
        operation: str | None = None,
    ) -> None:
        if isinstance(original_error, PermissionError):
            suggested_actions = [
                "Check file permissions on the catalogue",
                "Choose a different catalogue location",
            ]
        elif isinstance(original_error, FileNotFoundError):
            suggested_actions = [
                "Verify the catalogue path is correct",
                "Create the catalogue by saving it first",
            ]
        else:
            suggested_actions = [
                "Check the catalogue path and permissions",
                "Ensure sufficient disk space",
            ]

        super().__init__(
            message=message,
            category=ErrorCategory.STORAGE,
            severity=ErrorSeverity.ERROR,
            suggested_actions=suggested_actions,
            technical_details=_join_details(
                f"Path: {path}" if path else None,
                f"Operation: {operation}" if operation else None,
                _describe(original_error) if original_error else None,
            ),
            recoverable=True,
        )
        self.original_error = original_error
        self.path = path
        self.operation = operation


class ValidationError(AppError):
    """Exception for invalid input."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        constraints: list[str] | None = None,
    ) -> None:
        suggested_actions = ["Review the input requirements"]
        if constraints:
            suggested_actions.extend(f"Ensure: {c}" for c in constraints)

        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.WARNING,
            suggested_actions=suggested_actions,
            technical_details=_join_details(
                f"Field: {field}" if field else None,
                f"Value: {str(value)[:100]}" if value is not None else None,
            ),
            recoverable=True,
        )
        self.field = field
        self.value = value
        self.constraints = constraints or []


class ConfigurationError(AppError):
    """Exception for configuration-related errors."""

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        current_value: Any = None,
        expected: str | None = None,
    ) -> None:
        suggested_actions = [
            "Check the configuration settings",
            "Reset to default values if needed",
        ]
        if expected:
            suggested_actions.append(f"Expected: {expected}")

        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.ERROR,
            suggested_actions=suggested_actions,
            technical_details=_join_details(
                f"Setting: {setting}" if setting else None,
                f"Current: {current_value}" if current_value is not None else None,
            ),
            recoverable=True,
        )
        self.setting = setting
        self.current_value = current_value
        self.expected = expected


class ClassifierError(AppError):
    """The external update classifier failed or answered nonsense."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=ErrorCategory.CLASSIFIER,
            severity=ErrorSeverity.WARNING,
            suggested_actions=[
                "Detection falls back to pattern matching for this cycle",
                "Check that the classifier service is running",
            ],
            technical_details=_join_details(
                f"URL: {url}" if url else None,
                _describe(original_error) if original_error else None,
            ),
            recoverable=True,
        )
        self.url = url
        self.original_error = original_error


class ResolutionError(AppError):
    """A version/build cross-resolution lookup failed."""

    def __init__(
        self,
        message: str,
        catalogue_id: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=ErrorCategory.RESOLUTION,
            severity=ErrorSeverity.WARNING,
            suggested_actions=[
                "The title is compared without the resolved value",
                "Verify the catalogue id of the tracked title",
            ],
            technical_details=_join_details(
                f"Catalogue id: {catalogue_id}" if catalogue_id else None,
                _describe(original_error) if original_error else None,
            ),
            recoverable=True,
        )
        self.catalogue_id = catalogue_id
        self.original_error = original_error


class TitleProcessingError(AppError):
    """Evaluating one tracked title failed; the cycle moves on."""

    def __init__(
        self,
        message: str,
        title_id: str | None = None,
        title: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=ErrorCategory.PROCESSING,
            severity=ErrorSeverity.ERROR,
            suggested_actions=[
                "The title will be checked again next cycle",
                "Review the title's stored data if the failure repeats",
            ],
            technical_details=_join_details(
                f"Title: {title} ({title_id})" if title else None,
                _describe(original_error) if original_error else None,
            ),
            recoverable=True,
        )
        self.title_id = title_id
        self.title = title
        self.original_error = original_error


class ErrorHandlingService:
    """Centralized error handling: conversion, logging and a bounded history."""

    def __init__(self, max_history_size: int = 100) -> None:
        self._error_history: list[tuple[float, AppError]] = []
        self._max_history_size = max_history_size
        log.debug("Error handling service initialized")

    def handle_error(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any] | None = None,
        default: AppError | None = None,
    ) -> UserFriendlyError:
        """Handle an error and return a user-friendly representation.

        Args:
            error: The exception that occurred
            operation: The operation being performed
            component: The component where the error occurred
            context: Additional context information
            default: Error to record when no conversion rule applies

        Returns:
            User-friendly error representation
        """
        app_error = self._convert_to_app_error(error, operation, component, context, default)
        self._log_error(app_error, operation, component, context)

        self._error_history.append((time.time(), app_error))
        if len(self._error_history) > self._max_history_size:
            self._error_history.pop(0)

        return app_error.to_user_friendly()

    def _convert_to_app_error(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any] | None,
        default: AppError | None = None,
    ) -> AppError:
        """Convert a standard exception to an AppError."""
        if isinstance(error, AppError):
            return error

        url = context.get("url") if context else None

        if isinstance(error, httpx.ConnectError):
            return NetworkError(
                message="Unable to connect to the service. Please check your internet connection.",
                original_error=error,
                url=url,
            )
        if isinstance(error, httpx.TimeoutException):
            return NetworkError(
                message="The request timed out. The service may be slow or unavailable.",
                original_error=error,
                url=url,
            )
        if isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code
            return NetworkError(
                message=self._get_http_error_message(status_code),
                original_error=error,
                url=str(error.request.url) if error.request else url,
                status_code=status_code,
            )
        if isinstance(error, httpx.RequestError):
            return NetworkError(
                message="A network error occurred. Please check your connection.",
                original_error=error,
                url=url,
            )

        if isinstance(error, OSError):
            return StorageError(
                message=f"A file system error occurred: {error}",
                original_error=error,
                path=context.get("path") if context else None,
                operation=operation,
            )

        if isinstance(error, json.JSONDecodeError):
            return ValidationError(
                message="Invalid JSON format. The data could not be parsed.",
                field="json_content",
            )
        if isinstance(error, ValueError):
            return ValidationError(
                message=str(error),
                field=context.get("field") if context else None,
                value=context.get("value") if context else None,
            )
        if isinstance(error, TypeError):
            return ValidationError(
                message=f"Invalid data type: {error}",
                field=context.get("field") if context else None,
            )

        if default is not None:
            return default

        return AppError(
            message="An unexpected error occurred.",
            category=ErrorCategory.UNEXPECTED,
            severity=ErrorSeverity.ERROR,
            technical_details=_describe(error),
            recoverable=True,
            context=ErrorContext(
                operation=operation,
                component=component,
                details=context or {},
            ),
        )

    @staticmethod
    def _get_http_error_message(status_code: int) -> str:
        """Get a user-friendly message for HTTP status codes."""
        messages = {
            400: "The request was invalid.",
            401: "Authentication required. Please check your credentials.",
            403: "Access denied by the remote service.",
            404: "The requested resource was not found.",
            408: "The request timed out. Please try again.",
            429: "Too many requests. Please wait before trying again.",
            500: "The service encountered an error. Please try again later.",
            502: "The service is temporarily unavailable. Please try again later.",
            503: "The service is temporarily unavailable. Please try again later.",
            504: "The service took too long to respond. Please try again.",
        }
        return messages.get(status_code, f"HTTP error {status_code} occurred.")

    def _log_error(
        self,
        error: AppError,
        operation: str,
        component: str,
        context: dict[str, Any] | None,
    ) -> None:
        log_method = log.warning if error.severity == ErrorSeverity.WARNING else log.error
        log_method(
            "Error occurred",
            error_message=error.message,
            category=error.category.value,
            severity=error.severity.value,
            operation=operation,
            component=component,
            technical_details=error.technical_details,
            recoverable=error.recoverable,
            context=context,
        )

    def get_error_count_by_category(self) -> dict[ErrorCategory, int]:
        """Count handled errors per category."""
        counts: dict[ErrorCategory, int] = {}
        for _, error in self._error_history:
            counts[error.category] = counts.get(error.category, 0) + 1
        return counts

    def create_user_message(
        self,
        error: UserFriendlyError,
        include_suggestions: bool = True,
    ) -> str:
        """Create a formatted user message from an error.

        Args:
            error: The user-friendly error
            include_suggestions: Whether to include suggested actions

        Returns:
            Formatted message string
        """
        parts = [error.message]
        if include_suggestions and error.suggested_actions:
            parts.append("\nSuggested actions:")
            for action in error.suggested_actions[:3]:
                parts.append(f"  • {action}")
        return "\n".join(parts)


_error_service: ErrorHandlingService | None = None


def get_error_service() -> ErrorHandlingService:
    """Get the global error handling service instance."""
    global _error_service
    if _error_service is None:
        _error_service = ErrorHandlingService()
    return _error_service


def handle_error(
    error: Exception,
    operation: str,
    component: str,
    context: dict[str, Any] | None = None,
) -> UserFriendlyError:
    """Handle an error using the global service."""
    return get_error_service().handle_error(error, operation, component, context)
