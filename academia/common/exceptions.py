"""
Common Exception Classes

This module defines the error taxonomy of the scoring engine:

- ValidationError: malformed input, rejected before any write
- ConflictError: optimistic-lock mismatch on an aggregate row, retry with fresh state
- NotFoundError: a referenced record does not exist
- StorageError: the underlying persistence layer failed
"""

from typing import Optional, Any, Dict


class BaseError(Exception):
    """Base class for all custom exceptions."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        """
        Initialize the exception.

        Args:
            message: Error message
            original_exception: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.original_exception = original_exception


class ValidationError(BaseError):
    """Exception raised when an operation receives malformed input."""

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        """
        Initialize the validation error.

        Args:
            message: Error message
            errors: Dictionary of field errors
        """
        super().__init__(f"Validation error: {message}")
        self.errors = errors or {}


class ConflictError(BaseError):
    """Exception raised when a concurrent update changed a row we were about to write."""

    def __init__(self, entity_type: str, entity_id: Any, expected_version: Optional[int] = None):
        """
        Initialize the conflict error.

        Args:
            entity_type: Type of the contended entity
            entity_id: ID of the contended entity
            expected_version: Version the writer read before the collision
        """
        super().__init__(
            f"Concurrent update on {entity_type} {entity_id} "
            f"(expected version {expected_version})"
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version


class NotFoundError(BaseError):
    """Exception raised when a resource is not found."""

    def __init__(self, resource_type: str, resource_id: Any):
        """
        Initialize the not found error.

        Args:
            resource_type: Type of resource that wasn't found
            resource_id: ID of the resource that wasn't found
        """
        super().__init__(f"{resource_type} with ID {resource_id} not found")
        self.resource_type = resource_type
        self.resource_id = resource_id


class StorageError(BaseError):
    """Exception raised when the database is unavailable or a statement fails."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__(f"Storage error: {message}", original_exception)


class ConfigurationError(BaseError):
    """Exception raised for configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        """
        Initialize the configuration error.

        Args:
            message: Error message
            config_key: The configuration key that caused the error
        """
        super().__init__(f"Configuration error: {message}")
        self.config_key = config_key
