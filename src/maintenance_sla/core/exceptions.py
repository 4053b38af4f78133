"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class NotFoundError(ApplicationException):
    """Exception when a referenced resource is absent."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class InvalidStateError(DomainException):
    """Operation attempted on a terminal or otherwise ineligible request."""

    def __init__(
        self,
        request_id: str,
        status: str,
        operation: str,
        details: Optional[dict] = None
    ):
        self.request_id = request_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} request {request_id} in status {status}",
            details or {"request_id": request_id, "status": status}
        )


class ConcurrencyConflict(DomainException):
    """
    A conditional write lost the race against another writer.

    Never surfaced to users: the caller treats it as "state already changed".
    """

    def __init__(self, request_id: str, operation: str, details: Optional[dict] = None):
        self.request_id = request_id
        self.operation = operation
        super().__init__(
            f"{operation} for request {request_id} lost to a concurrent write",
            details or {"request_id": request_id}
        )


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class DispatchError(ExternalServiceException):
    """Notification delivery was not confirmed."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Notification Dispatcher", message, details)
