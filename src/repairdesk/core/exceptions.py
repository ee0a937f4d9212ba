"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

Domain and application code raise these; the HTTP layer maps them to
status codes at the boundary.
"""

from typing import List, Optional


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


class PolicyBlockedException(DomainException):
    """Raised when a submission falls outside the lifecycle policy."""


class InvalidTransitionException(DomainException):
    """Requested status is not reachable from the current one for this actor."""

    def __init__(
        self,
        current_status: str,
        requested_status: str,
        allowed_statuses: List[str],
        details: Optional[dict] = None
    ):
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_statuses = list(allowed_statuses)
        super().__init__(
            f"Cannot move ticket from '{current_status}' to '{requested_status}'",
            details or {
                "current_status": current_status,
                "requested_status": requested_status,
                "allowed_statuses": self.allowed_statuses,
            }
        )


class AuthorizationException(ApplicationException):
    """Actor role or ownership does not permit the operation."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

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


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""

