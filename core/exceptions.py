"""
Platform Exceptions

This module provides the exception hierarchy shared by the payment settlement
flow and the Chapa gateway integration. Every exception carries the HTTP status
it maps to at the API boundary, so views can translate failures into responses
without inspecting the exception type.

Hierarchy:
- PlatformException
  - ValidationError       (400, client fault, never retried)
  - NotFoundError         (404, client fault)
  - PermissionDeniedError (403, client fault, owner/admin checks)
  - ConflictError         (409, client fault)
  - ConfigurationError    (500, server fault, missing gateway credentials)
  - GatewayError          (502, server fault, caller may retry verify later)

Author: DSP Development Team
Version: 1.0.0
"""

from typing import Optional, Dict, Any


class PlatformException(Exception):
    """
    Base exception class for all settlement and gateway related errors.

    Attributes:
        message (str): Human-readable error message
        status_code (int): HTTP status code the error maps to
        error_code (str): Machine-readable error identifier
        details (Dict[str, Any]): Additional error details

    Example:
        >>> try:
        ...     orchestrator.verify("tx_abc")
        ... except PlatformException as e:
        ...     return Response(e.to_dict(), status=e.status_code)
    """

    default_status_code = 400
    default_error_code = "Error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code or self.default_status_code
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)

    @property
    def is_server_fault(self) -> bool:
        return self.status_code >= 500

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for serialization.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "detail": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class ValidationError(PlatformException):
    """Malformed or unresolvable input, e.g. an unknown course reference."""

    default_status_code = 400
    default_error_code = "ValidationError"


class NotFoundError(PlatformException):
    """
    Raised when a referenced entity does not exist.

    Attributes:
        resource (Optional[str]): The type of the missing resource
    """

    default_status_code = 404
    default_error_code = "NotFound"

    def __init__(self, message: str, resource: Optional[str] = None) -> None:
        self.resource = resource
        details = {"resource": resource} if resource else None
        super().__init__(message, details=details)


class PermissionDeniedError(PlatformException):
    """The caller is neither the owner of the resource nor an admin."""

    default_status_code = 403
    default_error_code = "Forbidden"


class ConflictError(PlatformException):
    """Duplicate transaction reference, duplicate enrollment and similar clashes."""

    default_status_code = 409
    default_error_code = "Conflict"


class ConfigurationError(PlatformException):
    """
    Raised when the payment gateway credentials are missing.

    This is a deployment fault: it is raised before any network call is made
    and is never retried automatically.
    """

    default_status_code = 500
    default_error_code = "ConfigurationError"

    def __init__(self, message: str, setting: Optional[str] = None) -> None:
        details = {"setting": setting} if setting else None
        super().__init__(message, details=details)


class GatewayError(PlatformException):
    """
    Raised when the payment provider fails at transport level or answers with
    an unsuccessful or malformed response.

    Attributes:
        provider_status (Optional[int]): HTTP status returned by the provider
        payload (Optional[Dict[str, Any]]): Raw provider response body, if any
    """

    default_status_code = 502
    default_error_code = "GatewayError"

    def __init__(
        self,
        message: str,
        provider_status: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.provider_status = provider_status
        self.payload = payload
        details: Dict[str, Any] = {}
        if provider_status is not None:
            details["provider_status"] = provider_status
        super().__init__(message, details=details)
