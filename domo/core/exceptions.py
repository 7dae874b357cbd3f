"""Custom exceptions for the Domo webhook service.

Only authentication failures and malformed payloads are answered with a
non-200 status. Everything else that can go wrong after a webhook has been
authenticated is absorbed so that Tavus does not retry-storm on conditions
this service cannot fix by itself.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class DomoException(Exception):
    """Base exception for all Domo-specific errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize Domo exception.

        Args:
            message: Human-readable error message.
            code: Machine-readable error code.
            status_code: HTTP status code.
            details: Additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class AuthenticationError(DomoException):
    """Webhook failed both signature and token checks (401)."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(
            message=message,
            code="AUTHENTICATION_ERROR",
            status_code=401,
        )


class MalformedPayloadError(DomoException):
    """Webhook body is not a JSON object (500)."""

    def __init__(self, message: str = "Invalid JSON payload") -> None:
        super().__init__(
            message=message,
            code="MALFORMED_PAYLOAD",
            status_code=500,
        )


class NotFoundError(DomoException):
    """Permanent lookup failure (demo or video missing).

    Answered with 200 and a message: retrying cannot make the row appear.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        user_message: str | None = None,
    ) -> None:
        """Initialize not found error.

        Args:
            resource: Name of the resource that was not found.
            resource_id: Optional ID of the resource.
            user_message: Message returned to the webhook caller.
        """
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' not found"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=200,
            details={"resource": resource, "resource_id": resource_id},
        )
        self.user_message = user_message or f"{resource} not found."


class GuardrailViolation(DomoException):
    """A tool call arrived with disallowed or missing arguments."""

    def __init__(self, tool_name: str, reason: str, args: Any = None) -> None:
        super().__init__(
            message=reason,
            code="GUARDRAIL_VIOLATION",
            status_code=200,
            details={"tool_name": tool_name, "args": args},
        )
        self.tool_name = tool_name


class DatabaseError(DomoException):
    """Store operation error (transient, absorbed by the webhook)."""

    def __init__(self, message: str = "A database error occurred") -> None:
        super().__init__(
            message=message,
            code="DATABASE_ERROR",
            status_code=500,
        )


class ExternalServiceError(DomoException):
    """Storage or realtime collaborator error (transient)."""

    def __init__(self, service: str, message: str | None = None) -> None:
        """Initialize external service error.

        Args:
            service: Name of the external service.
            message: Optional error message.
        """
        error_message = message or f"Error communicating with {service}"
        super().__init__(
            message=error_message,
            code="EXTERNAL_SERVICE_ERROR",
            status_code=502,
            details={"service": service},
        )
