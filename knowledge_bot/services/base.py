from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories.

    Services keep business rules and orchestration and delegate data access
    to repositories.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session


class ServiceError(Exception):
    """Business rule violation mapped to an HTTP status by the API layer."""

    status_code = 400
    error_type = "service_error"

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ServiceError):
    """The request is well formed but breaks a business rule."""

    status_code = 400
    error_type = "validation_error"


class ForbiddenError(ServiceError):
    """The resource belongs to another company or the caller lacks a role."""

    status_code = 403
    error_type = "forbidden"


class NotFoundError(ServiceError):
    status_code = 404
    error_type = "not_found"


class PaymentProviderError(ServiceError):
    """The payment provider rejected or failed a request."""

    status_code = 502
    error_type = "payment_provider_error"
