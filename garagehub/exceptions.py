# garagehub/exceptions.py
"""
Domain exceptions for the GarageHub marketplace.

Services raise these; the API layer converts them into HTTP responses
through a single exception handler registered in main.py.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Missing or malformed input, amounts or dates out of range."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Entity absent, or soft-deleted and not visible to the caller."""

    status_code = status.HTTP_404_NOT_FOUND


class UnauthorizedException(DomainException):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Wrong role or not the owner of the resource."""

    status_code = status.HTTP_403_FORBIDDEN


class ConflictException(DomainException):
    """Slot double-booked, duplicate review, duplicate service name."""

    status_code = status.HTTP_409_CONFLICT


class InvalidTransitionException(DomainException):
    """Raised when a booking status change is not in the transition table."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, source: str, target: str) -> None:
        super().__init__(
            f"Cannot transition from {source} to {target}",
            code="InvalidTransition",
            details={"from": source, "to": target},
        )
        self.source = source
        self.target = target


class UpstreamFailureException(DomainException):
    """The payment provider (or another collaborator) call failed."""

    status_code = status.HTTP_502_BAD_GATEWAY


class RateLimitException(DomainException):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message, details={"retry_after": retry_after})
        self.retry_after = retry_after

    def to_http_exception(self) -> HTTPException:
        exc = super().to_http_exception()
        exc.headers = {"Retry-After": str(self.retry_after)}
        return exc
