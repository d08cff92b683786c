"""Shared exception taxonomy for the marketplace.

Every domain error carries a human-readable message and the HTTP status code
the API layer answers with. Module-specific errors (offers, products, users...)
subclass one of the classes below so the routing layer can translate them
without knowing about each module.
"""
from typing import Optional
from uuid import UUID


class MarketError(Exception):
    """Base class for all marketplace errors."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationError(MarketError):
    """Raised when input is malformed or missing."""
    status_code = 400


class UnauthenticatedError(MarketError):
    """Raised when a credential is missing or rejected."""
    status_code = 401


class ForbiddenError(MarketError):
    """Raised when the caller is authenticated but not entitled."""
    status_code = 403


class NotFoundError(MarketError):
    """Raised when a referenced entity does not exist."""
    status_code = 404


class ConflictError(MarketError):
    """Raised when a domain rule is violated (duplicates, lost races)."""
    status_code = 400


def parse_id(value, entity: str = "Resource") -> UUID:
    """Convert a path/body identifier into a UUID.

    Malformed identifiers cannot name an existing record, so they are
    reported as ``NotFoundError`` like any other unknown id.
    """
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(f"{entity} not found")


__all__ = [
    'MarketError',
    'ValidationError',
    'UnauthenticatedError',
    'ForbiddenError',
    'NotFoundError',
    'ConflictError',
    'parse_id'
]
