"""Domain errors raised by the cart, checkout and search services.

Every failure that reaches a caller is a ``DomainError`` subclass so the HTTP
layer can map it to the response envelope in one place (see ``main.py``).
"""
from typing import List, Optional


class DomainError(Exception):
    """Base class for all domain errors."""

    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class InvalidArgument(DomainError):
    """Malformed or missing required input."""

    status_code = 400


class NotFound(DomainError):
    """Cart, cart line, product or order does not exist."""

    status_code = 404


class InsufficientStock(DomainError):
    """Requested quantity exceeds the product's current stock.

    Kept apart from ``InvalidArgument`` because a caller can retry with a
    lower quantity.
    """

    status_code = 409


class Unauthorized(DomainError):
    status_code = 401


class Forbidden(DomainError):
    status_code = 403


class ExternalServiceDegraded(Exception):
    """The external catalog could not be queried.

    Never leaves the catalog search service.
    """
