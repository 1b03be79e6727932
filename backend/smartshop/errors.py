# Overview: Service-layer exception taxonomy translated to HTTP responses by the routes.

from __future__ import annotations


class ShopError(Exception):
    """Base class for domain errors raised by services."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(ShopError):
    """Referenced product, cart, inventory record or order does not exist."""

    status_code = 404


class InvalidStateError(ShopError):
    """Operation is not allowed in the aggregate's current state."""

    status_code = 409


class InsufficientStockError(InvalidStateError):
    def __init__(self, requested: int, available: int):
        super().__init__(
            "Insufficient stock",
            details={"requested": requested, "available": available},
        )


class ExternalServiceError(ShopError):
    """An AI/OCR/vision provider was unreachable or returned an error."""

    status_code = 502
