# backend/consignbook/errors.py
"""
Engine error taxonomy.

Every engine operation either commits all of its writes or raises one of
these. Routes translate them to HTTP responses via ``http_status``.
"""
from __future__ import annotations


class LedgerError(Exception):
    """Base class for engine-level failures."""

    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": type(self).__name__, "details": self.details}


class ValidationError(LedgerError):
    """400-level input problem (non-positive quantity, missing selection)."""


class NotFoundError(LedgerError):
    http_status = 404


class ProductNotFound(NotFoundError):
    pass


class PartnerNotFound(NotFoundError):
    pass


class ConsignmentNotFound(NotFoundError):
    pass


class SaleNotFound(NotFoundError):
    pass


class PartnerMismatch(LedgerError):
    """Merge attempted across orders of different partners."""

    http_status = 409


class InsufficientStock(LedgerError):
    """A stock-decreasing operation would take a product below zero."""

    http_status = 409


class OverAllocation(LedgerError):
    """Sold + returned would exceed the shipped quantity of an order item."""

    http_status = 409


class StateError(LedgerError):
    """Invalid consignment status transition."""

    http_status = 409
