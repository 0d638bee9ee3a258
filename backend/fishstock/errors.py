# Overview: Domain error taxonomy shared by services and routes.

"""
Every error raised by the stock/sales/audit services carries a stable,
machine-readable ``kind`` plus a human message and optional details.
Routes serialize them with ``to_dict()`` and ``status_code``.
"""

from __future__ import annotations

from decimal import Decimal


def _jsonable(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class StockError(Exception):
    """Base class for domain errors."""
    kind = "error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.kind,
            "message": self.message,
            "details": _jsonable(self.details),
        }


class ValidationError(StockError, ValueError):
    """400-level input problem."""
    kind = "validation_error"
    status_code = 400


class NotFoundError(StockError):
    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id=None):
        message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(message, {"entity": entity, "id": entity_id})
        self.entity = entity
        self.entity_id = entity_id


class InsufficientStockError(StockError):
    """
    Raised when a product cannot cover a requested deduction.

    needed/available/shortfall are kilogram-equivalents; current_stock is the
    box/loose-kg breakdown the check ran against.
    """
    kind = "insufficient_stock"
    status_code = 409

    def __init__(
        self,
        message: str,
        *,
        needed: Decimal,
        available: Decimal,
        current_stock: dict,
        extra: dict | None = None,
    ):
        shortfall = max(Decimal("0"), needed - available)
        details = {
            "needed": needed,
            "available": available,
            "shortfall": shortfall,
            "current_stock": current_stock,
        }
        if extra:
            details.update(extra)
        super().__init__(message, details)
        self.needed = needed
        self.available = available
        self.shortfall = shortfall
        self.current_stock = current_stock


class AlreadyProcessedError(StockError):
    """Audit record is no longer pending."""
    kind = "already_processed"
    status_code = 409


class ConflictError(StockError):
    """409-level business conflict (e.g. a proposal built on a stale sale)."""
    kind = "conflict"
    status_code = 409


class PersistenceError(StockError):
    """Underlying datastore failure; the original exception is chained as __cause__."""
    kind = "persistence_error"
    status_code = 503
