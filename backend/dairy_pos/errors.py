# Overview: Error taxonomy shared by the catalog, stock ledger and sale services.

from __future__ import annotations


class LedgerError(Exception):
    """
    Base for every failure the ledger services report to callers.

    Carries a human-readable message plus structured details (field,
    product id, requested vs available quantity) so the caller can act.
    """
    kind = "LedgerError"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "details": self.details}


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""
    kind = "ValidationError"
    status_code = 400


class NotFound(LedgerError):
    """Referenced product or sale does not exist."""
    kind = "NotFound"
    status_code = 404


class InvariantViolation(LedgerError):
    """Business-rule rejection: the operation would make stock negative."""
    kind = "InvariantViolation"
    status_code = 400


class TransientFailure(LedgerError):
    """Contention exceeded the retry budget; the caller may retry."""
    kind = "TransientFailure"
    status_code = 503


class InternalError(LedgerError):
    """Storage or unexpected fault."""
    kind = "InternalError"
    status_code = 500


def insufficient_stock(product, requested: int, action: str | None = None) -> InvariantViolation:
    """Build the InvariantViolation for a decrement larger than stock on hand."""
    if action:
        message = f"Insufficient stock for {action}"
    else:
        message = f"Insufficient stock for {product.name}"
    return InvariantViolation(
        message,
        details={
            "product_id": product.id,
            "product_name": product.name,
            "requested_quantity": requested,
            "available_quantity": product.stock_quantity,
        },
    )
