# Overview: Error taxonomy shared by the ledger core and the HTTP layer.

"""
Every error raised across the ledger boundary carries a stable ``kind`` and
an HTTP status. Routes never translate these by hand; the handler registered
in ``create_app`` renders them as ``{"error": ..., "kind": ...}``.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for errors surfaced to callers of the ledger core."""

    kind = "ledger_error"
    status_code = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.kind)
        self.message = message or str(self.args[0])

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class ValidationError(LedgerError, ValueError):
    """Malformed input or a missing required field."""

    kind = "validation_error"
    status_code = 400


class AuthorizationError(LedgerError):
    """The caller's role does not allow this operation."""

    kind = "authorization_error"
    status_code = 403


class TenantMismatchError(AuthorizationError):
    """The target row belongs to a different tenant than the caller's active one."""

    kind = "tenant_mismatch"
    status_code = 403


class NotFoundError(LedgerError):
    """Requested row does not exist."""

    kind = "not_found"
    status_code = 404


class ConflictError(LedgerError, ValueError):
    """Business rule conflict (duplicate SKU, double void, last admin)."""

    kind = "conflict"
    status_code = 409


class InsufficientStockError(LedgerError):
    """Applying the quantity would drive current stock below zero."""

    kind = "insufficient_stock"
    status_code = 409

    def __init__(self, message: str | None = None, *, item_id=None, current_stock=None, requested=None):
        super().__init__(message)
        self.item_id = item_id
        self.current_stock = current_stock
        self.requested = requested

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.current_stock is not None:
            data["current_stock"] = str(self.current_stock)
        if self.requested is not None:
            data["requested"] = str(self.requested)
        return data


class ConcurrencyConflict(LedgerError):
    """The unit of work could not commit atomically; safe to retry."""

    kind = "concurrency_conflict"
    status_code = 503


class IntegrityDrift(LedgerError):
    """Cached stock and the ledger sum disagree in a way Recompute cannot heal."""

    kind = "integrity_drift"
    status_code = 500

    def __init__(self, message: str | None = None, *, item_id=None, cached=None, ledger_sum=None):
        super().__init__(message)
        self.item_id = item_id
        self.cached = cached
        self.ledger_sum = ledger_sum
