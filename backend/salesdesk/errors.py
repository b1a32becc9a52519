# Overview: Domain error taxonomy shared by services and routes.

"""
SalesDesk error taxonomy.

Every business failure raised by the service layer is a SalesDeskError
subclass. Routes turn these into JSON bodies with the class's HTTP status;
anything else is an unexpected failure and becomes a logged 500.

- ValidationError:        malformed or incomplete input (nothing written)
- NotFoundError:          unknown (or foreign-account) product/sale/proposal
- InsufficientStockError: a reserve/adjust would drive a stock counter negative
- ConflictError:          duplicate pending proposal, already-decided proposal
- PermissionDeniedError:  acting identity lacks the required permission
- PersistenceError:       the store failed; the unit of work was rolled back
"""

from __future__ import annotations


class SalesDeskError(Exception):
    """Base class for errors reported to API callers."""

    status_code = 400
    code = "error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(SalesDeskError):
    """400-level input problem."""
    status_code = 400
    code = "validation_error"


class NotFoundError(SalesDeskError):
    status_code = 404
    code = "not_found"


class InsufficientStockError(SalesDeskError):
    """A stock counter would go negative; nothing was applied."""
    status_code = 409
    code = "insufficient_stock"


class ConflictError(SalesDeskError):
    """409-level business rule conflict (e.g., a second pending proposal)."""
    status_code = 409
    code = "conflict"


class PermissionDeniedError(SalesDeskError):
    status_code = 403
    code = "permission_denied"


class PersistenceError(SalesDeskError):
    """
    The store failed mid-operation.

    The unit of work has been rolled back before this is raised, so the
    caller can treat it as "nothing happened" unless details say otherwise.
    """
    status_code = 500
    code = "persistence_error"
