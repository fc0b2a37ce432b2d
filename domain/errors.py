"""
Domain errors for template fulfillment.

Each error carries a stable `code` and the HTTP status the API layer should
answer with. Anything that is not a FulfillmentError is an unclassified
infrastructure failure (HTTP 500).
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class FulfillmentError(Exception):
    """Base class for terminal, reportable fulfillment failures."""

    code: str = "FULFILLMENT_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            result["details"] = self.details
        return result


class SaleNotFoundError(FulfillmentError):
    code = "SALE_NOT_FOUND"
    status_code = 404


class InvalidSaleStateError(FulfillmentError):
    """Sale exists but cannot be fulfilled in its current state."""

    code = "SALE_NOT_COMPLETED"
    status_code = 409


class AlreadyFulfilledError(InvalidSaleStateError):
    code = "ALREADY_FULFILLED"


class FulfillmentConflictError(FulfillmentError):
    """Another attempt holds the claim on this sale. Safe to retry later."""

    code = "FULFILLMENT_IN_PROGRESS"
    status_code = 409


class InvalidInputError(FulfillmentError):
    code = "INVALID_INPUT"
    status_code = 400


class DownloadDeniedError(Exception):
    """Raised when a download token cannot be honoured."""

    def __init__(self, reason: str, status_code: int, audit_status: str, customer: Any = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code
        self.audit_status = audit_status
        self.customer = customer


__all__ = [
    "FulfillmentError",
    "SaleNotFoundError",
    "InvalidSaleStateError",
    "AlreadyFulfilledError",
    "FulfillmentConflictError",
    "InvalidInputError",
    "DownloadDeniedError",
]
