# hms_pharmacy/core/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class PharmacyError(Exception):
    """
    Base for business-rule failures raised by the services.
    The API layer turns these into the standard error envelope.
    """
    status_code: int = 400
    code: str = "pharmacy_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(PharmacyError):
    status_code = 400
    code = "validation_error"


class NotFoundError(PharmacyError):
    status_code = 404
    code = "not_found"


class AccessDeniedError(PharmacyError):
    status_code = 403
    code = "access_denied"


class InsufficientStockError(PharmacyError):
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, medication_name: str, requested: int, available: int, *, message: str = "") -> None:
        super().__init__(
            message or (f"Insufficient stock for {medication_name}. "
                        f"Available {available}, requested {requested}"),
            details={
                "medication": medication_name,
                "requested": requested,
                "available": available,
            },
        )
        self.medication_name = medication_name
        self.requested = requested
        self.available = available


class OverReturnError(PharmacyError):
    status_code = 409
    code = "over_return"

    def __init__(self, item_name: str, *, sold: int, already_returned: int, requested: int) -> None:
        remaining = sold - already_returned
        super().__init__(
            (f"Return exceeds remaining quantity for {item_name}. "
             f"Sold {sold}, already returned {already_returned}, "
             f"remaining {remaining}, requested {requested}"),
            details={
                "item": item_name,
                "sold": sold,
                "already_returned": already_returned,
                "remaining": remaining,
                "requested": requested,
            },
        )
        self.sold = sold
        self.already_returned = already_returned
        self.remaining = remaining
        self.requested = requested
