# Overview: Error taxonomy shared by services and routes.

"""
Service errors carry everything a route needs to build a response:
an HTTP status, a stable machine code, a human-readable message and
optional details (for example the remaining returnable quantity).

NotFound and ValidationFailed are caller errors and are never retried.
TransientStorageError subclasses are safe to retry as a whole request.
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    code = "POS_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {
            "success": False,
            "message": self.message,
            "error": self.code,
        }
        if self.details:
            body["details"] = self.details
        return body


# =============================================================================
# 404
# =============================================================================

class NotFoundError(PosError):
    status_code = 404
    code = "NOT_FOUND"


class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"


class VariationNotFound(NotFoundError):
    code = "VARIATION_NOT_FOUND"


class SaleNotFound(NotFoundError):
    code = "SALE_NOT_FOUND"


class CustomerNotFound(NotFoundError):
    code = "CUSTOMER_NOT_FOUND"


class CategoryNotFound(NotFoundError):
    code = "CATEGORY_NOT_FOUND"


class ExpenseNotFound(NotFoundError):
    code = "EXPENSE_NOT_FOUND"


class PurchaseOrderNotFound(NotFoundError):
    code = "PURCHASE_ORDER_NOT_FOUND"


# =============================================================================
# 400
# =============================================================================

class ValidationFailed(PosError):
    status_code = 400
    code = "VALIDATION_FAILED"


class InsufficientStock(ValidationFailed):
    code = "INSUFFICIENT_STOCK"


class LineNotFound(ValidationFailed):
    code = "LINE_NOT_FOUND"


class OverReturn(ValidationFailed):
    code = "OVER_RETURN"


class DuplicateName(ValidationFailed):
    code = "DUPLICATE_NAME"


class CategoryInUse(ValidationFailed):
    code = "CATEGORY_IN_USE"


class DuplicateSku(PosError):
    status_code = 409
    code = "DUPLICATE_SKU"


# =============================================================================
# 503
# =============================================================================

class TransientStorageError(PosError):
    status_code = 503
    code = "STORAGE_UNAVAILABLE"


class CounterUnavailable(TransientStorageError):
    code = "COUNTER_UNAVAILABLE"


class StorageTimeout(TransientStorageError):
    code = "STORAGE_TIMEOUT"


class MediaUnavailable(TransientStorageError):
    code = "MEDIA_UNAVAILABLE"
