# cart_engine/domain/errors.py
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    INSUFFICIENT_STOCK = "insufficient_stock"
    OFFER_UNAVAILABLE = "offer_unavailable"
    AUTHORIZATION_REQUIRED = "authorization_required"
    BACKEND_FAILURE = "backend_failure"
    CONCURRENCY_CONFLICT = "concurrency_conflict"


class CartError(Exception):
    """
    Bazowy blad domeny koszyka.
    item_ref wskazuje konkretny produkt/wariant, jesli jest znany
    """

    kind = ErrorKind.BACKEND_FAILURE

    def __init__(self, message: str, item_ref: str | None = None):
        super().__init__(message)
        self.message = message
        self.item_ref = item_ref


class CartValidationError(CartError, ValueError):
    kind = ErrorKind.VALIDATION


class InsufficientStock(CartError):
    kind = ErrorKind.INSUFFICIENT_STOCK


class OfferUnavailable(CartError):
    kind = ErrorKind.OFFER_UNAVAILABLE


class AuthorizationRequired(CartError, PermissionError):
    kind = ErrorKind.AUTHORIZATION_REQUIRED


class BackendFailure(CartError, RuntimeError):
    kind = ErrorKind.BACKEND_FAILURE


class ConcurrencyConflict(CartError, RuntimeError):
    kind = ErrorKind.CONCURRENCY_CONFLICT
