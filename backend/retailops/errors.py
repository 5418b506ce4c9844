# Overview: Typed service errors shared by every workflow; routes map them to HTTP statuses.

"""
Error taxonomy for the inventory and settlement core.

Services raise these; routes catch ServiceError, roll back the session and
answer {"error": str(exc)} with exc.status_code. Anything that is not a
ServiceError is an unexpected failure (500, logged, opaque message).
"""


class ServiceError(Exception):
    """Base class for errors that carry an HTTP status."""
    status_code = 400


class ValidationError(ServiceError):
    """Malformed or missing input."""
    status_code = 400


class NotFoundError(ServiceError):
    """Unknown id (or a row the caller's tenant cannot see)."""
    status_code = 404


class UnknownProductError(NotFoundError, ValidationError):
    """Product reference does not resolve to a catalog product."""
    status_code = 404


class ForbiddenError(ServiceError):
    """Cross-tenant access."""
    status_code = 403


class AlreadyProcessedError(ServiceError):
    """Stock receipt already left PENDING."""
    status_code = 400


class AlreadySettledError(ServiceError):
    """Invoice is already PAID."""
    status_code = 400


class InvalidTransitionError(ServiceError):
    """Delivery status change not allowed from the current state."""
    status_code = 400


class InsufficientStockError(ServiceError):
    """A bounded stock decrement would go below zero."""
    status_code = 400

    def __init__(self, message: str, *, product_id: int | None = None, product_name: str | None = None,
                 available: int | None = None, requested: int | None = None):
        super().__init__(message)
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested


class InsufficientBalanceError(ServiceError):
    """Gift card balance lower than the redemption amount."""
    status_code = 400


class OverpaymentError(ServiceError):
    """Payment exceeds the invoice's remaining amount due."""
    status_code = 400
