"""
Domain error taxonomy shared by the reservation engine and the inventory ledger.

Services raise these; the HTTP layer maps them to status codes through
app.core.exception_handlers. Nothing here is retried internally.
"""


class DomainError(Exception):
    status_code = 400
    code = "domain_error"

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class NotFound(DomainError):
    status_code = 404
    code = "not_found"


class Forbidden(DomainError):
    status_code = 403
    code = "forbidden"


class Conflict(DomainError):
    """Uniqueness violation (duplicate SKU, email, phone, table number)."""
    status_code = 409
    code = "conflict"


class InvalidOperation(DomainError):
    """Business-rule violation."""
    status_code = 400
    code = "invalid_operation"


class InsufficientStock(InvalidOperation):
    code = "insufficient_stock"


class CapacityExceeded(InvalidOperation):
    code = "capacity_exceeded"


class InvalidStatusTransition(InvalidOperation):
    code = "invalid_status_transition"


class InvalidState(InvalidOperation):
    code = "invalid_state"


class LedgerImmutable(InvalidOperation):
    code = "ledger_immutable"


class TableUnavailable(InvalidOperation, Conflict):
    status_code = 409
    code = "table_unavailable"


# Overlapping bookings surface under either name
ConflictError = TableUnavailable


class ForbiddenCrossRestaurantTransfer(InvalidOperation, Forbidden):
    status_code = 403
    code = "forbidden_cross_restaurant_transfer"
