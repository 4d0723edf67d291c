class OrderError(RuntimeError):
    """Base error for order operations."""

    code = "order_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(OrderError):
    """Raised when an order, item, message or dispute id does not resolve."""

    code = "not_found"
    status_code = 404


class ForbiddenError(OrderError):
    """Raised when the acting identity may not perform the operation."""

    code = "forbidden"
    status_code = 403


class BadRequestError(OrderError):
    code = "bad_request"
    status_code = 400


class InvalidTransitionError(BadRequestError):
    """Raised when the order's current status does not allow the operation."""

    code = "invalid_transition"

    def __init__(self, message: str, *, current_status: str | None = None) -> None:
        super().__init__(message)
        self.current_status = current_status


class InvalidPayloadError(BadRequestError):
    code = "invalid_payload"


class MissingIdentifierError(BadRequestError):
    code = "missing_identifier"


class ConflictError(OrderError):
    """Raised when a concurrent writer changed the record first."""

    code = "conflict"
    status_code = 409
