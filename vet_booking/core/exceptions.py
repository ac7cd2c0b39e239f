"""Domain errors raised by the scheduling and booking services.

Routes translate these into HTTP responses; services never raise
``HTTPException`` directly so they stay usable outside a request.
"""


class BookingError(Exception):
    status_code = 400
    code = 'booking_error'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {'code': self.code, 'message': self.message}


class ValidationError(BookingError):
    """Malformed input, rejected before the store is touched."""
    status_code = 400
    code = 'validation_error'


class Unauthorized(BookingError):
    """Requestor is neither the owning pet owner nor the assigned provider."""
    status_code = 403
    code = 'unauthorized'


class NotFound(BookingError):
    status_code = 404
    code = 'not_found'


class NotAvailable(BookingError):
    """The requested window is not a bookable slot (day off, closed, blocked)."""
    status_code = 409
    code = 'not_available'


class Conflict(BookingError):
    """The slot exists but another non-cancelled appointment holds it."""
    status_code = 409
    code = 'conflict'


class IllegalTransition(BookingError):
    status_code = 422
    code = 'illegal_transition'
