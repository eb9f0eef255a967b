"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    code = "app_error"

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    code = "not_found"

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class ValidationException(AppException):
    """Missing or malformed booking input."""

    code = "validation_error"

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class InvalidDateRangeException(AppException):
    """Queried date lies in the past."""

    code = "invalid_date_range"

    def __init__(self, message: str = "Date is in the past"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class SlotUnavailableException(AppException):
    """
    The requested slot is taken.

    Raised both when a conflict is detected under the slot lock and when a
    concurrent writer wins the race at the storage layer. Callers re-query
    availability and pick another slot.
    """

    code = "slot_unavailable"

    def __init__(self, message: str = "Selected time slot is not available"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class InvalidTransitionException(AppException):
    """Status change not allowed from the appointment's current status."""

    code = "invalid_transition"

    def __init__(self, current_status: str, event: str):
        """Initialize with 409 status code."""
        self.current_status = current_status
        self.event = event
        super().__init__(
            f"Cannot {event} an appointment that is {current_status}",
            status_code=409,
        )


class PolicyViolationException(AppException):
    """Business booking or cancellation policy forbids the request."""

    code = "policy_violation"

    def __init__(self, message: str = "Request violates business policy"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)
