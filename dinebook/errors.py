"""Domain errors raised by the booking core.

Every error carries an HTTP status code so the error handler middleware can
map it without knowing the individual types.
"""


class BookingError(Exception):
    status_code = 500
    error_type = "Booking Error"

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self):
        payload = {
            "type": self.error_type,
            "message": self.message,
            "status_code": self.status_code,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(BookingError):
    status_code = 400
    error_type = "Validation Error"

    def __init__(self, message, field=None, details=None):
        details = dict(details or {})
        if field:
            details.setdefault("field", field)
        super().__init__(message, details)
        self.field = field


class ConflictError(BookingError):
    status_code = 409
    error_type = "Conflict"

    def __init__(self, message, conflicts=None, details=None):
        details = dict(details or {})
        if conflicts:
            details["conflicts"] = conflicts
        super().__init__(message, details)
        self.conflicts = conflicts or []


class InvalidTransitionError(BookingError):
    status_code = 409
    error_type = "Invalid Transition"

    def __init__(self, current_status, new_status):
        super().__init__(
            f"Cannot move booking from '{current_status}' to '{new_status}'.",
            {"current_status": current_status, "requested_status": new_status},
        )
        self.current_status = current_status
        self.new_status = new_status


class ForbiddenError(BookingError):
    status_code = 403
    error_type = "Forbidden"


class NotFoundError(BookingError):
    status_code = 404
    error_type = "Not Found"


class PreconditionFailedError(BookingError):
    status_code = 412
    error_type = "Precondition Failed"


class LockExpiredError(BookingError):
    status_code = 410
    error_type = "Gone"
