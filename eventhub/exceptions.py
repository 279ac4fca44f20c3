class EventHubError(Exception):
    """Base class for business-rule violations raised by the service layer."""

    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class NotFoundError(EventHubError):
    """Resource not found"""

    status_code = 404


class ValidationError(EventHubError):
    """Invalid request data"""


class MissingFieldsError(ValidationError):
    def __init__(self, fields):
        super().__init__("Missing required fields")
        self.fields = fields


class InvalidStateError(EventHubError):
    """Operation not allowed in the current state"""


class CapacityError(InvalidStateError):
    """This event is at capacity"""

    status_code = 409


class DuplicateRegistrationError(InvalidStateError):
    """Already registered for this event"""

    status_code = 409


class ScheduleConflictError(InvalidStateError):
    status_code = 409

    def __init__(self, conflicts):
        super().__init__(f"Schedule conflicts with {len(conflicts)} existing events")
        self.conflicts = conflicts


class PermissionDeniedError(EventHubError):
    """You do not have permission to perform this action"""

    status_code = 403


class UnauthorizedError(PermissionDeniedError):
    """Admin privileges required"""
