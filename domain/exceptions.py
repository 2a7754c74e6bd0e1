"""Domain Exceptions"""


class NotFoundError(LookupError):
    """Booking, villa, room or slide does not exist"""

    def __init__(self, message: str = "Not found"):
        self.message = message
        super().__init__(message)


class ValidationError(ValueError):
    """Input rejected before any state was touched"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidEvidenceError(ValidationError):
    """Payment slip has the wrong type or size"""


class InvalidTransitionError(ValueError):
    """Requested status change is not allowed from the current status"""

    def __init__(self, message: str, current_status=None):
        self.message = message
        self.current_status = current_status
        super().__init__(message)


class StorageFailureError(RuntimeError):
    """File could not be written to or read from storage"""

    def __init__(self, message: str, path: str = None):
        self.message = message
        self.path = path
        super().__init__(message)
