class StoreUnavailableError(RuntimeError):
    """Raised by assignment stores and event sinks when the backend can't be reached."""


class EventValidationError(ValueError):
    """Raised synchronously by the event recorder for malformed tracking events."""

    def __init__(self, message: str, errors: list | None = None):
        super().__init__(message)
        self.errors = errors or []
