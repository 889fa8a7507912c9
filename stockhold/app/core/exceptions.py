"""
Unified base exception classes for the reservation engine.

Each component extends ServiceError with its own base (e.g. ReservationServiceError)
so that callers can catch a whole family with one `except`. The status_code
is a hint for an embedding HTTP layer; nothing in the engine depends on it.
"""


class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ReservationServiceError(ServiceError):
    """Base exception for reservation engine errors."""
    pass
