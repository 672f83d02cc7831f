"""
Unified base exception classes for all services.

Each component extends ServiceError with its own errors (e.g. OverlappingTierError)
so API handlers can translate any of them with a single `except ServiceError`.
"""


class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(ServiceError):
    def __init__(self, message: str):
        super().__init__(message, 404)


class ConflictError(ServiceError):
    """Write rejected because it would break a uniqueness or disjointness rule."""

    def __init__(self, message: str):
        super().__init__(message, 409)
