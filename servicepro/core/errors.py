"""Service-level exceptions.

Each error carries the HTTP status the API layer answers with, so routers can
translate any ``ServiceProError`` without knowing its concrete type.
"""

from typing import Optional


class ServiceProError(Exception):
    """Base class for business errors raised by the services."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceProError):
    status_code = 404


class SettingsNotConfiguredError(NotFoundError):
    def __init__(self, message: str = "Company settings not configured"):
        super().__init__(message)


class ValidationError(ServiceProError):
    status_code = 422

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or [message]


class ConflictError(ServiceProError):
    """The record exists but its current state forbids the operation."""

    status_code = 409


class InvalidStatusTransitionError(ConflictError):
    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")
        self.current = current
        self.target = target


class ConversionError(ServiceProError):
    status_code = 409


class InvoiceGenerationError(ServiceProError):
    status_code = 409


class SequenceAllocationError(ServiceProError):
    status_code = 503


class OfflineQueuedError(ServiceProError):
    """The remote write failed and the action now waits in the outbox."""

    status_code = 202

    def __init__(self, message: str, action_id: str):
        super().__init__(message)
        self.action_id = action_id
