# barberbook/core/exceptions.py
"""
Domain errors raised by the scheduling engine.

Every error is a ValueError so callers that only care about "invalid request"
can keep catching ValueError. Routers map them to HTTP responses through
``http_status``.
"""


class SchedulingError(ValueError):
    """Base class for recoverable engine errors"""
    http_status = 400


class SlotConflict(SchedulingError):
    """Proposed time overlaps an existing booking"""
    http_status = 409


class ScheduleConflict(SchedulingError):
    """Weekly entry collides with another plan's entry"""
    http_status = 409


class DuplicateSlot(SchedulingError):
    """Same weekly entry submitted twice"""
    http_status = 422


class OutOfBusinessHours(SchedulingError):
    http_status = 422


class InPast(SchedulingError):
    http_status = 422


class InvalidPaymentMethod(SchedulingError):
    http_status = 422


class CapacityExceeded(SchedulingError):
    """Schedule entry count is outside the plan tier bounds"""
    http_status = 422


class InvalidTransition(SchedulingError):
    """Status change not allowed from the current state"""
    http_status = 409


class NoRewardAvailable(SchedulingError):
    http_status = 409


class NoEligibleClients(SchedulingError):
    http_status = 409


class NotFound(SchedulingError):
    """Referenced client, service, appointment or plan does not exist"""
    http_status = 404
