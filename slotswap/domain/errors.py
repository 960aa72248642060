"""Domain errors raised by the slot registry and swap negotiator"""

from typing import Optional


class SlotSwapError(Exception):
    """Base class; each subclass carries the HTTP status it is reported with"""

    status_code = 500
    code = "internal"
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidInputError(SlotSwapError):
    status_code = 400
    code = "invalid_input"
    default_detail = "Invalid input"


class InvalidIntervalError(SlotSwapError):
    status_code = 400
    code = "invalid_interval"
    default_detail = "end_time must be after start_time"


class NotFoundError(SlotSwapError):
    status_code = 404
    code = "not_found"
    default_detail = "Not found"


class ForbiddenError(SlotSwapError):
    status_code = 403
    code = "forbidden"
    default_detail = "Forbidden"


class NotEligibleError(SlotSwapError):
    status_code = 400
    code = "not_eligible"
    default_detail = "Slot is not exchangeable"


class SelfSwapError(SlotSwapError):
    status_code = 400
    code = "self_swap"
    default_detail = "Cannot swap with your own slot"


class AlreadyLockedError(SlotSwapError):
    status_code = 400
    code = "already_locked"
    default_detail = "One or both slots are already involved in a pending swap"


class NotPendingError(SlotSwapError):
    status_code = 400
    code = "not_pending"
    default_detail = "Swap request is not pending"


class LockedResourceError(SlotSwapError):
    status_code = 409
    code = "locked_resource"
    default_detail = "Slot is locked by a pending swap"


class InternalError(SlotSwapError):
    """Storage or transaction failure; safe for the caller to retry"""
