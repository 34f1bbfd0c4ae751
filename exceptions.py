"""
exceptions.py
-------------
Error taxonomy shared by every layer.

    ConfigurationError  schedule points at a missing/invalid address (not retried)
    GatewayError        phoenixd, network or counterparty failure (retried next cadence)
    ResolutionError     LNURL fallback failure (treated like GatewayError)
    PersistenceError    database write/read failure (propagated)
    ScheduleBusyError   another execution holds the schedule's lock
"""

from enum import Enum


class GatewayErrorKind(str, Enum):
    """Closed classification of phoenixd failures."""

    RESOLUTION_UNREACHABLE = "resolution_unreachable"  # node could not reach the address domain
    NODE_UNREACHABLE = "node_unreachable"
    TIMEOUT = "timeout"
    PAYMENT_FAILED = "payment_failed"
    HTTP_ERROR = "http_error"
    INVALID_RESPONSE = "invalid_response"


class AutopayError(Exception):
    """Base class for all application errors."""


class ConfigurationError(AutopayError):
    """A schedule references something that no longer exists or is not payable."""


class GatewayError(AutopayError):
    """A payment call to the node failed."""

    def __init__(self, message: str, kind: GatewayErrorKind = GatewayErrorKind.PAYMENT_FAILED):
        super().__init__(message)
        self.kind = kind


class ResolutionError(AutopayError):
    """The manual LNURL-pay resolution failed at some step."""


class PersistenceError(AutopayError):
    """The database rejected a read or write."""


class ScheduleBusyError(AutopayError):
    """The schedule is already being executed."""

    def __init__(self, schedule_id: int):
        super().__init__(f"Recurring payment #{schedule_id} is already being executed")
        self.schedule_id = schedule_id
