"""
Error classification system for the period lifecycle engine.

This module provides a structured exception hierarchy separating recoverable
caller mistakes (stale ids, overlapping calls) from storage and rule failures
that must always surface to the caller.
"""

from .lifecycle import (
    LifecycleError,
    NoActivePeriodError,
    PeriodNotFoundError,
    BusyError,
    InvalidMetadataError,
)
from .system_failures import (
    SystemFailureError,
    StoreError,
    StateTransitionError,
)
from .recovery import (
    GracefulDegradationError,
)

__all__ = [
    # Lifecycle Errors
    "LifecycleError",
    "NoActivePeriodError",
    "PeriodNotFoundError",
    "BusyError",
    "InvalidMetadataError",
    # System Failures
    "SystemFailureError",
    "StoreError",
    "StateTransitionError",
    # Recovery Categories
    "GracefulDegradationError",
]
