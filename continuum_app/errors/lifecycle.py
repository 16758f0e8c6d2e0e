"""
Lifecycle error classifications for period operations.

These exceptions describe requests the engine refuses but that the caller
can recover from, e.g. by bootstrapping first or retrying with a fresh id.
"""

from typing import Any, Dict, Optional


class LifecycleError(Exception):
    """Base class for recoverable lifecycle request errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = True


class NoActivePeriodError(LifecycleError):
    """Pause/resume requested while no period is open."""

    def __init__(self, message: str = "No active period found", **kwargs):
        super().__init__(message, **kwargs)


class PeriodNotFoundError(LifecycleError):
    """Lookup or update addressed a period id that does not exist."""

    def __init__(self, message: str, period_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.period_id = period_id


class BusyError(LifecycleError):
    """A mutation was requested while another one is still in flight."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 in_flight: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation
        self.in_flight = in_flight


class InvalidMetadataError(LifecycleError):
    """Metadata update carried an unknown field or a value of the wrong type."""

    def __init__(self, message: str, field: Optional[str] = None,
                 value: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
