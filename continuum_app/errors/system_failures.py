"""
System failure error classifications for unrecoverable errors.

These exceptions represent storage failures and broken lifecycle rules.
They are never retried or hidden by the engine; the caller decides how to
report them.
"""

from typing import Any, Dict, Optional


class SystemFailureError(Exception):
    """Base class for unrecoverable system failures."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = False


class StoreError(SystemFailureError):
    """Database or file system persistence failures."""

    CAPACITY = "capacity"
    SCHEMA = "schema"
    IO = "io"
    CONSTRAINT = "constraint"

    def __init__(self, message: str, reason: str = IO,
                 operation: Optional[str] = None,
                 target: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.reason = reason
        self.operation = operation
        self.target = target


class StateTransitionError(SystemFailureError):
    """A transition would break a period lifecycle rule."""

    def __init__(self, message: str, current_state: Optional[str] = None,
                 attempted_transition: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.current_state = current_state
        self.attempted_transition = attempted_transition
