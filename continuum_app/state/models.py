"""
State machine data models for the period lifecycle.

This module defines immutable data structures describing the current
working/paused state, planned transitions and continuity diagnostics.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..models.period import Period


class PeriodState(str, Enum):
    """State of the currently open period."""
    WORKING = "working"
    PAUSED = "paused"


class TransitionKind(str, Enum):
    """Kinds of transitions the engine can commit."""
    BOOTSTRAP = "bootstrap"
    END_AND_START = "end_and_start"
    PAUSE = "pause"
    RESUME = "resume"
    RECOVERY = "recovery"


class RecoveryAction(str, Enum):
    """What startup recovery had to do."""
    NONE = "none"
    BOOTSTRAPPED = "bootstrapped"
    REPAIRED = "repaired"


@dataclass(frozen=True)
class TransitionPlan:
    """A computed transition, applied atomically by the engine."""

    kind: TransitionKind
    opened: Period
    timestamp: int
    closed: Optional[Period] = None

    @property
    def from_state(self) -> Optional[PeriodState]:
        if self.closed is None:
            return None
        return state_of(self.closed)

    @property
    def to_state(self) -> PeriodState:
        return state_of(self.opened)


@dataclass(frozen=True)
class ContinuityViolation:
    """A gap or overlap between two adjacent closed periods."""

    previous_id: str
    next_id: str
    previous_end: int
    next_start: int

    @property
    def kind(self) -> str:
        return "gap" if self.next_start > self.previous_end else "overlap"

    @property
    def delta_ms(self) -> int:
        return self.next_start - self.previous_end

    def describe(self) -> str:
        return (
            f"Gap/overlap detected between periods {self.previous_id} and {self.next_id}: "
            f"{self.kind} of {abs(self.delta_ms)} ms"
        )


@dataclass(frozen=True)
class ContinuityReport:
    """Result of a continuity validation pass."""

    checked_count: int
    violations: tuple[ContinuityViolation, ...] = field(default_factory=tuple)

    @property
    def valid(self) -> bool:
        return not self.violations

    @property
    def errors(self) -> list[str]:
        return [violation.describe() for violation in self.violations]


@dataclass(frozen=True)
class RecoveryOutcome:
    """Result of startup recovery."""

    action: RecoveryAction
    active: Period
    repaired: Optional[Period] = None
    close_time: Optional[int] = None


def state_of(period: Period) -> PeriodState:
    """Derive the working/paused state carried by a period."""
    return PeriodState.PAUSED if period.is_pause else PeriodState.WORKING
