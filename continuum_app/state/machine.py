"""
Core period lifecycle rules.

Pure functions that turn the currently open period and a timestamp into a
TransitionPlan: which period closes and which one opens. Nothing here
touches storage; the engine applies the plan inside one transaction.
"""

from typing import Iterable, Optional

from ..config.defaults import PauseParams, PeriodDefaults
from ..errors import NoActivePeriodError
from ..models.period import OPEN, Period, PeriodMetadata, new_period_id
from .models import (
    ContinuityReport,
    ContinuityViolation,
    TransitionKind,
    TransitionPlan,
)


def default_metadata(defaults: PeriodDefaults) -> PeriodMetadata:
    """Metadata for a period opened from configured defaults."""
    return PeriodMetadata(
        theme=defaults.theme,
        category=defaults.category,
        name=defaults.name,
        notes=defaults.notes,
        tags=tuple(defaults.tags),
    )


def pause_metadata(pause: PauseParams) -> PeriodMetadata:
    """Reserved sentinel metadata for pause periods; notes and tags stay empty."""
    return PeriodMetadata(theme=pause.theme, category=pause.category, name=pause.name)


def open_period(
    now: int,
    metadata: PeriodMetadata,
    is_pause: bool = False,
    resume_from_id: Optional[str] = None
) -> Period:
    """Construct a fresh open period starting at ``now``."""
    return Period(
        id=new_period_id(),
        start_time=now,
        end=OPEN,
        is_pause=is_pause,
        resume_from_id=resume_from_id,
        metadata=metadata,
        created_at=now,
        updated_at=now,
    )


def plan_end_and_start(
    active: Optional[Period],
    now: int,
    defaults: PeriodDefaults,
    kind: Optional[TransitionKind] = None
) -> TransitionPlan:
    """
    Plan closing the active period and opening the next one at the same instant.

    Args:
        active: Currently open period, or None on first run
        now: Boundary timestamp shared by the closed and opened period
        defaults: Metadata defaults for the new period
        kind: Override for the recorded transition kind (used by recovery)

    Returns:
        TransitionPlan with ``closed`` unset when there was nothing to close
    """
    closed = None
    if active is not None:
        # A clock stepped back across restarts must not end a period before it began
        now = max(now, active.start_time)
        closed = active.close(now)
    opened = open_period(now, default_metadata(defaults))

    if kind is None:
        kind = TransitionKind.END_AND_START if active is not None else TransitionKind.BOOTSTRAP

    return TransitionPlan(kind=kind, opened=opened, timestamp=now, closed=closed)


def plan_pause_resume(
    active: Optional[Period],
    resume_source: Optional[Period],
    now: int,
    defaults: PeriodDefaults,
    pause: PauseParams
) -> TransitionPlan:
    """
    Plan the pause/resume toggle.

    Pausing closes the working period and opens a pause period pointing back
    at it. Resuming closes the pause period and opens a working period that
    carries the metadata of ``resume_source`` forward, or the configured
    defaults when the source no longer exists.

    Args:
        active: Currently open period
        resume_source: Period referenced by ``active.resume_from_id`` (resume only)
        now: Boundary timestamp
        defaults: Metadata defaults when there is nothing to restore
        pause: Pause sentinel metadata

    Raises:
        NoActivePeriodError: If no period is open
    """
    if active is None:
        raise NoActivePeriodError("Cannot pause or resume without an active period")

    now = max(now, active.start_time)
    closed = active.close(now)

    if active.is_pause:
        metadata = resume_source.metadata if resume_source is not None else default_metadata(defaults)
        opened = open_period(now, metadata)
        return TransitionPlan(kind=TransitionKind.RESUME, opened=opened, timestamp=now, closed=closed)

    opened = open_period(
        now,
        pause_metadata(pause),
        is_pause=True,
        resume_from_id=active.id,
    )
    return TransitionPlan(kind=TransitionKind.PAUSE, opened=opened, timestamp=now, closed=closed)


def plan_recovery(
    latest: Period,
    close_time: int,
    defaults: PeriodDefaults
) -> TransitionPlan:
    """
    Plan the repair of a timeline left without an open period.

    If the latest period still lacks an end boundary it is closed at
    ``close_time`` (never before its own start). If it is already closed,
    nothing is rewritten and the new period starts at its existing end.
    """
    if latest.is_open:
        boundary = max(close_time, latest.start_time)
        return plan_end_and_start(latest, boundary, defaults, kind=TransitionKind.RECOVERY)

    opened = open_period(latest.end_time, default_metadata(defaults))
    return TransitionPlan(
        kind=TransitionKind.RECOVERY,
        opened=opened,
        timestamp=latest.end_time,
        closed=None,
    )


def check_continuity(periods: Iterable[Period]) -> ContinuityReport:
    """
    Check that closed periods form an unbroken chain.

    Open periods are ignored. Every adjacent pair (ordered by start time)
    whose boundaries differ is reported, not just the first one.

    Args:
        periods: Periods in any order

    Returns:
        ContinuityReport listing every gap and overlap
    """
    closed = sorted(
        (period for period in periods if not period.is_open),
        key=lambda period: (period.start_time, period.end_time),
    )

    violations = []
    for previous, following in zip(closed, closed[1:]):
        if previous.end_time != following.start_time:
            violations.append(ContinuityViolation(
                previous_id=previous.id,
                next_id=following.id,
                previous_end=previous.end_time,
                next_start=following.start_time,
            ))

    return ContinuityReport(checked_count=len(closed), violations=tuple(violations))


def merge_metadata(period: Period, changes: dict, now: int) -> Period:
    """Apply validated metadata changes; timestamps other than ``updated_at`` stay."""
    return period.with_metadata(period.metadata.merged(changes), now)
