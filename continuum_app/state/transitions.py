"""
State transition handlers for the period lifecycle.

This module checks every TransitionPlan against the lifecycle rules before
it is written and applies it through the store, logging each committed
transition.
"""

from typing import TYPE_CHECKING

import structlog

from ..errors import StateTransitionError
from ..logging.config import get_lifecycle_logger, log_period_transition
from .models import TransitionKind, TransitionPlan

if TYPE_CHECKING:
    from ..persistence.period_store import PeriodStore

logger = structlog.get_logger(__name__)
lifecycle_logger = get_lifecycle_logger(__name__)


class PeriodTransitionHandler:
    """Validates and applies period transitions."""

    def __init__(self):
        self.logger = logger

    def validate_plan(self, plan: TransitionPlan) -> None:
        """
        Check a plan against the lifecycle rules.

        Raises:
            StateTransitionError: If applying the plan would leave zero or two
                open periods, break continuity or corrupt pause linkage
        """
        opened = plan.opened
        closed = plan.closed
        attempted = plan.kind.value

        if not opened.is_open:
            raise StateTransitionError(
                "Transition must open a period",
                attempted_transition=attempted,
                context={"period_id": opened.id}
            )

        if opened.start_time != plan.timestamp:
            raise StateTransitionError(
                "Opened period must start at the transition boundary",
                attempted_transition=attempted,
                context={"start_time": opened.start_time, "boundary": plan.timestamp}
            )

        if closed is not None:
            if closed.is_open:
                raise StateTransitionError(
                    "Closed side of a transition is still open",
                    current_state="open",
                    attempted_transition=attempted,
                    context={"period_id": closed.id}
                )
            if closed.end_time != opened.start_time:
                raise StateTransitionError(
                    "Transition would leave a gap or overlap",
                    current_state="closed",
                    attempted_transition=attempted,
                    context={
                        "closed_id": closed.id,
                        "closed_end": closed.end_time,
                        "opened_start": opened.start_time,
                    }
                )
            if closed.id == opened.id:
                raise StateTransitionError(
                    "Transition must open a new period",
                    attempted_transition=attempted,
                    context={"period_id": closed.id}
                )

        self._validate_pause_linkage(plan)
        self._validate_kind(plan)

    def _validate_pause_linkage(self, plan: TransitionPlan) -> None:
        """Pause periods point back at the interrupted period; work periods point nowhere."""
        opened = plan.opened

        if opened.is_pause and not opened.resume_from_id:
            raise StateTransitionError(
                "Pause period must reference the period it interrupts",
                attempted_transition=plan.kind.value,
                context={"period_id": opened.id}
            )

        if not opened.is_pause and opened.resume_from_id is not None:
            raise StateTransitionError(
                "Working period cannot carry a resume reference",
                attempted_transition=plan.kind.value,
                context={"period_id": opened.id, "resume_from_id": opened.resume_from_id}
            )

    def _validate_kind(self, plan: TransitionPlan) -> None:
        """Kind-specific shape rules."""
        kind = plan.kind
        closed = plan.closed
        opened = plan.opened

        if kind == TransitionKind.BOOTSTRAP and closed is not None:
            raise StateTransitionError(
                "Bootstrap cannot close a period",
                attempted_transition=kind.value,
                context={"closed_id": closed.id}
            )

        if kind == TransitionKind.END_AND_START and closed is None:
            raise StateTransitionError(
                "End-and-start requires an active period",
                attempted_transition=kind.value
            )

        if kind == TransitionKind.PAUSE:
            if closed is None or closed.is_pause:
                raise StateTransitionError(
                    "Pause requires an active working period",
                    current_state="paused" if closed is not None else None,
                    attempted_transition=kind.value
                )
            if not opened.is_pause or opened.resume_from_id != closed.id:
                raise StateTransitionError(
                    "Pause period must reference the interrupted period",
                    attempted_transition=kind.value,
                    context={"closed_id": closed.id, "resume_from_id": opened.resume_from_id}
                )

        if kind == TransitionKind.RESUME:
            if closed is None or not closed.is_pause:
                raise StateTransitionError(
                    "Resume requires an active pause period",
                    current_state="working" if closed is not None else None,
                    attempted_transition=kind.value
                )
            if opened.is_pause:
                raise StateTransitionError(
                    "Resume must open a working period",
                    attempted_transition=kind.value
                )

        if kind in (TransitionKind.END_AND_START, TransitionKind.BOOTSTRAP,
                    TransitionKind.RECOVERY) and opened.is_pause:
            raise StateTransitionError(
                f"{kind.value} must open a working period",
                attempted_transition=kind.value
            )

    def apply_plan(self, store: "PeriodStore", plan: TransitionPlan) -> None:
        """
        Validate and write a plan.

        Must run inside ``store.run_atomic`` so the close and the open commit
        together. The closed period is written first so the open-period
        index never sees two open rows.
        """
        self.validate_plan(plan)

        if plan.closed is not None:
            store.upsert(plan.closed)
        store.upsert(plan.opened)

    def log_committed(self, plan: TransitionPlan) -> None:
        """Write the audit entry for a plan whose transaction has committed."""
        log_period_transition(
            lifecycle_logger,
            kind=plan.kind.value,
            closed_id=plan.closed.id if plan.closed is not None else None,
            opened_id=plan.opened.id,
            timestamp=plan.timestamp,
            context={
                "from_state": plan.from_state.value if plan.from_state else None,
                "to_state": plan.to_state.value,
                "resume_from_id": plan.opened.resume_from_id,
            }
        )

