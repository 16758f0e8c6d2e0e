"""
Period lifecycle engine.

Coordinates the clock, the period store and the lifecycle rules. It is the
only component allowed to create or terminate period records:

    caller → engine → store transaction → new active period → listeners
"""

import asyncio
import itertools
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional, TypeVar

import structlog

from .config.defaults import DefaultConfig, get_default_config
from .errors import (
    BusyError,
    NoActivePeriodError,
    PeriodNotFoundError,
    StateTransitionError,
)
from .logging.config import get_lifecycle_logger
from .models.period import Period, PeriodFilter
from .persistence.period_store import PeriodStore
from .state.machine import (
    check_continuity,
    merge_metadata,
    plan_end_and_start,
    plan_pause_resume,
    plan_recovery,
)
from .state.models import (
    ContinuityReport,
    PeriodState,
    RecoveryAction,
    RecoveryOutcome,
    TransitionKind,
    TransitionPlan,
    state_of,
)
from .state.transitions import PeriodTransitionHandler
from .utils.time import SystemClock
from .validation.metadata import clean_metadata_update

logger = structlog.get_logger(__name__)
lifecycle_logger = get_lifecycle_logger(__name__)

T = TypeVar("T")

ActiveListener = Callable[[Period], None]


class PeriodLifecycleEngine:
    """
    Owns the rules for creating, ending, pausing, resuming and recovering periods.

    Every mutation runs as one ``store.run_atomic`` call on a worker thread,
    so readers never observe zero or two open periods. Mutations are not
    queued: a call made while another one is in flight raises BusyError.
    """

    def __init__(
        self,
        store: PeriodStore,
        clock: Optional[Any] = None,
        config: Optional[DefaultConfig] = None
    ) -> None:
        self.logger = logger
        self.store = store
        self.clock = clock or SystemClock()
        self.config = config or get_default_config()
        self.transitions = PeriodTransitionHandler()

        self._in_flight: Optional[str] = None
        self._listeners: dict[int, ActiveListener] = {}
        self._listener_ids = itertools.count(1)

        self.logger.info("Period lifecycle engine initialized", in_memory=store.in_memory)

    @property
    def busy(self) -> bool:
        return self._in_flight is not None

    @asynccontextmanager
    async def _exclusive(self, operation: str) -> AsyncIterator[None]:
        """Admit one mutation at a time; overlapping calls fail fast."""
        if self._in_flight is not None:
            self.logger.warning(
                "Rejected overlapping mutation",
                operation=operation,
                in_flight=self._in_flight
            )
            raise BusyError(
                f"Cannot run {operation} while {self._in_flight} is in progress",
                operation=operation,
                in_flight=self._in_flight
            )

        self._in_flight = operation
        try:
            yield
        finally:
            self._in_flight = None

    async def _run_atomic(
        self,
        fn: Callable[[], T],
        on_commit: Optional[Callable[[T], None]] = None
    ) -> T:
        """Run ``fn`` in one store transaction off the event loop.

        The transaction is not cancellable: if the awaiting task is cancelled
        the commit or rollback still completes before cancellation propagates,
        and ``on_commit`` still runs for a transaction that committed.
        """
        task = asyncio.ensure_future(asyncio.to_thread(self.store.run_atomic, fn))
        try:
            result = await asyncio.shield(task)
        except asyncio.CancelledError:
            await asyncio.wait({task})
            if on_commit is not None and not task.cancelled() and task.exception() is None:
                self.logger.info("Caller cancelled after commit, notifying anyway")
                on_commit(task.result())
            raise

        if on_commit is not None:
            on_commit(result)
        return result

    async def _read(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(fn, *args)

    def add_active_listener(self, callback: ActiveListener) -> Callable[[], None]:
        """
        Register a callback told about every newly opened active period.

        Returns:
            Unsubscribe callable removing exactly this registration
        """
        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = callback

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def _after_commit(self, plan: TransitionPlan) -> None:
        self.transitions.log_committed(plan)

        for callback in list(self._listeners.values()):
            try:
                callback(plan.opened)
            except Exception as e:
                self.logger.error(
                    "Active period listener failed",
                    period_id=plan.opened.id,
                    error=str(e)
                )

    def _after_recovery_commit(self, result: tuple[Optional[TransitionPlan], Optional[Period]]) -> None:
        plan = result[0]
        if plan is not None:
            self._after_commit(plan)

    async def get_active_period(self) -> Optional[Period]:
        """Get the currently open period, if any."""
        return await self._read(self.store.get_active)

    async def get_period(self, period_id: str) -> Period:
        """
        Get a period by id.

        Raises:
            PeriodNotFoundError: If no such period exists
        """
        period = await self._read(self.store.get_by_id, period_id)
        if period is None:
            raise PeriodNotFoundError(f"Period not found: {period_id}", period_id=period_id)
        return period

    async def get_periods(self, period_filter: Optional[PeriodFilter] = None) -> list[Period]:
        """Get period history, newest first."""
        return await self._read(self.store.query, period_filter)

    async def is_paused(self) -> bool:
        active = await self.get_active_period()
        return active.is_pause if active is not None else False

    async def current_state(self) -> Optional[PeriodState]:
        """Working/paused state of the open period, None on an empty store."""
        active = await self.get_active_period()
        return state_of(active) if active is not None else None

    async def transition(self) -> Period:
        """
        End the active period and start the next one at the same instant.

        On an empty store this opens the very first period.

        Returns:
            The newly opened period
        """
        async with self._exclusive("transition"):
            now = self.clock.now_ms()

            def work() -> TransitionPlan:
                active = self.store.get_active()
                plan = plan_end_and_start(active, now, self.config.period)
                self.transitions.apply_plan(self.store, plan)
                return plan

            plan = await self._run_atomic(work, on_commit=self._after_commit)

        return plan.opened

    async def pause_resume(self) -> Period:
        """
        Toggle between working and paused.

        Pausing opens a pause period remembering the interrupted period.
        Resuming opens a working period carrying that period's metadata.

        Returns:
            The newly opened period

        Raises:
            NoActivePeriodError: If no period is open
        """
        async with self._exclusive("pause_resume"):
            now = self.clock.now_ms()

            def work() -> TransitionPlan:
                active = self.store.get_active()
                if active is None:
                    raise NoActivePeriodError("No active period found")

                resume_source = None
                if active.is_pause and active.resume_from_id:
                    resume_source = self.store.get_by_id(active.resume_from_id)
                    if resume_source is None:
                        self.logger.warning(
                            "Resume source missing, restoring defaults",
                            pause_id=active.id,
                            resume_from_id=active.resume_from_id
                        )

                plan = plan_pause_resume(
                    active, resume_source, now, self.config.period, self.config.pause
                )
                self.transitions.apply_plan(self.store, plan)
                return plan

            plan = await self._run_atomic(work, on_commit=self._after_commit)

        return plan.opened

    async def update_metadata(self, period_id: str, partial: dict[str, Any]) -> Period:
        """
        Update metadata of an open or closed period.

        Timestamp fields in ``partial`` are dropped silently.

        Returns:
            The updated period

        Raises:
            InvalidMetadataError: On unknown fields or wrongly typed values
            PeriodNotFoundError: If no such period exists
        """
        changes = clean_metadata_update(partial)

        async with self._exclusive("update_metadata"):
            now = self.clock.now_ms()

            def work() -> Period:
                period = self.store.get_by_id(period_id)
                if period is None:
                    raise PeriodNotFoundError(f"Period not found: {period_id}", period_id=period_id)
                updated = merge_metadata(period, changes, now)
                self.store.upsert(updated)
                return updated

            updated = await self._run_atomic(work)

        self.logger.info(
            "Period metadata updated",
            period_id=period_id,
            fields=sorted(changes),
            is_open=updated.is_open
        )
        return updated

    async def delete_period(self, period_id: str) -> Period:
        """
        Administrative removal of a closed period.

        Deleting leaves a hole that validate_continuity will report; it is
        not part of the normal lifecycle. A pause pointing at the deleted
        period keeps the id and resumes with default metadata.

        Raises:
            PeriodNotFoundError: If no such period exists
            StateTransitionError: If the period is the open one
        """
        async with self._exclusive("delete_period"):

            def work() -> Period:
                period = self.store.get_by_id(period_id)
                if period is None:
                    raise PeriodNotFoundError(f"Period not found: {period_id}", period_id=period_id)
                if period.is_open:
                    raise StateTransitionError(
                        "Cannot delete the active period",
                        current_state="open",
                        attempted_transition="delete",
                        context={"period_id": period_id}
                    )
                self.store.delete(period_id)
                return period

            return await self._run_atomic(work)

    async def validate_continuity(self) -> ContinuityReport:
        """
        Check that closed periods form an unbroken chain.

        Read-only diagnostic; every gap and overlap is collected.
        """
        periods = await self._read(self.store.query, PeriodFilter(closed_only=True))
        report = check_continuity(periods)

        if not report.valid:
            self.logger.warning(
                "Continuity violations detected",
                violation_count=len(report.violations),
                errors=report.errors
            )
        return report

    async def recover_incomplete_session(
        self,
        last_known_close_time: Optional[int] = None
    ) -> RecoveryOutcome:
        """
        Reconcile stored state with reality at process start.

        1. An open period exists: nothing to repair.
        2. Periods exist but none is open: close the latest one at
           ``last_known_close_time`` (or now) and open a fresh period at
           that same instant.
        3. Empty store: open the first period.

        Calling it again after it succeeded is a no-op.

        Args:
            last_known_close_time: Best known time the previous run stopped (ms)

        Returns:
            RecoveryOutcome describing what was done
        """
        async with self._exclusive("recover_incomplete_session"):
            now = self.clock.now_ms()

            def work() -> tuple[Optional[TransitionPlan], Optional[Period]]:
                active = self.store.get_active()
                if active is not None:
                    return None, active

                latest = self.store.get_latest()
                if latest is None:
                    plan = plan_end_and_start(None, now, self.config.period)
                else:
                    close_time = last_known_close_time if last_known_close_time is not None else now
                    plan = plan_recovery(latest, close_time, self.config.period)

                self.transitions.apply_plan(self.store, plan)
                return plan, None

            plan, active = await self._run_atomic(work, on_commit=self._after_recovery_commit)

        if plan is None:
            self.logger.info("No recovery needed", active_period_id=active.id)
            return RecoveryOutcome(action=RecoveryAction.NONE, active=active)

        if plan.kind == TransitionKind.BOOTSTRAP:
            self.logger.info("Initial period created", period_id=plan.opened.id)
            return RecoveryOutcome(action=RecoveryAction.BOOTSTRAPPED, active=plan.opened)

        lifecycle_logger.warning(
            "Repaired timeline without an open period",
            repaired_period_id=plan.closed.id if plan.closed is not None else None,
            close_time=plan.timestamp,
            supplied_close_time=last_known_close_time,
            opened_period_id=plan.opened.id
        )
        return RecoveryOutcome(
            action=RecoveryAction.REPAIRED,
            active=plan.opened,
            repaired=plan.closed,
            close_time=plan.timestamp,
        )
