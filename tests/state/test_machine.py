"""Tests for the pure period lifecycle rules."""

import pytest

from continuum_app.config.defaults import PauseParams, PeriodDefaults
from continuum_app.errors import NoActivePeriodError
from continuum_app.models.period import OPEN, Period, PeriodMetadata
from continuum_app.state.machine import (
    check_continuity,
    default_metadata,
    merge_metadata,
    open_period,
    pause_metadata,
    plan_end_and_start,
    plan_pause_resume,
    plan_recovery,
)
from continuum_app.state.models import TransitionKind

DEFAULTS = PeriodDefaults(theme="work", category="development", name="", tags=("auto",))
PAUSE = PauseParams()


def working(period_id="w1", start=1000, **metadata) -> Period:
    return Period(
        id=period_id,
        start_time=start,
        end=OPEN,
        metadata=PeriodMetadata(**metadata),
        created_at=start,
        updated_at=start,
    )


def paused(period_id="p1", start=2000, resume_from_id="w1") -> Period:
    return Period(
        id=period_id,
        start_time=start,
        end=OPEN,
        is_pause=True,
        resume_from_id=resume_from_id,
        metadata=pause_metadata(PAUSE),
        created_at=start,
        updated_at=start,
    )


class TestOpenPeriod:
    """Test period construction helpers."""

    def test_open_period_fields(self):
        period = open_period(5000, default_metadata(DEFAULTS))

        assert period.is_open
        assert period.start_time == 5000
        assert period.created_at == 5000
        assert period.updated_at == 5000
        assert period.theme == "work"
        assert period.tags == ("auto",)
        assert not period.is_pause

    def test_ids_are_unique(self):
        ids = {open_period(0, PeriodMetadata()).id for _ in range(50)}
        assert len(ids) == 50

    def test_pause_metadata_sentinel(self):
        metadata = pause_metadata(PAUSE)
        assert metadata.theme == "pause"
        assert metadata.name == "Paused"
        assert metadata.notes == ""
        assert metadata.tags == ()


class TestPlanEndAndStart:
    """Test plan_end_and_start."""

    def test_bootstrap_on_empty_store(self):
        plan = plan_end_and_start(None, 1000, DEFAULTS)

        assert plan.kind == TransitionKind.BOOTSTRAP
        assert plan.closed is None
        assert plan.opened.start_time == 1000

    def test_shared_boundary(self):
        """Test that the closed end equals the opened start."""
        plan = plan_end_and_start(working(), 4000, DEFAULTS)

        assert plan.kind == TransitionKind.END_AND_START
        assert plan.closed.end_time == 4000
        assert plan.opened.start_time == 4000
        assert plan.timestamp == 4000
        assert plan.opened.id != plan.closed.id

    def test_new_period_uses_defaults(self):
        plan = plan_end_and_start(working(theme="personal", name="Reading"), 4000, DEFAULTS)
        assert plan.opened.theme == "work"
        assert plan.opened.name == ""

    def test_clock_behind_start_is_clamped(self):
        plan = plan_end_and_start(working(start=5000), 3000, DEFAULTS)

        assert plan.closed.end_time == 5000
        assert plan.opened.start_time == 5000

    def test_same_millisecond_transition(self):
        plan = plan_end_and_start(working(start=1000), 1000, DEFAULTS)
        assert plan.closed.duration_ms() == 0


class TestPlanPauseResume:
    """Test plan_pause_resume."""

    def test_no_active_period(self):
        with pytest.raises(NoActivePeriodError):
            plan_pause_resume(None, None, 1000, DEFAULTS, PAUSE)

    def test_pause(self):
        active = working(theme="work", name="Coding")
        plan = plan_pause_resume(active, None, 3000, DEFAULTS, PAUSE)

        assert plan.kind == TransitionKind.PAUSE
        assert plan.closed.id == active.id
        assert plan.closed.end_time == 3000
        assert plan.opened.is_pause
        assert plan.opened.resume_from_id == active.id
        assert plan.opened.theme == "pause"
        assert plan.opened.name == "Paused"

    def test_resume_restores_source_metadata(self):
        source = working(theme="health", category="exercise", name="Run", notes="5k", tags=("x",))
        plan = plan_pause_resume(paused(), source.close(2000), 6000, DEFAULTS, PAUSE)

        assert plan.kind == TransitionKind.RESUME
        assert plan.closed.end_time == 6000
        opened = plan.opened
        assert not opened.is_pause
        assert opened.resume_from_id is None
        assert opened.start_time == 6000
        assert (opened.theme, opened.category, opened.name, opened.notes, opened.tags) == \
            ("health", "exercise", "Run", "5k", ("x",))

    def test_resume_with_missing_source_uses_defaults(self):
        plan = plan_pause_resume(paused(), None, 6000, DEFAULTS, PAUSE)

        assert plan.kind == TransitionKind.RESUME
        assert plan.opened.theme == "work"
        assert plan.opened.category == "development"


class TestPlanRecovery:
    """Test plan_recovery."""

    def test_closes_open_latest_at_close_time(self):
        plan = plan_recovery(working(start=1000), 9000, DEFAULTS)

        assert plan.kind == TransitionKind.RECOVERY
        assert plan.closed.end_time == 9000
        assert plan.opened.start_time == 9000

    def test_close_time_before_start_is_clamped(self):
        plan = plan_recovery(working(start=1000), 500, DEFAULTS)
        assert plan.closed.end_time == 1000
        assert plan.opened.start_time == 1000

    def test_latest_already_closed(self):
        latest = working(start=1000).close(4000)
        plan = plan_recovery(latest, 9000, DEFAULTS)

        assert plan.closed is None
        assert plan.opened.start_time == 4000
        assert plan.timestamp == 4000


class TestCheckContinuity:
    """Test check_continuity."""

    def chain(self, *bounds):
        return [
            working(f"c{i}", start=start).close(end)
            for i, (start, end) in enumerate(bounds)
        ]

    def test_empty_and_single(self):
        assert check_continuity([]).valid
        assert check_continuity(self.chain((0, 10))).valid

    def test_contiguous_chain_any_order(self):
        periods = self.chain((0, 10), (10, 20), (20, 35))
        report = check_continuity(reversed(periods))

        assert report.valid
        assert report.checked_count == 3

    def test_open_periods_ignored(self):
        periods = self.chain((0, 10)) + [working("open", start=50)]
        report = check_continuity(periods)

        assert report.valid
        assert report.checked_count == 1

    def test_reports_every_violation(self):
        periods = self.chain((0, 10), (15, 20), (18, 30))
        report = check_continuity(periods)

        assert not report.valid
        assert [v.kind for v in report.violations] == ["gap", "overlap"]
        assert report.violations[0].previous_id == "c0"
        assert report.violations[0].next_id == "c1"
        assert len(report.errors) == 2

    def test_zero_length_periods(self):
        periods = self.chain((0, 10), (10, 10), (10, 20))
        assert check_continuity(periods).valid


class TestMergeMetadata:
    """Test merge_metadata."""

    def test_updates_metadata_and_updated_at(self):
        period = working(start=1000, name="Old").close(2000)
        updated = merge_metadata(period, {"name": "New"}, 7000)

        assert updated.name == "New"
        assert updated.updated_at == 7000
        assert updated.start_time == 1000
        assert updated.end_time == 2000
        assert updated.created_at == 1000
