"""Tests for period and state data models."""

import pytest

from continuum_app.errors import StateTransitionError
from continuum_app.models.period import OPEN, Closed, Period, PeriodMetadata
from continuum_app.state.models import (
    ContinuityReport,
    ContinuityViolation,
    PeriodState,
    TransitionKind,
    TransitionPlan,
    state_of,
)


def make_period(period_id="p1", start=1000, end=OPEN, **kwargs) -> Period:
    return Period(id=period_id, start_time=start, end=end, created_at=start, updated_at=start, **kwargs)


class TestPeriod:
    """Test Period dataclass."""

    def test_open_period(self):
        """Test that a fresh period is open with no end time."""
        period = make_period()
        assert period.is_open
        assert period.end_time is None
        assert repr(period.end) == "OPEN"

    def test_close_sets_end_and_updated_at(self):
        """Test closing a period."""
        closed = make_period().close(5000)

        assert not closed.is_open
        assert closed.end == Closed(5000)
        assert closed.end_time == 5000
        assert closed.updated_at == 5000
        assert closed.start_time == 1000
        assert closed.created_at == 1000

    def test_zero_length_close_allowed(self):
        assert make_period().close(1000).end_time == 1000

    def test_close_twice_rejected(self):
        """Test that end_time is set at most once."""
        closed = make_period().close(2000)
        with pytest.raises(StateTransitionError) as exc_info:
            closed.close(3000)
        assert exc_info.value.current_state == "closed"

    def test_close_before_start_rejected(self):
        with pytest.raises(StateTransitionError):
            make_period(start=5000).close(4999)

    def test_metadata_accessors(self):
        period = make_period(metadata=PeriodMetadata(
            theme="work", category="development", name="Coding", notes="n", tags=("a", "b")
        ))
        assert period.theme == "work"
        assert period.category == "development"
        assert period.name == "Coding"
        assert period.notes == "n"
        assert period.tags == ("a", "b")

    def test_with_metadata_keeps_timestamps(self):
        period = make_period().close(2000)
        updated = period.with_metadata(PeriodMetadata(name="Renamed"), 9000)

        assert updated.name == "Renamed"
        assert updated.start_time == 1000
        assert updated.end_time == 2000
        assert updated.created_at == 1000
        assert updated.updated_at == 9000

    def test_duration(self):
        assert make_period().close(4000).duration_ms() == 3000
        assert make_period().duration_ms(2500) == 1500
        assert make_period().duration_ms() == 0

    def test_to_dict(self):
        period = make_period(
            is_pause=True,
            resume_from_id="p0",
            metadata=PeriodMetadata(theme="pause", name="Paused", tags=("x",)),
        ).close(3000)

        data = period.to_dict()

        assert data["id"] == "p1"
        assert data["start_time"] == 1000
        assert data["end_time"] == 3000
        assert data["is_pause"] is True
        assert data["resume_from_id"] == "p0"
        assert data["theme"] == "pause"
        assert data["tags"] == ["x"]


class TestPeriodMetadata:
    """Test PeriodMetadata."""

    def test_merged_replaces_only_given_fields(self):
        metadata = PeriodMetadata(theme="work", name="Old", tags=("a",))
        merged = metadata.merged({"name": "New", "tags": ["b", "c"]})

        assert merged.theme == "work"
        assert merged.name == "New"
        assert merged.tags == ("b", "c")
        assert metadata.name == "Old"

    def test_merged_ignores_non_metadata_keys(self):
        merged = PeriodMetadata().merged({"start_time": 5, "name": "x"})
        assert merged.name == "x"
        assert not hasattr(merged, "start_time")


class TestStateModels:
    """Test state machine models."""

    def test_state_of(self):
        assert state_of(make_period()) == PeriodState.WORKING
        assert state_of(make_period(is_pause=True, resume_from_id="p0")) == PeriodState.PAUSED

    def test_transition_plan_states(self):
        closed = make_period("a").close(2000)
        opened = make_period("b", start=2000, is_pause=True, resume_from_id="a")
        plan = TransitionPlan(kind=TransitionKind.PAUSE, opened=opened, timestamp=2000, closed=closed)

        assert plan.from_state == PeriodState.WORKING
        assert plan.to_state == PeriodState.PAUSED

    def test_bootstrap_plan_has_no_from_state(self):
        plan = TransitionPlan(kind=TransitionKind.BOOTSTRAP, opened=make_period(), timestamp=1000)
        assert plan.from_state is None

    def test_violation_kinds(self):
        gap = ContinuityViolation("a", "b", previous_end=1000, next_start=1500)
        overlap = ContinuityViolation("a", "b", previous_end=1500, next_start=1000)

        assert gap.kind == "gap"
        assert gap.delta_ms == 500
        assert overlap.kind == "overlap"
        assert overlap.delta_ms == -500
        assert gap.describe().startswith("Gap/overlap detected between periods a and b")
        assert "500 ms" in overlap.describe()

    def test_report_validity(self):
        assert ContinuityReport(checked_count=3).valid
        report = ContinuityReport(
            checked_count=2,
            violations=(ContinuityViolation("a", "b", 1000, 1200),),
        )
        assert not report.valid
        assert len(report.errors) == 1
