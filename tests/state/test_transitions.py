"""Tests for the period transition handler."""

from dataclasses import replace
from unittest.mock import Mock, patch

import pytest

from continuum_app.config.defaults import PauseParams, PeriodDefaults
from continuum_app.errors import StateTransitionError
from continuum_app.models.period import OPEN, Period
from continuum_app.state.machine import open_period, plan_end_and_start, plan_pause_resume
from continuum_app.state.models import TransitionKind, TransitionPlan
from continuum_app.state.transitions import PeriodTransitionHandler

DEFAULTS = PeriodDefaults()


def active(period_id="a", start=1000, **kwargs) -> Period:
    return Period(id=period_id, start_time=start, end=OPEN, created_at=start, updated_at=start, **kwargs)


class TestValidatePlan:
    """Test PeriodTransitionHandler.validate_plan."""

    def setup_method(self):
        self.handler = PeriodTransitionHandler()

    def test_valid_plans_pass(self):
        self.handler.validate_plan(plan_end_and_start(None, 1000, DEFAULTS))
        self.handler.validate_plan(plan_end_and_start(active(), 2000, DEFAULTS))
        pause_plan = plan_pause_resume(active(), None, 2000, DEFAULTS, PauseParams())
        self.handler.validate_plan(pause_plan)
        resume_plan = plan_pause_resume(pause_plan.opened, None, 3000, DEFAULTS, PauseParams())
        self.handler.validate_plan(resume_plan)

    def test_opened_period_must_be_open(self):
        plan = plan_end_and_start(None, 1000, DEFAULTS)
        bad = replace(plan, opened=plan.opened.close(1000))
        with pytest.raises(StateTransitionError):
            self.handler.validate_plan(bad)

    def test_closed_side_must_be_closed(self):
        plan = plan_end_and_start(active(), 2000, DEFAULTS)
        bad = replace(plan, closed=active())
        with pytest.raises(StateTransitionError) as exc_info:
            self.handler.validate_plan(bad)
        assert exc_info.value.current_state == "open"

    def test_gap_rejected(self):
        plan = plan_end_and_start(active(), 2000, DEFAULTS)
        bad = replace(plan, closed=active().close(1500))
        with pytest.raises(StateTransitionError) as exc_info:
            self.handler.validate_plan(bad)
        assert "gap or overlap" in str(exc_info.value)

    def test_boundary_must_match_timestamp(self):
        plan = plan_end_and_start(active(), 2000, DEFAULTS)
        with pytest.raises(StateTransitionError):
            self.handler.validate_plan(replace(plan, timestamp=2001))

    def test_must_open_new_period(self):
        closed = active("same").close(2000)
        opened = replace(open_period(2000, closed.metadata), id="same")
        plan = TransitionPlan(kind=TransitionKind.END_AND_START, opened=opened, timestamp=2000, closed=closed)
        with pytest.raises(StateTransitionError):
            self.handler.validate_plan(plan)

    def test_pause_without_linkage_rejected(self):
        closed = active().close(2000)
        opened = open_period(2000, closed.metadata, is_pause=True)
        plan = TransitionPlan(kind=TransitionKind.PAUSE, opened=opened, timestamp=2000, closed=closed)
        with pytest.raises(StateTransitionError):
            self.handler.validate_plan(plan)

    def test_working_period_cannot_carry_resume_reference(self):
        plan = plan_end_and_start(active(), 2000, DEFAULTS)
        bad = replace(plan, opened=replace(plan.opened, resume_from_id="a"))
        with pytest.raises(StateTransitionError):
            self.handler.validate_plan(bad)

    def test_bootstrap_cannot_close(self):
        plan = plan_end_and_start(active(), 2000, DEFAULTS)
        with pytest.raises(StateTransitionError):
            self.handler.validate_plan(replace(plan, kind=TransitionKind.BOOTSTRAP))

    def test_end_and_start_requires_closed(self):
        plan = plan_end_and_start(None, 1000, DEFAULTS)
        with pytest.raises(StateTransitionError):
            self.handler.validate_plan(replace(plan, kind=TransitionKind.END_AND_START))

    def test_pause_from_pause_rejected(self):
        pause_plan = plan_pause_resume(active(), None, 2000, DEFAULTS, PauseParams())
        closed = pause_plan.opened.close(3000)
        opened = open_period(3000, closed.metadata, is_pause=True, resume_from_id=closed.id)
        plan = TransitionPlan(kind=TransitionKind.PAUSE, opened=opened, timestamp=3000, closed=closed)
        with pytest.raises(StateTransitionError) as exc_info:
            self.handler.validate_plan(plan)
        assert exc_info.value.current_state == "paused"

    def test_resume_from_working_rejected(self):
        plan = plan_end_and_start(active(), 2000, DEFAULTS)
        with pytest.raises(StateTransitionError) as exc_info:
            self.handler.validate_plan(replace(plan, kind=TransitionKind.RESUME))
        assert exc_info.value.current_state == "working"


class TestApplyPlan:
    """Test PeriodTransitionHandler.apply_plan."""

    def test_writes_closed_before_opened(self):
        store = Mock()
        plan = plan_end_and_start(active(), 2000, DEFAULTS)

        PeriodTransitionHandler().apply_plan(store, plan)

        written = [call.args[0] for call in store.upsert.call_args_list]
        assert written == [plan.closed, plan.opened]

    def test_bootstrap_writes_only_opened(self):
        store = Mock()
        plan = plan_end_and_start(None, 1000, DEFAULTS)

        PeriodTransitionHandler().apply_plan(store, plan)

        store.upsert.assert_called_once_with(plan.opened)

    def test_invalid_plan_writes_nothing(self):
        store = Mock()
        plan = plan_end_and_start(active(), 2000, DEFAULTS)

        with pytest.raises(StateTransitionError):
            PeriodTransitionHandler().apply_plan(store, replace(plan, closed=active()))

        store.upsert.assert_not_called()


class TestLogCommitted:
    """Test transition audit logging."""

    def test_logs_transition(self):
        plan = plan_end_and_start(active(), 2000, DEFAULTS)

        with patch("continuum_app.state.transitions.log_period_transition") as mock_log:
            PeriodTransitionHandler().log_committed(plan)

        kwargs = mock_log.call_args.kwargs
        assert kwargs["kind"] == "end_and_start"
        assert kwargs["closed_id"] == "a"
        assert kwargs["opened_id"] == plan.opened.id
        assert kwargs["timestamp"] == 2000
        assert kwargs["context"]["from_state"] == "working"
        assert kwargs["context"]["to_state"] == "working"
