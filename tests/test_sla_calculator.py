"""
Tests for SLA deadline classification and labels.
"""

from datetime import datetime, timedelta, timezone

import pytest

from maintenance_sla.config import SLAStatus, SLAType
from maintenance_sla.sla.domain import SLACalculator

from conftest import T0, make_request

WINDOW = timedelta(hours=2)


class TestClassify:

    def test_no_deadline_is_not_applicable(self):
        assert SLACalculator.classify(None, None, T0, WINDOW) == SLAStatus.NOT_APPLICABLE
        assert SLACalculator.time_label(None, None, T0, WINDOW) is None

    def test_achieved_before_deadline(self):
        due = T0 + timedelta(hours=1)
        status = SLACalculator.classify(due, T0 + timedelta(minutes=30), T0, WINDOW)
        assert status == SLAStatus.ACHIEVED_ON_TIME

    def test_achieved_exactly_at_deadline_is_on_time(self):
        due = T0 + timedelta(hours=1)
        assert SLACalculator.classify(due, due, T0, WINDOW) == SLAStatus.ACHIEVED_ON_TIME

    def test_achieved_after_deadline(self):
        due = T0 + timedelta(hours=1)
        status = SLACalculator.classify(due, due + timedelta(seconds=1), T0, WINDOW)
        assert status == SLAStatus.ACHIEVED_LATE

    def test_achievement_wins_over_current_time(self):
        due = T0 + timedelta(hours=1)
        far_future = T0 + timedelta(days=30)
        assert SLACalculator.classify(due, T0, far_future, WINDOW) == SLAStatus.ACHIEVED_ON_TIME

    def test_exactly_at_window_boundary_is_at_risk(self):
        due = T0 + WINDOW
        assert SLACalculator.classify(due, None, T0, WINDOW) == SLAStatus.AT_RISK

    def test_just_outside_window_is_on_track(self):
        due = T0 + WINDOW + timedelta(seconds=1)
        assert SLACalculator.classify(due, None, T0, WINDOW) == SLAStatus.ON_TRACK

    def test_at_deadline_is_still_at_risk(self):
        assert SLACalculator.classify(T0, None, T0, WINDOW) == SLAStatus.AT_RISK

    def test_past_deadline_is_overdue(self):
        due = T0 - timedelta(seconds=1)
        assert SLACalculator.classify(due, None, T0, WINDOW) == SLAStatus.OVERDUE

    def test_zero_window_never_at_risk_before_deadline(self):
        due = T0 + timedelta(minutes=1)
        assert SLACalculator.classify(due, None, T0, timedelta(0)) == SLAStatus.ON_TRACK


class TestLabels:

    def test_ninety_minutes_left_truncates_to_hours(self):
        due = T0 + timedelta(minutes=90)
        assert SLACalculator.classify(due, None, T0, WINDOW) == SLAStatus.AT_RISK
        assert SLACalculator.time_label(due, None, T0, WINDOW) == "1h left"

    def test_completed_two_hours_late(self):
        due = T0 + timedelta(hours=48)
        completed = T0 + timedelta(hours=50)
        now = T0 + timedelta(hours=60)
        assert SLACalculator.classify(due, completed, now, WINDOW) == SLAStatus.ACHIEVED_LATE
        assert SLACalculator.time_label(due, completed, now, WINDOW) == "2h late"

    def test_achieved_early_label(self):
        due = T0 + timedelta(hours=4)
        assert SLACalculator.time_label(due, T0 + timedelta(hours=1), T0, WINDOW) == "3h early"

    def test_overdue_in_days(self):
        due = T0 - timedelta(days=3, hours=5)
        assert SLACalculator.time_label(due, None, T0, WINDOW) == "3d overdue"

    def test_minutes_left(self):
        due = T0 + timedelta(minutes=45, seconds=59)
        assert SLACalculator.time_label(due, None, T0, WINDOW) == "45m left"

    @pytest.mark.parametrize("delta, expected", [
        (timedelta(0), "0m left"),
        (timedelta(seconds=59), "0m left"),
        (timedelta(minutes=59), "59m left"),
        (timedelta(minutes=60), "1h left"),
        (timedelta(hours=23, minutes=59), "23h left"),
        (timedelta(hours=24), "1d left"),
        (-timedelta(minutes=90), "1h left"),
    ])
    def test_format_duration_units(self, delta, expected):
        assert SLACalculator.format_duration(delta) == expected

    def test_format_duration_without_suffix(self):
        assert SLACalculator.format_duration(timedelta(hours=5), suffix="") == "5h"


class TestEvaluate:

    def test_snapshot_of_fresh_emergency(self):
        request = make_request()
        snapshot = SLACalculator.evaluate(request, T0, WINDOW)

        assert snapshot.request_id == "req-1"
        assert snapshot.response.sla_type == SLAType.RESPONSE
        assert snapshot.response.status == SLAStatus.AT_RISK
        assert snapshot.resolution.sla_type == SLAType.RESOLUTION
        assert snapshot.resolution.status == SLAStatus.ON_TRACK
        assert snapshot.is_at_risk
        assert not snapshot.is_any_breached
        assert snapshot.most_urgent_status == SLAStatus.AT_RISK

    def test_breach_on_either_clock_is_reported(self):
        request = make_request(first_responded_at=T0 + timedelta(minutes=10))
        now = T0 + timedelta(hours=5)
        snapshot = SLACalculator.evaluate(request, now, WINDOW)

        assert snapshot.response.status == SLAStatus.ACHIEVED_ON_TIME
        assert snapshot.resolution.status == SLAStatus.OVERDUE
        assert snapshot.is_any_breached
        assert snapshot.resolution.is_breached
        assert snapshot.most_urgent_status == SLAStatus.OVERDUE
        assert snapshot.resolution.label == "1h overdue"

    def test_request_without_deadlines(self):
        request = make_request(sla_response_due_at=None, sla_resolution_due_at=None)
        snapshot = SLACalculator.evaluate(request, T0, WINDOW)

        assert snapshot.most_urgent_status == SLAStatus.NOT_APPLICABLE
        assert not snapshot.is_at_risk
        assert not snapshot.is_any_breached

    def test_naive_timestamps_are_treated_as_utc(self):
        naive_due = datetime(2024, 1, 15, 11, 0)
        request = make_request(sla_response_due_at=naive_due)

        assert request.sla_response_due_at == datetime(2024, 1, 15, 11, 0, tzinfo=timezone.utc)
        snapshot = SLACalculator.evaluate(request, T0, WINDOW)
        assert snapshot.response.label == "1h left"

    def test_snapshot_to_dict(self):
        snapshot = SLACalculator.evaluate(make_request(), T0, WINDOW)
        data = snapshot.to_dict()

        assert data["response"]["status"] == "at_risk"
        assert data["overall"]["status"] == "at_risk"
        assert data["overall"]["is_any_breached"] is False
