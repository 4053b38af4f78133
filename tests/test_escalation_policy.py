"""
Tests for the escalation policy and its YAML-backed configuration.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from maintenance_sla.config import Priority
from maintenance_sla.core import ConfigurationException
from maintenance_sla.sla.domain import (
    EscalationConfig,
    EscalationPolicy,
    EscalationThreshold,
)

from conftest import T0, minutes


@pytest.fixture
def policy():
    return EscalationConfig().build_policy()


def decide(policy, elapsed, current_level=0, priority=Priority.EMERGENCY, acknowledged_at=None):
    return policy.next_level(priority, T0, acknowledged_at, current_level, T0 + elapsed)


class TestNextLevel:

    def test_new_emergency_reaches_level_one_immediately(self, policy):
        decision = decide(policy, timedelta(0))
        assert decision.level == 1
        assert decision.changed

    def test_level_two_after_threshold(self, policy):
        assert decide(policy, minutes(59), current_level=1).changed is False
        decision = decide(policy, minutes(60), current_level=1)
        assert decision.level == 2
        assert decision.changed

    def test_jumps_to_highest_satisfied_level(self, policy):
        decision = decide(policy, minutes(300), current_level=0)
        assert decision.level == 3
        assert decision.changed

    def test_never_decreases(self, policy):
        decision = decide(policy, minutes(10), current_level=3)
        assert decision.level == 3
        assert decision.changed is False

    def test_max_level_is_stable(self, policy):
        decision = decide(policy, timedelta(days=10), current_level=3)
        assert decision.level == 3
        assert decision.changed is False

    def test_non_emergency_is_frozen(self, policy):
        decision = decide(policy, minutes(500), priority=Priority.HIGH)
        assert decision.level == 0
        assert decision.changed is False

    def test_acknowledged_is_frozen(self, policy):
        decision = decide(policy, minutes(500), current_level=1, acknowledged_at=T0 + minutes(5))
        assert decision.level == 1
        assert decision.changed is False

    def test_same_inputs_same_decision(self, policy):
        first = decide(policy, minutes(90), current_level=1)
        second = decide(policy, minutes(90), current_level=1)
        assert first == second


class TestPolicyValidation:

    def test_duplicate_levels_rejected(self):
        with pytest.raises(ConfigurationException):
            EscalationPolicy([
                EscalationThreshold(1, minutes(0)),
                EscalationThreshold(1, minutes(10)),
            ])

    def test_level_out_of_range_rejected(self):
        with pytest.raises(ConfigurationException):
            EscalationPolicy([EscalationThreshold(4, minutes(0))])

    def test_negative_threshold_rejected(self):
        with pytest.raises(ConfigurationException):
            EscalationPolicy([EscalationThreshold(1, -minutes(1))])

    def test_decreasing_thresholds_rejected(self):
        with pytest.raises(ConfigurationException):
            EscalationPolicy([
                EscalationThreshold(1, minutes(30)),
                EscalationThreshold(2, minutes(10)),
            ])

    def test_thresholds_are_sorted_by_level(self):
        policy = EscalationPolicy([
            EscalationThreshold(2, minutes(30)),
            EscalationThreshold(1, minutes(0)),
        ])
        assert [t.level for t in policy.thresholds] == [1, 2]

    def test_custom_thresholds(self):
        policy = EscalationPolicy([
            EscalationThreshold(1, minutes(0)),
            EscalationThreshold(2, minutes(30)),
            EscalationThreshold(3, minutes(60)),
        ])
        assert decide(policy, minutes(45), current_level=1).level == 2


class TestEscalationConfig:

    def test_defaults(self):
        config = EscalationConfig()

        assert [(e.level, e.after_minutes) for e in config.escalation_levels] == [
            (1, 0), (2, 60), (3, 240)
        ]
        assert config.at_risk_window == timedelta(hours=2)
        assert config.get_recipients_for_level(1) == ["property-manager"]
        assert "owner" in config.get_recipients_for_level(3)

    def test_unknown_level_has_no_recipients(self):
        assert EscalationConfig().get_recipients_for_level(0) == []

    def test_levels_are_sorted(self):
        config = EscalationConfig(escalation_levels=[
            {"level": 2, "after_minutes": 30, "notify": ["b"]},
            {"level": 1, "after_minutes": 0, "notify": ["a"]},
        ])
        assert [e.level for e in config.escalation_levels] == [1, 2]

    def test_duplicate_levels_rejected(self):
        with pytest.raises(ValidationError):
            EscalationConfig(escalation_levels=[
                {"level": 1, "after_minutes": 0},
                {"level": 1, "after_minutes": 5},
            ])

    def test_decreasing_minutes_rejected(self):
        with pytest.raises(ValidationError):
            EscalationConfig(escalation_levels=[
                {"level": 1, "after_minutes": 60},
                {"level": 2, "after_minutes": 30},
            ])

    def test_level_above_three_rejected(self):
        with pytest.raises(ValidationError):
            EscalationConfig(escalation_levels=[{"level": 4, "after_minutes": 0}])
