"""Tests for model spend gates."""

import pytest

from src.orchestrator.nl_engine.cost_guard import AllowAllCostGuard, DailyBudgetCostGuard


def test_allow_all():
    guard = AllowAllCostGuard()
    guard.record("claude-haiku-4-5", 10**9, 10**9)
    assert guard.allow("classify")


class TestDailyBudgetCostGuard:
    """Daily USD cap."""

    def test_estimate_known_model(self):
        guard = DailyBudgetCostGuard(1.0)
        assert guard.estimate_usd("claude-haiku-4-5", 1000, 1000) == pytest.approx(0.006)

    def test_unknown_model_priced_at_most_expensive(self):
        guard = DailyBudgetCostGuard(1.0)
        assert guard.estimate_usd("some-new-model", 1000, 1000) == pytest.approx(0.018)

    def test_rejects_once_cap_reached(self):
        guard = DailyBudgetCostGuard(0.01)
        assert guard.allow("classify")

        guard.record("claude-haiku-4-5", 1000, 1000)
        assert guard.spent_usd == pytest.approx(0.006)
        assert guard.allow("classify")

        guard.record("claude-haiku-4-5", 1000, 1000)
        assert not guard.allow("extract")

    def test_zero_cap_rejects_everything(self):
        assert not DailyBudgetCostGuard(0.0).allow("classify")
