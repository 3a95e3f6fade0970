"""Tests for expense aggregation."""

from datetime import datetime, timezone

import pytest

from expense_tracker.models import Expense
from expense_tracker.services.expense_calculator import (
    budget_allocation,
    budget_recommendations,
    expense_trends,
    expense_variance,
    expenses_by_category,
    expenses_by_type,
    high_spending_categories,
    monthly_equivalent,
    remaining_budget,
    savings_rate,
    savings_status,
    summarize_spending,
    total_expenses,
)


def _expense(amount, category="food", expense_type="fixed", **extra) -> Expense:
    return Expense.model_validate(
        {"amount": amount, "category": category, "type": expense_type, **extra}
    )


class TestTotals:
    """Tests for totals and breakdowns."""

    def test_total(self):
        assert total_expenses([_expense(10), _expense("2.5"), _expense("abc")]) == 12.5
        assert total_expenses([]) == 0

    def test_by_category_and_type(self):
        """Test grouping, with empty categories counted as other."""
        expenses = [
            _expense(100, "housing", "fixed"),
            _expense(20, "food", "recurring"),
            _expense(30, "food", "one_time"),
            _expense(5, ""),
        ]
        assert expenses_by_category(expenses) == {"housing": 100, "food": 50, "other": 5}
        assert expenses_by_type(expenses) == {"fixed": 105, "recurring": 20, "one_time": 30}

    def test_remaining_budget(self):
        assert remaining_budget(3000, 2500) == 500

    def test_monthly_equivalent_uses_frequency(self):
        """Test scaling by the optional frequency field."""
        expenses = [
            _expense(120, frequency="annual"),
            _expense(300, frequency="quarterly"),
            _expense(50),
            _expense(999, frequency="one-time"),
            _expense(40, frequency="fortnightly"),
        ]
        assert monthly_equivalent(expenses) == pytest.approx(10 + 100 + 50 + 0 + 40)

    def test_weekly_frequency(self):
        assert monthly_equivalent([_expense(12, frequency="weekly")]) == pytest.approx(52)


class TestTrends:
    """Tests for per-month totals."""

    def test_last_three_months(self):
        """Test calendar-month buckets, oldest first."""
        today = datetime(2024, 3, 15, tzinfo=timezone.utc)
        expenses = [
            _expense(10, date="2024-01-31T23:59:00Z"),
            _expense(20, date="2024-02-01"),
            _expense(5, date="2024-02-29"),
            _expense(7, date="2024-03-01"),
            _expense(99, date="2023-12-31"),
            _expense(1000),
        ]

        trends = expense_trends(expenses, months=3, today=today)

        assert [t.month for t in trends] == ["Jan 2024", "Feb 2024", "Mar 2024"]
        assert [t.total for t in trends] == [10, 25, 7]
        assert [t.count for t in trends] == [1, 2, 1]

    def test_year_boundary(self):
        today = datetime(2024, 1, 10, tzinfo=timezone.utc)
        trends = expense_trends([_expense(8, date="2023-12-05")], months=2, today=today)
        assert [(t.month, t.total) for t in trends] == [("Dec 2023", 8), ("Jan 2024", 0)]


class TestAllocations:
    """Tests for shares of income and of spending."""

    def test_budget_allocation(self):
        allocation = budget_allocation(4000, {"housing": 1000})
        assert allocation["housing"].percentage == pytest.approx(25)
        assert budget_allocation(0, {"housing": 1000}) == {}

    def test_high_spending_categories(self):
        """Test the threshold and the largest-first order."""
        high = high_spending_categories({"housing": 600, "food": 300, "fun": 100})
        assert [share.category for share in high] == ["housing", "food"]
        assert high[0].percentage == pytest.approx(60)
        assert high_spending_categories({}) == []


class TestSavings:
    """Tests for savings figures and recommendations."""

    @pytest.mark.parametrize(
        "rate,status",
        [(25, "excellent"), (15, "good"), (12, "fair"), (5, "poor"), (-3, "critical")],
    )
    def test_status(self, rate, status):
        assert savings_status(rate) == status

    def test_savings_rate(self):
        summary = savings_rate(5000, 4000)
        assert summary.monthly_savings == 1000
        assert summary.savings_rate == pytest.approx(20)
        assert summary.annual_savings == 12000
        assert summary.status == "excellent"

    def test_savings_rate_without_income(self):
        summary = savings_rate(0, 100)
        assert summary.savings_rate == 0
        assert summary.status == "critical"

    def test_recommendations(self):
        """Test per-category advice and the overall messages."""
        recommendations = budget_recommendations(5000, {"housing": 2500, "food": 2100})

        housing = recommendations.categories["housing"]
        assert housing.recommended == pytest.approx(1500)
        assert housing.status == "over"
        assert recommendations.categories["savings"].status == "under"
        assert recommendations.overall == [
            "Consider reducing discretionary spending to increase savings rate",
            "Review spending in: housing, food",
        ]

    def test_healthy_budget_has_no_overall_advice(self):
        spending = {"a": 100, "b": 100, "c": 100, "d": 100, "e": 100}
        recommendations = budget_recommendations(10000, spending)
        assert recommendations.overall == []

    def test_variance(self):
        """Test over, under and on-track categories."""
        variance = expense_variance(
            {"food": 500, "fun": 50},
            {"food": 400, "fun": 100, "rent": 0},
        )

        assert variance["food"].status == "over"
        assert variance["food"].percentage_variance == pytest.approx(25)
        assert variance["fun"].status == "under"
        assert variance["rent"].status == "on-track"
        assert variance["rent"].percentage_variance == 0


class TestSummary:
    def test_summarize_spending(self):
        summary = summarize_spending([_expense(100, "housing"), _expense(50, "food")], 1000)
        assert summary.total == 150
        assert summary.by_category == {"housing": 100, "food": 50}
        assert summary.savings.savings_rate == pytest.approx(85)
