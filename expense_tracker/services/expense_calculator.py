"""
Expense Aggregation

Totals, breakdowns and savings figures over a list of expenses, usually
the ones a session has loaded. Everything here is pure: no store calls.

An expense may carry a `frequency` field (weekly, bi-weekly, monthly,
quarterly, semi-annual, annual, one-time); it only affects the monthly
equivalent. Missing amounts count as 0, missing categories as "other".
"""

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from expense_tracker.models import Expense


# Multiplier turning one payment into its monthly share
FREQUENCY_TO_MONTHLY: dict[str, float] = {
    "weekly": 52 / 12,
    "bi-weekly": 26 / 12,
    "monthly": 1.0,
    "quarterly": 1 / 3,
    "semi-annual": 1 / 6,
    "annual": 1 / 12,
    "one-time": 0.0,
}

# Share of monthly income suggested per category
RECOMMENDED_ALLOCATIONS: dict[str, float] = {
    "housing": 0.30,
    "transportation": 0.15,
    "food": 0.10,
    "utilities": 0.05,
    "entertainment": 0.05,
    "shopping": 0.05,
    "healthcare": 0.05,
    "insurance": 0.05,
    "savings": 0.20,
}


class MonthlyTrend(BaseModel):
    month: str
    total: float
    count: int


class CategoryAllocation(BaseModel):
    amount: float
    percentage: float


class CategoryShare(BaseModel):
    category: str
    amount: float
    percentage: float


class SavingsSummary(BaseModel):
    monthly_savings: float
    savings_rate: float
    annual_savings: float
    status: str


class CategoryRecommendation(BaseModel):
    current: float
    recommended: float
    difference: float
    status: str


class BudgetRecommendations(BaseModel):
    categories: dict[str, CategoryRecommendation] = Field(default_factory=dict)
    overall: list[str] = Field(default_factory=list)


class CategoryVariance(BaseModel):
    actual: float
    budgeted: float
    difference: float
    percentage_variance: float
    status: str


class SpendingSummary(BaseModel):
    """Headline figures for one user's loaded expenses."""

    total: float
    by_category: dict[str, float]
    by_type: dict[str, float]
    monthly_equivalent: float
    savings: SavingsSummary


def total_expenses(expenses: Iterable[Expense]) -> float:
    return sum(expense.amount or 0 for expense in expenses)


def expenses_by_category(expenses: Iterable[Expense]) -> dict[str, float]:
    totals: dict[str, float] = {}
    for expense in expenses:
        category = expense.category or "other"
        totals[category] = totals.get(category, 0) + (expense.amount or 0)
    return totals


def expenses_by_type(expenses: Iterable[Expense]) -> dict[str, float]:
    totals: dict[str, float] = {}
    for expense in expenses:
        expense_type = expense.type or "other"
        totals[expense_type] = totals.get(expense_type, 0) + (expense.amount or 0)
    return totals


def remaining_budget(monthly_income: float, total: float) -> float:
    return monthly_income - total


def monthly_equivalent(expenses: Iterable[Expense]) -> float:
    """Sum of expenses scaled to one month by their `frequency`."""
    monthly = 0.0
    for expense in expenses:
        frequency = getattr(expense, "frequency", None)
        if not isinstance(frequency, str) or not frequency:
            frequency = "monthly"
        monthly += (expense.amount or 0) * FREQUENCY_TO_MONTHLY.get(frequency, 1.0)
    return monthly


def _month_start(year: int, month: int) -> datetime:
    # Normalizes month overflow in both directions
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return datetime(year, month, 1, tzinfo=timezone.utc)


def expense_trends(
    expenses: Iterable[Expense],
    months: int = 6,
    today: Optional[datetime] = None,
) -> list[MonthlyTrend]:
    """
    Per-month totals for the last `months` calendar months (UTC),
    oldest first, the current month included.

    Expenses without a date are not counted.
    """
    today = today or datetime.now(timezone.utc)
    dated = [expense for expense in expenses if expense.date is not None]
    trends = []

    for offset in range(months - 1, -1, -1):
        start = _month_start(today.year, today.month - offset)
        end = _month_start(start.year, start.month + 1)
        in_month = [expense for expense in dated if start <= expense.date < end]
        trends.append(
            MonthlyTrend(
                month=start.strftime("%b %Y"),
                total=total_expenses(in_month),
                count=len(in_month),
            )
        )

    return trends


def budget_allocation(
    monthly_income: float,
    by_category: Mapping[str, float],
) -> dict[str, CategoryAllocation]:
    """Each category's spending as a share of monthly income."""
    if monthly_income <= 0:
        return {}
    return {
        category: CategoryAllocation(amount=amount, percentage=amount / monthly_income * 100)
        for category, amount in by_category.items()
    }


def high_spending_categories(
    by_category: Mapping[str, float],
    threshold: float = 15,
) -> list[CategoryShare]:
    """Categories above `threshold` percent of all spending, largest first."""
    total = sum(by_category.values())
    if total <= 0:
        return []

    shares = [
        CategoryShare(category=category, amount=amount, percentage=amount / total * 100)
        for category, amount in by_category.items()
        if amount / total * 100 > threshold
    ]
    return sorted(shares, key=lambda share: share.amount, reverse=True)


def savings_status(savings_rate: float) -> str:
    if savings_rate >= 20:
        return "excellent"
    if savings_rate >= 15:
        return "good"
    if savings_rate >= 10:
        return "fair"
    if savings_rate >= 5:
        return "poor"
    return "critical"


def savings_rate(monthly_income: float, total: float) -> SavingsSummary:
    savings = monthly_income - total
    rate = savings / monthly_income * 100 if monthly_income > 0 else 0.0
    return SavingsSummary(
        monthly_savings=savings,
        savings_rate=rate,
        annual_savings=savings * 12,
        status=savings_status(rate),
    )


def budget_recommendations(
    monthly_income: float,
    by_category: Mapping[str, float],
) -> BudgetRecommendations:
    """Compare spending with the suggested allocation per category."""
    recommendations = BudgetRecommendations()

    for category, share in RECOMMENDED_ALLOCATIONS.items():
        current = by_category.get(category, 0)
        recommended = monthly_income * share
        recommendations.categories[category] = CategoryRecommendation(
            current=current,
            recommended=recommended,
            difference=recommended - current,
            status="over" if current > recommended else "under",
        )

    savings = savings_rate(monthly_income, sum(by_category.values()))
    if savings.savings_rate < 10:
        recommendations.overall.append(
            "Consider reducing discretionary spending to increase savings rate"
        )

    high = high_spending_categories(by_category, threshold=20)
    if high:
        recommendations.overall.append(
            f"Review spending in: {', '.join(share.category for share in high)}"
        )

    return recommendations


def expense_variance(
    actual: Mapping[str, float],
    budgeted: Mapping[str, float],
) -> dict[str, CategoryVariance]:
    """Actual against budgeted spending for every category in either."""
    variance = {}
    for category in {**actual, **budgeted}:
        spent = actual.get(category, 0)
        planned = budgeted.get(category, 0)
        difference = spent - planned
        if difference > 0:
            status = "over"
        elif difference < 0:
            status = "under"
        else:
            status = "on-track"
        variance[category] = CategoryVariance(
            actual=spent,
            budgeted=planned,
            difference=difference,
            percentage_variance=difference / planned * 100 if planned > 0 else 0.0,
            status=status,
        )
    return variance


def summarize_spending(expenses: Iterable[Expense], monthly_income: float) -> SpendingSummary:
    """Totals, breakdowns and savings for a set of expenses."""
    expenses = list(expenses)
    total = total_expenses(expenses)
    return SpendingSummary(
        total=total,
        by_category=expenses_by_category(expenses),
        by_type=expenses_by_type(expenses),
        monthly_equivalent=monthly_equivalent(expenses),
        savings=savings_rate(monthly_income, total),
    )
