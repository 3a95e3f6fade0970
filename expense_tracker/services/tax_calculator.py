"""
Paycheck Tax Estimates

Turns an annual gross salary into a federal, state and payroll tax
breakdown and the resulting take-home pay. The figures are estimates:
progressive federal brackets (2023), a flat per-state rate, Social
Security up to its wage cap, Medicare plus the additional Medicare tax.

Filing statuses without their own bracket table use the single table.
States without a listed rate pay no state tax.
"""

import math
from typing import Any, NamedTuple

from pydantic import BaseModel

from expense_tracker.models import PaycheckData, coerce_amount


# (lower bound, upper bound, rate)
FEDERAL_BRACKETS: dict[str, list[tuple[float, float, float]]] = {
    "single": [
        (0, 11000, 0.10),
        (11000, 44725, 0.12),
        (44725, 95375, 0.22),
        (95375, 182050, 0.24),
        (182050, 231250, 0.32),
        (231250, 578125, 0.35),
        (578125, math.inf, 0.37),
    ],
    "married": [
        (0, 22000, 0.10),
        (22000, 89450, 0.12),
        (89450, 190750, 0.22),
        (190750, 364200, 0.24),
        (364200, 462500, 0.32),
        (462500, 693750, 0.35),
        (693750, math.inf, 0.37),
    ],
}

STATE_TAX_RATES: dict[str, float] = {
    "CA": 0.08,
    "NY": 0.065,
    "TX": 0,
    "FL": 0,
    "WA": 0,
    "IL": 0.0495,
    "PA": 0.0307,
    "OH": 0.0399,
    "MI": 0.0425,
    "GA": 0.0575,
    "NC": 0.0525,
    "NJ": 0.0637,
    "VA": 0.0575,
    "CO": 0.0455,
    "AZ": 0.025,
    "NV": 0,
    "OR": 0.075,
    "UT": 0.0495,
    "TN": 0,
    "AL": 0.05,
}

SOCIAL_SECURITY_RATE = 0.062
SOCIAL_SECURITY_CAP = 160200  # 2023 wage base
MEDICARE_RATE = 0.0145
ADDITIONAL_MEDICARE_RATE = 0.009
ADDITIONAL_MEDICARE_THRESHOLD = 200000

# Visa statuses treated as exempt from Social Security and Medicare
PAYROLL_EXEMPT_VISAS = ("f1_opt", "j1")


class PayrollTaxes(NamedTuple):
    social_security: float
    medicare: float
    additional_medicare: float


class TaxBreakdown(BaseModel):
    """Annual and monthly tax figures for one salary."""

    monthly_gross: float
    monthly_net: float
    monthly_federal_tax: float
    monthly_state_tax: float
    monthly_social_security: float
    monthly_medicare: float
    monthly_total_tax: float

    annual_gross: float
    net_annual_salary: float
    annual_federal_tax: float
    annual_state_tax: float
    annual_social_security: float
    annual_medicare: float
    annual_total_tax: float

    # Percentages of annual gross; 0 when there is no gross salary
    effective_federal_rate: float
    effective_state_rate: float
    effective_total_rate: float


class StateTaxSnapshot(BaseModel):
    state: str
    monthly_net: float
    annual_state_tax: float
    effective_total_rate: float


class StateTaxDifference(BaseModel):
    monthly_net_difference: float
    annual_state_tax_difference: float
    effective_rate_difference: float


class StateTaxComparison(BaseModel):
    """Take-home pay in the current state versus another state."""

    current: StateTaxSnapshot
    comparison: StateTaxSnapshot
    difference: StateTaxDifference


def calculate_federal_tax(gross_salary: float, filing_status: str = "single") -> float:
    """Federal income tax over the progressive brackets."""
    brackets = FEDERAL_BRACKETS.get(filing_status, FEDERAL_BRACKETS["single"])
    federal_tax = 0.0
    remaining = gross_salary

    for lower, upper, rate in brackets:
        if remaining <= 0:
            break
        taxable = min(remaining, upper - lower)
        federal_tax += taxable * rate
        remaining -= taxable

    return federal_tax


def calculate_payroll_taxes(gross_salary: float) -> PayrollTaxes:
    """Social Security (capped) and Medicare, including the additional tax."""
    social_security = min(
        gross_salary * SOCIAL_SECURITY_RATE,
        SOCIAL_SECURITY_CAP * SOCIAL_SECURITY_RATE,
    )
    medicare = gross_salary * MEDICARE_RATE
    additional_medicare = (
        (gross_salary - ADDITIONAL_MEDICARE_THRESHOLD) * ADDITIONAL_MEDICARE_RATE
        if gross_salary > ADDITIONAL_MEDICARE_THRESHOLD
        else 0.0
    )
    return PayrollTaxes(social_security, medicare, additional_medicare)


def calculate_state_tax(gross_salary: float, state: str) -> float:
    return gross_salary * STATE_TAX_RATES.get(state, 0)


def apply_visa_adjustments(taxes: dict[str, float], visa_status: str) -> dict[str, float]:
    """Zero payroll taxes for visa statuses that are exempt from them."""
    if visa_status in PAYROLL_EXEMPT_VISAS:
        return {**taxes, "social_security": 0.0, "medicare": 0.0, "additional_medicare": 0.0}
    return taxes


def _rate(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def calculate_taxes(
    gross_salary: Any,
    state: str = "CA",
    visa_status: str = "citizen",
    filing_status: str = "single",
) -> TaxBreakdown:
    """
    Full tax breakdown for an annual gross salary.

    Args:
        gross_salary: Annual gross; coerced like any stored amount
        state: Two-letter state code
        visa_status: Visa status (f1_opt and j1 skip payroll taxes)
        filing_status: 'single', 'married', ...

    Returns:
        TaxBreakdown with monthly, annual and effective-rate figures
    """
    annual_gross = coerce_amount(gross_salary)

    payroll = calculate_payroll_taxes(annual_gross)
    taxes = apply_visa_adjustments(
        {
            "federal": calculate_federal_tax(annual_gross, filing_status),
            "state": calculate_state_tax(annual_gross, state),
            **payroll._asdict(),
        },
        visa_status,
    )

    medicare = taxes["medicare"] + taxes["additional_medicare"]
    total_tax = sum(taxes.values())
    net_annual = annual_gross - total_tax

    return TaxBreakdown(
        monthly_gross=annual_gross / 12,
        monthly_net=net_annual / 12,
        monthly_federal_tax=taxes["federal"] / 12,
        monthly_state_tax=taxes["state"] / 12,
        monthly_social_security=taxes["social_security"] / 12,
        monthly_medicare=medicare / 12,
        monthly_total_tax=total_tax / 12,
        annual_gross=annual_gross,
        net_annual_salary=net_annual,
        annual_federal_tax=taxes["federal"],
        annual_state_tax=taxes["state"],
        annual_social_security=taxes["social_security"],
        annual_medicare=medicare,
        annual_total_tax=total_tax,
        effective_federal_rate=_rate(taxes["federal"], annual_gross),
        effective_state_rate=_rate(taxes["state"], annual_gross),
        effective_total_rate=_rate(total_tax, annual_gross),
    )


def calculate_paycheck_taxes(paycheck: PaycheckData) -> TaxBreakdown:
    """Tax breakdown for a stored paycheck."""
    return calculate_taxes(
        paycheck.gross_salary,
        paycheck.state,
        paycheck.visa_status,
        paycheck.filing_status,
    )


def take_home_percentage(gross_salary: float, net_salary: float) -> float:
    return _rate(net_salary, gross_salary)


def compare_state_taxes(
    gross_salary: Any,
    current_state: str,
    comparison_state: str,
    filing_status: str = "single",
) -> StateTaxComparison:
    """Compare take-home pay between two states (citizen payroll taxes)."""
    current = calculate_taxes(gross_salary, current_state, "citizen", filing_status)
    other = calculate_taxes(gross_salary, comparison_state, "citizen", filing_status)

    def snapshot(state: str, breakdown: TaxBreakdown) -> StateTaxSnapshot:
        return StateTaxSnapshot(
            state=state,
            monthly_net=breakdown.monthly_net,
            annual_state_tax=breakdown.annual_state_tax,
            effective_total_rate=breakdown.effective_total_rate,
        )

    return StateTaxComparison(
        current=snapshot(current_state, current),
        comparison=snapshot(comparison_state, other),
        difference=StateTaxDifference(
            monthly_net_difference=other.monthly_net - current.monthly_net,
            annual_state_tax_difference=other.annual_state_tax - current.annual_state_tax,
            effective_rate_difference=other.effective_total_rate - current.effective_total_rate,
        ),
    )
