# spvsim/core/debt.py
"""
Contains functions specifically related to loan amortization:
- amortization_schedule: annual principal/interest split of a fixed-payment mortgage.
- AmortizationCache: memoises schedules for the lifetime of one simulation request.
- remaining_balance: outstanding principal at the start of a given loan year.
"""

import numpy as np
import numpy_financial as npf
import logging
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

from .constants import MONTHS_PER_YEAR, FLOAT_ATOL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AmortizationYear:
    """Principal and interest paid during one loan year."""
    principal: float
    interest: float

    @property
    def debt_service(self) -> float:
        return self.principal + self.interest


def monthly_payment(loan_amount: float, rate: float, term_years: int) -> float:
    """Constant monthly annuity payment. Falls back to straight-line repayment when rate is zero."""
    periods = term_years * MONTHS_PER_YEAR
    rate_monthly = rate / MONTHS_PER_YEAR
    if loan_amount <= FLOAT_ATOL:
        return 0.0
    if abs(rate_monthly) <= FLOAT_ATOL:
        return loan_amount / periods
    payment = float(npf.pmt(rate_monthly, periods, -loan_amount))
    if not np.isfinite(payment):
        raise ValueError(f"Monthly payment is non-finite for loan={loan_amount}, rate={rate}, term={term_years}.")
    return payment


def _validate_loan_terms(loan_amount: float, rate: float, term_years: int) -> None:
    if not np.isfinite(loan_amount) or loan_amount < 0:
        raise ValueError(f"Loan amount must be a finite non-negative number, got {loan_amount}.")
    if not np.isfinite(rate) or rate < 0:
        raise ValueError(f"Loan rate must be a finite non-negative decimal, got {rate}.")
    if int(term_years) != term_years or term_years < 1:
        raise ValueError(f"Loan term must be a whole number of years >= 1, got {term_years}.")


def amortization_schedule(loan_amount: float, rate: float, term_years: int) -> Tuple[AmortizationYear, ...]:
    """
    Builds the annual amortization schedule of a fixed-rate, fixed-payment loan.

    Interest and principal are accrued monthly (rate / 12 per month) and summed
    into one AmortizationYear per loan year. The running balance is floored at
    zero so that floating-point drift never produces a negative balance.

    Args:
        loan_amount: Initial principal (>= 0).
        rate: Annual contractual rate as a decimal (e.g. 0.04).
        term_years: Loan term in whole years (>= 1).

    Returns:
        A tuple with `term_years` entries; the principal entries sum to `loan_amount`.

    Raises:
        ValueError: If the loan terms are invalid.
    """
    _validate_loan_terms(loan_amount, rate, term_years)
    term_years = int(term_years)
    rate_monthly = rate / MONTHS_PER_YEAR
    monthly_pmt = monthly_payment(loan_amount, rate, term_years)
    logger.debug(f"Amortizing loan={loan_amount:.2f}, rate={rate:.4f}, term={term_years}y, monthly_pmt={monthly_pmt:.2f}")

    schedule = []
    balance = float(loan_amount)
    for _ in range(term_years):
        principal_yr = 0.0
        interest_yr = 0.0
        for _ in range(MONTHS_PER_YEAR):
            monthly_interest = balance * rate_monthly
            monthly_principal = min(monthly_pmt - monthly_interest, balance)
            interest_yr += monthly_interest
            principal_yr += monthly_principal
            balance = max(0.0, balance - monthly_principal)
        schedule.append(AmortizationYear(principal=principal_yr, interest=interest_yr))

    if balance > FLOAT_ATOL * max(1.0, loan_amount):
        logger.warning(f"Amortization left a residual balance of {balance:.6f} on loan={loan_amount:.2f}.")
    return tuple(schedule)


def remaining_balance(loan_amount: float, schedule: Sequence[AmortizationYear], age: int) -> float:
    """Outstanding principal at the start of loan year `age` (loan amount minus scheduled principal of prior years)."""
    if age <= 0:
        return loan_amount
    return loan_amount - sum(entry.principal for entry in schedule[:age])


class AmortizationCache:
    """
    Memoises amortization schedules keyed by (loan_amount, rate, term_years).

    One instance is meant to live for a single simulation request (a base run
    plus its range variants) and be discarded afterwards; it is not shared
    between requests or threads.
    """

    def __init__(self) -> None:
        self._schedules: Dict[Tuple[float, float, int], Tuple[AmortizationYear, ...]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, loan_amount: float, rate: float, term_years: int) -> Tuple[AmortizationYear, ...]:
        key = (float(loan_amount), float(rate), int(term_years))
        schedule = self._schedules.get(key)
        if schedule is None:
            self.misses += 1
            schedule = amortization_schedule(loan_amount, rate, term_years)
            self._schedules[key] = schedule
        else:
            self.hits += 1
        return schedule

    def __len__(self) -> int:
        return len(self._schedules)

    def __contains__(self, key: Tuple[float, float, int]) -> bool:
        return key in self._schedules
