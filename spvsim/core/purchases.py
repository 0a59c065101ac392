# spvsim/core/purchases.py
"""
Builds the acquisition schedule of a run: one Purchase per configured purchase
year, with per-property overrides resolved and the loan's amortization
schedule computed once up front.
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple

from .debt import AmortizationCache, AmortizationYear, remaining_balance
from .inputs import ModelSettings, PropertyOverride

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Purchase:
    """An acquisition and its loan. Immutable once built; rates are decimals."""
    year: int
    price: float
    ltv: float
    loan_amount: float
    loan_rate: float
    term_years: int
    schedule: Tuple[AmortizationYear, ...]

    def is_owned(self, year: int) -> bool:
        return year >= self.year

    def loan_age(self, year: int) -> int:
        return year - self.year

    def loan_active(self, year: int) -> bool:
        return self.is_owned(year) and self.loan_age(year) < self.term_years

    def scheduled_payment(self, year: int) -> AmortizationYear:
        """Scheduled principal/interest for calendar `year`. Caller checks loan_active first."""
        return self.schedule[self.loan_age(year)]

    def balance_at_start_of(self, year: int) -> float:
        return remaining_balance(self.loan_amount, self.schedule, self.loan_age(year))


def _unique_in_order(years: List[int]) -> List[int]:
    seen = set()
    ordered = []
    for year in years:
        if year not in seen:
            seen.add(year)
            ordered.append(year)
    return ordered


def build_purchase_schedule(settings: ModelSettings, cache: AmortizationCache) -> List[Purchase]:
    """
    Resolves every configured purchase into a Purchase.

    Overrides are looked up by the nominal purchase year and win over the
    global defaults. Without a price override the price is the unit price
    compounded at the nominal price growth up to the actual purchase year.
    Schedules always use the contractual rate; rate shocks are applied later,
    to the interest charged in a given year only.
    """
    purchases: List[Purchase] = []
    price_growth = settings.price_growth.decimal

    for nominal_year in _unique_in_order(settings.purchase_years):
        override = settings.property_settings.get(nominal_year, PropertyOverride())
        purchase_year = override.purchase_year if override.purchase_year is not None else nominal_year

        if override.price is not None:
            price = override.price
        else:
            price = settings.unit_price * (1.0 + price_growth) ** purchase_year
        ltv = override.ltv / 100.0 if override.ltv is not None else settings.ltv_decimal
        loan_rate = override.loan_rate / 100.0 if override.loan_rate is not None else settings.loan_rate.decimal
        term_years = override.term_years if override.term_years is not None else settings.term_years

        loan_amount = price * ltv
        purchases.append(Purchase(
            year=purchase_year,
            price=price,
            ltv=ltv,
            loan_amount=loan_amount,
            loan_rate=loan_rate,
            term_years=term_years,
            schedule=cache.get(loan_amount, loan_rate, term_years),
        ))
        logger.debug(f"Purchase (nominal Y{nominal_year}) -> Y{purchase_year}: price={price:.2f}, ltv={ltv:.2%}, "
                     f"loan={loan_amount:.2f} @ {loan_rate:.4f} for {term_years}y")

    logger.info(f"Built {len(purchases)} purchases; amortization cache holds {len(cache)} schedule(s)")
    return purchases
