"""
Contains the core projection logic:
- run_model: Executes one deterministic projection of the SPV portfolio, year by year.
- run_model_safe: Same, but returns Ok(result) / Err(error) instead of raising on invalid settings.
- ModelResult: Year-indexed result series plus advisory warnings.
- Helper functions for property valuation, rent roll and debt service.

Each simulated year runs, in order: capital events (injections, purchases),
debt rollforward, valuation, property taxes, depreciation, rent, operating
result and corporate tax, cash flow, optional extra principal prepayment,
the dividend waterfall, and the reserve rollforward.
"""

import numpy as np
import pandas as pd
import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Union

from .constants import (
    ACQUISITION_COST_PCT, AIMI_RATE, BUILDING_SHARE, DEPRECIATION_RATE, FLOAT_ATOL,
    HIGH_LTV_THRESHOLD, IMI_RATE, MONTHS_PER_YEAR, RESULT_SERIES, VPT_SHARE,
)
from .debt import AmortizationCache
from .inputs import ModelSettings, SettingsValidationError
from .purchases import Purchase, build_purchase_schedule
from .scenarios import (
    ScenarioEffect, aimi_multiplier_for_year, corp_tax_rate_for_year, dividend_wht_for_year,
    loan_rate_for_year, occupancy_factor_for_year, opex_ratio_for_year, price_growth_for_year,
    rent_growth_for_year,
)

logger = logging.getLogger(__name__)


# --- Result Types ---

@dataclass(frozen=True)
class ModelWarnings:
    """Advisory flags; a flagged run still returns complete series."""
    is_underfunded: bool = False  # Cash reserve dipped below zero in some year
    high_ltv: bool = False  # LTV exceeded the 80% stress cap in some year


@dataclass
class ModelResult:
    """Series indexed by year 0..years (inclusive). Money in currency units, ltv in percent."""
    years: int
    debt: List[float]
    value: List[float]
    rent: List[float]
    cashflow: List[float]
    equity: List[float]
    dividends: List[float]
    ltv: List[float]
    cash_reserve: List[float]
    building_depreciation: List[float]
    imi: List[float]
    aimi: List[float]
    interest: List[float] = field(default_factory=list)
    principal: List[float] = field(default_factory=list)
    corporate_tax: List[float] = field(default_factory=list)
    warnings: ModelWarnings = field(default_factory=ModelWarnings)

    def to_dataframe(self) -> pd.DataFrame:
        """Tabulates the main series, one row per year, with display labels as columns."""
        frame = pd.DataFrame({label: getattr(self, key) for key, label in RESULT_SERIES.items()})
        frame.index = pd.RangeIndex(0, self.years + 1, name="Year")
        return frame


@dataclass(frozen=True)
class Ok:
    value: ModelResult
    ok: bool = True


@dataclass(frozen=True)
class Err:
    error: Exception
    ok: bool = False

    @property
    def messages(self) -> List[str]:
        if isinstance(self.error, SettingsValidationError):
            return self.error.errors
        return [str(self.error)]


ModelOutcome = Union[Ok, Err]


# --- Simulation Helper Functions ---

def property_value(purchase: Purchase, year: int, base_growth: float,
                   effects: Optional[Sequence[ScenarioEffect]]) -> float:
    """Purchase price compounded from the purchase year to `year`, resolving the growth rate for every intervening year."""
    price = purchase.price
    for yr in range(purchase.year + 1, year + 1):
        price *= 1.0 + price_growth_for_year(yr, effects, base_growth)
    return price


def property_rent(purchase: Purchase, year: int, gross_yield: float, base_growth: float,
                  effects: Optional[Sequence[ScenarioEffect]]) -> float:
    """Initial rent (price x gross yield) compounded with the resolved rent growth and occupancy factor of every intervening year."""
    rent = purchase.price * gross_yield
    for yr in range(purchase.year + 1, year + 1):
        rent *= 1.0 + rent_growth_for_year(yr, effects, base_growth)
        rent *= occupancy_factor_for_year(yr, effects)
    return rent


def monthly_debt_service(purchases: Sequence[Purchase], year: int) -> float:
    """Average monthly scheduled debt service (principal + interest) of the loans active in `year`."""
    return sum(p.scheduled_payment(year).debt_service for p in purchases if p.loan_active(year)) / MONTHS_PER_YEAR


def _gross_dividend_paid(reserve: float, cashflow: float, candidate: float, required_buffer: float) -> float:
    """Dividend waterfall: the full candidate if the buffer survives it, else whatever keeps the buffer intact."""
    available = reserve + cashflow
    if candidate <= 0 or available < candidate:
        return 0.0
    if available - candidate >= required_buffer:
        return candidate
    return min(candidate, max(0.0, available - required_buffer))


# --- Main Projection Function ---

def run_model(settings: ModelSettings, cache: Optional[AmortizationCache] = None) -> ModelResult:
    """
    Runs one deterministic projection.

    Args:
        settings: Fully resolved settings for this run (not modified).
        cache: Amortization cache to reuse across related runs (e.g. range variants).
               A fresh cache scoped to this call is used when omitted.

    Returns:
        A ModelResult with series for years 0..settings.total_years. Infeasible
        trajectories (negative reserve, LTV above 80%) are flagged in
        `warnings`, never raised.

    Raises:
        SettingsValidationError: If the settings cannot be simulated.
    """
    start_time = time.time()
    settings.ensure_valid()
    cache = cache if cache is not None else AmortizationCache()
    effects = settings.scenarios

    retirement_year = settings.retirement_year
    total_years = settings.total_years
    n = total_years + 1
    logger.info(f"Starting projection: horizon {total_years} years (retirement Y{retirement_year}), "
                f"{len(effects)} overlay(s)")

    purchases = build_purchase_schedule(settings, cache)
    skipped = [p for p in purchases if p.year > retirement_year]
    if skipped:
        logger.warning(f"Ignoring {len(skipped)} purchase(s) scheduled after retirement year {retirement_year}: "
                       f"{[p.year for p in skipped]}")
        purchases = [p for p in purchases if p.year <= retirement_year]

    price_growth = settings.price_growth.decimal
    rent_growth = settings.rent_growth.decimal
    gross_yield = settings.gross_yield.decimal
    opex_ratio = settings.opex_factor.decimal
    corp_tax_rate = settings.corp_tax_rate_decimal

    debt = [0.0] * n
    value = [0.0] * n
    rent = [0.0] * n
    cashflow = [0.0] * n
    equity = [0.0] * n
    dividends = [0.0] * n
    ltv = [0.0] * n
    cash_reserve = [0.0] * n
    building_depreciation = [0.0] * n
    imi = [0.0] * n
    aimi = [0.0] * n
    interest_paid = [0.0] * n
    principal_paid = [0.0] * n
    corporate_tax = [0.0] * n

    reserve = settings.seed_equity

    for y in range(n):
        # 1. Capital events
        if 0 < y <= settings.injection_years and y <= retirement_year:
            reserve += settings.annual_injection
        if y <= retirement_year:
            for p in purchases:
                if p.year == y:
                    reserve -= p.price * (1.0 - p.ltv) + p.price * ACQUISITION_COST_PCT
                    debt[y] += p.loan_amount

        # 2. Debt rollforward; shocks change the interest charged, never the principal schedule
        if y > 0:
            debt[y] += debt[y - 1]
        interest_yr = 0.0
        principal_yr = 0.0
        for p in purchases:
            if not p.loan_active(y):
                continue
            scheduled = p.scheduled_payment(y)
            effective_rate = loan_rate_for_year(y, effects, p.loan_rate)
            if abs(effective_rate - p.loan_rate) > FLOAT_ATOL:
                interest_yr += p.balance_at_start_of(y) * effective_rate
            else:
                interest_yr += scheduled.interest
            principal_yr += scheduled.principal
        debt[y] -= principal_yr

        # 3. Valuation
        owned = [p for p in purchases if p.is_owned(y)]
        value[y] = sum(property_value(p, y, price_growth, effects) for p in owned)

        # 4. Property taxes
        vpt = value[y] * VPT_SHARE
        imi[y] = vpt * IMI_RATE
        aimi[y] = vpt * AIMI_RATE * aimi_multiplier_for_year(y, effects)

        # 5. Depreciation (non-cash, deductible)
        building_depreciation[y] = value[y] * BUILDING_SHARE * DEPRECIATION_RATE

        # 6. Rent
        rent[y] = sum(property_rent(p, y, gross_yield, rent_growth, effects) for p in owned)

        # 7. Operating result; principal is not deductible
        opex = rent[y] * opex_ratio_for_year(y, effects, opex_ratio) + imi[y]
        profit_before_tax = rent[y] - opex - interest_yr - building_depreciation[y] - aimi[y]
        tax = max(0.0, profit_before_tax) * corp_tax_rate_for_year(y, effects, corp_tax_rate)

        # 8. Cash flow
        cashflow[y] = rent[y] - opex - interest_yr - principal_yr - tax - aimi[y]

        # 9. Extra prepayment, affordability judged on the reserve before this year's cash flow
        prepay = settings.extra_prepay_schedule.get(y, 0.0) if y <= retirement_year else 0.0
        if prepay > 0 and reserve >= prepay:
            debt[y] -= prepay
            cashflow[y] -= prepay
            reserve -= prepay
            logger.debug(f"Year {y}: prepaid {prepay:.2f} of principal")
        elif prepay > 0:
            logger.debug(f"Year {y}: skipped prepayment of {prepay:.2f}, reserve only {reserve:.2f}")

        # 10. Dividend waterfall
        required_buffer = settings.buffer_months * monthly_debt_service(purchases, y) + imi[y]
        candidate = 0.0
        if y >= settings.start_payouts_year:
            candidate = max(cashflow[y], 0.0) * settings.payout_ratio_for_year(y)
        gross_paid = _gross_dividend_paid(reserve, cashflow[y], candidate, required_buffer)
        dividends[y] = gross_paid * (1.0 - dividend_wht_for_year(y, effects, settings.dividend_wht))
        reserve += cashflow[y] - gross_paid

        # 11. Finalize
        equity[y] = value[y] - debt[y]
        ltv[y] = debt[y] / value[y] * 100.0 if value[y] > 0 else 0.0
        cash_reserve[y] = reserve
        interest_paid[y] = interest_yr
        principal_paid[y] = principal_yr
        corporate_tax[y] = tax

        logger.debug(f"Year {y}: value={value[y]:.2f}, debt={debt[y]:.2f}, rent={rent[y]:.2f}, "
                     f"cashflow={cashflow[y]:.2f}, dividend={dividends[y]:.2f}, buffer={required_buffer:.2f}, "
                     f"reserve={reserve:.2f}")

    warnings = ModelWarnings(
        is_underfunded=bool(np.min(cash_reserve) < 0),
        high_ltv=bool(np.max(ltv) > HIGH_LTV_THRESHOLD),
    )
    if warnings.is_underfunded:
        logger.warning(f"Cash reserve turns negative (min {np.min(cash_reserve):.2f}); portfolio is underfunded.")
    if warnings.high_ltv:
        logger.warning(f"LTV breaches {HIGH_LTV_THRESHOLD:.0f}% stress cap (max {np.max(ltv):.1f}%).")

    logger.info(f"Projection finished in {time.time() - start_time:.3f}s: "
                f"equity Y{total_years}={equity[-1]:.2f}, reserve={cash_reserve[-1]:.2f}")
    return ModelResult(
        years=total_years,
        debt=debt,
        value=value,
        rent=rent,
        cashflow=cashflow,
        equity=equity,
        dividends=dividends,
        ltv=ltv,
        cash_reserve=cash_reserve,
        building_depreciation=building_depreciation,
        imi=imi,
        aimi=aimi,
        interest=interest_paid,
        principal=principal_paid,
        corporate_tax=corporate_tax,
        warnings=warnings,
    )


def run_model_safe(settings: Union[ModelSettings, Mapping[str, Any]],
                   cache: Optional[AmortizationCache] = None) -> ModelOutcome:
    """
    Boundary wrapper around run_model: invalid settings come back as Err instead of an exception.

    Accepts either ModelSettings or a raw settings mapping (see ModelSettings.from_dict).
    """
    try:
        if not isinstance(settings, ModelSettings):
            settings = ModelSettings.from_dict(settings)
        return Ok(run_model(settings, cache))
    except (ValueError, KeyError, TypeError) as e:
        logger.error(f"Projection rejected: {e}")
        return Err(e)
