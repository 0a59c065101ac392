"""
Headline figures derived from a finished projection (the numbers shown on the KPI cards).
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict

import numpy as np

from .constants import FLOAT_ATOL
from .inputs import ModelSettings
from .simulation import ModelResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortfolioKpis:
    equity_at_retirement: float
    equity_at_end: float
    ltv_at_end: float  # Percent
    annual_after_tax_income: float  # Net dividends of the final year
    cumulative_dividends: float
    cumulative_property_taxes: float  # IMI + AIMI over the horizon
    cumulative_corporate_tax: float
    depreciation_shield: float  # Corporate tax saved by depreciation, at the nominal rate
    total_properties_value: float
    average_gross_yield: float  # Percent, final-year rent over value
    total_contributed: float  # Seed equity plus injections
    equity_multiple: float  # (final equity + cumulative dividends) / contributions
    cash_on_cash_return: float  # Percent, final-year dividends over contributions

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _safe_ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if abs(denominator) > FLOAT_ATOL else 0.0


def compute_kpis(result: ModelResult, settings: ModelSettings) -> PortfolioKpis:
    """Summarises `result`, which must have been produced from `settings`."""
    end = result.years
    retirement = min(settings.retirement_year, end)
    injections = min(settings.injection_years, settings.retirement_year)
    total_contributed = settings.seed_equity + settings.annual_injection * max(0, injections)
    cumulative_dividends = float(np.sum(result.dividends))

    kpis = PortfolioKpis(
        equity_at_retirement=result.equity[retirement],
        equity_at_end=result.equity[end],
        ltv_at_end=result.ltv[end],
        annual_after_tax_income=result.dividends[end],
        cumulative_dividends=cumulative_dividends,
        cumulative_property_taxes=float(np.sum(result.imi) + np.sum(result.aimi)),
        cumulative_corporate_tax=float(np.sum(result.corporate_tax)),
        depreciation_shield=float(np.sum(result.building_depreciation)) * settings.corp_tax_rate_decimal,
        total_properties_value=result.value[end],
        average_gross_yield=_safe_ratio(result.rent[end], result.value[end]) * 100.0,
        total_contributed=total_contributed,
        equity_multiple=_safe_ratio(result.equity[end] + cumulative_dividends, total_contributed),
        cash_on_cash_return=_safe_ratio(result.dividends[end], total_contributed) * 100.0,
    )
    logger.debug(f"KPIs: {kpis}")
    return kpis
