# spvsim/ui/inputs.py
"""
Contains functions for rendering Streamlit input widgets in the sidebar
and aggregating their values into a ModelSettings instance.
"""

import streamlit as st
import logging
from dataclasses import replace
from typing import Any, Dict, List

from ..core.inputs import ModelSettings, PropertyOverride, RangeValue
from ..core.scenarios import STRESS_TEST_PRESETS, ScenarioEffect, apply_stress_test
from ..core.constants import FMT_CURRENCY_ZERO_DP, FMT_INTEGER, FMT_PERCENT_ONE_DP, FMT_PERCENT_TWO_DP

logger = logging.getLogger(__name__)


def _ranged_input(label: str, current: RangeValue, key: str, max_value: float, step: float, help_text: str) -> RangeValue:
    """Nominal value plus an optional min/max band for one ranged parameter."""
    value = st.number_input(f"{label} (%)", min_value=0.0, max_value=max_value, value=float(current.value),
                            step=step, format=FMT_PERCENT_TWO_DP, key=f"input_{key}", help=help_text)
    use_band = st.checkbox(f"Sensitivity band for {label.lower()}", value=current.has_bounds, key=f"input_{key}_band")
    if not use_band:
        return RangeValue(value)
    low_default = current.min if current.min is not None else value
    high_default = current.max if current.max is not None else value
    low, high = st.slider(f"{label} range (%)", min_value=0.0, max_value=max_value,
                          value=(float(min(low_default, value)), float(max(high_default, value))),
                          step=step, key=f"input_{key}_range")
    return RangeValue(value, min=low, max=high)


def _render_property_overrides(defaults: ModelSettings, purchase_years: List[int]) -> Dict[int, PropertyOverride]:
    """Optional per-property price, LTV, rate, term and actual purchase year, keyed by the nominal purchase year."""
    overrides: Dict[int, PropertyOverride] = {}
    with st.expander("🏘️ Individual Properties", expanded=False):
        if not purchase_years:
            st.caption("No purchases selected.")
        for year in sorted(set(purchase_years)):
            current = defaults.property_settings.get(year, PropertyOverride())
            customise = st.checkbox(f"Customise property bought in Y{year}", value=year in defaults.property_settings,
                                    key=f"input_property_{year}_custom")
            if not customise:
                continue
            col1, col2 = st.columns(2)
            price = col1.number_input("Price", min_value=1.0,
                                      value=float(current.price if current.price is not None else defaults.unit_price),
                                      step=25_000.0, format=FMT_CURRENCY_ZERO_DP, key=f"input_property_{year}_price")
            purchase_year = col2.number_input("Purchase Year", min_value=0, max_value=60,
                                              value=int(current.purchase_year if current.purchase_year is not None else year),
                                              step=1, format=FMT_INTEGER, key=f"input_property_{year}_year")
            ltv = col1.number_input("LTV (%)", min_value=0.0, max_value=100.0,
                                    value=float(current.ltv if current.ltv is not None else defaults.ltv),
                                    step=1.0, format=FMT_PERCENT_ONE_DP, key=f"input_property_{year}_ltv")
            loan_rate = col2.number_input("Loan Rate (%)", min_value=0.0, max_value=20.0,
                                          value=float(current.loan_rate if current.loan_rate is not None
                                                      else defaults.loan_rate.value),
                                          step=0.05, format=FMT_PERCENT_TWO_DP, key=f"input_property_{year}_rate")
            term_years = col1.number_input("Term (Years)", min_value=1, max_value=40,
                                           value=int(current.term_years if current.term_years is not None
                                                     else defaults.term_years),
                                           step=1, format=FMT_INTEGER, key=f"input_property_{year}_term")
            overrides[year] = PropertyOverride(price=price, ltv=ltv, loan_rate=loan_rate,
                                               term_years=int(term_years), purchase_year=int(purchase_year))
    return overrides


def _render_yearly_amounts(label: str, current: Dict[int, float], key: str, max_value: float, step: float,
                           fmt: str, scale: float = 1.0) -> Dict[int, float]:
    """Year picker plus one number input per chosen year. Values are shown multiplied by `scale`."""
    years = st.multiselect(f"{label} Years", options=list(range(0, 61)), default=sorted(current),
                           key=f"input_{key}_years")
    schedule: Dict[int, float] = {}
    for year in sorted(years):
        shown = st.number_input(f"{label} Y{year}", min_value=0.0, max_value=max_value,
                                value=float(current.get(year, 0.0) * scale), step=step, format=fmt,
                                key=f"input_{key}_{year}")
        schedule[year] = shown / scale
    return schedule


def _render_equity_inputs(defaults: ModelSettings) -> Dict[str, Any]:
    with st.expander("💶 Equity", expanded=False):
        return {
            "seed_equity": st.number_input("Seed Equity", min_value=0.0, value=float(defaults.seed_equity),
                                           step=10_000.0, format=FMT_CURRENCY_ZERO_DP, key="input_seed_equity"),
            "annual_injection": st.number_input("Annual Capital Injection", min_value=0.0,
                                                value=float(defaults.annual_injection), step=10_000.0,
                                                format=FMT_CURRENCY_ZERO_DP, key="input_annual_injection"),
            "injection_years": st.number_input("Injection Years", min_value=0, max_value=40,
                                               value=int(defaults.injection_years), step=1, format=FMT_INTEGER,
                                               key="input_injection_years",
                                               help="Injections are made in years 1..N, never after retirement."),
        }


def _render_property_inputs(defaults: ModelSettings) -> Dict[str, Any]:
    with st.expander("🏠 Properties & Market", expanded=False):
        unit_price = st.number_input("Unit Price (Year 0)", min_value=1.0, value=float(defaults.unit_price),
                                     step=25_000.0, format=FMT_CURRENCY_ZERO_DP, key="input_unit_price")
        purchase_years = st.multiselect("Purchase Years", options=list(range(0, 41)),
                                        default=sorted(set(defaults.purchase_years)), key="input_purchase_years")
        return {
            "unit_price": unit_price,
            "purchase_years": purchase_years,
            "price_growth": _ranged_input("Price Growth", defaults.price_growth, "price_growth", 15.0, 0.25,
                                          "Annual appreciation of property prices."),
            "gross_yield": _ranged_input("Gross Yield", defaults.gross_yield, "gross_yield", 15.0, 0.25,
                                         "First-year rent as a share of the purchase price."),
            "rent_growth": _ranged_input("Rent Growth", defaults.rent_growth, "rent_growth", 15.0, 0.25,
                                         "Annual growth of rents."),
            "opex_factor": _ranged_input("Opex", defaults.opex_factor, "opex_factor", 50.0, 0.5,
                                         "Operating expenses as a share of rent (IMI is added on top)."),
        }


def _render_financing_inputs(defaults: ModelSettings) -> Dict[str, Any]:
    with st.expander("🏦 Financing", expanded=False):
        values = {
            "ltv": st.number_input("Loan-to-Value (%)", min_value=0.0, max_value=100.0, value=float(defaults.ltv),
                                   step=1.0, format=FMT_PERCENT_ONE_DP, key="input_ltv"),
            "loan_rate": _ranged_input("Loan Rate", defaults.loan_rate, "loan_rate", 20.0, 0.05,
                                       "Contractual fixed rate of new loans."),
            "term_years": st.number_input("Loan Term (Years)", min_value=1, max_value=40,
                                          value=int(defaults.term_years), step=1, format=FMT_INTEGER,
                                          key="input_term_years"),
        }
        st.markdown("**Extra Principal Prepayments**")
        values["extra_prepay_schedule"] = _render_yearly_amounts(
            "Prepayment", defaults.extra_prepay_schedule, "prepay", 10_000_000.0, 5_000.0, FMT_CURRENCY_ZERO_DP)
        return values


def _render_payout_inputs(defaults: ModelSettings) -> Dict[str, Any]:
    with st.expander("💸 Taxes & Payouts", expanded=False):
        corp_tax_rate = st.number_input("Corporate Tax Rate (%)", min_value=0.0, max_value=100.0,
                                        value=float(defaults.corp_tax_rate), step=0.5, format=FMT_PERCENT_ONE_DP,
                                        key="input_corp_tax_rate")
        dividend_wht = st.number_input("Dividend Withholding Tax (%)", min_value=0.0, max_value=100.0,
                                       value=float(defaults.dividend_wht * 100.0), step=0.5,
                                       format=FMT_PERCENT_ONE_DP, key="input_dividend_wht")
        payout_ratio = st.number_input("Payout Ratio (%)", min_value=0.0, max_value=100.0,
                                       value=float(defaults.payout_ratio * 100.0), step=5.0,
                                       format=FMT_PERCENT_ONE_DP, key="input_payout_ratio",
                                       help="Share of positive yearly cash flow distributed, subject to the buffer.")
        start_payouts_year = st.number_input("Start Payouts Year", min_value=0, max_value=60,
                                             value=int(defaults.start_payouts_year), step=1, format=FMT_INTEGER,
                                             key="input_start_payouts_year")
        buffer_months = st.number_input("Liquidity Buffer (Months of Debt Service)", min_value=0.0, max_value=36.0,
                                        value=float(defaults.buffer_months), step=1.0, key="input_buffer_months")
        st.markdown("**Payout Ratio by Year**")
        payout_schedule = _render_yearly_amounts("Payout Ratio", defaults.payout_schedule, "payout_schedule",
                                                 100.0, 5.0, FMT_PERCENT_ONE_DP, scale=100.0)
        return {
            "payout_schedule": payout_schedule,
            "corp_tax_rate": corp_tax_rate,
            "dividend_wht": dividend_wht / 100.0,
            "payout_ratio": payout_ratio / 100.0,
            "start_payouts_year": start_payouts_year,
            "buffer_months": buffer_months,
        }


def _render_horizon_inputs(defaults: ModelSettings) -> Dict[str, Any]:
    with st.expander("⏳ Horizon", expanded=False):
        return {
            "retirement_year": st.number_input("Retirement Year", min_value=0, max_value=50,
                                               value=int(defaults.retirement_year), step=1, format=FMT_INTEGER,
                                               key="input_retirement_year",
                                               help="Last year with injections, purchases and prepayments."),
            "forecast_period": st.number_input("Forecast Beyond Retirement (Years)", min_value=0, max_value=30,
                                               value=int(defaults.forecast_period), step=1, format=FMT_INTEGER,
                                               key="input_forecast_period"),
        }


def _render_stress_test_inputs() -> List[ScenarioEffect]:
    effects: List[ScenarioEffect] = []
    with st.expander("🌩️ Stress Tests", expanded=False):
        for preset_id, preset in STRESS_TEST_PRESETS.items():
            enabled = st.checkbox(preset.name, value=False, key=f"input_stress_{preset_id}", help=preset.description)
            if not enabled:
                continue
            col1, col2 = st.columns(2)
            start_year = col1.number_input("Start Year", min_value=0, max_value=60, value=preset.default_start_year,
                                           step=1, key=f"input_stress_{preset_id}_start")
            duration = col2.number_input("Duration", min_value=1, max_value=99, value=preset.default_duration,
                                         step=1, key=f"input_stress_{preset_id}_duration")
            effects.extend(apply_stress_test(preset_id, int(start_year), int(duration)))
    return effects


def render_sidebar_inputs(defaults: ModelSettings) -> ModelSettings:
    """Renders all input sections in the Streamlit sidebar and returns the resulting settings."""
    st.header("📊 Model Inputs")
    values: Dict[str, Any] = {}
    st.subheader("Capital & Portfolio")
    values.update(_render_equity_inputs(defaults))
    values.update(_render_property_inputs(defaults))
    values["property_settings"] = _render_property_overrides(defaults, values["purchase_years"])
    st.markdown("---")
    st.subheader("Financing & Distributions")
    values.update(_render_financing_inputs(defaults))
    values.update(_render_payout_inputs(defaults))
    values.update(_render_horizon_inputs(defaults))
    st.markdown("---")
    st.subheader("Scenarios")
    values["scenarios"] = list(defaults.scenarios) + _render_stress_test_inputs()

    for key in ("injection_years", "term_years", "start_payouts_year", "retirement_year", "forecast_period"):
        values[key] = int(values[key])
    settings = replace(defaults, **values)
    logger.debug(f"Sidebar settings: {settings}")
    return settings
