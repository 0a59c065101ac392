"""Tests for the year-by-year projection engine."""

from __future__ import annotations

import pytest

from spvsim.core.constants import RESULT_SERIES
from spvsim.core.debt import AmortizationCache, amortization_schedule
from spvsim.core.inputs import ModelSettings, PropertyOverride, RangeValue, SettingsValidationError
from spvsim.core.scenarios import DividendTaxHike, RateSpike, RentShock, dividend_wht_for_year
from spvsim.core.simulation import Err, Ok, _gross_dividend_paid, run_model, run_model_safe


def _single_purchase(**overrides) -> ModelSettings:
    """One 600k unit bought in year 0 at 65% LTV, flat markets, one-year horizon."""
    params = dict(
        seed_equity=320_000.0,
        unit_price=600_000.0,
        purchase_years=[0],
        ltv=65.0,
        loan_rate=RangeValue(4.0),
        term_years=30,
        price_growth=RangeValue(0.0),
        gross_yield=RangeValue(5.0),
        rent_growth=RangeValue(0.0),
        opex_factor=RangeValue(12.0),
        corp_tax_rate=20.0,
        retirement_year=0,
        forecast_period=0,
        extra_prepay_schedule={},
    )
    params.update(overrides)
    return ModelSettings(**params)


def _unlevered(**overrides) -> ModelSettings:
    """A debt-free unit, so the early years have positive cash flow."""
    params = dict(
        seed_equity=700_000.0,
        ltv=0.0,
        retirement_year=8,
        forecast_period=2,
        injection_years=0,
    )
    params.update(overrides)
    return _single_purchase(**params)


def test_single_purchase_year_zero() -> None:
    result = run_model(_single_purchase())
    year0 = amortization_schedule(390_000.0, 0.04, 30)[0]

    assert result.years == 0
    assert result.value[0] == pytest.approx(600_000.0)
    assert result.debt[0] == pytest.approx(390_000.0 - year0.principal)
    assert result.rent[0] == pytest.approx(30_000.0)
    assert result.imi[0] == pytest.approx(600_000.0 * 0.8 * 0.003)
    assert result.aimi[0] == pytest.approx(600_000.0 * 0.8 * 0.004)
    assert result.building_depreciation[0] == pytest.approx(600_000.0 * 0.8 * 0.02)
    assert result.interest[0] == pytest.approx(year0.interest)
    assert result.principal[0] == pytest.approx(year0.principal)
    # Seed minus equity share of the price minus acquisition costs.
    reserve_after_purchase = 320_000.0 - 210_000.0 - 42_000.0
    gross_dividend = result.dividends[0] / (1.0 - 0.28)
    assert result.cash_reserve[0] == pytest.approx(reserve_after_purchase + result.cashflow[0] - gross_dividend)


def test_cashflow_identity_for_single_purchase() -> None:
    result = run_model(_single_purchase())
    opex = 30_000.0 * 0.12 + result.imi[0]
    expected = (30_000.0 - opex - result.interest[0] - result.principal[0]
                - result.corporate_tax[0] - result.aimi[0])
    assert result.cashflow[0] == pytest.approx(expected)
    # Interest and depreciation leave no taxable profit here.
    assert result.corporate_tax[0] == 0.0


def test_rate_spike_raises_interest_not_principal() -> None:
    base = run_model(_single_purchase())
    shocked = run_model(_single_purchase(scenarios=[RateSpike(start_year=0, duration=1, bump_bps=300)]))

    assert shocked.interest[0] == pytest.approx(390_000.0 * 0.07)
    assert shocked.interest[0] > base.interest[0]
    assert shocked.principal[0] == pytest.approx(base.principal[0])
    assert shocked.debt[0] == pytest.approx(base.debt[0])
    assert shocked.cashflow[0] < base.cashflow[0]


def test_rate_override_without_shock_uses_schedule_interest() -> None:
    settings = _single_purchase(property_settings={0: PropertyOverride(loan_rate=5.0)})
    result = run_model(settings)
    assert result.interest[0] == pytest.approx(amortization_schedule(390_000.0, 0.05, 30)[0].interest)


def test_rate_spike_applies_to_overridden_rate() -> None:
    settings = _single_purchase(
        property_settings={0: PropertyOverride(loan_rate=5.0)},
        scenarios=[RateSpike(0, 1, bump_bps=100)],
    )
    result = run_model(settings)
    assert result.interest[0] == pytest.approx(390_000.0 * 0.06)


def test_equity_and_ltv_invariants_hold_every_year() -> None:
    result = run_model(ModelSettings())
    assert len(result.value) == result.years + 1 == 31
    for y in range(result.years + 1):
        assert result.equity[y] == pytest.approx(result.value[y] - result.debt[y])
        if result.value[y] > 0:
            assert result.ltv[y] == pytest.approx(result.debt[y] / result.value[y] * 100.0)
        else:
            assert result.ltv[y] == 0.0


def test_dividends_never_break_the_reserve() -> None:
    result = run_model(ModelSettings())
    for y in range(result.years + 1):
        assert result.dividends[y] >= 0.0
        if result.dividends[y] > 0:
            assert result.cash_reserve[y] >= -1e-6


def test_reserve_rolls_forward_after_capital_window() -> None:
    settings = _unlevered()
    result = run_model(settings)
    for y in range(1, result.years + 1):
        gross = result.dividends[y] / (1.0 - settings.dividend_wht)
        assert gross <= result.cash_reserve[y - 1] + result.cashflow[y] + 1e-6
        assert result.cash_reserve[y] == pytest.approx(result.cash_reserve[y - 1] + result.cashflow[y] - gross)


def test_injections_stop_after_injection_years() -> None:
    base = run_model(_unlevered(payout_ratio=0.0))
    injected = run_model(_unlevered(payout_ratio=0.0, annual_injection=10_000.0, injection_years=2))
    deltas = [injected.cash_reserve[y] - base.cash_reserve[y] for y in range(base.years + 1)]
    assert deltas[0] == pytest.approx(0.0)
    assert deltas[1] == pytest.approx(10_000.0)
    assert deltas[2] == pytest.approx(20_000.0)
    assert deltas[-1] == pytest.approx(20_000.0)


@pytest.mark.parametrize(
    "overrides, flag",
    [
        ({"seed_equity": 0.0}, "is_underfunded"),
        ({"ltv": 90.0}, "high_ltv"),
    ],
)
def test_warnings_are_flagged_not_raised(overrides, flag: str) -> None:
    result = run_model(_single_purchase(**overrides))
    assert getattr(result.warnings, flag)
    assert len(result.cash_reserve) == 1


def test_healthy_run_has_no_warnings() -> None:
    result = run_model(_unlevered())
    assert not result.warnings.is_underfunded
    assert not result.warnings.high_ltv


def test_prepayment_reduces_debt_and_cashflow() -> None:
    base = run_model(_single_purchase(retirement_year=5, seed_equity=500_000.0))
    prepaid = run_model(_single_purchase(retirement_year=5, seed_equity=500_000.0,
                                         extra_prepay_schedule={3: 10_000.0}))

    assert prepaid.debt[2] == pytest.approx(base.debt[2])
    assert prepaid.debt[3] == pytest.approx(base.debt[3] - 10_000.0)
    assert prepaid.debt[5] == pytest.approx(base.debt[5] - 10_000.0)
    assert prepaid.cashflow[3] == pytest.approx(base.cashflow[3] - 10_000.0)
    assert prepaid.cash_reserve[3] < base.cash_reserve[3]


def test_unaffordable_prepayment_is_skipped() -> None:
    base = run_model(_single_purchase(retirement_year=5))
    skipped = run_model(_single_purchase(retirement_year=5, extra_prepay_schedule={3: 10_000_000.0}))
    assert skipped.debt == pytest.approx(base.debt)
    assert skipped.cashflow == pytest.approx(base.cashflow)


def test_no_prepayment_after_retirement() -> None:
    base = run_model(_single_purchase(retirement_year=5, forecast_period=5, seed_equity=500_000.0))
    late = run_model(_single_purchase(retirement_year=5, forecast_period=5, seed_equity=500_000.0,
                                      extra_prepay_schedule={7: 10_000.0}))
    assert late.debt == pytest.approx(base.debt)


def test_payouts_wait_for_start_year() -> None:
    result = run_model(_unlevered(start_payouts_year=3))
    assert result.dividends[:3] == [0.0, 0.0, 0.0]
    assert all(d > 0 for d in result.dividends[3:])


def test_payout_schedule_overrides_ratio_per_year() -> None:
    settings = _unlevered(payout_schedule={4: 0.0, 5: 1.0})
    result = run_model(settings)
    assert result.dividends[4] == 0.0
    assert result.dividends[5] == pytest.approx(result.cashflow[5] * (1.0 - settings.dividend_wht))
    assert result.dividends[6] == pytest.approx(result.cashflow[6] * 0.8 * (1.0 - settings.dividend_wht))


def test_buffer_months_hold_back_dividends() -> None:
    """A thin reserve: six months of debt service block the payout, zero months only keep the IMI."""
    cautious = run_model(_single_purchase(seed_equity=257_000.0, buffer_months=6.0))
    assert cautious.cashflow[0] > 0
    assert cautious.dividends[0] == 0.0

    settings = _single_purchase(seed_equity=257_000.0, buffer_months=0.0)
    relaxed = run_model(settings)
    assert relaxed.dividends[0] == pytest.approx(relaxed.cashflow[0] * 0.8 * (1.0 - settings.dividend_wht))


def test_purchase_after_retirement_is_ignored() -> None:
    base = run_model(_single_purchase(retirement_year=5, forecast_period=5))
    late = run_model(_single_purchase(retirement_year=5, forecast_period=5, purchase_years=[0, 8]))
    assert late.value == pytest.approx(base.value)
    assert late.debt == pytest.approx(base.debt)


def test_rent_shock_lowers_rent_and_occupancy() -> None:
    base = run_model(_unlevered())
    shocked = run_model(_unlevered(scenarios=[RentShock(start_year=2, duration=1, drop=10, occupancy_drop=10)]))
    assert shocked.rent[1] == pytest.approx(base.rent[1])
    assert shocked.rent[2] == pytest.approx(base.rent[2] * 0.9 * 0.9)
    assert shocked.rent[3] == pytest.approx(shocked.rent[2])


def test_shared_cache_is_reused_between_runs() -> None:
    cache = AmortizationCache()
    run_model(_single_purchase(), cache)
    run_model(_single_purchase(), cache)
    assert cache.misses == 1
    assert cache.hits == 1


def test_run_model_rejects_invalid_settings() -> None:
    with pytest.raises(SettingsValidationError):
        run_model(_single_purchase(term_years=0))


def test_run_model_safe_returns_err() -> None:
    outcome = run_model_safe(_single_purchase(term_years=0, ltv=150.0))
    assert isinstance(outcome, Err)
    assert not outcome.ok
    assert any("term_years" in m for m in outcome.messages)
    assert any("ltv" in m for m in outcome.messages)


def test_run_model_safe_accepts_settings_mapping() -> None:
    outcome = run_model_safe({
        "retirementYear": 5,
        "forecastPeriod": 2,
        "payoutRatio": 80,
        "scenarios": {"rateSpike_1": {"startYear": 1, "duration": 2, "bumpBps": 200}},
    })
    assert isinstance(outcome, Ok)
    assert outcome.ok
    assert outcome.value.years == 7


def test_to_dataframe_has_one_row_per_year() -> None:
    result = run_model(_unlevered())
    frame = result.to_dataframe()
    assert frame.shape == (result.years + 1, len(RESULT_SERIES))
    assert frame.index.name == "Year"
    assert list(frame.columns) == list(RESULT_SERIES.values())


@pytest.mark.parametrize(
    "reserve, cashflow, candidate, buffer, expected",
    [
        (1_000.0, 100.0, 0.0, 0.0, 0.0),
        (-100.0, 50.0, 40.0, 0.0, 0.0),
        (1_000.0, 100.0, 80.0, 500.0, 80.0),
        (100.0, 100.0, 80.0, 150.0, 50.0),
        (100.0, 100.0, 80.0, 300.0, 0.0),
    ],
)
def test_gross_dividend_paid(reserve, cashflow, candidate, buffer, expected) -> None:
    assert _gross_dividend_paid(reserve, cashflow, candidate, buffer) == pytest.approx(expected)


def test_run_model_safe_reads_back_to_dict_output() -> None:
    settings = _single_purchase(retirement_year=3, scenarios=[RateSpike(1, 2, bump_bps=200)])
    outcome = run_model_safe(settings.to_dict())
    assert isinstance(outcome, Ok)
    assert outcome.value.interest == pytest.approx(run_model(settings).interest)


def test_run_model_safe_rejects_unknown_overlay_record() -> None:
    outcome = run_model_safe({"scenarios": [{"kind": "meteor_strike", "start_year": 1, "duration": 1}]})
    assert isinstance(outcome, Err)
    assert "meteor_strike" in outcome.messages[0]


def test_dividends_respect_reserve_under_dividend_tax_and_prepayment() -> None:
    settings = _single_purchase(
        seed_equity=500_000.0,
        injection_years=0,
        retirement_year=8,
        forecast_period=4,
        extra_prepay_schedule={3: 10_000.0, 6: 15_000.0},
        scenarios=[DividendTaxHike(start_year=2, duration=5, new_rate=35)],
    )
    result = run_model(settings)
    for y in range(1, result.years + 1):
        wht = dividend_wht_for_year(y, settings.scenarios, settings.dividend_wht)
        gross = result.dividends[y] / (1.0 - wht)
        reserve_before = result.cash_reserve[y - 1] - settings.extra_prepay_schedule.get(y, 0.0)
        assert gross <= reserve_before + result.cashflow[y] + 1e-6
        assert result.cash_reserve[y] == pytest.approx(reserve_before + result.cashflow[y] - gross)
    assert any(result.dividends[y] > 0 for y in range(2, 7))


def test_warning_flags_match_series_on_default_portfolio() -> None:
    for settings in (ModelSettings(), ModelSettings(seed_equity=0.0), ModelSettings(ltv=95.0)):
        result = run_model(settings)
        assert result.warnings.is_underfunded == (min(result.cash_reserve) < 0)
        assert result.warnings.high_ltv == (max(result.ltv) > 80.0)
