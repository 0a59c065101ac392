"""Tests for purchase scheduling and override resolution."""

from __future__ import annotations

import pytest

from spvsim.core.debt import AmortizationCache, amortization_schedule
from spvsim.core.inputs import ModelSettings, PropertyOverride, RangeValue
from spvsim.core.purchases import build_purchase_schedule


def _settings(**overrides) -> ModelSettings:
    params = dict(
        unit_price=600_000.0,
        price_growth=RangeValue(3.0),
        ltv=65.0,
        loan_rate=RangeValue(4.0),
        term_years=30,
        purchase_years=[0, 2, 4],
    )
    params.update(overrides)
    return ModelSettings(**params)


def test_prices_compound_to_purchase_year() -> None:
    purchases = build_purchase_schedule(_settings(), AmortizationCache())
    assert [p.year for p in purchases] == [0, 2, 4]
    assert purchases[0].price == pytest.approx(600_000.0)
    assert purchases[1].price == pytest.approx(600_000.0 * 1.03 ** 2)
    assert purchases[2].price == pytest.approx(600_000.0 * 1.03 ** 4)
    for p in purchases:
        assert p.ltv == pytest.approx(0.65)
        assert p.loan_amount == pytest.approx(p.price * 0.65)
        assert p.loan_rate == pytest.approx(0.04)
        assert p.term_years == 30
        assert len(p.schedule) == 30


def test_duplicate_years_are_bought_once() -> None:
    purchases = build_purchase_schedule(_settings(purchase_years=[2, 0, 2]), AmortizationCache())
    assert [p.year for p in purchases] == [2, 0]


def test_overrides_win_over_globals() -> None:
    override = PropertyOverride(price=450_000.0, ltv=50.0, loan_rate=5.0, term_years=20, purchase_year=3)
    purchases = build_purchase_schedule(_settings(property_settings={2: override}), AmortizationCache())
    relocated = purchases[1]

    assert relocated.year == 3
    assert relocated.price == 450_000.0
    assert relocated.ltv == pytest.approx(0.5)
    assert relocated.loan_amount == pytest.approx(225_000.0)
    assert relocated.loan_rate == pytest.approx(0.05)
    assert relocated.term_years == 20
    assert relocated.schedule == amortization_schedule(225_000.0, 0.05, 20)
    # Untouched purchases keep the globals.
    assert purchases[0].loan_rate == pytest.approx(0.04)


def test_relocated_purchase_price_uses_actual_year() -> None:
    purchases = build_purchase_schedule(
        _settings(purchase_years=[2], property_settings={2: PropertyOverride(purchase_year=5)}),
        AmortizationCache(),
    )
    assert purchases[0].year == 5
    assert purchases[0].price == pytest.approx(600_000.0 * 1.03 ** 5)


def test_identical_loans_share_one_schedule() -> None:
    cache = AmortizationCache()
    purchases = build_purchase_schedule(_settings(price_growth=RangeValue(0.0), purchase_years=[0, 2]), cache)
    assert purchases[0].schedule is purchases[1].schedule
    assert cache.misses == 1
    assert cache.hits == 1


def test_loan_age_helpers() -> None:
    (purchase,) = build_purchase_schedule(_settings(purchase_years=[2], term_years=5), AmortizationCache())
    assert not purchase.is_owned(1)
    assert purchase.is_owned(2)
    assert purchase.loan_active(6)
    assert not purchase.loan_active(7)
    assert purchase.scheduled_payment(3) == purchase.schedule[1]
    assert purchase.balance_at_start_of(2) == pytest.approx(purchase.loan_amount)
    assert purchase.balance_at_start_of(3) == pytest.approx(purchase.loan_amount - purchase.schedule[0].principal)
