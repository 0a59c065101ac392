"""Tests for the min/base/max sensitivity runner."""

from __future__ import annotations

import pytest

import spvsim.core.ranges as ranges
from spvsim.core.debt import AmortizationCache
from spvsim.core.inputs import ModelSettings, RangeValue, SettingsValidationError
from spvsim.core.ranges import bounded_settings, run_scenario_range
from spvsim.core.scenarios import PropertyCrash


def _price_growth_only(**overrides) -> ModelSettings:
    params = dict(
        price_growth=RangeValue(3.0, 2.0, 4.0),
        gross_yield=RangeValue(5.0),
        rent_growth=RangeValue(2.0),
        opex_factor=RangeValue(12.0),
        loan_rate=RangeValue(4.0),
        retirement_year=10,
        forecast_period=5,
    )
    params.update(overrides)
    return ModelSettings(**params)


def test_without_bounds_only_base_runs() -> None:
    settings = _price_growth_only(price_growth=RangeValue(3.0))
    bundle = run_scenario_range(settings)
    assert bundle.min is None
    assert bundle.max is None
    assert list(bundle.available()) == ["base"]


def test_one_sided_bound_is_not_a_range() -> None:
    settings = _price_growth_only(price_growth=RangeValue(3.0, min=2.0))
    assert run_scenario_range(settings).min is None


def test_price_growth_bounds_bracket_the_base() -> None:
    bundle = run_scenario_range(_price_growth_only())
    assert bundle.min is not None and bundle.max is not None
    for y in range(1, bundle.base.years + 1):
        assert bundle.min.value[y] < bundle.base.value[y] < bundle.max.value[y]
        assert bundle.min.equity[y] < bundle.base.equity[y] < bundle.max.equity[y]


def test_band_frame_has_one_column_per_run() -> None:
    bundle = run_scenario_range(_price_growth_only())
    frame = bundle.band("equity")
    assert list(frame.columns) == ["base", "min", "max"]
    assert len(frame) == bundle.base.years + 1
    assert frame["base"].tolist() == pytest.approx(bundle.base.equity)


def test_bounded_settings_moves_every_ranged_field() -> None:
    settings = ModelSettings(scenarios=[PropertyCrash(1, 3, drop=25)])
    low = bounded_settings(settings, use_min=True)
    high = bounded_settings(settings, use_min=False)

    assert (low.price_growth.value, low.gross_yield.value, low.rent_growth.value) == (2.0, 4.0, 1.0)
    assert (low.opex_factor.value, low.loan_rate.value) == (10.0, 3.5)
    assert (high.opex_factor.value, high.loan_rate.value) == (15.0, 4.5)
    assert low.scenarios == settings.scenarios
    assert low.unit_price == settings.unit_price
    # The source settings are untouched.
    assert settings.price_growth.value == 3.0


def test_failed_bound_run_is_omitted(monkeypatch) -> None:
    real_run_model = ranges.run_model

    def flaky_run_model(settings, cache=None):
        if settings.price_growth.value == 2.0:
            raise RuntimeError("min run blew up")
        return real_run_model(settings, cache)

    monkeypatch.setattr(ranges, "run_model", flaky_run_model)
    bundle = run_scenario_range(_price_growth_only())
    assert bundle.min is None
    assert bundle.max is not None
    assert list(bundle.available()) == ["base", "max"]


def test_base_failure_propagates() -> None:
    with pytest.raises(SettingsValidationError):
        run_scenario_range(_price_growth_only(term_years=0))


def test_runs_share_the_request_cache() -> None:
    cache = AmortizationCache()
    run_scenario_range(_price_growth_only(), cache=cache)
    # The year-0 purchase has the same loan in all three runs.
    assert cache.hits >= 2
    assert cache.misses >= 1
