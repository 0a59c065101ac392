# spvsim/core/inputs.py
"""
Define the ModelSettings dataclass holding every parameter of a projection run,
plus the small records it is built from (RangeValue, PropertyOverride).
Includes calculated properties for convenience, validation, and a boundary
constructor for camelCase settings mappings.
"""

from dataclasses import dataclass, field, asdict, replace
from typing import Any, Dict, List, Mapping, Optional
import numpy as np
import logging

from .constants import DEFAULT_BUFFER_MONTHS, RANGED_FIELDS
from .scenarios import (
    DividendTaxHike, PropertyCrash, RentShock, ScenarioEffect, TaxHike, effect_from_tagged_record,
    effect_to_record, parse_overlay_mapping,
)
from .utils import UNIT_FRACTION, convert_to_internal, normalize_ratio

logger = logging.getLogger(__name__)


class SettingsValidationError(ValueError):
    """Raised when ModelSettings cannot be simulated. `errors` lists every problem found."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid settings: " + "; ".join(self.errors))


@dataclass(frozen=True)
class RangeValue:
    """A nominal value (in percent) with optional pessimistic/optimistic bounds."""
    value: float
    min: Optional[float] = None
    max: Optional[float] = None

    @property
    def has_bounds(self) -> bool:
        return self.min is not None and self.max is not None

    @property
    def decimal(self) -> float:
        return self.value / 100.0

    def at_bound(self, use_min: bool) -> "RangeValue":
        """Copy whose nominal value is the min (or max) bound; unchanged when that bound is unset."""
        bound = self.min if use_min else self.max
        if bound is None:
            return self
        return replace(self, value=bound)

    @classmethod
    def from_value(cls, raw: Any) -> "RangeValue":
        if isinstance(raw, RangeValue):
            return raw
        if isinstance(raw, Mapping):
            return cls(
                value=float(raw["value"]),
                min=None if raw.get("min") is None else float(raw["min"]),
                max=None if raw.get("max") is None else float(raw["max"]),
            )
        return cls(value=float(raw))


@dataclass(frozen=True)
class PropertyOverride:
    """Per-property settings that win over the global defaults. Percentages as in ModelSettings."""
    price: Optional[float] = None
    ltv: Optional[float] = None
    loan_rate: Optional[float] = None
    term_years: Optional[int] = None
    purchase_year: Optional[int] = None

    @classmethod
    def from_value(cls, raw: Any) -> "PropertyOverride":
        if isinstance(raw, PropertyOverride):
            return raw
        raw = raw or {}

        def pick(camel: str, snake: str) -> Any:
            return raw.get(camel, raw.get(snake))

        term = pick("termYears", "term_years")
        year = pick("purchaseYear", "purchase_year")
        return cls(
            price=None if raw.get("price") is None else float(raw["price"]),
            ltv=None if raw.get("ltv") is None else float(raw["ltv"]),
            loan_rate=None if pick("loanRate", "loan_rate") is None else float(pick("loanRate", "loan_rate")),
            term_years=None if term is None else int(term),
            purchase_year=None if year is None else int(year),
        )


def _effect_errors(effect: Any) -> List[str]:
    """Problems with one overlay: its window and any parameter outside its meaningful range."""
    if not isinstance(effect, ScenarioEffect):
        return [f"Overlay {effect!r} is not a scenario effect."]
    label = f"{effect.kind} Y{effect.start_year}-Y{effect.end_year}"
    errors: List[str] = []
    if effect.duration < 1:
        errors.append(f"{label}: duration must be at least 1.")
    if isinstance(effect, (PropertyCrash, RentShock)) and effect.drop is not None and effect.drop > 100:
        errors.append(f"{label}: drop cannot exceed 100 percent.")
    if isinstance(effect, RentShock) and effect.occupancy_drop is not None and not 0 <= effect.occupancy_drop <= 100:
        errors.append(f"{label}: occupancy_drop must be between 0 and 100 percent.")
    if isinstance(effect, (TaxHike, DividendTaxHike)) and effect.new_rate is not None and not 0 <= effect.new_rate <= 100:
        errors.append(f"{label}: new_rate must be between 0 and 100 percent.")
    if isinstance(effect, TaxHike) and effect.aimi_multiplier is not None and effect.aimi_multiplier < 0:
        errors.append(f"{label}: aimi_multiplier must be non-negative.")
    return errors


def _default_prepay_schedule() -> Dict[int, float]:
    return {year: 20_000.0 for year in range(11, 16)}


@dataclass
class ModelSettings:
    """Holds all input parameters for one projection run."""
    # --- Equity ---
    seed_equity: float = 320_000.0  # Cash in the SPV at year 0
    annual_injection: float = 100_000.0  # Capital injected each year in the injection window
    injection_years: int = 5  # Injections happen in years 1..injection_years

    # --- Properties & Market (percent) ---
    unit_price: float = 600_000.0  # Year-0 price of one unit
    price_growth: RangeValue = field(default_factory=lambda: RangeValue(3.0, 2.0, 4.0))
    gross_yield: RangeValue = field(default_factory=lambda: RangeValue(5.0, 4.0, 6.0))
    rent_growth: RangeValue = field(default_factory=lambda: RangeValue(2.0, 1.0, 3.0))
    opex_factor: RangeValue = field(default_factory=lambda: RangeValue(12.0, 10.0, 15.0))
    purchase_years: List[int] = field(default_factory=lambda: [0, 2, 4])
    property_settings: Dict[int, PropertyOverride] = field(default_factory=dict)  # Keyed by nominal purchase year

    # --- Financing (percent) ---
    ltv: float = 65.0
    loan_rate: RangeValue = field(default_factory=lambda: RangeValue(4.0, 3.5, 4.5))
    term_years: int = 30
    extra_prepay_schedule: Dict[int, float] = field(default_factory=_default_prepay_schedule)

    # --- Taxes & Payouts ---
    corp_tax_rate: float = 20.0  # Percent
    dividend_wht: float = 0.28  # Fraction
    payout_ratio: float = 0.80  # Fraction of positive cash flow distributed
    payout_schedule: Dict[int, float] = field(default_factory=dict)  # Year -> fraction
    start_payouts_year: int = 0
    buffer_months: float = DEFAULT_BUFFER_MONTHS  # Months of debt service kept as liquidity buffer

    # --- Horizon ---
    retirement_year: int = 20  # Last year of active investing
    forecast_period: int = 10  # Years simulated after retirement

    # --- Stress Tests ---
    scenarios: List[ScenarioEffect] = field(default_factory=list)

    # --- Calculated Properties ---
    @property
    def total_years(self) -> int:
        return self.retirement_year + self.forecast_period

    @property
    def ltv_decimal(self) -> float:
        return self.ltv / 100.0

    @property
    def corp_tax_rate_decimal(self) -> float:
        return self.corp_tax_rate / 100.0

    @property
    def has_ranges(self) -> bool:
        """True if at least one ranged parameter has both bounds defined."""
        return any(getattr(self, name).has_bounds for name in RANGED_FIELDS)

    def payout_ratio_for_year(self, year: int) -> float:
        return self.payout_schedule.get(year, self.payout_ratio)

    def validate(self) -> List[str]:
        """Returns a list of problems that make the settings unsimulatable (empty if valid)."""
        errors: List[str] = []
        for name in ("seed_equity", "annual_injection", "unit_price", "ltv", "corp_tax_rate",
                     "dividend_wht", "payout_ratio", "buffer_months"):
            if not np.isfinite(getattr(self, name)):
                errors.append(f"{name} must be a finite number.")
        for name in RANGED_FIELDS:
            rv = getattr(self, name)
            if not all(np.isfinite(v) for v in (rv.value, rv.min, rv.max) if v is not None):
                errors.append(f"{name} must contain finite numbers.")
        if self.unit_price <= 0:
            errors.append("unit_price must be positive.")
        if self.annual_injection < 0 or self.injection_years < 0:
            errors.append("annual_injection and injection_years must be non-negative.")
        if not 0 <= self.ltv <= 100:
            errors.append("ltv must be between 0 and 100 percent.")
        if self.term_years < 1:
            errors.append("term_years must be at least 1.")
        if self.loan_rate.value < 0:
            errors.append("loan_rate must be non-negative.")
        if not 0 <= self.payout_ratio <= 1:
            errors.append("payout_ratio must be a fraction between 0 and 1.")
        if any(not 0 <= ratio <= 1 for ratio in self.payout_schedule.values()):
            errors.append("payout_schedule ratios must be fractions between 0 and 1.")
        if not 0 <= self.dividend_wht <= 1:
            errors.append("dividend_wht must be a fraction between 0 and 1.")
        if self.buffer_months < 0:
            errors.append("buffer_months must be non-negative.")
        if self.retirement_year < 0 or self.forecast_period < 0:
            errors.append("retirement_year and forecast_period must be non-negative.")
        if any(year < 0 for year in self.purchase_years):
            errors.append("purchase_years must be non-negative.")
        if any(amount < 0 for amount in self.extra_prepay_schedule.values()):
            errors.append("extra_prepay_schedule amounts must be non-negative.")
        for year, override in self.property_settings.items():
            if override.term_years is not None and override.term_years < 1:
                errors.append(f"Property {year}: term_years must be at least 1.")
            if override.price is not None and override.price <= 0:
                errors.append(f"Property {year}: price must be positive.")
            if override.ltv is not None and not 0 <= override.ltv <= 100:
                errors.append(f"Property {year}: ltv must be between 0 and 100 percent.")
            if override.loan_rate is not None and override.loan_rate < 0:
                errors.append(f"Property {year}: loan_rate must be non-negative.")
            if override.purchase_year is not None and override.purchase_year < 0:
                errors.append(f"Property {year}: purchase_year must be non-negative.")
        for effect in self.scenarios:
            errors.extend(_effect_errors(effect))
        return errors

    def ensure_valid(self) -> None:
        errors = self.validate()
        if errors:
            logger.error(f"Settings validation failed: {errors}")
            raise SettingsValidationError(errors)

    def to_dict(self) -> Dict[str, Any]:
        """
        Converts the dataclass instance to a dictionary that from_dict reads back.
        Overlays become kind-tagged records and the fraction-valued ratios carry unit tags.
        """
        data = asdict(self)
        data["scenarios"] = [effect_to_record(effect) for effect in self.scenarios]
        data["payout_ratio_unit"] = UNIT_FRACTION
        data["dividend_wht_unit"] = UNIT_FRACTION
        data["payout_schedule_unit"] = UNIT_FRACTION
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModelSettings":
        """
        Builds settings from a camelCase (or snake_case) mapping such as an imported settings file.

        Percentages arrive as whole percents for ranged fields, `ltv`, `corpTaxRate`
        and override rates. `payoutRatio`, `dividendWHT` and `payoutSchedule` may be
        tagged with `payoutRatioUnit`, `dividendWHTUnit` or `payoutScheduleUnit`
        ("fraction" or "percent"); untagged values fall back to the magnitude rule.
        The prefix-keyed `scenarios` record is converted to an effect list.
        """
        def pick(camel: str, snake: str, default: Any = None) -> Any:
            if camel in data:
                return data[camel]
            return data.get(snake, default)

        defaults = cls()
        kwargs: Dict[str, Any] = {}

        for camel, snake in (("seedEquity", "seed_equity"), ("annualInjection", "annual_injection"),
                             ("unitPrice", "unit_price"), ("ltv", "ltv"), ("corpTaxRate", "corp_tax_rate"),
                             ("bufferMonths", "buffer_months")):
            raw = pick(camel, snake)
            if raw is not None:
                kwargs[snake] = convert_to_internal(raw, is_percentage_decimal=False)

        for camel, snake in (("injectionYears", "injection_years"), ("termYears", "term_years"),
                             ("startPayoutsYear", "start_payouts_year"), ("retirementYear", "retirement_year"),
                             ("forecastPeriod", "forecast_period")):
            raw = pick(camel, snake)
            if raw is not None:
                kwargs[snake] = int(raw)

        for camel, snake in (("priceGrowth", "price_growth"), ("grossYield", "gross_yield"),
                             ("rentGrowth", "rent_growth"), ("opexFactor", "opex_factor"),
                             ("loanRate", "loan_rate")):
            raw = pick(camel, snake)
            if raw is not None:
                kwargs[snake] = RangeValue.from_value(raw)

        raw = pick("payoutRatio", "payout_ratio")
        if raw is not None:
            kwargs["payout_ratio"] = normalize_ratio(raw, pick("payoutRatioUnit", "payout_ratio_unit"))
        raw = pick("dividendWHT", "dividend_wht")
        if raw is not None:
            kwargs["dividend_wht"] = normalize_ratio(raw, pick("dividendWHTUnit", "dividend_wht_unit"))
        raw = pick("payoutSchedule", "payout_schedule")
        if raw is not None:
            unit = pick("payoutScheduleUnit", "payout_schedule_unit")
            kwargs["payout_schedule"] = {int(y): normalize_ratio(v, unit) for y, v in raw.items()}

        raw = pick("extraPrepaySchedule", "extra_prepay_schedule")
        if raw is not None:
            kwargs["extra_prepay_schedule"] = {int(y): float(v) for y, v in raw.items()}
        raw = pick("purchaseYears", "purchase_years")
        if raw is not None:
            kwargs["purchase_years"] = [int(y) for y in raw]
        raw = pick("propertySettings", "property_settings")
        if raw is not None:
            kwargs["property_settings"] = {int(y): PropertyOverride.from_value(v) for y, v in raw.items()}

        raw = data.get("scenarios")
        if raw is not None:
            if isinstance(raw, Mapping):
                kwargs["scenarios"] = parse_overlay_mapping(raw)
            else:
                kwargs["scenarios"] = [effect_from_tagged_record(item) for item in raw]

        ignored = sorted(k for k in data if not k.endswith("Unit") and not k.endswith("_unit")
                         and k not in _KNOWN_KEYS)
        if ignored:
            logger.debug(f"Ignoring settings keys with no engine meaning: {ignored}")

        settings = replace(defaults, **kwargs)
        logger.info(f"Loaded settings: {len(settings.purchase_years)} purchases, horizon {settings.total_years} years, "
                    f"{len(settings.scenarios)} overlay(s)")
        return settings


_KNOWN_KEYS = {
    "seedEquity", "annualInjection", "injectionYears", "unitPrice", "priceGrowth", "grossYield", "rentGrowth",
    "opexFactor", "corpTaxRate", "payoutRatio", "payoutSchedule", "startPayoutsYear", "forecastPeriod",
    "dividendWHT", "extraPrepaySchedule", "retirementYear", "purchaseYears", "ltv", "loanRate", "termYears",
    "bufferMonths", "propertySettings", "scenarios",
} | {f for f in ModelSettings.__dataclass_fields__}
