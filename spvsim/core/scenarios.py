# spvsim/core/scenarios.py
"""
Deterministic stress-test overlays and the per-year modifier resolvers.

Each overlay is a ScenarioEffect variant with a year window
[start_year, start_year + duration - 1]. Overlays are kept in an ordered
list; several instances of the same kind may coexist. Every resolver takes
(year, effects, base) and returns the effective value for that year. When
several overlays of the resolver's kind cover the same year, the first one
in list order wins; effects are never summed or maxed.

Also contains:
- STRESS_TEST_PRESETS / apply_stress_test: named overlay bundles with default parameters.
- parse_overlay_mapping: converts the prefix-keyed overlay record used by saved
  settings files ("rateSpike_<id>", "propertyPriceCrash_<id>", ...) into effects.
"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Callable, ClassVar, Dict, Iterator, List, Mapping, Optional, Sequence, Type, TypeVar

from .constants import DEFAULT_AIMI_MULTIPLIER, DEFAULT_STAGFLATION_RENT_GROWTH
from .utils import window_contains

logger = logging.getLogger(__name__)


# --- Effect Variants ---

@dataclass(frozen=True)
class ScenarioEffect:
    """Common window of every overlay. `duration` counts years including the start year."""
    start_year: int
    duration: int

    kind: ClassVar[str] = "effect"
    mapping_prefix: ClassVar[str] = ""

    @property
    def end_year(self) -> int:
        return self.start_year + self.duration - 1

    def covers(self, year: int) -> bool:
        return window_contains(year, self.start_year, self.duration)


@dataclass(frozen=True)
class RateSpike(ScenarioEffect):
    """Loan rates rise by `bump_bps` basis points for the window."""
    bump_bps: Optional[float] = None

    kind: ClassVar[str] = "rate_spike"
    mapping_prefix: ClassVar[str] = "rateSpike"


@dataclass(frozen=True)
class PropertyCrash(ScenarioEffect):
    """Prices fall by `drop` percent in the start year and stay flat for the rest of the window."""
    drop: Optional[float] = None

    kind: ClassVar[str] = "property_crash"
    mapping_prefix: ClassVar[str] = "propertyPriceCrash"


@dataclass(frozen=True)
class RentShock(ScenarioEffect):
    """Rents fall by `drop` percent in the start year, then stay flat; occupancy is cut by `occupancy_drop` percent."""
    drop: Optional[float] = None
    occupancy_drop: Optional[float] = None

    kind: ClassVar[str] = "rent_shock"
    mapping_prefix: ClassVar[str] = "rentShock"


@dataclass(frozen=True)
class OpexInflation(ScenarioEffect):
    """Operating-expense ratio rises by `bump_pct_pts` percentage points."""
    bump_pct_pts: Optional[float] = None

    kind: ClassVar[str] = "opex_inflation"
    mapping_prefix: ClassVar[str] = "opexInflation"


@dataclass(frozen=True)
class TaxHike(ScenarioEffect):
    """Corporate tax rate replaced by `new_rate` percent; AIMI scaled by `aimi_multiplier`."""
    new_rate: Optional[float] = None
    aimi_multiplier: Optional[float] = None

    kind: ClassVar[str] = "tax_hike"
    mapping_prefix: ClassVar[str] = "taxHike"


@dataclass(frozen=True)
class DividendTaxHike(ScenarioEffect):
    """Dividend withholding tax replaced by `new_rate` percent."""
    new_rate: Optional[float] = None

    kind: ClassVar[str] = "dividend_tax"
    mapping_prefix: ClassVar[str] = "dividendTax"


@dataclass(frozen=True)
class Stagflation(ScenarioEffect):
    """Prices flat and rent growth held at `rent_growth` percent (0.5 when unset)."""
    rent_growth: Optional[float] = None

    kind: ClassVar[str] = "stagflation"
    mapping_prefix: ClassVar[str] = "stagflation"

    @property
    def effective_rent_growth(self) -> float:
        return self.rent_growth if self.rent_growth is not None else DEFAULT_STAGFLATION_RENT_GROWTH


EFFECT_TYPES: Sequence[Type[ScenarioEffect]] = (
    RateSpike, PropertyCrash, RentShock, OpexInflation, TaxHike, DividendTaxHike, Stagflation,
)

E = TypeVar("E", bound=ScenarioEffect)


def _active(effects: Optional[Sequence[ScenarioEffect]], effect_type: Type[E], year: int) -> Iterator[E]:
    """Effects of one kind covering `year`, in list order."""
    if not effects:
        return
    for effect in effects:
        if isinstance(effect, effect_type) and effect.covers(year):
            yield effect


# --- Modifier Resolvers ---

def price_growth_for_year(year: int, effects: Optional[Sequence[ScenarioEffect]], base_growth: float) -> float:
    """Price growth (decimal) for `year`. A crash overrides stagflation, which overrides the base."""
    for crash in _active(effects, PropertyCrash, year):
        if crash.drop is None:
            continue
        if year == crash.start_year:
            return -(crash.drop / 100.0)
        return 0.0
    for _ in _active(effects, Stagflation, year):
        return 0.0
    return base_growth


def rent_growth_for_year(year: int, effects: Optional[Sequence[ScenarioEffect]], base_growth: float) -> float:
    """Rent growth (decimal) for `year`. A rent shock overrides stagflation, which overrides the base."""
    for shock in _active(effects, RentShock, year):
        if shock.drop is None:
            continue
        if year == shock.start_year:
            return -(shock.drop / 100.0)
        return 0.0
    for stagflation in _active(effects, Stagflation, year):
        return stagflation.effective_rent_growth / 100.0
    return base_growth


def occupancy_factor_for_year(year: int, effects: Optional[Sequence[ScenarioEffect]]) -> float:
    """Multiplicative rent adjustment for lost occupancy; 1.0 when no rent shock applies."""
    for shock in _active(effects, RentShock, year):
        if shock.occupancy_drop is None:
            continue
        return 1.0 - shock.occupancy_drop / 100.0
    return 1.0


def loan_rate_for_year(year: int, effects: Optional[Sequence[ScenarioEffect]], base_rate: float) -> float:
    for spike in _active(effects, RateSpike, year):
        if spike.bump_bps is None:
            continue
        return base_rate + spike.bump_bps / 10_000.0
    return base_rate


def opex_ratio_for_year(year: int, effects: Optional[Sequence[ScenarioEffect]], base_ratio: float) -> float:
    for inflation in _active(effects, OpexInflation, year):
        if inflation.bump_pct_pts is None:
            continue
        return base_ratio + inflation.bump_pct_pts / 100.0
    return base_ratio


def corp_tax_rate_for_year(year: int, effects: Optional[Sequence[ScenarioEffect]], base_rate: float) -> float:
    # A hike replaces the rate, it is not added on top.
    for hike in _active(effects, TaxHike, year):
        if hike.new_rate is None:
            continue
        return hike.new_rate / 100.0
    return base_rate


def aimi_multiplier_for_year(year: int, effects: Optional[Sequence[ScenarioEffect]],
                             base_multiplier: float = DEFAULT_AIMI_MULTIPLIER) -> float:
    for hike in _active(effects, TaxHike, year):
        if hike.aimi_multiplier is None:
            continue
        return hike.aimi_multiplier
    return base_multiplier


def dividend_wht_for_year(year: int, effects: Optional[Sequence[ScenarioEffect]], base_rate: float) -> float:
    for hike in _active(effects, DividendTaxHike, year):
        if hike.new_rate is None:
            continue
        return hike.new_rate / 100.0
    return base_rate


# --- Overlay Mapping Parser ---

_MAPPING_FIELDS: Dict[str, str] = {
    "bumpBps": "bump_bps",
    "drop": "drop",
    "occupancyDrop": "occupancy_drop",
    "bumpPctPts": "bump_pct_pts",
    "newRate": "new_rate",
    "aimiMultiplier": "aimi_multiplier",
    "rentGrowth": "rent_growth",
}


def effect_from_record(effect_type: Type[E], record: Mapping[str, Any]) -> E:
    """Builds one effect from a camelCase or snake_case record."""
    start_year = record.get("startYear", record.get("start_year"))
    duration = record.get("duration")
    if start_year is None or duration is None:
        raise ValueError(f"{effect_type.__name__} record needs 'startYear' and 'duration': {dict(record)}")
    params: Dict[str, Any] = {}
    for camel, snake in _MAPPING_FIELDS.items():
        if snake not in {f.name for f in fields(effect_type)}:
            continue
        value = record.get(camel, record.get(snake))
        if value is not None:
            params[snake] = float(value)
    return effect_type(start_year=int(start_year), duration=int(duration), **params)


def effect_to_record(effect: ScenarioEffect) -> Dict[str, Any]:
    """Plain snake_case record of an effect, tagged with its `kind` so it can be read back."""
    record: Dict[str, Any] = {"kind": effect.kind}
    record.update({f.name: getattr(effect, f.name) for f in fields(effect)})
    return record


def effect_from_tagged_record(record: Any) -> ScenarioEffect:
    """
    Builds an effect from a `{"kind": ..., "start_year": ..., ...}` record as written by effect_to_record.

    Effects are passed through unchanged. The tag may be either the `kind` or the mapping prefix.

    Raises:
        ValueError: If the item is neither an effect nor a record with a known kind.
    """
    if isinstance(record, ScenarioEffect):
        return record
    if not isinstance(record, Mapping):
        raise ValueError(f"Overlay must be a ScenarioEffect or a mapping, got {type(record).__name__}.")
    tag = record.get("kind")
    effect_type = next((t for t in EFFECT_TYPES if tag in (t.kind, t.mapping_prefix)), None)
    if effect_type is None:
        raise ValueError(f"Overlay record has unknown kind {tag!r}. "
                         f"Expected one of {[t.kind for t in EFFECT_TYPES]}.")
    return effect_from_record(effect_type, record)


def parse_overlay_mapping(mapping: Optional[Mapping[str, Mapping[str, Any]]]) -> List[ScenarioEffect]:
    """
    Converts a prefix-keyed overlay record into an ordered effect list.

    Keys look like "<kindPrefix>_<instanceId>". Mapping order is preserved, so
    the first-match tie-break behaves exactly as it did on the mapping.
    Entries with an unknown prefix are logged and skipped.
    """
    effects: List[ScenarioEffect] = []
    if not mapping:
        return effects
    for key, record in mapping.items():
        effect_type = next((t for t in EFFECT_TYPES if key.startswith(t.mapping_prefix)), None)
        if effect_type is None:
            logger.warning(f"Ignoring overlay '{key}': unknown scenario kind.")
            continue
        effects.append(effect_from_record(effect_type, record))
    logger.debug(f"Parsed {len(effects)} overlays from mapping keys {list(mapping.keys())}")
    return effects


# --- Stress-Test Presets ---

@dataclass(frozen=True)
class StressTestPreset:
    """A named bundle of overlays with default window and parameters."""
    preset_id: str
    name: str
    description: str
    default_start_year: int
    default_duration: int
    build: Callable[..., List[ScenarioEffect]]


def _rate_spike(start_year: int, duration: int, bump_bps: float = 300.0) -> List[ScenarioEffect]:
    return [RateSpike(start_year, duration, bump_bps=bump_bps)]


def _property_crash(start_year: int, duration: int, drop: float = 25.0) -> List[ScenarioEffect]:
    return [PropertyCrash(start_year, duration, drop=drop)]


def _rent_shock(start_year: int, duration: int, drop: float = 10.0, occupancy_drop: float = 10.0) -> List[ScenarioEffect]:
    return [RentShock(start_year, duration, drop=drop, occupancy_drop=occupancy_drop)]


def _opex_inflation(start_year: int, duration: int, bump_pct_pts: float = 5.0) -> List[ScenarioEffect]:
    return [OpexInflation(start_year, duration, bump_pct_pts=bump_pct_pts)]


def _tax_hike(start_year: int, duration: int, new_rate: float = 28.0, aimi_multiplier: float = 2.0) -> List[ScenarioEffect]:
    return [TaxHike(start_year, duration, new_rate=new_rate, aimi_multiplier=aimi_multiplier)]


def _dividend_tax(start_year: int, duration: int, new_rate: float = 35.0) -> List[ScenarioEffect]:
    return [DividendTaxHike(start_year, duration, new_rate=new_rate)]


def _stagflation(start_year: int, duration: int, rent_growth: float = DEFAULT_STAGFLATION_RENT_GROWTH) -> List[ScenarioEffect]:
    return [Stagflation(start_year, duration, rent_growth=rent_growth)]


def _super_adverse(start_year: int, duration: int) -> List[ScenarioEffect]:
    return (_property_crash(start_year, duration)
            + _rent_shock(start_year, duration)
            + _rate_spike(start_year, duration))


STRESS_TEST_PRESETS: Dict[str, StressTestPreset] = {
    preset.preset_id: preset for preset in (
        StressTestPreset("rate-spike", "Rate Spike", "+300 bps instant jump in loan rates", 1, 3, _rate_spike),
        StressTestPreset("property-crash", "Property Price Crash", "-25% shock, flat growth for several years", 1, 3, _property_crash),
        StressTestPreset("rent-shock", "Rent-Roll Shock", "-10% lease-level rent, increased vacancy", 1, 2, _rent_shock),
        StressTestPreset("opex-inflation", "Opex Inflation", "+5 pp permanent increase in operating expenses", 1, 99, _opex_inflation),
        StressTestPreset("tax-hike", "Tax Hike Double-Whammy", "Corp tax 20 -> 28%; AIMI doubled", 2, 10, _tax_hike),
        StressTestPreset("dividend-tax", "Dividend Clamp-Down", "WHT 28 -> 35%", 2, 10, _dividend_tax),
        StressTestPreset("stagflation", "Slow Burn Stagflation", "Price 0%, rent +0.5% for 5 years", 1, 5, _stagflation),
        StressTestPreset("super-adverse", "Multi-shock \"Super Adverse\"", "Combines rate spike, property crash, and rent shock", 1, 3, _super_adverse),
    )
}


def apply_stress_test(preset_id: str, start_year: Optional[int] = None, duration: Optional[int] = None,
                      **params: float) -> List[ScenarioEffect]:
    """
    Builds the overlays of a named stress test.

    Args:
        preset_id: Key of STRESS_TEST_PRESETS (e.g. "rate-spike").
        start_year: First affected year; the preset default when omitted.
        duration: Window length in years; the preset default when omitted.
        **params: Overrides of the preset's effect parameters (e.g. bump_bps=200).

    Returns:
        The effects to append to ModelSettings.scenarios.
    """
    preset = STRESS_TEST_PRESETS.get(preset_id)
    if preset is None:
        raise KeyError(f"Unknown stress test '{preset_id}'. Available: {sorted(STRESS_TEST_PRESETS)}")
    start = preset.default_start_year if start_year is None else start_year
    length = preset.default_duration if duration is None else duration
    effects = preset.build(start, length, **params)
    logger.info(f"Stress test '{preset_id}' -> {len(effects)} overlay(s): "
                f"{[f'{e.kind} Y{e.start_year}-Y{e.end_year}' for e in effects]}")
    return effects
