"""
Sensitivity bracketing: runs the projection for the nominal settings and,
when ranged parameters carry bounds, once more at the lower bounds ("min")
and once at the upper bounds ("max").

The base run is required and its failure propagates. A failing min or max
run is logged and left out of the bundle.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional

import pandas as pd
from joblib import Parallel, delayed

from .constants import RANGED_FIELDS
from .debt import AmortizationCache
from .inputs import ModelSettings
from .simulation import ModelResult, run_model

logger = logging.getLogger(__name__)


@dataclass
class ScenarioRange:
    base: ModelResult
    min: Optional[ModelResult] = None
    max: Optional[ModelResult] = None

    def available(self) -> Dict[str, ModelResult]:
        """The runs present in this bundle, keyed 'base', 'min', 'max'."""
        runs = {"base": self.base, "min": self.min, "max": self.max}
        return {label: result for label, result in runs.items() if result is not None}

    def band(self, series: str) -> pd.DataFrame:
        """One column per available run for the named series (e.g. 'equity'), indexed by year."""
        frame = pd.DataFrame({label: getattr(result, series) for label, result in self.available().items()})
        frame.index = pd.RangeIndex(0, self.base.years + 1, name="Year")
        return frame


def has_ranges(settings: ModelSettings) -> bool:
    return settings.has_ranges


def bounded_settings(settings: ModelSettings, use_min: bool) -> ModelSettings:
    """
    Copy of `settings` with every ranged parameter moved to its min (or max) bound.
    Parameters without that bound, and every other field including overlays, are unchanged.
    """
    return replace(settings, **{name: getattr(settings, name).at_bound(use_min) for name in RANGED_FIELDS})


def _run_variant(label: str, settings: ModelSettings, cache: Optional[AmortizationCache]) -> Optional[ModelResult]:
    try:
        return run_model(settings, cache)
    except Exception as e:
        logger.warning(f"{label.capitalize()} scenario calculation failed, omitting it: {e}", exc_info=True)
        return None


def run_scenario_range(settings: ModelSettings, n_jobs: int = 1,
                       cache: Optional[AmortizationCache] = None) -> ScenarioRange:
    """
    Runs base, min and max projections.

    Args:
        settings: Nominal settings.
        n_jobs: Worker count for the min/max runs (joblib semantics; 1 runs them in-process
                and lets them reuse the base run's amortization cache).
        cache: Amortization cache for this request; a fresh one is created when omitted.

    Returns:
        ScenarioRange with `min`/`max` set only when bounds exist and the run succeeded.
    """
    cache = cache if cache is not None else AmortizationCache()
    base = run_model(settings, cache)
    if not has_ranges(settings):
        logger.info("No ranged parameter has both bounds; returning base run only.")
        return ScenarioRange(base=base)

    variants = {"min": bounded_settings(settings, use_min=True), "max": bounded_settings(settings, use_min=False)}
    try:
        with Parallel(n_jobs=n_jobs, backend="loky") as parallel:
            results = parallel(delayed(_run_variant)(label, variant, cache) for label, variant in variants.items())
    except Exception as e:
        logger.error(f"Range runs could not be executed: {e}", exc_info=True)
        results = [None, None]

    outcome = dict(zip(variants.keys(), results))
    logger.info(f"Range runs complete: min={'ok' if outcome['min'] else 'missing'}, "
                f"max={'ok' if outcome['max'] else 'missing'}; cache hits={cache.hits}, misses={cache.misses}")
    return ScenarioRange(base=base, min=outcome["min"], max=outcome["max"])
