# spvsim/core/utils.py
"""
Utility functions shared by the spvsim engine and presentation layer.
"""
import numpy as np
import logging
from typing import Any, Optional
from functools import wraps

logger = logging.getLogger(__name__)

# Unit tags accepted wherever a ratio can be supplied either as a fraction or as a percentage.
UNIT_FRACTION = "fraction"
UNIT_PERCENT = "percent"


def convert_to_internal(ui_val: Any, is_percentage_decimal: bool, scale_factor: float = 100.0) -> float:
    """
    Converts a UI input value (potentially string or number) to its internal float representation.
    Handles percentage conversion based on the flag.

    Args:
        ui_val: The value from the Streamlit UI widget or an imported settings mapping.
        is_percentage_decimal: True if the value represents a percentage that should be
                               stored as a decimal internally (e.g., '5.0' -> 0.05).
                               False if the value should be stored directly as a float.
        scale_factor: The factor to divide by if is_percentage_decimal is True (default 100.0).

    Returns:
        The converted float value, or np.nan if conversion fails.
    """
    if ui_val is None:
        return np.nan
    try:
        numeric_val = float(ui_val)
        if not np.isfinite(numeric_val):
            raise ValueError("Input value is not finite")
        if is_percentage_decimal:
            return numeric_val / scale_factor
        return numeric_val
    except (ValueError, TypeError) as e:
        logger.warning(f"Could not convert value '{ui_val}' (type: {type(ui_val)}) to internal float: {e}")
        return np.nan


def normalize_ratio(value: float, unit: Optional[str] = None) -> float:
    """
    Returns a ratio as a decimal fraction.

    With an explicit unit tag the conversion is unambiguous. Without one, the
    legacy magnitude rule applies: values <= 1 are read as fractions, larger
    values as whole percentages. A deliberate 1% cannot be expressed through
    the legacy rule, so callers should pass a unit whenever they know it.
    """
    if unit == UNIT_FRACTION:
        return float(value)
    if unit == UNIT_PERCENT:
        return float(value) / 100.0
    if unit is not None:
        raise ValueError(f"Unknown ratio unit '{unit}'. Expected '{UNIT_FRACTION}' or '{UNIT_PERCENT}'.")
    numeric_val = float(value)
    if numeric_val <= 1.0:
        logger.debug(f"Untagged ratio {numeric_val} read as a fraction.")
        return numeric_val
    logger.debug(f"Untagged ratio {numeric_val} read as a percentage.")
    return numeric_val / 100.0


def window_contains(year: int, start_year: int, duration: int) -> bool:
    """True if `year` lies in the inclusive window [start_year, start_year + duration - 1]."""
    return start_year <= year <= start_year + duration - 1


def simulation_error_handler(func):
    """
    Decorator to consistently handle and log errors from presentation-side helpers.
    The engine itself raises; this is only for code where a failure must not take down the page.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Error in {func.__name__}: {e}", exc_info=True)
            return None
    return wrapper
