# spvsim/core/constants.py
"""
Define constants shared by the simulation engine: tax and cost coefficients,
numerical tolerances and default horizon parameters.
Logging setup lives in app.py.
"""

import logging
from typing import Dict

logger = logging.getLogger(__name__)

# --- Numerical Constants ---
# FLOAT_ATOL: Absolute tolerance for floating-point comparisons (e.g., checking if a value is close to zero).
FLOAT_ATOL = 1e-9
# MONTHS_PER_YEAR: Standard number of months in a year.
MONTHS_PER_YEAR: int = 12

# --- Acquisition ---
# ACQUISITION_COST_PCT: Transfer tax, notary and agency fees paid in cash on top of the equity share (% of price).
ACQUISITION_COST_PCT = 0.07

# --- Property Taxes ---
# VPT_SHARE: Taxable patrimonial value (VPT) as a share of market value.
VPT_SHARE = 0.80
# IMI_RATE: Regular recurring property tax on VPT.
IMI_RATE = 0.003
# AIMI_RATE: Additional (wealth) property tax on VPT, before any stress multiplier.
AIMI_RATE = 0.004

# --- Depreciation ---
# BUILDING_SHARE: Share of market value attributed to the building (land is not depreciable).
BUILDING_SHARE = 0.80
# DEPRECIATION_RATE: Annual straight-line depreciation on the building share.
DEPRECIATION_RATE = 0.02

# --- Warnings ---
# HIGH_LTV_THRESHOLD: LTV (%) above which the run is flagged as breaching the stress cap.
HIGH_LTV_THRESHOLD = 80.0

# --- Default Simulation Parameters ---
DEFAULT_BUFFER_MONTHS = 6
DEFAULT_STAGFLATION_RENT_GROWTH = 0.5  # % per year
DEFAULT_AIMI_MULTIPLIER = 1.0

# --- Ranged Parameters ---
# RANGED_FIELDS: ModelSettings attributes that carry optional min/max sensitivity bounds.
RANGED_FIELDS = ("price_growth", "gross_yield", "rent_growth", "opex_factor", "loan_rate")

# --- Result Series ---
# RESULT_SERIES: Column labels used when tabulating a ModelResult.
RESULT_SERIES: Dict[str, str] = {
    "value": "Market Value",
    "debt": "Debt",
    "equity": "Equity",
    "ltv": "LTV (%)",
    "rent": "Rent",
    "cashflow": "Cash Flow",
    "dividends": "Net Dividends",
    "cash_reserve": "Cash Reserve",
    "building_depreciation": "Depreciation",
    "imi": "IMI",
    "aimi": "AIMI",
}

# --- Formatting Constants ---
# FMT_CURRENCY_ZERO_DP: Format string for currency with zero decimal places (e.g., "1234").
FMT_CURRENCY_ZERO_DP = "%.0f"
# FMT_PERCENT_ONE_DP: Format string for percentages with one decimal place (e.g., "5.1").
FMT_PERCENT_ONE_DP = "%.1f"
# FMT_PERCENT_TWO_DP: Format string for percentages with two decimal places (e.g., "5.12").
FMT_PERCENT_TWO_DP = "%.2f"
# FMT_INTEGER: Format string for integers (e.g., "10").
FMT_INTEGER = "%d"
