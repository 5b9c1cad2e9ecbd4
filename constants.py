"""
Canonical shared constants for the climate-equity parameter service.

The submit, lookup and migration code all read their defaults from here;
this module is the single source of truth.
"""

from typing import Any, Dict, List

# ---------------------------------------------------------------------------
# Payload defaults (applied when a key is absent or null)
# ---------------------------------------------------------------------------

DEFAULT_SCENARIO_ID = 1
DEFAULT_EARLIEST_YEAR = 2030
DEFAULT_LATEST_YEAR = 2050
DEFAULT_PHASEOUT_THRESH = 90
DEFAULT_WEIGHT_PCT = 33.3
DEFAULT_SCALE_BY_CAPACITY = 0
DEFAULT_FLOATING_BUDGET = 1  # 1 = single shared budget, 0 = per-fuel budgets

# ---------------------------------------------------------------------------
# Capacity scaling
# ---------------------------------------------------------------------------

CAPACITY_OFF_NAME = "off"

# Presets offered by the dashboard; seeded at startup so the strict submit
# path can resolve them.
BUILTIN_CAPACITY_PRESETS: List[Dict[str, Any]] = [
    {
        "capacity_name": "CSER High Capacity",
        "low_thresh": None,
        "high_thresh": None,
        "interp_btw_thresh": 0,
        "resp_since": None,
        "r_weight": None,
    },
    {
        "capacity_name": "CSER Medium Progressivity",
        "low_thresh": None,
        "high_thresh": None,
        "interp_btw_thresh": 0,
        "resp_since": None,
        "r_weight": None,
    },
]

# ---------------------------------------------------------------------------
# Matching precision
# ---------------------------------------------------------------------------

FRACTION_DIGITS = 12  # digits kept on every canonical fraction
MATCH_SCALE = 1000  # fractions are bucketed to integer thousandths for matching
PERCENT_MAX = 100.0

WEIGHT_FIELDS = ("w_dom_energy", "w_gov_revenue", "w_employment")
WEIGHT_FRACTION_FIELDS = ("w_dom_energy_frac", "w_gov_revenue_frac", "w_employment_frac")

STATUS_READY = "ready"
STATUS_PENDING = "pending"
STATUS_MISSING = "missing"
