"""
Canonicalizer — reduces a dashboard parameter payload to one canonical form.

Numeric fields arrive in several encodings: whole percentages (90), fractional
percentages (33.3), pre-computed fractions (0.9) and strings with a trailing
"%" ("90%"). Every encoding of the same value maps to the same canonical
fraction in [0, 1], and every canonical fraction maps to an integer number of
thousandths. The thousandths, not the raw fractions, are what the
parameter-set cache compares.

Interpretation of a single value (the 1.0 boundary is ambiguous on purpose
and must stay as is):
    v <= 1.0         already a fraction  -> round(v, 12)
    1.0 < v <= 100   a percentage        -> round(v / 100, 12)
    v > 100          rejected            -> InvalidInput
"""

import math
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Mapping, Optional

import constants
from errors import InvalidInput

_WHITESPACE_RE = re.compile(r"\s+")


# ── Scalar helpers ─────────────────────────────────────────────────────────────

def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _as_number(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise InvalidInput(f"{field} not numeric", field)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("%"):
            text = text[:-1].strip()
        try:
            number = float(text)
        except ValueError:
            raise InvalidInput(f"{field} not numeric", field)
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        raise InvalidInput(f"{field} not numeric", field)
    if not math.isfinite(number):
        raise InvalidInput(f"{field} not numeric", field)
    return number


def to_fraction(value: Any, field: str) -> float:
    """Convert a percent-like or fraction-like value to a canonical fraction."""
    if _is_blank(value):
        raise InvalidInput(f"{field} missing", field)
    x = _as_number(value, field)
    if x < 0:
        raise InvalidInput(f"{field} negative", field)
    if x <= 1.0:
        return round(x, constants.FRACTION_DIGITS)
    if x <= constants.PERCENT_MAX:
        return round(x / 100.0, constants.FRACTION_DIGITS)
    raise InvalidInput(f"{field} too large ({x:g})", field)


def clamp_fraction(value: Any, field: str) -> float:
    """Read an explicit fraction field, clamped to [0, 1]."""
    if _is_blank(value):
        raise InvalidInput(f"{field} missing", field)
    x = round(_as_number(value, field), constants.FRACTION_DIGITS)
    return max(0.0, min(1.0, x))


def to_thousandths(fraction: float) -> int:
    """Bucket a fraction to integer thousandths, rounding halves up.

    The decimal text of the float is rounded rather than its binary value so
    0.3335 lands in 334, not 333.
    """
    scaled = Decimal(repr(float(fraction))) * constants.MATCH_SCALE
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def normalize_name(name: Any) -> str:
    """Trim, collapse inner whitespace and lower-case a preset name."""
    text = "" if name is None else str(name)
    return _WHITESPACE_RE.sub(" ", text.strip()).lower()


def is_off_name(name: Any) -> bool:
    key = normalize_name(name)
    return key == "" or key == constants.CAPACITY_OFF_NAME


def _as_int(value: Any, field: str, default: Optional[int] = None) -> Optional[int]:
    if value is None:
        return default
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be an integer", field)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip() == "":
        raise InvalidInput(f"{field} missing", field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field} must be an integer", field)
    if not math.isfinite(number) or number != int(number):
        raise InvalidInput(f"{field} must be an integer", field)
    return int(number)


def _as_flag(value: Any, field: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    flag = _as_int(value, field)
    if flag not in (0, 1):
        raise InvalidInput(f"{field} must be 0 or 1", field)
    return flag


def _optional_int(obj: Mapping[str, Any], key: str, ctx: str) -> Optional[int]:
    value = obj.get(key)
    if _is_blank(value):
        return None
    return _as_int(value, f"{ctx}.{key}")


# ── Canonical records ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CapacityRequest:
    capacity_name: str = ""
    low_thresh: Optional[int] = None
    high_thresh: Optional[int] = None
    interp_btw_thresh: int = 0
    resp_since: Optional[int] = None
    r_weight: Optional[float] = None

    @property
    def name_key(self) -> str:
        return normalize_name(self.capacity_name)

    @property
    def is_off(self) -> bool:
        return is_off_name(self.capacity_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "capacity_name": self.capacity_name,
            "low_thresh": self.low_thresh,
            "high_thresh": self.high_thresh,
            "interp_btw_thresh": self.interp_btw_thresh,
            "resp_since": self.resp_since,
            "r_weight": self.r_weight,
        }


@dataclass(frozen=True)
class CanonicalParams:
    scenario_id: int
    earliest_year: int
    latest_year: int
    phaseout_thresh: float
    w_dom_energy: float
    w_gov_revenue: float
    w_employment: float
    scale_requested: bool
    floating_budget: int
    capacity: CapacityRequest

    @property
    def phaseout_milli(self) -> int:
        return to_thousandths(self.phaseout_thresh)

    @property
    def w_dom_milli(self) -> int:
        return to_thousandths(self.w_dom_energy)

    @property
    def w_gov_milli(self) -> int:
        return to_thousandths(self.w_gov_revenue)

    @property
    def w_emp_milli(self) -> int:
        return to_thousandths(self.w_employment)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenario_id": self.scenario_id,
            "earliest_year": self.earliest_year,
            "latest_year": self.latest_year,
            "phaseout_thresh": self.phaseout_thresh,
            "w_dom_energy": self.w_dom_energy,
            "w_gov_revenue": self.w_gov_revenue,
            "w_employment": self.w_employment,
            "phaseout_milli": self.phaseout_milli,
            "w_dom_milli": self.w_dom_milli,
            "w_gov_milli": self.w_gov_milli,
            "w_emp_milli": self.w_emp_milli,
            "scale_dep_by_capacity": int(self.scale_requested),
            "floating_budget": self.floating_budget,
            "capacity_settings": self.capacity.to_dict(),
        }


# ── Payload canonicalization ───────────────────────────────────────────────────

def canonicalize_capacity(raw: Any) -> CapacityRequest:
    if raw is None:
        return CapacityRequest()
    if not isinstance(raw, Mapping):
        raise InvalidInput("capacity_settings must be an object", "capacity_settings")
    ctx = "capacity_settings"
    name = raw.get("capacity_name")
    if name is not None and not isinstance(name, str):
        raise InvalidInput(f"{ctx}.capacity_name must be a string", f"{ctx}.capacity_name")

    r_weight_raw = raw.get("r_weight")
    r_weight = None
    if not _is_blank(r_weight_raw):
        r_weight = round(_as_number(r_weight_raw, f"{ctx}.r_weight"), constants.FRACTION_DIGITS)

    interp_raw = raw.get("interp_btw_thresh")
    return CapacityRequest(
        capacity_name=(name or "").strip(),
        low_thresh=_optional_int(raw, "low_thresh", ctx),
        high_thresh=_optional_int(raw, "high_thresh", ctx),
        interp_btw_thresh=_as_flag(None if _is_blank(interp_raw) else interp_raw, f"{ctx}.interp_btw_thresh", 0),
        resp_since=_optional_int(raw, "resp_since", ctx),
        r_weight=r_weight,
    )


def canonical_weights(raw: Mapping[str, Any]) -> Dict[str, float]:
    """Resolve the three weights to canonical fractions.

    Explicit ``*_frac`` fields win when all three are present (the client sends
    them after its own redistribution step); otherwise the percent-like fields
    are converted.
    """
    frac_values = [raw.get(k) for k in constants.WEIGHT_FRACTION_FIELDS]
    if all(v is not None for v in frac_values):
        return {
            field: clamp_fraction(value, frac_field)
            for field, frac_field, value in zip(constants.WEIGHT_FIELDS, constants.WEIGHT_FRACTION_FIELDS, frac_values)
        }
    out: Dict[str, float] = {}
    for field in constants.WEIGHT_FIELDS:
        value = raw.get(field)
        out[field] = to_fraction(constants.DEFAULT_WEIGHT_PCT if value is None else value, field)
    return out


def canonicalize_payload(raw: Mapping[str, Any]) -> CanonicalParams:
    """Turn a submit/lookup payload into CanonicalParams or raise InvalidInput."""
    if not isinstance(raw, Mapping):
        raise InvalidInput("Payload must be a JSON object")

    scenario_id = _as_int(raw.get("scenario_id"), "scenario_id", constants.DEFAULT_SCENARIO_ID)
    if scenario_id < 1:
        raise InvalidInput("scenario_id must be positive", "scenario_id")
    earliest_year = _as_int(raw.get("earliest_year"), "earliest_year", constants.DEFAULT_EARLIEST_YEAR)
    latest_year = _as_int(raw.get("latest_year"), "latest_year", constants.DEFAULT_LATEST_YEAR)
    if earliest_year > latest_year:
        raise InvalidInput("earliest_year must not be after latest_year", "earliest_year")

    pth_raw = raw.get("phaseout_thresh")
    phaseout = to_fraction(constants.DEFAULT_PHASEOUT_THRESH if pth_raw is None else pth_raw, "phaseout_thresh")
    weights = canonical_weights(raw)

    scale = _as_flag(raw.get("scale_dep_by_capacity"), "scale_dep_by_capacity", constants.DEFAULT_SCALE_BY_CAPACITY)
    floating_budget = _as_flag(raw.get("floating_budget"), "floating_budget", constants.DEFAULT_FLOATING_BUDGET)

    return CanonicalParams(
        scenario_id=scenario_id,
        earliest_year=earliest_year,
        latest_year=latest_year,
        phaseout_thresh=phaseout,
        w_dom_energy=weights["w_dom_energy"],
        w_gov_revenue=weights["w_gov_revenue"],
        w_employment=weights["w_employment"],
        scale_requested=bool(scale),
        floating_budget=floating_budget,
        capacity=canonicalize_capacity(raw.get("capacity_settings")),
    )
