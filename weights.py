"""
Three-way weight redistribution.

The dashboard keeps the domestic-energy, government-revenue and employment
weights summing to 100 while the user edits one of them. Each weight has a
right-hand neighbour (domestic -> revenue -> employment -> domestic):

  redistribute()        on edit: the neighbour absorbs the remainder while the
                        third weight keeps its value. If the edited value alone
                        exceeds 100 minus the third weight, the neighbour is
                        pinned at 0 and the third weight shrinks instead.
  settle()              on blur: the same rule on values snapped to one decimal,
                        topping the neighbour back up when rounding left the
                        total below 99. An even 33.3/33.3/33.3 split is kept.
  balance_for_submit()  before submit: snap to one decimal and give any
                        shortfall to the largest weight; also returns the
                        3-decimal fractions the submit payload carries.

All three are pure functions over a mapping of percentages.
"""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Mapping, Tuple

import constants
from errors import InvalidInput

WEIGHT_KEYS: Tuple[str, str, str] = constants.WEIGHT_FIELDS

RIGHT_OF: Dict[str, str] = {
    "w_dom_energy": "w_gov_revenue",
    "w_gov_revenue": "w_employment",
    "w_employment": "w_dom_energy",
}

EVEN_SPLIT_PCT = 33.3


def _round1(x: float) -> float:
    return float(Decimal(repr(float(x))).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _clamp(v: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, v))


def _clean(x: float) -> float:
    # Strip binary noise such as 26.700000000000003.
    return round(x, 9)


def sanitize_pct(value: Any) -> float:
    """Coerce a UI value to a percentage in [0, 100]; unreadable values are 0."""
    if isinstance(value, bool):
        return 0.0
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(n):
        return 0.0
    return _clamp(n, 0.0, 100.0)


def _keys_for(changed_key: str) -> Tuple[str, str]:
    if changed_key not in RIGHT_OF:
        raise InvalidInput(f"Unknown weight '{changed_key}'", "changed_key")
    partner_key = RIGHT_OF[changed_key]
    third_key = next(k for k in WEIGHT_KEYS if k not in (changed_key, partner_key))
    return partner_key, third_key


def _current(weights: Mapping[str, Any], key: str) -> float:
    return sanitize_pct(weights.get(key, 0))


def redistribute(weights: Mapping[str, Any], changed_key: str, value: Any) -> Dict[str, float]:
    partner_key, third_key = _keys_for(changed_key)
    desired = sanitize_pct(value)
    third0 = _current(weights, third_key)

    if desired <= 100.0 - third0:
        changed = desired
        partner = 100.0 - third0 - changed
        third = third0
    else:
        changed = min(desired, 100.0)
        third = max(0.0, 100.0 - changed)
        partner = 100.0 - third - changed

    return {
        changed_key: _clean(changed),
        partner_key: _clean(partner),
        third_key: _clean(third),
    }


def _is_even_split(x: float) -> bool:
    return abs(_round1(x) - EVEN_SPLIT_PCT) < 0.05


def settle(weights: Mapping[str, Any], changed_key: str) -> Dict[str, float]:
    partner_key, third_key = _keys_for(changed_key)

    if all(_is_even_split(_current(weights, k)) for k in WEIGHT_KEYS):
        return {k: EVEN_SPLIT_PCT for k in WEIGHT_KEYS}

    desired = _current(weights, changed_key)
    third0 = _current(weights, third_key)

    if desired <= 100.0 - third0:
        third = _round1(third0)
        changed = _round1(_clamp(desired, 0.0, 100.0 - third))
        partner = _round1(100.0 - third - changed)

        total = _round1(changed + partner + third)
        if total < 99:
            diff = _round1(100.0 - total)
            new_partner = _round1(_clamp(partner + diff, 0.0, 100.0 - third))
            used = _round1(new_partner - partner)
            partner = new_partner
            if used != diff:
                # Neighbour saturated; move the edited field minimally.
                changed = _round1(_clamp(changed + (diff - used), 0.0, 100.0 - third))
                partner = _round1(100.0 - third - changed)
    else:
        changed = _round1(min(desired, 100.0))
        third = _round1(max(0.0, 100.0 - changed))
        partner = _round1(100.0 - third - changed)

        total = _round1(changed + partner + third)
        if total < 99:
            diff = _round1(100.0 - total)
            changed = _round1(_clamp(changed + diff, 0.0, 100.0 - third))
            partner = _round1(100.0 - third - changed)

    return {changed_key: changed, partner_key: partner, third_key: third}


def balance_for_submit(weights: Mapping[str, Any]) -> Tuple[Dict[str, float], Dict[str, float]]:
    """Return (percentages, fractions) ready for a submit payload."""
    pct = {k: _round1(_current(weights, k)) for k in WEIGHT_KEYS}
    total = _round1(sum(pct.values()))
    even = all(pct[k] == EVEN_SPLIT_PCT for k in WEIGHT_KEYS) and total == 99.9
    if not even and total < 99:
        diff = _round1(100.0 - total)
        # First largest wins ties, in field order.
        largest = max(WEIGHT_KEYS, key=lambda k: (pct[k], -WEIGHT_KEYS.index(k)))
        pct[largest] = _round1(pct[largest] + diff)

    fractions = {f"{k}_frac": round(pct[k] / 100.0, 3) for k in WEIGHT_KEYS}
    return pct, fractions
