"""
Capacity settings resolver — maps a capacity-scaling preset to a stable
capacity_settings_id.

Two resolution modes share one matching rule:
  - strict (submit): an unknown preset name is a client error
    (UnknownCapacityPreset, an InvalidInput);
  - lenient (lookup): an unknown preset name is "no match" and the caller
    answers ``missing``.

Presets are created only through ensure_capacity_settings(), which reuses a
record when every field matches NULL-safely and inserts one otherwise.
"""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import capacity_repository
from canonicalizer import CapacityRequest, canonicalize_capacity
import constants
from errors import InvalidInput, NotFound, UnknownCapacityPreset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapacityResolution:
    capacity_settings_id: Optional[int]
    scale_by_capacity: bool
    missing: bool = False


CAPACITY_OFF = CapacityResolution(capacity_settings_id=None, scale_by_capacity=False)


def _has_detail(spec: CapacityRequest) -> bool:
    return (
        spec.low_thresh is not None
        or spec.high_thresh is not None
        or spec.resp_since is not None
        or spec.r_weight is not None
        or bool(spec.interp_btw_thresh)
    )


def resolve_capacity_settings(
    conn: sqlite3.Connection,
    spec: CapacityRequest,
    scale_requested: bool,
    strict: bool = True,
) -> CapacityResolution:
    if spec.is_off or not scale_requested:
        return CAPACITY_OFF

    row = None
    if _has_detail(spec):
        row = capacity_repository.find_exact(conn, spec)
    if row is None:
        row = capacity_repository.find_by_name(conn, spec.name_key)

    if row is None:
        if strict:
            raise UnknownCapacityPreset(spec.capacity_name)
        return CapacityResolution(capacity_settings_id=None, scale_by_capacity=False, missing=True)

    return CapacityResolution(capacity_settings_id=int(row["capacity_settings_id"]), scale_by_capacity=True)


def ensure_capacity_settings(conn: sqlite3.Connection, spec: CapacityRequest) -> Tuple[int, bool]:
    """Find a NULL-safe exact match or insert a new preset. Returns (id, created)."""
    if spec.name_key == "":
        raise InvalidInput("capacity_name is required", "capacity_name")
    if spec.is_off:
        raise InvalidInput(f"'{constants.CAPACITY_OFF_NAME}' is reserved for disabled capacity scaling", "capacity_name")

    row = capacity_repository.find_exact(conn, spec)
    if row is not None:
        return int(row["capacity_settings_id"]), False

    new_id = capacity_repository.insert_capacity_settings(conn, spec)
    logger.info("Created capacity preset %d (%s)", new_id, spec.capacity_name)
    return new_id, True


def seed_builtin_presets(conn: sqlite3.Connection) -> List[int]:
    """Ensure the dashboard's presets exist; returns the ids that were created."""
    created: List[int] = []
    for preset in constants.BUILTIN_CAPACITY_PRESETS:
        spec = canonicalize_capacity(preset)
        # A legacy store may hold the preset under different numeric fields.
        if capacity_repository.find_by_name(conn, spec.name_key) is not None:
            continue
        preset_id, was_created = ensure_capacity_settings(conn, spec)
        if was_created:
            created.append(preset_id)
    return created


def capacity_row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "capacity_settings_id": int(row["capacity_settings_id"]),
        "capacity_name": row["capacity_name"],
        "low_thresh": row["low_thresh"],
        "high_thresh": row["high_thresh"],
        "interp_btw_thresh": int(row["interp_btw_thresh"] or 0),
        "resp_since": row["resp_since"],
        "r_weight": row["r_weight"],
    }


def list_capacity_settings(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    return [capacity_row_to_dict(r) for r in capacity_repository.list_capacity_settings(conn)]


def get_capacity_settings(conn: sqlite3.Connection, capacity_settings_id: int) -> Dict[str, Any]:
    row = capacity_repository.get_by_id(conn, capacity_settings_id)
    if row is None:
        raise NotFound(f"Unknown capacity_settings_id {capacity_settings_id}")
    return capacity_row_to_dict(row)
