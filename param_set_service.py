"""
Parameter-set cache — decides which result_id a parameter combination maps to.

A parameter set is identified by its canonical tuple:
  (scenario_id, earliest_year, latest_year,
   phaseout / weight thresholds bucketed to integer thousandths,
   capacity_settings_id (NULL-safe), floating_budget)

find_or_create() runs the match and the insert inside one BEGIN IMMEDIATE
transaction, so two concurrent submissions of the same tuple cannot both
insert. When several historical rows match, the calculated one wins, then the
oldest. lookup() uses the same predicate but never writes; result_status()
reports the batch-computation state of a known result_id.

The scale_dep_by_capacity column is always derived from capacity_settings_id
(1 when a preset is referenced, 0 otherwise).
"""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, List, Optional

import capacity_repository
from canonicalizer import CanonicalParams
from capacity_service import resolve_capacity_settings
import clock
import constants
from db import classify_store_error, run_in_write_transaction
from errors import InvalidInput, NotFound, StoreUnavailable
import param_set_repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmitResult:
    result_id: int
    status: str
    existing: bool
    capacity_settings_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "result_id": self.result_id,
            "existing": self.existing,
            "cap_settings_id": self.capacity_settings_id,
        }


@dataclass(frozen=True)
class LookupResult:
    result_id: Optional[int]
    status: str
    is_calculated: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"status": self.status, "result_id": self.result_id}
        if self.is_calculated is not None:
            out["is_calculated"] = self.is_calculated
        return out


@dataclass(frozen=True)
class ResultStatus:
    result_id: int
    status: str
    is_calculated: int
    date_calculated: Optional[int]
    date_last_used: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _status_for(is_calculated: Any) -> str:
    return constants.STATUS_READY if int(is_calculated or 0) == 1 else constants.STATUS_PENDING


@contextmanager
def _read_guard() -> Iterator[None]:
    """Reads take no lock; any store error on a read is fatal for the request."""
    try:
        yield
    except sqlite3.Error as exc:
        mapped = classify_store_error(exc)
        logger.exception("Result store failure during read")
        raise StoreUnavailable(str(mapped)) from exc


# ── Find-or-create ─────────────────────────────────────────────────────────────

def _find_or_create_locked(
    conn: sqlite3.Connection,
    params: CanonicalParams,
    capacity_settings_id: Optional[int],
) -> SubmitResult:
    now = clock.now_s()
    existing = param_set_repository.find_matching(conn, params, capacity_settings_id)
    if existing is not None:
        result_id = int(existing["result_id"])
        param_set_repository.touch_last_used(conn, result_id, now)
        logger.debug("Matched parameter set %d", result_id)
        return SubmitResult(
            result_id=result_id,
            status=_status_for(existing["is_calculated"]),
            existing=True,
            capacity_settings_id=capacity_settings_id,
        )

    result_id = param_set_repository.next_result_id(conn)
    param_set_repository.insert_param_set(conn, result_id, params, capacity_settings_id, now)
    logger.info(
        "Created parameter set %d (scenario=%d years=%d-%d capacity=%s)",
        result_id,
        params.scenario_id,
        params.earliest_year,
        params.latest_year,
        capacity_settings_id,
    )
    return SubmitResult(
        result_id=result_id,
        status=constants.STATUS_PENDING,
        existing=False,
        capacity_settings_id=capacity_settings_id,
    )


def find_or_create(
    conn: sqlite3.Connection,
    params: CanonicalParams,
    capacity_settings_id: Optional[int],
) -> SubmitResult:
    """Resolve an already-resolved canonical tuple to its result_id, creating it if new.

    A non-null capacity_settings_id must name a stored preset.
    """

    def work(c: sqlite3.Connection) -> SubmitResult:
        if capacity_settings_id is not None and capacity_repository.get_by_id(c, capacity_settings_id) is None:
            raise InvalidInput(f"Unknown capacity_settings_id {capacity_settings_id}", "capacity_settings_id")
        return _find_or_create_locked(c, params, capacity_settings_id)

    return run_in_write_transaction(conn, work)


def submit_params(conn: sqlite3.Connection, params: CanonicalParams) -> SubmitResult:
    """Strict submission: resolve the capacity preset, then find-or-create.

    Both steps share one transaction; an unknown preset raises
    UnknownCapacityPreset and nothing is written.
    """

    def work(c: sqlite3.Connection) -> SubmitResult:
        cap = resolve_capacity_settings(c, params.capacity, params.scale_requested, strict=True)
        return _find_or_create_locked(c, params, cap.capacity_settings_id)

    return run_in_write_transaction(conn, work)


# ── Read-only paths ────────────────────────────────────────────────────────────

def lookup(conn: sqlite3.Connection, params: CanonicalParams) -> LookupResult:
    with _read_guard():
        cap = resolve_capacity_settings(conn, params.capacity, params.scale_requested, strict=False)
        if cap.missing:
            return LookupResult(result_id=None, status=constants.STATUS_MISSING)
        row = param_set_repository.find_matching(conn, params, cap.capacity_settings_id)
    if row is None:
        return LookupResult(result_id=None, status=constants.STATUS_MISSING)
    return LookupResult(
        result_id=int(row["result_id"]),
        status=_status_for(row["is_calculated"]),
        is_calculated=int(row["is_calculated"] or 0),
    )


def _validate_result_id(result_id: Any) -> int:
    if isinstance(result_id, bool):
        raise InvalidInput("result_id must be an integer", "result_id")
    try:
        rid = int(result_id)
    except (TypeError, ValueError):
        raise InvalidInput("Missing result_id", "result_id")
    if rid <= 0:
        raise InvalidInput("Missing result_id", "result_id")
    return rid


def result_status(conn: sqlite3.Connection, result_id: Any) -> ResultStatus:
    rid = _validate_result_id(result_id)
    with _read_guard():
        row = param_set_repository.get_status_row(conn, rid)
    if row is None:
        raise NotFound(f"Unknown result_id {rid}")
    return ResultStatus(
        result_id=rid,
        status=_status_for(row["is_calculated"]),
        is_calculated=int(row["is_calculated"] or 0),
        date_calculated=row["date_calculated"],
        date_last_used=row["date_last_used"],
    )


def get_param_set(conn: sqlite3.Connection, result_id: Any) -> Dict[str, Any]:
    rid = _validate_result_id(result_id)
    with _read_guard():
        row = param_set_repository.get_param_set(conn, rid)
    if row is None:
        raise NotFound(f"Unknown result_id {rid}")
    return {
        "result_id": rid,
        "status": _status_for(row["is_calculated"]),
        "scenario_id": row["scenario_id"],
        "earliest_year": row["earliest_year"],
        "latest_year": row["latest_year"],
        "phaseout_thresh": row["phaseout_thresh"],
        "w_dom_energy": row["w_dom_energy"],
        "w_gov_revenue": row["w_gov_revenue"],
        "w_employment": row["w_employment"],
        "capacity_settings_id": row["capacity_settings_id"],
        "capacity_name": row["capacity_name"],
        "scale_dep_by_capacity": int(row["capacity_settings_id"] is not None),
        "floating_budget": row["floating_budget"],
        "date_calculated": row["date_calculated"],
        "date_last_used": row["date_last_used"],
    }


def mark_result_calculated(conn: sqlite3.Connection, result_id: Any) -> ResultStatus:
    """Record that the batch process finished a result set."""
    rid = _validate_result_id(result_id)

    def work(c: sqlite3.Connection) -> bool:
        return param_set_repository.mark_calculated(c, rid, clock.now_s())

    if not run_in_write_transaction(conn, work):
        raise NotFound(f"Unknown result_id {rid}")
    return result_status(conn, rid)


# ── Diagnostics ────────────────────────────────────────────────────────────────

def diagnose(
    conn: sqlite3.Connection,
    params: CanonicalParams,
    capacity_settings_id: Optional[int],
    limit: int = 5,
) -> Dict[str, Any]:
    """Explain a match decision: the canonical key and the nearest stored sets."""
    with _read_guard():
        rows = param_set_repository.find_same_frame(conn, params, capacity_settings_id)

    nearest: List[Dict[str, Any]] = []
    for r in rows:
        if r["phaseout_milli"] is None:
            continue
        deltas = {
            "d_pth": abs(int(r["phaseout_milli"]) - params.phaseout_milli),
            "d_wd": abs(int(r["w_dom_milli"]) - params.w_dom_milli),
            "d_wg": abs(int(r["w_gov_milli"]) - params.w_gov_milli),
            "d_we": abs(int(r["w_emp_milli"]) - params.w_emp_milli),
        }
        nearest.append(
            {
                "result_id": int(r["result_id"]),
                "is_calculated": int(r["is_calculated"] or 0),
                "sum_delta": sum(deltas.values()),
                **deltas,
            }
        )
    nearest.sort(key=lambda n: (n["sum_delta"], n["result_id"]))

    normalized = params.to_dict()
    normalized["capacity_settings_id"] = capacity_settings_id
    return {"normalized": normalized, "nearest": nearest[:limit]}
