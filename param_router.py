"""
Parameter-set API routes.

Routes:
  /api/param_submit               — canonicalize + strict find-or-create
  /api/param_lookup               — canonicalize + read-only match
  /api/results_status             — computation status of a result_id
  /api/param_sets/{result_id}     — canonical parameters of a stored set
  /api/capacity_settings          — list / seed capacity presets
  /api/capacity_settings/{id}     — one capacity preset
  /api/weights/redistribute       — three-way weight redistribution

Submit and lookup accept ?debug=1 (or "debug": 1 in the body) to include the
normalized tuple and the nearest stored sets in the response.
"""

import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from canonicalizer import canonicalize_capacity, canonicalize_payload
import capacity_service
from db import get_db, run_in_write_transaction
from errors import InvalidInput, NotFound, StoreUnavailable
import param_set_service
import weights

router = APIRouter(tags=["params"])


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))


def _debug_on(query_flag: Optional[str], body_flag: Any) -> bool:
    if query_flag is not None and str(query_flag).strip() not in ("", "0"):
        return True
    return bool(body_flag)


# ── Request models ─────────────────────────────────────────────────────────────

class ParamPayloadReq(BaseModel):
    scenario_id: Any = None
    earliest_year: Any = None
    latest_year: Any = None
    phaseout_thresh: Any = None
    w_dom_energy: Any = None
    w_gov_revenue: Any = None
    w_employment: Any = None
    w_dom_energy_frac: Any = None
    w_gov_revenue_frac: Any = None
    w_employment_frac: Any = None
    scale_dep_by_capacity: Any = None
    capacity_settings: Any = None
    floating_budget: Any = None
    debug: Any = None


class CapacitySettingsReq(BaseModel):
    capacity_name: str
    low_thresh: Any = None
    high_thresh: Any = None
    interp_btw_thresh: Any = None
    resp_since: Any = None
    r_weight: Any = None


class RedistributeReq(BaseModel):
    weights: Dict[str, Any]
    changed_key: Optional[str] = None
    value: Any = None
    mode: str = "change"


# ── Parameter sets ─────────────────────────────────────────────────────────────

@router.post("/api/param_submit")
def api_param_submit(
    req: ParamPayloadReq,
    debug: Optional[str] = None,
    conn: sqlite3.Connection = Depends(get_db),
) -> Dict[str, Any]:
    with _translate_errors():
        params = canonicalize_payload(req.model_dump())
        result = param_set_service.submit_params(conn, params)
        out = result.to_dict()
        if _debug_on(debug, req.debug):
            out["debug"] = param_set_service.diagnose(conn, params, result.capacity_settings_id)
    return out


@router.post("/api/param_lookup")
def api_param_lookup(
    req: ParamPayloadReq,
    debug: Optional[str] = None,
    conn: sqlite3.Connection = Depends(get_db),
) -> Dict[str, Any]:
    with _translate_errors():
        params = canonicalize_payload(req.model_dump())
        result = param_set_service.lookup(conn, params)
        out = result.to_dict()
        if _debug_on(debug, req.debug):
            cap = capacity_service.resolve_capacity_settings(
                conn, params.capacity, params.scale_requested, strict=False
            )
            if cap.missing:
                out["debug"] = {"normalized": params.to_dict(), "nearest": [], "capacity_missing": True}
            else:
                out["debug"] = param_set_service.diagnose(conn, params, cap.capacity_settings_id)
    return out


@router.get("/api/results_status")
def api_results_status(
    result_id: Optional[str] = None,
    conn: sqlite3.Connection = Depends(get_db),
) -> Dict[str, Any]:
    with _translate_errors():
        status = param_set_service.result_status(conn, result_id)
    return status.to_dict()


@router.get("/api/param_sets/{result_id}")
def api_param_set(result_id: int, conn: sqlite3.Connection = Depends(get_db)) -> Dict[str, Any]:
    with _translate_errors():
        return param_set_service.get_param_set(conn, result_id)


# ── Capacity presets ───────────────────────────────────────────────────────────

@router.get("/api/capacity_settings")
def api_list_capacity_settings(conn: sqlite3.Connection = Depends(get_db)) -> Dict[str, Any]:
    with _translate_errors():
        return {"capacity_settings": capacity_service.list_capacity_settings(conn)}


@router.get("/api/capacity_settings/{capacity_settings_id}")
def api_get_capacity_settings(
    capacity_settings_id: int,
    conn: sqlite3.Connection = Depends(get_db),
) -> Dict[str, Any]:
    with _translate_errors():
        return capacity_service.get_capacity_settings(conn, capacity_settings_id)


@router.post("/api/capacity_settings")
def api_seed_capacity_settings(
    req: CapacitySettingsReq,
    conn: sqlite3.Connection = Depends(get_db),
) -> Dict[str, Any]:
    with _translate_errors():
        spec = canonicalize_capacity(req.model_dump())
        preset_id, created = run_in_write_transaction(
            conn, lambda c: capacity_service.ensure_capacity_settings(c, spec)
        )
    return {"capacity_settings_id": preset_id, "created": created}


# ── Weights ────────────────────────────────────────────────────────────────────

@router.post("/api/weights/redistribute")
def api_redistribute_weights(req: RedistributeReq) -> Dict[str, Any]:
    mode = (req.mode or "").strip().lower()
    with _translate_errors():
        if mode == "submit":
            pct, fractions = weights.balance_for_submit(req.weights)
            return {"weights": pct, "fractions": fractions}
        if not req.changed_key:
            raise InvalidInput("changed_key is required", "changed_key")
        if mode == "change":
            return {"weights": weights.redistribute(req.weights, req.changed_key, req.value)}
        if mode == "blur":
            return {"weights": weights.settle(req.weights, req.changed_key)}
        raise InvalidInput("mode must be one of: change, blur, submit", "mode")
