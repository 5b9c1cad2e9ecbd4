import sqlite3
from typing import Optional

from canonicalizer import CanonicalParams

_MATCH_SQL = """
    SELECT result_id, is_calculated
    FROM param_sets
    WHERE result_id >= 1
      AND scenario_id = ?
      AND earliest_year = ?
      AND latest_year = ?
      AND phaseout_milli = ?
      AND w_dom_milli = ?
      AND w_gov_milli = ?
      AND w_emp_milli = ?
      AND capacity_settings_id IS ?
      AND scale_dep_by_capacity = ?
      AND floating_budget = ?
    ORDER BY is_calculated DESC, result_id ASC
    LIMIT 1
"""


def find_matching(
    conn: sqlite3.Connection,
    params: CanonicalParams,
    capacity_settings_id: Optional[int],
) -> Optional[sqlite3.Row]:
    return conn.execute(
        _MATCH_SQL,
        (
            params.scenario_id,
            params.earliest_year,
            params.latest_year,
            params.phaseout_milli,
            params.w_dom_milli,
            params.w_gov_milli,
            params.w_emp_milli,
            capacity_settings_id,
            0 if capacity_settings_id is None else 1,
            params.floating_budget,
        ),
    ).fetchone()


def find_same_frame(
    conn: sqlite3.Connection,
    params: CanonicalParams,
    capacity_settings_id: Optional[int],
    limit: int = 50,
) -> list[sqlite3.Row]:
    """Rows sharing every key field except the threshold and weights."""
    return conn.execute(
        """
        SELECT result_id, is_calculated, phaseout_thresh, w_dom_energy, w_gov_revenue, w_employment,
               phaseout_milli, w_dom_milli, w_gov_milli, w_emp_milli
        FROM param_sets
        WHERE scenario_id = ?
          AND earliest_year = ?
          AND latest_year = ?
          AND capacity_settings_id IS ?
          AND floating_budget = ?
        ORDER BY result_id ASC
        LIMIT ?
        """,
        (
            params.scenario_id,
            params.earliest_year,
            params.latest_year,
            capacity_settings_id,
            params.floating_budget,
            limit,
        ),
    ).fetchall()


def next_result_id(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT COALESCE(MAX(result_id), 0) AS max_id FROM param_sets").fetchone()
    return int(row["max_id"]) + 1


def insert_param_set(
    conn: sqlite3.Connection,
    result_id: int,
    params: CanonicalParams,
    capacity_settings_id: Optional[int],
    now_s: int,
) -> None:
    conn.execute(
        """
        INSERT INTO param_sets
          (result_id, is_calculated, date_calculated, date_last_used,
           scenario_id, earliest_year, latest_year, phaseout_thresh,
           w_dom_energy, w_gov_revenue, w_employment,
           phaseout_milli, w_dom_milli, w_gov_milli, w_emp_milli,
           capacity_settings_id, scale_dep_by_capacity, floating_budget)
        VALUES (?,0,NULL,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
        """,
        (
            result_id,
            now_s,
            params.scenario_id,
            params.earliest_year,
            params.latest_year,
            params.phaseout_thresh,
            params.w_dom_energy,
            params.w_gov_revenue,
            params.w_employment,
            params.phaseout_milli,
            params.w_dom_milli,
            params.w_gov_milli,
            params.w_emp_milli,
            capacity_settings_id,
            0 if capacity_settings_id is None else 1,
            params.floating_budget,
        ),
    )


def touch_last_used(conn: sqlite3.Connection, result_id: int, now_s: int) -> None:
    conn.execute(
        "UPDATE param_sets SET date_last_used=? WHERE result_id=?",
        (now_s, result_id),
    )


def get_status_row(conn: sqlite3.Connection, result_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(
        "SELECT is_calculated, date_calculated, date_last_used FROM param_sets WHERE result_id=? LIMIT 1",
        (result_id,),
    ).fetchone()


def get_param_set(conn: sqlite3.Connection, result_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(
        """
        SELECT p.*, c.capacity_name
        FROM param_sets p
        LEFT JOIN capacity_settings c ON c.capacity_settings_id = p.capacity_settings_id
        WHERE p.result_id=?
        """,
        (result_id,),
    ).fetchone()


def mark_calculated(conn: sqlite3.Connection, result_id: int, now_s: int) -> bool:
    """Batch-process hand-off: flag a set as computed. Returns False if unknown."""
    cur = conn.execute(
        """
        UPDATE param_sets
        SET is_calculated=1, date_calculated=COALESCE(date_calculated, ?)
        WHERE result_id=?
        """,
        (now_s, result_id),
    )
    return cur.rowcount > 0
