import logging
import sqlite3
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from canonicalizer import normalize_name, to_thousandths
import constants

logger = logging.getLogger(__name__)

# Legacy rows were written by endpoints that stored weights as sent (33.3)
# next to others that stored fractions (0.333).
LEGACY_PERCENT_CUTOFF = 1.0000001


@dataclass(frozen=True)
class Migration:
    migration_id: str
    description: str
    apply: Callable[[sqlite3.Connection], None]


def _table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table});").fetchall()
    return {str(r["name"]) for r in rows}


def _safe_add_column(conn: sqlite3.Connection, table: str, name: str, coltype: str) -> None:
    if name in _table_columns(conn, table):
        return
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {coltype};")


def _legacy_fraction(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    x = float(value)
    if x > LEGACY_PERCENT_CUTOFF:
        x = x / 100.0
    return round(x, constants.FRACTION_DIGITS)


def _migration_0001_initial(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS capacity_settings (
          capacity_settings_id INTEGER PRIMARY KEY AUTOINCREMENT,
          capacity_name TEXT NOT NULL,
          low_thresh INTEGER,
          high_thresh INTEGER,
          interp_btw_thresh INTEGER NOT NULL DEFAULT 0,
          resp_since INTEGER,
          r_weight REAL
        );

        CREATE TABLE IF NOT EXISTS param_sets (
          result_id INTEGER PRIMARY KEY,
          is_calculated INTEGER NOT NULL DEFAULT 0,
          date_calculated INTEGER,
          date_last_used INTEGER,
          scenario_id INTEGER NOT NULL,
          earliest_year INTEGER NOT NULL,
          latest_year INTEGER NOT NULL,
          phaseout_thresh REAL NOT NULL,
          w_dom_energy REAL NOT NULL,
          w_gov_revenue REAL NOT NULL,
          w_employment REAL NOT NULL,
          capacity_settings_id INTEGER REFERENCES capacity_settings(capacity_settings_id),
          scale_dep_by_capacity INTEGER NOT NULL DEFAULT 0,
          floating_budget INTEGER NOT NULL DEFAULT 1
        );
        CREATE INDEX IF NOT EXISTS idx_param_sets_years
          ON param_sets(scenario_id, earliest_year, latest_year);
        """
    )


def _migration_0002_match_keys(conn: sqlite3.Connection) -> None:
    """Store canonical fractions plus their thousandths keys on every row."""
    _safe_add_column(conn, "param_sets", "phaseout_milli", "INTEGER")
    _safe_add_column(conn, "param_sets", "w_dom_milli", "INTEGER")
    _safe_add_column(conn, "param_sets", "w_gov_milli", "INTEGER")
    _safe_add_column(conn, "param_sets", "w_emp_milli", "INTEGER")

    rows = conn.execute(
        """
        SELECT result_id, phaseout_thresh, w_dom_energy, w_gov_revenue, w_employment
        FROM param_sets
        """
    ).fetchall()
    for r in rows:
        pth = _legacy_fraction(r["phaseout_thresh"])
        wd = _legacy_fraction(r["w_dom_energy"])
        wg = _legacy_fraction(r["w_gov_revenue"])
        we = _legacy_fraction(r["w_employment"])
        conn.execute(
            """
            UPDATE param_sets
            SET phaseout_thresh=?, w_dom_energy=?, w_gov_revenue=?, w_employment=?,
                phaseout_milli=?, w_dom_milli=?, w_gov_milli=?, w_emp_milli=?
            WHERE result_id=?
            """,
            (
                pth, wd, wg, we,
                None if pth is None else to_thousandths(pth),
                None if wd is None else to_thousandths(wd),
                None if wg is None else to_thousandths(wg),
                None if we is None else to_thousandths(we),
                r["result_id"],
            ),
        )

    conn.execute(
        "UPDATE param_sets SET floating_budget=? WHERE floating_budget IS NULL",
        (constants.DEFAULT_FLOATING_BUDGET,),
    )
    conn.execute(
        """
        UPDATE param_sets
        SET scale_dep_by_capacity = CASE WHEN capacity_settings_id IS NULL THEN 0 ELSE 1 END
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_param_sets_match
          ON param_sets(scenario_id, earliest_year, latest_year, phaseout_milli,
                        w_dom_milli, w_gov_milli, w_emp_milli)
        """
    )
    if rows:
        logger.info("Normalized %d existing parameter sets to canonical fractions", len(rows))


def _migration_0003_capacity_name_key(conn: sqlite3.Connection) -> None:
    _safe_add_column(conn, "capacity_settings", "name_key", "TEXT")
    rows = conn.execute("SELECT capacity_settings_id, capacity_name FROM capacity_settings").fetchall()
    for r in rows:
        conn.execute(
            "UPDATE capacity_settings SET name_key=? WHERE capacity_settings_id=?",
            (normalize_name(r["capacity_name"]), r["capacity_settings_id"]),
        )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_capacity_settings_name_key ON capacity_settings(name_key)"
    )


def _migrations() -> List[Migration]:
    return [
        Migration("0001_initial", "Create capacity_settings and param_sets tables", _migration_0001_initial),
        Migration("0002_match_keys", "Canonical fractions and thousandths match keys on param_sets", _migration_0002_match_keys),
        Migration("0003_capacity_name_key", "Normalized preset name key on capacity_settings", _migration_0003_capacity_name_key),
    ]


def apply_migrations(conn: sqlite3.Connection) -> List[str]:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
          migration_id TEXT PRIMARY KEY,
          description TEXT NOT NULL,
          applied_at REAL NOT NULL
        );
        """
    )

    applied = {
        str(r["migration_id"])
        for r in conn.execute("SELECT migration_id FROM schema_migrations").fetchall()
    }

    newly_applied: List[str] = []
    for migration in _migrations():
        if migration.migration_id in applied:
            continue
        migration.apply(conn)
        conn.execute(
            "INSERT INTO schema_migrations (migration_id,description,applied_at) VALUES (?,?,?)",
            (migration.migration_id, migration.description, time.time()),
        )
        newly_applied.append(migration.migration_id)
        logger.info("Applied migration %s: %s", migration.migration_id, migration.description)
    return newly_applied
