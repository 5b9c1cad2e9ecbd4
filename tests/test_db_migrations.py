"""
Database migration tests — verify that migrations apply cleanly and
produce the expected schema.

Catches:
  - SQL syntax errors in migration functions
  - Idempotency failures (running migrations twice)
  - Missing tables or columns after migration
  - Legacy rows left in percent encoding or without match keys
"""

import sqlite3
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def _fresh_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


# ── Migration application ─────────────────────────────────────────────────

class TestMigrationsApply:
    def test_all_migrations_apply_to_fresh_db(self):
        """All migrations should apply without error to an empty database."""
        from db_migrations import apply_migrations

        conn = _fresh_conn()
        applied = apply_migrations(conn)

        rows = conn.execute("SELECT migration_id FROM schema_migrations ORDER BY migration_id").fetchall()
        ids = [r["migration_id"] for r in rows]
        assert ids[0] == "0001_initial"
        assert ids == applied
        conn.close()

    def test_migrations_are_idempotent(self):
        """Running apply_migrations twice should not raise and applies nothing new."""
        from db_migrations import apply_migrations

        conn = _fresh_conn()
        apply_migrations(conn)
        assert apply_migrations(conn) == []
        conn.close()

    def test_migration_ids_are_sequential(self):
        from db_migrations import _migrations

        ids = [m.migration_id for m in _migrations()]
        assert ids == sorted(ids), f"Migration IDs are not sorted: {ids}"

    def test_no_duplicate_migration_ids(self):
        from db_migrations import _migrations

        ids = [m.migration_id for m in _migrations()]
        assert len(ids) == len(set(ids)), f"Duplicate migration IDs: {[x for x in ids if ids.count(x) > 1]}"


# ── Schema expectations ───────────────────────────────────────────────────

EXPECTED_TABLES = [
    "param_sets",
    "capacity_settings",
    "schema_migrations",
]


class TestSchemaAfterMigrations:
    def test_expected_tables_exist(self, db_conn: sqlite3.Connection):
        tables = {
            r[0]
            for r in db_conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }
        for t in EXPECTED_TABLES:
            assert t in tables, f"Expected table '{t}' not found. Tables: {tables}"

    def test_param_sets_has_match_key_columns(self, db_conn: sqlite3.Connection):
        cols = {r["name"] for r in db_conn.execute("PRAGMA table_info(param_sets)").fetchall()}
        for c in ("result_id", "is_calculated", "date_last_used", "phaseout_milli",
                  "w_dom_milli", "w_gov_milli", "w_emp_milli", "floating_budget"):
            assert c in cols, f"param_sets table missing column: {c}"

    def test_capacity_settings_has_name_key(self, db_conn: sqlite3.Connection):
        cols = {r["name"] for r in db_conn.execute("PRAGMA table_info(capacity_settings)").fetchall()}
        for c in ("capacity_settings_id", "capacity_name", "name_key", "r_weight"):
            assert c in cols, f"capacity_settings table missing column: {c}"

    def test_match_index_exists(self, db_conn: sqlite3.Connection):
        names = {r["name"] for r in db_conn.execute("PRAGMA index_list(param_sets)").fetchall()}
        assert "idx_param_sets_match" in names

    def test_foreign_keys_enabled(self, db_conn: sqlite3.Connection):
        fk = db_conn.execute("PRAGMA foreign_keys;").fetchone()
        assert fk[0] == 1


# ── Legacy stores ─────────────────────────────────────────────────────────

class TestLegacyNormalization:
    @pytest.fixture()
    def legacy_conn(self):
        """A store as the older endpoints left it: only the initial schema, mixed encodings."""
        from db_migrations import _migration_0001_initial

        conn = _fresh_conn()
        _migration_0001_initial(conn)
        conn.execute("INSERT INTO capacity_settings (capacity_name) VALUES ('  CSER   High Capacity ')")
        conn.execute(
            """
            INSERT INTO param_sets
              (result_id, scenario_id, earliest_year, latest_year, phaseout_thresh,
               w_dom_energy, w_gov_revenue, w_employment, capacity_settings_id,
               scale_dep_by_capacity, floating_budget)
            VALUES (1, 1, 2030, 2050, 0.9, 33.3, 33.3, 33.3, NULL, 0, 1),
                   (2, 1, 2030, 2050, 90, 0.5, 0.25, 0.25, 1, 0, 1)
            """
        )
        conn.commit()
        yield conn
        conn.close()

    def test_percent_weights_become_fractions(self, legacy_conn):
        from db_migrations import apply_migrations

        apply_migrations(legacy_conn)
        row = legacy_conn.execute("SELECT * FROM param_sets WHERE result_id=1").fetchone()
        assert row["w_dom_energy"] == pytest.approx(0.333)
        assert row["w_dom_milli"] == 333
        assert row["phaseout_milli"] == 900

    def test_percent_threshold_becomes_fraction(self, legacy_conn):
        from db_migrations import apply_migrations

        apply_migrations(legacy_conn)
        row = legacy_conn.execute("SELECT * FROM param_sets WHERE result_id=2").fetchone()
        assert row["phaseout_thresh"] == pytest.approx(0.9)
        assert (row["w_dom_milli"], row["w_gov_milli"], row["w_emp_milli"]) == (500, 250, 250)

    def test_scale_flag_rederived_from_capacity_reference(self, legacy_conn):
        from db_migrations import apply_migrations

        apply_migrations(legacy_conn)
        flags = {
            r["result_id"]: r["scale_dep_by_capacity"]
            for r in legacy_conn.execute("SELECT result_id, scale_dep_by_capacity FROM param_sets")
        }
        assert flags == {1: 0, 2: 1}

    def test_capacity_name_key_backfilled(self, legacy_conn):
        from db_migrations import apply_migrations

        apply_migrations(legacy_conn)
        row = legacy_conn.execute("SELECT name_key FROM capacity_settings").fetchone()
        assert row["name_key"] == "cser high capacity"
