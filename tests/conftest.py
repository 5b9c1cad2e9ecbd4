"""
Shared pytest fixtures for the parameter-cache service tests.

Provides:
  - In-memory SQLite DB with migrations applied
  - File-backed store for multi-connection (concurrency) tests
  - FastAPI TestClient on a fresh temporary store
  - Frozen clock
  - Helper functions for seeding presets, payloads and batch completion
"""

import os
import sqlite3
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, Generator, Optional

import pytest

# ---------------------------------------------------------------------------
# Ensure the project root is on sys.path so we can import app modules
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Use a writable temp directory for the default store so app startup succeeds.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="param_cache_test_")
os.environ["DB_DIR"] = _TEST_DB_DIR
os.environ.setdefault("TX_RETRY_BACKOFF_S", "0.01")


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def db_conn() -> Generator[sqlite3.Connection, None, None]:
    """Yield an in-memory SQLite connection with all migrations applied."""
    from db_migrations import apply_migrations

    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON;")
    apply_migrations(conn)
    conn.commit()

    yield conn
    conn.close()


@pytest.fixture()
def seeded_db(db_conn: sqlite3.Connection) -> sqlite3.Connection:
    """db_conn with the built-in capacity presets."""
    import capacity_service

    capacity_service.seed_builtin_presets(db_conn)
    db_conn.commit()
    return db_conn


@pytest.fixture()
def store_path(tmp_path: Path) -> Path:
    """A migrated, file-backed store that several connections can share."""
    from db import connect_db
    from db_migrations import apply_migrations

    path = tmp_path / "results.sql3"
    conn = connect_db(path)
    try:
        apply_migrations(conn)
        conn.commit()
    finally:
        conn.close()
    return path


# ---------------------------------------------------------------------------
# FastAPI TestClient
# ---------------------------------------------------------------------------

@pytest.fixture()
def client(tmp_path: Path, monkeypatch):
    """Return a Starlette TestClient wired to the FastAPI app on a fresh store."""
    from fastapi.testclient import TestClient
    import db
    from main import app

    monkeypatch.setattr(db, "DB_PATH", tmp_path / "api_results.sql3")
    with TestClient(app) as c:
        yield c


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

FROZEN_EPOCH_S = 1_750_000_000


@pytest.fixture()
def frozen_clock():
    import clock

    clock.freeze_clock(FROZEN_EPOCH_S)
    yield clock
    clock.reset_clock()


@pytest.fixture(autouse=True)
def _reset_clock():
    """Ensure no test leaks a frozen clock into the next."""
    import clock

    yield
    clock.reset_clock()


# ---------------------------------------------------------------------------
# Test data helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    """Stateless helper methods for common test-data operations."""

    @staticmethod
    def payload(**overrides: Any) -> Dict[str, Any]:
        """The dashboard's default submission, with overrides applied."""
        base: Dict[str, Any] = {
            "scenario_id": 1,
            "earliest_year": 2030,
            "latest_year": 2050,
            "phaseout_thresh": 90,
            "w_dom_energy": 33.3,
            "w_gov_revenue": 33.3,
            "w_employment": 33.3,
            "scale_dep_by_capacity": 0,
            "floating_budget": 1,
        }
        base.update(overrides)
        return base

    @staticmethod
    def params(**overrides: Any):
        from canonicalizer import canonicalize_payload

        return canonicalize_payload(TestHelpers.payload(**overrides))

    @staticmethod
    def add_capacity_preset(conn: sqlite3.Connection, name: str, **fields: Any) -> int:
        from canonicalizer import canonicalize_capacity
        from capacity_service import ensure_capacity_settings

        preset_id, _ = ensure_capacity_settings(conn, canonicalize_capacity({"capacity_name": name, **fields}))
        conn.commit()
        return preset_id

    @staticmethod
    def mark_calculated(conn: sqlite3.Connection, result_id: int, at_s: Optional[int] = None) -> None:
        conn.execute(
            "UPDATE param_sets SET is_calculated=1, date_calculated=? WHERE result_id=?",
            (at_s or 1_700_000_000, result_id),
        )
        conn.commit()

    @staticmethod
    def insert_legacy_row(conn: sqlite3.Connection, result_id: int, **fields: Any) -> None:
        """Insert a raw param_sets row the way older endpoints wrote them."""
        from canonicalizer import to_thousandths

        row: Dict[str, Any] = {
            "result_id": result_id,
            "is_calculated": 0,
            "date_last_used": 1_600_000_000,
            "scenario_id": 1,
            "earliest_year": 2030,
            "latest_year": 2050,
            "phaseout_thresh": 0.9,
            "w_dom_energy": 0.333,
            "w_gov_revenue": 0.333,
            "w_employment": 0.333,
            "capacity_settings_id": None,
            "scale_dep_by_capacity": 0,
            "floating_budget": 1,
        }
        row.update(fields)
        cols = {r["name"] for r in conn.execute("PRAGMA table_info(param_sets)").fetchall()}
        if "phaseout_milli" in cols:
            row.setdefault("phaseout_milli", to_thousandths(row["phaseout_thresh"]))
            row.setdefault("w_dom_milli", to_thousandths(row["w_dom_energy"]))
            row.setdefault("w_gov_milli", to_thousandths(row["w_gov_revenue"]))
            row.setdefault("w_emp_milli", to_thousandths(row["w_employment"]))
        col_names = ", ".join(row.keys())
        placeholders = ", ".join("?" for _ in row)
        conn.execute(f"INSERT INTO param_sets ({col_names}) VALUES ({placeholders})", tuple(row.values()))
        conn.commit()

    @staticmethod
    def count_param_sets(conn: sqlite3.Connection) -> int:
        return int(conn.execute("SELECT COUNT(*) FROM param_sets").fetchone()[0])


@pytest.fixture()
def helpers() -> TestHelpers:
    return TestHelpers()
