import sqlite3
from typing import Optional

from canonicalizer import CapacityRequest


def find_by_name(conn: sqlite3.Connection, name_key: str) -> Optional[sqlite3.Row]:
    return conn.execute(
        """
        SELECT * FROM capacity_settings
        WHERE name_key=?
        ORDER BY capacity_settings_id ASC
        LIMIT 1
        """,
        (name_key,),
    ).fetchone()


def find_exact(conn: sqlite3.Connection, spec: CapacityRequest) -> Optional[sqlite3.Row]:
    # IS is SQLite's NULL-safe equality.
    return conn.execute(
        """
        SELECT * FROM capacity_settings
        WHERE name_key=?
          AND low_thresh IS ?
          AND high_thresh IS ?
          AND interp_btw_thresh IS ?
          AND resp_since IS ?
          AND r_weight IS ?
        ORDER BY capacity_settings_id ASC
        LIMIT 1
        """,
        (
            spec.name_key,
            spec.low_thresh,
            spec.high_thresh,
            spec.interp_btw_thresh,
            spec.resp_since,
            spec.r_weight,
        ),
    ).fetchone()


def get_by_id(conn: sqlite3.Connection, capacity_settings_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(
        "SELECT * FROM capacity_settings WHERE capacity_settings_id=?",
        (capacity_settings_id,),
    ).fetchone()


def list_capacity_settings(conn: sqlite3.Connection) -> list[sqlite3.Row]:
    return conn.execute(
        "SELECT * FROM capacity_settings ORDER BY capacity_settings_id"
    ).fetchall()


def insert_capacity_settings(conn: sqlite3.Connection, spec: CapacityRequest) -> int:
    cur = conn.execute(
        """
        INSERT INTO capacity_settings
          (capacity_name, name_key, low_thresh, high_thresh, interp_btw_thresh, resp_since, r_weight)
        VALUES (?,?,?,?,?,?,?)
        """,
        (
            spec.capacity_name,
            spec.name_key,
            spec.low_thresh,
            spec.high_thresh,
            spec.interp_btw_thresh,
            spec.resp_since,
            spec.r_weight,
        ),
    )
    return int(cur.lastrowid)
