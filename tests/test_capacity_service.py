"""
Capacity settings resolver tests — service layer against an in-memory store.
"""

import sqlite3

import pytest

from canonicalizer import CapacityRequest, canonicalize_capacity
import capacity_service
from errors import InvalidInput, NotFound, UnknownCapacityPreset


def _spec(**fields) -> CapacityRequest:
    return canonicalize_capacity(fields)


class TestResolveOff:
    @pytest.mark.parametrize("name", ["", "off", "  OFF  "])
    def test_off_like_names(self, seeded_db, name):
        res = capacity_service.resolve_capacity_settings(seeded_db, _spec(capacity_name=name), True)
        assert res.capacity_settings_id is None
        assert res.scale_by_capacity is False
        assert res.missing is False

    def test_scale_flag_off_ignores_preset(self, seeded_db):
        res = capacity_service.resolve_capacity_settings(
            seeded_db, _spec(capacity_name="CSER High Capacity"), scale_requested=False
        )
        assert res.capacity_settings_id is None
        assert res.scale_by_capacity is False

    def test_off_does_not_touch_store(self, db_conn):
        capacity_service.resolve_capacity_settings(db_conn, _spec(capacity_name="off"), True)
        assert db_conn.execute("SELECT COUNT(*) FROM capacity_settings").fetchone()[0] == 0


class TestResolveNamed:
    def test_name_match_is_case_and_whitespace_insensitive(self, seeded_db):
        expected = capacity_service.resolve_capacity_settings(
            seeded_db, _spec(capacity_name="CSER High Capacity"), True
        )
        res = capacity_service.resolve_capacity_settings(
            seeded_db, _spec(capacity_name="  cser   HIGH capacity "), True
        )
        assert res.capacity_settings_id == expected.capacity_settings_id
        assert res.scale_by_capacity is True

    def test_exact_match_preferred_when_fields_given(self, seeded_db, helpers):
        tuned_id = helpers.add_capacity_preset(seeded_db, "CSER High Capacity", low_thresh=5000, high_thresh=20000)
        res = capacity_service.resolve_capacity_settings(
            seeded_db, _spec(capacity_name="cser high capacity", low_thresh=5000, high_thresh=20000), True
        )
        assert res.capacity_settings_id == tuned_id

    def test_falls_back_to_oldest_name_match(self, seeded_db, helpers):
        base = capacity_service.resolve_capacity_settings(seeded_db, _spec(capacity_name="CSER High Capacity"), True)
        helpers.add_capacity_preset(seeded_db, "CSER High Capacity", low_thresh=1)
        res = capacity_service.resolve_capacity_settings(
            seeded_db, _spec(capacity_name="CSER High Capacity", low_thresh=999), True
        )
        assert res.capacity_settings_id == base.capacity_settings_id

    def test_strict_unknown_preset_fails(self, seeded_db):
        with pytest.raises(UnknownCapacityPreset) as excinfo:
            capacity_service.resolve_capacity_settings(seeded_db, _spec(capacity_name="Unseeded"), True)
        assert isinstance(excinfo.value, InvalidInput)
        assert "Unseeded" in str(excinfo.value)

    def test_lenient_unknown_preset_is_missing(self, seeded_db):
        res = capacity_service.resolve_capacity_settings(
            seeded_db, _spec(capacity_name="Unseeded"), True, strict=False
        )
        assert res.missing is True
        assert res.capacity_settings_id is None


class TestEnsureCapacitySettings:
    def test_creates_then_reuses(self, db_conn):
        spec = _spec(capacity_name="Custom", low_thresh=100, r_weight=0.5)
        first_id, created = capacity_service.ensure_capacity_settings(db_conn, spec)
        second_id, created_again = capacity_service.ensure_capacity_settings(db_conn, spec)
        assert created is True
        assert created_again is False
        assert first_id == second_id

    def test_null_safe_fields_distinguish_records(self, db_conn):
        a, _ = capacity_service.ensure_capacity_settings(db_conn, _spec(capacity_name="Custom"))
        b, _ = capacity_service.ensure_capacity_settings(db_conn, _spec(capacity_name="Custom", resp_since=1990))
        c, _ = capacity_service.ensure_capacity_settings(db_conn, _spec(capacity_name="custom "))
        assert a != b
        assert a == c

    @pytest.mark.parametrize("name", ["", "off", " Off "])
    def test_rejects_blank_and_off(self, db_conn, name):
        with pytest.raises(InvalidInput):
            capacity_service.ensure_capacity_settings(db_conn, _spec(capacity_name=name))

    def test_seed_builtin_presets_is_idempotent(self, db_conn):
        created = capacity_service.seed_builtin_presets(db_conn)
        assert len(created) == 2
        assert capacity_service.seed_builtin_presets(db_conn) == []

    def test_seed_respects_legacy_preset_with_other_fields(self, db_conn, helpers):
        helpers.add_capacity_preset(db_conn, "CSER High Capacity", low_thresh=7)
        created = capacity_service.seed_builtin_presets(db_conn)
        assert len(created) == 1


class TestCapacityReads:
    def test_list_and_get(self, seeded_db):
        rows = capacity_service.list_capacity_settings(seeded_db)
        assert [r["capacity_name"] for r in rows] == ["CSER High Capacity", "CSER Medium Progressivity"]
        one = capacity_service.get_capacity_settings(seeded_db, rows[0]["capacity_settings_id"])
        assert one == rows[0]

    def test_get_unknown(self, db_conn: sqlite3.Connection):
        with pytest.raises(NotFound):
            capacity_service.get_capacity_settings(db_conn, 42)
