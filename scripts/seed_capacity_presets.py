"""Seed capacity presets into the result store.

Usage:
  python scripts/seed_capacity_presets.py                 # built-in dashboard presets
  python scripts/seed_capacity_presets.py presets.json    # plus presets from a JSON list
"""

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from canonicalizer import canonicalize_capacity
import capacity_service
from db import connect_db, run_in_write_transaction
from db_migrations import apply_migrations


def main(argv: list[str]) -> int:
    conn = connect_db()
    try:
        apply_migrations(conn)
        created = capacity_service.seed_builtin_presets(conn)
        conn.commit()
        print(f"Built-in presets created: {len(created)}")

        for path in argv:
            entries = json.loads(Path(path).read_text(encoding="utf-8"))
            if not isinstance(entries, list):
                print(f"{path}: top-level JSON must be a list of presets")
                return 1
            for entry in entries:
                spec = canonicalize_capacity(entry)
                preset_id, was_created = run_in_write_transaction(
                    conn, lambda c: capacity_service.ensure_capacity_settings(c, spec)
                )
                print(f"{spec.capacity_name}: id={preset_id} {'created' if was_created else 'exists'}")
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
