"""Flag result sets as calculated once the batch computation has written their rows.

Usage:
  python scripts/mark_result_calculated.py RESULT_ID [RESULT_ID ...]
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from db import connect_db
from errors import ParamCacheError
import param_set_service


def main(argv: list[str]) -> int:
    if not argv:
        print(__doc__.strip())
        return 2
    failures = 0
    conn = connect_db()
    try:
        for raw in argv:
            try:
                status = param_set_service.mark_result_calculated(conn, raw)
            except ParamCacheError as exc:
                print(f"{raw}: {exc}")
                failures += 1
                continue
            print(f"{status.result_id}: {status.status} (date_calculated={status.date_calculated})")
    finally:
        conn.close()
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
