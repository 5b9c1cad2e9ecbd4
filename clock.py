import threading
import time
from typing import Optional

_FROZEN_AT_S: Optional[float] = None
_CLOCK_LOCK = threading.Lock()


def now_s() -> int:
    """Current time as integer epoch seconds (the store's timestamp format)."""
    with _CLOCK_LOCK:
        if _FROZEN_AT_S is not None:
            return int(_FROZEN_AT_S)
    return int(time.time())


def clock_frozen() -> bool:
    with _CLOCK_LOCK:
        return _FROZEN_AT_S is not None


def freeze_clock(at_s: float) -> None:
    global _FROZEN_AT_S
    with _CLOCK_LOCK:
        _FROZEN_AT_S = float(at_s)


def advance_clock(delta_s: float) -> None:
    global _FROZEN_AT_S
    with _CLOCK_LOCK:
        if _FROZEN_AT_S is None:
            raise RuntimeError("advance_clock() requires a frozen clock")
        _FROZEN_AT_S += float(delta_s)


def reset_clock() -> None:
    global _FROZEN_AT_S
    with _CLOCK_LOCK:
        _FROZEN_AT_S = None
