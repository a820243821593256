from __future__ import annotations

import time


def now_ts() -> int:
    """Seconds since epoch."""
    return int(time.time())


def now_ms() -> int:
    """Milliseconds since epoch (what browser clients compare deadlines against)."""
    return int(time.time() * 1000)
