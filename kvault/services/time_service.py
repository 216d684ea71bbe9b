"""Time helpers. Mapping timestamps are integer epoch seconds."""

from __future__ import annotations

import time
from collections.abc import Callable

Clock = Callable[[], int]


def now_ts() -> int:
    """Return the current time as integer epoch seconds."""
    return int(time.time())
