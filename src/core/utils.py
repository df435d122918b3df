"""
Small shared utilities.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Generator


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


def to_number(val: Any) -> float:
    """Coerce a loosely-typed cell to float; missing or unparseable -> 0.0."""
    if val is None or val == "":
        return 0.0
    try:
        return float(val)
    except (TypeError, ValueError):
        return 0.0


def pct_change(current: float, previous: float) -> float | None:
    """Percent change from *previous* to *current*; None when previous is 0."""
    if not previous:
        return None
    return (current - previous) / previous * 100
